from typing import List, Optional
from uuid import UUID
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.models.deployment import Deployment, DEPLOYMENT_ACTIVE, DEPLOYMENT_DELETED


def get_owned(
    db: Session, deployment_id: UUID, customer_id: UUID, *, active_only: bool = False
) -> Optional[Deployment]:
    query = db.query(Deployment).filter(
        Deployment.id == deployment_id,
        Deployment.customer_id == customer_id,
    )
    if active_only:
        query = query.filter(Deployment.status == DEPLOYMENT_ACTIVE)
    return query.first()


def list_for_customer(db: Session, customer_id: UUID) -> List[Deployment]:
    return (
        db.query(Deployment)
        .filter(Deployment.customer_id == customer_id)
        .order_by(Deployment.deployed_at.desc())
        .all()
    )


def build_active(
    *,
    customer_id: UUID,
    site_id: str,
    domain_id: str,
    domain_name: str,
    worker_name: str,
    kv_store_id: str,
    route_pattern: Optional[str],
    route_id: Optional[str],
) -> Deployment:
    """An ``active`` row must carry every remote identifier."""
    if not worker_name or not kv_store_id:
        raise ValueError("active deployment requires worker_name and kv_store_id")
    return Deployment(
        customer_id=customer_id,
        site_id=site_id,
        domain_id=domain_id,
        domain_name=domain_name,
        worker_name=worker_name,
        kv_store_id=kv_store_id,
        route_pattern=route_pattern,
        route_id=route_id,
        status=DEPLOYMENT_ACTIVE,
    )


def mark_deleted(db: Session, db_obj: Deployment) -> Deployment:
    """Staged; the caller commits together with the secret deactivation."""
    db_obj.status = DEPLOYMENT_DELETED
    db_obj.last_updated = func.now()
    db.add(db_obj)
    return db_obj


def touch(db: Session, db_obj: Deployment) -> None:
    db_obj.last_updated = func.now()
    db.add(db_obj)
    db.commit()
