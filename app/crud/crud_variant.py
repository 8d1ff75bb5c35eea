from typing import List, Optional, Tuple
from uuid import UUID
from sqlalchemy.orm import Session
from app.core.hashing import sha256_hex
from app.models.deployment import Deployment
from app.models.variant import Variant, VARIANT_ACTIVE


def get_owned(db: Session, variant_id: UUID, customer_id: UUID) -> Optional[Variant]:
    return db.query(Variant).filter(
        Variant.id == variant_id,
        Variant.customer_id == customer_id,
    ).first()


def get_by_path(db: Session, deployment_id: UUID, url_path: str) -> Optional[Variant]:
    return db.query(Variant).filter(
        Variant.deployment_id == deployment_id,
        Variant.url_path == url_path,
    ).first()


def list_for_deployment(db: Session, deployment_id: UUID, customer_id: UUID) -> List[Variant]:
    return (
        db.query(Variant)
        .filter(Variant.deployment_id == deployment_id, Variant.customer_id == customer_id)
        .order_by(Variant.created_at.desc())
        .all()
    )


def list_active_for_customer(
    db: Session, customer_id: UUID, deployment_id: Optional[UUID] = None
) -> List[Variant]:
    """Active variants to push into KV; scoped to one deployment when given."""
    query = db.query(Variant).filter(
        Variant.customer_id == customer_id,
        Variant.status == VARIANT_ACTIVE,
    )
    if deployment_id is not None:
        query = query.filter(Variant.deployment_id == deployment_id)
    return query.order_by(Variant.url_path).all()


def upsert(
    db: Session, *, deployment: Deployment, url_path: str, content: str
) -> Tuple[Variant, bool]:
    """
    Create the variant for ``(deployment, url_path)`` or overwrite it in place.

    Returns ``(variant, created)``.
    """
    content_hash = sha256_hex(content)
    db_obj = get_by_path(db, deployment.id, url_path)
    created = db_obj is None
    if created:
        db_obj = Variant(
            customer_id=deployment.customer_id,
            deployment_id=deployment.id,
            url_path=url_path,
        )
        db.add(db_obj)
    db_obj.content = content
    db_obj.content_hash = content_hash
    db_obj.status = VARIANT_ACTIVE
    db.commit()
    db.refresh(db_obj)
    return db_obj, created


def update_content(db: Session, *, db_obj: Variant, content: str) -> Variant:
    db_obj.content = content
    db_obj.content_hash = sha256_hex(content)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


def delete(db: Session, *, db_obj: Variant) -> None:
    db.delete(db_obj)
    db.commit()
