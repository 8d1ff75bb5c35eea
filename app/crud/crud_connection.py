from typing import Optional
from uuid import UUID
from sqlalchemy import func
from sqlalchemy.orm import Session
from app.models.connection import Connection, CONNECTION_ACTIVE, CONNECTION_DISCONNECTED


def get_by_customer(db: Session, customer_id: UUID) -> Optional[Connection]:
    return db.query(Connection).filter(Connection.customer_id == customer_id).first()


def get_active(db: Session, customer_id: UUID) -> Optional[Connection]:
    return db.query(Connection).filter(
        Connection.customer_id == customer_id,
        Connection.status == CONNECTION_ACTIVE,
    ).first()


def upsert(db: Session, *, customer_id: UUID, account_id: str, credential_encrypted: str) -> Connection:
    """Insert the first connection, or reactivate / re-key the existing one in place."""
    db_obj = get_by_customer(db, customer_id)
    if db_obj is None:
        db_obj = Connection(customer_id=customer_id)
        db.add(db_obj)
    db_obj.account_id = account_id
    db_obj.credential_encrypted = credential_encrypted
    db_obj.token_type = "api_token"
    db_obj.status = CONNECTION_ACTIVE
    db_obj.connected_at = func.now()
    db.commit()
    db.refresh(db_obj)
    return db_obj


def mark_disconnected(db: Session, customer_id: UUID) -> bool:
    db_obj = get_by_customer(db, customer_id)
    if db_obj is None:
        return False
    db_obj.status = CONNECTION_DISCONNECTED
    db.commit()
    return True
