from typing import Optional
from uuid import UUID
from sqlalchemy.orm import Session
from app.models.customer import Customer


def get(db: Session, customer_id: UUID) -> Optional[Customer]:
    return db.query(Customer).filter(Customer.id == customer_id).first()


def get_by_email(db: Session, email: str) -> Optional[Customer]:
    return db.query(Customer).filter(Customer.email == email).first()


def create(db: Session, *, email: str, name: Optional[str] = None) -> Customer:
    db_obj = Customer(email=email.lower().strip(), name=name)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj
