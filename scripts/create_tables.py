"""
Create all database tables (local development) and optionally seed a
customer with an access token for calling the API.

Usage:
    python scripts/create_tables.py
    python scripts/create_tables.py --seed owner@example.com
"""
import logging
import sys

from app.core.security import create_access_token
from app.crud import crud_customer
from app.db.base_class import Base
from app.db.session import SessionLocal, engine
# Import all models so they are registered with Base.metadata
import app.models  # noqa: F401

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("axp.scripts")


def create_tables() -> None:
    logger.info("Creating tables on %s", engine.url.render_as_string(hide_password=True))
    Base.metadata.create_all(bind=engine)
    logger.info("Tables ready: %s", ", ".join(sorted(Base.metadata.tables)))


def seed_customer(email: str) -> None:
    db = SessionLocal()
    try:
        customer = crud_customer.get_by_email(db, email) or crud_customer.create(db, email=email)
        print(f"customer_id={customer.id}")
        print(f"Authorization: Bearer {create_access_token(customer.id)}")
    finally:
        db.close()


if __name__ == "__main__":
    create_tables()
    if len(sys.argv) >= 3 and sys.argv[1] == "--seed":
        seed_customer(sys.argv[2])
