from functools import lru_cache
from typing import Generator
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core import security
from app.crud import crud_customer
from app.db.session import SessionLocal
from app.logging_config import customer_id_ctx
from app.models.customer import Customer
from app.services.connection_service import ConnectionService
from app.services.credential_vault import CredentialVault
from app.services.deployment_orchestrator import DeploymentOrchestrator
from app.services.variant_service import VariantService

bearer_scheme = HTTPBearer(auto_error=False)


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_customer(
    db: Session = Depends(get_db),
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Customer:
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    payload = security.decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")

    try:
        customer_id = UUID(str(payload["sub"]))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Could not validate credentials")

    customer = crud_customer.get(db, customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    customer_id_ctx.set(str(customer.id))
    return customer


@lru_cache()
def get_vault() -> CredentialVault:
    """Key is decoded once per process."""
    return CredentialVault.from_settings()


def get_orchestrator(
    db: Session = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(db, vault)


def get_connection_service(
    db: Session = Depends(get_db),
    vault: CredentialVault = Depends(get_vault),
) -> ConnectionService:
    return ConnectionService(db, vault)


def get_variant_service(
    db: Session = Depends(get_db),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> VariantService:
    return VariantService(db, orchestrator)
