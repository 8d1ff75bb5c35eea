"""
Deployment Secret Issuer

Each deployment gets an opaque ``sk_live_…`` key that the worker sends as a
bearer token on analytics callbacks. Only the SHA-256 digest is stored.

``verify`` and ``authenticate`` are the receiving side of that callback; the
analytics ingestion endpoint that calls them is a separate service.
"""
import logging
import secrets
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.hashing import digest_matches, sha256_hex
from app.models.deployment import Deployment, DEPLOYMENT_ACTIVE
from app.models.deployment_secret import DeploymentSecret, SECRET_ACTIVE, SECRET_INACTIVE

logger = logging.getLogger("axp.secrets")

SECRET_PREFIX = "sk_live_"


@dataclass(frozen=True)
class IssuedSecret:
    plaintext: str = field(repr=False)
    digest: str


def issue() -> IssuedSecret:
    """Generate a fresh secret; 24 random bytes -> 32 url-safe chars."""
    plaintext = f"{SECRET_PREFIX}{secrets.token_urlsafe(24)}"
    return IssuedSecret(plaintext=plaintext, digest=sha256_hex(plaintext))


def verify(plaintext: str, digest: str) -> bool:
    return digest_matches(plaintext, digest)


def store_digest(db: Session, *, deployment: Deployment, digest: str) -> DeploymentSecret:
    """Stage the digest row; the caller owns the transaction."""
    record = DeploymentSecret(
        customer_id=deployment.customer_id,
        deployment_id=deployment.id,
        secret_digest=digest,
        status=SECRET_ACTIVE,
    )
    db.add(record)
    return record


def deactivate_for_deployment(db: Session, deployment_id: UUID) -> int:
    """Mark every secret of a deployment inactive (staged, not committed)."""
    return (
        db.query(DeploymentSecret)
        .filter(DeploymentSecret.deployment_id == deployment_id)
        .update({DeploymentSecret.status: SECRET_INACTIVE}, synchronize_session="fetch")
    )


def authenticate(db: Session, presented: str, site_id: Optional[str] = None) -> Optional[Deployment]:
    """
    Resolve the active deployment a callback bearer token belongs to.

    ``site_id`` comes from the worker's ``X-SITE-ID`` header; when given it
    must match the deployment that owns the secret.
    """
    if not presented or not presented.startswith(SECRET_PREFIX):
        return None

    record = (
        db.query(DeploymentSecret)
        .filter(
            DeploymentSecret.secret_digest == sha256_hex(presented),
            DeploymentSecret.status == SECRET_ACTIVE,
        )
        .first()
    )
    if not record:
        return None

    deployment = record.deployment
    if deployment is None or deployment.status != DEPLOYMENT_ACTIVE:
        return None
    if site_id is not None and deployment.site_id != site_id:
        logger.warning("Callback secret presented for wrong site %s", site_id)
        return None
    return deployment
