"""
Deployment Secret Model

Digest of the opaque key a deployed worker presents on analytics callbacks.
The plaintext only ever lives in the worker's secret store.
"""
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base

SECRET_ACTIVE = "active"
SECRET_INACTIVE = "inactive"


class DeploymentSecret(Base):
    __tablename__ = "deployment_secrets"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    customer_id = Column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # one per deployment today; N allowed for rotation
    deployment_id = Column(
        Uuid, ForeignKey("deployments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    secret_digest = Column(String(64), nullable=False, index=True)
    status = Column(String(16), default=SECRET_ACTIVE, index=True)  # active, inactive
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    deployment = relationship("Deployment", back_populates="secrets")
