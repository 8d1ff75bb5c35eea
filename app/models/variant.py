import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, UniqueConstraint, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base

VARIANT_ACTIVE = "active"


class Variant(Base):
    __table_args__ = (
        UniqueConstraint("deployment_id", "url_path", name="uq_variants_deployment_path"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    customer_id = Column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    deployment_id = Column(
        Uuid, ForeignKey("deployments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    url_path = Column(String(2048), nullable=False)   # also the KV key
    content = Column(Text, nullable=False)
    content_hash = Column(String(64), nullable=True)  # SHA-256 hex
    status = Column(String(16), default=VARIANT_ACTIVE, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    deployment = relationship("Deployment", back_populates="variants")
