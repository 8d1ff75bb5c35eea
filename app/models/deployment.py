"""
Deployment Model

Record of one provisioned worker + KV namespace + route for one customer
site. Rows are only ever inserted as ``active`` with every remote
identifier filled in; teardown flips them to ``deleted``.
"""
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base

DEPLOYMENT_ACTIVE = "active"
DEPLOYMENT_DELETED = "deleted"


class Deployment(Base):
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    customer_id = Column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    site_id = Column(String(64), nullable=False, index=True)

    # Target domain (Cloudflare zone)
    domain_id = Column(String(64), nullable=False, index=True)
    domain_name = Column(String(255), nullable=False)

    # Remote resources
    worker_name = Column(String(128), nullable=False)
    kv_store_id = Column(String(64), nullable=False)
    route_pattern = Column(String(512), nullable=True)
    route_id = Column(String(64), nullable=True)

    status = Column(String(16), default=DEPLOYMENT_ACTIVE, index=True)  # active, deleted
    deployed_at = Column(DateTime(timezone=True), server_default=func.now())
    last_updated = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    customer = relationship("Customer", back_populates="deployments")
    variants = relationship(
        "Variant", back_populates="deployment",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    secrets = relationship(
        "DeploymentSecret", back_populates="deployment",
        cascade="all, delete-orphan", passive_deletes=True,
    )
