"""
Platform Connection Model

One row per customer holding the encrypted edge-platform API token.
Updated in place on reconnection, flipped to ``disconnected`` instead of
being deleted.
"""
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base

CONNECTION_ACTIVE = "active"
CONNECTION_DISCONNECTED = "disconnected"


class Connection(Base):
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    # unique: at most one connection (and so one active connection) per customer
    customer_id = Column(
        Uuid, ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False, unique=True, index=True,
    )
    account_id = Column(String(64), nullable=False)
    credential_encrypted = Column(Text, nullable=False)   # Vault blob, never plaintext
    token_type = Column(String(32), default="api_token")
    status = Column(String(16), default=CONNECTION_ACTIVE, index=True)  # active, disconnected
    connected_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    customer = relationship("Customer", back_populates="connection")
