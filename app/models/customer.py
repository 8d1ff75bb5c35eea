import uuid
from sqlalchemy import Column, String, DateTime, Uuid, func
from sqlalchemy.orm import relationship
from app.db.base_class import Base


class Customer(Base):
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    connection = relationship(
        "Connection", back_populates="customer", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )
    deployments = relationship(
        "Deployment", back_populates="customer",
        cascade="all, delete-orphan", passive_deletes=True,
    )
