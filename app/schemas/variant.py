from typing import List, Optional
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel


class VariantCreate(BaseModel):
    deployment_id: UUID
    url_path: str
    content: str


class VariantUpdate(BaseModel):
    content: str


class VariantWriteResponse(BaseModel):
    success: bool
    variant_id: Optional[UUID] = None
    created: Optional[bool] = None
    synced: Optional[bool] = None
    error: Optional[str] = None


class VariantInfo(BaseModel):
    id: UUID
    url_path: str
    content_hash: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VariantList(BaseModel):
    variants: List[VariantInfo]
