from typing import Dict, List, Optional
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel


class DeploymentCreate(BaseModel):
    domain_id: str
    domain_name: str
    site_id: str


class DeploymentCreateResponse(BaseModel):
    success: bool
    deployment_id: Optional[UUID] = None
    worker_name: Optional[str] = None
    kv_store_id: Optional[str] = None
    variants_uploaded: Optional[int] = None
    error: Optional[str] = None


class DeploymentInfo(BaseModel):
    id: UUID
    site_id: str
    domain_name: str
    worker_name: str
    status: str
    deployed_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    class Config:
        from_attributes = True


class DeploymentList(BaseModel):
    deployments: List[DeploymentInfo]


class ResyncResponse(BaseModel):
    success: bool
    variants_updated: int


class TeardownResponse(BaseModel):
    success: bool
    remote_cleanup: Dict[str, object] = {}
