from typing import List, Optional
from pydantic import BaseModel


class ConnectRequest(BaseModel):
    token: str


class ConnectResponse(BaseModel):
    success: bool
    account_id: Optional[str] = None
    error: Optional[str] = None


class ZoneInfo(BaseModel):
    id: str
    name: str
    status: str = ""


class ZoneList(BaseModel):
    zones: List[ZoneInfo]
