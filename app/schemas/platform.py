"""Typed views of Cloudflare v4 API payloads."""
from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class PlatformMessage(BaseModel):
    code: int = 0
    message: str = ""


class PlatformEnvelope(BaseModel, Generic[T]):
    """``{success, errors[], messages[], result}``, parameterized per call site."""

    model_config = ConfigDict(extra="ignore")

    success: bool = False
    errors: List[PlatformMessage] = []
    messages: List[Any] = []
    result: Optional[T] = None

    def first_error(self) -> PlatformMessage:
        if self.errors:
            return self.errors[0]
        return PlatformMessage(code=0, message="Unknown platform error")

    def error_text(self) -> str:
        return ", ".join(e.message for e in self.errors) or "Unknown platform error"


class _PlatformObject(BaseModel):
    model_config = ConfigDict(extra="ignore")


class Account(_PlatformObject):
    id: str
    name: str = ""


class Zone(_PlatformObject):
    id: str
    name: str
    status: str = ""


class KVNamespace(_PlatformObject):
    id: str
    title: str = ""


class WorkerRoute(_PlatformObject):
    id: str
    pattern: str = ""
    script: Optional[str] = None


class TokenStatus(_PlatformObject):
    id: Optional[str] = None
    status: str = ""


class KVNamespaceBinding(BaseModel):
    type: str = "kv_namespace"
    name: str
    namespace_id: str
