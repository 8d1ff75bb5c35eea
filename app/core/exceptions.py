"""
Error kinds shared by the vault, the platform client and the orchestrator.

The API layer maps these onto HTTP responses; services never raise
``HTTPException`` themselves.
"""
from typing import Optional


class EdgeDeploymentError(Exception):
    """Base class for every error raised by the deployment core."""


class NoConnection(EdgeDeploymentError):
    """The customer has no active platform credential on file."""

    def __init__(self, customer_id=None):
        self.customer_id = customer_id
        super().__init__("No active Cloudflare connection found")


class CryptoError(EdgeDeploymentError):
    """Encryption or decryption failed (bad key, tampered or malformed blob)."""


class RemoteAPIError(EdgeDeploymentError):
    """Structured rejection from the remote platform."""

    def __init__(self, code: int, message: str, status_code: Optional[int] = None):
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(f"[{code}] {message}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class TransportError(EdgeDeploymentError):
    """Network-level failure reaching the remote platform."""


class NotFound(EdgeDeploymentError):
    """Referenced deployment / variant is missing or not owned by the caller."""

    def __init__(self, resource: str, resource_id=None):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class InvalidInput(EdgeDeploymentError):
    """Caller-supplied value failed validation (token format, URL path)."""


class PersistenceError(EdgeDeploymentError):
    """The relational store rejected a write (step 8 of provisioning)."""
