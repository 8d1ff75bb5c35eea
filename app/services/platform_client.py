"""
Cloudflare API client

Thin typed wrapper over the v4 REST surface used for provisioning. Every
method either returns the parsed ``result`` or raises ``RemoteAPIError`` /
``TransportError``. No retries here: retry policy belongs to the caller.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Type
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from app.config import settings
from app.core.exceptions import RemoteAPIError, TransportError
from app.schemas.platform import (
    Account,
    KVNamespace,
    KVNamespaceBinding,
    PlatformEnvelope,
    TokenStatus,
    WorkerRoute,
    Zone,
)

logger = logging.getLogger("axp.platform")

# workers.api.error.script_not_found / kv namespace not found
NOT_FOUND_CODES = {10007, 10013}


class PlatformAPIClient:
    """
    One instance per decrypted customer token.

    ``transport`` lets tests plug in ``httpx.MockTransport``.
    """

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token = token
        self.base_url = (base_url or settings.PLATFORM_API_BASE).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PLATFORM_API_TIMEOUT
        self._transport = transport

    def __repr__(self) -> str:
        return f"PlatformAPIClient(base_url={self.base_url!r}, token=***)"

    # ── Accounts / zones ──

    async def verify_token(self) -> TokenStatus:
        return await self._call("GET", "/user/tokens/verify", TokenStatus)

    async def list_accounts(self) -> List[Account]:
        return await self._call("GET", "/accounts", List[Account]) or []

    async def list_zones(self) -> List[Zone]:
        return await self._call("GET", "/zones", List[Zone], params={"per_page": 50}) or []

    # ── KV namespaces ──

    async def create_kv_namespace(self, account_id: str, title: str) -> KVNamespace:
        return await self._call(
            "POST",
            f"/accounts/{account_id}/storage/kv/namespaces",
            KVNamespace,
            json={"title": title},
        )

    async def delete_kv_namespace(self, account_id: str, namespace_id: str) -> None:
        await self._call("DELETE", f"/accounts/{account_id}/storage/kv/namespaces/{namespace_id}", Any)

    async def put_kv_value(self, account_id: str, namespace_id: str, key: str, value: str) -> None:
        await self._call_raw(
            "PUT",
            self._kv_value_path(account_id, namespace_id, key),
            content=value.encode("utf-8"),
            headers={"Content-Type": "text/html"},
        )

    async def delete_kv_value(self, account_id: str, namespace_id: str, key: str) -> None:
        await self._call_raw("DELETE", self._kv_value_path(account_id, namespace_id, key))

    # ── Workers ──

    async def upload_worker(
        self,
        account_id: str,
        worker_name: str,
        script: str,
        bindings: List[KVNamespaceBinding],
    ) -> None:
        metadata = {
            "main_module": "worker.js",
            "bindings": [b.model_dump() for b in bindings],
            "compatibility_date": settings.WORKER_COMPATIBILITY_DATE,
        }
        files = {
            "worker.js": ("worker.js", script.encode("utf-8"), "application/javascript+module"),
            "metadata": ("metadata.json", json.dumps(metadata).encode("utf-8"), "application/json"),
        }
        # httpx sets the multipart Content-Type (with boundary) itself
        await self._call("PUT", f"/accounts/{account_id}/workers/scripts/{worker_name}", Any, files=files)

    async def set_worker_secret(self, account_id: str, worker_name: str, name: str, text: str) -> None:
        await self._call(
            "PUT",
            f"/accounts/{account_id}/workers/scripts/{worker_name}/secrets",
            Any,
            json={"name": name, "text": text, "type": "secret_text"},
        )

    async def delete_worker(self, account_id: str, worker_name: str) -> None:
        await self._call("DELETE", f"/accounts/{account_id}/workers/scripts/{worker_name}", Any)

    # ── Routes ──

    async def add_worker_route(self, zone_id: str, pattern: str, script: str) -> WorkerRoute:
        return await self._call(
            "POST",
            f"/zones/{zone_id}/workers/routes",
            WorkerRoute,
            json={"pattern": pattern, "script": script},
        )

    async def delete_worker_route(self, zone_id: str, route_id: str) -> None:
        await self._call("DELETE", f"/zones/{zone_id}/workers/routes/{route_id}", Any)

    # ── Internals ──

    @staticmethod
    def _kv_value_path(account_id: str, namespace_id: str, key: str) -> str:
        # Keys are URL paths ("/pricing"); the slash must survive as part of the key
        return f"/accounts/{account_id}/storage/kv/namespaces/{namespace_id}/values/{quote(key, safe='')}"

    def _headers(self, json_body: bool) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self._token}"}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        headers = kwargs.pop("headers", None) or {}
        merged = {**self._headers(json_body="json" in kwargs), **headers}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(method, path, headers=merged, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning("Platform API timeout: %s %s", method, path)
            raise TransportError(f"Timeout calling {method} {path}") from e
        except httpx.HTTPError as e:
            logger.warning("Platform API unreachable: %s %s (%s)", method, path, type(e).__name__)
            raise TransportError(f"Network error calling {method} {path}: {e}") from e

        logger.debug("Platform API %s %s -> %d", method, path, response.status_code)
        return response

    async def _call(self, method: str, path: str, result_type: Type, **kwargs) -> Any:
        response = await self._send(method, path, **kwargs)
        envelope = self._parse_envelope(response, result_type)
        if not envelope.success:
            raise self._error_from(envelope, response.status_code)
        return envelope.result

    async def _call_raw(self, method: str, path: str, **kwargs) -> None:
        """KV data-plane endpoints answer with a bare status, not always an envelope."""
        response = await self._send(method, path, **kwargs)
        if response.is_success:
            return
        try:
            envelope = PlatformEnvelope[Any].model_validate(response.json())
        except (ValueError, ValidationError):
            raise RemoteAPIError(response.status_code, response.text[:500], response.status_code)
        raise self._error_from(envelope, response.status_code)

    @staticmethod
    def _parse_envelope(response: httpx.Response, result_type: Type) -> PlatformEnvelope:
        try:
            payload = response.json()
        except ValueError:
            raise RemoteAPIError(
                response.status_code,
                f"Non-JSON response: {response.text[:200]}",
                response.status_code,
            )
        try:
            return PlatformEnvelope[result_type].model_validate(payload)
        except ValidationError as e:
            raise RemoteAPIError(
                response.status_code, f"Unexpected response shape: {e.error_count()} errors", response.status_code
            ) from e

    @staticmethod
    def _error_from(envelope: PlatformEnvelope, status_code: int) -> RemoteAPIError:
        first = envelope.first_error()
        if first.code in NOT_FOUND_CODES:
            status_code = 404
        return RemoteAPIError(first.code, envelope.error_text(), status_code)
