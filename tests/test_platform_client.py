"""Cloudflare client against httpx.MockTransport."""
import json

import httpx
import pytest

from app.core.exceptions import RemoteAPIError, TransportError
from app.schemas.platform import KVNamespaceBinding
from app.services.platform_client import PlatformAPIClient

BASE = "https://cf.test/client/v4"


def _ok(result=None):
    return httpx.Response(200, json={"success": True, "errors": [], "messages": [], "result": result})


def _error(status, code, message):
    return httpx.Response(
        status,
        json={"success": False, "errors": [{"code": code, "message": message}], "messages": [], "result": None},
    )


def _client(handler):
    return PlatformAPIClient("tok-123", base_url=BASE, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_list_accounts_sends_bearer_and_parses_result():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        return _ok([{"id": "acc-1", "name": "Acme", "type": "standard"}])

    accounts = await _client(handler).list_accounts()

    assert [a.id for a in accounts] == ["acc-1"]
    assert seen["url"] == f"{BASE}/accounts"
    assert seen["auth"] == "Bearer tok-123"


@pytest.mark.asyncio
async def test_list_zones_requests_50_per_page():
    def handler(request):
        assert request.url.params["per_page"] == "50"
        return _ok([{"id": "z1", "name": "example.com", "status": "active"}])

    zones = await _client(handler).list_zones()
    assert zones[0].name == "example.com"


@pytest.mark.asyncio
async def test_create_kv_namespace():
    def handler(request):
        assert request.method == "POST"
        assert request.url.path.endswith("/accounts/acc-1/storage/kv/namespaces")
        assert json.loads(request.content) == {"title": "axp-variants-site-1"}
        return _ok({"id": "ns-9", "title": "axp-variants-site-1"})

    namespace = await _client(handler).create_kv_namespace("acc-1", "axp-variants-site-1")
    assert namespace.id == "ns-9"


@pytest.mark.asyncio
async def test_failure_envelope_raises_remote_error():
    def handler(request):
        return _error(400, 10000, "Authentication error")

    with pytest.raises(RemoteAPIError) as exc_info:
        await _client(handler).create_kv_namespace("acc-1", "t")

    assert exc_info.value.code == 10000
    assert exc_info.value.message == "Authentication error"
    assert exc_info.value.is_not_found is False


@pytest.mark.asyncio
async def test_missing_script_maps_to_not_found():
    def handler(request):
        return _error(400, 10007, "workers.api.error.script_not_found")

    with pytest.raises(RemoteAPIError) as exc_info:
        await _client(handler).delete_worker("acc-1", "axp-site-1")
    assert exc_info.value.is_not_found is True


@pytest.mark.asyncio
async def test_non_json_response_raises_remote_error():
    def handler(request):
        return httpx.Response(502, text="<html>bad gateway</html>")

    with pytest.raises(RemoteAPIError) as exc_info:
        await _client(handler).list_accounts()
    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_network_failure_raises_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        await _client(handler).list_accounts()


@pytest.mark.asyncio
async def test_timeout_raises_transport_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(TransportError):
        await _client(handler).list_zones()


@pytest.mark.asyncio
async def test_put_kv_value_quotes_path_key_and_sends_raw_body():
    seen = {}

    def handler(request):
        seen["raw_path"] = request.url.raw_path
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content
        return _ok()

    await _client(handler).put_kv_value("acc-1", "ns-1", "/pricing/plans", "<html>hi</html>")

    assert seen["raw_path"].endswith(b"/namespaces/ns-1/values/%2Fpricing%2Fplans")
    assert seen["content_type"] == "text/html"
    assert seen["body"] == b"<html>hi</html>"


@pytest.mark.asyncio
async def test_put_kv_value_failure():
    def handler(request):
        return _error(500, 10001, "storage write failed")

    with pytest.raises(RemoteAPIError) as exc_info:
        await _client(handler).put_kv_value("acc-1", "ns-1", "/", "x")
    assert exc_info.value.message == "storage write failed"


@pytest.mark.asyncio
async def test_delete_kv_value_404_is_not_found():
    def handler(request):
        return httpx.Response(404, text="key not found")

    with pytest.raises(RemoteAPIError) as exc_info:
        await _client(handler).delete_kv_value("acc-1", "ns-1", "/gone")
    assert exc_info.value.is_not_found is True


@pytest.mark.asyncio
async def test_upload_worker_sends_module_and_binding_metadata():
    seen = {}

    def handler(request):
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content
        seen["path"] = request.url.path
        return _ok({"id": "axp-site-1"})

    binding = KVNamespaceBinding(name="VARIANTS", namespace_id="ns-1")
    await _client(handler).upload_worker("acc-1", "axp-site-1", "export default {}", [binding])

    assert seen["path"].endswith("/accounts/acc-1/workers/scripts/axp-site-1")
    assert seen["content_type"].startswith("multipart/form-data")
    assert b'"main_module": "worker.js"' in seen["body"]
    assert b'"namespace_id": "ns-1"' in seen["body"]
    assert b'"compatibility_date": "2024-02-01"' in seen["body"]
    assert b"export default {}" in seen["body"]


@pytest.mark.asyncio
async def test_set_worker_secret_payload():
    def handler(request):
        assert request.method == "PUT"
        assert json.loads(request.content) == {"name": "SITE_ID", "text": "site-1", "type": "secret_text"}
        return _ok({"name": "SITE_ID", "type": "secret_text"})

    await _client(handler).set_worker_secret("acc-1", "axp-site-1", "SITE_ID", "site-1")


@pytest.mark.asyncio
async def test_add_worker_route():
    def handler(request):
        assert request.url.path.endswith("/zones/zone-1/workers/routes")
        assert json.loads(request.content) == {"pattern": "example.com/*", "script": "axp-site-1"}
        return _ok({"id": "route-7", "pattern": "example.com/*", "script": "axp-site-1"})

    route = await _client(handler).add_worker_route("zone-1", "example.com/*", "axp-site-1")
    assert route.id == "route-7"


def test_repr_hides_token():
    assert "tok-123" not in repr(PlatformAPIClient("tok-123", base_url=BASE))


@pytest.mark.asyncio
async def test_put_kv_value_quotes_non_ascii_key():
    seen = {}

    def handler(request):
        seen["raw_path"] = request.url.raw_path
        return _ok()

    await _client(handler).put_kv_value("acc-1", "ns-1", "/café", "<p>x</p>")

    assert seen["raw_path"].endswith(b"/values/%2Fcaf%C3%A9")
