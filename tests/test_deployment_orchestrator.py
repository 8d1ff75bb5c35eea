"""Provisioning, content sync and teardown against a fake platform."""
import uuid

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from app.core.exceptions import (
    CryptoError,
    InvalidInput,
    NoConnection,
    NotFound,
    PersistenceError,
    RemoteAPIError,
    TransportError,
)
from app.crud import crud_connection
from app.models.deployment import Deployment, DEPLOYMENT_ACTIVE, DEPLOYMENT_DELETED
from app.models.deployment_secret import DeploymentSecret, SECRET_ACTIVE, SECRET_INACTIVE
from app.services import secret_issuer
from app.services.deployment_orchestrator import (
    ProvisioningAttempt,
    ProvisioningState,
    check_worker_health,
)


# ── Provisioning ──

@pytest.mark.asyncio
async def test_provision_happy_path(db, customer, connection, orchestrator, platform):
    result = await orchestrator.provision(customer.id, "zone-1", "example.com", "site-1")

    assert platform.token.startswith("cf_test_token_")
    assert platform.methods() == [
        "create_kv_namespace",
        "upload_worker",
        "set_worker_secret",
        "set_worker_secret",
        "set_worker_secret",
        "add_worker_route",
    ]
    assert platform.calls[0] == ("create_kv_namespace", connection.account_id, "axp-variants-site-1")
    assert platform.calls[-1] == ("add_worker_route", "zone-1", "example.com/*", "axp-site-1")
    assert platform.bindings[0].name == "VARIANTS"
    assert platform.bindings[0].namespace_id == "kv-1"

    deployment = db.query(Deployment).one()
    assert deployment.id == result.deployment_id
    assert deployment.status == DEPLOYMENT_ACTIVE
    assert deployment.worker_name == "axp-site-1"
    assert deployment.kv_store_id == "kv-1"
    assert deployment.route_id == "route-1"
    assert deployment.route_pattern == "example.com/*"


@pytest.mark.asyncio
async def test_provision_sets_worker_secrets_and_stores_only_digest(db, customer, connection, orchestrator, platform):
    result = await orchestrator.provision(customer.id, "zone-1", "example.com", "site-1")

    assert set(platform.secrets) == {"CLIENT_API_KEY", "SITE_ID", "API_ENDPOINT"}
    assert platform.secrets["SITE_ID"] == "site-1"
    assert platform.secrets["API_ENDPOINT"] == "https://api.axp.test"

    plaintext = platform.secrets["CLIENT_API_KEY"]
    record = db.query(DeploymentSecret).one()
    assert record.deployment_id == result.deployment_id
    assert record.status == SECRET_ACTIVE
    assert record.secret_digest != plaintext
    assert secret_issuer.verify(plaintext, record.secret_digest)


@pytest.mark.asyncio
async def test_provision_without_connection(db, customer, orchestrator, platform):
    with pytest.raises(NoConnection):
        await orchestrator.provision(customer.id, "zone-1", "example.com", "site-1")

    assert platform.calls == []
    assert db.query(Deployment).count() == 0


@pytest.mark.asyncio
async def test_provision_with_disconnected_connection(db, customer, connection, orchestrator, platform):
    crud_connection.mark_disconnected(db, customer.id)

    with pytest.raises(NoConnection):
        await orchestrator.provision(customer.id, "zone-1", "example.com", "site-1")
    assert platform.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "failing_method",
    ["create_kv_namespace", "upload_worker", "set_worker_secret", "add_worker_route"],
)
async def test_provision_failure_persists_nothing(db, customer, connection, orchestrator, platform, failing_method):
    platform.failures[failing_method] = RemoteAPIError(10000, "boom", 400)

    with pytest.raises(RemoteAPIError):
        await orchestrator.provision(customer.id, "zone-1", "example.com", "site-1")

    assert platform.methods()[-1] == failing_method
    assert db.query(Deployment).count() == 0
    assert db.query(DeploymentSecret).count() == 0


@pytest.mark.asyncio
async def test_provision_transport_failure_persists_nothing(db, customer, connection, orchestrator, platform):
    platform.failures["upload_worker"] = TransportError("network down")

    with pytest.raises(TransportError):
        await orchestrator.provision(customer.id, "zone-1", "example.com", "site-1")
    assert db.query(Deployment).count() == 0


@pytest.mark.asyncio
async def test_provision_tolerates_partial_content_sync(
    db, customer, connection, orchestrator, platform, make_deployment, make_variants
):
    previous = make_deployment(customer, site_id="old-site")
    make_variants(previous, ["/a", "/b", "/c"])
    platform.failing_keys.add("/b")

    result = await orchestrator.provision(customer.id, "zone-1", "example.com", "site-1")

    assert result.variants_total == 3
    assert result.variants_synced == 2
    assert set(platform.kv) == {"/a", "/c"}
    deployment = db.query(Deployment).filter(Deployment.id == result.deployment_id).one()
    assert deployment.status == DEPLOYMENT_ACTIVE


@pytest.mark.asyncio
async def test_provision_with_undecryptable_credential(db, customer, connection, orchestrator, platform):
    connection.credential_encrypted = "AAAA" * 10
    db.commit()

    with pytest.raises(CryptoError):
        await orchestrator.provision(customer.id, "zone-1", "example.com", "site-1")
    assert platform.calls == []
    assert db.query(Deployment).count() == 0


def test_provisioning_attempt_transitions():
    attempt = ProvisioningAttempt(customer_id=uuid.uuid4(), site_id="s", domain_id="z", domain_name="d")
    attempt.advance(ProvisioningState.KV_CREATED)
    with pytest.raises(RuntimeError):
        attempt.advance(ProvisioningState.ROUTE_ADDED)

    attempt.kv_store_id = "kv-1"
    attempt.fail(ValueError("x"))
    assert attempt.state == ProvisioningState.FAILED
    assert attempt.failed_at == ProvisioningState.KV_CREATED
    assert attempt.created_resources() == {"kv_namespace": "kv-1"}


# ── Content sync ──

@pytest.mark.asyncio
async def test_resync_counts_successful_writes(db, customer, connection, orchestrator, platform, make_deployment, make_variants):
    deployment = make_deployment(customer)
    make_variants(deployment, ["/a", "/b", "/c"])
    platform.failing_keys.add("/c")

    count = await orchestrator.resync(deployment.id, customer.id)

    assert count == 2
    puts = [c for c in platform.calls if c[0] == "put_kv_value"]
    assert {c[3] for c in puts} == {"/a", "/b", "/c"}
    assert all(c[2] == deployment.kv_store_id for c in puts)


@pytest.mark.asyncio
async def test_resync_only_touches_that_deployment(db, customer, connection, orchestrator, platform, make_deployment, make_variants):
    first = make_deployment(customer, site_id="one")
    second = make_deployment(customer, site_id="two")
    make_variants(first, ["/first"])
    make_variants(second, ["/second"])

    assert await orchestrator.resync(first.id, customer.id) == 1
    assert set(platform.kv) == {"/first"}


@pytest.mark.asyncio
async def test_resync_with_no_variants(db, customer, connection, orchestrator, platform, make_deployment):
    deployment = make_deployment(customer)
    assert await orchestrator.resync(deployment.id, customer.id) == 0
    assert platform.methods() == []


@pytest.mark.asyncio
async def test_resync_other_customers_deployment(db, customer, connection, orchestrator, make_deployment):
    from app.crud import crud_customer

    stranger = crud_customer.create(db, email="stranger@example.com")
    deployment = make_deployment(stranger)

    with pytest.raises(NotFound):
        await orchestrator.resync(deployment.id, customer.id)


@pytest.mark.asyncio
async def test_resync_deleted_deployment(db, customer, connection, orchestrator, make_deployment):
    deployment = make_deployment(customer)
    await orchestrator.teardown(deployment.id, customer.id)

    with pytest.raises(NotFound):
        await orchestrator.resync(deployment.id, customer.id)


@pytest.mark.asyncio
async def test_resync_requires_active_connection(db, customer, connection, orchestrator, make_deployment):
    deployment = make_deployment(customer)
    crud_connection.mark_disconnected(db, customer.id)

    with pytest.raises(NoConnection):
        await orchestrator.resync(deployment.id, customer.id)


@pytest.mark.asyncio
async def test_sync_variant_without_connection_returns_zero(db, customer, orchestrator, platform, make_deployment, make_variants):
    deployment = make_deployment(customer)
    variant = make_variants(deployment, ["/a"])[0]

    assert await orchestrator.sync_variant(deployment, variant) == 0
    assert platform.calls == []


# ── Teardown ──

@pytest.mark.asyncio
async def test_teardown_deletes_route_worker_namespace(db, customer, connection, orchestrator, platform, make_deployment):
    deployment = make_deployment(customer)

    report = await orchestrator.teardown(deployment.id, customer.id)

    assert platform.calls == [
        ("delete_worker_route", "zone-1", "route-1"),
        ("delete_worker", connection.account_id, "axp-site-1"),
        ("delete_kv_namespace", connection.account_id, "kv-site-1"),
    ]
    assert report.ok
    assert report.succeeded == ["route", "worker", "kv_namespace"]
    db.refresh(deployment)
    assert deployment.status == DEPLOYMENT_DELETED
    assert {s.status for s in db.query(DeploymentSecret).all()} == {SECRET_INACTIVE}


@pytest.mark.asyncio
async def test_teardown_skips_route_when_none_recorded(db, customer, connection, orchestrator, platform, make_deployment):
    deployment = make_deployment(customer, route_id=None)

    await orchestrator.teardown(deployment.id, customer.id)

    assert platform.methods() == ["delete_worker", "delete_kv_namespace"]


@pytest.mark.asyncio
async def test_teardown_completes_when_every_remote_delete_fails(db, customer, connection, orchestrator, platform, make_deployment):
    deployment = make_deployment(customer)
    platform.failures["delete_worker_route"] = RemoteAPIError(10000, "denied", 403)
    platform.failures["delete_worker"] = TransportError("network down")
    platform.failures["delete_kv_namespace"] = RemoteAPIError(10000, "denied", 403)

    report = await orchestrator.teardown(deployment.id, customer.id)

    assert set(report.failed) == {"route", "worker", "kv_namespace"}
    assert platform.methods() == ["delete_worker_route", "delete_worker", "delete_kv_namespace"]
    db.refresh(deployment)
    assert deployment.status == DEPLOYMENT_DELETED
    assert {s.status for s in db.query(DeploymentSecret).all()} == {SECRET_INACTIVE}


@pytest.mark.asyncio
async def test_teardown_twice_treats_missing_resources_as_gone(db, customer, connection, orchestrator, platform, make_deployment):
    deployment = make_deployment(customer)
    await orchestrator.teardown(deployment.id, customer.id)

    for method in ("delete_worker_route", "delete_worker", "delete_kv_namespace"):
        platform.failures[method] = RemoteAPIError(10007, "not found", 404)
    report = await orchestrator.teardown(deployment.id, customer.id)

    assert report.ok
    assert report.already_gone == ["route", "worker", "kv_namespace"]
    db.refresh(deployment)
    assert deployment.status == DEPLOYMENT_DELETED


@pytest.mark.asyncio
async def test_teardown_without_connection_still_marks_deleted(db, customer, orchestrator, platform, make_deployment):
    deployment = make_deployment(customer)

    report = await orchestrator.teardown(deployment.id, customer.id)

    assert platform.calls == []
    assert report.skipped == ["route", "worker", "kv_namespace"]
    db.refresh(deployment)
    assert deployment.status == DEPLOYMENT_DELETED


@pytest.mark.asyncio
async def test_teardown_uses_disconnected_credential(db, customer, connection, orchestrator, platform, make_deployment):
    deployment = make_deployment(customer)
    crud_connection.mark_disconnected(db, customer.id)

    report = await orchestrator.teardown(deployment.id, customer.id)

    assert report.succeeded == ["route", "worker", "kv_namespace"]


@pytest.mark.asyncio
async def test_teardown_other_customers_deployment(db, customer, connection, orchestrator, platform, make_deployment):
    from app.crud import crud_customer

    stranger = crud_customer.create(db, email="stranger@example.com")
    deployment = make_deployment(stranger)

    with pytest.raises(NotFound):
        await orchestrator.teardown(deployment.id, customer.id)
    assert platform.calls == []
    db.refresh(deployment)
    assert deployment.status == DEPLOYMENT_ACTIVE


# ── Health probe ──

@pytest.mark.asyncio
async def test_health_check_passes_on_marker_header():
    def handler(request):
        assert request.headers["user-agent"] == "GPTBot/1.0"
        assert str(request.url) == "https://example.com/"
        return httpx.Response(200, headers={"x-served-by": "AXP"}, text="ok")

    assert await check_worker_health("example.com", attempts=1, transport=httpx.MockTransport(handler)) is True


@pytest.mark.asyncio
async def test_health_check_fails_without_marker_header():
    def handler(request):
        return httpx.Response(200, text="origin page")

    assert await check_worker_health("example.com", attempts=1, transport=httpx.MockTransport(handler)) is False


@pytest.mark.asyncio
async def test_health_check_fails_on_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    assert await check_worker_health("example.com", attempts=1, transport=httpx.MockTransport(handler)) is False


# ── Step 8 and input guards ──

@pytest.mark.asyncio
async def test_database_failure_at_persist_step(db, customer, connection, orchestrator, platform, monkeypatch):
    def _db_down(*args, **kwargs):
        raise OperationalError("INSERT INTO deployment_secrets", {}, Exception("db down"))

    monkeypatch.setattr(secret_issuer, "store_digest", _db_down)

    with pytest.raises(PersistenceError):
        await orchestrator.provision(customer.id, "zone-1", "example.com", "site-1")

    assert "add_worker_route" in platform.methods()
    assert db.query(Deployment).count() == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("site_id", ["s" * 60, "Site-1", "site 1", "-site", ""])
async def test_invalid_site_id_rejected_before_remote_calls(db, customer, connection, orchestrator, platform, site_id):
    with pytest.raises(InvalidInput):
        await orchestrator.provision(customer.id, "zone-1", "example.com", site_id)
    assert platform.calls == []
