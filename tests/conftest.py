"""Pytest configuration and fixtures: in-memory database, vault, fake platform."""
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.exceptions import RemoteAPIError
from app.db.base_class import Base
from app.db.session import enable_sqlite_foreign_keys
from app.schemas.platform import Account, KVNamespace, WorkerRoute, Zone

# --- Constants ---
CF_TOKEN = "cf_test_token_" + "x" * 40
ACCOUNT_ID = "acc-123"
OWNER_EMAIL = "owner@example.com"


# --- Fake platform ---

class FakePlatformClient:
    """
    Records every call as ``(method, *args)``.

    ``failures[method]`` makes that method raise; ``failing_keys`` makes
    individual KV writes fail.
    """

    def __init__(self):
        self.token = None
        self.calls = []
        self.failures = {}
        self.failing_keys = set()
        self.kv = {}
        self.secrets = {}
        self.accounts = [Account(id=ACCOUNT_ID, name="Acme")]
        self.zones = [Zone(id="zone-1", name="example.com", status="active")]

    def _record(self, method, *args):
        self.calls.append((method,) + args)
        exc = self.failures.get(method)
        if exc is not None:
            raise exc

    def methods(self):
        return [c[0] for c in self.calls]

    async def verify_token(self):
        self._record("verify_token")

    async def list_accounts(self):
        self._record("list_accounts")
        return list(self.accounts)

    async def list_zones(self):
        self._record("list_zones")
        return list(self.zones)

    async def create_kv_namespace(self, account_id, title):
        self._record("create_kv_namespace", account_id, title)
        return KVNamespace(id="kv-1", title=title)

    async def delete_kv_namespace(self, account_id, namespace_id):
        self._record("delete_kv_namespace", account_id, namespace_id)

    async def put_kv_value(self, account_id, namespace_id, key, value):
        self._record("put_kv_value", account_id, namespace_id, key)
        if key in self.failing_keys:
            raise RemoteAPIError(10001, f"write failed for {key}", 500)
        self.kv[key] = value

    async def delete_kv_value(self, account_id, namespace_id, key):
        self._record("delete_kv_value", account_id, namespace_id, key)
        self.kv.pop(key, None)

    async def upload_worker(self, account_id, worker_name, script, bindings):
        self._record("upload_worker", account_id, worker_name)
        self.bindings = bindings

    async def set_worker_secret(self, account_id, worker_name, name, text):
        self._record("set_worker_secret", account_id, worker_name, name)
        self.secrets[name] = text

    async def delete_worker(self, account_id, worker_name):
        self._record("delete_worker", account_id, worker_name)

    async def add_worker_route(self, zone_id, pattern, script):
        self._record("add_worker_route", zone_id, pattern, script)
        return WorkerRoute(id="route-1", pattern=pattern, script=script)

    async def delete_worker_route(self, zone_id, route_id):
        self._record("delete_worker_route", zone_id, route_id)


# --- Database ---

@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test, FK cascades enabled."""
    import app.models  # noqa: F401

    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db(engine):
    TestSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


# --- Domain fixtures ---

@pytest.fixture
def vault():
    from app.services.credential_vault import CredentialVault, generate_key

    return CredentialVault(generate_key())


@pytest.fixture
def platform():
    return FakePlatformClient()


@pytest.fixture
def client_factory(platform):
    def _factory(token):
        platform.token = token
        return platform

    return _factory


@pytest.fixture
def customer(db):
    from app.crud import crud_customer

    return crud_customer.create(db, email=OWNER_EMAIL, name="Owner")


@pytest.fixture
def connection(db, vault, customer):
    from app.crud import crud_connection

    return crud_connection.upsert(
        db,
        customer_id=customer.id,
        account_id=ACCOUNT_ID,
        credential_encrypted=vault.encrypt(CF_TOKEN),
    )


@pytest.fixture
def orchestrator(db, vault, client_factory):
    from app.services.deployment_orchestrator import DeploymentOrchestrator

    return DeploymentOrchestrator(
        db, vault, client_factory, api_base_url="https://api.axp.test", health_probe=False
    )


@pytest.fixture
def make_deployment(db):
    """Insert an active deployment row directly (no remote calls)."""
    from app.crud import crud_deployment
    from app.services import secret_issuer

    def _make(customer, site_id="site-1", domain_name="example.com", route_id="route-1"):
        deployment = crud_deployment.build_active(
            customer_id=customer.id,
            site_id=site_id,
            domain_id="zone-1",
            domain_name=domain_name,
            worker_name=f"axp-{site_id}",
            kv_store_id=f"kv-{site_id}",
            route_pattern=f"{domain_name}/*",
            route_id=route_id,
        )
        db.add(deployment)
        db.flush()
        secret_issuer.store_digest(db, deployment=deployment, digest=secret_issuer.issue().digest)
        db.commit()
        db.refresh(deployment)
        return deployment

    return _make


@pytest.fixture
def make_variants(db):
    from app.crud import crud_variant

    def _make(deployment, paths):
        return [
            crud_variant.upsert(db, deployment=deployment, url_path=path, content=f"<html>{path}</html>")[0]
            for path in paths
        ]

    return _make


# --- HTTP ---

@pytest.fixture
async def api_client(db, vault, client_factory):
    """
    Async HTTP client against the app with DB, vault and platform overridden.
    """
    from app.main import app as fastapi_app
    from app.api import deps
    from app.services.connection_service import ConnectionService
    from app.services.deployment_orchestrator import DeploymentOrchestrator

    def _override_get_db():
        yield db

    def _override_orchestrator():
        return DeploymentOrchestrator(db, vault, client_factory, health_probe=False)

    fastapi_app.dependency_overrides[deps.get_db] = _override_get_db
    fastapi_app.dependency_overrides[deps.get_vault] = lambda: vault
    fastapi_app.dependency_overrides[deps.get_orchestrator] = _override_orchestrator
    fastapi_app.dependency_overrides[deps.get_connection_service] = lambda: ConnectionService(
        db, vault, client_factory
    )

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(customer):
    from app.core.security import create_access_token

    return {"Authorization": f"Bearer {create_access_token(customer.id)}"}
