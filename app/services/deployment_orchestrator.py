"""
Deployment Orchestrator

Provisions, resyncs and tears down a customer's edge deployment:

  provision  pending → kv_created → worker_uploaded → secrets_set
             → route_added → synced → active   (any step → failed)
  resync     push every active variant of a deployment into its KV namespace
  teardown   best-effort delete of route / worker / namespace, then mark
             the row deleted and its secrets inactive regardless

Provisioning is all-or-nothing from the database's point of view: the
Deployment row (and its secret digest) is written only after every remote
step has succeeded. Remote resources created before a failing step are
NOT rolled back; they are logged so an operator can clean them up.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence
from uuid import UUID

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from app.config import settings
from app.core.exceptions import CryptoError, InvalidInput, NoConnection, NotFound, PersistenceError
from app.crud import crud_connection, crud_deployment, crud_variant
from app.logging_config import customer_id_ctx, deployment_id_ctx
from app.models.connection import Connection
from app.models.deployment import Deployment
from app.models.variant import Variant
from app.schemas.platform import KVNamespaceBinding
from app.services import secret_issuer
from app.services.best_effort import CleanupReport, attempt_all
from app.services.credential_vault import CredentialVault
from app.services.platform_client import PlatformAPIClient
from app.services.worker_template import (
    KV_BINDING_NAME,
    SECRET_API_ENDPOINT,
    SECRET_CLIENT_API_KEY,
    SECRET_SITE_ID,
    SERVED_BY_HEADER,
    SERVED_BY_VALUE,
    get_client_worker_code,
    is_valid_site_id,
    kv_namespace_title_for,
    route_pattern_for,
    worker_name_for,
)

logger = logging.getLogger("axp.orchestrator")

HEALTH_PROBE_USER_AGENT = "GPTBot/1.0"

ClientFactory = Callable[[str], PlatformAPIClient]


# ═══════════════════════════════════════════
#  Provisioning state machine
# ═══════════════════════════════════════════

class ProvisioningState(str, Enum):
    PENDING = "pending"
    KV_CREATED = "kv_created"
    WORKER_UPLOADED = "worker_uploaded"
    SECRETS_SET = "secrets_set"
    ROUTE_ADDED = "route_added"
    SYNCED = "synced"
    ACTIVE = "active"
    FAILED = "failed"


PROVISIONING_SEQUENCE = (
    ProvisioningState.PENDING,
    ProvisioningState.KV_CREATED,
    ProvisioningState.WORKER_UPLOADED,
    ProvisioningState.SECRETS_SET,
    ProvisioningState.ROUTE_ADDED,
    ProvisioningState.SYNCED,
    ProvisioningState.ACTIVE,
)


@dataclass
class ProvisioningAttempt:
    """In-memory cursor for one provisioning call. Never persisted."""

    customer_id: UUID
    site_id: str
    domain_id: str
    domain_name: str
    state: ProvisioningState = ProvisioningState.PENDING
    account_id: Optional[str] = None
    kv_store_id: Optional[str] = None
    worker_name: Optional[str] = None
    route_id: Optional[str] = None
    route_pattern: Optional[str] = None
    variants_synced: int = 0
    variants_total: int = 0
    failed_at: Optional[ProvisioningState] = None
    error: Optional[str] = None

    def advance(self, new_state: ProvisioningState) -> None:
        current = PROVISIONING_SEQUENCE.index(self.state)
        if PROVISIONING_SEQUENCE[current + 1] != new_state:
            raise RuntimeError(f"Illegal provisioning transition {self.state.value} -> {new_state.value}")
        logger.info("Provisioning %s: %s -> %s", self.site_id, self.state.value, new_state.value)
        self.state = new_state

    def fail(self, exc: BaseException) -> None:
        self.failed_at = self.state
        self.error = str(exc)
        self.state = ProvisioningState.FAILED

    def created_resources(self) -> Dict[str, str]:
        """Remote resources that exist because of this attempt."""
        resources = {}
        if self.kv_store_id:
            resources["kv_namespace"] = self.kv_store_id
        if self.worker_name:
            resources["worker"] = self.worker_name
        if self.route_id:
            resources["route"] = self.route_id
        return resources


@dataclass
class ProvisionResult:
    deployment_id: UUID
    worker_name: str
    kv_store_id: str
    route_id: Optional[str]
    variants_synced: int = 0
    variants_total: int = 0


# ═══════════════════════════════════════════
#  Health probe
# ═══════════════════════════════════════════

class _NotServedByWorker(Exception):
    pass


# Strong references to in-flight probe tasks (the loop only keeps weak ones)
_PENDING_PROBES: "set[asyncio.Task]" = set()


async def check_worker_health(
    domain_name: str,
    *,
    attempts: Optional[int] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """
    Request the site as a known AI agent and look for the worker's marker
    header. Route propagation takes a few seconds, hence the retries.
    """
    attempts = attempts or settings.HEALTH_PROBE_ATTEMPTS
    timeout = timeout if timeout is not None else settings.HEALTH_PROBE_TIMEOUT

    async def _probe_once() -> None:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(
                f"https://{domain_name}/", headers={"User-Agent": HEALTH_PROBE_USER_AGENT}
            )
        if response.headers.get(SERVED_BY_HEADER) != SERVED_BY_VALUE:
            raise _NotServedByWorker(f"{SERVED_BY_HEADER}={response.headers.get(SERVED_BY_HEADER)!r}")

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=1, min=1, max=5),
            reraise=True,
        ):
            with attempt:
                await _probe_once()
    except (httpx.HTTPError, _NotServedByWorker) as e:
        logger.warning("Health check failed for %s: %s", domain_name, e)
        return False
    return True


async def drain_health_probes() -> None:
    """Wait for scheduled probes (shutdown hook / tests)."""
    if _PENDING_PROBES:
        await asyncio.gather(*list(_PENDING_PROBES), return_exceptions=True)


# ═══════════════════════════════════════════
#  Orchestrator
# ═══════════════════════════════════════════

class DeploymentOrchestrator:
    def __init__(
        self,
        db: Session,
        vault: CredentialVault,
        client_factory: ClientFactory = PlatformAPIClient,
        *,
        api_base_url: Optional[str] = None,
        sync_concurrency: Optional[int] = None,
        health_probe: Optional[bool] = None,
        probe_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.vault = vault
        self.client_factory = client_factory
        self.api_base_url = api_base_url or settings.API_BASE_URL
        self.sync_concurrency = max(1, sync_concurrency or settings.SYNC_CONCURRENCY)
        self.health_probe = settings.HEALTH_PROBE_ENABLED if health_probe is None else health_probe
        self.probe_transport = probe_transport

    # ── Provisioning ──

    async def provision(
        self, customer_id: UUID, domain_id: str, domain_name: str, site_id: str
    ) -> ProvisionResult:
        if not is_valid_site_id(site_id):
            raise InvalidInput("Invalid site_id format")
        customer_id_ctx.set(str(customer_id))
        attempt = ProvisioningAttempt(
            customer_id=customer_id, site_id=site_id, domain_id=domain_id, domain_name=domain_name
        )

        try:
            deployment = await self._run_provisioning(attempt)
        except Exception as e:
            attempt.fail(e)
            logger.error(
                "Provisioning %s failed at %s: %s (leaked remote resources: %s)",
                site_id, attempt.failed_at.value, e, attempt.created_resources() or "none",
            )
            raise

        deployment_id_ctx.set(str(deployment.id))
        logger.info(
            "Deployment %s active for %s (%d/%d variants synced)",
            deployment.id, domain_name, attempt.variants_synced, attempt.variants_total,
        )
        self._schedule_health_probe(domain_name, deployment.id)

        return ProvisionResult(
            deployment_id=deployment.id,
            worker_name=deployment.worker_name,
            kv_store_id=deployment.kv_store_id,
            route_id=deployment.route_id,
            variants_synced=attempt.variants_synced,
            variants_total=attempt.variants_total,
        )

    async def _run_provisioning(self, attempt: ProvisioningAttempt) -> Deployment:
        # 1-2. credential
        connection = self._active_connection(attempt.customer_id)
        client = self._client_for(connection)
        account_id = attempt.account_id = connection.account_id

        # 3. KV namespace
        namespace = await client.create_kv_namespace(account_id, kv_namespace_title_for(attempt.site_id))
        attempt.kv_store_id = namespace.id
        attempt.advance(ProvisioningState.KV_CREATED)

        # 4. worker bound to the namespace
        worker_name = worker_name_for(attempt.site_id)
        await client.upload_worker(
            account_id,
            worker_name,
            get_client_worker_code(),
            [KVNamespaceBinding(name=KV_BINDING_NAME, namespace_id=namespace.id)],
        )
        attempt.worker_name = worker_name
        attempt.advance(ProvisioningState.WORKER_UPLOADED)

        # 5. callback secret + worker secrets
        issued = secret_issuer.issue()
        worker_secrets = (
            (SECRET_CLIENT_API_KEY, issued.plaintext),
            (SECRET_SITE_ID, attempt.site_id),
            (SECRET_API_ENDPOINT, self.api_base_url),
        )
        for name, value in worker_secrets:
            await client.set_worker_secret(account_id, worker_name, name, value)
        attempt.advance(ProvisioningState.SECRETS_SET)

        # 6. route
        pattern = route_pattern_for(attempt.domain_name)
        route = await client.add_worker_route(attempt.domain_id, pattern, worker_name)
        attempt.route_id = route.id
        attempt.route_pattern = pattern
        attempt.advance(ProvisioningState.ROUTE_ADDED)

        # 7. content (partial failure tolerated)
        variants = crud_variant.list_active_for_customer(self.db, attempt.customer_id)
        attempt.variants_total = len(variants)
        attempt.variants_synced = await self._sync_variants(client, account_id, namespace.id, variants)
        attempt.advance(ProvisioningState.SYNCED)

        # 8. persist
        deployment = self._persist_deployment(attempt, issued.digest)
        attempt.advance(ProvisioningState.ACTIVE)
        return deployment

    def _persist_deployment(self, attempt: ProvisioningAttempt, secret_digest: str) -> Deployment:
        deployment = crud_deployment.build_active(
            customer_id=attempt.customer_id,
            site_id=attempt.site_id,
            domain_id=attempt.domain_id,
            domain_name=attempt.domain_name,
            worker_name=attempt.worker_name,
            kv_store_id=attempt.kv_store_id,
            route_pattern=attempt.route_pattern,
            route_id=attempt.route_id,
        )
        try:
            self.db.add(deployment)
            self.db.flush()
            secret_issuer.store_digest(self.db, deployment=deployment, digest=secret_digest)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Could not save deployment: {type(e).__name__}") from e
        self.db.refresh(deployment)
        return deployment

    # ── Content sync ──

    async def resync(self, deployment_id: UUID, customer_id: UUID) -> int:
        """Push every active variant of the deployment; returns how many landed."""
        customer_id_ctx.set(str(customer_id))
        deployment_id_ctx.set(str(deployment_id))

        deployment = crud_deployment.get_owned(self.db, deployment_id, customer_id, active_only=True)
        if deployment is None:
            raise NotFound("Deployment", deployment_id)

        connection = self._active_connection(customer_id)
        client = self._client_for(connection)

        variants = crud_variant.list_active_for_customer(self.db, customer_id, deployment_id=deployment.id)
        count = await self._sync_variants(client, connection.account_id, deployment.kv_store_id, variants)
        crud_deployment.touch(self.db, deployment)

        logger.info("Resynced deployment %s: %d/%d variants written", deployment_id, count, len(variants))
        return count

    async def sync_variant(self, deployment: Deployment, variant: Variant) -> int:
        """
        Single-item sync after a variant write. The database copy is already
        committed, so nothing here raises: failures are logged and a later
        resync repairs the cache.
        """
        try:
            connection = self._active_connection(deployment.customer_id)
            client = self._client_for(connection)
        except (NoConnection, CryptoError) as e:
            logger.error("Variant %s not synced: %s", variant.url_path, e)
            return 0
        return await self._sync_variants(client, connection.account_id, deployment.kv_store_id, [variant])

    async def remove_variant(self, deployment: Deployment, url_path: str) -> bool:
        """Best-effort removal of one KV entry."""
        try:
            connection = self._active_connection(deployment.customer_id)
            client = self._client_for(connection)
        except (NoConnection, CryptoError) as e:
            logger.error("Variant %s not removed from KV: %s", url_path, e)
            return False
        report = await attempt_all([
            (f"kv:{url_path}", lambda: client.delete_kv_value(connection.account_id, deployment.kv_store_id, url_path)),
        ])
        return report.ok

    async def _sync_variants(
        self,
        client: PlatformAPIClient,
        account_id: str,
        namespace_id: str,
        variants: Sequence[Variant],
    ) -> int:
        """Write each variant under its URL path; per-item failures are isolated."""
        if not variants:
            return 0

        items = [(v.url_path, v.content) for v in variants]
        semaphore = asyncio.Semaphore(self.sync_concurrency)

        async def _put(url_path: str, content: str) -> bool:
            async with semaphore:
                try:
                    await client.put_kv_value(account_id, namespace_id, url_path, content)
                except Exception as e:
                    logger.error("Failed to upload variant %s: %s", url_path, e)
                    return False
                return True

        results: List[bool] = await asyncio.gather(*(_put(path, content) for path, content in items))
        written = sum(1 for ok in results if ok)
        if written < len(items):
            logger.warning("Content sync wrote %d of %d variants", written, len(items))
        return written

    # ── Teardown ──

    async def teardown(self, deployment_id: UUID, customer_id: UUID) -> CleanupReport:
        """
        Delete route, worker and namespace independently, then mark the row
        deleted and its secrets inactive no matter how the remote side went.
        Safe to call again on an already-deleted deployment.
        """
        customer_id_ctx.set(str(customer_id))
        deployment_id_ctx.set(str(deployment_id))

        deployment = crud_deployment.get_owned(self.db, deployment_id, customer_id)
        if deployment is None:
            raise NotFound("Deployment", deployment_id)

        report = CleanupReport()
        client = None
        connection = crud_connection.get_by_customer(self.db, customer_id)
        if connection is None:
            logger.error("Teardown %s: no connection on file, remote cleanup skipped", deployment_id)
        else:
            try:
                client = self._client_for(connection)
            except CryptoError as e:
                logger.error("Teardown %s: credential unusable (%s), remote cleanup skipped", deployment_id, e)

        if client is None:
            report.skipped.extend(["route", "worker", "kv_namespace"])
        else:
            await attempt_all(
                self._teardown_actions(client, connection.account_id, deployment), report=report
            )

        crud_deployment.mark_deleted(self.db, deployment)
        secret_issuer.deactivate_for_deployment(self.db, deployment.id)
        self.db.commit()

        if report.ok:
            logger.info("Deployment %s deleted: %s", deployment_id, report.as_dict())
        else:
            logger.warning("Deployment %s deleted with remote leftovers: %s", deployment_id, report.as_dict())
        return report

    @staticmethod
    def _teardown_actions(client: PlatformAPIClient, account_id: str, deployment: Deployment):
        domain_id = deployment.domain_id
        route_id = deployment.route_id
        worker_name = deployment.worker_name
        kv_store_id = deployment.kv_store_id

        return [
            ("route", lambda: client.delete_worker_route(domain_id, route_id)) if route_id else None,
            ("worker", lambda: client.delete_worker(account_id, worker_name)),
            ("kv_namespace", lambda: client.delete_kv_namespace(account_id, kv_store_id)),
        ]

    # ── Helpers ──

    def _active_connection(self, customer_id: UUID) -> Connection:
        connection = crud_connection.get_active(self.db, customer_id)
        if connection is None:
            raise NoConnection(customer_id)
        return connection

    def _client_for(self, connection: Connection) -> PlatformAPIClient:
        token = self.vault.decrypt(connection.credential_encrypted)
        return self.client_factory(token)

    def _schedule_health_probe(self, domain_name: str, deployment_id: UUID) -> None:
        if not self.health_probe:
            return
        task = asyncio.get_running_loop().create_task(self._run_health_probe(domain_name, deployment_id))
        _PENDING_PROBES.add(task)
        task.add_done_callback(_PENDING_PROBES.discard)

    async def _run_health_probe(self, domain_name: str, deployment_id: UUID) -> None:
        try:
            healthy = await check_worker_health(domain_name, transport=self.probe_transport)
        except Exception as e:
            logger.warning("Health probe for deployment %s errored: %s", deployment_id, e)
            return
        logger.info("Deployment %s health check: %s", deployment_id, "PASS" if healthy else "FAIL")
