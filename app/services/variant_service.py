"""
Variant authoring

Writes the authoritative copy first, then pushes the single item to the
deployment's KV namespace through the orchestrator.
"""
import logging
from dataclasses import dataclass
from typing import List
from urllib.parse import unquote
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import InvalidInput, NotFound
from app.crud import crud_deployment, crud_variant
from app.models.deployment import Deployment, DEPLOYMENT_ACTIVE
from app.models.variant import Variant
from app.services.deployment_orchestrator import DeploymentOrchestrator

logger = logging.getLogger("axp.variants")


def normalize_url_path(path: str) -> str:
    """Store the decoded form; the worker decodes the request path the same way."""
    return unquote(path) if isinstance(path, str) else path


def is_valid_url_path(path: str) -> bool:
    if path == "/":
        return True
    return isinstance(path, str) and path.startswith("/") and len(path) > 1


@dataclass
class VariantWrite:
    variant: Variant
    created: bool
    synced: bool


class VariantService:
    def __init__(self, db: Session, orchestrator: DeploymentOrchestrator):
        self.db = db
        self.orchestrator = orchestrator

    async def create_or_update(
        self, customer_id: UUID, deployment_id: UUID, url_path: str, content: str
    ) -> VariantWrite:
        url_path = normalize_url_path(url_path)
        if not is_valid_url_path(url_path):
            raise InvalidInput("Invalid URL path format")
        if not content:
            raise InvalidInput("Missing required field: content")

        deployment = self._active_deployment(deployment_id, customer_id)
        variant, created = crud_variant.upsert(
            self.db, deployment=deployment, url_path=url_path, content=content
        )
        synced = await self.orchestrator.sync_variant(deployment, variant) == 1
        logger.info(
            "Variant %s %s on deployment %s (synced=%s)",
            url_path, "created" if created else "updated", deployment_id, synced,
        )
        return VariantWrite(variant=variant, created=created, synced=synced)

    async def update(self, customer_id: UUID, variant_id: UUID, content: str) -> VariantWrite:
        if not content:
            raise InvalidInput("Missing required field: content")

        variant = crud_variant.get_owned(self.db, variant_id, customer_id)
        if variant is None:
            raise NotFound("Variant", variant_id)
        variant = crud_variant.update_content(self.db, db_obj=variant, content=content)

        synced = False
        deployment = variant.deployment
        if deployment is not None and deployment.status == DEPLOYMENT_ACTIVE:
            synced = await self.orchestrator.sync_variant(deployment, variant) == 1
        return VariantWrite(variant=variant, created=False, synced=synced)

    async def delete(self, customer_id: UUID, variant_id: UUID) -> bool:
        """Delete the row; returns whether the KV entry was removed too."""
        variant = crud_variant.get_owned(self.db, variant_id, customer_id)
        if variant is None:
            raise NotFound("Variant", variant_id)

        deployment = variant.deployment
        url_path = variant.url_path
        crud_variant.delete(self.db, db_obj=variant)

        if deployment is None or deployment.status != DEPLOYMENT_ACTIVE:
            return False
        return await self.orchestrator.remove_variant(deployment, url_path)

    def list_for_deployment(self, customer_id: UUID, deployment_id: UUID) -> List[Variant]:
        return crud_variant.list_for_deployment(self.db, deployment_id, customer_id)

    def _active_deployment(self, deployment_id: UUID, customer_id: UUID) -> Deployment:
        deployment = crud_deployment.get_owned(self.db, deployment_id, customer_id, active_only=True)
        if deployment is None:
            raise NotFound("Deployment", deployment_id)
        return deployment
