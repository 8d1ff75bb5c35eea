"""
Variant API

Authoring writes go to the database first; each write then syncs the one
affected KV entry. ``synced: false`` means the edge copy is stale until the
next resync.
"""
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from app.api import deps
from app.core.exceptions import InvalidInput, NotFound
from app.models.customer import Customer
from app.schemas.variant import (
    VariantCreate,
    VariantInfo,
    VariantList,
    VariantUpdate,
    VariantWriteResponse,
)
from app.services.variant_service import VariantService

router = APIRouter()
logger = logging.getLogger("axp.api.variants")


@router.post("/", response_model=VariantWriteResponse)
async def create_variant(
    body: VariantCreate,
    service: VariantService = Depends(deps.get_variant_service),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    """Create the variant for a path, or replace it if the path already has one."""
    try:
        write = await service.create_or_update(
            current_customer.id, body.deployment_id, body.url_path, body.content
        )
    except InvalidInput as e:
        return JSONResponse(
            status_code=400,
            content=VariantWriteResponse(success=False, error=str(e)).model_dump(mode="json"),
        )
    except NotFound:
        return JSONResponse(
            status_code=404,
            content=VariantWriteResponse(success=False, error="Deployment not found").model_dump(mode="json"),
        )
    return VariantWriteResponse(
        success=True, variant_id=write.variant.id, created=write.created, synced=write.synced
    )


@router.get("/", response_model=VariantList)
def list_variants(
    deployment_id: UUID = Query(...),
    service: VariantService = Depends(deps.get_variant_service),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    variants = service.list_for_deployment(current_customer.id, deployment_id)
    return VariantList(variants=[VariantInfo.model_validate(v) for v in variants])


@router.put("/{variant_id}", response_model=VariantWriteResponse)
async def update_variant(
    variant_id: UUID,
    body: VariantUpdate,
    service: VariantService = Depends(deps.get_variant_service),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    try:
        write = await service.update(current_customer.id, variant_id, body.content)
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFound:
        raise HTTPException(status_code=404, detail="Variant not found")
    return VariantWriteResponse(success=True, variant_id=write.variant.id, created=False, synced=write.synced)


@router.delete("/{variant_id}")
async def delete_variant(
    variant_id: UUID,
    service: VariantService = Depends(deps.get_variant_service),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    try:
        removed_from_edge = await service.delete(current_customer.id, variant_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Variant not found")
    return {"success": True, "removed_from_edge": removed_from_edge}
