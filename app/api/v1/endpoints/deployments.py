"""
Deployment API

Create (provision), list, delete (teardown) and resync deployments.
Provisioning failures surface as a generic 500; details stay in the logs.
"""
import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api import deps
from app.core.exceptions import EdgeDeploymentError, InvalidInput, NoConnection, NotFound
from app.crud import crud_deployment
from app.models.customer import Customer
from app.schemas.deployment import (
    DeploymentCreate,
    DeploymentCreateResponse,
    DeploymentInfo,
    DeploymentList,
    ResyncResponse,
    TeardownResponse,
)
from app.services.deployment_orchestrator import DeploymentOrchestrator

router = APIRouter()
logger = logging.getLogger("axp.api.deployments")


def _failure(message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=DeploymentCreateResponse(success=False, error=message).model_dump(mode="json"),
    )


@router.post("/", response_model=DeploymentCreateResponse)
async def create_deployment(
    body: DeploymentCreate,
    orchestrator: DeploymentOrchestrator = Depends(deps.get_orchestrator),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    """Provision worker + KV namespace + route on the chosen zone."""
    if not body.domain_id.strip() or not body.domain_name.strip() or not body.site_id.strip():
        return _failure("Missing required fields: domain_id, domain_name, site_id", status.HTTP_400_BAD_REQUEST)

    try:
        result = await orchestrator.provision(
            current_customer.id, body.domain_id.strip(), body.domain_name.strip(), body.site_id.strip()
        )
    except InvalidInput as e:
        return _failure(str(e), status.HTTP_400_BAD_REQUEST)
    except NoConnection as e:
        return _failure(str(e), status.HTTP_404_NOT_FOUND)
    except EdgeDeploymentError:
        # already logged with the failing step and leaked resources
        return _failure("Failed to create deployment")

    return DeploymentCreateResponse(
        success=True,
        deployment_id=result.deployment_id,
        worker_name=result.worker_name,
        kv_store_id=result.kv_store_id,
        variants_uploaded=result.variants_synced,
    )


@router.get("/", response_model=DeploymentList)
def list_deployments(
    db: Session = Depends(deps.get_db),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    deployments = crud_deployment.list_for_customer(db, current_customer.id)
    return DeploymentList(deployments=[DeploymentInfo.model_validate(d) for d in deployments])


@router.delete("/{deployment_id}", response_model=TeardownResponse)
async def delete_deployment(
    deployment_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(deps.get_orchestrator),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    try:
        report = await orchestrator.teardown(deployment_id, current_customer.id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Deployment not found")
    return TeardownResponse(success=True, remote_cleanup=report.as_dict())


@router.put("/{deployment_id}/variants", response_model=ResyncResponse)
async def resync_variants(
    deployment_id: UUID,
    orchestrator: DeploymentOrchestrator = Depends(deps.get_orchestrator),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    """Push every active variant of the deployment into its KV namespace."""
    try:
        count = await orchestrator.resync(deployment_id, current_customer.id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Deployment not found")
    except NoConnection as e:
        raise HTTPException(status_code=404, detail=str(e))
    except EdgeDeploymentError as e:
        logger.error("Update variants failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to update variants")
    return ResyncResponse(success=True, variants_updated=count)
