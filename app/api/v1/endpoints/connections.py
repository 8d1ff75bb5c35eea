"""
Cloudflare Connection API

  1. Connect an account with an API token (verified, then stored encrypted)
  2. List zones (domains) reachable with the stored token
  3. Disconnect
"""
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from app.api import deps
from app.core.exceptions import CryptoError, InvalidInput, NoConnection, RemoteAPIError, TransportError
from app.models.customer import Customer
from app.schemas.connection import ConnectRequest, ConnectResponse, ZoneInfo, ZoneList
from app.services.connection_service import ConnectionService

router = APIRouter()
logger = logging.getLogger("axp.api.connections")


@router.post("/connect", response_model=ConnectResponse)
async def connect(
    body: ConnectRequest,
    service: ConnectionService = Depends(deps.get_connection_service),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    """Verify and store a Cloudflare API token."""
    try:
        connection = await service.connect(current_customer.id, body.token)
    except InvalidInput as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ConnectResponse(success=False, error=str(e)).model_dump(),
        )
    except (RemoteAPIError, TransportError, CryptoError) as e:
        logger.error("Connect Cloudflare failed: %s", e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ConnectResponse(success=False, error="Failed to connect Cloudflare account").model_dump(),
        )
    return ConnectResponse(success=True, account_id=connection.account_id)


@router.get("/zones", response_model=ZoneList)
async def list_zones(
    service: ConnectionService = Depends(deps.get_connection_service),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    try:
        zones = await service.list_domains(current_customer.id)
    except NoConnection as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (RemoteAPIError, TransportError, CryptoError) as e:
        logger.error("List zones failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to list zones")
    return ZoneList(zones=[ZoneInfo(id=z.id, name=z.name, status=z.status) for z in zones])


@router.delete("/disconnect")
def disconnect(
    service: ConnectionService = Depends(deps.get_connection_service),
    current_customer: Customer = Depends(deps.get_current_customer),
) -> Any:
    service.disconnect(current_customer.id)
    return {"success": True}
