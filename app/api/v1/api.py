from fastapi import APIRouter

from app.api.v1.endpoints import connections, deployments, variants

api_router = APIRouter()
api_router.include_router(connections.router, prefix="/cloudflare", tags=["cloudflare"])
api_router.include_router(deployments.router, prefix="/deployments", tags=["deployments"])
api_router.include_router(variants.router, prefix="/variants", tags=["variants"])
