from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from cashu_gateway.app_setup.dependencies import get_mint_client
from cashu_gateway.health.service import health_mint_info
from cashu_gateway.mint.client import MintClient
from cashu_gateway.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/api/v1/cashu/health", tags=["Health"])

@router.get("")
def health_root(request: Request):
    return {"ok": True, "rate_limit": rate_limit_health_info(request)}

@router.get("/mint")
def health_mint(mint: MintClient = Depends(get_mint_client)):
    info = health_mint_info(mint)
    return JSONResponse(info, status_code=200 if info["reachable"] else 503)
