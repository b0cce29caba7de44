"""
Gestionnaires d'exceptions de l'application.
- GatewayError (taxonomie métier): JSON {"ok": false, "code", "message"} avec son statut HTTP
- HTTPException: JSON {"ok": false, "detail"} pour les clients programmatiques
"""
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from cashu_gateway.errors import GatewayError

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        if exc.status_code >= 500:
            logger.warning("%s %s -> %s [%s] %s", request.method, request.url.path, exc.status_code, exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "detail": exc.detail},
                            headers=getattr(exc, "headers", None))
