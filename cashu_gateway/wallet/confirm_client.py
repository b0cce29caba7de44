import logging
from typing import List, Optional

import httpx

from cashu_gateway.errors import ConfirmFailed, GatewayError
from cashu_gateway.settlement.models import ConfirmResult

logger = logging.getLogger(__name__)

CONFIRM_PATH = "/api/v1/cashu/confirm-melt-quote"
CONFIRM_TIMEOUT_SECS = 15.0


class ConfirmClient:
    """Appel de confirmation vers la passerelle (POST /api/v1/cashu/confirm-melt-quote)."""

    def __init__(self, base_url: str, http: Optional[httpx.AsyncClient] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.http = http or httpx.AsyncClient(timeout=CONFIRM_TIMEOUT_SECS)

    async def confirm(self, order_id: int, order_key: str, change_tokens: List[str]) -> ConfirmResult:
        payload = {"order_id": order_id, "order_key": order_key, "change_tokens": list(change_tokens)}
        try:
            res = await self.http.post(f"{self.base_url}{CONFIRM_PATH}", json=payload, timeout=CONFIRM_TIMEOUT_SECS)
        except httpx.HTTPError as e:
            raise ConfirmFailed(f"Passerelle injoignable: {e}") from e
        try:
            data = res.json()
        except ValueError as e:
            raise ConfirmFailed(f"Réponse de confirmation invalide (HTTP {res.status_code})") from e
        if res.status_code >= 400:
            body = data if isinstance(data, dict) else {}
            raise GatewayError(
                body.get("message") or str(body.get("detail") or f"HTTP {res.status_code}"),
                code=body.get("code") or "cashu_confirm_failed",
                status_code=res.status_code,
            )
        logger.debug("confirm order=%s -> %s", order_id, data)
        return ConfirmResult.model_validate(data)

    async def aclose(self) -> None:
        await self.http.aclose()
