"""
Client HTTP du mint Cashu de confiance (API v1, NUT-05 / NUT-02).
- create_melt_quote: POST /v1/melt/quote/bolt11
- get_melt_quote: GET /v1/melt/quote/bolt11/{id} (toujours réseau: source de vérité)
- lookup_melt_quote: lecture via cache jusqu'à l'expiry du devis (contrôle au checkout)
- get_keysets: GET /v1/keysets
Erreurs: transport -> MintUnreachable, non-2xx / JSON invalide -> MintHttpError.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from cashu_gateway.errors import MintHttpError, MintNotConfigured, MintUnreachable
from cashu_gateway.utils.cache import TTLCache

logger = logging.getLogger(__name__)

MINT_TIMEOUT_SECS = 12.0


class MeltQuote(BaseModel):
    model_config = ConfigDict(extra="ignore")

    quote: str = ""
    request: str = ""
    amount: int = 0
    fee_reserve: int = 0
    unit: str = "sat"
    state: str = "UNPAID"
    expiry: int = 0
    payment_preimage: Optional[str] = None

    @classmethod
    def from_mint(cls, data: Dict[str, Any]) -> "MeltQuote":
        # Anciens mints: "paid": bool au lieu de "state"
        payload = dict(data)
        if not payload.get("state") and "paid" in payload:
            payload["state"] = "PAID" if payload.get("paid") else "UNPAID"
        for key in ("amount", "fee_reserve", "expiry"):
            if payload.get(key) is None:
                payload.pop(key, None)
        return cls.model_validate(payload)


class MintClient:
    def __init__(self, mint_url: str, http: httpx.Client, clock: Optional[Callable[[], float]] = None,
                 timeout: float = MINT_TIMEOUT_SECS):
        self.mint_url = (mint_url or "").rstrip("/")
        self.http = http
        self._clock = clock or time.time
        self.timeout = timeout
        self._quotes = TTLCache(0, clock=self._clock)

    def _url(self, path: str) -> str:
        if not self.mint_url:
            raise MintNotConfigured("Mint de confiance non configuré")
        return f"{self.mint_url}{path}"

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Any:
        url = self._url(path)
        try:
            res = self.http.request(method, url, json=json, timeout=self.timeout)
        except httpx.HTTPError as e:
            logger.warning("mint %s %s injoignable: %s", method, url, e)
            raise MintUnreachable(f"Mint injoignable: {e}") from e
        if res.status_code < 200 or res.status_code >= 300:
            logger.warning("mint %s %s HTTP %s: %s", method, url, res.status_code, res.text[:500])
            raise MintHttpError(f"Le mint a répondu HTTP {res.status_code}", http_status=res.status_code, body=res.text)
        try:
            data = res.json()
        except ValueError as e:
            raise MintHttpError("Réponse JSON du mint invalide", http_status=res.status_code,
                                body=res.text, code="cashu_mint_json") from e
        logger.debug("mint %s %s -> %s", method, url, data)
        return data

    def create_melt_quote(self, bolt11: str, unit: str = "sat") -> MeltQuote:
        data = self._request("POST", "/v1/melt/quote/bolt11", json={"request": bolt11, "unit": unit})
        if not isinstance(data, dict):
            raise MintHttpError("Réponse du mint inattendue", code="cashu_mint_json")
        quote = MeltQuote.from_mint(data)
        if not quote.request:
            quote = quote.model_copy(update={"request": bolt11})
        self._remember(quote)
        return quote

    def get_melt_quote(self, quote_id: str) -> MeltQuote:
        data = self._request("GET", f"/v1/melt/quote/bolt11/{quote_id}")
        if not isinstance(data, dict):
            raise MintHttpError("Réponse du mint inattendue", code="cashu_mint_json")
        quote = MeltQuote.from_mint(data)
        if not quote.quote:
            quote = quote.model_copy(update={"quote": quote_id})
        self._remember(quote)
        return quote

    def lookup_melt_quote(self, quote_id: str) -> MeltQuote:
        cached = self._quotes.get(quote_id)
        if cached is not None:
            return cached
        return self.get_melt_quote(quote_id)

    def _remember(self, quote: MeltQuote) -> None:
        # Jamais conservé au-delà de son expiry; un devis PAID n'a plus besoin du cache
        if quote.quote and quote.state != "PAID":
            self._quotes.set(quote.quote, quote, ttl=quote.expiry - self._clock())

    def get_keysets(self) -> List[Dict[str, Any]]:
        data = self._request("GET", "/v1/keysets")
        keysets = data.get("keysets") if isinstance(data, dict) else None
        if not isinstance(keysets, list):
            raise MintHttpError("Liste de keysets invalide", code="cashu_mint_json")
        return [k for k in keysets if isinstance(k, dict)]
