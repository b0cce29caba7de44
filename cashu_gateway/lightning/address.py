# module cashu_gateway.lightning.address
import logging
from typing import Any, Dict, Optional

import httpx

from cashu_gateway.errors import InvalidAddress, InvoiceResolutionFailed

logger = logging.getLogger(__name__)

BOLT11_PREFIXES = ("lnbc", "lntb", "lntbs", "lnbcrt", "lnsb")
LNURL_TIMEOUT_SECS = 15.0


def is_bolt11(value: str) -> bool:
    return (value or "").strip().lower().startswith(BOLT11_PREFIXES)


def split_address(destination: str):
    name, sep, host = (destination or "").partition("@")
    name, host = name.strip(), host.strip()
    if not sep or not name or not host:
        raise InvalidAddress(f"Adresse Lightning invalide: {destination!r}")
    return name, host


def _meta_int(meta: Dict[str, Any], key: str) -> int:
    value = meta.get(key)
    try:
        return int(value or 0)
    except (TypeError, ValueError) as e:
        raise InvoiceResolutionFailed(f"LNURL: {key} invalide ({value!r})") from e


class InvoiceResolver:
    """
    Résout une destination marchande en facture BOLT11 d'un montant donné.
    - BOLT11 brute: retournée telle quelle
    - Adresse Lightning (name@host): poignée de main LNURL-pay
      1) GET https://host/.well-known/lnurlp/name -> {callback, commentAllowed, minSendable, maxSendable}
      2) GET callback?amount=<msat>[&comment=...] -> {pr}
    """

    def __init__(self, http: httpx.Client, timeout: float = LNURL_TIMEOUT_SECS):
        self.http = http
        self.timeout = timeout

    def resolve(self, destination: str, amount_sats: int, comment: Optional[str] = None) -> str:
        dest = (destination or "").strip()
        if dest.lower().startswith("lightning:"):
            dest = dest[len("lightning:"):]
        if is_bolt11(dest):
            return dest

        name, host = split_address(dest)
        msat = int(amount_sats) * 1000

        meta = self._get_json(f"https://{host}/.well-known/lnurlp/{name}")
        callback = meta.get("callback")
        if not callback or not isinstance(callback, str):
            raise InvoiceResolutionFailed("LNURL: callback manquant")

        min_sendable = _meta_int(meta, "minSendable")
        max_sendable = _meta_int(meta, "maxSendable")
        if min_sendable and msat < min_sendable:
            raise InvoiceResolutionFailed(f"LNURL: montant {msat} msat sous le minimum {min_sendable}")
        if max_sendable and msat > max_sendable:
            raise InvoiceResolutionFailed(f"LNURL: montant {msat} msat au-dessus du maximum {max_sendable}")

        params: Dict[str, Any] = {"amount": msat}
        allowed = _meta_int(meta, "commentAllowed")
        if comment and allowed > 0:
            # Troncature en points de code (jamais en octets)
            params["comment"] = comment[:allowed]

        try:
            # Fusion avec la query du callback (params= la remplacerait)
            url = httpx.URL(callback).copy_merge_params(params)
        except (httpx.InvalidURL, TypeError, ValueError) as e:
            raise InvoiceResolutionFailed(f"LNURL: callback invalide {callback!r}") from e
        data = self._get_json(url)
        pr = data.get("pr")
        if not pr or not isinstance(pr, str):
            raise InvoiceResolutionFailed("LNURL: facture (pr) manquante")
        logger.info("lnurl: facture obtenue pour %s (%s sats)", dest, amount_sats)
        return pr

    def _get_json(self, url) -> Dict[str, Any]:
        try:
            res = self.http.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise InvoiceResolutionFailed(f"LNURL injoignable: {e}") from e
        if res.status_code < 200 or res.status_code >= 300:
            raise InvoiceResolutionFailed(f"LNURL HTTP {res.status_code}")
        try:
            data = res.json()
        except ValueError as e:
            raise InvoiceResolutionFailed("LNURL: JSON invalide") from e
        logger.debug("lnurl GET %s -> %s", url, data)
        if not isinstance(data, dict):
            raise InvoiceResolutionFailed("LNURL: réponse inattendue")
        if str(data.get("status") or "").upper() == "ERROR":
            raise InvoiceResolutionFailed(f"LNURL: {data.get('reason') or 'erreur'}")
        return data
