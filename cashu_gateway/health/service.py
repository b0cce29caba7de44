from typing import Any, Dict
import logging

from cashu_gateway.errors import GatewayError
from cashu_gateway.mint.client import MintClient

logger = logging.getLogger(__name__)


def health_mint_info(mint: MintClient) -> Dict[str, Any]:
    """Joignabilité du mint de confiance (GET /v1/keysets) et keysets 'sat' actifs."""
    info: Dict[str, Any] = {"mint": mint.mint_url or None, "reachable": False}
    if not mint.mint_url:
        info["error"] = "not_configured"
        return info
    try:
        keysets = mint.get_keysets()
    except GatewayError as e:
        logger.warning("health mint %s: %s", mint.mint_url, e.message)
        info["error"] = e.code
        return info
    sat = [k for k in keysets if str(k.get("unit") or "").lower() == "sat"]
    info.update({
        "reachable": True,
        "keysets": len(keysets),
        "sat_keysets": len(sat),
        "max_input_fee_ppk": max((int(k.get("input_fee_ppk") or 0) for k in sat), default=0),
    })
    return info
