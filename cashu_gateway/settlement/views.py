import logging

from fastapi import APIRouter, Depends, HTTPException

from cashu_gateway.app_setup.dependencies import get_settlement_service
from cashu_gateway.errors import GatewayError
from cashu_gateway.settlement.models import ConfirmRequest, ConfirmResult
from cashu_gateway.settlement.service import SettlementService
from cashu_gateway.utils.rate_limit import optional_rate_limit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cashu", tags=["Cashu Settlement"])


# module cashu_gateway.settlement.views
@router.post(
    "/confirm-melt-quote",
    response_model=ConfirmResult,
    response_model_exclude_none=True,
    dependencies=[Depends(optional_rate_limit(times=30, seconds=60))],
)
def confirm_melt_quote(payload: ConfirmRequest, service: SettlementService = Depends(get_settlement_service)):
    """
    Confirme le règlement d'une commande payée par melt Cashu.
    - Entrée JSON: { "order_id": <int>, "order_key": "<clé>", "change_tokens": ["cashuB...", ...] }
    - Les tokens de monnaie sont stockés avant toute vérification d'état
    - Réponses: {ok, state: PAID, redirect} | {ok, state: EXPIRED|UNPAID|PENDING, expiry}
    - Erreurs: 403 clé invalide, 400 mauvais moyen de paiement / pas de devis, 502 mint injoignable
    """
    try:
        return service.confirm(payload.order_id, payload.order_key, payload.change_tokens)
    except (HTTPException, GatewayError):
        raise
    except Exception:
        logger.exception("Erreur confirm_melt_quote order=%s", payload.order_id)
        raise HTTPException(status_code=500, detail="Erreur interne lors de la confirmation")
