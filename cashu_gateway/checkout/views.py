import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from cashu_gateway.app_setup.dependencies import get_quote_manager, get_settlement_service
from cashu_gateway.checkout import service as checkout_service
from cashu_gateway.errors import GatewayError
from cashu_gateway.quotes.service import QuoteManager
from cashu_gateway.settlement.service import SettlementService
from cashu_gateway.utils.rate_limit import optional_rate_limit

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/cashu", tags=["Cashu Checkout"])


class CheckoutRequest(BaseModel):
    order_id: int = Field(..., gt=0)
    order_key: str = Field(..., min_length=1, max_length=200)


# module cashu_gateway.checkout.views
@router.post("/checkout", dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def start_cashu_checkout(
    payload: CheckoutRequest,
    settlement: SettlementService = Depends(get_settlement_service),
    quotes: QuoteManager = Depends(get_quote_manager),
):
    """
    Démarre le paiement Cashu d'une commande.
    - Total nul: {ok, state: PAID, redirect}
    - Sinon: devis frais et données de paiement (quote_id, pay_amount_sats, trusted_mint, ...)
    - Erreurs amont (prix, LNURL, mint): 502 générique, cause journalisée
    """
    try:
        return checkout_service.start_checkout(payload.order_id, payload.order_key, settlement, quotes)
    except HTTPException:
        raise
    except GatewayError as e:
        if e.status_code < 500:
            raise
        logger.error("Erreur start_cashu_checkout order=%s: [%s] %s", payload.order_id, e.code, e.message)
        raise HTTPException(status_code=502, detail="Échec de la préparation du paiement")
    except Exception:
        logger.exception("Erreur start_cashu_checkout order=%s", payload.order_id)
        raise HTTPException(status_code=502, detail="Échec de la préparation du paiement")
