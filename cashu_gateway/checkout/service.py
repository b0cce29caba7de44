"""
Cas d'usage 'checkout': démarrage du paiement Cashu d'une commande.
- Total nul: commande réglée immédiatement (aucun devis, facture ni appel au mint)
- Sinon: devis frais via QuoteManager et données de paiement pour le client
"""
from typing import Any, Dict
import logging

from cashu_gateway.errors import WrongGateway
from cashu_gateway.quotes.service import QuoteManager
from cashu_gateway.settlement import repository
from cashu_gateway.settlement.models import SettlementState
from cashu_gateway.settlement.service import SettlementService

logger = logging.getLogger(__name__)


def start_checkout(order_id: int, order_key: str, settlement: SettlementService, quotes: QuoteManager) -> Dict[str, Any]:
    order = settlement.authorize(order_id, order_key)
    if (order.payment_method or "") != settlement.config.payment_method:
        raise WrongGateway("Cette commande n'utilise pas le paiement Cashu")

    redirect = settlement.receipt_url(order)
    if order.is_paid():
        return {"ok": True, "state": SettlementState.PAID.value, "redirect": redirect}

    if order.total <= 0:
        if repository.mark_order_paid(order.id, None):
            repository.add_order_note(order.id, "Commande à total nul: réglée sans paiement Cashu")
            logger.info("checkout: commande %s à total nul réglée", order.id)
        return {"ok": True, "state": SettlementState.PAID.value, "redirect": redirect}

    record = quotes.ensure_quotes(order)
    if record.settlement_state == SettlementState.PAID:
        return {"ok": True, "state": SettlementState.PAID.value, "redirect": redirect}

    return {
        "ok": True,
        "state": SettlementState.PENDING.value,
        "order_id": order.id,
        "quote_id": record.melt_quote_id,
        "quote_expiry": record.melt_quote_expiry,
        "spot_expiry": record.spot_expiry(settlement.config.quote_expiry_secs),
        "trusted_mint": record.melt_mint,
        "amount_sats": record.melt_amount_sats,
        "fee_reserve_sats": record.melt_fee_reserve_sats,
        "mint_fee_sats": record.melt_fee_sats,
        "pay_amount_sats": record.melt_total_sats,
        "spot_sats": record.spot_sats,
        "btc_price": str(record.spot_btc_price),
        "currency": record.currency,
        "return_url": redirect,
    }
