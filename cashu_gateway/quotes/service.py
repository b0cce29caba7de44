"""
Cas d'usage 'quotes': garantit qu'une commande porte un devis spot et un devis melt frais.
- Spot périmé (15 min) ou total/devise modifiés: nouveau prix, champs melt effacés
- Melt absent/périmé/inconnu du mint: facture LNURL pour spot_sats, devis melt au mint de confiance, frais estimés
- Règlement scellé PAID: écriture refusée, relecture
- Tous les appels externes précèdent l'unique écriture (version optimiste)
"""
import logging
import time
from typing import Callable, List, Optional

from cashu_gateway.errors import InvalidMeltQuote, MintHttpError, MintNotConfigured, PriceUnavailable
from cashu_gateway.lightning.address import InvoiceResolver
from cashu_gateway.mint.client import MeltQuote, MintClient
from cashu_gateway.mint.fees import FeeEstimator
from cashu_gateway.pricing.oracle import PriceOracle
from cashu_gateway.settings import GatewayConfig
from cashu_gateway.settlement import repository
from cashu_gateway.settlement.models import Order, OrderSettlementRecord, QuoteFreshness, SettlementState

logger = logging.getLogger(__name__)


def validate_melt_quote(quote: MeltQuote) -> MeltQuote:
    if not quote.quote:
        raise InvalidMeltQuote("Devis melt sans identifiant")
    if quote.amount <= 0:
        raise InvalidMeltQuote(f"Montant de devis melt invalide: {quote.amount}")
    if quote.expiry <= 0:
        raise InvalidMeltQuote("Devis melt sans expiration")
    if (quote.unit or "").lower() != "sat":
        raise InvalidMeltQuote(f"Unité de devis melt inattendue: {quote.unit}")
    return quote


class QuoteManager:
    def __init__(
        self,
        config: GatewayConfig,
        oracle: PriceOracle,
        resolver: InvoiceResolver,
        fees: FeeEstimator,
        mint: MintClient,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config
        self.oracle = oracle
        self.resolver = resolver
        self.fees = fees
        self.mint = mint
        self._clock = clock or time.time

    def ensure_quotes(self, order: Order) -> OrderSettlementRecord:
        record = repository.load_record(order.id)
        if order.is_paid() or record.settlement_state == SettlementState.PAID:
            return record

        now = int(self._clock())
        window = self.config.quote_expiry_secs
        notes: List[str] = []

        spot = record.spot_freshness(order, now, window)
        if spot is not QuoteFreshness.FRESH:
            self._refresh_spot(record, order, now)
            notes.append(
                f"Devis spot Cashu: {record.spot_sats} sats pour {record.total_fiat} {record.currency} "
                f"(BTC {record.spot_btc_price}, source {record.spot_source})"
            )

        melt = record.melt_freshness(self.config.trusted_mint, now, self.config.melt_safety_margin_secs, window)
        if melt is QuoteFreshness.FRESH and not self._melt_quote_known(record.melt_quote_id):
            melt = QuoteFreshness.STALE
        if melt is not QuoteFreshness.FRESH:
            self._refresh_melt(record, order)
            notes.append(
                f"Devis melt Cashu {record.melt_quote_id} sur {record.melt_mint}: "
                f"montant {record.melt_amount_sats} + réserve LN {record.melt_fee_reserve_sats} "
                f"+ frais mint {record.melt_fee_sats} = {record.melt_total_sats} sats"
            )

        if not notes:
            return record

        record.settlement_state = SettlementState.PENDING
        if not repository.save_quote_fields(record):
            logger.info("quotes: écriture concurrente sur la commande %s, relecture", order.id)
            return repository.load_record(order.id)
        for note in notes:
            repository.add_order_note(order.id, note)
        return record

    def _melt_quote_known(self, quote_id: str) -> bool:
        """Devis encore connu du mint (lecture via le cache du client mint jusqu'à son expiry)."""
        try:
            self.mint.lookup_melt_quote(quote_id)
        except MintHttpError as e:
            if e.http_status in (400, 404):
                logger.info("quotes: devis melt %s inconnu du mint (HTTP %s), renouvelé", quote_id, e.http_status)
                return False
            raise
        return True

    def _refresh_spot(self, record: OrderSettlementRecord, order: Order, now: int) -> None:
        quote = self.oracle.convert(order.total, order.currency)
        if quote.sats <= 0:
            raise PriceUnavailable(f"Conversion nulle pour {order.total} {order.currency}")
        record.spot_sats = quote.sats
        record.spot_quoted_at = now
        record.spot_btc_price = quote.btc_price
        record.spot_source = quote.source
        record.total_fiat = order.total
        record.currency = order.currency
        record.clear_melt()

    def _refresh_melt(self, record: OrderSettlementRecord, order: Order) -> None:
        if not self.config.trusted_mint:
            raise MintNotConfigured("Mint de confiance non configuré")
        bolt11 = self.resolver.resolve(self.config.lightning_address, record.spot_sats, comment=f"Order #{order.id}")
        quote = validate_melt_quote(self.mint.create_melt_quote(bolt11, unit="sat"))
        if self.config.debug:
            logger.info("quotes debug: commande %s devis melt -> %s", order.id, quote.model_dump())
        fee = self.fees.estimate(self.config.trusted_mint, quote.amount + quote.fee_reserve)

        record.melt_quote_id = quote.quote
        record.melt_quote_expiry = quote.expiry
        record.melt_mint = self.config.trusted_mint
        record.melt_invoice = bolt11
        record.melt_amount_sats = quote.amount
        record.melt_fee_reserve_sats = quote.fee_reserve
        record.melt_fee_sats = fee.fee_sats
        record.melt_total_sats = quote.amount + quote.fee_reserve + fee.fee_sats
        logger.info("quotes: devis melt %s commande=%s total=%s sats", quote.quote, order.id, record.melt_total_sats)
