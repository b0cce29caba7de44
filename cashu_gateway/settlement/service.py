"""
Cas d'usage 'settlement': point d'arrivée des confirmations du client.
Ordre des étapes:
  1) autorisation (order_key) avant toute écriture ou appel au mint
  2) ingestion des tokens de monnaie, toujours et en premier
  3) commande déjà payée -> PAID (sans interroger le mint), transition interrompue terminée
  4) pas de devis melt -> NoQuote; fenêtre spot atteinte -> EXPIRED
  5) état du devis melt chez le mint (toujours réseau), preimage posée une fois
  6) PAID -> règlement scellé, compare-and-set sur la commande, note d'audit unique (clé du devis)
"""
import logging
import secrets
import time
from typing import Callable, Iterable, List, Optional

from cashu_gateway.errors import MintNotConfigured, NoQuote, Unauthorized, WrongGateway
from cashu_gateway.mint.client import MintClient
from cashu_gateway.settings import GatewayConfig
from cashu_gateway.settlement import repository
from cashu_gateway.settlement.models import ConfirmResult, Order, OrderSettlementRecord, SettlementState

logger = logging.getLogger(__name__)

TOKEN_PREFIXES = ("cashuA", "cashuB")
MAX_TOKEN_LENGTH = 16384
MAX_TOKENS_PER_REQUEST = 50


def parse_change_tokens(raw: Optional[Iterable[str]], known: Iterable[str] = ()) -> List[str]:
    """
    Normalise les tokens reçus: découpe sur les virgules, filtre le préfixe et la taille,
    écarte les tokens déjà stockés (known), dédoublonne en conservant l'ordre, puis borne le nombre.
    """
    tokens: List[str] = []
    seen = set(known)
    for chunk in raw or []:
        if not isinstance(chunk, str):
            continue
        for part in chunk.split(","):
            token = part.strip()
            if not token:
                continue
            if not token.startswith(TOKEN_PREFIXES) or len(token) > MAX_TOKEN_LENGTH:
                logger.warning("settlement: token de monnaie ignoré (format invalide, %s caractères)", len(token))
                continue
            if token in seen:
                continue
            seen.add(token)
            tokens.append(token)
    if len(tokens) > MAX_TOKENS_PER_REQUEST:
        logger.warning("settlement: %s tokens nouveaux reçus, seuls les %s premiers sont conservés",
                       len(tokens), MAX_TOKENS_PER_REQUEST)
        tokens = tokens[:MAX_TOKENS_PER_REQUEST]
    return tokens


class SettlementService:
    def __init__(self, config: GatewayConfig, mint: MintClient, clock: Optional[Callable[[], float]] = None):
        self.config = config
        self.mint = mint
        self._clock = clock or time.time

    def authorize(self, order_id: int, order_key: str) -> Order:
        order = repository.get_order(order_id)
        # Même erreur pour commande inconnue et clé invalide
        if order is None or not secrets.compare_digest(str(order.order_key), str(order_key or "")):
            raise Unauthorized()
        return order

    def receipt_url(self, order: Order) -> str:
        return self.config.order_received_url(order.id, order.order_key)

    def ingest_change_tokens(self, order_id: int, raw: Optional[Iterable[str]]) -> int:
        """Ajoute les tokens absents; retourne le nombre de tokens stockés."""
        if not raw:
            return 0
        tokens = parse_change_tokens(raw, known=repository.list_change_tokens(order_id))
        stored = 0
        for token in tokens:
            if repository.append_change_token(order_id, token) is not None:
                stored += 1
        if stored:
            logger.info("settlement: %s token(s) de monnaie stockés pour la commande %s", stored, order_id)
        return stored

    def confirm(self, order_id: int, order_key: str, change_tokens: Optional[Iterable[str]] = None) -> ConfirmResult:
        order = self.authorize(order_id, order_key)
        if (order.payment_method or "") != self.config.payment_method:
            raise WrongGateway("Cette commande n'utilise pas le paiement Cashu")

        self.ingest_change_tokens(order.id, change_tokens)

        if order.is_paid():
            record = repository.load_record(order.id)
            if record.melt_quote_id and order.transaction_id == record.melt_quote_id:
                # Payée par melt: termine une transition interrompue (étapes idempotentes)
                self._complete_payment(order, record, record.payment_preimage)
            return ConfirmResult(state=SettlementState.PAID.value, redirect=self.receipt_url(order))

        record = repository.load_record(order.id)
        if not record.melt_quote_id:
            raise NoQuote("Aucun devis melt pour cette commande")

        now = int(self._clock())
        spot_expiry = record.spot_expiry(self.config.quote_expiry_secs)
        # Règlement déjà scellé PAID: la transition reprend même hors fenêtre
        if record.settlement_state != SettlementState.PAID and now >= spot_expiry:
            return ConfirmResult(state=SettlementState.EXPIRED.value, expiry=spot_expiry)

        if not self.config.trusted_mint:
            raise MintNotConfigured("Mint de confiance non configuré")
        quote = self.mint.get_melt_quote(record.melt_quote_id)
        if self.config.debug:
            logger.info("settlement debug: commande %s devis %s -> %s", order.id, record.melt_quote_id,
                        quote.model_dump())
        state = (quote.state or "").upper()
        repository.record_mint_state(order.id, state, quote.payment_preimage)

        if state == "PAID":
            self._complete_payment(order, record, quote.payment_preimage or record.payment_preimage)
            return ConfirmResult(state=SettlementState.PAID.value, redirect=self.receipt_url(order))

        return ConfirmResult(state=state, expiry=spot_expiry)

    def _complete_payment(self, order: Order, record: OrderSettlementRecord, preimage: Optional[str]) -> None:
        """
        Transition payée, rejouable jusqu'au bout:
          1) règlement scellé PAID (plus aucune réécriture des devis)
          2) compare-and-set sur la commande
          3) note d'audit clé "paid:<devis>", écrite une seule fois
        Une étape en échec laisse les suivantes au prochain appel.
        """
        if record.settlement_state != SettlementState.PAID:
            repository.mark_settlement_paid(order.id)
            record.settlement_state = SettlementState.PAID
        if not order.is_paid() and repository.mark_order_paid(order.id, record.melt_quote_id):
            logger.info("settlement: commande %s payée (devis %s)", order.id, record.melt_quote_id)
        repository.add_order_note(order.id, self._paid_note(record, preimage),
                                  note_key=f"paid:{record.melt_quote_id}")

    def _paid_note(self, record: OrderSettlementRecord, preimage: Optional[str]) -> str:
        note = (
            f"Paiement Cashu reçu: {record.melt_amount_sats} sats vers {self.config.lightning_address} "
            f"(devis melt {record.melt_quote_id})"
        )
        if preimage:
            note += f", preimage {preimage}"
        return note
