"""
Orchestrateur de règlement côté payeur (asyncio).

pay_with_token(token):
  - même mint que le mint de confiance: melt direct sur le devis émis par le serveur
  - mint étranger: devis mint (mint de confiance) pour le montant affiché, devis melt étranger
    sur cette facture, melt étranger, attente du paiement, émission des preuves de confiance,
    puis melt vers le devis marchand
  - toute monnaie rendue est encodée et écrite dans le ChangeVault avant la confirmation
Écouteurs (start_listeners): melt payé, mint payé (QR), confirmation périodique;
une erreur passagère (réseau, mint, confirmation) est journalisée puis réessayée.
Un seul règlement à la fois (verrou); aclose() annule les écouteurs mais attend
les règlements déjà engagés.
"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Set
from urllib.parse import urlsplit

import httpx

from cashu_gateway.errors import GatewayError, InsufficientProofs, InvalidToken, PaymentInProgress, SwapFailed
from cashu_gateway.settlement.models import ConfirmResult
from cashu_gateway.wallet.change_vault import CHANGE, RECOVERY, ChangeVault
from cashu_gateway.wallet.confirm_client import ConfirmClient
from cashu_gateway.wallet.protocols import MintQuote, MintWallet, PaymentData, Proof, WalletMeltQuote

logger = logging.getLogger(__name__)

# Erreurs passagères des écouteurs: journalisées, puis nouvel essai
LISTENER_ERRORS = (GatewayError, httpx.HTTPError, OSError)


def normalize_mint_url(url: str) -> str:
    parts = urlsplit((url or "").strip())
    path = parts.path.rstrip("/")
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}{path}"


def same_mint(a: str, b: str) -> bool:
    return normalize_mint_url(a) == normalize_mint_url(b)


class ClientSettlementOrchestrator:
    def __init__(
        self,
        wallet: MintWallet,
        confirm: ConfirmClient,
        vault: ChangeVault,
        payment: PaymentData,
        order_key: str,
        poll_interval: float = 5.0,
    ):
        self.wallet = wallet
        self.confirm_client = confirm
        self.vault = vault
        self.payment = payment
        self.order_key = order_key
        self.poll_interval = poll_interval

        self._lock = asyncio.Lock()
        self._paying = False
        self._listeners: List[asyncio.Task] = []
        self._inflight: Set[asyncio.Task] = set()
        self.paid = asyncio.Event()
        self.result: Optional[ConfirmResult] = None
        self._recovery: Optional[str] = None

    @property
    def trusted_mint(self) -> str:
        return self.payment.trusted_mint.rstrip("/")

    # --- Paiement par token ---

    async def pay_with_token(self, token: str) -> ConfirmResult:
        if self._paying:
            raise PaymentInProgress()
        self._paying = True
        task = self._spawn(lambda: self._pay_with_token(token))
        task.add_done_callback(self._payment_done)
        return await asyncio.shield(task)

    def _payment_done(self, _task: asyncio.Task) -> None:
        self._paying = False

    async def _pay_with_token(self, token: str) -> ConfirmResult:
        if self.paid.is_set() and self.result is not None:
            return self.result
        info = await self.wallet.decode_token(token)
        if (info.unit or "").lower() != "sat":
            raise InvalidToken(f"Unité de token non supportée: {info.unit}")
        if not info.proofs or info.amount <= 0:
            raise InvalidToken("Token vide")

        vendor_quote = await self.wallet.check_melt_quote(self.trusted_mint, self.payment.quote_id)
        if vendor_quote.state == "PAID":
            return await self._confirm()

        if same_mint(info.mint, self.trusted_mint):
            return await self._melt_to_vendor(info.proofs, vendor_quote)

        proofs = await self._swap_to_trusted(info.mint, info.proofs)
        return await self._melt_to_vendor(proofs, vendor_quote)

    async def _swap_to_trusted(self, foreign_mint: str, proofs: List[Proof]) -> List[Proof]:
        held = sum(p.amount for p in proofs)
        mint_quote = await self.wallet.create_mint_quote(self.trusted_mint, self.payment.pay_amount_sats)
        foreign_quote = await self.wallet.create_melt_quote(foreign_mint, mint_quote.request)
        input_fee = await self.wallet.input_fee(foreign_mint, proofs)
        required = foreign_quote.amount + foreign_quote.fee_reserve + input_fee
        if held < required:
            raise InsufficientProofs(held, required, fee_reserve=foreign_quote.fee_reserve, input_fee=input_fee)

        result = await self.wallet.melt(foreign_mint, foreign_quote, proofs)
        await self._store(foreign_mint, result.change, CHANGE)
        if result.state != "PAID":
            raise SwapFailed(f"Melt sur {foreign_mint} non abouti (état {result.state})")
        logger.info("wallet: swap %s -> %s payé (%s sats)", foreign_mint, self.trusted_mint, mint_quote.amount)

        await self.wallet.wait_mint_quote_paid(self.trusted_mint, mint_quote.quote)
        return await self._mint_trusted(mint_quote)

    async def _mint_trusted(self, mint_quote: MintQuote) -> List[Proof]:
        proofs = await self.wallet.mint_proofs(self.trusted_mint, mint_quote)
        # Preuves intermédiaires sauvegardées tant que le melt marchand n'est pas payé
        self._recovery = await self._store(self.trusted_mint, proofs, RECOVERY)
        return proofs

    async def _melt_to_vendor(self, proofs: List[Proof], quote: WalletMeltQuote) -> ConfirmResult:
        held = sum(p.amount for p in proofs)
        input_fee = await self.wallet.input_fee(self.trusted_mint, proofs)
        required = quote.amount + quote.fee_reserve + input_fee
        if held < required:
            raise InsufficientProofs(held, required, fee_reserve=quote.fee_reserve, input_fee=input_fee)

        result = await self.wallet.melt(self.trusted_mint, quote, proofs)
        await self._store(self.trusted_mint, result.change, CHANGE)
        recovery = self._recovery
        if result.state == "PAID" and recovery:
            self.vault.remove(self.payment.order_id, recovery)
            self._recovery = None
        logger.info("wallet: melt marchand %s état=%s", quote.quote, result.state)
        return await self._confirm()

    async def _store(self, mint_url: str, proofs: List[Proof], kind: str) -> Optional[str]:
        if not proofs:
            return None
        token = await self.wallet.encode_token(mint_url, proofs, unit="sat")
        self.vault.add(self.payment.order_id, token, kind=kind)
        return token

    async def _confirm(self) -> ConfirmResult:
        tokens = self.vault.tokens(self.payment.order_id, CHANGE)
        result = await self.confirm_client.confirm(self.payment.order_id, self.order_key, tokens)
        if result.state == "PAID":
            self.result = result
            self.paid.set()
        return result

    # --- Règlements protégés ---

    async def _locked(self, fn: Callable[[], Awaitable[ConfirmResult]]) -> ConfirmResult:
        async with self._lock:
            return await fn()

    def _spawn(self, fn: Callable[[], Awaitable[ConfirmResult]]) -> asyncio.Task:
        task = asyncio.ensure_future(self._locked(fn))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _settle(self, fn: Callable[[], Awaitable[ConfirmResult]]) -> ConfirmResult:
        """Un règlement engagé va à son terme même si l'appelant est annulé."""
        return await asyncio.shield(self._spawn(fn))

    # --- Écouteurs ---

    async def create_invoice(self) -> MintQuote:
        """Facture du mint de confiance à scanner (parcours QR)."""
        return await self.wallet.create_mint_quote(self.trusted_mint, self.payment.pay_amount_sats)

    def start_listeners(self, mint_quote: Optional[MintQuote] = None) -> None:
        self._listeners.append(asyncio.create_task(self._watch_melt_paid(), name="cashu-melt-paid"))
        self._listeners.append(asyncio.create_task(self._poll_confirm(), name="cashu-confirm-poll"))
        if mint_quote is not None:
            self._listeners.append(asyncio.create_task(self._watch_mint_paid(mint_quote), name="cashu-mint-paid"))

    async def _watch_melt_paid(self) -> None:
        while not self.paid.is_set():
            try:
                quote = await self.wallet.check_melt_quote(self.trusted_mint, self.payment.quote_id)
                if quote.state == "PAID":
                    result = await self._settle(self._confirm)
                    if result.state == "PAID":
                        return
            except LISTENER_ERRORS as e:
                self._listener_failed("melt", e)
            await asyncio.sleep(self.poll_interval)

    async def _watch_mint_paid(self, mint_quote: MintQuote) -> None:
        while not self.paid.is_set():
            try:
                await self.wallet.wait_mint_quote_paid(self.trusted_mint, mint_quote.quote)
                break
            except LISTENER_ERRORS as e:
                self._listener_failed("mint", e)
            await asyncio.sleep(self.poll_interval)

        # Preuves émises une seule fois, conservées entre les tentatives
        minted: List[Proof] = []

        async def _settle_from_invoice() -> ConfirmResult:
            if not minted:
                minted.extend(await self._mint_trusted(mint_quote))
            vendor_quote = await self.wallet.check_melt_quote(self.trusted_mint, self.payment.quote_id)
            if vendor_quote.state == "PAID":
                return await self._confirm()
            return await self._melt_to_vendor(list(minted), vendor_quote)

        while not self.paid.is_set():
            try:
                await self._settle(_settle_from_invoice)
                return
            except LISTENER_ERRORS as e:
                self._listener_failed("mint", e)
            await asyncio.sleep(self.poll_interval)

    async def _poll_confirm(self) -> None:
        while not self.paid.is_set():
            await asyncio.sleep(self.poll_interval)
            try:
                result = await self._settle(self._confirm)
            except LISTENER_ERRORS as e:
                self._listener_failed("confirm", e)
                continue
            if result.state == "EXPIRED":
                logger.info("wallet: devis expiré pour la commande %s", self.payment.order_id)
                return

    def _listener_failed(self, name: str, exc: Exception) -> None:
        # Erreurs définitives (token invalide, montant insuffisant, accès refusé): l'écouteur s'arrête
        if isinstance(exc, GatewayError) and not exc.retryable and exc.status_code < 500:
            raise exc
        logger.warning("wallet: écouteur %s en erreur, nouvel essai dans %ss: %s", name, self.poll_interval, exc)

    async def aclose(self) -> None:
        for task in self._listeners:
            task.cancel()
        results = await asyncio.gather(*self._listeners, return_exceptions=True)
        for res in results:
            if isinstance(res, Exception):
                logger.warning("wallet: écouteur terminé en erreur: %s", res)
        self._listeners.clear()
        if self._inflight:
            # Règlements engagés: attendus, jamais annulés
            for res in await asyncio.gather(*list(self._inflight), return_exceptions=True):
                if isinstance(res, Exception):
                    logger.warning("wallet: règlement terminé en erreur: %s", res)
