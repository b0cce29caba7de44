"""
Modèles du règlement Cashu.
- Order: vue minimale d'une ligne 'commandes'
- OrderSettlementRecord: état typé d'un règlement (ligne 'cashu_settlements' + tokens de monnaie)
- ConfirmRequest / ConfirmResult: contrat de l'endpoint de confirmation
"""
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class SettlementState(str, Enum):
    NONE = "NONE"
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"


class QuoteFreshness(str, Enum):
    MISSING = "MISSING"
    FRESH = "FRESH"
    STALE = "STALE"


class Order(BaseModel):
    id: int
    order_key: str
    total: Decimal = Decimal(0)
    currency: str = "EUR"
    payment_method: str = ""
    status: str = "pending"
    transaction_id: Optional[str] = None
    paid_at: Optional[str] = None

    @field_validator("currency")
    def upper_currency(cls, v: str) -> str:
        return (v or "").strip().upper()

    def is_paid(self) -> bool:
        return self.status == "paid"


class OrderSettlementRecord(BaseModel):
    order_id: int

    # Devis spot
    spot_sats: int = 0
    spot_quoted_at: int = 0
    spot_btc_price: Decimal = Decimal(0)
    spot_source: str = "none"
    total_fiat: Decimal = Decimal(0)
    currency: str = ""

    # Devis melt (mint de confiance)
    melt_quote_id: Optional[str] = None
    melt_quote_expiry: int = 0
    melt_mint: Optional[str] = None
    melt_invoice: Optional[str] = None
    melt_amount_sats: int = 0
    melt_fee_reserve_sats: int = 0
    melt_fee_sats: int = 0
    melt_total_sats: int = 0

    settlement_state: SettlementState = SettlementState.NONE
    last_mint_state: Optional[str] = None
    payment_preimage: Optional[str] = None
    version: int = 0

    change_tokens: List[str] = Field(default_factory=list)

    def spot_expiry(self, window: int) -> int:
        return self.spot_quoted_at + window

    def spot_freshness(self, order: Order, now: int, window: int) -> QuoteFreshness:
        if not self.spot_quoted_at or self.spot_sats <= 0:
            return QuoteFreshness.MISSING
        if self.spot_quoted_at <= now - window:
            return QuoteFreshness.STALE
        # Total ou devise recalculés par la boutique: devis invalide
        if self.total_fiat != order.total or self.currency != order.currency:
            return QuoteFreshness.STALE
        return QuoteFreshness.FRESH

    def melt_freshness(self, trusted_mint: str, now: int, margin: int, window: int) -> QuoteFreshness:
        if not self.melt_quote_id:
            return QuoteFreshness.MISSING
        if (self.melt_mint or "").rstrip("/") != (trusted_mint or "").rstrip("/"):
            return QuoteFreshness.STALE
        if self.melt_quote_expiry <= now + margin:
            return QuoteFreshness.STALE
        if self.melt_quote_expiry <= self.spot_quoted_at + window:
            return QuoteFreshness.STALE
        return QuoteFreshness.FRESH

    def clear_melt(self) -> None:
        self.melt_quote_id = None
        self.melt_quote_expiry = 0
        self.melt_mint = None
        self.melt_invoice = None
        self.melt_amount_sats = 0
        self.melt_fee_reserve_sats = 0
        self.melt_fee_sats = 0
        self.melt_total_sats = 0

    def quote_fields(self) -> dict:
        """Colonnes écrites par QuoteManager (spot + melt, en une seule écriture)."""
        data = self.model_dump(mode="json", exclude={"change_tokens", "payment_preimage", "last_mint_state", "version"})
        return data


class ConfirmRequest(BaseModel):
    order_id: int = Field(..., gt=0)
    order_key: str = Field(..., min_length=1, max_length=200)
    change_tokens: Optional[List[str]] = None

    @field_validator("change_tokens", mode="before")
    def split_tokens(cls, v):
        # Accepte une chaîne séparée par des virgules ou une liste
        if v is None:
            return None
        if isinstance(v, str):
            return [v]
        return v


class ConfirmResult(BaseModel):
    ok: bool = True
    state: str
    redirect: Optional[str] = None
    expiry: Optional[int] = None
