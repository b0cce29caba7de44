"""
Contrat du portefeuille Cashu côté payeur.
La cryptographie (blinding, signatures, encodage des tokens) reste dans la bibliothèque
cliente du mint; l'orchestrateur ne consomme que cette interface.
"""
from typing import List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


class Proof(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    amount: int
    secret: str
    C: str


class TokenInfo(BaseModel):
    mint: str
    unit: str = "sat"
    proofs: List[Proof]

    @property
    def amount(self) -> int:
        return sum(p.amount for p in self.proofs)


class MintQuote(BaseModel):
    quote: str
    request: str
    amount: int
    state: str = "UNPAID"
    expiry: Optional[int] = None


class WalletMeltQuote(BaseModel):
    quote: str
    amount: int
    fee_reserve: int = 0
    state: str = "UNPAID"
    expiry: Optional[int] = None
    request: Optional[str] = None


class MeltResult(BaseModel):
    state: str
    payment_preimage: Optional[str] = None
    change: List[Proof] = []


class PaymentData(BaseModel):
    """Données renvoyées par POST /api/v1/cashu/checkout."""
    model_config = ConfigDict(extra="ignore")

    order_id: int
    quote_id: str
    trusted_mint: str
    amount_sats: int
    fee_reserve_sats: int = 0
    mint_fee_sats: int = 0
    pay_amount_sats: int
    quote_expiry: int = 0
    spot_expiry: int = 0
    return_url: Optional[str] = None


@runtime_checkable
class MintWallet(Protocol):
    async def decode_token(self, token: str) -> TokenInfo: ...

    async def encode_token(self, mint_url: str, proofs: List[Proof], unit: str = "sat") -> str: ...

    async def input_fee(self, mint_url: str, proofs: List[Proof]) -> int: ...

    async def create_mint_quote(self, mint_url: str, amount: int) -> MintQuote: ...

    async def wait_mint_quote_paid(self, mint_url: str, quote_id: str) -> MintQuote: ...

    async def mint_proofs(self, mint_url: str, quote: MintQuote) -> List[Proof]: ...

    async def create_melt_quote(self, mint_url: str, bolt11: str) -> WalletMeltQuote: ...

    async def check_melt_quote(self, mint_url: str, quote_id: str) -> WalletMeltQuote: ...

    async def melt(self, mint_url: str, quote: WalletMeltQuote, proofs: List[Proof]) -> MeltResult: ...
