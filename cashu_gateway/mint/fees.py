# module cashu_gateway.mint.fees
"""
Estimation des frais d'entrée du mint (input_fee_ppk, NUT-02).
Le client paie ceil(n_preuves * ppk / 1000); les preuves qui couvrent ces frais
paient elles-mêmes des frais, d'où la recherche d'un point fixe.
"""
import logging
import time
from typing import Callable, Optional

from pydantic import BaseModel

from cashu_gateway.errors import NoFeeableKeysets
from cashu_gateway.mint.client import MintClient
from cashu_gateway.utils.cache import TTLCache

logger = logging.getLogger(__name__)

PPK_TTL_SECS = 60 * 60


class FeeEstimate(BaseModel):
    ppk: int
    proof_count: int
    fee_sats: int


def proof_count(amount: int) -> int:
    """Nombre de preuves en décomposition binaire (au moins 1)."""
    return max(1, bin(max(0, int(amount))).count("1"))


def fee_for_proofs(n: int, ppk: int) -> int:
    # ceil(n * ppk / 1000) en entiers
    return -(-int(n) * int(ppk) // 1000)


def estimate_fee_sats(ppk: int, amount: int) -> int:
    """Plus petit f tel que fee_for_proofs(popcount(amount) + popcount(f), ppk) <= f."""
    if ppk <= 0:
        return 0
    principal = bin(max(0, int(amount))).count("1")
    candidate = fee_for_proofs(principal + 1, ppk)
    while fee_for_proofs(principal + bin(candidate).count("1"), ppk) > candidate:
        candidate += 1
    return candidate


class FeeEstimator:
    def __init__(self, mint: MintClient, clock: Optional[Callable[[], float]] = None):
        self.mint = mint
        self._cache = TTLCache(PPK_TTL_SECS, clock=clock or time.time)

    def max_input_fee_ppk(self, mint_url: Optional[str] = None) -> int:
        key = (mint_url or self.mint.mint_url).rstrip("/")
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        sat_keysets = [k for k in self.mint.get_keysets() if str(k.get("unit") or "").lower() == "sat"]
        if not sat_keysets:
            raise NoFeeableKeysets(f"Aucun keyset 'sat' sur {key}")
        ppk = max(int(k.get("input_fee_ppk") or 0) for k in sat_keysets)
        logger.info("mint %s: input_fee_ppk max=%s (%s keysets sat)", key, ppk, len(sat_keysets))
        self._cache.set(key, ppk)
        return ppk

    def estimate(self, mint_url: Optional[str], amount: int) -> FeeEstimate:
        ppk = self.max_input_fee_ppk(mint_url)
        fee = estimate_fee_sats(ppk, amount)
        return FeeEstimate(ppk=ppk, proof_count=proof_count(amount) + (proof_count(fee) if fee else 0), fee_sats=fee)
