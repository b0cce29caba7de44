"""
Conversion fiat -> sats à partir du prix spot BTC.
- Source primaire: Coinbase (prix spot), secours: CoinGecko (simple price)
- Prix mis en cache 30 s par source et par devise
- Arrondi toujours vers le haut (Decimal, ROUND_CEILING): le marchand n'est jamais sous-payé
"""
import logging
import time
from decimal import Decimal, InvalidOperation, ROUND_CEILING
from typing import Callable, Optional

import httpx
from pydantic import BaseModel

from cashu_gateway.errors import PriceUnavailable
from cashu_gateway.utils.cache import TTLCache

logger = logging.getLogger(__name__)

COINBASE_SPOT_URL = "https://api.coinbase.com/v2/prices/BTC-{currency}/spot"
COINGECKO_SIMPLE_URL = "https://api.coingecko.com/api/v3/simple/price"

SOURCE_COINBASE = "coinbase_spot"
SOURCE_COINGECKO = "coingecko_simple_price"
SOURCE_NONE = "none"

SATS_PER_BTC = Decimal(100_000_000)
PRICE_TTL_SECS = 30
PRICE_TIMEOUT_SECS = 10.0


class SpotQuote(BaseModel):
    amount_fiat: Decimal
    currency: str
    btc_price: Decimal
    sats: int
    source: str
    quoted_at: int


def fiat_to_sats(amount: Decimal, btc_price: Decimal) -> int:
    """ceil(amount / prix * 1e8), plancher 0."""
    if amount <= 0 or btc_price <= 0:
        return 0
    sats = (Decimal(amount) * SATS_PER_BTC / Decimal(btc_price)).to_integral_value(rounding=ROUND_CEILING)
    return max(0, int(sats))


def _positive_decimal(raw) -> Optional[Decimal]:
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


class PriceOracle:
    def __init__(self, http: httpx.Client, clock: Optional[Callable[[], float]] = None,
                 timeout: float = PRICE_TIMEOUT_SECS):
        self.http = http
        self._clock = clock or time.time
        self.timeout = timeout
        self._cache = TTLCache(PRICE_TTL_SECS, clock=self._clock)

    def convert(self, amount, currency: str) -> SpotQuote:
        currency = (currency or "").strip().upper()
        amount = Decimal(str(amount))
        now = int(self._clock())
        if amount <= 0:
            return SpotQuote(amount_fiat=amount, currency=currency, btc_price=Decimal(0), sats=0,
                             source=SOURCE_NONE, quoted_at=now)

        for source, fetch in ((SOURCE_COINBASE, self._coinbase), (SOURCE_COINGECKO, self._coingecko)):
            price = self._cached_price(source, currency, fetch)
            if price is not None:
                return SpotQuote(
                    amount_fiat=amount,
                    currency=currency,
                    btc_price=price,
                    sats=fiat_to_sats(amount, price),
                    source=source,
                    quoted_at=now,
                )
        raise PriceUnavailable(f"Prix BTC/{currency} indisponible (Coinbase et CoinGecko en échec)")

    def _cached_price(self, source: str, currency: str, fetch) -> Optional[Decimal]:
        key = (source, currency)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        try:
            price = fetch(currency)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("oracle %s %s en échec: %s", source, currency, e)
            return None
        if price is None:
            return None
        self._cache.set(key, price)
        return price

    def _get_json(self, url: str, params=None):
        res = self.http.get(url, params=params, timeout=self.timeout,
                            headers={"Accept": "application/json"})
        res.raise_for_status()
        data = res.json()
        logger.debug("oracle GET %s -> %s", res.request.url, data)
        return data

    def _coinbase(self, currency: str) -> Optional[Decimal]:
        data = self._get_json(COINBASE_SPOT_URL.format(currency=currency))
        spot = data.get("data") if isinstance(data, dict) else None
        if not isinstance(spot, dict):
            logger.warning("coinbase: réponse inattendue")
            return None
        if str(spot.get("currency") or "").upper() != currency:
            logger.warning("coinbase: devise %s != %s", spot.get("currency"), currency)
            return None
        return _positive_decimal(spot.get("amount"))

    def _coingecko(self, currency: str) -> Optional[Decimal]:
        cur = currency.lower()
        data = self._get_json(COINGECKO_SIMPLE_URL, params={"ids": "bitcoin", "vs_currencies": cur})
        btc = data.get("bitcoin") if isinstance(data, dict) else None
        if not isinstance(btc, dict) or cur not in btc:
            logger.warning("coingecko: réponse inattendue")
            return None
        return _positive_decimal(btc.get(cur))
