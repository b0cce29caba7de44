from decimal import Decimal

import httpx
import pytest

from cashu_gateway.errors import PriceUnavailable
from cashu_gateway.pricing import oracle as oracle_mod
from cashu_gateway.pricing.oracle import PriceOracle, fiat_to_sats


class _Clock:
    def __init__(self, now=1_700_000_000):
        self.now = now

    def __call__(self):
        return self.now


def _oracle(handler, clock=None):
    calls = []

    def _wrapped(request: httpx.Request):
        calls.append(str(request.url))
        return handler(request)

    http = httpx.Client(transport=httpx.MockTransport(_wrapped))
    return PriceOracle(http, clock=clock or _Clock()), calls


def _coinbase_ok(price="50000", currency="USD"):
    def handler(request):
        if "coinbase" in request.url.host:
            return httpx.Response(200, json={"data": {"amount": price, "currency": currency, "base": "BTC"}})
        return httpx.Response(500)
    return handler


def test_fiat_to_sats_rounds_up():
    # 0.01 USD à 50 000 USD/BTC = 20 sats exactement, 0.011 -> 22
    assert fiat_to_sats(Decimal("0.01"), Decimal("50000")) == 20
    assert fiat_to_sats(Decimal("0.011"), Decimal("50000")) == 22
    assert fiat_to_sats(Decimal("1"), Decimal("30000")) == 3334
    assert fiat_to_sats(Decimal("0"), Decimal("30000")) == 0


def test_zero_amount_makes_no_network_call():
    o, calls = _oracle(_coinbase_ok())
    quote = o.convert(Decimal("0"), "usd")
    assert quote.sats == 0
    assert quote.btc_price == 0
    assert quote.source == "none"
    assert calls == []


def test_coinbase_primary():
    o, calls = _oracle(_coinbase_ok())
    quote = o.convert("0.01", "usd")
    assert quote.sats == 20
    assert quote.source == oracle_mod.SOURCE_COINBASE
    assert quote.currency == "USD"
    assert quote.btc_price == Decimal("50000")
    assert len(calls) == 1 and "BTC-USD" in calls[0]


def test_fallback_to_coingecko_on_coinbase_error():
    def handler(request):
        if "coinbase" in request.url.host:
            return httpx.Response(503)
        assert request.url.params["vs_currencies"] == "eur"
        return httpx.Response(200, json={"bitcoin": {"eur": 40000}})

    o, _ = _oracle(handler)
    quote = o.convert("4", "EUR")
    assert quote.source == oracle_mod.SOURCE_COINGECKO
    assert quote.sats == 10_000


def test_currency_mismatch_is_a_failure():
    def handler(request):
        if "coinbase" in request.url.host:
            return httpx.Response(200, json={"data": {"amount": "50000", "currency": "USD"}})
        return httpx.Response(200, json={"bitcoin": {"eur": 25000}})

    o, _ = _oracle(handler)
    assert o.convert("1", "EUR").source == oracle_mod.SOURCE_COINGECKO


def test_non_positive_price_is_a_failure():
    def handler(request):
        if "coinbase" in request.url.host:
            return httpx.Response(200, json={"data": {"amount": "0", "currency": "EUR"}})
        return httpx.Response(200, json={"bitcoin": {"eur": -1}})

    o, _ = _oracle(handler)
    with pytest.raises(PriceUnavailable) as exc:
        o.convert("1", "EUR")
    assert exc.value.retryable is True


def test_both_sources_down():
    def handler(request):
        raise httpx.ConnectError("down", request=request)

    o, _ = _oracle(handler)
    with pytest.raises(PriceUnavailable):
        o.convert("5", "USD")


def test_price_cached_30_seconds():
    clock = _Clock()
    o, calls = _oracle(_coinbase_ok(), clock=clock)
    o.convert("1", "USD")
    clock.now += 29
    o.convert("2", "USD")
    assert len(calls) == 1
    clock.now += 2
    o.convert("3", "USD")
    assert len(calls) == 2


def test_cache_is_per_currency():
    def handler(request):
        cur = "EUR" if "BTC-EUR" in str(request.url) else "USD"
        return httpx.Response(200, json={"data": {"amount": "50000", "currency": cur}})

    o, calls = _oracle(handler)
    o.convert("1", "USD")
    o.convert("1", "EUR")
    assert len(calls) == 2
