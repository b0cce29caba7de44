import httpx
import pytest

from cashu_gateway.errors import MintHttpError, MintNotConfigured, MintUnreachable
from cashu_gateway.mint.client import MeltQuote, MintClient

MINT = "https://mint.example.com"


class _Clock:
    def __init__(self):
        self.now = 1_700_000_000

    def __call__(self):
        return self.now


def _client(handler, clock=None):
    calls = []

    def _wrapped(request):
        calls.append((request.method, request.url.path))
        return handler(request)

    return MintClient(MINT + "/", httpx.Client(transport=httpx.MockTransport(_wrapped)), clock=clock or _Clock()), calls


def test_create_melt_quote_posts_bolt11():
    def handler(request):
        assert request.method == "POST"
        assert request.url.path == "/v1/melt/quote/bolt11"
        return httpx.Response(200, json={"quote": "q1", "amount": 100, "fee_reserve": 2, "unit": "sat",
                                         "state": "UNPAID", "expiry": 1_700_003_600})

    mint, _ = _client(handler)
    quote = mint.create_melt_quote("lnbc1xyz")
    assert quote.quote == "q1"
    assert quote.request == "lnbc1xyz"
    assert quote.fee_reserve == 2


def test_lookup_uses_cache_until_expiry_get_always_queries():
    clock = _Clock()

    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"quote": "q1", "amount": 100, "fee_reserve": 2, "unit": "sat",
                                             "expiry": clock.now + 60})
        return httpx.Response(200, json={"quote": "q1", "amount": 100, "fee_reserve": 2, "state": "PENDING",
                                         "expiry": clock.now + 60})

    mint, calls = _client(handler, clock=clock)
    mint.create_melt_quote("lnbc1xyz")
    assert mint.lookup_melt_quote("q1").state == "UNPAID"
    assert len(calls) == 1
    assert mint.get_melt_quote("q1").state == "PENDING"
    assert len(calls) == 2
    clock.now += 61
    mint.lookup_melt_quote("q1")
    assert len(calls) == 3


def test_legacy_paid_flag():
    quote = MeltQuote.from_mint({"quote": "q", "amount": 5, "fee_reserve": None, "paid": True, "expiry": 10})
    assert quote.state == "PAID"
    assert quote.fee_reserve == 0


def test_transport_error_is_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    mint, _ = _client(handler)
    with pytest.raises(MintUnreachable) as exc:
        mint.get_melt_quote("q1")
    assert exc.value.code == "cashu_mint_error"
    assert exc.value.status_code == 502


def test_non_2xx_and_bad_json():
    mint, _ = _client(lambda r: httpx.Response(404, json={"detail": "quote not found"}))
    with pytest.raises(MintHttpError) as exc:
        mint.get_melt_quote("q1")
    assert exc.value.code == "cashu_mint_http"
    assert exc.value.http_status == 404

    mint, _ = _client(lambda r: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(MintHttpError) as exc:
        mint.get_melt_quote("q1")
    assert exc.value.code == "cashu_mint_json"


def test_keysets_and_unconfigured():
    mint, _ = _client(lambda r: httpx.Response(200, json={"keysets": [{"id": "a", "unit": "sat"}, "junk"]}))
    assert mint.get_keysets() == [{"id": "a", "unit": "sat"}]
    with pytest.raises(MintNotConfigured):
        MintClient("", httpx.Client()).get_keysets()
