import json

import httpx
import pytest

from cashu_gateway.errors import ConfirmFailed, GatewayError
from cashu_gateway.wallet import ConfirmClient


def _client(handler):
    return ConfirmClient("https://shop.example.com/", http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_confirm_posts_tokens_and_parses_result():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "state": "PAID", "redirect": "https://shop.example.com/r"})

    client = _client(handler)
    result = await client.confirm(7, "wc_order_key", ["cashuBabc"])
    await client.aclose()

    assert seen["url"] == "https://shop.example.com/api/v1/cashu/confirm-melt-quote"
    assert seen["body"] == {"order_id": 7, "order_key": "wc_order_key", "change_tokens": ["cashuBabc"]}
    assert result.state == "PAID"


@pytest.mark.asyncio
async def test_confirm_error_keeps_gateway_code():
    client = _client(lambda r: httpx.Response(403, json={"ok": False, "code": "cashu_forbidden", "message": "Accès refusé"}))
    with pytest.raises(GatewayError) as exc:
        await client.confirm(7, "bad", [])
    assert exc.value.code == "cashu_forbidden"
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_confirm_transport_error_is_retryable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ConfirmFailed) as exc:
        await _client(handler).confirm(7, "k", [])
    assert exc.value.retryable is True


@pytest.mark.asyncio
async def test_confirm_non_json_response():
    with pytest.raises(ConfirmFailed):
        await _client(lambda r: httpx.Response(502, text="<html>bad gateway</html>")).confirm(7, "k", [])
