import pytest

from cashu_gateway.checkout.service import start_checkout
from cashu_gateway.errors import Unauthorized, WrongGateway
from cashu_gateway.settlement.service import SettlementService

KEY = "wc_order_key"


class _QuoteManager:
    def __init__(self, store):
        self.store = store
        self.calls = 0

    def ensure_quotes(self, order):
        self.calls += 1
        self.store.add_settlement(
            order.id, spot_sats=20_000, spot_quoted_at=1_700_000_000, spot_btc_price="50000",
            total_fiat=str(order.total), currency=order.currency, melt_quote_id="mq-1",
            melt_quote_expiry=1_700_003_600, melt_mint="https://mint.example.com", melt_amount_sats=20_000,
            melt_fee_reserve_sats=200, melt_fee_sats=1, melt_total_sats=20_201,
        )
        return self.store.load_record(order.id)


@pytest.fixture
def settlement(gateway_config, fake_mint, clock):
    return SettlementService(gateway_config, fake_mint, clock=clock)


def test_zero_total_is_paid_without_quotes(store, settlement, fake_mint):
    store.add_order(total="0.00")
    quotes = _QuoteManager(store)

    data = start_checkout(1, KEY, settlement, quotes)

    assert data["state"] == "PAID"
    assert data["redirect"].endswith("/checkout/order-received/1?key=wc_order_key")
    assert store.orders[1]["status"] == "paid"
    assert quotes.calls == 0
    assert fake_mint.get_calls == fake_mint.create_calls == 0
    assert len(store.notes_for(1)) == 1


def test_payment_data_for_pending_order(store, settlement):
    store.add_order()
    data = start_checkout(1, KEY, settlement, _QuoteManager(store))

    assert data["state"] == "PENDING"
    assert data["quote_id"] == "mq-1"
    assert data["trusted_mint"] == "https://mint.example.com"
    assert data["amount_sats"] == 20_000
    assert data["fee_reserve_sats"] == 200
    assert data["mint_fee_sats"] == 1
    assert data["pay_amount_sats"] == 20_201
    assert data["spot_sats"] == 20_000
    assert data["btc_price"] == "50000"
    assert data["currency"] == "EUR"
    assert data["spot_expiry"] == 1_700_000_000 + 900


def test_checkout_requires_key_and_gateway(store, settlement):
    store.add_order(payment_method="bacs")
    with pytest.raises(Unauthorized):
        start_checkout(1, "nope", settlement, _QuoteManager(store))
    with pytest.raises(WrongGateway):
        start_checkout(1, KEY, settlement, _QuoteManager(store))
