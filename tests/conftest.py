import os
import threading
from decimal import Decimal
from typing import Any, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

from cashu_gateway.app_setup.factory import create_app
from cashu_gateway.errors import MintHttpError
from cashu_gateway.mint.client import MeltQuote
from cashu_gateway.settings import GatewayConfig
from cashu_gateway.settlement.models import Order, OrderSettlementRecord, SettlementState

TRUSTED_MINT = "https://mint.example.com"
LN_ADDRESS = "shop@pay.example.com"
NOW = 1_700_000_000


# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)


class FakeClock:
    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeStore:
    """
    Remplace cashu_gateway.settlement.repository en mémoire.
    Mêmes garanties que Supabase: UNIQUE(order_id, token), compare-and-set sur status, version optimiste.
    """

    def __init__(self):
        self.orders: Dict[int, Dict[str, Any]] = {}
        self.settlements: Dict[int, Dict[str, Any]] = {}
        self.tokens: List[tuple] = []
        self.notes: List[tuple] = []
        self.note_keys: set = set()
        self.writes = 0
        self.fail_mark_paid = False
        self.fail_notes = 0
        self._lock = threading.Lock()

    # --- seed ---
    def add_order(self, order_id=1, order_key="wc_order_key", total="10.00", currency="EUR",
                  payment_method="cashu", status="pending"):
        self.orders[order_id] = {
            "id": order_id, "order_key": order_key, "total": Decimal(total), "currency": currency,
            "payment_method": payment_method, "status": status, "transaction_id": None, "paid_at": None,
        }
        return self.orders[order_id]

    def add_settlement(self, order_id=1, **fields):
        row = {"order_id": order_id, "version": 1, "settlement_state": "PENDING"}
        row.update(fields)
        self.settlements[order_id] = row
        return row

    def notes_for(self, order_id):
        return [n for (o, n) in self.notes if o == order_id]

    # --- repository ---
    def get_order(self, order_id):
        row = self.orders.get(order_id)
        return Order.model_validate(row) if row else None

    def list_change_tokens(self, order_id):
        return [t for (o, t) in self.tokens if o == order_id]

    def load_record(self, order_id):
        row = dict(self.settlements.get(order_id) or {"order_id": order_id})
        record = OrderSettlementRecord.model_validate({k: v for k, v in row.items() if v is not None})
        record.change_tokens = self.list_change_tokens(order_id)
        return record

    def save_quote_fields(self, record):
        with self._lock:
            current = self.settlements.get(record.order_id)
            if (current or {}).get("version", 0) != record.version:
                return False
            if (current or {}).get("settlement_state") == SettlementState.PAID.value:
                return False
            merged = dict(current or {})
            merged.update(record.quote_fields())
            merged["version"] = record.version + 1
            self.settlements[record.order_id] = merged
            self.writes += 1
            record.version += 1
            return True

    def append_change_token(self, order_id, token):
        with self._lock:
            if (order_id, token) in self.tokens:
                return None
            self.tokens.append((order_id, token))
            return {"order_id": order_id, "token": token}

    def record_mint_state(self, order_id, state, preimage=None):
        with self._lock:
            row = self.settlements.setdefault(order_id, {"order_id": order_id})
            row["last_mint_state"] = state
            if preimage and not row.get("payment_preimage"):
                row["payment_preimage"] = preimage

    def mark_settlement_paid(self, order_id):
        with self._lock:
            row = self.settlements.setdefault(order_id, {"order_id": order_id})
            row["settlement_state"] = SettlementState.PAID.value

    def mark_order_paid(self, order_id, transaction_id):
        if self.fail_mark_paid:
            raise RuntimeError("supabase indisponible")
        with self._lock:
            order = self.orders[order_id]
            if order["status"] == "paid":
                return False
            order.update({"status": "paid", "transaction_id": transaction_id, "paid_at": "now"})
            return True

    def add_order_note(self, order_id, note, note_key=None):
        with self._lock:
            if self.fail_notes:
                self.fail_notes -= 1
                raise RuntimeError("insertion de note impossible")
            if note_key:
                if (order_id, note_key) in self.note_keys:
                    return False
                self.note_keys.add((order_id, note_key))
            self.notes.append((order_id, note))
            return True


class FakeMint:
    """Client mint scripté: compte les appels réseau."""

    def __init__(self, mint_url: str = TRUSTED_MINT):
        self.mint_url = mint_url
        self.state = "UNPAID"
        self.preimage: Optional[str] = None
        self.keysets = [{"id": "00ab", "unit": "sat", "active": True, "input_fee_ppk": 100}]
        self.next_quote = {"quote": "mq-1", "amount": 21_000, "fee_reserve": 210, "unit": "sat", "expiry": NOW + 3600}
        self.unknown_quotes: set = set()
        self.get_calls = 0
        self.lookup_calls = 0
        self.create_calls = 0
        self.keyset_calls = 0

    def get_melt_quote(self, quote_id):
        self.get_calls += 1
        return MeltQuote(quote=quote_id, amount=21_000, fee_reserve=210, state=self.state,
                         expiry=NOW + 3600, payment_preimage=self.preimage)

    def lookup_melt_quote(self, quote_id):
        self.lookup_calls += 1
        if quote_id in self.unknown_quotes:
            raise MintHttpError("Le mint a répondu HTTP 404", http_status=404)
        return MeltQuote(quote=quote_id, amount=21_000, fee_reserve=210, state=self.state, expiry=NOW + 3600)

    def create_melt_quote(self, bolt11, unit="sat"):
        self.create_calls += 1
        return MeltQuote.from_mint(dict(self.next_quote, request=bolt11))

    def get_keysets(self):
        self.keyset_calls += 1
        return list(self.keysets)


@pytest.fixture
def store(monkeypatch) -> FakeStore:
    fake = FakeStore()
    for name in ("get_order", "list_change_tokens", "load_record", "save_quote_fields", "append_change_token",
                 "record_mint_state", "mark_settlement_paid", "mark_order_paid", "add_order_note"):
        monkeypatch.setattr(f"cashu_gateway.settlement.repository.{name}", getattr(fake, name))
    return fake


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_mint() -> FakeMint:
    return FakeMint()


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        trusted_mint=TRUSTED_MINT,
        lightning_address=LN_ADDRESS,
        base_url="https://shop.example.com",
    )


@pytest.fixture
def app():
    return create_app()


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
