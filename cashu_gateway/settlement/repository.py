# module cashu_gateway.settlement.repository
"""
Accès Supabase du règlement Cashu (client service-role).
Tables: commandes, cashu_settlements, cashu_change_tokens (UNIQUE order_id+token), commande_notes.
- Les lectures retournent None si la ligne est absente.
- Les écritures journalisent puis relancent l'erreur (jamais avalée).
- Les doublons (23505) sur cashu_change_tokens et sur commande_notes (note_key) signifient "déjà stocké".
- Transition payée rejouable: mark_settlement_paid, puis mark_order_paid, puis note clé "paid:<devis>".
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from postgrest.exceptions import APIError

from cashu_gateway.infra.supabase_client import get_service_supabase
from cashu_gateway.settlement.models import Order, OrderSettlementRecord, SettlementState

logger = logging.getLogger(__name__)

ORDERS_TABLE = "commandes"
SETTLEMENTS_TABLE = "cashu_settlements"
TOKENS_TABLE = "cashu_change_tokens"
NOTES_TABLE = "commande_notes"


def _first(res) -> Optional[Dict[str, Any]]:
    data = res.data or []
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None


def _is_duplicate(e: APIError) -> bool:
    code = getattr(e, "code", None)
    if not code and e.args and isinstance(e.args[0], dict):
        code = e.args[0].get("code")
    return code == "23505"


def get_order(order_id: int) -> Optional[Order]:
    res = (
        get_service_supabase()
        .table(ORDERS_TABLE)
        .select("id, order_key, total, currency, payment_method, status, transaction_id, paid_at")
        .eq("id", order_id)
        .limit(1)
        .execute()
    )
    row = _first(res)
    return Order.model_validate(row) if row else None


def list_change_tokens(order_id: int) -> List[str]:
    res = (
        get_service_supabase()
        .table(TOKENS_TABLE)
        .select("token, created_at")
        .eq("order_id", order_id)
        .order("created_at")
        .execute()
    )
    return [r.get("token") for r in (res.data or []) if r.get("token")]


def load_record(order_id: int) -> OrderSettlementRecord:
    """Règlement typé de la commande (vide si aucune ligne), avec ses tokens de monnaie."""
    res = (
        get_service_supabase()
        .table(SETTLEMENTS_TABLE)
        .select("*")
        .eq("order_id", order_id)
        .limit(1)
        .execute()
    )
    row = _first(res) or {"order_id": order_id}
    record = OrderSettlementRecord.model_validate({k: v for k, v in row.items() if v is not None})
    record.change_tokens = list_change_tokens(order_id)
    return record


def save_quote_fields(record: OrderSettlementRecord) -> bool:
    """
    Écrit spot + melt en une seule requête, gardée par record.version.
    Retourne False si un autre écrivain est passé entre-temps (version différente ou ligne déjà créée)
    ou si le règlement est déjà scellé PAID.
    """
    client = get_service_supabase()
    payload = record.quote_fields()
    expected = record.version
    payload["version"] = expected + 1
    payload["updated_at"] = datetime.now(timezone.utc).isoformat()
    try:
        if expected == 0:
            res = client.table(SETTLEMENTS_TABLE).insert(payload).execute()
        else:
            res = (
                client.table(SETTLEMENTS_TABLE)
                .update(payload)
                .eq("order_id", record.order_id)
                .eq("version", expected)
                .neq("settlement_state", SettlementState.PAID.value)
                .execute()
            )
    except APIError as e:
        if _is_duplicate(e):
            return False
        logger.exception("save_quote_fields order=%s", record.order_id)
        raise
    if not _first(res):
        return False
    record.version = expected + 1
    return True


def append_change_token(order_id: int, token: str) -> Optional[Dict[str, Any]]:
    # Retourne None en cas de doublon (23505): le token est déjà stocké.
    payload = {"order_id": order_id, "token": token}
    try:
        res = get_service_supabase().table(TOKENS_TABLE).insert(payload).execute()
    except APIError as e:
        if _is_duplicate(e):
            return None
        logger.exception("append_change_token order=%s", order_id)
        raise
    return _first(res) or payload


def record_mint_state(order_id: int, state: str, preimage: Optional[str] = None) -> None:
    client = get_service_supabase()
    try:
        client.table(SETTLEMENTS_TABLE).update({"last_mint_state": state}).eq("order_id", order_id).execute()
        if preimage:
            # Posée une seule fois: jamais écrasée
            (
                client.table(SETTLEMENTS_TABLE)
                .update({"payment_preimage": preimage})
                .eq("order_id", order_id)
                .is_("payment_preimage", "null")
                .execute()
            )
    except APIError:
        logger.exception("record_mint_state order=%s", order_id)
        raise


def mark_settlement_paid(order_id: int) -> None:
    """
    Scelle le règlement: settlement_state = PAID. Idempotent.
    Posé avant la transition de la commande: save_quote_fields ne réécrit plus rien ensuite.
    """
    try:
        (
            get_service_supabase()
            .table(SETTLEMENTS_TABLE)
            .update({"settlement_state": SettlementState.PAID.value})
            .eq("order_id", order_id)
            .execute()
        )
    except APIError:
        logger.exception("mark_settlement_paid order=%s", order_id)
        raise


def mark_order_paid(order_id: int, transaction_id: Optional[str]) -> bool:
    """Compare-and-set: status != 'paid' -> 'paid'. True uniquement pour le gagnant."""
    now = datetime.now(timezone.utc).isoformat()
    try:
        res = (
            get_service_supabase()
            .table(ORDERS_TABLE)
            .update({"status": "paid", "transaction_id": transaction_id, "paid_at": now})
            .eq("id", order_id)
            .neq("status", "paid")
            .execute()
        )
    except APIError:
        logger.exception("mark_order_paid order=%s", order_id)
        raise
    return _first(res) is not None


def add_order_note(order_id: int, note: str, note_key: Optional[str] = None) -> bool:
    """
    Ajoute une note d'audit. Avec note_key (UNIQUE order_id+note_key), l'insertion est
    idempotente: False si la note existe déjà (23505).
    """
    payload: Dict[str, Any] = {"order_id": order_id, "note": note}
    if note_key:
        payload["note_key"] = note_key
    try:
        get_service_supabase().table(NOTES_TABLE).insert(payload).execute()
    except APIError as e:
        if note_key and _is_duplicate(e):
            return False
        logger.exception("add_order_note order=%s", order_id)
        raise
    return True
