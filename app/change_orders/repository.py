"""Change order persistence on Supabase.

Every write that follows a guard check is conditional: the row must still
carry one of the statuses the guard accepted and the ``updated_at`` version
that was read. If nothing matches, someone else got there first and the
caller gets a StoreConflict instead of a silent overwrite.
"""
import re
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID

from loguru import logger
from postgrest.exceptions import APIError
from pydantic import BaseModel

from app.change_orders.errors import ChangeOrderNotFound, StoreConflict
from app.change_orders.lifecycle import Action, STATUS_PRECONDITIONS
from app.config import get_settings
from app.database import get_supabase
from app.models.change_order import ChangeOrder
from app.models.shared import StateTransitionCreate

TABLE = "change_orders"
UNIQUE_VIOLATION = "23505"


def _jsonable(value):
    """Convert Decimals, UUIDs, datetimes, enums and models for PostgREST."""
    if isinstance(value, BaseModel):
        return _jsonable(value.model_dump())
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


async def fetch(change_order_id: UUID | str) -> ChangeOrder:
    db = get_supabase()
    result = (
        db.table(TABLE)
        .select("*")
        .eq("id", str(change_order_id))
        .maybe_single()
        .execute()
    )
    if not result or not result.data:
        raise ChangeOrderNotFound(change_order_id)
    return ChangeOrder.model_validate(result.data)


async def list_for_project(project_id: UUID | str) -> list[ChangeOrder]:
    db = get_supabase()
    result = (
        db.table(TABLE)
        .select("*")
        .eq("project_id", str(project_id))
        .order("created_at")
        .execute()
    )
    return [ChangeOrder.model_validate(row) for row in result.data]


def format_co_number(sequence: int) -> str:
    settings = get_settings()
    return f"{settings.co_number_prefix}{sequence:0{settings.co_number_digits}d}"


async def next_co_number(project_id: UUID | str) -> str:
    """Next sequential number within the project (CO-001, CO-002, ...)."""
    db = get_supabase()
    result = (
        db.table(TABLE)
        .select("co_number")
        .eq("project_id", str(project_id))
        .execute()
    )
    highest = 0
    for row in result.data:
        match = re.search(r"(\d+)$", row.get("co_number") or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return format_co_number(highest + 1)


async def insert(data: dict) -> ChangeOrder:
    db = get_supabase()
    now = now_utc()
    payload = _jsonable({**data, "created_at": now, "updated_at": now})
    try:
        result = db.table(TABLE).insert(payload).execute()
    except APIError as e:
        if e.code == UNIQUE_VIOLATION:
            raise StoreConflict(data.get("co_number"), "change order number already taken")
        raise
    return ChangeOrder.model_validate(result.data[0])


async def _explain_miss(co: ChangeOrder, action: Action):
    db = get_supabase()
    current = (
        db.table(TABLE)
        .select("id, status, updated_at")
        .eq("id", str(co.id))
        .maybe_single()
        .execute()
    )
    if not current or not current.data:
        raise ChangeOrderNotFound(co.id)
    logger.warning(
        f"Conditional {action.value} on {co.co_number} matched no row "
        f"(read status={co.status.value}, now={current.data.get('status')})"
    )
    raise StoreConflict(co.id, f"status is now '{current.data.get('status')}'")


async def guarded_update(co: ChangeOrder, action: Action, changes: dict) -> ChangeOrder:
    """Apply ``changes`` iff the row is still as ``co`` was read."""
    db = get_supabase()
    payload = _jsonable({**changes, "updated_at": now_utc()})
    allowed = sorted(s.value for s in STATUS_PRECONDITIONS[action])
    query = (
        db.table(TABLE)
        .update(payload)
        .eq("id", str(co.id))
        .in_("status", allowed)
    )
    if co.updated_at is not None:
        query = query.eq("updated_at", co.updated_at.isoformat())
    result = query.execute()
    if not result.data:
        await _explain_miss(co, action)
    return ChangeOrder.model_validate(result.data[0])


async def guarded_delete(co: ChangeOrder) -> None:
    db = get_supabase()
    allowed = sorted(s.value for s in STATUS_PRECONDITIONS[Action.DELETE])
    query = db.table(TABLE).delete().eq("id", str(co.id)).in_("status", allowed)
    if co.updated_at is not None:
        query = query.eq("updated_at", co.updated_at.isoformat())
    result = query.execute()
    if not result.data:
        await _explain_miss(co, Action.DELETE)


async def record_transition(
    co: ChangeOrder,
    from_status: str | None,
    to_status: str,
    actor_id: UUID | None = None,
    actor_type: str = "user",
    metadata: dict | None = None,
) -> None:
    """Append an audit row to ``state_transitions``."""
    entry = StateTransitionCreate(
        entity_id=co.id,
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        actor_type=actor_type,
        metadata={"co_number": co.co_number, **(metadata or {})},
    )
    db = get_supabase()
    db.table("state_transitions").insert(_jsonable(entry)).execute()
