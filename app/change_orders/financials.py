"""Change order money math.

Line items are always stored and summed as absolute values. The credit or
charge sign lives only on the aggregate ``amount`` and is derived from who
requested the change, so it is recomputed from scratch on every edit.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from app.models.change_order import (
    ChangeOrder,
    ChangeOrderStatus,
    DetailedLineItems,
    LegacyNames,
    LineItem,
    RequestedBy,
)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce a numeric value (float, int, str, Decimal) to a 2 dp Decimal."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def is_credit(requested_by: RequestedBy | str | None) -> bool:
    """Internal-caused changes are credits to the client."""
    if isinstance(requested_by, RequestedBy):
        requested_by = requested_by.value
    return requested_by == RequestedBy.INTERNAL.value


def compute_total(line_items: Iterable[LineItem], requested_by) -> Decimal:
    raw_total = sum((abs(to_money(item.amount)) for item in line_items), ZERO)
    if is_credit(requested_by) and raw_total:
        return -raw_total
    return raw_total


def compute_deposit(amount, deposit_percentage) -> Decimal:
    pct = to_money(deposit_percentage)
    if pct <= 0:
        return ZERO
    return to_money(abs(to_money(amount)) * pct / 100)


def canonical_line_items(line_items: Iterable[LineItem]) -> list[LineItem]:
    """Strip per-line signs and round to cents."""
    return [
        LineItem(
            name=item.name,
            amount=abs(to_money(item.amount)),
            description=item.description or None,
        )
        for item in line_items
    ]


def split_evenly(total, count: int) -> list[Decimal]:
    """Split ``abs(total)`` into ``count`` cent amounts that sum exactly.

    Leftover cents go to the first entries, one cent each.
    """
    if count <= 0:
        return []
    total_cents = int(abs(to_money(total)) * 100)
    base, remainder = divmod(total_cents, count)
    return [
        Decimal(base + (1 if i < remainder else 0)) / 100
        for i in range(count)
    ]


def normalize_line_items(value: DetailedLineItems | LegacyNames) -> DetailedLineItems:
    if isinstance(value, DetailedLineItems):
        return DetailedLineItems(items=canonical_line_items(value.items))
    shares = split_evenly(value.total, len(value.names))
    return DetailedLineItems(
        items=[
            LineItem(name=name, amount=to_money(share))
            for name, share in zip(value.names, shares)
        ]
    )


def line_items_of(co: ChangeOrder) -> DetailedLineItems | LegacyNames:
    """Tag a stored record's line items with the shape it actually carries."""
    if co.line_items:
        return DetailedLineItems(items=co.line_items)
    if co.linked_service_names:
        return LegacyNames(names=co.linked_service_names, total=co.amount)
    return DetailedLineItems(items=[])


def resolved_line_items(co: ChangeOrder) -> list[LineItem]:
    return normalize_line_items(line_items_of(co)).items


def approved_total(change_orders: Iterable[ChangeOrder]) -> Decimal:
    """Net effect of approved change orders on a project's fee."""
    return sum(
        (to_money(co.amount) for co in change_orders if co.status == ChangeOrderStatus.APPROVED),
        ZERO,
    )


def format_currency(value) -> str:
    """``$1,234.50`` for the absolute value; callers add the credit sign."""
    return f"${abs(to_money(value)):,.2f}"


def format_signed_currency(value, credit: bool) -> str:
    text = format_currency(value)
    return f"-{text}" if credit else text
