"""Change order engine.

Every operation follows the same shape: take the record's lock, re-read the
record, check the guard, then write conditionally. Guard failures raise
before anything is written. After a successful write the transition is
appended to ``state_transitions`` and published to the company's event
channel.
"""
from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from loguru import logger

from app.change_orders import repository
from app.change_orders.directory import get_profile_name, get_project
from app.change_orders.dispatch import dispatch
from app.change_orders.errors import GuardViolation, StoreConflict
from app.change_orders.financials import (
    approved_total,
    canonical_line_items,
    compute_deposit,
    compute_total,
    resolved_line_items,
)
from app.change_orders.lifecycle import (
    Action,
    allowed_actions,
    initial_status,
    require,
    status_after,
)
from app.change_orders.locks import record_lock
from app.events.publisher import publish_event
from app.models.change_order import (
    ChangeOrder,
    ChangeOrderCreate,
    ChangeOrderResponse,
    ChangeOrderUpdate,
    STATUS_LABELS,
    TimelineEntry,
)
from app.pdf.change_order_generator import generate_change_order_pdf
from app.signatures.capture import Signature, encode_data_url, require_ink
from app.signatures.profile import save_signature as save_profile_signature
from app.workers.artifact_archiver import enqueue_archival

CO_NUMBER_ATTEMPTS = 3


async def _audit(
    co: ChangeOrder,
    from_status: str | None,
    to_status: str,
    event: str,
    actor_id: UUID | None = None,
    actor_type: str = "user",
    metadata: dict | None = None,
) -> bool:
    """Append the audit row for a change that is already committed.

    A failure here cannot undo the transition, so it is logged and the
    caller carries on.
    """
    try:
        await repository.record_transition(
            co,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            actor_type=actor_type,
            metadata={"action": event, **(metadata or {})},
        )
        return True
    except Exception as e:
        logger.warning(f"{co.co_number}: audit row for '{event}' not written: {e}")
        return False


async def _transitioned(
    before: ChangeOrder | None,
    after: ChangeOrder,
    event: str,
    actor_id: UUID | None = None,
    actor_type: str = "user",
    metadata: dict | None = None,
):
    """Audit and announce a committed change."""
    await _audit(
        after,
        from_status=before.status.value if before is not None else None,
        to_status=after.status.value,
        event=event,
        actor_id=actor_id,
        actor_type=actor_type,
        metadata=metadata,
    )
    if after.company_id:
        await publish_event(
            company_id=str(after.company_id),
            event_type=f"change_order.{event}",
            data={
                "change_order_id": str(after.id),
                "project_id": str(after.project_id),
                "co_number": after.co_number,
                "status": after.status.value,
            },
        )
    logger.info(
        f"{after.co_number}: {event} "
        f"({before.status.value if before is not None else 'new'} → {after.status.value})"
    )


def _signature_png(signature: Signature | str | bytes | None) -> bytes:
    if isinstance(signature, Signature):
        signature = signature.image_png
    return require_ink(signature)


def _capture_metadata(signature, source: str) -> dict:
    """Where the signature came from, for the audit row."""
    if isinstance(signature, Signature):
        return {
            "signature_source": signature.source,
            "captured_at": signature.captured_at.isoformat(),
        }
    return {"signature_source": source}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get(change_order_id: UUID | str) -> ChangeOrder:
    return await repository.fetch(change_order_id)


async def list_for_project(project_id: UUID | str) -> list[ChangeOrder]:
    return await repository.list_for_project(project_id)


async def approved_total_for_project(project_id: UUID | str) -> Decimal:
    return approved_total(await repository.list_for_project(project_id))


def to_response(co: ChangeOrder) -> ChangeOrderResponse:
    return ChangeOrderResponse(
        **co.model_dump(),
        status_label=STATUS_LABELS[co.status],
        deposit_amount=compute_deposit(co.amount, co.deposit_percentage),
        allowed_actions=sorted(a.value for a in allowed_actions(co)),
    )


def build_timeline(
    co: ChangeOrder,
    created_by_name: str | None = None,
    signer_name: str | None = None,
) -> list[TimelineEntry]:
    """Reached lifecycle milestones, always in lifecycle order."""
    milestones: list[tuple[str, str | None, datetime | None]] = [
        ("created", created_by_name, co.created_at),
        ("internally_signed", signer_name, co.internal_signed_at),
        ("sent", co.sent_to_email, co.sent_at),
        ("client_signed", co.client_signer_name, co.client_signed_at),
        ("approved", None, co.approved_at),
    ]
    return [
        TimelineEntry(event=event, actor=actor or None, at=at)
        for event, actor, at in milestones
        if at is not None
    ]


async def timeline(change_order_id: UUID | str) -> list[TimelineEntry]:
    co = await repository.fetch(change_order_id)
    return build_timeline(
        co,
        created_by_name=get_profile_name(co.created_by),
        signer_name=get_profile_name(co.internal_signed_by),
    )


async def generate_artifact(change_order_id: UUID | str) -> bytes:
    co = await repository.fetch(change_order_id)
    return await generate_change_order_pdf(co)


# ---------------------------------------------------------------------------
# Create / edit / delete
# ---------------------------------------------------------------------------


async def create(
    data: ChangeOrderCreate,
    as_draft: bool = True,
    actor_id: UUID | None = None,
) -> ChangeOrder:
    """Create a change order as ``draft`` or, with ``as_draft=False``, as
    ``pending_internal``. Needs at least one line item."""
    items = canonical_line_items(data.line_items)
    if not items:
        raise GuardViolation("create", "new", "add at least one line item")

    project = get_project(data.project_id) or {}
    if not project:
        logger.warning(f"Creating change order for unknown project {data.project_id}")

    record = {
        **data.model_dump(exclude={"line_items"}),
        "line_items": items,
        "amount": compute_total(items, data.requested_by),
        "status": initial_status(as_draft),
        "company_id": project.get("company_id"),
        "created_by": actor_id,
    }

    # Numbers are per project; serialize numbering within this worker and
    # retry if another worker took the same number.
    async with record_lock("project", data.project_id):
        for attempt in range(1, CO_NUMBER_ATTEMPTS + 1):
            record["id"] = uuid4()
            record["co_number"] = await repository.next_co_number(data.project_id)
            try:
                co = await repository.insert(record)
                break
            except StoreConflict:
                if attempt == CO_NUMBER_ATTEMPTS:
                    raise
                logger.warning(
                    f"{record['co_number']} already taken on project "
                    f"{data.project_id}, retrying ({attempt}/{CO_NUMBER_ATTEMPTS})"
                )

    await _transitioned(None, co, "created", actor_id=actor_id)
    return co


async def edit(
    change_order_id: UUID | str,
    patch: ChangeOrderUpdate,
    actor_id: UUID | None = None,
) -> ChangeOrder:
    async with record_lock("change_order", change_order_id):
        co = await repository.fetch(change_order_id)
        require(Action.EDIT, co)

        changes = patch.model_dump(exclude_unset=True, exclude={"as_draft", "line_items"})
        if changes.get("title", "") is None:
            del changes["title"]
        if patch.line_items is not None:
            items = canonical_line_items(patch.line_items)
        else:
            items = resolved_line_items(co)
        if not items:
            raise GuardViolation("edit", co.status.value, "at least one line item is required")

        requested_by = changes["requested_by"] if "requested_by" in changes else co.requested_by
        changes["line_items"] = items
        changes["amount"] = compute_total(items, requested_by)
        if patch.as_draft is not None:
            changes["status"] = initial_status(patch.as_draft)

        updated = await repository.guarded_update(co, Action.EDIT, changes)

    await _transitioned(co, updated, "updated", actor_id=actor_id)
    return updated


async def update_notes(
    change_order_id: UUID | str,
    notes: str | None,
    actor_id: UUID | None = None,
) -> ChangeOrder:
    """Internal notes. Allowed in any status and never part of the PDF."""
    async with record_lock("change_order", change_order_id):
        co = await repository.fetch(change_order_id)
        require(Action.UPDATE_NOTES, co)
        updated = await repository.guarded_update(co, Action.UPDATE_NOTES, {"notes": notes})
    logger.debug(f"{co.co_number}: notes updated by {actor_id}")
    return updated


async def delete(change_order_id: UUID | str, actor_id: UUID | None = None) -> None:
    async with record_lock("change_order", change_order_id):
        co = await repository.fetch(change_order_id)
        require(Action.DELETE, co)
        await repository.guarded_delete(co)
    await _audit(co, co.status.value, "deleted", "deleted", actor_id=actor_id)
    logger.info(f"{co.co_number}: deleted")


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


async def sign_internally(
    change_order_id: UUID | str,
    signature: Signature | str | bytes | None,
    signer_id: UUID,
    save_signature: bool = True,
    source: str = "drawn",
) -> ChangeOrder:
    """Record the firm's signature and move the change order to the client.

    ``source`` says whether the signer drew it or reused their saved
    signature; a ``Signature`` carries its own. With ``save_signature`` the
    signature also replaces the signer's saved profile signature once the
    change order is signed.
    """
    async with record_lock("change_order", change_order_id):
        co = await repository.fetch(change_order_id)
        require(Action.SIGN_INTERNALLY, co)
        signature_data = encode_data_url(_signature_png(signature))

        updated = await repository.guarded_update(
            co,
            Action.SIGN_INTERNALLY,
            {
                "internal_signed_at": repository.now_utc(),
                "internal_signed_by": signer_id,
                "internal_signature_data": signature_data,
                "status": status_after(Action.SIGN_INTERNALLY, co),
            },
        )

    await _transitioned(
        co,
        updated,
        "internally_signed",
        actor_id=signer_id,
        metadata=_capture_metadata(signature, source),
    )
    if save_signature:
        try:
            await save_profile_signature(signer_id, signature_data)
        except Exception as e:
            logger.warning(f"Saved signature for profile {signer_id} not updated: {e}")
    return updated


async def client_sign(
    change_order_id: UUID | str,
    signer_name: str,
    signature: Signature | str | bytes | None,
) -> ChangeOrder:
    """Client signature from the emailed link. Approves the change order."""
    async with record_lock("change_order", change_order_id):
        co = await repository.fetch(change_order_id)
        require(Action.CLIENT_SIGN, co)
        signature_data = encode_data_url(_signature_png(signature))
        now = repository.now_utc()

        updated = await repository.guarded_update(
            co,
            Action.CLIENT_SIGN,
            {
                "client_signed_at": now,
                "client_signer_name": signer_name.strip(),
                "client_signature_data": signature_data,
                "approved_at": now,
                "status": status_after(Action.CLIENT_SIGN, co),
            },
        )

    await _transitioned(
        co,
        updated,
        "client_signed",
        actor_type="client",
        metadata={
            "signer_name": updated.client_signer_name,
            **_capture_metadata(signature, "drawn"),
        },
    )
    enqueue_archival(updated.id)
    return updated


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


async def send(change_order_id: UUID | str, actor_id: UUID | None = None) -> ChangeOrder:
    async with record_lock("change_order", change_order_id):
        co = await repository.fetch(change_order_id)
        require(Action.SEND, co)
        updated = await dispatch(co, Action.SEND)
    await _transitioned(
        co, updated, "sent", actor_id=actor_id, metadata={"to": updated.sent_to_email}
    )
    return updated


async def resend(change_order_id: UUID | str, actor_id: UUID | None = None) -> ChangeOrder:
    async with record_lock("change_order", change_order_id):
        co = await repository.fetch(change_order_id)
        require(Action.RESEND, co)
        updated = await dispatch(co, Action.RESEND)
    await _transitioned(
        co, updated, "resent", actor_id=actor_id, metadata={"to": updated.sent_to_email}
    )
    return updated


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


async def approve(
    change_order_id: UUID | str,
    actor_id: UUID | None = None,
    client_signer_name: str | None = None,
    client_signature: Signature | str | bytes | None = None,
) -> ChangeOrder:
    """Mark approved, optionally recording a client signature collected
    outside the emailed link. The PDF copy is archived in the background;
    if that fails the change order stays approved."""
    async with record_lock("change_order", change_order_id):
        co = await repository.fetch(change_order_id)
        require(Action.APPROVE, co)

        now = repository.now_utc()
        changes = {
            "approved_at": now,
            "status": status_after(Action.APPROVE, co),
        }
        if client_signature is not None:
            if co.sent_at is None:
                raise GuardViolation(
                    "approve",
                    co.status.value,
                    "a client signature can only be recorded after it was sent",
                )
            if co.client_signed_at is None:
                changes.update({
                    "client_signed_at": now,
                    "client_signature_data": encode_data_url(_signature_png(client_signature)),
                })
        signer_name = (client_signer_name or "").strip()
        if signer_name and co.sent_at is not None and co.client_signed_at is None:
            changes["client_signer_name"] = signer_name

        updated = await repository.guarded_update(co, Action.APPROVE, changes)

    await _transitioned(co, updated, "approved", actor_id=actor_id)
    enqueue_archival(updated.id)
    return updated


async def reject(change_order_id: UUID | str, actor_id: UUID | None = None) -> ChangeOrder:
    async with record_lock("change_order", change_order_id):
        co = await repository.fetch(change_order_id)
        require(Action.REJECT, co)
        updated = await repository.guarded_update(
            co, Action.REJECT, {"status": status_after(Action.REJECT, co)}
        )
    await _transitioned(co, updated, "rejected", actor_id=actor_id)
    return updated


async def void(change_order_id: UUID | str, actor_id: UUID | None = None) -> ChangeOrder:
    async with record_lock("change_order", change_order_id):
        co = await repository.fetch(change_order_id)
        require(Action.VOID, co)
        updated = await repository.guarded_update(
            co, Action.VOID, {"status": status_after(Action.VOID, co)}
        )
    await _transitioned(co, updated, "voided", actor_id=actor_id)
    return updated
