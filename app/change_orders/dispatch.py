"""Send a change order PDF to the project's client.

The steps run strictly in order and each one either succeeds or raises
before anything is written:

    1. linked client        -> NoClientLinked
    2. client contact email -> NoContactEmail
    3. PDF                  (render errors propagate)
    4. Resend email         -> DispatchFailed
    5. commit sent_at / sent_to_email / status

The caller holds the change order's lock for the whole pipeline.
"""
from dataclasses import dataclass
from loguru import logger

from app.change_orders import repository
from app.change_orders.directory import (
    build_artifact_context,
    get_contact_email,
    get_linked_client,
)
from app.change_orders.errors import DispatchFailed, NoClientLinked, NoContactEmail
from app.change_orders.financials import format_signed_currency
from app.change_orders.lifecycle import Action, status_after
from app.models.change_order import ChangeOrder
from app.notifications.email_sender import EmailAttachment, send_email
from app.notifications.email_templates import (
    render_client_sign_request,
    sign_request_subject,
)
from app.notifications.token_service import client_sign_url
from app.pdf.change_order_generator import (
    PDF_MIME_TYPE,
    generate_change_order_pdf,
    pdf_filename,
)


@dataclass
class Recipient:
    client_id: str
    client_name: str
    email: str


def resolve_recipient(co: ChangeOrder) -> Recipient:
    client = get_linked_client(co.project_id)
    if not client:
        raise NoClientLinked(co.project_id)
    email = get_contact_email(client["id"])
    if not email:
        raise NoContactEmail(client["id"])
    return Recipient(
        client_id=str(client["id"]),
        client_name=client.get("name") or "",
        email=email,
    )


async def dispatch(co: ChangeOrder, action: Action) -> ChangeOrder:
    """Run the pipeline for SEND or RESEND and return the committed record."""
    is_reminder = action == Action.RESEND
    recipient = resolve_recipient(co)

    context = build_artifact_context(co)
    pdf_bytes = await generate_change_order_pdf(co, context)
    attachment = EmailAttachment(
        filename=pdf_filename(co),
        content=pdf_bytes,
        content_type=PDF_MIME_TYPE,
    )

    project_label = " · ".join(
        p for p in (context.project_number, context.project_address) if p
    )
    credit = co.amount < 0
    html = render_client_sign_request(
        client_name=recipient.client_name,
        company_name=context.company_name,
        project_label=project_label,
        co_number=co.co_number,
        title=co.title,
        description=co.description or "",
        total=format_signed_currency(co.amount, credit),
        is_credit=credit,
        sign_url=client_sign_url(co.id, recipient.email),
        is_reminder=is_reminder,
    )
    result = await send_email(
        to=recipient.email,
        subject=sign_request_subject(
            co.co_number, co.title, context.company_name, is_reminder
        ),
        html=html,
        attachments=[attachment],
        reply_to=context.company_email or None,
    )
    if not result:
        raise DispatchFailed(recipient.email, result.error)

    # Only now is the send real; record it.
    updated = await repository.guarded_update(
        co,
        action,
        {
            "sent_at": repository.now_utc(),
            "sent_to_email": recipient.email,
            "status": status_after(action, co),
        },
    )
    logger.info(
        f"{co.co_number} {'resent' if is_reminder else 'sent'} to "
        f"{recipient.email} (message id={result.message_id})"
    )
    return updated
