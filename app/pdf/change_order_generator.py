"""Change Order PDF generator using WeasyPrint.

The document is a pure function of the change order snapshot, the artifact
context (company, project, client, signer) and the "generated at" stamp in
the footer. Pass the same three in and you get the same HTML, and so the
same PDF layout, back out.
"""
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID
from loguru import logger
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.change_orders.directory import ArtifactContext, build_artifact_context
from app.change_orders.financials import (
    compute_deposit,
    format_signed_currency,
    resolved_line_items,
)
from app.models.change_order import ChangeOrder, ChangeOrderStatus
from app.signatures.capture import DATA_URL_PREFIX

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "change_order.html"
PDF_MIME_TYPE = "application/pdf"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
    keep_trailing_newline=True,
)


def _format_date(value) -> str:
    """Format an ISO date string or datetime as ``February 25, 2026``."""
    if not value:
        return "—"
    try:
        if isinstance(value, str):
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        elif isinstance(value, datetime):
            dt = value
        else:
            return str(value)
        return f"{dt:%B} {dt.day}, {dt.year}"
    except (ValueError, AttributeError):
        return str(value)


def _image_src(signature_data: str | None) -> str | None:
    if not signature_data:
        return None
    if signature_data.startswith("data:"):
        return signature_data
    return DATA_URL_PREFIX + signature_data


def pdf_filename(co: ChangeOrder) -> str:
    return f"{co.co_number}.pdf"


def build_template_context(
    co: ChangeOrder,
    context: ArtifactContext,
    generated_at: datetime,
) -> dict:
    credit = co.amount < 0
    deposit_pct = co.deposit_percentage or 0

    contact_line = "  ·  ".join(
        part
        for part in (
            context.company_address,
            f"Tel: {context.company_phone}" if context.company_phone else "",
            context.company_email,
        )
        if part
    )

    return {
        "company": context,
        "contact_line": contact_line,
        "co_number": co.co_number,
        "co_date": _format_date(co.created_at),
        "requested_by": co.requested_by.value if co.requested_by else "",
        "title": co.title,
        "description": co.description or "",
        "reason": co.reason or "",
        "project_number": context.project_number,
        "project_address": context.project_address,
        "client_name": context.client_name or "—",
        "is_credit": credit,
        "items": [
            {
                "name": item.name,
                "description": item.description or "",
                "amount": format_signed_currency(item.amount, credit),
            }
            for item in resolved_line_items(co)
        ],
        "total_label": "Total Credit" if credit else "Total",
        "total": format_signed_currency(co.amount, credit),
        "deposit_percentage": f"{deposit_pct.normalize():f}" if deposit_pct > 0 else "",
        "deposit_amount": format_signed_currency(
            compute_deposit(co.amount, deposit_pct), False
        ),
        "internal_signature": _image_src(co.internal_signature_data),
        "internal_signer": context.signer_name or "Authorized Representative",
        "internal_signed_date": _format_date(co.internal_signed_at) if co.internal_signed_at else "",
        "client_signature": _image_src(co.client_signature_data),
        "client_signer": co.client_signer_name or "Client Representative",
        "client_signed_date": _format_date(co.client_signed_at) if co.client_signed_at else "",
        "is_voided": co.status == ChangeOrderStatus.VOIDED,
        "generated_at": generated_at.strftime("%Y-%m-%d %H:%M UTC"),
    }


def render_change_order_html(
    co: ChangeOrder,
    context: ArtifactContext,
    generated_at: datetime | None = None,
) -> str:
    generated_at = generated_at or datetime.now(timezone.utc)
    template = _env.get_template(TEMPLATE_NAME)
    return template.render(**build_template_context(co, context, generated_at))


def render_pdf(html_content: str) -> bytes:
    # Imported lazily: WeasyPrint loads Pango at import time.
    from weasyprint import HTML

    return HTML(string=html_content, base_url=str(TEMPLATE_DIR)).write_pdf()


async def generate_change_order_pdf(
    co: ChangeOrder,
    context: ArtifactContext | None = None,
    generated_at: datetime | None = None,
) -> bytes:
    """Render the change order to PDF bytes.

    Looks up the artifact context when the caller does not supply one.
    """
    if context is None:
        context = build_artifact_context(co)
    html_content = render_change_order_html(co, context, generated_at)
    pdf_bytes = render_pdf(html_content)
    logger.info(f"PDF generated for {co.co_number}: {len(pdf_bytes)} bytes")
    return pdf_bytes


async def persist_approved_artifact(change_order_id: UUID | str) -> str:
    """Upload a copy of the approved change order PDF to the document store.

    Same path on every run, so re-archiving overwrites the previous copy.
    Returns the storage path.
    """
    from app.change_orders import repository
    from app.processors.storage import change_order_path, upload_file

    co = await repository.fetch(change_order_id)
    pdf_bytes = await generate_change_order_pdf(co)
    storage_path = change_order_path(project_id=co.project_id, co_number=co.co_number)

    await upload_file(
        path=storage_path,
        file_bytes=pdf_bytes,
        content_type=PDF_MIME_TYPE,
    )
    await repository.record_transition(
        co,
        from_status=co.status.value,
        to_status=co.status.value,
        actor_type="system",
        metadata={
            "action": "pdf_archived",
            "pdf_size_bytes": len(pdf_bytes),
            "storage_path": storage_path,
        },
    )
    logger.info(f"PDF archived to {storage_path} for {co.co_number}")
    return storage_path
