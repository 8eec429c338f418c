"""Read-only lookups the engine needs from the rest of the platform.

Projects, clients, contacts, company branding and profile names all live in
tables owned by other parts of the application. Nothing here writes.
"""
from dataclasses import dataclass
from uuid import UUID

from loguru import logger

from app.config import get_settings
from app.database import get_supabase
from app.models.change_order import ChangeOrder


@dataclass(frozen=True)
class ArtifactContext:
    """Everything the PDF needs besides the change order itself."""
    company_name: str
    company_address: str = ""
    company_phone: str = ""
    company_email: str = ""
    company_website: str = ""
    company_fax: str = ""
    project_number: str = ""
    project_address: str = ""
    client_name: str = ""
    signer_name: str = ""


def _maybe_row(table: str, row_id, columns: str = "*") -> dict | None:
    if not row_id:
        return None
    db = get_supabase()
    result = (
        db.table(table)
        .select(columns)
        .eq("id", str(row_id))
        .maybe_single()
        .execute()
    )
    if not result or not result.data:
        return None
    return result.data


def get_project(project_id: UUID | str) -> dict | None:
    return _maybe_row(
        "projects",
        project_id,
        "id, company_id, client_id, project_number, properties(address, borough)",
    )


def get_linked_client(project_id: UUID | str) -> dict | None:
    project = get_project(project_id)
    if not project or not project.get("client_id"):
        return None
    return _maybe_row("clients", project["client_id"], "id, name")


def get_contact_email(client_id: UUID | str) -> str | None:
    """First contact email for the client, primary contact preferred."""
    db = get_supabase()
    result = (
        db.table("client_contacts")
        .select("email, is_primary")
        .eq("client_id", str(client_id))
        .execute()
    )
    contacts = [c for c in result.data if (c.get("email") or "").strip()]
    if not contacts:
        return None
    contacts.sort(key=lambda c: not c.get("is_primary"))
    return contacts[0]["email"].strip()


def get_company(company_id: UUID | str | None) -> dict:
    """Company branding, with values from the settings form taking precedence."""
    settings = get_settings()
    row = _maybe_row(
        "companies", company_id, "name, address, phone, email, website, settings"
    ) or {}
    overrides = row.get("settings") or {}

    def pick(key: str) -> str:
        return (overrides.get(f"company_{key}") or "").strip() or (row.get(key) or "")

    return {
        "name": row.get("name") or settings.default_company_name,
        "address": pick("address"),
        "phone": pick("phone"),
        "email": pick("email"),
        "website": pick("website"),
        "fax": (overrides.get("company_fax") or "").strip(),
    }


def get_profile_name(profile_id: UUID | str | None) -> str:
    row = _maybe_row("profiles", profile_id, "first_name, last_name, full_name")
    if not row:
        return ""
    if row.get("full_name"):
        return row["full_name"]
    return " ".join(p for p in (row.get("first_name"), row.get("last_name")) if p)


def _project_address(project: dict) -> str:
    prop = project.get("properties") or {}
    if isinstance(prop, list):
        prop = prop[0] if prop else {}
    parts = [prop.get("address"), prop.get("borough")]
    return ", ".join(p for p in parts if p)


def build_artifact_context(co: ChangeOrder) -> ArtifactContext:
    project = get_project(co.project_id) or {}
    company = get_company(co.company_id or project.get("company_id"))
    client = get_linked_client(co.project_id)
    if not project:
        logger.warning(f"Project {co.project_id} not found for {co.co_number}")
    return ArtifactContext(
        company_name=company["name"],
        company_address=company["address"],
        company_phone=company["phone"],
        company_email=company["email"],
        company_website=company["website"],
        company_fax=company["fax"],
        project_number=project.get("project_number") or "",
        project_address=_project_address(project),
        client_name=(client or {}).get("name") or "",
        signer_name=get_profile_name(co.internal_signed_by),
    )
