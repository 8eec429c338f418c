from uuid import UUID
from loguru import logger
from app.config import get_settings
from app.database import get_supabase


async def upload_file(
    path: str,
    file_bytes: bytes,
    content_type: str = "application/octet-stream",
    bucket: str | None = None,
) -> str:
    """Upload a file to Supabase Storage, replacing any file at ``path``."""
    bucket = bucket or get_settings().change_order_bucket
    db = get_supabase()
    db.storage.from_(bucket).upload(
        path,
        file_bytes,
        {"content-type": content_type, "upsert": "true"},
    )
    logger.info(f"Uploaded {path} to bucket {bucket} ({len(file_bytes)} bytes)")
    return path


def change_order_path(project_id: UUID, co_number: str) -> str:
    return f"{project_id}/{co_number}.pdf"
