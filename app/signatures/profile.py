"""Saved signatures on user profiles.

A signer's saved signature is a single profile field shared by every change
order they sign. Writes are last-writer-wins; the per-profile lock only
keeps a read in one sign action from interleaving with a write in another.
"""
from uuid import UUID
from loguru import logger

from app.change_orders.locks import record_lock
from app.database import get_supabase


async def get_saved_signature(profile_id: UUID | str | None) -> str | None:
    if not profile_id:
        return None
    async with record_lock("profile", profile_id):
        db = get_supabase()
        result = (
            db.table("profiles")
            .select("signature_data")
            .eq("id", str(profile_id))
            .maybe_single()
            .execute()
        )
    if not result or not result.data:
        return None
    return result.data.get("signature_data") or None


async def save_signature(profile_id: UUID | str, signature_data: str) -> None:
    async with record_lock("profile", profile_id):
        db = get_supabase()
        db.table("profiles").update(
            {"signature_data": signature_data}
        ).eq("id", str(profile_id)).execute()
    logger.info(f"Saved signature updated for profile {profile_id}")
