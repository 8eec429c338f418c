from pydantic import BaseModel
from uuid import UUID


class StateTransitionCreate(BaseModel):
    entity_type: str = "change_order"
    entity_id: UUID
    from_status: str | None = None
    to_status: str
    actor_id: UUID | None = None
    actor_type: str  # 'system' | 'user' | 'client'
    reason: str | None = None
    metadata: dict = {}
    ip_address: str | None = None
