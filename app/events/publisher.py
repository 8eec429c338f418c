"""Change order event publisher using Redis pub/sub.

Events are published to Redis channels keyed by company_id, so every
open screen for that company can refresh its change order lists. Events
are fire-and-forget: when Redis is unreachable they are logged and dropped.
"""
import json
from loguru import logger
from app.config import get_settings


def channel_for(company_id: str) -> str:
    return f"events:{company_id}"


async def publish_event(company_id: str, event_type: str, data: dict) -> bool:
    """Publish an event for a company.

    Args:
        company_id: UUID of the company that owns the change order.
        event_type: Event type (e.g. 'change_order.sent').
        data: Event payload dict.

    Returns:
        True if Redis accepted the message.
    """
    message = json.dumps({
        "type": event_type,
        "data": data,
    })

    channel = channel_for(company_id)

    try:
        import redis as redis_lib
        settings = get_settings()
        r = redis_lib.from_url(settings.redis_url)
        r.publish(channel, message)
        logger.debug(f"Event published: {event_type} → {channel}")
        return True
    except Exception as e:
        logger.warning(f"Redis publish failed, dropping {event_type} for {channel}: {e}")
        return False
