import jwt
from datetime import datetime, timedelta, timezone
from uuid import UUID
from fastapi import HTTPException
from app.config import get_settings

SIGN_ACTION = "client_sign"


def generate_action_token(
    change_order_id: UUID,
    action: str = SIGN_ACTION,
    client_email: str | None = None,
    expires_hours: int | None = None,
) -> str:
    """Generate a JWT action token for the emailed client sign link."""
    settings = get_settings()
    if expires_hours is None:
        expires_hours = settings.action_token_expire_hours

    payload = {
        "action": action,
        "change_order_id": str(change_order_id),
        "exp": datetime.now(timezone.utc) + timedelta(hours=expires_hours),
        "iat": datetime.now(timezone.utc),
    }
    if client_email:
        payload["client_email"] = client_email

    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_action_token(token: str, action: str = SIGN_ACTION) -> dict:
    """Verify and decode a JWT action token. Raises HTTPException on failure.

    Re-use is prevented by the change order itself: once the client has
    signed, the guard refuses a second signature.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Link expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid link")

    if payload.get("action") != action or not payload.get("change_order_id"):
        raise HTTPException(status_code=403, detail="Invalid action for this link")
    return payload


def client_sign_url(change_order_id: UUID, client_email: str | None = None) -> str:
    settings = get_settings()
    token = generate_action_token(change_order_id, client_email=client_email)
    return f"{settings.app_base_url}/change-orders/sign/{token}"
