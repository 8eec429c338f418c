import base64
from dataclasses import dataclass
import httpx
from loguru import logger
from app.config import get_settings

RESEND_URL = "https://api.resend.com/emails"


@dataclass
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    def to_payload(self) -> dict:
        return {
            "filename": self.filename,
            "content": base64.b64encode(self.content).decode("ascii"),
            "content_type": self.content_type,
        }


@dataclass
class SendResult:
    ok: bool
    message_id: str | None = None
    error: str = ""

    def __bool__(self) -> bool:
        return self.ok


async def send_email(
    to: str,
    subject: str,
    html: str,
    attachments: list[EmailAttachment] | None = None,
    reply_to: str | None = None,
) -> SendResult:
    """Send an email via Resend API.

    Does not raise: transport problems come back as a failed SendResult so
    the caller decides whether a failure matters.
    """
    settings = get_settings()

    if not settings.resend_api_key:
        logger.warning(
            f"Resend API key not configured — skipping email to {to}: {subject}"
        )
        return SendResult(ok=False, error="email delivery is not configured")

    payload = {
        "from": f"{settings.resend_from_name} <{settings.resend_from_email}>",
        "to": [to],
        "subject": subject,
        "html": html,
    }
    if attachments:
        payload["attachments"] = [a.to_payload() for a in attachments]
    if reply_to:
        payload["reply_to"] = reply_to

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                RESEND_URL,
                headers={
                    "Authorization": f"Bearer {settings.resend_api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
                timeout=settings.email_timeout_seconds,
            )

            if resp.status_code in (200, 201):
                data = resp.json()
                message_id = data.get("id", "unknown")
                logger.info(f"Email sent via Resend (id={message_id}, to={to})")
                return SendResult(ok=True, message_id=message_id)

            logger.error(
                f"Resend API error {resp.status_code}: {resp.text[:200]} "
                f"(to={to}, subject={subject[:50]})"
            )
            return SendResult(ok=False, error=f"Resend API error {resp.status_code}")

    except httpx.TimeoutException:
        logger.error(f"Resend API timeout sending to {to}")
        return SendResult(ok=False, error="timed out")
    except httpx.HTTPError as e:
        logger.error(f"Failed to send email via Resend to {to}: {e}")
        return SendResult(ok=False, error=str(e))
