"""
Best-effort outbound email.

Messages go to an HTTP email API (Resend-compatible JSON body). Delivery is
a secondary side effect: every failure is logged and swallowed, and the
booking write that triggered it stays committed.
"""

from typing import Optional

import httpx

from arts_booking.core.config import get_settings
from arts_booking.core.logging import get_logger
from arts_booking.core.metrics import record_email

logger = get_logger(__name__)
settings = get_settings()


async def send_email(to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
    """Send one message. Returns False instead of raising when delivery fails."""
    if not settings.EMAIL_ENABLED:
        record_email("skipped")
        logger.debug("email_skipped", to=to, subject=subject)
        return False

    payload = {
        "from": settings.EMAIL_FROM,
        "to": [to],
        "subject": subject,
        "text": text,
    }
    if html:
        payload["html"] = html

    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(settings.EMAIL_TIMEOUT, connect=5.0)) as client:
            response = await client.post(
                settings.EMAIL_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {settings.EMAIL_API_KEY}"},
            )
            response.raise_for_status()
    except httpx.HTTPError as e:
        record_email("failed")
        logger.error("email_failed", to=to, subject=subject, error=str(e))
        return False

    record_email("sent")
    logger.info("email_sent", to=to, subject=subject)
    return True


async def send_booking_confirmation(
    to: str, artist_name: str, title: str, start_time, end_time, host: Optional[str] = None
) -> bool:
    lines = [
        f"Hello {artist_name},",
        "",
        f"Your booking \"{title}\" is confirmed.",
        f"When: {start_time:%A, %B %d, %Y %H:%M} - {end_time:%H:%M} UTC",
    ]
    if host:
        lines.append(f"Host: {host}")
    return await send_email(to, f"Booking Confirmed: {title}", "\n".join(lines))


async def send_participant_confirmation(to: str, name: str, title: str, status: str, position: Optional[int]) -> bool:
    if status == "waitlisted":
        subject = f"Waitlisted: {title}"
        body = f"Hello {name},\n\n\"{title}\" is full. You are number {position} on the waitlist."
    else:
        subject = f"You're in: {title}"
        body = f"Hello {name},\n\nYour spot in \"{title}\" is confirmed."
    return await send_email(to, subject, body)


async def send_invitation(to: str, name: Optional[str], title: str, token: str, message: Optional[str]) -> bool:
    body = [
        f"Hello {name or to},",
        "",
        f"You have been invited to join \"{title}\".",
    ]
    if message:
        body += ["", message]
    body += ["", f"Invitation code: {token}", "This invitation expires in " f"{settings.INVITATION_TTL_DAYS} days."]
    return await send_email(to, f"Invitation: {title}", "\n".join(body))
