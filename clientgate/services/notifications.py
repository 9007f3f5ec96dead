"""Notification dispatch: the core emits logical events, a dispatcher delivers them.

Delivery is best-effort. A failed send is logged and never undoes the committed state change.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from clientgate.config import Settings, get_settings
from clientgate.logger import log_event

CONSULTATION_APPROVED = "consultation.approved"
INVITE_REISSUED = "consultation.invite_reissued"
CLIENT_REGISTERED = "client.registered"

MAILGUN_US_BASE = "https://api.mailgun.net"


@dataclass
class NotificationEvent:
    name: str
    consultation_id: int
    email: str
    full_name: str
    extra: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    def dispatch(self, event: NotificationEvent) -> bool: ...


def registration_url(token: str) -> str:
    base = get_settings().frontend_url.rstrip("/")
    return f"{base}/register?token={quote(token, safe='')}"


def render_plain_text(event: NotificationEvent) -> tuple[str, str]:
    """(subject, body). Branded HTML templates live with the delivery team, not here."""
    name = event.full_name or "there"
    if event.name in (CONSULTATION_APPROVED, INVITE_REISSUED):
        url = event.extra.get("registration_url", "")
        expires = event.extra.get("expires_at", "")
        return (
            "Your consultation was approved - create your account",
            f"Hi {name},\n\nYour consultation request was approved. Create your client account here:\n{url}\n\n"
            f"This link can be used once and expires {expires}.\n",
        )
    if event.name == CLIENT_REGISTERED:
        return (
            "Welcome aboard",
            f"Hi {name},\n\nYour client account is active. Sign in with {event.email} to get started.\n",
        )
    return (event.name, f"Hi {name},\n\nThere is an update on your consultation request #{event.consultation_id}.\n")


class LoggingDispatcher:
    """Used when no mail transport is configured. Keeps nothing between calls."""

    def dispatch(self, event: NotificationEvent) -> bool:
        log_event("notifications", "not_sent", event_name=event.name, consultation_id=event.consultation_id, to=event.email)
        return True


class MailgunDispatcher:
    def __init__(self, settings: Settings | None = None, client: httpx.Client | None = None):
        self.settings = settings or get_settings()
        self._client = client

    def _from_address(self) -> str:
        domain = self.settings.mailgun_domain.lower()
        from_addr = self.settings.mailgun_from_email
        from_domain = from_addr.split("@")[-1].lower() if "@" in from_addr else ""
        if domain and from_domain != domain:
            # Mailgun rejects senders outside the sending domain
            from_addr = f"noreply@{domain}"
        return f"{self.settings.mailgun_from_name} <{from_addr}>"

    def dispatch(self, event: NotificationEvent) -> bool:
        subject, text = render_plain_text(event)
        base = (self.settings.mailgun_base_url or MAILGUN_US_BASE).rstrip("/")
        url = f"{base}/v3/{self.settings.mailgun_domain}/messages"
        data = {"from": self._from_address(), "to": event.email, "subject": subject, "text": text}
        try:
            if self._client is not None:
                r = self._client.post(url, auth=("api", self.settings.mailgun_api_key), data=data)
            else:
                with httpx.Client(timeout=10.0) as client:
                    r = client.post(url, auth=("api", self.settings.mailgun_api_key), data=data)
        except httpx.HTTPError as e:
            log_event("notifications", "send_failed", logging.WARNING, event_name=event.name, to=event.email, error=f"{type(e).__name__}: {e}")
            return False
        ok = 200 <= r.status_code < 300
        if ok:
            log_event("notifications", "sent", event_name=event.name, consultation_id=event.consultation_id, to=event.email)
        else:
            log_event("notifications", "send_failed", logging.WARNING, event_name=event.name, to=event.email, status=r.status_code, body=r.text[:500])
        return ok


_dispatcher: NotificationDispatcher | None = None


def get_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        settings = get_settings()
        _dispatcher = MailgunDispatcher(settings) if settings.mailgun_configured else LoggingDispatcher()
    return _dispatcher


def set_dispatcher(dispatcher: NotificationDispatcher | None) -> None:
    global _dispatcher
    _dispatcher = dispatcher


def emit(event: NotificationEvent, dispatcher: NotificationDispatcher | None = None) -> bool:
    try:
        return (dispatcher or get_dispatcher()).dispatch(event)
    except Exception as e:
        # Never let delivery problems leak back into a committed core operation
        log_event("notifications", "dispatch_error", logging.ERROR, event_name=event.name, error=f"{type(e).__name__}: {e}")
        return False
