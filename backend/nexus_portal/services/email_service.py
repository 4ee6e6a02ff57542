"""
Transactional e-mails sent through the Resend HTTP API.

Bodies are Jinja2 templates under templates/emails (autoescaped), so user
supplied fields never reach the HTML unescaped.
"""

import base64
import logging
from datetime import date
from typing import Dict, List, Optional

import httpx

from ..core.config import settings
from ..core.templates import render
from ..schemas.leads import CallBooking, QuoteRequest

logger = logging.getLogger(__name__)

SERVICE_LABELS = {
    "website": "Création d'un site web",
    "webapp": "Application web",
    "mobile": "Application mobile",
    "automation": "Automatisation de processus",
    "logo": "Création de logo",
    "branding": "Branding visuel complet",
    "custom": "Service sur mesure",
}

DURATION_LABELS = {15: "15 minutes", 30: "30 minutes", 60: "1 heure"}

_WEEKDAYS = ["lundi", "mardi", "mercredi", "jeudi", "vendredi", "samedi", "dimanche"]
_MONTHS = [
    "janvier", "février", "mars", "avril", "mai", "juin",
    "juillet", "août", "septembre", "octobre", "novembre", "décembre",
]


class EmailDeliveryError(Exception):
    pass


def long_french_date(value: date) -> str:
    """'lundi 20 octobre 2025'"""
    return f"{_WEEKDAYS[value.weekday()]} {value.day} {_MONTHS[value.month - 1]} {value.year}"


def duration_label(minutes: int) -> str:
    return DURATION_LABELS.get(minutes, "1 heure")


def service_labels(services: List[str]) -> List[str]:
    return [SERVICE_LABELS.get(s, s) for s in services]


class Mailer:
    def __init__(
        self,
        api_key: str,
        api_url: str,
        sender: str,
        admin_email: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.sender = sender
        self.admin_email = admin_email
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        reply_to: Optional[str] = None,
        attachments: Optional[List[Dict[str, str]]] = None,
    ) -> Optional[str]:
        """
        Send one message; returns the provider's message id, None when sending is disabled.
        Attachments are {"filename", "content"} dicts with base64 content.
        """
        if not self.enabled:
            logger.warning("RESEND_API_KEY not set, skipping e-mail '%s' to %s", subject, to)
            return None

        payload: Dict[str, object] = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        if reply_to:
            payload["reply_to"] = reply_to
        if attachments:
            payload["attachments"] = attachments

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=20.0) as client:
                response = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.HTTPError as exc:
            logger.error("E-mail API unreachable (%s): %s", subject, exc)
            raise EmailDeliveryError(str(exc)) from exc

        if response.status_code >= 400:
            logger.error("E-mail API error %s for '%s': %s", response.status_code, subject, response.text[:500])
            raise EmailDeliveryError(f"E-mail API returned {response.status_code}")

        message_id = response.json().get("id")
        logger.info("Sent e-mail '%s' to %s (%s)", subject, to, message_id)
        return message_id

    # ------------------------------------------------------------
    # Lead notifications
    # ------------------------------------------------------------

    def _context(self, **extra) -> dict:
        return {"site_url": settings.SITE_URL, "admin_email": self.admin_email, **extra}

    async def send_quote_request_emails(self, quote: QuoteRequest) -> None:
        ctx = self._context(quote=quote, service_labels=service_labels(quote.services))
        await self.send(
            self.admin_email,
            f"📩 Nouvelle demande de devis - {quote.name}",
            render("emails/quote_request_admin.html", **ctx),
            reply_to=quote.email,
        )
        await self.send(
            quote.email,
            "✅ Confirmation de votre demande de devis - Nexus Développement",
            render("emails/quote_request_client.html", **ctx),
        )

    def _booking_context(self, booking: CallBooking) -> dict:
        return self._context(
            booking=booking,
            formatted_date=long_french_date(booking.booking_date),
            duration_label=duration_label(booking.duration),
        )

    async def send_call_booking_emails(self, booking: CallBooking) -> None:
        ctx = self._booking_context(booking)
        await self.send(
            self.admin_email,
            f"📞 Nouvelle réservation d'appel - {booking.name}",
            render("emails/call_booking_admin.html", **ctx),
            reply_to=booking.email,
        )
        await self.send(
            booking.email,
            f"✅ Confirmation de votre appel - {ctx['formatted_date']} à {booking.time_slot}",
            render("emails/call_booking_client.html", **ctx),
        )

    async def send_call_cancellation_emails(self, booking: CallBooking) -> None:
        ctx = self._booking_context(booking)
        await self.send(
            booking.email,
            f"🚫 Annulation de votre rendez-vous - {ctx['formatted_date']} à {booking.time_slot}",
            render("emails/call_cancel_client.html", **ctx),
        )
        await self.send(
            self.admin_email,
            f"✅ Annulation confirmée - {booking.name} ({ctx['formatted_date']})",
            render("emails/call_cancel_admin.html", **ctx),
        )

    # ------------------------------------------------------------
    # Sales documents
    # ------------------------------------------------------------

    async def send_quote_document(
        self, to: str, client_name: str, reference: str, pdf: bytes, filename: str
    ) -> Optional[str]:
        return await self.send(
            to,
            f"Votre devis {reference} - Nexus Développement",
            render("emails/quote_document_client.html", **self._context(client_name=client_name, reference=reference)),
            reply_to=self.admin_email,
            attachments=[{"filename": filename, "content": base64.b64encode(pdf).decode("ascii")}],
        )


def get_mailer() -> Mailer:
    return Mailer(
        api_key=settings.RESEND_API_KEY,
        api_url=settings.RESEND_API_URL,
        sender=settings.EMAIL_FROM,
        admin_email=settings.ADMIN_EMAIL,
    )
