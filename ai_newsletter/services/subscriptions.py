from __future__ import annotations

import logging
from datetime import datetime, timezone
from urllib.parse import urlencode

from ai_newsletter.config.settings import Settings
from ai_newsletter.models.errors import NewsletterError, ProviderError
from ai_newsletter.models.schemas import SubscribeResult, is_valid_email
from ai_newsletter.services.plunk_client import PlunkClient
from ai_newsletter.services.renderer import render_welcome

log = logging.getLogger(__name__)


class InvalidEmail(ValueError):
    pass


class SubscriptionService:
    """
    Double opt-in flow: ``subscribe`` creates an unconfirmed contact and
    ``confirm`` flips it to subscribed once the link is clicked.
    """

    def __init__(self, client: PlunkClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    # ---------------------------
    # Subscribe
    # ---------------------------

    def subscribe(self, email: str | None) -> SubscribeResult:
        email = (email or "").strip()
        if not email:
            raise InvalidEmail("Email address is required")
        if not is_valid_email(email):
            raise InvalidEmail("Please enter a valid email address")

        self.settings.require("plunk_api_key")
        log.info("New subscription request: %s", email)

        try:
            contact = self.client.create_contact(
                email,
                subscribed=False,
                data={
                    "source": "website",
                    "subscribedAt": datetime.now(timezone.utc).isoformat(),
                },
            )
        except ProviderError as e:
            if e.status == 400 and "already exists" in (e.message or ""):
                return SubscribeResult(message="You are already subscribed!", already_subscribed=True)
            raise

        contact_id = contact.get("id")
        log.info("Subscription created: %s (contact %s)", email, contact_id)

        try:
            self.send_welcome(email, contact_id)
        except NewsletterError as e:
            log.warning("Failed to send welcome email to %s: %s", email, e)

        return SubscribeResult(
            message="Successfully subscribed! Check your email.",
            contact_id=contact_id,
            email=email,
        )

    def confirm_url(self, contact_id: str) -> str:
        base = self.settings.api_base_url.rstrip("/")
        return f"{base}/confirm?{urlencode({'confirm': contact_id})}"

    def send_welcome(self, email: str, contact_id: str | None = None) -> None:
        doc = render_welcome(
            self.settings.newsletter_name,
            confirm_url=self.confirm_url(contact_id) if contact_id else None,
        )
        self.client.send_email(email, doc.subject, doc.html)
        log.info("Welcome email sent to %s", email)

    # ---------------------------
    # Confirm
    # ---------------------------

    def _redirect(self, **params: str) -> str:
        return f"{self.settings.site_url}?{urlencode(params)}"

    def confirm(self, contact_id: str | None) -> str:
        """Return the URL the browser should be redirected to; never raises."""
        if not contact_id:
            return self._redirect(error="missing_contact_id")
        if not self.settings.plunk_api_key:
            log.error("PLUNK_API_KEY not set")
            return self._redirect(error="server_error")

        try:
            return self._confirm(contact_id)
        except ProviderError as e:
            log.error("Plunk rejected confirmation for %s: %s", contact_id, e)
            return self._redirect(error=e.message or "Failed to confirm subscription.")
        except Exception:
            log.exception("Confirmation error for contact %s", contact_id)
            return self._redirect(error="unexpected_error")

    def _confirm(self, contact_id: str) -> str:
        log.info("Verifying contact %s before confirming subscription", contact_id)
        contact = self.client.get_contact(contact_id)
        if contact is None:
            log.error("Contact not found in Plunk for id %s", contact_id)
            return self._redirect(error="contact_not_found")

        email = contact.get("email") or ""
        if contact.get("subscribed") is True:
            log.info("Contact already subscribed: %s", email)
            return self._redirect(confirm=email, already="true")

        self.client.subscribe_contact(contact_id)
        log.info("Subscription confirmed: %s", email)

        # optional; never fails the confirmation
        try:
            self.client.track_event("subscription-confirmed", email, subscribed=True)
        except NewsletterError as e:
            log.warning("Failed to track subscription-confirmed event for %s: %s", email, e)

        return self._redirect(confirm=email)
