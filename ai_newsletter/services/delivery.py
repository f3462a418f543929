from __future__ import annotations

import logging

from ai_newsletter.config.settings import Settings
from ai_newsletter.models.errors import ConfigurationError, NewsletterError, ProviderError, SchemaViolation
from ai_newsletter.models.schemas import (
    BROADCAST_RECIPIENT,
    DeliveryReceipt,
    DeliveryRequest,
    Document,
    is_valid_email,
)
from ai_newsletter.services.plunk_client import PlunkClient
from ai_newsletter.services.renderer import render_newsletter

log = logging.getLogger(__name__)


def _mask(key: str) -> str:
    return f"{key[:6]}..." if key else "<unset>"


class DeliveryGateway:
    """
    Sends rendered newsletters through Plunk, either to one address or to
    every subscribed contact via a campaign.
    """

    def __init__(self, client: PlunkClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    def send_single(self, document: Document, recipient: str, subject: str | None = None) -> DeliveryReceipt:
        if not recipient:
            raise ConfigurationError("recipient_email")
        if not is_valid_email(recipient):
            raise SchemaViolation("delivery", f"recipient is not a valid email address: {recipient!r}")

        subject = subject or document.subject
        log.info("Sending newsletter to %s (%s items, key %s)", recipient, document.item_count, _mask(self.client.api_key))
        result = self.client.send_email(recipient, subject, document.html)

        message_id = result.get("messageId") or result.get("id")
        log.info("Newsletter sent to %s message_id=%s", recipient, message_id)
        return DeliveryReceipt(
            message_id=message_id,
            recipient=recipient,
            item_count=document.item_count,
            date=document.date,
            broadcast=False,
        )

    def broadcast_all(self, document: Document, subject: str | None = None) -> DeliveryReceipt:
        """
        Two phases: create a campaign, then send it. If the send fails the
        campaign stays behind in Plunk; its id travels on the raised
        ProviderError and is logged.
        """
        subject = subject or document.subject
        name = f"{document.title} - {document.date}"

        log.info("Broadcast step 1: creating campaign %r (%s chars)", name, len(document.html))
        created = self.client.create_campaign(name=name, subject=subject, body=document.html)
        campaign_id = created.get("id")
        if not campaign_id:
            raise ProviderError(None, "campaign creation returned no id")
        log.info("Broadcast step 1 done: campaign_id=%s", campaign_id)

        log.info("Broadcast step 2: sending campaign %s to all contacts", campaign_id)
        try:
            self.client.send_campaign(campaign_id)
        except NewsletterError as e:
            log.error("Campaign %s was created but not sent; it is orphaned in Plunk: %s", campaign_id, e)
            status = getattr(e, "status", None)
            raise ProviderError(
                status,
                f"campaign {campaign_id} was created but sending it failed: {e}",
                resource_id=campaign_id,
            ) from e

        log.info("Newsletter broadcast to all contacts (campaign %s)", campaign_id)
        return DeliveryReceipt(
            message_id=campaign_id,
            campaign_id=campaign_id,
            recipient=BROADCAST_RECIPIENT,
            item_count=document.item_count,
            date=document.date,
            broadcast=True,
        )

    def deliver(self, request: DeliveryRequest) -> DeliveryReceipt:
        document = render_newsletter(
            request.items,
            request.date,
            broadcast=request.broadcast,
            title=self.settings.newsletter_name,
        )
        log.info("Mode: %s", "BROADCAST" if request.broadcast else "SINGLE RECIPIENT")
        if request.broadcast:
            return self.broadcast_all(document)
        return self.send_single(document, request.recipient or "")
