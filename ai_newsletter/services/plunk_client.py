from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import requests

from ai_newsletter.config.settings import Settings
from ai_newsletter.models.errors import NetworkError, ProviderError

log = logging.getLogger(__name__)


def _error_message(r: requests.Response) -> str:
    try:
        data = r.json()
    except ValueError:
        return (r.text or r.reason or "").strip()[:500]
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or data)[:500]
    return str(data)[:500]


class PlunkClient:
    """
    Thin wrapper over the Plunk REST API (contacts, transactional sends, campaigns).
    Every non-2xx answer raises ProviderError; transport failures raise NetworkError.
    """

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.api_key = settings.plunk_api_key
        self.base_url = settings.plunk_base_url.rstrip("/")
        self.timeout = settings.plunk_timeout_seconds
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(
                method,
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError("plunk", str(e)) from e

        if not r.ok:
            msg = _error_message(r)
            log.error("Plunk %s %s failed: %s %s", method, path, r.status_code, msg)
            raise ProviderError(r.status_code, msg)

        if not r.content:
            return {}
        try:
            data = r.json()
        except ValueError:
            return {"raw": r.text}
        return data if isinstance(data, dict) else {"data": data}

    # ---------------------------
    # Sending
    # ---------------------------

    def send_email(self, to: str, subject: str, body: str) -> dict[str, Any]:
        return self._request("POST", "/send", {"to": to, "subject": subject, "body": body})

    def create_campaign(self, name: str, subject: str, body: str, style: str = "PLUNK") -> dict[str, Any]:
        return self._request(
            "POST",
            "/campaigns",
            {"name": name, "subject": subject, "body": body, "style": style},
        )

    def send_campaign(self, campaign_id: str) -> dict[str, Any]:
        return self._request("POST", "/campaigns/send", {"id": campaign_id, "live": True})

    # ---------------------------
    # Contacts
    # ---------------------------

    def create_contact(self, email: str, subscribed: bool = False, data: dict | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"email": email, "subscribed": subscribed}
        if data:
            payload["data"] = data
        return self._request("POST", "/contacts", payload)

    def get_contact(self, contact_id: str) -> dict[str, Any] | None:
        """Return the contact, or None when the provider does not know the id."""
        try:
            return self._request("GET", f"/contacts/{quote(contact_id, safe='')}")
        except ProviderError as e:
            if e.status is not None and e.status < 500:
                return None
            raise

    def subscribe_contact(self, contact_id: str) -> dict[str, Any]:
        return self._request("POST", "/contacts/subscribe", {"id": contact_id})

    def track_event(self, event: str, email: str, subscribed: bool | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"event": event, "email": email}
        if subscribed is not None:
            payload["subscribed"] = subscribed
        return self._request("POST", "/track", payload)
