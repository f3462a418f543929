from __future__ import annotations

import re
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DISCOVERY_MIN_ITEMS = 15
DISCOVERY_MAX_ITEMS = 20
CURATED_ITEMS = 10

BROADCAST_RECIPIENT = "all contacts (broadcast)"


def is_valid_email(value: str | None) -> bool:
    return bool(value) and bool(EMAIL_RE.match(value.strip()))


def is_valid_url(value: str | None) -> bool:
    if not value:
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _non_empty(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("must be a non-empty string")
    return v


class DiscoveredItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    source: str = ""
    snippet: str = ""

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        return _non_empty(v)

    @field_validator("url")
    @classmethod
    def _url(cls, v: str) -> str:
        v = _non_empty(v)
        if not is_valid_url(v):
            raise ValueError(f"not a valid http(s) URL: {v!r}")
        return v


class CuratedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    headline: str
    summary: str
    url: str

    @field_validator("headline", "summary", "url")
    @classmethod
    def _required(cls, v: str) -> str:
        return _non_empty(v)


# Batches are tuples of frozen items so a hand-off cannot be mutated downstream.
DiscoveredBatch = tuple[DiscoveredItem, ...]
CuratedBatch = tuple[CuratedItem, ...]


class Document(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    subject: str
    date: str
    html: str
    item_count: int = 0


class DeliveryRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: CuratedBatch
    broadcast: bool = False
    recipient: str | None = None
    date: str


class DeliveryReceipt(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message_id: str | None = Field(default=None, alias="messageId")
    campaign_id: str | None = Field(default=None, alias="campaignId")
    recipient: str
    item_count: int = Field(alias="itemCount")
    date: str
    broadcast: bool = False

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class SubscribeResult(BaseModel):
    success: bool = True
    message: str
    already_subscribed: bool = False
    contact_id: str | None = None
    email: str | None = None

    def to_dict(self) -> dict:
        out: dict = {"success": self.success, "message": self.message}
        if self.already_subscribed:
            out["alreadySubscribed"] = True
        if self.contact_id is not None:
            out["contact"] = {"id": self.contact_id, "email": self.email}
        return out
