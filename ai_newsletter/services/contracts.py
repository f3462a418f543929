"""
Structural checks guarding each stage boundary.

Stages hand back loosely shaped model output. Nothing crosses into the next
stage until it has been turned into a typed, frozen batch here; anything that
does not fit raises SchemaViolation naming the producing stage.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ValidationError

from ai_newsletter.models.errors import ConfigurationError, SchemaViolation
from ai_newsletter.models.schemas import (
    CURATED_ITEMS,
    DISCOVERY_MAX_ITEMS,
    DISCOVERY_MIN_ITEMS,
    CuratedBatch,
    CuratedItem,
    DeliveryRequest,
    DiscoveredBatch,
    DiscoveredItem,
    is_valid_email,
)

DISCOVERY = "discovery"
CURATION = "curation"
DELIVERY = "delivery"


def _unwrap(stage: str, payload: Any, key: str) -> list:
    # accept either the bare list or the {"<key>": [...]} envelope
    if isinstance(payload, dict):
        if key not in payload:
            raise SchemaViolation(stage, f"missing '{key}' array")
        payload = payload[key]
    if not isinstance(payload, (list, tuple)):
        raise SchemaViolation(stage, f"expected an array of items, got {type(payload).__name__}")
    return list(payload)


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "item"
    return f"{loc}: {err.get('msg', 'invalid')}"


def _items(stage: str, raw: list, model: type[BaseModel]) -> tuple:
    out = []
    for i, it in enumerate(raw, start=1):
        if isinstance(it, model):
            out.append(it)
            continue
        if not isinstance(it, dict):
            raise SchemaViolation(stage, f"item {i} is not an object")
        try:
            out.append(model.model_validate(it))
        except ValidationError as e:
            raise SchemaViolation(stage, f"item {i} is invalid ({_first_error(e)})") from e
    return tuple(out)


def validate_discovery(payload: Any) -> DiscoveredBatch:
    raw = _unwrap(DISCOVERY, payload, "articles")
    n = len(raw)
    if not DISCOVERY_MIN_ITEMS <= n <= DISCOVERY_MAX_ITEMS:
        raise SchemaViolation(
            DISCOVERY,
            f"expected between {DISCOVERY_MIN_ITEMS} and {DISCOVERY_MAX_ITEMS} items, got {n}",
        )
    return _items(DISCOVERY, raw, DiscoveredItem)


def validate_curation(payload: Any) -> CuratedBatch:
    raw = _unwrap(CURATION, payload, "curatedArticles")
    n = len(raw)
    if n != CURATED_ITEMS:
        raise SchemaViolation(CURATION, f"expected exactly {CURATED_ITEMS} items, got {n}")
    return _items(CURATION, raw, CuratedItem)


def resolve_broadcast(explicit: bool | None, default_broadcast: bool) -> bool:
    """Per-invocation flag beats the process-wide setting; single-recipient otherwise."""
    if explicit is not None:
        return bool(explicit)
    return bool(default_broadcast)


def resolve_recipient(explicit: str | None, default_recipient: str | None) -> str | None:
    for candidate in (explicit, default_recipient):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


def check_recipient(broadcast: bool, recipient: str | None) -> None:
    """A single-recipient send needs a usable address; broadcast ignores it."""
    if broadcast:
        return
    if not recipient:
        raise ConfigurationError("recipient_email")
    if not is_valid_email(recipient):
        raise SchemaViolation(DELIVERY, f"recipient is not a valid email address: {recipient!r}", side="input")


def validate_delivery(
    items: CuratedBatch,
    *,
    broadcast: bool,
    recipient: str | None,
    date: str,
) -> DeliveryRequest:
    if len(items) != CURATED_ITEMS:
        raise SchemaViolation(DELIVERY, f"expected exactly {CURATED_ITEMS} items, got {len(items)}")
    check_recipient(broadcast, recipient)
    return DeliveryRequest(
        items=tuple(items),
        broadcast=broadcast,
        recipient=None if broadcast else recipient,
        date=date,
    )
