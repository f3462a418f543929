"""
Daily newsletter workflow: discover -> curate -> deliver.

The pipeline drives the stages itself, one after another, and validates every
hand-off before the next stage sees it. Any exception raised inside a stage or
by a contract check ends the run in ``failed`` with the stage name attached;
there is no retry within a run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Protocol

from ai_newsletter.config.settings import Settings
from ai_newsletter.db.database import get_engine, init_db
from ai_newsletter.models.errors import NewsletterError, SchemaViolation
from ai_newsletter.models.schemas import CuratedBatch, DeliveryReceipt, DeliveryRequest, DiscoveredBatch
from ai_newsletter.services.contracts import (
    check_recipient,
    resolve_broadcast,
    resolve_recipient,
    validate_curation,
    validate_delivery,
    validate_discovery,
)
from ai_newsletter.services.delivery import DeliveryGateway
from ai_newsletter.services.llm_client import LLMClient
from ai_newsletter.services.plunk_client import PlunkClient
from ai_newsletter.services.renderer import newsletter_date
from ai_newsletter.services.run_ledger import RunLedger
from ai_newsletter.services.stages import NewsCurator, NewsDiscoverer

log = logging.getLogger(__name__)

REQUIRED_KEYS = ("openai_api_key", "plunk_api_key")


class PipelineState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    CURATING = "curating"
    DELIVERING = "delivering"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


STAGE_BY_STATE = {
    PipelineState.IDLE: "startup",
    PipelineState.DISCOVERING: "discovery",
    PipelineState.CURATING: "curation",
    PipelineState.DELIVERING: "delivery",
}


class Discoverer(Protocol):
    def discover(self, today=None) -> dict: ...


class Curator(Protocol):
    def curate(self, batch: DiscoveredBatch) -> dict: ...


class Deliverer(Protocol):
    def deliver(self, request: DeliveryRequest) -> DeliveryReceipt: ...


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PipelineResult:
    success: bool
    timestamp: str
    receipt: DeliveryReceipt | None = None
    error: str | None = None
    stage: str | None = None
    campaign_id: str | None = None
    states: list[str] = field(default_factory=list)

    @property
    def recipient(self) -> str | None:
        return self.receipt.recipient if self.receipt else None

    @property
    def item_count(self) -> int | None:
        return self.receipt.item_count if self.receipt else None

    @property
    def broadcast(self) -> bool | None:
        return self.receipt.broadcast if self.receipt else None

    def to_dict(self) -> dict:
        if self.success and self.receipt is not None:
            receipt = self.receipt.to_dict()
            return {
                **receipt,
                "success": True,
                "output": receipt,
                "timestamp": self.timestamp,
            }
        out = {
            "success": False,
            "error": self.error,
            "stage": self.stage,
            "timestamp": self.timestamp,
        }
        if self.campaign_id:
            out["campaignId"] = self.campaign_id
        return out


class NewsletterPipeline:
    def __init__(
        self,
        settings: Settings,
        discoverer: Discoverer,
        curator: Curator,
        gateway: Deliverer,
        ledger: RunLedger | None = None,
        clock: Callable[[], datetime] = datetime.now,
        on_transition: Callable[[PipelineState], None] | None = None,
    ) -> None:
        self.settings = settings
        self.discoverer = discoverer
        self.curator = curator
        self.gateway = gateway
        self.ledger = ledger
        self.clock = clock
        self.on_transition = on_transition

    # ---------------------------
    # Ledger (optional)
    # ---------------------------

    def _ledger_start(self, recipient: str | None, broadcast: bool) -> int | None:
        if self.ledger is None:
            return None
        try:
            return self.ledger.start(recipient, broadcast)
        except Exception as e:
            log.warning("Run ledger unavailable, continuing without it: %s", e)
            return None

    def _ledger_finish(self, run_id: int | None, result: PipelineResult) -> None:
        if self.ledger is None or run_id is None:
            return
        try:
            self.ledger.finish(
                run_id,
                state=PipelineState.SUCCEEDED.value if result.success else PipelineState.FAILED.value,
                failed_stage=result.stage,
                error=result.error,
                item_count=result.item_count,
                message_id=result.receipt.message_id if result.receipt else None,
                campaign_id=(result.receipt.campaign_id if result.receipt else None) or result.campaign_id,
            )
        except Exception as e:
            log.warning("Failed to record run %s: %s", run_id, e)

    # ---------------------------
    # Run
    # ---------------------------

    def run(self, recipient: str | None = None, broadcast: bool | None = None) -> PipelineResult:
        states: list[str] = []
        state = PipelineState.IDLE

        def advance(to: PipelineState) -> None:
            nonlocal state
            log.info("Pipeline: %s -> %s", state.value, to.value)
            state = to
            states.append(to.value)
            if self.on_transition is not None:
                self.on_transition(to)

        states.append(state.value)
        is_broadcast = resolve_broadcast(broadcast, self.settings.broadcast_mode)
        target = None if is_broadcast else resolve_recipient(recipient, self.settings.recipient_email)
        now = self.clock()
        date = newsletter_date(now)

        log.info("Starting daily newsletter workflow for %s", date)
        log.info("Mode: %s | recipient: %s", "broadcast" if is_broadcast else "single", target or "-")
        run_id = self._ledger_start(target, is_broadcast)

        try:
            self.settings.require(*REQUIRED_KEYS)
            check_recipient(is_broadcast, target)

            advance(PipelineState.DISCOVERING)
            discovered: DiscoveredBatch = validate_discovery(self.discoverer.discover(now.date()))
            log.info("Discovery returned %s articles", len(discovered))

            advance(PipelineState.CURATING)
            curated: CuratedBatch = validate_curation(self.curator.curate(discovered))
            log.info("Curation selected %s articles", len(curated))

            advance(PipelineState.DELIVERING)
            request = validate_delivery(curated, broadcast=is_broadcast, recipient=target, date=date)
            receipt = self.gateway.deliver(request)

            advance(PipelineState.SUCCEEDED)
            result = PipelineResult(success=True, timestamp=_utc_now(), receipt=receipt, states=states)
            log.info("Newsletter workflow completed: %s", receipt.to_dict())
        except Exception as e:
            stage = STAGE_BY_STATE.get(state, "startup")
            if isinstance(e, SchemaViolation):
                error = str(e)
            else:
                error = f"{stage} stage failed: {e}"

            if isinstance(e, NewsletterError):
                log.error("Newsletter workflow failed at %s: %s", stage, error)
            else:
                log.exception("Newsletter workflow failed at %s", stage)

            advance(PipelineState.FAILED)
            result = PipelineResult(
                success=False,
                timestamp=_utc_now(),
                error=error,
                stage=stage,
                campaign_id=getattr(e, "resource_id", None),
                states=states,
            )

        self._ledger_finish(run_id, result)
        return result


def _open_ledger(settings: Settings) -> RunLedger | None:
    try:
        engine = get_engine(settings.database_url)
        init_db(engine)
    except Exception as e:
        log.warning("Run ledger unavailable (%s), running without it: %s", settings.database_url, e)
        return None
    return RunLedger(engine)


def build_pipeline(settings: Settings, ledger: bool = True) -> NewsletterPipeline:
    llm = LLMClient(settings)
    gateway = DeliveryGateway(PlunkClient(settings), settings)
    return NewsletterPipeline(
        settings,
        discoverer=NewsDiscoverer(llm),
        curator=NewsCurator(llm),
        gateway=gateway,
        ledger=_open_ledger(settings) if ledger else None,
    )
