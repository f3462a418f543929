from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ai_newsletter.db.models import NewsletterRun


class RunLedger:
    """Persists one row per pipeline run with its terminal state."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def start(self, recipient: str | None, broadcast: bool) -> int:
        with Session(self.engine) as session:
            run = NewsletterRun(state="idle", recipient=recipient, broadcast=broadcast)
            session.add(run)
            session.commit()
            return run.id

    def finish(
        self,
        run_id: int,
        *,
        state: str,
        failed_stage: str | None = None,
        error: str | None = None,
        item_count: int | None = None,
        message_id: str | None = None,
        campaign_id: str | None = None,
    ) -> None:
        with Session(self.engine) as session:
            run = session.get(NewsletterRun, run_id)
            if run is None:
                return
            run.state = state
            run.failed_stage = failed_stage
            run.error = error
            run.item_count = item_count
            run.message_id = message_id
            run.campaign_id = campaign_id
            run.finished_at = datetime.now(timezone.utc)
            session.commit()

    def recent(self, limit: int = 10) -> list[NewsletterRun]:
        with Session(self.engine, expire_on_commit=False) as session:
            return (
                session.query(NewsletterRun)
                .order_by(NewsletterRun.started_at.desc(), NewsletterRun.id.desc())
                .limit(limit)
                .all()
            )
