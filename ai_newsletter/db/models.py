from __future__ import annotations

from datetime import datetime, timezone
from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class NewsletterRun(Base):
    __tablename__ = "newsletter_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    started_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=_utc_now
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # idle / discovering / curating / delivering / succeeded / failed
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="idle")
    failed_stage: Mapped[str | None] = mapped_column(String(20), nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    recipient: Mapped[str | None] = mapped_column(Text, nullable=True)
    broadcast: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    item_count: Mapped[int | None] = mapped_column(Integer, nullable=True)

    message_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    # kept on failed rows too, so an orphaned campaign can be found later
    campaign_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
