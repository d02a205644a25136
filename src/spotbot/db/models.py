"""SQLAlchemy ORM models for the SpotBot database.

Two tables: ``spots`` (one row per logged sighting) and ``installations``
(one row per Slack workspace that installed the app).
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, String
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class SpotRow(Base):
    """A claimed sighting. Created once, deleted by veto or reset, never updated."""

    __tablename__ = "spots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    team_id: Mapped[str | None] = mapped_column(String(32), nullable=True)  # None when single-tenant
    spotter_id: Mapped[str] = mapped_column(String(32), nullable=False)
    target_id: Mapped[str] = mapped_column(String(32), nullable=False)
    image_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    channel_id: Mapped[str] = mapped_column(String(32), nullable=False)
    message_ts: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="confirmed")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    __table_args__ = (
        Index("ix_spots_scope", "team_id", "channel_id", "status"),
        Index("ix_spots_message_ts", "message_ts"),
    )


class InstallationRow(Base):
    """OAuth installation for one workspace. ``installation`` is the raw SDK payload."""

    __tablename__ = "installations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    team_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    team_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    bot_token: Mapped[str] = mapped_column(String(255), nullable=False)
    bot_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    bot_user_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    active_channel_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    installation: Mapped[dict] = mapped_column(JSON, nullable=False)
    installed_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
