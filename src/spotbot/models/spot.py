"""Spot value objects passed between the repository and the Slack layer.

Repository methods return these instead of ORM rows so they stay usable
after the session closes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

# Only "confirmed" is ever written or read; the others are reserved.
SpotStatus = Literal["confirmed", "pending", "rejected"]

LeaderboardKind = Literal["spotter", "target"]

DEFAULT_LEADERBOARD_LIMIT = 10
MAX_LEADERBOARD_LIMIT = 25
GALLERY_LIMIT = 10


class Spot(BaseModel):
    """A logged sighting."""

    id: str
    team_id: str | None = None
    spotter_id: str = Field(min_length=1)
    target_id: str = Field(min_length=1)
    image_url: str = Field(min_length=1)
    channel_id: str = Field(min_length=1)
    message_ts: str | None = None
    status: SpotStatus = "confirmed"
    created_at: datetime


class LeaderboardEntry(BaseModel):
    """One ranked row: a user and how many confirmed spots they account for."""

    user_id: str
    count: int = Field(ge=1)
