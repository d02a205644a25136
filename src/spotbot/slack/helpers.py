"""Slack bot helpers: admin check, message parsing and DB session context."""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient
from sqlalchemy.ext.asyncio import AsyncEngine

from spotbot.db.engine import get_session
from spotbot.db.repository import Repository
from spotbot.models.spot import DEFAULT_LEADERBOARD_LIMIT, MAX_LEADERBOARD_LIMIT

logger = logging.getLogger(__name__)

# <@U123ABC> or <@U123ABC|display-name>
MENTION_RE = re.compile(r"<@([A-Z0-9]+)(?:\|[^>]*)?>")
_LEADING_INT_RE = re.compile(r"^\s*(\d+)")


class AdminCheckError(Exception):
    """Raised when Slack could not tell us whether a user is an admin."""


@asynccontextmanager
async def db_session(
    engine: AsyncEngine,
) -> AsyncGenerator[Repository, None]:
    """Yield a Repository bound to a fresh async session."""
    async with get_session(engine) as session:
        yield Repository(session)


async def is_admin(client: AsyncWebClient, user_id: str) -> bool:
    """Ask Slack whether *user_id* is a workspace admin.

    Raises AdminCheckError if the lookup fails; callers treat that as a denial.
    """
    try:
        response = await client.users_info(user=user_id)
    except SlackApiError as exc:
        logger.exception("admin_check_failed user=%s", user_id)
        raise AdminCheckError(str(exc)) from exc

    user = response.get("user")
    if not isinstance(user, dict):
        logger.error("admin_check_malformed_response user=%s", user_id)
        raise AdminCheckError("users.info returned no user")
    return bool(user.get("is_admin", False))


def extract_mention(text: str | None) -> str | None:
    """Return the first mentioned user ID in *text*, or None."""
    match = MENTION_RE.search(text or "")
    return match.group(1) if match else None


def first_image_url(files: list[dict] | None) -> str | None:
    """URL of the first attached file, or None when nothing is attached."""
    if not files:
        return None
    return files[0].get("url_private") or None


def parse_limit(text: str | None) -> int:
    """Leaderboard size from command text.

    Leading integer, clamped to MAX_LEADERBOARD_LIMIT. Anything missing,
    non-numeric or zero falls back to DEFAULT_LEADERBOARD_LIMIT.
    """
    match = _LEADING_INT_RE.match(text or "")
    if not match:
        return DEFAULT_LEADERBOARD_LIMIT
    limit = int(match.group(1))
    if limit <= 0:
        return DEFAULT_LEADERBOARD_LIMIT
    return min(limit, MAX_LEADERBOARD_LIMIT)


def format_spot_date(value: datetime, tz_name: str = "UTC") -> str:
    """Render a spot timestamp like ``Oct 17, 3:05 PM``.

    Naive datetimes are stored as UTC by the database layer.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    local = value.astimezone(ZoneInfo(tz_name))
    hour = local.hour % 12 or 12
    return f"{local:%b} {local.day}, {hour}:{local:%M} {local:%p}"
