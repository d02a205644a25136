"""Channel gating strategies.

SpotBot only operates in one channel per workspace. Where that channel
comes from depends on the deployment:

- ``InstallationTenancy`` (HTTP / OAuth, many workspaces): the channel an
  admin bound with ``/setchannel``, stored on the workspace's installation.
- ``StaticTenancy`` (Socket Mode, one workspace): a channel ID fixed in
  configuration. Spots are stored without a team ID.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncEngine

from spotbot.config import Settings
from spotbot.slack.helpers import db_session

logger = logging.getLogger(__name__)


class Tenancy(Protocol):
    binds_channels: bool

    async def is_active_channel(self, team_id: str | None, channel_id: str) -> bool: ...

    def scope(self, team_id: str | None) -> str | None: ...

    async def bind_channel(self, team_id: str | None, channel_id: str) -> bool: ...


class StaticTenancy:
    """Single workspace, single hard-coded channel."""

    binds_channels = False

    def __init__(self, channel_id: str) -> None:
        self.channel_id = channel_id

    async def is_active_channel(self, team_id: str | None, channel_id: str) -> bool:
        return bool(self.channel_id) and channel_id == self.channel_id

    def scope(self, team_id: str | None) -> str | None:
        return None

    async def bind_channel(self, team_id: str | None, channel_id: str) -> bool:
        return False


class InstallationTenancy:
    """Per-workspace active channel looked up from the installations table."""

    binds_channels = True

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    async def is_active_channel(self, team_id: str | None, channel_id: str) -> bool:
        if not team_id:
            return False
        async with db_session(self.engine) as repo:
            active = await repo.get_active_channel(team_id)
        if not active:
            return False
        return active == channel_id

    def scope(self, team_id: str | None) -> str | None:
        return team_id

    async def bind_channel(self, team_id: str | None, channel_id: str) -> bool:
        if not team_id:
            return False
        async with db_session(self.engine) as repo:
            bound = await repo.set_active_channel(team_id, channel_id)
        if bound:
            logger.info("active_channel_set team=%s channel=%s", team_id, channel_id)
        else:
            logger.warning("active_channel_no_installation team=%s", team_id)
        return bound


def tenancy_for(settings: Settings, engine: AsyncEngine) -> Tenancy:
    """Pick the gating strategy for the configured deployment mode."""
    if settings.is_socket_mode:
        return StaticTenancy(settings.spotbot_channel_id)
    return InstallationTenancy(engine)
