"""Repository pattern for database access.

Wraps SQLAlchemy async sessions. Spots are create/delete only.
Installations are upserted on (re)install and deleted on uninstall.
"""

from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from spotbot.db.models import InstallationRow, SpotRow
from spotbot.models.spot import (
    GALLERY_LIMIT,
    LeaderboardEntry,
    LeaderboardKind,
    Spot,
    SpotStatus,
)


def _to_spot(row: SpotRow) -> Spot:
    return Spot(
        id=row.id,
        team_id=row.team_id,
        spotter_id=row.spotter_id,
        target_id=row.target_id,
        image_url=row.image_url,
        channel_id=row.channel_id,
        message_ts=row.message_ts,
        status=row.status,
        created_at=row.created_at,
    )


class Repository:
    """Async repository for all database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # --- Spots ---

    async def create_spot(
        self,
        spotter_id: str,
        target_id: str,
        image_url: str,
        channel_id: str,
        team_id: str | None = None,
        message_ts: str | None = None,
        status: SpotStatus = "confirmed",
    ) -> Spot:
        if not (spotter_id and target_id and image_url and channel_id):
            msg = "spotter_id, target_id, image_url and channel_id are required"
            raise ValueError(msg)
        row = SpotRow(
            team_id=team_id,
            spotter_id=spotter_id,
            target_id=target_id,
            image_url=image_url,
            channel_id=channel_id,
            message_ts=message_ts,
            status=status,
        )
        self.session.add(row)
        await self.session.flush()
        return _to_spot(row)

    async def get_leaderboard(
        self,
        kind: LeaderboardKind,
        channel_id: str,
        limit: int,
        team_id: str | None = None,
    ) -> list[LeaderboardEntry]:
        """Count confirmed spots per spotter (or per target), highest first.

        Ties come back in whatever order the database groups them.
        """
        key = SpotRow.spotter_id if kind == "spotter" else SpotRow.target_id
        count = func.count(SpotRow.id).label("count")
        stmt = (
            select(key, count)
            .where(SpotRow.channel_id == channel_id, SpotRow.status == "confirmed")
            .group_by(key)
            .order_by(count.desc())
            .limit(limit)
        )
        if team_id is not None:
            stmt = stmt.where(SpotRow.team_id == team_id)
        result = await self.session.execute(stmt)
        return [LeaderboardEntry(user_id=user_id, count=n) for user_id, n in result.all()]

    async def get_spots_for_target(
        self,
        target_id: str,
        channel_id: str,
        team_id: str | None = None,
        limit: int = GALLERY_LIMIT,
    ) -> list[Spot]:
        """Most recent confirmed spots of *target_id* in a channel, newest first."""
        stmt = (
            select(SpotRow)
            .where(
                SpotRow.target_id == target_id,
                SpotRow.channel_id == channel_id,
                SpotRow.status == "confirmed",
            )
            .order_by(SpotRow.created_at.desc())
            .limit(limit)
        )
        if team_id is not None:
            stmt = stmt.where(SpotRow.team_id == team_id)
        result = await self.session.execute(stmt)
        return [_to_spot(row) for row in result.scalars().all()]

    async def delete_spot_for_message(
        self,
        message_ts: str,
        channel_id: str,
        team_id: str | None = None,
    ) -> Spot | None:
        """Delete the spot logged by message *message_ts*. Returns it, or None."""
        stmt = select(SpotRow).where(
            SpotRow.message_ts == message_ts,
            SpotRow.channel_id == channel_id,
        )
        if team_id is not None:
            stmt = stmt.where(SpotRow.team_id == team_id)
        result = await self.session.execute(stmt.limit(1))
        row = result.scalar_one_or_none()
        if row is None:
            return None
        spot = _to_spot(row)
        await self.session.delete(row)
        await self.session.flush()
        return spot

    async def delete_spots_for_channel(
        self,
        channel_id: str,
        team_id: str | None = None,
    ) -> int:
        """Delete every spot in a channel regardless of status. Returns the count."""
        stmt = delete(SpotRow).where(SpotRow.channel_id == channel_id)
        if team_id is not None:
            stmt = stmt.where(SpotRow.team_id == team_id)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    # --- Installations ---

    async def get_installation(self, team_id: str) -> InstallationRow | None:
        stmt = select(InstallationRow).where(InstallationRow.team_id == team_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert_installation(
        self,
        team_id: str,
        bot_token: str,
        installation: dict,
        team_name: str | None = None,
        bot_id: str | None = None,
        bot_user_id: str | None = None,
    ) -> InstallationRow:
        """Create or overwrite a workspace's installation.

        A reinstall keeps the previously bound active channel.
        """
        row = await self.get_installation(team_id)
        if row is None:
            row = InstallationRow(team_id=team_id)
            self.session.add(row)
        row.team_name = team_name
        row.bot_token = bot_token
        row.bot_id = bot_id
        row.bot_user_id = bot_user_id
        row.installation = installation
        await self.session.flush()
        return row

    async def delete_installation(self, team_id: str) -> bool:
        result = await self.session.execute(
            delete(InstallationRow).where(InstallationRow.team_id == team_id)
        )
        return bool(result.rowcount)

    async def delete_all_installations(self) -> int:
        result = await self.session.execute(delete(InstallationRow))
        return result.rowcount or 0

    async def get_active_channel(self, team_id: str) -> str | None:
        """The channel SpotBot is bound to in a workspace, or None if unbound."""
        stmt = select(InstallationRow.active_channel_id).where(
            InstallationRow.team_id == team_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def set_active_channel(self, team_id: str, channel_id: str) -> bool:
        """Bind a workspace to *channel_id*. Returns False if it has no installation."""
        row = await self.get_installation(team_id)
        if row is None:
            return False
        row.active_channel_id = channel_id
        await self.session.flush()
        return True
