"""Tests for database layer: engine, ORM models, repository round-trips."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncEngine

from spotbot.db.engine import auto_migrate_schema, create_engine, get_session
from spotbot.db.models import SpotRow
from spotbot.db.repository import Repository


async def _spot(repo: Repository, **overrides: str | None):
    fields: dict[str, str | None] = {
        "team_id": "T1",
        "spotter_id": "U1",
        "target_id": "U2",
        "image_url": "https://files.slack.com/a.jpg",
        "channel_id": "C1",
        "message_ts": None,
    }
    fields.update(overrides)
    return await repo.create_spot(**fields)


class TestTableCreation:
    async def test_all_tables_created(self, engine: AsyncEngine):
        async with engine.connect() as conn:
            tables = await conn.run_sync(
                lambda sync_conn: sync_conn.dialect.get_table_names(sync_conn)
            )
        assert {"spots", "installations"}.issubset(set(tables))


class TestAutoMigrate:
    async def test_adds_active_channel_to_old_installations_table(self):
        eng = create_engine("sqlite+aiosqlite:///:memory:")
        async with eng.begin() as conn:
            await conn.execute(
                text(
                    "CREATE TABLE installations ("
                    "id VARCHAR(36) PRIMARY KEY, team_id VARCHAR(32) NOT NULL UNIQUE, "
                    "team_name VARCHAR(200), bot_token VARCHAR(255) NOT NULL, "
                    "bot_id VARCHAR(32), bot_user_id VARCHAR(32), "
                    "installation JSON NOT NULL, installed_at DATETIME)"
                )
            )
            added = await auto_migrate_schema(conn)
            result = await conn.execute(text("PRAGMA table_info(installations)"))
            columns = {row[1] for row in result.fetchall()}
        await eng.dispose()

        assert added == 1
        assert "active_channel_id" in columns

    async def test_backfills_status_on_old_spots_table(self):
        eng = create_engine("sqlite+aiosqlite:///:memory:")
        async with eng.begin() as conn:
            await conn.execute(
                text(
                    "CREATE TABLE spots ("
                    "id VARCHAR(36) PRIMARY KEY, team_id VARCHAR(32), "
                    "spotter_id VARCHAR(32) NOT NULL, target_id VARCHAR(32) NOT NULL, "
                    "image_url VARCHAR(2048) NOT NULL, channel_id VARCHAR(32) NOT NULL, "
                    "message_ts VARCHAR(32), created_at DATETIME)"
                )
            )
            await conn.execute(
                text(
                    "INSERT INTO spots (id, spotter_id, target_id, image_url, channel_id) "
                    "VALUES ('s1', 'U1', 'U2', 'https://x/a.jpg', 'C1')"
                )
            )
            added = await auto_migrate_schema(conn)
            result = await conn.execute(text("SELECT status FROM spots WHERE id = 's1'"))
            status = result.scalar_one()
        await eng.dispose()

        assert added == 1
        assert status == "confirmed"

    async def test_noop_on_current_schema(self, engine: AsyncEngine):
        async with engine.begin() as conn:
            assert await auto_migrate_schema(conn) == 0


class TestSpots:
    async def test_create_spot_defaults(self, repo: Repository):
        spot = await _spot(repo, message_ts="1700000000.000100")
        assert spot.id
        assert spot.status == "confirmed"
        assert spot.spotter_id == "U1"
        assert spot.target_id == "U2"
        assert spot.message_ts == "1700000000.000100"
        assert spot.created_at is not None

    async def test_create_spot_requires_fields(self, repo: Repository):
        with pytest.raises(ValueError):
            await _spot(repo, image_url="")

    async def test_gallery_newest_first_and_confirmed_only(self, repo: Repository):
        old = await _spot(repo, image_url="https://x/old.jpg")
        new = await _spot(repo, image_url="https://x/new.jpg")
        await _spot(repo, image_url="https://x/rejected.jpg", status="rejected")
        await _spot(repo, target_id="U9")
        await _spot(repo, channel_id="C2")
        await _spot(repo, team_id="T2")

        # Pin timestamps so ordering does not depend on clock resolution.
        base = datetime(2026, 1, 1, tzinfo=UTC)
        rows = {
            r.id: r for r in (await repo.session.execute(select(SpotRow))).scalars().all()
        }
        rows[old.id].created_at = base
        rows[new.id].created_at = base + timedelta(hours=1)
        await repo.session.flush()

        spots = await repo.get_spots_for_target("U2", "C1", team_id="T1")
        assert [s.image_url for s in spots] == ["https://x/new.jpg", "https://x/old.jpg"]

    async def test_gallery_limit(self, repo: Repository):
        for _ in range(12):
            await _spot(repo)
        spots = await repo.get_spots_for_target("U2", "C1", team_id="T1")
        assert len(spots) == 10

    async def test_gallery_without_tenant_scope(self, repo: Repository):
        await _spot(repo, team_id=None)
        spots = await repo.get_spots_for_target("U2", "C1")
        assert len(spots) == 1


class TestLeaderboard:
    async def test_groups_by_spotter(self, repo: Repository):
        for _ in range(3):
            await _spot(repo, spotter_id="UA")
        await _spot(repo, spotter_id="UB")
        await _spot(repo, spotter_id="UB")
        await _spot(repo, spotter_id="UC")

        board = await repo.get_leaderboard("spotter", "C1", limit=10, team_id="T1")
        assert [(e.user_id, e.count) for e in board] == [("UA", 3), ("UB", 2), ("UC", 1)]

    async def test_groups_by_target(self, repo: Repository):
        await _spot(repo, target_id="UX")
        await _spot(repo, target_id="UX")
        await _spot(repo, target_id="UY")

        board = await repo.get_leaderboard("target", "C1", limit=10, team_id="T1")
        assert [(e.user_id, e.count) for e in board] == [("UX", 2), ("UY", 1)]

    async def test_respects_limit(self, repo: Repository):
        for i in range(8):
            await _spot(repo, spotter_id=f"U{i}")
        board = await repo.get_leaderboard("spotter", "C1", limit=5, team_id="T1")
        assert len(board) == 5

    async def test_scoped_and_confirmed_only(self, repo: Repository):
        await _spot(repo, spotter_id="UA")
        await _spot(repo, spotter_id="UB", channel_id="C2")
        await _spot(repo, spotter_id="UC", team_id="T2")
        await _spot(repo, spotter_id="UD", status="pending")

        board = await repo.get_leaderboard("spotter", "C1", limit=10, team_id="T1")
        assert [e.user_id for e in board] == ["UA"]

    async def test_empty(self, repo: Repository):
        assert await repo.get_leaderboard("target", "C1", limit=10, team_id="T1") == []


class TestDeletion:
    async def test_delete_spot_for_message(self, repo: Repository):
        await _spot(repo, message_ts="111.1")
        await _spot(repo, message_ts="222.2")

        deleted = await repo.delete_spot_for_message("111.1", "C1", team_id="T1")
        assert deleted is not None
        assert deleted.message_ts == "111.1"

        remaining = await repo.get_spots_for_target("U2", "C1", team_id="T1")
        assert [s.message_ts for s in remaining] == ["222.2"]

    async def test_delete_spot_wrong_channel(self, repo: Repository):
        await _spot(repo, message_ts="111.1")
        assert await repo.delete_spot_for_message("111.1", "C2", team_id="T1") is None

    async def test_delete_spots_for_channel(self, repo: Repository):
        await _spot(repo)
        await _spot(repo, status="pending")
        await _spot(repo, channel_id="C2")
        await _spot(repo, team_id="T2")

        assert await repo.delete_spots_for_channel("C1", team_id="T1") == 2
        assert await repo.delete_spots_for_channel("C1", team_id="T1") == 0
        assert len(await repo.get_spots_for_target("U2", "C2", team_id="T1")) == 1
        assert len(await repo.get_spots_for_target("U2", "C1", team_id="T2")) == 1


class TestInstallations:
    async def test_upsert_and_get(self, repo: Repository):
        await repo.upsert_installation(
            team_id="T1",
            team_name="Acme",
            bot_token="xoxb-1",
            bot_id="B1",
            bot_user_id="UBOT",
            installation={"team_id": "T1"},
        )
        row = await repo.get_installation("T1")
        assert row is not None
        assert row.team_name == "Acme"
        assert row.active_channel_id is None
        assert row.installed_at is not None

    async def test_reinstall_keeps_active_channel(self, repo: Repository):
        await repo.upsert_installation("T1", "xoxb-1", {"v": 1})
        assert await repo.set_active_channel("T1", "C1") is True
        await repo.upsert_installation("T1", "xoxb-2", {"v": 2})

        row = await repo.get_installation("T1")
        assert row is not None
        assert row.bot_token == "xoxb-2"
        assert row.installation == {"v": 2}
        assert row.active_channel_id == "C1"

    async def test_set_active_channel_without_installation(self, repo: Repository):
        assert await repo.set_active_channel("T404", "C1") is False
        assert await repo.get_active_channel("T404") is None

    async def test_delete_installation(self, repo: Repository):
        await repo.upsert_installation("T1", "xoxb-1", {})
        assert await repo.delete_installation("T1") is True
        assert await repo.get_installation("T1") is None
        assert await repo.delete_installation("T1") is False


class TestSession:
    async def test_rollback_on_error(self, engine: AsyncEngine):
        with pytest.raises(RuntimeError):
            async with get_session(engine) as session:
                await _spot(Repository(session))
                raise RuntimeError("boom")

        async with get_session(engine) as session:
            spots = await Repository(session).get_spots_for_target("U2", "C1", team_id="T1")
        assert spots == []
