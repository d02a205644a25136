"""Tests for channel gating strategies."""

from sqlalchemy.ext.asyncio import AsyncEngine

from spotbot.config import Settings
from spotbot.db.engine import get_session
from spotbot.db.repository import Repository
from spotbot.slack.tenancy import InstallationTenancy, StaticTenancy, tenancy_for


async def _install(engine: AsyncEngine, team_id: str, channel_id: str | None = None) -> None:
    async with get_session(engine) as session:
        repo = Repository(session)
        await repo.upsert_installation(team_id, "xoxb-test", {"team_id": team_id})
        if channel_id:
            await repo.set_active_channel(team_id, channel_id)


class TestStaticTenancy:
    async def test_matches_configured_channel(self) -> None:
        gate = StaticTenancy("C1")
        assert await gate.is_active_channel(None, "C1") is True
        assert await gate.is_active_channel("T1", "C2") is False

    async def test_unset_channel_fails_closed(self) -> None:
        assert await StaticTenancy("").is_active_channel(None, "") is False

    async def test_no_tenant_scope_and_no_binding(self) -> None:
        gate = StaticTenancy("C1")
        assert gate.scope("T1") is None
        assert gate.binds_channels is False
        assert await gate.bind_channel("T1", "C2") is False


class TestInstallationTenancy:
    async def test_no_installation(self, engine: AsyncEngine) -> None:
        gate = InstallationTenancy(engine)
        assert await gate.is_active_channel("T1", "C1") is False

    async def test_unbound_installation(self, engine: AsyncEngine) -> None:
        await _install(engine, "T1")
        assert await InstallationTenancy(engine).is_active_channel("T1", "C1") is False

    async def test_bound_channel(self, engine: AsyncEngine) -> None:
        await _install(engine, "T1", "C1")
        gate = InstallationTenancy(engine)
        assert await gate.is_active_channel("T1", "C1") is True
        assert await gate.is_active_channel("T1", "C2") is False
        assert await gate.is_active_channel("T2", "C1") is False

    async def test_missing_team(self, engine: AsyncEngine) -> None:
        assert await InstallationTenancy(engine).is_active_channel(None, "C1") is False

    async def test_bind_channel(self, engine: AsyncEngine) -> None:
        await _install(engine, "T1", "C1")
        gate = InstallationTenancy(engine)
        assert await gate.bind_channel("T1", "C9") is True
        assert await gate.is_active_channel("T1", "C9") is True
        assert await gate.is_active_channel("T1", "C1") is False

    async def test_bind_without_installation(self, engine: AsyncEngine) -> None:
        assert await InstallationTenancy(engine).bind_channel("T404", "C1") is False

    async def test_scope_is_team(self, engine: AsyncEngine) -> None:
        assert InstallationTenancy(engine).scope("T1") == "T1"


class TestTenancyFor:
    async def test_http_mode_uses_installations(self, engine: AsyncEngine) -> None:
        settings = Settings(spotbot_env="development", spotbot_mode="http")
        assert isinstance(tenancy_for(settings, engine), InstallationTenancy)

    async def test_socket_mode_uses_static_channel(self, engine: AsyncEngine) -> None:
        settings = Settings(
            spotbot_env="development", spotbot_mode="socket", spotbot_channel_id="C42"
        )
        gate = tenancy_for(settings, engine)
        assert isinstance(gate, StaticTenancy)
        assert gate.channel_id == "C42"
