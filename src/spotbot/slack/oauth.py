"""OAuth storage for the multi-workspace deployment.

Bolt asks these stores for per-workspace bot tokens on every request and
hands them new installations after the OAuth redirect:

- ``SqlAlchemyInstallationStore`` keeps one ``installations`` row per team,
  with the full SDK payload so ``Installation``/``Bot`` can be rebuilt.
- ``SignedOAuthStateStore`` issues OAuth ``state`` values signed with
  ``SLACK_STATE_SECRET`` instead of persisting them.
"""

from __future__ import annotations

import logging
import secrets
from logging import Logger

from itsdangerous import BadData, URLSafeTimedSerializer
from slack_bolt.oauth.async_oauth_settings import AsyncOAuthSettings
from slack_sdk.oauth.installation_store import Bot, Installation
from slack_sdk.oauth.installation_store.async_installation_store import (
    AsyncInstallationStore,
)
from slack_sdk.oauth.state_store.async_state_store import AsyncOAuthStateStore
from sqlalchemy.ext.asyncio import AsyncEngine

from spotbot.config import OAUTH_SCOPES, Settings
from spotbot.slack.helpers import db_session

logger = logging.getLogger(__name__)

STATE_MAX_AGE = 600
STATE_SALT = "spotbot-oauth-state"

INSTALL_PATH = "/slack/install"
REDIRECT_URI_PATH = "/slack/oauth_redirect"


class SqlAlchemyInstallationStore(AsyncInstallationStore):
    """Installation store backed by the ``installations`` table."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.engine = engine

    @property
    def logger(self) -> Logger:
        return logger

    async def async_save(self, installation: Installation) -> None:
        team_id = installation.team_id
        if not team_id:
            logger.warning("installation_skipped_no_team enterprise=%s", installation.enterprise_id)
            return
        async with db_session(self.engine) as repo:
            await repo.upsert_installation(
                team_id=team_id,
                team_name=installation.team_name,
                bot_token=installation.bot_token or "",
                bot_id=installation.bot_id,
                bot_user_id=installation.bot_user_id,
                installation=dict(installation.__dict__),
            )
        logger.info("installation_stored team=%s", team_id)

    async def async_save_bot(self, bot: Bot) -> None:
        """Refresh token fields on an existing installation."""
        if not bot.team_id:
            return
        async with db_session(self.engine) as repo:
            row = await repo.get_installation(bot.team_id)
            if row is None:
                logger.warning("bot_save_no_installation team=%s", bot.team_id)
                return
            payload = dict(row.installation)
            payload.update(
                bot_token=bot.bot_token,
                bot_id=bot.bot_id,
                bot_user_id=bot.bot_user_id,
                bot_scopes=list(bot.bot_scopes),
                bot_refresh_token=bot.bot_refresh_token,
                bot_token_expires_at=bot.bot_token_expires_at,
            )
            await repo.upsert_installation(
                team_id=bot.team_id,
                team_name=row.team_name,
                bot_token=bot.bot_token,
                bot_id=bot.bot_id,
                bot_user_id=bot.bot_user_id,
                installation=payload,
            )

    async def async_find_installation(
        self,
        *,
        enterprise_id: str | None,
        team_id: str | None,
        user_id: str | None = None,
        is_enterprise_install: bool | None = False,
    ) -> Installation | None:
        if not team_id:
            return None
        async with db_session(self.engine) as repo:
            row = await repo.get_installation(team_id)
            payload = dict(row.installation) if row is not None else None
        if payload is None:
            logger.info("installation_not_found team=%s", team_id)
            return None
        installation = Installation(**payload)
        if user_id is not None and installation.user_id != user_id:
            return None
        return installation

    async def async_find_bot(
        self,
        *,
        enterprise_id: str | None,
        team_id: str | None,
        is_enterprise_install: bool | None = False,
    ) -> Bot | None:
        installation = await self.async_find_installation(
            enterprise_id=enterprise_id,
            team_id=team_id,
            is_enterprise_install=is_enterprise_install,
        )
        if installation is None or not installation.bot_token:
            return None
        return installation.to_bot()

    async def async_delete_installation(
        self,
        *,
        enterprise_id: str | None,
        team_id: str | None,
        user_id: str | None = None,
    ) -> None:
        await self._delete(team_id)

    async def async_delete_bot(
        self,
        *,
        enterprise_id: str | None,
        team_id: str | None,
    ) -> None:
        await self._delete(team_id)

    async def async_delete_all(
        self,
        *,
        enterprise_id: str | None,
        team_id: str | None,
    ) -> None:
        await self._delete(team_id)

    async def _delete(self, team_id: str | None) -> None:
        if not team_id:
            return
        async with db_session(self.engine) as repo:
            deleted = await repo.delete_installation(team_id)
        if deleted:
            logger.info("installation_deleted team=%s", team_id)


class SignedOAuthStateStore(AsyncOAuthStateStore):
    """Stateless OAuth ``state``: a random nonce signed with the state secret."""

    def __init__(self, secret: str, expiration_seconds: int = STATE_MAX_AGE) -> None:
        self.serializer = URLSafeTimedSerializer(secret, salt=STATE_SALT)
        self.expiration_seconds = expiration_seconds

    @property
    def logger(self) -> Logger:
        return logger

    async def async_issue(self, *args: object, **kwargs: object) -> str:
        return self.serializer.dumps(secrets.token_urlsafe(16))

    async def async_consume(self, state: str) -> bool:
        try:
            self.serializer.loads(state, max_age=self.expiration_seconds)
        except BadData:
            logger.warning("oauth_state_rejected")
            return False
        return True


def build_oauth_settings(settings: Settings, engine: AsyncEngine) -> AsyncOAuthSettings:
    """OAuth settings for the HTTP deployment. Install goes straight to Slack."""
    return AsyncOAuthSettings(
        client_id=settings.slack_client_id,
        client_secret=settings.slack_client_secret,
        scopes=OAUTH_SCOPES,
        installation_store=SqlAlchemyInstallationStore(engine),
        state_store=SignedOAuthStateStore(settings.slack_state_secret),
        install_path=INSTALL_PATH,
        redirect_uri_path=REDIRECT_URI_PATH,
        install_page_rendering_enabled=False,
    )
