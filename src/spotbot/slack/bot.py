"""Slack bot for SpotBot.

``SpotBot`` is the single lifecycle object for a running process: it owns
the Bolt ``AsyncApp``, the database engine and the channel-gating strategy,
and registers every listener exactly once. Handlers never read module-level
state.

Flow for every event: route → gate on the active channel → handler →
optional admin check → repository → reply.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from slack_bolt.async_app import AsyncApp
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from spotbot.models.spot import LeaderboardKind
from spotbot.slack import messages
from spotbot.slack.helpers import (
    AdminCheckError,
    db_session,
    extract_mention,
    first_image_url,
    is_admin,
    parse_limit,
)
from spotbot.slack.router import MessageRouter
from spotbot.slack.tenancy import Tenancy, tenancy_for

if TYPE_CHECKING:
    from slack_bolt.context.ack.async_ack import AsyncAck
    from slack_bolt.context.async_context import AsyncBoltContext
    from slack_bolt.context.say.async_say import AsyncSay

    from spotbot.config import Settings

logger = logging.getLogger(__name__)

SLASH_COMMANDS = ("/setchannel", "/spotboard", "/caughtboard", "/reset")


class SpotBot:
    """Routes Slack messages and slash commands to SpotBot handlers."""

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        tenancy: Tenancy | None = None,
        router: MessageRouter | None = None,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.tenancy = tenancy or tenancy_for(settings, engine)
        self.router = router or MessageRouter()
        self.tz_name = settings.spotbot_timezone
        self._app: AsyncApp | None = None

    # --- Bolt wiring ---

    @property
    def app(self) -> AsyncApp:
        if self._app is None:
            self._app = self.build_app()
        return self._app

    def build_app(self) -> AsyncApp:
        """Create the Bolt app for the configured mode and register listeners."""
        bolt_logger = logging.getLogger("slack_bolt")
        if self.settings.is_socket_mode:
            app = AsyncApp(
                token=self.settings.slack_bot_token,
                signing_secret=self.settings.slack_signing_secret or None,
                logger=bolt_logger,
            )
        else:
            from spotbot.slack.oauth import build_oauth_settings

            app = AsyncApp(
                signing_secret=self.settings.slack_signing_secret,
                oauth_settings=build_oauth_settings(self.settings, self.engine),
                logger=bolt_logger,
            )
            app.enable_token_revocation_listeners()

        self.register(app)
        return app

    def register(self, app: AsyncApp) -> None:
        app.event("message")(self._on_message)
        app.command("/setchannel")(self._on_setchannel)
        app.command("/spotboard")(self._on_spotboard)
        app.command("/caughtboard")(self._on_caughtboard)
        app.command("/reset")(self._on_reset)
        logger.info("slack_listeners_registered commands=%s", ",".join(SLASH_COMMANDS))

    async def _on_message(
        self,
        event: dict[str, Any],
        say: AsyncSay,
        client: AsyncWebClient,
        context: AsyncBoltContext,
    ) -> None:
        team_id = event.get("team") or context.team_id
        await self.handle_message(event, team_id, say, client)

    async def _on_setchannel(
        self, ack: AsyncAck, command: dict[str, Any], say: AsyncSay, client: AsyncWebClient
    ) -> None:
        await ack()
        await self.handle_setchannel(command, say, client)

    async def _on_spotboard(self, ack: AsyncAck, command: dict[str, Any], say: AsyncSay) -> None:
        await ack()
        await self.handle_leaderboard("spotter", command, say)

    async def _on_caughtboard(self, ack: AsyncAck, command: dict[str, Any], say: AsyncSay) -> None:
        await ack()
        await self.handle_leaderboard("target", command, say)

    async def _on_reset(
        self, ack: AsyncAck, command: dict[str, Any], say: AsyncSay, client: AsyncWebClient
    ) -> None:
        await ack()
        await self.handle_reset(command, say, client)

    # --- Shared plumbing ---

    async def _reply(self, say: AsyncSay, text: str, **kwargs: Any) -> None:
        """Post a reply; a failed post is logged, never raised."""
        try:
            await say(text=text, **kwargs)
        except SlackApiError:
            logger.exception("slack_reply_failed")

    async def _is_active(self, team_id: str | None, channel_id: str) -> bool:
        """Channel gate for plain messages. A lookup failure counts as inactive."""
        try:
            return await self.tenancy.is_active_channel(team_id, channel_id)
        except SQLAlchemyError:
            logger.exception("active_channel_lookup_failed team=%s", team_id)
            return False

    async def _command_gate(
        self, team_id: str | None, channel_id: str, say: AsyncSay, failure_text: str
    ) -> bool:
        """Channel gate for slash commands. Every refusal gets a reply."""
        try:
            active = await self.tenancy.is_active_channel(team_id, channel_id)
        except SQLAlchemyError:
            logger.exception("active_channel_lookup_failed team=%s", team_id)
            await self._reply(say, failure_text)
            return False
        if not active:
            await self._reply(say, messages.NOT_ACTIVE)
        return active

    async def _require_admin(
        self,
        client: AsyncWebClient,
        user_id: str,
        say: AsyncSay,
        denied_text: str,
        **reply_kwargs: Any,
    ) -> bool:
        """True if *user_id* is an admin; otherwise reply and return False."""
        try:
            admin = await is_admin(client, user_id)
        except AdminCheckError:
            await self._reply(say, messages.ADMIN_CHECK_FAILED, **reply_kwargs)
            return False
        if not admin:
            logger.info("admin_check_denied user=%s", user_id)
            await self._reply(say, denied_text, **reply_kwargs)
            return False
        return True

    # --- Message handlers ---

    async def handle_message(
        self,
        message: dict[str, Any],
        team_id: str | None,
        say: AsyncSay,
        client: AsyncWebClient,
    ) -> None:
        intent = self.router.route(message)
        if intent == "veto":
            await self.handle_veto(message, team_id, say, client)
        elif intent == "pics":
            await self.handle_gallery(message, team_id, say)
        elif intent == "spot":
            await self.handle_spot(message, team_id, say)

    async def handle_spot(self, message: dict[str, Any], team_id: str | None, say: AsyncSay) -> None:
        """Log a spot: first mention is the target, first attachment the evidence."""
        channel_id = message["channel"]
        if not await self._is_active(team_id, channel_id):
            return

        spotter_id = message["user"]
        target_id = extract_mention(message.get("text"))
        if target_id is None:
            return

        image_url = first_image_url(message.get("files"))
        if image_url is None:
            await self._reply(say, messages.no_photo(spotter_id))
            return

        try:
            async with db_session(self.engine) as repo:
                await repo.create_spot(
                    team_id=self.tenancy.scope(team_id),
                    spotter_id=spotter_id,
                    target_id=target_id,
                    image_url=image_url,
                    channel_id=channel_id,
                    message_ts=message.get("ts"),
                )
        except SQLAlchemyError:
            logger.exception("spot_save_failed team=%s channel=%s", team_id, channel_id)
            await self._reply(say, messages.SPOT_SAVE_FAILED)
            return

        logger.info(
            "spot_logged team=%s channel=%s spotter=%s target=%s",
            team_id,
            channel_id,
            spotter_id,
            target_id,
        )
        await self._reply(say, messages.spot_logged(spotter_id, target_id))

    async def handle_gallery(
        self, message: dict[str, Any], team_id: str | None, say: AsyncSay
    ) -> None:
        """Show the latest confirmed spots of the mentioned user."""
        channel_id = message["channel"]
        if not await self._is_active(team_id, channel_id):
            return

        target_id = extract_mention(message.get("text"))
        if target_id is None:
            await self._reply(say, messages.GALLERY_USAGE)
            return

        try:
            async with db_session(self.engine) as repo:
                spots = await repo.get_spots_for_target(
                    target_id=target_id,
                    channel_id=channel_id,
                    team_id=self.tenancy.scope(team_id),
                )
        except SQLAlchemyError:
            logger.exception("gallery_query_failed team=%s target=%s", team_id, target_id)
            await self._reply(say, messages.GALLERY_FAILED)
            return

        if not spots:
            await self._reply(say, messages.gallery_empty(target_id))
            return

        await self._reply(
            say,
            messages.gallery_fallback(target_id),
            blocks=messages.build_gallery_blocks(target_id, spots, self.tz_name),
        )

    async def handle_veto(
        self,
        message: dict[str, Any],
        team_id: str | None,
        say: AsyncSay,
        client: AsyncWebClient,
    ) -> None:
        """Admin replies ``veto`` in a spot's thread to delete that spot."""
        thread_ts = message.get("thread_ts")
        if not thread_ts or thread_ts == message.get("ts"):
            return

        channel_id = message["channel"]
        if not await self._is_active(team_id, channel_id):
            return

        user_id = message["user"]
        if not await self._require_admin(
            client, user_id, say, messages.veto_denied(user_id), thread_ts=thread_ts
        ):
            return

        try:
            async with db_session(self.engine) as repo:
                spot = await repo.delete_spot_for_message(
                    message_ts=thread_ts,
                    channel_id=channel_id,
                    team_id=self.tenancy.scope(team_id),
                )
        except SQLAlchemyError:
            logger.exception("veto_failed team=%s thread=%s", team_id, thread_ts)
            await self._reply(say, messages.VETO_FAILED, thread_ts=thread_ts)
            return

        if spot is None:
            await self._reply(say, messages.VETO_NOT_FOUND, thread_ts=thread_ts)
            return

        logger.info("spot_vetoed team=%s spot=%s admin=%s", team_id, spot.id, user_id)
        await self._reply(say, messages.vetoed(user_id, spot, self.tz_name), thread_ts=thread_ts)

    # --- Slash command handlers ---

    async def handle_leaderboard(
        self, kind: LeaderboardKind, command: dict[str, Any], say: AsyncSay
    ) -> None:
        """Handle /spotboard (by spotter) and /caughtboard (by target)."""
        team_id = command.get("team_id")
        channel_id = command["channel_id"]
        if not await self._command_gate(
            team_id, channel_id, say, messages.leaderboard_error(kind)
        ):
            return

        limit = parse_limit(command.get("text"))
        try:
            async with db_session(self.engine) as repo:
                entries = await repo.get_leaderboard(
                    kind=kind,
                    channel_id=channel_id,
                    limit=limit,
                    team_id=self.tenancy.scope(team_id),
                )
        except SQLAlchemyError:
            logger.exception("leaderboard_query_failed kind=%s team=%s", kind, team_id)
            await self._reply(say, messages.leaderboard_error(kind))
            return

        await self._reply(say, messages.build_leaderboard_text(kind, entries, limit))

    async def handle_reset(
        self, command: dict[str, Any], say: AsyncSay, client: AsyncWebClient
    ) -> None:
        """Handle /reset: an admin wipes every spot in the channel."""
        team_id = command.get("team_id")
        channel_id = command["channel_id"]
        user_id = command["user_id"]
        if not await self._command_gate(team_id, channel_id, say, messages.RESET_FAILED):
            return

        if not await self._require_admin(client, user_id, say, messages.reset_denied(user_id)):
            return

        try:
            async with db_session(self.engine) as repo:
                deleted = await repo.delete_spots_for_channel(
                    channel_id=channel_id,
                    team_id=self.tenancy.scope(team_id),
                )
        except SQLAlchemyError:
            logger.exception("reset_failed team=%s channel=%s", team_id, channel_id)
            await self._reply(say, messages.RESET_FAILED)
            return

        logger.info("board_reset team=%s channel=%s deleted=%d", team_id, channel_id, deleted)
        if deleted > 0:
            await self._reply(say, messages.board_wiped(user_id, deleted))
        else:
            await self._reply(say, messages.BOARD_ALREADY_CLEAN)

    async def handle_setchannel(
        self, command: dict[str, Any], say: AsyncSay, client: AsyncWebClient
    ) -> None:
        """Handle /setchannel: an admin binds SpotBot to the current channel."""
        team_id = command.get("team_id")
        channel_id = command["channel_id"]
        user_id = command["user_id"]

        if not await self._require_admin(client, user_id, say, messages.setchannel_denied(user_id)):
            return

        if not self.tenancy.binds_channels:
            await self._reply(say, messages.CHANNEL_FIXED)
            return

        try:
            bound = await self.tenancy.bind_channel(team_id, channel_id)
        except SQLAlchemyError:
            logger.exception("setchannel_failed team=%s channel=%s", team_id, channel_id)
            bound = False

        if bound:
            await self._reply(say, messages.CHANNEL_ACTIVATED)
        else:
            await self._reply(say, messages.SETCHANNEL_FAILED)
