"""FastAPI application factory and process entry point.

``spotbot`` (the console script) starts whichever deployment the settings
select:

- ``SPOTBOT_MODE=http``: FastAPI + uvicorn, Slack events and OAuth over HTTP.
- ``SPOTBOT_MODE=socket``: a single workspace over Socket Mode, no web server.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from slack_bolt.adapter.fastapi.async_handler import AsyncSlackRequestHandler

from spotbot.config import Settings, configure_logging, log_startup_check
from spotbot.db.engine import create_engine, init_db
from spotbot.slack.bot import SpotBot
from spotbot.slack.oauth import INSTALL_PATH, REDIRECT_URI_PATH

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: create engine and tables, build the bot. Shutdown: dispose engine."""
    settings: Settings = app.state.settings
    engine = create_engine(settings.database_url)
    await init_db(engine)
    app.state.engine = engine

    bot = SpotBot(settings=settings, engine=engine)
    app.state.bot = bot
    app.state.slack_handler = AsyncSlackRequestHandler(bot.app)
    logger.info("spotbot_http_ready port=%d", settings.port)

    yield

    await engine.dispose()
    logger.info("spotbot_http_stopped")


def _slack_handler(request: Request) -> AsyncSlackRequestHandler:
    return request.app.state.slack_handler


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the SpotBot FastAPI application."""
    settings = settings or Settings()
    configure_logging(settings)

    app = FastAPI(
        title="SpotBot",
        version="0.1.0",
        description="Slack bot for spotting coworkers in the wild",
        docs_url="/docs" if settings.spotbot_env != "production" else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    @app.post("/slack/events")
    async def slack_events(request: Request) -> Response:
        return await _slack_handler(request).handle(request)

    @app.get(INSTALL_PATH)
    async def slack_install(request: Request) -> Response:
        return await _slack_handler(request).handle(request)

    @app.get(REDIRECT_URI_PATH)
    async def slack_oauth_redirect(request: Request) -> Response:
        return await _slack_handler(request).handle(request)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "mode": settings.spotbot_mode}

    return app


async def run_socket_mode(settings: Settings) -> None:
    """Run the single-workspace bot over Socket Mode until cancelled."""
    from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler

    engine = create_engine(settings.database_url)
    await init_db(engine)
    bot = SpotBot(settings=settings, engine=engine)
    handler = AsyncSocketModeHandler(bot.app, settings.slack_app_token)
    logger.info("spotbot_socket_mode_starting channel=%s", settings.spotbot_channel_id)
    try:
        await handler.start_async()
    finally:
        await handler.close_async()
        await engine.dispose()
        logger.info("spotbot_socket_mode_stopped")


def run() -> None:
    """Console entry point."""
    settings = Settings()
    configure_logging(settings)
    log_startup_check(settings)

    if settings.is_socket_mode:
        asyncio.run(run_socket_mode(settings))
        return

    import uvicorn

    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    run()
