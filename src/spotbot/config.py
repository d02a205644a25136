"""Application settings via pydantic-settings. Loads from environment and .env file."""

from __future__ import annotations

import logging

from pydantic import model_validator
from pydantic_settings import BaseSettings

VALID_MODES = frozenset({"http", "socket"})

# Credentials each deployment mode cannot start without.
MODE_CREDENTIALS: dict[str, tuple[str, ...]] = {
    "http": (
        "slack_client_id",
        "slack_client_secret",
        "slack_signing_secret",
        "slack_state_secret",
    ),
    "socket": ("slack_bot_token", "slack_app_token", "spotbot_channel_id"),
}

OAUTH_SCOPES: list[str] = [
    "chat:write",
    "channels:history",
    "files:read",
    "commands",
    "users:read",
    "reactions:write",
    "reactions:read",
]


class Settings(BaseSettings):
    """SpotBot configuration.

    All values can be overridden via environment variables or .env file.
    ``spotbot_mode`` picks the deployment: ``http`` runs the multi-workspace
    OAuth app behind FastAPI, ``socket`` runs a single workspace over Socket
    Mode with the channel fixed by ``spotbot_channel_id``.
    """

    # Slack app credentials (HTTP / OAuth mode)
    slack_signing_secret: str = ""
    slack_client_id: str = ""
    slack_client_secret: str = ""
    slack_state_secret: str = ""

    # Slack tokens (Socket Mode, single workspace)
    slack_bot_token: str = ""
    slack_app_token: str = ""
    spotbot_channel_id: str = ""

    # Deployment
    spotbot_mode: str = "http"
    spotbot_env: str = "development"
    port: int = 3000

    # Database
    database_url: str = "sqlite+aiosqlite:///spotbot.db"

    # Display
    spotbot_timezone: str = "UTC"

    # Logging
    slack_debug: bool = False
    spotbot_log_level: str = "INFO"

    model_config = {"env_prefix": "", "env_file": ".env", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_mode(self) -> Settings:
        if self.spotbot_mode not in VALID_MODES:
            msg = f"SPOTBOT_MODE must be one of {sorted(VALID_MODES)}, got {self.spotbot_mode!r}"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def _require_credentials_in_production(self) -> Settings:
        """Refuse to boot a production deployment with missing credentials."""
        if self.spotbot_env == "production":
            missing = [name for name, present in self.required_credentials().items() if not present]
            if missing:
                msg = "Missing required settings for production: " + ", ".join(
                    name.upper() for name in missing
                )
                raise ValueError(msg)
        return self

    @property
    def is_socket_mode(self) -> bool:
        return self.spotbot_mode == "socket"

    def required_credentials(self) -> dict[str, bool]:
        """Map each credential the current mode needs to whether it is set."""
        names = (*MODE_CREDENTIALS[self.spotbot_mode], "database_url")
        return {name: bool(getattr(self, name)) for name in names}

    def effective_log_level(self) -> int:
        """DEBUG when SLACK_DEBUG is on, otherwise the configured level."""
        if self.slack_debug:
            return logging.DEBUG
        return getattr(logging, self.spotbot_log_level.upper(), logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(
        level=settings.effective_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def log_startup_check(settings: Settings) -> None:
    """Log which required credentials are present, never their values."""
    logger = logging.getLogger("spotbot.startup")
    logger.info("startup_check mode=%s env=%s", settings.spotbot_mode, settings.spotbot_env)
    for name, present in settings.required_credentials().items():
        logger.info("  %s: %s", name.upper(), "SET" if present else "*** MISSING ***")
