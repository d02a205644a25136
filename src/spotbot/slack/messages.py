"""Reply text and Block Kit builders for SpotBot.

Every user-visible string lives here so handlers stay about control flow.
"""

from __future__ import annotations

from spotbot.models.spot import LeaderboardEntry, LeaderboardKind, Spot
from spotbot.slack.helpers import format_spot_date

MEDALS = ("🥇", "🥈", "🥉")
BULLET = "•"

NOT_ACTIVE = (
    "⚠️ SpotBot isn't active in this channel. An admin can run `/setchannel` to activate it."
)
ADMIN_CHECK_FAILED = "⚠️ I couldn't verify your admin status with Slack."

_LEADERBOARD_COPY: dict[str, dict[str, str]] = {
    "spotter": {
        "title": "🏆 *Top {limit} Spotters*",
        "unit": "spots",
        "empty": "No spots yet! Go touch grass and find someone!",
        "error": "⚠️ I had trouble crunching the numbers for the leaderboard.",
    },
    "target": {
        "title": "🎯 *Top {limit} Most Wanted (Caught)*",
        "unit": "times",
        "empty": "Everyone is a ninja here. No one has been caught yet!",
        "error": "⚠️ I had trouble loading the Caughtboard.",
    },
}


# --- Spot logging ---


def spot_logged(spotter_id: str, target_id: str) -> str:
    return f"✅ *Spot Logged!* <@{spotter_id}> has captured <@{target_id}> in the wild."


def no_photo(spotter_id: str) -> str:
    return f"📸 No photo, no glory, <@{spotter_id}>!"


SPOT_SAVE_FAILED = "⚠️ I had trouble saving that spot to the database."


# --- Leaderboards ---


def medal_for(rank: int) -> str:
    """Medal for 1-based *rank*; a bullet past third place."""
    return MEDALS[rank - 1] if 1 <= rank <= len(MEDALS) else BULLET


def build_leaderboard_text(
    kind: LeaderboardKind,
    entries: list[LeaderboardEntry],
    limit: int,
) -> str:
    """Ranked leaderboard, or the "nobody yet" line when *entries* is empty."""
    copy = _LEADERBOARD_COPY[kind]
    if not entries:
        return copy["empty"]

    lines = [copy["title"].format(limit=limit)]
    for rank, entry in enumerate(entries, 1):
        lines.append(f"{medal_for(rank)} <@{entry.user_id}>: *{entry.count}* {copy['unit']}")
    return "\n".join(lines) + "\n"


def leaderboard_error(kind: LeaderboardKind) -> str:
    return _LEADERBOARD_COPY[kind]["error"]


# --- Gallery ---

GALLERY_USAGE = '👀 Who do you want to see? Usage: "pics <@User>"'
GALLERY_FAILED = "⚠️ I couldn't dig up those photos right now."


def gallery_empty(target_id: str) -> str:
    return f"🤷 <@{target_id}> is clean! No photos found."


def build_gallery_blocks(target_id: str, spots: list[Spot], tz_name: str = "UTC") -> list[dict]:
    """Header section, divider, then one section per spot, newest first."""
    blocks: list[dict] = [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"📸 *Last {len(spots)} times <@{target_id}> was spotted:*",
            },
        },
        {"type": "divider"},
    ]
    for spot in spots:
        date = format_spot_date(spot.created_at, tz_name)
        blocks.append(
            {
                "type": "section",
                "text": {
                    "type": "mrkdwn",
                    "text": (
                        f"🗓 *{date}* by <@{spot.spotter_id}>\n"
                        f"🔗 <{spot.image_url}|View Evidence>"
                    ),
                },
            }
        )
    return blocks


def gallery_fallback(target_id: str) -> str:
    return f"Gallery for <@{target_id}>"


# --- Veto ---


def veto_denied(user_id: str) -> str:
    return f"🚫 *Access Denied.* <@{user_id}>, only Workspace Admins can veto spots."


def vetoed(admin_id: str, spot: Spot, tz_name: str = "UTC") -> str:
    date = format_spot_date(spot.created_at, tz_name)
    return (
        f"🔨 *Vetoed!* Admin <@{admin_id}> removed this spot "
        f"(<@{spot.spotter_id}> spotted <@{spot.target_id}> on {date})."
    )


VETO_NOT_FOUND = "🤷 No spot found for this message. It may have already been vetoed."
VETO_FAILED = "⚠️ I had trouble processing the veto."


# --- Reset ---


def reset_denied(user_id: str) -> str:
    return f"🚫 *Access Denied.* <@{user_id}>, you are not a Workspace Admin."


def board_wiped(admin_id: str, deleted: int) -> str:
    return f"*Kaboom!* Admin <@{admin_id}> has wiped the board. {deleted} spots deleted."


BOARD_ALREADY_CLEAN = "🧹 The board is already clean."
RESET_FAILED = "⚠️ I had trouble wiping the board."


# --- Channel binding ---


def setchannel_denied(user_id: str) -> str:
    return (
        f"🚫 *Access Denied.* <@{user_id}>, only Workspace Admins can set the SpotBot channel."
    )


CHANNEL_ACTIVATED = "✅ *SpotBot is now active in this channel!* All spotting will happen here."
CHANNEL_FIXED = (
    "📌 This SpotBot runs in a single configured channel. "
    "Change `SPOTBOT_CHANNEL_ID` to move it."
)
SETCHANNEL_FAILED = "⚠️ I had trouble setting the channel."
