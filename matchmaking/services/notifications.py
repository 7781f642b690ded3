"""
Match resolution notifications.

The engine pushes one event per resolved match into a NotificationSink and
never waits on a reply. Delivery is best-effort: the engine logs and swallows
sink failures.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

import aiohttp
import discord

from matchmaking.data_models.match import Match, MatchResolution
from matchmaking.data_models.stats import PlayerStats
from matchmaking.utils.logger import setup_logger

logger = setup_logger(__name__)

MATCH_RESOLVED = 'match_resolved'


class NotificationSink(Protocol):
    async def publish(self, event: Dict[str, Any]) -> None:
        ...


def build_resolution_event(
    match: Match,
    resolution: MatchResolution,
    winner_stats: Optional[PlayerStats] = None,
    loser_stats: Optional[PlayerStats] = None
) -> Dict[str, Any]:
    return {
        'type': MATCH_RESOLVED,
        'match': match.to_dict(),
        'resolution': resolution.to_dict(),
        'winnerStats': winner_stats.to_dict() if winner_stats else None,
        'loserStats': loser_stats.to_dict() if loser_stats else None,
    }


class LoggingNotificationSink:
    """Default sink: writes each event to the log."""

    async def publish(self, event: Dict[str, Any]) -> None:
        resolution = event['resolution']
        logger.info(
            f"📢 Match {event['match']['id']} resolved: {resolution['winner']} "
            f"({resolution['winnerScore']}) beat {resolution['loser']} ({resolution['loserScore']})"
        )


def _record_text(stats: Optional[Dict[str, Any]]) -> str:
    if not stats:
        return ''
    return f"({stats['wins']}W/{stats['losses']}L - {stats['winRate']:.1%})"


def _level_of(match: Dict[str, Any], player_name: str) -> int:
    for slot in ('player1', 'player2'):
        player = match.get(slot)
        if player and player['name'] == player_name:
            return player['level']
    return 1


def build_match_resolution_embed(event: Dict[str, Any]) -> discord.Embed:
    """
    Build the Discord embed announcing a resolved match.

    Args:
        event: Event produced by build_resolution_event

    Returns:
        Embed with winner, runner-up and match detail fields
    """
    match = event['match']
    resolution = event['resolution']
    embed = discord.Embed(
        title="⚔️ Match Resolved!",
        description=f"**{resolution['winner']}** has won the match!",
        color=discord.Color.green(),
        timestamp=datetime.now(timezone.utc)
    )
    embed.add_field(
        name="🏆 Winner",
        value=(
            f"**{resolution['winner']}** - {resolution['winnerScore']} points\n"
            f"Level {_level_of(match, resolution['winner'])} {_record_text(event.get('winnerStats'))}"
        ),
        inline=True
    )
    embed.add_field(
        name="🥈 Runner-up",
        value=(
            f"**{resolution['loser']}** - {resolution['loserScore']} points\n"
            f"Level {_level_of(match, resolution['loser'])} {_record_text(event.get('loserStats'))}"
        ),
        inline=True
    )
    duration_minutes = round(((match.get('resolvedAt') or match['createdAt']) - match['createdAt']) / 60000)
    embed.add_field(
        name="📊 Match Details",
        value=f"Match Duration: **{duration_minutes} minutes**\nTotal Score: **{resolution['totalScore']}**",
        inline=False
    )
    embed.set_footer(text="Breakout Matchmaking")
    return embed


class DiscordWebhookSink:
    """Posts resolution embeds to a Discord channel webhook."""

    def __init__(self, webhook_url: str, username: str = 'Breakout Matchmaking'):
        self.webhook_url = webhook_url
        self.username = username

    async def publish(self, event: Dict[str, Any]) -> None:
        if event.get('type') != MATCH_RESOLVED:
            logger.debug(f"Ignoring unsupported event type {event.get('type')}")
            return

        embed = build_match_resolution_embed(event)
        async with aiohttp.ClientSession() as session:
            webhook = discord.Webhook.from_url(self.webhook_url, session=session)
            await webhook.send(embed=embed, username=self.username)

        logger.info(
            f"📢 Match resolution posted to Discord: "
            f"{event['resolution']['winner']} vs {event['resolution']['loser']}"
        )


def create_notification_sink(config) -> NotificationSink:
    if config.DISCORD_WEBHOOK_URL:
        return DiscordWebhookSink(config.DISCORD_WEBHOOK_URL)
    logger.info("DISCORD_WEBHOOK_URL not set, match notifications will only be logged")
    return LoggingNotificationSink()
