"""
Discord webhook notifier.

Renders status events as Discord embeds and posts them to the configured webhooks.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from banwatch.config import Config
from banwatch.monitor.models import (
    DeletionEvent,
    EntityStatus,
    RestoredEvent,
    SanctionEvent,
    SanctionKind,
)
from banwatch.notify.base import LogNotifier

logger = logging.getLogger(__name__)

MAX_EMBED_DESCRIPTION = 4096

COLOR_BANNED = 0xFF0000
COLOR_SUSPENDED = 0xFFA500
COLOR_DELETED = 0x808080
COLOR_OK = 0x00FF00
COLOR_ERROR = 0xFF0000


def country_flag(country_code: Optional[str]) -> str:
    """Regional-indicator flag emoji for a two-letter country code."""
    if not country_code or len(country_code) != 2 or not country_code.isalpha():
        return "🏳️"
    return "".join(chr(0x1F1E6 + ord(c) - ord("A")) for c in country_code.upper())


def _rank(value: Optional[int]) -> str:
    return f"#{value}" if value is not None else "N/A"


def _rating(value: Optional[int]) -> str:
    return f"{value} ELO" if value is not None else "N/A"


def _when(value: Optional[datetime]) -> str:
    if value is None:
        return "unknown"
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def truncate_description(text: str) -> Tuple[str, bool]:
    """Fit ``text`` into an embed description; returns (text, was_truncated)."""
    if len(text) <= MAX_EMBED_DESCRIPTION:
        return text, False
    return text[:MAX_EMBED_DESCRIPTION - 3] + "...", True


def _rank_sort_key(event) -> int:
    return event.last_rank if event.last_rank is not None else 10 ** 9


class DiscordNotifier:
    """Posts ban, unban, deletion and status embeds to Discord webhooks."""

    def __init__(self, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.ban_webhook_url = config.discord_ban_webhook_url
        self.unban_webhook_url = config.discord_unban_webhook_url or config.discord_ban_webhook_url
        self.ban_role_id = config.ban_role_id
        self.unban_role_id = config.unban_role_id
        self.announce_unsuspensions = config.announce_unsuspensions
        self.profile_url_template = config.profile_url_template
        self.client = httpx.AsyncClient(
            timeout=config.notify_timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def _profile_url(self, entity_id: str) -> str:
        return self.profile_url_template.format(entity_id=entity_id)

    @staticmethod
    def _mention(role_id: str) -> Optional[str]:
        return f"<@&{role_id}>" if role_id else None

    async def _post(self, webhook_url: str, embed: Dict[str, Any], content: Optional[str] = None):
        if not webhook_url:
            logger.debug("No webhook configured, dropping message", extra={"title": embed.get("title")})
            return
        payload: Dict[str, Any] = {"embeds": [embed]}
        if content:
            payload["content"] = content
        try:
            response = await self.client.post(webhook_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Discord delivery failed", extra={
                "title": embed.get("title"),
                "error": str(e),
                "error_type": type(e).__name__,
            })
            return
        logger.info("Discord message sent", extra={"title": embed.get("title")})

    def build_ban_embed(self, events: Sequence[SanctionEvent]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        if len(events) == 1:
            event = events[0]
            flag = country_flag(event.country_code)
            if event.kind is SanctionKind.BANNED:
                title = "🚫 Player Banned"
                color = COLOR_BANNED
                description = f"{flag} **{event.display_name}** has been banned !!!"
            else:
                title = "⏸️ Player Suspended"
                color = COLOR_SUSPENDED
                description = (
                    f"{flag} **{event.display_name}** has been suspended until "
                    f"{_when(event.suspended_until)}"
                )
            return {
                "title": title,
                "color": color,
                "description": description,
                "fields": [
                    {"name": "Last Position", "value": _rank(event.last_rank), "inline": True},
                    {"name": "ELO at Ban/Suspension", "value": _rating(event.last_rating), "inline": True},
                    {"name": "Last Seen", "value": f"{event.hours_since_seen} hours ago", "inline": True},
                    {"name": "Profile", "value": f"[View Profile]({self._profile_url(event.entity_id)})", "inline": False},
                ],
                "timestamp": now,
            }

        banned = [e for e in events if e.kind is SanctionKind.BANNED]
        suspended = [e for e in events if e.kind is SanctionKind.SUSPENDED]
        if banned and suspended:
            title = f"🚫 {len(banned)} Banned, ⏸️ {len(suspended)} Suspended"
        elif banned:
            title = f"🚫 {len(banned)} Players Banned"
        else:
            title = f"⏸️ {len(suspended)} Players Suspended"

        lines = []
        for event in sorted(events, key=_rank_sort_key):
            icon = "🚫" if event.kind is SanctionKind.BANNED else "⏸️"
            lines.append(
                f"{icon} **{_rank(event.last_rank)}** {country_flag(event.country_code)} "
                f"[{event.display_name}]({self._profile_url(event.entity_id)}) - {_rating(event.last_rating)}"
            )
        description, truncated = truncate_description("\n".join(lines))
        embed: Dict[str, Any] = {
            "title": title,
            "color": COLOR_BANNED,
            "description": description,
            "footer": {"text": f"{len(events)} total actions detected"},
            "timestamp": now,
        }
        if truncated:
            embed["fields"] = [{"name": "Note", "value": "List truncated - too many players to display", "inline": False}]
        return embed

    def build_unban_embed(self, event: RestoredEvent) -> Dict[str, Any]:
        action = "Ban" if event.previous_status is EntityStatus.BANNED else "Suspension"
        duration = f"{event.duration_days} days" if event.duration_days is not None else "Unknown"
        return {
            "title": "🟢 Player Unbanned/Unsuspended",
            "color": COLOR_OK,
            "description": f"**{event.display_name}** has been unbanned/unsuspended and is back",
            "fields": [
                {"name": "Current Position", "value": _rank(event.rank), "inline": True},
                {"name": "Current ELO", "value": _rating(event.rating), "inline": True},
                {"name": f"{action} Duration", "value": duration, "inline": True},
                {"name": "Profile", "value": f"[View Profile]({self._profile_url(event.entity_id)})", "inline": False},
            ],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def build_deletion_embed(self, events: Sequence[DeletionEvent]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc).isoformat()
        if len(events) == 1:
            event = events[0]
            return {
                "title": "🗑️ Account Deleted",
                "color": COLOR_DELETED,
                "description": f"{country_flag(event.country_code)} **{event.display_name}** has deleted their account",
                "fields": [
                    {"name": "Last Position", "value": _rank(event.last_rank), "inline": True},
                    {"name": "Last ELO", "value": _rating(event.last_rating), "inline": True},
                    {"name": "Last Seen", "value": f"{event.hours_since_seen} hours ago", "inline": True},
                    {"name": "Profile URL", "value": f"[Deleted Profile]({self._profile_url(event.entity_id)})", "inline": False},
                ],
                "timestamp": now,
            }

        lines: List[str] = [
            f"🗑️ **{_rank(e.last_rank)}** {country_flag(e.country_code)} "
            f"[{e.display_name}]({self._profile_url(e.entity_id)}) - {_rating(e.last_rating)}"
            for e in events
        ]
        description, truncated = truncate_description("\n".join(lines))
        embed: Dict[str, Any] = {
            "title": f"🗑️ {len(events)} Accounts Deleted",
            "color": COLOR_DELETED,
            "description": description,
            "footer": {"text": f"{len(events)} accounts deleted"},
            "timestamp": now,
        }
        if truncated:
            embed["fields"] = [{"name": "Note", "value": "List truncated - too many accounts to display", "inline": False}]
        return embed

    async def notify_ban(self, events: Sequence[SanctionEvent]) -> None:
        if not events:
            return
        await self._post(self.ban_webhook_url, self.build_ban_embed(events), self._mention(self.ban_role_id))

    async def notify_unban(self, event: RestoredEvent) -> None:
        if event.previous_status is not EntityStatus.BANNED and not self.announce_unsuspensions:
            logger.info("Suspension ended (not announced)", extra={"entity_id": event.entity_id})
            return
        await self._post(self.unban_webhook_url, self.build_unban_embed(event), self._mention(self.unban_role_id))

    async def notify_deletion(self, events: Sequence[DeletionEvent]) -> None:
        if not events:
            return
        await self._post(self.ban_webhook_url, self.build_deletion_embed(events))

    async def notify_status_message(self, text: str, is_error: bool = False) -> None:
        embed = {
            "title": "❌ Check Failed" if is_error else "✅ Check Completed",
            "color": COLOR_ERROR if is_error else COLOR_OK,
            "description": text,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        await self._post(self.ban_webhook_url, embed)

    async def close(self) -> None:
        await self.client.aclose()


def build_notifier(config: Config):
    """DiscordNotifier when a webhook is configured, otherwise a log-only notifier."""
    if config.discord_ban_webhook_url:
        return DiscordNotifier(config)
    logger.info("No Discord webhook configured, notifications will only be logged")
    return LogNotifier()
