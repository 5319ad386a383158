"""
Discord webhook rendering and delivery.
"""

import json
from datetime import timedelta

import httpx
import pytest

from banwatch.monitor.models import (
    DeletionEvent,
    EntityStatus,
    RestoredEvent,
    SanctionEvent,
    SanctionKind,
)
from banwatch.notify.base import LogNotifier
from banwatch.notify.discord import (
    MAX_EMBED_DESCRIPTION,
    DiscordNotifier,
    build_notifier,
    country_flag,
    truncate_description,
)

BAN_HOOK = "https://discord.test/webhooks/ban"
UNBAN_HOOK = "https://discord.test/webhooks/unban"


@pytest.fixture
def discord_config(config):
    config.discord_ban_webhook_url = BAN_HOOK
    config.discord_unban_webhook_url = UNBAN_HOOK
    config.ban_role_id = "111"
    config.unban_role_id = "222"
    return config


class Recorder:
    def __init__(self, status_code=204):
        self.status_code = status_code
        self.posts = []

    def __call__(self, request: httpx.Request):
        self.posts.append((str(request.url), json.loads(request.content)))
        return httpx.Response(self.status_code)


def sanction(now, entity_id="p1", kind=SanctionKind.BANNED, rank=5, **kwargs):
    return SanctionEvent(
        entity_id=entity_id, display_name=f"name-{entity_id}", country_code="SE", kind=kind,
        previous_status=EntityStatus.ACTIVE, occurred_at=now, last_rating=2300, last_rank=rank,
        hours_since_seen=1, **kwargs,
    )


def restored(now, previous=EntityStatus.BANNED):
    return RestoredEvent(
        entity_id="p1", display_name="name-p1", country_code="SE", previous_status=previous,
        occurred_at=now, rating=2200, rank=50, sanction_started_at=now - timedelta(days=4),
    )


async def test_single_ban_embed_with_role_mention(discord_config, now):
    recorder = Recorder()
    notifier = DiscordNotifier(discord_config, transport=httpx.MockTransport(recorder))

    await notifier.notify_ban([sanction(now)])
    await notifier.close()

    (url, payload), = recorder.posts
    assert url == BAN_HOOK
    assert payload["content"] == "<@&111>"
    embed = payload["embeds"][0]
    assert embed["title"] == "🚫 Player Banned"
    assert "name-p1" in embed["description"]
    fields = {f["name"]: f["value"] for f in embed["fields"]}
    assert fields["Last Position"] == "#5"
    assert fields["ELO at Ban/Suspension"] == "2300 ELO"


async def test_batch_embed_is_sorted_by_rank(discord_config, now):
    recorder = Recorder()
    notifier = DiscordNotifier(discord_config, transport=httpx.MockTransport(recorder))

    await notifier.notify_ban([
        sanction(now, "low", rank=90),
        sanction(now, "top", rank=2, kind=SanctionKind.SUSPENDED, suspended_until=now + timedelta(days=1)),
    ])
    await notifier.close()

    embed = recorder.posts[0][1]["embeds"][0]
    assert embed["title"] == "🚫 1 Banned, ⏸️ 1 Suspended"
    lines = embed["description"].splitlines()
    assert "name-top" in lines[0]
    assert "name-low" in lines[1]
    assert embed["footer"]["text"] == "2 total actions detected"


async def test_unban_goes_to_unban_webhook(discord_config, now):
    recorder = Recorder()
    notifier = DiscordNotifier(discord_config, transport=httpx.MockTransport(recorder))

    await notifier.notify_unban(restored(now))
    await notifier.close()

    (url, payload), = recorder.posts
    assert url == UNBAN_HOOK
    assert payload["content"] == "<@&222>"
    fields = {f["name"]: f["value"] for f in payload["embeds"][0]["fields"]}
    assert fields["Ban Duration"] == "4 days"


async def test_unsuspension_is_not_announced_by_default(discord_config, now):
    recorder = Recorder()
    notifier = DiscordNotifier(discord_config, transport=httpx.MockTransport(recorder))

    await notifier.notify_unban(restored(now, previous=EntityStatus.SUSPENSION_EXPIRED))
    assert recorder.posts == []

    notifier.announce_unsuspensions = True
    await notifier.notify_unban(restored(now, previous=EntityStatus.SUSPENDED))
    await notifier.close()
    assert len(recorder.posts) == 1


async def test_deletions_are_batched(discord_config, now):
    recorder = Recorder()
    notifier = DiscordNotifier(discord_config, transport=httpx.MockTransport(recorder))
    events = [
        DeletionEvent(
            entity_id=f"d{i}", display_name=f"gone-{i}", country_code=None,
            previous_status=EntityStatus.ACTIVE, occurred_at=now, last_rating=None,
            last_rank=i, hours_since_seen=3,
        )
        for i in range(3)
    ]

    await notifier.notify_deletion(events)
    await notifier.close()

    embed = recorder.posts[0][1]["embeds"][0]
    assert embed["title"] == "🗑️ 3 Accounts Deleted"
    assert "content" not in recorder.posts[0][1]


async def test_delivery_failure_is_logged_not_raised(discord_config, now):
    recorder = Recorder(status_code=500)
    notifier = DiscordNotifier(discord_config, transport=httpx.MockTransport(recorder))

    await notifier.notify_status_message("Check failed: boom", is_error=True)
    await notifier.close()

    embed = recorder.posts[0][1]["embeds"][0]
    assert embed["title"] == "❌ Check Failed"


async def test_unban_falls_back_to_ban_webhook(discord_config, now):
    discord_config.discord_unban_webhook_url = ""
    recorder = Recorder()
    notifier = DiscordNotifier(discord_config, transport=httpx.MockTransport(recorder))

    await notifier.notify_unban(restored(now))
    await notifier.close()

    assert recorder.posts[0][0] == BAN_HOOK


def test_long_descriptions_are_truncated():
    text, truncated = truncate_description("x" * (MAX_EMBED_DESCRIPTION + 10))
    assert truncated
    assert len(text) == MAX_EMBED_DESCRIPTION
    assert text.endswith("...")
    assert truncate_description("short") == ("short", False)


def test_country_flag():
    assert country_flag("se") == "🇸🇪"
    assert country_flag(None) == "🏳️"
    assert country_flag("XYZ") == "🏳️"


def test_build_notifier_without_webhook(config, discord_config):
    assert isinstance(build_notifier(discord_config), DiscordNotifier)
    discord_config.discord_ban_webhook_url = ""
    assert isinstance(build_notifier(discord_config), LogNotifier)
