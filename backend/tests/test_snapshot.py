"""
Leaderboard snapshot paging.
"""

import pytest

from banwatch.exceptions import ErrorKind, RankedAPIError
from banwatch.monitor.snapshot import LeaderboardFetcher, parse_rating_row

from fakes import FakeRatingsClient, RecordingSleep


def rows(start, count):
    return [
        {
            "userId": f"u{i}",
            "nick": f"player{i}",
            "rating": 2500 - i,
            "position": i + 1,
            "countryCode": "se",
        }
        for i in range(start, start + count)
    ]


def rate_limited():
    return RankedAPIError(ErrorKind.RATE_LIMITED, "429", status_code=429)


@pytest.fixture
def small_config(config):
    config.leaderboard_limit = 300
    config.leaderboard_page_size = 100
    return config


def make_fetcher(config, responses):
    client = FakeRatingsClient(responses)
    sleep = RecordingSleep()
    return LeaderboardFetcher(client, config, sleep=sleep), client, sleep


async def test_fetches_all_pages_in_rank_order(small_config):
    fetcher, client, sleep = make_fetcher(small_config, [rows(0, 100), rows(100, 100), rows(200, 100)])

    snapshot = await fetcher.fetch_snapshot()

    assert len(snapshot) == 300
    assert [e.rank for e in snapshot[:3]] == [1, 2, 3]
    assert snapshot[-1].entity_id == "u299"
    assert client.calls == [(0, 100), (100, 100), (200, 100)]
    # Pause between pages, none after the last one
    assert sleep.calls == [small_config.leaderboard_page_delay] * 2


async def test_empty_page_ends_pagination(small_config):
    fetcher, client, _ = make_fetcher(small_config, [rows(0, 100), []])

    snapshot = await fetcher.fetch_snapshot()

    assert len(snapshot) == 100
    assert len(client.calls) == 2


async def test_rate_limited_page_is_retried_at_same_offset(small_config):
    fetcher, client, sleep = make_fetcher(
        small_config,
        [rows(0, 100), rate_limited(), rows(100, 100), rows(200, 100)],
    )

    snapshot = await fetcher.fetch_snapshot()

    assert len(snapshot) == 300
    assert [offset for offset, _ in client.calls] == [0, 100, 100, 200]
    assert small_config.leaderboard_rate_limit_cooldown in sleep.calls


async def test_other_error_returns_partial_snapshot(small_config):
    fetcher, client, _ = make_fetcher(
        small_config,
        [rows(0, 100), RankedAPIError(ErrorKind.TIMEOUT, "timeout")],
    )

    snapshot = await fetcher.fetch_snapshot()

    assert len(snapshot) == 100
    assert len(client.calls) == 2


async def test_first_page_failure_gives_empty_snapshot(small_config):
    fetcher, _, _ = make_fetcher(small_config, [RankedAPIError(ErrorKind.MALFORMED, "html")])

    assert await fetcher.fetch_snapshot() == []


async def test_cooldowns_per_page_are_bounded(small_config):
    small_config.leaderboard_max_cooldowns_per_page = 3
    fetcher, client, sleep = make_fetcher(small_config, [rate_limited() for _ in range(10)])

    snapshot = await fetcher.fetch_snapshot()

    assert snapshot == []
    assert len(client.calls) == 4
    assert sleep.calls == [small_config.leaderboard_rate_limit_cooldown] * 3


async def test_players_shifting_between_pages_are_not_duplicated(small_config):
    small_config.leaderboard_limit = 200
    second_page = rows(99, 100)  # u99 slipped down a place
    fetcher, _, _ = make_fetcher(small_config, [rows(0, 100), second_page])

    snapshot = await fetcher.fetch_snapshot()

    ids = [e.entity_id for e in snapshot]
    assert len(ids) == len(set(ids)) == 199


async def test_limit_argument_caps_last_page(small_config):
    fetcher, client, _ = make_fetcher(small_config, [rows(0, 100), rows(100, 50)])

    snapshot = await fetcher.fetch_snapshot(limit=150)

    assert len(snapshot) == 150
    assert client.calls == [(0, 100), (100, 50)]


def test_parse_rating_row_maps_fields():
    entry = parse_rating_row({
        "userId": "abc",
        "nick": "Someone",
        "rating": "1873",
        "position": 42,
        "countryCode": "fr",
    })
    assert entry.entity_id == "abc"
    assert entry.display_name == "Someone"
    assert entry.rating == 1873
    assert entry.rank == 42
    assert entry.country_code == "fr"


def test_parse_rating_row_without_id():
    assert parse_rating_row({"nick": "anonymous", "rating": 1000}) is None
