"""
HTTP command surface.
"""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from banwatch.api import main as api
from banwatch.monitor.coordinator import CheckCoordinator
from banwatch.monitor.models import EntityStatus, StoreState

from fakes import (
    FakeAuditSink,
    FakeFetcher,
    FakeNotifier,
    FakeStore,
    ScriptedProber,
    make_entry,
    make_record,
)


@pytest.fixture
def store(now):
    return FakeStore(StoreState(
        entities={
            "a": make_record(now - timedelta(hours=1)),
            "b": make_record(now - timedelta(hours=1), status=EntityStatus.BANNED),
            "c": make_record(now - timedelta(days=2), status=EntityStatus.DELETED_ACCOUNT),
        },
        last_check_at=now,
        total_checks=4,
    ))


@pytest.fixture
def client(config, now, store, monkeypatch):
    coordinator = CheckCoordinator(
        config=config,
        fetcher=FakeFetcher([make_entry("a", 1)]),
        prober=ScriptedProber(),
        store=store,
        notifier=FakeNotifier(),
        audit_sink=FakeAuditSink(),
        clock=lambda: now,
    )
    monkeypatch.setattr(api, "_coordinator", None)
    monkeypatch.setattr(api, "_client", None)
    api.attach(coordinator)
    with TestClient(api.app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_stats_counts_players_by_status(client):
    data = client.get("/api/v1/stats").json()
    assert data["total_players"] == 3
    assert data["active"] == 1
    assert data["banned"] == 1
    assert data["deleted"] == 1
    assert data["total_checks"] == 4
    assert data["last_check_at"] == "2024-05-01T12:00:00+00:00"
    assert data["rate_limit_hits_last_hour"] is None
    assert data["check_running"] is False


def test_manual_check_is_accepted(client):
    response = client.post("/api/v1/checks")
    assert response.status_code == 202
    assert response.json()["status"] in ("started", "queued")


def test_last_check_before_any_check(client):
    data = client.get("/api/v1/checks/last").json()
    assert data["report"] is None


def test_service_not_started(monkeypatch):
    monkeypatch.setattr(api, "_coordinator", None)
    with TestClient(api.app) as test_client:
        response = test_client.get("/api/v1/stats")
    assert response.status_code == 503
