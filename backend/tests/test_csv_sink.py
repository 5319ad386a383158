"""
CSV audit trail.
"""

import csv
from datetime import timedelta

from banwatch.audit.csv_sink import (
    RESTORATION_HEADERS,
    SANCTION_HEADERS,
    CSVAuditSink,
)
from banwatch.monitor.models import (
    DeletionEvent,
    EntityStatus,
    RestoredEvent,
    SanctionEvent,
    SanctionKind,
)

TEMPLATE = "https://example.test/user/{entity_id}"


def read_rows(path):
    with path.open(newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


def test_files_start_with_headers(tmp_path):
    sink = CSVAuditSink(tmp_path / "audit", TEMPLATE)
    assert read_rows(sink.sanctions_path) == [SANCTION_HEADERS]
    assert read_rows(sink.restorations_path) == [RESTORATION_HEADERS]

    # Re-opening keeps existing content
    CSVAuditSink(tmp_path / "audit", TEMPLATE)
    assert read_rows(sink.sanctions_path) == [SANCTION_HEADERS]


def test_sanction_and_deletion_rows(tmp_path, now):
    sink = CSVAuditSink(tmp_path, TEMPLATE)
    sink.record(SanctionEvent(
        entity_id="p1", display_name="Alpha", country_code="SE", kind=SanctionKind.SUSPENDED,
        previous_status=EntityStatus.ACTIVE, occurred_at=now, last_rating=2100, last_rank=12,
        hours_since_seen=0, suspended_until=now + timedelta(days=3),
    ))
    sink.record(DeletionEvent(
        entity_id="p2", display_name="Beta", country_code=None, previous_status=EntityStatus.ACTIVE,
        occurred_at=now, last_rating=None, last_rank=40, hours_since_seen=5,
    ))

    rows = read_rows(sink.sanctions_path)
    assert rows[1] == [
        "2024-05-01", "Alpha", "p1", "https://example.test/user/p1", "SE",
        "2100", "12", "SUSPENDED", "2024-05-04",
    ]
    assert rows[2] == [
        "2024-05-01", "Beta", "p2", "https://example.test/user/p2", "",
        "", "40", "DELETED_ACCOUNT", "",
    ]


def test_restoration_row(tmp_path, now):
    sink = CSVAuditSink(tmp_path, TEMPLATE)
    sink.record(RestoredEvent(
        entity_id="p1", display_name="Alpha", country_code="SE", previous_status=EntityStatus.BANNED,
        occurred_at=now, rating=2050, rank=30, sanction_started_at=now - timedelta(days=6),
    ))
    sink.record(RestoredEvent(
        entity_id="p3", display_name="Gamma", country_code="NO",
        previous_status=EntityStatus.SUSPENSION_EXPIRED, occurred_at=now, rating=None, rank=None,
    ))

    rows = read_rows(sink.restorations_path)
    assert rows[1][-2:] == ["BANNED", "6"]
    assert rows[2][-2:] == ["SUSPENDED", "0"]
    assert read_rows(sink.sanctions_path) == [SANCTION_HEADERS]
