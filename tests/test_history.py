"""History queries, validation and retention clamping."""

from datetime import timedelta

import pytest

from activity_ledger.core.exceptions import ValidationError
from activity_ledger.services.retention import RetentionPolicy


class _Tiers:
    def __init__(self, tier):
        self._tier = tier

    def tier(self, db, user_id):
        return self._tier


def test_history_is_newest_first_and_paginated(workspace, ledger, db) -> None:
    workspace.page(title="v0")
    for i in range(1, 6):
        workspace.edit(title=f"v{i}")
    db.commit()

    first = ledger.store.query_history(db, "page-1", limit=2)
    second = ledger.store.query_history(db, "page-1", limit=2, offset=2)

    assert first["total"] == 6
    assert [a.new_values["title"] for a in first["activities"]] == ["v5", "v4"]
    assert [a.new_values["title"] for a in second["activities"]] == ["v3", "v2"]


def test_history_filters(workspace, ledger, db) -> None:
    workspace.page(title="v0")
    workspace.edit(title="by alice")
    workspace.edit(title="by bob", user_id="bob")
    workspace.edit(title="by ai", is_ai_generated=True)
    db.commit()

    by_bob = ledger.store.query_history(db, "page-1", actor_id="bob")
    updates = ledger.store.query_history(db, "page-1", operation="update")
    ai_only = ledger.store.query_history(db, "page-1", include_ai_only=True)

    assert [a.user_id for a in by_bob["activities"]] == ["bob"]
    assert updates["total"] == 3
    assert [a.new_values["title"] for a in ai_only["activities"]] == ["by ai"]


@pytest.mark.parametrize("options", [
    {"limit": 0},
    {"limit": 101},
    {"offset": -1},
    {"operation": "teleport"},
])
def test_history_rejects_bad_query(ledger, db, options) -> None:
    with pytest.raises(ValidationError):
        ledger.store.query_history(db, "page-1", **options)


def test_history_rejects_inverted_date_range(ledger, db, clock) -> None:
    now = clock.now()
    with pytest.raises(ValidationError):
        ledger.store.query_history(db, "page-1", start_date=now, end_date=now - timedelta(days=1))


def test_scope_history_requires_page_or_drive(ledger, db) -> None:
    with pytest.raises(ValidationError):
        ledger.store.query_scope_history(db)


def test_retention_days_by_tier(clock) -> None:
    assert RetentionPolicy(_Tiers("free"), clock=clock).get_user_retention_days(None, "u") == 7
    assert RetentionPolicy(_Tiers("pro"), clock=clock).get_user_retention_days(None, "u") == 30
    assert RetentionPolicy(_Tiers("founder"), clock=clock).get_user_retention_days(None, "u") == 90
    assert RetentionPolicy(_Tiers("business"), clock=clock).get_user_retention_days(None, "u") == -1
    assert RetentionPolicy(_Tiers("mystery"), clock=clock).get_user_retention_days(None, "u") == 7


def test_apply_retention_narrows_but_never_widens(clock) -> None:
    policy = RetentionPolicy(_Tiers("free"), clock=clock)
    now = clock.current

    clamped = policy.apply_retention(now - timedelta(days=30), 7)
    assert abs(clamped - (now - timedelta(days=7))) <= timedelta(days=1)

    recent = now - timedelta(days=2)
    assert policy.apply_retention(recent, 7) == recent

    requested = now - timedelta(days=400)
    assert policy.apply_retention(requested, -1) == requested
    assert policy.apply_retention(None, -1) is None


def test_page_history_is_clamped_to_retention(workspace, ledger, db, clock) -> None:
    workspace.page(title="ancient")
    clock.advance(days=10)
    workspace.edit(title="recent")
    db.commit()

    free = ledger.get_page_version_history(db, "page-1", "alice", start_date=clock.current - timedelta(days=30))
    unlimited = ledger.get_page_version_history(db, "page-1", "owner")

    assert free["retention_days"] == 7
    assert [a.new_values["title"] for a in free["activities"]] == ["recent"]
    assert unlimited["total"] == 2
    assert unlimited["effective_start_date"] is None


def test_drive_history_spans_pages(workspace, ledger, db) -> None:
    workspace.page(page_id="page-1", title="One")
    workspace.page(page_id="page-2", title="Two")
    workspace.page(page_id="elsewhere", drive_id="drive-2", title="Other")
    db.commit()

    history = ledger.get_drive_version_history(db, "drive-1", "owner")

    assert history["total"] == 2
    assert {a.resource_id for a in history["activities"]} == {"page-1", "page-2"}


def test_range_older_than_retention_returns_an_empty_page(workspace, ledger, db, clock) -> None:
    workspace.page(title="ancient")
    clock.advance(days=40)
    workspace.edit(title="recent")
    db.commit()
    now = clock.current

    history = ledger.get_page_version_history(
        db, "page-1", "alice",
        start_date=now - timedelta(days=30),
        end_date=now - timedelta(days=20),
    )

    assert history["total"] == 0
    assert history["activities"] == []
    assert history["retention_days"] == 7
    assert history["effective_start_date"] > now - timedelta(days=20)


def test_clamped_history_still_rejects_an_inverted_request(ledger, db, clock) -> None:
    now = clock.current
    with pytest.raises(ValidationError):
        ledger.get_page_version_history(
            db, "page-1", "alice", start_date=now, end_date=now - timedelta(days=1)
        )
