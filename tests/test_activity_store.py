"""Append-only log: chaining, verification, queries and archival."""

import json
from datetime import timedelta

import pytest
from sqlalchemy import text

from activity_ledger.core.exceptions import ChainIntegrityError, NotFoundError, ValidationError
from activity_ledger.core.hashchain import canonical_entry, compute_entry_hash
from activity_ledger.models.activity import ActivityLog
from activity_ledger.models.lock import IdempotencyLock
from activity_ledger.services.idempotency import rollback_key


def _edit_many(workspace, count: int):
    workspace.page(title="v0")
    return [workspace.edit(title=f"v{i}") for i in range(1, count + 1)]


def test_first_entry_is_seeded_and_later_entries_link(workspace, db) -> None:
    created = workspace.page(title="Roadmap")
    edited = workspace.edit(title="Roadmap 2026")
    db.commit()

    assert created.seq == 1
    assert created.chain_seed
    assert created.previous_log_hash is None
    assert created.log_hash == compute_entry_hash(canonical_entry(created), created.chain_seed)

    assert edited.seq == 2
    assert edited.chain_seed is None
    assert edited.previous_log_hash == created.log_hash
    assert edited.log_hash == compute_entry_hash(canonical_entry(edited), created.log_hash)


def test_stored_entries_rehash_identically_after_reload(workspace, db, session_factory) -> None:
    _edit_many(workspace, 3)
    db.commit()

    with session_factory() as other:
        for row in other.query(ActivityLog).order_by(ActivityLog.seq).all():
            prev = row.chain_seed or row.previous_log_hash
            assert compute_entry_hash(canonical_entry(row), prev) == row.log_hash


def test_verify_chain_accepts_untouched_log(workspace, ledger, db) -> None:
    rows = _edit_many(workspace, 4)
    db.commit()

    summary = ledger.verify_chain(db)

    assert summary.chain_valid is True
    assert summary.entries_verified == 5
    assert summary.last_entry_id == rows[-1].id


def test_verify_chain_detects_tampered_values(workspace, ledger, db) -> None:
    rows = _edit_many(workspace, 4)
    db.commit()
    tampered = rows[1]

    db.execute(
        text("UPDATE activity_logs SET new_values = :values WHERE id = :id"),
        {"values": json.dumps({"title": "forged"}), "id": tampered.id},
    )
    db.commit()
    db.expire_all()

    with pytest.raises(ChainIntegrityError) as exc:
        ledger.verify_chain(db)
    assert exc.value.entry_id == tampered.id
    assert exc.value.position == 2


def test_verify_chain_detects_tampering_in_archived_rows(workspace, ledger, db, clock) -> None:
    rows = _edit_many(workspace, 2)
    db.commit()

    archived = ledger.store.archive_older_than(db, clock.now() + timedelta(days=1))
    db.commit()
    assert archived == 3
    assert ledger.verify_chain(db).chain_valid is True

    db.execute(
        text("UPDATE activity_logs SET new_values = :values WHERE id = :id"),
        {"values": json.dumps({"title": "forged"}), "id": rows[0].id},
    )
    db.commit()
    db.expire_all()

    with pytest.raises(ChainIntegrityError):
        ledger.verify_chain(db)


def test_verify_chain_detects_removed_entry(workspace, ledger, db) -> None:
    rows = _edit_many(workspace, 3)
    db.commit()

    db.execute(text("DELETE FROM activity_logs WHERE id = :id"), {"id": rows[0].id})
    db.commit()
    db.expire_all()

    with pytest.raises(ChainIntegrityError) as exc:
        ledger.verify_chain(db)
    assert exc.value.entry_id == rows[1].id


def test_verify_chain_over_a_range(workspace, ledger, db) -> None:
    rows = _edit_many(workspace, 4)
    db.commit()

    summary = ledger.verify_chain(db, from_id=rows[1].id, to_id=rows[2].id)

    assert summary.entries_verified == 2
    assert summary.first_entry_id == rows[1].id
    assert summary.last_entry_id == rows[2].id

    with pytest.raises(NotFoundError):
        ledger.verify_chain(db, from_id="missing")


def test_verify_entry_reports_single_row(workspace, ledger, db) -> None:
    row = workspace.edit(title="Checked")
    db.commit()

    result = ledger.store.verify_entry(db, row.id)

    assert result.is_valid is True
    assert result.stored_hash == result.computed_hash
    assert ledger.store.verify_entry(db, "missing") is None


def test_append_rejects_unknown_operation(ledger, db) -> None:
    with pytest.raises(ValidationError):
        ledger.record_activity(db, {
            "operation": "explode",
            "resource_type": "page",
            "resource_id": "page-1",
        })


def test_append_rejects_non_json_values(ledger, db) -> None:
    with pytest.raises(ValidationError):
        ledger.record_activity(db, {
            "operation": "update",
            "resource_type": "page",
            "resource_id": "page-1",
            "new_values": {"title": {1, 2}},
        })


def test_archiving_hides_rows_from_history_without_deleting(workspace, ledger, db, clock) -> None:
    workspace.page(page_id="page-1", title="Old page")
    cutoff = clock.now()
    workspace.edit(page_id="page-1", title="Fresh")
    db.commit()

    assert ledger.store.archive_older_than(db, cutoff) == 1
    db.commit()

    visible = ledger.store.query_history(db, "page-1")
    everything = ledger.store.query_history(db, "page-1", include_archived=True)

    assert visible["total"] == 1
    assert everything["total"] == 2
    assert ledger.store.chain_stats(db).archived_entries == 1


def test_chain_stats(workspace, ledger, db) -> None:
    _edit_many(workspace, 2)
    db.commit()

    stats = ledger.store.chain_stats(db)

    assert stats.total_entries == 3
    assert stats.last_seq == 3
    assert stats.has_chain_seed is True


def test_pruning_drops_lock_rows_of_archived_activities(workspace, ledger, db, clock) -> None:
    workspace.page(title="Old")
    a1 = workspace.edit(title="New")
    db.commit()
    rollback = ledger.execute_rollback(db, a1.id, "alice", "page")
    db.commit()
    ledger.execute_redo(db, rollback.rollback_activity_id, "alice", "page")
    db.commit()

    clock.advance(days=30)
    a2 = workspace.edit(title="Newer")
    db.commit()
    ledger.execute_rollback(db, a2.id, "alice", "page")
    db.commit()

    ledger.store.archive_older_than(db, clock.current - timedelta(days=10))
    pruned = ledger.guard.prune_archived(db)
    db.commit()

    assert pruned == 2
    assert [lock.key for lock in db.query(IdempotencyLock).all()] == [rollback_key(a2.id)]
