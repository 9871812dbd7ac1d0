"""Duplicate rollbacks racing on separate connections."""

import threading

from sqlalchemy import func

from activity_ledger.models.activity import ActivityLog


def test_concurrent_rollbacks_apply_once(workspace, ledger, db, session_factory) -> None:
    workspace.page(title="Old")
    a1 = workspace.edit(title="New")
    db.commit()

    barrier = threading.Barrier(2)
    results = []
    errors = []

    def worker() -> None:
        session = session_factory()
        try:
            barrier.wait()
            result = ledger.execute_rollback(session, a1.id, "alice", "page")
            session.commit()
            results.append(result)
        except Exception as e:  # surfaced through the assertion below
            session.rollback()
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    assert len(results) == 2
    assert all(r.success for r in results)
    assert results[0].rollback_activity_id == results[1].rollback_activity_id
    assert sorted(r.is_no_op for r in results) == [False, True]

    db.expire_all()
    rollbacks = db.query(func.count(ActivityLog.id)).filter(ActivityLog.operation == "rollback").scalar()
    assert rollbacks == 1
    assert workspace.live("page", "page-1")["title"] == "Old"
    assert ledger.verify_chain(db).chain_valid is True


def test_concurrent_appends_keep_a_single_chain(ledger, session_factory, db) -> None:
    barrier = threading.Barrier(4)
    errors = []

    def worker(n: int) -> None:
        session = session_factory()
        try:
            barrier.wait()
            for i in range(5):
                ledger.record_activity(session, {
                    "operation": "update",
                    "resource_type": "page",
                    "resource_id": f"page-{n}",
                    "page_id": f"page-{n}",
                    "previous_values": {"title": str(i)},
                    "new_values": {"title": str(i + 1)},
                })
                session.commit()
        except Exception as e:  # surfaced through the assertion below
            session.rollback()
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    seqs = [row.seq for row in db.query(ActivityLog).order_by(ActivityLog.seq).all()]
    assert seqs == list(range(1, 21))
    assert ledger.verify_chain(db).entries_verified == 20
