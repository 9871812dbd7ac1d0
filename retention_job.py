#!/usr/bin/env python3
"""
Housekeeping pass over the activity log
Usage: python retention_job.py

Flags activities older than ARCHIVE_AFTER_DAYS (default 365) as archived, then
re-verifies the whole hash chain. Rollback and redo lock rows of archived
activities are dropped. Archived rows stay in the chain and keep
their hashes; they are only hidden from default history queries.

Exits non-zero if the chain fails verification.
"""
import sys
from datetime import timedelta

from dotenv import load_dotenv

from activity_ledger.core.config import settings
from activity_ledger.core.exceptions import ChainIntegrityError
from activity_ledger.db import SessionLocal, create_tables
from activity_ledger.services.ledger import ledger


def run_retention_job() -> int:
    """Archive old activities and verify the chain"""
    load_dotenv()
    create_tables()

    cutoff = ledger.clock.now() - timedelta(days=settings.archive_after_days)

    db = SessionLocal()
    try:
        archived = ledger.store.archive_older_than(db, cutoff)
        pruned = ledger.guard.prune_archived(db)
        db.commit()
        print(f"Archived {archived} activities older than {cutoff.isoformat()}")
        print(f"Pruned {pruned} idempotency locks")

        try:
            summary = ledger.verify_chain(db)
        except ChainIntegrityError as e:
            print(f"Chain verification FAILED: {e.message}")
            return 1

        stats = ledger.store.chain_stats(db)
        print(f"Chain verified: {summary.entries_verified} entries")
        print(f"Total entries: {stats.total_entries}")
        print(f"Archived entries: {stats.archived_entries}")
        return 0
    except Exception as e:
        print(f"Error running retention job: {e}")
        db.rollback()
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(run_retention_job())
