"""Rollback context rules and the delegated edit check."""

from activity_ledger.models.activity import ActivityOperation, ResourceType


def test_viewer_cannot_rollback(workspace, ledger, db) -> None:
    workspace.page(title="Old")
    a1 = workspace.edit(title="New")
    db.commit()

    preview = ledger.preview_rollback(db, a1.id, "vera", "page")

    assert preview.can_execute is False
    assert preview.reason_code == "unauthorized"
    assert "need edit permission" in preview.reason


def test_unknown_user_cannot_rollback(workspace, ledger, db) -> None:
    workspace.page(title="Old")
    a1 = workspace.edit(title="New")
    db.commit()

    assert ledger.preview_rollback(db, a1.id, "stranger", "page").can_execute is False


def test_unknown_context(workspace, ledger, db) -> None:
    workspace.page(title="Old")
    a1 = workspace.edit(title="New")
    db.commit()

    preview = ledger.preview_rollback(db, a1.id, "alice", "sidebar")

    assert preview.reason == "Unknown rollback context"


def test_page_context_requires_a_page(workspace, ledger, db) -> None:
    renamed = workspace.record(
        operation=ActivityOperation.UPDATE,
        resource_type=ResourceType.DRIVE,
        resource_id="drive-1",
        drive_id="drive-1",
        user_id="alice",
        previous_values={"name": "Team drive"},
        new_values={"name": "Renamed"},
    )
    workspace.put("drive", "drive-1", name="Renamed")
    db.commit()

    from_page = ledger.preview_rollback(db, renamed.id, "alice", "page")
    from_drive = ledger.preview_rollback(db, renamed.id, "alice", "drive")

    assert "not associated with a page" in from_page.reason
    assert from_drive.can_execute is True
    assert from_drive.target_values == {"name": "Team drive"}


def test_drive_context_requires_a_drive(workspace, ledger, db) -> None:
    loose = workspace.record(
        operation=ActivityOperation.MESSAGE_UPDATE,
        resource_type=ResourceType.MESSAGE,
        resource_id="msg-1",
        user_id="alice",
        previous_values={"content": "hi"},
        new_values={"content": "hello"},
    )
    db.commit()

    preview = ledger.preview_rollback(db, loose.id, "alice", "drive")

    assert "not associated with a drive" in preview.reason


def test_ai_tool_context_allows_only_own_ai_changes(workspace, ledger, db) -> None:
    workspace.page(title="Old")
    human = workspace.edit(title="Human edit")
    mine = workspace.edit(title="AI edit", is_ai_generated=True)
    theirs = workspace.edit(title="Bob's AI edit", user_id="bob", is_ai_generated=True)
    db.commit()

    assert "Only AI-generated changes" in ledger.preview_rollback(db, human.id, "alice", "ai_tool").reason
    assert "only rollback your own changes" in ledger.preview_rollback(db, theirs.id, "alice", "ai_tool").reason
    own = ledger.preview_rollback(db, mine.id, "alice", "ai_tool", force=True)
    assert own.reason_code is None
    assert own.can_execute is True


def test_user_dashboard_context_allows_only_own_changes(workspace, ledger, db) -> None:
    workspace.page(title="Old")
    by_bob = workspace.edit(title="Bob", user_id="bob")
    db.commit()

    assert "only rollback your own changes" in ledger.preview_rollback(db, by_bob.id, "alice", "user_dashboard").reason
    assert ledger.preview_rollback(db, by_bob.id, "bob", "user_dashboard").can_execute is True
