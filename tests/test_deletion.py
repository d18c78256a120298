# tests/test_deletion.py
import pytest

from drive_steward.cancellation import CancelToken
from drive_steward.deletion import delete_recursive, empty_trash
from drive_steward.exceptions import (
    ItemNotFoundError,
    OperationCancelledError,
    ProviderTransportError,
)
from drive_steward.storage.result import CallResult


@pytest.fixture
def trashed_tree(provider):
    """F holds trashed A (file) and B (folder), and B holds trashed C (file)."""
    provider.add("F", folder=True, trashed=True)
    provider.add("A", size=1, parents=["F"], trashed=True)
    provider.add("B", folder=True, parents=["F"], trashed=True)
    provider.add("C", size=2, parents=["B"], trashed=True)
    return provider


def test_delete_recursive_deletes_children_before_parents(trashed_tree):
    deleted = delete_recursive(trashed_tree, "F")

    assert sorted(deleted) == ["A", "B", "C", "F"]
    assert deleted.index("C") < deleted.index("B")
    assert deleted.index("A") < deleted.index("F")
    assert deleted.index("B") < deleted.index("F")
    assert trashed_tree.deleted == deleted
    assert trashed_tree.files == {}


def test_delete_recursive_single_file(provider):
    provider.add("file", size=10)

    assert delete_recursive(provider, "file") == ["file"]


def test_delete_recursive_leaves_live_children(provider):
    provider.add("F", folder=True, trashed=True)
    provider.add("live", size=3, parents=["F"])
    provider.add("dead", size=3, parents=["F"], trashed=True)

    deleted = delete_recursive(provider, "F")

    assert deleted == ["dead", "F"]
    assert "live" in provider.files


def test_delete_recursive_missing_item_raises_not_found(provider):
    with pytest.raises(ItemNotFoundError) as excinfo:
        delete_recursive(provider, "nope")

    assert excinfo.value.file_id == "nope"
    assert provider.mutations() == []


def test_delete_recursive_metadata_transport_error_propagates(provider):
    provider.add("file")
    provider.fail("get_metadata", "file", CallResult.transport_error("invalid_grant", target="file"))

    with pytest.raises(ProviderTransportError, match="invalid_grant"):
        delete_recursive(provider, "file")
    assert provider.mutations() == []


def test_delete_recursive_child_failure_keeps_parent(trashed_tree):
    trashed_tree.fail(
        "delete_permanently", "C", CallResult.transport_error("Internal Error", target="C", http_status=500)
    )

    with pytest.raises(ProviderTransportError):
        delete_recursive(trashed_tree, "F")
    assert "F" in trashed_tree.files
    assert "B" in trashed_tree.files


def test_delete_recursive_skips_child_that_vanished(trashed_tree):
    """C disappears between the listing of B and its own metadata call."""
    trashed_tree.fail("get_metadata", "C", CallResult.not_found("C"))

    deleted = delete_recursive(trashed_tree, "F")

    assert deleted == ["A", "B", "F"]
    assert "F" not in trashed_tree.files


def test_delete_recursive_skips_child_deleted_concurrently(trashed_tree):
    trashed_tree.fail("delete_permanently", "A", CallResult.not_found("A"))

    deleted = delete_recursive(trashed_tree, "F")

    assert "A" not in deleted
    assert deleted[-1] == "F"


def test_delete_recursive_target_delete_not_found_raises(provider):
    provider.add("file")
    provider.fail("delete_permanently", "file", CallResult.not_found("file"))

    with pytest.raises(ItemNotFoundError):
        delete_recursive(provider, "file")


def test_delete_recursive_honours_cancellation(trashed_tree):
    token = CancelToken()
    token.cancel()

    with pytest.raises(OperationCancelledError):
        delete_recursive(trashed_tree, "F", cancel=token)
    assert trashed_tree.mutations() == []


def test_empty_trash_continues_after_item_failure(provider):
    """The second item fails; the first and third are still deleted."""
    provider.add("one", trashed=True)
    provider.add("two", trashed=True)
    provider.add("three", trashed=True)
    provider.fail(
        "delete_permanently", "two", CallResult.transport_error("Backend Error", target="two", http_status=500)
    )

    report = empty_trash(provider)

    attempted = [c[1] for c in provider.calls if c[0] == "delete_permanently"]
    assert attempted == ["one", "two", "three"]
    assert report.attempted == 3
    assert report.deleted == 2
    assert report.failed == 1
    assert report.failed_ids == ["two"]


def test_empty_trash_skips_items_removed_with_their_folder(trashed_tree):
    report = empty_trash(trashed_tree)

    assert trashed_tree.files == {}
    assert report.failed == 0
    assert report.deleted + report.skipped == report.attempted == 4


def test_empty_trash_deletes_folder_whose_child_vanished(provider):
    provider.add("F", folder=True, trashed=True)
    provider.add("C", size=1, parents=["F"], trashed=True)
    provider.fail("get_metadata", "C", CallResult.not_found("C"))

    report = empty_trash(provider)

    assert "F" not in provider.files
    assert "F" in provider.deleted
    assert report.attempted == 2
    assert report.deleted == 1
    assert report.skipped == 1
    assert report.failed == 0


def test_empty_trash_ignores_active_files(provider):
    provider.add("active", size=1)
    provider.add("bin", size=1, trashed=True)

    report = empty_trash(provider)

    assert report.deleted == 1
    assert "active" in provider.files


def test_empty_trash_stops_on_cancellation(provider):
    provider.add("one", trashed=True)
    provider.add("two", trashed=True)
    token = CancelToken()
    original = provider.delete_permanently

    def delete_then_cancel(file_id):
        token.cancel("shutdown")
        return original(file_id)

    provider.delete_permanently = delete_then_cancel

    with pytest.raises(OperationCancelledError):
        empty_trash(provider, cancel=token)
    assert provider.deleted == ["one"]
