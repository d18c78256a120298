# tests/test_aggregator.py
import threading
import time

import pytest

from drive_steward.aggregator import folder_size, folder_sizes
from drive_steward.cancellation import CancelToken
from drive_steward.exceptions import OperationCancelledError, ProviderTransportError
from drive_steward.storage.result import CallResult
from drive_steward.walker import children_query


def test_folder_size_skips_folder_entries(provider):
    """Three files and one interleaved sub-folder: folders add no bytes and no count."""
    provider.add("top", folder=True)
    provider.add("a", size=100, parents=["top"])
    provider.add("b", size=200, parents=["top"])
    provider.add("sub", folder=True, parents=["top"])
    provider.add("c", size=50, parents=["top"])

    aggregate = folder_size(provider, "top")

    assert aggregate.folder_id == "top"
    assert aggregate.size == 350
    assert aggregate.count == 3


def test_folder_size_counts_sizeless_files_as_zero_bytes(provider):
    provider.add("top", folder=True)
    provider.add("doc", size=None, parents=["top"])
    provider.add("pdf", size="1024", parents=["top"])

    aggregate = folder_size(provider, "top")

    assert aggregate.size == 1024
    assert aggregate.count == 2


def test_folder_size_descends_into_subfolders(provider):
    provider.add("top", folder=True)
    provider.add("a", size=10, parents=["top"])
    provider.add("sub", folder=True, parents=["top"])
    provider.add("b", size=20, parents=["sub"])
    provider.add("deeper", folder=True, parents=["sub"])
    provider.add("c", size=30, parents=["deeper"])

    aggregate = folder_size(provider, "top")

    assert aggregate.size == 60
    assert aggregate.count == 3


def test_folder_size_respects_trashed_mode(provider):
    provider.add("top", folder=True, trashed=True)
    provider.add("gone", size=500, parents=["top"], trashed=True)
    provider.add("kept", size=7, parents=["top"])

    assert folder_size(provider, "top", trashed=True).size == 500
    assert folder_size(provider, "top", trashed=False).size == 7


def test_folder_size_terminates_on_parent_cycles(provider):
    provider.add("a", folder=True, parents=["b"])
    provider.add("b", folder=True, parents=["a"])
    provider.add("file", size=5, parents=["a"])

    aggregate = folder_size(provider, "a")

    assert aggregate.size == 5
    assert aggregate.count == 1


def test_folder_size_empty_folder(provider):
    provider.add("empty", folder=True)

    aggregate = folder_size(provider, "empty")

    assert (aggregate.size, aggregate.count) == (0, 0)


def test_folder_sizes_keeps_input_order(provider):
    for name, size in [("x", 1), ("y", 2), ("z", 3)]:
        provider.add(name, folder=True)
        provider.add(f"{name}-file", size=size, parents=[name])

    aggregates = folder_sizes(provider, ["z", "x", "y"], max_workers=3)

    assert [(a.folder_id, a.size) for a in aggregates] == [("z", 3), ("x", 1), ("y", 2)]


def test_folder_sizes_propagates_failure(provider):
    provider.add("ok", folder=True)
    provider.add("broken", folder=True)
    provider.fail(
        "list_files",
        children_query("broken"),
        CallResult.transport_error("Rate Limit Exceeded", http_status=403),
    )

    with pytest.raises(ProviderTransportError, match="Rate Limit Exceeded"):
        folder_sizes(provider, ["ok", "broken"], max_workers=2)


def test_folder_sizes_empty_input(provider):
    assert folder_sizes(provider, []) == []


def test_folder_sizes_failure_stops_sibling_walks(provider):
    """
    A deep chain of folders is walked next to a folder whose listing fails.
    The chain walk must stop soon after the failure instead of finishing.
    """
    depth = 30
    provider.add("chain-0", folder=True)
    for level in range(1, depth):
        provider.add(f"chain-{level}", folder=True, parents=[f"chain-{level - 1}"])
    provider.add("broken", folder=True)
    broken_query = children_query("broken")
    provider.fail("list_files", broken_query, CallResult.transport_error("Backend Error", http_status=500))

    broken_listed = threading.Event()
    chain_calls = []
    original = provider.list_files

    def list_files(query, *args, **kwargs):
        if query == broken_query:
            broken_listed.set()
        elif "chain-" in query:
            chain_calls.append(query)
            broken_listed.wait(timeout=5)
            time.sleep(0.05)
        return original(query, *args, **kwargs)

    provider.list_files = list_files

    with pytest.raises(ProviderTransportError, match="Backend Error"):
        folder_sizes(provider, ["chain-0", "broken"], max_workers=2)

    assert 0 < len(chain_calls) < depth


def test_folder_sizes_honours_caller_cancellation(provider):
    provider.add("x", folder=True)
    provider.add("y", folder=True)
    token = CancelToken()
    token.cancel("shutdown")

    with pytest.raises(OperationCancelledError, match="shutdown"):
        folder_sizes(provider, ["x", "y"], cancel=token, max_workers=2)


def test_child_cancel_token_follows_parent_only_downwards():
    parent = CancelToken()
    child = CancelToken(parent=parent)

    child.cancel("batch failed")
    assert child.cancelled
    assert not parent.cancelled

    other = CancelToken(parent=parent)
    parent.cancel("shutdown")
    assert other.cancelled
    with pytest.raises(OperationCancelledError, match="shutdown"):
        other.raise_if_cancelled()
