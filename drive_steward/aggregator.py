import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import List, Optional, Sequence, Set

from .cancellation import CancelToken
from .exceptions import OperationCancelledError
from .storage.base import MAX_PAGE_SIZE, StorageProvider
from .storage.dto import FolderAggregate
from .walker import children_query, walk_pages


def folder_size(
    provider: StorageProvider,
    folder_id: str,
    trashed: bool = False,
    cancel: Optional[CancelToken] = None,
    page_size: int = MAX_PAGE_SIZE,
) -> FolderAggregate:
    """
    Computes the total byte size and file count of a folder's whole subtree.

    Only children whose trashed flag matches `trashed` are visited, at every
    level. Folders contribute no bytes and are not counted; files without a
    size (Google-native documents) count with zero bytes. A folder reachable
    through several parents is walked once.
    """
    total_size = 0
    total_count = 0
    pending = [folder_id]
    visited: Set[str] = set()

    while pending:
        current = pending.pop()
        if current in visited:
            continue
        visited.add(current)

        for item in walk_pages(
            provider, children_query(current, trashed), page_size=page_size, cancel=cancel
        ):
            if item.is_folder:
                pending.append(item.id)
                continue
            total_size += item.byte_size
            total_count += 1

    logging.debug(
        f"Folder '{folder_id}' (trashed={trashed}): {total_count} files, {total_size} bytes "
        f"across {len(visited)} folder(s)"
    )
    return FolderAggregate(folder_id=folder_id, size=total_size, count=total_count)


def folder_sizes(
    provider: StorageProvider,
    folder_ids: Sequence[str],
    trashed: bool = False,
    cancel: Optional[CancelToken] = None,
    max_workers: int = 8,
    page_size: int = MAX_PAGE_SIZE,
) -> List[FolderAggregate]:
    """
    Aggregates several sibling folders in parallel.

    Results come back in the order of `folder_ids`. When one walk fails, the
    walks still queued are dropped and the running ones stop before their
    next provider call; the failure is then raised.
    """
    if not folder_ids:
        return []
    if max_workers <= 1 or len(folder_ids) == 1:
        return [
            folder_size(provider, folder_id, trashed, cancel, page_size)
            for folder_id in folder_ids
        ]

    batch = CancelToken(parent=cancel)
    with ThreadPoolExecutor(max_workers=min(max_workers, len(folder_ids))) as pool:
        futures = [
            pool.submit(folder_size, provider, folder_id, trashed, batch, page_size)
            for folder_id in folder_ids
        ]
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        failures = [f for f in futures if f in done and f.exception() is not None]
        if failures:
            batch.cancel("Sibling folder walk failed")
            for future in futures:
                future.cancel()
            # Cancellations triggered by the batch token are not the root failure.
            first = next(
                (f for f in failures if not isinstance(f.exception(), OperationCancelledError)),
                failures[0],
            )
            logging.error(f"Folder aggregation batch stopped: {first.exception()}")
            raise first.exception()
        return [future.result() for future in futures]
