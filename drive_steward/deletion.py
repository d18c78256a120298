import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from .cancellation import CancelToken, check_cancelled
from .exceptions import ItemNotFoundError, OperationCancelledError
from .storage.base import MAX_PAGE_SIZE, StorageProvider
from .walker import children_query, trashed_query, walk_pages


class EmptyTrashReport(BaseModel):
    attempted: int = 0
    deleted: int = 0
    skipped: int = 0
    failed: int = 0
    failed_ids: List[str] = Field(default_factory=list)


def delete_recursive(
    provider: StorageProvider,
    file_id: str,
    cancel: Optional[CancelToken] = None,
    page_size: int = MAX_PAGE_SIZE,
) -> List[str]:
    """
    Permanently deletes a file, or a folder together with its trashed subtree.

    For a folder, every trashed child is deleted (recursively) before the
    folder's own delete call is issued. Children that are not trashed are
    left in place and end up orphaned by the provider.

    A trashed child that disappears while the folder is being walked is
    treated as already deleted; only a missing target is an error.

    Returns:
        The ids that were deleted, in the order the delete calls were issued.

    Raises:
        ItemNotFoundError: If the target no longer exists.
        ProviderTransportError: If any metadata, listing or delete call fails.
        OperationCancelledError: If `cancel` fires before a provider call.
    """
    deleted: List[str] = []
    _delete_subtree(provider, file_id, deleted, cancel, page_size, top_level=True)
    return deleted


def _delete_subtree(
    provider: StorageProvider,
    file_id: str,
    deleted: List[str],
    cancel: Optional[CancelToken],
    page_size: int,
    top_level: bool = False,
):
    check_cancelled(cancel)
    meta_result = provider.get_metadata(file_id)
    if meta_result.is_not_found and not top_level:
        logging.info(f"Trashed child '{file_id}' is already gone, skipping")
        return
    meta = meta_result.unwrap()

    if meta.is_folder:
        children = walk_pages(
            provider, children_query(file_id, trashed=True), page_size=page_size, cancel=cancel
        )
        for child in children:
            _delete_subtree(provider, child.id, deleted, cancel, page_size)

    check_cancelled(cancel)
    result = provider.delete_permanently(file_id)
    if result.is_not_found and not top_level:
        logging.info(f"Trashed child '{file_id}' was removed before its delete call, skipping")
        return
    result.unwrap()
    deleted.append(file_id)
    logging.info(f"Permanently deleted {meta.kind} '{file_id}'")


def empty_trash(
    provider: StorageProvider,
    cancel: Optional[CancelToken] = None,
    page_size: int = MAX_PAGE_SIZE,
) -> EmptyTrashReport:
    """
    Permanently deletes everything in the trash, one item at a time.

    A failure on one item is logged and counted, and the loop moves on to
    the next item. Items that are already gone (typically because they were
    removed together with a trashed parent folder earlier in the loop) are
    counted as skipped. Cancellation stops the loop and propagates.
    """
    report = EmptyTrashReport()
    items = walk_pages(provider, trashed_query(), page_size=page_size, cancel=cancel)
    logging.info(f"Emptying trash: {len(items)} trashed item(s) found")

    for item in items:
        report.attempted += 1
        try:
            delete_recursive(provider, item.id, cancel=cancel, page_size=page_size)
            report.deleted += 1
        except OperationCancelledError:
            logging.warning(
                f"Emptying trash cancelled after {report.attempted - 1} of {len(items)} item(s)"
            )
            raise
        except ItemNotFoundError:
            report.skipped += 1
            logging.info(f"Trashed item '{item.id}' was already removed, skipping")
        except Exception as e:
            report.failed += 1
            report.failed_ids.append(item.id)
            logging.error(f"Failed to delete trashed item '{item.id}': {e}")

    logging.info(
        f"Trash emptied: {report.deleted} deleted, {report.skipped} skipped, {report.failed} failed"
    )
    return report
