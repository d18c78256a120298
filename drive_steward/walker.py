import logging
from typing import List, Optional

from .cancellation import CancelToken, check_cancelled
from .storage.base import MAX_PAGE_SIZE, StorageProvider
from .storage.dto import FOLDER_MIME_TYPE, RemoteFile

ROOT_ID = "root"

# A service account owns files without them being parented under its own
# "My Drive", so the root listing matches everything that is not trashed.
ROOT_QUERY = "('root' in parents or 'root' in owners or not 'root' in parents) and trashed = false"


def _quote(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def children_query(parent_id: str, trashed: bool = False) -> str:
    """Direct children of a folder in a single trashed/active mode."""
    return f"{_quote(parent_id)} in parents and trashed = {str(trashed).lower()}"


def trashed_query() -> str:
    return "trashed = true"


def all_files_query(trashed: bool = False) -> str:
    return f"trashed = {str(trashed).lower()}"


def folders_query(trashed: bool = False) -> str:
    return f"mimeType = {_quote(FOLDER_MIME_TYPE)} and trashed = {str(trashed).lower()}"


def root_query() -> str:
    return ROOT_QUERY


def walk_pages(
    provider: StorageProvider,
    query: str,
    page_size: int = MAX_PAGE_SIZE,
    order_by: Optional[str] = None,
    cancel: Optional[CancelToken] = None,
) -> List[RemoteFile]:
    """
    Drains a cursor-paginated listing into a single list, in provider order.

    One request is issued per page. The walk ends on the first page that
    carries no continuation token. A failed page aborts the whole walk;
    callers never see a partial listing.

    Raises:
        ItemNotFoundError: If the provider reports the queried parent as missing.
        ProviderTransportError: If any page request fails.
        OperationCancelledError: If `cancel` fires between pages.
    """
    page_size = max(1, min(int(page_size), MAX_PAGE_SIZE))
    items: List[RemoteFile] = []
    page_token: Optional[str] = None
    pages = 0

    while True:
        check_cancelled(cancel)
        page = provider.list_files(
            query, page_token=page_token, page_size=page_size, order_by=order_by
        ).unwrap()
        pages += 1
        items.extend(page.items)
        page_token = page.next_page_token
        if not page_token:
            break
        logging.debug(f"Found more files for query [{query}], fetching page {pages + 1}...")

    logging.debug(f"Listed {len(items)} items in {pages} page(s) for query [{query}]")
    return items
