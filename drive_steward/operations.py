"""Administrative operations over the Drive account, independent of transport."""

import logging
from dataclasses import dataclass
from typing import ClassVar, Dict, Iterator, List, Optional

from pydantic import BaseModel

from .aggregator import folder_sizes
from .cancellation import CancelToken, check_cancelled
from .deletion import delete_recursive, empty_trash
from .exceptions import ConfirmationRequiredError
from .quota import DriveStats, QuotaSnapshot, drive_stats, format_size, quota_report
from .storage.base import MAX_PAGE_SIZE, StorageProvider
from .storage.dto import RemoteFile
from .walker import ROOT_ID, children_query, root_query, trashed_query, walk_pages

FOLDERS_FIRST = "folder, name"


class DriveItem(BaseModel):
    id: str
    name: str
    size: str
    size_bytes: Optional[int] = None
    count: Optional[int] = None
    is_folder: bool
    mime_type: str
    modified_time: Optional[str] = None


class ItemListing(BaseModel):
    parent_id: str
    items: List[DriveItem]


class RootFolderSize(BaseModel):
    folder: str
    folder_id: str
    path: str
    size_bytes: int
    size_readable: str
    count: int


class ActionResult(BaseModel):
    message: str


class EmptyTrashResult(ActionResult):
    attempted: int
    deleted: int
    skipped: int
    failed: int
    failed_ids: List[str]


@dataclass
class Download:
    filename: str
    chunks: Iterator[bytes]


class ConfirmedRequest(BaseModel):
    """Base for destructive requests: nothing happens unless `confirm` is true."""

    requires_confirmation: ClassVar[bool] = True
    confirmation_message: ClassVar[str] = "Confirmation required"

    confirm: bool = False


class TrashItemRequest(ConfirmedRequest):
    confirmation_message: ClassVar[str] = "Confirmation required to move to trash"

    file_id: str


class DeleteItemRequest(ConfirmedRequest):
    confirmation_message: ClassVar[str] = "Confirmation required to delete permanently"

    file_id: str


class EmptyTrashRequest(ConfirmedRequest):
    confirmation_message: ClassVar[str] = "Confirmation required to empty trash"


def require_confirmation(request: BaseModel):
    """
    Shared guard for every destructive operation.

    Raises:
        ConfirmationRequiredError: If the request type requires confirmation
            and `confirm` is not set.
    """
    if getattr(request, "requires_confirmation", False) and request.confirm is not True:
        logging.warning(f"Rejected {type(request).__name__} without confirmation")
        raise ConfirmationRequiredError(request.confirmation_message)


def _visible(files: List[RemoteFile]) -> List[RemoteFile]:
    return [f for f in files if f.id and f.name]


def _item(f: RemoteFile, count: Optional[int] = None, size_bytes: Optional[int] = None) -> DriveItem:
    if f.is_folder:
        size = format_size(size_bytes) if size_bytes is not None else "-"
    else:
        size = format_size(f.size)
        size_bytes = f.size
    return DriveItem(
        id=f.id,
        name=f.name,
        size=size,
        size_bytes=size_bytes,
        count=count,
        is_folder=f.is_folder,
        mime_type=f.mime_type,
        modified_time=f.modified_time,
    )


class DriveStorageService:
    """
    The operations exposed to the administrative layer.

    The provider is injected, so tests and the CLI can substitute their own.
    """

    def __init__(
        self,
        provider: StorageProvider,
        max_workers: int = 8,
        page_size: int = MAX_PAGE_SIZE,
    ):
        self.provider = provider
        self.max_workers = max_workers
        self.page_size = page_size

    def _walk(self, query: str, order_by: Optional[str] = None, cancel: Optional[CancelToken] = None):
        return walk_pages(
            self.provider, query, page_size=self.page_size, order_by=order_by, cancel=cancel
        )

    def _with_aggregates(
        self, folders: List[RemoteFile], trashed: bool, cancel: Optional[CancelToken] = None
    ) -> List[DriveItem]:
        aggregates = folder_sizes(
            self.provider,
            [f.id for f in folders],
            trashed=trashed,
            cancel=cancel,
            max_workers=self.max_workers,
            page_size=self.page_size,
        )
        return [
            _item(f, count=agg.count, size_bytes=agg.size)
            for f, agg in zip(folders, aggregates)
        ]

    def get_quota(self, cancel: Optional[CancelToken] = None) -> QuotaSnapshot:
        return quota_report(self.provider, cancel=cancel)

    def drive_stats(self) -> DriveStats:
        return drive_stats(self.provider)

    def list_root_folders(self, cancel: Optional[CancelToken] = None) -> List[RootFolderSize]:
        """Top-level folders of the account with their full-subtree sizes."""
        folders = [f for f in _visible(self._walk(root_query(), FOLDERS_FIRST, cancel)) if f.is_folder]
        listed = {f.id for f in folders}
        top_level = [f for f in folders if not any(p in listed for p in f.parents)]

        aggregates = folder_sizes(
            self.provider,
            [f.id for f in top_level],
            cancel=cancel,
            max_workers=self.max_workers,
            page_size=self.page_size,
        )
        return [
            RootFolderSize(
                folder=f.name,
                folder_id=f.id,
                path=f"/{f.name}",
                size_bytes=agg.size,
                size_readable=format_size(agg.size),
                count=agg.count,
            )
            for f, agg in zip(top_level, aggregates)
        ]

    def list_items(self, parent_id: str = ROOT_ID, cancel: Optional[CancelToken] = None) -> ItemListing:
        """
        Lists the active items under a folder. The root listing shows folders
        only, each with its aggregated size and file count.
        """
        parent_id = parent_id or ROOT_ID
        if parent_id == ROOT_ID:
            files = _visible(self._walk(root_query(), FOLDERS_FIRST, cancel))
            items = self._with_aggregates([f for f in files if f.is_folder], False, cancel)
        else:
            files = _visible(self._walk(children_query(parent_id, trashed=False), FOLDERS_FIRST, cancel))
            items = [_item(f) for f in files]
        return ItemListing(parent_id=parent_id, items=items)

    def list_trash(self, parent_id: str = ROOT_ID, cancel: Optional[CancelToken] = None) -> ItemListing:
        """
        Lists trashed items.

        At the trash root, a trashed file whose parent folder is trashed too is
        hidden, since deleting the folder removes it. Trashed folders carry
        aggregates of their trashed contents. With a folder id, the trashed
        children of that folder are listed.
        """
        parent_id = parent_id or ROOT_ID
        files = _visible(self._walk(trashed_query(), FOLDERS_FIRST, cancel))

        if parent_id != ROOT_ID:
            children = [f for f in files if parent_id in f.parents]
            return ItemListing(parent_id=parent_id, items=[_item(f) for f in children])

        trashed_folder_ids = {f.id for f in files if f.is_folder}
        root_visible = [
            f for f in files
            if f.is_folder or not any(p in trashed_folder_ids for p in f.parents)
        ]
        folder_items = self._with_aggregates(
            [f for f in root_visible if f.is_folder], True, cancel
        )
        by_id: Dict[str, DriveItem] = {item.id: item for item in folder_items}
        items = [by_id[f.id] if f.is_folder else _item(f) for f in root_visible]
        return ItemListing(parent_id=parent_id, items=items)

    def trash_item(self, request: TrashItemRequest, cancel: Optional[CancelToken] = None) -> ActionResult:
        require_confirmation(request)
        check_cancelled(cancel)
        self.provider.update_trashed_flag(request.file_id, True).unwrap()
        logging.info(f"Moved item '{request.file_id}' to trash")
        return ActionResult(message="Item moved to trash")

    def delete_item(self, request: DeleteItemRequest, cancel: Optional[CancelToken] = None) -> ActionResult:
        require_confirmation(request)
        deleted = delete_recursive(self.provider, request.file_id, cancel=cancel, page_size=self.page_size)
        logging.info(f"Permanently deleted '{request.file_id}' ({len(deleted)} item(s))")
        return ActionResult(message="Item permanently deleted")

    def empty_trash(self, request: EmptyTrashRequest, cancel: Optional[CancelToken] = None) -> EmptyTrashResult:
        require_confirmation(request)
        report = empty_trash(self.provider, cancel=cancel, page_size=self.page_size)
        if report.failed:
            message = f"Trash emptied with {report.failed} failure(s)"
        else:
            message = "Trash emptied successfully"
        return EmptyTrashResult(message=message, **report.model_dump())

    def download_item(self, file_id: str, item_name: Optional[str] = None) -> Download:
        chunks = self.provider.download(file_id).unwrap()
        return Download(filename=item_name or file_id, chunks=chunks)
