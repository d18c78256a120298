from abc import ABC, abstractmethod
from typing import Iterator, Optional

from .dto import AccountQuota, FileMetadata, FilePage
from .result import CallResult

MAX_PAGE_SIZE = 1000


class StorageProvider(ABC):
    """
    Abstract base class for a remote file-storage provider.
    Defines the capability-typed interface the accounting and deletion
    procedures depend on. Implementations must not raise for expected
    failures; every call reports its outcome as a CallResult.
    """

    @abstractmethod
    def list_files(
        self,
        query: str,
        page_token: Optional[str] = None,
        page_size: int = MAX_PAGE_SIZE,
        order_by: Optional[str] = None,
    ) -> CallResult[FilePage]:
        """
        Fetches a single page of files matching a provider query expression.

        :param query: The provider query, e.g. "'<id>' in parents and trashed = false".
        :param page_token: The continuation token returned by the previous page.
        :param page_size: Maximum number of items in the page.
        :param order_by: Optional provider-side ordering, e.g. "folder, name".
        :return: A result wrapping the page and its continuation token.
        """
        pass

    @abstractmethod
    def get_metadata(self, file_id: str) -> CallResult[FileMetadata]:
        """
        Fetches id, kind, trashed flag and parents of a file or folder.

        :param file_id: The ID of the file or folder.
        """
        pass

    @abstractmethod
    def update_trashed_flag(self, file_id: str, trashed: bool) -> CallResult[None]:
        """
        Moves an item to the trash or restores it.

        :param file_id: The ID of the file or folder.
        :param trashed: The new value of the trashed flag.
        """
        pass

    @abstractmethod
    def delete_permanently(self, file_id: str) -> CallResult[None]:
        """
        Permanently deletes a single item, bypassing the trash.

        :param file_id: The ID of the file or folder.
        """
        pass

    @abstractmethod
    def get_account_quota(self) -> CallResult[AccountQuota]:
        """Fetches account-level storage usage, limit and owner identity."""
        pass

    @abstractmethod
    def download(self, file_id: str) -> CallResult[Iterator[bytes]]:
        """
        Opens the binary content of a file as an iterator of chunks.

        :param file_id: The ID of the file to download.
        """
        pass
