from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


def _coerce_size(value):
    # The Drive API reports sizes as decimal strings and omits them for
    # folders and Google-native documents.
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class RemoteFile(BaseModel):
    """
    A standardized Data Transfer Object for a file or folder listed by the
    storage provider.
    """

    id: str
    name: str = ""
    mime_type: str = ""
    size: Optional[int] = None
    parents: List[str] = Field(default_factory=list)
    trashed: bool = False
    modified_time: Optional[str] = None

    @field_validator("size", mode="before")
    @classmethod
    def normalize_size(cls, value):
        return _coerce_size(value)

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @property
    def kind(self) -> str:
        return "folder" if self.is_folder else "file"

    @property
    def byte_size(self) -> int:
        return self.size or 0


class FilePage(BaseModel):
    """One page of a cursor-paginated listing."""

    items: List[RemoteFile] = Field(default_factory=list)
    next_page_token: Optional[str] = None


class FileMetadata(BaseModel):
    id: str
    name: str = ""
    mime_type: str = ""
    trashed: bool = False
    parents: List[str] = Field(default_factory=list)

    @property
    def is_folder(self) -> bool:
        return self.mime_type == FOLDER_MIME_TYPE

    @property
    def kind(self) -> str:
        return "folder" if self.is_folder else "file"


class AccountQuota(BaseModel):
    """Account-level storage totals, in bytes, plus the owning account."""

    limit: Optional[int] = None
    used: Optional[int] = None
    used_in_provider: Optional[int] = None
    used_in_trash: Optional[int] = None
    owner_name: Optional[str] = None
    owner_email: Optional[str] = None

    @field_validator(
        "limit", "used", "used_in_provider", "used_in_trash", mode="before"
    )
    @classmethod
    def normalize_sizes(cls, value):
        return _coerce_size(value)


class FolderAggregate(BaseModel):
    """Total size and file count of a folder's descendants. Never persisted."""

    folder_id: str
    size: int = Field(0, ge=0)
    count: int = Field(0, ge=0)
