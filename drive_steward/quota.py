import logging
import math
from typing import Dict, List, Optional

from pydantic import BaseModel

from .cancellation import CancelToken, check_cancelled
from .storage.base import StorageProvider
from .walker import all_files_query, folders_query, walk_pages

SIZE_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]
NO_DATA = "-"
UNLIMITED = "Unlimited/Not Set"
UNKNOWN = "Unknown"


def format_size(value) -> str:
    """
    Renders a byte count as a human-readable string, e.g. 1536 -> "1.50 KB".

    Missing, zero and non-numeric values render as "-".
    """
    if value is None or value == "0":
        return NO_DATA
    try:
        size = float(value)
    except (TypeError, ValueError):
        return NO_DATA
    if math.isnan(size) or size == 0:
        return NO_DATA

    unit = 0
    while size >= 1024 and unit < len(SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    return f"{size:.2f} {SIZE_UNITS[unit]}"


class QuotaUser(BaseModel):
    name: str
    email: str


class QuotaStorage(BaseModel):
    limit: Optional[int] = None
    used: Optional[int] = None
    used_in_provider: Optional[int] = None
    used_in_trash: Optional[int] = None
    limit_readable: str
    used_readable: str
    used_in_provider_readable: str
    used_in_trash_readable: str


class QuotaSnapshot(BaseModel):
    user: QuotaUser
    storage: QuotaStorage


class DriveStats(BaseModel):
    used_mb: str
    limit_mb: str
    unit: str = "MB"


def quota_report(
    provider: StorageProvider, cancel: Optional[CancelToken] = None
) -> QuotaSnapshot:
    """Fetches the account quota and renders every total as a readable size."""
    check_cancelled(cancel)
    quota = provider.get_account_quota().unwrap()
    return QuotaSnapshot(
        user=QuotaUser(
            name=quota.owner_name or UNKNOWN,
            email=quota.owner_email or UNKNOWN,
        ),
        storage=QuotaStorage(
            limit=quota.limit,
            used=quota.used,
            used_in_provider=quota.used_in_provider,
            used_in_trash=quota.used_in_trash,
            limit_readable=format_size(quota.limit) if quota.limit else UNLIMITED,
            used_readable=format_size(quota.used),
            used_in_provider_readable=format_size(quota.used_in_provider),
            used_in_trash_readable=format_size(quota.used_in_trash),
        ),
    )


def drive_stats(provider: StorageProvider) -> DriveStats:
    """Compact usage summary in megabytes, as shown on the developer dashboard."""
    quota = provider.get_account_quota().unwrap()
    used = quota.used_in_provider or 0
    return DriveStats(
        used_mb=f"{used / 1024 / 1024:.2f}",
        limit_mb=f"{quota.limit / 1024 / 1024:.2f}" if quota.limit else "unlimited",
    )


class FolderUsage(BaseModel):
    folder_id: str
    name: str
    size: int
    count: int


class UsageReport(BaseModel):
    trashed: bool
    folders: List[FolderUsage]
    root_size: int = 0
    root_count: int = 0


def usage_by_folder(
    provider: StorageProvider,
    trashed: bool = False,
    cancel: Optional[CancelToken] = None,
) -> UsageReport:
    """
    Buckets every file of one trashed/active mode under its first parent.

    Two full walks: one over all files, one over all folders (for names).
    Files without a parent are reported as living directly at the root.
    """
    files = walk_pages(provider, all_files_query(trashed), cancel=cancel)
    folder_names = {
        folder.id: folder.name
        for folder in walk_pages(provider, folders_query(trashed), cancel=cancel)
    }

    sizes: Dict[str, int] = {}
    counts: Dict[str, int] = {}
    root_size = 0
    root_count = 0
    for item in files:
        if item.is_folder:
            continue
        if item.parents:
            parent = item.parents[0]
            sizes[parent] = sizes.get(parent, 0) + item.byte_size
            counts[parent] = counts.get(parent, 0) + 1
        else:
            root_size += item.byte_size
            root_count += 1

    logging.info(
        f"Usage ({'trash' if trashed else 'drive'}): {len(files)} item(s) in {len(sizes)} folder(s)"
    )
    return UsageReport(
        trashed=trashed,
        folders=[
            FolderUsage(
                folder_id=folder_id,
                name=folder_names.get(folder_id, "(Unknown Folder)"),
                size=size,
                count=counts[folder_id],
            )
            for folder_id, size in sizes.items()
        ],
        root_size=root_size,
        root_count=root_count,
    )
