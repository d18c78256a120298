import argparse
import logging
import sys
from typing import List, Optional

from .config import Settings, get_settings
from .exceptions import PermanentError, TransientError
from .gdrive import GoogleDriveProvider
from .operations import DeleteItemRequest, DriveStorageService, EmptyTrashRequest, TrashItemRequest
from .quota import format_size, usage_by_folder
from .storage.base import StorageProvider


def setup_logging(settings: Optional[Settings] = None):
    """Configures logging to console and, when LOG_FILE is set, to a file."""
    settings = settings or get_settings()
    log_level_name = settings.LOG_LEVEL.upper()

    # Get the root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level_name)

    # Clear any existing handlers to prevent duplicate logs on re-runs or implicit configs
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if settings.LOG_FILE:
        try:
            file_handler = logging.FileHandler(settings.LOG_FILE)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
        except IOError as e:
            # Log to console if file logging fails (e.g., permissions)
            root_logger.error(f"Failed to set up file logging to {settings.LOG_FILE}: {e}")

    # Reducing "noise" from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)
    logging.getLogger("google.auth").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def init_provider(settings: Settings) -> StorageProvider:
    """Initializes the Google Drive provider from settings."""
    mode = "service account" if settings.uses_service_account else "OAuth token"
    logging.info(f"Connecting to Google Drive using {mode} credentials.")
    return GoogleDriveProvider(
        credentials_json=settings.GDRIVE_CREDENTIALS_JSON,
        token_json=settings.GDRIVE_TOKEN_JSON,
        scopes=settings.GDRIVE_SCOPES,
    )


def build_service(settings: Optional[Settings] = None) -> DriveStorageService:
    settings = settings or get_settings()
    return DriveStorageService(
        init_provider(settings),
        max_workers=settings.MAX_WORKERS,
        page_size=settings.PAGE_SIZE,
    )


def confirm_prompt(question: str, assume_yes: bool = False) -> bool:
    if assume_yes:
        return True
    answer = input(f"{question} (y/N): ")
    return answer.strip().lower() == "y"


def parse_ids(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def run_quota(service: DriveStorageService) -> int:
    snapshot = service.get_quota()
    storage = snapshot.storage
    print(f"User : {snapshot.user.name}")
    print(f"Email: {snapshot.user.email}")
    print("Storage Quota Info:")
    print(f"   Limit     : {storage.limit_readable}")
    print(f"   Usage     : {storage.used_readable}")
    print(f"   Drive Used: {storage.used_in_provider_readable}")
    print(f"   Trash Used: {storage.used_in_trash_readable}")
    return 0


def run_usage(service: DriveStorageService, trashed: bool) -> int:
    report = usage_by_folder(service.provider, trashed=trashed)
    print("Files & Folders in Trash:" if trashed else "Files & Folders in Drive:")
    for folder in report.folders:
        print(f"  {folder.name} ({folder.folder_id}): {format_size(folder.size)}, {folder.count} files")
    if report.root_count:
        where = "Trash root" if trashed else "My Drive root"
        print(f"  Files directly in {where}: {format_size(report.root_size)}, {report.root_count} files")
    return 0


def run_delete(service: DriveStorageService, ids: List[str], permanent: bool, assume_yes: bool) -> int:
    print("Checking metadata for item IDs...")
    for file_id in ids:
        result = service.provider.get_metadata(file_id)
        if result.ok:
            meta = result.value
            print(f"  {meta.name} ({meta.id}) - {meta.kind} - trashed: {meta.trashed}")
        else:
            print(f"  {file_id}: ERROR fetching metadata -> {result.error}")

    if permanent:
        question = f"PERMANENTLY DELETE {len(ids)} item(s)? This is irreversible."
    else:
        question = f"Move {len(ids)} item(s) to Trash?"
    if not confirm_prompt(question, assume_yes):
        print("Aborted by user.")
        return 0

    failures = 0
    for file_id in ids:
        try:
            if permanent:
                service.delete_item(DeleteItemRequest(file_id=file_id, confirm=True))
                print(f"  Permanently deleted {file_id}")
            else:
                service.trash_item(TrashItemRequest(file_id=file_id, confirm=True))
                print(f"  Trashed {file_id}")
        except (PermanentError, TransientError) as e:
            failures += 1
            logging.error(f"Failed to {'delete' if permanent else 'trash'} {file_id}: {e}")
    return 1 if failures else 0


def run_empty_trash(service: DriveStorageService, assume_yes: bool) -> int:
    if not confirm_prompt("PERMANENTLY DELETE everything in the trash?", assume_yes):
        print("Aborted by user.")
        return 0
    result = service.empty_trash(EmptyTrashRequest(confirm=True))
    print(
        f"{result.message}: {result.deleted} deleted, {result.skipped} skipped, "
        f"{result.failed} failed"
    )
    return 1 if result.failed else 0


def run_serve(settings: Settings) -> int:
    import uvicorn

    from .api import create_app

    app = create_app(lambda: build_service(settings), admin_api_key=settings.ADMIN_API_KEY)
    if not settings.ADMIN_API_KEY:
        logging.warning("ADMIN_API_KEY not set. Drive endpoints are not protected.")
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
        timeout_graceful_shutdown=settings.SHUTDOWN_GRACE_SECONDS,
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Storage accounting and trash management for a Google Drive account."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("serve", help="Run the HTTP administrative API.")
    commands.add_parser("quota", help="Show account storage quota.")

    usage = commands.add_parser("usage", help="Show usage grouped by folder.")
    usage.add_argument("--trash", action="store_true", help="Report trashed files instead of active ones.")

    delete = commands.add_parser("delete", help="Trash or permanently delete items by id.")
    delete.add_argument("--ids", required=True, help="Comma separated item ids.")
    delete.add_argument("--permanent", action="store_true", help="Delete permanently instead of trashing.")
    delete.add_argument("--yes", action="store_true", help="Do not ask for confirmation.")

    empty = commands.add_parser("empty-trash", help="Permanently delete everything in the trash.")
    empty.add_argument("--yes", action="store_true", help="Do not ask for confirmation.")

    authorize = commands.add_parser("authorize", help="Run the OAuth flow and save a token.")
    authorize.add_argument("--client-secrets", required=True, help="Path to the OAuth client secrets JSON.")
    authorize.add_argument("--token-out", default="gdrive_token.json", help="Where to write the token.")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "authorize":
        from .drive_auth import drive_authenticate

        logging.basicConfig(level=logging.INFO)
        drive_authenticate(args.client_secrets, args.token_out)
        print(f"Token saved to {args.token_out}")
        return 0

    settings = get_settings()
    setup_logging(settings)

    if args.command == "serve":
        return run_serve(settings)

    try:
        service = build_service(settings)
        if args.command == "quota":
            return run_quota(service)
        if args.command == "usage":
            return run_usage(service, args.trash)
        if args.command == "delete":
            ids = parse_ids(args.ids)
            if not ids:
                logging.error("No item ids given.")
                return 2
            return run_delete(service, ids, args.permanent, args.yes)
        if args.command == "empty-trash":
            return run_empty_trash(service, args.yes)
    except (PermanentError, TransientError) as e:
        logging.critical(f"{args.command} failed: {e}", exc_info=True)
        return 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
