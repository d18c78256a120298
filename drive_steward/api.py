"""HTTP surface of the drive storage operations (FastAPI)."""

import logging
import threading
from contextlib import asynccontextmanager
from typing import Callable, Optional, Set
from urllib.parse import quote

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from .cancellation import CancelToken
from .exceptions import (
    ConfirmationRequiredError,
    ItemNotFoundError,
    PermanentError,
    TransientError,
)
from .operations import (
    DeleteItemRequest,
    DriveStorageService,
    EmptyTrashRequest,
    TrashItemRequest,
)
from .walker import ROOT_ID


class ConfirmBody(BaseModel):
    confirm: bool = False


class CancelRegistry:
    """Cancel tokens of in-flight long operations, cancelled on shutdown."""

    def __init__(self):
        self._lock = threading.Lock()
        self._tokens: Set[CancelToken] = set()

    def open(self) -> CancelToken:
        token = CancelToken()
        with self._lock:
            self._tokens.add(token)
        return token

    def close(self, token: CancelToken):
        with self._lock:
            self._tokens.discard(token)

    def cancel_all(self, reason: str):
        with self._lock:
            tokens = list(self._tokens)
        for token in tokens:
            token.cancel(reason)


def _failure(message: str, exc: Exception) -> JSONResponse:
    if isinstance(exc, ConfirmationRequiredError):
        return JSONResponse(status_code=400, content={"message": str(exc)})
    if isinstance(exc, ItemNotFoundError):
        return JSONResponse(status_code=404, content={"message": message, "error": str(exc)})
    logging.error(f"{message}: {exc}")
    return JSONResponse(status_code=500, content={"message": message, "error": str(exc)})


def _run(message: str, operation: Callable):
    try:
        return operation()
    except (PermanentError, TransientError) as e:
        return _failure(message, e)


def create_app(
    service_factory: Callable[[], DriveStorageService],
    admin_api_key: Optional[str] = None,
) -> FastAPI:
    """
    Builds the application around a service factory, so tests can pass a
    service backed by a fake provider.
    """
    cancels = CancelRegistry()
    service_holder = {}

    def get_service() -> DriveStorageService:
        if "service" not in service_holder:
            service_holder["service"] = service_factory()
        return service_holder["service"]

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        cancels.cancel_all("Server shutting down")

    app = FastAPI(
        title="Drive Steward",
        description="Storage accounting and trash management for a Google Drive account.",
        lifespan=lifespan,
    )
    app.state.cancels = cancels

    async def verify_admin(request: Request):
        if admin_api_key is None:
            return
        if request.headers.get("X-Admin-Key", "") != admin_api_key:
            raise HTTPException(status_code=403, detail="Invalid admin key")

    guarded = [Depends(verify_admin)]

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/drive/quota", dependencies=guarded)
    def get_quota(service: DriveStorageService = Depends(get_service)):
        return _run("Failed to fetch storage quota", service.get_quota)

    @app.get("/drive/stats", dependencies=guarded)
    def get_drive_stats(service: DriveStorageService = Depends(get_service)):
        return _run("Failed to fetch Drive stats", service.drive_stats)

    @app.get("/drive/folders", dependencies=guarded)
    def get_root_folders(service: DriveStorageService = Depends(get_service)):
        return _run("Failed to fetch folder sizes", service.list_root_folders)

    @app.get("/drive/files", dependencies=guarded)
    def get_file_list(
        parent_id: str = Query(ROOT_ID, alias="parentId"),
        service: DriveStorageService = Depends(get_service),
    ):
        return _run("Failed to fetch file list", lambda: service.list_items(parent_id))

    @app.get("/drive/trash", dependencies=guarded)
    def get_trash_list(
        parent_id: str = Query(ROOT_ID, alias="parentId"),
        service: DriveStorageService = Depends(get_service),
    ):
        return _run("Failed to fetch trash list", lambda: service.list_trash(parent_id))

    @app.put("/item/trash/{file_id}", dependencies=guarded)
    def trash_item(
        file_id: str,
        body: Optional[ConfirmBody] = None,
        service: DriveStorageService = Depends(get_service),
    ):
        request = TrashItemRequest(file_id=file_id, confirm=body.confirm if body else False)
        return _run("Failed to trash item", lambda: service.trash_item(request))

    @app.delete("/item/trash/empty", dependencies=guarded)
    def empty_trash(
        body: Optional[ConfirmBody] = None,
        service: DriveStorageService = Depends(get_service),
    ):
        request = EmptyTrashRequest(confirm=body.confirm if body else False)
        token = cancels.open()
        try:
            return _run("Failed to empty trash", lambda: service.empty_trash(request, cancel=token))
        finally:
            cancels.close(token)

    @app.delete("/item/delete/{file_id}", dependencies=guarded)
    def delete_item(
        file_id: str,
        body: Optional[ConfirmBody] = None,
        service: DriveStorageService = Depends(get_service),
    ):
        request = DeleteItemRequest(file_id=file_id, confirm=body.confirm if body else False)
        token = cancels.open()
        try:
            return _run(
                "Failed to delete item permanently",
                lambda: service.delete_item(request, cancel=token),
            )
        finally:
            cancels.close(token)

    @app.get("/item/download/{file_id}", dependencies=guarded)
    def download_item(
        file_id: str,
        item_name: Optional[str] = Query(None, alias="itemName"),
        service: DriveStorageService = Depends(get_service),
    ):
        try:
            download = service.download_item(file_id, item_name)
        except (PermanentError, TransientError) as e:
            return _failure("Failed to download item", e)
        # CR, LF and other control characters cannot appear in a header value.
        filename = "".join(ch for ch in download.filename if ch.isprintable() and ch != '"')
        filename = filename or file_id
        ascii_name = filename.encode("ascii", "replace").decode("ascii")
        return StreamingResponse(
            download.chunks,
            media_type="application/octet-stream",
            headers={
                "Content-Disposition": f'attachment; filename="{ascii_name}"; '
                f"filename*=UTF-8''{quote(filename)}"
            },
        )

    return app
