# gdrive.py
import io
import json
import logging
import socket
import threading
from typing import Iterator, List, Optional

import google.auth.exceptions
import httplib2
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

from .config import DEFAULT_SCOPES
from .storage.base import MAX_PAGE_SIZE, StorageProvider
from .storage.dto import AccountQuota, FileMetadata, FilePage, RemoteFile
from .storage.result import CallResult

LIST_FIELDS = "nextPageToken, files(id, name, size, mimeType, parents, trashed, modifiedTime)"
METADATA_FIELDS = "id, name, mimeType, trashed, parents"
DOWNLOAD_CHUNK_SIZE = 8 * 1024 * 1024

# Transport-level failures that never reach the API as an HTTP response.
NETWORK_ERRORS = (
    google.auth.exceptions.GoogleAuthError,
    httplib2.HttpLib2Error,
    socket.timeout,
    ConnectionError,
)


def _error_detail(error: HttpError) -> str:
    try:
        return json.loads(error.content).get("error", {}).get("message", str(error))
    except (TypeError, ValueError, AttributeError):
        return str(error)


def _to_remote_file(item: dict) -> RemoteFile:
    return RemoteFile(
        id=item.get("id", ""),
        name=item.get("name", ""),
        mime_type=item.get("mimeType", ""),
        size=item.get("size"),
        parents=item.get("parents") or [],
        trashed=bool(item.get("trashed", False)),
        modified_time=item.get("modifiedTime"),
    )


class GoogleDriveProvider(StorageProvider):
    """
    Google Drive v3 implementation of the StorageProvider interface.

    Each thread gets its own authorized httplib2 connection, since httplib2
    is not thread-safe and folder aggregation runs in a thread pool.
    """

    def __init__(
        self,
        credentials_json: str,
        token_json: Optional[str] = None,
        scopes: Optional[List[str]] = None,
    ):
        scopes = scopes or DEFAULT_SCOPES
        try:
            credentials_data = json.loads(credentials_json)
            if token_json:
                token_info = json.loads(token_json)
                creds = Credentials.from_authorized_user_info(info=token_info, scopes=scopes)
                # The client secrets document may be nested under "installed" or "web".
                client_info = credentials_data.get("installed") or credentials_data.get("web") or credentials_data
                if "client_id" in client_info and "client_secret" in client_info:
                    creds = Credentials(
                        token=creds.token,
                        refresh_token=creds.refresh_token,
                        token_uri=creds.token_uri,
                        client_id=client_info["client_id"],
                        client_secret=client_info["client_secret"],
                        scopes=scopes,
                    )
                else:
                    logging.warning(
                        "client_id or client_secret not found in GDRIVE_CREDENTIALS_JSON. Using existing from token_json if available."
                    )
            else:
                creds = service_account.Credentials.from_service_account_info(
                    credentials_data, scopes=scopes
                )

            self.credentials = creds
            self.service = build("drive", "v3", credentials=creds, cache_discovery=False)
            self._local = threading.local()
            logging.info("Google Drive provider initialized successfully.")
        except Exception as e:
            logging.error(f"Failed to initialize Google Drive provider. Error: {e}")
            raise

    def _http(self) -> AuthorizedHttp:
        http = getattr(self._local, "http", None)
        if http is None:
            http = AuthorizedHttp(self.credentials, http=httplib2.Http())
            self._local.http = http
        return http

    def _execute(self, request, target: Optional[str] = None) -> CallResult:
        try:
            return CallResult.success(request.execute(http=self._http()), target=target)
        except HttpError as e:
            if e.resp.status == 404:
                return CallResult.not_found(target or "unknown", _error_detail(e))
            logging.error(f"Google Drive request failed for '{target}': {e}")
            return CallResult.transport_error(
                _error_detail(e), target=target, http_status=e.resp.status
            )
        except NETWORK_ERRORS as e:
            logging.error(f"Could not reach Google Drive for '{target}': {e}")
            return CallResult.transport_error(str(e), target=target)

    def list_files(
        self,
        query: str,
        page_token: Optional[str] = None,
        page_size: int = MAX_PAGE_SIZE,
        order_by: Optional[str] = None,
    ) -> CallResult[FilePage]:
        params = {
            "q": query,
            "fields": LIST_FIELDS,
            "pageSize": page_size,
            "supportsAllDrives": True,
            "includeItemsFromAllDrives": True,
        }
        if page_token:
            params["pageToken"] = page_token
        if order_by:
            params["orderBy"] = order_by

        result = self._execute(self.service.files().list(**params), target=query)
        if not result.ok:
            return result
        response = result.value or {}
        return CallResult.success(
            FilePage(
                items=[_to_remote_file(item) for item in response.get("files") or []],
                next_page_token=response.get("nextPageToken"),
            ),
            target=query,
        )

    def get_metadata(self, file_id: str) -> CallResult[FileMetadata]:
        request = self.service.files().get(
            fileId=file_id, fields=METADATA_FIELDS, supportsAllDrives=True
        )
        result = self._execute(request, target=file_id)
        if not result.ok:
            return result
        data = result.value or {}
        return CallResult.success(
            FileMetadata(
                id=data.get("id", file_id),
                name=data.get("name", ""),
                mime_type=data.get("mimeType", ""),
                trashed=bool(data.get("trashed", False)),
                parents=data.get("parents") or [],
            ),
            target=file_id,
        )

    def update_trashed_flag(self, file_id: str, trashed: bool) -> CallResult[None]:
        logging.info(f"Setting trashed={trashed} on Google Drive item '{file_id}'...")
        request = self.service.files().update(
            fileId=file_id,
            body={"trashed": trashed},
            fields="id, trashed",
            supportsAllDrives=True,
        )
        result = self._execute(request, target=file_id)
        return CallResult.success(target=file_id) if result.ok else result

    def delete_permanently(self, file_id: str) -> CallResult[None]:
        logging.info(f"Permanently deleting Google Drive item '{file_id}'...")
        request = self.service.files().delete(fileId=file_id, supportsAllDrives=True)
        result = self._execute(request, target=file_id)
        return CallResult.success(target=file_id) if result.ok else result

    def get_account_quota(self) -> CallResult[AccountQuota]:
        result = self._execute(
            self.service.about().get(fields="storageQuota,user"), target="about"
        )
        if not result.ok:
            return result
        data = result.value or {}
        quota = data.get("storageQuota") or {}
        user = data.get("user") or {}
        return CallResult.success(
            AccountQuota(
                limit=quota.get("limit"),
                used=quota.get("usage"),
                used_in_provider=quota.get("usageInDrive"),
                used_in_trash=quota.get("usageInDriveTrash"),
                owner_name=user.get("displayName"),
                owner_email=user.get("emailAddress"),
            ),
            target="about",
        )

    def download(self, file_id: str) -> CallResult[Iterator[bytes]]:
        """
        Downloads a file in chunks. The first chunk is fetched eagerly so that
        a missing file or a denied request is reported before streaming starts.
        """
        request = self.service.files().get_media(fileId=file_id, supportsAllDrives=True)
        request.http = self._http()
        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, request, chunksize=DOWNLOAD_CHUNK_SIZE)

        def next_chunk():
            _, done = downloader.next_chunk()
            data = buffer.getvalue()
            buffer.seek(0)
            buffer.truncate(0)
            return data, done

        try:
            first, done = next_chunk()
        except HttpError as e:
            if e.resp.status == 404:
                return CallResult.not_found(file_id, _error_detail(e))
            logging.error(f"Failed to download file with ID '{file_id}': {e}")
            return CallResult.transport_error(
                _error_detail(e), target=file_id, http_status=e.resp.status
            )
        except NETWORK_ERRORS as e:
            logging.error(f"Could not reach Google Drive to download '{file_id}': {e}")
            return CallResult.transport_error(str(e), target=file_id)

        def chunks():
            yield first
            finished = done
            while not finished:
                data, finished = next_chunk()
                yield data

        return CallResult.success(chunks(), target=file_id)
