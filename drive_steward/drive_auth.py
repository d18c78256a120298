# drive_auth.py
import json
import logging
import os
from typing import List, Optional

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from .config import DEFAULT_SCOPES


def drive_authenticate(
    client_secrets_path: str,
    token_path: str = "gdrive_token.json",
    scopes: Optional[List[str]] = None,
) -> Credentials:
    """
    Handles the OAuth 2.0 flow for the Google Drive API.

    Reuses the token at `token_path` when it is still valid, refreshes it
    when it has expired, and otherwise runs the browser flow with the OAuth
    client secrets document. The resulting token is written back to
    `token_path`; its content is what GDRIVE_TOKEN_JSON expects.
    """
    scopes = scopes or DEFAULT_SCOPES
    creds = None

    # Check if a token file already exists
    if os.path.exists(token_path):
        with open(token_path, "r") as token_file:
            creds = Credentials.from_authorized_user_info(json.load(token_file), scopes)

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            logging.info("Refreshing expired Google Drive token...")
            creds.refresh(Request())
        else:
            if not os.path.exists(client_secrets_path):
                raise FileNotFoundError(
                    f"OAuth client secrets file not found at '{client_secrets_path}'."
                )
            with open(client_secrets_path, "r") as secrets_file:
                client_config = json.load(secrets_file)
            flow = InstalledAppFlow.from_client_config(client_config, scopes)
            creds = flow.run_local_server(port=0)

        # Save the credentials for the next run
        with open(token_path, "w") as token_file:
            token_file.write(creds.to_json())
        logging.info(f"Token saved to {token_path}")

    return creds
