"""Google Sheets API source."""

import json
import logging
import os
from typing import Any, Dict, List, Optional

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google.oauth2.service_account import Credentials as ServiceAccountCredentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from adapters.source.base import BaseSourceAdapter, rows_from_values
from core.errors import SourceError

logger = logging.getLogger(__name__)

SCOPES = ['https://www.googleapis.com/auth/spreadsheets.readonly']


class GoogleSheetsSource(BaseSourceAdapter):
    """Reads the project sheet through the Sheets v4 API."""

    def __init__(
        self,
        spreadsheet_id: Optional[str] = None,
        sheet_name: str = 'Projects',
        service_account_json: Optional[str] = None,
        service_account_file: str = 'service-account.json',
        oauth_client_file: str = 'credentials.json',
        oauth_token_file: str = 'token.json',
        service=None
    ):
        """
        Initialize the Google Sheets source.

        Args:
            spreadsheet_id: ID of the spreadsheet to read
            sheet_name: Tab holding the project rows
            service_account_json: Service account key as a JSON string
            service_account_file: Path to a service account key file
            oauth_client_file: OAuth client secrets for local development
            oauth_token_file: Where the OAuth token is cached
            service: Prebuilt Sheets API service (skips authentication)
        """
        self.spreadsheet_id = spreadsheet_id or os.getenv('SPREADSHEET_ID')
        self.sheet_name = sheet_name
        self._service_account_json = service_account_json
        self._service_account_file = service_account_file
        self._oauth_client_file = oauth_client_file
        self._oauth_token_file = oauth_token_file
        self.service = service

        if self.service is None:
            self._authenticate()

    @property
    def name(self) -> str:
        return "google_sheets"

    def _authenticate(self) -> bool:
        """Authenticate with Google Sheets API."""
        # Try Service Account first (for server environments)
        if self._authenticate_service_account():
            return True

        # Fall back to OAuth (for local development)
        return self._authenticate_oauth()

    def _authenticate_service_account(self) -> bool:
        """Authenticate using Service Account."""
        try:
            if self._service_account_json:
                logger.info("Using service account from environment variable")
                creds = ServiceAccountCredentials.from_service_account_info(
                    json.loads(self._service_account_json), scopes=SCOPES
                )
            elif os.path.exists(self._service_account_file):
                logger.info("Using service account from %s", self._service_account_file)
                creds = ServiceAccountCredentials.from_service_account_file(
                    self._service_account_file, scopes=SCOPES
                )
            else:
                return False

            self.service = build('sheets', 'v4', credentials=creds, cache_discovery=False)
            return True

        except (ValueError, OSError, GoogleAuthError) as e:
            logger.error("Service account authentication failed: %s", e)
            return False

    def _authenticate_oauth(self) -> bool:
        """Authenticate using OAuth (for local development)."""
        try:
            creds = None

            if os.path.exists(self._oauth_token_file):
                creds = Credentials.from_authorized_user_file(self._oauth_token_file, SCOPES)

            if not creds or not creds.valid:
                if creds and creds.expired and creds.refresh_token:
                    creds.refresh(Request())
                else:
                    if not os.path.exists(self._oauth_client_file):
                        logger.warning("No Google credentials found; Sheets source unavailable")
                        return False

                    logger.info("Using OAuth authentication")
                    flow = InstalledAppFlow.from_client_secrets_file(self._oauth_client_file, SCOPES)
                    creds = flow.run_local_server(port=0)

                with open(self._oauth_token_file, 'w') as token:
                    token.write(creds.to_json())

            self.service = build('sheets', 'v4', credentials=creds, cache_discovery=False)
            return True

        except (ValueError, OSError, GoogleAuthError) as e:
            logger.error("OAuth authentication failed: %s", e)
            return False

    def is_available(self) -> bool:
        """Check if the source is properly configured."""
        return self.service is not None and self.spreadsheet_id is not None

    def read_rows(self) -> List[Dict[str, Any]]:
        if not self.is_available():
            raise SourceError("Google Sheets source is not configured")

        try:
            result = self.service.spreadsheets().values().get(
                spreadsheetId=self.spreadsheet_id,
                range=self.sheet_name,
                valueRenderOption='UNFORMATTED_VALUE',
                dateTimeRenderOption='FORMATTED_STRING',
            ).execute()
        except HttpError as e:
            raise SourceError(f"Could not read sheet {self.sheet_name!r}: {e}")
        except OSError as e:
            raise SourceError(f"Could not reach Google Sheets: {e}")

        rows = rows_from_values(result.get('values', []))
        logger.info("Read %d rows from sheet %s", len(rows), self.sheet_name)
        return rows
