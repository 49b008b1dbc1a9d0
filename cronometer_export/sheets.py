# cronometer_export/sheets.py
from __future__ import annotations

from pathlib import Path
from typing import Any, List, Optional

import httplib2
import structlog
from google.auth.exceptions import RefreshError
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .errors import SheetsAppendError, SheetsAuthError
from .models import SessionToken

logger = structlog.get_logger()

# Lower-cased fragments Google uses when a token is invalid, expired or revoked
AUTH_ERROR_MARKERS = (
    "invalid_grant",
    "invalid_token",
    "invalid credentials",
    "invalid authentication credentials",
    "unauthenticated",
    "token has been expired",
    "expired or revoked",
    "revoked",
)

# A 403 only counts as an auth failure when Google blames the token itself
AUTH_403_MARKERS = (
    "insufficient authentication scopes",
    "access_token_scope_insufficient",
)


def build_service(token: SessionToken, http: Optional[httplib2.Http] = None):
    # a rejected request is never refreshed and re-sent
    authed = AuthorizedHttp(token.to_credentials(), http=http or httplib2.Http(), refresh_status_codes=())
    svc = build("sheets", "v4", http=authed, cache_discovery=False, static_discovery=True)
    return svc.spreadsheets(), svc.spreadsheets().values()


def _a1(sheet_name: str) -> str:
    return "'" + sheet_name.replace("'", "''") + "'"


def is_auth_error(exc: BaseException) -> bool:
    if isinstance(exc, RefreshError):
        return True
    text = str(exc).lower()
    if isinstance(exc, HttpError):
        status = getattr(exc.resp, "status", None)
        if status == 401:
            return True
        if status == 403 and any(marker in text for marker in AUTH_403_MARKERS):
            return True
    return any(marker in text for marker in AUTH_ERROR_MARKERS)


def _raise_classified(exc: Exception, sheet_name: str, token_path: Optional[Path]) -> None:
    if is_auth_error(exc):
        where = str(token_path) if token_path else "the stored token file"
        raise SheetsAuthError(
            f"Unable to append data to sheet '{sheet_name}': the Google token is invalid, "
            f"expired or revoked ({exc}). Delete {where} and re-run to authorize again."
        ) from exc
    raise SheetsAppendError(f"Unable to append data to sheet '{sheet_name}': {exc}") from exc


def ensure_tab(spreadsheets, values, spreadsheet_id: str, sheet_name: str, header: List[str]) -> bool:
    """Create ``sheet_name`` with ``header`` as its first row if it does not exist yet."""
    meta = spreadsheets.get(spreadsheetId=spreadsheet_id).execute()
    titles = {s["properties"]["title"] for s in meta.get("sheets", [])}
    if sheet_name in titles:
        return False
    spreadsheets.batchUpdate(
        spreadsheetId=spreadsheet_id,
        body={"requests": [{"addSheet": {"properties": {"title": sheet_name}}}]},
    ).execute()
    if header:
        values.update(
            spreadsheetId=spreadsheet_id,
            range=f"{_a1(sheet_name)}!A1",
            valueInputOption="RAW",
            body={"values": [header]},
        ).execute()
    logger.info("sheet_tab_created", sheet=sheet_name)
    return True


def append_rows(
    values,
    spreadsheet_id: str,
    sheet_name: str,
    rows: List[List[Any]],
    token_path: Optional[Path] = None,
) -> int:
    """
    Append ``rows`` to ``sheet_name`` in one call and return how many were sent.

    No deduplication: appending the same rows twice yields them twice.
    """
    if not rows:
        return 0
    try:
        values.append(
            spreadsheetId=spreadsheet_id,
            range=_a1(sheet_name),
            valueInputOption="USER_ENTERED",
            insertDataOption="INSERT_ROWS",
            body={"values": rows},
        ).execute()
    except Exception as e:
        _raise_classified(e, sheet_name, token_path)
    logger.info("sheet_rows_appended", sheet=sheet_name, rows=len(rows))
    return len(rows)


class SheetsUploader:
    """Binds one spreadsheet and its service objects for the duration of a run."""

    def __init__(
        self,
        spreadsheets,
        values,
        spreadsheet_id: str,
        token_path: Optional[Path] = None,
        create_missing_tabs: bool = False,
    ):
        self.spreadsheets = spreadsheets
        self.values = values
        self.spreadsheet_id = spreadsheet_id
        self.token_path = token_path
        self.create_missing_tabs = create_missing_tabs

    @classmethod
    def connect(
        cls,
        token: SessionToken,
        spreadsheet_id: str,
        http: Optional[httplib2.Http] = None,
        **kwargs,
    ) -> "SheetsUploader":
        spreadsheets, values = build_service(token, http=http)
        return cls(spreadsheets, values, spreadsheet_id, **kwargs)

    def append(self, sheet_name: str, rows: List[List[Any]], header: Optional[List[str]] = None) -> int:
        if not rows:
            return 0
        if self.create_missing_tabs:
            try:
                ensure_tab(self.spreadsheets, self.values, self.spreadsheet_id, sheet_name, header or [])
            except Exception as e:
                _raise_classified(e, sheet_name, self.token_path)
        return append_rows(self.values, self.spreadsheet_id, sheet_name, rows, self.token_path)
