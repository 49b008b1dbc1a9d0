from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from cronometer_export.config import Settings
from cronometer_export.errors import CronometerError
from cronometer_export.models import DateWindow, SessionToken

SERVINGS_CSV = (
    "Day,Time,Group,Food Name,Amount,Energy (kcal),Protein (g)\r\n"
    "2025-10-30,08:15,Breakfast,Oatmeal,1.00 cup,307.20,10.7\r\n"
    "2025-10-30,08:20,Breakfast,Coffee,250.00 ml,2.50,0.3\r\n"
    "2025-10-30,13:05,Lunch,Chicken Breast,150.00 g,247.50,46.5\r\n"
)
BIOMETRICS_CSV = (
    "Day,Time,Group,Metric,Unit,Amount\r\n"
    "2025-10-30,07:00,,Weight,kg,72.4\r\n"
)
NOTES_CSV = "Day,Group,Note\r\n"


def make_settings(tmp_path: Path, **overrides: Any) -> Settings:
    values: Dict[str, Any] = {
        "CRONOMETER_EMAIL": "me@example.com",
        "CRONOMETER_PASSWORD": "hunter22",
        "CRONOMETER_REPORTS_DIR": tmp_path / "reports",
        "SPREADSHEET_ID": None,
        "GOOGLE_SHEET_NAME": None,
        "GOOGLE_CLIENT_SECRETS_FILE": tmp_path / "credentials.json",
        "GOOGLE_TOKEN_FILE": tmp_path / "token.json",
        "EXPORT_TZ": "UTC",
        "WRITE_SUMMARY": False,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class MemoryTokenStore:
    def __init__(self, token: Optional[SessionToken] = None):
        self.token = token
        self.saved: List[SessionToken] = []

    def load(self) -> Optional[SessionToken]:
        return self.token

    def save(self, token: SessionToken) -> None:
        self.token = token
        self.saved.append(token)


class FakeCronometer:
    """Stands in for CronometerClient; ``calls`` counts every network operation."""

    def __init__(self, reports: Optional[Dict[str, str]] = None, fail_on: Optional[str] = None):
        self.reports = reports if reports is not None else {
            "servings": SERVINGS_CSV,
            "biometrics": BIOMETRICS_CSV,
            "notes": NOTES_CSV,
        }
        self.fail_on = fail_on
        self.calls: List[tuple] = []
        self.closed = False

    def login(self, email: str, password: str) -> None:
        self.calls.append(("login", email))

    def logout(self) -> None:
        self.calls.append(("logout",))

    def close(self) -> None:
        self.closed = True

    def fetch_report(self, kind: str, window: DateWindow) -> str:
        self.calls.append(("fetch", kind, window))
        if kind == self.fail_on:
            raise CronometerError(f"export {kind}: boom")
        return self.reports[kind]


class FakeUploader:
    def __init__(self, token: SessionToken):
        self.token = token
        self.appends: List[tuple] = []

    def append(self, sheet_name: str, rows: List[List[Any]], header: Optional[List[str]] = None) -> int:
        self.appends.append((sheet_name, rows))
        return len(rows)


def token_expiring_at(expiry: Optional[dt.datetime], refresh: Optional[str] = "refresh-1", access: str = "access-1") -> SessionToken:
    return SessionToken(
        access_token=access,
        refresh_token=refresh,
        expiry=expiry,
        client_id="client-id",
        client_secret="client-secret",
        scopes=["https://www.googleapis.com/auth/spreadsheets"],
    )


@pytest.fixture
def now() -> dt.datetime:
    return dt.datetime(2025, 10, 31, 6, 0, tzinfo=dt.timezone.utc)
