# cronometer_export/runner.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional

import structlog

from . import REPORT_KINDS, UPLOAD_KINDS
from .auth import (
    CodePrompt,
    FileTokenStore,
    TokenStore,
    acquire_token,
    console_prompt,
    load_client_config,
    obtain_interactive,
    refresh_token,
)
from .config import Settings
from .cronometer import CronometerClient
from .errors import ExportError
from .models import DateWindow, SessionToken
from .reports import data_rows, parse_servings, read_rows, render_servings_summary, write_report
from .sheets import SheetsUploader
from .utils import day_window, get_tz, yesterday

logger = structlog.get_logger()


@dataclass
class RunResult:
    window: DateWindow
    files: Dict[str, Path] = field(default_factory=dict)
    summary_path: Optional[Path] = None
    uploaded: Dict[str, int] = field(default_factory=dict)  # sheet name -> rows appended


class ExportRunner:
    """
    One export run: login, fetch and save the three reports, then optionally
    append servings and biometrics to Google Sheets.

    Every failure raises an ``ExportError`` and aborts the remaining steps.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client_factory: Optional[Callable[[Settings], CronometerClient]] = None,
        token_store: Optional[TokenStore] = None,
        authorize: Optional[Callable[[], SessionToken]] = None,
        refresh: Callable[[SessionToken], SessionToken] = refresh_token,
        sheets_factory: Optional[Callable[[SessionToken], SheetsUploader]] = None,
        prompt: CodePrompt = console_prompt,
        today: Optional[dt.date] = None,
    ):
        self.settings = settings
        self.client_factory = client_factory or CronometerClient.from_settings
        self.token_store = token_store or FileTokenStore(settings.GOOGLE_TOKEN_FILE)
        self.authorize = authorize or self._authorize_interactive
        self.refresh = refresh
        self.sheets_factory = sheets_factory or self._connect_sheets
        self.prompt = prompt
        self.today = today

    # ---------- defaults ----------

    def _authorize_interactive(self) -> SessionToken:
        config = load_client_config(self.settings.GOOGLE_CLIENT_SECRETS_FILE)
        return obtain_interactive(config, prompt=self.prompt)

    def _connect_sheets(self, token: SessionToken) -> SheetsUploader:
        return SheetsUploader.connect(
            token,
            self.settings.SPREADSHEET_ID or "",
            token_path=self.settings.GOOGLE_TOKEN_FILE,
            create_missing_tabs=self.settings.SHEETS_CREATE_MISSING_TABS,
        )

    # ---------- run ----------

    def run(self, day: Optional[dt.date] = None) -> RunResult:
        email, password = self.settings.require_account()
        window = day_window(day or yesterday(self.today, get_tz(self.settings.EXPORT_TZ)))
        result = RunResult(window=window)
        logger.info("export_start", day=window.day.isoformat(), reports_dir=str(self.settings.reports_dir))

        client = self.client_factory(self.settings)
        try:
            client.login(email, password)
            self._export_local(client, result)
        finally:
            client.logout()
            client.close()

        if not self.settings.upload_enabled:
            logger.info("sheets_upload_skipped", reason="SPREADSHEET_ID or GOOGLE_SHEET_NAME not set")
            return result

        self._upload(result)
        logger.info("export_complete", day=window.day.isoformat(), uploaded=result.uploaded)
        return result

    def _export_local(self, client: CronometerClient, result: RunResult) -> None:
        directory = self.settings.reports_dir
        day = result.window.day
        for kind in REPORT_KINDS:
            content = client.fetch_report(kind, result.window)
            try:
                result.files[kind] = write_report(directory, kind, day, content)
                if kind == "servings" and self.settings.WRITE_SUMMARY:
                    summary = render_servings_summary(parse_servings(content), day)
                    result.summary_path = write_report(directory, kind, day, summary, ext="txt")
            except OSError as e:
                raise ExportError(f"failed to write {kind} report to {directory}: {e}") from e

    def _upload(self, result: RunResult) -> None:
        uploader: Optional[SheetsUploader] = None
        for kind in UPLOAD_KINDS:
            sheet = self.settings.sheet_for(kind)
            path = result.files[kind]
            try:
                rows = read_rows(path)
            except OSError as e:
                raise ExportError(f"failed to open {kind} CSV for reading: {e}") from e

            batch = data_rows(rows)
            if not batch:
                logger.info("no_data_rows", kind=kind, path=str(path))
                continue

            if uploader is None:
                token = acquire_token(self.token_store, self.authorize, self.refresh)
                uploader = self.sheets_factory(token)
            appended = uploader.append(sheet, batch, header=rows[0])
            result.uploaded[sheet] = result.uploaded.get(sheet, 0) + appended
