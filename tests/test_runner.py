import datetime as dt

import pytest

from cronometer_export.errors import AuthorizationError, ConfigError, CronometerError, ExportError
from cronometer_export.runner import ExportRunner

from conftest import (
    BIOMETRICS_CSV,
    NOTES_CSV,
    SERVINGS_CSV,
    FakeCronometer,
    FakeUploader,
    MemoryTokenStore,
    make_settings,
    token_expiring_at,
)

DAY = dt.date(2025, 10, 30)
UPLOAD = {"SPREADSHEET_ID": "sheet-id", "GOOGLE_SHEET_NAME": "servingsReport"}


class _Harness:
    def __init__(self, tmp_path, token=None, reports=None, fail_on=None, **settings):
        self.settings = make_settings(tmp_path, **settings)
        self.cronometer = FakeCronometer(reports, fail_on=fail_on)
        self.store = MemoryTokenStore(token)
        self.uploaders = []
        self.events = []

    def authorize(self):
        self.events.append("authorize")
        return token_expiring_at(None, access="interactive")

    def refresh(self, token):
        self.events.append("refresh")
        return token_expiring_at(dt.datetime(2030, 1, 1, tzinfo=dt.timezone.utc), access="refreshed")

    def sheets(self, token):
        self.events.append(("connect", token.access_token))
        uploader = FakeUploader(token)
        self.uploaders.append(uploader)
        return uploader

    def runner(self, today=None):
        return ExportRunner(
            self.settings,
            client_factory=lambda s: self.cronometer,
            token_store=self.store,
            authorize=self.authorize,
            refresh=self.refresh,
            sheets_factory=self.sheets,
            today=today,
        )

    @property
    def appends(self):
        return [a for u in self.uploaders for a in u.appends]


def test_local_only_scenario(tmp_path):
    h = _Harness(tmp_path)
    result = h.runner().run(DAY)

    reports = tmp_path / "reports"
    assert sorted(p.name for p in reports.iterdir()) == [
        "biometrics_2025-10-30.csv",
        "notes_2025-10-30.csv",
        "servings_2025-10-30.csv",
    ]
    assert (reports / "servings_2025-10-30.csv").read_bytes() == SERVINGS_CSV.encode("utf-8")
    assert (reports / "biometrics_2025-10-30.csv").read_bytes() == BIOMETRICS_CSV.encode("utf-8")
    assert (reports / "notes_2025-10-30.csv").read_bytes() == NOTES_CSV.encode("utf-8")

    assert result.window.start == dt.datetime(2025, 10, 30, tzinfo=dt.timezone.utc)
    assert result.window.end == dt.datetime(2025, 10, 31, tzinfo=dt.timezone.utc)
    assert [c[1] for c in h.cronometer.calls if c[0] == "fetch"] == ["servings", "biometrics", "notes"]
    assert h.cronometer.calls[0] == ("login", "me@example.com")
    assert h.cronometer.calls[-1] == ("logout",)
    assert h.cronometer.closed

    assert result.uploaded == {}
    assert h.events == []
    assert h.store.saved == []


def test_defaults_to_yesterday(tmp_path):
    h = _Harness(tmp_path)
    result = h.runner(today=dt.date(2025, 10, 31)).run()
    assert result.window.day == DAY
    assert result.files["notes"].name == "notes_2025-10-30.csv"


def test_rerun_is_idempotent_on_disk(tmp_path):
    h = _Harness(tmp_path)
    first = {k: p.read_bytes() for k, p in h.runner().run(DAY).files.items()}
    second = {k: p.read_bytes() for k, p in h.runner().run(DAY).files.items()}
    assert first == second
    assert len(list((tmp_path / "reports").iterdir())) == 3


def test_missing_credentials_fail_before_network(tmp_path):
    h = _Harness(tmp_path, CRONOMETER_PASSWORD=None, **UPLOAD)
    with pytest.raises(ConfigError, match="CRONOMETER_EMAIL and CRONOMETER_PASSWORD"):
        h.runner().run(DAY)
    assert h.cronometer.calls == []
    assert h.events == []
    assert not (tmp_path / "reports").exists()


def test_fetch_failure_aborts_run(tmp_path):
    h = _Harness(tmp_path, fail_on="biometrics", **UPLOAD)
    with pytest.raises(CronometerError):
        h.runner().run(DAY)
    assert [p.name for p in (tmp_path / "reports").iterdir()] == ["servings_2025-10-30.csv"]
    assert ("logout",) in h.cronometer.calls
    assert h.events == []


def test_upload_appends_servings_and_biometrics(tmp_path):
    h = _Harness(tmp_path, token=token_expiring_at(dt.datetime(2030, 1, 1, tzinfo=dt.timezone.utc)), **UPLOAD)
    result = h.runner().run(DAY)

    assert h.events == [("connect", "access-1")]
    sheets = [a[0] for a in h.appends]
    assert sheets == ["servingsReport", "biometricsReport"]
    servings_rows = h.appends[0][1]
    assert [r[3] for r in servings_rows] == ["Oatmeal", "Coffee", "Chicken Breast"]
    assert all(r[0] != "Day" for _, rows in h.appends for r in rows)
    assert result.uploaded == {"servingsReport": 3, "biometricsReport": 1}


def test_header_only_reports_make_no_remote_calls(tmp_path):
    reports = {
        "servings": "Day,Time,Group,Food Name,Amount,Energy (kcal)\r\n",
        "biometrics": "Day,Time,Group,Metric,Unit,Amount\r\n",
        "notes": NOTES_CSV,
    }
    h = _Harness(tmp_path, reports=reports, **UPLOAD)
    result = h.runner().run(DAY)
    assert h.events == []
    assert h.appends == []
    assert result.uploaded == {}


def test_header_only_servings_still_uploads_biometrics(tmp_path):
    reports = {"servings": "Day,Food Name\n", "biometrics": BIOMETRICS_CSV, "notes": NOTES_CSV}
    h = _Harness(tmp_path, reports=reports, token=token_expiring_at(None), **UPLOAD)
    result = h.runner().run(DAY)
    assert [a[0] for a in h.appends] == ["biometricsReport"]
    assert result.uploaded == {"biometricsReport": 1}


def test_expired_token_refreshed_before_append(tmp_path):
    expired = token_expiring_at(dt.datetime(2020, 1, 1, tzinfo=dt.timezone.utc))
    h = _Harness(tmp_path, token=expired, **UPLOAD)
    h.runner().run(DAY)

    assert h.events == ["refresh", ("connect", "refreshed")]
    assert h.store.saved[-1].access_token == "refreshed"
    assert all(u.token.access_token == "refreshed" for u in h.uploaders)


def test_no_token_goes_interactive(tmp_path):
    h = _Harness(tmp_path, **UPLOAD)
    h.runner().run(DAY)
    assert h.events == ["authorize", ("connect", "interactive")]
    assert h.store.saved[0].access_token == "interactive"


def test_authorization_failure_aborts(tmp_path):
    h = _Harness(tmp_path, **UPLOAD)

    def authorize():
        raise AuthorizationError("Unable to retrieve token from web: bad code")

    runner = h.runner()
    runner.authorize = authorize
    with pytest.raises(AuthorizationError):
        runner.run(DAY)
    assert h.appends == []


def test_custom_biometrics_sheet_and_summary(tmp_path):
    h = _Harness(tmp_path, BIOMETRICS_SHEET_NAME="Body", WRITE_SUMMARY=True, token=token_expiring_at(None), **UPLOAD)
    result = h.runner().run(DAY)
    assert [a[0] for a in h.appends] == ["servingsReport", "Body"]
    assert result.summary_path.name == "servings_2025-10-30.txt"
    assert "Total: 557.2 kcal" in result.summary_path.read_text(encoding="utf-8")


def test_unwritable_reports_dir(tmp_path):
    blocker = tmp_path / "reports"
    blocker.write_text("not a directory", encoding="utf-8")
    h = _Harness(tmp_path)
    with pytest.raises(ExportError, match="failed to write servings"):
        h.runner().run(DAY)


def test_empty_reports_are_saved_and_skipped(tmp_path):
    reports = {"servings": SERVINGS_CSV, "biometrics": "", "notes": ""}
    h = _Harness(tmp_path, reports=reports, token=token_expiring_at(None), **UPLOAD)
    result = h.runner().run(DAY)

    assert result.files["notes"].read_bytes() == b""
    assert result.files["biometrics"].read_bytes() == b""
    assert [a[0] for a in h.appends] == ["servingsReport"]
    assert result.uploaded == {"servingsReport": 3}
