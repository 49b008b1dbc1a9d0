# cronometer_export/cli.py
from __future__ import annotations

import datetime as dt
from typing import Optional

import structlog
import typer

from .auth import FileTokenStore, acquire_token, load_client_config, obtain_interactive
from .config import Settings, get_settings
from .errors import ConfigError, ExportError
from .runner import ExportRunner
from .utils import configure_logging, get_tz, parse_day, redact, yesterday

app = typer.Typer(no_args_is_help=True, help="Export a day of Cronometer data to CSV and Google Sheets")
log = structlog.get_logger()


# ---------- helpers ----------

def _resolve_day(date: Optional[str], tz: Optional[dt.tzinfo] = None) -> dt.date:
    if date is None:
        day = yesterday(tz=tz)
        typer.echo(f"No date provided, using yesterday: {day.isoformat()}")
        return day
    try:
        return parse_day(date)
    except ConfigError as e:
        raise typer.BadParameter(str(e), param_hint="DATE") from e


def _load_settings() -> Settings:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    return settings


def _fail(e: ExportError) -> typer.Exit:
    log.error("run_failed", error=str(e), kind=type(e).__name__)
    typer.echo(f"[ERR] {e}", err=True)
    return typer.Exit(code=1)


# ---------- commands ----------

@app.command()
def export(
    date: Optional[str] = typer.Argument(None, help="Day to export, YYYY-MM-DD (default: yesterday)"),
) -> None:
    """Export servings, biometrics and notes for one day; append to Google Sheets if configured."""
    day = _resolve_day(date) if date is not None else None
    try:
        settings = _load_settings()
        if day is None:
            day = _resolve_day(None, get_tz(settings.EXPORT_TZ))
        typer.echo(f"Exporting local reports for: {day.isoformat()}")
        typer.echo(f"Saving files to: {settings.reports_dir}")
        result = ExportRunner(settings).run(day)
    except ExportError as e:
        raise _fail(e)

    for kind, path in result.files.items():
        typer.echo(f"✓ {kind.capitalize()} report saved to {path}")
    if result.summary_path:
        typer.echo(f"✓ Servings summary saved to {result.summary_path}")
    if not settings.upload_enabled:
        typer.echo("SPREADSHEET_ID or GOOGLE_SHEET_NAME not set. Skipping Google Sheets upload.")
    for sheet, count in result.uploaded.items():
        typer.echo(f"✓ Appended {count} rows to sheet '{sheet}'.")
    typer.echo("=== All tasks complete! ===")


@app.command()
def authorize() -> None:
    """Obtain (or refresh) the Google Sheets token without exporting anything."""
    try:
        settings = _load_settings()
        store = FileTokenStore(settings.GOOGLE_TOKEN_FILE)
        config = load_client_config(settings.GOOGLE_CLIENT_SECRETS_FILE)
        token = acquire_token(store, lambda: obtain_interactive(config))
    except ExportError as e:
        raise _fail(e)
    expiry = token.expiry.isoformat() if token.expiry else "unknown"
    typer.echo(f"OK: token stored in {settings.GOOGLE_TOKEN_FILE} (expires {expiry}).")


@app.command()
def diag() -> None:
    """Quick diagnostics of the resolved configuration (secrets redacted)."""
    try:
        settings = get_settings()
    except ConfigError as e:
        raise _fail(e)
    secrets = settings.GOOGLE_CLIENT_SECRETS_FILE
    token = settings.GOOGLE_TOKEN_FILE

    typer.echo(f"CRONOMETER_EMAIL: {redact(settings.CRONOMETER_EMAIL)}")
    typer.echo(f"CRONOMETER_PASSWORD set: {bool(settings.CRONOMETER_PASSWORD)}")
    typer.echo(f"Reports dir: {settings.reports_dir}")
    typer.echo(f"SPREADSHEET_ID: {settings.SPREADSHEET_ID}")
    typer.echo(f"GOOGLE_SHEET_NAME: {settings.GOOGLE_SHEET_NAME}")
    typer.echo(f"BIOMETRICS_SHEET_NAME: {settings.BIOMETRICS_SHEET_NAME}")
    typer.echo(f"Upload enabled: {settings.upload_enabled}")
    typer.echo(f"GOOGLE_CLIENT_SECRETS_FILE: {secrets}  (exists={secrets.exists()})")
    typer.echo(f"GOOGLE_TOKEN_FILE: {token}  (exists={token.exists()})")
    typer.echo(f"EXPORT_TZ: {settings.EXPORT_TZ}")


if __name__ == "__main__":
    app()
