# cronometer_export/auth.py
"""
Google Sheets token lifecycle.

Token acquisition runs once per run, before any spreadsheet call:

    no token file              -> interactive auth -> save -> ready
    token found, not expired   -> ready
    token found, expired       -> refresh -> save -> ready
                                  refresh failed -> interactive auth -> save -> ready
"""
from __future__ import annotations

import datetime as dt
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, Protocol
from urllib.parse import parse_qs, urlparse

import structlog
import typer
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google_auth_oauthlib.flow import Flow

from .errors import AuthorizationError, ConfigError
from .models import SessionToken

logger = structlog.get_logger()

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
DEFAULT_REDIRECT_URI = "http://localhost"
TOKEN_EXPIRY_LEEWAY = dt.timedelta(seconds=60)

CodePrompt = Callable[[str], str]


class TokenStore(Protocol):
    def load(self) -> Optional[SessionToken]: ...

    def save(self, token: SessionToken) -> None: ...


class FileTokenStore:
    """Token persisted as Google "authorized user" JSON, readable by the owner only."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[SessionToken]:
        if not self.path.exists():
            return None
        try:
            return SessionToken.from_json(self.path.read_text(encoding="utf-8"))
        except (ValueError, TypeError) as e:
            raise AuthorizationError(
                f"Token file {self.path} is unreadable ({e}). Delete it and re-run to authorize again."
            ) from e

    def save(self, token: SessionToken) -> None:
        try:
            self._write(token)
        except OSError as e:
            raise AuthorizationError(f"Unable to save token to {self.path}: {e}") from e
        logger.info("token_saved", path=str(self.path))

    def _write(self, token: SessionToken) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # mkstemp creates the file 0600; the rename makes the swap atomic for readers
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".token-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(token.to_json())
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise


def is_expired(token: SessionToken, now: dt.datetime, leeway: dt.timedelta = dt.timedelta(0)) -> bool:
    if token.expiry is None:
        return False
    return now >= token.expiry - leeway


# --------------------------- Interactive authorization ---------------------------

def load_client_config(path: Path) -> dict[str, Any]:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as f:
            config = json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Unable to read client secret file {path}: not found") from e
    except (OSError, ValueError) as e:
        raise ConfigError(f"Unable to parse client secret file {path}: {e}") from e
    if not isinstance(config, dict) or not ("installed" in config or "web" in config):
        raise ConfigError(f"Client secret file {path} has no 'installed' or 'web' section")
    return config


def console_prompt(url: str) -> str:
    typer.echo("Go to the following link in your browser then type the authorization code:")
    typer.echo(url)
    return typer.prompt("Authorization code")


def _extract_code(answer: str) -> str:
    # Accept either the bare code or the whole redirect URL pasted from the browser
    answer = answer.strip()
    if answer.startswith(("http://", "https://")):
        values = parse_qs(urlparse(answer).query).get("code")
        return values[0] if values else ""
    return answer


def obtain_interactive(
    client_config: dict[str, Any],
    prompt: CodePrompt = console_prompt,
    store: Optional[TokenStore] = None,
    scopes: Optional[list[str]] = None,
) -> SessionToken:
    """Authorization-code exchange driven by ``prompt``. Saves to ``store`` when given."""
    section = client_config.get("installed") or client_config.get("web") or {}
    redirect_uri = (section.get("redirect_uris") or [DEFAULT_REDIRECT_URI])[0]
    flow = Flow.from_client_config(client_config, scopes=scopes or SCOPES, redirect_uri=redirect_uri)
    url, _state = flow.authorization_url(access_type="offline", prompt="consent")

    code = _extract_code(prompt(url))
    if not code:
        raise AuthorizationError("Unable to read authorization code")
    try:
        flow.fetch_token(code=code)
    except Exception as e:
        raise AuthorizationError(f"Unable to retrieve token from web: {e}") from e

    token = SessionToken.from_credentials(flow.credentials)
    logger.info("token_obtained", has_refresh=bool(token.refresh_token))
    if store is not None:
        store.save(token)
    return token


def refresh_token(token: SessionToken) -> SessionToken:
    creds = token.to_credentials()
    if not creds.refresh_token:
        raise AuthorizationError("Stored token has no refresh token")
    try:
        creds.refresh(Request())
    except GoogleAuthError as e:
        raise AuthorizationError(f"Token refresh failed: {e}") from e
    return SessionToken.from_credentials(creds)


def acquire_token(
    store: TokenStore,
    authorize: Callable[[], SessionToken],
    refresh: Callable[[SessionToken], SessionToken] = refresh_token,
    now: Optional[dt.datetime] = None,
) -> SessionToken:
    """Return a usable token, refreshing or re-authorizing and saving as needed."""
    token = store.load()
    if token is None:
        logger.info("token_missing")
        token = authorize()
        store.save(token)
        return token

    now = now or dt.datetime.now(dt.timezone.utc)
    if not is_expired(token, now, TOKEN_EXPIRY_LEEWAY):
        return token

    logger.info("token_expired", expiry=token.expiry.isoformat() if token.expiry else None)
    if token.refresh_token:
        try:
            fresh = refresh(token)
        except AuthorizationError as e:
            logger.warning("token_refresh_failed", error=str(e))
        else:
            store.save(fresh)
            return fresh

    token = authorize()
    store.save(token)
    return token
