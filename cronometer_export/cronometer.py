# cronometer_export/cronometer.py
from __future__ import annotations

import re
from typing import Optional

import httpx
import structlog

from . import REPORT_KINDS
from .config import Settings
from .errors import CronometerError, CronometerLoginError
from .models import DateWindow
from .utils import iso_date, redact

logger = structlog.get_logger()

BASE_URL = "https://cronometer.com"
GWT_SERVICE = "com.cronometer.shared.rpc.CronometerService"
GWT_CONTENT_TYPE = "text/x-gwt-rpc; charset=UTF-8"
USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) cronometer-export"

EXPORT_NAMES = {kind: kind for kind in REPORT_KINDS}

_ANTICSRF_RE = re.compile(r'name="anticsrf"\s+value="([^"]+)"')
_USER_ID_RE = re.compile(r"^//OK\[(\d+),")
_QUOTED_RE = re.compile(r'"([^"]+)"')


# --------------------------- GWT-RPC payloads ---------------------------

def _gwt_authenticate(module_base: str, header: str) -> str:
    return (
        f"7|0|5|{module_base}|{header}|{GWT_SERVICE}|authenticate|"
        "java.lang.Integer/3438268394|1|2|3|4|1|5|5|-300|"
    )


def _gwt_generate_token(module_base: str, header: str, nonce: str, user_id: str) -> str:
    return (
        f"7|0|8|{module_base}|{header}|{GWT_SERVICE}|generateAuthorizationToken|"
        "java.lang.String/2004016611|I|com.cronometer.shared.user.AuthScope/2065601159|"
        f"{nonce}|1|2|3|4|4|5|6|6|7|8|{user_id}|3600|7|2|"
    )


def _gwt_logout(module_base: str, header: str, nonce: str) -> str:
    return (
        f"7|0|6|{module_base}|{header}|{GWT_SERVICE}|logout|"
        f"java.lang.String/2004016611|{nonce}|1|2|3|4|1|5|6|"
    )


class CronometerClient:
    """
    Minimal Cronometer web client: form login, GWT-RPC session calls, CSV export.

    The session lives in the cookie jar of the underlying ``httpx.Client``;
    ``sesnonce`` is the session nonce every GWT call carries.
    """

    def __init__(
        self,
        *,
        base_url: str = BASE_URL,
        gwt_module_base: str = "https://cronometer.com/cronometer/",
        gwt_permutation: str = "7B121DC5483BF272B1BC1916DA9FA963",
        gwt_header: str = "2D6A926E3729946302DC68073CB0D550",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base = base_url.rstrip("/")
        self.gwt_module_base = gwt_module_base
        self.gwt_permutation = gwt_permutation
        self.gwt_header = gwt_header
        self._user_id: Optional[str] = None
        self._http = httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
            headers={"User-Agent": USER_AGENT},
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.BaseTransport] = None) -> "CronometerClient":
        return cls(
            gwt_module_base=settings.CRONOMETER_GWT_MODULE_BASE,
            gwt_permutation=settings.CRONOMETER_GWT_PERMUTATION,
            gwt_header=settings.CRONOMETER_GWT_HEADER,
            timeout=settings.CRONOMETER_TIMEOUT_SECONDS,
            transport=transport,
        )

    def __enter__(self) -> "CronometerClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._http.close()

    @property
    def logged_in(self) -> bool:
        return self._user_id is not None

    @property
    def _nonce(self) -> str:
        nonce = self._http.cookies.get("sesnonce")
        if not nonce:
            raise CronometerError("Cronometer session cookie 'sesnonce' missing; login first")
        return nonce

    # ---------- session ----------

    def login(self, email: str, password: str) -> None:
        try:
            page = self._http.get(f"{self.base}/login/")
            page.raise_for_status()
        except httpx.HTTPError as e:
            raise CronometerError(f"Cronometer login page unavailable: {e}") from e

        m = _ANTICSRF_RE.search(page.text)
        if not m:
            raise CronometerError("anticsrf token not found on Cronometer login page")

        try:
            resp = self._http.post(
                f"{self.base}/login",
                data={"anticsrf": m.group(1), "username": email, "password": password},
            )
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as e:
            raise CronometerLoginError(f"Cronometer login failed: {e}") from e
        except ValueError as e:
            raise CronometerLoginError(f"Cronometer login returned non-JSON response: {e}") from e

        if not isinstance(payload, dict):
            raise CronometerLoginError("Cronometer login returned an unexpected payload")
        if payload.get("error"):
            raise CronometerLoginError(f"Cronometer login failed: {payload['error']}")
        if not payload.get("success"):
            raise CronometerLoginError("Cronometer login failed: login was not accepted")

        body = self._gwt_call(_gwt_authenticate(self.gwt_module_base, self.gwt_header))
        m = _USER_ID_RE.match(body)
        if not m:
            raise CronometerLoginError(f"Cronometer authenticate returned unexpected payload: {body[:80]!r}")
        self._user_id = m.group(1)
        logger.info("cronometer_login_ok", user=redact(email), user_id=self._user_id)

    def logout(self) -> None:
        if not self.logged_in:
            return
        try:
            self._gwt_call(_gwt_logout(self.gwt_module_base, self.gwt_header, self._nonce))
        except CronometerError as e:
            logger.warning("cronometer_logout_failed", error=str(e))
        finally:
            self._user_id = None

    # ---------- export ----------

    def fetch_report(self, kind: str, window: DateWindow) -> str:
        """Return the raw CSV export of ``kind`` for ``window``. Not retried."""
        if kind not in EXPORT_NAMES:
            raise CronometerError(f"Unknown report kind: {kind}")
        if not self.logged_in:
            raise CronometerError("Not logged into Cronometer")

        token = self._generate_export_token()
        params = {
            "nonce": token,
            "generate": EXPORT_NAMES[kind],
            "start": iso_date(window.start),
            "end": iso_date(window.end),
        }
        try:
            resp = self._http.get(f"{self.base}/export", params=params)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise CronometerError(f"export {kind}: {e}") from e

        text = resp.text
        ctype = resp.headers.get("content-type", "")
        # an empty body is a day with nothing recorded
        if "text/html" in ctype or text.lstrip().startswith("<"):
            raise CronometerError(f"export {kind}: expected CSV, got HTML (session expired?)")
        logger.debug("cronometer_export_ok", kind=kind, bytes=len(text))
        return text

    def export_servings(self, window: DateWindow) -> str:
        return self.fetch_report("servings", window)

    def export_biometrics(self, window: DateWindow) -> str:
        return self.fetch_report("biometrics", window)

    def export_notes(self, window: DateWindow) -> str:
        return self.fetch_report("notes", window)

    # ---------- helpers ----------

    def _generate_export_token(self) -> str:
        body = self._gwt_call(
            _gwt_generate_token(self.gwt_module_base, self.gwt_header, self._nonce, self._user_id or "")
        )
        m = _QUOTED_RE.search(body)
        if not m:
            raise CronometerError(f"generateAuthorizationToken returned unexpected payload: {body[:80]!r}")
        return m.group(1)

    def _gwt_call(self, payload: str) -> str:
        try:
            resp = self._http.post(
                f"{self.base}/cronometer/app",
                content=payload.encode("utf-8"),
                headers={
                    "Content-Type": GWT_CONTENT_TYPE,
                    "X-GWT-Module-Base": self.gwt_module_base,
                    "X-GWT-Permutation": self.gwt_permutation,
                },
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise CronometerError(f"Cronometer GWT call failed: {e}") from e
        body = resp.text
        if not body.startswith("//OK"):
            raise CronometerError(f"Cronometer GWT call rejected: {body[:120]!r}")
        return body
