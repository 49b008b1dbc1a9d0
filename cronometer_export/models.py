from __future__ import annotations

import datetime as dt
import json
from dataclasses import dataclass, field
from typing import Any, List, Optional

from google.oauth2.credentials import Credentials

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class DateWindow:
    """One calendar day: [start, end) with end exactly one day after start."""

    day: dt.date
    start: dt.datetime
    end: dt.datetime

    @property
    def start_date(self) -> dt.date:
        return self.start.date()

    @property
    def end_date(self) -> dt.date:
        return self.end.date()


@dataclass
class SessionToken:
    access_token: str
    refresh_token: Optional[str] = None
    expiry: Optional[dt.datetime] = None  # aware, UTC
    token_uri: str = GOOGLE_TOKEN_URI
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    scopes: List[str] = field(default_factory=list)

    # Same keys as google.oauth2.credentials.Credentials.to_json()
    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_uri": self.token_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "scopes": list(self.scopes),
        }
        if self.expiry is not None:
            data["expiry"] = self.expiry.astimezone(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionToken":
        if not data.get("token") and not data.get("refresh_token"):
            raise ValueError("token data has neither 'token' nor 'refresh_token'")
        expiry = None
        raw_expiry = data.get("expiry")
        if raw_expiry:
            # google-auth writes e.g. 2025-10-30T12:00:00.123456Z
            stamp = str(raw_expiry).rstrip("Z").split(".")[0]
            expiry = dt.datetime.strptime(stamp, "%Y-%m-%dT%H:%M:%S").replace(tzinfo=dt.timezone.utc)
        scopes = data.get("scopes") or []
        if isinstance(scopes, str):
            scopes = scopes.split()
        return cls(
            access_token=data.get("token") or "",
            refresh_token=data.get("refresh_token"),
            expiry=expiry,
            token_uri=data.get("token_uri") or GOOGLE_TOKEN_URI,
            client_id=data.get("client_id"),
            client_secret=data.get("client_secret"),
            scopes=list(scopes),
        )

    @classmethod
    def from_json(cls, text: str) -> "SessionToken":
        return cls.from_dict(json.loads(text))

    def to_credentials(self) -> Credentials:
        # google-auth compares expiry against naive UTC
        expiry = self.expiry.astimezone(dt.timezone.utc).replace(tzinfo=None) if self.expiry else None
        return Credentials(
            token=self.access_token or None,
            refresh_token=self.refresh_token,
            token_uri=self.token_uri,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=self.scopes or None,
            expiry=expiry,
        )

    @classmethod
    def from_credentials(cls, creds: Credentials) -> "SessionToken":
        expiry = creds.expiry
        if expiry is not None and expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=dt.timezone.utc)
        return cls(
            access_token=creds.token or "",
            refresh_token=creds.refresh_token,
            expiry=expiry,
            token_uri=creds.token_uri or GOOGLE_TOKEN_URI,
            client_id=creds.client_id,
            client_secret=creds.client_secret,
            scopes=list(creds.scopes or []),
        )


@dataclass
class Serving:
    day: str
    time: Optional[str] = None
    group: Optional[str] = None
    food_name: Optional[str] = None
    amount: Optional[str] = None
    unit: Optional[str] = None
    energy_kcal: Optional[float] = None

    @property
    def quantity(self) -> str:
        return " ".join(p for p in (self.amount, self.unit) if p)
