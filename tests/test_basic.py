import json

from google.oauth2.credentials import Credentials

from cronometer_export import REPORT_KINDS, UPLOAD_KINDS
from cronometer_export.models import SessionToken, Serving

from conftest import token_expiring_at


def test_report_kinds_order():
    assert REPORT_KINDS == ("servings", "biometrics", "notes")
    assert set(UPLOAD_KINDS) < set(REPORT_KINDS)


def test_session_token_json_is_google_authorized_user_format(now):
    token = token_expiring_at(now)
    data = json.loads(token.to_json())
    assert data["token"] == "access-1"
    assert data["expiry"] == "2025-10-31T06:00:00.000000Z"

    creds = Credentials.from_authorized_user_info(data)
    assert creds.refresh_token == "refresh-1"
    assert SessionToken.from_json(token.to_json()) == token


def test_session_token_credentials_conversion_keeps_expiry(now):
    token = token_expiring_at(now)
    creds = token.to_credentials()
    assert creds.expiry.tzinfo is None
    assert SessionToken.from_credentials(creds).expiry == now


def test_serving_quantity():
    assert Serving(day="2025-10-30", amount="1.00", unit="cup").quantity == "1.00 cup"
    assert Serving(day="2025-10-30").quantity == ""
