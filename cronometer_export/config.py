from __future__ import annotations
from dotenv import load_dotenv, find_dotenv; load_dotenv(find_dotenv(usecwd=True))

from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

DEFAULT_REPORTS_DIRNAME = "cronometer_reports"
DEFAULT_BIOMETRICS_SHEET = "biometricsReport"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Cronometer account
    CRONOMETER_EMAIL: Optional[str] = None
    CRONOMETER_PASSWORD: Optional[str] = None
    CRONOMETER_REPORTS_DIR: Optional[Path] = Field(
        default=None,
        description="Local export directory, defaults to ~/cronometer_reports",
    )
    CRONOMETER_TIMEOUT_SECONDS: float = Field(default=30.0)

    # GWT-RPC constants of the Cronometer web app; they change when the app is redeployed
    CRONOMETER_GWT_MODULE_BASE: str = Field(default="https://cronometer.com/cronometer/")
    CRONOMETER_GWT_PERMUTATION: str = Field(default="7B121DC5483BF272B1BC1916DA9FA963")
    CRONOMETER_GWT_HEADER: str = Field(default="2D6A926E3729946302DC68073CB0D550")

    # Google Sheets
    SPREADSHEET_ID: Optional[str] = None
    GOOGLE_SHEET_NAME: Optional[str] = None
    BIOMETRICS_SHEET_NAME: str = Field(default=DEFAULT_BIOMETRICS_SHEET)
    GOOGLE_CLIENT_SECRETS_FILE: Path = Field(default=Path("credentials.json"))
    GOOGLE_TOKEN_FILE: Path = Field(default=Path("token.json"))
    SHEETS_CREATE_MISSING_TABS: bool = Field(default=False)

    # General
    EXPORT_TZ: str = Field(default="UTC", description="Reference time zone of the export day")
    WRITE_SUMMARY: bool = Field(default=False, description="Also write servings_<date>.txt")
    LOG_LEVEL: str = Field(default="INFO")

    @property
    def reports_dir(self) -> Path:
        if self.CRONOMETER_REPORTS_DIR:
            return Path(self.CRONOMETER_REPORTS_DIR).expanduser()
        return Path.home() / DEFAULT_REPORTS_DIRNAME

    @property
    def upload_enabled(self) -> bool:
        return bool(self.SPREADSHEET_ID and self.GOOGLE_SHEET_NAME)

    def sheet_for(self, kind: str) -> Optional[str]:
        if kind == "servings":
            return self.GOOGLE_SHEET_NAME
        if kind == "biometrics":
            return self.BIOMETRICS_SHEET_NAME
        return None

    def require_account(self) -> tuple[str, str]:
        if not self.CRONOMETER_EMAIL or not self.CRONOMETER_PASSWORD:
            raise ConfigError(
                "CRONOMETER_EMAIL and CRONOMETER_PASSWORD environment variables must be set"
            )
        return self.CRONOMETER_EMAIL, self.CRONOMETER_PASSWORD


def get_settings() -> Settings:
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
