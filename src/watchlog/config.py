from datetime import tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Watchlog home directory (~/.watchlog)
    watchlog_home: Path = Field(
        default=Path.home() / ".watchlog", validation_alias="WATCHLOG_HOME"
    )

    # History display
    merge_consecutive: bool = Field(default=True)
    merge_max_gap_hours: float = Field(default=2.0)  # cross-day merge tolerance

    # IANA zone used for day boundaries; None = system local time
    timezone: str | None = Field(default=None, validation_alias="WATCHLOG_TIMEZONE")

    log_level: str = Field(default="WARN", validation_alias="WATCHLOG_LOG_LEVEL")

    # Import/export document format
    export_version: str = Field(default="1.0")

    @property
    def watchlog_home_resolved(self) -> Path:
        """Resolve watchlog_home, expanding ~ to user home directory."""
        return self.watchlog_home.expanduser()

    @property
    def data_dir(self) -> Path:
        return self.watchlog_home_resolved / "data"

    @property
    def tzinfo(self) -> tzinfo | None:
        """Zone for calendar-day bucketing, or None for the system zone."""
        if not self.timezone:
            return None
        return ZoneInfo(self.timezone)


# .env in the working directory, loaded before settings are read
load_dotenv()

# Global settings instance
settings = Settings()
