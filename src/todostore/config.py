# src/todostore/config.py

"""Settings for the todo store, read from TODOSTORE_* environment variables.

A `.env` file in the working directory is loaded first (real environment
variables win). TODOSTORE_ENV_FILE points at a different file.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TODOSTORE_"

DEFAULT_APP_NAME = "todo004"
DEFAULT_DATA_DIR = Path(".local/todostore")
DEFAULT_DB_NAME = "mydb.sqlite3"
DEFAULT_EXPORT_FILENAME = "todo004.sqlite3"
DEFAULT_COMPLETED_PAGE_SIZE = 100
DEFAULT_SUGGESTION_LIMIT = 10

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# An export must be importable again, so its name keeps an accepted suffix.
_EXPORT_SUFFIXES = (".sqlite", ".sqlite3", ".db")


class _Env:
    """Typed lookups over one environment mapping; blank values count as unset."""

    def __init__(self, environ: Mapping[str, str]) -> None:
        self._environ = environ

    def raw(self, key: str) -> str | None:
        value = self._environ.get(ENV_PREFIX + key)
        if value is None or not value.strip():
            return None
        return value.strip()

    def text(self, key: str, default: str) -> str:
        return self.raw(key) or default

    def path(self, key: str, default: Path) -> Path:
        value = self.raw(key)
        return default if value is None else Path(value).expanduser()

    def positive_int(self, key: str, default: int) -> int:
        value = self.raw(key)
        if value is None:
            return default
        try:
            number = int(value)
        except ValueError:
            return default
        return number if number > 0 else default

    def log_level(self, key: str, default: str) -> str:
        value = (self.raw(key) or default).upper()
        return value if value in LOG_LEVELS else default

    def export_filename(self, key: str, default: str) -> str:
        value = self.raw(key)
        if value is None or Path(value).name != value:
            return default
        return value if Path(value).suffix.lower() in _EXPORT_SUFFIXES else default


@dataclass(frozen=True, slots=True)
class Settings:
    app_name: str
    log_level: str

    # Local data; the log file and the database default to data_dir.
    data_dir: Path
    db_path: Path
    export_dir: Path
    export_filename: str

    completed_page_size: int
    suggestion_limit: int

    @staticmethod
    def from_env(environ: Mapping[str, str] | None = None) -> "Settings":
        env = _Env(os.environ if environ is None else environ)

        data_dir = env.path("DATA_DIR", DEFAULT_DATA_DIR)
        return Settings(
            app_name=env.text("APP_NAME", DEFAULT_APP_NAME),
            log_level=env.log_level("LOG_LEVEL", "INFO"),
            data_dir=data_dir,
            db_path=env.path("DB_PATH", data_dir / DEFAULT_DB_NAME),
            export_dir=env.path("EXPORT_DIR", data_dir / "exports"),
            export_filename=env.export_filename("EXPORT_FILENAME", DEFAULT_EXPORT_FILENAME),
            completed_page_size=env.positive_int("COMPLETED_PAGE_SIZE", DEFAULT_COMPLETED_PAGE_SIZE),
            suggestion_limit=env.positive_int("SUGGESTION_LIMIT", DEFAULT_SUGGESTION_LIMIT),
        )


def load_env_file() -> None:
    """Load the optional .env file without overriding the real environment."""
    load_dotenv(os.getenv(ENV_PREFIX + "ENV_FILE") or ".env", override=False)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    load_env_file()
    return Settings.from_env()
