"""Environment-driven settings for the gateway."""

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent / "config"
DEFAULT_SERVICES_CONFIG = CONFIG_DIR / "services.yaml"
DEFAULT_COLLECTIONS_CONFIG = CONFIG_DIR / "collections.yaml"

# Only for local development; deployments must set HARMONY_SHARED_SECRET_KEY.
_DEVELOPMENT_SECRET_KEY = "_THIS_IS_MY_32_CHARS_SECRET_KEY_"


def _string(name: str, default: str) -> str:
    raw = os.getenv(name, "").strip()
    return raw or default


def _positive_float(name: str, default: float) -> float:
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        value = default
    return value if value > 0 else default


def _enabled(name: str, default: bool) -> bool:
    raw = os.getenv(name, "true" if default else "false").strip().lower()
    return raw not in {"0", "false", "no", "off"}


def _shared_secret_key() -> str:
    raw = os.getenv("HARMONY_SHARED_SECRET_KEY", "").strip()
    if raw:
        return raw
    logger.warning("HARMONY_SHARED_SECRET_KEY is not set; using the development key")
    return _DEVELOPMENT_SECRET_KEY


class Settings(BaseModel):
    """Process-wide settings, read once at application start."""

    callback_url_root: str = Field(default="http://localhost:3001", min_length=1)
    database_url: str = Field(default="sqlite+pysqlite:///:memory:", min_length=1)
    shared_secret_key: str = Field(default=_DEVELOPMENT_SECRET_KEY, min_length=1)
    sync_request_timeout_seconds: float = Field(default=60.0, gt=0)
    services_config: Path = DEFAULT_SERVICES_CONFIG
    collections_config: Path = DEFAULT_COLLECTIONS_CONFIG
    create_schema: bool = True

    @property
    def callback_base_url(self) -> str:
        return f"{self.callback_url_root.rstrip('/')}/service/"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            callback_url_root=_string("HARMONY_CALLBACK_URL_ROOT", "http://localhost:3001"),
            database_url=_string("HARMONY_DATABASE_URL", "sqlite+pysqlite:///:memory:"),
            shared_secret_key=_shared_secret_key(),
            sync_request_timeout_seconds=_positive_float("HARMONY_SYNC_REQUEST_TIMEOUT_SECONDS", 60.0),
            services_config=Path(_string("HARMONY_SERVICES_CONFIG", str(DEFAULT_SERVICES_CONFIG))),
            collections_config=Path(_string("HARMONY_COLLECTIONS_CONFIG", str(DEFAULT_COLLECTIONS_CONFIG))),
            create_schema=_enabled("HARMONY_CREATE_SCHEMA", True),
        )
