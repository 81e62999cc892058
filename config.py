"""Environment-driven settings for the search service."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api-cdn.webflow.com/v2"
DEFAULT_DB_PATH = "cms_search.db"
DEFAULT_PAGE_SIZE = 100
BACKENDS = ("kv", "sqlite", "fts")


@dataclass(frozen=True)
class Settings:
    api_token: Optional[str] = None
    site_id: Optional[str] = None
    api_base: str = DEFAULT_API_BASE
    sync_secret: Optional[str] = None
    backend: str = "fts"
    db_path: str = DEFAULT_DB_PATH
    page_size: int = DEFAULT_PAGE_SIZE

    def require_upstream(self) -> None:
        """Raise ``ConfigError`` unless the CMS credentials are present."""

        if not self.api_token:
            raise ConfigError("Webflow API token not configured")
        if not self.site_id:
            raise ConfigError("Webflow site ID not configured")


def _int_from_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", key, raw)
        return default
    return value if value > 0 else default


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from *env* (``os.environ`` by default)."""

    env = os.environ if env is None else env

    backend = (env.get("SEARCH_BACKEND") or "fts").strip().lower()
    if backend not in BACKENDS:
        raise ConfigError(f"Unknown search backend: {backend}")

    return Settings(
        api_token=env.get("WEBFLOW_API_TOKEN") or None,
        site_id=env.get("WEBFLOW_SITE_ID") or None,
        api_base=(env.get("WEBFLOW_API_BASE") or DEFAULT_API_BASE).rstrip("/"),
        sync_secret=env.get("SYNC_SECRET") or None,
        backend=backend,
        db_path=env.get("SEARCH_DB_PATH") or DEFAULT_DB_PATH,
        page_size=_int_from_env(env, "PAGE_SIZE", DEFAULT_PAGE_SIZE),
    )


def create_store(settings: Settings):
    """Return the storage backend selected by ``settings.backend``."""

    if settings.backend == "kv":
        from stores.kv import KVStore, MemoryNamespace

        return KVStore(MemoryNamespace())

    if settings.backend == "sqlite":
        from stores.relational import RelationalStore

        return RelationalStore(settings.db_path)

    from stores.fts import FtsStore

    return FtsStore(settings.db_path)
