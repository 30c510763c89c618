"""
Runtime configuration for Keepsake.

Values default to sensible local paths and may be overridden through
KEEPSAKE_* environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional


DEFAULT_USER_AGENT = "Keepsake/1.0 (Bookmark Archiver)"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class KeepsakeConfig:
    data_dir: str = "data"
    log_dir: str = "logs"
    fetch_timeout: float = 30.0
    max_body_bytes: int = 50 * 1024 * 1024  # 50MB
    max_asset_bytes: int = 5 * 1024 * 1024  # 5MB per asset
    download_assets: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    extra_headers: dict = field(default_factory=dict)

    @property
    def archive_dir(self) -> str:
        return os.path.join(self.data_dir, "archive")

    @property
    def store_path(self) -> str:
        return os.path.join(self.data_dir, "bookmarks.jsonl")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "KeepsakeConfig":
        """Build a config from KEEPSAKE_* variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        config = cls()
        if env.get("KEEPSAKE_DATA_DIR"):
            config.data_dir = env["KEEPSAKE_DATA_DIR"]
        if env.get("KEEPSAKE_LOG_DIR"):
            config.log_dir = env["KEEPSAKE_LOG_DIR"]
        if env.get("KEEPSAKE_FETCH_TIMEOUT"):
            config.fetch_timeout = float(env["KEEPSAKE_FETCH_TIMEOUT"])
        if env.get("KEEPSAKE_MAX_BODY_BYTES"):
            config.max_body_bytes = int(env["KEEPSAKE_MAX_BODY_BYTES"])
        if env.get("KEEPSAKE_MAX_ASSET_BYTES"):
            config.max_asset_bytes = int(env["KEEPSAKE_MAX_ASSET_BYTES"])
        if env.get("KEEPSAKE_DOWNLOAD_ASSETS"):
            config.download_assets = _env_bool(env["KEEPSAKE_DOWNLOAD_ASSETS"])
        if env.get("KEEPSAKE_USER_AGENT"):
            config.user_agent = env["KEEPSAKE_USER_AGENT"]
        return config
