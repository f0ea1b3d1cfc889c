from __future__ import annotations

import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

import yaml

from .logger_factory import get_logger

DEFAULT_PROFILE = "default_profile"
PROFILES_ROOT = Path("profiles")
EXAMPLE_CONFIG = Path("config.example.yaml")

_EMPTY_TEMPLATE = {"token": "", "channel": ""}


@dataclass
class Config:
    raw: dict


class ConfigService:
    """Profile-scoped settings read from profiles/<profile>/config.yaml.

    The file is read once; nothing in the bot writes back to it. A missing profile
    directory or config file is created from config.example.yaml (or an empty
    template) so a fresh checkout has something to fill in.
    """

    def __init__(self, profile: str = DEFAULT_PROFILE, root: str | Path = PROFILES_ROOT):
        self.log = get_logger("ConfigService")
        self.profile = self._safe_profile(profile)
        self.profile_dir = Path(root) / self.profile
        self.path = self.profile_dir / "config.yaml"
        self._ensure_exists()
        with self.path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            self.log.warning(f"config-not-a-mapping path={self.path}")
            data = {}
        self._cfg = Config(raw=data)

    @staticmethod
    def _safe_profile(name: str | None) -> str:
        """Validate a profile name; it becomes a directory under profiles/."""
        if name is None or (isinstance(name, str) and not name.strip()):
            return DEFAULT_PROFILE
        if not isinstance(name, str) or not re.match(r"^[A-Za-z0-9_-]+$", name.strip()):
            raise ValueError(f"invalid profile name {name!r}: use letters, digits, '_' or '-'")
        return name.strip()

    def _ensure_exists(self) -> None:
        if not self.profile_dir.is_dir():
            self.log.warning(f"profile-dir-missing creating path={self.profile_dir}")
            self.profile_dir.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.log.warning(f"config-missing creating path={self.path}")
            if EXAMPLE_CONFIG.exists():
                shutil.copyfile(EXAMPLE_CONFIG, self.path)
            else:
                with self.path.open("w", encoding="utf-8") as f:
                    yaml.safe_dump(_EMPTY_TEMPLATE, f, sort_keys=False)

    # ---------- Discord ----------
    def token(self) -> str:
        """Bot token from the profile, falling back to DISCORD_TOKEN in the environment."""
        v = self._cfg.raw.get("token")
        if isinstance(v, str) and v.strip():
            return v.strip()
        return os.getenv("DISCORD_TOKEN", "").strip()

    def channel_id(self) -> int | None:
        v = self._cfg.raw.get("channel")
        try:
            return int(str(v).strip())
        except (TypeError, ValueError):
            return None

    def discord_intents(self) -> dict:
        return (self._cfg.raw.get("discord", {}) or {}).get("intents", {}) or {}

    def send_retry_attempts(self) -> int:
        try:
            return max(0, int(self._cfg.raw.get("send_retry_attempts", 1)))
        except (TypeError, ValueError):
            return 1

    # ---------- Storage ----------
    def database_path(self) -> Path:
        v = self._cfg.raw.get("database")
        if isinstance(v, str) and v.strip():
            p = Path(v.strip())
            return p if p.is_absolute() else self.profile_dir / p
        return self.profile_dir / "db.sqlite"

    # ---------- Logging ----------
    def log_level(self) -> str:
        return str(self._cfg.raw.get("LOG_LEVEL", "INFO")).upper()

    def lib_log_level(self) -> str | None:
        v = self._cfg.raw.get("LIB_LOG_LEVEL")
        return str(v).upper() if v else None

    def log_console(self) -> bool:
        """Whether to mirror console logs to logs/log.log."""
        return bool(self._cfg.raw.get("LOG_CONSOLE", False))

    def log_errors(self) -> bool:
        """Whether to always write ERROR-and-above to logs/errors.log."""
        return bool(self._cfg.raw.get("LOG_ERRORS", False))

    def log_timezone(self) -> str | None:
        v = self._cfg.raw.get("LOG_TZ")
        return str(v) if v else None
