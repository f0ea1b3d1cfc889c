import datetime as _dt
import logging
from logging.handlers import RotatingFileHandler
import os
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_CONFIGURED = False

_PATTERN = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S%z"
_LIB_LOGGERS = ("discord", "discord.http", "discord.gateway", "discord.client", "discord.state")


def _truthy(value) -> bool:
    return str(value).lower() in ("1", "true", "yes", "on")


class _TzFormatter(logging.Formatter):
    def __init__(self, *args, tz: Optional[str] = None, **kwargs):
        super().__init__(*args, **kwargs)
        # "UTC" forces UTC, None/"system" uses the host zone, anything else is an IANA name
        if tz == "UTC":
            self._tz = _dt.timezone.utc
        elif tz is None or tz == "system":
            self._tz = _dt.datetime.now().astimezone().tzinfo
        else:
            try:
                self._tz = ZoneInfo(tz)
            except ZoneInfoNotFoundError:
                self._tz = _dt.datetime.now().astimezone().tzinfo

    def formatTime(self, record, datefmt=None):
        dt = _dt.datetime.fromtimestamp(record.created, tz=self._tz)
        if datefmt:
            return dt.strftime(datefmt)
        return dt.isoformat()


def _rotating(path: Path, level: int, tz: Optional[str]) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        filename=str(path),
        mode="a",
        maxBytes=1_000_000,
        backupCount=5,
        encoding="utf-8",
        delay=False,
    )
    handler.setLevel(level)
    handler.setFormatter(_TzFormatter(_PATTERN, tz=tz, datefmt=_DATEFMT))
    return handler


def configure_logging(
    level: Optional[str] = None,
    tz: Optional[str] = None,
    lib_log_level: Optional[str] = None,
    console_to_file: bool | None = None,
    error_file: bool | None = None,
    log_dir: str | Path = "logs",
) -> None:
    """Install root handlers once per process.

    Console output is always on. ``console_to_file`` mirrors it to <log_dir>/log.log,
    ``error_file`` writes ERROR and above to <log_dir>/errors.log. The LOG_CONSOLE and
    LOG_ERRORS environment variables override the arguments when set.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return
    lvl = (level or "INFO").upper()
    py_level = getattr(logging, lvl, None)
    if not isinstance(py_level, int):
        py_level = logging.INFO

    root = logging.getLogger()
    root.setLevel(py_level)
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setLevel(py_level)
    handler.setFormatter(_TzFormatter(_PATTERN, tz=tz, datefmt=_DATEFMT))
    root.addHandler(handler)

    mirror_enabled = bool(console_to_file)
    env_console = os.getenv("LOG_CONSOLE")
    if env_console is not None:
        mirror_enabled = _truthy(env_console)
    errors_enabled = bool(error_file)
    env_errors = os.getenv("LOG_ERRORS")
    if env_errors is not None:
        errors_enabled = _truthy(env_errors)

    if mirror_enabled or errors_enabled:
        try:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
            if mirror_enabled:
                root.addHandler(_rotating(Path(log_dir) / "log.log", py_level, tz))
            if errors_enabled:
                root.addHandler(_rotating(Path(log_dir) / "errors.log", logging.ERROR, tz))
        except OSError as e:
            # Don't break startup due to file I/O
            root.warning(f"log-file-setup-failed error={e!r}")

    # Quiet discord.py by default (still show WARN/ERROR)
    lib_level = logging.WARNING
    lib_level_name = lib_log_level or os.getenv("LIB_LOG_LEVEL")
    if lib_level_name:
        lib_level = getattr(logging, lib_level_name.upper(), logging.WARNING)
    for name in _LIB_LOGGERS:
        logging.getLogger(name).setLevel(lib_level)

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    # If not configured explicitly, default to INFO in the system timezone
    if not _CONFIGURED:
        configure_logging(level="INFO", tz=None)
    return logging.getLogger(name)
