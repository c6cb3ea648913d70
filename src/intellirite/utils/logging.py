"""Logging setup for applications embedding the patch pipeline.

Records go to ``intellirite.log`` under the configured directory and, optionally,
to stderr. API keys registered with :func:`setup_logging` are masked before any
handler formats a record, so request dumps logged at DEBUG stay safe to share.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:  # pragma: no cover - typing only
    from ..services.settings import Settings

__all__ = [
    "LogConfig",
    "SecretMaskingFilter",
    "setup_logging",
    "setup_logging_from_settings",
    "get_logger",
    "get_log_path",
]

LOG_DIR_ENV = "INTELLIRITE_LOG_DIR"
LOG_FILE_NAME = "intellirite.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_DEFAULT_LOG_DIR = Path.home() / ".intellirite" / "logs"
_THIRD_PARTY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_CONFIGURED = False
_LOG_PATH: Path | None = None


@dataclass(slots=True, frozen=True)
class LogConfig:
    """Resolved handler options for one :func:`setup_logging` call."""

    level: int = logging.INFO
    directory: Path = _DEFAULT_LOG_DIR
    console: bool = True
    max_bytes: int = 1_000_000
    backup_count: int = 3

    @property
    def log_path(self) -> Path:
        return self.directory / LOG_FILE_NAME

    @classmethod
    def resolve(cls, level: int, log_dir: Path | str | None, **options) -> "LogConfig":
        """Pick the directory from the argument, then ``INTELLIRITE_LOG_DIR``, then the default."""

        chosen = log_dir or os.environ.get(LOG_DIR_ENV) or _DEFAULT_LOG_DIR
        return cls(level=level, directory=Path(chosen).expanduser(), **options)


class SecretMaskingFilter(logging.Filter):
    """Replace known secret values in a record's rendered message with ``***``."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        super().__init__()
        # Longest first so a key that contains another key is masked whole.
        self._secrets = sorted({s for s in secrets if s and len(s) >= 4}, key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        masked = message
        for secret in self._secrets:
            masked = masked.replace(secret, "***")
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    secrets: Iterable[str] = (),
    force: bool = False,
) -> Path:
    """Install the rotating file handler (and stderr handler) on the root logger.

    Only the first call does any work; later calls hand back the active log
    path until ``force`` is passed.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    config = LogConfig.resolve(level, log_dir, console=console, max_bytes=max_bytes, backup_count=backup_count)
    config.directory.mkdir(parents=True, exist_ok=True)

    masking = SecretMaskingFilter(secrets)
    handlers = _build_handlers(config)
    for handler in handlers:
        handler.addFilter(masking)

    logging.basicConfig(level=config.level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_third_party(config.level)

    _CONFIGURED = True
    _LOG_PATH = config.log_path
    return config.log_path


def setup_logging_from_settings(settings: "Settings", **kwargs) -> Path:
    """Configure logging for ``settings``: DEBUG when ``debug_logging`` is on, API key masked."""

    level = logging.DEBUG if settings.debug_logging else logging.INFO
    kwargs.setdefault("secrets", (settings.api_key,))
    return setup_logging(level, **kwargs)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_log_path() -> Path | None:
    return _LOG_PATH


def _build_handlers(config: LogConfig) -> list[logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            config.log_path,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    ]
    if config.console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(config.level)
        handler.setFormatter(formatter)
    return handlers


def _quiet_third_party(root_level: int) -> None:
    floor = max(root_level, logging.WARNING)
    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(floor)
