"""Tests for logging configuration."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from intellirite.services.settings import Settings
from intellirite.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    logging_utils._CONFIGURED = False
    logging_utils._LOG_PATH = None


def test_setup_logging_writes_rotating_file(tmp_path: Path) -> None:
    path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False)

    logging.getLogger("intellirite.test").info("hello %s", "file")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert path == tmp_path / "intellirite.log"
    assert "hello file" in path.read_text(encoding="utf-8")
    assert logging_utils.get_log_path() == path


def test_setup_logging_is_idempotent_unless_forced(tmp_path: Path) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "one", console=False)
    second = logging_utils.setup_logging(log_dir=tmp_path / "two", console=False)
    forced = logging_utils.setup_logging(log_dir=tmp_path / "two", console=False, force=True)

    assert second == first
    assert forced == tmp_path / "two" / "intellirite.log"


def test_log_dir_can_come_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("INTELLIRITE_LOG_DIR", str(tmp_path / "env"))

    path = logging_utils.setup_logging(console=False)

    assert path.parent == tmp_path / "env"


def test_noisy_loggers_are_quieted(tmp_path: Path) -> None:
    logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False)

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("openai").level == logging.WARNING


def test_setup_logging_from_settings_uses_debug_flag(tmp_path: Path) -> None:
    logging_utils.setup_logging_from_settings(Settings(debug_logging=True), log_dir=tmp_path, console=False)

    assert logging.getLogger().level == logging.DEBUG
    assert logging_utils.get_logger("intellirite.x").name == "intellirite.x"


def test_registered_secrets_are_masked_in_log_file(tmp_path: Path) -> None:
    path = logging_utils.setup_logging_from_settings(
        Settings(api_key="sk-live-abcdef"), log_dir=tmp_path, console=False
    )

    logging.getLogger("intellirite.test").warning("calling with key %s", "sk-live-abcdef")
    for handler in logging.getLogger().handlers:
        handler.flush()

    text = path.read_text(encoding="utf-8")
    assert "sk-live-abcdef" not in text
    assert "calling with key ***" in text


def test_masking_filter_ignores_short_or_empty_secrets() -> None:
    masking = logging_utils.SecretMaskingFilter(["", "ab", "secret-value"])
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "ab %s", ("secret-value",), None)

    assert masking.filter(record)
    assert record.getMessage() == "ab ***"
