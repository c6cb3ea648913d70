"""Runtime settings: connection options, retry policy and safety limits.

Settings are not persisted. The embedding application builds them with
:func:`load_settings`, where later sources win: defaults (or a caller supplied
base), caller overrides, then ``INTELLIRITE_*`` environment variables.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Callable, Dict, Mapping

from ..patches.safety import SafetyThresholds

__all__ = [
    "ENV_OVERRIDES",
    "EnvOverride",
    "Settings",
    "apply_overrides",
    "env_overrides",
    "load_settings",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
_TRUE_VALUES = frozenset({"1", "true", "yes", "on", "debug"})


@dataclass(slots=True)
class Settings:
    """Options for the AI client, logging and the patch pipeline."""

    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: dict[str, str] = field(default_factory=dict)
    metadata: dict[str, Any] = field(default_factory=dict)
    debug_logging: bool = False
    prose_warning_threshold: int = 50
    safety: SafetyThresholds = field(default_factory=SafetyThresholds)

    def redacted(self) -> Dict[str, Any]:
        """Field values safe to log: the API key is masked."""

        data = asdict(self)
        data["api_key"] = redact_secret(self.api_key)
        return data


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(slots=True, frozen=True)
class EnvOverride:
    """Maps one ``INTELLIRITE_*`` variable onto a settings field.

    ``safety`` marks fields of :class:`SafetyThresholds` rather than of
    :class:`Settings` itself. A value ``parse`` rejects is logged and skipped.
    """

    variable: str
    field_name: str
    parse: Callable[[str], Any] = str
    safety: bool = False

    def read(self, environ: Mapping[str, str]) -> Any | None:
        raw = environ.get(self.variable)
        if raw is None:
            return None
        try:
            return self.parse(raw)
        except ValueError:
            LOGGER.warning("Ignoring %s=%r: not a valid %s", self.variable, raw, getattr(self.parse, "__name__", "value"))
            return None


ENV_OVERRIDES: tuple[EnvOverride, ...] = (
    EnvOverride("INTELLIRITE_API_KEY", "api_key"),
    EnvOverride("INTELLIRITE_BASE_URL", "base_url"),
    EnvOverride("INTELLIRITE_MODEL", "model"),
    EnvOverride("INTELLIRITE_ORGANIZATION", "organization"),
    EnvOverride("INTELLIRITE_DEBUG_LOGGING", "debug_logging", _parse_bool),
    EnvOverride("INTELLIRITE_REQUEST_TIMEOUT", "request_timeout", float),
    EnvOverride("INTELLIRITE_TEMPERATURE", "temperature", float),
    EnvOverride("INTELLIRITE_MAX_RETRIES", "max_retries", int),
    EnvOverride("INTELLIRITE_PROSE_WARNING_THRESHOLD", "prose_warning_threshold", int),
    EnvOverride("INTELLIRITE_MAX_AUTO_CHANGE_LINES", "max_auto_change_lines", int, safety=True),
    EnvOverride("INTELLIRITE_MIN_FILE_SIZE_FOR_CHECKS", "min_file_size_for_checks", int, safety=True),
    EnvOverride("INTELLIRITE_MAX_AUTO_MULTI_FILE_CHANGES", "max_auto_multi_file_changes", int, safety=True),
)


def env_overrides(environ: Mapping[str, str] | None = None) -> Dict[str, Any]:
    """Collect overrides from ``environ`` in the shape :func:`apply_overrides` accepts."""

    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    safety: Dict[str, Any] = {}
    for override in ENV_OVERRIDES:
        value = override.read(environ)
        if value is not None:
            (safety if override.safety else overrides)[override.field_name] = value
    if safety:
        overrides["safety"] = safety
    return overrides


def load_settings(
    overrides: Mapping[str, Any] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    base: Settings | None = None,
) -> Settings:
    """Resolve settings from ``base`` (defaults), caller ``overrides`` and ``INTELLIRITE_*`` variables."""

    settings = apply_overrides(base or Settings(), overrides or {}, source="caller")
    settings = apply_overrides(settings, env_overrides(environ), source="environment")
    LOGGER.debug("Resolved settings: %s", settings.redacted())
    return settings


def apply_overrides(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    """Return ``settings`` updated from ``overrides``.

    Unknown keys and ``None`` values are skipped. ``metadata`` is merged into
    the existing mapping and ``safety`` may be a partial mapping of thresholds.
    """

    known = {item.name for item in fields(Settings)}
    changes = {key: value for key, value in overrides.items() if key in known and value is not None}
    if isinstance(changes.get("metadata"), Mapping):
        changes["metadata"] = {**settings.metadata, **changes["metadata"]}
    if isinstance(changes.get("safety"), Mapping):
        changes["safety"] = replace(settings.safety, **_known_safety_fields(changes["safety"]))
    if not changes:
        return settings
    LOGGER.debug("Applying %s overrides: %s", source, sorted(changes))
    return replace(settings, **changes)


def _known_safety_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    known = {item.name for item in fields(SafetyThresholds)}
    return {key: value for key, value in payload.items() if key in known and value is not None}


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
