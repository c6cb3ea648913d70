"""Service layer helpers (runtime settings)."""

from .settings import Settings, apply_overrides, env_overrides, load_settings, redact_secret

__all__ = ["Settings", "apply_overrides", "env_overrides", "load_settings", "redact_secret"]
