"""Strict validation of persisted configuration objects."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .app_identity import APP_LOG_NAMESPACE
from .config_schema import API_PROVIDER_KEY, MODEL_KEYS, Provider, allowed_models, schema_keys
from .logging_utils import get_logger, log_context

LOGGER = get_logger(f"{APP_LOG_NAMESPACE}.config.validator", component="ConfigValidator")


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of checking a raw object against the current schema."""

    valid: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.valid


def _reject(reason: str) -> ValidationOutcome:
    LOGGER.info(log_context("Stored configuration rejected.", event="config.validate.rejected", reason=reason))
    return ValidationOutcome(False, reason)


def validate(raw: Any) -> ValidationOutcome:
    """Check ``raw`` against the schema, stopping at the first failure.

    The key set must match exactly, so any change to the schema invalidates
    every file written by an older build.
    """

    if not isinstance(raw, dict):
        return _reject(f"expected a JSON object, got {type(raw).__name__}")

    expected = schema_keys()
    for key in sorted(expected):
        if key not in raw:
            return _reject(f"missing required config key: {key}")
    for key in raw:
        if key not in expected:
            return _reject(f"extra config key found: {key}")

    provider = raw[API_PROVIDER_KEY]
    if provider not in tuple(member.value for member in Provider):
        return _reject(f"invalid apiProvider: {provider!r}")

    whitelist = allowed_models(provider)
    for key in MODEL_KEYS:
        if raw[key] not in whitelist:
            return _reject(f"invalid {key}: {raw[key]!r} for provider: {provider}")

    return ValidationOutcome(True)


def is_valid(raw: Any) -> bool:
    return validate(raw).valid
