"""Pydantic schema, provider registry and model whitelists for the configuration."""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .app_identity import APP_LOG_NAMESPACE
from .logging_utils import get_logger, log_context

LOGGER = get_logger(f"{APP_LOG_NAMESPACE}.config.schema", component="ConfigSchema")


class Provider(str, Enum):
    """AI providers the application can talk to."""

    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"


DEFAULT_PROVIDER = Provider.GEMINI

# Keep these in lockstep with the provider SDKs the application ships with.
MODEL_WHITELIST: dict[Provider, tuple[str, ...]] = {
    Provider.OPENAI: ("gpt-5", "gpt-5-mini", "gpt-5-nano"),
    Provider.GEMINI: ("gemini-2.5-pro", "gemini-2.5-flash"),
    Provider.ANTHROPIC: (
        "claude-3-7-sonnet-20250219",
        "claude-3-5-sonnet-20241022",
        "claude-3-opus-20240229",
    ),
}

# Model a provider starts with, and falls back to when a stored model is not allowed.
DEFAULT_MODELS: dict[Provider, str] = {
    Provider.OPENAI: "gpt-5",
    Provider.GEMINI: "gemini-2.5-flash",
    Provider.ANTHROPIC: "claude-3-7-sonnet-20250219",
}

API_KEY_KEY = "apiKey"
API_PROVIDER_KEY = "apiProvider"
EXTRACTION_MODEL_KEY = "extractionModel"
SOLUTION_MODEL_KEY = "solutionModel"
DEBUGGING_MODEL_KEY = "debuggingModel"
LANGUAGE_KEY = "language"
OPACITY_KEY = "opacity"
MODEL_KEYS: tuple[str, ...] = (EXTRACTION_MODEL_KEY, SOLUTION_MODEL_KEY, DEBUGGING_MODEL_KEY)

DEFAULT_LANGUAGE = "python"
MIN_OPACITY = 0.1
MAX_OPACITY = 1.0

_OPENAI_KEY_RE = re.compile(r"^sk-[a-zA-Z0-9]{32,}$")
_ANTHROPIC_KEY_RE = re.compile(r"^sk-ant-[a-zA-Z0-9]{32,}$")
_GEMINI_MIN_KEY_LENGTH = 10


def clamp_opacity(value: float) -> float:
    try:
        number = float(value)
    except OverflowError:
        # Integers too large for a float still clamp to the nearest bound.
        number = float("inf") if value > 0 else float("-inf")
    return min(MAX_OPACITY, max(MIN_OPACITY, number))


class Configuration(BaseModel):
    """The persisted application configuration.

    Attributes use snake_case; the on-disk JSON uses the camelCase aliases.
    Instances are immutable, use ``model_copy(update=...)`` to derive a new one.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    api_key: str = Field(default="", alias=API_KEY_KEY)
    api_provider: Provider = Field(default=DEFAULT_PROVIDER, alias=API_PROVIDER_KEY)
    extraction_model: str = Field(
        default=DEFAULT_MODELS[DEFAULT_PROVIDER], alias=EXTRACTION_MODEL_KEY
    )
    solution_model: str = Field(
        default=DEFAULT_MODELS[DEFAULT_PROVIDER], alias=SOLUTION_MODEL_KEY
    )
    debugging_model: str = Field(
        default=DEFAULT_MODELS[DEFAULT_PROVIDER], alias=DEBUGGING_MODEL_KEY
    )
    language: str = Field(default=DEFAULT_LANGUAGE, alias=LANGUAGE_KEY)
    opacity: float = Field(default=MAX_OPACITY, alias=OPACITY_KEY, allow_inf_nan=False)

    @field_validator("opacity", mode="after")
    @classmethod
    def _clamp_opacity(cls, value: float) -> float:
        return clamp_opacity(value)

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase mapping written to ``config.json``."""

        return self.model_dump(by_alias=True, mode="json")


_ALIAS_BY_NAME: dict[str, str] = {
    name: field.alias or name for name, field in Configuration.model_fields.items()
}
_NAME_BY_ALIAS: dict[str, str] = {alias: name for name, alias in _ALIAS_BY_NAME.items()}


def schema_keys() -> frozenset[str]:
    """Return the exact key set of a persisted configuration."""

    return frozenset(_NAME_BY_ALIAS)


def canonical_key(key: str) -> str | None:
    """Map a snake_case or camelCase field name to its on-disk key."""

    if key in _NAME_BY_ALIAS:
        return key
    return _ALIAS_BY_NAME.get(key)


def default_configuration() -> Configuration:
    return Configuration()


def coerce_provider(value: Any) -> Provider:
    """Return ``value`` as a :class:`Provider`, falling back to Gemini."""

    try:
        return Provider(value)
    except ValueError:
        return DEFAULT_PROVIDER


def allowed_models(provider: Provider | str) -> tuple[str, ...]:
    """Return the ordered whitelist for ``provider`` (empty when unknown)."""

    try:
        return MODEL_WHITELIST[Provider(provider)]
    except ValueError:
        return ()


def default_model(provider: Provider | str) -> str:
    return DEFAULT_MODELS[coerce_provider(provider)]


def sanitize_model(model: Any, provider: Provider | str) -> str:
    """Return ``model`` if whitelisted for ``provider``, else the provider default."""

    resolved = coerce_provider(provider)
    if isinstance(model, str) and model in MODEL_WHITELIST[resolved]:
        return model
    fallback = DEFAULT_MODELS[resolved]
    LOGGER.warning(
        log_context(
            "Model not allowed for provider; using the provider default.",
            event="config.model_sanitized",
            provider=resolved.value,
            requested=model,
            fallback=fallback,
        )
    )
    return fallback


def detect_provider(api_key: str) -> Provider:
    """Infer the provider from the literal prefix of ``api_key``."""

    stripped = api_key.strip()
    if stripped.startswith("sk-ant-"):
        return Provider.ANTHROPIC
    if stripped.startswith("sk-"):
        return Provider.OPENAI
    return Provider.GEMINI


def is_valid_key_format(api_key: str, provider: Provider | str | None = None) -> bool:
    """Shape check of ``api_key`` for ``provider`` (inferred when omitted)."""

    if not isinstance(api_key, str):
        return False
    if provider is None:
        resolved = detect_provider(api_key)
    else:
        try:
            resolved = Provider(provider)
        except ValueError:
            return False
    stripped = api_key.strip()
    if resolved is Provider.OPENAI:
        return bool(_OPENAI_KEY_RE.match(stripped))
    if resolved is Provider.ANTHROPIC:
        return bool(_ANTHROPIC_KEY_RE.match(stripped))
    return len(stripped) >= _GEMINI_MIN_KEY_LENGTH


def coerce_with_defaults(
    payload: Mapping[str, Any],
    fallback: Configuration | None = None,
) -> tuple[Configuration, list[str]]:
    """Validate ``payload`` merged over ``fallback`` (the defaults when omitted).

    Unknown keys are dropped. Every field that fails validation is replaced by
    the fallback value and reported in the returned list of warnings.
    """

    base = fallback if fallback is not None else default_configuration()
    defaults = base.to_payload()
    merged = dict(defaults)
    merged.update({key: value for key, value in payload.items() if key in defaults})
    warnings: list[str] = []

    while True:
        try:
            return Configuration.model_validate(merged), warnings
        except ValidationError as exc:
            replaced = False
            for error in exc.errors():
                loc = error.get("loc", ())
                if not loc or loc[0] not in defaults:
                    continue
                key = str(loc[0])
                if merged[key] == defaults[key]:
                    continue
                merged[key] = defaults[key]
                replaced = True
                warnings.append(
                    f"Invalid value for '{key}': {error.get('msg')}. Using fallback value instead."
                )
            if not replaced:
                warnings.append("Configuration could not be validated; using fallback values.")
                return base, warnings
