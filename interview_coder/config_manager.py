"""The configuration store: the single mutation surface for ``config.json``."""

from __future__ import annotations

import json
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import Any

from .api_key_probe import ApiKeyProbe, KeyTestResult
from .app_identity import APP_LOG_NAMESPACE
from .config_paths import PathResolver
from .config_reconciler import ConfigReconciler, ReconcileReport
from .config_schema import (
    API_KEY_KEY,
    API_PROVIDER_KEY,
    DEFAULT_LANGUAGE,
    LANGUAGE_KEY,
    MODEL_KEYS,
    OPACITY_KEY,
    Configuration,
    Provider,
    canonical_key,
    clamp_opacity,
    coerce_provider,
    coerce_with_defaults,
    default_configuration,
    default_model,
    detect_provider,
    is_valid_key_format,
    sanitize_model,
)
from .errors import ErrorKind
from .logging_utils import get_logger, log_context

LOGGER = get_logger(f"{APP_LOG_NAMESPACE}.config", component="ConfigManager")

ConfigObserver = Callable[[Configuration], None]

SOURCE_FILE = "file"
SOURCE_DEFAULTS = "defaults"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class PersistenceRecord:
    """Result of writing the configuration to disk."""

    path: Path
    existed_before: bool
    wrote: bool
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.wrote and self.error is None


@dataclass(frozen=True)
class LoadOutcome:
    """The configuration produced by a load plus how it was obtained."""

    config: Configuration
    source: str
    warnings: tuple[str, ...] = ()
    error_kind: ErrorKind | None = None


@dataclass(frozen=True)
class UpdateOutcome:
    config: Configuration
    changed_keys: frozenset[str]
    notified: bool
    persistence: PersistenceRecord | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None


class ConfigManager:
    """Own the canonical configuration file and its in-memory mirror.

    Construct one instance at process start and pass it to consumers. The
    constructor prunes stale files from every known location and makes sure
    the canonical file exists. Public methods never raise; failures are
    logged and reported through the outcome types.
    """

    def __init__(
        self,
        resolver: PathResolver | None = None,
        config_path: str | os.PathLike[str] | None = None,
        *,
        reconcile: bool = True,
        probe: ApiKeyProbe | None = None,
    ) -> None:
        self.resolver = resolver or PathResolver()
        self.reconciler = ConfigReconciler(self.resolver)
        if config_path is not None:
            self.config_path = Path(config_path).expanduser()
        else:
            self.config_path = self.resolver.canonical_path()
        self.probe = probe or ApiKeyProbe()
        self._lock = RLock()
        self._subscribers: list[ConfigObserver] = []
        self._config: Configuration | None = None
        self.last_reconcile_report: ReconcileReport | None = None

        LOGGER.info(
            log_context("Config path resolved.", event="config.path", path=str(self.config_path))
        )
        if reconcile:
            self.last_reconcile_report = self.reconciler.reconcile()
        self._ensure_config_exists()

    # --- persistence -----------------------------------------------------

    def _config_exists(self) -> bool:
        try:
            return self.config_path.is_file()
        except OSError:
            return False

    def _ensure_config_exists(self) -> None:
        if not self._config_exists():
            LOGGER.info(
                log_context(
                    "Configuration file not found; writing defaults.",
                    event="config.bootstrap.defaults",
                    path=str(self.config_path),
                )
            )
            self.save(default_configuration())

    def save(self, config: Configuration | Mapping[str, Any]) -> PersistenceRecord:
        """Overwrite the canonical file with ``config``.

        Failures are logged and reported in the returned record; callers must
        not assume the write happened.
        """

        if not isinstance(config, Configuration):
            config, _ = coerce_with_defaults(self._normalize_updates(config))
        with self._lock:
            return self._persist(config)

    def _persist(self, config: Configuration) -> PersistenceRecord:
        existed_before = self._config_exists()
        self._config = config

        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.error(
                log_context(
                    "Failed to prepare directory for configuration persistence.",
                    event="config.save.mkdir_failed",
                    directory=str(self.config_path.parent),
                    error=str(exc),
                ),
                exc_info=True,
            )
            return PersistenceRecord(
                self.config_path, existed_before, False, ErrorKind.FILESYSTEM_UNAVAILABLE, str(exc)
            )

        temp_path = self.config_path.with_name(self.config_path.name + ".tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as handle:
                json.dump(config.to_payload(), handle, indent=2)
            os.replace(temp_path, self.config_path)
        except OSError as exc:
            LOGGER.error(
                log_context(
                    "Error saving configuration file.",
                    event="config.save.failure",
                    path=str(self.config_path),
                    error=str(exc),
                ),
                exc_info=True,
            )
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                LOGGER.debug("Failed to clean up %s", temp_path, exc_info=True)
            return PersistenceRecord(
                self.config_path, existed_before, False, ErrorKind.PERSISTENCE_FAILURE, str(exc)
            )

        LOGGER.info(
            log_context(
                "Configuration saved to disk.",
                event="config.save.success",
                path=str(self.config_path),
                first_run=not existed_before,
            )
        )
        return PersistenceRecord(self.config_path, existed_before, True)

    def load_outcome(self) -> LoadOutcome:
        """Read the canonical file, repairing it field by field."""

        if not self._config_exists():
            defaults = default_configuration()
            self.save(defaults)
            return LoadOutcome(defaults, SOURCE_DEFAULTS, error_kind=ErrorKind.MISSING_FILE)

        try:
            stored = json.loads(self.config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.error(
                log_context(
                    "Error loading config; using defaults.",
                    event="config.load.failure",
                    path=str(self.config_path),
                    error=str(exc),
                ),
                exc_info=True,
            )
            self._config = default_configuration()
            return LoadOutcome(self._config, SOURCE_FALLBACK, (str(exc),), ErrorKind.CORRUPT_FILE)

        if not isinstance(stored, dict):
            message = f"Configuration root must be a JSON object, got {type(stored).__name__}."
            LOGGER.error(
                log_context(message, event="config.load.not_an_object", path=str(self.config_path))
            )
            self._config = default_configuration()
            return LoadOutcome(self._config, SOURCE_FALLBACK, (message,), ErrorKind.SCHEMA_INVALID)

        repairs: list[str] = []
        provider = coerce_provider(stored.get(API_PROVIDER_KEY))
        if stored.get(API_PROVIDER_KEY) != provider.value:
            repairs.append(f"Invalid apiProvider {stored.get(API_PROVIDER_KEY)!r}; using {provider.value}.")
            stored[API_PROVIDER_KEY] = provider.value
        for key in MODEL_KEYS:
            if key not in stored:
                stored[key] = default_model(provider)
                continue
            sanitized = sanitize_model(stored[key], provider)
            if sanitized != stored[key]:
                repairs.append(f"Invalid {key} {stored[key]!r}; using {sanitized}.")
                stored[key] = sanitized

        config, warnings = coerce_with_defaults(stored)
        repairs.extend(warnings)
        for warning in warnings:
            LOGGER.warning(log_context(warning, event="config.load.coerced", path=str(self.config_path)))

        self._config = config
        return LoadOutcome(
            config,
            SOURCE_FILE,
            tuple(repairs),
            ErrorKind.SCHEMA_INVALID if repairs else None,
        )

    def load(self) -> Configuration:
        return self.load_outcome().config

    @property
    def current(self) -> Configuration:
        """Return the last loaded or saved configuration without touching disk."""

        with self._lock:
            if self._config is None:
                return self.load()
            return self._config

    # --- observers -------------------------------------------------------

    @staticmethod
    def _describe_callback(callback: ConfigObserver) -> str:
        return getattr(callback, "__qualname__", None) or repr(callback)

    def subscribe(self, callback: ConfigObserver) -> None:
        """Register ``callback`` to receive the new configuration after updates."""

        with self._lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)
                LOGGER.debug(
                    log_context(
                        "Subscriber registered for config updates.",
                        event="config.subscriber_registered",
                        subscriber=self._describe_callback(callback),
                        total_subscribers=len(self._subscribers),
                    )
                )

    def unsubscribe(self, callback: ConfigObserver) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def _notify_subscribers(self, config: Configuration) -> None:
        for callback in list(self._subscribers):
            try:
                callback(config)
            except Exception:
                LOGGER.error(
                    log_context(
                        "Config subscriber raised an exception.",
                        event="config.subscriber_error",
                        subscriber=self._describe_callback(callback),
                    ),
                    exc_info=True,
                )

    # --- updates ---------------------------------------------------------

    @staticmethod
    def _normalize_updates(partial: Mapping[str, Any]) -> dict[str, Any]:
        updates: dict[str, Any] = {}
        for key, value in partial.items():
            resolved = canonical_key(key)
            if resolved is None:
                LOGGER.warning(
                    log_context("Ignoring unknown config key.", event="config.update.unknown_key", key=key)
                )
                continue
            updates[resolved] = value
        return updates

    def _prepare_updates(self, current: Configuration, partial: Mapping[str, Any]) -> dict[str, Any]:
        updates = self._normalize_updates(partial)
        if API_PROVIDER_KEY in updates and not updates[API_PROVIDER_KEY]:
            del updates[API_PROVIDER_KEY]

        api_key = updates.get(API_KEY_KEY)
        if isinstance(api_key, str) and api_key and API_PROVIDER_KEY not in updates:
            detected = detect_provider(api_key)
            updates[API_PROVIDER_KEY] = detected.value
            LOGGER.info(
                log_context(
                    "Auto-detected API provider from key format.",
                    event="config.update.provider_detected",
                    provider=detected.value,
                    api_key=api_key,
                )
            )

        if API_PROVIDER_KEY in updates:
            updates[API_PROVIDER_KEY] = coerce_provider(updates[API_PROVIDER_KEY]).value
        provider = Provider(updates.get(API_PROVIDER_KEY, current.api_provider))

        if provider != current.api_provider:
            for key in MODEL_KEYS:
                updates[key] = default_model(provider)
            LOGGER.info(
                log_context(
                    "Provider changed; resetting models to the provider default.",
                    event="config.update.provider_switched",
                    previous=current.api_provider.value,
                    provider=provider.value,
                )
            )

        for key in MODEL_KEYS:
            if key in updates:
                updates[key] = sanitize_model(updates[key], provider)
        return updates

    def apply_update(self, partial: Mapping[str, Any]) -> UpdateOutcome:
        """Merge ``partial`` onto the stored configuration, persist and notify.

        Notification is skipped when ``opacity`` is the only key updated so
        that window-only changes do not reinitialize provider clients.
        """

        with self._lock:
            try:
                current = self.load()
                updates = self._prepare_updates(current, partial)
                previous_payload = current.to_payload()
                merged = dict(previous_payload)
                merged.update(updates)
                new_config, warnings = coerce_with_defaults(merged, current)
                for warning in warnings:
                    LOGGER.warning(log_context(warning, event="config.update.coerced"))

                persistence = self.save(new_config)
                new_payload = new_config.to_payload()
                changed = frozenset(
                    key for key, value in new_payload.items() if previous_payload.get(key) != value
                )
                notify = any(key != OPACITY_KEY for key in updates)
                if notify:
                    self._notify_subscribers(new_config)
                return UpdateOutcome(
                    new_config,
                    changed,
                    notify,
                    persistence,
                    persistence.error_kind,
                    persistence.error,
                )
            except Exception as exc:
                LOGGER.error(
                    log_context("Error updating config.", event="config.update.failure", error=str(exc)),
                    exc_info=True,
                )
                return UpdateOutcome(
                    default_configuration(),
                    frozenset(),
                    False,
                    error_kind=ErrorKind.UNKNOWN,
                    error=str(exc),
                )

    def update(self, partial: Mapping[str, Any]) -> Configuration:
        return self.apply_update(partial).config

    def reset_to_defaults(self) -> Configuration:
        """Persist the default configuration and notify subscribers."""

        with self._lock:
            defaults = default_configuration()
            self.save(defaults)
            self._notify_subscribers(defaults)
            return defaults

    # --- derived queries -------------------------------------------------

    def has_api_key(self) -> bool:
        return bool(self.load().api_key.strip())

    def is_valid_api_key_format(self, api_key: str, provider: Provider | str | None = None) -> bool:
        return is_valid_key_format(api_key, provider)

    async def test_api_key(
        self, api_key: str, provider: Provider | str | None = None
    ) -> KeyTestResult:
        """Check ``api_key`` against the live provider API."""

        return await self.probe.test(api_key, provider)

    def get_opacity(self) -> float:
        return self.load().opacity

    def set_opacity(self, opacity: float) -> Configuration:
        try:
            value = clamp_opacity(opacity)
        except (TypeError, ValueError, OverflowError):
            LOGGER.warning(
                log_context("Ignoring non-numeric opacity.", event="config.opacity.invalid", value=opacity)
            )
            return self.load()
        return self.update({OPACITY_KEY: value})

    def get_language(self) -> str:
        return self.load().language or DEFAULT_LANGUAGE

    def set_language(self, language: str) -> Configuration:
        return self.update({LANGUAGE_KEY: language})

    def clear_all_config_files(self) -> ReconcileReport:
        """Delete the configuration file at every known location."""

        with self._lock:
            self._config = None
            return self.reconciler.force_clear()
