"""Startup pruning of stale, invalid or corrupt configuration files."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .app_identity import APP_LOG_NAMESPACE
from .config_paths import PathResolver
from .config_validator import validate
from .logging_utils import get_logger, log_context, log_duration

LOGGER = get_logger(f"{APP_LOG_NAMESPACE}.config.reconciler", component="ConfigReconciler")


class ReconcileAction(str, Enum):
    MISSING = "missing"
    KEPT = "kept"
    DELETED_INVALID = "deleted_invalid"
    DELETED_CORRUPT = "deleted_corrupt"
    DELETED = "deleted"
    DELETE_FAILED = "delete_failed"


_REMOVED_ACTIONS = {
    ReconcileAction.DELETED_INVALID,
    ReconcileAction.DELETED_CORRUPT,
    ReconcileAction.DELETED,
}


@dataclass(frozen=True)
class PathOutcome:
    path: Path
    action: ReconcileAction
    reason: str | None = None
    error: str | None = None


@dataclass
class ReconcileReport:
    """Per-path record of a reconciliation or force-clear pass."""

    outcomes: list[PathOutcome] = field(default_factory=list)

    @property
    def removed(self) -> list[Path]:
        return [item.path for item in self.outcomes if item.action in _REMOVED_ACTIONS]

    @property
    def kept(self) -> list[Path]:
        return [item.path for item in self.outcomes if item.action is ReconcileAction.KEPT]

    @property
    def failures(self) -> list[PathOutcome]:
        return [item for item in self.outcomes if item.action is ReconcileAction.DELETE_FAILED]

    def surviving_noncanonical(self, canonical: Path) -> list[Path]:
        """Valid files that were kept but will never be read by the store."""

        marker = os.path.normcase(os.path.normpath(str(canonical)))
        return [
            path
            for path in self.kept
            if os.path.normcase(os.path.normpath(str(path))) != marker
        ]


def _exists(path: Path) -> bool:
    try:
        return path.exists()
    except OSError:
        return False


class ConfigReconciler:
    """Walk the resolved paths and delete every file that is not schema-valid."""

    def __init__(self, resolver: PathResolver) -> None:
        self.resolver = resolver

    def _delete(self, path: Path, action: ReconcileAction, reason: str | None) -> PathOutcome:
        try:
            path.unlink()
        except OSError as exc:
            LOGGER.warning(
                log_context(
                    "Could not remove config file.",
                    event="config.reconcile.delete_failed",
                    path=str(path),
                    error=str(exc),
                ),
                exc_info=True,
            )
            return PathOutcome(path, ReconcileAction.DELETE_FAILED, reason, str(exc))
        LOGGER.info(
            log_context(
                "Cleared config file.",
                event="config.reconcile.deleted",
                path=str(path),
                reason=reason,
            )
        )
        return PathOutcome(path, action, reason)

    def _reconcile_path(self, path: Path) -> PathOutcome:
        if not _exists(path):
            return PathOutcome(path, ReconcileAction.MISSING)

        LOGGER.info(log_context("Found config file.", event="config.reconcile.found", path=str(path)))
        try:
            stored = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning(
                log_context(
                    "Config file is unreadable; treating it as corrupt.",
                    event="config.reconcile.corrupt",
                    path=str(path),
                    error=str(exc),
                )
            )
            return self._delete(path, ReconcileAction.DELETED_CORRUPT, f"corrupt: {exc}")

        outcome = validate(stored)
        if not outcome.valid:
            return self._delete(path, ReconcileAction.DELETED_INVALID, outcome.reason)

        LOGGER.info(log_context("Valid config found; keeping it.", event="config.reconcile.kept", path=str(path)))
        return PathOutcome(path, ReconcileAction.KEPT)

    def reconcile(self) -> ReconcileReport:
        """Delete invalid or corrupt files, leaving valid ones untouched."""

        report = ReconcileReport()
        with log_duration(LOGGER, "Checked for old config files.", event="config.reconcile") as details:
            for path in self.resolver.candidate_paths():
                report.outcomes.append(self._reconcile_path(path))
            details["cleared"] = len(report.removed)
            details["kept"] = len(report.kept)
            details["failures"] = len(report.failures)

        canonical = self.resolver.canonical_path()
        leftovers = report.surviving_noncanonical(canonical)
        if leftovers:
            LOGGER.warning(
                log_context(
                    "Valid config files exist outside the canonical location and will be ignored.",
                    event="config.reconcile.noncanonical_survivors",
                    canonical=str(canonical),
                    paths=[str(path) for path in leftovers],
                )
            )
        return report

    def force_clear(self) -> ReconcileReport:
        """Delete the file at every resolved path regardless of validity."""

        report = ReconcileReport()
        with log_duration(LOGGER, "Force cleared config files.", event="config.force_clear") as details:
            for path in self.resolver.candidate_paths():
                if not _exists(path):
                    report.outcomes.append(PathOutcome(path, ReconcileAction.MISSING))
                    continue
                report.outcomes.append(self._delete(path, ReconcileAction.DELETED, "force clear"))
            details["cleared"] = len(report.removed)
            details["failures"] = len(report.failures)
        return report
