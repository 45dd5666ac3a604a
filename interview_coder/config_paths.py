"""Resolution of every location where a configuration file may live."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Mapping

from .app_identity import (
    APP_ID,
    APP_LOG_NAMESPACE,
    CONFIG_FILE_NAME,
    LEGACY_APP_IDS,
    PROFILE_DIR_ENV,
    RUNTIME_APP_ID,
)
from .logging_utils import get_logger, log_context

LOGGER = get_logger(f"{APP_LOG_NAMESPACE}.config.paths", component="PathResolver")

OS_WINDOWS = "windows"
OS_MACOS = "macos"
OS_LINUX = "linux"


def os_family(platform: str) -> str:
    """Collapse a ``sys.platform`` value into one of the supported OS families."""

    if platform.startswith(("win", "cygwin")):
        return OS_WINDOWS
    if platform == "darwin":
        return OS_MACOS
    return OS_LINUX


class PathResolver:
    """Enumerate the canonical and legacy configuration paths.

    Every input is injectable so that the output is a pure function of the
    platform and environment. None of the public methods raise: a location
    that cannot be determined is logged and left out.
    """

    def __init__(
        self,
        *,
        platform: str | None = None,
        environ: Mapping[str, str] | None = None,
        home: str | os.PathLike[str] | None = None,
        cwd: str | os.PathLike[str] | None = None,
        user_data_dir: str | os.PathLike[str] | None = None,
    ) -> None:
        self.platform = platform or sys.platform
        self.os_family = os_family(self.platform)
        self._environ = os.environ if environ is None else environ
        self._home = Path(home) if home is not None else None
        self._cwd = Path(cwd) if cwd is not None else None
        self._user_data_dir = Path(user_data_dir) if user_data_dir is not None else None

    def _home_dir(self) -> Path | None:
        if self._home is not None:
            return self._home
        try:
            return Path.home()
        except (RuntimeError, KeyError) as exc:
            LOGGER.warning(
                log_context(
                    "Could not determine the home directory.",
                    event="config.paths.home_unavailable",
                    error=str(exc),
                )
            )
            return None

    def _cwd_dir(self) -> Path | None:
        if self._cwd is not None:
            return self._cwd
        try:
            return Path.cwd()
        except OSError as exc:
            LOGGER.warning(
                log_context(
                    "Could not determine the working directory.",
                    event="config.paths.cwd_unavailable",
                    error=str(exc),
                )
            )
            return None

    def _windows_profile(self) -> Path | None:
        profile = self._environ.get("USERPROFILE") or self._environ.get("HOMEPATH")
        return Path(profile) if profile else None

    def app_data_root(self) -> Path | None:
        """Return the per-user application data root for the current OS."""

        if self.os_family == OS_WINDOWS:
            appdata = self._environ.get("APPDATA")
            if appdata:
                return Path(appdata)
            profile = self._windows_profile() or self._home_dir()
            return profile / "AppData" / "Roaming" if profile else None
        if self.os_family == OS_MACOS:
            home = self._home_dir()
            return home / "Library" / "Application Support" if home else None
        xdg = self._environ.get("XDG_CONFIG_HOME")
        if xdg and Path(xdg).is_absolute():
            return Path(xdg)
        home = self._home_dir()
        return home / ".config" if home else None

    def user_data_dir(self) -> Path | None:
        """Return the application's private data directory, if resolvable.

        An explicit ``user_data_dir`` wins over ``INTERVIEW_CODER_PROFILE_DIR``,
        which wins over the platform location.
        """

        if self._user_data_dir is not None:
            return self._user_data_dir
        override = self._environ.get(PROFILE_DIR_ENV)
        if override:
            return Path(override).expanduser()
        root = self.app_data_root()
        if root is None:
            LOGGER.warning(
                log_context(
                    "Could not access the user data path.",
                    event="config.paths.user_data_unavailable",
                    platform=self.platform,
                )
            )
            return None
        return root / APP_ID

    def canonical_path(self) -> Path:
        """Return the path of the active configuration file."""

        data_dir = self.user_data_dir()
        if data_dir is not None:
            return data_dir / CONFIG_FILE_NAME
        cwd = self._cwd_dir()
        fallback = cwd / CONFIG_FILE_NAME if cwd else Path(CONFIG_FILE_NAME)
        LOGGER.warning(
            log_context(
                "Using the working directory for the configuration file.",
                event="config.paths.canonical_fallback",
                path=str(fallback),
            )
        )
        return fallback

    def legacy_paths(self) -> list[Path]:
        """Return configuration paths left behind by other app identities."""

        if self.os_family == OS_WINDOWS:
            profile = self._windows_profile()
            if profile is None:
                return []
            root = profile / "AppData" / "Roaming"
            identities: tuple[str, ...] = (RUNTIME_APP_ID, APP_ID)
        elif self.os_family == OS_MACOS:
            home = self._home_dir()
            if home is None:
                return []
            root = home / "Library" / "Application Support"
            identities = (RUNTIME_APP_ID, APP_ID)
        else:
            home = self._home_dir()
            if home is None:
                return []
            root = home / ".config"
            identities = (RUNTIME_APP_ID, APP_ID, *LEGACY_APP_IDS)
        return [root / identity / CONFIG_FILE_NAME for identity in identities]

    def candidate_paths(self) -> list[Path]:
        """Return every place a configuration file may exist, in visiting order."""

        candidates: list[Path] = []
        data_dir = self.user_data_dir()
        if data_dir is not None:
            candidates.append(data_dir / CONFIG_FILE_NAME)
        candidates.extend(self.legacy_paths())
        cwd = self._cwd_dir()
        if cwd is not None:
            candidates.append(cwd / CONFIG_FILE_NAME)

        unique: list[Path] = []
        seen: set[str] = set()
        for candidate in candidates:
            marker = os.path.normcase(os.path.normpath(str(candidate)))
            if marker in seen:
                continue
            seen.add(marker)
            unique.append(candidate)
        return unique
