"""Delete every configuration file the application could pick up.

Run this when API keys or model choices do not seem to update, then restart
the application to start from a fresh configuration::

    python -m interview_coder.clear_config
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from .app_identity import APP_DISPLAY_NAME, APP_LOG_NAMESPACE
from .config_paths import PathResolver
from .config_reconciler import ConfigReconciler
from .logging_utils import get_logger, log_context, setup_logging

LOGGER = get_logger(f"{APP_LOG_NAMESPACE}.scripts.clear_config", component="ClearConfig")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=f"Remove {APP_DISPLAY_NAME} configuration files from every known location.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only list the configuration files that would be removed.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show structured log output while clearing.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None, resolver: PathResolver | None = None) -> int:
    args = parse_args(argv)
    if args.verbose:
        setup_logging(log_to_file=False)
    else:
        logging.basicConfig(level=logging.WARNING)

    resolver = resolver or PathResolver()
    print(f"{APP_DISPLAY_NAME} config cleaner")
    print("Searching for configuration files...")

    if args.dry_run:
        found = [path for path in resolver.candidate_paths() if path.exists()]
        for path in found:
            print(f"  found: {path}")
        if not found:
            print("No configuration files found.")
        return 0

    report = ConfigReconciler(resolver).force_clear()
    for path in report.removed:
        print(f"  cleared: {path}")
    for failure in report.failures:
        print(f"  could not clear {failure.path}: {failure.error}")

    LOGGER.info(
        log_context(
            "Manual config reset finished.",
            event="scripts.clear_config.finished",
            cleared=len(report.removed),
            failures=len(report.failures),
        )
    )
    if report.removed:
        print(f"Cleared {len(report.removed)} configuration file(s).")
        print(f"Restart {APP_DISPLAY_NAME} to use a fresh configuration.")
    else:
        print("No configuration files found to clear.")
    return 1 if report.failures else 0


if __name__ == "__main__":
    sys.exit(main())
