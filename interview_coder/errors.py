"""Error classification shared by the configuration store and the key probe."""

from __future__ import annotations

from enum import Enum, unique


@unique
class ErrorKind(str, Enum):
    """Kinds of failure reported in outcome objects instead of being raised."""

    FILESYSTEM_UNAVAILABLE = "filesystem_unavailable"
    MISSING_FILE = "missing_file"
    CORRUPT_FILE = "corrupt_file"
    SCHEMA_INVALID = "schema_invalid"
    PERSISTENCE_FAILURE = "persistence_failure"
    INVALID_FORMAT = "invalid_format"
    AUTHENTICATION = "authentication"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CONNECTIVITY = "connectivity"
    UNKNOWN = "unknown"
