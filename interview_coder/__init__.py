from .api_key_probe import ApiKeyProbe, KeyTestResult
from .config_manager import ConfigManager, LoadOutcome, PersistenceRecord, UpdateOutcome
from .config_paths import PathResolver
from .config_reconciler import ConfigReconciler, ReconcileAction, ReconcileReport
from .config_schema import Configuration, Provider, allowed_models, default_configuration
from .config_validator import is_valid, validate
from .errors import ErrorKind

__all__ = [
    "ApiKeyProbe",
    "KeyTestResult",
    "ConfigManager",
    "LoadOutcome",
    "PersistenceRecord",
    "UpdateOutcome",
    "PathResolver",
    "ConfigReconciler",
    "ReconcileAction",
    "ReconcileReport",
    "Configuration",
    "Provider",
    "allowed_models",
    "default_configuration",
    "is_valid",
    "validate",
    "ErrorKind",
]
