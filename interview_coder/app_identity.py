"""Application identity constants shared across modules."""

APP_LOG_NAMESPACE = "interview_coder"
APP_ID = "interview-coder-v1"
APP_DISPLAY_NAME = "Interview Coder"

# Directory names used by older builds and by the bare hosting runtime.
LEGACY_APP_IDS: tuple[str, ...] = ("interview-coder",)
RUNTIME_APP_ID = "Electron"

CONFIG_FILE_NAME = "config.json"

PROFILE_DIR_ENV = "INTERVIEW_CODER_PROFILE_DIR"
