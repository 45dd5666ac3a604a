import json
import logging

from interview_coder.logging_utils import (
    FORMAT_JSON,
    FORMAT_STRUCTURED,
    LogSettings,
    _JsonLogFormatter,
    _StructuredLogFormatter,
    get_logger,
    log_context,
    log_duration,
    mask_secret,
)


class _ListHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def _capture(name):
    handler = _ListHandler()
    base = logging.getLogger(name)
    base.addHandler(handler)
    base.setLevel(logging.DEBUG)
    base.propagate = False
    return handler


def test_mask_secret_hides_the_key():
    assert mask_secret("sk-" + "x" * 40 + "abcd") == "sk-...abcd"
    assert mask_secret("short") == "***"
    assert mask_secret("") == "<empty>"
    assert mask_secret(None) == "<empty>"


def test_structured_message_moves_details_onto_record():
    handler = _capture("interview_coder.tests.adapter")
    logger = get_logger("interview_coder.tests.adapter", component="Tests")

    logger.info(log_context("Saved.", event="config.save.success", path="/tmp/config.json", skipped=None))

    record = handler.records[0]
    assert record.getMessage() == "Saved."
    assert record.component == "Tests"
    assert record.event == "config.save.success"
    assert record.details == {"path": "/tmp/config.json"}


def test_formatters_render_details():
    handler = _capture("interview_coder.tests.format")
    logger = get_logger("interview_coder.tests.format", component="Tests")
    logger.warning(log_context("Cleared.", event="config.reconcile.deleted", count=2, paths=["a", "b"]))
    record = handler.records[0]

    line = _StructuredLogFormatter().format(record)
    assert "WARNING" in line
    assert "interview_coder.tests.format:Tests" in line
    assert "event=config.reconcile.deleted" in line
    assert "count=2 paths=[a, b]" in line

    payload = json.loads(_JsonLogFormatter().format(record))
    assert payload["event"] == "config.reconcile.deleted"
    assert payload["details"] == {"count": 2, "paths": ["a", "b"]}


def test_log_duration_records_collected_fields():
    handler = _capture("interview_coder.tests.duration")
    logger = get_logger("interview_coder.tests.duration")

    with log_duration(logger, "Checked.", event="config.reconcile") as details:
        details["cleared"] = 1

    record = handler.records[0]
    assert record.details["cleared"] == 1
    assert record.details["status"] == "success"
    assert "duration_ms" in record.details


def test_api_keys_are_masked_in_details():
    handler = _capture("interview_coder.tests.redaction")
    logger = get_logger("interview_coder.tests.redaction")
    secret = "sk-ant-" + "q" * 40 + "wxyz"

    logger.info(log_context("Testing API key.", event="key_probe.request", api_key=secret, provider="anthropic"))

    record = handler.records[0]
    assert record.details == {"api_key": "sk-...wxyz", "provider": "anthropic"}
    assert secret not in _StructuredLogFormatter().format(record)


def test_log_settings_from_env(tmp_path):
    settings = LogSettings.from_env(
        {
            "INTERVIEW_CODER_LOG_LEVEL": "debug",
            "INTERVIEW_CODER_LOG_FORMAT": "JSON",
            "INTERVIEW_CODER_LOG_DIR": str(tmp_path),
            "INTERVIEW_CODER_LOG_MAX_BYTES": "1024",
            "INTERVIEW_CODER_LOG_BACKUP_COUNT": "-2",
        }
    )

    assert settings.level == logging.DEBUG
    assert settings.log_format == FORMAT_JSON
    assert settings.directory == tmp_path
    assert settings.max_bytes == 1024
    assert settings.backup_count == 3
    assert isinstance(settings.formatter(), _JsonLogFormatter)


def test_log_settings_reject_unknown_values():
    settings = LogSettings.from_env({"INTERVIEW_CODER_LOG_LEVEL": "chatty", "INTERVIEW_CODER_LOG_FORMAT": "xml"})

    assert settings.level == logging.INFO
    assert settings.log_format == FORMAT_STRUCTURED
    assert settings.rejected_format == "xml"
