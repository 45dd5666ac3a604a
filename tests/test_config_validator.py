import pytest

from interview_coder.config_schema import default_configuration
from interview_coder.config_validator import is_valid, validate


def _valid_payload(**overrides):
    payload = default_configuration().to_payload()
    payload.update(overrides)
    return payload


def test_valid_payload_is_accepted():
    assert is_valid(_valid_payload())
    assert is_valid(
        _valid_payload(
            apiProvider="anthropic",
            extractionModel="claude-3-opus-20240229",
            solutionModel="claude-3-5-sonnet-20241022",
            debuggingModel="claude-3-7-sonnet-20250219",
        )
    )


def test_missing_opacity_is_invalid():
    payload = {
        "apiKey": "x",
        "apiProvider": "gemini",
        "extractionModel": "gemini-2.5-flash",
        "solutionModel": "gemini-2.5-flash",
        "debuggingModel": "gemini-2.5-flash",
        "language": "python",
    }
    outcome = validate(payload)

    assert not outcome.valid
    assert "opacity" in outcome.reason


def test_extra_key_is_invalid():
    outcome = validate(_valid_payload(theme="dark"))

    assert not outcome
    assert "theme" in outcome.reason


def test_unknown_provider_is_invalid():
    assert not is_valid(_valid_payload(apiProvider="mistral"))


def test_model_from_other_provider_is_invalid():
    outcome = validate(_valid_payload(apiProvider="openai"))

    assert not outcome.valid
    assert "extractionModel" in outcome.reason


def test_key_set_is_checked_before_provider():
    payload = _valid_payload(apiProvider="mistral")
    del payload["language"]

    assert "language" in validate(payload).reason


@pytest.mark.parametrize("raw", [None, [], "config", 3, 2.5, True])
def test_non_objects_are_invalid(raw):
    assert is_valid(raw) is False


def test_unhashable_values_do_not_crash():
    assert is_valid(_valid_payload(apiProvider=["openai"])) is False
    assert is_valid(_valid_payload(solutionModel={"name": "gpt-5"})) is False
