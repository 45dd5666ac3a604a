import asyncio
from unittest.mock import MagicMock, patch

import requests

from interview_coder.api_key_probe import (
    ANTHROPIC_MODELS_URL,
    ANTHROPIC_VERSION,
    GEMINI_MODELS_URL,
    OPENAI_MODELS_URL,
    ApiKeyProbe,
)
from interview_coder.config_schema import Provider
from interview_coder.errors import ErrorKind

OPENAI_KEY = "sk-" + "A1b2" * 10
ANTHROPIC_KEY = "sk-ant-" + "Z9y8" * 10
GEMINI_KEY = "AIzaSyExampleKey123"

GET_TARGET = "interview_coder.api_key_probe.requests.get"


def _response(status, text="", payload=None):
    response = MagicMock()
    response.status_code = status
    response.text = text
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    return response


def _run(coro):
    return asyncio.run(coro)


def test_accepted_key_is_valid():
    with patch(GET_TARGET, return_value=_response(200)) as mock_get:
        result = _run(ApiKeyProbe(timeout=2).test(OPENAI_KEY))

    assert result.valid is True
    assert result.error is None
    args, kwargs = mock_get.call_args
    assert args[0] == OPENAI_MODELS_URL
    assert kwargs["headers"] == {"Authorization": f"Bearer {OPENAI_KEY}"}
    assert kwargs["timeout"] == 2.0


def test_rejected_key_is_authentication_error():
    with patch(GET_TARGET, return_value=_response(401, payload={"error": {"message": "bad key"}})):
        result = _run(ApiKeyProbe().test(OPENAI_KEY))

    assert result.valid is False
    assert result.error_kind is ErrorKind.AUTHENTICATION
    assert "Invalid API key" in result.error


def test_rate_limited_key():
    with patch(GET_TARGET, return_value=_response(429)):
        result = _run(ApiKeyProbe().test(ANTHROPIC_KEY))

    assert result.error_kind is ErrorKind.RATE_LIMITED
    assert "Rate limit exceeded" in result.error


def test_server_error():
    with patch(GET_TARGET, return_value=_response(503)):
        result = _run(ApiKeyProbe().test(GEMINI_KEY, "gemini"))

    assert result.error_kind is ErrorKind.SERVER_ERROR
    assert result.error == "Gemini server error. Please try again later."


def test_other_status_reports_provider_message():
    with patch(GET_TARGET, return_value=_response(404, payload={"error": {"message": "not found"}})):
        result = _run(ApiKeyProbe().test(OPENAI_KEY))

    assert result.error_kind is ErrorKind.UNKNOWN
    assert result.error == "Error: not found"


def test_gemini_bad_request_with_invalid_key():
    body = '{"error": {"status": "INVALID_ARGUMENT", "details": [{"reason": "API_KEY_INVALID"}]}}'
    with patch(GET_TARGET, return_value=_response(400, text=body)) as mock_get:
        result = _run(ApiKeyProbe().test(GEMINI_KEY))

    assert result.error_kind is ErrorKind.AUTHENTICATION
    args, kwargs = mock_get.call_args
    assert args[0] == GEMINI_MODELS_URL
    assert kwargs["headers"] == {"x-goog-api-key": GEMINI_KEY}


def test_anthropic_headers():
    with patch(GET_TARGET, return_value=_response(200)) as mock_get:
        result = _run(ApiKeyProbe().test(ANTHROPIC_KEY))

    assert result.valid is True
    args, kwargs = mock_get.call_args
    assert args[0] == ANTHROPIC_MODELS_URL
    assert kwargs["headers"] == {"x-api-key": ANTHROPIC_KEY, "anthropic-version": ANTHROPIC_VERSION}


def test_timeout_is_reported():
    with patch(GET_TARGET, side_effect=requests.exceptions.Timeout("slow")):
        result = _run(ApiKeyProbe(timeout=1.0).test(OPENAI_KEY))

    assert result.valid is False
    assert result.error_kind is ErrorKind.UNKNOWN
    assert result.error == "Timed out contacting OpenAI after 1 seconds."


def test_connection_error_is_reported():
    with patch(GET_TARGET, side_effect=requests.exceptions.ConnectionError("dns failure")):
        result = _run(ApiKeyProbe().test(OPENAI_KEY))

    assert result.error_kind is ErrorKind.CONNECTIVITY
    assert "dns failure" in result.error


def test_bad_format_never_reaches_the_network():
    with patch(GET_TARGET) as mock_get:
        short = _run(ApiKeyProbe().test("sk-short"))
        empty = _run(ApiKeyProbe().test("   "))
        mismatched = _run(ApiKeyProbe().test(ANTHROPIC_KEY, Provider.OPENAI))

    mock_get.assert_not_called()
    assert short.error_kind is ErrorKind.INVALID_FORMAT
    assert short.error == "Invalid OpenAI API key format."
    assert empty.error_kind is ErrorKind.INVALID_FORMAT
    assert mismatched.error_kind is ErrorKind.INVALID_FORMAT


def test_unknown_provider():
    with patch(GET_TARGET) as mock_get:
        result = _run(ApiKeyProbe().test(OPENAI_KEY, "mistral"))

    mock_get.assert_not_called()
    assert result.valid is False
    assert result.error == "Unknown API provider"


def test_concurrent_probes_are_independent():
    def _fake_get(url, headers, timeout):
        return _response(200 if url == OPENAI_MODELS_URL else 401)

    async def _all():
        probe = ApiKeyProbe()
        return await asyncio.gather(
            probe.test(OPENAI_KEY),
            probe.test(ANTHROPIC_KEY),
            probe.test(GEMINI_KEY),
        )

    with patch(GET_TARGET, side_effect=_fake_get):
        openai, anthropic, gemini = _run(_all())

    assert openai.valid is True
    assert anthropic.error_kind is ErrorKind.AUTHENTICATION
    assert gemini.error_kind is ErrorKind.AUTHENTICATION


def test_manager_delegates_to_probe(make_manager):
    manager = make_manager()

    with patch(GET_TARGET, return_value=_response(200)):
        result = _run(manager.test_api_key(GEMINI_KEY))

    assert result.valid is True
