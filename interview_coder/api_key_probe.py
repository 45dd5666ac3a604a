"""Live connectivity checks for provider API keys."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import requests

from .app_identity import APP_LOG_NAMESPACE
from .config_schema import Provider, detect_provider, is_valid_key_format
from .errors import ErrorKind
from .logging_utils import get_logger, log_context

LOGGER = get_logger(f"{APP_LOG_NAMESPACE}.key_probe", component="ApiKeyProbe")

OPENAI_MODELS_URL = "https://api.openai.com/v1/models"
ANTHROPIC_MODELS_URL = "https://api.anthropic.com/v1/models"
ANTHROPIC_VERSION = "2023-06-01"
GEMINI_MODELS_URL = "https://generativelanguage.googleapis.com/v1beta/models"

_PROVIDER_LABELS = {
    Provider.OPENAI: "OpenAI",
    Provider.GEMINI: "Gemini",
    Provider.ANTHROPIC: "Anthropic",
}


@dataclass(frozen=True)
class KeyTestResult:
    valid: bool
    error: str | None = None
    error_kind: ErrorKind | None = None


def _request_for(provider: Provider, api_key: str) -> tuple[str, dict[str, str]]:
    if provider is Provider.OPENAI:
        return OPENAI_MODELS_URL, {"Authorization": f"Bearer {api_key}"}
    if provider is Provider.ANTHROPIC:
        return ANTHROPIC_MODELS_URL, {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
    return GEMINI_MODELS_URL, {"x-goog-api-key": api_key}


def _error_detail(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()[:200]
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return ""


def _is_gemini_bad_key(response: requests.Response) -> bool:
    # Gemini answers an unknown key with 400 rather than 401.
    body = response.text or ""
    return "API_KEY_INVALID" in body or "API key not valid" in body


def classify_response(provider: Provider, response: requests.Response) -> KeyTestResult:
    """Turn an HTTP response from a provider into a :class:`KeyTestResult`."""

    label = _PROVIDER_LABELS[provider]
    status = response.status_code
    if 200 <= status < 300:
        return KeyTestResult(True)
    if status in (401, 403) or (
        provider is Provider.GEMINI and status == 400 and _is_gemini_bad_key(response)
    ):
        return KeyTestResult(
            False,
            f"Invalid API key. Please check your {label} key and try again.",
            ErrorKind.AUTHENTICATION,
        )
    if status == 429:
        return KeyTestResult(
            False,
            f"Rate limit exceeded. Your {label} API key has reached its request limit "
            "or has insufficient quota.",
            ErrorKind.RATE_LIMITED,
        )
    if status >= 500:
        return KeyTestResult(
            False,
            f"{label} server error. Please try again later.",
            ErrorKind.SERVER_ERROR,
        )
    detail = _error_detail(response)
    message = f"Error: {detail}" if detail else f"Unknown error validating {label} API key (HTTP {status})."
    return KeyTestResult(False, message, ErrorKind.UNKNOWN)


class ApiKeyProbe:
    """Check an API key against the provider with one lightweight list call.

    The probe holds no mutable state, so concurrent ``test`` calls are safe.
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = float(timeout) if timeout and timeout > 0 else self.DEFAULT_TIMEOUT

    def _probe(self, provider: Provider, api_key: str) -> KeyTestResult:
        label = _PROVIDER_LABELS[provider]
        url, headers = _request_for(provider, api_key.strip())
        LOGGER.info(
            log_context(
                "Testing API key.",
                event="key_probe.request",
                provider=provider.value,
                api_key=api_key,
            )
        )
        try:
            response = requests.get(url, headers=headers, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            LOGGER.warning(
                log_context(
                    "API key test timed out.",
                    event="key_probe.timeout",
                    provider=provider.value,
                    error=str(exc),
                )
            )
            return KeyTestResult(
                False,
                f"Timed out contacting {label} after {self.timeout:.0f} seconds.",
                ErrorKind.UNKNOWN,
            )
        except requests.exceptions.RequestException as exc:
            LOGGER.warning(
                log_context(
                    "API key test could not reach the provider.",
                    event="key_probe.connection_failed",
                    provider=provider.value,
                    error=str(exc),
                )
            )
            return KeyTestResult(False, f"Could not reach {label}: {exc}", ErrorKind.CONNECTIVITY)

        result = classify_response(provider, response)
        if result.valid:
            LOGGER.info(log_context("API key accepted.", event="key_probe.success", provider=provider.value))
        else:
            LOGGER.error(
                log_context(
                    "API key test failed.",
                    event="key_probe.failure",
                    provider=provider.value,
                    status=response.status_code,
                    error_kind=result.error_kind.value if result.error_kind else None,
                )
            )
        return result

    async def test(self, api_key: str, provider: Provider | str | None = None) -> KeyTestResult:
        """Validate ``api_key`` against ``provider`` (inferred from the key when omitted)."""

        if not isinstance(api_key, str) or not api_key.strip():
            return KeyTestResult(False, "API key is empty.", ErrorKind.INVALID_FORMAT)
        if provider is None:
            resolved = detect_provider(api_key)
            LOGGER.info(
                log_context(
                    "Auto-detected API key provider for testing.",
                    event="key_probe.provider_detected",
                    provider=resolved.value,
                )
            )
        else:
            try:
                resolved = Provider(provider)
            except ValueError:
                return KeyTestResult(False, "Unknown API provider", ErrorKind.UNKNOWN)

        if not is_valid_key_format(api_key, resolved):
            return KeyTestResult(
                False,
                f"Invalid {_PROVIDER_LABELS[resolved]} API key format.",
                ErrorKind.INVALID_FORMAT,
            )
        return await asyncio.to_thread(self._probe, resolved, api_key)
