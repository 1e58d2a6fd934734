import socket
import ssl

import httpx
import openai
import pytest

from services.openai.error_classifier import classify_exception, classify_status

REQUEST = httpx.Request("POST", "https://reasoning.example/v1/chat/completions")


def _status_error(code: int) -> openai.APIStatusError:
    response = httpx.Response(code, request=REQUEST)
    return openai.APIStatusError(f"status {code}", response=response, body=None)


@pytest.mark.parametrize(
    "code,message",
    [
        (401, "API authentication failed"),
        (403, "API access denied"),
        (404, "API endpoint not found"),
        (429, "API rate limited"),
        (500, "Server error"),
        (503, "Server error"),
        (418, "API error (418)"),
    ],
)
def test_status_codes(code, message):
    assert classify_status(code) == message
    assert classify_exception(_status_error(code)) == message


def test_timeout():
    assert classify_exception(openai.APITimeoutError(request=REQUEST)) == "Network timeout"
    assert classify_exception(TimeoutError()) == "Network timeout"


def test_tls_failure_found_in_cause_chain():
    error = openai.APIConnectionError(request=REQUEST)
    error.__cause__ = ssl.SSLError("certificate verify failed")

    assert classify_exception(error) == "SSL certificate error"


def test_unknown_host():
    error = openai.APIConnectionError(request=REQUEST)
    error.__cause__ = socket.gaierror("Name or service not known")

    assert classify_exception(error) == "Network connection failed"
    assert classify_exception(openai.APIConnectionError(request=REQUEST)) == "Network connection failed"


def test_other_errors_keep_their_text():
    assert classify_exception(ValueError("boom")) == "Network error: boom"
