import pytest

from screen_agent.contracts.errors import (
    ConfigurationError,
    FatalProviderError,
    ParseFailure,
    TransientProviderError,
    classify_error,
    is_fatal_error,
    is_retryable_error,
)


@pytest.mark.parametrize(
    "message",
    [
        "API error (401): invalid api key",
        "insufficient balance",
        "余额不足",
        "Your account has been suspended",
        "You exceeded your current quota",
    ],
)
def test_fatal_messages(message):
    exc = classify_error(message)
    assert isinstance(exc, FatalProviderError)
    assert is_fatal_error(exc)
    assert not is_retryable_error(exc)


@pytest.mark.parametrize(
    "message,status",
    [
        ("API error (503): Service Unavailable", 503),
        ("API error (429): slow down", 429),
        ("Request timed out", None),
        ("Failed to contact API (connection error): refused", None),
    ],
)
def test_retryable_messages(message, status):
    exc = classify_error(message, status_code=status)
    assert isinstance(exc, TransientProviderError)
    assert is_retryable_error(exc)


def test_status_code_alone_decides_fatal():
    assert isinstance(classify_error("nope", status_code=403), FatalProviderError)


def test_account_without_state_keyword_is_not_fatal():
    assert not is_fatal_error(RuntimeError("account created"))


def test_parse_and_configuration_errors():
    assert is_retryable_error(ParseFailure("bad reply"))
    assert not is_fatal_error(ParseFailure("bad reply"))
    assert not is_retryable_error(ConfigurationError("no endpoints"))


def test_bad_request_is_neither():
    exc = classify_error("API error (400): malformed", status_code=400)
    assert not is_fatal_error(exc)
    assert not is_retryable_error(exc)
