import pytest

from plainstep.runtime_checks import (
    is_missing_browser_error,
    normalize_key_name,
    normalize_space,
    normalize_url,
    parse_seconds,
)


def test_missing_browser_error_detection() -> None:
    assert is_missing_browser_error(RuntimeError("Executable doesn't exist at /ms-playwright/chromium"))
    assert is_missing_browser_error(RuntimeError("Please run: playwright install"))
    assert not is_missing_browser_error(RuntimeError("Timeout 30000ms exceeded"))


def test_normalize_space_collapses_whitespace() -> None:
    assert normalize_space("  Sign \n\t in  ") == "Sign in"
    assert normalize_space(None) == ""
    assert normalize_space("abcdef", limit=3) == "abc"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("example.com", "https://example.com"),
        ("  example.com:8080/login ", "https://example.com:8080/login"),
        ("http://localhost:3000", "http://localhost:3000"),
        ("about:blank", "about:blank"),
        ("", ""),
    ],
)
def test_normalize_url(raw: str, expected: str) -> None:
    assert normalize_url(raw) == expected


def test_normalize_key_name_is_case_insensitive() -> None:
    assert normalize_key_name("enter") == "Enter"
    assert normalize_key_name(" ARROWDOWN ") == "ArrowDown"
    assert normalize_key_name("Hyper") is None


def test_parse_seconds() -> None:
    assert parse_seconds("2") == 2.0
    assert parse_seconds(" 0.5 ") == 0.5
    assert parse_seconds("-1") is None
    assert parse_seconds("soon") is None
    assert parse_seconds("inf") is None
