import pytest

from opportunity_ingestion.services.phone import (
    DISPLAY_PLACEHOLDER,
    InvalidPhoneNumberError,
    format_for_display,
    format_for_input,
    format_for_submission,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("", ""),
        ("5", "(5"),
        ("512", "(512"),
        ("5125", "(512) 5"),
        ("512555", "(512) 555"),
        ("5125551", "(512) 555-1"),
        ("512-555-1234", "(512) 555-1234"),
        ("+1 512 555 1234", "(512) 555-1234"),
        ("51255512349999", "(512) 555-1234"),
    ],
)
def test_format_for_input_progressively_masks_digits(raw: str, expected: str) -> None:
    assert format_for_input(raw) == expected


def test_format_for_input_handles_none() -> None:
    assert format_for_input(None) == ""


def test_format_for_submission_returns_e164() -> None:
    assert format_for_submission("(512) 555-1234") == "+15125551234"
    assert format_for_submission("1-512-555-1234") == "+15125551234"


def test_format_for_submission_treats_blank_as_absent() -> None:
    assert format_for_submission(None) is None
    assert format_for_submission("   ") is None


@pytest.mark.parametrize("raw", ["555-1234", "2-512-555-1234", "512555123456"])
def test_format_for_submission_rejects_invalid_numbers(raw: str) -> None:
    with pytest.raises(InvalidPhoneNumberError):
        format_for_submission(raw)


def test_format_for_display() -> None:
    assert format_for_display("5125551234") == "+1 (512) 555-1234"
    assert format_for_display("+1 512.555.1234") == "+1 (512) 555-1234"
    assert format_for_display("ext 42") == "ext 42"
    assert format_for_display("") == DISPLAY_PLACEHOLDER
    assert format_for_display(None) == DISPLAY_PLACEHOLDER


def test_masked_input_submits_as_e164() -> None:
    assert format_for_submission(format_for_input("4155551234")) == "+14155551234"
