"""Feature name validation tests."""

from __future__ import annotations

import pytest

from featureflow.validation import FeatureValidator


@pytest.mark.parametrize("name", ["a", "add-auth", "auth2", "my-feature", "x-1-y", "z-"])
def test_valid_names_accepted(name: str) -> None:
    """Lowercase slugs starting with a letter should validate."""
    result = FeatureValidator().validate(name)
    assert result.valid
    assert result.error is None


@pytest.mark.parametrize(
    ("name", "fragment"),
    [
        ("", "cannot be empty"),
        ("2fa", "start with a lowercase letter"),
        ("-auth", "start with a lowercase letter"),
        ("Add-auth", "uppercase"),
        ("add auth", "whitespace"),
        ("add\tauth", "whitespace"),
        ("add_auth", "lowercase letters, digits, and hyphens"),
        ("add.auth", "lowercase letters, digits, and hyphens"),
    ],
)
def test_invalid_names_explain_problem_with_example(name: str, fragment: str) -> None:
    """Rejections should name the problem and show a valid example."""
    result = FeatureValidator().validate(name)
    assert not result.valid
    assert result.error
    assert fragment in result.error
    assert '"my-feature"' in result.error


def test_trailing_newline_is_rejected() -> None:
    """A name with a trailing newline must not slip through the anchor."""
    assert not FeatureValidator().validate("auth\n").valid
