"""Feature name validation."""

from __future__ import annotations

import re
from dataclasses import dataclass

FEATURE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")
VALID_EXAMPLES = ('"my-feature"', '"add-auth"', '"auth2"')
_EXAMPLES_HINT = f"e.g. {', '.join(VALID_EXAMPLES)}"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a feature-name check."""

    valid: bool
    error: str | None = None


class FeatureValidator:
    """Stateless validator for feature identifiers."""

    def validate(self, name: str) -> ValidationResult:
        if not name:
            return ValidationResult(
                valid=False,
                error=(
                    "Feature name cannot be empty. Use a lowercase letter followed by "
                    f"lowercase letters, digits, or hyphens ({_EXAMPLES_HINT})."
                ),
            )
        if FEATURE_NAME_PATTERN.fullmatch(name):
            return ValidationResult(valid=True)
        return ValidationResult(valid=False, error=self._describe_problem(name))

    @staticmethod
    def _describe_problem(name: str) -> str:
        if any(ch.isspace() for ch in name):
            problem = "must not contain whitespace"
        elif any(ch.isupper() for ch in name):
            problem = "must not contain uppercase letters"
        elif not name[0].isalpha() or not name[0].islower():
            problem = "must start with a lowercase letter"
        else:
            problem = "may only contain lowercase letters, digits, and hyphens"
        return f"Invalid feature name {name!r}: it {problem} ({_EXAMPLES_HINT})."
