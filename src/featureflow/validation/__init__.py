"""Input validation exports."""

from featureflow.validation.feature_validator import FeatureValidator, ValidationResult

__all__ = ["FeatureValidator", "ValidationResult"]
