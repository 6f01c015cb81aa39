from __future__ import annotations


class ComplianceRiskError(Exception):
    """Base class for errors raised by the scoring engine."""


class InvalidInputError(ComplianceRiskError, ValueError):
    """A required normalized fact is missing or a fact is ill-formed."""


class ConfigurationError(ComplianceRiskError):
    """The scoring policy is inconsistent (weights, thresholds, templates)."""


class StoreError(ComplianceRiskError):
    """The snapshot store could not persist or read assessments."""
