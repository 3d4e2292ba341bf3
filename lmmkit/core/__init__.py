"""
Core infrastructure for lmmkit.

Shared abstractions and utilities used by the mixed-model engine.

Key components:
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing and numerical tolerance tiers
"""

from lmmkit.core.result import Result
from lmmkit.core.exceptions import (
    LmmkitError,
    ValidationError,
    DimensionError,
    RankDeficientDesignError,
    DegenerateGroupingFactorError,
    NotNestedError,
    NumericalError,
    NotPositiveDefiniteError,
    SingularCovarianceError,
    ConvergenceError,
    NonConvergenceWarning,
)

__all__ = [
    # Result
    "Result",
    # Exceptions
    "LmmkitError",
    "ValidationError",
    "DimensionError",
    "RankDeficientDesignError",
    "DegenerateGroupingFactorError",
    "NotNestedError",
    "NumericalError",
    "NotPositiveDefiniteError",
    "SingularCovarianceError",
    "ConvergenceError",
    "NonConvergenceWarning",
]
