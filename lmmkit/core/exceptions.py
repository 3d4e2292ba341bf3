"""
Exception hierarchy for lmmkit.

All exceptions inherit from LmmkitError to allow catching any
library-specific error. Domain-specific exceptions should inherit from
the appropriate base class here.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""


class LmmkitError(Exception):
    """Base exception for all lmmkit errors."""
    pass


class ValidationError(LmmkitError):
    """
    Input validation failed.

    Raised when user-provided inputs fail validation checks.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when array shapes don't match expected dimensions or
    when multiple arrays have inconsistent shapes.
    """
    pass


class RankDeficientDesignError(ValidationError):
    """
    Fixed-effects design matrix is not of full column rank.

    Raised before any optimization starts; the model cannot be fit.

    Attributes:
        rank: Numerical rank of the design matrix
        expected_rank: Number of columns (p)
    """

    def __init__(
        self,
        message: str,
        rank: int | None = None,
        expected_rank: int | None = None
    ):
        super().__init__(message)
        self.rank = rank
        self.expected_rank = expected_rank


class DegenerateGroupingFactorError(ValidationError):
    """
    Grouping factor has fewer than two levels.

    Attributes:
        group: Name of the grouping factor
        n_levels: Number of distinct levels found
    """

    def __init__(
        self,
        message: str,
        group: str | None = None,
        n_levels: int | None = None
    ):
        super().__init__(message)
        self.group = group
        self.n_levels = n_levels


class NotNestedError(ValidationError):
    """
    Two fitted models are not nested and cannot be compared by a
    likelihood ratio test.
    """
    pass


class NumericalError(LmmkitError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class NotPositiveDefiniteError(NumericalError):
    """
    Matrix is not positive definite.

    Raised when an operation requires a positive definite matrix
    (e.g., Cholesky decomposition) but the matrix fails this requirement.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        min_eigenvalue: Minimum eigenvalue, if computed
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        min_eigenvalue: float | None = None
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.min_eigenvalue = min_eigenvalue


class SingularCovarianceError(NotPositiveDefiniteError):
    """
    Penalized least squares factorization broke down at the current θ.

    Raised by the PLS solver when a Cholesky factor has a non-positive
    or non-finite pivot. The profiled deviance turns this into a large
    finite penalty so the optimizer can move away from the boundary.
    """
    pass


class ConvergenceError(LmmkitError):
    """
    Iterative algorithm failed to converge.

    Raised when an iterative method fails hard enough that no usable
    estimate exists. Exhausting the iteration budget of the LMM
    optimizer is not an error; see NonConvergenceWarning.

    Attributes:
        iterations: Number of iterations completed
        final_change: Final parameter or objective change
        reason: Why convergence failed (e.g., 'max_iterations', 'diverging')
        threshold: The convergence threshold that was not met
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None
    ):
        super().__init__(message)
        self.iterations = iterations
        self.final_change = final_change
        self.reason = reason
        self.threshold = threshold


class NonConvergenceWarning(RuntimeWarning):
    """
    Optimizer exhausted its iteration budget before meeting tolerance.

    The best estimate found so far is still returned, flagged with
    converged=False.
    """
    pass
