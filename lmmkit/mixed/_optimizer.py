"""
Derivative-free bounded minimization of the profiled criterion over θ.

Each objective evaluation refactorizes the PLS system, and the criterion
is only mildly non-smooth near the θ boundary, so the search uses
scipy's bounded Nelder-Mead simplex (default) or Powell's method rather
than a gradient-based method.

Convergence requires both:
    - the spread of θ over the simplex (Nelder-Mead) or the step in θ
      (Powell) below xtol × max(1, max|θ₀|)
    - the spread of the objective below ftol × max(1, |f(θ₀)|)
The iteration budget is enforced by the optimizer at every iteration.
Exhausting it is not an error: the best θ seen is returned with
converged=False.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize

from lmmkit.core.exceptions import ValidationError

SCIPY_OPTIMIZERS = ('Nelder-Mead', 'Powell')


@dataclass(frozen=True)
class OptimizeResult:
    """Outcome of one bounded minimization.

    Attributes:
        x: Best θ found.
        fun: Objective at x.
        converged: True if the tolerances were met within the budget.
        nit: Iterations used.
        nfev: Objective evaluations used.
        message: Optimizer status message.
        method: Optimizer name.
    """
    x: NDArray
    fun: float
    converged: bool
    nit: int
    nfev: int
    message: str
    method: str


class _TrackedObjective:
    """Objective wrapper remembering the best point evaluated."""

    def __init__(self, fun: Callable[[NDArray], float]):
        self._fun = fun
        self.nfev = 0
        self.best_x: NDArray | None = None
        self.best_f = np.inf

    def __call__(self, x: NDArray) -> float:
        self.nfev += 1
        f = float(self._fun(x))
        if f < self.best_f:
            self.best_f = f
            self.best_x = np.array(x, dtype=np.float64)
        return f


def minimize_bounded(
    fun: Callable[[NDArray], float],
    x0: NDArray,
    bounds: list[tuple[float | None, float | None]],
    method: str = 'Nelder-Mead',
    xtol: float = 1e-6,
    ftol: float = 1e-8,
    max_iter: int = 1000,
    initial_step: float = 0.25,
) -> OptimizeResult:
    """Minimize fun over the box `bounds` without derivatives.

    Args:
        fun: Objective θ → float. Must return a finite value everywhere
            in the box (the profiled deviance returns a penalty instead
            of raising).
        x0: Starting point, inside the box.
        bounds: (lower, upper) per component, None for unbounded.
        method: 'Nelder-Mead' or 'Powell'.
        xtol: Relative tolerance on θ.
        ftol: Relative tolerance on the objective.
        max_iter: Iteration budget.
        initial_step: Edge length of the initial Nelder-Mead simplex,
            stepping each coordinate upward from x0.

    Returns:
        OptimizeResult with the best point found.

    Raises:
        ValidationError: On an unknown method or a non-positive budget.
    """
    if method not in SCIPY_OPTIMIZERS:
        raise ValidationError(
            f"Unknown optimizer '{method}'. "
            f"Valid options: {', '.join(SCIPY_OPTIMIZERS)}"
        )
    if max_iter < 1:
        raise ValidationError(f"max_iter must be >= 1, got {max_iter}")

    x0 = np.asarray(x0, dtype=np.float64)
    tracked = _TrackedObjective(fun)
    f0 = tracked(x0)
    x_scale = max(1.0, float(np.max(np.abs(x0)))) if len(x0) else 1.0
    f_scale = max(1.0, abs(f0))

    if method == 'Nelder-Mead':
        simplex = np.vstack([x0] + [
            x0 + initial_step * np.eye(len(x0))[i] for i in range(len(x0))
        ])
        options = {
            'maxiter': max_iter,
            'xatol': xtol * x_scale,
            'fatol': ftol * f_scale,
            'initial_simplex': simplex,
            'adaptive': len(x0) > 2,
        }
    else:
        options = {
            'maxiter': max_iter,
            'xtol': xtol * x_scale,
            'ftol': ftol,
        }

    res = minimize(tracked, x0, method=method, bounds=bounds, options=options)

    x = np.asarray(res.x, dtype=np.float64)
    f = float(res.fun)
    if tracked.best_x is not None and tracked.best_f < f:
        x, f = tracked.best_x, tracked.best_f

    return OptimizeResult(
        x=x,
        fun=f,
        converged=bool(res.success),
        nit=int(getattr(res, 'nit', 0)),
        nfev=tracked.nfev,
        message=str(res.message),
        method=method,
    )
