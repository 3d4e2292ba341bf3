"""
Shared compute infrastructure for lmmkit.

This module provides timing utilities, numerical tolerance tiers and the
dense linear algebra kernels used by the mixed-model engine.

Submodules:
    timing: Execution timing utilities
    tolerances: Numerical tolerance tiers
    linalg: Linear algebra kernels (QR, Cholesky, triangular solves)
"""

from lmmkit.core.compute.timing import Timer, timed

__all__ = [
    # Timing
    "Timer",
    "timed",
]
