"""
Linear algebra kernels for lmmkit.

All functions follow these conventions:
    - CPU functions use NumPy/SciPy (LAPACK under the hood)
    - Each factorization returns a structured result dataclass
    - Errors are raised immediately with clear messages

Submodules:
    qr: QR decomposition and numerical rank
    cholesky: Cholesky decomposition, log-determinants, triangular solves
"""

from lmmkit.core.compute.linalg.qr import (
    QRResult,
    qr_cpu,
    column_space_contains,
)
from lmmkit.core.compute.linalg.cholesky import (
    CholeskyResult,
    cholesky_cpu,
    cho_solve_cpu,
    solve_lower,
    solve_upper,
)

__all__ = [
    # QR decomposition
    "QRResult",
    "qr_cpu",
    "column_space_contains",
    # Cholesky decomposition
    "CholeskyResult",
    "cholesky_cpu",
    "cho_solve_cpu",
    "solve_lower",
    "solve_upper",
]
