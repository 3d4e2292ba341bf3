"""
Tolerance tiers for numerical validation.

Defines precision expectations for different kinds of quantities:
- exact linear algebra identities (machine precision)
- quantities evaluated at an optimum found by derivative-free search
- structural checks on design matrices (nesting, column spaces)

Used by the test suite and by the model comparer.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ToleranceTier:
    """Tolerance specification for numerical comparison."""
    rtol: float
    atol: float
    name: str
    description: str


# Direct linear algebra: identities hold to machine precision
CPU_FP64 = ToleranceTier(
    rtol=1e-10,
    atol=1e-12,
    name='cpu_fp64',
    description='CPU double precision, direct computation',
)

# Estimates at a converged optimum of the profiled criterion
OPTIMUM = ToleranceTier(
    rtol=1e-4,
    atol=1e-6,
    name='optimum',
    description='Estimates at a derivative-free optimum',
)

# Column-space and nesting checks on design matrices
STRUCTURAL = ToleranceTier(
    rtol=1e-8,
    atol=1e-10,
    name='structural',
    description='Design-matrix nesting and column-space checks',
)

# Likelihood ratio statistics: negative values within this relative
# tolerance of the deviance are clamped to zero
LIKELIHOOD_RATIO = ToleranceTier(
    rtol=1e-6,
    atol=1e-8,
    name='likelihood_ratio',
    description='Clamp tolerance for likelihood ratio statistics',
)
