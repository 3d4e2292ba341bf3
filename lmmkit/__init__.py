"""
lmmkit: linear mixed-effects model estimation for Python.

Fits Gaussian linear mixed models by profiled REML or ML, following the
penalized least squares formulation of lme4.

Submodules:
    core: Result envelope, exceptions, validators, linear algebra
    mixed: Model specification, fitting, and model comparison
"""

__version__ = "0.1.0"

from lmmkit import core
from lmmkit import mixed
from lmmkit.mixed import lmm, fit, compare_models

__all__ = [
    "__version__",
    "core",
    "mixed",
    "lmm",
    "fit",
    "compare_models",
]
