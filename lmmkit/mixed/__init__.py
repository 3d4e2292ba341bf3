"""
Mixed models: Linear Mixed Models (LMM) fit by REML or ML.

Public API:
    lmm()            — fit a linear mixed model from grouping dicts
    fit()            — fit a prebuilt ModelSpec
    compare_models() — likelihood ratio test between nested fits
    ModelSpec        — validated model design
    RandomTerm       — one grouping factor with its random effects
    LMMSolution      — result wrapper for LMM
    LRTSolution      — result wrapper for a likelihood ratio test
"""

from lmmkit.mixed.design import ModelSpec, RandomTerm
from lmmkit.mixed.solvers import lmm, fit
from lmmkit.mixed.compare import compare_models
from lmmkit.mixed.solution import LMMSolution, LRTSolution

__all__ = [
    "lmm",
    "fit",
    "compare_models",
    "ModelSpec",
    "RandomTerm",
    "LMMSolution",
    "LRTSolution",
]
