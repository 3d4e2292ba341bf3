"""
Likelihood ratio tests between nested linear mixed models.

The statistic is LR = deviance(smaller) - deviance(larger), referred to
a χ² distribution with df equal to the difference in free parameter
counts. For variance parameters tested on the boundary (e.g. a random
slope variance of zero) the χ² reference is conservative, as in
anova() for lme4 fits.
"""

from __future__ import annotations

import warnings
import numpy as np
from scipy import stats

from lmmkit.core.result import Result
from lmmkit.core.exceptions import NotNestedError
from lmmkit.core.compute.linalg import column_space_contains
from lmmkit.core.compute.tolerances import LIKELIHOOD_RATIO, STRUCTURAL
from lmmkit.mixed._common import LRTParams
from lmmkit.mixed.design import ModelSpec
from lmmkit.mixed.solution import LMMSolution, LRTSolution


def compare_models(
    smaller: LMMSolution,
    larger: LMMSolution,
    tol: float = LIKELIHOOD_RATIO.rtol,
) -> LRTSolution:
    """Likelihood ratio test of `smaller` against `larger`.

    Args:
        smaller: Fit of the reduced model.
        larger: Fit of the model that contains it.
        tol: Relative tolerance on a negative LR statistic. Values in
            [-tol * max(1, deviance), 0) are treated as 0.

    Returns:
        LRTSolution with statistic, df and p-value.

    Raises:
        NotNestedError: If the models were fit to different data, by
            different criteria, are not nested, or the larger model has
            a clearly worse deviance than the smaller one.
    """
    s_spec, l_spec = smaller.spec, larger.spec
    warn_list = []

    _check_same_response(s_spec, l_spec)

    if smaller.reml != larger.reml:
        raise NotNestedError(
            "Cannot compare a REML fit with an ML fit; refit both "
            "with the same criterion"
        )

    if smaller.n_params > larger.n_params:
        raise NotNestedError(
            f"Smaller model has more parameters ({smaller.n_params}) "
            f"than the larger model ({larger.n_params})"
        )

    if not column_space_contains(l_spec.X, s_spec.X, rtol=STRUCTURAL.rtol):
        raise NotNestedError(
            "Fixed effects of the smaller model are not in the column "
            "space of the larger model's fixed effects"
        )

    _check_random_nesting(s_spec, l_spec)

    if smaller.reml and not _same_design(s_spec.X, l_spec.X):
        msg = (
            "REML criteria are only comparable between models with the "
            "same fixed effects. Refit with reml=False."
        )
        warnings.warn(msg, UserWarning, stacklevel=2)
        warn_list.append(msg)

    dev_small = smaller.deviance
    dev_large = larger.deviance
    statistic = dev_small - dev_large
    if statistic < 0.0:
        if statistic < -tol * max(1.0, abs(dev_small)):
            raise NotNestedError(
                f"Larger model has higher deviance ({dev_large:.6f}) than "
                f"the smaller model ({dev_small:.6f}); the models are not "
                f"nested or one of the fits did not reach its optimum"
            )
        statistic = 0.0

    df = larger.n_params - smaller.n_params
    if df == 0:
        p_value = 1.0
    else:
        p_value = float(stats.chi2.sf(statistic, df))

    params = LRTParams(
        statistic=float(statistic),
        df=int(df),
        p_value=p_value,
        deviance_smaller=float(dev_small),
        deviance_larger=float(dev_large),
        n_params_smaller=smaller.n_params,
        n_params_larger=larger.n_params,
        reml=smaller.reml,
    )

    result = Result(
        params=params,
        info={'test': 'LRT', 'criterion': 'REML' if smaller.reml else 'ML'},
        timing=None,
        backend_name='cpu_lrt',
        warnings=tuple(warn_list),
    )
    return LRTSolution(_result=result)


def _same_design(A: np.ndarray, B: np.ndarray) -> bool:
    return A.shape == B.shape and np.allclose(A, B)


def _check_same_response(s_spec: ModelSpec, l_spec: ModelSpec) -> None:
    if s_spec.n != l_spec.n:
        raise NotNestedError(
            f"Models were fit to different numbers of observations "
            f"({s_spec.n} vs {l_spec.n})"
        )
    if not np.array_equal(s_spec.y, l_spec.y):
        raise NotNestedError("Models were fit to different responses")


def _check_random_nesting(s_spec: ModelSpec, l_spec: ModelSpec) -> None:
    """Each grouping factor of the smaller model must appear in the larger
    with the same levels, and its Z block must lie in the column space of
    the larger model's block for that factor.
    """
    larger_factors = {f.group_name: f for f in l_spec.factors}

    for f_small in s_spec.factors:
        f_large = larger_factors.get(f_small.group_name)
        if f_large is None:
            raise NotNestedError(
                f"Grouping factor '{f_small.group_name}' of the smaller "
                f"model is not in the larger model"
            )

        if not (np.array_equal(f_small.levels, f_large.levels)
                and np.array_equal(f_small.group_ids, f_large.group_ids)):
            raise NotNestedError(
                f"Grouping factor '{f_small.group_name}' has different "
                f"levels in the two models"
            )

        # Term names may be positional ('z0', 'z1', ...); compare Z blocks
        same_block = f_small.terms == f_large.terms and np.array_equal(
            f_small.Z_block, f_large.Z_block
        )
        if not same_block and not column_space_contains(
            f_large.Z_block, f_small.Z_block, rtol=STRUCTURAL.rtol
        ):
            raise NotNestedError(
                f"Random terms {list(f_small.terms)} of group "
                f"'{f_small.group_name}' are not in the column space of "
                f"the larger model's terms {list(f_large.terms)}"
            )

        # A single-term template has no correlations to fix
        if f_small.correlated and f_small.n_terms > 1 and not f_large.correlated:
            raise NotNestedError(
                f"Group '{f_small.group_name}' is correlated in the smaller "
                f"model but uncorrelated in the larger model"
            )
