"""
Solver entry points for linear mixed models.

Public API:
    lmm() — fit a linear mixed model from grouping dicts (REML or ML)
    fit() — fit a prebuilt ModelSpec
"""

from __future__ import annotations

from functools import partial
import warnings
import numpy as np
from numpy.typing import ArrayLike
from scipy import stats

from lmmkit.core.result import Result
from lmmkit.core.exceptions import (
    ConvergenceError, NonConvergenceWarning, SingularCovarianceError,
    ValidationError,
)
from lmmkit.core.compute.timing import Timer
from lmmkit.core.compute.linalg import cho_solve_cpu

from lmmkit.mixed._common import LMMParams, VarCompSummary
from lmmkit.mixed._random_effects import (
    GroupingFactor, build_lambda, relative_factor, slope_diagonal_indices,
    split_theta, theta_bounds, theta_start,
)
from lmmkit.mixed._pls import PLSResult, solve_pls
from lmmkit.mixed._deviance import (
    SINGULAR_PENALTY, deviance_from_pls, profiled_deviance_lmm,
)
from lmmkit.mixed._optimizer import OptimizeResult, minimize_bounded
from lmmkit.mixed._satterthwaite import satterthwaite_df
from lmmkit.mixed.design import ModelSpec
from lmmkit.mixed.solution import LMMSolution

# Alternative starting diagonals for slope terms
_SLOPE_START_SCALES = (0.2, 0.5)


def lmm(
    y: ArrayLike,
    X: ArrayLike,
    groups: dict[str, ArrayLike],
    *,
    random_effects: dict[str, list[str]] | None = None,
    random_data: dict[str, ArrayLike] | None = None,
    covariance: dict[str, str] | None = None,
    coef_names: list[str] | None = None,
    reml: bool = True,
    method: str = 'Nelder-Mead',
    tol: float = 1e-8,
    xtol: float = 1e-6,
    max_iter: int = 1000,
    compute_satterthwaite: bool = True,
) -> LMMSolution:
    """Fit a linear mixed model.

    Estimates fixed effects β, random effects variance components,
    and conditional means (BLUPs) of random effects using the profiled
    REML/ML deviance approach from Bates et al. (2015).

    Args:
        y: Response vector (n,).
        X: Fixed effects design matrix (n, p). Should include an
            intercept column if desired.
        groups: Dict mapping grouping factor names to group label arrays.
            Example: {'subject': subject_ids}.
        random_effects: Optional dict mapping group names to lists of
            random effect terms. Default: random intercept per group.
            Example: {'subject': ['1', 'days']} for (1 + days | subject).
        random_data: Optional dict mapping variable names to data arrays
            for random slope variables.
            Example: {'days': days_array}.
        covariance: Optional dict mapping group names to 'correlated'
            (default) or 'uncorrelated'. Uncorrelated fixes the
            correlations between a group's terms at zero.
        coef_names: Names of the columns of X. Default: '(Intercept)',
            'X1', 'X2' and so on. A random term is added to the column of
            the same name in coef ('1' to '(Intercept)'); terms with no
            such column are left out of coef and named in a warning.
        reml: If True (default), use REML estimation. If False, use ML.
            Use ML (reml=False) for likelihood ratio tests between models
            with different fixed effects.
        method: Derivative-free optimizer, 'Nelder-Mead' (default) or
            'Powell'.
        tol: Relative convergence tolerance on the profiled criterion.
        xtol: Relative convergence tolerance on θ.
        max_iter: Iteration budget per optimizer start.
        compute_satterthwaite: If True (default), compute Satterthwaite
            denominator df for fixed effects. Set to False for speed
            if p-values are not needed.

    Returns:
        LMMSolution with fixed effects, random effects, variance components,
        model fit statistics, and R-style summary().

    Examples:
        # Random intercept model
        >>> result = lmm(y, X, groups={'subject': subject_ids})

        # Random intercept + slope, correlated
        >>> result = lmm(y, X, groups={'subject': subject_ids},
        ...              random_effects={'subject': ['1', 'days']},
        ...              random_data={'days': days})

        # Same terms, uncorrelated
        >>> result = lmm(y, X, groups={'subject': subject_ids},
        ...              random_effects={'subject': ['1', 'days']},
        ...              random_data={'days': days},
        ...              covariance={'subject': 'uncorrelated'})
    """
    spec = ModelSpec.from_groups(
        y, X, groups, random_effects, random_data, covariance
    )
    return fit(
        spec,
        coef_names=coef_names,
        reml=reml,
        method=method,
        tol=tol,
        xtol=xtol,
        max_iter=max_iter,
        compute_satterthwaite=compute_satterthwaite,
    )


def fit(
    spec: ModelSpec,
    *,
    coef_names: list[str] | None = None,
    reml: bool = True,
    method: str = 'Nelder-Mead',
    tol: float = 1e-8,
    xtol: float = 1e-6,
    max_iter: int = 1000,
    compute_satterthwaite: bool = True,
) -> LMMSolution:
    """Fit a linear mixed model to a validated ModelSpec.

    See lmm() for the meaning of the keyword arguments.

    Raises:
        ValidationError: If coef_names does not match the columns of X,
            or the optimizer settings are invalid.
        ConvergenceError: If no θ in the feasible box gives a usable
            PLS solve.
    """
    if coef_names is None:
        coef_names = _make_coef_names(spec.p)
    elif len(coef_names) != spec.p:
        raise ValidationError(
            f"coef_names has {len(coef_names)} entries, expected {spec.p}"
        )

    factors = list(spec.factors)

    timer = Timer()
    timer.start()

    with timer.section('setup'):
        bounds = theta_bounds(factors)
        starts = _starting_values(factors)
        objective = partial(
            profiled_deviance_lmm,
            X=spec.X, Z=spec.Z, y=spec.y, factors=factors, reml=reml,
        )

    # Models with random slopes can have local minima in the profiled
    # deviance; try each start and keep the best.
    with timer.section('optimization'):
        opt = _best_of(
            minimize_bounded(
                objective, start, bounds,
                method=method, xtol=xtol, ftol=tol, max_iter=max_iter,
            )
            for start in starts
        )
        n_fev = opt.nfev

    if opt.fun >= SINGULAR_PENALTY:
        raise ConvergenceError(
            "No admissible θ found: the penalized least squares step "
            "failed at every evaluated point",
            iterations=opt.nit,
            reason='singular',
        )

    converged = opt.converged
    theta_hat = opt.x
    warn_list = []

    if not converged:
        msg = (
            f"LMM optimizer did not converge after {opt.nit} iterations. "
            f"Message: {opt.message}"
        )
        warnings.warn(msg, NonConvergenceWarning, stacklevel=2)
        warn_list.append(f"Optimizer did not converge: {opt.message}")

    with timer.section('final_solve'):
        Lambda_hat = build_lambda(theta_hat, factors)
        pls = solve_pls(spec.X, spec.Z, spec.y, Lambda_hat, reml=reml)

    with timer.section('variance_components'):
        var_comps = _extract_var_components(theta_hat, pls.sigma_sq, factors)

    with timer.section('blups'):
        random_effs = _extract_blups(pls.b, factors)
        group_coefs, unmatched = _group_coefficients(
            pls.beta, coef_names, random_effs, factors
        )
        if unmatched:
            warn_list.append(
                f"Random terms without a matching fixed effect are left out "
                f"of coef: {', '.join(unmatched)}"
            )

    with timer.section('inference'):
        vcov = pls.sigma_sq * cho_solve_cpu(pls.RX, np.eye(spec.p))
        se = np.sqrt(np.maximum(np.diag(vcov), 0.0))

        df_satt = np.full(spec.p, float(spec.n - spec.p))
        if compute_satterthwaite:
            try:
                df_satt = satterthwaite_df(
                    theta_hat, spec.X, spec.Z, spec.y, factors, reml=reml
                )
            except SingularCovarianceError as e:
                warn_list.append(
                    f"Satterthwaite df unavailable, using residual df: {e}"
                )

        t_vals = pls.beta / se
        p_vals = 2.0 * stats.t.sf(np.abs(t_vals), df_satt)

    with timer.section('model_fit'):
        fit_stats = _compute_fit_stats(pls, spec.n, spec.p, len(theta_hat), reml)

    timer.stop()

    params = LMMParams(
        coefficients=pls.beta,
        coefficient_names=tuple(coef_names),
        se=se,
        vcov=vcov,
        df_satterthwaite=df_satt,
        t_values=t_vals,
        p_values=p_vals,
        var_components=tuple(var_comps),
        residual_variance=pls.sigma_sq,
        residual_std=float(np.sqrt(pls.sigma_sq)),
        reml=reml,
        n_obs=spec.n,
        n_fixed=spec.p,
        n_theta=len(theta_hat),
        n_random=spec.q,
        n_groups={f.group_name: f.n_groups for f in factors},
        covariance={f.group_name: f.template.kind for f in factors},
        converged=converged,
        n_iter=opt.nit,
        n_fev=n_fev,
        random_effects=random_effs,
        random_effect_terms={f.group_name: f.terms for f in factors},
        random_effect_levels={f.group_name: f.levels for f in factors},
        group_coefficients=group_coefs,
        fitted_values=pls.fitted,
        residuals=pls.residuals,
        theta=theta_hat,
        **fit_stats,
    )

    result = Result(
        params=params,
        info={
            'method': 'REML' if reml else 'ML',
            'optimizer': method,
            'converged': converged,
            'n_iter': opt.nit,
            'n_fev': n_fev,
            'n_starts': len(starts),
            'message': opt.message,
            'deviance': opt.fun,
        },
        timing=timer.result(),
        backend_name='cpu_lmm',
        warnings=tuple(warn_list),
    )

    return LMMSolution(_result=result, spec=spec)


# =====================================================================
# Helpers
# =====================================================================

def _starting_values(factors: list[GroupingFactor]) -> list[np.ndarray]:
    """Default θ start plus variants with smaller slope diagonals."""
    theta0 = theta_start(factors)
    slope_idx = slope_diagonal_indices(factors)
    starts = [theta0]
    if slope_idx:
        for scale in _SLOPE_START_SCALES:
            alt = theta0.copy()
            alt[slope_idx] = scale
            starts.append(alt)
    return starts


def _best_of(runs) -> OptimizeResult:
    """Lowest-objective run; evaluation counts are summed over all runs."""
    best = None
    total_fev = 0
    for res in runs:
        total_fev += res.nfev
        if best is None or res.fun < best.fun:
            best = res
    return OptimizeResult(
        x=best.x,
        fun=best.fun,
        converged=best.converged,
        nit=best.nit,
        nfev=total_fev,
        message=best.message,
        method=best.method,
    )


def _term_label(term: str) -> str:
    return '(Intercept)' if term == '1' else term


def _extract_var_components(
    theta: np.ndarray,
    sigma_sq: float,
    factors: list[GroupingFactor],
) -> list[VarCompSummary]:
    """Extract variance component summaries from θ and σ².

    The covariance of the random effects of factor g is σ² × T_g T_g'.
    """
    var_comps = []

    for theta_k, f in zip(split_theta(theta, factors), factors):
        T = relative_factor(theta_k, f.template)
        cov_matrix = sigma_sq * (T @ T.T)

        for i in range(f.n_terms):
            var_i = cov_matrix[i, i]
            sd_i = np.sqrt(max(var_i, 0.0))

            # Correlation with first term (only for 2nd+ terms)
            corr = None
            if f.correlated and i > 0 and cov_matrix[0, 0] > 0 and var_i > 0:
                corr = cov_matrix[i, 0] / (np.sqrt(cov_matrix[0, 0]) * sd_i)
                corr = float(np.clip(corr, -1.0, 1.0))

            var_comps.append(VarCompSummary(
                group=f.group_name,
                name=_term_label(f.terms[i]),
                variance=float(var_i),
                std_dev=float(sd_i),
                corr=corr,
            ))

    return var_comps


def _extract_blups(
    b: np.ndarray,
    factors: list[GroupingFactor],
) -> dict[str, np.ndarray]:
    """Extract conditional means per grouping factor from the flat b vector.

    b is structured as [b_factor1, b_factor2, ...] where each block has
    J_k * q_k elements laid out term-major, so a Fortran-order reshape
    gives rows = levels, columns = terms.

    Returns dict: group_name → (J_k, q_k) array.
    """
    result = {}
    offset = 0
    for f in factors:
        block_size = f.n_groups * f.n_terms
        b_block = b[offset:offset + block_size]
        result[f.group_name] = b_block.reshape(
            (f.n_groups, f.n_terms), order='F'
        ).copy()
        offset += block_size
    return result


def _group_coefficients(
    beta: np.ndarray,
    coef_names: list[str],
    random_effs: dict[str, np.ndarray],
    factors: list[GroupingFactor],
) -> tuple[dict[str, np.ndarray], list[str]]:
    """Per-level coefficients β̂ + b̂ on the scale of the fixed effects.

    A random term is added to the fixed-effect column of the same name
    ('1' matches '(Intercept)'). Terms without a matching column are
    left out and returned as 'group:term' labels.
    """
    index = {name: j for j, name in enumerate(coef_names)}
    result = {}
    unmatched = []
    for f in factors:
        coefs = np.tile(beta, (f.n_groups, 1))
        for t, term in enumerate(f.terms):
            j = index.get(_term_label(term))
            if j is None:
                unmatched.append(f"{f.group_name}:{term}")
            else:
                coefs[:, j] += random_effs[f.group_name][:, t]
        result[f.group_name] = coefs
    return result, unmatched


def _compute_fit_stats(
    pls: PLSResult,
    n: int,
    p: int,
    n_theta: int,
    reml: bool,
) -> dict[str, float | int]:
    """Deviance, log-likelihood, AIC, AICc and BIC.

    The parameter count is p (fixed effects) + dim θ + 1 (σ), for both
    ML and REML fits.
    """
    dev = deviance_from_pls(pls, n, p, reml)
    k = p + n_theta + 1

    aic = dev + 2.0 * k
    if n - k - 1 > 0:
        aicc = aic + 2.0 * k * (k + 1) / (n - k - 1)
    else:
        aicc = np.inf
    bic = dev + np.log(n) * k

    return {
        'deviance': float(dev),
        'log_likelihood': float(-0.5 * dev),
        'aic': float(aic),
        'aicc': float(aicc),
        'bic': float(bic),
        'n_params': int(k),
    }


def _make_coef_names(p: int) -> list[str]:
    """Generate default coefficient names."""
    names = ['(Intercept)']
    for i in range(1, p):
        names.append(f'X{i}')
    return names
