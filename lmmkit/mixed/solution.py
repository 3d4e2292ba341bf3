"""
Solution wrappers for linear mixed models.

LMMSolution wraps Result[LMMParams] and provides R-style summary output,
property accessors for common quantities, and model comparison via
likelihood ratio tests. LRTSolution wraps Result[LRTParams].
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
import numpy as np
from numpy.typing import NDArray

from lmmkit.core.compute.tolerances import LIKELIHOOD_RATIO
from lmmkit.core.result import Result
from lmmkit.mixed._common import LMMParams, LRTParams, VarCompSummary
from lmmkit.mixed._random_effects import CovarianceTemplate

if TYPE_CHECKING:
    from lmmkit.mixed.design import ModelSpec


def _significance_stars(p: float) -> str:
    """Return significance stars like R."""
    if p < 0.001:
        return '***'
    elif p < 0.01:
        return '**'
    elif p < 0.05:
        return '*'
    elif p < 0.1:
        return '.'
    else:
        return ' '


def _format_pvalue(p: float) -> str:
    """Format p-value like R."""
    if p < 2e-16:
        return '< 2e-16'
    elif p < 0.001:
        return f'{p:.2e}'
    else:
        return f'{p:.4f}'


def _plain(value: Any) -> Any:
    """Convert numpy scalars and arrays to builtin Python values."""
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    return value


class LMMSolution:
    """Solution wrapper for a fitted linear mixed model.

    Provides R-style summary output matching lmerTest::summary(),
    property accessors for fixed effects, random effects, ICC,
    and model comparison via likelihood ratio test.
    """

    def __init__(self, _result: Result[LMMParams], spec: 'ModelSpec'):
        self._result = _result
        self._spec = spec

    @property
    def params(self) -> LMMParams:
        return self._result.params

    @property
    def spec(self) -> 'ModelSpec':
        """The validated design this model was fit to."""
        return self._spec

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    # --- Fixed effects ---

    @property
    def coefficients(self) -> NDArray:
        """Fixed effect estimates β̂."""
        return self.params.coefficients

    @property
    def fixef(self) -> dict[str, float]:
        """Fixed effects as name → value dict."""
        return {
            name: float(value) for name, value in
            zip(self.params.coefficient_names, self.params.coefficients)
        }

    @property
    def se(self) -> NDArray:
        """Standard errors of fixed effects."""
        return self.params.se

    @property
    def vcov(self) -> NDArray:
        """Variance-covariance matrix of β̂."""
        return self.params.vcov

    @property
    def t_values(self) -> NDArray:
        """t-statistics for fixed effects."""
        return self.params.t_values

    @property
    def p_values(self) -> NDArray:
        """p-values for fixed effects (Satterthwaite df)."""
        return self.params.p_values

    @property
    def df_satterthwaite(self) -> NDArray:
        """Satterthwaite denominator df for each fixed effect."""
        return self.params.df_satterthwaite

    # --- Covariance parameters ---

    @property
    def theta(self) -> NDArray:
        """Converged relative covariance parameters θ̂."""
        return self.params.theta

    @property
    def sigma(self) -> float:
        """Residual standard deviation σ̂."""
        return self.params.residual_std

    @property
    def residual_variance(self) -> float:
        return self.params.residual_variance

    @property
    def templates(self) -> dict[str, CovarianceTemplate]:
        """Covariance template per grouping factor."""
        return {f.group_name: f.template for f in self._spec.factors}

    # --- Random effects ---

    @property
    def ranef(self) -> dict[str, NDArray]:
        """Conditional means of the random effects, group → (J, k) array."""
        return self.params.random_effects

    @property
    def ranef_levels(self) -> dict[str, NDArray]:
        """Level labels matching the rows of ranef, per grouping factor."""
        return self.params.random_effect_levels

    @property
    def coef(self) -> dict[str, NDArray]:
        """Per-level coefficients β̂ + b̂, group → (J, p) array."""
        return self.params.group_coefficients

    @property
    def var_components(self) -> tuple[VarCompSummary, ...]:
        """Variance component summaries."""
        return self.params.var_components

    @property
    def icc(self) -> dict[str, float]:
        """Intraclass correlation coefficient per grouping factor.

        ICC = σ²_group / (σ²_group + σ²_residual)

        For models with random slopes, uses the intercept variance only.
        """
        sigma_sq_resid = self.params.residual_variance
        result = {}
        for vc in self.params.var_components:
            if vc.name == '(Intercept)' and vc.group not in result:
                total = vc.variance + sigma_sq_resid
                result[vc.group] = vc.variance / total if total > 0 else 0.0
        return result

    # --- Model fit ---

    @property
    def deviance(self) -> float:
        """ML deviance or REML criterion at convergence."""
        return self.params.deviance

    @property
    def log_likelihood(self) -> float:
        return self.params.log_likelihood

    @property
    def n_params(self) -> int:
        return self.params.n_params

    @property
    def aic(self) -> float:
        return self.params.aic

    @property
    def aicc(self) -> float:
        return self.params.aicc

    @property
    def bic(self) -> float:
        return self.params.bic

    @property
    def fitted_values(self) -> NDArray:
        return self.params.fitted_values

    @property
    def residuals(self) -> NDArray:
        return self.params.residuals

    @property
    def converged(self) -> bool:
        return self.params.converged

    @property
    def n_obs(self) -> int:
        return self.params.n_obs

    @property
    def n_groups(self) -> dict[str, int]:
        return self.params.n_groups

    @property
    def reml(self) -> bool:
        return self.params.reml

    # --- Model comparison ---

    def compare(
        self, other: 'LMMSolution', tol: float = LIKELIHOOD_RATIO.rtol,
    ) -> 'LRTSolution':
        """Likelihood ratio test between this model and a nested one.

        The model with fewer free parameters is treated as the smaller
        one. Both models should be fit with ML (reml=False) unless their
        fixed effects are identical.

        Args:
            other: The other model to compare against.
            tol: Relative tolerance on a negative LR statistic.

        Returns:
            LRTSolution.

        Raises:
            NotNestedError: If the models are not nested.
        """
        from lmmkit.mixed.compare import compare_models

        if self.n_params <= other.n_params:
            return compare_models(self, other, tol=tol)
        return compare_models(other, self, tol=tol)

    # --- Export ---

    def to_dict(self) -> dict[str, Any]:
        """Estimates as plain Python values.

        Contains only builtin types (floats, ints, bools, strings and
        nested lists/dicts of those).
        """
        params = self.params
        names = list(params.coefficient_names)
        return {
            'method': 'REML' if params.reml else 'ML',
            'n_obs': int(params.n_obs),
            'n_fixed': int(params.n_fixed),
            'n_theta': int(params.n_theta),
            'n_random': int(params.n_random),
            'n_groups': dict(params.n_groups),
            'covariance': dict(params.covariance),
            'fixef': self.fixef,
            'se': dict(zip(names, _plain(params.se))),
            'df': dict(zip(names, _plain(params.df_satterthwaite))),
            't_values': dict(zip(names, _plain(params.t_values))),
            'p_values': dict(zip(names, _plain(params.p_values))),
            'vcov': _plain(params.vcov),
            'theta': _plain(params.theta),
            'sigma': float(params.residual_std),
            'residual_variance': float(params.residual_variance),
            'var_components': [
                {
                    'group': vc.group,
                    'name': vc.name,
                    'variance': vc.variance,
                    'std_dev': vc.std_dev,
                    'corr': vc.corr,
                }
                for vc in params.var_components
            ],
            'ranef': {
                group: {
                    'levels': _plain(params.random_effect_levels[group]),
                    'terms': list(params.random_effect_terms[group]),
                    'values': _plain(values),
                }
                for group, values in params.random_effects.items()
            },
            'coef': {
                group: {
                    'levels': _plain(params.random_effect_levels[group]),
                    'names': names,
                    'values': _plain(values),
                }
                for group, values in params.group_coefficients.items()
            },
            'deviance': float(params.deviance),
            'log_likelihood': float(params.log_likelihood),
            'n_params': int(params.n_params),
            'aic': float(params.aic),
            'aicc': float(params.aicc),
            'bic': float(params.bic),
            'converged': bool(params.converged),
        }

    # --- Summary ---

    def summary(self) -> str:
        """R-style summary matching lmerTest::summary(lmer(...))."""
        params = self.params
        method = 'REML' if params.reml else 'ML'

        lines = []
        lines.append(f"Linear mixed model fit by {method}")
        lines.append("")

        lines.append(
            f" {'AIC':>10s} {'AICc':>10s} {'BIC':>10s} "
            f"{'logLik':>10s} {'deviance':>10s}"
        )
        lines.append(
            f" {params.aic:10.1f} {params.aicc:10.1f} {params.bic:10.1f} "
            f"{params.log_likelihood:10.1f} {params.deviance:10.1f}"
        )
        lines.append("")

        # Random effects table
        lines.append("Random effects:")
        lines.append(f" {'Groups':<12s} {'Name':<15s} {'Variance':>10s} "
                     f"{'Std.Dev.':>10s} {'Corr':>6s}")

        prev_group = None
        for vc in params.var_components:
            grp_label = vc.group if vc.group != prev_group else ''
            corr_str = f'{vc.corr:6.2f}' if vc.corr is not None else ''
            lines.append(
                f" {grp_label:<12s} {vc.name:<15s} {vc.variance:10.4f} "
                f"{vc.std_dev:10.4f} {corr_str}"
            )
            prev_group = vc.group

        lines.append(
            f" {'Residual':<12s} {'':<15s} {params.residual_variance:10.4f} "
            f"{params.residual_std:10.4f}"
        )

        uncorrelated = [g for g, kind in params.covariance.items()
                        if kind == 'uncorrelated']
        if uncorrelated:
            lines.append(
                f" (uncorrelated terms: {', '.join(uncorrelated)})"
            )
        lines.append("")

        group_parts = ', '.join(
            f'{name}, {n}' for name, n in params.n_groups.items()
        )
        lines.append(
            f"Number of obs: {params.n_obs}, groups: {group_parts}"
        )
        lines.append("")

        # Fixed effects table
        lines.append("Fixed effects:")
        header = (f" {'':>15s} {'Estimate':>10s} {'Std. Error':>10s} "
                  f"{'df':>10s} {'t value':>10s} {'Pr(>|t|)':>10s} {'':>4s}")
        lines.append(header)

        for i, name in enumerate(params.coefficient_names):
            p_str = _format_pvalue(params.p_values[i])
            stars = _significance_stars(params.p_values[i])
            lines.append(
                f" {name:>15s} {params.coefficients[i]:10.4f} "
                f"{params.se[i]:10.4f} {params.df_satterthwaite[i]:10.2f} "
                f"{params.t_values[i]:10.3f} {p_str:>10s} {stars}"
            )

        lines.append("---")
        lines.append("Signif. codes:  0 '***' 0.001 '**' 0.01 '*' 0.05 '.' 0.1 ' ' 1")
        lines.append("")

        lines.append(f"{method} criterion at convergence: {params.deviance:.1f}")

        if not params.converged:
            lines.append("")
            lines.append("WARNING: Model did not converge")

        for w in self._result.warnings:
            lines.append(f"Note: {w}")

        return '\n'.join(lines)

    def __repr__(self) -> str:
        method = 'REML' if self.params.reml else 'ML'
        nfe = len(self.params.coefficients)
        nre = len(self.params.var_components)
        return (
            f"LMMSolution({method}, "
            f"n={self.params.n_obs}, "
            f"fixed={nfe}, "
            f"random={nre} var components, "
            f"deviance={self.params.deviance:.4f})"
        )


class LRTSolution:
    """Likelihood ratio test between two nested linear mixed models."""

    def __init__(self, _result: Result[LRTParams]):
        self._result = _result

    @property
    def params(self) -> LRTParams:
        return self._result.params

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    @property
    def statistic(self) -> float:
        """LR = deviance(smaller) - deviance(larger), clamped at 0."""
        return self.params.statistic

    @property
    def df(self) -> int:
        return self.params.df

    @property
    def p_value(self) -> float:
        return self.params.p_value

    @property
    def deviance_smaller(self) -> float:
        return self.params.deviance_smaller

    @property
    def deviance_larger(self) -> float:
        return self.params.deviance_larger

    @property
    def n_params_smaller(self) -> int:
        return self.params.n_params_smaller

    @property
    def n_params_larger(self) -> int:
        return self.params.n_params_larger

    def to_dict(self) -> dict[str, Any]:
        params = self.params
        return {
            'statistic': float(params.statistic),
            'df': int(params.df),
            'p_value': float(params.p_value),
            'deviance_smaller': float(params.deviance_smaller),
            'deviance_larger': float(params.deviance_larger),
            'n_params_smaller': int(params.n_params_smaller),
            'n_params_larger': int(params.n_params_larger),
            'reml': bool(params.reml),
        }

    def summary(self) -> str:
        """R-style table matching anova(m_small, m_large)."""
        params = self.params
        crit = 'REML crit' if params.reml else 'deviance'
        lines = [
            "Likelihood Ratio Test",
            "=" * 62,
            f" {'':<8s} {'npar':>5s} {crit:>12s} {'Chisq':>10s} "
            f"{'Df':>4s} {'Pr(>Chisq)':>12s}",
            f" {'smaller':<8s} {params.n_params_smaller:5d} "
            f"{params.deviance_smaller:12.4f}",
            f" {'larger':<8s} {params.n_params_larger:5d} "
            f"{params.deviance_larger:12.4f} {params.statistic:10.4f} "
            f"{params.df:4d} {_format_pvalue(params.p_value):>12s} "
            f"{_significance_stars(params.p_value)}",
        ]
        for w in self._result.warnings:
            lines.append(f"Note: {w}")
        return '\n'.join(lines)

    def __repr__(self) -> str:
        return (
            f"LRTSolution(statistic={self.params.statistic:.4f}, "
            f"df={self.params.df}, p_value={self.params.p_value:.4g})"
        )
