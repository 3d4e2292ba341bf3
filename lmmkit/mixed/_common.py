"""
Common data types for linear mixed models.

Contains the frozen parameter payloads that go inside Result[P] envelopes.
Payloads are plain frozen data; all computation happens in solvers.py.

References:
    Bates, D., Maechler, M., Bolker, B., & Walker, S. (2015).
    Fitting Linear Mixed-Effects Models Using lme4.
    Journal of Statistical Software, 67(1), 1-48.
"""

from dataclasses import dataclass

from numpy.typing import NDArray


@dataclass(frozen=True)
class VarCompSummary:
    """Variance component summary for one random effect term.

    Attributes:
        group: Grouping factor name (e.g. 'subject').
        name: Term name within the group (e.g. '(Intercept)', 'days').
        variance: Estimated variance σ²_b for this component.
        std_dev: Standard deviation (sqrt of variance).
        corr: Correlation with the first term in the same group, or None
              for the first (or only) term and for uncorrelated templates.
    """
    group: str
    name: str
    variance: float
    std_dev: float
    corr: float | None = None


@dataclass(frozen=True)
class LMMParams:
    """
    Parameter payload for a fitted linear mixed model.

    Contains all estimates needed to reconstruct the model summary,
    perform inference, compare models, and extract random effects.
    """
    # Fixed effects
    coefficients: NDArray              # β̂ (p,)
    coefficient_names: tuple[str, ...]
    se: NDArray                        # standard errors of β̂ (p,)
    vcov: NDArray                      # Var(β̂) (p, p)
    df_satterthwaite: NDArray          # Satterthwaite df per fixed effect (p,)
    t_values: NDArray                  # β̂ / se (p,)
    p_values: NDArray                  # from t-distribution with Satt. df (p,)

    # Random effects
    var_components: tuple[VarCompSummary, ...]
    residual_variance: float           # σ²
    residual_std: float                # σ

    # Model fit
    deviance: float                    # ML deviance or REML criterion at θ̂
    log_likelihood: float              # -deviance / 2
    reml: bool
    aic: float
    aicc: float
    bic: float
    n_obs: int
    n_fixed: int                       # p
    n_theta: int                       # dim θ
    n_random: int                      # Σ J_k·q_k
    n_params: int                      # p + dim θ + 1
    n_groups: dict[str, int]           # grouping_factor → number of unique levels
    covariance: dict[str, str]         # grouping_factor → template kind

    # Convergence
    converged: bool
    n_iter: int
    n_fev: int

    # Random effects conditional means (BLUPs)
    random_effects: dict[str, NDArray]        # group → (J, q) conditional means
    random_effect_terms: dict[str, tuple[str, ...]]
    random_effect_levels: dict[str, NDArray]  # group → level labels (J,)
    group_coefficients: dict[str, NDArray]    # group → (J, p) β̂ + matching b̂

    # Predictions
    fitted_values: NDArray             # Xβ̂ + Zb̂ (n,)
    residuals: NDArray                 # y - fitted (n,)

    # Covariance parameters
    theta: NDArray                     # converged θ


@dataclass(frozen=True)
class LRTParams:
    """Parameter payload for a likelihood ratio test between nested LMMs."""
    statistic: float                   # deviance(smaller) - deviance(larger)
    df: int                            # difference in free parameter counts
    p_value: float                     # chi-squared upper tail
    deviance_smaller: float
    deviance_larger: float
    n_params_smaller: int
    n_params_larger: int
    reml: bool
