"""
Design validation for linear mixed models.

ModelSpec validates and organizes the inputs for an LMM: the response y,
the fixed effects matrix X, and one (grouping factor, random effects
covariates, covariance template) triple per grouping factor. It is
immutable once built and is the only data an objective evaluation reads,
so independent fits may share it across threads.
"""

from __future__ import annotations

from dataclasses import dataclass
import numpy as np
from numpy.typing import ArrayLike, NDArray

from lmmkit.core.exceptions import ValidationError
from lmmkit.core.validation import (
    check_array,
    check_finite,
    check_1d,
    check_2d,
    check_consistent_length,
    check_min_samples,
    check_column_rank,
    check_min_levels,
)
from lmmkit.mixed._random_effects import (
    CORRELATED,
    CovarianceTemplate,
    GroupingFactor,
    build_z_block,
    build_z_matrix,
)


@dataclass(frozen=True)
class RandomTerm:
    """Random effects for one grouping factor, as supplied by the caller.

    Attributes:
        group: Grouping factor name (e.g. 'subject').
        labels: Level label per observation, shape (n,).
        covariates: Per-observation covariate values, shape (n,) or (n, k).
            Use a column of ones for a random intercept.
        names: Term names, one per covariate column. Defaults to
            ('1',) for a single column of ones, else ('z0', 'z1', ...).
        covariance: 'correlated' or 'uncorrelated'.
    """
    group: str
    labels: ArrayLike
    covariates: ArrayLike
    names: tuple[str, ...] | None = None
    covariance: str = CORRELATED


@dataclass(frozen=True)
class ModelSpec:
    """Validated design for a linear mixed model.

    Attributes:
        y: Response vector (n,).
        X: Fixed effects design matrix (n, p), full column rank.
        factors: One GroupingFactor per random term, in declaration order.
        Z: Concatenated random effects design matrix (n, total_q).
        n: Number of observations.
        p: Number of fixed effect columns.
    """
    y: NDArray
    X: NDArray
    factors: tuple[GroupingFactor, ...]
    Z: NDArray
    n: int
    p: int

    @property
    def theta_size(self) -> int:
        return sum(f.theta_size for f in self.factors)

    @property
    def q(self) -> int:
        """Total random effects dimension Σ J_k·q_k."""
        return self.Z.shape[1]

    @staticmethod
    def validate(
        y: ArrayLike,
        X: ArrayLike,
        terms: list[RandomTerm],
    ) -> 'ModelSpec':
        """Validate inputs and create a ModelSpec.

        Args:
            y: Response vector.
            X: Fixed effects design matrix. If 1-D, treated as a single
               column (include an intercept column explicitly if desired).
            terms: Random terms, one per grouping factor.

        Returns:
            Validated ModelSpec.

        Raises:
            ValidationError: On malformed inputs.
            DimensionError: On inconsistent lengths or wrong dimensions.
            DegenerateGroupingFactorError: If a grouping factor has
                fewer than 2 levels.
            RankDeficientDesignError: If X is not of full column rank.
        """
        y = check_array(y, 'y').astype(np.float64)
        check_1d(y, 'y')
        check_min_samples(y, 3, 'y')
        check_finite(y, 'y')
        n = len(y)

        X = check_array(X, 'X').astype(np.float64)
        if X.ndim == 1:
            X = X.reshape(-1, 1)
        check_2d(X, 'X')
        check_consistent_length(y, X, names=('y', 'X'))
        check_finite(X, 'X')

        if not terms:
            raise ValidationError("At least one random term required")

        seen = set()
        factors = []
        for term in terms:
            if term.group in seen:
                raise ValidationError(
                    f"Grouping factor '{term.group}' given more than once; "
                    f"list all of its terms in a single RandomTerm"
                )
            seen.add(term.group)
            factors.append(_build_factor(term, y))

        # Rank is checked after the cheap structural checks
        check_column_rank(X, 'X')

        return ModelSpec(
            y=y,
            X=X,
            factors=tuple(factors),
            Z=build_z_matrix(factors),
            n=n,
            p=X.shape[1],
        )

    @staticmethod
    def from_groups(
        y: ArrayLike,
        X: ArrayLike,
        groups: dict[str, ArrayLike],
        random_effects: dict[str, list[str]] | None = None,
        random_data: dict[str, ArrayLike] | None = None,
        covariance: dict[str, str] | None = None,
    ) -> 'ModelSpec':
        """Build a ModelSpec from grouping dicts.

        Args:
            y: Response vector.
            X: Fixed effects design matrix.
            groups: Grouping factor name → level labels (n,).
            random_effects: Group name → list of term names. '1' is the
                intercept; other names are looked up in random_data.
                Default: random intercept per group.
                Example: {'subject': ['1', 'days']} for (1 + days | subject).
            random_data: Variable name → data array (n,) for slope terms.
            covariance: Group name → 'correlated' or 'uncorrelated'.
                Default: 'correlated' for every group.

        Returns:
            Validated ModelSpec.
        """
        if not groups:
            raise ValidationError("At least one grouping factor required")
        random_effects = random_effects or {}
        random_data = random_data or {}
        covariance = covariance or {}

        for name in list(random_effects) + list(covariance):
            if name not in groups:
                raise ValidationError(
                    f"Random effect group '{name}' not found in groups dict. "
                    f"Available: {list(groups.keys())}"
                )

        n = len(np.asarray(y).ravel())
        terms = []
        for group_name, labels in groups.items():
            names = tuple(random_effects.get(group_name, ['1']))
            columns = []
            for term in names:
                if term == '1':
                    columns.append(np.ones(n, dtype=np.float64))
                    continue
                if term not in random_data:
                    raise ValidationError(
                        f"Random slope term '{term}' requires data in "
                        f"random_data dict, but '{term}' was not found. "
                        f"Available: {list(random_data.keys())}"
                    )
                data = check_array(random_data[term], f"random_data['{term}']")
                check_1d(data, f"random_data['{term}']")
                if data.shape[0] != n:
                    raise ValidationError(
                        f"Random data '{term}' has {data.shape[0]} elements, "
                        f"expected {n}"
                    )
                columns.append(data.astype(np.float64))
            terms.append(RandomTerm(
                group=group_name,
                labels=labels,
                covariates=np.column_stack(columns),
                names=names,
                covariance=covariance.get(group_name, CORRELATED),
            ))

        return ModelSpec.validate(y, X, terms)


def _build_factor(term: RandomTerm, y: NDArray) -> GroupingFactor:
    n = len(y)
    labels = np.asarray(term.labels)
    if labels.ndim != 1:
        raise ValidationError(
            f"Group '{term.group}' labels must be 1-D, got shape {labels.shape}"
        )
    if labels.shape[0] != n:
        raise ValidationError(
            f"Group '{term.group}' has {labels.shape[0]} elements, expected {n}"
        )
    check_min_levels(labels, 2, term.group)
    levels, group_ids = np.unique(labels, return_inverse=True)

    covariates = check_array(term.covariates, f"covariates['{term.group}']")
    if covariates.ndim == 1:
        covariates = covariates.reshape(-1, 1)
    check_2d(covariates, f"covariates['{term.group}']")
    check_consistent_length(
        y, covariates, names=('y', f"covariates['{term.group}']")
    )
    check_finite(covariates, f"covariates['{term.group}']")
    covariates = covariates.astype(np.float64)
    k = covariates.shape[1]

    if term.names is not None:
        names = tuple(term.names)
        if len(names) != k:
            raise ValidationError(
                f"Group '{term.group}': {len(names)} term names for "
                f"{k} covariate columns"
            )
    elif k == 1 and np.all(covariates == 1.0):
        names = ('1',)
    else:
        names = tuple(f'z{i}' for i in range(k))

    return GroupingFactor(
        group_name=term.group,
        levels=levels,
        group_ids=group_ids.ravel(),
        terms=names,
        Z_block=build_z_block(group_ids.ravel(), len(levels), covariates),
        n_groups=len(levels),
        n_terms=k,
        template=CovarianceTemplate(term.covariance, k),
    )
