"""Tests for Satterthwaite degrees of freedom computation."""

import numpy as np
import pytest
from scipy.stats import t as t_dist

from lmmkit.mixed import lmm
from lmmkit.mixed._satterthwaite import satterthwaite_df


class TestSatterthwaite:
    """Tests for Satterthwaite df computation."""

    def test_df_are_positive_and_finite(self, random_intercept_simple):
        d = random_intercept_simple
        result = lmm(d['y'], d['X'], groups={'group': d['group']})
        assert np.all(result.df_satterthwaite >= 1.0)
        assert np.all(np.isfinite(result.df_satterthwaite))

    def test_p_values_consistent_with_df(self, random_intercept_simple):
        """p-values should be consistent with t-statistics and df."""
        d = random_intercept_simple
        result = lmm(d['y'], d['X'], groups={'group': d['group']})

        for i in range(len(result.coefficients)):
            expected_p = 2.0 * t_dist.sf(
                abs(result.t_values[i]), result.df_satterthwaite[i]
            )
            np.testing.assert_allclose(
                result.p_values[i], expected_p, rtol=1e-8
            )

    def test_t_values(self, random_intercept_simple):
        d = random_intercept_simple
        result = lmm(d['y'], d['X'], groups={'group': d['group']})
        np.testing.assert_allclose(
            result.t_values, result.coefficients / result.se
        )
        np.testing.assert_allclose(result.se, np.sqrt(np.diag(result.vcov)))

    def test_skip_satterthwaite_flag(self, random_intercept_simple):
        """compute_satterthwaite=False should use residual df."""
        d = random_intercept_simple
        n = d['n_groups'] * d['n_per_group']
        p = 2
        result = lmm(
            d['y'], d['X'], groups={'group': d['group']},
            compute_satterthwaite=False,
        )
        np.testing.assert_allclose(
            result.df_satterthwaite, float(n - p), atol=1e-10
        )

    def test_between_group_effect_df(self, balanced_oneway):
        """The intercept of a balanced one-way model has J - 1 df."""
        d = balanced_oneway
        result = lmm(d['y'], d['X'], groups={'group': d['group']})
        np.testing.assert_allclose(
            result.df_satterthwaite[0], d['n_groups'] - 1, rtol=0.02
        )

    def test_within_group_effect_df(self, random_intercept_simple):
        """A within-group covariate gets close to the residual df."""
        d = random_intercept_simple
        result = lmm(d['y'], d['X'], groups={'group': d['group']})
        n = d['n_groups'] * d['n_per_group']
        assert result.df_satterthwaite[1] > 0.8 * (n - d['n_groups'])
        assert result.df_satterthwaite[0] < 2 * d['n_groups']

    def test_direct_call_matches_fit(self, random_intercept_simple):
        d = random_intercept_simple
        result = lmm(d['y'], d['X'], groups={'group': d['group']})
        spec = result.spec
        df = satterthwaite_df(
            result.theta, spec.X, spec.Z, spec.y, list(spec.factors), reml=True
        )
        np.testing.assert_allclose(df, result.df_satterthwaite)
