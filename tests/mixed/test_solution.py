"""Tests for LMMSolution accessors, export and reproducibility."""

from concurrent.futures import ThreadPoolExecutor
import json

import numpy as np
import pytest

from lmmkit.mixed import LMMSolution, lmm


@pytest.fixture
def fitted(random_intercept_simple):
    d = random_intercept_simple
    return lmm(d['y'], d['X'], groups={'group': d['group']}, reml=False)


class TestFitStatistics:

    def test_n_params(self, fitted):
        # p = 2, dim θ = 1, plus σ
        assert fitted.n_params == 4

    def test_log_likelihood(self, fitted):
        np.testing.assert_allclose(fitted.log_likelihood, -fitted.deviance / 2)

    def test_aic(self, fitted):
        np.testing.assert_allclose(fitted.aic, fitted.deviance + 2 * 4)

    def test_aicc(self, fitted):
        n, k = fitted.n_obs, 4
        np.testing.assert_allclose(
            fitted.aicc, fitted.aic + 2 * k * (k + 1) / (n - k - 1)
        )

    def test_bic(self, fitted):
        np.testing.assert_allclose(
            fitted.bic, fitted.deviance + np.log(fitted.n_obs) * 4
        )

    def test_aicc_infinite_for_tiny_samples(self):
        y = np.array([1.0, 2.5, 1.7, 3.1, 2.2])
        group = np.array([0, 0, 1, 1, 1])
        X = np.column_stack([np.ones(5), np.arange(5.0)])
        result = lmm(y, X, groups={'g': group}, compute_satterthwaite=False)
        # n - k - 1 = 5 - 4 - 1 = 0
        assert result.aicc == np.inf

    def test_deviance_is_objective(self, fitted):
        np.testing.assert_allclose(fitted.deviance, fitted.info['deviance'])


class TestAccessors:

    def test_vcov_symmetric(self, fitted):
        np.testing.assert_allclose(fitted.vcov, fitted.vcov.T)
        assert fitted.vcov.shape == (2, 2)

    def test_templates(self, fitted):
        t = fitted.templates['group']
        assert t.kind == 'correlated'
        assert t.n_terms == 1

    def test_n_groups(self, fitted, random_intercept_simple):
        assert fitted.n_groups == {'group': random_intercept_simple['n_groups']}

    def test_result_metadata(self, fitted):
        assert fitted._result.backend_name == 'cpu_lmm'
        assert fitted.info['method'] == 'ML'
        assert 'numpy_version' in fitted._result.provenance
        assert fitted.warnings == ()

    def test_repr(self, fitted):
        r = repr(fitted)
        assert r.startswith('LMMSolution(ML')
        assert 'n=200' in r

    def test_summary_sections(self, fitted):
        s = fitted.summary()
        assert 'Linear mixed model fit by ML' in s
        assert 'AICc' in s
        assert 'Residual' in s
        assert 'Number of obs: 200' in s
        assert 'ML criterion at convergence' in s


class TestToDict:

    def test_plain_types(self, fitted):
        d = fitted.to_dict()
        # Round-trips through JSON only if every value is a builtin type
        text = json.dumps(d)
        assert json.loads(text)['n_obs'] == 200

    def test_contents(self, fitted):
        d = fitted.to_dict()
        assert d['method'] == 'ML'
        assert set(d['fixef']) == {'(Intercept)', 'X1'}
        assert d['n_params'] == 4
        assert len(d['var_components']) == 1
        assert d['var_components'][0]['corr'] is None
        assert len(d['ranef']['group']['values']) == 20
        assert d['ranef']['group']['terms'] == ['1']
        np.testing.assert_allclose(d['sigma'], fitted.sigma)

    def test_dimensions_and_group_coefficients(self, fitted):
        d = fitted.to_dict()
        assert (d['n_fixed'], d['n_theta'], d['n_random']) == (2, 1, 20)
        assert d['n_params'] == d['n_fixed'] + d['n_theta'] + 1
        coef = d['coef']['group']
        assert coef['names'] == ['(Intercept)', 'X1']
        assert len(coef['levels']) == 20
        np.testing.assert_allclose(coef['values'], fitted.coef['group'])

    def test_no_optimizer_internals(self, fitted):
        d = fitted.to_dict()
        assert 'n_fev' not in d
        assert 'n_iter' not in d


class TestReproducibility:

    def test_same_inputs_same_result(self, random_intercept_simple):
        d = random_intercept_simple
        a = lmm(d['y'], d['X'], groups={'group': d['group']})
        b = lmm(d['y'], d['X'], groups={'group': d['group']})
        np.testing.assert_array_equal(a.theta, b.theta)
        np.testing.assert_array_equal(a.coefficients, b.coefficients)
        assert a.deviance == b.deviance

    def test_inputs_not_modified(self, random_intercept_simple):
        d = random_intercept_simple
        y = d['y'].copy()
        X = d['X'].copy()
        lmm(d['y'], d['X'], groups={'group': d['group']})
        np.testing.assert_array_equal(d['y'], y)
        np.testing.assert_array_equal(d['X'], X)

    def test_concurrent_fits(self, random_intercept_simple, crossed_effects):
        """Independent fits in threads match sequential fits."""
        def fit_intercept():
            d = random_intercept_simple
            return lmm(d['y'], d['X'], groups={'group': d['group']},
                       compute_satterthwaite=False)

        def fit_crossed():
            d = crossed_effects
            return lmm(d['y'], d['X'],
                       groups={'subject': d['subject'], 'item': d['item']},
                       compute_satterthwaite=False)

        sequential = [fit_intercept(), fit_crossed()]
        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(f) for f in
                       (fit_intercept, fit_crossed, fit_intercept, fit_crossed)]
            results = [f.result() for f in futures]

        for i, res in enumerate(results):
            assert isinstance(res, LMMSolution)
            expected = sequential[i % 2]
            np.testing.assert_allclose(res.theta, expected.theta, rtol=1e-10)
            np.testing.assert_allclose(res.deviance, expected.deviance, rtol=1e-12)
