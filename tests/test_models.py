"""Tests for extreme learning machines, GCV ridge and ensembles."""

import numpy as np
import pytest
from sklearn.exceptions import NotFittedError

from causal_elm.activations import sigmoid
from causal_elm.models import (
    GCV_GRID,
    ELMEnsemble,
    ExtremeLearner,
    RegularizedExtremeLearner,
    gcv_score,
    ridge_constant,
)


# ─── Extreme Learning Machine ────────────────────────────────────────────────


class TestExtremeLearner:

    def test_repr(self, regression_data):
        X, y = regression_data
        assert repr(ExtremeLearner(X, y, 10)) == "Extreme Learning Machine with 10 hidden neurons"
        assert (
            repr(RegularizedExtremeLearner(X, y, 10))
            == "Regularized Extreme Learning Machine with 10 hidden neurons"
        )

    def test_hidden_weights_shape_and_range(self, regression_data):
        X, y = regression_data
        elm = ExtremeLearner(X, y, 15, random_state=0)
        assert elm.weights.shape == (2, 15)
        assert elm.bias.shape == (15,)
        assert np.all(np.abs(elm.weights) <= 1) and np.all(np.abs(elm.bias) <= 1)

    def test_fit_approximates_linear_function(self, regression_data):
        X, y = regression_data
        elm = ExtremeLearner(X, y, 30, sigmoid, random_state=0).fit()
        residual_mse = np.mean((elm.predict(X) - y) ** 2)
        assert residual_mse < 0.1 * np.var(y)

    def test_same_seed_same_weights(self, regression_data):
        X, y = regression_data
        a = ExtremeLearner(X, y, 20, random_state=7).fit()
        b = ExtremeLearner(X, y, 20, random_state=7).fit()
        np.testing.assert_array_equal(a.beta, b.beta)
        np.testing.assert_array_equal(a.predict(X), b.predict(X))

    def test_predict_before_fit_raises(self, regression_data):
        X, y = regression_data
        elm = ExtremeLearner(X, y, 5)
        with pytest.raises(NotFittedError):
            elm.predict(X)
        with pytest.raises(NotFittedError):
            elm.predict_counterfactual(X)
        with pytest.raises(NotFittedError):
            elm.placebo_test()

    def test_placebo_requires_counterfactual(self, regression_data):
        X, y = regression_data
        elm = ExtremeLearner(X, y, 5, random_state=0).fit()
        with pytest.raises(NotFittedError, match="predict_counterfactual"):
            elm.placebo_test()

    def test_placebo_test(self, regression_data):
        X, y = regression_data
        elm = ExtremeLearner(X, y, 5, random_state=0).fit()
        counterfactual = elm.predict_counterfactual(X[:10] + 1)
        fitted, stored = elm.placebo_test()
        assert fitted.shape == (200,)
        np.testing.assert_array_equal(stored, counterfactual)

    def test_feature_mismatch_raises(self, regression_data):
        X, y = regression_data
        elm = ExtremeLearner(X, y, 5, random_state=0).fit()
        with pytest.raises(ValueError, match="features"):
            elm.predict(np.zeros((3, 4)))

    def test_row_mismatch_raises(self):
        with pytest.raises(ValueError, match="same number of rows"):
            ExtremeLearner(np.zeros((5, 2)), np.zeros(4), 3)

    def test_binary_predictions_clipped(self):
        rng = np.random.default_rng(0)
        X = rng.normal(size=(100, 3))
        y = (X[:, 0] > 0).astype(float)
        predictions = ExtremeLearner(X, y, 40, random_state=0).fit().predict(X * 5)
        assert np.all(predictions > 0) and np.all(predictions < 1)

    def test_zero_weights_drop_rows(self, regression_data):
        X, y = regression_data
        weights = np.r_[np.ones(100), np.zeros(100)]
        weighted = ExtremeLearner(X, y, 8, random_state=3).fit(sample_weight=weights)
        subset = ExtremeLearner(X[:100], y[:100], 8, random_state=3).fit()
        np.testing.assert_allclose(weighted.beta, subset.beta, rtol=1e-6, atol=1e-8)

    def test_negative_weights_raise(self, regression_data):
        X, y = regression_data
        with pytest.raises(ValueError, match="non-negative"):
            ExtremeLearner(X, y, 5).fit(sample_weight=-np.ones(200))


# ─── Ridge Penalty ───────────────────────────────────────────────────────────


class TestGCV:

    def test_regularized_fit_sets_penalty(self, regression_data):
        X, y = regression_data
        elm = RegularizedExtremeLearner(X, y, 20, random_state=0).fit()
        assert elm.ridge_penalty > 0
        assert np.all(np.isfinite(elm.beta))

    def test_ridge_constant_beats_grid(self, regression_data):
        X, y = regression_data
        H = ExtremeLearner(X, y, 20, random_state=0).hidden_layer(X)
        lam = ridge_constant(H, y)
        scale = np.linalg.svd(H, compute_uv=False).max() ** 2
        best_grid = min(gcv_score(H, y, g * scale) for g in GCV_GRID)
        assert gcv_score(H, y, lam) <= best_grid + 1e-12

    def test_gcv_infinite_when_saturated(self):
        H = np.eye(4)
        assert gcv_score(H, np.arange(4.0), 0.0) == np.inf


# ─── Ensemble ────────────────────────────────────────────────────────────────


class TestELMEnsemble:

    def test_defaults(self):
        X, y = np.random.default_rng(0).normal(size=(50, 4)), np.arange(50.0)
        ensemble = ELMEnsemble(X, y, num_machines=6, random_state=0)
        assert len(ensemble.elms) == 6
        assert ensemble.num_feats == 3
        assert ensemble.sample_size == 50
        assert all(len(f) == 3 for f in ensemble.feat_indices)

    def test_predict_is_member_mean(self, regression_data):
        X, y = regression_data
        ensemble = ELMEnsemble(X, y, num_machines=4, num_feats=2, num_neurons=5,
                               random_state=0).fit()
        members = np.mean([elm.predict(X[:, f]) for elm, f in
                           zip(ensemble.elms, ensemble.feat_indices)], axis=0)
        np.testing.assert_allclose(ensemble.predict(X), members)

    def test_predict_before_fit_raises(self, regression_data):
        X, y = regression_data
        with pytest.raises(NotFittedError):
            ELMEnsemble(X, y, num_machines=2).predict(X)

    def test_invalid_num_feats(self, regression_data):
        X, y = regression_data
        with pytest.raises(ValueError, match="num_feats"):
            ELMEnsemble(X, y, num_feats=3)

    def test_always_include_in_every_member(self):
        X = np.random.default_rng(0).normal(size=(60, 4))
        ensemble = ELMEnsemble(X, X[:, 3], num_machines=20, always_include=[-1],
                               random_state=0)
        assert ensemble.num_feats == 2
        assert all(3 in f and len(f) == 3 for f in ensemble.feat_indices)

    def test_always_include_only_fixed_columns(self, regression_data):
        X, y = regression_data
        ensemble = ELMEnsemble(X, y, num_machines=3, always_include=[0, 1], random_state=0)
        assert ensemble.num_feats == 0
        assert all(list(f) == [0, 1] for f in ensemble.feat_indices)

    def test_always_include_out_of_range(self, regression_data):
        X, y = regression_data
        with pytest.raises(ValueError, match="always_include"):
            ELMEnsemble(X, y, always_include=[2])

    def test_regularized_members(self, regression_data):
        X, y = regression_data
        ensemble = ELMEnsemble(X, y, num_machines=3, regularized=True, random_state=1)
        assert all(isinstance(elm, RegularizedExtremeLearner) for elm in ensemble.elms)
