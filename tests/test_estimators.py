"""Tests for the causal estimators.

Effects are checked against synthetic data with a known true effect, with
tolerances wide enough for small hidden-layer budgets.
"""

import dataclasses

import numpy as np
import pytest
from sklearn.exceptions import NotFittedError

from causal_elm.activations import gelu, relu
from causal_elm.data import make_treatment_data
from causal_elm.estimators import (
    DoubleMachineLearning,
    GComputation,
    InterruptedTimeSeries,
    ModelConfig,
)
from causal_elm.metrics import accuracy, mae, mse
from causal_elm.utilities import moving_average


# ─── Configuration ───────────────────────────────────────────────────────────


class TestModelConfig:

    def test_defaults_resolve_functions(self):
        config = ModelConfig()
        assert config.activation is relu
        assert config.validation_metric is None
        assert config.to_dict()["activation"] == "relu"
        assert config.to_dict()["validation_metric"] is None

    def test_frozen(self):
        config = ModelConfig(folds=3)
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.folds = 4
        assert dataclasses.replace(config, random_state=5).folds == 3

    def test_names_resolved(self):
        config = ModelConfig(activation="gelu", validation_metric="accuracy")
        assert config.activation is gelu
        assert config.validation_metric is accuracy

    @pytest.mark.parametrize("kwargs, match", [
        ({"task": "forecasting"}, "task"),
        ({"min_neurons": 10, "max_neurons": 5}, "min_neurons"),
        ({"min_neurons": 0}, "min_neurons"),
        ({"folds": 1}, "folds"),
        ({"iterations": 0}, "iterations"),
        ({"approximator_neurons": 0}, "approximator_neurons"),
        ({"validation_metric": "rmse"}, "metric"),
        ({"activation": "cosine"}, "activation"),
    ])
    def test_invalid_settings(self, kwargs, match):
        with pytest.raises(ValueError, match=match):
            ModelConfig(**kwargs)


# ─── Interrupted Time Series ─────────────────────────────────────────────────


class TestInterruptedTimeSeries:

    def test_effect_per_post_period(self, its_data, fast_config):
        its = InterruptedTimeSeries(*its_data, **fast_config)
        effect = its.estimate_causal_effect()
        assert effect.shape == (10,)
        assert its.config.temporal
        assert 1 <= its.num_neurons <= 10

    def test_recovers_level_shift(self, its_data, fast_config):
        its = InterruptedTimeSeries(*its_data, autoregression=False, **fast_config)
        effect = its.estimate_causal_effect()
        assert 1.0 < np.mean(effect) < 3.0

    def test_effect_is_observed_minus_counterfactual(self, its_data, fast_config):
        its = InterruptedTimeSeries(*its_data, **fast_config)
        its.estimate_causal_effect()
        np.testing.assert_allclose(its.causal_effect, its.data.Y1 - its.counterfactual)

    def test_placebo_test_stored(self, its_data, fast_config):
        its = InterruptedTimeSeries(*its_data, **fast_config)
        its.estimate_causal_effect()
        fitted, counterfactual = its.placebo_test
        assert fitted.shape == (100,)
        assert counterfactual.shape == (10,)

    def test_autoregression_uses_observed_post_outcomes(self, its_data, fast_config):
        its = InterruptedTimeSeries(*its_data, **fast_config)
        _, X1 = its.design()
        np.testing.assert_allclose(X1[:, -1], moving_average(its.data.Y1))

    def test_autoregression_adds_column(self, its_data, fast_config):
        X0, _ = InterruptedTimeSeries(*its_data, **fast_config).design()
        X0_plain, _ = InterruptedTimeSeries(*its_data, autoregression=False, **fast_config).design()
        assert X0.shape[1] == X0_plain.shape[1] + 1

    def test_effect_unavailable_before_estimation(self, its_data):
        its = InterruptedTimeSeries(*its_data)
        assert not its.is_estimated
        with pytest.raises(NotFittedError):
            its.causal_effect


# ─── G-Computation ───────────────────────────────────────────────────────────


class TestGComputation:

    def test_ate_near_truth(self, treatment_data, fast_config):
        g = GComputation(*treatment_data, max_neurons=30, folds=3, random_state=42)
        ate = g.estimate_causal_effect()
        assert isinstance(ate, float)
        assert 0.5 < ate < 3.5

    def test_att_differs_from_ate(self, treatment_data, fast_config):
        ate = GComputation(*treatment_data, **fast_config).estimate_causal_effect()
        att = GComputation(
            *treatment_data, quantity_of_interest="ATT", **fast_config
        ).estimate_causal_effect()
        assert ate != att

    def test_itt_matches_ate_formula(self, treatment_data, fast_config):
        ate = GComputation(*treatment_data, **fast_config).estimate_causal_effect()
        itt = GComputation(
            *treatment_data, quantity_of_interest="ITT", **fast_config
        ).estimate_causal_effect()
        assert itt == pytest.approx(ate)

    def test_invalid_quantity(self, treatment_data):
        with pytest.raises(ValueError, match="quantity_of_interest"):
            GComputation(*treatment_data, quantity_of_interest="CATE")

    def test_task_inferred_from_outcome(self, fast_config):
        X, T, Y = make_treatment_data(n=100, binary_outcome=True, random_state=1)
        assert GComputation(X, T, Y).task == "classification"
        assert GComputation(X, T, Y, task="regression").task == "regression"

    def test_metric_follows_task(self, treatment_data):
        X, T, Y = make_treatment_data(n=100, binary_outcome=True, random_state=1)
        assert GComputation(X, T, Y).validation_metric is accuracy
        assert GComputation(X, T, Y, task="regression").validation_metric is mse
        assert GComputation(*treatment_data).validation_metric is mse
        assert GComputation(X, T, Y, validation_metric="mae").validation_metric is mae

    def test_check_estimated(self, treatment_data, fast_config):
        g = GComputation(*treatment_data, **fast_config)
        with pytest.raises(NotFittedError, match="estimate_causal_effect"):
            g.check_estimated()
        g.estimate_causal_effect()
        g.check_estimated()

    def test_neurons_cached_and_reused(self, treatment_data, fast_config):
        g = GComputation(*treatment_data, **fast_config)
        first = g.estimate_causal_effect()
        size = g.num_neurons
        second = g.estimate_causal_effect()
        assert g.num_neurons == size
        assert second == pytest.approx(first)

    def test_same_seed_same_effect(self, treatment_data, fast_config):
        a = GComputation(*treatment_data, **fast_config).estimate_causal_effect()
        b = GComputation(*treatment_data, **fast_config).estimate_causal_effect()
        assert a == b

    def test_temporal_flag(self, treatment_data, fast_config):
        g = GComputation(*treatment_data, temporal=True, **fast_config)
        assert np.isfinite(g.estimate_causal_effect())

    def test_row_mismatch(self):
        with pytest.raises(ValueError, match="mismatched"):
            GComputation(np.zeros((10, 2)), np.zeros(10), np.zeros(9))


# ─── Double Machine Learning ─────────────────────────────────────────────────


class TestDoubleMachineLearning:

    def test_recovers_effect_with_independent_treatment(self, fast_config):
        X, T, Y = make_treatment_data(n=600, theta0=1.5, confounding=0.0, random_state=7)
        dml = DoubleMachineLearning(X, T, Y, **fast_config)
        assert abs(dml.estimate_causal_effect() - 1.5) < 0.5

    def test_fold_effects(self, treatment_data, fast_config):
        dml = DoubleMachineLearning(*treatment_data, **fast_config)
        effect = dml.estimate_causal_effect()
        assert dml.fold_effects.shape == (3,)
        assert effect == pytest.approx(np.mean(dml.fold_effects))

    def test_confounders(self, treatment_data, fast_config):
        X, T, Y = treatment_data
        W = np.random.default_rng(0).normal(size=(X.shape[0], 2))
        dml = DoubleMachineLearning(X, T, Y, W=W, **fast_config)
        assert dml.data.covariates.shape[1] == X.shape[1] + 2
        assert np.isfinite(dml.estimate_causal_effect())

    def test_only_ate(self, treatment_data):
        with pytest.raises(ValueError, match="quantity_of_interest"):
            DoubleMachineLearning(*treatment_data, quantity_of_interest="ATT")

    def test_confounder_rows_checked(self, treatment_data):
        X, T, Y = treatment_data
        with pytest.raises(ValueError, match="mismatched"):
            DoubleMachineLearning(X, T, Y, W=np.zeros((5, 2)))
