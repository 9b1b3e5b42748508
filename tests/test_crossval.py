"""Tests for fold generation and the hidden-layer size search."""

import numpy as np
import pytest

from causal_elm.crossval import (
    best_size,
    cross_validate,
    fold_indices,
    generate_folds,
    validation_loss,
)


def make_classification_data(n=120, seed=42):
    """Binary target determined by the sign of the first covariate."""
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(n, 3))
    return X, (X[:, 0] > 0).astype(float)


# ─── Folds ───────────────────────────────────────────────────────────────────


class TestFolds:

    @pytest.mark.parametrize("temporal", [False, True])
    def test_folds_partition_rows(self, temporal):
        folds = generate_folds(23, 5, temporal=temporal, random_state=0)
        assert len(folds) == 5
        np.testing.assert_array_equal(np.sort(np.concatenate(folds)), np.arange(23))

    def test_iid_folds_are_shuffled(self):
        folds = generate_folds(100, 4, random_state=0)
        assert not np.array_equal(np.concatenate(folds), np.arange(100))

    def test_iid_splits_are_complements(self):
        for train, val in fold_indices(30, 3, random_state=1):
            assert np.intersect1d(train, val).size == 0
            assert train.size + val.size == 30

    def test_temporal_validation_after_training(self):
        splits = fold_indices(20, 5, temporal=True)
        assert len(splits) == 4
        for train, val in splits:
            assert train.max() < val.min()
            np.testing.assert_array_equal(train, np.arange(train.size))

    def test_same_seed_same_folds(self):
        a = generate_folds(40, 4, random_state=3)
        b = generate_folds(40, 4, random_state=3)
        for fa, fb in zip(a, b):
            np.testing.assert_array_equal(fa, fb)

    def test_too_few_folds(self):
        with pytest.raises(ValueError, match="at least 2"):
            generate_folds(10, 1)

    def test_more_folds_than_rows(self):
        with pytest.raises(ValueError, match="cannot exceed"):
            generate_folds(5, 6)

    def test_temporal_blocks_need_two_rows(self):
        with pytest.raises(ValueError, match="temporal"):
            generate_folds(5, 3, temporal=True)
        assert len(generate_folds(10, 5, temporal=True)) == 5


# ─── Losses ──────────────────────────────────────────────────────────────────


class TestLosses:

    def test_validation_loss_regression(self, regression_data):
        X, y = regression_data
        loss = validation_loss(X[:150], y[:150], X[150:], y[150:], 10, "mse", random_state=0)
        assert isinstance(loss, float)
        assert loss >= 0

    def test_validation_loss_classification(self):
        X, y = make_classification_data()
        score = validation_loss(X[:100], y[:100], X[100:], y[100:], 10, "accuracy",
                                regularized=False, random_state=0)
        assert 0 <= score <= 1

    def test_classification_task_scores_rounded_predictions(self):
        X, y = make_classification_data()
        args = (X[:100], y[:100], X[100:], y[100:], 10)
        error = validation_loss(*args, "mse", random_state=0, task="classification")
        score = validation_loss(*args, "accuracy", random_state=0, task="classification")
        assert error == pytest.approx(1 - score)
        assert error * 20 == pytest.approx(round(error * 20))

    def test_regression_task_keeps_raw_predictions(self):
        X, y = make_classification_data()
        args = (X[:100], y[:100], X[100:], y[100:], 10, "mse")
        raw = validation_loss(*args, random_state=0)
        rounded = validation_loss(*args, random_state=0, task="classification")
        assert raw != rounded

    def test_cross_validate_passes_task(self):
        X, y = make_classification_data()
        error = cross_validate(X, y, 8, "mse", folds=4, random_state=0, task="classification")
        score = cross_validate(X, y, 8, "accuracy", folds=4, random_state=0)
        assert error == pytest.approx(1 - score)

    def test_cross_validate(self, regression_data):
        X, y = regression_data
        loss = cross_validate(X, y, 8, folds=4, random_state=0)
        assert isinstance(loss, float)
        assert loss >= 0

    def test_cross_validate_temporal(self, regression_data):
        X, y = regression_data
        assert cross_validate(X, y, 8, folds=4, temporal=True, random_state=0) >= 0


# ─── Size Search ─────────────────────────────────────────────────────────────


class TestBestSize:

    def test_within_bounds(self, regression_data):
        X, y = regression_data
        size = best_size(X, y, min_neurons=2, max_neurons=30, folds=3, random_state=0)
        assert 2 <= size <= 30

    def test_classification_within_bounds(self):
        X, y = make_classification_data()
        size = best_size(X, y, "accuracy", "classification", max_neurons=20, folds=3,
                         random_state=0)
        assert 1 <= size <= 20

    def test_classification_defaults_to_accuracy(self):
        X, y = make_classification_data()
        kwargs = dict(max_neurons=20, folds=3, iterations=2, random_state=3)
        implicit = best_size(X, y, task="classification", **kwargs)
        explicit = best_size(X, y, "accuracy", "classification", **kwargs)
        assert implicit == explicit

    def test_degenerate_range(self, regression_data):
        X, y = regression_data
        assert best_size(X, y, min_neurons=7, max_neurons=7) == 7

    def test_deterministic(self, regression_data):
        X, y = regression_data
        kwargs = dict(max_neurons=25, folds=3, iterations=3, random_state=11)
        assert best_size(X, y, **kwargs) == best_size(X, y, **kwargs)

    def test_invalid_bounds(self, regression_data):
        X, y = regression_data
        with pytest.raises(ValueError, match="min_neurons"):
            best_size(X, y, min_neurons=10, max_neurons=5)
        with pytest.raises(ValueError, match="min_neurons"):
            best_size(X, y, min_neurons=0, max_neurons=5)

    def test_invalid_task(self, regression_data):
        X, y = regression_data
        with pytest.raises(ValueError, match="task"):
            best_size(X, y, task="clustering")
