"""Tests for the validation metrics."""

import numpy as np
import pytest

from causal_elm.metrics import (
    accuracy,
    confusion_matrix,
    f1,
    get_metric,
    is_classification_metric,
    mae,
    mse,
    precision,
    recall,
)


class TestRegressionMetrics:

    def test_mse(self):
        assert mse([-1.0, -1.0, -1.0], [1.0, 1.0, 1.0]) == pytest.approx(4.0)
        assert mse([0.0, 0.0], [0.0, 0.0]) == 0.0

    def test_mse_symmetric(self):
        y, y_hat = np.array([1.0, 2.0, 3.5]), np.array([0.0, 2.5, 3.0])
        assert mse(y, y_hat) == pytest.approx(mse(y_hat, y))

    def test_mae(self):
        assert mae([-1.0, -1.0, -1.0], [1.0, 1.0, 1.0]) == pytest.approx(2.0)

    def test_length_mismatch_raises(self):
        with pytest.raises(ValueError, match="same length"):
            mse([1.0, 2.0], [1.0])


class TestClassificationMetrics:

    def test_accuracy(self):
        assert accuracy([1, 1, 1, 1], [0, 1, 1, 0]) == pytest.approx(0.5)

    def test_accuracy_one_hot(self):
        y = np.array([[1, 0], [0, 1], [0, 1]])
        y_hat = np.array([[0.9, 0.1], [0.2, 0.8], [0.7, 0.3]])
        assert accuracy(y, y_hat) == pytest.approx(2 / 3)

    def test_confusion_matrix_predicted_by_actual(self):
        confmat = confusion_matrix([0, 1, 0, 0], [0, 1, 1, 0])
        np.testing.assert_array_equal(confmat, [[2, 0], [1, 1]])

    def test_binary_precision(self):
        assert precision([0, 1, 0, 0], [0, 1, 1, 0]) == pytest.approx(1.0)

    def test_multiclass_recall_and_f1(self):
        y, y_hat = [1, 2, 1, 3, 0], [2, 2, 2, 3, 1]
        assert recall(y, y_hat) == pytest.approx(0.5)
        assert precision(y, y_hat) == pytest.approx(1 / 3)
        assert f1(y, y_hat) == pytest.approx(0.4)

    def test_f1_zero_when_nothing_correct(self):
        assert f1([0, 0, 1], [1, 1, 0]) == 0.0


class TestLookup:

    def test_get_metric(self):
        assert get_metric("MSE") is mse
        assert get_metric(accuracy) is accuracy

    def test_unknown_metric_raises(self):
        with pytest.raises(ValueError, match="Unknown validation metric"):
            get_metric("rmse")

    def test_direction(self):
        assert is_classification_metric(f1)
        assert not is_classification_metric(mae)
