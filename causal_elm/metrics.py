"""
Validation Metrics
==================

Loss and score functions used by the cross-validation search and by the
validation suite.

Confusion matrices follow the convention ``confmat[predicted, actual]`` over
the contiguous range of integer labels present in either argument, so for a
binary problem ``precision`` and ``recall`` are reported for the first class.
"""

from __future__ import annotations

from typing import Callable, Dict, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray
from sklearn import metrics as skm


Metric = Callable[[ArrayLike, ArrayLike], float]


def _check_pair(y: ArrayLike, y_hat: ArrayLike):
    y = np.asarray(y, dtype=float)
    y_hat = np.asarray(y_hat, dtype=float)
    if y.shape[0] != y_hat.shape[0]:
        raise ValueError(
            f"y and y_hat must have the same length, got {y.shape[0]} and {y_hat.shape[0]}"
        )
    return y, y_hat


def _as_labels(y: NDArray) -> NDArray:
    # one-hot rows collapse to their class index
    if y.ndim == 2 and y.shape[1] > 1:
        return np.argmax(y, axis=1)
    return np.rint(y.ravel()).astype(int)


# =============================================================================
# Regression
# =============================================================================

def mse(y: ArrayLike, y_hat: ArrayLike) -> float:
    """Mean squared error."""
    y, y_hat = _check_pair(y, y_hat)
    return float(skm.mean_squared_error(y, y_hat))


def mae(y: ArrayLike, y_hat: ArrayLike) -> float:
    """Mean absolute error."""
    y, y_hat = _check_pair(y, y_hat)
    return float(skm.mean_absolute_error(y, y_hat))


# =============================================================================
# Classification
# =============================================================================

def accuracy(y: ArrayLike, y_hat: ArrayLike) -> float:
    """Share of predictions equal to the actual label."""
    y, y_hat = _check_pair(y, y_hat)
    return float(skm.accuracy_score(_as_labels(y), _as_labels(y_hat)))


def confusion_matrix(y: ArrayLike, y_hat: ArrayLike) -> NDArray:
    """
    Confusion matrix indexed as ``[predicted, actual]``.

    Parameters
    ----------
    y : array-like
        Actual labels, or a one-hot matrix.
    y_hat : array-like
        Predicted labels, or a one-hot matrix.

    Returns
    -------
    NDArray
        Square integer matrix over the labels min..max of both arguments.
    """
    y, y_hat = _check_pair(y, y_hat)
    actual, predicted = _as_labels(y), _as_labels(y_hat)
    lo = int(min(actual.min(), predicted.min()))
    hi = int(max(actual.max(), predicted.max()))
    labels = np.arange(lo, hi + 1)
    return skm.confusion_matrix(actual, predicted, labels=labels).T


def _per_class(numerator: NDArray, denominator: NDArray) -> float:
    with np.errstate(divide="ignore", invalid="ignore"):
        ratios = numerator / denominator
    return float(np.mean(np.nan_to_num(ratios, nan=0.0, posinf=0.0)))


def precision(y: ArrayLike, y_hat: ArrayLike) -> float:
    """
    Precision from the confusion matrix.

    For two classes the precision of the first class; otherwise the macro
    average over classes, counting classes that were never predicted as 0.
    """
    confmat = confusion_matrix(y, y_hat).astype(float)
    row_sums = confmat.sum(axis=1)
    if confmat.shape == (2, 2):
        return float(confmat[0, 0] / row_sums[0]) if row_sums[0] > 0 else 0.0
    return _per_class(np.diag(confmat), row_sums)


def recall(y: ArrayLike, y_hat: ArrayLike) -> float:
    """
    Recall from the confusion matrix.

    For two classes the recall of the first class; otherwise the macro
    average over classes.
    """
    confmat = confusion_matrix(y, y_hat).astype(float)
    col_sums = confmat.sum(axis=0)
    if confmat.shape == (2, 2):
        return float(confmat[0, 0] / col_sums[0]) if col_sums[0] > 0 else 0.0
    return _per_class(np.diag(confmat), col_sums)


def f1(y: ArrayLike, y_hat: ArrayLike) -> float:
    """Harmonic mean of precision and recall."""
    p, r = precision(y, y_hat), recall(y, y_hat)
    if p + r == 0:
        return 0.0
    return float(2 * p * r / (p + r))


# =============================================================================
# Lookup
# =============================================================================

METRICS: Dict[str, Metric] = {
    "mse": mse,
    "mae": mae,
    "accuracy": accuracy,
    "precision": precision,
    "recall": recall,
    "f1": f1,
}

# Scores to maximise; everything else is a loss
HIGHER_IS_BETTER = frozenset({accuracy, precision, recall, f1})


def get_metric(metric: Union[str, Metric]) -> Metric:
    """
    Resolve a validation metric from its name or return it unchanged.

    Raises
    ------
    ValueError
        If the metric is not one of ``METRICS``.
    """
    if isinstance(metric, str):
        key = metric.lower()
        if key not in METRICS:
            raise ValueError(
                f"Unknown validation metric: '{metric}'. "
                f"Choose from: {', '.join(METRICS)}"
            )
        return METRICS[key]

    if metric in METRICS.values():
        return metric

    raise ValueError(f"Unknown validation metric: {metric!r}")


def is_classification_metric(metric: Metric) -> bool:
    """True for metrics that score rounded class predictions."""
    return metric in HIGHER_IS_BETTER


def default_metric(task: str) -> Metric:
    """Accuracy for classification, mean squared error otherwise."""
    return accuracy if task == "classification" else mse


__all__ = [
    "mse",
    "mae",
    "accuracy",
    "confusion_matrix",
    "precision",
    "recall",
    "f1",
    "METRICS",
    "HIGHER_IS_BETTER",
    "get_metric",
    "is_classification_metric",
    "default_metric",
]
