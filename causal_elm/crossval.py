"""
Cross-Validation
================

Fold generation and the search over hidden-layer sizes.

``best_size`` probes a handful of sizes, fits a small auxiliary ELM to the
observed (size, loss) pairs, and evaluates whichever unexplored size the
approximator expects to do best. The search window is halved around the
current optimum after every proposal, so the number of full cross-validation
runs stays close to the iteration budget instead of the width of the range.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
from numpy.typing import NDArray
from sklearn.model_selection import KFold

from causal_elm.activations import Activation, relu
from causal_elm.metrics import (
    Metric,
    default_metric,
    get_metric,
    is_classification_metric,
)
from causal_elm.models import ExtremeLearner, RegularizedExtremeLearner
from causal_elm.utilities import as_float_array, clip_if_binary, var_type


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# Minimum relative improvement in the best loss for the search to continue
TOLERANCE = 1e-3

# Consecutive rounds without improvement before the search stops
PATIENCE = 2

# Sizes probed before the approximator is first fitted
INITIAL_PROBES = 3


# =============================================================================
# FOLDS
# =============================================================================

def _check_folds(n: int, folds: int, temporal: bool) -> None:
    if folds < 2:
        raise ValueError(f"folds must be at least 2, got {folds}")
    if folds > n:
        raise ValueError(f"folds ({folds}) cannot exceed the number of rows ({n})")
    if temporal and folds > n // 2:
        raise ValueError(
            f"temporal folds need at least two rows per block: "
            f"{folds} folds over {n} rows"
        )


def _seed(random_state) -> int:
    return int(np.random.default_rng(random_state).integers(0, 2 ** 31 - 1))


def generate_folds(
    n: int,
    folds: int = 5,
    temporal: bool = False,
    random_state=None,
) -> List[NDArray]:
    """
    Partition row indices 0..n-1 into ``folds`` blocks.

    Parameters
    ----------
    n : int
        Number of rows.
    folds : int, default 5
        Number of blocks, 2 ≤ folds ≤ n (≤ n // 2 when temporal).
    temporal : bool, default False
        Keep chronological order (contiguous blocks) instead of shuffling.
    random_state : int, numpy.random.Generator or None
        Seed for the shuffle.

    Returns
    -------
    list of NDArray
        Disjoint index blocks covering every row exactly once.
    """
    _check_folds(n, folds, temporal)
    if temporal:
        return np.array_split(np.arange(n), folds)

    kf = KFold(n_splits=folds, shuffle=True, random_state=_seed(random_state))
    return [val_idx for _, val_idx in kf.split(np.zeros((n, 1)))]


def fold_indices(
    n: int,
    folds: int = 5,
    temporal: bool = False,
    random_state=None,
) -> List[Tuple[NDArray, NDArray]]:
    """
    Training and validation indices for each cross-validation split.

    I.i.d. splits train on the complement of each block. Temporal splits use
    a rolling origin: split i trains on blocks 0..i-1 and validates on block
    i, so there are ``folds - 1`` of them and every validation index comes
    after every training index.
    """
    blocks = generate_folds(n, folds, temporal, random_state)

    if temporal:
        return [
            (np.concatenate(blocks[:i]), blocks[i])
            for i in range(1, len(blocks))
        ]

    all_rows = np.arange(n)
    return [(np.setdiff1d(all_rows, block), block) for block in blocks]


# =============================================================================
# LOSSES
# =============================================================================

def validation_loss(
    X_train: NDArray,
    y_train: NDArray,
    X_val: NDArray,
    y_val: NDArray,
    neurons: int,
    metric: Union[str, Metric] = "mse",
    activation: Union[str, Activation] = relu,
    regularized: bool = True,
    random_state=None,
    task: Optional[str] = None,
) -> float:
    """
    Fit one ELM on the training block and score it on the validation block.

    Predictions are clipped and rounded to class labels when ``task`` is
    "classification" or the metric is a classification metric.
    """
    metric = get_metric(metric)
    learner = RegularizedExtremeLearner if regularized else ExtremeLearner
    model = learner(X_train, y_train, neurons, activation, random_state=random_state)
    model.fit()

    predictions = model.predict(X_val)
    if task == "classification" or is_classification_metric(metric):
        predictions = np.rint(clip_if_binary(predictions, var_type(y_train)))

    return metric(y_val, predictions)


def cross_validate(
    X,
    y,
    neurons: int,
    metric: Union[str, Metric] = "mse",
    activation: Union[str, Activation] = relu,
    regularized: bool = True,
    folds: int = 5,
    temporal: bool = False,
    random_state=None,
    task: Optional[str] = None,
) -> float:
    """
    Mean validation loss of an ELM with ``neurons`` hidden neurons.

    Parameters
    ----------
    X : array-like of shape (n, d)
        Covariates.
    y : array-like of shape (n,)
        Target.
    neurons : int
        Hidden-layer size to evaluate.
    metric : str or callable, default "mse"
        Validation metric.
    activation : str or callable, default relu
        Hidden-layer nonlinearity.
    regularized : bool, default True
        Use ridge output weights.
    folds : int, default 5
        Number of folds.
    temporal : bool, default False
        Use rolling-origin folds.
    random_state : int, numpy.random.Generator or None
        Seed for the folds and the hidden weights.
    task : {"regression", "classification"}, optional
        "classification" scores rounded predictions whatever the metric.

    Returns
    -------
    float
        Average of the per-split metric.
    """
    X = as_float_array(X, 2, "X")
    y = as_float_array(y, 1, "y")
    rng = np.random.default_rng(random_state)

    losses = [
        validation_loss(
            X[train], y[train], X[val], y[val], neurons, metric,
            activation, regularized, random_state=rng, task=task,
        )
        for train, val in fold_indices(X.shape[0], folds, temporal, rng)
    ]
    return float(np.mean(losses))


# =============================================================================
# HIDDEN-LAYER SIZE SEARCH
# =============================================================================

def _scaled(sizes, lo: int, hi: int) -> NDArray:
    return ((np.asarray(sizes, dtype=float) - lo) / (hi - lo)).reshape(-1, 1)


def _propose(
    evaluated: Dict[int, float],
    window: Tuple[int, int],
    bounds: Tuple[int, int],
    approximator_neurons: int,
    rng: np.random.Generator,
) -> Optional[int]:
    """Unevaluated size in ``window`` with the lowest approximated loss."""
    candidates = np.array(
        [s for s in range(window[0], window[1] + 1) if s not in evaluated]
    )
    if candidates.size == 0:
        return None

    sizes = np.array(list(evaluated))
    losses = np.array(list(evaluated.values()))
    spread = losses.std()
    if spread == 0:
        return int(candidates[len(candidates) // 2])

    approximator = ExtremeLearner(
        _scaled(sizes, *bounds),
        (losses - losses.mean()) / spread,
        approximator_neurons,
        relu,
        random_state=rng,
    ).fit()
    predicted = approximator.predict(_scaled(candidates, *bounds))
    return int(candidates[np.argmin(predicted)])


def best_size(
    X,
    y,
    metric: Optional[Union[str, Metric]] = None,
    task: str = "regression",
    activation: Union[str, Activation] = relu,
    min_neurons: int = 1,
    max_neurons: int = 100,
    regularized: bool = True,
    folds: int = 5,
    temporal: bool = False,
    iterations: Optional[int] = None,
    approximator_neurons: Optional[int] = None,
    tol: float = TOLERANCE,
    random_state=None,
) -> int:
    """
    Search for the hidden-layer size with the best cross-validated loss.

    Parameters
    ----------
    X : array-like of shape (n, d)
        Covariates.
    y : array-like of shape (n,)
        Target.
    metric : str or callable, optional
        Validation metric. Classification metrics are maximized, the rest
        minimized. Defaults to accuracy for classification and mse for
        regression.
    task : {"regression", "classification"}
        Learning task. Classification scores clipped, rounded predictions
        whatever the metric.
    activation : str or callable, default relu
        Hidden-layer nonlinearity.
    min_neurons, max_neurons : int
        Inclusive search bounds, 1 ≤ min_neurons ≤ max_neurons.
    regularized : bool, default True
        Use ridge output weights.
    folds : int, default 5
        Cross-validation folds.
    temporal : bool, default False
        Use rolling-origin folds.
    iterations : int, optional
        Proposal budget after the initial probes. Defaults to 2 × folds.
    approximator_neurons : int, optional
        Hidden size of the auxiliary size→loss model. Defaults to
        round(n / 10), at least 1.
    tol : float, default 1e-3
        Relative improvement below which a round counts as stalled.
    random_state : int, numpy.random.Generator or None
        Seed for folds and hidden weights.

    Returns
    -------
    int
        Best evaluated size, always within [min_neurons, max_neurons].
    """
    if task not in ("regression", "classification"):
        raise ValueError(f"task must be 'regression' or 'classification', got {task!r}")
    if not 1 <= min_neurons <= max_neurons:
        raise ValueError(
            f"Need 1 <= min_neurons <= max_neurons, got {min_neurons} and {max_neurons}"
        )

    X = as_float_array(X, 2, "X")
    y = as_float_array(y, 1, "y")
    metric = default_metric(task) if metric is None else get_metric(metric)

    if min_neurons == max_neurons:
        return int(min_neurons)

    iterations = 2 * folds if iterations is None else int(iterations)
    if iterations < 1:
        raise ValueError(f"iterations must be at least 1, got {iterations}")
    if approximator_neurons is None:
        approximator_neurons = max(1, int(round(X.shape[0] / 10)))

    rng = np.random.default_rng(random_state)
    sign = -1.0 if is_classification_metric(metric) else 1.0
    bounds = (int(min_neurons), int(max_neurons))

    def evaluate(size: int) -> float:
        score = cross_validate(
            X, y, size, metric, activation, regularized, folds, temporal, rng,
            task=task,
        )
        logger.debug("Cross-validated %d neurons: %s = %.6g", size, metric.__name__, score)
        return sign * score

    evaluated: Dict[int, float] = {}
    for size in np.unique(np.rint(np.linspace(*bounds, INITIAL_PROBES)).astype(int)):
        evaluated[int(size)] = evaluate(int(size))

    window = bounds
    stalled = 0
    for _ in range(iterations):
        best_before = min(evaluated.values())
        proposal = _propose(evaluated, window, bounds, approximator_neurons, rng)
        if proposal is None:
            break
        evaluated[proposal] = evaluate(proposal)

        best_after = min(evaluated.values())
        improvement = (best_before - best_after) / max(abs(best_before), 1e-12)
        stalled = stalled + 1 if improvement < tol else 0
        if stalled >= PATIENCE:
            break

        current = min(evaluated, key=evaluated.get)
        half_width = max((window[1] - window[0]) // 4, 1)
        window = (
            max(bounds[0], current - half_width),
            min(bounds[1], current + half_width),
        )

    return int(min(evaluated, key=evaluated.get))


__all__ = [
    "TOLERANCE",
    "generate_folds",
    "fold_indices",
    "validation_loss",
    "cross_validate",
    "best_size",
]
