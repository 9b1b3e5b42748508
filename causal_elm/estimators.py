"""
Causal Estimators
=================

Estimators that compose extreme learning machines into an identification
strategy:

- InterruptedTimeSeries: counterfactual post-period outcomes from a model of
  the pre-period.
- GComputation: outcome model on covariates and treatment, evaluated under
  counterfactual treatment assignments.
- DoubleMachineLearning: cross-fitted residual-on-residual regression.

Every estimator embeds a validated ModelConfig, searches for its hidden-layer
size once and caches it in ``num_neurons`` so repeated calls to
``estimate_causal_effect`` (e.g. during randomization inference) skip the
search.
"""

from __future__ import annotations

import logging
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
from numpy.typing import NDArray
from sklearn.exceptions import NotFittedError

from causal_elm.activations import Activation, get_activation, relu
from causal_elm.crossval import best_size, fold_indices
from causal_elm.metrics import Metric, default_metric, get_metric
from causal_elm.models import ExtremeLearner, RegularizedExtremeLearner
from causal_elm.utilities import (
    CausalData,
    TimeSeriesData,
    VarType,
    moving_average,
    var_type,
)


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

TASKS = ("regression", "classification")

# Residual treatment variation below this makes a cross-fitting fold unusable
MIN_TREATMENT_VARIATION = 1e-12


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class ModelConfig:
    """
    Settings shared by every estimator, immutable once validated.

    Attributes
    ----------
    task : {"regression", "classification"} or None
        None infers the task from the outcome: classification for a binary
        outcome, regression otherwise.
    quantity_of_interest : str
        "ATE", "ATT", "ITT" or "CATE"; each estimator restricts the choice.
    regularized : bool
        Ridge output weights chosen by GCV instead of the pseudo-inverse.
    activation : str or callable
        Hidden-layer nonlinearity; resolved to the function.
    validation_metric : str, callable or None
        Cross-validation metric; resolved to the function. None uses
        accuracy for classification and mse for regression.
    min_neurons, max_neurons : int
        Inclusive bounds of the hidden-layer size search.
    folds : int
        Cross-validation folds.
    iterations : int, optional
        Search budget; defaults to 2 × folds.
    approximator_neurons : int, optional
        Size of the auxiliary loss approximator; defaults to round(n / 10).
    temporal : bool
        Rolling-origin folds for time series or panel data.
    random_state : int, numpy.random.Generator or None
        Seed for every random draw of an estimation.
    """
    task: Optional[str] = None
    quantity_of_interest: str = "ATE"
    regularized: bool = True
    activation: Union[str, Activation] = relu
    validation_metric: Optional[Union[str, Metric]] = None
    min_neurons: int = 1
    max_neurons: int = 100
    folds: int = 5
    iterations: Optional[int] = None
    approximator_neurons: Optional[int] = None
    temporal: bool = False
    random_state: Any = None

    def __post_init__(self):
        if self.task is not None and self.task not in TASKS:
            raise ValueError(
                f"task must be 'regression', 'classification' or None, got {self.task!r}"
            )
        object.__setattr__(self, "activation", get_activation(self.activation))
        if self.validation_metric is not None:
            object.__setattr__(self, "validation_metric", get_metric(self.validation_metric))

        if not 1 <= self.min_neurons <= self.max_neurons:
            raise ValueError(
                f"Need 1 <= min_neurons <= max_neurons, "
                f"got {self.min_neurons} and {self.max_neurons}"
            )
        if self.folds < 2:
            raise ValueError(f"folds must be at least 2, got {self.folds}")
        if self.iterations is not None and self.iterations < 1:
            raise ValueError(f"iterations must be at least 1, got {self.iterations}")
        if self.approximator_neurons is not None and self.approximator_neurons < 1:
            raise ValueError(
                f"approximator_neurons must be at least 1, got {self.approximator_neurons}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.task,
            "quantity_of_interest": self.quantity_of_interest,
            "regularized": self.regularized,
            "activation": self.activation.__name__,
            "validation_metric": (
                None if self.validation_metric is None else self.validation_metric.__name__
            ),
            "min_neurons": self.min_neurons,
            "max_neurons": self.max_neurons,
            "folds": self.folds,
            "iterations": self.iterations,
            "approximator_neurons": self.approximator_neurons,
            "temporal": self.temporal,
        }


# =============================================================================
# Base Class
# =============================================================================

class CausalEstimator(ABC):
    """
    Common lifecycle of the causal estimators.

    Subclasses declare the quantities of interest they support and implement
    ``estimate_causal_effect``. The effect is unavailable until that method
    has run; reading it earlier raises NotFittedError.
    """

    QUANTITIES: Tuple[str, ...] = ("ATE",)
    DEFAULT_REGULARIZED = True

    def __init__(self, **config: Any) -> None:
        config.setdefault("quantity_of_interest", self.QUANTITIES[0])
        config.setdefault("regularized", self.DEFAULT_REGULARIZED)
        self.config = ModelConfig(**config)
        if self.config.quantity_of_interest not in self.QUANTITIES:
            raise ValueError(
                f"{type(self).__name__} supports quantity_of_interest in "
                f"{self.QUANTITIES}, got {self.config.quantity_of_interest!r}"
            )

        self.num_neurons: Optional[int] = None
        self.approximator_neurons: Optional[int] = self.config.approximator_neurons
        self._causal_effect: Optional[Union[float, NDArray]] = None

    def __repr__(self) -> str:
        state = "estimated" if self.is_estimated else "not estimated"
        return f"{type(self).__name__}({self.config.quantity_of_interest}, {state})"

    # -------------------------------------------------------------------------
    # Outcome and effect
    # -------------------------------------------------------------------------

    @property
    @abstractmethod
    def outcome(self) -> NDArray:
        """Outcome vector the estimator models."""

    @property
    def task(self) -> str:
        if self.config.task is not None:
            return self.config.task
        return "classification" if var_type(self.outcome) is VarType.BINARY else "regression"

    @property
    def validation_metric(self) -> Metric:
        """Configured metric, or the default for the task."""
        if self.config.validation_metric is not None:
            return self.config.validation_metric
        return default_metric(self.task)

    @property
    def is_estimated(self) -> bool:
        return self._causal_effect is not None

    @property
    def causal_effect(self) -> Union[float, NDArray]:
        self.check_estimated()
        return self._causal_effect

    def check_estimated(self) -> None:
        """Raise NotFittedError unless the effect has been estimated."""
        if not self.is_estimated:
            raise NotFittedError(
                f"{type(self).__name__} has not been estimated yet. "
                "Call estimate_causal_effect() first."
            )

    @abstractmethod
    def estimate_causal_effect(self) -> Union[float, NDArray]:
        """Fit the models and return the causal effect."""

    # -------------------------------------------------------------------------
    # Model construction
    # -------------------------------------------------------------------------

    def _rng(self) -> np.random.Generator:
        return np.random.default_rng(self.config.random_state)

    def _search_neurons(self, X: NDArray, y: NDArray, rng: np.random.Generator) -> int:
        """Hidden-layer size, searched on the first call and cached afterwards."""
        # consumed whether or not the size is cached
        search_seed = int(rng.integers(0, 2 ** 63 - 1))
        if self.num_neurons is None:
            if self.approximator_neurons is None:
                self.approximator_neurons = max(1, int(round(X.shape[0] / 10)))
            self.num_neurons = best_size(
                X,
                y,
                metric=self.validation_metric,
                task=self.task,
                activation=self.config.activation,
                min_neurons=self.config.min_neurons,
                max_neurons=self.config.max_neurons,
                regularized=self.config.regularized,
                folds=self.config.folds,
                temporal=self.config.temporal,
                iterations=self.config.iterations,
                approximator_neurons=self.approximator_neurons,
                random_state=search_seed,
            )
            logger.info("%s selected %d hidden neurons", type(self).__name__, self.num_neurons)
        return self.num_neurons

    def _learner(self, X: NDArray, y: NDArray, rng: np.random.Generator) -> ExtremeLearner:
        learner = RegularizedExtremeLearner if self.config.regularized else ExtremeLearner
        return learner(X, y, self.num_neurons, self.config.activation, random_state=rng)

    def summary_fields(self) -> Dict[str, Any]:
        """Configuration entries of a summary, in display order."""
        return {
            "Task": self.task,
            "Quantity of Interest": self.config.quantity_of_interest,
            "Regularized": self.config.regularized,
            "Activation Function": self.config.activation.__name__,
            "Time Series/Panel Data": self.config.temporal,
            "Validation Metric": self.validation_metric.__name__,
            "Number of Neurons": self.num_neurons,
            "Number of Neurons in Approximator": self.approximator_neurons,
        }


# =============================================================================
# Interrupted Time Series
# =============================================================================

class InterruptedTimeSeries(CausalEstimator):
    """
    Interrupted time series analysis.

    An ELM is trained on the pre-intervention period and used to predict the
    post-intervention outcomes that would have occurred without the
    intervention. The effect for each post-period row is

        observed outcome - predicted counterfactual outcome

    With ``autoregression=True`` the post-period design carries the moving
    average of the observed post-period outcomes, which already include the
    intervention. Part of a level shift then enters the counterfactual, and
    the estimated effect is shrunk toward zero. Set ``autoregression=False``
    when the covariates alone predict the outcome.

    Parameters
    ----------
    X0, Y0 : array-like
        Pre-period covariates (n0, d) and outcomes (n0,).
    X1, Y1 : array-like
        Post-period covariates (n1, d) and outcomes (n1,).
    autoregression : bool, default True
        Append the cumulative moving average of each period's outcomes as
        an extra covariate.
    **config
        ModelConfig options. ``temporal`` is always True.

    Examples
    --------
    >>> its = InterruptedTimeSeries(X0, Y0, X1, Y1, random_state=42)
    >>> effects = its.estimate_causal_effect()
    """

    def __init__(self, X0, Y0, X1, Y1, autoregression: bool = True, **config: Any) -> None:
        config["temporal"] = True
        super().__init__(**config)
        self.data = TimeSeriesData(X0, Y0, X1, Y1)
        self.autoregression = autoregression

        self.learner: Optional[ExtremeLearner] = None
        self.counterfactual: Optional[NDArray] = None
        self.placebo_test: Optional[Tuple[NDArray, NDArray]] = None

    @property
    def outcome(self) -> NDArray:
        return self.data.Y0

    def design(self) -> Tuple[NDArray, NDArray]:
        """Pre- and post-period covariate matrices used by the model."""
        X0, X1 = self.data.X0, self.data.X1
        if self.autoregression:
            X0 = np.column_stack([X0, moving_average(self.data.Y0)])
            X1 = np.column_stack([X1, moving_average(self.data.Y1)])
        return X0, X1

    def estimate_causal_effect(self) -> NDArray:
        """
        Estimate the post-period effects.

        Returns
        -------
        NDArray of shape (n1,)
            Observed minus counterfactual outcome for each post-period row.
        """
        rng = self._rng()
        X0, X1 = self.design()
        self._search_neurons(X0, self.data.Y0, rng)

        self.learner = self._learner(X0, self.data.Y0, rng).fit()
        self.counterfactual = self.learner.predict_counterfactual(X1)
        self.placebo_test = self.learner.placebo_test()

        self._causal_effect = self.data.Y1 - self.counterfactual
        return self._causal_effect

    def pre_period_residuals(self) -> NDArray:
        """Observed minus fitted pre-period outcomes."""
        self.check_estimated()
        return self.data.Y0 - self.placebo_test[0]


# =============================================================================
# G-Computation
# =============================================================================

class GComputation(CausalEstimator):
    """
    G-computation with an ELM outcome model.

    One model of Y on [X, T] is fitted and evaluated with the treatment
    column overwritten:

    - ATE / ITT: mean over all rows of f(X, 1) - f(X, 0).
    - ATT: mean over treated rows of f(X, T) - f(X, 0).

    Parameters
    ----------
    X : array-like of shape (n, d)
        Covariates.
    T : array-like of shape (n,)
        Treatment (or assignment, for ITT).
    Y : array-like of shape (n,)
        Outcome.
    **config
        ModelConfig options; ``quantity_of_interest`` is "ATE" (default),
        "ATT" or "ITT", and ``temporal`` selects rolling-origin folds.
    """

    QUANTITIES = ("ATE", "ATT", "ITT")

    def __init__(self, X, T, Y, **config: Any) -> None:
        super().__init__(**config)
        self.data = CausalData(X, T, Y)
        self.learner: Optional[ExtremeLearner] = None

    @property
    def outcome(self) -> NDArray:
        return self.data.Y

    def estimate_causal_effect(self) -> float:
        """Fit the outcome model and average the counterfactual contrast."""
        rng = self._rng()
        X, T = self.data.X, self.data.T
        design = np.column_stack([X, T])
        self._search_neurons(design, self.data.Y, rng)
        self.learner = self._learner(design, self.data.Y, rng).fit()

        if self.config.quantity_of_interest == "ATT":
            treated = T != 0
            if not np.any(treated):
                raise ValueError("ATT requires at least one treated row")
            rows = X[treated]
            observed = T[treated]
        else:
            rows = X
            observed = np.ones(X.shape[0])

        y_treated = self.learner.predict(np.column_stack([rows, observed]))
        y_control = self.learner.predict(np.column_stack([rows, np.zeros(rows.shape[0])]))

        self._causal_effect = float(np.mean(y_treated - y_control))
        return self._causal_effect


# =============================================================================
# Double Machine Learning
# =============================================================================

def cross_fit_residuals(
    estimator: CausalEstimator,
    X: NDArray,
    T: NDArray,
    Y: NDArray,
    splits: List[Tuple[NDArray, NDArray]],
    rng: np.random.Generator,
) -> List[Tuple[NDArray, NDArray, NDArray]]:
    """
    Out-of-fold treatment and outcome residuals.

    For every (train, val) split, outcome and treatment ELMs are fitted on
    the training rows and used to residualize the validation rows.

    Returns
    -------
    list of tuple
        (validation indices, treatment residuals, outcome residuals) per split.
    """
    residuals = []
    for train, val in splits:
        outcome_model = estimator._learner(X[train], Y[train], rng).fit()
        treatment_model = estimator._learner(X[train], T[train], rng).fit()
        y_res = Y[val] - outcome_model.predict(X[val])
        t_res = T[val] - treatment_model.predict(X[val])
        residuals.append((val, t_res, y_res))
    return residuals


class DoubleMachineLearning(CausalEstimator):
    """
    Double machine learning with cross-fitting.

    For each fold, nuisance ELMs for E[Y | X, W] and E[T | X, W] are trained
    on the other folds and used to residualize the held-out fold. The fold
    effect is the residual-on-residual slope

        θ_k = Σ T̃ Ỹ / Σ T̃²

    and the reported effect is the mean of θ_k over folds.

    Parameters
    ----------
    X : array-like of shape (n, d)
        Covariates.
    T : array-like of shape (n,)
        Treatment.
    Y : array-like of shape (n,)
        Outcome.
    W : array-like of shape (n, p), optional
        Additional confounders, appended to X for the nuisance models.
    **config
        ModelConfig options.
    """

    QUANTITIES = ("ATE",)

    def __init__(self, X, T, Y, W=None, **config: Any) -> None:
        super().__init__(**config)
        self.data = CausalData(X, T, Y, W)
        self.fold_effects: Optional[NDArray] = None

    @property
    def outcome(self) -> NDArray:
        return self.data.Y

    def estimate_causal_effect(self) -> float:
        """Cross-fit the nuisance models and average the fold slopes."""
        rng = self._rng()
        covariates = self.data.covariates
        self._search_neurons(covariates, self.data.Y, rng)

        splits = fold_indices(
            self.data.n, self.config.folds, self.config.temporal, rng
        )
        residuals = cross_fit_residuals(
            self, covariates, self.data.T, self.data.Y, splits, rng
        )

        thetas = []
        for k, (_, t_res, y_res) in enumerate(residuals):
            denominator = float(t_res @ t_res)
            if denominator < MIN_TREATMENT_VARIATION:
                warnings.warn(
                    f"Fold {k} has no residual treatment variation and is skipped",
                    RuntimeWarning,
                    stacklevel=2,
                )
                continue
            thetas.append(float(t_res @ y_res) / denominator)
            logger.debug("DML fold %d: theta = %.6g", k, thetas[-1])

        if not thetas:
            raise ValueError(
                "The treatment has no residual variation in any fold; "
                "the effect is not identified"
            )

        self.fold_effects = np.asarray(thetas)
        self._causal_effect = float(np.mean(self.fold_effects))
        return self._causal_effect


__all__ = [
    "TASKS",
    "ModelConfig",
    "CausalEstimator",
    "InterruptedTimeSeries",
    "GComputation",
    "DoubleMachineLearning",
    "cross_fit_residuals",
]
