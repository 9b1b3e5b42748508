"""
Metalearners
============

Conditional average treatment effect (CATE) estimators assembled from bagged
ELM ensembles:

- SLearner: one model with the treatment as a feature.
- TLearner: one model per treatment arm.
- XLearner: imputed individual effects per arm, blended by the propensity.
- RLearner: residual-on-residual pseudo-outcomes with cross-fitting.
- DoublyRobustLearner: cross-fitted AIPW pseudo-outcomes.

Each learner returns one effect per row of X.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from causal_elm.crossval import fold_indices
from causal_elm.estimators import CausalEstimator, cross_fit_residuals
from causal_elm.models import ELMEnsemble
from causal_elm.utilities import CausalData, VarType, clip_if_binary, var_type


logger = logging.getLogger(__name__)


# Treatment residuals are kept at least this far from zero in the R-learner
MIN_RESIDUAL = 1e-6


class Metalearner(CausalEstimator):
    """
    Base class for the ensemble metalearners.

    Parameters
    ----------
    X : array-like of shape (n, d)
        Covariates.
    T : array-like of shape (n,)
        Binary treatment.
    Y : array-like of shape (n,)
        Outcome.
    W : array-like of shape (n, p), optional
        Additional confounders, appended to X.
    num_machines : int, default 100
        Ensemble members per model.
    sample_size : int, optional
        Bootstrap rows per member; defaults to the rows available to each
        model.
    num_feats : int, optional
        Features per member; defaults to round(0.75 · columns).
    **config
        ModelConfig options. ``quantity_of_interest`` is always "CATE".

    Raises
    ------
    ValueError
        If a learner that splits rows by arm gets a non-binary treatment, or
        a treatment with only one arm.
    """

    QUANTITIES = ("CATE",)
    DEFAULT_REGULARIZED = False
    BINARY_TREATMENT = True

    def __init__(
        self,
        X,
        T,
        Y,
        W=None,
        num_machines: int = 100,
        sample_size: Optional[int] = None,
        num_feats: Optional[int] = None,
        **config: Any,
    ) -> None:
        super().__init__(**config)
        self.data = CausalData(X, T, Y, W)
        if num_machines < 1:
            raise ValueError(f"num_machines must be at least 1, got {num_machines}")
        self.num_machines = int(num_machines)
        self.sample_size = sample_size
        self.num_feats = num_feats
        if self.BINARY_TREATMENT:
            self._arms()

    @property
    def outcome(self) -> NDArray:
        return self.data.Y

    def _ensemble(
        self,
        X: NDArray,
        y: NDArray,
        rng: np.random.Generator,
        always_include: Optional[Sequence[int]] = None,
    ) -> ELMEnsemble:
        available = X.shape[1] - (0 if always_include is None else len(always_include))
        num_feats = None if self.num_feats is None else min(self.num_feats, available)
        return ELMEnsemble(
            X,
            y,
            sample_size=self.sample_size,
            num_machines=self.num_machines,
            num_feats=num_feats,
            num_neurons=self.num_neurons,
            activation=self.config.activation,
            regularized=self.config.regularized,
            random_state=rng,
            always_include=always_include,
        )

    def _arms(self):
        if var_type(self.data.T) is not VarType.BINARY:
            raise ValueError(f"{type(self).__name__} requires a binary treatment")
        treated = self.data.T == 1
        control = self.data.T == 0
        if not np.any(treated) or not np.any(control):
            raise ValueError(f"{type(self).__name__} needs both treated and control rows")
        return treated, control

    def summary_fields(self) -> Dict[str, Any]:
        fields = super().summary_fields()
        fields["Number of Machines"] = self.num_machines
        return fields


# =============================================================================
# S-Learner
# =============================================================================

class SLearner(Metalearner):
    """
    S-learner: τ(x) = μ(x, 1) - μ(x, 0) from a single model of Y on [X, T].

    Every ensemble member receives the treatment column; only the covariates
    are subsampled.
    """

    def estimate_causal_effect(self) -> NDArray:
        rng = self._rng()
        X = self.data.covariates
        design = np.column_stack([X, self.data.T])
        self._search_neurons(design, self.data.Y, rng)

        self.ensemble = self._ensemble(design, self.data.Y, rng, always_include=[-1]).fit()
        ones, zeros = np.ones(X.shape[0]), np.zeros(X.shape[0])
        self._causal_effect = (
            self.ensemble.predict(np.column_stack([X, ones]))
            - self.ensemble.predict(np.column_stack([X, zeros]))
        )
        return self._causal_effect


# =============================================================================
# T-Learner
# =============================================================================

class TLearner(Metalearner):
    """T-learner: τ(x) = μ₁(x) - μ₀(x) from separate models per arm."""

    def estimate_causal_effect(self) -> NDArray:
        rng = self._rng()
        X, Y = self.data.covariates, self.data.Y
        treated, control = self._arms()
        self._search_neurons(X, Y, rng)

        self.mu0 = self._ensemble(X[control], Y[control], rng).fit()
        self.mu1 = self._ensemble(X[treated], Y[treated], rng).fit()
        self._causal_effect = self.mu1.predict(X) - self.mu0.predict(X)
        return self._causal_effect


# =============================================================================
# X-Learner
# =============================================================================

class XLearner(Metalearner):
    """
    X-learner.

    Stage one fits arm-specific outcome models μ₀, μ₁ and a propensity model
    g. Stage two imputes individual effects

        D₁ = Y - μ₀(X)   for treated rows
        D₀ = μ₁(X) - Y   for control rows

    fits τ₁ on D₁ and τ₀ on D₀, and blends them as

        τ(x) = g(x) · τ₀(x) + (1 - g(x)) · τ₁(x)
    """

    def estimate_causal_effect(self) -> NDArray:
        rng = self._rng()
        X, T, Y = self.data.covariates, self.data.T, self.data.Y
        treated, control = self._arms()
        self._search_neurons(X, Y, rng)

        propensity_model = self._ensemble(X, T, rng).fit()
        mu0 = self._ensemble(X[control], Y[control], rng).fit()
        mu1 = self._ensemble(X[treated], Y[treated], rng).fit()

        d1 = Y[treated] - mu0.predict(X[treated])
        d0 = mu1.predict(X[control]) - Y[control]
        tau1 = self._ensemble(X[treated], d1, rng).fit()
        tau0 = self._ensemble(X[control], d0, rng).fit()

        ps = clip_if_binary(propensity_model.predict(X), var_type(T))
        self.propensity = ps
        self._causal_effect = ps * tau0.predict(X) + (1 - ps) * tau1.predict(X)
        return self._causal_effect


# =============================================================================
# R-Learner
# =============================================================================

class RLearner(Metalearner):
    """
    R-learner.

    Treatment and outcome residuals T̃, Ỹ come from cross-fitted ELMs as in
    double machine learning. On each fold an ensemble is fitted to the
    pseudo-outcome Ỹ / T̃ with weights T̃², which minimizes the R-loss
    Σ (Ỹ - τ(X) T̃)². Fold models are evaluated on all rows and averaged.
    """

    DEFAULT_REGULARIZED = True
    BINARY_TREATMENT = False

    def estimate_causal_effect(self) -> NDArray:
        rng = self._rng()
        X, T, Y = self.data.covariates, self.data.T, self.data.Y
        self._search_neurons(X, Y, rng)

        splits = fold_indices(self.data.n, self.config.folds, self.config.temporal, rng)
        residuals = cross_fit_residuals(self, X, T, Y, splits, rng)

        fold_predictions = []
        for val, t_res, y_res in residuals:
            safe = np.where(
                np.abs(t_res) < MIN_RESIDUAL,
                np.where(t_res < 0, -MIN_RESIDUAL, MIN_RESIDUAL),
                t_res,
            )
            model = self._ensemble(X[val], y_res / safe, rng).fit(sample_weight=safe ** 2)
            fold_predictions.append(model.predict(X))

        self._causal_effect = np.mean(fold_predictions, axis=0)
        return self._causal_effect


# =============================================================================
# Doubly Robust Learner
# =============================================================================

class DoublyRobustLearner(Metalearner):
    """
    Doubly robust (DR) learner.

    For every fold k the propensity g and the arm models μ₀, μ₁ are fitted on
    the other folds. Fold k then receives the AIPW pseudo-outcome

        φ = (T - g) / (g (1 - g)) · (Y - μ_T) + μ₁ - μ₀

    and a final ensemble fitted on (X_k, φ_k) is evaluated on all rows. The
    fold predictions are averaged, which with the default of two folds is
    the usual fold-swap symmetrization.
    """

    DEFAULT_REGULARIZED = True

    def __init__(self, X, T, Y, W=None, **kwargs: Any) -> None:
        kwargs.setdefault("folds", 2)
        super().__init__(X, T, Y, W, **kwargs)

    def estimate_causal_effect(self) -> NDArray:
        rng = self._rng()
        X, T, Y = self.data.covariates, self.data.T, self.data.Y
        self._search_neurons(X, Y, rng)

        splits = fold_indices(self.data.n, self.config.folds, self.config.temporal, rng)
        t_kind = var_type(T)

        fold_predictions = []
        for train, val in splits:
            t_train, y_train = T[train], Y[train]
            if np.all(t_train == t_train[0]):
                raise ValueError("A cross-fitting fold contains only one treatment arm")

            ps_model = self._ensemble(X[train], t_train, rng).fit()
            mu0 = self._ensemble(X[train][t_train == 0], y_train[t_train == 0], rng).fit()
            mu1 = self._ensemble(X[train][t_train == 1], y_train[t_train == 1], rng).fit()

            ps = clip_if_binary(ps_model.predict(X[val]), t_kind)
            m0, m1 = mu0.predict(X[val]), mu1.predict(X[val])
            mu_t = np.where(T[val] == 1, m1, m0)
            pseudo = (T[val] - ps) / (ps * (1 - ps)) * (Y[val] - mu_t) + m1 - m0

            final = self._ensemble(X[val], pseudo, rng).fit()
            fold_predictions.append(final.predict(X))

        self._causal_effect = np.mean(fold_predictions, axis=0)
        return self._causal_effect


__all__ = [
    "Metalearner",
    "SLearner",
    "TLearner",
    "XLearner",
    "RLearner",
    "DoublyRobustLearner",
]
