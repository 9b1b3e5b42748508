"""
Extreme Learning Machines
=========================

Single-hidden-layer networks whose hidden weights are drawn once at random
and never trained. Only the linear output layer is solved for, in closed form:

    H = φ(XW + b),    β = H⁺ y

The regularized variant replaces the pseudo-inverse with ridge regression and
picks the penalty by generalized cross-validation on the singular values of H,
so no model is refitted while searching for λ.

ELMEnsemble bags ExtremeLearners over bootstrap rows and random feature
subsets and averages their predictions.
"""

from __future__ import annotations

import logging
import warnings
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import linalg
from scipy.optimize import minimize_scalar
from sklearn.exceptions import NotFittedError

from causal_elm.activations import Activation, get_activation, relu
from causal_elm.utilities import VarType, as_float_array, clip_if_binary, var_type


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# Candidate ridge penalties, as multiples of the largest squared singular value
GCV_GRID = np.logspace(-10, 2, 61)

# Feature share used by ensemble members when num_feats is not given
DEFAULT_FEATURE_SHARE = 0.75


# =============================================================================
# GENERALIZED CROSS-VALIDATION
# =============================================================================

def _gcv_curve(
    s: NDArray,
    z: NDArray,
    outside_ss: float,
    n: int,
    lams: NDArray,
) -> NDArray:
    """
    GCV(λ) = n · RSS(λ) / (n - df(λ))² for every λ in ``lams``.

    ``s`` are the singular values of H, ``z = Uᵀy`` and ``outside_ss`` is the
    part of ‖y‖² lying outside the column space of H.
    """
    s2 = (s ** 2)[None, :]
    lams = np.atleast_1d(lams)[:, None]
    shrink = lams / (s2 + lams)
    rss = outside_ss + np.sum((shrink * z[None, :]) ** 2, axis=1)
    df = np.sum(s2 / (s2 + lams), axis=1)
    denom = (n - df) ** 2
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = n * rss / denom
    return np.where(denom > 1e-12, scores, np.inf)


def _svd_parts(H: NDArray, y: NDArray) -> Tuple[NDArray, NDArray, NDArray, float]:
    U, s, Vt = linalg.svd(H, full_matrices=False)
    z = U.T @ y
    outside_ss = max(float(y @ y - z @ z), 0.0)
    return s, z, Vt, outside_ss


def gcv_score(H: ArrayLike, y: ArrayLike, lam: float) -> float:
    """
    Generalized cross-validation score of a ridge fit of ``y`` on ``H``.

    Parameters
    ----------
    H : array-like of shape (n, h)
        Hidden-layer activations.
    y : array-like of shape (n,)
        Target.
    lam : float
        Ridge penalty, λ ≥ 0.

    Returns
    -------
    float
        n · RSS / (n - df)², or inf when the effective degrees of freedom
        reach n.
    """
    H = np.asarray(H, dtype=float)
    y = np.asarray(y, dtype=float).ravel()
    s, z, _, outside_ss = _svd_parts(H, y)
    return float(_gcv_curve(s, z, outside_ss, H.shape[0], np.array([lam]))[0])


def _ridge_constant_from_svd(s: NDArray, z: NDArray, outside_ss: float, n: int) -> float:
    scale = float(np.max(s) ** 2) if s.size and np.max(s) > 0 else 1.0
    grid = GCV_GRID * scale
    scores = _gcv_curve(s, z, outside_ss, n, grid)

    if not np.any(np.isfinite(scores)):
        return float(grid[-1])

    best = int(np.argmin(scores))
    lo = np.log(grid[max(best - 1, 0)])
    hi = np.log(grid[min(best + 1, len(grid) - 1)])
    if hi <= lo:
        return float(grid[best])

    refined = minimize_scalar(
        lambda log_lam: float(_gcv_curve(s, z, outside_ss, n, np.exp(log_lam))[0]),
        bounds=(lo, hi),
        method="bounded",
    )
    if np.isfinite(refined.fun) and refined.fun <= scores[best]:
        return float(np.exp(refined.x))
    return float(grid[best])


def ridge_constant(H: ArrayLike, y: ArrayLike) -> float:
    """
    Ridge penalty that minimizes the GCV score.

    A log-spaced grid scaled by the largest squared singular value of H is
    scanned first, then the best bracket is refined with a bounded scalar
    search. Every evaluation reuses one SVD of H.
    """
    H = np.asarray(H, dtype=float)
    y = np.asarray(y, dtype=float).ravel()
    s, z, _, outside_ss = _svd_parts(H, y)
    return _ridge_constant_from_svd(s, z, outside_ss, H.shape[0])


# =============================================================================
# EXTREME LEARNING MACHINE
# =============================================================================

class ExtremeLearner:
    """
    Extreme learning machine with a pseudo-inverse output layer.

    Hidden weights W (d × h) and biases b (h) are drawn uniformly from
    [-1, 1] when the model is constructed and never change afterwards.

    Parameters
    ----------
    X : array-like of shape (n, d)
        Training covariates.
    Y : array-like of shape (n,)
        Training target.
    hidden_neurons : int
        Number of hidden neurons h.
    activation : str or callable, default relu
        Hidden-layer nonlinearity from ``causal_elm.activations``.
    random_state : int, numpy.random.Generator or None
        Seed for the hidden weights.

    Attributes
    ----------
    weights : NDArray
        Hidden weights W.
    bias : NDArray
        Hidden biases b.
    beta : NDArray or None
        Output weights, set by ``fit``.
    counterfactual : NDArray or None
        Predictions stored by ``predict_counterfactual``.
    """

    regularized = False

    def __init__(
        self,
        X: ArrayLike,
        Y: ArrayLike,
        hidden_neurons: int,
        activation: Union[str, Activation] = relu,
        random_state=None,
    ) -> None:
        if int(hidden_neurons) < 1:
            raise ValueError(f"hidden_neurons must be at least 1, got {hidden_neurons}")

        self.X = as_float_array(X, 2, "X")
        self.Y = as_float_array(Y, 1, "Y")
        if self.X.shape[0] != self.Y.shape[0]:
            raise ValueError(
                f"X and Y must have the same number of rows, "
                f"got {self.X.shape[0]} and {self.Y.shape[0]}"
            )

        self.hidden_neurons = int(hidden_neurons)
        self.activation = get_activation(activation)
        self.kind: VarType = var_type(self.Y)

        rng = np.random.default_rng(random_state)
        self.weights = rng.uniform(-1.0, 1.0, size=(self.X.shape[1], self.hidden_neurons))
        self.bias = rng.uniform(-1.0, 1.0, size=self.hidden_neurons)

        self.beta: Optional[NDArray] = None
        self.counterfactual: Optional[NDArray] = None

    def __repr__(self) -> str:
        prefix = "Regularized " if self.regularized else ""
        return f"{prefix}Extreme Learning Machine with {self.hidden_neurons} hidden neurons"

    @property
    def is_fitted(self) -> bool:
        return self.beta is not None

    def hidden_layer(self, X: NDArray) -> NDArray:
        """Hidden activations φ(XW + b)."""
        return self.activation(X @ self.weights + self.bias)

    def _solve(self, H: NDArray, y: NDArray) -> NDArray:
        return linalg.pinv(H) @ y

    def fit(self, sample_weight: Optional[ArrayLike] = None) -> "ExtremeLearner":
        """
        Solve for the output weights.

        Parameters
        ----------
        sample_weight : array-like of shape (n,), optional
            Non-negative observation weights; rows of H and y are scaled by √w.

        Returns
        -------
        ExtremeLearner
            The fitted model.
        """
        H = self.hidden_layer(self.X)
        y = self.Y

        if sample_weight is not None:
            w = as_float_array(sample_weight, 1, "sample_weight")
            if w.shape[0] != y.shape[0]:
                raise ValueError("sample_weight must have one entry per row of X")
            if np.any(w < 0):
                raise ValueError("sample_weight must be non-negative")
            root = np.sqrt(w)
            H = H * root[:, None]
            y = y * root

        beta = self._solve(H, y)
        if not np.all(np.isfinite(beta)):
            warnings.warn(
                f"{self!r}: output weights are not finite; the hidden-layer "
                "matrix is ill-conditioned",
                linalg.LinAlgWarning,
                stacklevel=2,
            )
        self.beta = beta
        return self

    def _check_fitted(self) -> None:
        if not self.is_fitted:
            raise NotFittedError(
                "This model has not been fitted yet. Call fit() before predicting."
            )

    def predict(self, X: ArrayLike) -> NDArray:
        """
        Predict the target for new covariates.

        Predictions of a binary target are clipped into (0, 1).
        """
        self._check_fitted()
        X = as_float_array(X, 2, "X")
        if X.shape[1] != self.weights.shape[0]:
            raise ValueError(
                f"X has {X.shape[1]} features, but the model was trained "
                f"with {self.weights.shape[0]}"
            )
        return clip_if_binary(self.hidden_layer(X) @ self.beta, self.kind)

    def predict_counterfactual(self, X: ArrayLike) -> NDArray:
        """Predict counterfactual outcomes and store them for ``placebo_test``."""
        self.counterfactual = self.predict(X)
        return self.counterfactual

    def placebo_test(self) -> Tuple[NDArray, NDArray]:
        """
        In-sample predictions next to the stored counterfactual predictions.

        Returns
        -------
        tuple of NDArray
            (predictions on the training covariates, counterfactual predictions).
        """
        self._check_fitted()
        if self.counterfactual is None:
            raise NotFittedError(
                "Call predict_counterfactual() before running a placebo test."
            )
        return self.predict(self.X), self.counterfactual


class RegularizedExtremeLearner(ExtremeLearner):
    """
    Extreme learning machine with a ridge output layer.

    The penalty is chosen by generalized cross-validation from one SVD of the
    (weighted) hidden-layer matrix and stored in ``ridge_penalty``.
    """

    regularized = True

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.ridge_penalty: Optional[float] = None

    def _solve(self, H: NDArray, y: NDArray) -> NDArray:
        s, z, Vt, outside_ss = _svd_parts(H, y)
        lam = _ridge_constant_from_svd(s, z, outside_ss, H.shape[0])
        self.ridge_penalty = lam
        logger.debug("GCV ridge penalty %.3e for %d hidden neurons", lam, self.hidden_neurons)
        return Vt.T @ (s / (s ** 2 + lam) * z)


# =============================================================================
# ENSEMBLE
# =============================================================================

class ELMEnsemble:
    """
    Bagged ensemble of extreme learning machines.

    Each member is trained on ``sample_size`` rows drawn with replacement and
    ``num_feats`` columns drawn without replacement, plus every column listed
    in ``always_include``. Predictions are averaged across members.

    Parameters
    ----------
    X : array-like of shape (n, d)
        Training covariates.
    Y : array-like of shape (n,)
        Training target.
    sample_size : int, optional
        Bootstrap sample size per member. Defaults to n.
    num_machines : int, default 100
        Number of members.
    num_feats : int, optional
        Randomly drawn features per member, taken from the columns outside
        ``always_include``. Defaults to round(0.75 · available columns), at
        least 1 when any column is available.
    num_neurons : int, default 10
        Hidden neurons per member.
    activation : str or callable, default relu
        Hidden-layer nonlinearity.
    regularized : bool, default False
        Use RegularizedExtremeLearner members.
    always_include : sequence of int, optional
        Columns given to every member, e.g. the treatment column of an
        S-learner design. Negative indices count from the end.
    random_state : int, numpy.random.Generator or None
        Seed for bootstrap rows, feature subsets and hidden weights.
    """

    def __init__(
        self,
        X: ArrayLike,
        Y: ArrayLike,
        sample_size: Optional[int] = None,
        num_machines: int = 100,
        num_feats: Optional[int] = None,
        num_neurons: int = 10,
        activation: Union[str, Activation] = relu,
        regularized: bool = False,
        random_state=None,
        always_include: Optional[Sequence[int]] = None,
    ) -> None:
        self.X = as_float_array(X, 2, "X")
        self.Y = as_float_array(Y, 1, "Y")
        n, d = self.X.shape
        if n != self.Y.shape[0]:
            raise ValueError(
                f"X and Y must have the same number of rows, got {n} and {self.Y.shape[0]}"
            )

        fixed = np.unique(np.asarray(
            [] if always_include is None else always_include, dtype=int
        ))
        if np.any((fixed < -d) | (fixed >= d)):
            raise ValueError(f"always_include indices must lie in [-{d}, {d}), got {fixed}")
        self.always_include = np.unique(fixed % d) if fixed.size else fixed
        pool = np.setdiff1d(np.arange(d), self.always_include)

        self.sample_size = n if sample_size is None else int(sample_size)
        self.num_machines = int(num_machines)
        if num_feats is not None:
            self.num_feats = int(num_feats)
        elif pool.size:
            self.num_feats = max(1, int(round(DEFAULT_FEATURE_SHARE * pool.size)))
        else:
            self.num_feats = 0
        if self.num_machines < 1:
            raise ValueError("num_machines must be at least 1")
        if self.sample_size < 1:
            raise ValueError("sample_size must be at least 1")
        low = 0 if self.always_include.size else 1
        if not low <= self.num_feats <= pool.size:
            raise ValueError(
                f"num_feats must be between {low} and {pool.size}, got {self.num_feats}"
            )

        self.num_neurons = int(num_neurons)
        self.activation = get_activation(activation)
        self.regularized = regularized

        rng = np.random.default_rng(random_state)
        learner = RegularizedExtremeLearner if regularized else ExtremeLearner
        self.row_indices: List[NDArray] = []
        self.feat_indices: List[NDArray] = []
        self.elms: List[ExtremeLearner] = []
        for _ in range(self.num_machines):
            rows = rng.integers(0, n, size=self.sample_size)
            drawn = pool[rng.choice(pool.size, size=self.num_feats, replace=False)]
            feats = np.sort(np.concatenate([self.always_include, drawn]))
            self.row_indices.append(rows)
            self.feat_indices.append(feats)
            self.elms.append(
                learner(
                    self.X[np.ix_(rows, feats)],
                    self.Y[rows],
                    self.num_neurons,
                    self.activation,
                    random_state=rng,
                )
            )

    def __repr__(self) -> str:
        return (
            f"Extreme Learning Machine Ensemble with {self.num_machines} learners "
            f"of {self.num_neurons} hidden neurons"
        )

    @property
    def is_fitted(self) -> bool:
        return all(elm.is_fitted for elm in self.elms)

    def fit(self, sample_weight: Optional[ArrayLike] = None) -> "ELMEnsemble":
        """
        Fit every member on its own bootstrap sample.

        ``sample_weight`` holds one weight per row of the training data; each
        member uses the weights of the rows it drew.
        """
        if sample_weight is not None:
            sample_weight = as_float_array(sample_weight, 1, "sample_weight")
            if sample_weight.shape[0] != self.X.shape[0]:
                raise ValueError("sample_weight must have one entry per row of X")

        for elm, rows in zip(self.elms, self.row_indices):
            elm.fit(None if sample_weight is None else sample_weight[rows])
        return self

    def predict(self, X: ArrayLike) -> NDArray:
        """Average of the member predictions."""
        if not self.is_fitted:
            raise NotFittedError(
                "This ensemble has not been fitted yet. Call fit() before predicting."
            )
        X = as_float_array(X, 2, "X")
        if X.shape[1] != self.X.shape[1]:
            raise ValueError(
                f"X has {X.shape[1]} features, but the ensemble was trained "
                f"with {self.X.shape[1]}"
            )
        predictions = np.column_stack(
            [elm.predict(X[:, feats]) for elm, feats in zip(self.elms, self.feat_indices)]
        )
        return predictions.mean(axis=1)


__all__ = [
    "ExtremeLearner",
    "RegularizedExtremeLearner",
    "ELMEnsemble",
    "ridge_constant",
    "gcv_score",
]
