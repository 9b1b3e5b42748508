"""
Synthetic Data
==============

Data generating processes with known causal effects, used in examples and
tests.

Treatment DGP
-------------
Covariates:  X ~ N(0, Σ), Σ_{jk} = ρ^{|j-k|}
Treatment:   binary, P(T = 1 | X) = σ(γ·X₁); or continuous, T = γ·X₁ + U
Outcome:     Y = θ₀·T + g₀(X) + ε,  g₀(X) = X₁ + 0.5·X₂²  (X₂ dropped when p = 1)
             or, with ``binary_outcome``, Y = 1[θ₀·T + g₀(X) + ε > 0]

Setting γ = 0 makes the treatment independent of the covariates.

Interrupted time series DGP
---------------------------
Covariates:  AR(1) series x_t = φ·x_{t-1} + u_t per column
Outcome:     y_t = α + δ·t + Σ_j x_{tj} + ε_t, plus a level shift τ after the
             intervention
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.special import expit


# =============================================================================
# CONSTANTS
# =============================================================================

THETA0: float = 1.0          # True treatment effect
P_DEFAULT: int = 5           # Covariate dimension
RHO_DEFAULT: float = 0.5     # Covariate correlation
SIGMA_EPS: float = 1.0       # Outcome noise standard deviation


def make_toeplitz_cov(p: int, rho: float) -> NDArray:
    """Covariance matrix with entries ρ^{|j-k|}."""
    idx = np.arange(p)
    return rho ** np.abs(idx[:, None] - idx[None, :])


# =============================================================================
# CROSS-SECTIONAL TREATMENT DGP
# =============================================================================

@dataclass
class TreatmentDGP:
    """
    Partially linear treatment-effect DGP with a known effect.

    Parameters
    ----------
    p : int, default 5
        Covariate dimension.
    rho : float, default 0.5
        Correlation between adjacent covariates.
    theta0 : float, default 1.0
        True treatment effect (on the latent scale for binary outcomes).
    confounding : float, default 1.0
        Strength γ of the dependence of the treatment on X₁.
    binary_treatment : bool, default True
        Draw a 0/1 treatment instead of a continuous one.
    binary_outcome : bool, default False
        Threshold the outcome at zero.
    sigma_eps : float, default 1.0
        Outcome noise standard deviation.
    random_state : int or None
        Default seed for ``generate``.
    """
    p: int = P_DEFAULT
    rho: float = RHO_DEFAULT
    theta0: float = THETA0
    confounding: float = 1.0
    binary_treatment: bool = True
    binary_outcome: bool = False
    sigma_eps: float = SIGMA_EPS
    random_state: Optional[int] = None

    _Sigma: NDArray = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.p < 1:
            raise ValueError(f"p must be at least 1, got {self.p}")
        if not -1 < self.rho < 1:
            raise ValueError(f"rho must be in (-1, 1), got {self.rho}")
        self._Sigma = make_toeplitz_cov(self.p, self.rho)

    def g0(self, X: NDArray) -> NDArray:
        """Confounding function g₀(X) = X₁ + 0.5·X₂²."""
        if X.shape[1] == 1:
            return X[:, 0]
        return X[:, 0] + 0.5 * X[:, 1] ** 2

    def propensity(self, X: NDArray) -> NDArray:
        """P(T = 1 | X) = σ(γ·X₁)."""
        return expit(self.confounding * X[:, 0])

    def generate(
        self,
        n: int,
        random_state: Optional[int] = None,
    ) -> Tuple[NDArray, NDArray, NDArray, Dict]:
        """
        Draw a sample.

        Returns
        -------
        X : ndarray of shape (n, p)
        T : ndarray of shape (n,)
        Y : ndarray of shape (n,)
        info : dict
            True effect, propensity scores and g₀(X).
        """
        seed = random_state if random_state is not None else self.random_state
        rng = np.random.default_rng(seed)

        X = rng.multivariate_normal(np.zeros(self.p), self._Sigma, size=n)
        if self.binary_treatment:
            ps = self.propensity(X)
            T = (rng.random(n) < ps).astype(float)
        else:
            ps = None
            T = self.confounding * X[:, 0] + rng.normal(0, 1, size=n)

        g0_X = self.g0(X)
        latent = self.theta0 * T + g0_X + rng.normal(0, self.sigma_eps, size=n)
        Y = (latent > 0).astype(float) if self.binary_outcome else latent

        info = {
            "theta0": self.theta0,
            "propensity": ps,
            "g0_X": g0_X,
        }
        return X, T, Y, info


# =============================================================================
# INTERRUPTED TIME SERIES DGP
# =============================================================================

@dataclass
class InterruptedTimeSeriesDGP:
    """
    Trend-plus-covariates time series with a level shift at the intervention.

    Parameters
    ----------
    p : int, default 3
        Number of covariate series.
    effect : float, default 2.0
        Level shift τ of the outcome after the intervention.
    trend : float, default 0.0
        Linear time trend δ.
    intercept : float, default 1.0
        Level α.
    phi : float, default 0.5
        AR(1) coefficient of the covariate series.
    sigma_eps : float, default 0.5
        Outcome noise standard deviation.
    random_state : int or None
        Default seed for ``generate``.
    """
    p: int = 3
    effect: float = 2.0
    trend: float = 0.0
    intercept: float = 1.0
    phi: float = 0.5
    sigma_eps: float = 0.5
    random_state: Optional[int] = None

    def __post_init__(self) -> None:
        if not -1 < self.phi < 1:
            raise ValueError(f"phi must be in (-1, 1) for a stationary series, got {self.phi}")

    def generate(
        self,
        n0: int,
        n1: int,
        random_state: Optional[int] = None,
    ) -> Tuple[NDArray, NDArray, NDArray, NDArray, Dict]:
        """
        Draw pre- and post-intervention periods.

        Returns
        -------
        X0, Y0 : ndarrays of shape (n0, p) and (n0,)
        X1, Y1 : ndarrays of shape (n1, p) and (n1,)
        info : dict
            True effect and the untreated post-period outcomes.
        """
        seed = random_state if random_state is not None else self.random_state
        rng = np.random.default_rng(seed)
        total = n0 + n1

        X = np.zeros((total, self.p))
        shocks = rng.normal(0, 1, size=(total, self.p))
        X[0] = shocks[0]
        for t in range(1, total):
            X[t] = self.phi * X[t - 1] + shocks[t]

        time = np.arange(total)
        baseline = (
            self.intercept + self.trend * time + X.sum(axis=1)
            + rng.normal(0, self.sigma_eps, size=total)
        )
        Y = baseline + self.effect * (time >= n0)

        info = {
            "effect": self.effect,
            "untreated_post": baseline[n0:],
        }
        return X[:n0], Y[:n0], X[n0:], Y[n0:], info


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def make_treatment_data(
    n: int = 500,
    p: int = P_DEFAULT,
    theta0: float = THETA0,
    confounding: float = 1.0,
    binary_treatment: bool = True,
    binary_outcome: bool = False,
    random_state: Optional[int] = None,
) -> Tuple[NDArray, NDArray, NDArray]:
    """
    Generate (X, T, Y) from a TreatmentDGP.

    Examples
    --------
    >>> X, T, Y = make_treatment_data(n=300, theta0=2.0, random_state=42)
    """
    dgp = TreatmentDGP(
        p=p,
        theta0=theta0,
        confounding=confounding,
        binary_treatment=binary_treatment,
        binary_outcome=binary_outcome,
    )
    X, T, Y, _ = dgp.generate(n, random_state=random_state)
    return X, T, Y


def make_its_data(
    n0: int = 100,
    n1: int = 10,
    p: int = 3,
    effect: float = 2.0,
    trend: float = 0.0,
    random_state: Optional[int] = None,
) -> Tuple[NDArray, NDArray, NDArray, NDArray]:
    """Generate (X0, Y0, X1, Y1) from an InterruptedTimeSeriesDGP."""
    dgp = InterruptedTimeSeriesDGP(p=p, effect=effect, trend=trend)
    X0, Y0, X1, Y1, _ = dgp.generate(n0, n1, random_state=random_state)
    return X0, Y0, X1, Y1


__all__ = [
    "THETA0",
    "TreatmentDGP",
    "InterruptedTimeSeriesDGP",
    "make_treatment_data",
    "make_its_data",
]
