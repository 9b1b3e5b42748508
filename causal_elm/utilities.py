"""
Numeric Utilities
=================

Small stateless helpers shared by the estimators: variable-type detection,
clipping of binary predictions, moments, one-hot encoding, cumulative moving
averages and the array boundary that converts pandas/list inputs into float
arrays.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray


# Predictions for binary variables are kept strictly inside (0, 1)
CLIP_EPS = 1e-7


# =============================================================================
# Variable Types
# =============================================================================

class VarType(Enum):
    """Measurement type of a treatment or outcome variable."""

    BINARY = "Binary"
    COUNT = "Count"
    CONTINUOUS = "Continuous"

    def __str__(self) -> str:
        return self.value


NONBINARY = frozenset({VarType.COUNT, VarType.CONTINUOUS})


def var_type(x: ArrayLike) -> VarType:
    """
    Classify a variable by inspecting its values.

    Binary when the distinct values are a subset of {0, 1}, Count when every
    value is integral, Continuous otherwise.
    """
    x = np.asarray(x, dtype=float).ravel()
    values = np.unique(x)

    if np.all(np.isin(values, (0.0, 1.0))):
        return VarType.BINARY
    if np.all(np.isfinite(values)) and np.all(values == np.round(values)):
        return VarType.COUNT
    return VarType.CONTINUOUS


def clip_if_binary(x: ArrayLike, kind: VarType) -> NDArray:
    """Clip predictions into [1e-7, 1 - 1e-7] when ``kind`` is Binary."""
    x = np.asarray(x, dtype=float)
    if kind is VarType.BINARY:
        return np.clip(x, CLIP_EPS, 1.0 - CLIP_EPS)
    return x


# =============================================================================
# Moments and Transforms
# =============================================================================

def mean(x: ArrayLike) -> float:
    """Arithmetic mean."""
    return float(np.mean(np.asarray(x, dtype=float)))


def var(x: ArrayLike) -> float:
    """Sample variance with the n - 1 denominator."""
    return float(np.var(np.asarray(x, dtype=float), ddof=1))


def consecutive(x: ArrayLike) -> NDArray:
    """First differences x[i+1] - x[i]."""
    return np.diff(np.asarray(x, dtype=float))


def one_hot_encode(x: ArrayLike) -> NDArray:
    """
    One-hot encode a vector of class labels.

    Columns are ordered by the sorted distinct labels.
    """
    x = np.asarray(x).ravel()
    labels, codes = np.unique(x, return_inverse=True)
    encoded = np.zeros((x.shape[0], labels.shape[0]))
    encoded[np.arange(x.shape[0]), codes] = 1.0
    return encoded


def moving_average(x: ArrayLike) -> NDArray:
    """Cumulative moving average: element i is the mean of x[0..i]."""
    x = np.asarray(x, dtype=float).ravel()
    return np.cumsum(x) / np.arange(1, x.shape[0] + 1)


# =============================================================================
# Input Boundary
# =============================================================================

def as_float_array(data, ndim: int = 2, name: str = "X") -> NDArray:
    """
    Convert array-like, list or pandas input to a float array.

    Parameters
    ----------
    data : array-like, pandas.DataFrame or pandas.Series
        Input values.
    ndim : {1, 2}
        Expected dimensionality. A 1-D input is promoted to a single column
        when ``ndim=2``; a single-column 2-D input is flattened when
        ``ndim=1``.
    name : str
        Name used in error messages.

    Returns
    -------
    NDArray
        Float array with the requested number of dimensions.
    """
    if isinstance(data, (pd.DataFrame, pd.Series)):
        data = data.to_numpy(dtype=float)

    try:
        arr = np.asarray(data, dtype=float)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be convertible to floating point") from exc

    if ndim == 2:
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        elif arr.ndim != 2:
            raise ValueError(f"{name} must be 1-D or 2-D, got {arr.ndim}-D")
    elif ndim == 1:
        if arr.ndim == 2 and arr.shape[1] == 1:
            arr = arr.ravel()
        elif arr.ndim != 1:
            raise ValueError(f"{name} must be 1-D, got shape {arr.shape}")
    else:
        raise ValueError(f"ndim must be 1 or 2, got {ndim}")

    return arr


def check_rows(**arrays: Optional[NDArray]) -> int:
    """Raise ValueError unless every non-None array has the same row count."""
    rows = {key: arr.shape[0] for key, arr in arrays.items() if arr is not None}
    if len(set(rows.values())) > 1:
        detail = ", ".join(f"{key}={n}" for key, n in rows.items())
        raise ValueError(f"Inputs have mismatched numbers of rows: {detail}")
    return next(iter(rows.values()))


@dataclass
class CausalData:
    """
    Covariates, treatment, outcome and optional confounders for one sample.

    Attributes
    ----------
    X : NDArray
        Covariates, shape (n, d).
    T : NDArray
        Treatment, shape (n,).
    Y : NDArray
        Outcome, shape (n,).
    W : NDArray, optional
        Additional confounders, shape (n, p).
    """
    X: NDArray
    T: NDArray
    Y: NDArray
    W: Optional[NDArray] = None

    def __post_init__(self):
        self.X = as_float_array(self.X, 2, "X")
        self.T = as_float_array(self.T, 1, "T")
        self.Y = as_float_array(self.Y, 1, "Y")
        if self.W is not None:
            self.W = as_float_array(self.W, 2, "W")
        check_rows(X=self.X, T=self.T, Y=self.Y, W=self.W)

    @property
    def n(self) -> int:
        return self.X.shape[0]

    @property
    def covariates(self) -> NDArray:
        """X with W appended when confounders were given."""
        if self.W is None:
            return self.X
        return np.hstack([self.X, self.W])


@dataclass
class TimeSeriesData:
    """
    Pre- and post-intervention covariates and outcomes.

    Attributes
    ----------
    X0, Y0 : NDArray
        Pre-period covariates (n0, d) and outcomes (n0,).
    X1, Y1 : NDArray
        Post-period covariates (n1, d) and outcomes (n1,).
    """
    X0: NDArray
    Y0: NDArray
    X1: NDArray
    Y1: NDArray

    def __post_init__(self):
        self.X0 = as_float_array(self.X0, 2, "X0")
        self.Y0 = as_float_array(self.Y0, 1, "Y0")
        self.X1 = as_float_array(self.X1, 2, "X1")
        self.Y1 = as_float_array(self.Y1, 1, "Y1")
        check_rows(X0=self.X0, Y0=self.Y0)
        check_rows(X1=self.X1, Y1=self.Y1)
        if self.X0.shape[1] != self.X1.shape[1]:
            raise ValueError(
                f"X0 and X1 must have the same number of columns, "
                f"got {self.X0.shape[1]} and {self.X1.shape[1]}"
            )

    @property
    def n0(self) -> int:
        return self.X0.shape[0]

    @property
    def n1(self) -> int:
        return self.X1.shape[0]


__all__ = [
    "CLIP_EPS",
    "VarType",
    "NONBINARY",
    "var_type",
    "clip_if_binary",
    "mean",
    "var",
    "consecutive",
    "one_hot_encode",
    "moving_average",
    "as_float_array",
    "check_rows",
    "CausalData",
    "TimeSeriesData",
]
