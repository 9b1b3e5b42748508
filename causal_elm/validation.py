"""
Model Validation
================

Checks of the identifying assumptions behind a fitted estimator.

Interrupted time series
    covariate_independence  Chow test of each covariate against the period
                            indicator.
    sup_wald                Scan for the structural break with the largest
                            Wald statistic.
    omitted_predictor       Re-estimation with an added noise covariate.

G-computation
    counterfactual_consistency  Fit with Jenks-break fake treatments versus
                                the real model.

Cross-sectional estimators
    exchangeability  E-value of the estimated effect.
    positivity       Rows whose propensity score leaves the overlap region.

p-values of the time-series tests come from randomization inference on the
period indicator.
"""

from __future__ import annotations

import copy
import logging
import math
from typing import Any, Dict, List

import numpy as np
from numpy.typing import ArrayLike, NDArray
from tqdm import tqdm

from causal_elm.estimators import (
    CausalEstimator,
    GComputation,
    InterruptedTimeSeries,
)
from causal_elm.inference import effect_statistic
from causal_elm.metrics import mse
from causal_elm.utilities import VarType, var_type


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

# Standardized mean difference to log risk ratio conversion factor
SMD_TO_LOG_RR = 0.91

DEFAULT_LOW = 0.15
DEFAULT_HIGH = 0.85
DEFAULT_MIN_PROPENSITY = 1e-6
DEFAULT_MAX_PROPENSITY = 1 - 1e-6


# =============================================================================
# Randomization Inference
# =============================================================================

def _slope(x: NDArray, y: NDArray) -> float:
    return float(np.linalg.lstsq(x, y, rcond=None)[0][0])


def _wald(x: NDArray, y: NDArray) -> float:
    """Squared t-statistic of the first coefficient of an OLS fit."""
    beta, *_ = np.linalg.lstsq(x, y, rcond=None)
    dof = x.shape[0] - np.linalg.matrix_rank(x)
    if dof <= 0:
        return 0.0
    sigma2 = float(np.sum((y - x @ beta) ** 2)) / dof
    variance = sigma2 * np.linalg.pinv(x.T @ x)[0, 0]
    if variance <= 0:
        return 0.0
    return float(beta[0] ** 2 / variance)


def randomization_pvalue(
    x: ArrayLike,
    y: ArrayLike,
    statistic: float,
    n: int = 1000,
    wald: bool = False,
    random_state=None,
) -> float:
    """
    p-value of a period effect by permuting the period indicator.

    Parameters
    ----------
    x : array-like of shape (m, p)
        Design whose first column is a 0/1 period indicator and whose last
        column is an intercept.
    y : array-like of shape (m,)
        Dependent variable.
    statistic : float
        Observed statistic: the indicator's coefficient, or its Wald
        statistic when ``wald=True``.
    n : int, default 1000
        Permutations.
    wald : bool, default False
        One-sided test of the Wald statistic instead of a two-sided test of
        the coefficient.
    random_state : int, numpy.random.Generator or None
        Seed for the permutations.

    Returns
    -------
    float
        Share of permutations with a statistic at least as extreme.
    """
    x = np.array(x, dtype=float)
    y = np.asarray(y, dtype=float).ravel()

    if not np.all(np.isin(x[:, 0], (0.0, 1.0))):
        raise ValueError("The first column of x must be a 0/1 period indicator")
    if not np.all(x[:, -1] == 1.0):
        raise ValueError("The last column of x must be an intercept of ones")

    rng = np.random.default_rng(random_state)
    indicator = x[:, 0].copy()
    compute = _wald if wald else _slope

    null = np.empty(n)
    for i in range(n):
        x[:, 0] = rng.permutation(indicator)
        null[i] = compute(x, y)

    if wald:
        return float(np.mean(null >= statistic))
    return float(np.mean(np.abs(null) >= abs(statistic)))


# =============================================================================
# Interrupted Time Series
# =============================================================================

def _period_indicator(its: InterruptedTimeSeries) -> NDArray:
    return np.concatenate([np.zeros(its.data.n0), np.ones(its.data.n1)])


def covariate_independence(
    its: InterruptedTimeSeries,
    n: int = 1000,
    random_state=None,
) -> Dict[str, float]:
    """
    Chow test of independence between each covariate and the intervention.

    Each covariate is regressed on the period indicator and an intercept; the
    indicator's slope is compared with slopes under permuted periods. Low
    p-values suggest the intervention moved the covariates, so they cannot
    predict an unbiased counterfactual.

    Returns
    -------
    dict
        "Column i p-value" for every covariate, numbered from 1.
    """
    its.check_estimated()
    rng = np.random.default_rng(random_state)
    covariates = np.vstack([its.data.X0, its.data.X1])
    x = np.column_stack([_period_indicator(its), np.ones(covariates.shape[0])])

    results = {}
    for i in range(covariates.shape[1]):
        y = covariates[:, i]
        results[f"Column {i + 1} p-value"] = randomization_pvalue(
            x, y, _slope(x, y), n=n, random_state=rng
        )
    return results


def sup_wald(
    its: InterruptedTimeSeries,
    low: float = DEFAULT_LOW,
    high: float = DEFAULT_HIGH,
    n: int = 1000,
    random_state=None,
) -> Dict[str, float]:
    """
    Wald supremum test for the location of the structural break.

    Every break between ``low`` and ``high`` of the series is tried; the one
    with the largest Wald statistic on the period indicator is compared to
    the hypothesized break (the first post-period row).

    Parameters
    ----------
    its : InterruptedTimeSeries
        A fitted estimator.
    low, high : float
        Share of the series where candidate breaks start and end.
    n : int, default 1000
        Permutations for the p-value.
    random_state : int, numpy.random.Generator or None
        Seed for the permutations.

    Returns
    -------
    dict
        "Hypothesized Break Point", "Predicted Break Point",
        "Wald Statistic" and "p-value".
    """
    its.check_estimated()
    if not 0 <= low < high <= 1:
        raise ValueError(f"Need 0 <= low < high <= 1, got {low} and {high}")

    covariates = np.vstack([its.data.X0, its.data.X1])
    y = np.concatenate([its.data.Y0, its.data.Y1])
    total = y.shape[0]
    intercept = np.ones(total)

    hypothesized = its.data.n0
    best_break, best_wald, best_x = hypothesized, -np.inf, None
    for idx in range(math.ceil(low * total), math.floor(high * total) + 1):
        if not 0 < idx < total:
            continue
        indicator = (np.arange(total) >= idx).astype(float)
        x = np.column_stack([indicator, covariates, intercept])
        wald = _wald(x, y)
        if wald > best_wald:
            best_break, best_wald, best_x = idx, wald, x

    if best_x is None:
        raise ValueError("No candidate break points between low and high")

    logger.debug("sup-Wald break at %d (statistic %.4g)", best_break, best_wald)
    p_value = randomization_pvalue(best_x, y, best_wald, n=n, wald=True, random_state=random_state)
    return {
        "Hypothesized Break Point": hypothesized,
        "Predicted Break Point": best_break,
        "Wald Statistic": best_wald,
        "p-value": p_value,
    }


def omitted_predictor(
    its: InterruptedTimeSeries,
    n: int = 1000,
    random_state=None,
    progress: bool = False,
) -> Dict[str, float]:
    """
    Sensitivity of the effect to an omitted predictor.

    The model is re-estimated ``n`` times with an extra covariate of
    normal-plus-uniform noise. Ratios of the biased to the original mean
    effect far from 1 suggest the covariates predict the counterfactual
    poorly.

    Returns
    -------
    dict
        Minimum, mean, median and maximum of the biased/original ratio.
    """
    its.check_estimated()
    rng = np.random.default_rng(random_state)
    original = float(np.mean(its.causal_effect))

    ratios = np.empty(n)
    for i in tqdm(range(n), desc="Omitted predictor", disable=not progress):
        biased = copy.deepcopy(its)
        n0, n1 = its.data.n0, its.data.n1
        biased.data.X0 = np.column_stack([its.data.X0, rng.standard_normal(n0) + rng.random(n0)])
        biased.data.X1 = np.column_stack([its.data.X1, rng.standard_normal(n1) + rng.random(n1)])
        ratios[i] = np.mean(biased.estimate_causal_effect()) / original

    return {
        "Minimum Biased Effect/Original Effect": float(np.min(ratios)),
        "Mean Biased Effect/Original Effect": float(np.mean(ratios)),
        "Median Biased Effect/Original Effect": float(np.median(ratios)),
        "Maximum Biased Effect/Original Effect": float(np.max(ratios)),
    }


# =============================================================================
# Jenks Natural Breaks
# =============================================================================

def sdam(x: ArrayLike) -> float:
    """Sum of squared deviations from the array mean."""
    x = np.asarray(x, dtype=float)
    return float(np.sum((x - x.mean()) ** 2))


def sdcm(groups: List[ArrayLike]) -> float:
    """Sum of squared deviations from the class means."""
    return float(sum(sdam(g) for g in groups))


def gvf(groups: List[ArrayLike]) -> float:
    """
    Goodness of variance fit of a partition.

    (SDAM - SDCM) / SDAM; 1 for a perfect fit. A constant array has nothing
    to explain and scores 1.
    """
    total = sdam(np.concatenate([np.asarray(g, dtype=float) for g in groups]))
    if total == 0:
        return 1.0
    return (total - sdcm(groups)) / total


def jenks_breaks(y: ArrayLike, k: int = 5) -> List[NDArray]:
    """
    Optimal partition of the sorted values into ``k`` contiguous groups.

    Within-group sums of squares are minimized exactly by dynamic
    programming over prefix sums, O(k n²).

    Parameters
    ----------
    y : array-like
        Values to partition.
    k : int, default 5
        Number of groups; capped at the number of values.

    Returns
    -------
    list of NDArray
        Ordered, non-empty groups that together hold every value.
    """
    values = np.sort(np.asarray(y, dtype=float).ravel())
    n = values.shape[0]
    if n == 0:
        raise ValueError("Cannot compute breaks of an empty array")
    if k < 1:
        raise ValueError(f"k must be at least 1, got {k}")
    k = min(k, n)

    s1 = np.concatenate([[0.0], np.cumsum(values)])
    s2 = np.concatenate([[0.0], np.cumsum(values ** 2)])

    def ssd(starts: NDArray, end: int) -> NDArray:
        # sum of squared deviations of values[starts:end] for every start
        count = end - starts
        total = s1[end] - s1[starts]
        return s2[end] - s2[starts] - total ** 2 / count

    # cost[g, j]: best cost of the first j values in g + 1 groups
    cost = np.full((k, n + 1), np.inf)
    split = np.zeros((k, n + 1), dtype=int)
    cost[0, 1:] = [ssd(np.array([0]), j)[0] for j in range(1, n + 1)]

    for g in range(1, k):
        for j in range(g + 1, n + 1):
            starts = np.arange(g, j)
            candidates = cost[g - 1, starts] + ssd(starts, j)
            best = int(np.argmin(candidates))
            cost[g, j] = candidates[best]
            split[g, j] = starts[best]

    bounds = [n]
    for g in range(k - 1, 0, -1):
        bounds.append(split[g, bounds[-1]])
    bounds.append(0)
    bounds = bounds[::-1]

    return [values[bounds[i]:bounds[i + 1]] for i in range(k)]


def natural_breaks(y: ArrayLike, k: int = 5) -> List[NDArray]:
    """
    Jenks breaks with the number of groups chosen by the elbow of the GVF.

    Optimal partitions into 2..k groups are compared and the count where the
    slope of GVF against the number of groups drops the most is chosen. With
    fewer than four candidate counts the largest feasible count is used.
    """
    values = np.asarray(y, dtype=float).ravel()
    k = min(k, values.shape[0])
    if k < 2:
        return [np.sort(values)]

    counts = list(range(2, k + 1))
    partitions = [jenks_breaks(values, c) for c in counts]
    if len(counts) < 4:
        return partitions[-1]

    fits = np.array([gvf(p) for p in partitions])
    slopes = np.diff(fits)
    drops = slopes[:-1] - slopes[1:]
    return partitions[int(np.argmax(drops)) + 1]


def fake_treatments(outcomes: ArrayLike, num_treatments: int = 5) -> NDArray:
    """
    Fictitious treatment levels 1..g from the natural breaks of the outcomes.

    Each outcome receives the number of the Jenks group that contains it.
    """
    outcomes = np.asarray(outcomes, dtype=float).ravel()
    groups = natural_breaks(outcomes, num_treatments)
    upper = np.array([g[-1] for g in groups])
    return np.searchsorted(upper, outcomes, side="left").astype(float) + 1


def counterfactual_consistency(g: GComputation, num_treatments: int = 5) -> float:
    """
    Counterfactual consistency check for G-computation.

    Among treated rows, the outcome is regressed on the covariates with and
    without fake treatment levels derived from Jenks breaks of the outcome.
    Returns MSE(fake) - MSE(real); a negative value may indicate a violation
    of counterfactual consistency or an omitted variable.
    """
    if not isinstance(g, GComputation):
        raise TypeError(
            f"counterfactual_consistency requires a GComputation estimator, "
            f"got {type(g).__name__}"
        )
    g.check_estimated()

    treated = g.data.T != 0
    X, y = g.data.X[treated], g.data.Y[treated]
    if y.shape[0] == 0:
        raise ValueError("counterfactual_consistency requires treated rows")

    X_fake = np.column_stack([X, fake_treatments(y, num_treatments)])
    beta_real = np.linalg.lstsq(X, y, rcond=None)[0]
    beta_fake = np.linalg.lstsq(X_fake, y, rcond=None)[0]

    return mse(y, X_fake @ beta_fake) - mse(y, X @ beta_real)


# =============================================================================
# Sensitivity and Overlap
# =============================================================================

def e_value(rr: float) -> float:
    """
    E-value of a risk ratio (VanderWeele & Ding, 2017).

    Ratios below 1 are inverted first.
    """
    if rr <= 0 or not np.isfinite(rr):
        raise ValueError(f"risk ratio must be positive and finite, got {rr}")
    if rr < 1:
        rr = 1 / rr
    return float(rr + math.sqrt(rr * (rr - 1)))


def risk_ratio(estimator: CausalEstimator) -> float:
    """
    Approximate risk ratio of an estimated effect.

    For a binary outcome, the ratio of predicted mean outcomes with every row
    treated versus every row untreated. Otherwise the effect is converted
    with exp(0.91 · effect / sd(Y)).
    """
    estimator.check_estimated()
    Y = estimator.data.Y

    if var_type(Y) is VarType.BINARY:
        covariates = estimator.data.covariates
        if isinstance(estimator, GComputation):
            model = estimator.learner
        else:
            design = np.column_stack([covariates, estimator.data.T])
            model = estimator._learner(design, Y, estimator._rng()).fit()
        ones, zeros = np.ones(covariates.shape[0]), np.zeros(covariates.shape[0])
        treated = np.mean(model.predict(np.column_stack([covariates, ones])))
        control = np.mean(model.predict(np.column_stack([covariates, zeros])))
        return float(treated / control)

    sd = float(np.std(Y, ddof=1))
    if sd == 0:
        raise ValueError("The outcome is constant; the risk ratio is undefined")
    return float(np.exp(SMD_TO_LOG_RR * effect_statistic(estimator, estimator.causal_effect) / sd))


def exchangeability(estimator: CausalEstimator) -> Dict[str, float]:
    """E-value: the confounder strength needed to explain away the effect."""
    rr = risk_ratio(estimator)
    return {"E-value": e_value(rr), "Risk Ratio": rr}


def positivity(
    estimator: CausalEstimator,
    min_propensity: float = DEFAULT_MIN_PROPENSITY,
    max_propensity: float = DEFAULT_MAX_PROPENSITY,
) -> Dict[str, Any]:
    """
    Overlap check from an ELM propensity model of T on the covariates.

    Returns
    -------
    dict
        Number and indices of rows with a propensity score outside
        [min_propensity, max_propensity], and the observed score range.
    """
    estimator.check_estimated()
    covariates, T = estimator.data.covariates, estimator.data.T

    model = estimator._learner(covariates, T, estimator._rng()).fit()
    scores = model.predict(covariates)
    violating = np.flatnonzero((scores < min_propensity) | (scores > max_propensity))

    return {
        "Number of Violations": int(violating.shape[0]),
        "Violating Rows": violating,
        "Minimum Propensity Score": float(np.min(scores)),
        "Maximum Propensity Score": float(np.max(scores)),
    }


# =============================================================================
# Entry Point
# =============================================================================

def validate(
    estimator: CausalEstimator,
    n: int = 1000,
    low: float = DEFAULT_LOW,
    high: float = DEFAULT_HIGH,
    num_treatments: int = 5,
    random_state=None,
) -> Dict[str, Any]:
    """
    Run every assumption check that applies to a fitted estimator.

    Parameters
    ----------
    estimator : CausalEstimator
        A fitted estimator.
    n : int, default 1000
        Permutations or re-estimations for the randomization-based checks.
    low, high : float
        Break-point window of the Wald supremum test.
    num_treatments : int, default 5
        Maximum number of Jenks groups in the counterfactual consistency
        check.
    random_state : int, numpy.random.Generator or None
        Seed for the randomized checks.

    Returns
    -------
    dict
        Interrupted time series: "Chow Test", "Wald Supremum Test" and
        "Omitted Predictor Test". G-computation: "Counterfactual
        Consistency", "Exchangeability" and "Positivity". Other estimators:
        "Exchangeability" and "Positivity".
    """
    if not isinstance(estimator, CausalEstimator):
        raise TypeError(f"Cannot validate an object of type {type(estimator).__name__}")
    estimator.check_estimated()

    rng = np.random.default_rng(random_state)
    if isinstance(estimator, InterruptedTimeSeries):
        return {
            "Chow Test": covariate_independence(estimator, n, rng),
            "Wald Supremum Test": sup_wald(estimator, low, high, n, rng),
            "Omitted Predictor Test": omitted_predictor(estimator, n, rng),
        }

    results: Dict[str, Any] = {}
    if isinstance(estimator, GComputation):
        results["Counterfactual Consistency"] = counterfactual_consistency(
            estimator, num_treatments
        )
    results["Exchangeability"] = exchangeability(estimator)
    results["Positivity"] = positivity(estimator)
    return results


__all__ = [
    "validate",
    "covariate_independence",
    "sup_wald",
    "omitted_predictor",
    "counterfactual_consistency",
    "exchangeability",
    "e_value",
    "risk_ratio",
    "positivity",
    "randomization_pvalue",
    "jenks_breaks",
    "natural_breaks",
    "fake_treatments",
    "gvf",
    "sdam",
    "sdcm",
]
