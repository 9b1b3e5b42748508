"""
Randomization Inference
=======================

Null distributions, p-values and standard errors for fitted estimators, plus
the human-readable summary.

The sampling distribution of an ELM-based effect has no closed form, so the
null is simulated:

- Cross-sectional estimators are re-estimated on randomly permuted
  treatment vectors. Metalearners use the mean CATE as the statistic.
- InterruptedTimeSeries is refitted on synthetic post-period outcomes equal
  to its counterfactual prediction plus pre-period residuals resampled with
  replacement. The statistic is the mean (or sum) of the effect vector.

Every draw gets an independent child seed, so the null distribution does not
depend on ``n_jobs``. The cached hidden-layer size is reused by every draw.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
from typing import Any, Dict, List, Tuple

import numpy as np
from joblib import Parallel, delayed
from numpy.typing import NDArray
from tqdm import tqdm

from causal_elm.estimators import CausalEstimator, InterruptedTimeSeries
from causal_elm.metalearners import Metalearner


logger = logging.getLogger(__name__)


# =============================================================================
# Statistics
# =============================================================================

def effect_statistic(estimator: CausalEstimator, effect, mean_effect: bool = True) -> float:
    """
    Scalar summary of an estimated effect.

    Interrupted time series effects are averaged (``mean_effect=True``) or
    summed; metalearner CATEs are averaged; average effects pass through.
    """
    if isinstance(estimator, InterruptedTimeSeries):
        return float(np.mean(effect) if mean_effect else np.sum(effect))
    if isinstance(estimator, Metalearner):
        return float(np.mean(effect))
    return float(effect)


def _child_seeds(random_state, n: int) -> List[np.random.SeedSequence]:
    if isinstance(random_state, np.random.Generator):
        random_state = int(random_state.integers(0, 2 ** 63 - 1))
    return np.random.SeedSequence(random_state).spawn(n)


def _null_draw(
    estimator: CausalEstimator,
    seed: np.random.SeedSequence,
    mean_effect: bool,
) -> float:
    rng = np.random.default_rng(seed)
    draw = copy.deepcopy(estimator)
    draw.config = dataclasses.replace(
        draw.config, random_state=int(rng.integers(0, 2 ** 31 - 1))
    )

    if isinstance(draw, InterruptedTimeSeries):
        residuals = estimator.pre_period_residuals()
        noise = rng.choice(residuals, size=draw.data.n1, replace=True)
        draw.data.Y1 = estimator.counterfactual + noise
    else:
        draw.data.T = rng.permutation(draw.data.T)

    return effect_statistic(draw, draw.estimate_causal_effect(), mean_effect)


# =============================================================================
# Null Distribution
# =============================================================================

def generate_null_distribution(
    estimator: CausalEstimator,
    n: int = 1000,
    mean_effect: bool = True,
    n_jobs: int = 1,
    random_state=None,
    progress: bool = False,
) -> NDArray:
    """
    Simulate the causal effect under the null of no treatment effect.

    Parameters
    ----------
    estimator : CausalEstimator
        A fitted estimator; it is copied, never modified.
    n : int, default 1000
        Number of simulated effects.
    mean_effect : bool, default True
        For interrupted time series, average (True) or sum (False) the
        post-period effects.
    n_jobs : int, default 1
        Parallel workers (joblib); -1 uses every core.
    random_state : int, numpy.random.Generator or None
        Seed for the permutations and the refits. Defaults to the
        estimator's own ``random_state``.
    progress : bool, default False
        Show a tqdm progress bar over the draws.

    Returns
    -------
    NDArray of shape (n,)
        Simulated effects.
    """
    estimator.check_estimated()
    if n < 1:
        raise ValueError(f"n must be at least 1, got {n}")

    if random_state is None:
        random_state = estimator.config.random_state
    seeds = _child_seeds(random_state, n)

    logger.debug(
        "Generating %d null draws for %s with n_jobs=%d",
        n, type(estimator).__name__, n_jobs,
    )
    draws = Parallel(n_jobs=n_jobs)(
        delayed(_null_draw)(estimator, seed, mean_effect)
        for seed in tqdm(seeds, desc="Null distribution", disable=not progress)
    )
    return np.asarray(draws, dtype=float)


def quantities_of_interest(
    estimator: CausalEstimator,
    n: int = 1000,
    mean_effect: bool = True,
    n_jobs: int = 1,
    random_state=None,
) -> Tuple[float, float]:
    """
    Randomization p-value and standard error of a fitted estimator.

    The p-value is the share of null draws at least as extreme as the
    observed statistic in absolute value; the standard error is the sample
    standard deviation of the null draws.

    Returns
    -------
    tuple of float
        (p_value, standard_error)
    """
    if n < 2:
        raise ValueError(f"n must be at least 2 to estimate a standard error, got {n}")

    null = generate_null_distribution(estimator, n, mean_effect, n_jobs, random_state)
    observed = effect_statistic(estimator, estimator.causal_effect, mean_effect)

    p_value = float(np.mean(np.abs(null) >= abs(observed)))
    standard_error = float(np.std(null, ddof=1))
    return p_value, standard_error


# =============================================================================
# Summary
# =============================================================================

def summarize(
    estimator: CausalEstimator,
    n: int = 1000,
    mean_effect: bool = True,
    n_jobs: int = 1,
    random_state=None,
) -> Dict[str, Any]:
    """
    Summarize a fitted estimator.

    Parameters
    ----------
    estimator : CausalEstimator
        A fitted estimator.
    n : int, default 1000
        Null draws used for the p-value and standard error.
    mean_effect : bool, default True
        For interrupted time series, report the mean (True) or cumulative
        (False) effect.
    n_jobs : int, default 1
        Parallel workers for the null distribution.
    random_state : int, numpy.random.Generator or None
        Seed for the null distribution.

    Returns
    -------
    dict
        Task, quantity of interest, configuration, selected neuron counts,
        causal effect, standard error and p-value. Metalearners add the
        number of machines.
    """
    estimator.check_estimated()
    p_value, standard_error = quantities_of_interest(
        estimator, n, mean_effect, n_jobs, random_state
    )

    summary = estimator.summary_fields()
    summary["Causal Effect"] = effect_statistic(estimator, estimator.causal_effect, mean_effect)
    summary["Standard Error"] = standard_error
    summary["p-value"] = p_value

    if "Number of Machines" in summary:
        summary["Number of Machines"] = summary.pop("Number of Machines")
    return summary


summarise = summarize


__all__ = [
    "effect_statistic",
    "generate_null_distribution",
    "quantities_of_interest",
    "summarize",
    "summarise",
]
