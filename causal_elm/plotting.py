"""
Plotting
========

Figures for randomization inference, interrupted time series and CATE
estimates.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np
from numpy.typing import ArrayLike

from causal_elm.estimators import InterruptedTimeSeries
from causal_elm.metalearners import Metalearner


# Colorblind-friendly palette
COLORS = {
    "observed": "#2C7BB6",
    "counterfactual": "#D7191C",
    "null": "#999999",
    "effect": "#1B9E77",
    "neutral": "#666666",
}


def set_publication_style() -> None:
    """Set matplotlib rcParams for publication-quality figures."""
    plt.rcParams.update({
        "figure.figsize": (6.5, 4.5),
        "figure.dpi": 150,
        "savefig.dpi": 300,
        "savefig.bbox": "tight",
        "font.family": "serif",
        "font.size": 10,
        "axes.titlesize": 11,
        "axes.labelsize": 10,
        "legend.fontsize": 9,
        "mathtext.fontset": "cm",
        "axes.grid": True,
        "grid.alpha": 0.3,
    })


def _axes(ax, figsize):
    if ax is None:
        _, ax = plt.subplots(figsize=figsize)
    return ax


def _tidy(ax) -> None:
    ax.spines["top"].set_visible(False)
    ax.spines["right"].set_visible(False)


def plot_null_distribution(
    null: ArrayLike,
    observed: float,
    ax: Optional[Any] = None,
    bins: int = 30,
    figsize: Tuple[float, float] = (8, 5),
) -> Any:
    """
    Histogram of a randomization null distribution with the observed effect.

    Parameters
    ----------
    null : array-like
        Output of ``generate_null_distribution``.
    observed : float
        Observed statistic.
    ax : matplotlib Axes, optional
        Axes to draw on; a new figure is created otherwise.
    bins : int, default 30
        Histogram bins.
    figsize : tuple, default (8, 5)
        Size of a new figure.

    Returns
    -------
    matplotlib Axes
    """
    null = np.asarray(null, dtype=float)
    ax = _axes(ax, figsize)

    ax.hist(null, bins=bins, color=COLORS["null"], alpha=0.7,
            edgecolor="white", linewidth=0.5, label="Null distribution")
    ax.axvline(observed, color=COLORS["counterfactual"], linewidth=2,
               label=f"Observed = {observed:.3f}")

    p_value = float(np.mean(np.abs(null) >= abs(observed)))
    ax.text(0.98, 0.95, f"p = {p_value:.3f}\nn = {null.shape[0]}",
            transform=ax.transAxes, va="top", ha="right", fontsize=10,
            bbox=dict(boxstyle="round", facecolor="white", alpha=0.9))

    ax.set_xlabel("Effect under the null")
    ax.set_ylabel("Frequency")
    ax.set_title("Randomization Inference", fontweight="bold")
    ax.legend(loc="upper left")
    _tidy(ax)
    return ax


def plot_counterfactual(
    its: InterruptedTimeSeries,
    ax: Optional[Any] = None,
    figsize: Tuple[float, float] = (9, 5),
) -> Any:
    """
    Observed outcomes against the predicted counterfactual of an interrupted
    time series, with the intervention marked.
    """
    its.check_estimated()
    ax = _axes(ax, figsize)

    n0, n1 = its.data.n0, its.data.n1
    observed = np.concatenate([its.data.Y0, its.data.Y1])
    fitted = np.concatenate([its.placebo_test[0], its.counterfactual])
    time = np.arange(n0 + n1)

    ax.plot(time, observed, color=COLORS["observed"], label="Observed")
    ax.plot(time, fitted, color=COLORS["counterfactual"], linestyle="--",
            label="Model / counterfactual")
    ax.axvline(n0 - 0.5, color=COLORS["neutral"], linestyle=":", label="Intervention")
    ax.fill_between(time[n0:], its.counterfactual, its.data.Y1,
                    color=COLORS["effect"], alpha=0.2, label="Effect")

    ax.set_xlabel("Period")
    ax.set_ylabel("Outcome")
    ax.set_title(f"Interrupted Time Series (mean effect = {np.mean(its.causal_effect):.3f}, "
                 f"{n1} post periods)", fontweight="bold")
    ax.legend(loc="best")
    _tidy(ax)
    return ax


def plot_cate(
    learner: Metalearner,
    ax: Optional[Any] = None,
    bins: int = 30,
    figsize: Tuple[float, float] = (8, 5),
) -> Any:
    """Histogram of the conditional average treatment effects of a metalearner."""
    cate = np.asarray(learner.causal_effect, dtype=float)
    ax = _axes(ax, figsize)

    ax.hist(cate, bins=bins, color=COLORS["effect"], alpha=0.7,
            edgecolor="white", linewidth=0.5)
    ax.axvline(cate.mean(), color=COLORS["counterfactual"], linewidth=2,
               label=f"Mean CATE = {cate.mean():.3f}")
    ax.axvline(0, color=COLORS["neutral"], linestyle="--", alpha=0.5)

    ax.set_xlabel("CATE")
    ax.set_ylabel("Frequency")
    ax.set_title(f"{type(learner).__name__} CATE Distribution", fontweight="bold")
    ax.legend(loc="upper left")
    _tidy(ax)
    return ax


def save_figure(fig: Any, path: Union[str, Path], **kwargs: Any) -> Path:
    """Save a figure, creating parent directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, **kwargs)
    return path


__all__ = [
    "COLORS",
    "set_publication_style",
    "plot_null_distribution",
    "plot_counterfactual",
    "plot_cate",
    "save_figure",
]
