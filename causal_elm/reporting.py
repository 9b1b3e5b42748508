"""
Reporting
=========

Tables and console output for fitted estimators and their summaries.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from causal_elm.estimators import CausalEstimator
from causal_elm.inference import effect_statistic


Reportable = Union[CausalEstimator, Dict[str, Any]]


def _row(item: Reportable) -> Dict[str, Any]:
    if isinstance(item, CausalEstimator):
        item.check_estimated()
        row = dict(item.summary_fields())
        row["Causal Effect"] = effect_statistic(item, item.causal_effect)
        return row
    return dict(item)


def summary_table(
    results: Sequence[Reportable],
    names: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Create a summary table comparing several estimates.

    Parameters
    ----------
    results : sequence of CausalEstimator or dict
        Fitted estimators, or dictionaries returned by ``summarize`` (which
        also carry the standard error and p-value).
    names : sequence of str, optional
        Row labels; defaults to the estimator class names, or "Model i" for
        dictionaries.

    Returns
    -------
    pd.DataFrame
        One row per result.

    Examples
    --------
    >>> g = GComputation(X, T, Y, random_state=1)
    >>> g.estimate_causal_effect()
    >>> print(summary_table([summarize(g, n=200)], names=["G-computation"]))
    """
    if names is not None and len(names) != len(results):
        raise ValueError("names must have one entry per result")

    rows = []
    for i, item in enumerate(results):
        if names is not None:
            label = names[i]
        elif isinstance(item, CausalEstimator):
            label = type(item).__name__
        else:
            label = f"Model {i + 1}"
        rows.append({"Estimator": label, **_row(item)})

    return pd.DataFrame(rows)


def to_latex(
    df: pd.DataFrame,
    caption: Optional[str] = None,
    label: Optional[str] = None,
    float_format: str = "%.3f",
) -> str:
    """
    Export a summary table as LaTeX.

    Parameters
    ----------
    df : pd.DataFrame
        Table to export.
    caption : str, optional
        Table caption, placed after the tabular environment.
    label : str, optional
        LaTeX label.
    float_format : str, default '%.3f'
        Format of floating point cells.

    Returns
    -------
    str
        LaTeX source.
    """
    latex = df.to_latex(index=False, float_format=float_format, escape=True)

    additions = []
    if caption:
        additions.append(f"\\caption{{{caption}}}")
    if label:
        additions.append(f"\\label{{{label}}}")
    if not additions:
        return latex

    lines = latex.split("\n")
    end = next(i for i, line in enumerate(lines) if "\\end{tabular}" in line)
    lines[end + 1:end + 1] = additions
    return "\n".join(lines)


def _format_value(value: Any) -> str:
    if isinstance(value, (bool, np.bool_)):
        return str(bool(value))
    if isinstance(value, (float, np.floating)):
        return f"{value:.4f}"
    return str(value)


def print_summary(summaries: Union[Dict[str, Any], List[Dict[str, Any]]]) -> None:
    """Print one or more ``summarize`` dictionaries to the console."""
    if isinstance(summaries, dict):
        summaries = [summaries]

    width = max(len(key) for summary in summaries for key in summary)
    print("\n" + "=" * 70)
    print("CAUSAL ELM SUMMARY")
    print("=" * 70)

    for i, summary in enumerate(summaries):
        if i > 0:
            print("-" * 70)
        for key, value in summary.items():
            print(f"  {key:<{width}}  {_format_value(value)}")

    print("=" * 70 + "\n")


__all__ = [
    "summary_table",
    "to_latex",
    "print_summary",
]
