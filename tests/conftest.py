"""Pytest configuration and shared fixtures."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from causal_elm.data import make_its_data, make_treatment_data


# Small search budgets keep every estimation fast
FAST = {"max_neurons": 10, "folds": 3, "iterations": 2, "random_state": 42}


@pytest.fixture
def fast_config():
    """ModelConfig options with a small hidden-layer search."""
    return dict(FAST)


@pytest.fixture
def treatment_data():
    """Binary treatment confounded by X1, true effect 2."""
    return make_treatment_data(n=300, p=4, theta0=2.0, random_state=42)


@pytest.fixture
def its_data():
    """100 pre-period and 10 post-period rows, level shift 2."""
    return make_its_data(n0=100, n1=10, p=3, effect=2.0, random_state=42)


@pytest.fixture
def regression_data():
    """Smooth nonlinear regression problem."""
    rng = np.random.default_rng(42)
    X = rng.uniform(-1, 1, size=(200, 2))
    y = X[:, 0] + 2 * X[:, 1]
    return X, y
