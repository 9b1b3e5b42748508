"""
Activation Functions
====================

Closed-form nonlinearities applied element-wise to the hidden layer of an
extreme learning machine, H = φ(XW + b).

Every function accepts a scalar or an array and returns an array of the same
shape (softmax normalises along the last axis).
"""

from __future__ import annotations

from typing import Callable, Dict, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import special


Activation = Callable[[ArrayLike], NDArray]


def binary_step(x: ArrayLike) -> NDArray:
    """Heaviside step: 0 for negative inputs, 1 otherwise."""
    return np.where(np.asarray(x, dtype=float) < 0, 0.0, 1.0)


def sigmoid(x: ArrayLike) -> NDArray:
    """Logistic function 1 / (1 + e^{-x})."""
    return special.expit(np.asarray(x, dtype=float))


def tanh(x: ArrayLike) -> NDArray:
    """Hyperbolic tangent."""
    return np.tanh(np.asarray(x, dtype=float))


def relu(x: ArrayLike) -> NDArray:
    """Rectified linear unit max(0, x)."""
    return np.maximum(0.0, np.asarray(x, dtype=float))


def leaky_relu(x: ArrayLike) -> NDArray:
    """Leaky ReLU with a slope of 0.01 for negative inputs."""
    x = np.asarray(x, dtype=float)
    return np.maximum(0.01 * x, x)


def swish(x: ArrayLike) -> NDArray:
    """Swish / SiLU, x · σ(x)."""
    x = np.asarray(x, dtype=float)
    return x * special.expit(x)


def softmax(x: ArrayLike) -> NDArray:
    """
    Softmax along the last axis.

    For a hidden-layer matrix this normalises each row, so every observation's
    neuron activations sum to one.
    """
    return special.softmax(np.asarray(x, dtype=float), axis=-1)


def softplus(x: ArrayLike) -> NDArray:
    """Smooth approximation of ReLU, log(1 + e^x)."""
    return np.logaddexp(0.0, np.asarray(x, dtype=float))


def gelu(x: ArrayLike) -> NDArray:
    """Gaussian error linear unit, x · Φ(x)."""
    x = np.asarray(x, dtype=float)
    return 0.5 * x * (1.0 + special.erf(x / np.sqrt(2.0)))


def gaussian(x: ArrayLike) -> NDArray:
    """Gaussian bump e^{-x²}."""
    x = np.asarray(x, dtype=float)
    return np.exp(-(x ** 2))


def hard_tanh(x: ArrayLike) -> NDArray:
    """Piecewise-linear tanh: clips the input into [-1, 1]."""
    return np.clip(np.asarray(x, dtype=float), -1.0, 1.0)


def elish(x: ArrayLike) -> NDArray:
    """
    Exponential linear squashing function.

    (e^x - 1) · σ(x) for negative inputs and x · σ(x) otherwise.
    """
    x = np.asarray(x, dtype=float)
    s = special.expit(x)
    return np.where(x < 0, np.expm1(np.minimum(x, 0.0)) * s, x * s)


def fourier(x: ArrayLike) -> NDArray:
    """Fourier basis sin(x)."""
    return np.sin(np.asarray(x, dtype=float))


# =============================================================================
# Lookup
# =============================================================================

ACTIVATIONS: Dict[str, Activation] = {
    "binary_step": binary_step,
    "sigmoid": sigmoid,
    "tanh": tanh,
    "relu": relu,
    "leaky_relu": leaky_relu,
    "swish": swish,
    "softmax": softmax,
    "softplus": softplus,
    "gelu": gelu,
    "gaussian": gaussian,
    "hard_tanh": hard_tanh,
    "elish": elish,
    "fourier": fourier,
}


def get_activation(activation: Union[str, Activation]) -> Activation:
    """
    Resolve an activation function from its name or return it unchanged.

    Parameters
    ----------
    activation : str or callable
        One of the names in ``ACTIVATIONS`` or one of the functions
        themselves.

    Returns
    -------
    callable
        The activation function.

    Raises
    ------
    ValueError
        If the name is unknown or the object is not one of the library's
        activation functions.
    """
    if isinstance(activation, str):
        key = activation.lower()
        if key not in ACTIVATIONS:
            raise ValueError(
                f"Unknown activation: '{activation}'. "
                f"Choose from: {', '.join(ACTIVATIONS)}"
            )
        return ACTIVATIONS[key]

    if activation in ACTIVATIONS.values():
        return activation

    raise ValueError(
        "activation must be one of the functions in causal_elm.activations, "
        f"got {activation!r}"
    )


__all__ = [
    "ACTIVATIONS",
    "get_activation",
    "binary_step",
    "sigmoid",
    "tanh",
    "relu",
    "leaky_relu",
    "swish",
    "softmax",
    "softplus",
    "gelu",
    "gaussian",
    "hard_tanh",
    "elish",
    "fourier",
]
