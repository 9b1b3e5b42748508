"""
causal_elm: Causal Inference with Extreme Learning Machines
===========================================================

Estimators of average, conditional and interrupted time series treatment
effects built on extreme learning machines, with randomization inference and
a suite of assumption checks.

Quick Start
-----------
>>> from causal_elm import GComputation, summarize, validate
>>> from causal_elm.data import make_treatment_data
>>>
>>> X, T, Y = make_treatment_data(n=500, theta0=2.0, random_state=42)
>>> g = GComputation(X, T, Y, random_state=42)
>>> g.estimate_causal_effect()
>>> summarize(g, n=200)
>>> validate(g)

Estimators
----------
- InterruptedTimeSeries, GComputation, DoubleMachineLearning
- SLearner, TLearner, XLearner, RLearner, DoublyRobustLearner

Every estimator selects its hidden-layer size by cross-validation on the
first call to ``estimate_causal_effect`` and reuses it afterwards.
"""

import logging

from causal_elm.activations import (
    ACTIVATIONS,
    binary_step,
    elish,
    fourier,
    gaussian,
    gelu,
    get_activation,
    hard_tanh,
    leaky_relu,
    relu,
    sigmoid,
    softmax,
    softplus,
    swish,
    tanh,
)
from causal_elm.models import ELMEnsemble, ExtremeLearner, RegularizedExtremeLearner
from causal_elm.metrics import accuracy, f1, mae, mse, precision, recall
from causal_elm.crossval import best_size, cross_validate, generate_folds
from causal_elm.estimators import (
    DoubleMachineLearning,
    GComputation,
    InterruptedTimeSeries,
    ModelConfig,
)
from causal_elm.metalearners import (
    DoublyRobustLearner,
    RLearner,
    SLearner,
    TLearner,
    XLearner,
)
from causal_elm.inference import (
    generate_null_distribution,
    quantities_of_interest,
    summarise,
    summarize,
)
from causal_elm.validation import validate
from causal_elm.reporting import print_summary, summary_table, to_latex
from causal_elm.plotting import (
    plot_cate,
    plot_counterfactual,
    plot_null_distribution,
    save_figure,
    set_publication_style,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.5.0"

__all__ = [
    # Activations
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
    # Models
    "ExtremeLearner",
    "RegularizedExtremeLearner",
    "ELMEnsemble",
    # Metrics
    "mse",
    "mae",
    "accuracy",
    "precision",
    "recall",
    "f1",
    # Cross-validation
    "generate_folds",
    "cross_validate",
    "best_size",
    # Estimators
    "ModelConfig",
    "InterruptedTimeSeries",
    "GComputation",
    "DoubleMachineLearning",
    "SLearner",
    "TLearner",
    "XLearner",
    "RLearner",
    "DoublyRobustLearner",
    # Inference
    "generate_null_distribution",
    "quantities_of_interest",
    "summarize",
    "summarise",
    # Validation
    "validate",
    # Reporting
    "summary_table",
    "to_latex",
    "print_summary",
    # Plotting
    "plot_null_distribution",
    "plot_counterfactual",
    "plot_cate",
    "set_publication_style",
    "save_figure",
]
