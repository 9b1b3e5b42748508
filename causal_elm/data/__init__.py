"""
Synthetic datasets with known causal effects.
"""

from causal_elm.data.synthetic import (
    InterruptedTimeSeriesDGP,
    TreatmentDGP,
    make_its_data,
    make_treatment_data,
)

__all__ = [
    "TreatmentDGP",
    "InterruptedTimeSeriesDGP",
    "make_treatment_data",
    "make_its_data",
]
