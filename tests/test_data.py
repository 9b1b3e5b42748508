"""Tests for the synthetic data generators."""

import numpy as np
import pytest

from causal_elm.data import (
    InterruptedTimeSeriesDGP,
    TreatmentDGP,
    make_its_data,
    make_treatment_data,
)


class TestTreatmentDGP:

    def test_shapes(self):
        X, T, Y, info = TreatmentDGP(p=4).generate(100, random_state=0)
        assert X.shape == (100, 4)
        assert T.shape == Y.shape == (100,)
        assert info["propensity"].shape == (100,)

    def test_binary_treatment(self):
        _, T, _, _ = TreatmentDGP().generate(200, random_state=0)
        assert set(np.unique(T)) == {0.0, 1.0}

    def test_continuous_treatment(self):
        _, T, _, info = TreatmentDGP(binary_treatment=False).generate(200, random_state=0)
        assert len(np.unique(T)) > 2
        assert info["propensity"] is None

    def test_binary_outcome(self):
        _, _, Y, _ = TreatmentDGP(binary_outcome=True).generate(200, random_state=0)
        assert set(np.unique(Y)) <= {0.0, 1.0}

    def test_confounding(self):
        X, T, _, _ = TreatmentDGP(confounding=2.0).generate(2000, random_state=0)
        assert X[T == 1, 0].mean() > X[T == 0, 0].mean()

    def test_reproducible(self):
        a = make_treatment_data(n=50, random_state=3)
        b = make_treatment_data(n=50, random_state=3)
        for left, right in zip(a, b):
            np.testing.assert_array_equal(left, right)

    def test_single_covariate(self):
        X, _, _ = make_treatment_data(n=20, p=1, random_state=0)
        assert X.shape == (20, 1)

    @pytest.mark.parametrize("kwargs", [{"p": 0}, {"rho": 1.0}, {"rho": -1.0}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            TreatmentDGP(**kwargs)


class TestInterruptedTimeSeriesDGP:

    def test_shapes(self):
        X0, Y0, X1, Y1 = make_its_data(n0=50, n1=5, p=2, random_state=0)
        assert X0.shape == (50, 2)
        assert X1.shape == (5, 2)
        assert Y0.shape == (50,)
        assert Y1.shape == (5,)

    def test_effect_is_level_shift(self):
        _, _, _, Y1, info = InterruptedTimeSeriesDGP(effect=3.0).generate(20, 10, random_state=0)
        np.testing.assert_allclose(Y1 - info["untreated_post"], 3.0)

    def test_trend(self):
        _, Y0, _, _ = make_its_data(n0=500, n1=1, p=1, trend=0.1, random_state=0)
        assert Y0[-50:].mean() > Y0[:50].mean()

    def test_nonstationary(self):
        with pytest.raises(ValueError):
            InterruptedTimeSeriesDGP(phi=1.0)
