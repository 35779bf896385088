"""Tests for special functions."""

import numpy as np
import pytest
from scipy.special import gammaln, iv

from kentmm.special import (concentrated_legendre, constant_term, log_gamma,
                            log_modified_bessel_first_kind, log_surface_area_sphere)


class TestBessel:

    @pytest.mark.parametrize("alpha,x", [(0, 0.5), (0.5, 3.0), (2.5, 40.0), (10.5, 100.0)])
    def test_matches_scipy(self, alpha, x):
        assert log_modified_bessel_first_kind(alpha, x) == pytest.approx(np.log(iv(alpha, x)), rel=1e-10)

    def test_large_argument_does_not_overflow(self):
        value = log_modified_bessel_first_kind(0.5, 1000.0)
        # I_1/2(x) = sqrt(2 / (pi x)) sinh(x)
        expected = 0.5 * np.log(2 / (np.pi * 1000.0)) + 1000.0 - np.log(2)
        assert value == pytest.approx(expected, rel=1e-12)

    def test_large_order_uses_series(self):
        # leading term of the power series dominates when alpha >> x
        value = log_modified_bessel_first_kind(200.5, 1.0)
        leading = 200.5 * np.log(0.5) - gammaln(201.5)
        assert np.isfinite(value)
        assert value == pytest.approx(leading, abs=1e-2)

    def test_zero_argument(self):
        assert log_modified_bessel_first_kind(0, 0.0) == 0.0
        assert log_modified_bessel_first_kind(1.5, 0.0) == -np.inf

    def test_vectorised(self):
        alpha = np.array([0.5, 1.5, 2.5])
        np.testing.assert_allclose(log_modified_bessel_first_kind(alpha, 5.0),
                                   np.log(iv(alpha, 5.0)), rtol=1e-10)


class TestConstants:

    def test_log_gamma(self):
        assert log_gamma(4) == pytest.approx(np.log(6))
        np.testing.assert_allclose(log_gamma(np.arange(0.5, 5)), gammaln(np.arange(0.5, 5)))

    def test_constant_term(self):
        assert constant_term(1) == pytest.approx(-0.5 * np.log(2))

    def test_sphere_area(self):
        assert log_surface_area_sphere(3) == pytest.approx(np.log(4 * np.pi))
        assert log_surface_area_sphere(2) == pytest.approx(np.log(2 * np.pi))


class TestQuadrature:

    @pytest.mark.parametrize("scale", [1.0, 0.01, 1e-4])
    def test_concentrated_exponential(self, scale):
        s, w = concentrated_legendre(scale)
        exact = scale * -np.expm1(-2 / scale)
        assert np.sum(w * np.exp(-s / scale)) == pytest.approx(exact, rel=1e-10)

    def test_polynomial(self):
        s, w = concentrated_legendre(0.1)
        assert np.all((s >= 0) & (s <= 2))
        assert np.sum(w * s ** 2) == pytest.approx(8 / 3, rel=1e-12)
