"""Tests for the Kent distribution: normalisation, sampling, estimation and scoring."""

import numpy as np
import pytest
from scipy.integrate import quad
from scipy.special import ive

from kentmm.kent import (MAP, MLE, MML_COMPLETE, MML_HALLEY, MML_NEWTON, MOMENT, NUM_METHODS,
                         KentDistribution, compute_all_estimators, compute_map_estimates,
                         compute_ml_estimates, compute_mml_estimates, compute_moment_estimates,
                         log_normalization_constants, sufficient_statistics)

# Test configuration
KAPPA = 100.0
BETA = 30.0


def direct_log_c(kappa, beta):
    """log c by one dimensional quadrature over t = cos(theta)."""
    def integrand(t):
        b = beta * (1 - t * t)
        return 2 * np.pi * np.exp(kappa * (t - 1) + b) * ive(0, b)
    value, _ = quad(integrand, -1, 1, epsabs=0, epsrel=1e-12, limit=200, points=[1 - 1 / kappa])
    return np.log(value) + kappa


def sphere_grid(n=400):
    """Gauss-Legendre in cos(theta) and uniform in phi, with area weights."""
    t, wt = np.polynomial.legendre.leggauss(n)
    phi = np.linspace(0, 2 * np.pi, n, endpoint=False)
    T, P = np.meshgrid(t, phi, indexing="ij")
    rho = np.sqrt(1 - T ** 2)
    x = np.stack([rho * np.cos(P), rho * np.sin(P), T], axis=-1).reshape(-1, 3)
    w = (wt[:, None] * np.full(n, 2 * np.pi / n)[None, :]).ravel()
    return x, w


@pytest.fixture(scope="module")
def kent_sample():
    kent = KentDistribution.canonical(KAPPA, BETA)
    return kent, kent.generate(1000, random_state=0)


class TestNormalizationConstant:

    @pytest.mark.parametrize("kappa", [1.0, 10.0, 100.0, 800.0])
    def test_von_mises_fisher_limit(self, kappa):
        # c(kappa, 0) = 4 pi sinh(kappa) / kappa
        expected = np.log(4 * np.pi) + kappa + np.log1p(-np.exp(-2 * kappa)) - np.log(2 * kappa)
        assert log_normalization_constants(kappa, 0.0).log_c == pytest.approx(expected, rel=1e-10)

    @pytest.mark.parametrize("kappa,beta", [(5.0, 2.0), (50.0, 20.0), (200.0, 90.0)])
    def test_series_matches_quadrature(self, kappa, beta):
        assert log_normalization_constants(kappa, beta).log_c == pytest.approx(
            direct_log_c(kappa, beta), rel=1e-8)

    @pytest.mark.parametrize("kappa,beta", [(10.0, 3.0), (100.0, 30.0)])
    def test_derivatives_match_finite_differences(self, kappa, beta):
        h = 1e-3
        const = log_normalization_constants(kappa, beta)
        c = lambda k, b: np.exp(log_normalization_constants(k, b).log_c - const.log_c)
        ck = (c(kappa + h, beta) - c(kappa - h, beta)) / (2 * h)
        cb = (c(kappa, beta + h) - c(kappa, beta - h)) / (2 * h)
        ckk = (c(kappa + h, beta) - 2 + c(kappa - h, beta)) / h ** 2
        cbb = (c(kappa, beta + h) - 2 + c(kappa, beta - h)) / h ** 2
        ckb = (c(kappa + h, beta + h) - c(kappa + h, beta - h)
               - c(kappa - h, beta + h) + c(kappa - h, beta - h)) / (4 * h * h)
        assert np.exp(const.log_ck - const.log_c) == pytest.approx(ck, rel=1e-6)
        assert np.exp(const.log_cb - const.log_c) == pytest.approx(cb, rel=1e-6)
        assert np.exp(const.log_ckk - const.log_c) == pytest.approx(ckk, rel=1e-3)
        assert np.exp(const.log_cbb - const.log_c) == pytest.approx(cbb, rel=1e-3)
        assert np.exp(const.log_ckb - const.log_c) == pytest.approx(ckb, rel=1e-3)

    def test_series_overflow(self, short_series):
        eccentric = KentDistribution.canonical(KAPPA, BETA)
        isotropic = KentDistribution.canonical(KAPPA, 0.0)
        assert all(np.isinf(v) for v in eccentric.constants())
        assert np.isfinite(isotropic.compute_log_normalization_constant())
        x = isotropic.generate(10, random_state=0)
        assert np.all(eccentric.log_density(x) == -np.inf)
        assert eccentric.compute_message_length(x) == np.inf
        assert np.isfinite(isotropic.compute_message_length(x))

    def test_memoised(self):
        assert log_normalization_constants(12.0, 4.0) is log_normalization_constants(12.0, 4.0)


class TestDensity:

    @pytest.mark.parametrize("kappa,beta", [(1.0, 0.3), (10.0, 4.0), (100.0, 30.0)])
    def test_integrates_to_one(self, kappa, beta):
        kent = KentDistribution.from_angles(0.4, 1.2, -0.7, kappa, beta)
        x, w = sphere_grid()
        assert np.sum(w * kent.density(x)) == pytest.approx(1.0, abs=1e-6)

    def test_mode_at_mean(self):
        kent = KentDistribution.from_angles(0.1, 0.5, 2.0, 20.0, 5.0)
        assert kent.log_density(kent.mean) > kent.log_density(kent.major_axis)
        assert kent.log_density(kent.major_axis) > kent.log_density(kent.minor_axis)

    def test_invalid_parameters_give_nan(self):
        kent = KentDistribution.canonical(10.0, 6.0)
        assert not kent.is_valid()
        assert np.isnan(kent.log_density([0.0, 0.0, 1.0]))
        assert np.all(np.isnan(kent.log_density(np.eye(3))))

    def test_rejects_non_orthonormal_axes(self):
        with pytest.raises(ValueError):
            KentDistribution([0, 0, 1], [1, 1, 0], [0, 1, 0], 10.0, 1.0)

    def test_expectation(self):
        kent = KentDistribution.from_angles(0.3, 0.9, 1.7, 30.0, 10.0)
        ex, exx = kent.compute_expectation()
        x, w = sphere_grid()
        f = w * kent.density(x)
        np.testing.assert_allclose(ex, f @ x, atol=1e-6)
        np.testing.assert_allclose(exx, (f[:, None] * x).T @ x, atol=1e-6)
        assert np.trace(exx) == pytest.approx(1.0)


class TestSampling:

    def test_unit_vectors(self):
        x = KentDistribution.from_angles(0.2, 2.0, 1.0, 15.0, 5.0).generate(500, random_state=1)
        assert x.shape == (500, 3)
        np.testing.assert_allclose(np.linalg.norm(x, axis=1), 1.0)

    @pytest.mark.parametrize("kappa,beta", [(20.0, 6.0), (50.0, 20.0), (200.0, 40.0)])
    def test_canonical_moments(self, kappa, beta):
        kent = KentDistribution.canonical(kappa, beta)
        y = kent.generate(20000, random_state=2)
        const = kent.constants()
        assert np.mean(y[:, 2]) == pytest.approx(np.exp(const.log_ck - const.log_c), abs=5e-3)
        assert np.mean(y[:, 0] ** 2 - y[:, 1] ** 2) == pytest.approx(
            np.exp(const.log_cb - const.log_c), abs=5e-3)

    def test_rotated_mean(self):
        kent = KentDistribution.from_angles(0.5, 1.0, 2.5, 50.0, 10.0)
        x = kent.generate(5000, random_state=3)
        direction = x.mean(axis=0) / np.linalg.norm(x.mean(axis=0))
        assert direction @ kent.mean > 0.999

    def test_fresh_draws(self):
        kent = KentDistribution.canonical(10.0, 2.0)
        rng = np.random.RandomState(4)
        assert not np.allclose(kent.generate(10, rng), kent.generate(10, rng))

    def test_invalid_parameters_cannot_be_sampled(self):
        with pytest.raises(ValueError):
            KentDistribution.canonical(10.0, 6.0).generate(5)


class TestEstimation:

    def test_moment_estimates_recover_parameters(self, kent_sample):
        _, x = kent_sample
        est = compute_moment_estimates(x)
        assert 70 <= est.kappa <= 130
        assert 15 <= est.beta <= 45
        assert est.mean @ [0, 0, 1] > 0.99
        assert abs(est.major_axis @ [1, 0, 0]) > 0.9
        np.testing.assert_allclose(np.cross(est.mean, est.major_axis), est.minor_axis, atol=1e-10)

    def test_weighted_moment_estimates(self, kent_sample):
        _, x = kent_sample
        # doubling every weight leaves the estimates unchanged
        plain = compute_moment_estimates(x)
        weighted = compute_moment_estimates(x, 2 * np.ones(len(x)))
        assert weighted.kappa == pytest.approx(plain.kappa, rel=1e-5)
        assert weighted.beta == pytest.approx(plain.beta, rel=1e-5)

    def test_all_estimators(self, kent_sample):
        _, x = kent_sample
        estimates = compute_all_estimators(x)
        assert len(estimates) == NUM_METHODS
        stats = sufficient_statistics(x)
        msglen = {}
        for method in (MOMENT, MLE, MAP, MML_NEWTON, MML_HALLEY, MML_COMPLETE):
            kent = KentDistribution.from_estimates(estimates[method])
            assert kent.is_valid()
            assert 50 <= kent.kappa <= 150
            msglen[method] = kent.compute_message_length_from_statistics(stats)
            assert np.isfinite(msglen[method])
        nll = {m: KentDistribution.from_estimates(estimates[m]).compute_negative_log_likelihood(x)
               for m in (MOMENT, MLE)}
        assert nll[MLE] <= nll[MOMENT] + 1e-6
        assert msglen[MML_NEWTON] <= msglen[MLE] + 1e-6
        assert msglen[MML_HALLEY] <= msglen[MLE] + 1e-6
        assert msglen[MML_COMPLETE] <= min(msglen[MLE], msglen[MML_HALLEY]) + 1e-6

    def test_data_level_estimators(self, kent_sample):
        _, x = kent_sample
        stats = sufficient_statistics(x)
        mle = KentDistribution.from_estimates(compute_ml_estimates(x))
        mml = KentDistribution.from_estimates(compute_mml_estimates(x, method=MML_NEWTON))
        assert KentDistribution.from_estimates(compute_map_estimates(x)).is_valid()
        assert (mml.compute_message_length_from_statistics(stats)
                <= mle.compute_message_length_from_statistics(stats) + 1e-6)
        with pytest.raises(ValueError):
            compute_mml_estimates(x, method=MOMENT)

    def test_fit_rejects_empty_sample(self):
        with pytest.raises(ValueError):
            compute_moment_estimates(np.empty((0, 3)))

    def test_fit_default_method(self, kent_sample):
        _, x = kent_sample
        fit = KentDistribution.fit(x)
        assert fit.is_valid()
        assert not fit.is_degenerate()


class TestScoring:

    def test_message_length_prefers_truth_over_wrong_axes(self, kent_sample):
        kent, x = kent_sample
        wrong = KentDistribution([0, 0, 1], [0, 1, 0], [-1, 0, 0], KAPPA, BETA)
        assert kent.compute_message_length(x) < wrong.compute_message_length(x)

    def test_negative_log_likelihood_matches_density(self, kent_sample):
        kent, x = kent_sample
        assert kent.compute_negative_log_likelihood(x) == pytest.approx(-np.sum(kent.log_density(x)))

    def test_fisher_information_grows_with_sample_size(self):
        kent = KentDistribution.canonical(KAPPA, BETA)
        # |F| scales as n^5
        assert (kent.compute_log_fisher_information(100) - kent.compute_log_fisher_information(10)
                == pytest.approx(5 * np.log(10)))

    def test_kl_divergence(self):
        f = KentDistribution.canonical(20.0, 5.0)
        g = KentDistribution.from_angles(0.3, 0.2, 0.1, 15.0, 3.0)
        assert f.compute_kl_divergence(f) == pytest.approx(0.0, abs=1e-8)
        kl = f.compute_kl_divergence(g)
        assert kl > 0
        x = f.generate(20000, random_state=5)
        monte_carlo = np.mean(f.log_density(x) - g.log_density(x))
        assert kl == pytest.approx(monte_carlo, abs=0.1)
