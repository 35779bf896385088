"""
Kent (FB5) distribution on the unit sphere.

    f(x) = exp(kappa mean.x + beta [(major.x)^2 - (minor.x)^2]) / c(kappa, beta)

with 0 <= beta < kappa / 2. The log normalisation constant and its partial
derivatives are summed from the Bessel series of Kent (1982) and memoised per
(kappa, beta). Parameters are estimated by moments, maximum likelihood, MAP
and Minimum Message Length (MML).
"""
import functools
import warnings
from collections import namedtuple

import numpy as np
from scipy.optimize import minimize
from scipy.spatial.transform import Rotation
from scipy.special import expit, ive, logit, logsumexp

from .linalg import (eigen_decomposition, frame_from_mean_and_major,
                     orthogonal_transformation)
from .special import (concentrated_legendre, constant_term, log_gamma,
                      log_modified_bessel_first_kind)
from .vector import dispersion_matrix, normalize, vector_sum

MIN_KAPPA = 1e-6
MAX_KAPPA = 1000.0
MIN_ECCENTRICITY = 1e-6
MAX_ECCENTRICITY = 1 - 1e-6
DEGENERATE_BETA = 1e-5
AOM = 1e-3
SERIES_TERMS = 128
MAX_SERIES_TERMS = 4096
# log(1e-16): series terms below this relative size are dropped
SERIES_CUTOFF = -36.8
# width of the rotation about the mean is at most pi
AXIS_INFORMATION_FLOOR = 12 / np.pi ** 2
# uniform prior on rotations modulo the (major, minor) sign flip
LOG_AXES_PRIOR = -np.log(4 * np.pi ** 2)

MOMENT, MLE, MAP, MML_NEWTON, MML_HALLEY, MML_COMPLETE = range(6)
NUM_METHODS = 6
METHOD_NAMES = ("MOMENT", "MLE", "MAP", "MML_NEWTON", "MML_HALLEY", "MML_COMPLETE")

Estimates = namedtuple("Estimates", ["mean", "major_axis", "minor_axis", "kappa", "beta"])
Constants = namedtuple("Constants", ["log_c", "log_ck", "log_cb", "log_ckk", "log_cbb", "log_ckb"])
SufficientStatistics = namedtuple("SufficientStatistics", ["sum_x", "dispersion", "n"])
Moments = namedtuple("Moments", ["y2sq_y3sq", "axis2", "axis3"])

OVERFLOW = Constants(*([np.inf] * 6))


def check_random_state(random_state):
    if isinstance(random_state, np.random.RandomState):
        return random_state
    return np.random.RandomState(random_state)


# ---------- normalisation constant ----------

def _log_series_terms(kappa, beta, n_terms):
    j = np.arange(n_terms, dtype=np.float64)
    nu = 2 * j + 0.5
    log_coef = (log_gamma(j + 0.5) - log_gamma(j + 1)
                + 2 * j * np.log(beta) - nu * np.log(kappa / 2))
    log_i = log_modified_bessel_first_kind(np.concatenate([nu, nu + 1, nu + 2]),
                                           np.full(3 * n_terms, kappa))
    log_i0, log_i1, log_i2 = log_i[:n_terms], log_i[n_terms:2 * n_terms], log_i[2 * n_terms:]

    t = log_coef + log_i0
    tk = log_coef + log_i1
    tkk = log_coef + np.logaddexp(log_i2, log_i1 - np.log(kappa))
    jj = j[1:]
    tb = np.log(2 * jj) - np.log(beta) + t[1:]
    tbb = np.log(2 * jj * (2 * jj - 1)) - 2 * np.log(beta) + t[1:]
    tkb = np.log(2 * jj) - np.log(beta) + tk[1:]
    return t, tk, tb, tkk, tbb, tkb


def _truncated(terms):
    return all(np.isfinite(s.max()) and s[-1] < s.max() + SERIES_CUTOFF for s in terms)


@functools.lru_cache(maxsize=8192)
def _cached_constants(kappa, beta):
    kappa = max(kappa, MIN_KAPPA)
    # c is even in beta; beta = 0 only removes the j >= 1 terms
    beta = max(abs(beta), 1e-12)
    n_terms = SERIES_TERMS
    while True:
        terms = _log_series_terms(kappa, beta, n_terms)
        if any(np.isnan(s).any() for s in terms):
            return OVERFLOW
        if _truncated(terms):
            break
        if n_terms >= MAX_SERIES_TERMS:
            return OVERFLOW
        n_terms *= 2
    log_2pi = np.log(2 * np.pi)
    values = [log_2pi + logsumexp(s) for s in terms]
    if not all(np.isfinite(values)):
        return OVERFLOW
    return Constants(*values)


def log_normalization_constants(kappa, beta):
    """
    Log of the Kent normalisation constant and of its partial derivatives.

        c = 2 pi sum_j G(j+1/2)/G(j+1) beta^2j (kappa/2)^-(2j+1/2) I_(2j+1/2)(kappa)

    Parameters
    ----------
    kappa, beta : float

    Returns
    -------
    Constants
        (log c, log dc/dk, log dc/db, log d2c/dk2, log d2c/db2, log d2c/dkdb).
        Every entry is inf when the series overflows or fails to converge.
    """
    return _cached_constants(float(kappa), float(beta))


def _log_c_hessian(constants):
    """Mean and covariance of (y1, y2^2 - y3^2), i.e. gradient and Hessian of log c."""
    lc = constants.log_c
    e1 = np.exp(constants.log_ck - lc)
    eb = np.exp(constants.log_cb - lc)
    h = np.array([[np.exp(constants.log_ckk - lc) - e1 * e1,
                   np.exp(constants.log_ckb - lc) - e1 * eb],
                  [np.exp(constants.log_ckb - lc) - e1 * eb,
                   np.exp(constants.log_cbb - lc) - eb * eb]])
    return np.array([e1, eb]), h


@functools.lru_cache(maxsize=8192)
def _canonical_moments(kappa, beta):
    """
    Moments needed for the axes block of the Fisher information, by
    quadrature over s = 1 - y1 in the canonical frame.
    """
    scale = min(1.0, 1.0 / max(kappa - 2 * beta, MIN_KAPPA), 1.0 / np.sqrt(max(beta, MIN_KAPPA)))
    s, w = concentrated_legendre(scale)
    t = 1 - s
    rho2 = s * (2 - s)
    b = beta * rho2
    base = w * np.exp(-kappa * s + b)
    i0 = ive(0, b)
    i1 = ive(1, b)
    i1_over_b = np.where(b > 0, i1 / np.where(b > 0, b, 1.0), 0.5)

    z = np.sum(base * 2 * np.pi * i0)
    y2sq = base * rho2 * np.pi * (i0 + i1)
    y3sq = base * rho2 * np.pi * (i0 - i1)
    y2sq_y3sq = np.sum(base * rho2 ** 2 * 0.5 * np.pi * i1_over_b) / z
    axis2 = np.sum(y3sq * (kappa + 2 * beta * t) ** 2) / z
    axis3 = np.sum(y2sq * (kappa - 2 * beta * t) ** 2) / z
    return Moments(y2sq_y3sq, axis2, axis3)


# ---------- scoring helpers shared by the estimators ----------

def log_prior_density(kappa, beta):
    """log h(kappa, beta) = log h(kappa) + log h(beta | kappa) for the scale parameters."""
    # h(kappa) = 4 kappa^2 / (pi (1 + kappa^2)^2), h(beta | kappa) = 2 / kappa
    return np.log(8 * kappa / np.pi) - 2 * np.log1p(kappa * kappa)


def _log_fisher_scale(kappa, beta, n):
    _, h = _log_c_hessian(log_normalization_constants(kappa, beta))
    det = np.linalg.det(h)
    if not det > 0:
        return np.inf
    return 2 * np.log(n) + np.log(det)


def _log_fisher_axes(kappa, beta, n):
    m = _canonical_moments(float(kappa), float(beta))
    diag = n * np.array([16 * beta * beta * m.y2sq_y3sq, m.axis2, m.axis3])
    return float(np.sum(np.log(np.maximum(diag, AXIS_INFORMATION_FLOOR))))


def _parameter_cost(kappa, beta, n):
    """-log prior + 1/2 log |Fisher| in nits, for an effective sample size n."""
    n = max(n, 1.0)
    log_fisher = _log_fisher_scale(kappa, beta, n) + _log_fisher_axes(kappa, beta, n)
    return -log_prior_density(kappa, beta) - LOG_AXES_PRIOR + 0.5 * log_fisher


def _nll_from_statistics(stats, frame, kappa, beta):
    constants = log_normalization_constants(kappa, beta)
    mean, major, minor = frame
    r2 = major @ stats.dispersion @ major - minor @ stats.dispersion @ minor
    return stats.n * constants.log_c - kappa * (mean @ stats.sum_x) - beta * r2


def sufficient_statistics(data, weights=None):
    """Weighted resultant, scatter matrix and total weight of the data."""
    data = np.asarray(data, dtype=np.float64)
    if data.ndim != 2 or data.shape[1] != 3:
        raise ValueError(f"expected directions of shape (N, 3), got {data.shape}")
    if weights is not None and len(weights) != data.shape[0]:
        raise ValueError(f"{len(weights)} weights for {data.shape[0]} data points")
    sum_x, n = vector_sum(data, weights)
    return SufficientStatistics(sum_x, dispersion_matrix(data, weights), n)


# ---------- estimators ----------

def _moment_axes(stats):
    mean, norm = normalize(stats.sum_x)
    if not norm > 0:
        mean = np.array([0.0, 0.0, 1.0])
    # any orthonormal pair spanning the plane normal to the mean
    basis = frame_from_mean_and_major(mean, np.eye(3)[np.argmin(np.abs(mean))])[1:]
    projected = basis @ stats.dispersion @ basis.T
    _, vectors = eigen_decomposition(projected)
    # positive beta spreads the data along the major axis
    major = basis.T @ vectors[:, -1]
    return frame_from_mean_and_major(mean, major)


def _clip_scale(kappa, beta, max_kappa):
    kappa = min(max(kappa, MIN_KAPPA), max_kappa)
    beta = min(max(beta, 0.0), 0.5 * kappa * MAX_ECCENTRICITY)
    return kappa, beta


def _kent_approximation(r1, r2, max_kappa):
    """Large-concentration approximation of Kent (1982) to the moment equations."""
    a = max(2 - 2 * r1 - r2, 1 / max_kappa)
    b = max(2 - 2 * r1 + r2, 1 / max_kappa)
    return _clip_scale(1 / a + 1 / b, 0.5 * (1 / a - 1 / b), max_kappa)


def _solve_moment_equations(r1, r2, max_kappa):
    """
    Solve E[y1] = r1, E[y2^2 - y3^2] = r2 by minimising the convex potential
    log c - kappa r1 - beta r2 under 0 <= 2 beta <= kappa <= max_kappa.
    """
    def potential(p):
        constants = log_normalization_constants(p[0], p[1])
        if not np.isfinite(constants.log_c):
            return 1e300, np.zeros(2)
        grad, _ = _log_c_hessian(constants)
        value = constants.log_c - p[0] * r1 - p[1] * r2
        return value, grad - np.array([r1, r2])

    x0 = np.array(_kent_approximation(r1, r2, max_kappa))
    result = minimize(potential, x0, jac=True, method="SLSQP",
                      bounds=[(MIN_KAPPA, max_kappa), (0.0, 0.5 * max_kappa)],
                      constraints=[{"type": "ineq",
                                    "fun": lambda p: p[0] - 2 * p[1],
                                    "jac": lambda p: np.array([1.0, -2.0])}],
                      options={"maxiter": 200, "ftol": 1e-12})
    best = result.x if np.isfinite(result.fun) else x0
    if not result.success:
        warnings.warn(f"moment equations did not converge: {result.message}", RuntimeWarning)
        if potential(x0)[0] < potential(best)[0]:
            best = x0
    return _clip_scale(best[0], best[1], max_kappa)


def _estimates(frame, kappa, beta):
    return Estimates(frame[0].copy(), frame[1].copy(), frame[2].copy(), float(kappa), float(beta))


def compute_moment_estimates_from_statistics(stats, max_kappa=MAX_KAPPA):
    if not stats.n > 0:
        raise ValueError("cannot estimate parameters from an empty sample")
    frame = _moment_axes(stats)
    r1 = frame[0] @ stats.sum_x / stats.n
    r2 = (frame[1] @ stats.dispersion @ frame[1] - frame[2] @ stats.dispersion @ frame[2]) / stats.n
    kappa, beta = _solve_moment_equations(r1, r2, max_kappa)
    return _estimates(frame, kappa, beta)


def compute_moment_estimates(data, weights=None, max_kappa=MAX_KAPPA):
    """
    Moment estimates of the Kent parameters.

    The mean is the direction of the resultant; the major and minor axes are
    the principal directions of the scatter matrix projected onto the plane
    normal to the mean; kappa and beta solve the moment equations.

    Parameters
    ----------
    data : array-like, shape (N, 3)
        Unit vectors.
    weights : array-like, shape (N,), optional
        Non-negative per-point weights (default 1).
    max_kappa : float, default=MAX_KAPPA
        Upper bound on the concentration.

    Returns
    -------
    Estimates
    """
    return compute_moment_estimates_from_statistics(sufficient_statistics(data, weights), max_kappa)


def _unpack(p, frame0):
    rotated = frame0.T @ Rotation.from_rotvec(p[:3]).as_matrix()
    kappa = MIN_KAPPA + np.exp(p[3])
    beta = 0.5 * kappa * expit(p[4])
    return rotated.T, kappa, beta


def _pack_scale(kappa, beta):
    ecc = np.clip(2 * beta / kappa, MIN_ECCENTRICITY, MAX_ECCENTRICITY)
    return np.log(max(kappa - MIN_KAPPA, 1e-12)), logit(ecc)


def _objective(stats, penalised):
    """
    Negative log-likelihood (penalised=None), MAP or MML objective in nits.
    """
    def f(kappa, beta, frame):
        value = _nll_from_statistics(stats, frame, kappa, beta)
        if penalised == "map":
            value -= log_prior_density(kappa, beta)
        elif penalised == "mml":
            value += _parameter_cost(kappa, beta, stats.n)
        return value
    return f


def _optimize_full(stats, start, f, max_kappa, maxiter=200):
    """L-BFGS-B over body-frame rotations, log kappa and logit eccentricity."""
    frame0 = np.vstack([start.mean, start.major_axis, start.minor_axis])

    def fun(p):
        frame, kappa, beta = _unpack(p, frame0)
        value = f(kappa, beta, frame)
        return value if np.isfinite(value) else 1e300

    u0, v0 = _pack_scale(start.kappa, start.beta)
    bounds = [(None, None)] * 3 + [(np.log(MIN_KAPPA), np.log(max_kappa - MIN_KAPPA)),
                                   (logit(MIN_ECCENTRICITY), logit(MAX_ECCENTRICITY))]
    p0 = np.array([0.0, 0.0, 0.0, u0, v0])
    p0[3] = np.clip(p0[3], bounds[3][0], bounds[3][1])
    result = minimize(fun, p0, method="L-BFGS-B", bounds=bounds,
                      options={"maxiter": maxiter})
    if result.fun > fun(p0):
        result.x = p0
    elif not result.success:
        warnings.warn(f"optimisation did not converge: {result.message}", RuntimeWarning)
    frame, kappa, beta = _unpack(result.x, frame0)
    return _estimates(frame, kappa, beta)


def _optimize_axes(stats, start, kappa, beta, maxiter=100):
    """Re-orient the frame for fixed (kappa, beta)."""
    frame0 = np.vstack([start.mean, start.major_axis, start.minor_axis])

    def fun(p):
        frame = (frame0.T @ Rotation.from_rotvec(p).as_matrix()).T
        return _nll_from_statistics(stats, frame, kappa, beta)

    if not np.isfinite(fun(np.zeros(3))):
        return _estimates(frame0, kappa, beta)
    result = minimize(fun, np.zeros(3), method="L-BFGS-B", options={"maxiter": maxiter})
    p = result.x if result.fun <= fun(np.zeros(3)) else np.zeros(3)
    frame = (frame0.T @ Rotation.from_rotvec(p).as_matrix()).T
    return _estimates(frame, kappa, beta)


def compute_ml_estimates_from_statistics(stats, start=None, max_kappa=MAX_KAPPA):
    if start is None:
        start = compute_moment_estimates_from_statistics(stats, max_kappa)
    return _optimize_full(stats, start, _objective(stats, None), max_kappa)


def compute_map_estimates_from_statistics(stats, start=None, max_kappa=MAX_KAPPA):
    if start is None:
        start = compute_moment_estimates_from_statistics(stats, max_kappa)
    return _optimize_full(stats, start, _objective(stats, "map"), max_kappa)


def _penalty_derivatives(kappa, beta, n):
    """Gradient and Hessian of the MML parameter cost by central differences."""
    h = 1e-4 * max(kappa, 1.0)
    # keep the stencil at kappa > 0, beta >= 0
    kappa = max(kappa, 2 * h)
    beta = max(beta, h)
    f = lambda k, b: _parameter_cost(k, b, n)
    f0 = f(kappa, beta)
    fkp, fkm = f(kappa + h, beta), f(kappa - h, beta)
    fbp, fbm = f(kappa, beta + h), f(kappa, beta - h)
    fpp, fpm = f(kappa + h, beta + h), f(kappa + h, beta - h)
    fmp, fmm = f(kappa - h, beta + h), f(kappa - h, beta - h)
    grad = np.array([fkp - fkm, fbp - fbm]) / (2 * h)
    hess = np.array([[fkp - 2 * f0 + fkm, (fpp - fpm - fmp + fmm) / 4],
                     [(fpp - fpm - fmp + fmm) / 4, fbp - 2 * f0 + fbm]]) / (h * h)
    return grad, hess


def _positive_definite(h):
    eigenvalues = np.linalg.eigvalsh(h)
    if eigenvalues[0] > 0:
        return h
    return h + (abs(eigenvalues[0]) + 1e-8 * max(abs(eigenvalues[-1]), 1.0)) * np.eye(len(h))


def _refine_scale(stats, start, halley, max_kappa, max_iter=50, tol=1e-10):
    """
    Newton (or Halley) iterations for (kappa, beta) on the MML objective with
    the axes of `start` held fixed. The best iterate is returned.
    """
    frame = np.vstack([start.mean, start.major_axis, start.minor_axis])
    r1 = frame[0] @ stats.sum_x
    r2 = frame[1] @ stats.dispersion @ frame[1] - frame[2] @ stats.dispersion @ frame[2]
    n = stats.n

    def objective(theta):
        constants = log_normalization_constants(theta[0], theta[1])
        return (n * constants.log_c - theta[0] * r1 - theta[1] * r2
                + _parameter_cost(theta[0], theta[1], n))

    def derivatives(theta):
        mean_stat, cov = _log_c_hessian(log_normalization_constants(theta[0], theta[1]))
        pg, ph = _penalty_derivatives(theta[0], theta[1], n)
        return n * mean_stat - np.array([r1, r2]) + pg, n * cov + ph

    def clip(theta):
        return np.array(_clip_scale(theta[0], theta[1], max_kappa))

    theta = clip(np.array([start.kappa, start.beta]))
    value = objective(theta)
    for _ in range(max_iter):
        if not np.isfinite(value):
            break
        g, h = derivatives(theta)
        if not (np.all(np.isfinite(g)) and np.all(np.isfinite(h))):
            break
        step = -np.linalg.solve(_positive_definite(h), g)
        if halley:
            _, h_next = derivatives(clip(theta + step))
            if np.all(np.isfinite(h_next)):
                corrected = h + 0.5 * (h_next - h)
                step = -np.linalg.solve(_positive_definite(corrected), g)
        scale = 1.0
        while scale > 1e-8:
            candidate = clip(theta + scale * step)
            candidate_value = objective(candidate)
            if candidate_value < value:
                break
            scale *= 0.5
        else:
            break
        improvement = value - candidate_value
        theta, value = candidate, candidate_value
        if improvement <= tol * abs(value):
            break
    else:
        warnings.warn(f"{'Halley' if halley else 'Newton'} refinement reached {max_iter} "
                      "iterations", RuntimeWarning)
    return _optimize_axes(stats, start, theta[0], theta[1])


def compute_mml_estimates_from_statistics(stats, method=MML_HALLEY, start=None, max_kappa=MAX_KAPPA):
    """
    MML estimates for one of the methods MML_NEWTON, MML_HALLEY, MML_COMPLETE.

    `start` is the maximum likelihood estimate; it is computed when omitted.
    """
    if method not in (MML_NEWTON, MML_HALLEY, MML_COMPLETE):
        raise ValueError(f"not an MML estimation method: {method}")
    if start is None:
        start = compute_ml_estimates_from_statistics(stats, max_kappa=max_kappa)
    if method == MML_COMPLETE:
        return _optimize_full(stats, start, _objective(stats, "mml"), max_kappa)
    return _refine_scale(stats, start, method == MML_HALLEY, max_kappa)


def compute_ml_estimates(data, weights=None, max_kappa=MAX_KAPPA):
    """Maximum likelihood estimates, started from the moment estimates."""
    return compute_ml_estimates_from_statistics(sufficient_statistics(data, weights),
                                                max_kappa=max_kappa)


def compute_map_estimates(data, weights=None, max_kappa=MAX_KAPPA):
    return compute_map_estimates_from_statistics(sufficient_statistics(data, weights),
                                                 max_kappa=max_kappa)


def compute_mml_estimates(data, weights=None, method=MML_HALLEY, max_kappa=MAX_KAPPA):
    return compute_mml_estimates_from_statistics(sufficient_statistics(data, weights), method,
                                                 max_kappa=max_kappa)


def compute_all_estimators_from_statistics(stats, max_kappa=MAX_KAPPA, verbose=False):
    estimates = [None] * NUM_METHODS
    estimates[MOMENT] = compute_moment_estimates_from_statistics(stats, max_kappa)
    estimates[MLE] = compute_ml_estimates_from_statistics(stats, estimates[MOMENT], max_kappa)
    estimates[MAP] = compute_map_estimates_from_statistics(stats, estimates[MLE], max_kappa)
    estimates[MML_NEWTON] = compute_mml_estimates_from_statistics(
        stats, MML_NEWTON, estimates[MLE], max_kappa)
    estimates[MML_HALLEY] = compute_mml_estimates_from_statistics(
        stats, MML_HALLEY, estimates[MLE], max_kappa)
    mml = _objective(stats, "mml")
    start = min((estimates[MLE], estimates[MML_HALLEY]),
                key=lambda e: mml(e.kappa, e.beta, np.vstack(e[:3])))
    estimates[MML_COMPLETE] = compute_mml_estimates_from_statistics(
        stats, MML_COMPLETE, start, max_kappa)
    if verbose:
        for name, e in zip(METHOD_NAMES, estimates):
            print(f"{name:>12}: kappa {e.kappa:.4f} beta {e.beta:.4f} "
                  f"msglen {KentDistribution.from_estimates(e).compute_message_length_from_statistics(stats):.4f}")
    return estimates


def compute_all_estimators(data, weights=None, max_kappa=MAX_KAPPA, verbose=False):
    """
    Run every estimation method on weighted data.

    Returns
    -------
    list of Estimates
        Indexed by MOMENT, MLE, MAP, MML_NEWTON, MML_HALLEY, MML_COMPLETE.
    """
    return compute_all_estimators_from_statistics(sufficient_statistics(data, weights),
                                                  max_kappa, verbose)


# ---------- distribution ----------

class KentDistribution:
    """
    Kent (FB5) distribution.

    Parameters
    ----------
    mean, major_axis, minor_axis : array-like, shape (3,)
        Orthonormal, right handed frame (minor_axis = mean x major_axis).
    kappa : float
        Concentration, kappa >= 0.
    beta : float
        Ovalness, 0 <= beta < kappa / 2.

    Example
    -------
    >>> kent = KentDistribution.canonical(kappa=100, beta=30)
    >>> x = kent.generate(1000, random_state=0)
    >>> fit = KentDistribution.fit(x)
    """

    def __init__(self, mean, major_axis, minor_axis, kappa, beta):
        axes = np.vstack([np.asarray(mean, dtype=np.float64),
                          np.asarray(major_axis, dtype=np.float64),
                          np.asarray(minor_axis, dtype=np.float64)])
        if axes.shape != (3, 3):
            raise ValueError("mean, major_axis and minor_axis must be 3-vectors")
        if not np.allclose(axes @ axes.T, np.eye(3), atol=1e-6):
            raise ValueError("mean, major_axis and minor_axis are not orthonormal")
        self.axes = axes
        self.kappa = float(kappa)
        self.beta = float(beta)

    @classmethod
    def canonical(cls, kappa, beta):
        """mean = +Z, major_axis = +X, minor_axis = +Y."""
        return cls([0, 0, 1], [1, 0, 0], [0, 1, 0], kappa, beta)

    @classmethod
    def from_angles(cls, psi, alpha, eta, kappa, beta):
        """Frame obtained by rotating the canonical frame with orthogonal_transformation."""
        rotation = orthogonal_transformation(psi, alpha, eta)
        return cls(rotation[:, 2], rotation[:, 0], rotation[:, 1], kappa, beta)

    @classmethod
    def from_estimates(cls, estimates):
        return cls(estimates.mean, estimates.major_axis, estimates.minor_axis,
                   estimates.kappa, estimates.beta)

    @classmethod
    def fit(cls, data, weights=None, method=MML_HALLEY, max_kappa=MAX_KAPPA):
        """Estimate a distribution from data with one of the estimation methods."""
        if method == MOMENT:
            estimates = compute_moment_estimates(data, weights, max_kappa)
        elif method == MLE:
            estimates = compute_ml_estimates(data, weights, max_kappa)
        elif method == MAP:
            estimates = compute_map_estimates(data, weights, max_kappa)
        else:
            estimates = compute_mml_estimates(data, weights, method, max_kappa)
        return cls.from_estimates(estimates)

    @property
    def mean(self):
        return self.axes[0]

    @property
    def major_axis(self):
        return self.axes[1]

    @property
    def minor_axis(self):
        return self.axes[2]

    def estimates(self):
        return _estimates(self.axes, self.kappa, self.beta)

    def eccentricity(self):
        return 2 * self.beta / self.kappa if self.kappa > 0 else 0.0

    def is_valid(self):
        return self.kappa >= 0 and 0 <= self.beta < 0.5 * self.kappa

    def is_degenerate(self):
        """beta so small that the distribution is effectively von Mises-Fisher."""
        return self.beta <= DEGENERATE_BETA

    def constants(self):
        return log_normalization_constants(self.kappa, self.beta)

    def compute_log_normalization_constant(self):
        """log c(kappa, beta); inf signals overflow of the series."""
        return self.constants().log_c

    def log_density(self, x):
        """
        Log density at unit vector(s) x, shape (3,) or (N, 3).

        nan for invalid parameters; -inf where the normalisation constant
        overflowed.
        """
        x = np.asarray(x, dtype=np.float64)
        if not self.is_valid():
            return np.full(x.shape[:-1], np.nan) if x.ndim > 1 else np.nan
        y = x @ self.axes.T
        exponent = self.kappa * y[..., 0] + self.beta * (y[..., 1] ** 2 - y[..., 2] ** 2)
        return exponent - self.compute_log_normalization_constant()

    def density(self, x):
        return np.exp(self.log_density(x))

    def compute_expectation(self):
        """
        First and second moments E[x] (3,) and E[x x^T] (3, 3).
        """
        constants = self.constants()
        (e1, eb), _ = _log_c_hessian(constants)
        e11 = np.exp(constants.log_ckk - constants.log_c)
        e22 = 0.5 * (1 - e11 + eb)
        e33 = 0.5 * (1 - e11 - eb)
        return e1 * self.mean, self.axes.T @ np.diag([e11, e22, e33]) @ self.axes

    def generate_canonical(self, n, random_state=None):
        """
        n samples with mean +Z, major axis +X and minor axis +Y, returned as
        canonical coordinates (y1 along the mean, y2 major, y3 minor).
        """
        rng = check_random_state(random_state)
        kappa, beta = self.kappa, self.beta
        rate = kappa - 2 * beta
        s = np.empty(0)
        while s.size < n:
            batch = min(max(2 * (n - s.size), 64), 1000000)
            u = rng.uniform(size=batch)
            if rate > 1e-8:
                proposal = -np.log1p(-u * -np.expm1(-2 * rate)) / rate
            else:
                proposal = 2 * u
            # target/envelope = exp(-beta s^2) exp(-b) I0(b), b = beta s (2 - s)
            accept = np.exp(-beta * proposal ** 2) * ive(0, beta * proposal * (2 - proposal))
            s = np.concatenate([s, proposal[rng.uniform(size=batch) < accept]])
        s = s[:n]
        b = beta * s * (2 - s)
        # phi | s is proportional to exp(b cos 2 phi)
        doubled = rng.vonmises(0.0, np.maximum(b, 1e-12))
        phi = 0.5 * doubled + np.pi * rng.randint(0, 2, size=n)
        rho = np.sqrt(s * (2 - s))
        return np.column_stack([1 - s, rho * np.cos(phi), rho * np.sin(phi)])

    def generate(self, n, random_state=None):
        """
        Draw n independent samples.

        The colatitude about the mean is drawn by rejection against a
        truncated exponential envelope, the azimuth from the conditional von
        Mises law of its double angle; both are then rotated into this frame.

        Returns
        -------
        numpy.ndarray, shape (n, 3)
        """
        if not self.is_valid():
            raise ValueError(f"cannot sample from invalid parameters kappa={self.kappa}, beta={self.beta}")
        return self.generate_canonical(n, random_state) @ self.axes

    # ---------- scoring ----------

    def compute_negative_log_likelihood_from_statistics(self, stats):
        return _nll_from_statistics(stats, self.axes, self.kappa, self.beta)

    def compute_negative_log_likelihood(self, data, weights=None):
        """Weighted negative log-likelihood in nits."""
        return self.compute_negative_log_likelihood_from_statistics(sufficient_statistics(data, weights))

    def compute_log_prior_probability(self):
        """log prior density of (kappa, beta) and the axes."""
        return log_prior_density(self.kappa, self.beta) + LOG_AXES_PRIOR

    def compute_log_fisher_scale(self, n=1.0):
        return _log_fisher_scale(self.kappa, self.beta, max(n, 1.0))

    def compute_log_fisher_axes(self, n=1.0):
        return _log_fisher_axes(self.kappa, self.beta, max(n, 1.0))

    def compute_log_fisher_information(self, n=1.0):
        """log determinant of the Fisher information for n observations."""
        return self.compute_log_fisher_scale(n) + self.compute_log_fisher_axes(n)

    def compute_parameter_cost(self, n):
        """Cost of stating the parameters to the precision warranted by n points, in nits."""
        return _parameter_cost(self.kappa, self.beta, n)

    def compute_message_length_from_statistics(self, stats, aom=AOM):
        nits = (self.compute_parameter_cost(stats.n) + constant_term(5)
                + self.compute_negative_log_likelihood_from_statistics(stats)
                - 2 * stats.n * np.log(aom))
        return nits / np.log(2)

    def compute_message_length(self, data, weights=None, aom=AOM):
        """Two-part message length of the data, in bits."""
        return self.compute_message_length_from_statistics(sufficient_statistics(data, weights), aom)

    def compute_kl_divergence(self, other):
        """KL(self || other) in nits, exact from the first two moments."""
        ex, exx = self.compute_expectation()

        def expected_exponent(kent):
            return (kent.kappa * kent.mean @ ex
                    + kent.beta * (kent.major_axis @ exx @ kent.major_axis
                                   - kent.minor_axis @ exx @ kent.minor_axis))

        return (other.compute_log_normalization_constant() - self.compute_log_normalization_constant()
                + expected_exponent(self) - expected_exponent(other))

    def format_parameters(self):
        return (f"[mu]: {np.array2string(self.mean, precision=4)} "
                f"[major]: {np.array2string(self.major_axis, precision=4)} "
                f"[kappa]: {self.kappa:.4f} [beta]: {self.beta:.4f}")

    def __repr__(self):
        return (f"KentDistribution(mean={self.mean.tolist()}, major_axis={self.major_axis.tolist()}, "
                f"minor_axis={self.minor_axis.tolist()}, kappa={self.kappa}, beta={self.beta})")
