import numpy as np
from scipy.special import gammaln, ive, logsumexp


def log_gamma(x):
    """log Gamma(x) for x > 0; elementwise on arrays."""
    return gammaln(x)


def _log_bessel_series(alpha, x, n_terms):
    """
    log I_alpha(x) from the ascending series
    sum_m (x/2)^(2m+alpha) / (m! Gamma(m+alpha+1)), summed in log space.
    """
    m = np.arange(n_terms, dtype=np.float64)[:, None]
    log_terms = ((2 * m + alpha[None, :]) * np.log(x[None, :] / 2)
                 - gammaln(m + 1) - gammaln(m + alpha[None, :] + 1))
    return logsumexp(log_terms, axis=0)


def log_modified_bessel_first_kind(alpha, x):
    """
    Logarithm of the modified Bessel function of the first kind I_alpha(x).

    The exponentially scaled scipy routine is used where it is representable;
    entries that underflow (large order, small argument) are summed from the
    power series in log space. Overflow of the series yields inf.

    Parameters
    ----------
    alpha : float or array-like
        Order(s), alpha >= 0.
    x : float or array-like
        Argument(s), x >= 0. Broadcast against alpha.

    Returns
    -------
    float or numpy.ndarray
        log I_alpha(x). -inf where I_alpha(x) = 0 (x = 0, alpha > 0).
    """
    alpha, x = np.broadcast_arrays(np.asarray(alpha, dtype=np.float64),
                                   np.asarray(x, dtype=np.float64))
    scalar = alpha.ndim == 0
    alpha = np.atleast_1d(alpha).astype(np.float64)
    x = np.atleast_1d(x).astype(np.float64)

    with np.errstate(divide='ignore'):
        result = np.log(ive(alpha, x)) + x
    zero = x == 0
    result[zero] = np.where(alpha[zero] == 0, 0.0, -np.inf)

    bad = ~np.isfinite(result) & ~zero
    if np.any(bad):
        n_terms = int(2 * np.max(x[bad])) + 100
        result[bad] = _log_bessel_series(alpha[bad], x[bad], n_terms)
        result[bad & np.isnan(result)] = np.inf
    if scalar:
        return float(result[0])
    return result


def log_surface_area_sphere(d):
    """Log of the surface area of the unit sphere embedded in R^d."""
    return np.log(2.0) + 0.5 * d * np.log(np.pi) - gammaln(0.5 * d)


def constant_term(d):
    """
    Lattice quantisation constant for d continuous parameters, using the
    approximation to the optimal quantising lattice of Wallace (2005, p.257).
    """
    return -0.5 * d * np.log(2 * np.pi) + 0.5 * np.log(d * np.pi)


def concentrated_legendre(scale, order=20, upper=2.0):
    """
    Composite Gauss-Legendre rule on [0, upper] for integrands concentrated
    near 0 on the length `scale`.

    The first panel has width scale/8 and every following panel doubles in
    width, so the rule resolves exp(-s/scale) for any scale <= upper.

    Returns
    -------
    nodes, weights : numpy.ndarray
    """
    x, w = np.polynomial.legendre.leggauss(order)
    width = min(scale, upper) / 8.0
    edges = [0.0]
    while edges[-1] + width < upper:
        edges.append(edges[-1] + width)
        width *= 2
    edges.append(upper)
    edges = np.asarray(edges)
    lo = edges[:-1, None]
    half = 0.5 * (edges[1:] - edges[:-1])[:, None]
    nodes = lo + half * (x[None, :] + 1)
    weights = half * w[None, :]
    return nodes.ravel(), weights.ravel()
