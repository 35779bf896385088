import numpy as np


def normalize(x):
    """
    Scale vectors to unit length.

    Parameters
    ----------
    x : array-like, shape (3,) or (N, 3)

    Returns
    -------
    unit : numpy.ndarray
        Unit vectors with the shape of `x`.
    norm : float or numpy.ndarray
        Euclidean norm(s) of the input.
    """
    x = np.asarray(x, dtype=np.float64)
    norm = np.linalg.norm(x, axis=-1)
    if x.ndim == 1:
        return x / norm, norm
    return x / norm[:, None], norm


def cartesian2spherical(x):
    """
    Convert cartesian coordinates to (r, theta, phi).

    theta is the angle from +Z in [0, pi] and phi the azimuth measured from
    +X in [0, 2 pi). At the poles phi is 0.
    """
    x = np.asarray(x, dtype=np.float64)
    r = np.linalg.norm(x, axis=-1)
    z = np.clip(x[..., 2] / r, -1.0, 1.0)
    theta = np.arccos(z)
    phi = np.arctan2(x[..., 1], x[..., 0])
    phi = np.where(phi < 0, phi + 2 * np.pi, phi)
    # phi is meaningless at the poles
    phi = np.where(np.abs(np.abs(z) - 1.0) < 1e-15, 0.0, phi)
    if x.ndim == 1:
        return float(r), float(theta), float(phi)
    return r, theta, phi


def cartesian2spherical_pole_xaxis(x):
    """Spherical coordinates with theta measured from +X and phi from +Y."""
    x = np.asarray(x, dtype=np.float64)
    # cyclic relabelling (x, y, z) -> (y, z, x)
    return cartesian2spherical(np.stack([x[..., 1], x[..., 2], x[..., 0]], axis=-1))


def spherical2cartesian(r, theta, phi):
    """Inverse of cartesian2spherical; broadcasts over array arguments."""
    r = np.asarray(r, dtype=np.float64)
    theta = np.asarray(theta, dtype=np.float64)
    phi = np.asarray(phi, dtype=np.float64)
    return np.stack([r * np.sin(theta) * np.cos(phi),
                     r * np.sin(theta) * np.sin(phi),
                     r * np.cos(theta)], axis=-1)


def vector_sum(data, weights=None):
    """
    Weighted resultant of the data.

    Returns
    -------
    sum_x : numpy.ndarray, shape (3,)
    n : float
        Total weight (the effective number of points).
    """
    data = np.asarray(data, dtype=np.float64)
    if weights is None:
        return data.sum(axis=0), float(data.shape[0])
    weights = np.asarray(weights, dtype=np.float64)
    return weights @ data, float(weights.sum())


def dispersion_matrix(data, weights=None):
    """Weighted scatter matrix sum_i w_i x_i x_i^T (not centred)."""
    data = np.asarray(data, dtype=np.float64)
    if weights is None:
        return data.T @ data
    weights = np.asarray(weights, dtype=np.float64)
    return np.einsum('n,ni,nj->ij', weights, data, data)
