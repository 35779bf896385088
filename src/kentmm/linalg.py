import warnings

import numpy as np

from .vector import cartesian2spherical, normalize


def rotate_about_xaxis(theta):
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[1.0, 0.0, 0.0],
                     [0.0, c, -s],
                     [0.0, s, c]])


def rotate_about_yaxis(theta):
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, 0.0, s],
                     [0.0, 1.0, 0.0],
                     [-s, 0.0, c]])


def rotate_about_zaxis(theta):
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, -s, 0.0],
                     [s, c, 0.0],
                     [0.0, 0.0, 1.0]])


def align_zaxis_with_vector(y):
    """Rotation that takes +Z onto the direction of y."""
    _, theta, phi = cartesian2spherical(y)
    return rotate_about_zaxis(phi) @ rotate_about_yaxis(theta)


def align_vector_with_zaxis(y):
    """Rotation that takes the direction of y onto +Z."""
    return align_zaxis_with_vector(y).T


def orthogonal_transformation(psi, alpha, eta):
    """
    Rotation Rz(eta) Ry(alpha) Rz(psi).

    Applied to the canonical frame (major = +X, minor = +Y, mean = +Z) it
    gives the columns (major_axis, minor_axis, mean) of a Kent frame: alpha
    and eta are the polar and azimuthal angles of the mean, psi turns the
    major axis about the mean.
    """
    return rotate_about_zaxis(eta) @ rotate_about_yaxis(alpha) @ rotate_about_zaxis(psi)


def orthogonal_transformation_angles(mean, major_axis):
    """Inverse of orthogonal_transformation; returns (psi, alpha, eta)."""
    _, alpha, eta = cartesian2spherical(mean)
    v = rotate_about_yaxis(alpha).T @ rotate_about_zaxis(eta).T @ np.asarray(major_axis)
    psi = np.arctan2(v[1], v[0])
    return psi, alpha, eta


def frame_from_mean_and_major(mean, major_axis):
    """
    Right handed frame with rows (mean, major_axis, minor_axis).

    The major axis is Gram-Schmidt orthogonalised against the mean.
    """
    mean, _ = normalize(mean)
    major = np.asarray(major_axis, dtype=np.float64)
    major = major - np.dot(major, mean) * mean
    major, norm = normalize(major)
    if not np.isfinite(norm) or norm < 1e-12:
        raise ValueError("major axis is parallel to the mean direction")
    return np.vstack([mean, major, np.cross(mean, major)])


def eigen_decomposition(m, max_iterations=100, tol=1e-15):
    """
    Eigen decomposition of a symmetric matrix by Jacobi rotations.

    Each rotation annihilates the largest off-diagonal element.

    Parameters
    ----------
    m : array-like, shape (n, n)
        Symmetric matrix.
    max_iterations : int, default=100
        Maximum number of rotations.

    Returns
    -------
    eigenvalues : numpy.ndarray, shape (n,)
        In ascending order.
    eigenvectors : numpy.ndarray, shape (n, n)
        Unit eigenvectors as columns, ordered like the eigenvalues.
    """
    a = np.array(m, dtype=np.float64)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"expected a square matrix, got shape {a.shape}")
    if not np.allclose(a, a.T, rtol=1e-10, atol=1e-12):
        raise ValueError("matrix is not symmetric")
    n = a.shape[0]
    v = np.eye(n)
    scale = max(np.abs(a).max(), np.finfo(np.float64).tiny)

    for _ in range(max_iterations):
        off = np.abs(np.triu(a, 1))
        p, q = np.unravel_index(np.argmax(off), off.shape)
        if n < 2 or off[p, q] <= tol * scale:
            break
        theta = (a[q, q] - a[p, p]) / (2 * a[p, q])
        t = np.sign(theta) / (abs(theta) + np.sqrt(theta * theta + 1)) if theta != 0 else 1.0
        c = 1 / np.sqrt(t * t + 1)
        s = t * c
        rotation = np.eye(n)
        rotation[p, p] = c
        rotation[q, q] = c
        rotation[p, q] = s
        rotation[q, p] = -s
        a = rotation.T @ a @ rotation
        v = v @ rotation
    else:
        if n > 1 and np.abs(np.triu(a, 1)).max() > tol * scale:
            warnings.warn("Jacobi eigen decomposition did not converge", RuntimeWarning)

    eigenvalues = np.diag(a).copy()
    order = np.argsort(eigenvalues)
    return eigenvalues[order], v[:, order]


def generate_random_orthogonal_vectors(random_state):
    """
    Uniformly oriented right handed triple (mean, major, minor).

    Parameters
    ----------
    random_state : numpy.random.RandomState
    """
    mean, _ = normalize(random_state.normal(size=3))
    other = random_state.normal(size=3)
    frame = frame_from_mean_and_major(mean, other)
    return frame[0], frame[1], frame[2]
