import re
import warnings

import numpy as np

from .core import KentMixture
from .kent import MAX_KAPPA, MML_HALLEY, KentDistribution, check_random_state
from .linalg import frame_from_mean_and_major, generate_random_orthogonal_vectors
from .vector import normalize

_NUMBER = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")


def _default_major(mean):
    return np.eye(3)[np.argmin(np.abs(mean))]


def parse_mixture_line(line):
    """
    Parse one component line of a mixture file.

    Any punctuation or whitespace separates the numbers. Accepted layouts:
    5 numbers (weight, mean, kappa) for a von Mises-Fisher component,
    6 numbers (weight, mean, kappa, beta) and
    9 numbers (weight, mean, major axis, kappa, beta).

    Returns
    -------
    weight : float
    component : KentDistribution
    """
    numbers = [float(x) for x in _NUMBER.findall(line)]
    if len(numbers) == 5:
        weight, mean, kappa, beta, major = numbers[0], numbers[1:4], numbers[4], 0.0, None
    elif len(numbers) == 6:
        weight, mean, kappa, beta, major = numbers[0], numbers[1:4], numbers[4], numbers[5], None
    elif len(numbers) == 9:
        weight, mean, major, kappa, beta = numbers[0], numbers[1:4], numbers[4:7], numbers[7], numbers[8]
    else:
        raise ValueError(f"expected 5, 6 or 9 numbers, found {len(numbers)}")
    if weight <= 0 or kappa < 0 or beta < 0:
        raise ValueError(f"invalid weight {weight}, kappa {kappa} or beta {beta}")
    if not 2 * beta < kappa:
        raise ValueError(f"beta {beta} must be below kappa / 2 = {kappa / 2}")
    mean, norm = normalize(mean)
    if not norm > 0:
        raise ValueError("mean direction is the zero vector")
    frame = frame_from_mean_and_major(mean, _default_major(mean) if major is None else major)
    return weight, KentDistribution(frame[0], frame[1], frame[2], kappa, beta)


def load_mixture_file(path):
    """
    Read a mixture file, one component per line.

    Returns
    -------
    weights : numpy.ndarray
        Renormalised to sum to one.
    components : list of KentDistribution
    """
    weights, components = [], []
    with open(path, "r") as f:
        for lineno, line in enumerate(f, 1):
            if not line.strip():
                continue
            try:
                weight, component = parse_mixture_line(line)
            except ValueError as e:
                raise ValueError(f"{path}:{lineno}: {e}") from e
            weights.append(weight)
            components.append(component)
    if not components:
        raise ValueError(f"{path}: no components")
    weights = np.asarray(weights)
    return weights / weights.sum(), components


def format_component(weight, component, reduced=False):
    def vec(v):
        return "(" + ", ".join(f"{x:.6f}" for x in v) + ")"
    if reduced:
        return f"{weight:.6f}\t[mu]: {vec(component.mean)}\t[kappa]: {component.kappa:.6f}"
    return (f"{weight:.6f}\t[mu]: {vec(component.mean)}\t[major]: {vec(component.major_axis)}"
            f"\t[kappa]: {component.kappa:.6f}\t[beta]: {component.beta:.6f}")


def write_mixture_file(path, weights, components, reduced=False):
    """
    Write a mixture file readable by load_mixture_file. `reduced` writes the
    von Mises-Fisher layout (weight, mean, kappa).
    """
    with open(path, "w") as f:
        for weight, component in zip(weights, components):
            f.write(format_component(weight, component, reduced) + "\n")


def generate_from_simplex(K, random_state=None):
    """Weights drawn uniformly from the K-simplex."""
    rng = check_random_state(random_state)
    x = rng.exponential(size=K)
    return x / x.sum()


def generate_random_components(K, max_kappa=MAX_KAPPA, random_state=None):
    """K Kent components with uniform orientation, kappa in [1, max_kappa] and beta in [0, kappa/2)."""
    rng = check_random_state(random_state)
    components = []
    for _ in range(K):
        mean, major, minor = generate_random_orthogonal_vectors(rng)
        kappa = rng.uniform(1, max_kappa)
        beta = rng.uniform(0, 0.5 * kappa)
        components.append(KentDistribution(mean, major, minor, kappa, beta))
    return components


def generate_random_mixture(K, max_kappa=MAX_KAPPA, random_state=None, **config):
    rng = check_random_state(random_state)
    return KentMixture.from_components(generate_random_components(K, max_kappa, rng),
                                       generate_from_simplex(K, rng), **config)


def estimate_with_retries(kent, sample_size, max_attempts=10, method=MML_HALLEY, random_state=None):
    """
    Draw a sample from `kent` and estimate it, redrawing while the estimate
    is degenerate (beta ~ 0) or non-finite.

    Redrawn samples are discarded, so statistics over the accepted fits are
    conditional on a non-degenerate estimate.

    Returns
    -------
    (data, KentDistribution) or None
        None once `max_attempts` samples have been rejected.
    """
    rng = check_random_state(random_state)
    for _ in range(max_attempts):
        data = kent.generate(sample_size, rng)
        fit = KentDistribution.fit(data, method=method)
        if not fit.is_degenerate() and np.isfinite(fit.compute_log_normalization_constant()):
            return data, fit
    warnings.warn(f"{max_attempts} samples gave degenerate estimates", RuntimeWarning)
    return None


def fit_with_attempts(data, n_components, n_attempts, data_weights=None, verbose=False, **config):
    """
    Fit a mixture from several random initialisations and keep the one with
    the smallest message length.
    """
    seed = config.pop("seed", None)
    models = []
    msglen = np.empty(n_attempts)
    for i in range(n_attempts):
        model = KentMixture.from_data(data, n_components, data_weights=data_weights,
                                      seed=None if seed is None else seed + i, **config)
        msglen[i] = model.estimate_parameters()
        models.append(model)
        if verbose:
            print(i + 1, msglen[i])
    if np.all(np.isinf(msglen)):
        warnings.warn("every attempt failed to fit", RuntimeWarning)
        return models[0]
    return models[np.nanargmin(msglen)]


def component_scan(data, components, n_attempts=5, data_weights=None, verbose=True, **config):
    """
    Scan through different numbers of components by fitting multiple attempts
    of the mixture and returning the message length, AIC and BIC of the best
    attempt for each.

    Parameters
    ----------
    data : array-like, shape (n_samples, 3)
        Unit vectors.
    components : array-like
        A list or array of component counts to test.
    n_attempts : int, default=5
        Number of random initializations to try for each component count.

    Returns
    -------
    msglen : numpy.ndarray
        Best (minimum) message length in bits for each component count.
    aic : numpy.ndarray
        AIC (bits) of the best model.
    bic : numpy.ndarray
        BIC (bits) of the best model.
    """
    n_comp = len(components)
    msglen = np.empty(n_comp)
    aic = np.empty(n_comp)
    bic = np.empty(n_comp)
    for i, comp in enumerate(components):
        # no need for more than 1 attempt for components=1
        attempts = 1 if comp == 1 else n_attempts
        model = fit_with_attempts(data, comp, attempts, data_weights=data_weights, **config)
        msglen[i] = model.get_minimum_message_length()
        aic[i] = model.compute_aic_2()
        bic[i] = model.compute_bic_2()
        if verbose:
            print(f"Components: {comp}, message length: {msglen[i]:.3f} bits, "
                  f"AIC: {aic[i]:.3f}, BIC: {bic[i]:.3f}")
    return msglen, aic, bic
