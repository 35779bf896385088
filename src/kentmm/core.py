import warnings

import numpy as np
import torch

from .kent import (AOM, MAX_KAPPA, KentDistribution, SufficientStatistics,
                   check_random_state, compute_all_estimators_from_statistics,
                   compute_ml_estimates_from_statistics, compute_moment_estimates_from_statistics)
from .linalg import frame_from_mean_and_major
from .special import constant_term, log_gamma

MAX_COMPONENTS = 100
IMPROVEMENT_RATE = 0.001
MIN_ITER = 10
# floor for weights and for the residual mass left after removing a component
RESIDUAL_FLOOR = 1e-10
# concentration of the diffuse component given to a component with no data
FALLBACK_KAPPA = 1.0


# TorchScript-compiled function for batched log-PDF computation.
@torch.jit.script
def batched_kent_ln_pdf(data: torch.Tensor, axes: torch.Tensor,
                        kappas: torch.Tensor, betas: torch.Tensor,
                        log_norm: torch.Tensor) -> torch.Tensor:
    """
    Compute the Kent log-PDF of every sample under every component.

    Parameters
    ----------
    data : Tensor of shape (n_samples, 3)
        Unit vectors.
    axes : Tensor of shape (n_components, 3, 3)
        Rows (mean, major_axis, minor_axis) of each component.
    kappas : Tensor of shape (n_components,)
    betas : Tensor of shape (n_components,)
    log_norm : Tensor of shape (n_components,)
        Log normalization constants.

    Returns
    -------
    log_pdf : Tensor of shape (n_samples, n_components)
    """
    # y[n, k, a] = axes[k, a] . data[n]
    y = torch.einsum('kad,nd->nka', axes, data)
    exponent = (kappas.unsqueeze(0) * y[:, :, 0] +
                betas.unsqueeze(0) * (y[:, :, 1] ** 2 - y[:, :, 2] ** 2))
    return exponent - log_norm.unsqueeze(0)


class KentMixture:
    """
    Mixture of Kent (FB5) distributions estimated by Expectation-Maximization
    under the Minimum Message Length (MML) criterion.

    Use the factories `from_data`, `from_components` and `from_full_state`
    rather than calling the constructor with a partial state.

    Parameters
    ----------
    components : list of KentDistribution, optional
        Initial components.
    weights : array-like, shape (n_components,), optional
        Mixture weights; renormalised to sum to one.
    data : array-like, shape (n_samples, 3), optional
        Unit vectors the mixture is fitted to.
    data_weights : array-like, shape (n_samples,), optional
        Non-negative per-point weights. Defaults to ones.
    responsibility : array-like, shape (n_components, n_samples), optional
        Membership probabilities; every column sums to one.
    sample_size : array-like, shape (n_components,), optional
        Effective sample sizes. Recomputed from `responsibility` if omitted.
    id : int, optional
        Identifier assigned by the caller (used in log output only).
    n_components : int, optional
        Number of components when no components are supplied.
    max_components : int, default=100
        Largest component count considered; sets the cost of stating K.
    improvement_rate : float, default=0.001
        EM stops once the relative improvement of the message length falls
        below this value.
    min_iter : int, default=10
        Iterations before the convergence test is applied.
    max_iter : int, default=500
        Hard cap on EM iterations.
    criterion : {'mml', 'ml'}, default='mml'
        Objective of the EM loop.
    aom : float, default=0.001
        Accuracy of measurement of each coordinate of the data.
    max_kappa : float, default=1000
        Upper bound on component concentrations.
    device : str, optional
        'cpu' or 'cuda'. Defaults to 'cuda' when available.
    dtype : torch.dtype, default=torch.float64
    seed : int, optional
        Seed of the random initialisation and of sampling.
    num_threads : int, default=1
        Threads used by torch for the per-point computations.
    verbose : bool, default=False
        Print the message length and weights at each iteration.
    log : file-like, optional
        Text stream receiving one line of parameters per EM iteration.
    increase_tolerance : float, default=1e-9
        Relative increase of the message length between iterations tolerated
        as round-off; larger increases abort the fit.

    Attributes
    ----------
    components_ : list of KentDistribution
    weights_ : numpy.ndarray, shape (n_components,)
    responsibility_ : numpy.ndarray, shape (n_components, n_samples)
    sample_size_ : numpy.ndarray, shape (n_components,)
    msglens_ : list of float
        Message length (bits) after every EM iteration.
    minimum_msglen_ : float
        Message length (bits) of the current state.

    Example
    -------
    >>> model = KentMixture.from_data(data, n_components=2, seed=1234)
    >>> msglen = model.estimate_parameters()
    >>> labels = model.predict(data)
    """

    def __init__(self, components=None, weights=None, data=None, data_weights=None,
                 responsibility=None, sample_size=None, id=None, n_components=None,
                 max_components=MAX_COMPONENTS, improvement_rate=IMPROVEMENT_RATE,
                 min_iter=MIN_ITER, max_iter=500, criterion="mml", aom=AOM,
                 max_kappa=MAX_KAPPA, device=None, dtype=torch.float64, seed=None,
                 num_threads=1, verbose=False, log=None, increase_tolerance=1e-9):
        if criterion not in ("mml", "ml"):
            raise ValueError(f"unknown criterion {criterion!r}")
        self.id = id
        self.max_components = max_components
        self.improvement_rate = improvement_rate
        self.min_iter = min_iter
        self.max_iter = max_iter
        self.criterion = criterion
        self.aom = aom
        self.max_kappa = max_kappa
        self.device = device or ('cuda' if torch.cuda.is_available() else 'cpu')
        self.dtype = dtype
        self.seed = seed
        self.random_state = np.random.RandomState(seed)
        self.num_threads = num_threads
        self.verbose = verbose
        self.log = log
        self.increase_tolerance = increase_tolerance

        self.components_ = list(components) if components is not None else None
        if self.components_ is not None:
            self.n_components = len(self.components_)
        elif n_components is not None:
            self.n_components = int(n_components)
        else:
            raise ValueError("either components or n_components is required")
        if self.n_components < 1:
            raise ValueError("a mixture needs at least one component")

        self.weights_ = None
        if weights is not None:
            self.weights_ = self._check_vector(weights, self.n_components, "weights")
            self.weights_ = self.weights_ / self.weights_.sum()
        elif self.components_ is not None:
            self.weights_ = np.full(self.n_components, 1.0 / self.n_components)

        self.data = None
        self.data_weights = None
        if data is not None:
            self._set_data(data, data_weights)

        self.responsibility_ = None
        if responsibility is not None:
            if self.data is None:
                raise ValueError("responsibility given without data")
            responsibility = np.asarray(responsibility, dtype=np.float64)
            if responsibility.shape != (self.n_components, self.n_points):
                raise ValueError(f"responsibility has shape {responsibility.shape}, "
                                 f"expected {(self.n_components, self.n_points)}")
            self.responsibility_ = responsibility
        self.sample_size_ = None
        if sample_size is not None:
            self.sample_size_ = self._check_vector(sample_size, self.n_components, "sample_size")
        elif self.responsibility_ is not None:
            self.update_effective_sample_size()

        self.msglens_ = []
        self.minimum_msglen_ = None
        self.part1_ = None
        self.part2_ = None
        self.null_msglen_ = None
        self._stats = [None] * self.n_components

    # ---------- factories ----------

    @classmethod
    def from_data(cls, data, n_components, data_weights=None, **config):
        """Mixture to be initialised at random from a non-empty dataset."""
        data = np.asarray(data, dtype=np.float64)
        if data.ndim != 2 or data.shape[0] == 0:
            raise ValueError("cannot fit a mixture to an empty dataset")
        return cls(data=data, data_weights=data_weights, n_components=n_components, **config)

    @classmethod
    def from_components(cls, components, weights, **config):
        """Fully specified mixture without data, e.g. for sampling."""
        return cls(components=components, weights=weights, **config)

    @classmethod
    def from_full_state(cls, components, weights, sample_size, responsibility, data,
                        data_weights=None, **config):
        """Mixture resuming EM from an existing state (used by split, kill and join)."""
        return cls(components=components, weights=weights, data=data, data_weights=data_weights,
                   responsibility=responsibility, sample_size=sample_size, **config)

    def _config(self):
        return dict(max_components=self.max_components, improvement_rate=self.improvement_rate,
                    min_iter=self.min_iter, max_iter=self.max_iter, criterion=self.criterion,
                    aom=self.aom, max_kappa=self.max_kappa, device=self.device, dtype=self.dtype,
                    num_threads=self.num_threads, verbose=self.verbose,
                    increase_tolerance=self.increase_tolerance)

    # ---------- helpers ----------

    @staticmethod
    def _check_vector(values, size, name):
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (size,):
            raise ValueError(f"{name} has shape {values.shape}, expected ({size},)")
        return values

    def _set_data(self, data, data_weights=None):
        data = np.asarray(data, dtype=np.float64)
        if data.ndim != 2 or data.shape[1] != 3:
            raise ValueError(f"expected unit vectors of shape (N, 3), got {data.shape}")
        if data.shape[0] == 0:
            raise ValueError("cannot fit a mixture to an empty dataset")
        self.data = data
        self.n_points = data.shape[0]
        if data_weights is None:
            self.data_weights = np.ones(self.n_points)
        else:
            self.data_weights = self._check_vector(data_weights, self.n_points, "data_weights")
            if np.any(self.data_weights < 0):
                raise ValueError("data weights must be non-negative")
        self.N = float(self.data_weights.sum())
        if not self.N > 0:
            raise ValueError("data weights sum to zero")
        self._data_t = torch.tensor(self.data, device=self.device, dtype=self.dtype)
        self._data_weights_t = torch.tensor(self.data_weights, device=self.device, dtype=self.dtype)

    def _require_data(self):
        if self.data is None:
            raise RuntimeError("Mixture has no data.")

    def _require_fitted(self):
        if self.components_ is None or self.weights_ is None:
            raise RuntimeError("Model is not fitted yet.")

    def _as_tensor(self, x):
        x = np.atleast_2d(np.asarray(x, dtype=np.float64))
        return torch.tensor(x, device=self.device, dtype=self.dtype)

    def _component_log_densities(self, data_t):
        """Log density of every point under every component, shape (n_samples, K)."""
        axes = torch.tensor(np.stack([c.axes for c in self.components_]),
                            device=self.device, dtype=self.dtype)
        kappas = torch.tensor([c.kappa for c in self.components_], device=self.device, dtype=self.dtype)
        betas = torch.tensor([c.beta for c in self.components_], device=self.device, dtype=self.dtype)
        # invalid parameters have no density
        log_norm = torch.tensor([c.compute_log_normalization_constant() if c.is_valid() else np.nan
                                 for c in self.components_], device=self.device, dtype=self.dtype)
        return batched_kent_ln_pdf(data_t, axes, kappas, betas, log_norm)

    def _weighted_log_densities(self, data_t):
        log_weights = torch.log(torch.tensor(self.weights_, device=self.device, dtype=self.dtype))
        return self._component_log_densities(data_t) + log_weights.unsqueeze(0)

    # ---------- EM steps ----------

    def initialize(self):
        """
        Random hard assignment of the data to components followed by one
        weight and component update.

        Each component is seeded with a distinct point of positive weight,
        drawn in proportion to the data weights, while there are enough such
        points; a component left without mass starts as a diffuse component.
        """
        self._require_data()
        K = self.n_components
        labels = self.random_state.randint(K, size=self.n_points)
        candidates = np.flatnonzero(self.data_weights > RESIDUAL_FLOOR * self.data_weights.max())
        n_seeds = min(K, candidates.size)
        p = self.data_weights[candidates] / self.data_weights[candidates].sum()
        seeds = self.random_state.choice(candidates, n_seeds, replace=False, p=p)
        labels[seeds] = np.arange(n_seeds)
        self.responsibility_ = np.zeros((K, self.n_points))
        self.responsibility_[labels, np.arange(self.n_points)] = 1.0
        self.components_ = None
        self._stats = [None] * K
        self.update_effective_sample_size()
        if self.criterion == "mml":
            self.update_weights()
        else:
            self.update_weights_ml()
        self.update_components()

    def update_responsibility_matrix(self):
        """E-step: posterior membership probabilities of every point."""
        torch.set_num_threads(self.num_threads)
        with torch.no_grad():
            log_resp = self._weighted_log_densities(self._data_t)
            log_norm = torch.logsumexp(log_resp, dim=1, keepdim=True)
            responsibility = torch.exp(log_resp - log_norm)
        if not torch.all(torch.isfinite(responsibility)):
            raise FloatingPointError("non-finite responsibilities in the E-step")
        self.responsibility_ = responsibility.T.cpu().numpy()

    def update_effective_sample_size(self):
        self.sample_size_ = self.responsibility_ @ self.data_weights

    def update_weights(self):
        """MML estimate of the weights, (n_k + 1/2) / (N + K/2)."""
        self.weights_ = (self.sample_size_ + 0.5) / (self.N + 0.5 * self.n_components)

    def update_weights_ml(self):
        weights = np.maximum(self.sample_size_ / self.N, RESIDUAL_FLOOR)
        self.weights_ = weights / weights.sum()

    def _sufficient_statistics(self):
        """Responsibility-weighted resultants and scatter matrices of all components."""
        with torch.no_grad():
            resp = torch.tensor(self.responsibility_, device=self.device, dtype=self.dtype)
            weighted = resp * self._data_weights_t.unsqueeze(0)
            sum_x = torch.einsum('kn,nd->kd', weighted, self._data_t)
            dispersion = torch.einsum('kn,ni,nj->kij', weighted, self._data_t, self._data_t)
            n = weighted.sum(dim=1)
        return [SufficientStatistics(sum_x[k].cpu().numpy(), dispersion[k].cpu().numpy(),
                                     float(n[k])) for k in range(self.n_components)]

    def _select(self, stats, current):
        """Best candidate parameters for one component given its statistics."""
        if self.criterion == "mml":
            estimates = compute_all_estimators_from_statistics(stats, self.max_kappa)
            score = lambda c: c.compute_message_length_from_statistics(stats, self.aom)
        else:
            moment = compute_moment_estimates_from_statistics(stats, self.max_kappa)
            estimates = [compute_ml_estimates_from_statistics(stats, moment, self.max_kappa)]
            score = lambda c: c.compute_negative_log_likelihood_from_statistics(stats)
        candidates = [KentDistribution.from_estimates(e) for e in estimates]
        if current is not None:
            candidates.append(current)

        def key(candidate):
            value = score(candidate) if candidate.is_valid() else np.inf
            return value if np.isfinite(value) else np.inf

        return min(candidates, key=key)

    def _fallback_component(self):
        """Diffuse component centred on a random point of positive weight."""
        candidates = np.flatnonzero(self.data_weights > 0)
        mean = self.data[self.random_state.choice(candidates)]
        frame = frame_from_mean_and_major(mean, np.eye(3)[np.argmin(np.abs(mean))])
        return KentDistribution(frame[0], frame[1], frame[2], FALLBACK_KAPPA, 0.0)

    def update_components(self):
        """
        M-step: re-estimate each component from its responsibility-weighted data.

        The candidate with the smallest message length (largest likelihood in
        ML mode) among the estimation methods and the current parameters is
        kept. Components whose statistics did not change are left as they are.
        """
        all_stats = self._sufficient_statistics()
        components = list(self.components_) if self.components_ is not None else [None] * self.n_components
        for k, stats in enumerate(all_stats):
            previous = self._stats[k]
            if (components[k] is not None and previous is not None
                    and previous.n == stats.n and np.array_equal(previous.sum_x, stats.sum_x)
                    and np.array_equal(previous.dispersion, stats.dispersion)):
                continue
            if stats.n <= RESIDUAL_FLOOR:
                if components[k] is None:
                    components[k] = self._fallback_component()
                continue
            components[k] = self._select(stats, components[k])
            self._stats[k] = stats
        self.components_ = components

    # ---------- message length ----------

    def negative_log_likelihood(self, data=None, data_weights=None):
        """Weighted negative log-likelihood of the data in nits."""
        if data is None:
            self._require_data()
            data_t, weights = self._data_t, self.data_weights
        else:
            data_t = self._as_tensor(data)
            weights = np.ones(data_t.shape[0]) if data_weights is None else np.asarray(data_weights)
        with torch.no_grad():
            log_px = torch.logsumexp(self._weighted_log_densities(data_t), dim=1).cpu().numpy()
        return -float(np.dot(weights, log_px))

    def negative_log_likelihood_2(self, data=None, data_weights=None):
        """Negative log-likelihood in bits."""
        return self.negative_log_likelihood(data, data_weights) / np.log(2)

    def num_free_parameters(self):
        # 5 continuous parameters per component plus K - 1 free weights
        return 4 * self.n_components - 1

    def compute_minimum_message_length(self):
        """
        Two-part message length of the data in bits.

        Sum of the costs of stating K, the weights, the component parameters,
        the data given the mixture, and the lattice constant.
        """
        self._require_data()
        if not all(c.is_valid() for c in self.components_):
            self.minimum_msglen_ = self.part1_ = self.part2_ = np.inf
            return self.minimum_msglen_
        K = self.n_components
        Ik = np.log(self.max_components)
        Iw = 0.5 * (K - 1) * np.log(self.N) - log_gamma(K) - 0.5 * np.sum(np.log(self.weights_))
        Il = self.negative_log_likelihood() - 2 * self.N * np.log(self.aom)
        It = sum(c.compute_parameter_cost(n) for c, n in zip(self.components_, self.sample_size_))
        d = self.num_free_parameters()
        cd = constant_term(d)
        self.minimum_msglen_ = float((Ik + Iw + Il + It + cd) / np.log(2))
        self.part2_ = float((Il + 0.5 * d) / np.log(2))
        self.part1_ = self.minimum_msglen_ - self.part2_
        return self.minimum_msglen_

    def compute_null_model_message_length(self):
        """Message length of the data under the uniform distribution on the sphere."""
        self._require_data()
        self.null_msglen_ = float(self.N * (np.log(4 * np.pi) - 2 * np.log(self.aom)) / np.log(2))
        return self.null_msglen_

    def get_minimum_message_length(self):
        return self.minimum_msglen_

    def first_part(self):
        return self.part1_

    def second_part(self):
        return self.part2_

    # ---------- EM loop ----------

    def estimate_parameters(self):
        """
        Randomly initialise and run EM to convergence.

        Returns
        -------
        float
            Final message length in bits (inf for a failed fit).
        """
        self.initialize()
        return self.em()

    def em(self):
        """
        Run EM from the current state.

        Returns
        -------
        float
            Final message length in bits; inf if it became non-finite.
        """
        self._require_data()
        self.compute_null_model_message_length()
        self.msglens_ = []
        self.print_parameters(self.log, iteration=0, msglen=0.0)
        prev = None
        converged = False
        for iteration in range(1, self.max_iter + 1):
            self.update_responsibility_matrix()
            self.update_effective_sample_size()
            if self.criterion == "mml":
                self.update_weights()
            else:
                self.update_weights_ml()
            self.update_components()

            if self.criterion == "mml":
                current = self.compute_minimum_message_length()
                if not np.isfinite(current):
                    self.minimum_msglen_ = np.inf
                    return np.inf
            else:
                current = self.negative_log_likelihood_2()
            self.msglens_.append(current)
            self.print_parameters(self.log, iteration=iteration, msglen=current)
            if self.verbose:
                print(iteration, current, self.weights_)

            if prev is not None:
                if self.criterion == "mml":
                    if current - prev > self.increase_tolerance * abs(prev):
                        raise RuntimeError(f"message length increased from {prev} to {current} "
                                           f"at iteration {iteration}")
                    if iteration > self.min_iter and prev - current <= self.improvement_rate * prev:
                        converged = True
                        break
                elif iteration > self.min_iter and abs(prev - current) <= self.improvement_rate * abs(prev):
                    converged = True
                    break
            prev = current
        if not converged:
            warnings.warn(f"EM did not converge in {self.max_iter} iterations", RuntimeWarning)

        msglen = self.compute_minimum_message_length()
        if self.log is not None:
            print(f"\nSample size: {self.N}", file=self.log)
            print(f"Kent encoding rate: {msglen / self.N} bits/point", file=self.log)
            print(f"Null model encoding: {self.null_msglen_} bits.\t"
                  f"({self.null_msglen_ / self.N} bits/point)", file=self.log)
        return msglen

    # ---------- inspection ----------

    def get_components(self):
        return list(self.components_)

    def get_weights(self):
        return self.weights_.copy()

    def get_responsibility_matrix(self):
        return self.responsibility_.copy()

    def get_sample_size(self):
        return self.sample_size_.copy()

    def get_number_of_components(self):
        return self.n_components

    def print_parameters(self, stream=None, iteration=None, msglen=None, indent="\t"):
        """
        Write the parameters to `stream`, one line per call.

        With an iteration number the line is an EM trace entry: iteration,
        then [k], effective sample size, weight and parameters of each
        component, then the message length.
        """
        if stream is None:
            return
        if self.components_ is None:
            return
        fields = [] if iteration is None else [f"Iteration #: {iteration}"]
        sample_size = self.sample_size_ if self.sample_size_ is not None else np.zeros(self.n_components)
        for k, component in enumerate(self.components_):
            fields.append(f"[{k + 1:2d}]\t{sample_size[k]:10.3f}\t{self.weights_[k]:10.5f}\t"
                          f"{component.format_parameters()}")
        if msglen is not None:
            fields.append(f"msglen: {msglen} bits.")
        print(indent + "\t".join(fields), file=stream)

    # ---------- probabilities ----------

    def log_probability(self, x):
        """log p(x) of a single unit vector."""
        return float(self.score_samples(np.atleast_2d(x))[0])

    def probability(self, x):
        return np.exp(self.log_probability(x))

    def score_samples(self, data):
        """Log-likelihood per sample: log p(x_i)."""
        self._require_fitted()
        with torch.no_grad():
            log_px = torch.logsumexp(self._weighted_log_densities(self._as_tensor(data)), dim=1)
        return log_px.cpu().numpy()

    def ln_pdf(self, data):
        return self.score_samples(data)

    def pdf(self, data):
        return np.exp(self.score_samples(data))

    def score(self, data):
        """Average log-likelihood of the data under the model."""
        return float(np.mean(self.score_samples(data)))

    def predict_proba(self, data):
        """Posterior responsibilities P(component | x), shape (n_samples, n_components)."""
        self._require_fitted()
        with torch.no_grad():
            log_resp = self._weighted_log_densities(self._as_tensor(data))
            log_norm = torch.logsumexp(log_resp, dim=1, keepdim=True)
        return torch.exp(log_resp - log_norm).cpu().numpy()

    def predict(self, data):
        """Hard assignments: argmax over responsibilities."""
        return np.argmax(self.predict_proba(data), axis=1)

    def classify(self, data, threshold=0.9):
        """
        Hard assignments; points whose largest membership does not exceed
        `threshold` get the label n_components (mixed membership).
        """
        proba = self.predict_proba(data)
        labels = np.argmax(proba, axis=1)
        labels[proba.max(axis=1) <= threshold] = self.n_components
        return labels

    # ---------- sampling ----------

    def random_component(self, random_state=None, size=None):
        """
        Component index drawn from the weights: the first component whose
        cumulative weight reaches a uniform draw. An array of `size` indices
        when size is given.
        """
        rng = self.random_state if random_state is None else check_random_state(random_state)
        cumulative = np.cumsum(self.weights_)
        index = np.searchsorted(cumulative, rng.uniform(size=size), side='left')
        index = np.minimum(index, self.n_components - 1)
        return int(index) if size is None else index

    def sample(self, n_samples=1, random_state=None):
        """
        Draw samples from the fitted mixture.
        Returns: samples of shape (n_samples, 3), and component labels.
        """
        sample, per_component = self.generate(n_samples, save=True, random_state=random_state)
        labels = np.concatenate([np.full(len(x), k) for k, x in enumerate(per_component)])
        return sample, labels

    def generate(self, num_samples, save=False, random_state=None):
        """
        Draw a sample from the mixture.

        Parameters
        ----------
        num_samples : int
        save : bool, default=False
            Also return the per-component samples.
        random_state : int or numpy.random.RandomState, optional

        Returns
        -------
        sample : numpy.ndarray, shape (num_samples, 3)
            Points grouped by component.
        per_component : list of numpy.ndarray
            Only when `save` is True.
        """
        self._require_fitted()
        rng = self.random_state if random_state is None else check_random_state(random_state)
        labels = self.random_component(rng, size=num_samples)
        counts = np.bincount(labels, minlength=self.n_components)
        per_component = [component.generate(count, rng) if count > 0 else np.empty((0, 3))
                         for component, count in zip(self.components_, counts)]
        sample = np.concatenate(per_component, axis=0)
        if save:
            return sample, per_component
        return sample

    # ---------- comparison ----------

    def compute_aic(self):
        """Akaike information criterion in nits."""
        nll = self.negative_log_likelihood() - 2 * self.N * np.log(self.aom)
        return 2 * self.num_free_parameters() + 2 * nll

    def compute_aic_2(self):
        return self.compute_aic() / np.log(2)

    def compute_bic(self):
        """Bayesian information criterion in nits."""
        nll = self.negative_log_likelihood() - 2 * self.N * np.log(self.aom)
        return self.num_free_parameters() * np.log(self.N) + 2 * nll

    def compute_bic_2(self):
        return self.compute_bic() / np.log(2)

    def compute_kl_divergence(self, other, sample=None):
        """
        KL(self || other) in bits per point, averaged over `sample` (by
        default the data of this mixture).
        """
        if sample is None:
            self._require_data()
            sample = self.data
        return float(np.mean(self.score_samples(sample) - other.score_samples(sample)) / np.log(2))

    def nearest_component(self, c):
        """Index of the component closest to component c in symmetric KL divergence."""
        if self.n_components < 2:
            raise ValueError("a single component has no nearest neighbour")
        target = self.components_[c]
        distances = [np.inf if k == c else
                     target.compute_kl_divergence(other) + other.compute_kl_divergence(target)
                     for k, other in enumerate(self.components_)]
        return int(np.argmin(distances))

    # ---------- structural operators ----------

    def _modified(self, components, weights, sample_size, responsibility):
        return KentMixture.from_full_state(components, weights, sample_size, responsibility,
                                           self.data, self.data_weights, id=self.id,
                                           seed=self.random_state.randint(2 ** 31 - 1),
                                           **self._config())

    def _adjust(self, modified, log):
        _write(log, "\t\tBefore adjustment ...")
        modified.print_parameters(log, indent="\t\t")
        modified.em()
        _write(log, "\t\tAfter adjustment ...")
        modified.print_parameters(log, indent="\t\t")
        return modified

    def split(self, c, log=None):
        """
        Replace component c by two children fitted to its share of the data.

        A two-component mixture is fitted to the data weighted by the
        responsibilities of c; its weights and responsibilities are scaled by
        those of c and EM is rerun on the K + 1 component mixture.

        Returns
        -------
        KentMixture
            Converged mixture with n_components + 1 components.
        """
        self._require_data()
        self._require_fitted()
        _write(log, f"\tSPLIT component {c + 1} ... ")

        child_weights = self.responsibility_[c] * self.data_weights
        children = KentMixture.from_data(self.data, 2, data_weights=child_weights,
                                         seed=self.random_state.randint(2 ** 31 - 1),
                                         **self._config())
        children.estimate_parameters()
        _write(log, "\t\tChildren:")
        children.print_parameters(log, indent="\t\t")

        weights_c = children.weights_ * self.weights_[c]
        responsibility_c = children.responsibility_ * self.responsibility_[c][None, :]
        sample_size_c = responsibility_c @ self.data_weights

        keep = [k for k in range(self.n_components) if k != c]
        components = [self.components_[k] for k in keep[:c]] + children.components_ + \
                     [self.components_[k] for k in keep[c:]]
        weights = np.concatenate([self.weights_[:c], weights_c, self.weights_[c + 1:]])
        sample_size = np.concatenate([self.sample_size_[:c], sample_size_c, self.sample_size_[c + 1:]])
        responsibility = np.concatenate([self.responsibility_[:c], responsibility_c,
                                         self.responsibility_[c + 1:]], axis=0)
        return self._adjust(self._modified(components, weights, sample_size, responsibility), log)

    def kill(self, c, log=None):
        """
        Remove component c, share its mass among the others and rerun EM.

        Weights are divided by 1 - w_c and each point's responsibilities by
        1 - r_c(point); points owned by c alone are shared uniformly.

        Returns
        -------
        KentMixture
            Converged mixture with n_components - 1 components.
        """
        self._require_data()
        self._require_fitted()
        if self.n_components < 2:
            raise ValueError("cannot remove the only component")
        _write(log, f"\tKILL component {c + 1} ... ")

        keep = [k for k in range(self.n_components) if k != c]
        weights = np.maximum(self.weights_[keep], RESIDUAL_FLOOR)
        weights = weights / weights.sum()

        responsibility = self.responsibility_[keep]
        residual = responsibility.sum(axis=0)
        orphans = residual <= RESIDUAL_FLOOR
        responsibility = responsibility / np.where(orphans, 1.0, residual)[None, :]
        responsibility[:, orphans] = 1.0 / len(keep)
        sample_size = responsibility @ self.data_weights

        _write(log, "\t\tResidual:")
        components = [self.components_[k] for k in keep]
        return self._adjust(self._modified(components, weights, sample_size, responsibility), log)

    def join(self, c1, c2, log=None):
        """
        Merge components c1 and c2 into one component fitted to their
        combined share of the data, appended last, and rerun EM.

        Returns
        -------
        KentMixture
            Converged mixture with n_components - 1 components.
        """
        self._require_data()
        self._require_fitted()
        if c1 == c2:
            raise ValueError("cannot join a component with itself")
        _write(log, f"\tJOIN components {c1 + 1} and {c2 + 1} ... ")

        keep = [k for k in range(self.n_components) if k not in (c1, c2)]
        resp = self.responsibility_[c1] + self.responsibility_[c2]
        joined = KentMixture.from_data(self.data, 1, data_weights=resp * self.data_weights,
                                       seed=self.random_state.randint(2 ** 31 - 1),
                                       **self._config())
        joined.estimate_parameters()
        _write(log, "\t\tResultant join:")
        joined.print_parameters(log, indent="\t\t")

        components = [self.components_[k] for k in keep] + joined.components_
        weights = np.append(self.weights_[keep], self.weights_[c1] + self.weights_[c2])
        sample_size = np.append(self.sample_size_[keep], self.sample_size_[c1] + self.sample_size_[c2])
        responsibility = np.vstack([self.responsibility_[keep], resp[None, :]])
        return self._adjust(self._modified(components, weights, sample_size, responsibility), log)

    # ---------- persistence ----------

    def save(self, path, reduced=False):
        """Write one line per component (see utils.write_mixture_file)."""
        from .utils import write_mixture_file
        self._require_fitted()
        write_mixture_file(path, self.weights_, self.components_, reduced=reduced)

    @classmethod
    def load(cls, path, data=None, data_weights=None, **config):
        """
        Read a mixture file. With data, responsibilities, sample sizes and the
        message length are computed for the loaded parameters.
        """
        from .utils import load_mixture_file
        weights, components = load_mixture_file(path)
        mixture = cls.from_components(components, weights, data=data, data_weights=data_weights,
                                      **config)
        if data is not None:
            mixture.update_responsibility_matrix()
            mixture.update_effective_sample_size()
            mixture.compute_minimum_message_length()
        return mixture

    def __repr__(self):
        return f"KentMixture(n_components={self.n_components}, id={self.id})"


def _write(stream, text):
    if stream is not None:
        print(text, file=stream)
