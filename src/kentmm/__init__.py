"""
Kent (FB5) Mixture Model (kentmm)

Provides:
- KentDistribution: the Kent distribution on the sphere with moment, ML, MAP and MML estimators.
- KentMixture: a PyTorch-accelerated EM algorithm for mixtures of Kent distributions scored by
  Minimum Message Length, with split, kill and join operators.
- fit_with_attempts: Utility for robust model fitting via multiple random initializations.
- component_scan: Grid search over different numbers of mixture components.
- load_mixture_file / write_mixture_file: flat text persistence of fitted mixtures.
"""

from .kent import (KentDistribution, Estimates, MOMENT, MLE, MAP, MML_NEWTON, MML_HALLEY,
                   MML_COMPLETE, NUM_METHODS, METHOD_NAMES, compute_all_estimators,
                   compute_moment_estimates, compute_ml_estimates, compute_map_estimates,
                   compute_mml_estimates, log_normalization_constants)
from .core import KentMixture
from .utils import (fit_with_attempts, component_scan, estimate_with_retries,
                    load_mixture_file, write_mixture_file, generate_random_mixture)

__all__ = [
    "KentDistribution",
    "Estimates",
    "KentMixture",
    "MOMENT",
    "MLE",
    "MAP",
    "MML_NEWTON",
    "MML_HALLEY",
    "MML_COMPLETE",
    "NUM_METHODS",
    "METHOD_NAMES",
    "compute_all_estimators",
    "compute_moment_estimates",
    "compute_ml_estimates",
    "compute_map_estimates",
    "compute_mml_estimates",
    "log_normalization_constants",
    "fit_with_attempts",
    "component_scan",
    "estimate_with_retries",
    "load_mixture_file",
    "write_mixture_file",
    "generate_random_mixture",
]
