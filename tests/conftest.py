import numpy as np
import pytest

from kentmm import kent


@pytest.fixture
def rng():
    """Seeded random state shared by the tests."""
    return np.random.RandomState(1234)


@pytest.fixture
def short_series(monkeypatch):
    """
    Cap the normalisation series at 8 terms: eccentric components (beta
    near kappa / 2) no longer converge, nearly isotropic ones still do.
    """
    monkeypatch.setattr(kent, "SERIES_TERMS", 8)
    monkeypatch.setattr(kent, "MAX_SERIES_TERMS", 8)
    kent._cached_constants.cache_clear()
    yield
    kent._cached_constants.cache_clear()
