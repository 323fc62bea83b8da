"""
Shared test fixtures for ndNHPP tests.
"""

import pytest
import numpy as np

from ndNHPP.simulations import simulate_groups
from ndNHPP.modelBuilder import build_group_index


@pytest.fixture
def rng():
    """Seeded generator for reproducible tests."""
    return np.random.Generator(np.random.MT19937(1234))


@pytest.fixture
def two_cluster_data():
    """Eight groups drawn from two well separated intensity clusters."""
    sim_rng = np.random.Generator(np.random.MT19937(2024))
    return simulate_groups(
        num_groups=8,
        cluster_means=[[2.0, 4.0], [12.0]],
        cluster_sds=[[0.5, 0.5], [1.0]],
        beta=[np.log(25)],
        rng=sim_rng,
    )


@pytest.fixture
def fit_inputs(two_cluster_data):
    """Keyword arguments for nd_nhpp_fit built from the simulated groups."""
    r, n_j = build_group_index(two_cluster_data["distances"])
    return {
        "X": two_cluster_data["X"],
        "r": r,
        "n_j": n_j,
        "d": np.linspace(0.1, 16, 40),
        "L": 3,
        "K": 4,
        "J": n_j.shape[0],
        "mu_0": 6.0,
        "kappa_0": 0.1,
        "nu_0": 2,
        "sigma_0": 1.0,
        "a_alpha": 1.0,
        "b_alpha": 1.0,
        "a_rho": 1.0,
        "b_rho": 1.0,
    }
