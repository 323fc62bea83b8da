# tests/test_densities.py
"""
Tests for the cluster and component level density evaluation.
"""

import pytest
import numpy as np
from scipy.stats import norm

from ndNHPP.densities import (
    group_observation_indices,
    expand_to_observations,
    cluster_log_probabilities,
    component_log_probabilities,
    mixture_intensity,
    global_intensity,
)

# ------------------------------------------------------------------------------
# Test fixtures
# ------------------------------------------------------------------------------

@pytest.fixture
def small_mixture():
    """Two clusters with two components each and three groups."""
    r = np.array([1.0, 1.5, 4.0, 3.5, 0.7, 5.2])
    n_j = np.array([[0, 2], [2, 2], [4, 2]])
    pi = np.array([0.6, 0.4])
    w = np.array([[0.7, 0.2],
                  [0.3, 0.8]])
    mu = np.array([[1.0, 4.0],
                   [2.0, 5.0]])
    tau = np.array([[0.25, 1.0],
                    [1.0, 0.5]])
    return r, n_j, pi, w, mu, tau

# ------------------------------------------------------------------------------
# Index helpers
# ------------------------------------------------------------------------------

def test_group_observation_indices():
    idx = group_observation_indices([[0, 2], [2, 0], [2, 3]])
    assert [list(ii) for ii in idx] == [[0, 1], [], [2, 3, 4]]


def test_expand_to_observations():
    expanded = expand_to_observations([2, 0], [[0, 3], [3, 1]], 4)
    np.testing.assert_array_equal(expanded, [2, 2, 2, 0])

# ------------------------------------------------------------------------------
# Cluster level
# ------------------------------------------------------------------------------

def test_cluster_log_probabilities_match_product_of_mixtures(small_mixture):
    """log q[j,k] = log(pi_k * prod_i sum_l w_lk N(r_i | mu_lk, tau_lk))."""
    r, n_j, pi, w, mu, tau = small_mixture
    q = cluster_log_probabilities(r, n_j, pi, w, mu, tau)

    expected = np.zeros((3, 2))
    for jj, (start, length) in enumerate(n_j):
        for kk in range(2):
            dens = [np.sum(w[:, kk] * norm.pdf(r[ii], mu[:, kk], np.sqrt(tau[:, kk])))
                    for ii in range(start, start + length)]
            expected[jj, kk] = pi[kk] * np.prod(dens)

    np.testing.assert_allclose(np.exp(q), expected, rtol=1e-10)


def test_empty_group_gets_prior_weight(small_mixture):
    r, _, pi, w, mu, tau = small_mixture
    q = cluster_log_probabilities(r, np.array([[0, 0]]), pi, w, mu, tau)
    np.testing.assert_allclose(np.exp(q[0]), pi)


def test_zero_weight_cluster_is_impossible(small_mixture):
    r, n_j, _, w, mu, tau = small_mixture
    q = cluster_log_probabilities(r, n_j, np.array([1.0, 0.0]), w, mu, tau)
    assert np.all(np.isneginf(q[:, 1]))
    assert np.all(np.isfinite(q[:, 0]))

# ------------------------------------------------------------------------------
# Component level
# ------------------------------------------------------------------------------

def test_component_log_probabilities_use_group_cluster(small_mixture):
    r, n_j, _, w, mu, tau = small_mixture
    cluster_assignment = np.array([0, 1, 1])
    b = component_log_probabilities(r, n_j, w, mu, tau, cluster_assignment)

    assert b.shape == (r.size, 2)
    obs_cluster = [0, 0, 1, 1, 1, 1]
    for ii, kk in enumerate(obs_cluster):
        expected = w[:, kk] * norm.pdf(r[ii], mu[:, kk], np.sqrt(tau[:, kk]))
        np.testing.assert_allclose(np.exp(b[ii]), expected, rtol=1e-10)

# ------------------------------------------------------------------------------
# Intensities on a grid
# ------------------------------------------------------------------------------

def test_single_kernel_intensity_is_normal_density():
    d = np.linspace(0.1, 5, 25)
    intensity = mixture_intensity(d, np.ones((1, 1)), np.array([[2.0]]), np.array([[0.5]]))
    np.testing.assert_allclose(intensity[0], norm.pdf(d, 2.0, np.sqrt(0.5)))


def test_global_intensity_weights_clusters(small_mixture):
    _, _, pi, w, mu, tau = small_mixture
    d = np.linspace(0.1, 8, 30)
    intensities = mixture_intensity(d, w, mu, tau)

    assert intensities.shape == (2, 30)
    np.testing.assert_allclose(global_intensity(pi, intensities),
                               pi[0] * intensities[0] + pi[1] * intensities[1])
