# tests/test_simulations.py
"""
Tests for simulated grouped distance data.
"""

import pytest
import numpy as np

from ndNHPP.simulations import simulate_groups


def test_simulated_groups(two_cluster_data):
    assert len(two_cluster_data["distances"]) == 8
    assert two_cluster_data["cluster"].shape == (8,)
    assert np.all(np.isin(two_cluster_data["cluster"], [0, 1]))
    np.testing.assert_array_equal(two_cluster_data["counts"], [rr.size for rr in two_cluster_data["distances"]])
    assert np.all([np.all(rr > 0) for rr in two_cluster_data["distances"]])


def test_simulation_is_reproducible():
    kwargs = dict(num_groups=5, cluster_means=[[3.0]], cluster_sds=[[1.0]])
    a = simulate_groups(**kwargs, rng=np.random.default_rng(8))
    b = simulate_groups(**kwargs, rng=np.random.default_rng(8))
    for ra, rb in zip(a["distances"], b["distances"]):
        np.testing.assert_array_equal(ra, rb)


def test_counts_follow_design():
    """Groups with a larger covariate get more points on average."""
    X = np.column_stack([np.ones(400), np.repeat([0.0, 1.0], 200)])
    data = simulate_groups(400, cluster_means=[[5.0]], cluster_sds=[[1.0]], X=X, beta=[np.log(10), np.log(3)],
                           rng=np.random.default_rng(1))
    assert np.isclose(data["counts"][:200].mean(), 10, rtol=0.1)
    assert np.isclose(data["counts"][200:].mean(), 30, rtol=0.1)


def test_clusters_separate_distances():
    data = simulate_groups(40, cluster_means=[[2.0], [20.0]], cluster_sds=[[0.3], [0.3]], rng=np.random.default_rng(4))
    for cluster, rr in zip(data["cluster"], data["distances"]):
        if rr.size > 0:
            assert np.all(rr < 10) if cluster == 0 else np.all(rr > 10)


def test_invalid_simulation_inputs():
    with pytest.raises(AssertionError):
        simulate_groups(3, cluster_means=[[1.0, 2.0]], cluster_sds=[[1.0]])
    with pytest.raises(AssertionError):
        simulate_groups(3, cluster_means=[[1.0]], cluster_sds=[[1.0]], X=np.ones((2, 1)))
