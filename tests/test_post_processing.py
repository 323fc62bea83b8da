# tests/test_post_processing.py
"""
Tests for co-clustering summaries, the Green loss point partition and
intensity bands.
"""

import numpy as np

from ndNHPP.postProcessing import (
    symmetric_pair_probability,
    green_loss,
    point_partition,
    intensity_bands,
    cluster_intensities,
)


def test_symmetric_pair_probability():
    lower = np.array([[0.0, 0.0, 0.0],
                      [0.8, 0.0, 0.0],
                      [0.1, 0.3, 0.0]])
    P = symmetric_pair_probability(lower)
    np.testing.assert_allclose(P, [[1.0, 0.8, 0.1],
                                   [0.8, 1.0, 0.3],
                                   [0.1, 0.3, 1.0]])


def test_green_loss_prefers_consistent_partition():
    # groups 0 and 1 are almost always together, group 2 is apart
    P = np.array([[0.0, 0.0, 0.0],
                  [0.95, 0.0, 0.0],
                  [0.05, 0.1, 0.0]])
    partitions = np.array([[0, 0, 1],
                           [0, 1, 2],
                           [0, 0, 0]])
    losses = green_loss(partitions, P)
    assert np.argmin(losses) == 0
    assert losses[1] == 0.0


def test_point_partition_relabels_in_order_of_appearance():
    P = np.zeros((4, 4))
    P[1, 0] = 1.0
    P[3, 2] = 1.0
    partitions = np.array([[3, 3, 1, 1],
                           [2, 0, 1, 2]])
    partition, loss = point_partition(partitions, P)
    np.testing.assert_array_equal(partition, [0, 0, 1, 1])
    assert loss == -1.0


def test_intensity_bands():
    samples = np.vstack([np.full(5, 1.0), np.full(5, 2.0), np.full(5, 3.0)])
    bands = intensity_bands(samples, np.arange(1, 6), quantiles=(0.5,))
    np.testing.assert_allclose(bands["mean"], np.full(5, 2.0))
    np.testing.assert_allclose(bands["50.0%"], np.full(5, 2.0))


def test_cluster_intensities_layout():
    flat = np.arange(12.0).reshape(1, 12)  # K = 3 clusters, G = 4 grid points
    per_cluster = cluster_intensities(flat, 3)
    assert per_cluster.shape == (1, 3, 4)
    np.testing.assert_array_equal(per_cluster[0, 1], [4.0, 5.0, 6.0, 7.0])
