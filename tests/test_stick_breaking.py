# tests/test_stick_breaking.py
"""
Tests for the truncated stick-breaking construction.
"""

import pytest
import numpy as np

from ndNHPP.stickBreaking import (
    stick_break,
    nested_stick_break,
    stick_break_posterior,
    stick_break_weights,
)

# ------------------------------------------------------------------------------
# Prior form
# ------------------------------------------------------------------------------

@pytest.mark.parametrize("N", [1, 2, 5, 25])
@pytest.mark.parametrize("concentration", [0.1, 1.0, 10.0])
def test_prior_weights_are_a_probability_vector(N, concentration, rng):
    """Weights have length N, are non-negative and sum to 1."""
    breaks = stick_break(N, concentration, rng)
    weights = stick_break_weights(breaks)

    assert breaks.shape == (N,)
    assert breaks[-1] == 1.0
    assert weights.shape == (N,)
    assert np.all(weights >= 0)
    assert np.isclose(weights.sum(), 1.0)


def test_nested_prior_weights_sum_per_cluster(rng):
    """Each cluster column of the nested weights is its own probability vector."""
    breaks = nested_stick_break(4, 3, 2.0, rng)
    weights = stick_break_weights(breaks)

    assert breaks.shape == (4, 3)
    assert np.all(breaks[-1, :] == 1.0)
    assert np.all(weights >= 0)
    np.testing.assert_allclose(weights.sum(axis=0), np.ones(3))


def test_single_component_per_cluster(rng):
    """With L = 1 every cluster puts all weight on its only component."""
    weights = stick_break_weights(nested_stick_break(1, 5, 1.0, rng))
    np.testing.assert_array_equal(weights, np.ones((1, 5)))

# ------------------------------------------------------------------------------
# Weights from break points
# ------------------------------------------------------------------------------

def test_weights_formula():
    """weight_i = break_i * prod_{j<i}(1 - break_j); last weight takes the rest."""
    weights = stick_break_weights([0.5, 0.5, 0.2, 1.0])
    np.testing.assert_allclose(weights, [0.5, 0.25, 0.05, 0.2])


def test_last_weight_ignores_last_break():
    """The final weight is the remaining stick regardless of the stored last break."""
    weights = stick_break_weights([0.3, 0.7])
    np.testing.assert_allclose(weights, [0.3, 0.7])


def test_matrix_weights_are_column_wise():
    breaks = np.array([[0.5, 0.1],
                       [1.0, 1.0]])
    weights = stick_break_weights(breaks)
    np.testing.assert_allclose(weights, [[0.5, 0.1], [0.5, 0.9]])

# ------------------------------------------------------------------------------
# Posterior form
# ------------------------------------------------------------------------------

def test_posterior_weights_vector(rng):
    shape = np.array([3.0, 1.0, 5.0, 1.0])
    rate = np.array([7.0, 6.0, 1.5, 1.5])
    breaks = stick_break_posterior(shape, rate, rng)
    weights = stick_break_weights(breaks)

    assert breaks[-1] == 1.0
    assert np.all((breaks[:-1] > 0) & (breaks[:-1] < 1))
    assert np.isclose(weights.sum(), 1.0)


def test_posterior_weights_matrix(rng):
    shape = 1.0 + rng.integers(0, 10, size=(5, 3))
    rate = 2.0 + rng.integers(0, 10, size=(5, 3))
    weights = stick_break_weights(stick_break_posterior(shape, rate, rng))

    assert weights.shape == (5, 3)
    assert np.all(weights >= 0)
    np.testing.assert_allclose(weights.sum(axis=0), np.ones(3))


def test_posterior_break_mean(rng):
    """Break points follow Beta(shape, rate)."""
    shape = np.full((20000, 1), 2.0)
    rate = np.full((20000, 1), 6.0)
    breaks = stick_break_posterior(shape, rate, rng)
    assert np.isclose(breaks[:-1].mean(), 2.0 / 8.0, atol=0.01)


def test_posterior_shape_mismatch_raises(rng):
    with pytest.raises(AssertionError):
        stick_break_posterior(np.ones(3), np.ones(4), rng)
