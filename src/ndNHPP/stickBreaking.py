import numpy as np;
from numpy.typing import ArrayLike

'''
Truncated stick-breaking construction for the nested Dirichlet process.

Break points are stored in an array the same shape as the weights they produce. The last entry (or last row for the
nested, per-cluster form) is always 1: the final weight takes whatever stick length remains so the weights sum to 1.
'''

_MAX_BREAK = 1.0 - np.finfo(float).eps

def _below_one(breaks : np.ndarray) -> np.ndarray:
    # drawn breaks stay strictly below 1 so log(1 - break) is finite in the concentration updates
    return np.minimum(breaks, _MAX_BREAK);

def stick_break(N : int, concentration : float, rng : np.random.Generator) -> np.ndarray:
    '''
    Draws the break points of a truncated stick from the prior: N-1 independent Beta(1, concentration) draws.

    Args:
      N: truncation level
      concentration: DP concentration parameter
      rng: random number generator
    Returns:
      breaks: (length N) break points, breaks[N-1] = 1
    '''
    breaks = np.ones((N))
    breaks[:N-1] = _below_one(rng.beta(1.0, concentration, size=N-1))
    return breaks;

def nested_stick_break(L : int, K : int, concentration : float, rng : np.random.Generator) -> np.ndarray:
    '''
    Prior break points for L components within each of K clusters. Each column is broken independently.

    Returns:
      breaks: (L x K) break points with the last row equal to 1
    '''
    breaks = np.ones((L, K))
    breaks[:L-1,:] = _below_one(rng.beta(1.0, concentration, size=(L-1, K)))
    return breaks;

def stick_break_posterior(shape : ArrayLike, rate : ArrayLike, rng : np.random.Generator) -> np.ndarray:
    '''
    Draws break points from their conditional posterior: break_i ~ Beta(shape_i, rate_i).
    Works on a vector (one stick) or on an (L x K) matrix (one stick per column). Only the first N-1 entries along the
    first axis are drawn.

    Args:
      shape: (N or N x K) first Beta parameter for each break point
      rate:  (N or N x K) second Beta parameter for each break point
      rng: random number generator
    Returns:
      breaks: same shape as shape, last entry along axis 0 fixed to 1
    '''
    shape = np.asarray(shape, dtype=float)
    rate  = np.asarray(rate, dtype=float)
    assert shape.shape == rate.shape, "shape and rate must have the same dimensions"

    breaks = np.ones(shape.shape)
    N = shape.shape[0]
    breaks[:N-1] = _below_one(rng.beta(shape[:N-1], rate[:N-1]))
    return breaks;

def stick_break_weights(breaks : ArrayLike) -> np.ndarray:
    '''
    Turns break points into weights:
        weight_i = break_i * prod_{j<i} (1 - break_j)      for i < N-1
        weight_{N-1} = prod_{j<N-1} (1 - break_j)
    Applied column-wise if breaks is a matrix.

    Args:
      breaks: (N or N x K) break points
    Returns:
      weights: same shape as breaks. Each stick sums to 1.
    '''
    breaks = np.array(breaks, dtype=float)
    N = breaks.shape[0]
    remaining = np.ones(breaks.shape)
    remaining[1:] = np.cumprod(1.0 - breaks[:N-1], axis=0)

    weights = breaks * remaining
    weights[N-1] = remaining[N-1] # final piece absorbs what is left of the stick
    return weights;
