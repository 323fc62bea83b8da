import numpy as np;
from numpy.typing import ArrayLike
import pandas as pd


def symmetric_pair_probability(cluster_pair_probability : ArrayLike) -> np.ndarray:
    '''
    Fills in the full co-clustering matrix from the strictly lower triangular one returned by the sampler.
    The diagonal is 1.
    '''
    P = np.tril(np.asarray(cluster_pair_probability, dtype=float), -1)
    return P + P.T + np.eye(P.shape[0]);

def green_loss(cluster_assignment : ArrayLike, cluster_pair_probability : ArrayLike, tau : float = 0.5) -> np.ndarray:
    '''
    Expected posterior loss (up to a constant) of each sampled partition under the pairwise loss of Lau & Green (2007):
        loss(c) = sum_{i > j} 1(c_i == c_j) (tau - p_ij)
    where p_ij is the posterior co-clustering probability. tau = 0.5 gives Binder's loss with equal costs.

    Args:
      cluster_assignment: (S x J) sampled cluster labels
      cluster_pair_probability: (J x J) co-clustering probabilities (only the strictly lower triangle is used)
      tau: relative cost of wrongly splitting versus wrongly joining a pair
    Returns:
      (S) loss for each sampled partition
    '''
    cluster_assignment = np.atleast_2d(np.asarray(cluster_assignment, dtype=int))
    P_lower = np.tril(np.asarray(cluster_pair_probability, dtype=float), -1)
    lower = np.tril(np.ones(P_lower.shape, dtype=bool), -1)

    losses = np.zeros((cluster_assignment.shape[0]))
    for ss, c in enumerate(cluster_assignment):
        same = (c[:,np.newaxis] == c[np.newaxis,:]) & lower
        losses[ss] = np.sum(same * (tau - P_lower))
    return losses;

def point_partition(cluster_assignment : ArrayLike, cluster_pair_probability : ArrayLike, tau : float = 0.5) -> tuple[np.ndarray, float]:
    '''
    The sampled partition minimizing green_loss, with its labels renumbered in order of first appearance.

    Returns:
      (partition, loss)
    '''
    cluster_assignment = np.atleast_2d(np.asarray(cluster_assignment, dtype=int))
    losses = green_loss(cluster_assignment, cluster_pair_probability, tau=tau)
    best = np.argmin(losses)

    _, first_idx, inverse = np.unique(cluster_assignment[best], return_index=True, return_inverse=True)
    order = np.argsort(np.argsort(first_idx))
    return (order[inverse], losses[best]);

def intensity_bands(intensity_samples : ArrayLike, d : ArrayLike, quantiles : ArrayLike = (0.025, 0.5, 0.975)) -> pd.DataFrame:
    '''
    Posterior mean and quantiles of an intensity curve at each grid point.

    Args:
      intensity_samples: (S x G) sampled intensities (e.g. samples["global_intensity"])
      d: (G) grid
      quantiles: probabilities for the bands
    Returns:
      DataFrame with one row per grid point
    '''
    intensity_samples = np.atleast_2d(np.asarray(intensity_samples, dtype=float))
    d = np.asarray(d, dtype=float).flatten()
    assert intensity_samples.shape[1] == d.size, "intensity samples must have one column per grid point"

    bands = pd.DataFrame({"distance" : d, "mean" : intensity_samples.mean(axis=0)})
    for qq in quantiles:
        bands[f"{100*qq:.1f}%"] = np.quantile(intensity_samples, qq, axis=0)
    return bands;

def cluster_intensities(intensities : ArrayLike, K : int) -> np.ndarray:
    '''
    Reshapes the flat within-cluster intensities (S x K*G) to (S x K x G).
    '''
    intensities = np.atleast_2d(np.asarray(intensities, dtype=float))
    return intensities.reshape((intensities.shape[0], int(K), -1));
