import numpy as np;
from numpy.typing import ArrayLike

from scipy.stats import norm
from scipy.special import logsumexp


def group_observation_indices(n_j : ArrayLike) -> list[np.ndarray]:
    '''
    Indices into the flat distance vector for each group.

    Args:
      n_j: (J x 2) integer table. Column 0 is the start offset of the group in r, column 1 the number of observations.
    Returns:
      list (length J) of index arrays
    '''
    n_j = np.asarray(n_j, dtype=int)
    return [np.arange(start, start + length) for start, length in n_j];

def expand_to_observations(group_values : ArrayLike, n_j : ArrayLike, N : int) -> np.ndarray:
    '''
    Copies a per-group value (e.g. the group's cluster label) to every observation in the group.
    '''
    group_values = np.asarray(group_values)
    expanded = np.zeros((N), dtype=group_values.dtype)
    for jj, idx in enumerate(group_observation_indices(n_j)):
        expanded[idx] = group_values[jj]
    return expanded;

def log_kernel_mixture(r : ArrayLike, w : ArrayLike, mu : ArrayLike, tau : ArrayLike) -> np.ndarray:
    '''
    log sum_l w[l,k] N(r_i | mu[l,k], tau[l,k]) for every observation and cluster.
    tau holds variances.

    Returns:
      (N x K) array
    '''
    r = np.asarray(r, dtype=float)
    with np.errstate(divide="ignore"):
        log_w = np.log(w)
    log_kernel = norm.logpdf(r[:,np.newaxis,np.newaxis], loc=mu[np.newaxis,:,:], scale=np.sqrt(tau)[np.newaxis,:,:])
    return logsumexp(log_w[np.newaxis,:,:] + log_kernel, axis=1);

def cluster_log_probabilities(r : ArrayLike, n_j : ArrayLike, pi : ArrayLike, w : ArrayLike, mu : ArrayLike, tau : ArrayLike) -> np.ndarray:
    '''
    Unnormalized log probabilities of each group belonging to each cluster:
        log pi[k] + sum_{i in group j} log sum_l w[l,k] N(r_i | mu[l,k], tau[l,k])

    Args:
      r: (N) distances
      n_j: (J x 2) group index table
      pi: (K) cluster weights
      w: (L x K) component weights
      mu: (L x K) component means
      tau: (L x K) component variances
    Returns:
      (J x K) log probabilities
    '''
    log_mix = log_kernel_mixture(r, w, mu, tau)
    with np.errstate(divide="ignore"):
        log_pi = np.log(pi)

    q = np.zeros((len(n_j), np.size(pi)))
    for jj, idx in enumerate(group_observation_indices(n_j)):
        q[jj,:] = log_pi + np.sum(log_mix[idx,:], axis=0)
    return q;

def component_log_probabilities(r : ArrayLike, n_j : ArrayLike, w : ArrayLike, mu : ArrayLike, tau : ArrayLike,
                                cluster_assignment : ArrayLike) -> np.ndarray:
    '''
    Unnormalized log probabilities of each observation coming from each component of its group's current cluster:
        log w[l,c_j] + log N(r_i | mu[l,c_j], tau[l,c_j])

    Returns:
      (N x L) log probabilities
    '''
    r = np.asarray(r, dtype=float)
    obs_cluster = expand_to_observations(cluster_assignment, n_j, r.size)
    with np.errstate(divide="ignore"):
        log_w = np.log(w[:,obs_cluster].T)
    return log_w + norm.logpdf(r[:,np.newaxis], loc=mu[:,obs_cluster].T, scale=np.sqrt(tau[:,obs_cluster].T));

def mixture_intensity(d : ArrayLike, w : ArrayLike, mu : ArrayLike, tau : ArrayLike) -> np.ndarray:
    '''
    Within-cluster intensity (normalized) on a grid: sum_l w[l,k] N(d | mu[l,k], tau[l,k])

    Args:
      d: (G) grid of distances
    Returns:
      (K x G) intensity for each cluster
    '''
    d = np.asarray(d, dtype=float)
    kernel = norm.pdf(d[np.newaxis,np.newaxis,:], loc=mu[:,:,np.newaxis], scale=np.sqrt(tau)[:,:,np.newaxis])
    return np.sum(w[:,:,np.newaxis] * kernel, axis=0);

def global_intensity(pi : ArrayLike, intensities : ArrayLike) -> np.ndarray:
    '''
    Pooled intensity: sum_k pi[k] * intensity[k,:]
    '''
    return np.asarray(pi) @ np.asarray(intensities);
