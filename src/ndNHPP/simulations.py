import numpy as np
from numpy.typing import ArrayLike
import warnings

def simulate_groups(num_groups : int, cluster_means : list[ArrayLike], cluster_sds : list[ArrayLike], cluster_component_weights : list[ArrayLike] = None,
                    cluster_probabilities : ArrayLike = None, X : ArrayLike = None, beta : ArrayLike = None,
                    rng : np.random.Generator = None, max_redraws : int = 1000) -> dict:
    '''
    Simulates grouped distances from a clustered nonhomogeneous Poisson process.

    Each group is assigned to an intensity cluster. The number of points in the group is Poisson with mean exp(X_j . beta)
    and the distances are drawn from the cluster's normalized intensity: a mixture of Gaussians truncated to positive values.

    Args:
      num_groups: number of groups (J)
      cluster_means: (length K list) component means for each cluster
      cluster_sds: (length K list) component standard deviations for each cluster
      cluster_component_weights: (length K list) mixture weights for each cluster. Uniform if None.
      cluster_probabilities: (length K) probability of each cluster. Uniform if None.
      X: (J x P) design matrix. If None, an intercept only model is used.
      beta: (length P) coefficients. If None, log(20) intercept (20 points on average).
      rng: random number generator - is np.random.default_rng() by default
      max_redraws: limit on redrawing non-positive distances
    Returns:
      dict with keys
        "distances": list (length J) of distance arrays
        "cluster": (J) true cluster of each group
        "X": design matrix
        "beta": coefficients
        "counts": (J) number of distances per group
    '''
    if(rng is None):
        rng = np.random.default_rng()

    num_groups = int(num_groups)
    assert num_groups > 0, "must simulate at least one group"

    K = len(cluster_means)
    assert K > 0, "must have at least one cluster"
    assert len(cluster_sds) == K, "cluster_sds must have an entry for each cluster"
    cluster_means = [np.array(mm, dtype=float).flatten() for mm in cluster_means]
    cluster_sds   = [np.array(ss, dtype=float).flatten() for ss in cluster_sds]
    for mm, ss in zip(cluster_means, cluster_sds):
        assert mm.size == ss.size, "each cluster needs a standard deviation for every component mean"
        assert np.all(ss > 0), "standard deviations must be positive"

    if(cluster_component_weights is None):
        cluster_component_weights = [np.ones(mm.size) for mm in cluster_means]
    cluster_component_weights = [np.array(ww, dtype=float).flatten() / np.sum(ww) for ww in cluster_component_weights]

    if(cluster_probabilities is None):
        cluster_probabilities = np.ones((K))
    cluster_probabilities = np.array(cluster_probabilities, dtype=float).flatten()
    assert cluster_probabilities.size == K, "cluster_probabilities must be length K"
    cluster_probabilities = cluster_probabilities / np.sum(cluster_probabilities)

    if(X is None):
        X = np.ones((num_groups, 1))
    X = np.atleast_2d(np.array(X, dtype=float))
    assert X.shape[0] == num_groups, "X must have one row per group"
    if(beta is None):
        beta = np.zeros((X.shape[1]))
        beta[0] = np.log(20)
    beta = np.array(beta, dtype=float).flatten()
    assert beta.size == X.shape[1], "beta must have one entry per column of X"

    cluster = rng.choice(K, size=num_groups, p=cluster_probabilities)
    counts  = rng.poisson(np.exp(X @ beta))

    distances = []
    for jj in range(num_groups):
        kk = cluster[jj]
        r_j = np.zeros((counts[jj]))
        needs_draw = np.ones((counts[jj]), dtype=bool)
        for redraw in range(max_redraws):
            if(not np.any(needs_draw)):
                break
            n_draw = np.sum(needs_draw)
            component = rng.choice(cluster_means[kk].size, size=n_draw, p=cluster_component_weights[kk])
            r_j[needs_draw] = rng.normal(cluster_means[kk][component], cluster_sds[kk][component])
            needs_draw = r_j <= 0
        if(np.any(needs_draw)):
            warnings.warn("Group " + str(jj) + ": could not draw positive distances. Dropping " + str(np.sum(needs_draw)) + " points.")
            r_j = r_j[~needs_draw]
            counts[jj] = r_j.size
        distances += [r_j]

    return {"distances" : distances,
            "cluster" : cluster,
            "X" : X,
            "beta" : beta,
            "counts" : counts}
