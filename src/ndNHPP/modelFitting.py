import numpy as np;

# for typing and validating arguments
from numpy.typing import ArrayLike

# special functions
from scipy.special import gammaln

import warnings

from ndNHPP.stickBreaking import stick_break, nested_stick_break, stick_break_posterior, stick_break_weights
from ndNHPP.densities import (cluster_log_probabilities, component_log_probabilities, mixture_intensity, global_intensity,
                              group_observation_indices, expand_to_observations)


class NumericalDomainError(FloatingPointError):
    '''
    Raised when a categorical distribution cannot be formed because every outcome has zero (or non-finite) probability.
    This happens when the densities underflow for every candidate cluster or component and should be fixed through the
    choice of hyperparameters.
    '''
    pass


class ChainState():
    '''
    All per-iteration state of a single Markov chain for the nested DP mixture NHPP model.
    Every variable here is overwritten each iteration. Owned by exactly one chain: the random number generator included.

    Dimensions:
        L - components per cluster (truncation)
        K - clusters (truncation)
        J - groups
        N - total observations
        P - regression coefficients
    '''
    def __init__(self, L : int, K : int, J : int, N : int, P : int, seed : int) -> None:
        self.rng = np.random.Generator(np.random.MT19937(int(seed)))

        self.alpha = np.nan # concentration: seeds component-level prior breaks, resampled from cluster-level breaks
        self.rho   = np.nan # concentration: seeds cluster-level prior breaks, resampled from component-level breaks

        self.u   = np.ones((L, K)) # component break points
        self.v   = np.ones((K))    # cluster break points
        self.w   = np.zeros((L, K)) # component weights (per column)
        self.pi  = np.zeros((K))    # cluster weights
        self.mu  = np.zeros((L, K))
        self.tau = np.ones((L, K))  # variances

        self.beta = np.zeros((P))

        self.cluster_assignment   = np.zeros((J), dtype=int)
        self.component_assignment = np.zeros((N), dtype=int)

    @property
    def L(self) -> int:
        return self.w.shape[0];

    @property
    def K(self) -> int:
        return self.w.shape[1];

    @property
    def J(self) -> int:
        return self.cluster_assignment.size;

    @property
    def N(self) -> int:
        return self.component_assignment.size;

    @property
    def P(self) -> int:
        return self.beta.size;


def initialize_chain_state(L : int, K : int, J : int, N : int, P : int, seed : int,
                           mu_0 : float, kappa_0 : float, sigma_0 : float,
                           a_alpha : float, b_alpha : float, a_rho : float, b_rho : float) -> ChainState:
    '''
    Draws the starting point of a chain from the priors.
    Gamma priors are parameterized by shape (a) and scale (b).

    Note: alpha seeds the component-level (nested) breaks while rho seeds the cluster-level breaks. The posterior updates
    pair them the other way around (alpha with the cluster level).
    '''
    state = ChainState(L, K, J, N, P, seed)

    state.alpha = state.rng.gamma(a_alpha, b_alpha)
    state.rho   = state.rng.gamma(a_rho, b_rho)

    state.u  = nested_stick_break(L, K, state.alpha, state.rng)
    state.v  = stick_break(K, state.rho, state.rng)
    state.w  = stick_break_weights(state.u)
    state.pi = stick_break_weights(state.v)

    state.tau = np.full((L, K), float(sigma_0))
    state.mu  = state.rng.standard_normal((L, K)) * np.sqrt(state.tau / kappa_0) + mu_0
    state.beta = state.rng.standard_normal((P))
    return state;


'''
==========================================================================================================================================
Latent assignments
==========================================================================================================================================
'''

def sample_categorical(log_probs : ArrayLike, rng : np.random.Generator) -> np.ndarray:
    '''
    Draws one categorical outcome per row of unnormalized log probabilities.

    Args:
      log_probs: (R x C) unnormalized log probabilities
      rng: random number generator
    Returns:
      (R) integer outcomes in [0, C)
    Raises:
      NumericalDomainError: if any row has no positive, finite probability
    '''
    log_probs = np.atleast_2d(np.asarray(log_probs, dtype=float))
    row_max = np.max(log_probs, axis=1)
    bad_rows = ~np.isfinite(row_max) # all -inf, or nan/inf somewhere in the row
    if(np.any(bad_rows)):
        raise NumericalDomainError("categorical probabilities are all zero or not finite for rows " + str(np.where(bad_rows)[0]))

    # inverse CDF over all rows at once instead of one rng.choice call per group or observation
    probs = np.exp(log_probs - row_max[:,np.newaxis])
    cum_probs = np.cumsum(probs, axis=1)
    thresholds = rng.random(log_probs.shape[0]) * cum_probs[:,-1]
    return np.argmax(cum_probs > thresholds[:,np.newaxis], axis=1);

def sample_cluster_assignments(state : ChainState, r : ArrayLike, n_j : ArrayLike) -> np.ndarray:
    q = cluster_log_probabilities(r, n_j, state.pi, state.w, state.mu, state.tau)
    state.cluster_assignment = sample_categorical(q, state.rng)
    return state.cluster_assignment;

def sample_component_assignments(state : ChainState, r : ArrayLike, n_j : ArrayLike) -> np.ndarray:
    '''
    Component labels for every observation, conditioned on the current cluster label of its group.
    Must be called after sample_cluster_assignments in the same iteration.
    '''
    b = component_log_probabilities(r, n_j, state.w, state.mu, state.tau, state.cluster_assignment)
    state.component_assignment = sample_categorical(b, state.rng)
    return state.component_assignment;


'''
==========================================================================================================================================
Reductions over the assignments
==========================================================================================================================================
'''

def count_cluster_assignments(cluster_assignment : ArrayLike, K : int) -> np.ndarray:
    '''
    Number of groups per cluster. Sums to J.
    '''
    return np.bincount(np.asarray(cluster_assignment, dtype=int), minlength=K);

def count_component_assignments(component_assignment : ArrayLike, cluster_assignment : ArrayLike, n_j : ArrayLike,
                                L : int, K : int) -> np.ndarray:
    '''
    Number of observations per (component, cluster) cell. Sums to the total number of grouped observations.

    Returns:
      (L x K) integer counts
    '''
    component_assignment = np.asarray(component_assignment, dtype=int)
    obs_idx = np.concatenate(group_observation_indices(n_j) + [np.zeros((0), dtype=int)])
    obs_cluster = expand_to_observations(cluster_assignment, n_j, component_assignment.size)

    component_count = np.zeros((L, K), dtype=int)
    np.add.at(component_count, (component_assignment[obs_idx], obs_cluster[obs_idx]), 1)
    return component_count;

def component_sufficient_statistics(r : ArrayLike, component_assignment : ArrayLike, cluster_assignment : ArrayLike, n_j : ArrayLike,
                                    L : int, K : int) -> tuple[np.ndarray,np.ndarray]:
    '''
    Sum and sum of squares of the distances assigned to each (component, cluster) cell.

    Returns:
      (ycount, ycount_sq): each (L x K)
    '''
    r = np.asarray(r, dtype=float)
    component_assignment = np.asarray(component_assignment, dtype=int)
    obs_idx = np.concatenate(group_observation_indices(n_j) + [np.zeros((0), dtype=int)])
    obs_cluster = expand_to_observations(cluster_assignment, n_j, r.size)

    cells = (component_assignment[obs_idx], obs_cluster[obs_idx])
    ycount    = np.zeros((L, K))
    ycount_sq = np.zeros((L, K))
    np.add.at(ycount,    cells, r[obs_idx])
    np.add.at(ycount_sq, cells, r[obs_idx]**2)
    return (ycount, ycount_sq);

def _tail_sums(counts : np.ndarray) -> np.ndarray:
    # sum of the counts strictly after each index along axis 0
    return np.sum(counts, axis=0) - np.cumsum(counts, axis=0);


'''
==========================================================================================================================================
Conjugate updates
==========================================================================================================================================
'''

def update_cluster_weights(state : ChainState, cluster_count : ArrayLike) -> np.ndarray:
    '''
    v_k | c ~ Beta(1 + n_k, alpha + sum_{k' > k} n_k'), then pi = stick_break_weights(v)
    '''
    cluster_count = np.asarray(cluster_count, dtype=float)
    shape = 1.0 + cluster_count
    rate  = state.alpha + _tail_sums(cluster_count)
    state.v  = stick_break_posterior(shape, rate, state.rng)
    state.pi = stick_break_weights(state.v)
    return state.pi;

def update_component_weights(state : ChainState, component_count : ArrayLike) -> np.ndarray:
    '''
    For each cluster column k independently:
        u_lk | z, c ~ Beta(1 + m_lk, rho + sum_{l' > l} m_l'k), then w[:,k] = stick_break_weights(u[:,k])
    '''
    component_count = np.asarray(component_count, dtype=float)
    shape = 1.0 + component_count
    rate  = state.rho + _tail_sums(component_count)
    state.u = stick_break_posterior(shape, rate, state.rng)
    state.w = stick_break_weights(state.u)
    return state.w;

def update_component_parameters(state : ChainState, component_count : ArrayLike, ycount : ArrayLike, ycount_sq : ArrayLike,
                                mu_0 : float, kappa_0 : float, nu_0 : float, sigma_0 : float) -> tuple[np.ndarray,np.ndarray]:
    '''
    Draws the mean and variance of every component from the Normal/Scaled-Inverse-chi^2 conditional posterior.

    Prior: tau ~ Scaled-Inv-chi^2(nu_0, sigma_0), mu | tau ~ N(mu_0, tau/kappa_0)

    Empty cells (no assigned observations) are drawn from the prior. Otherwise, with m observations, sum s and sum of
    squares ss:
        s_n = nu_0 sigma_0 + (ss - s^2/m) + (kappa_0 m / (kappa_0 + m)) (s/m - mu_0)^2
        tau ~ s_n / chi^2(nu_0 + m)
        mu  ~ N((kappa_0 mu_0 + s)/(kappa_0 + m), tau/(kappa_0 + m))

    Returns:
      (mu, tau): each (L x K)
    '''
    m  = np.asarray(component_count, dtype=float)
    s  = np.asarray(ycount, dtype=float)
    ss = np.asarray(ycount_sq, dtype=float)
    is_empty = m == 0

    m_safe = np.where(is_empty, 1.0, m)
    y_bar = s / m_safe

    s_n = nu_0 * sigma_0 + (ss - s**2 / m_safe) + (kappa_0 * m / (kappa_0 + m)) * (y_bar - mu_0)**2
    s_n[is_empty] = nu_0 * sigma_0

    tau = s_n / state.rng.chisquare(nu_0 + m)

    mu_n = (kappa_0 * mu_0 + s) / (kappa_0 + m)
    mu_n[is_empty] = mu_0
    mu = state.rng.standard_normal(m.shape) * np.sqrt(tau / (kappa_0 + m)) + mu_n

    state.mu  = mu
    state.tau = tau
    return (mu, tau);

def resample_concentrations(state : ChainState, a_alpha : float, b_alpha : float, a_rho : float, b_rho : float) -> tuple[float,float]:
    '''
    Gamma posterior draws for both concentration parameters (priors with shape a and scale b).

        alpha ~ Gamma(a_alpha + K - 1,      rate = 1/b_alpha - sum_{k < K-1} log(1 - v_k))
        rho   ~ Gamma(a_rho + K (L - 1),    rate = 1/b_rho   - sum_k sum_{l < L-1} log(1 - u_lk))
    '''
    L = state.L
    K = state.K

    posterior_a_alpha = a_alpha + (K - 1)
    posterior_a_rho   = a_rho + K * (L - 1)

    posterior_b_alpha = 1.0 / b_alpha - np.sum(np.log(1.0 - state.v[:K-1]))
    posterior_b_rho   = 1.0 / b_rho   - np.sum(np.log(1.0 - state.u[:L-1,:]))

    state.alpha = state.rng.gamma(posterior_a_alpha, 1.0 / posterior_b_alpha)
    state.rho   = state.rng.gamma(posterior_a_rho,   1.0 / posterior_b_rho)
    return (state.alpha, state.rho);


'''
==========================================================================================================================================
Regression coefficients
==========================================================================================================================================
'''

def coefficient_log_posterior(beta : ArrayLike, X : ArrayLike, counts : ArrayLike, prior_precision : float = 0.04) -> float:
    '''
    Log posterior (up to a constant) of the coefficients for the number of observations per group:
        counts_j ~ Poisson(exp(X_j . beta)),  beta ~ N(0, I/prior_precision)
    '''
    beta = np.asarray(beta, dtype=float)
    counts = np.asarray(counts, dtype=float)
    eta = np.asarray(X, dtype=float) @ beta
    with np.errstate(over="ignore"):
        log_like = np.sum(counts * eta - np.exp(eta) - gammaln(counts + 1))
    return log_like - 0.5 * prior_precision * (beta @ beta);

def Metropolis_Hastings_step_for_coefficients(state : ChainState, X : ArrayLike, counts : ArrayLike, proposal_scale : float = None,
                                              prior_precision : float = 0.04) -> tuple[bool, float]:
    '''
    Takes a random-walk Metropolis step for the regression coefficients. The proposal is
        beta* = beta + proposal_scale * eps,  eps ~ N(0, I)
    with proposal_scale = 2.4/sqrt(P) by default. The proposal scale is never adapted.

    Args:
        state: the chain. state.beta is replaced if the proposal is accepted.
        X: (J x P) design matrix
        counts: (J) number of observations per group
        proposal_scale: standard deviation of the proposal in each dimension
        prior_precision: precision of the zero-mean Gaussian prior on each coefficient
    Returns:
        (accepted, log_acceptance_probability)
    '''
    if(proposal_scale is None):
        proposal_scale = 2.4 / np.sqrt(state.P)

    beta_prop = state.rng.standard_normal((state.P)) * proposal_scale + state.beta

    log_post_prop = coefficient_log_posterior(beta_prop,  X, counts, prior_precision)
    log_post      = coefficient_log_posterior(state.beta, X, counts, prior_precision)

    with np.errstate(invalid="ignore"):
        log_ratio = log_post_prop - log_post
    if(np.isnan(log_ratio)):
        log_ratio = -np.inf # neither coefficient vector has a finite posterior: reject
    log_acceptance_probability = min(0.0, log_ratio)

    accepted = bool(state.rng.random() <= np.exp(log_acceptance_probability))
    if(accepted):
        state.beta = beta_prop
    return (accepted, log_acceptance_probability);


'''
==========================================================================================================================================
Storing samples
==========================================================================================================================================
'''

def num_retained_samples(iter_max : int, warm_up : int, thin : int) -> int:
    '''
    Number of iterations stored: every thin-th iteration after warm_up.
    '''
    return max(int(iter_max) - int(warm_up), 0) // int(thin);

class SampleAccumulator():
    '''
    Append-only store of posterior samples for one chain. Written once per retained iteration, never read while sampling.

    Flattened (L x K) arrays are stored in column order (all components of cluster 0 first): cell (l,k) is at k*L + l.
    Within-cluster intensities are stored cluster-major: cluster k, grid point g is at k*G + g.
    '''
    def __init__(self, d : ArrayLike, J : int, N : int, L : int, K : int, P : int,
                       num_posterior_samples : int, warm_up : int, thin : int) -> None:
        self.d = np.asarray(d, dtype=float).flatten()
        self.warm_up = int(warm_up)
        self.thin = int(thin)
        self.sample_ix = 0

        S = int(num_posterior_samples)
        G = self.d.size
        self.cluster_matrix = np.zeros((J, J))
        self.samples = {"cluster_assignment"   : np.zeros((S, J), dtype=int),
                        "component_assignment" : np.zeros((S, N), dtype=int),
                        "pi_samples"  : np.zeros((S, K)),
                        "w_samples"   : np.zeros((S, L*K)),
                        "mu_samples"  : np.zeros((S, L*K)),
                        "tau_samples" : np.zeros((S, L*K)),
                        "alpha_samples" : np.zeros((S, 1)),
                        "rho_samples"   : np.zeros((S, 1)),
                        "beta_samples"  : np.zeros((S, P)),
                        "intensities"      : np.zeros((S, K*G)),
                        "global_intensity" : np.zeros((S, G))}

    @property
    def num_posterior_samples(self) -> int:
        return self.samples["pi_samples"].shape[0];

    def is_sample_iteration(self, iter_ix : int) -> bool:
        return (iter_ix > self.warm_up) and ((iter_ix - self.warm_up) % self.thin == 0);

    def record(self, state : ChainState) -> None:
        if(self.sample_ix >= self.num_posterior_samples):
            raise IndexError("sample store is full: " + str(self.num_posterior_samples) + " samples")
        ss = self.sample_ix

        c = state.cluster_assignment
        self.cluster_matrix += np.tril(c[:,np.newaxis] == c[np.newaxis,:], -1)

        intensities = mixture_intensity(self.d, state.w, state.mu, state.tau)
        self.samples["intensities"][ss,:] = intensities.reshape(-1)
        self.samples["global_intensity"][ss,:] = global_intensity(state.pi, intensities)

        self.samples["cluster_assignment"][ss,:]   = c
        self.samples["component_assignment"][ss,:] = state.component_assignment
        self.samples["pi_samples"][ss,:]  = state.pi
        self.samples["w_samples"][ss,:]   = state.w.flatten(order="F")
        self.samples["mu_samples"][ss,:]  = state.mu.flatten(order="F")
        self.samples["tau_samples"][ss,:] = state.tau.flatten(order="F")
        self.samples["alpha_samples"][ss,0] = state.alpha
        self.samples["rho_samples"][ss,0]   = state.rho
        self.samples["beta_samples"][ss,:]  = state.beta
        self.sample_ix += 1

    def finalize(self) -> dict:
        '''
        Normalizes the co-clustering counts into probabilities and returns the sample store.
        '''
        if(self.sample_ix == 0):
            warnings.warn("No posterior samples were retained: cluster_pair_probability is all zeros")
            self.samples["cluster_pair_probability"] = self.cluster_matrix
        else:
            self.samples["cluster_pair_probability"] = self.cluster_matrix / self.sample_ix
        return self.samples;


def print_progress(iter_ix : int, warm_up : int, iter_max : int, chain : int, print_every : int = None) -> None:
    if((print_every is None) or not ((iter_ix % print_every == 0) or (iter_ix == iter_max))):
        return
    stage = "(Warmup)" if iter_ix <= warm_up else "(Sampling)"
    print(f"Chain {chain}: Iteration {iter_ix} / {iter_max} [{int(100 * iter_ix / iter_max):3d}%]  {stage}")


'''
==========================================================================================================================================
The sampler
==========================================================================================================================================
'''

def run_iteration(state : ChainState, X : np.ndarray, r : np.ndarray, n_j : np.ndarray,
                  mu_0 : float, kappa_0 : float, nu_0 : float, sigma_0 : float,
                  a_alpha : float, b_alpha : float, a_rho : float, b_rho : float,
                  proposal_scale : float = None, prior_precision : float = 0.04) -> bool:
    '''
    One full sweep of the Gibbs sampler with a Metropolis step for the coefficients. The order matters: weights are
    rebuilt from this iteration's assignments before the next iteration evaluates densities with them.

    Returns:
      whether the coefficient proposal was accepted
    '''
    L = state.L
    K = state.K

    sample_cluster_assignments(state, r, n_j)
    sample_component_assignments(state, r, n_j)

    cluster_count   = count_cluster_assignments(state.cluster_assignment, K)
    component_count = count_component_assignments(state.component_assignment, state.cluster_assignment, n_j, L, K)

    update_cluster_weights(state, cluster_count)
    update_component_weights(state, component_count)

    ycount, ycount_sq = component_sufficient_statistics(r, state.component_assignment, state.cluster_assignment, n_j, L, K)
    update_component_parameters(state, component_count, ycount, ycount_sq, mu_0, kappa_0, nu_0, sigma_0)

    resample_concentrations(state, a_alpha, b_alpha, a_rho, b_rho)

    accepted, _ = Metropolis_Hastings_step_for_coefficients(state, X, n_j[:,1], proposal_scale=proposal_scale,
                                                            prior_precision=prior_precision)
    return accepted;


def nd_nhpp_fit(X : ArrayLike, r : ArrayLike, n_j : ArrayLike, d : ArrayLike,
                L : int, K : int, J : int,
                mu_0 : float, kappa_0 : float, nu_0 : float, sigma_0 : float,
                a_alpha : float, b_alpha : float, a_rho : float, b_rho : float,
                iter_max : int, warm_up : int, thin : int, seed : int, chain : int = 1,
                num_posterior_samples : int = None,
                proposal_scale : float = None, prior_precision : float = 0.04, print_every : int = None) -> dict:
    '''
    Estimates the nonhomogeneous Poisson process intensity function from grouped distances with a nested Dirichlet
    process mixture of Gaussian kernels.

    Args:
      X: (J x P) design matrix for the expected number of observations in each group
      r: (N) distances of all observations
      n_j: (J x 2) integers giving the start index in r and number of distances of each group
      d: (G) positive grid on which the intensities are evaluated
      L: component truncation number
      K: intensity cluster truncation number
      J: number of groups
      mu_0: prior mean of the component means
      kappa_0: prior pseudo-count for the component means
      nu_0: prior degrees of freedom for the component variances
      sigma_0: prior scale of the component variances
      a_alpha, b_alpha: shape and scale of the gamma prior on alpha
      a_rho, b_rho: shape and scale of the gamma prior on rho
      iter_max: total number of iterations
      warm_up: number of burn-in iterations
      thin: keep every thin-th iteration after warm_up
      seed: seed for the chain's random number generator
      chain: chain label (only used for printing progress)
      num_posterior_samples: expected number of stored samples. If given, it must equal (iter_max - warm_up) // thin.
      proposal_scale: random-walk scale for beta. Default is 2.4/sqrt(P)
      prior_precision: precision of the Gaussian prior on beta
      print_every: print progress every print_every iterations. None for no output.
    Returns:
      dict of posterior samples (one row per stored iteration) and the co-clustering probability matrix
    Raises:
      ValueError: if num_posterior_samples does not match the iteration settings
      NumericalDomainError: if cluster or component probabilities underflow to zero
    '''
    X   = np.atleast_2d(np.asarray(X, dtype=float))
    r   = np.asarray(r, dtype=float).flatten()
    n_j = np.asarray(n_j, dtype=int).reshape((-1, 2))
    d   = np.asarray(d, dtype=float).flatten()
    L = int(L)
    K = int(K)
    J = int(J)
    P = X.shape[1]

    S = num_retained_samples(iter_max, warm_up, thin)
    if((num_posterior_samples is not None) and (int(num_posterior_samples) != S)):
        raise ValueError("num_posterior_samples (" + str(num_posterior_samples) + ") does not match (iter_max - warm_up) // thin = " + str(S))

    state = initialize_chain_state(L, K, J, r.size, P, seed, mu_0, kappa_0, sigma_0, a_alpha, b_alpha, a_rho, b_rho)
    alpha_prior = state.alpha
    rho_prior   = state.rho

    accumulator = SampleAccumulator(d, J, r.size, L, K, P, S, warm_up, thin)
    num_accepted = 0

    if(print_every is not None):
        print("Beginning Sampling")
        print("-" * 70)
    for iter_ix in range(1, int(iter_max) + 1):
        print_progress(iter_ix, warm_up, iter_max, chain, print_every)

        num_accepted += run_iteration(state, X, r, n_j, mu_0, kappa_0, nu_0, sigma_0, a_alpha, b_alpha, a_rho, b_rho,
                                      proposal_scale=proposal_scale, prior_precision=prior_precision)

        if(accumulator.is_sample_iteration(iter_ix)):
            accumulator.record(state)

    samples = accumulator.finalize()
    samples["alpha_prior"] = alpha_prior
    samples["rho_prior"]   = rho_prior
    samples["acceptance_rate"] = num_accepted / max(int(iter_max), 1)
    samples["chain"] = chain
    return samples;
