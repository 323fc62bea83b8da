import numpy as np;
from numpy.typing import ArrayLike
import arviz as az
import pandas as pd

import warnings

from ndNHPP.modelFitting import nd_nhpp_fit, num_retained_samples
from ndNHPP import postProcessing


class ndNHPP_priorParams():
    def __init__(self):
        # defaults:
        self.mu = {"mean" : 0.0,
                   "pseudo_count" : 1.0,
                   "df" : 1,
                   "scale" : 1.0} # normal / scaled-inverse-chi^2 prior for the kernel means and variances

        self.alpha = {"shape" : 1.0,
                      "scale" : 1.0} # gamma prior

        self.rho = {"shape" : 1.0,
                    "scale" : 1.0} # gamma prior

        self.beta = {"precision" : 0.04} # zero mean normal prior

    def to_dict(self) -> dict:
        return {"mu_0" : self.get_mu_mean(),
                "kappa_0" : self.get_mu_pseudo_count(),
                "nu_0" : self.get_tau_df(),
                "sigma_0" : self.get_tau_scale(),
                "a_alpha" : self.get_alpha_shape(),
                "b_alpha" : self.get_alpha_scale(),
                "a_rho" : self.get_rho_shape(),
                "b_rho" : self.get_rho_scale(),
                "prior_precision" : self.get_beta_precision()}

    def set_mu_mean(self, mean : float) -> None:
        self.mu["mean"] = float(mean);
    def get_mu_mean(self) -> float:
        return self.mu["mean"];
    def set_mu_pseudo_count(self, kappa : float) -> None:
        assert kappa > 0, "pseudo_count must be positive"
        self.mu["pseudo_count"] = float(kappa);
    def get_mu_pseudo_count(self) -> float:
        return self.mu["pseudo_count"];

    def set_tau_df(self, nu : int) -> None:
        assert nu > 0, "degrees of freedom must be positive"
        self.mu["df"] = nu;
    def get_tau_df(self) -> int:
        return self.mu["df"];
    def set_tau_scale(self, scale : float) -> None:
        assert scale > 0, "scale must be positive"
        self.mu["scale"] = float(scale);
    def get_tau_scale(self) -> float:
        return self.mu["scale"];

    def set_alpha_shape(self, shape : float) -> None:
        assert shape > 0, "shape must be positive"
        self.alpha["shape"] = float(shape);
    def get_alpha_shape(self) -> float:
        return self.alpha["shape"];
    def set_alpha_scale(self, scale : float) -> None:
        assert scale > 0, "scale must be positive"
        self.alpha["scale"] = float(scale);
    def get_alpha_scale(self) -> float:
        return self.alpha["scale"];

    def set_rho_shape(self, shape : float) -> None:
        assert shape > 0, "shape must be positive"
        self.rho["shape"] = float(shape);
    def get_rho_shape(self) -> float:
        return self.rho["shape"];
    def set_rho_scale(self, scale : float) -> None:
        assert scale > 0, "scale must be positive"
        self.rho["scale"] = float(scale);
    def get_rho_scale(self) -> float:
        return self.rho["scale"];

    def set_beta_precision(self, precision : float) -> None:
        assert precision >= 0, "precision must be non-negative"
        self.beta["precision"] = float(precision);
    def get_beta_precision(self) -> float:
        return self.beta["precision"];


def build_group_index(distances : list[ArrayLike]) -> tuple[np.ndarray, np.ndarray]:
    '''
    Concatenates the distances of each group into one vector and builds the (J x 2) table of start offsets and lengths.
    '''
    distances = [np.array(rr, dtype=float).flatten() for rr in distances]
    lengths = np.array([rr.size for rr in distances], dtype=int)
    starts  = np.concatenate([[0], np.cumsum(lengths)[:-1]]).astype(int)
    r = np.concatenate(distances + [np.zeros((0))])
    return (r, np.stack([starts, lengths], axis=1));


class ndNHPPModel():
    '''
    Nested Dirichlet process mixture model for grouped distances from a nonhomogeneous Poisson process.

    Groups are clustered into K intensity clusters. Each cluster's (normalized) intensity is a mixture of L Gaussian kernels.
    The number of distances observed in group j is Poisson with log mean X_j . beta.
    '''
    def __init__(self, distances : list[ArrayLike] | ArrayLike, X : ArrayLike = None, grid : ArrayLike = None,
                 L : int = 5, K : int = 5, num_grid_points : int = 200):
        assert len(distances) > 0, "distances cannot be empty"
        if(np.isscalar(distances[0])):
            distances = [distances];  # single group
        self.distances = [np.array(rr, dtype=float).flatten() for rr in distances]
        assert np.all([np.all(rr > 0) for rr in self.distances]), "distances must be positive"
        if(np.any(self.counts == 0)):
            warnings.warn("Groups with no distances found: " + str(np.where(self.counts == 0)[0]))

        if(X is None):
            X = np.ones((self.J, 1)) # intercept only
        X = np.array(X, dtype=float)
        if(X.ndim == 1):
            X = X[:,np.newaxis]
        assert X.shape[0] == self.J, "X must have one row per group"
        self.X = X

        if(grid is None):
            r_max = np.max(np.concatenate(self.distances + [np.ones((1))]))
            grid = np.linspace(0, r_max, int(num_grid_points) + 1)[1:]
        self.grid = np.array(grid, dtype=float).flatten()
        assert np.all(self.grid > 0), "grid must be positive"
        assert np.all(np.diff(self.grid) > 0), "grid must be ascending"

        self.L = L
        self.K = K

        self.priors = ndNHPP_priorParams();
        self.fit = None;
        self.fit_settings = None;

    @property
    def L(self) -> int:
        return self._L;
    @L.setter
    def L(self, L : int) -> None:
        L = int(L)
        assert L > 0, "L must be a positive integer"
        self._L = L

    @property
    def K(self) -> int:
        return self._K;
    @K.setter
    def K(self, K : int) -> None:
        K = int(K)
        assert K > 0, "K must be a positive integer"
        self._K = K

    @property
    def J(self) -> int:
        return len(self.distances);

    @property
    def N(self) -> int:
        return int(np.sum(self.counts));

    @property
    def P(self) -> int:
        return self.X.shape[1];

    @property
    def counts(self) -> np.ndarray:
        return np.array([rr.size for rr in self.distances], dtype=int);

    @property
    def num_chains(self) -> int:
        if(self.fit is None):
            return 0;
        return len(self.fit);

    def to_dict(self) -> dict:
        r, n_j = build_group_index(self.distances)
        data = {"X" : self.X,
                "r" : r,
                "n_j" : n_j,
                "d" : self.grid,
                "L" : self.L,
                "K" : self.K,
                "J" : self.J}
        data.update(self.priors.to_dict())
        return data

    @property
    def data(self):
        return self.to_dict();

    def fit_model(self, num_chains : int = 4, iter_max : int = 2000, warm_up : int = 1000, thin : int = 1,
                  random_seed : int = None, print_every : int = None, proposal_scale : float = None) -> list[dict]:
        '''
        Runs independent chains. Chain cc uses seed random_seed + cc.

        Returns:
          list of sample dicts (one per chain) from nd_nhpp_fit
        '''
        num_chains = int(num_chains)
        iter_max = int(iter_max)
        warm_up = int(warm_up)
        thin = int(thin)
        assert num_chains > 0, "must have positive number of chains for sampling"
        assert iter_max > 0, "must have positive number of iterations"
        assert warm_up >= 0, "warm_up must be non-negative"
        assert thin > 0, "thin must be positive"

        num_posterior_samples = num_retained_samples(iter_max, warm_up, thin)
        if(num_posterior_samples == 0):
            raise ValueError("no samples would be kept: iter_max must be at least warm_up + thin")

        if(random_seed is None):
            random_seed = int(np.random.default_rng().integers(2**31 - num_chains))

        data = self.data
        self.fit = [nd_nhpp_fit(**data, iter_max=iter_max, warm_up=warm_up, thin=thin, seed=random_seed + cc, chain=cc,
                                num_posterior_samples=num_posterior_samples, proposal_scale=proposal_scale, print_every=print_every)
                        for cc in range(num_chains)]
        self.fit_settings = {"iter_max" : iter_max, "warm_up" : warm_up, "thin" : thin, "random_seed" : random_seed}
        return self.fit;

    def _check_fit(self) -> None:
        if(self.fit is None):
            raise ValueError("Model not fit yet!")

    def _stack_chains(self, key : str) -> np.ndarray:
        return np.stack([samples[key] for samples in self.fit], axis=0);

    def to_inference_data(self) -> az.InferenceData:
        '''
        Scalar and low dimensional posterior samples as an arviz InferenceData object (dims: chain, draw, ...).
        '''
        self._check_fit()
        posterior = {"alpha" : self._stack_chains("alpha_samples")[:,:,0],
                     "rho"   : self._stack_chains("rho_samples")[:,:,0],
                     "beta"  : self._stack_chains("beta_samples"),
                     "pi"    : self._stack_chains("pi_samples"),
                     "global_intensity" : self._stack_chains("global_intensity")}
        coords = {"covariate" : np.arange(self.P), "cluster" : np.arange(self.K), "distance" : self.grid}
        dims = {"beta" : ["covariate"], "pi" : ["cluster"], "global_intensity" : ["distance"]}
        return az.from_dict(posterior=posterior, coords=coords, dims=dims);

    def fit_summary(self) -> pd.DataFrame:
        '''
        Posterior statistics of the concentration parameters and regression coefficients.
        '''
        self._check_fit()
        func_dict = {
            "median": np.median,
            "2.5%": lambda x: np.percentile(x, 2.5),
            "25.0%": lambda x: np.percentile(x, 25.0),
            "75.0%": lambda x: np.percentile(x, 75.0),
            "97.5%": lambda x: np.percentile(x, 97.5),
        }
        sum_df = az.summary(self.to_inference_data(), var_names=["alpha", "rho", "beta"], kind="stats", stat_funcs=func_dict)
        sum_df["acceptance_rate_beta"] = np.mean([samples["acceptance_rate"] for samples in self.fit])
        return sum_df.sort_index()

    def cluster_pair_probability(self) -> np.ndarray:
        '''
        Co-clustering probability of each pair of groups, averaged over chains. Full symmetric matrix with unit diagonal.
        '''
        self._check_fit()
        return postProcessing.symmetric_pair_probability(np.mean(self._stack_chains("cluster_pair_probability"), axis=0));

    def point_partition(self, tau : float = 0.5) -> tuple[np.ndarray, float]:
        '''
        Point estimate of the group clustering: the sampled partition (over all chains) that minimizes Green's loss.
        '''
        self._check_fit()
        cluster_assignment = np.concatenate([samples["cluster_assignment"] for samples in self.fit], axis=0)
        return postProcessing.point_partition(cluster_assignment, self.cluster_pair_probability(), tau=tau);

    def intensity_bands(self, quantiles : ArrayLike = (0.025, 0.5, 0.975), cluster : int = None) -> pd.DataFrame:
        '''
        Posterior mean and quantiles of the pooled intensity (or of one cluster's intensity) on the grid.
        '''
        self._check_fit()
        if(cluster is None):
            intensity_samples = np.concatenate([samples["global_intensity"] for samples in self.fit], axis=0)
        else:
            assert 0 <= cluster < self.K, "cluster must be in [0, K)"
            intensity_samples = np.concatenate([postProcessing.cluster_intensities(samples["intensities"], self.K)[:,cluster,:]
                                                    for samples in self.fit], axis=0)
        return postProcessing.intensity_bands(intensity_samples, self.grid, quantiles=quantiles);
