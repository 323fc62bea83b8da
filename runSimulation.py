# %%
import ndNHPP.simulations
import ndNHPP.modelBuilder
import numpy as np
import os
import pickle
import pandas as pd
import sys

simulation_id = int(sys.argv[1]);
run_num = int(sys.argv[2])
if(len(sys.argv) > 3):
    run_num_end = int(sys.argv[3])+1
else:
    run_num_end = run_num+1
run_range = range(run_num,run_num_end)

print("Running simulation " + str(simulation_id))
print("Run index " + str(run_num) + " to " + str(run_num_end-1))


# %%
results_directory = "Results/Simulations"
if(not os.path.exists(results_directory)):
    os.makedirs(results_directory)

overwrite_existing_results = False

num_chains = 4
iter_max = 4000
warm_up = 2000
thin = 2
print_every = 500

if(simulation_id == 0):
    num_groups = 50
    cluster_means = [[1.0, 3.0], [6.0]] # distances
    cluster_sds   = [[0.5, 0.5], [1.5]]
    cluster_probabilities = [0.5, 0.5]
    beta = [np.log(30)] # intercept only: 30 points per group on average
    covariate = False
    L = 5
    K = 5
elif(simulation_id == 1):
    num_groups = 100
    cluster_means = [[1.0, 3.0], [6.0], [2.0, 8.0]]
    cluster_sds   = [[0.5, 0.5], [1.5], [0.5, 1.0]]
    cluster_probabilities = [0.4, 0.4, 0.2]
    beta = [np.log(20), 0.5]
    covariate = True
    L = 5
    K = 8
elif(simulation_id == 2):
    num_groups = 30
    cluster_means = [[4.0]]
    cluster_sds   = [[1.0]]
    cluster_probabilities = [1.0]
    beta = [np.log(50)]
    covariate = False
    L = 3
    K = 5
else:
    raise NotImplementedError("No sim found")

mu_0 = np.mean(np.concatenate(cluster_means))


# %%
for run_idx in run_range:
    fit_file = f"{results_directory}/sim_{simulation_id}_run_{run_idx}.pkl"
    fit_summary_file = f"{results_directory}/sim_summary_{simulation_id}_run_{run_idx}.pkl"

    if((not os.path.isfile(fit_file)) or (not os.path.isfile(fit_summary_file)) or overwrite_existing_results):
        sim_seed = (simulation_id+1) * 10000 + run_idx*100
        fit_seed = (simulation_id+1) * 10000 + run_idx*100 + 50
        sim_rng = np.random.Generator(np.random.MT19937(sim_seed))

        if(covariate):
            X = np.column_stack([np.ones(num_groups), sim_rng.normal(size=num_groups)])
        else:
            X = None
        data = ndNHPP.simulations.simulate_groups(num_groups, cluster_means, cluster_sds,
                                                  cluster_probabilities=cluster_probabilities, X=X, beta=beta, rng=sim_rng)
        print(f"RUN {run_idx}: {np.sum(data['counts'])} distances in {num_groups} groups")

        model = ndNHPP.modelBuilder.ndNHPPModel(data["distances"], X=data["X"], L=L, K=K)
        model.priors.set_mu_mean(mu_0)
        model.fit_model(num_chains=num_chains, iter_max=iter_max, warm_up=warm_up, thin=thin, random_seed=fit_seed, print_every=print_every)

        summary_df = model.fit_summary()
        summary_df["run"] = run_idx
        summary_df["simulation"] = simulation_id
        true_param = {f"beta[{ii}]" : bb for ii, bb in enumerate(beta)}
        summary_df["true"] = pd.Series(true_param)

        partition, loss = model.point_partition()
        results = {"fit" : model.fit,
                   "grid" : model.grid,
                   "true_cluster" : data["cluster"],
                   "point_partition" : partition,
                   "point_partition_loss" : loss,
                   "cluster_pair_probability" : model.cluster_pair_probability(),
                   "global_intensity" : model.intensity_bands()}
        with open(fit_file, "wb") as results_file:
            pickle.dump(results, results_file)
        summary_df.to_pickle(fit_summary_file)
    else:
        print("Fit files found: not overriding")
