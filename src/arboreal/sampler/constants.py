"""Stores constants for the sampler module."""

DEFAULT_SAMPLER_PARAMETERS = {
    "general": {
        "verbose": False,
    },
    "mcmc": {
        "n_chains": 4,
        "n_steps": 1000,
        "thin": 1,
    },
    "smc": {
        "n_particles": 100,
        "n_generations": 100,
        "ess_threshold": 0.5,
        "n_moves_per_generation": 1,
    },
    "moves": {
        "add_node": 0.0,
        "remove_leaf": 0.0,
        "swap_labels": 0.5,
        "prune_regraft": 0.5,
    },
}

REQUIRED_GENERAL_PARAMETERS = ["n_workers", "seed"]
