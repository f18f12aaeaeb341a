"""
Tests for arboreal/sampler/Scheduler.py
"""

import threading
import time

import pytest

from arboreal.data import create_star_tree, topology_key
from arboreal.mixins import SchedulerError
from arboreal.sampler import ChainState, MCMCChain, Scheduler, SMCPopulation

MOVE_WEIGHTS = {"swap_labels": 1.0, "prune_regraft": 1.0}


@pytest.fixture
def star():
    tree = create_star_tree(0, [1, 2, 3])
    for node in (1, 2, 3):
        tree.set_label(node, f"cell{node}")
    return tree


def likelihood(tree):
    return -0.5 * tree.calculate_height()


def test_map_preserves_order():
    scheduler = Scheduler(n_workers=4)
    assert scheduler.map(lambda x: x * x, range(10)) == [x * x for x in range(10)]
    assert Scheduler().map(lambda x: x + 1, [1, 2]) == [2, 3]
    assert scheduler.map(lambda x: x, []) == []


def test_map_wraps_worker_errors():
    def fail(x):
        if x == 3:
            raise ValueError("bad unit")
        return x

    for n_workers in (1, 4):
        with pytest.raises(SchedulerError) as error:
            Scheduler(n_workers=n_workers).map(fail, range(5))
        assert isinstance(error.value.__cause__, ValueError)


def test_map_failure_waits_for_running_units():
    finished = []

    def work(x):
        if x == 0:
            raise ValueError("bad unit")
        time.sleep(0.05)
        finished.append(x)
        return x

    with pytest.raises(SchedulerError):
        Scheduler(n_workers=4).map(work, range(8))
    assert sorted(finished) == list(range(1, 8))


def test_invalid_worker_count():
    with pytest.raises(SchedulerError):
        Scheduler(n_workers=0)


def test_chains_independent_of_worker_count(star):
    def run(n_workers):
        chains = [
            MCMCChain(star, likelihood, move_weights=MOVE_WEIGHTS, seed=seed, chain_id=seed)
            for seed in range(4)
        ]
        samples = Scheduler(n_workers=n_workers).run_chains(chains, 100, yield_rejected=True)
        return [[(s.chain_id, s.step, topology_key(s.tree)) for s in chain] for chain in samples]

    serial = run(1)
    assert [len(chain) for chain in serial] == [100] * 4
    assert [chain[0][0] for chain in serial] == [0, 1, 2, 3]
    assert run(4) == serial


def test_population_independent_of_worker_count(star):
    def run(n_workers):
        population = SMCPopulation(
            likelihood,
            initial_tree=star,
            n_particles=24,
            move_weights=MOVE_WEIGHTS,
            seed=5,
        )
        summaries = [r.summary for r in Scheduler(n_workers=n_workers).run_population(population, 6)]
        return summaries, [topology_key(p.tree) for p in population.particles]

    serial = run(1)
    assert len(serial[0]) == 6
    assert run(3) == serial


def test_run_chains_stop_event(star):
    stop_event = threading.Event()
    stop_event.set()
    chains = [MCMCChain(star, likelihood, seed=seed, chain_id=seed) for seed in range(3)]

    samples = Scheduler(n_workers=2).run_chains(chains, 50, stop_event=stop_event)
    assert samples == [[], [], []]
    assert all(chain.state == ChainState.STOPPED for chain in chains)
    assert all(chain.n_steps == 0 for chain in chains)


def test_run_population_failure_propagates(star):
    def likelihood(tree):
        if tree.calculate_height() > 2:
            raise RuntimeError("likelihood crashed")
        return 0.0

    population = SMCPopulation(
        likelihood,
        initial_tree=star,
        n_particles=8,
        move_weights={"prune_regraft": 1.0},
        seed=0,
    )
    with pytest.raises(SchedulerError):
        list(Scheduler(n_workers=2).run_population(population, 1))
