"""
This file stores the Scheduler, which fans sampler work out over a fixed pool
of workers.

Work units (MCMC chains or SMC particles) each own their tree and their random
stream, so the assignment of units to workers has no effect on the numbers
produced. The only synchronization the scheduler provides is the join at the
end of every `map` call. SMC relies on it as its generation barrier, and MCMC
uses it only to collect results.
"""

import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from multiprocessing.pool import ThreadPool
from typing import Any

from tqdm.auto import tqdm

from arboreal.mixins import SchedulerError, logger
from arboreal.sampler.MCMCChain import ChainSample, MCMCChain
from arboreal.sampler.SMCPopulation import GenerationResult, SMCPopulation


class Scheduler:
    """
    A fixed-size worker pool for advancing chains and particle populations.

    Tree mutation and likelihood evaluation are CPU-bound and never suspend,
    and user-supplied likelihoods are often closures that cannot be pickled.
    Workers are therefore threads sharing the caller's memory, but each unit
    is only ever touched by one worker at a time.

    Args:
        n_workers: Number of workers. With a single worker all work runs
            inline in the calling thread.
        progress: Whether to display tqdm progress bars.
    """

    def __init__(self, n_workers: int = 1, progress: bool = False):
        if n_workers < 1:
            raise SchedulerError("`n_workers` must be a positive integer.")
        self.n_workers = n_workers
        self.progress = progress

    def map(self, fn: Callable[[Any], Any], units: Iterable[Any], desc: str | None = None) -> list[Any]:
        """Applies ``fn`` to every unit and waits for all of them.

        Args:
            fn: Per-unit computation.
            units: The work units.
            desc: Optional progress bar description.

        Returns:
            The results, in the same order as ``units``.

        Raises:
            SchedulerError if any unit fails. The original exception is
                chained. No unit is still running when it is
                raised.
        """
        units = list(units)
        try:
            if self.n_workers == 1 or len(units) <= 1:
                return [fn(unit) for unit in tqdm(units, desc=desc, disable=not self.progress)]

            # close and join rather than terminate, so no unit is left half done
            pool = ThreadPool(processes=min(self.n_workers, len(units)))
            try:
                return list(
                    tqdm(
                        pool.imap(fn, units),
                        total=len(units),
                        desc=desc,
                        disable=not self.progress,
                    )
                )
            finally:
                pool.close()
                pool.join()
        except Exception as error:
            raise SchedulerError(f"A worker failed: {error!r}") from error

    @logger.namespaced("run_chains")
    def run_chains(
        self,
        chains: Sequence[MCMCChain],
        n_steps: int,
        stop_event: threading.Event | None = None,
        thin: int = 1,
        yield_rejected: bool = False,
    ) -> list[list[ChainSample]]:
        """Runs independent chains to completion.

        There is no barrier between the chains' steps; each chain runs its
        full course on one worker.

        Args:
            chains: The chains to run.
            n_steps: Number of steps for each chain.
            stop_event: Cooperative stop signal shared by all chains.
            thin: Thinning interval passed to :meth:`MCMCChain.run`.
            yield_rejected: Whether to also record states after rejections.

        Returns:
            One list of samples per chain, in the order of ``chains``.
        """
        logger.info(f"Running {len(chains)} chains for {n_steps} steps on {self.n_workers} workers.")

        def run_chain(chain: MCMCChain) -> list[ChainSample]:
            return list(chain.run(n_steps, stop_event=stop_event, thin=thin, yield_rejected=yield_rejected))

        samples = self.map(run_chain, chains, desc="chains")

        for chain in chains:
            logger.info(
                f"Chain {chain.chain_id}: acceptance rate "
                f"{chain.diagnostics.acceptance_rate:.3f}, invalid moves "
                f"{chain.diagnostics.n_invalid_moves}, likelihood failures "
                f"{chain.diagnostics.n_likelihood_failures}"
            )
        return samples

    def run_population(
        self,
        population: SMCPopulation,
        n_generations: int,
        stop_event: threading.Event | None = None,
    ) -> Iterator[GenerationResult]:
        """Lazily advances an SMC population one generation at a time.

        Every particle of a generation is advanced on the pool, and the pool
        is joined before weights are normalized and resampling is decided.
        """
        logger.info(
            f"Running {population.n_particles} particles for {n_generations} "
            f"generations on {self.n_workers} workers."
        )
        yield from population.run(n_generations, stop_event=stop_event, scheduler=self)
