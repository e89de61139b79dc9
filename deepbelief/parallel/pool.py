"""Per-element map strategies.

The network computes one layer's activation for every sample of a batch
through a ParallelMap. Elements are independent; every result is written
to the slot of the same index, so the output order never depends on the
execution order. Both strategies return only once every element is done.
"""

import logging
import multiprocessing
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Optional, Sequence

from deepbelief.config import ParallelConfig

logger = logging.getLogger(__name__)


class ParallelMap:
    """Map a function over a sequence into index-aligned output slots."""

    def map_into(self, fn: Callable, items: Sequence, out) -> None:
        """Compute ``out[i] = fn(items[i])`` for every index.

        Parameters
        ----------
        fn : callable
            Function applied to each element.
        items : sequence
            Input elements (supports ``len`` and indexing).
        out : sequence
            Preallocated output with at least ``len(items)`` slots.
        """
        raise NotImplementedError

    def shutdown(self) -> None:
        pass


class SequentialMap(ParallelMap):
    """Run every element in the calling thread, in order."""

    def map_into(self, fn, items, out):
        for i in range(len(items)):
            out[i] = fn(items[i])


class ThreadPoolMap(ParallelMap):
    """Run elements on a fixed pool of worker threads.

    numpy releases the GIL inside its matrix kernels, so activations of
    different samples do overlap.

    Parameters
    ----------
    n_workers : int or None, default=None
        Number of threads. If None, uses number of CPUs.
    """

    def __init__(self, n_workers: Optional[int] = None):
        if n_workers is None:
            n_workers = multiprocessing.cpu_count()
        self.n_workers = n_workers
        self._executor = None

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.n_workers,
                thread_name_prefix='deepbelief'
            )
        return self._executor

    def map_into(self, fn, items, out):
        executor = self._get_executor()

        def _run(i):
            out[i] = fn(items[i])

        futures = [executor.submit(_run, i) for i in range(len(items))]

        # Synchronous join; the first failure is re-raised once no worker
        # can still write into out
        try:
            for future in futures:
                future.result()
        except Exception:
            for future in futures:
                future.cancel()
            wait(futures)
            raise

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None


def make_parallel_map(config: Optional[ParallelConfig] = None) -> ParallelMap:
    """Select the map strategy from the parallel configuration.

    Parameters
    ----------
    config : ParallelConfig or None
        Parallel configuration. Sequential if None.

    Returns
    -------
    parallel_map : ParallelMap
    """
    if config is not None and config.is_parallel:
        logger.debug(f"Using thread pool map ({config.n_workers or 'all'} workers)")
        return ThreadPoolMap(config.n_workers)
    return SequentialMap()
