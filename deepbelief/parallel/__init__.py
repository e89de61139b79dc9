"""Parallel execution for per-sample layer activations.

This package provides the sequential and thread pool map strategies used
by the network, and the factory that selects one from configuration.
"""

from .pool import (
    ParallelMap,
    SequentialMap,
    ThreadPoolMap,
    make_parallel_map
)

__all__ = [
    'ParallelMap',
    'SequentialMap',
    'ThreadPoolMap',
    'make_parallel_map'
]
