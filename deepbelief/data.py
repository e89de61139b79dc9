"""Synthetic datasets for examples and tests."""

from typing import Tuple

import numpy as np


def make_pattern_dataset(
    n_samples: int = 100,
    n_features: int = 16,
    random_state: int = 315
) -> Tuple[np.ndarray, np.ndarray]:
    """Two classes of noisy binary patterns.

    Units of class 0 samples are on with probability 0.75, units of class 1
    samples with probability 0.25.

    Parameters
    ----------
    n_samples : int, default=100
        Total number of samples, split evenly between the classes.
    n_features : int, default=16
        Width of each sample.
    random_state : int, default=315
        Seed of the generator.

    Returns
    -------
    X : np.ndarray
        (n_samples, n_features) matrix of 0.0 / 1.0 values.
    y : np.ndarray
        (n_samples,) integer labels, shuffled together with X.
    """
    assert n_samples > 0, "n_samples must be positive"
    assert n_features > 0, "n_features must be positive"

    rng = np.random.RandomState(random_state)

    y = np.arange(n_samples) % 2
    probabilities = np.where(y == 0, 0.75, 0.25)[:, np.newaxis]
    X = (rng.random_sample((n_samples, n_features)) < probabilities).astype(np.float64)

    order = rng.permutation(n_samples)
    return X[order], y[order]
