"""Parameter-free pooling layers.

A pooling layer reduces consecutive groups of ``pool_size`` units to one
value. It is skipped by every training path and has nothing to store.
"""

import numpy as np

from deepbelief.layers.base import Layer


class PoolingLayer(Layer):
    """Base of the pooling layers.

    Parameters
    ----------
    input_size : int
        Input width, a multiple of ``pool_size``.
    pool_size : int
        Number of consecutive units reduced to one output.
    """

    is_pooling = True
    pretrain_last = False

    def __init__(self, input_size: int, pool_size: int):
        if pool_size <= 0 or input_size <= 0:
            raise ValueError("input_size and pool_size must be positive")
        if input_size % pool_size != 0:
            raise ValueError(
                f"input_size ({input_size}) must be a multiple of pool_size ({pool_size})"
            )

        self._input_size = input_size
        self.pool_size = pool_size

    @property
    def input_size(self) -> int:
        return self._input_size

    @property
    def output_size(self) -> int:
        return self._input_size // self.pool_size

    def display(self) -> str:
        return f"{type(self).__name__}({self.pool_size}): {self.input_size} -> {self.output_size}"

    def _reduce(self, grouped: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def activate_hidden(self, visible):
        visible = np.asarray(visible, dtype=np.float64)
        grouped = visible.reshape(visible.shape[:-1] + (self.output_size, self.pool_size))
        return self._reduce(grouped)

    def train(self, data, max_epochs, watcher=None, layer_index=None):
        return None


class MaxPoolingLayer(PoolingLayer):
    def _reduce(self, grouped):
        return np.max(grouped, axis=-1)


class AveragePoolingLayer(PoolingLayer):
    def _reduce(self, grouped):
        return np.mean(grouped, axis=-1)
