"""Common interface of the layers stacked in a network.

A layer is one stage of the stack: it has input and output widths, a
training rule and an activation rule. The network only relies on the
members defined here and never on the concrete layer type.
"""

from typing import Optional

import numpy as np


class Layer:
    """Base class of every stackable layer.

    Attributes:
        is_pooling: Parameter-free pass-through layer (never trained or stored)
        pretrain_last: Whether the layer is pretrained when it is the top layer
    """

    is_pooling = False
    pretrain_last = True

    @property
    def input_size(self) -> int:
        raise NotImplementedError

    @property
    def output_size(self) -> int:
        raise NotImplementedError

    @property
    def batch_size(self) -> int:
        """Preferred mini-batch size."""
        return 1

    def parameters(self) -> int:
        """Number of trainable parameters."""
        return 0

    def display(self) -> str:
        return f"{type(self).__name__}: {self.input_size} -> {self.output_size}"

    # Data conversion

    def convert_input(self, samples) -> np.ndarray:
        """Convert raw samples into a (n_samples, input_size) float matrix."""
        data = np.asarray(samples, dtype=np.float64)
        if len(data) == 0:
            return np.zeros((0, self.input_size))

        data = data.reshape(len(data), -1)
        assert data.shape[1] == self.input_size, \
            f"Samples have {data.shape[1]} values, layer expects {self.input_size}"
        return data

    def convert_sample(self, sample) -> np.ndarray:
        """Convert one raw sample into a flat float vector."""
        data = np.asarray(sample, dtype=np.float64).ravel()
        assert data.size == self.input_size, \
            f"Sample has {data.size} values, layer expects {self.input_size}"
        return data

    def prepare_output(self, n_samples: int, is_last: bool = False, labels: int = 0) -> np.ndarray:
        """Allocate the output buffer for ``n_samples`` activations.

        When ``is_last`` is set, ``labels`` extra columns are reserved for
        the label units of the layer above.
        """
        width = self.output_size + (labels if is_last else 0)
        return np.zeros((n_samples, width))

    def prepare_one_output(self, is_last: bool = False, labels: int = 0) -> np.ndarray:
        width = self.output_size + (labels if is_last else 0)
        return np.zeros(width)

    # Activation

    def activate_hidden(self, visible: np.ndarray) -> np.ndarray:
        """Output probabilities for one sample or a matrix of samples."""
        raise NotImplementedError

    def activate_visible(self, hidden: np.ndarray) -> np.ndarray:
        """Reconstruct the input from output probabilities."""
        raise NotImplementedError(f"{type(self).__name__} cannot reconstruct its input")

    def activate_one(self, sample: np.ndarray) -> np.ndarray:
        return self.activate_hidden(sample)

    def activate_many(self, data: np.ndarray) -> np.ndarray:
        return self.activate_hidden(np.asarray(data, dtype=np.float64))

    # Training and persistence

    def train(self, data, max_epochs: int, watcher=None, layer_index: Optional[int] = None):
        """Train on the full data for ``max_epochs`` epochs."""
        raise NotImplementedError

    def make_trainer(self, watcher=None, layer_index: Optional[int] = None):
        """Step-wise trainer (init_training / init_epoch / train_sub /
        finalize_epoch / finalize_training) used by memory-saving pretraining."""
        raise NotImplementedError(f"{type(self).__name__} has no step-wise trainer")

    def store(self, fh) -> None:
        pass

    def load(self, fh) -> None:
        pass
