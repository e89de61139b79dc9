"""Restricted Boltzmann Machine layer.

Binary hidden units on top of binary or gaussian visible units, trained
with contrastive divergence by :class:`deepbelief.layers.trainer.RBMTrainer`.
"""

from typing import Optional

import numpy as np

from deepbelief.config import RBMConfig
from deepbelief.layers.base import Layer
from deepbelief.layers.trainer import RBMTrainer


def sigmoid(x: np.ndarray) -> np.ndarray:
    """Logistic function, written with tanh to stay finite for large |x|."""
    return 0.5 * (1.0 + np.tanh(0.5 * x))


class RBM(Layer):
    """Restricted Boltzmann Machine.

    Parameters
    ----------
    n_visible : int
        Number of visible units (input width).
    n_hidden : int
        Number of hidden units (output width).
    config : RBMConfig, optional
        Learning rule hyperparameters. Defaults to ``RBMConfig()``.
    random_state : int, optional
        Seed of the generator used for initial weights and Gibbs sampling.

    Attributes
    ----------
    W : np.ndarray
        Weights, shape (n_visible, n_hidden).
    visible_bias : np.ndarray
        Shape (n_visible,).
    hidden_bias : np.ndarray
        Shape (n_hidden,).
    """

    def __init__(
        self,
        n_visible: int,
        n_hidden: int,
        config: Optional[RBMConfig] = None,
        random_state: Optional[int] = None
    ):
        if n_visible <= 0 or n_hidden <= 0:
            raise ValueError(f"RBM sizes must be positive, got {n_visible} -> {n_hidden}")

        self.config = config if config is not None else RBMConfig()
        self.config.validate()

        self.n_visible = n_visible
        self.n_hidden = n_hidden
        self.rng = np.random.RandomState(random_state)

        self.W = self.rng.normal(0.0, self.config.init_scale, size=(n_visible, n_hidden))
        self.visible_bias = np.zeros(n_visible)
        self.hidden_bias = np.zeros(n_hidden)

    @property
    def input_size(self) -> int:
        return self.n_visible

    @property
    def output_size(self) -> int:
        return self.n_hidden

    @property
    def batch_size(self) -> int:
        return self.config.batch_size

    def parameters(self) -> int:
        return self.W.size + self.visible_bias.size + self.hidden_bias.size

    def display(self) -> str:
        return f"RBM({self.config.visible_unit}): {self.n_visible} -> {self.n_hidden}"

    def activate_hidden(self, visible):
        return sigmoid(np.dot(visible, self.W) + self.hidden_bias)

    def activate_visible(self, hidden):
        activation = np.dot(hidden, self.W.T) + self.visible_bias
        if self.config.visible_unit == 'gaussian':
            return activation
        return sigmoid(activation)

    def sample_hidden(self, probabilities: np.ndarray) -> np.ndarray:
        """Draw binary hidden states from their probabilities."""
        return (self.rng.random_sample(probabilities.shape) < probabilities).astype(np.float64)

    def train(self, data, max_epochs, watcher=None, layer_index=None):
        """Train with contrastive divergence on the full data.

        Each epoch walks the data in order, one mini-batch of
        ``batch_size`` samples at a time.

        Returns
        -------
        error : float
            Reconstruction error of the last epoch.
        """
        data = np.asarray(data, dtype=np.float64)

        trainer = self.make_trainer(watcher=watcher, layer_index=layer_index)
        trainer.init_training(self)

        for epoch in range(max_epochs):
            context = trainer.make_context()
            trainer.init_epoch(epoch, self)
            trainer.train_sub(data, context, self)
            trainer.finalize_epoch(epoch, context, self)

        return trainer.finalize_training(self)

    def make_trainer(self, watcher=None, layer_index=None):
        return RBMTrainer(watcher=watcher, layer_index=layer_index)

    def store(self, fh):
        np.save(fh, self.W, allow_pickle=False)
        np.save(fh, self.visible_bias, allow_pickle=False)
        np.save(fh, self.hidden_bias, allow_pickle=False)

    def load(self, fh):
        W = np.load(fh, allow_pickle=False)
        visible_bias = np.load(fh, allow_pickle=False)
        hidden_bias = np.load(fh, allow_pickle=False)

        assert W.shape == (self.n_visible, self.n_hidden), \
            f"Stored weights have shape {W.shape}, expected {(self.n_visible, self.n_hidden)}"

        self.W = W
        self.visible_bias = visible_bias
        self.hidden_bias = hidden_bias
