"""Contrastive divergence trainer for RBM layers.

The trainer is driven in steps so that the same update sequence can be
fed either the whole data at once or one big batch at a time:

    trainer.init_training(rbm)
    for epoch in range(max_epochs):
        context = trainer.make_context()
        trainer.init_epoch(epoch, rbm)
        for big_batch in batches:
            trainer.train_sub(big_batch, context, rbm)
        trainer.finalize_epoch(epoch, context, rbm)
    trainer.finalize_training(rbm)

As long as big batches are multiples of the layer batch size, both
ways see exactly the same mini-batches in the same order.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class TrainingContext:
    """Running statistics of one epoch of one layer.

    Attributes:
        error_sum: Sum over samples of the mean squared reconstruction error
        samples: Number of samples seen
        batches: Number of mini-batch updates applied
    """
    error_sum: float = 0.0
    samples: int = 0
    batches: int = 0

    @property
    def reconstruction_error(self) -> float:
        if self.samples == 0:
            return 0.0
        return self.error_sum / self.samples


class RBMTrainer:
    """CD-k with momentum and weight decay.

    Parameters
    ----------
    watcher : Watcher, optional
        Receives ``epoch_end`` after every epoch.
    layer_index : int, optional
        Position of the trained layer, forwarded to the watcher.
    """

    def __init__(self, watcher=None, layer_index: Optional[int] = None):
        self.watcher = watcher
        self.layer_index = layer_index
        self.momentum = 0.0
        self.errors: List[float] = []
        self.w_inc = None
        self.vb_inc = None
        self.hb_inc = None

    def init_training(self, rbm) -> None:
        """Reset the momentum increments before the first epoch."""
        self.w_inc = np.zeros_like(rbm.W)
        self.vb_inc = np.zeros_like(rbm.visible_bias)
        self.hb_inc = np.zeros_like(rbm.hidden_bias)
        self.errors = []

    def make_context(self) -> TrainingContext:
        return TrainingContext()

    def init_epoch(self, epoch: int, rbm) -> None:
        self.momentum = rbm.config.momentum(epoch)

    def train_sub(self, batch: np.ndarray, context: TrainingContext, rbm) -> None:
        """Apply one update per mini-batch of ``batch``."""
        batch = np.asarray(batch, dtype=np.float64)
        step = rbm.batch_size

        for start in range(0, len(batch), step):
            self._update(batch[start:start + step], context, rbm)

    def _update(self, v0: np.ndarray, context: TrainingContext, rbm) -> None:
        cfg = rbm.config
        n = len(v0)

        h0 = rbm.activate_hidden(v0)
        h = rbm.sample_hidden(h0)

        for step in range(cfg.k):
            vk = rbm.activate_visible(h)
            hk = rbm.activate_hidden(vk)
            if step < cfg.k - 1:
                h = rbm.sample_hidden(hk)

        positive = np.dot(v0.T, h0)
        negative = np.dot(vk.T, hk)

        w_grad = (positive - negative) / n - cfg.weight_cost * rbm.W
        vb_grad = np.mean(v0 - vk, axis=0)
        hb_grad = np.mean(h0 - hk, axis=0)

        self.w_inc = self.momentum * self.w_inc + cfg.learning_rate * w_grad
        self.vb_inc = self.momentum * self.vb_inc + cfg.learning_rate * vb_grad
        self.hb_inc = self.momentum * self.hb_inc + cfg.learning_rate * hb_grad

        rbm.W += self.w_inc
        rbm.visible_bias += self.vb_inc
        rbm.hidden_bias += self.hb_inc

        context.error_sum += float(np.sum(np.mean((v0 - vk) ** 2, axis=1)))
        context.samples += n
        context.batches += 1

    def finalize_epoch(self, epoch: int, context: TrainingContext, rbm) -> float:
        error = context.reconstruction_error
        self.errors.append(error)

        logger.debug(
            f"{rbm.display()} epoch {epoch + 1}: error={error:.6f} "
            f"({context.batches} batches, momentum={self.momentum})"
        )

        if self.watcher is not None:
            self.watcher.epoch_end(self.layer_index, rbm, epoch, error, self.momentum)

        return error

    def finalize_training(self, rbm) -> float:
        """Return the reconstruction error of the last epoch."""
        return self.errors[-1] if self.errors else 0.0
