"""Training lifecycle observers.

The network reports its progress exclusively through a watcher. Every hook
is called synchronously in the thread that drives training, in this order:

    pretraining_begin
        pretrain_layer            (once per trained layer)
            pretrain_batch        (memory-saving mode, once per big batch)
            epoch_end             (once per layer epoch, unless ignore_sub)
    pretraining_end

    fine_tuning_begin
        fine_tuning_epoch_end
    fine_tuning_end
"""

import logging
import os
import time
import uuid
from datetime import datetime
from typing import List, Optional

import psutil

from deepbelief.tracking.database import TrainingDatabase
from deepbelief.tracking.logger import (
    log_phase_start,
    log_phase_end,
    log_training_progress,
    log_performance_metrics
)


def process_memory_mb() -> float:
    """Resident memory of the current process in MB."""
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / 1024 / 1024


class Watcher:
    """Base watcher, every hook is a no-op.

    Subclasses override the hooks they care about.

    Attributes:
        ignore_sub: If True, layers are trained without forwarding their
            per-epoch progress to this watcher.
    """

    ignore_sub = False

    def pretraining_begin(self, network, max_epochs: int) -> None:
        pass

    def pretrain_layer(self, network, index: int, layer, sample_count: int) -> None:
        pass

    def pretrain_batch(self, network, index: int, batch: int) -> None:
        pass

    def epoch_end(self, layer_index: Optional[int], layer, epoch: int,
                  error: float, momentum: float) -> None:
        pass

    def pretraining_end(self, network) -> None:
        pass

    def fine_tuning_begin(self, network, max_epochs: int) -> None:
        pass

    def fine_tuning_epoch_end(self, network, epoch: int, error: float) -> None:
        pass

    def fine_tuning_end(self, network, error: float) -> None:
        pass


class LoggingWatcher(Watcher):
    """Log training progress, timings and process memory.

    Parameters
    ----------
    logger : logging.Logger, optional
        Destination logger. Defaults to this module's logger.
    log_every : int, default=1
        Log one layer epoch out of ``log_every``.
    """

    def __init__(self, logger: Optional[logging.Logger] = None, log_every: int = 1):
        self.logger = logger or logging.getLogger(__name__)
        self.log_every = max(1, log_every)
        self._pretraining_start = None
        self._layer_start = None
        self._fine_tuning_start = None
        self._fine_tuning_epochs = 0

    def pretraining_begin(self, network, max_epochs: int) -> None:
        self._pretraining_start = time.time()
        log_phase_start(
            self.logger,
            "Pretraining",
            f"{len(network)} layers, {max_epochs} epochs, "
            f"memory-saving={network.config.save_memory}"
        )

    def pretrain_layer(self, network, index: int, layer, sample_count: int) -> None:
        self._layer_start = time.time()
        self.logger.info(
            f"Layer {index}: {layer.display()} on {sample_count} samples "
            f"(memory: {process_memory_mb():.1f} MB)"
        )

    def pretrain_batch(self, network, index: int, batch: int) -> None:
        self.logger.debug(f"Layer {index}: big batch {batch}")

    def epoch_end(self, layer_index, layer, epoch, error, momentum) -> None:
        if (epoch + 1) % self.log_every == 0:
            self.logger.info(
                f"Layer {layer_index} epoch {epoch + 1:4d} | "
                f"Reconstruction error: {error:.6f} | Momentum: {momentum:.2f}"
            )

    def pretraining_end(self, network) -> None:
        elapsed = time.time() - self._pretraining_start if self._pretraining_start else None
        log_performance_metrics(
            self.logger,
            {'parameters': network.parameters(), 'memory_mb': process_memory_mb()},
            prefix="Pretrained network"
        )
        log_phase_end(self.logger, "Pretraining", elapsed)

    def fine_tuning_begin(self, network, max_epochs: int) -> None:
        self._fine_tuning_start = time.time()
        self._fine_tuning_epochs = max_epochs
        log_phase_start(self.logger, "Fine-tuning", f"{max_epochs} epochs")

    def fine_tuning_epoch_end(self, network, epoch: int, error: float) -> None:
        if (epoch + 1) % self.log_every == 0:
            log_training_progress(
                self.logger,
                epoch + 1,
                self._fine_tuning_epochs,
                f"Fine-tuning (error {error:.6f})"
            )

    def fine_tuning_end(self, network, error: float) -> None:
        elapsed = time.time() - self._fine_tuning_start if self._fine_tuning_start else None
        self.logger.info(f"Final error: {error:.6f}")
        log_phase_end(self.logger, "Fine-tuning", elapsed)


class DatabaseWatcher(Watcher):
    """Record training progress in a TrainingDatabase.

    Parameters
    ----------
    database : TrainingDatabase
        Initialized database.
    run_id : str, optional
        Identifier of the run. A random one is generated if omitted.
    """

    def __init__(self, database: TrainingDatabase, run_id: Optional[str] = None):
        self.database = database
        self.run_id = run_id or uuid.uuid4().hex[:16]
        self._max_epochs = None

    def pretraining_begin(self, network, max_epochs: int) -> None:
        self._max_epochs = max_epochs

    def pretrain_layer(self, network, index: int, layer, sample_count: int) -> None:
        self.database.insert_layer({
            'timestamp': datetime.now().isoformat(),
            'run_id': self.run_id,
            'layer_index': index,
            'layer_type': type(layer).__name__,
            'input_size': layer.input_size,
            'output_size': layer.output_size,
            'sample_count': sample_count,
            'max_epochs': self._max_epochs
        })

    def epoch_end(self, layer_index, layer, epoch, error, momentum) -> None:
        self.database.insert_epoch({
            'timestamp': datetime.now().isoformat(),
            'run_id': self.run_id,
            'layer_index': -1 if layer_index is None else layer_index,
            'epoch': epoch,
            'reconstruction_error': float(error),
            'momentum': float(momentum)
        })

    def fine_tuning_epoch_end(self, network, epoch: int, error: float) -> None:
        self.database.insert_finetune_epoch({
            'timestamp': datetime.now().isoformat(),
            'run_id': self.run_id,
            'epoch': epoch,
            'error': float(error)
        })


class CompositeWatcher(Watcher):
    """Forward every hook to several watchers, in order."""

    def __init__(self, watchers: List[Watcher]):
        self.watchers = list(watchers)

    @property
    def ignore_sub(self):
        return all(w.ignore_sub for w in self.watchers)

    def pretraining_begin(self, network, max_epochs):
        for w in self.watchers:
            w.pretraining_begin(network, max_epochs)

    def pretrain_layer(self, network, index, layer, sample_count):
        for w in self.watchers:
            w.pretrain_layer(network, index, layer, sample_count)

    def pretrain_batch(self, network, index, batch):
        for w in self.watchers:
            w.pretrain_batch(network, index, batch)

    def epoch_end(self, layer_index, layer, epoch, error, momentum):
        for w in self.watchers:
            if not w.ignore_sub:
                w.epoch_end(layer_index, layer, epoch, error, momentum)

    def pretraining_end(self, network):
        for w in self.watchers:
            w.pretraining_end(network)

    def fine_tuning_begin(self, network, max_epochs):
        for w in self.watchers:
            w.fine_tuning_begin(network, max_epochs)

    def fine_tuning_epoch_end(self, network, epoch, error):
        for w in self.watchers:
            w.fine_tuning_epoch_end(network, epoch, error)

    def fine_tuning_end(self, network, error):
        for w in self.watchers:
            w.fine_tuning_end(network, error)
