"""Deep Belief Network Training System.

A layer-wise deep belief network featuring:
- Unsupervised pretraining, with a memory-saving big batch mode
- Label-augmented training of the top layer
- Backpropagation fine-tuning through Keras
- SVM classification on extracted features
- Training monitoring via watchers, logging and SQLite

The network only depends on the Layer interface, so any layer implementing
it can be stacked.
"""

__version__ = "1.0.0"
__author__ = "Deep Belief Team"

from deepbelief.config import NetworkConfig, RBMConfig
from deepbelief.layers import RBM, MaxPoolingLayer, AveragePoolingLayer
from deepbelief.network import DeepBeliefNetwork
from deepbelief.tracking import Watcher, LoggingWatcher, DatabaseWatcher, CompositeWatcher

__all__ = [
    'NetworkConfig',
    'RBMConfig',
    'DeepBeliefNetwork',
    'RBM',
    'MaxPoolingLayer',
    'AveragePoolingLayer',
    'Watcher',
    'LoggingWatcher',
    'DatabaseWatcher',
    'CompositeWatcher'
]
