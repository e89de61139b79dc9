"""Layers that can be stacked into a deep belief network.

This subpackage provides:
- The common Layer interface
- The RBM layer and its contrastive divergence trainer
- Parameter-free pooling layers
"""

from .base import Layer
from .rbm import RBM, sigmoid
from .trainer import RBMTrainer, TrainingContext
from .pooling import PoolingLayer, MaxPoolingLayer, AveragePoolingLayer

__all__ = [
    'Layer',
    'RBM',
    'sigmoid',
    'RBMTrainer',
    'TrainingContext',
    'PoolingLayer',
    'MaxPoolingLayer',
    'AveragePoolingLayer'
]
