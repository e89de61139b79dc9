"""Supervised fine-tuning of pretrained networks."""

from .backprop import BackpropFineTuner

__all__ = ['BackpropFineTuner']
