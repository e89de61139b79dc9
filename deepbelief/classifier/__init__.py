"""Classifier trained on features extracted by a network."""

from .svm import (
    SVMParameters,
    SVMProblem,
    RBFGrid,
    default_svm_parameters,
    make_problem,
    check,
    train,
    predict,
    rbf_grid_search
)

__all__ = [
    'SVMParameters',
    'SVMProblem',
    'RBFGrid',
    'default_svm_parameters',
    'make_problem',
    'check',
    'train',
    'predict',
    'rbf_grid_search'
]
