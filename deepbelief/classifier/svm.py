"""Support vector classifier trained on network features.

Thin functional layer over scikit-learn: build a problem from extracted
features, validate it together with the parameters, train, predict and
grid-search the RBF kernel parameters.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Optional, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.model_selection import GridSearchCV, StratifiedKFold
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import MinMaxScaler
from sklearn.svm import SVC

from deepbelief.config import SVMConfig
from deepbelief.tracking.logger import log_warning

logger = logging.getLogger(__name__)

KERNELS = ('rbf', 'linear', 'poly', 'sigmoid')


@dataclass
class SVMParameters:
    """SVC hyperparameters.

    Attributes:
        kernel: Kernel name
        C: Regularization parameter
        gamma: Kernel coefficient (float or 'scale'/'auto')
        degree: Polynomial degree
        tol: Stopping tolerance
        cache_size: Kernel cache size in MB
    """
    kernel: str = 'rbf'
    C: float = 1.0
    gamma: Union[float, str] = 'scale'
    degree: int = 3
    tol: float = 1e-3
    cache_size: float = 200

    @classmethod
    def from_config(cls, config: SVMConfig) -> 'SVMParameters':
        return cls(
            kernel=config.kernel,
            C=config.C,
            gamma=config.gamma,
            degree=config.degree,
            tol=config.tol,
            cache_size=config.cache_size
        )


def default_svm_parameters(config: Optional[SVMConfig] = None) -> SVMParameters:
    """Parameters from configuration, or the SVC defaults if None."""
    if config is None:
        return SVMParameters()
    return SVMParameters.from_config(config)


@dataclass
class SVMProblem:
    """Feature matrix and labels handed to the classifier.

    Attributes:
        features: (n_samples, n_features) matrix
        labels: (n_samples,) class labels
        scale: Whether features are scaled to [-1, 1] before the SVC
    """
    features: np.ndarray
    labels: np.ndarray
    scale: bool = False

    @property
    def n_samples(self) -> int:
        return len(self.labels)


@dataclass
class RBFGrid:
    """log2 ranges of the C / gamma grid, as (first, last, step), inclusive."""
    c_range: Tuple[int, int, int] = (-5, 15, 2)
    gamma_range: Tuple[int, int, int] = (3, -15, -2)

    @staticmethod
    def _values(first, last, step):
        end = last + (1 if step > 0 else -1)
        return [float(2.0 ** e) for e in range(first, end, step)]

    def c_values(self):
        return self._values(*self.c_range)

    def gamma_values(self):
        return self._values(*self.gamma_range)


def make_problem(labels, features, scale: bool = False) -> SVMProblem:
    """Build a problem from labels and per-sample feature vectors."""
    features = np.asarray(features, dtype=np.float64)
    if features.ndim == 1:
        features = features.reshape(-1, 1)
    labels = np.asarray(labels).ravel()
    return SVMProblem(features=features, labels=labels, scale=scale)


def _problem_error(problem: SVMProblem, parameters: SVMParameters) -> Optional[str]:
    if len(problem.features) != problem.n_samples:
        return f"{len(problem.features)} feature vectors for {problem.n_samples} labels"
    if problem.n_samples == 0:
        return "empty problem"
    if len(np.unique(problem.labels)) < 2:
        return "at least two classes are required"
    if not np.all(np.isfinite(problem.features)):
        return "features contain NaN or infinite values"
    if parameters.kernel not in KERNELS:
        return f"unknown kernel '{parameters.kernel}'"
    if parameters.C <= 0:
        return "C must be positive"
    if isinstance(parameters.gamma, str):
        if parameters.gamma not in ('scale', 'auto'):
            return f"unknown gamma '{parameters.gamma}'"
    elif parameters.gamma <= 0:
        return "gamma must be positive"
    if parameters.kernel == 'poly' and parameters.degree < 1:
        return "degree must be at least 1"
    if parameters.tol <= 0:
        return "tol must be positive"
    return None


def check(problem: SVMProblem, parameters: SVMParameters) -> bool:
    """Validate a problem and its parameters before training.

    Returns
    -------
    valid : bool
        False (with a logged warning) if training cannot proceed.
    """
    error = _problem_error(problem, parameters)
    if error is not None:
        log_warning(logger, f"Invalid SVM problem: {error}")
        return False
    return True


def build_pipeline(problem: SVMProblem, parameters: SVMParameters) -> Pipeline:
    """Unfitted pipeline: optional [-1, 1] scaling followed by the SVC."""
    steps = []
    if problem.scale:
        steps.append(('scaler', MinMaxScaler(feature_range=(-1, 1))))
    steps.append(('svc', SVC(**asdict(parameters))))
    return Pipeline(steps)


def train(problem: SVMProblem, parameters: SVMParameters) -> Pipeline:
    """Fit the classifier on the problem."""
    model = build_pipeline(problem, parameters)
    model.fit(problem.features, problem.labels)
    return model


def predict(model: Pipeline, features) -> float:
    """Predict the label of one feature vector."""
    features = np.asarray(features, dtype=np.float64).reshape(1, -1)
    return model.predict(features)[0]


def rbf_grid_search(
    problem: SVMProblem,
    parameters: SVMParameters,
    n_fold: int = 5,
    grid: Optional[RBFGrid] = None
) -> pd.DataFrame:
    """Cross-validated grid search of C and gamma for the RBF kernel.

    ``parameters`` is updated in place with the RBF kernel and the best C
    and gamma found.

    Parameters
    ----------
    problem : SVMProblem
        Training problem.
    parameters : SVMParameters
        Base parameters, updated with the best values.
    n_fold : int, default=5
        Number of stratified folds.
    grid : RBFGrid, optional
        Grid to explore. Defaults to ``RBFGrid()``.

    Returns
    -------
    results : pd.DataFrame
        One row per (C, gamma) with mean/std accuracy and rank.
    """
    if grid is None:
        grid = RBFGrid()

    parameters.kernel = 'rbf'
    search = GridSearchCV(
        build_pipeline(problem, parameters),
        param_grid={
            'svc__C': grid.c_values(),
            'svc__gamma': grid.gamma_values()
        },
        cv=StratifiedKFold(n_splits=n_fold),
        scoring='accuracy'
    )
    search.fit(problem.features, problem.labels)

    parameters.C = float(search.best_params_['svc__C'])
    parameters.gamma = float(search.best_params_['svc__gamma'])

    logger.info(
        f"Grid search best: C={parameters.C:g}, gamma={parameters.gamma:g}, "
        f"accuracy={search.best_score_:.4f}"
    )

    results = pd.DataFrame(search.cv_results_)
    results = results.rename(columns={'param_svc__C': 'C', 'param_svc__gamma': 'gamma'})
    return results[['C', 'gamma', 'mean_test_score', 'std_test_score', 'rank_test_score']]
