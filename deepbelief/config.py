"""Consolidated configuration for deep belief network training.

This module provides a type-safe, validated configuration structure using
dataclasses. All configuration parameters are consolidated here with:
- Clear documentation
- Type hints
- Validation logic
- Default values matching the reference training setup

The configuration is organized hierarchically:
    NetworkConfig (root)
    ├── ParallelConfig
    ├── SVMConfig
    └── TrackingConfig

    RBMConfig (one per trainable layer)

Usage:
    >>> from deepbelief.config import NetworkConfig
    >>> config = NetworkConfig()  # Use defaults
    >>> config.validate()  # Check configuration validity

    >>> # Or customize
    >>> config = NetworkConfig(
    ...     save_memory=True,
    ...     batch_size=10,
    ...     parallel=ParallelConfig(is_parallel=True, n_workers=4)
    ... )
"""

from dataclasses import dataclass, field
from typing import Optional, Union


# ==============================================================================
# MOMENTUM SCHEDULE
# ==============================================================================

def momentum_at(
    epoch: int,
    initial_momentum: float,
    final_momentum: float,
    final_momentum_epoch: int
) -> float:
    """Momentum for a given epoch of a two-phase schedule.

    Parameters
    ----------
    epoch : int
        Zero-based epoch index.
    initial_momentum : float
        Momentum used before ``final_momentum_epoch``.
    final_momentum : float
        Momentum used at and after ``final_momentum_epoch``.
    final_momentum_epoch : int
        Epoch at which the schedule switches.

    Returns
    -------
    momentum : float
    """
    if epoch < final_momentum_epoch:
        return initial_momentum
    return final_momentum


# ==============================================================================
# LAYER CONFIGURATION
# ==============================================================================

@dataclass
class RBMConfig:
    """Contrastive divergence hyperparameters for a single RBM layer.

    Attributes:
        learning_rate: Step size of the weight updates
        initial_momentum: Momentum before final_momentum_epoch
        final_momentum: Momentum from final_momentum_epoch onwards
        final_momentum_epoch: Epoch at which momentum changes
        weight_cost: L2 weight decay applied to the weights (not the biases)
        batch_size: Preferred mini-batch size of the layer
        k: Number of Gibbs steps per update (CD-k)
        visible_unit: 'binary' (sigmoid) or 'gaussian' (linear) visible units
        init_scale: Standard deviation of the initial weights
    """
    learning_rate: float = 0.1
    initial_momentum: float = 0.5
    final_momentum: float = 0.9
    final_momentum_epoch: int = 6
    weight_cost: float = 0.0002
    batch_size: int = 10
    k: int = 1
    visible_unit: str = 'binary'
    init_scale: float = 0.01

    def validate(self):
        """Validate RBM configuration."""
        assert self.learning_rate > 0, "learning_rate must be positive"
        assert 0 <= self.initial_momentum < 1, "initial_momentum must be in [0, 1)"
        assert 0 <= self.final_momentum < 1, "final_momentum must be in [0, 1)"
        assert self.final_momentum_epoch >= 0, "final_momentum_epoch must be non-negative"
        assert self.weight_cost >= 0, "weight_cost must be non-negative"
        assert self.batch_size > 0, "batch_size must be positive"
        assert self.k > 0, "k must be positive"
        assert self.visible_unit in ['binary', 'gaussian'], \
            "visible_unit must be 'binary' or 'gaussian'"
        assert self.init_scale > 0, "init_scale must be positive"

    def momentum(self, epoch: int) -> float:
        """Momentum to use for the given epoch."""
        return momentum_at(
            epoch,
            self.initial_momentum,
            self.final_momentum,
            self.final_momentum_epoch
        )


# ==============================================================================
# PARALLEL EXECUTION CONFIGURATION
# ==============================================================================

@dataclass
class ParallelConfig:
    """Per-sample parallel map configuration.

    Attributes:
        is_parallel: Whether per-sample activations run on a worker pool
        n_workers: Number of pool threads (None = number of CPUs)
    """
    is_parallel: bool = False
    n_workers: Optional[int] = None

    def validate(self):
        """Validate parallel configuration."""
        if self.n_workers is not None:
            assert self.n_workers > 0, "n_workers must be positive"


# ==============================================================================
# CLASSIFIER CONFIGURATION
# ==============================================================================

@dataclass
class SVMConfig:
    """Support vector classifier trained on extracted features.

    Attributes:
        kernel: Kernel name ('rbf', 'linear', 'poly', 'sigmoid')
        C: Regularization parameter
        gamma: Kernel coefficient (float or 'scale'/'auto')
        degree: Polynomial degree (poly kernel only)
        tol: Stopping tolerance
        cache_size: Kernel cache size in MB
        n_fold: Number of cross-validation folds for grid search
    """
    kernel: str = 'rbf'
    C: float = 1.0
    gamma: Union[float, str] = 'scale'
    degree: int = 3
    tol: float = 1e-3
    cache_size: float = 200
    n_fold: int = 5

    def validate(self):
        """Validate classifier configuration."""
        assert self.kernel in ['rbf', 'linear', 'poly', 'sigmoid'], \
            "kernel must be rbf, linear, poly or sigmoid"
        assert self.C > 0, "C must be positive"
        if not isinstance(self.gamma, str):
            assert self.gamma > 0, "gamma must be positive"
        assert self.n_fold > 1, "n_fold must be at least 2"


# ==============================================================================
# TRACKING CONFIGURATION
# ==============================================================================

@dataclass
class TrackingConfig:
    """Database and logging configuration.

    Attributes:
        db_path: Path to SQLite database file
        enable_wal: Whether to use WAL mode (better concurrency)
        log_level: Logging level ('DEBUG', 'INFO', 'WARNING', 'ERROR')
        log_to_file: Whether to log to file in addition to stdout
        log_directory: Directory for log files
    """
    db_path: str = 'dbn_tracking.db'
    enable_wal: bool = True
    log_level: str = 'INFO'
    log_to_file: bool = False
    log_directory: str = 'logs'

    def validate(self):
        """Validate tracking configuration."""
        assert self.log_level in ['DEBUG', 'INFO', 'WARNING', 'ERROR'], \
            "log_level must be DEBUG, INFO, WARNING, or ERROR"


# ==============================================================================
# ROOT CONFIGURATION
# ==============================================================================

@dataclass
class NetworkConfig:
    """Complete network configuration.

    The learning rate, momentum schedule and weight cost drive fine-tuning;
    each RBM layer carries its own RBMConfig for pretraining.

    Attributes:
        learning_rate: Fine-tuning learning rate
        initial_momentum: Fine-tuning momentum before final_momentum_epoch
        final_momentum: Fine-tuning momentum from final_momentum_epoch onwards
        final_momentum_epoch: Epoch at which momentum changes
        weight_cost: Weight decay applied during fine-tuning
        batch_size: Big batch multiplier (big batch = batch_size x layer batch size)
        save_memory: Pretrain in big batches instead of materializing every layer input
        concatenate: Extract features from every layer instead of the top only
        scale: Scale classifier features to [-1, 1]
        random_state: Random seed used by helpers that need one
        parallel: Parallel map configuration
        svm: Classifier configuration
        tracking: Database and logging configuration

    Example:
        >>> config = NetworkConfig(save_memory=True)
        >>> config.validate()
        >>> print(config.summary())
    """
    learning_rate: float = 0.77
    initial_momentum: float = 0.5
    final_momentum: float = 0.9
    final_momentum_epoch: int = 6
    weight_cost: float = 0.0002
    batch_size: int = 1
    save_memory: bool = False
    concatenate: bool = False
    scale: bool = False
    random_state: int = 315
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    svm: SVMConfig = field(default_factory=SVMConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)

    def validate(self):
        """Validate entire configuration hierarchy.

        Raises:
            AssertionError: If any configuration parameter is invalid
        """
        assert self.learning_rate > 0, "learning_rate must be positive"
        assert 0 <= self.initial_momentum < 1, "initial_momentum must be in [0, 1)"
        assert 0 <= self.final_momentum < 1, "final_momentum must be in [0, 1)"
        assert self.final_momentum_epoch >= 0, "final_momentum_epoch must be non-negative"
        assert self.weight_cost >= 0, "weight_cost must be non-negative"
        assert self.batch_size > 0, "batch_size must be positive"

        self.parallel.validate()
        self.svm.validate()
        self.tracking.validate()

    def momentum(self, epoch: int) -> float:
        """Fine-tuning momentum for the given epoch."""
        return momentum_at(
            epoch,
            self.initial_momentum,
            self.final_momentum,
            self.final_momentum_epoch
        )

    def summary(self) -> str:
        """Generate a human-readable configuration summary.

        Returns:
            Multi-line string describing key configuration parameters
        """
        lines = [
            "Network Configuration Summary",
            "=" * 50,
            f"Random State: {self.random_state}",
            "",
            "Fine-tuning:",
            f"  Learning rate: {self.learning_rate}",
            f"  Momentum: {self.initial_momentum} -> {self.final_momentum} "
            f"(epoch {self.final_momentum_epoch})",
            f"  Weight cost: {self.weight_cost}",
            "",
            "Pretraining:",
            f"  Save memory: {self.save_memory}",
            f"  Big batch multiplier: {self.batch_size}",
            "",
            "Features:",
            f"  Concatenate: {self.concatenate}",
            f"  Scale: {self.scale}",
            f"  SVM kernel: {self.svm.kernel}",
            "",
            "Parallel Execution:",
            f"  Enabled: {self.parallel.is_parallel}",
            f"  Workers: {self.parallel.n_workers or 'all CPUs'}",
            ""
        ]
        return "\n".join(lines)
