"""Tracking and monitoring utilities.

This subpackage handles:
- Training lifecycle watchers
- SQLite database operations
- Structured logging
"""

from .database import TrainingDatabase
from .logger import (
    setup_logger,
    log_phase_start,
    log_phase_end,
    log_training_progress,
    log_performance_metrics,
    log_warning,
    log_success
)
from .watcher import (
    Watcher,
    LoggingWatcher,
    DatabaseWatcher,
    CompositeWatcher,
    process_memory_mb
)

__all__ = [
    # Watchers
    'Watcher',
    'LoggingWatcher',
    'DatabaseWatcher',
    'CompositeWatcher',
    'process_memory_mb',
    # Database
    'TrainingDatabase',
    # Logging
    'setup_logger',
    'log_phase_start',
    'log_phase_end',
    'log_training_progress',
    'log_performance_metrics',
    'log_warning',
    'log_success'
]
