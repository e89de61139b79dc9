"""Logging setup and message helpers for network training.

Library modules log through ``logging.getLogger(__name__)``; applications
call :func:`setup_logger` once to attach console (and optionally file)
output to the ``deepbelief`` logger. The helpers below keep the phase,
epoch and metric lines of every watcher in one format.
"""

import logging
from typing import Dict, Any, Optional
from pathlib import Path

LOG_FORMAT = '[%(asctime)s] %(levelname)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
BANNER_WIDTH = 80


def setup_logger(
    name: str = 'deepbelief',
    level: int = logging.INFO,
    log_file: Optional[Path] = None
) -> logging.Logger:
    """Configure the package logger.

    Parameters
    ----------
    name : str, default='deepbelief'
        Logger name. Module loggers of the package propagate to it.
    level : int, default=logging.INFO
        Level of the logger and of its handlers.
    log_file : Path, optional
        Also write to this file, truncated at setup. Parent directories are
        created.

    Returns
    -------
    logger : logging.Logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Calling setup again replaces the handlers instead of duplicating lines
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers = [logging.StreamHandler()]

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode='w'))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def _banner(logger: logging.Logger, *lines: str) -> None:
    logger.info("=" * BANNER_WIDTH)
    for line in lines:
        logger.info(line)
    logger.info("=" * BANNER_WIDTH)


def log_phase_start(logger: logging.Logger, phase_name: str, details: str = "") -> None:
    """Banner opening a training phase (pretraining, fine-tuning).

    Parameters
    ----------
    logger : logging.Logger
    phase_name : str
        Phase title, logged in upper case.
    details : str, optional
        Extra line such as the layer count and epochs.
    """
    lines = [phase_name.upper()]
    if details:
        lines.append(details)
    _banner(logger, *lines)


def log_phase_end(logger: logging.Logger, phase_name: str, elapsed_time: float = None) -> None:
    """Banner closing a training phase, with its duration when known."""
    title = f"{phase_name.upper()} COMPLETE"
    if elapsed_time is not None:
        title = f"{title} ({elapsed_time:.1f}s)"
    _banner(logger, title)


def log_training_progress(
    logger: logging.Logger,
    current: int,
    total: int,
    message: str = "Epoch"
) -> None:
    """Log ``message: current/total (pct%)`` for a 1-based epoch count."""
    pct = 100.0 * current / total if total > 0 else 0.0
    logger.info(f"{message}: {current}/{total} ({pct:.1f}%)")


def log_performance_metrics(
    logger: logging.Logger,
    metrics: Dict[str, Any],
    prefix: str = ""
) -> None:
    """Log one indented ``name: value`` line per metric.

    Floats (errors, memory) get six decimals; counts such as the number of
    parameters are logged as they are.

    Parameters
    ----------
    logger : logging.Logger
    metrics : dict
        Metric name to value, logged in insertion order.
    prefix : str, optional
        Heading line, e.g. the network or layer being summarized.
    """
    if prefix:
        logger.info(f"{prefix}:")

    for name, value in metrics.items():
        shown = f"{value:.6f}" if isinstance(value, float) else value
        logger.info(f"  {name}: {shown}")


def log_warning(logger: logging.Logger, message: str) -> None:
    logger.warning(f"⚠️  {message}")


def log_success(logger: logging.Logger, message: str) -> None:
    logger.info(f"✓ {message}")
