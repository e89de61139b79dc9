"""Database tracking for network training.

This module provides SQLite persistence for pretraining and fine-tuning
progress so runs can be inspected while (or after) they train.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

logger = logging.getLogger(__name__)


class TrainingDatabase:
    """SQLite database manager for network training.

    Uses WAL mode for concurrent read/write access, allowing a reader to
    query progress while training is running.
    """

    def __init__(self, db_path: Path, enable_wal: bool = True):
        """Initialize database manager.

        Parameters
        ----------
        db_path : Path
            Path to SQLite database file.
        enable_wal : bool, default=True
            Whether to switch the journal to WAL mode on initialization.
        """
        self.db_path = Path(db_path)
        self.enable_wal = enable_wal
        self.timeout = 30.0  # Seconds

    def reset(self) -> None:
        """Delete the database file if it exists to start fresh."""
        if self.db_path.exists():
            self.db_path.unlink()
            logger.info(f"Deleted existing database: {self.db_path}")
        else:
            logger.info(f"No existing database found at: {self.db_path}")

    def initialize(self) -> None:
        """Initialize database with required tables and indexes.

        Creates three tables:
        - pretraining_log: One row per pretrained layer
        - epoch_log: Reconstruction error per layer and epoch
        - finetune_log: Classification error per fine-tuning epoch

        Safe to call multiple times - only creates tables if they don't exist.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            if self.enable_wal:
                conn.execute('PRAGMA journal_mode=WAL')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS pretraining_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    run_id TEXT NOT NULL,
                    layer_index INTEGER NOT NULL,
                    layer_type TEXT NOT NULL,
                    input_size INTEGER NOT NULL,
                    output_size INTEGER NOT NULL,
                    sample_count INTEGER NOT NULL,
                    max_epochs INTEGER
                )
            ''')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS epoch_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    run_id TEXT NOT NULL,
                    layer_index INTEGER NOT NULL,
                    epoch INTEGER NOT NULL,
                    reconstruction_error REAL NOT NULL,
                    momentum REAL
                )
            ''')

            conn.execute('''
                CREATE TABLE IF NOT EXISTS finetune_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    run_id TEXT NOT NULL,
                    epoch INTEGER NOT NULL,
                    error REAL NOT NULL
                )
            ''')

            conn.execute('CREATE INDEX IF NOT EXISTS idx_pretraining_run ON pretraining_log(run_id)')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_epoch_run ON epoch_log(run_id, layer_index)')
            conn.execute('CREATE INDEX IF NOT EXISTS idx_finetune_run ON finetune_log(run_id)')

            conn.commit()
        finally:
            conn.close()

        logger.info(f"Database initialized at: {self.db_path}")

    def insert_layer(self, layer_data: Dict) -> None:
        """Insert a pretrained layer record.

        Parameters
        ----------
        layer_data : dict
            Dictionary with keys: timestamp, run_id, layer_index, layer_type,
            input_size, output_size, sample_count and optionally max_epochs.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.execute('''
                INSERT INTO pretraining_log (
                    timestamp, run_id, layer_index, layer_type, input_size,
                    output_size, sample_count, max_epochs
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', (
                layer_data['timestamp'],
                layer_data['run_id'],
                layer_data['layer_index'],
                layer_data['layer_type'],
                layer_data['input_size'],
                layer_data['output_size'],
                layer_data['sample_count'],
                layer_data.get('max_epochs')
            ))
            conn.commit()
        finally:
            conn.close()

    def insert_epoch(self, epoch_data: Dict) -> None:
        """Insert a pretraining epoch record.

        Parameters
        ----------
        epoch_data : dict
            Dictionary with keys: timestamp, run_id, layer_index, epoch,
            reconstruction_error and optionally momentum.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.execute('''
                INSERT INTO epoch_log (
                    timestamp, run_id, layer_index, epoch,
                    reconstruction_error, momentum
                ) VALUES (?, ?, ?, ?, ?, ?)
            ''', (
                epoch_data['timestamp'],
                epoch_data['run_id'],
                epoch_data['layer_index'],
                epoch_data['epoch'],
                epoch_data['reconstruction_error'],
                epoch_data.get('momentum')
            ))
            conn.commit()
        finally:
            conn.close()

    def insert_finetune_epoch(self, epoch_data: Dict) -> None:
        """Insert a fine-tuning epoch record.

        Parameters
        ----------
        epoch_data : dict
            Dictionary with keys: timestamp, run_id, epoch, error.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.execute('''
                INSERT INTO finetune_log (timestamp, run_id, epoch, error)
                VALUES (?, ?, ?, ?)
            ''', (
                epoch_data['timestamp'],
                epoch_data['run_id'],
                epoch_data['epoch'],
                epoch_data['error']
            ))
            conn.commit()
        finally:
            conn.close()

    def query_layers(self, run_id: Optional[str] = None) -> pd.DataFrame:
        """Query pretrained layer records.

        Parameters
        ----------
        run_id : str or None, default=None
            Restrict to one run. All runs if None.

        Returns
        -------
        df : pd.DataFrame
            Layer records ordered by insertion, empty if no data exists.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            if run_id is None:
                return pd.read_sql_query('SELECT * FROM pretraining_log ORDER BY id', conn)
            return pd.read_sql_query(
                'SELECT * FROM pretraining_log WHERE run_id = ? ORDER BY id',
                conn,
                params=(run_id,)
            )
        finally:
            conn.close()

    def query_epochs(
        self,
        run_id: str,
        layer_index: Optional[int] = None,
        limit: Optional[int] = None
    ) -> pd.DataFrame:
        """Query pretraining epoch data for a run.

        Parameters
        ----------
        run_id : str
            Unique run identifier.
        layer_index : int or None, default=None
            Restrict to one layer.
        limit : int or None, default=None
            Maximum number of rows to return (most recent first).

        Returns
        -------
        df : pd.DataFrame
            Epoch data, empty if no data exists.
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            query = 'SELECT * FROM epoch_log WHERE run_id = ?'
            params = [run_id]
            if layer_index is not None:
                query += ' AND layer_index = ?'
                params.append(layer_index)
            query += ' ORDER BY id DESC'
            if limit is not None:
                query += f' LIMIT {int(limit)}'

            return pd.read_sql_query(query, conn, params=tuple(params))
        finally:
            conn.close()

    def query_finetune_epochs(self, run_id: str) -> pd.DataFrame:
        """Query fine-tuning epochs of a run ordered by epoch."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            return pd.read_sql_query(
                'SELECT * FROM finetune_log WHERE run_id = ? ORDER BY epoch',
                conn,
                params=(run_id,)
            )
        finally:
            conn.close()

    def exists(self) -> bool:
        """Check if the database file exists."""
        return self.db_path.exists()

    def get_size_mb(self) -> float:
        """Get the size of the database file in MB.

        Returns
        -------
        size_mb : float
            Size in megabytes, or 0 if database doesn't exist.
        """
        if self.db_path.exists():
            return self.db_path.stat().st_size / (1024 * 1024)
        return 0.0
