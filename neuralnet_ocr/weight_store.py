"""
weight_store.py
~~~~~~~~~~~~~~~

SQLite-backed store for per-neuron weights and biases.

Values live in memory while the network trains; ``save()`` flushes every
pending change to the database in a single transaction.
"""

import sqlite3
import json
import os
import logging
from typing import Optional, List, Dict, Any, Generator, Sequence, Set, Tuple
from contextlib import contextmanager

import numpy as np

from neuralnet_ocr.config import default_db_path

# Configure module logger
logger = logging.getLogger(__name__)

Key = Tuple[int, int]


class WeightManager:
    """
    Key -> vector store for neuron parameters.

    Entries are keyed by (layer index, neuron identity). The database stores:
    - One row per neuron: weight vector as float64 bytes, bias as REAL
    - The architecture the weights belong to, so a store cannot be reopened
      with an incompatible topology
    """

    def __init__(
        self,
        input_size: int,
        hidden_layers: Sequence[int],
        labels: Sequence[int],
        db_path: Optional[str] = None,
        seed: Optional[int] = None
    ):
        """
        Open (or create) the store and load every saved neuron into memory.

        Args:
            input_size: Number of values in an input vector
            hidden_layers: Width of each hidden layer
            labels: Class labels of the output layer
            db_path: Path to the SQLite database file; OCR_WEIGHTS_DB or
                models/weights.db when omitted
            seed: Seed for initializing neurons missing from the store

        Raises:
            ValueError: If the database holds weights for another architecture
        """
        self.input_size = int(input_size)
        self.hidden_layers = [int(width) for width in hidden_layers]
        self.labels = [int(label) for label in labels]
        self.db_path = db_path if db_path is not None else default_db_path()
        self.seed = seed

        self._weights: Dict[Key, np.ndarray] = {}
        self._biases: Dict[Key, float] = {}
        self._pending: Set[Key] = set()
        self._rng = np.random.default_rng(seed)
        self._warned_missing = False

        self._ensure_directory()
        self._initialize_schema()
        self._check_architecture()
        self._load()

    # ------------------------------------------------------------------
    # Database plumbing
    # ------------------------------------------------------------------

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS neurons (
                    layer_index INTEGER NOT NULL,
                    neuron_id INTEGER NOT NULL,
                    weights BLOB NOT NULL,
                    bias REAL NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (layer_index, neuron_id)
                )
            ''')

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS architecture (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    input_size INTEGER NOT NULL,
                    hidden_layers TEXT NOT NULL,
                    labels TEXT NOT NULL
                )
            ''')

    def _check_architecture(self) -> None:
        """Fail fast when the database was written for another topology."""
        stored = self.get_stored_architecture()
        if stored is None:
            return
        if stored != self.architecture:
            raise ValueError(
                f"Weight store {self.db_path} holds architecture {stored}, "
                f"requested {self.architecture}"
            )

    def _load(self) -> None:
        """Read every saved neuron into memory."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT layer_index, neuron_id, weights, bias FROM neurons'
            )
            for row in cursor.fetchall():
                key = (row['layer_index'], row['neuron_id'])
                self._weights[key] = np.frombuffer(
                    row['weights'], dtype=np.float64
                ).copy()
                self._biases[key] = row['bias']

        logger.info(
            f"Opened weight store {self.db_path} with "
            f"{len(self._weights)} saved neuron(s)"
        )

    # ------------------------------------------------------------------
    # Topology helpers
    # ------------------------------------------------------------------

    @property
    def architecture(self) -> Dict[str, Any]:
        return {
            'input_size': self.input_size,
            'hidden_layers': list(self.hidden_layers),
            'labels': list(self.labels)
        }

    def get_stored_architecture(self) -> Optional[Dict[str, Any]]:
        """
        Read the architecture row without loading any weights.

        Returns:
            Architecture dictionary or None if nothing was saved yet
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT input_size, hidden_layers, labels '
                'FROM architecture WHERE id = 1'
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return {
                'input_size': row['input_size'],
                'hidden_layers': json.loads(row['hidden_layers']),
                'labels': json.loads(row['labels'])
            }

    def _fan_in(self, layer_index: int) -> int:
        """Width of the layer feeding ``layer_index``."""
        if not 0 <= layer_index <= len(self.hidden_layers):
            raise KeyError(f"No layer {layer_index} in {self.architecture}")
        if layer_index == 0:
            return self.input_size
        return self.hidden_layers[layer_index - 1]

    def _initialize(self, key: Key) -> None:
        """Create random parameters for a neuron the store has never seen."""
        layer_index, neuron_id = key
        fan_in = self._fan_in(layer_index)
        if not self._warned_missing:
            logger.warning(
                f"Weight store {self.db_path} has no entry for neuron "
                f"{neuron_id} in layer {layer_index}; initializing missing "
                f"neurons randomly"
            )
            self._warned_missing = True
        if self.seed is None:
            rng = self._rng
        else:
            # Seeded per key so the result does not depend on lookup order;
            # SeedSequence entropy must be non-negative, labels may not be
            rng = np.random.default_rng([
                self.seed, layer_index, int(neuron_id < 0), abs(neuron_id)
            ])
        scale = 1.0 / np.sqrt(fan_in)
        self._weights[key] = rng.normal(0.0, scale, size=fan_in)
        self._biases[key] = float(rng.normal(0.0, scale))
        self._pending.add(key)

    # ------------------------------------------------------------------
    # Key -> vector interface
    # ------------------------------------------------------------------

    def get_weights(self, layer_index: int, neuron_id: int) -> np.ndarray:
        """Return a copy of a neuron's weights, initializing it if missing."""
        key = (int(layer_index), int(neuron_id))
        if key not in self._weights:
            self._initialize(key)
        return self._weights[key].copy()

    def get_bias(self, layer_index: int, neuron_id: int) -> float:
        """Return a neuron's bias, initializing it if missing."""
        key = (int(layer_index), int(neuron_id))
        if key not in self._biases:
            self._initialize(key)
        return self._biases[key]

    def set_weights(
        self,
        layer_index: int,
        neuron_id: int,
        weights: Sequence[float]
    ) -> None:
        key = (int(layer_index), int(neuron_id))
        weights = np.array(weights, dtype=np.float64)
        expected = self._fan_in(key[0])
        if weights.shape != (expected,):
            raise ValueError(
                f"Layer {key[0]} expects {expected} weights, "
                f"got shape {weights.shape}"
            )
        self._weights[key] = weights
        self._pending.add(key)

    def set_bias(self, layer_index: int, neuron_id: int, bias: float) -> None:
        key = (int(layer_index), int(neuron_id))
        self._fan_in(key[0])
        self._biases[key] = float(bias)
        self._pending.add(key)

    @property
    def pending_count(self) -> int:
        """Number of neurons changed since the last save."""
        return len(self._pending)

    def save(self) -> int:
        """
        Persist all pending weights and biases.

        Returns:
            int: Number of neurons written

        Raises:
            sqlite3.Error: If the database cannot be written
        """
        rows: List[Tuple[int, int, bytes, float]] = []
        for key in sorted(self._pending):
            if key not in self._weights or key not in self._biases:
                # A bias set without weights (or vice versa) still needs both
                self._initialize_missing_half(key)
            rows.append((
                key[0],
                key[1],
                self._weights[key].astype(np.float64).tobytes(),
                self._biases[key]
            ))

        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute('''
                    INSERT OR REPLACE INTO architecture
                    (id, input_size, hidden_layers, labels)
                    VALUES (1, ?, ?, ?)
                ''', (
                    self.input_size,
                    json.dumps(self.hidden_layers),
                    json.dumps(self.labels)
                ))
                cursor.executemany('''
                    INSERT OR REPLACE INTO neurons
                    (layer_index, neuron_id, weights, bias, updated_at)
                    VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
                ''', rows)
        except sqlite3.Error as e:
            logger.error(f"Database error saving weights to {self.db_path}: {e}")
            raise

        self._pending.clear()
        logger.info(f"Saved {len(rows)} neuron(s) to {self.db_path}")
        return len(rows)

    def _initialize_missing_half(self, key: Key) -> None:
        weights = self._weights.get(key)
        bias = self._biases.get(key)
        self._initialize(key)
        if weights is not None:
            self._weights[key] = weights
        if bias is not None:
            self._biases[key] = bias

    def stored_neuron_count(self) -> int:
        """Count neurons already persisted in the database."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('SELECT COUNT(*) AS total FROM neurons')
            return cursor.fetchone()['total']
