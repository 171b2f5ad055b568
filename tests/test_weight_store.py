"""
test_weight_store.py
~~~~~~~~~~~~~~~~~~~~

Unit tests for the SQLite-backed weight store.
"""

import os
import logging
import sqlite3

import pytest
import numpy as np

from neuralnet_ocr.weight_store import WeightManager


@pytest.fixture
def temp_db_path(tmp_path):
    """Path for a database inside a not-yet-existing directory."""
    return str(tmp_path / "test_models" / "weights.db")


@pytest.fixture
def store(temp_db_path):
    """A small 4 -> [3] -> 2 store."""
    return WeightManager(4, [3], [0, 1], db_path=temp_db_path, seed=7)


@pytest.mark.unit
class TestWeightStore:
    """Test basic store operations."""

    def test_open_creates_database(self, store, temp_db_path):
        assert os.path.exists(temp_db_path)
        assert store.stored_neuron_count() == 0
        assert store.get_stored_architecture() is None

    def test_missing_entries_are_initialized_with_fan_in(self, store):
        assert store.get_weights(0, 2).shape == (4,)
        assert store.get_weights(1, 1).shape == (3,)
        assert isinstance(store.get_bias(1, 1), float)

    def test_seeded_initialization_is_order_independent(self, temp_db_path, tmp_path):
        first = WeightManager(4, [3], [0, 1], db_path=temp_db_path, seed=3)
        second = WeightManager(
            4, [3], [0, 1], db_path=str(tmp_path / "other.db"), seed=3
        )

        a = first.get_weights(0, 1)
        second.get_weights(1, 0)
        b = second.get_weights(0, 1)

        assert np.array_equal(a, b)

    def test_get_returns_copies(self, store):
        weights = store.get_weights(0, 0)
        weights[:] = 42.0
        assert not np.any(store.get_weights(0, 0) == 42.0)

    def test_set_stores_copies(self, store):
        weights = np.ones(4)
        store.set_weights(0, 0, weights)
        weights[:] = 5.0
        assert np.array_equal(store.get_weights(0, 0), np.ones(4))

    def test_set_weights_wrong_length(self, store):
        with pytest.raises(ValueError):
            store.set_weights(1, 0, np.ones(4))

    def test_unknown_layer(self, store):
        with pytest.raises(KeyError):
            store.get_weights(2, 0)

    def test_pending_count_tracks_changes(self, store):
        store.get_weights(0, 0)
        store.set_bias(1, 1, 0.5)
        assert store.pending_count == 2

        assert store.save() == 2
        assert store.pending_count == 0
        assert store.stored_neuron_count() == 2

    def test_bias_only_entry_still_saves_weights(self, store, temp_db_path):
        store.set_bias(1, 0, -0.75)
        store.save()

        reopened = WeightManager(4, [3], [0, 1], db_path=temp_db_path)
        assert reopened.get_bias(1, 0) == -0.75
        assert reopened.get_weights(1, 0).shape == (3,)

    def test_seeded_initialization_with_negative_identity(self, tmp_path):
        first = WeightManager(
            4, [3], [-1, 1], db_path=str(tmp_path / "a.db"), seed=3
        )
        second = WeightManager(
            4, [3], [-1, 1], db_path=str(tmp_path / "b.db"), seed=3
        )

        negative = first.get_weights(1, -1)

        assert negative.shape == (3,)
        assert np.array_equal(negative, second.get_weights(1, -1))
        assert not np.array_equal(negative, first.get_weights(1, 1))

    def test_missing_entries_warn_once(self, store, caplog):
        with caplog.at_level(logging.WARNING, logger='neuralnet_ocr.weight_store'):
            store.get_weights(0, 0)
            store.get_weights(0, 1)
            store.get_bias(1, 0)

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "no entry" in warnings[0].getMessage()

    def test_saved_entries_do_not_warn(self, store, temp_db_path, caplog):
        store.get_weights(0, 0)
        store.save()

        reopened = WeightManager(4, [3], [0, 1], db_path=temp_db_path)
        with caplog.at_level(logging.WARNING, logger='neuralnet_ocr.weight_store'):
            reopened.get_weights(0, 0)

        assert not [r for r in caplog.records if r.levelno == logging.WARNING]


@pytest.mark.unit
class TestWeightStorePersistence:
    """Test that saved values survive reopening the database."""

    def test_round_trip_is_bit_identical(self, store, temp_db_path):
        weights = np.array([0.1, 1 / 3, -2.5e-17, 123456.789])
        store.set_weights(0, 1, weights)
        store.set_bias(0, 1, 1 / 7)
        store.save()

        reopened = WeightManager(4, [3], [0, 1], db_path=temp_db_path, seed=99)

        assert reopened.get_weights(0, 1).tobytes() == weights.tobytes()
        assert reopened.get_bias(0, 1) == 1 / 7

    def test_save_records_architecture(self, store):
        store.save()
        assert store.get_stored_architecture() == {
            'input_size': 4,
            'hidden_layers': [3],
            'labels': [0, 1]
        }

    def test_unsaved_changes_are_not_persisted(self, store, temp_db_path):
        store.set_bias(1, 0, 3.0)
        store.save()
        store.set_bias(1, 0, 4.0)

        reopened = WeightManager(4, [3], [0, 1], db_path=temp_db_path)
        assert reopened.get_bias(1, 0) == 3.0

    def test_architecture_mismatch_fails_fast(self, store, temp_db_path):
        store.save()
        with pytest.raises(ValueError) as exc_info:
            WeightManager(4, [5], [0, 1], db_path=temp_db_path)
        assert "architecture" in str(exc_info.value)

    def test_save_propagates_database_errors(self, store, temp_db_path):
        """IO failures reach the caller instead of being swallowed."""
        store.get_weights(0, 0)

        conn = sqlite3.connect(temp_db_path)
        conn.execute('DROP TABLE neurons')
        conn.commit()
        conn.close()

        with pytest.raises(sqlite3.Error):
            store.save()
        assert store.pending_count == 1
