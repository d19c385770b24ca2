"""
Model persistence over a key-value list store.

Layout (one ordered list of floats per key):
- Pi:            "@@@"
- row i of A:    "@@#<i>"
- slice (i, j):  "@#@<i>$<j>"  holding B[i, j, :]
"""

from typing import List

import numpy as np

from ..exceptions import PersistenceError
from ..hmm.model import HiddenMarkovModel
from ..io.store import KeyValueStore
from ..logger import get_logger

logger = get_logger(__name__)

PI_KEY = "@@@"
A_MARKER = "@@#"
B_MARKER = "@#@"
FIELD_SEPARATOR = "$"


def transition_key(i: int) -> str:
    return f"{A_MARKER}{i}"


def emission_key(i: int, j: int) -> str:
    return f"{B_MARKER}{i}{FIELD_SEPARATOR}{j}"


def model_keys(n_states: int, n_symbols_0: int) -> List[str]:
    """All keys used by a model with the given dimensions."""
    keys = [PI_KEY]
    keys.extend(transition_key(i) for i in range(n_states))
    keys.extend(emission_key(i, j) for i in range(n_states) for j in range(n_symbols_0))
    return keys


class ModelPersistence:
    """
    Stores and loads HiddenMarkovModel parameters in a KeyValueStore.

    store() replaces whatever the keys held before, inside a single
    transaction. load() either returns a complete model or raises.
    """

    def __init__(self, store: KeyValueStore):
        self.store_backend = store

    def exists(self, n_states: int, n_symbols_0: int) -> bool:
        """True if every key of a model with these dimensions is present."""
        return all(self.store_backend.exists(key) for key in model_keys(n_states, n_symbols_0))

    def store(self, model: HiddenMarkovModel) -> None:
        """
        Serialize model parameters.

        Raises:
            PersistenceError: If the store cannot be written
        """
        backend = self.store_backend
        try:
            with backend.transaction():
                backend.delete(*model_keys(model.n_states, model.n_symbols_0))
                backend.rpush(PI_KEY, *model.pi.tolist())

                for i in range(model.n_states):
                    backend.rpush(transition_key(i), *model.A[i].tolist())

                    for j in range(model.n_symbols_0):
                        backend.rpush(emission_key(i, j), *model.B[i, j].tolist())
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to store model {model!r}: {e}")

        logger.info(f"Stored {model!r}")

    def _read_vector(self, key: str, length: int) -> np.ndarray:
        if not self.store_backend.exists(key):
            raise PersistenceError(f"Missing key {key!r} in model store")

        values = self.store_backend.lrange(key, 0, -1)
        if len(values) != length:
            raise PersistenceError(f"Key {key!r} holds {len(values)} values, expected {length}")

        try:
            vector = np.array([float(value) for value in values])
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"Key {key!r} holds non-numeric values: {e}")

        if not np.all(np.isfinite(vector)):
            raise PersistenceError(f"Key {key!r} holds non-finite values")
        return vector

    def load(self, n_states: int, n_symbols_0: int, n_symbols_1: int) -> HiddenMarkovModel:
        """
        Reconstruct a model of the given dimensions.

        Raises:
            InvalidDimensionsError: If the dimensions are not positive integers
            PersistenceError: If any expected key is missing or unreadable
        """
        model = HiddenMarkovModel(n_states, n_symbols_0, n_symbols_1)

        try:
            pi = self._read_vector(PI_KEY, n_states)
            A = np.stack([self._read_vector(transition_key(i), n_states) for i in range(n_states)])
            B = np.stack([
                np.stack([self._read_vector(emission_key(i, j), n_symbols_1) for j in range(n_symbols_0)])
                for i in range(n_states)
            ])
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to load model: {e}")

        model.set_parameters(pi, A, B)

        logger.info(f"Loaded {model!r}")
        return model
