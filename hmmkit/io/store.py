"""
Key-value list stores used for model persistence.

Every key maps to an ordered list of values, with push/range semantics
similar to a Redis list. Backends differ only in where the lists live.
"""

import copy
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

import joblib

from ..config import get_config
from ..exceptions import PersistenceError
from ..logger import get_logger

logger = get_logger(__name__)


class KeyValueStore(ABC):
    """
    Ordered-list key-value store.

    Mutations are committed to the backend immediately, or once at the
    end of the outermost transaction() block. A transaction that raises
    leaves the store as it was before the block.
    """

    def __init__(self):
        self._data: Dict[str, List[Any]] = {}
        self._depth = 0
        self._snapshot = None

    @abstractmethod
    def _commit(self) -> None:
        """Persist the current contents."""

    def _mutated(self) -> None:
        if self._depth == 0:
            self._commit()

    @contextmanager
    def transaction(self):
        """Group several mutations into a single commit."""
        if self._depth == 0:
            self._snapshot = copy.deepcopy(self._data)
        self._depth += 1
        try:
            yield self
            if self._depth == 1:
                self._commit()
        except BaseException:
            if self._depth == 1:
                self._data = self._snapshot
            raise
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._snapshot = None

    def rpush(self, key: str, *values: Any) -> int:
        """Append values to the list at key; returns the new length."""
        items = self._data.setdefault(key, [])
        items.extend(values)
        self._mutated()
        return len(items)

    def lrange(self, key: str, start: int = 0, stop: int = -1) -> List[Any]:
        """Values of the list at key between start and stop, both inclusive."""
        items = self._data.get(key, [])
        stop = len(items) if stop == -1 else stop + 1
        return list(items[start:stop])

    def delete(self, *keys: str) -> int:
        """Remove keys; returns how many existed."""
        removed = 0
        for key in keys:
            if self._data.pop(key, None) is not None:
                removed += 1
        if removed:
            self._mutated()
        return removed

    def exists(self, key: str) -> bool:
        return key in self._data

    def keys(self) -> List[str]:
        return sorted(self._data)

    def close(self) -> None:
        """Release backend resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class MemoryStore(KeyValueStore):
    """Store that lives only in process memory."""

    def _commit(self) -> None:
        pass


class JoblibStore(KeyValueStore):
    """Store persisted to a single compressed joblib file."""

    def __init__(self, path: str, compress: int = 3):
        """
        Open (or create on first write) the store file.

        Args:
            path: Store file path
            compress: joblib compression level

        Raises:
            PersistenceError: If an existing file cannot be read
        """
        super().__init__()
        self.path = Path(path)
        self.compress = compress

        if self.path.exists():
            try:
                data = joblib.load(self.path)
            except Exception as e:
                raise PersistenceError(f"Failed to read store {self.path}: {e}")
            if not isinstance(data, dict):
                raise PersistenceError(f"Store {self.path} does not contain a key-value mapping")
            self._data = data

        logger.debug(f"JoblibStore opened: {self.path} ({len(self._data)} keys)")

    def _commit(self) -> None:
        try:
            joblib.dump(self._data, self.path, compress=self.compress)
        except OSError as e:
            raise PersistenceError(f"Failed to write store {self.path}: {e}")


def open_store(backend: Optional[str] = None, path: Optional[str] = None) -> KeyValueStore:
    """
    Create a store from arguments or the 'storage' configuration section.

    Raises:
        PersistenceError: If the backend is unknown or the store cannot be opened
    """
    backend = backend or get_config('storage', 'backend')
    if backend == 'memory':
        return MemoryStore()
    if backend == 'joblib':
        return JoblibStore(path or get_config('storage', 'path'))
    raise PersistenceError(f"Unknown storage backend: {backend}")
