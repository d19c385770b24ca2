"""
Storage and corpus I/O module.

Key-value stores for model persistence and JSON observation corpora.
"""

from .store import KeyValueStore, MemoryStore, JoblibStore, open_store
from .corpus import load_corpus, save_corpus, validate_corpus

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JoblibStore",
    "open_store",
    "load_corpus",
    "save_corpus",
    "validate_corpus"
]
