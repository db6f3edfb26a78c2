"""Document store adapters used by the realtime core.

Stores:
    - InMemoryDocumentStore: dictionary-backed store (development, tests).
    - DuckDBDocumentStore: JSON documents persisted in a DuckDB file.
"""

from .base import ASCENDING, DESCENDING, DocumentStore
from .memory import InMemoryDocumentStore

__all__ = [
    "ASCENDING",
    "DESCENDING",
    "DocumentStore",
    "InMemoryDocumentStore",
    "create_store",
]


def create_store(settings) -> DocumentStore:
    """Build the store selected by ``StoreSettings.backend``."""
    if settings.backend == "duckdb":
        from .duckdb_store import DuckDBDocumentStore
        return DuckDBDocumentStore(settings.duckdb_path)
    return InMemoryDocumentStore()
