"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The finance store is an in-memory SQLite database mirrored to a durable
blob after every write; the blob layer is swappable.
"""

from src.services.storage.interface import (
    DuplicateError,
    DurableBlobStore,
    FinanceStorageInterface,
    PersistError,
    StorageError,
    StorageInitError,
)
from src.services.storage.blob_store import FileBlobStore, MemoryBlobStore
from src.services.storage.sqlite_store import SQLiteFinanceStorage
from src.services.storage.categories import (
    CategoryMatcher,
    CategoryRegistry,
    keyword_matcher,
    match_category,
)
from src.services.storage.analysis_cache import AnalysisCache

__all__ = [
    # Interfaces
    "DurableBlobStore",
    "FinanceStorageInterface",
    # Exceptions
    "DuplicateError",
    "PersistError",
    "StorageError",
    "StorageInitError",
    # Implementations
    "FileBlobStore",
    "MemoryBlobStore",
    "SQLiteFinanceStorage",
    # Facades
    "AnalysisCache",
    "CategoryMatcher",
    "CategoryRegistry",
    "keyword_matcher",
    "match_category",
]
