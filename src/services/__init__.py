"""Services package."""

from src.services.storage import (
    AnalysisCache,
    CategoryRegistry,
    DuplicateError,
    DurableBlobStore,
    FileBlobStore,
    FinanceStorageInterface,
    MemoryBlobStore,
    PersistError,
    SQLiteFinanceStorage,
    StorageError,
    StorageInitError,
    match_category,
)

__all__ = [
    "AnalysisCache",
    "CategoryRegistry",
    "DuplicateError",
    "DurableBlobStore",
    "FileBlobStore",
    "FinanceStorageInterface",
    "MemoryBlobStore",
    "PersistError",
    "SQLiteFinanceStorage",
    "StorageError",
    "StorageInitError",
    "match_category",
]
