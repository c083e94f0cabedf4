# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Document database CRUD layer.

A small CRUD interface over MongoDB, with an in-memory store that speaks the
same interface for tests.
"""

__version__ = "0.1.0"

from .config import DocumentStoreConfig, InMemoryDriverConfig, MongoDriverConfig
from .crud import CrudClient
from .document_store import (
    BulkInsertError,
    CollectionNotFoundError,
    DeleteResult,
    DocumentConversionError,
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreBackendError,
    DocumentStoreConnectionError,
    DocumentStoreError,
    DocumentStoreNotConnectedError,
    FindOptions,
    UnsupportedFilterError,
    UpdateResult,
)
from .documents import to_document
from .factory import create_crud_client, create_document_store
from .filters import Filter, InConstraint, ScalarConstraint, matches, values_equal
from .inmemory_document_store import InMemoryDocumentStore
from .mongo_document_store import MongoDocumentStore

__all__ = [
    # Version
    "__version__",
    # Client
    "CrudClient",
    "create_crud_client",
    # Document Stores
    "DocumentStore",
    "MongoDocumentStore",
    "InMemoryDocumentStore",
    "create_document_store",
    # Configuration
    "DocumentStoreConfig",
    "InMemoryDriverConfig",
    "MongoDriverConfig",
    # Filters and documents
    "Filter",
    "ScalarConstraint",
    "InConstraint",
    "matches",
    "values_equal",
    "to_document",
    # Results
    "FindOptions",
    "UpdateResult",
    "DeleteResult",
    # Exceptions
    "DocumentStoreError",
    "DocumentStoreNotConnectedError",
    "DocumentStoreConnectionError",
    "DocumentNotFoundError",
    "CollectionNotFoundError",
    "DocumentConversionError",
    "UnsupportedFilterError",
    "BulkInsertError",
    "DocumentStoreBackendError",
]
