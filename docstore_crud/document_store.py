# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Abstract document store interface shared by the real and in-memory backends."""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any


class DocumentStoreError(Exception):
    """Base exception for document store errors."""
    pass


class DocumentStoreNotConnectedError(DocumentStoreError):
    """Exception raised when attempting operations on a disconnected store."""
    pass


class DocumentStoreConnectionError(DocumentStoreError):
    """Exception raised when connection to the document store fails."""
    pass


class DocumentNotFoundError(DocumentStoreError):
    """Exception raised when no document matches a read, update or delete filter."""
    pass


class CollectionNotFoundError(DocumentStoreError):
    """Exception raised when an operation targets a collection that was never created."""
    pass


class DocumentConversionError(DocumentStoreError):
    """Exception raised when a value cannot be normalized into a document."""
    pass


class UnsupportedFilterError(DocumentConversionError):
    """Exception raised when a filter uses a shape the matcher does not support."""
    pass


class DocumentStoreBackendError(DocumentStoreError):
    """Exception raised when the underlying database driver reports a failure."""
    pass


class BulkInsertError(DocumentStoreError):
    """Exception raised when some values of a bulk insert could not be stored.

    Values that were stored stay stored; nothing is rolled back.

    Attributes:
        collection: Target collection
        inserted_ids: IDs of the documents that were stored
        failures: (index, exception) pairs for the values that were not
    """

    def __init__(
        self,
        collection: str,
        inserted_ids: list[Any],
        failures: list[tuple[int, Exception]],
    ):
        self.collection = collection
        self.inserted_ids = inserted_ids
        self.failures = failures
        indexes = ", ".join(str(index) for index, _ in failures)
        super().__init__(
            f"{len(failures)} of {len(failures) + len(inserted_ids)} documents "
            f"could not be inserted into {collection} (indexes: {indexes})"
        )


@dataclass(frozen=True)
class FindOptions:
    """Options applied to find operations.

    Attributes:
        sort: (field, direction) pairs; direction is 1 (ascending) or -1 (descending)
        skip: Number of matching documents to skip
        limit: Maximum number of documents to return (None for no limit)
    """
    sort: tuple[tuple[str, int], ...] = ()
    skip: int = 0
    limit: int | None = None

    def __post_init__(self):
        if self.skip < 0:
            raise ValueError(f"skip must be non-negative, got {self.skip}")
        if self.limit is not None and self.limit < 0:
            raise ValueError(f"limit must be non-negative, got {self.limit}")
        for field, direction in self.sort:
            if direction not in (1, -1):
                raise ValueError(f"sort direction for '{field}' must be 1 or -1, got {direction}")


@dataclass(frozen=True)
class UpdateResult:
    """Outcome of an update operation."""
    matched_count: int
    modified_count: int


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a delete operation."""
    deleted_count: int


class DocumentStore(ABC):
    """Abstract base class for document storage backends.

    Filters are mappings in MongoDB query form (or compiled
    :class:`docstore_crud.filters.Filter` objects). Every operation accepts an
    optional ``timeout`` in seconds; backends that never block ignore it.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the document store.

        Raises:
            DocumentStoreConnectionError: If connection fails
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the document store."""
        pass

    @abstractmethod
    def create_collection(self, name: str, timeout: float | None = None) -> None:
        """Create a collection. Creating an existing collection is a no-op.

        Args:
            name: Name of the collection
            timeout: Deadline for the operation in seconds
        """
        pass

    @abstractmethod
    def drop_collection(self, name: str, timeout: float | None = None) -> None:
        """Drop a collection and all of its documents. Missing collections are ignored.

        Args:
            name: Name of the collection
            timeout: Deadline for the operation in seconds
        """
        pass

    @abstractmethod
    def list_collections(self) -> list[str]:
        """Return the names of all existing collections."""
        pass

    @abstractmethod
    def insert_document(
        self, collection: str, doc: dict[str, Any], timeout: float | None = None
    ) -> Any:
        """Insert a document into the specified collection.

        Args:
            collection: Name of the collection
            doc: Document data as dictionary
            timeout: Deadline for the operation in seconds

        Returns:
            The document's ``_id``
        """
        pass

    @abstractmethod
    def insert_documents(
        self, collection: str, docs: Sequence[dict[str, Any]], timeout: float | None = None
    ) -> list[Any]:
        """Insert several documents, storing every one the backend accepts.

        Args:
            collection: Name of the collection
            docs: Documents to insert
            timeout: Deadline for the operation in seconds

        Returns:
            The ``_id`` of every inserted document, in input order

        Raises:
            BulkInsertError: If some documents were rejected; failure indexes
                are positions in ``docs`` and the rest stay stored
        """
        pass

    @abstractmethod
    def find_document(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        options: FindOptions | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Return the first document matching the filter.

        Raises:
            DocumentNotFoundError: If no document matches
        """
        pass

    @abstractmethod
    def query_documents(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        options: FindOptions | None = None,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Return every document matching the filter (empty list if none)."""
        pass

    @abstractmethod
    def update_documents(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        doc: dict[str, Any],
        timeout: float | None = None,
    ) -> UpdateResult:
        """Write ``doc`` over the documents matching the filter.

        Raises:
            DocumentNotFoundError: If no document matches
        """
        pass

    @abstractmethod
    def delete_documents(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        timeout: float | None = None,
    ) -> DeleteResult:
        """Delete documents matching the filter.

        Raises:
            DocumentNotFoundError: If no document matches
        """
        pass
