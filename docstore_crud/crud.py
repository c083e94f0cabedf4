# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Backend-agnostic CRUD client."""

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .document_store import (
    BulkInsertError,
    DeleteResult,
    DocumentConversionError,
    DocumentStore,
    FindOptions,
    UpdateResult,
)
from .documents import to_document
from .filters import Filter

logger = logging.getLogger(__name__)

FilterSpec = Mapping[str, Any] | Filter | None


class CrudClient:
    """Uniform CRUD operations over any DocumentStore.

    Values passed to :meth:`create`, :meth:`create_many` and :meth:`update` are
    normalized into documents before they reach the store, so the same caller
    code works against MongoDB and the in-memory store. Errors raised by the
    store propagate unchanged.

    Example:
        >>> from docstore_crud import CrudClient, InMemoryDocumentStore
        >>> client = CrudClient(InMemoryDocumentStore())
        >>> client.connect()
        >>> client.create_collection("users")
        >>> client.create({"_id": "a", "name": "x"}, "users")
        'a'
        >>> client.find_one("users", {"name": "x"})
        {'_id': 'a', 'name': 'x'}
    """

    def __init__(self, store: DocumentStore):
        self._store = store

    @property
    def store(self) -> DocumentStore:
        return self._store

    def connect(self) -> None:
        self._store.connect()

    def disconnect(self) -> None:
        self._store.disconnect()

    def __enter__(self) -> "CrudClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def create_collection(self, name: str, timeout: float | None = None) -> None:
        """Create a collection; existing collections are left untouched."""
        self._store.create_collection(name, timeout=timeout)

    def create_collections(self, names: Iterable[str], timeout: float | None = None) -> None:
        """Create several collections, stopping at the first failure."""
        for name in names:
            self._store.create_collection(name, timeout=timeout)

    def drop_collections(self, names: Iterable[str], timeout: float | None = None) -> None:
        """Drop several collections, stopping at the first failure."""
        for name in names:
            self._store.drop_collection(name, timeout=timeout)

    def list_collections(self) -> list[str]:
        return self._store.list_collections()

    def create(self, value: Any, collection: str, timeout: float | None = None) -> Any:
        """Insert one value into ``collection``.

        Args:
            value: Mapping or dataclass instance
            collection: Target collection
            timeout: Deadline for the operation in seconds

        Returns:
            The ``_id`` of the stored document

        Raises:
            DocumentConversionError: If the value cannot be represented as a document
            CollectionNotFoundError: If the in-memory store has no such collection
        """
        doc = to_document(value)
        return self._store.insert_document(collection, doc, timeout=timeout)

    def create_many(self, values: Sequence[Any], collection: str, timeout: float | None = None) -> list[Any]:
        """Insert several values into ``collection``.

        Every value that converts cleanly and is accepted by the store is
        inserted, even when others are not.

        Returns:
            The ``_id`` of every stored document, in input order

        Raises:
            BulkInsertError: If one or more values could not be converted or
                stored; the others have been stored. Failure indexes refer to
                positions in ``values``.
        """
        docs: list[dict[str, Any]] = []
        positions: list[int] = []
        failures: list[tuple[int, Exception]] = []
        for index, value in enumerate(values):
            try:
                doc = to_document(value)
            except DocumentConversionError as e:
                logger.warning(f"CrudClient: skipping value {index} for {collection} - {e}")
                failures.append((index, e))
                continue
            docs.append(doc)
            positions.append(index)

        inserted_ids: list[Any] = []
        if docs:
            try:
                inserted_ids = self._store.insert_documents(collection, docs, timeout=timeout)
            except BulkInsertError as e:
                logger.warning(f"CrudClient: {len(e.failures)} document(s) rejected by the store for {collection}")
                inserted_ids = e.inserted_ids
                failures.extend((positions[index], error) for index, error in e.failures)
                failures.sort(key=lambda failure: failure[0])

        if failures:
            raise BulkInsertError(collection, inserted_ids, failures)
        return inserted_ids

    def find_one(
        self,
        collection: str,
        filter_spec: FilterSpec = None,
        options: FindOptions | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Return the first document matching ``filter_spec``.

        Raises:
            DocumentNotFoundError: If nothing matches
        """
        return self._store.find_document(collection, filter_spec, options, timeout=timeout)

    def find(
        self,
        collection: str,
        filter_spec: FilterSpec = None,
        options: FindOptions | None = None,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Return every document matching ``filter_spec`` (possibly none)."""
        return self._store.query_documents(collection, filter_spec, options, timeout=timeout)

    def update(
        self,
        collection: str,
        filter_spec: FilterSpec,
        value: Any,
        timeout: float | None = None,
    ) -> UpdateResult:
        """Write ``value`` over the documents matching ``filter_spec``.

        Raises:
            DocumentConversionError: If the value cannot be represented as a document
            DocumentNotFoundError: If nothing matches
        """
        doc = to_document(value)
        return self._store.update_documents(collection, filter_spec, doc, timeout=timeout)

    def delete(self, collection: str, filter_spec: FilterSpec, timeout: float | None = None) -> DeleteResult:
        """Delete documents matching ``filter_spec``.

        Raises:
            DocumentNotFoundError: If nothing matches
        """
        return self._store.delete_documents(collection, filter_spec, timeout=timeout)
