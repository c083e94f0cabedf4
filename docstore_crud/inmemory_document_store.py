# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""In-memory document store for testing and local development."""

import copy
import datetime
import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import bson

from .document_store import (
    BulkInsertError,
    CollectionNotFoundError,
    DeleteResult,
    DocumentConversionError,
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreError,
    FindOptions,
    UpdateResult,
)
from .documents import ID_FIELD, ensure_id
from .filters import Filter, type_family

logger = logging.getLogger(__name__)


def _sort_rank(value: Any) -> tuple:
    """Order values of mixed types roughly the way MongoDB does."""
    if value is None:
        return (1, 0)
    if isinstance(value, bool):
        return (8, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    if isinstance(value, Mapping):
        return (4, repr(value))
    if isinstance(value, (list, tuple)):
        return (5, repr(value))
    if isinstance(value, bytes):
        return (6, value)
    if isinstance(value, bson.ObjectId):
        return (7, value.binary)
    if isinstance(value, datetime.datetime):
        return (9, value.timestamp())
    return (10, repr(value))


def _id_key(value: Any, top_level: bool = True) -> tuple:
    """Return the dict key a document is stored under.

    Keys carry the value's type family, so ``1``, ``1.0`` and ``True`` are
    distinct identifiers just as they are distinct filter values. Embedded
    documents are keyed by their fields in order.
    """
    family = type_family(value)
    if family == "document":
        return (family, tuple((key, _id_key(item, top_level=False)) for key, item in value.items()))
    if family == "array":
        if top_level:
            raise DocumentConversionError("Document _id cannot be an array")
        return (family, tuple(_id_key(item, top_level=False) for item in value))
    try:
        hash(value)
    except TypeError:
        raise DocumentConversionError(
            f"Document _id of type {type(value).__name__} cannot be used as a key"
        ) from None
    return (family, value)


class InMemoryDocumentStore(DocumentStore):
    """In-memory document store implementation for testing.

    Collections must be created before documents are inserted. Filters are
    compiled with :class:`Filter`, so unsupported shapes raise
    ``UnsupportedFilterError`` instead of silently matching nothing. A single
    lock guards all state, which makes the store safe to share between threads.
    """

    @classmethod
    def from_config(cls, driver_config: Any = None) -> "InMemoryDocumentStore":
        """Create an InMemoryDocumentStore from configuration.

        The in-memory driver has no settings; the argument is accepted so all
        drivers can be built the same way.
        """
        return cls()

    def __init__(self):
        """Initialize in-memory document store."""
        self.collections: dict[str, dict[tuple, dict[str, Any]]] = {}
        self.connected = False
        self._lock = threading.RLock()

    def connect(self) -> None:
        """Pretend to connect.

        Note: Always succeeds for in-memory store
        """
        self.connected = True
        logger.debug("InMemoryDocumentStore: connected")

    def disconnect(self) -> None:
        """Pretend to disconnect. Stored documents are kept."""
        self.connected = False
        logger.debug("InMemoryDocumentStore: disconnected")

    def create_collection(self, name: str, timeout: float | None = None) -> None:
        with self._lock:
            if name in self.collections:
                logger.debug(f"InMemoryDocumentStore: collection {name} already exists")
                return
            self.collections[name] = {}
        logger.debug(f"InMemoryDocumentStore: created collection {name}")

    def drop_collection(self, name: str, timeout: float | None = None) -> None:
        with self._lock:
            dropped = self.collections.pop(name, None)
        if dropped is None:
            logger.debug(f"InMemoryDocumentStore: collection {name} not present, nothing to drop")
        else:
            logger.debug(f"InMemoryDocumentStore: dropped collection {name} ({len(dropped)} documents)")

    def list_collections(self) -> list[str]:
        """Return the names of all existing collections."""
        with self._lock:
            return list(self.collections)

    def _collection(self, name: str) -> dict[tuple, dict[str, Any]]:
        try:
            return self.collections[name]
        except KeyError:
            raise CollectionNotFoundError(f"Collection {name} does not exist") from None

    def insert_document(
        self, collection: str, doc: dict[str, Any], timeout: float | None = None
    ) -> Any:
        """Insert a document into the specified collection.

        A document whose ``_id`` is already present replaces the stored one.
        Identifiers of different types are distinct, so ``1``, ``1.0`` and
        ``True`` name three documents.

        Raises:
            CollectionNotFoundError: If the collection was never created
            DocumentConversionError: If the ``_id`` is an array or unhashable
        """
        # Make a deep copy to avoid external mutations affecting stored data
        doc_copy = copy.deepcopy(doc)
        doc_id = ensure_id(doc_copy)
        key = _id_key(doc_id)

        with self._lock:
            documents = self._collection(collection)
            if key in documents:
                logger.debug(f"InMemoryDocumentStore: overwriting document {doc_id!r} in {collection}")
            documents[key] = doc_copy

        logger.debug(f"InMemoryDocumentStore: inserted document {doc_id!r} into {collection}")
        return doc_id

    def insert_documents(
        self, collection: str, docs: Sequence[dict[str, Any]], timeout: float | None = None
    ) -> list[Any]:
        """Insert every document that can be stored.

        A document that cannot be stored does not stop the ones after it.

        Raises:
            CollectionNotFoundError: If the collection was never created
            BulkInsertError: If some documents were rejected; the others stay stored
        """
        inserted_ids: list[Any] = []
        failures: list[tuple[int, Exception]] = []

        with self._lock:
            self._collection(collection)
            for index, doc in enumerate(docs):
                try:
                    inserted_ids.append(self.insert_document(collection, doc))
                except DocumentStoreError as e:
                    logger.debug(f"InMemoryDocumentStore: document {index} rejected - {e}")
                    failures.append((index, e))

        if failures:
            raise BulkInsertError(collection, inserted_ids, failures)
        return inserted_ids

    def _matching(self, collection: str, query: Filter) -> Iterable[tuple[tuple, dict[str, Any]]]:
        # Caller holds the lock
        documents = self.collections.get(collection, {})
        return ((key, doc) for key, doc in documents.items() if query.matches(doc))

    def _first_match(self, collection: str, query: Filter) -> tuple[tuple, dict[str, Any]]:
        # Caller holds the lock
        for key, doc in self._matching(collection, query):
            return key, doc
        raise DocumentNotFoundError(f"No document matching {query.to_query()} in collection {collection}")

    def find_document(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        options: FindOptions | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Return the first matching document.

        Raises:
            DocumentNotFoundError: If nothing matches or the collection does not exist
            UnsupportedFilterError: If the filter cannot be compiled
        """
        if options is not None and (options.sort or options.skip):
            results = self.query_documents(collection, filter_spec, FindOptions(options.sort, options.skip, 1))
            if not results:
                raise DocumentNotFoundError(f"No document matching {filter_spec} in collection {collection}")
            return results[0]

        query = Filter.parse(filter_spec)
        with self._lock:
            try:
                _, doc = self._first_match(collection, query)
            except DocumentNotFoundError:
                logger.debug(f"InMemoryDocumentStore: no document matching {filter_spec} in {collection}")
                raise
            # Return a deep copy to prevent external mutations affecting stored data
            result = copy.deepcopy(doc)

        logger.debug(f"InMemoryDocumentStore: retrieved document {result[ID_FIELD]!r} from {collection}")
        return result

    def query_documents(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        options: FindOptions | None = None,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Return all matching documents.

        Returns an empty list when the collection does not exist.

        Raises:
            UnsupportedFilterError: If the filter cannot be compiled
        """
        query = Filter.parse(filter_spec)
        with self._lock:
            results = [copy.deepcopy(doc) for _, doc in self._matching(collection, query)]

        if options is not None:
            for field, direction in reversed(options.sort):
                results.sort(key=lambda doc: _sort_rank(doc.get(field)), reverse=direction == -1)
            end = None if options.limit is None else options.skip + options.limit
            results = results[options.skip:end]

        logger.debug(
            f"InMemoryDocumentStore: query on {collection} with {filter_spec} "
            f"returned {len(results)} documents"
        )
        return results

    def update_documents(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        doc: dict[str, Any],
        timeout: float | None = None,
    ) -> UpdateResult:
        """Replace the first matching document with ``doc``.

        The replacement is stored under its own ``_id``; when it has none it
        takes over the ``_id`` of the document it replaces.

        Raises:
            DocumentNotFoundError: If nothing matches
            UnsupportedFilterError: If the filter cannot be compiled
            DocumentConversionError: If the replacement ``_id`` is an array or unhashable
        """
        query = Filter.parse(filter_spec)
        replacement = copy.deepcopy(doc)

        with self._lock:
            try:
                matched_key, matched = self._first_match(collection, query)
            except DocumentNotFoundError:
                logger.debug(f"InMemoryDocumentStore: no document matching {filter_spec} in {collection}")
                raise
            documents = self.collections[collection]
            matched_id = matched[ID_FIELD]
            new_id = replacement.setdefault(ID_FIELD, matched_id)
            new_key = _id_key(new_id)
            del documents[matched_key]
            documents[new_key] = replacement

        if new_key != matched_key:
            logger.debug(
                f"InMemoryDocumentStore: replaced document {matched_id!r} with {new_id!r} in {collection}"
            )
        else:
            logger.debug(f"InMemoryDocumentStore: updated document {matched_id!r} in {collection}")
        return UpdateResult(matched_count=1, modified_count=1)

    def delete_documents(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        timeout: float | None = None,
    ) -> DeleteResult:
        """Delete the first matching document.

        Raises:
            DocumentNotFoundError: If nothing matches
            UnsupportedFilterError: If the filter cannot be compiled
        """
        query = Filter.parse(filter_spec)
        with self._lock:
            try:
                key, doc = self._first_match(collection, query)
            except DocumentNotFoundError:
                logger.debug(f"InMemoryDocumentStore: no document matching {filter_spec} in {collection}")
                raise
            del self.collections[collection][key]

        logger.debug(f"InMemoryDocumentStore: deleted document {doc[ID_FIELD]!r} from {collection}")
        return DeleteResult(deleted_count=1)
