# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""MongoDB document store implementation."""

import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager, nullcontext
from typing import Any

import pymongo
from pymongo import MongoClient
from pymongo.errors import BulkWriteError, CollectionInvalid, ConnectionFailure, PyMongoError

from .config import DEFAULT_MONGODB_PORT, MongoDriverConfig
from .document_store import (
    BulkInsertError,
    DeleteResult,
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreBackendError,
    DocumentStoreConnectionError,
    DocumentStoreError,
    DocumentStoreNotConnectedError,
    FindOptions,
    UpdateResult,
)
from .documents import CODEC_OPTIONS, ID_FIELD
from .filters import Filter

logger = logging.getLogger(__name__)


def _as_query(filter_spec: Mapping[str, Any] | Filter | None) -> dict[str, Any]:
    if filter_spec is None:
        return {}
    if isinstance(filter_spec, Filter):
        return filter_spec.to_query()
    return dict(filter_spec)


class MongoDocumentStore(DocumentStore):
    """MongoDB document store implementation.

    Filters are handed to MongoDB as-is, so the full query language is
    available here. Updates apply the new document with ``$set`` to every
    matching document.
    """

    @classmethod
    def from_config(cls, driver_config: MongoDriverConfig) -> "MongoDocumentStore":
        """Create a MongoDocumentStore from configuration.

        Args:
            driver_config: MongoDB driver configuration

        Returns:
            Configured MongoDocumentStore instance (not yet connected)
        """
        return cls(
            connection_string=driver_config.connection_string,
            host=driver_config.host,
            port=driver_config.port,
            username=driver_config.username,
            password=driver_config.password,
            database=driver_config.database,
            **driver_config.client_options,
        )

    def __init__(
        self,
        connection_string: str | None = None,
        host: str | None = None,
        port: int = DEFAULT_MONGODB_PORT,
        username: str | None = None,
        password: str | None = None,
        database: str | None = None,
        **kwargs
    ):
        """Initialize MongoDB document store.

        Args:
            connection_string: MongoDB URI (takes precedence over host/port)
            host: MongoDB host
            port: MongoDB port
            username: MongoDB username (optional)
            password: MongoDB password (optional)
            database: Database name (required)
            **kwargs: Additional MongoDB client options

        Raises:
            ValueError: If neither connection string nor host is given, or database is missing
        """
        if not connection_string and not host:
            raise ValueError(
                "MongoDB connection string or host is required. "
                "Provide a mongodb:// URI or the server hostname."
            )
        if not database:
            raise ValueError(
                "MongoDB database is required. "
                "Provide the database name to use."
            )

        self.connection_string = connection_string
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.database_name = database
        self.client_options = kwargs
        self.client = None
        self.database = None

    def _describe_target(self) -> str:
        if self.connection_string:
            return f"{self.database_name} (connection string)"
        return f"{self.host}:{self.port}/{self.database_name}"

    def connect(self) -> None:
        """Connect to MongoDB and verify the server answers a ping.

        Raises:
            DocumentStoreConnectionError: If connection fails
        """
        if self.connection_string:
            connection_params: dict[str, Any] = {"host": self.connection_string}
        else:
            connection_params = {"host": self.host, "port": self.port}

        if self.username and self.password:
            connection_params["username"] = self.username
            connection_params["password"] = self.password
            if "authSource" not in self.client_options:
                connection_params["authSource"] = "admin"

        connection_params.update(self.client_options)

        try:
            self.client = MongoClient(**connection_params)
            self.client.admin.command("ping")
            self.database = self.client.get_database(self.database_name, codec_options=CODEC_OPTIONS)
            logger.info("MongoDocumentStore: connected to %s", self._describe_target())
        except ConnectionFailure as e:
            logger.error("MongoDocumentStore: connection failed - %s", e, exc_info=True)
            self._reset()
            raise DocumentStoreConnectionError(f"Failed to connect to MongoDB at {self._describe_target()}") from e
        except Exception as e:
            logger.error("MongoDocumentStore: unexpected error during connect - %s", e, exc_info=True)
            self._reset()
            raise DocumentStoreConnectionError(f"Unexpected error connecting to MongoDB: {str(e)}") from e

    def _reset(self) -> None:
        if self.client is not None:
            self.client.close()
        self.client = None
        self.database = None

    def disconnect(self) -> None:
        """Disconnect from MongoDB."""
        if self.client:
            self._reset()
            logger.info("MongoDocumentStore: disconnected")

    @contextmanager
    def _operation(self, action: str, collection: str, timeout: float | None) -> Iterator[Any]:
        """Yield the collection handle, applying the deadline and wrapping driver errors."""
        if self.database is None:
            raise DocumentStoreNotConnectedError("Not connected to MongoDB")

        deadline = pymongo.timeout(timeout) if timeout is not None else nullcontext()
        try:
            with deadline:
                yield self.database[collection]
        except DocumentStoreError:
            raise
        except PyMongoError as e:
            logger.error(f"MongoDocumentStore: {action} on {collection} failed - {e}", exc_info=True)
            raise DocumentStoreBackendError(f"Failed to {action} in {collection}: {e}") from e

    def create_collection(self, name: str, timeout: float | None = None) -> None:
        with self._operation("create collection", name, timeout):
            try:
                self.database.create_collection(name)
            except CollectionInvalid:
                logger.debug(f"MongoDocumentStore: collection {name} already exists")
                return
        logger.debug(f"MongoDocumentStore: created collection {name}")

    def drop_collection(self, name: str, timeout: float | None = None) -> None:
        with self._operation("drop collection", name, timeout):
            self.database.drop_collection(name)
        logger.debug(f"MongoDocumentStore: dropped collection {name}")

    def list_collections(self) -> list[str]:
        """Return the names of all collections in the database."""
        if self.database is None:
            raise DocumentStoreNotConnectedError("Not connected to MongoDB")
        try:
            return self.database.list_collection_names()
        except PyMongoError as e:
            logger.error(f"MongoDocumentStore: list_collections failed - {e}", exc_info=True)
            raise DocumentStoreBackendError(f"Failed to list collections: {e}") from e

    def insert_document(
        self, collection: str, doc: dict[str, Any], timeout: float | None = None
    ) -> Any:
        with self._operation("insert document", collection, timeout) as coll:
            result = coll.insert_one(doc)
        logger.debug(f"MongoDocumentStore: inserted document {result.inserted_id} into {collection}")
        return result.inserted_id

    def insert_documents(
        self, collection: str, docs: Sequence[dict[str, Any]], timeout: float | None = None
    ) -> list[Any]:
        """Insert documents with an unordered bulk write.

        Documents the server accepted stay stored when others are rejected.

        Raises:
            BulkInsertError: If the server rejected some documents
            DocumentStoreBackendError: If the bulk write failed as a whole
        """
        if not docs:
            return []
        # insert_many assigns missing _id values on these dicts in place
        batch = list(docs)
        with self._operation("insert documents", collection, timeout) as coll:
            try:
                result = coll.insert_many(batch, ordered=False)
            except BulkWriteError as e:
                write_errors = e.details.get("writeErrors", [])
                if not write_errors:
                    raise
                rejected = {error["index"]: error for error in write_errors}
                inserted_ids = [doc[ID_FIELD] for index, doc in enumerate(batch) if index not in rejected]
                failures = [
                    (index, DocumentStoreBackendError(error.get("errmsg", "write error")))
                    for index, error in sorted(rejected.items())
                ]
                logger.error(
                    f"MongoDocumentStore: {len(failures)} of {len(batch)} documents rejected by {collection}"
                )
                raise BulkInsertError(collection, inserted_ids, failures) from e
        logger.debug(f"MongoDocumentStore: inserted {len(result.inserted_ids)} documents into {collection}")
        return list(result.inserted_ids)

    def find_document(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        options: FindOptions | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        query = _as_query(filter_spec)
        options = options or FindOptions()
        with self._operation("find document", collection, timeout) as coll:
            doc = coll.find_one(query, sort=list(options.sort) or None, skip=options.skip)

        if doc is None:
            logger.debug(f"MongoDocumentStore: no document matching {query} in {collection}")
            raise DocumentNotFoundError(f"No document matching {query} in collection {collection}")
        return doc

    def query_documents(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        options: FindOptions | None = None,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        query = _as_query(filter_spec)
        options = options or FindOptions()
        if options.limit == 0:
            return []

        with self._operation("query documents", collection, timeout) as coll:
            cursor = coll.find(
                query,
                sort=list(options.sort) or None,
                skip=options.skip,
                limit=options.limit or 0,
            )
            results = list(cursor)

        logger.debug(
            f"MongoDocumentStore: query on {collection} with {query} "
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
        """Apply ``$set`` with the fields of ``doc`` to every matching document.

        ``_id`` is immutable on the server, so it is left out of ``$set``; the
        matched documents keep their identifiers.

        Raises:
            DocumentNotFoundError: If nothing matches
        """
        query = _as_query(filter_spec)
        changes = {field: value for field, value in doc.items() if field != ID_FIELD}
        if len(changes) != len(doc):
            logger.debug(f"MongoDocumentStore: leaving {ID_FIELD} out of update on {collection}")
        with self._operation("update documents", collection, timeout) as coll:
            result = coll.update_many(query, {"$set": changes})

        if result.matched_count == 0:
            logger.debug(f"MongoDocumentStore: no document matching {query} in {collection}")
            raise DocumentNotFoundError(f"No document matching {query} in collection {collection}")

        logger.debug(f"MongoDocumentStore: updated {result.modified_count} documents in {collection}")
        return UpdateResult(matched_count=result.matched_count, modified_count=result.modified_count)

    def delete_documents(
        self,
        collection: str,
        filter_spec: Mapping[str, Any],
        timeout: float | None = None,
    ) -> DeleteResult:
        query = _as_query(filter_spec)
        with self._operation("delete documents", collection, timeout) as coll:
            result = coll.delete_many(query)

        if result.deleted_count == 0:
            logger.debug(f"MongoDocumentStore: no document matching {query} in {collection}")
            raise DocumentNotFoundError(f"No document matching {query} in collection {collection}")

        logger.debug(f"MongoDocumentStore: deleted {result.deleted_count} documents from {collection}")
        return DeleteResult(deleted_count=result.deleted_count)
