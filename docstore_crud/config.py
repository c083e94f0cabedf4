# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Typed configuration for document store drivers."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Union

DEFAULT_STORE_TYPE = "inmemory"
DEFAULT_MONGODB_PORT = 27017


@dataclass(frozen=True)
class InMemoryDriverConfig:
    """Configuration for the in-memory driver. It has no settings."""
    pass


@dataclass(frozen=True)
class MongoDriverConfig:
    """Configuration for the MongoDB driver.

    Either ``connection_string`` or ``host`` must be set. Explicit
    ``username``/``password`` are passed to the client separately from the
    connection string.

    Attributes:
        database: Database name (required)
        connection_string: MongoDB URI, e.g. ``mongodb://localhost:27017``
        host: MongoDB host, used when no connection string is given
        port: MongoDB port
        username: Optional username
        password: Optional password
        client_options: Extra keyword arguments for ``pymongo.MongoClient``
    """
    database: str
    connection_string: str | None = None
    host: str | None = None
    port: int = DEFAULT_MONGODB_PORT
    username: str | None = None
    password: str | None = None
    client_options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.database:
            raise ValueError(
                "MongoDB database is required. "
                "Provide the database name to use."
            )
        if not self.connection_string and not self.host:
            raise ValueError(
                "MongoDB connection string or host is required. "
                "Set MONGO_CLIENT_ID or DOCUMENT_DATABASE_HOST."
            )


DriverConfig = Union[InMemoryDriverConfig, MongoDriverConfig]


@dataclass(frozen=True)
class DocumentStoreConfig:
    """Selects a document store driver and carries its settings.

    Attributes:
        doc_store_type: Driver name ("inmemory" or "mongodb")
        driver: Driver-specific configuration
    """
    doc_store_type: str = DEFAULT_STORE_TYPE
    driver: DriverConfig = field(default_factory=InMemoryDriverConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "DocumentStoreConfig":
        """Build configuration from environment variables.

        Explicit keyword overrides take precedence over the environment.

        Environment variables:
            DOCUMENT_STORE_TYPE: Driver name (default "inmemory")
            MONGO_CLIENT_ID: MongoDB connection string
            DOCUMENT_DATABASE_HOST: MongoDB host (used without a connection string)
            DOCUMENT_DATABASE_PORT: MongoDB port (default 27017)
            DOCUMENT_DATABASE_NAME: Database name
            DOCUMENT_DATABASE_USER: Username (optional)
            DOCUMENT_DATABASE_PASSWORD: Password (optional)

        Args:
            environ: Mapping to read instead of ``os.environ``
            **overrides: doc_store_type or any MongoDriverConfig field

        Raises:
            ValueError: If the driver is unknown or required settings are missing
        """
        env = os.environ if environ is None else environ
        store_type = str(overrides.pop("doc_store_type", env.get("DOCUMENT_STORE_TYPE", DEFAULT_STORE_TYPE))).lower()

        if store_type == "inmemory":
            return cls(doc_store_type=store_type, driver=InMemoryDriverConfig())

        if store_type == "mongodb":
            port = overrides.pop("port", env.get("DOCUMENT_DATABASE_PORT", DEFAULT_MONGODB_PORT))
            try:
                port = int(port)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid MongoDB port: {port!r}") from e

            settings = {
                "connection_string": env.get("MONGO_CLIENT_ID"),
                "host": env.get("DOCUMENT_DATABASE_HOST"),
                "database": env.get("DOCUMENT_DATABASE_NAME"),
                "username": env.get("DOCUMENT_DATABASE_USER"),
                "password": env.get("DOCUMENT_DATABASE_PASSWORD"),
            }
            settings.update(overrides)
            return cls(doc_store_type=store_type, driver=MongoDriverConfig(port=port, **settings))

        raise ValueError(f"Unknown document store type: {store_type}")
