# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Factory for creating document store instances based on configuration."""

from __future__ import annotations

import logging
from typing import Callable, Mapping

from .config import DocumentStoreConfig, DriverConfig, InMemoryDriverConfig, MongoDriverConfig
from .crud import CrudClient
from .document_store import DocumentStore
from .inmemory_document_store import InMemoryDocumentStore
from .mongo_document_store import MongoDocumentStore

logger = logging.getLogger(__name__)


def _build_mongodb(config: DriverConfig) -> DocumentStore:
    if not isinstance(config, MongoDriverConfig):
        raise TypeError("driver config must be MongoDriverConfig")
    return MongoDocumentStore.from_config(config)


def _build_inmemory(config: DriverConfig) -> DocumentStore:
    if not isinstance(config, InMemoryDriverConfig):
        raise TypeError("driver config must be InMemoryDriverConfig")
    return InMemoryDocumentStore.from_config(config)


DRIVERS: Mapping[str, Callable[[DriverConfig], DocumentStore]] = {
    "mongodb": _build_mongodb,
    "inmemory": _build_inmemory,
}


def create_document_store(config: DocumentStoreConfig) -> DocumentStore:
    """Create a document store instance.

    The store is returned unconnected; call ``connect()`` before use.

    Args:
        config: DocumentStoreConfig selecting the driver

    Returns:
        DocumentStore instance.

    Raises:
        ValueError: If config is missing or doc_store_type is unknown.
        TypeError: If the driver config does not belong to the selected driver.
    """
    if config is None:
        raise ValueError("document_store config is required")

    driver_type = str(config.doc_store_type).lower()
    try:
        factory = DRIVERS[driver_type]
    except KeyError as exc:
        supported = ", ".join(sorted(DRIVERS.keys()))
        raise ValueError(
            f"Unknown document_store driver: {driver_type}. Supported drivers: {supported}"
        ) from exc

    logger.debug("Creating %s document store", driver_type)
    return factory(config.driver)


def create_crud_client(config: DocumentStoreConfig | None = None) -> CrudClient:
    """Create a CrudClient over the configured store.

    Args:
        config: Store configuration. Read from the environment when omitted
                (see DocumentStoreConfig.from_env).

    Returns:
        CrudClient wrapping an unconnected store
    """
    if config is None:
        config = DocumentStoreConfig.from_env()
    return CrudClient(create_document_store(config))
