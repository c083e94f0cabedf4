# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Conversion of caller values into canonical documents."""

import dataclasses
import logging
from collections.abc import Mapping
from typing import Any

import bson
from bson.binary import UuidRepresentation
from bson.codec_options import CodecOptions
from bson.errors import BSONError

from .document_store import DocumentConversionError

logger = logging.getLogger(__name__)

ID_FIELD = "_id"

CODEC_OPTIONS = CodecOptions(
    document_class=dict,
    tz_aware=True,
    uuid_representation=UuidRepresentation.STANDARD,
)


def to_document(value: Any) -> dict[str, Any]:
    """Normalize a caller-supplied value into a document.

    The value is encoded to BSON and decoded back, so the result contains only
    types the database stores natively (tuples become lists, nested mappings
    become dicts, naive datetimes become UTC-aware). Dataclass instances are
    converted with ``dataclasses.asdict`` first.

    Args:
        value: Mapping with string keys or a dataclass instance

    Returns:
        A new dict; the input is never modified

    Raises:
        DocumentConversionError: If the value cannot be represented as a document
    """
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        value = dataclasses.asdict(value)

    if not isinstance(value, Mapping):
        raise DocumentConversionError(
            f"Cannot convert {type(value).__name__} to a document; expected a mapping or dataclass"
        )

    try:
        data = bson.encode(value, codec_options=CODEC_OPTIONS)
        return bson.decode(data, codec_options=CODEC_OPTIONS)
    except (BSONError, OverflowError, TypeError, ValueError) as e:
        logger.debug("to_document: conversion failed - %s", e)
        raise DocumentConversionError(f"Cannot convert value to a document: {e}") from e


def ensure_id(doc: dict[str, Any]) -> Any:
    """Give ``doc`` an ``_id`` if it has none and return the identifier.

    Generated identifiers are ``bson.ObjectId`` values, as the MongoDB driver
    does on insert.
    """
    if ID_FIELD not in doc:
        doc[ID_FIELD] = bson.ObjectId()
    return doc[ID_FIELD]
