# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Copilot-for-Consensus contributors

"""Filter compilation and matching used by the in-memory document store.

Only two constraint shapes are understood:

- ``{"field": value}``: the document's field equals ``value``
- ``{"field": {"$in": [v1, v2]}}``: the document's field equals one of the values

Constraints on different fields are combined with AND. Anything else
(range operators, ``$or``, regular expressions, dotted paths) is rejected
with :class:`UnsupportedFilterError` when the filter is compiled, so a
filter is either understood completely or refused up front.

Equality is strict: values must belong to the same type family and be
equal, so ``True`` does not match ``1`` and ``1`` does not match ``1.0``.
"""

import copy
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union

from .document_store import UnsupportedFilterError

logger = logging.getLogger(__name__)

IN_OPERATOR = "$in"


def type_family(value: Any) -> Any:
    """Return the comparison family of a value; values of different families never compare equal."""
    if value is None:
        return "null"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "document"
    if isinstance(value, (list, tuple)):
        return "array"
    return type(value)


def values_equal(left: Any, right: Any) -> bool:
    """Compare two document values without implicit type coercion.

    Embedded documents are compared field by field in order, arrays element
    by element.
    """
    family = type_family(left)
    if family != type_family(right):
        return False
    if family == "document":
        if list(left.keys()) != list(right.keys()):
            return False
        return all(values_equal(left[key], right[key]) for key in left)
    if family == "array":
        if len(left) != len(right):
            return False
        return all(values_equal(a, b) for a, b in zip(left, right))
    return left == right


@dataclass(frozen=True)
class ScalarConstraint:
    """Field must equal ``value``."""
    value: Any

    def matches(self, candidate: Any) -> bool:
        return values_equal(candidate, self.value)

    def to_query(self) -> Any:
        return copy.deepcopy(self.value)


@dataclass(frozen=True)
class InConstraint:
    """Field must equal one of ``values``."""
    values: tuple

    def matches(self, candidate: Any) -> bool:
        return any(values_equal(candidate, value) for value in self.values)

    def to_query(self) -> dict[str, list]:
        return {IN_OPERATOR: copy.deepcopy(list(self.values))}


Constraint = Union[ScalarConstraint, InConstraint]


def _check_field_name(field: Any) -> None:
    if not isinstance(field, str):
        raise UnsupportedFilterError(
            f"Filter field names must be strings, got {type(field).__name__}"
        )
    if field.startswith("$"):
        raise UnsupportedFilterError(
            f"Top-level operator '{field}' is not supported; filter fields are combined with AND"
        )
    if "." in field:
        raise UnsupportedFilterError(
            f"Dotted field path '{field}' is not supported; only top-level fields can be filtered"
        )


def _reject_pattern(field: str, value: Any) -> None:
    if isinstance(value, re.Pattern):
        raise UnsupportedFilterError(
            f"Regular expression constraint on '{field}' is not supported"
        )


def _compile_constraint(field: str, raw: Any) -> Constraint:
    _reject_pattern(field, raw)

    if not isinstance(raw, Mapping):
        return ScalarConstraint(copy.deepcopy(raw))

    if not raw:
        raise UnsupportedFilterError(
            f"Empty mapping constraint on field '{field}' is not supported; "
            f"it is ambiguous between an empty operator expression and equality with an empty embedded document"
        )

    operators = [key for key in raw if isinstance(key, str) and key.startswith("$")]
    if not operators:
        # Plain embedded document: equality
        return ScalarConstraint(copy.deepcopy(dict(raw)))
    if len(operators) != len(raw):
        raise UnsupportedFilterError(
            f"Field '{field}' mixes operators and plain keys: {sorted(map(str, raw))}"
        )
    if len(operators) > 1:
        raise UnsupportedFilterError(
            f"Field '{field}' uses several operators {sorted(operators)}; only a single {IN_OPERATOR} is supported"
        )

    operator = operators[0]
    if operator != IN_OPERATOR:
        raise UnsupportedFilterError(
            f"Operator '{operator}' on field '{field}' is not supported; only {IN_OPERATOR} is"
        )

    values = raw[operator]
    if not isinstance(values, (list, tuple)):
        raise UnsupportedFilterError(
            f"{IN_OPERATOR} on field '{field}' needs a list of values, got {type(values).__name__}"
        )
    for value in values:
        _reject_pattern(field, value)
    return InConstraint(tuple(copy.deepcopy(list(values))))


class Filter:
    """A compiled conjunctive filter over top-level document fields."""

    __slots__ = ("_constraints",)

    def __init__(self, constraints: Mapping[str, Constraint] | None = None):
        self._constraints: dict[str, Constraint] = dict(constraints or {})

    @classmethod
    def parse(cls, spec: "Mapping[str, Any] | Filter | None") -> "Filter":
        """Compile a filter specification.

        Args:
            spec: Mapping of field name to value or ``{"$in": [...]}``.
                  ``None`` and ``{}`` compile to the match-everything filter.
                  An already compiled Filter is returned unchanged.

        Returns:
            Compiled Filter

        Raises:
            UnsupportedFilterError: If the specification uses an unsupported shape
        """
        if isinstance(spec, Filter):
            return spec
        if spec is None:
            return cls()
        if not isinstance(spec, Mapping):
            raise UnsupportedFilterError(
                f"Filter must be a mapping, got {type(spec).__name__}"
            )

        constraints: dict[str, Constraint] = {}
        for field, raw in spec.items():
            _check_field_name(field)
            constraints[field] = _compile_constraint(field, raw)

        logger.debug("Filter: compiled %d constraint(s) for fields %s", len(constraints), list(constraints))
        return cls(constraints)

    @property
    def constraints(self) -> dict[str, Constraint]:
        return dict(self._constraints)

    def matches(self, document: Mapping[str, Any]) -> bool:
        """Return True if every constraint is satisfied by ``document``.

        A constrained field missing from the document never matches. An empty
        filter matches every document.
        """
        for field, constraint in self._constraints.items():
            if field not in document:
                return False
            if not constraint.matches(document[field]):
                return False
        return True

    def to_query(self) -> dict[str, Any]:
        """Return the equivalent MongoDB query document."""
        return {field: constraint.to_query() for field, constraint in self._constraints.items()}

    def __len__(self) -> int:
        return len(self._constraints)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Filter):
            return NotImplemented
        return self._constraints == other._constraints

    def __repr__(self) -> str:
        return f"Filter({self._constraints!r})"


def matches(document: Mapping[str, Any], filter_spec: "Mapping[str, Any] | Filter | None") -> bool:
    """Compile ``filter_spec`` and test it against a single document.

    Raises:
        UnsupportedFilterError: If the specification uses an unsupported shape
    """
    return Filter.parse(filter_spec).matches(document)
