"""Raw store payloads, their physical shapes, and a capability-based node walker.

Query results reach the normalizer in one of three physical shapes:

* **document** - the whole-document query; arrays are native Python lists.
* **projected** - a filtering/JOIN query; every array is a mapping exposing a
  children collection (``childrenTokens``) of child tokens, and each token is a
  full sub-tree. Object tokens list their properties as ``{"name", "value"}``
  pairs, and scalars may be wrapped in literal nodes ``{"type", "value"}``.
* **generic_map** - a flat or nested key/value mapping without arrays.

Everything in this module is read-only over the payload.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum
import re
from typing import Any, Deque, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

_KEY_NOISE = re.compile(r"[\s_\-]")

_CHILDREN_KEYS = {"childrentokens", "children"}
_LITERAL_KEYS = {"value", "type", "valuekind", "kind", "hasvalues"}
_PROPERTY_KEYS = {"name", "value", "type"}

Path = Tuple[str, ...]


class Shape(str, Enum):
    """Physical shape of a raw payload."""

    DOCUMENT = "document"
    PROJECTED = "projected"
    GENERIC_MAP = "generic_map"
    UNKNOWN = "unknown"


class QueryPath(str, Enum):
    """Advisory hint naming the query path that produced a payload."""

    WHOLE_DOCUMENT = "whole_document"
    PROJECTED = "projected"
    UNKNOWN = "unknown"


def canonical_key(name: Any) -> str:
    """Lower-case a property name and drop separators (``Line_Items`` -> ``lineitems``)."""

    return _KEY_NOISE.sub("", str(name)).lower()


def children_of(value: Any) -> Optional[List[Any]]:
    """Return the child tokens of a wrapper node, or ``None`` for anything else."""

    if not isinstance(value, Mapping):
        return None
    for key, child in value.items():
        if canonical_key(key) in _CHILDREN_KEYS and isinstance(child, (list, tuple)):
            return list(child)
    return None


def is_wrapper(value: Any) -> bool:
    return children_of(value) is not None


def is_property_token(value: Any) -> bool:
    if not isinstance(value, Mapping) or not value:
        return False
    keys = {canonical_key(key) for key in value}
    return "name" in keys and "value" in keys and keys <= _PROPERTY_KEYS


def is_object_token(value: Any) -> bool:
    """True for a wrapper whose children are all property tokens."""

    children = children_of(value)
    if not children:
        return False
    return all(is_property_token(child) for child in children)


def is_literal(value: Any) -> bool:
    if not isinstance(value, Mapping) or not value or is_wrapper(value):
        return False
    keys = {canonical_key(key) for key in value}
    return "value" in keys and keys <= _LITERAL_KEYS


def literal_value(value: Any) -> Any:
    """Unwrap (possibly nested) literal nodes down to the primitive they hold."""

    while is_literal(value):
        value = next(child for key, child in value.items() if canonical_key(key) == "value")
    return value


def token_properties(token: Any) -> Dict[str, Any]:
    """Flatten an object token into a ``{name: value}`` mapping."""

    properties: Dict[str, Any] = {}
    for child in children_of(token) or []:
        name = value = None
        for key, item in child.items():
            lowered = canonical_key(key)
            if lowered == "name":
                name = item
            elif lowered == "value":
                value = item
        properties[str(name)] = value
    return properties


def as_sequence(value: Any) -> Optional[List[Any]]:
    """Expose native lists and wrapped arrays uniformly; ``None`` for non-sequences.

    A list of array wrappers is flattened into one ordered sequence; a list of
    object tokens is kept as-is.
    """

    if isinstance(value, (list, tuple)):
        if any(is_wrapper(item) and not is_object_token(item) for item in value):
            flattened: List[Any] = []
            for item in value:
                if is_wrapper(item) and not is_object_token(item):
                    flattened.extend(children_of(item) or [])
                else:
                    flattened.append(item)
            return flattened
        return list(value)
    if is_wrapper(value) and not is_object_token(value):
        return children_of(value)
    return None


def as_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    """Expose plain mappings and object tokens uniformly; ``None`` otherwise."""

    if is_object_token(value):
        return token_properties(value)
    if isinstance(value, Mapping) and not is_wrapper(value) and not is_literal(value):
        return value
    return None


def find_field(mapping: Mapping[str, Any], keys: Sequence[str]) -> Tuple[bool, Any]:
    """Case-insensitive lookup of the first of ``keys`` present in ``mapping``."""

    index: Dict[str, Any] = {}
    for key, value in mapping.items():
        index.setdefault(canonical_key(key), value)
    for key in keys:
        if key in index:
            return True, index[key]
    return False, None


def detect_shape(payload: Any) -> Shape:
    """Classify ``payload`` structurally. Pure; never guesses on empty input."""

    if not isinstance(payload, Mapping) or not payload:
        return Shape.UNKNOWN
    if is_wrapper(payload):
        return Shape.PROJECTED

    has_native_array = False
    pending: Deque[Mapping[str, Any]] = deque([payload])
    while pending:
        current = pending.popleft()
        for value in current.values():
            if is_wrapper(value):
                return Shape.PROJECTED
            if isinstance(value, (list, tuple)):
                if any(is_wrapper(item) for item in value):
                    return Shape.PROJECTED
                has_native_array = True
                pending.extend(item for item in value if isinstance(item, Mapping) and not is_literal(item))
            elif isinstance(value, Mapping) and not is_literal(value):
                pending.append(value)

    return Shape.DOCUMENT if has_native_array else Shape.GENERIC_MAP


@dataclass(frozen=True, slots=True)
class RawNode:
    """Tagged handle over one raw query result."""

    shape: Shape
    payload: Any

    @classmethod
    def of(cls, payload: Any) -> "RawNode":
        if isinstance(payload, RawNode):
            return payload
        return cls(shape=detect_shape(payload), payload=payload)


class NodeVisitor(Protocol):
    """Capabilities a visitor can react to while walking a payload."""

    def visit_mapping(self, node: Mapping[str, Any], path: Path) -> bool:
        """Handle a mapping; return ``True`` to descend into its values."""

    def visit_sequence(self, items: Sequence[Any], path: Path) -> bool:
        """Handle a sequence; return ``True`` to descend into its elements."""

    def visit_scalar(self, value: Any, path: Path) -> None:
        """Handle a primitive (literal nodes already unwrapped)."""


def walk(payload: Any, visitor: NodeVisitor) -> None:
    """Breadth-first walk dispatching on capability rather than concrete type."""

    queue: Deque[Tuple[Any, Path]] = deque([(payload, ())])
    while queue:
        value, path = queue.popleft()
        items = as_sequence(value)
        if items is not None:
            if visitor.visit_sequence(items, path):
                queue.extend((item, path + (str(index),)) for index, item in enumerate(items))
            continue
        mapping = as_mapping(value)
        if mapping is not None:
            if visitor.visit_mapping(mapping, path):
                queue.extend((child, path + (str(key),)) for key, child in mapping.items())
            continue
        visitor.visit_scalar(literal_value(value), path)
