"""Shape-specific extractors: one fast path per physical payload shape."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from invoices.normalize.coerce import DEFAULT_NUMBER_FORMAT, NumberFormat
from invoices.normalize.errors import ShapeMismatch
from invoices.normalize.fields import (
    LINE_ITEMS_KEYS,
    FieldReader,
    containers,
    flattened_line_items,
    is_placeholder,
    read_header,
    read_line_item,
    resolve_currency,
)
from invoices.normalize.nodes import (
    RawNode,
    Shape,
    as_mapping,
    as_sequence,
    children_of,
    detect_shape,
    find_field,
    is_object_token,
    is_wrapper,
)
from invoices.normalize.schema import CoercionFailure, LineItem

LOGGER = logging.getLogger(__name__)

@dataclass(slots=True)
class Extraction:
    """Candidate produced by an extractor, awaiting validation."""

    header: Dict[str, Any]
    line_items: List[LineItem]
    coercion_failures: List[CoercionFailure] = field(default_factory=list)


class Extractor(Protocol):
    """Protocol for everything the orchestrator can try on a raw node."""

    name: str

    def extract(self, node: RawNode) -> Extraction:
        """Produce a candidate or raise an :class:`ExtractionError`."""


def _find_line_items(sources: Sequence[Mapping[str, Any]]) -> Tuple[bool, Any]:
    for source in sources:
        found, value = find_field(source, LINE_ITEMS_KEYS[:1])
        if found:
            return True, value
    return False, None


class _ShapeExtractor:
    """Common flow: re-validate the shape, walk the items, read the header."""

    name = ""
    shape = Shape.UNKNOWN
    requires_fields = False

    def __init__(self, number_format: Optional[NumberFormat] = None) -> None:
        self._number_format = number_format or DEFAULT_NUMBER_FORMAT

    def extract(self, node: RawNode) -> Extraction:
        observed = detect_shape(node.payload)
        if observed is not self.shape:
            raise ShapeMismatch(self.name, f"payload has {observed.value} shape, expected {self.shape.value}")

        reader = FieldReader(self._number_format)
        sources = containers(node.payload)
        elements, padded = self._line_item_properties(sources)

        line_items: List[LineItem] = []
        raw_amounts: List[Any] = []
        for index, properties in enumerate(elements):
            item, raw_amount = read_line_item(reader, properties, index)
            if padded and is_placeholder(item):
                continue
            line_items.append(item)
            raw_amounts.append(raw_amount)

        header, raw_values = read_header(reader, sources)
        if self.requires_fields and not raw_values and not elements:
            raise ShapeMismatch(self.name, "no recognizable invoice fields")
        header["currency"] = resolve_currency(header, raw_values, raw_amounts)

        LOGGER.debug("%s extractor read %d line items", self.name, len(line_items))
        return Extraction(header=header, line_items=line_items, coercion_failures=reader.failures)

    def _line_item_properties(self, sources: Sequence[Mapping[str, Any]]) -> Tuple[List[Mapping[str, Any]], bool]:
        raise NotImplementedError


class DocumentExtractor(_ShapeExtractor):
    """Whole-document results: ``LineItems`` is a native list of objects."""

    name = "document"
    shape = Shape.DOCUMENT

    def _line_item_properties(self, sources: Sequence[Mapping[str, Any]]) -> Tuple[List[Mapping[str, Any]], bool]:
        found, value = _find_line_items(sources)
        if not found:
            raise ShapeMismatch(self.name, "no LineItems array in the document")
        if not isinstance(value, (list, tuple)):
            raise ShapeMismatch(self.name, f"LineItems is {type(value).__name__}, not a native array")

        elements: List[Mapping[str, Any]] = []
        for index, element in enumerate(value):
            if not isinstance(element, Mapping) or is_wrapper(element):
                raise ShapeMismatch(self.name, f"line item {index} is not a plain object")
            elements.append(element)
        return elements, False


class ProjectedExtractor(_ShapeExtractor):
    """JOIN/projection results: ``LineItems`` arrives wrapped in child tokens.

    Each token is a full sub-tree, so its own properties are read one level
    down (object tokens list them as name/value property tokens).
    """

    name = "projected"
    shape = Shape.PROJECTED

    def _line_item_properties(self, sources: Sequence[Mapping[str, Any]]) -> Tuple[List[Mapping[str, Any]], bool]:
        found, value = _find_line_items(sources)
        if not found:
            raise ShapeMismatch(self.name, "no LineItems wrapper in the projection")

        tokens: Optional[List[Any]]
        if is_wrapper(value) and not is_object_token(value):
            tokens = children_of(value)
        elif isinstance(value, (list, tuple)) and value and all(is_wrapper(item) for item in value):
            tokens = as_sequence(value)
        else:
            raise ShapeMismatch(self.name, "LineItems is not wrapped in child tokens")

        elements: List[Mapping[str, Any]] = []
        for index, token in enumerate(tokens or []):
            properties = as_mapping(token)
            if properties is None:
                raise ShapeMismatch(self.name, f"child token {index} is not an object")
            elements.append(properties)
        return elements, False


class GenericMapExtractor(_ShapeExtractor):
    """Array-free mappings: index-keyed item maps or flattened ``LineItemN_Field`` keys."""

    name = "generic_map"
    shape = Shape.GENERIC_MAP
    requires_fields = True

    def _line_item_properties(self, sources: Sequence[Mapping[str, Any]]) -> Tuple[List[Mapping[str, Any]], bool]:
        found, value = _find_line_items(sources)
        if found and value is not None:
            mapping = as_mapping(value)
            if mapping is None or not all(str(key).isdigit() for key in mapping):
                raise ShapeMismatch(self.name, "LineItems map is not keyed by item index")
            elements: List[Mapping[str, Any]] = []
            for key, element in sorted(mapping.items(), key=lambda pair: int(pair[0])):
                properties = as_mapping(element)
                if properties is None:
                    raise ShapeMismatch(self.name, f"line item {key} is not an object")
                elements.append(properties)
            return elements, False

        return flattened_line_items(sources), True

