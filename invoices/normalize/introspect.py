"""Shape-agnostic extraction by walking whatever property graph arrives.

This is the path for payload shapes nobody anticipated. It trades the strict
shape guarantees of :mod:`invoices.normalize.extractors` for name-based
matching against the alias vocabulary, and still reads every line item.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from invoices.normalize.coerce import DEFAULT_NUMBER_FORMAT, NumberFormat, is_coercible
from invoices.normalize.errors import ShapeMismatch
from invoices.normalize.extractors import Extraction
from invoices.normalize.fields import (
    HEADER_BY_KEY,
    HEADER_FIELDS,
    LINE_ITEM_BY_KEY,
    LINE_ITEM_FIELDS,
    LINE_ITEMS_KEYS,
    FieldReader,
    containers,
    flattened_line_items,
    is_placeholder,
    read_line_item,
    resolve_currency,
)
from invoices.normalize.nodes import Path, RawNode, as_mapping, canonical_key, walk
from invoices.normalize.schema import LineItem

LOGGER = logging.getLogger(__name__)


@dataclass
class _SequenceCandidate:
    key: str
    depth: int
    items: List[Any]

    @property
    def item_like(self) -> int:
        """Number of elements that look like line items."""

        count = 0
        for element in self.items:
            properties = as_mapping(element)
            if properties and any(canonical_key(key) in LINE_ITEM_BY_KEY for key in properties):
                count += 1
        return count


@dataclass
class _InvoiceFieldCollector:
    """Visitor recording header values (shallowest wins) and candidate item sequences."""

    header_raw: Dict[str, Any] = field(default_factory=dict)
    sequences: List[_SequenceCandidate] = field(default_factory=list)

    def visit_mapping(self, node: Mapping[str, Any], path: Path) -> bool:
        for key, value in node.items():
            spec = HEADER_BY_KEY.get(canonical_key(key))
            if spec is None or spec.name in self.header_raw:
                continue
            if is_coercible(value):
                self.header_raw[spec.name] = value
        return True

    def visit_sequence(self, items: Sequence[Any], path: Path) -> bool:
        key = canonical_key(path[-1]) if path else ""
        self.sequences.append(_SequenceCandidate(key=key, depth=len(path), items=list(items)))
        return False

    def visit_scalar(self, value: Any, path: Path) -> None:
        return None

    def line_items(self) -> Optional[_SequenceCandidate]:
        named = [candidate for candidate in self.sequences if candidate.key in LINE_ITEMS_KEYS]
        if named:
            return named[0]
        scored = [candidate for candidate in self.sequences if candidate.item_like]
        if not scored:
            return None
        return max(scored, key=lambda candidate: (candidate.item_like, -candidate.depth))


class IntrospectionExtractor:
    """Best-effort extractor driven by the alias vocabulary."""

    name = "introspection"

    def __init__(self, number_format: Optional[NumberFormat] = None) -> None:
        self._number_format = number_format or DEFAULT_NUMBER_FORMAT

    def extract(self, node: RawNode) -> Extraction:
        if as_mapping(node.payload) is None:
            raise ShapeMismatch(self.name, f"payload is {type(node.payload).__name__}, not an object")

        collector = _InvoiceFieldCollector()
        walk(node.payload, collector)
        sequence = collector.line_items()
        flattened: List[Mapping[str, Any]] = []
        if sequence is None:
            flattened = flattened_line_items(containers(node.payload))
        if not collector.header_raw and sequence is None and not flattened:
            raise ShapeMismatch(self.name, "no recognizable invoice fields")

        reader = FieldReader(self._number_format)
        line_items: List[LineItem] = []
        raw_amounts: List[Any] = []
        elements: List[Any] = sequence.items if sequence else list(flattened)
        for index, element in enumerate(elements):
            properties = as_mapping(element)
            if properties is None:
                properties = {LINE_ITEM_FIELDS[0].primary[0]: element}
            item, raw_amount = read_line_item(reader, properties, index, aliases=True)
            if sequence is None and is_placeholder(item):
                continue
            line_items.append(item)
            raw_amounts.append(raw_amount)

        header: Dict[str, Any] = {}
        for spec in HEADER_FIELDS:
            found = spec.name in collector.header_raw
            header[spec.name] = reader.read(spec, collector.header_raw.get(spec.name), found=found)
        header["currency"] = resolve_currency(header, collector.header_raw, raw_amounts)

        LOGGER.debug(
            "Introspection matched %d header fields and %d line items (sequence key=%r, flattened slots=%d)",
            len(collector.header_raw),
            len(line_items),
            sequence.key if sequence else None,
            len(flattened),
        )
        return Extraction(header=header, line_items=line_items, coercion_failures=reader.failures)
