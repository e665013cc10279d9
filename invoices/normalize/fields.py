"""Canonical field vocabulary and the coercing reader shared by all extractors."""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from invoices.normalize.coerce import (
    DEFAULT_NUMBER_FORMAT,
    NumberFormat,
    coerce_date,
    coerce_datetime,
    coerce_decimal,
    coerce_float,
    coerce_int,
    coerce_string,
    detect_currency,
    normalize_currency_code,
)
from invoices.normalize.nodes import as_mapping, canonical_key, find_field
from invoices.normalize.schema import CoercionFailure, LineItem

LOGGER = logging.getLogger(__name__)

_RAW_PREVIEW = 80
_FLAT_ITEM_KEY = re.compile(r"(?:lineitem|item|line)(?P<index>\d+)(?P<field>[a-z]+)")


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """A canonical field, its scalar kind and the canonical keys it is read from.

    ``keys[0]`` is the name the shape-specific extractors require; the rest are
    aliases accepted by introspection.
    """

    name: str
    kind: str
    keys: Tuple[str, ...]

    @property
    def primary(self) -> Tuple[str, ...]:
        return self.keys[:1]


HEADER_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("document_id", "string", ("id", "documentid")),
    FieldSpec("twin_id", "string", ("twinid",)),
    FieldSpec("file_name", "string", ("filename",)),
    FieldSpec("file_path", "string", ("filepath",)),
    FieldSpec("created_at", "datetime", ("createdat",)),
    FieldSpec("vendor_name", "string", ("vendorname", "seller", "sellername", "suppliername", "merchantname")),
    FieldSpec("vendor_address", "string", ("vendoraddress", "selleraddress", "supplieraddress")),
    FieldSpec("customer_name", "string", ("customername", "buyer", "buyername", "billto")),
    FieldSpec("customer_address", "string", ("customeraddress", "buyeraddress", "billingaddress")),
    FieldSpec("invoice_number", "string", ("invoicenumber", "invoiceno", "invoicenum", "invoiceid")),
    FieldSpec("currency", "string", ("currency", "currencycode")),
    FieldSpec("invoice_date", "date", ("invoicedate", "issuedate", "dateissued", "date")),
    FieldSpec("due_date", "date", ("duedate", "paymentduedate")),
    FieldSpec("sub_total", "decimal", ("subtotal",)),
    FieldSpec("total_tax", "decimal", ("totaltax", "taxtotal", "taxamount", "tax")),
    FieldSpec("invoice_total", "decimal", ("invoicetotal", "total", "totalamount", "grandtotal", "amountdue")),
    FieldSpec("vendor_name_confidence", "confidence", ("vendornameconfidence",)),
    FieldSpec("customer_name_confidence", "confidence", ("customernameconfidence",)),
    FieldSpec("sub_total_confidence", "confidence", ("subtotalconfidence",)),
    FieldSpec("invoice_total_confidence", "confidence", ("invoicetotalconfidence",)),
)

LINE_ITEM_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec("description", "string", ("description", "desc", "itemdescription", "itemname", "name", "label")),
    FieldSpec("amount", "decimal", ("amount", "lineamount", "linetotal", "total", "itemamount")),
    FieldSpec("quantity", "optional_decimal", ("quantity", "qty", "itemquantity")),
    FieldSpec("unit_price", "optional_decimal", ("unitprice", "rate", "price", "itemrate")),
    FieldSpec("tax_category", "optional_string", ("taxcategory", "taxcode", "taxtype")),
    FieldSpec("description_confidence", "confidence", ("descriptionconfidence",)),
    FieldSpec("amount_confidence", "confidence", ("amountconfidence",)),
)

CONTAINER_KEYS: Tuple[str, ...] = ("invoicedata",)
LINE_ITEMS_KEYS: Tuple[str, ...] = ("lineitems", "items", "lines", "charges", "details")
COUNT_KEYS: Tuple[str, ...] = ("lineitemscount", "itemscount", "itemcount")
WRAPPER_COUNT_KEYS: Tuple[str, ...] = ("count",)

HEADER_BY_KEY: Dict[str, FieldSpec] = {key: spec for spec in HEADER_FIELDS for key in spec.keys}
LINE_ITEM_BY_KEY: Dict[str, FieldSpec] = {key: spec for spec in LINE_ITEM_FIELDS for key in spec.keys}


def _preview(raw: Any) -> str:
    text = repr(raw)
    return text if len(text) <= _RAW_PREVIEW else text[: _RAW_PREVIEW - 3] + "..."


@dataclass
class FieldReader:
    """Coerces raw values field by field, recording failures instead of raising."""

    number_format: NumberFormat = DEFAULT_NUMBER_FORMAT
    failures: List[CoercionFailure] = field(default_factory=list)

    def read(self, spec: FieldSpec, raw: Any, *, found: bool = True, path: Optional[str] = None) -> Any:
        """Return the coerced value of ``raw`` for ``spec`` (its default when absent)."""

        if not found:
            raw = None

        if spec.kind == "string":
            result: Any = coerce_string(raw)
        elif spec.kind == "optional_string":
            result = coerce_string(raw)
            if not result.ok:
                self._record(spec, raw, result.failed, path)
                return None
        elif spec.kind == "decimal":
            result = coerce_decimal(raw, self.number_format)
        elif spec.kind == "optional_decimal":
            result = coerce_decimal(raw, self.number_format)
            if not result.ok:
                self._record(spec, raw, result.failed, path)
                return None
        elif spec.kind == "date":
            result = coerce_date(raw)
        elif spec.kind == "datetime":
            result = coerce_datetime(raw)
        elif spec.kind == "confidence":
            result = coerce_float(raw, self.number_format)
        elif spec.kind == "int":
            result = coerce_int(raw, self.number_format)
        else:  # pragma: no cover - vocabulary is closed
            raise ValueError(f"Unknown field kind {spec.kind!r}")

        self._record(spec, raw, result.failed, path)
        return result.value

    def _record(self, spec: FieldSpec, raw: Any, failed: bool, path: Optional[str]) -> None:
        if not failed:
            return
        field_path = path or spec.name
        LOGGER.warning("Could not coerce %s to %s from %s; using default", field_path, spec.kind, _preview(raw))
        self.failures.append(CoercionFailure(field=field_path, target=spec.kind, raw=_preview(raw)))


def containers(payload: Any) -> List[Mapping[str, Any]]:
    """Mappings header fields are read from: ``invoiceData`` first, then the root."""

    root = as_mapping(payload)
    if root is None:
        return []
    found, nested = find_field(root, CONTAINER_KEYS)
    nested_mapping = as_mapping(nested) if found else None
    return [nested_mapping, root] if nested_mapping is not None else [root]


def read_header(
    reader: FieldReader,
    sources: Sequence[Mapping[str, Any]],
    *,
    aliases: bool = False,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Read every header field from the first source that has it.

    Returns the coerced header and the raw values that were found, the latter
    being needed for currency detection.
    """

    header: Dict[str, Any] = {}
    raw_values: Dict[str, Any] = {}
    for spec in HEADER_FIELDS:
        keys = spec.keys if aliases else spec.primary
        found, raw = False, None
        for source in sources:
            found, raw = find_field(source, keys)
            if found:
                break
        if found:
            raw_values[spec.name] = raw
        header[spec.name] = reader.read(spec, raw, found=found)
    return header, raw_values


def read_line_item(
    reader: FieldReader,
    properties: Mapping[str, Any],
    index: int,
    *,
    aliases: bool = False,
) -> Tuple[LineItem, Any]:
    """Build one :class:`LineItem` from a property mapping; also return the raw amount."""

    values: Dict[str, Any] = {}
    raw_amount = None
    for spec in LINE_ITEM_FIELDS:
        found, raw = find_field(properties, spec.keys if aliases else spec.primary)
        if spec.name == "amount" and found:
            raw_amount = raw
        values[spec.name] = reader.read(spec, raw, found=found, path=f"line_items[{index}].{spec.name}")
    return LineItem(**values), raw_amount


def resolve_currency(header: Dict[str, Any], raw_values: Mapping[str, Any], raw_amounts: Sequence[Any]) -> str:
    """Pick the record currency: explicit field, else the one monetary literals carry."""

    explicit = header.get("currency") or ""
    if explicit:
        return normalize_currency_code(explicit) or explicit
    for name in ("invoice_total", "sub_total", "total_tax"):
        if name in raw_values:
            code = detect_currency(raw_values[name])
            if code:
                return code
    for raw in raw_amounts:
        code = detect_currency(raw)
        if code:
            return code
    return ""


def count_hint(payload: Any, number_format: NumberFormat = DEFAULT_NUMBER_FORMAT) -> Optional[int]:
    """Line-item count reported by the store, if the raw record carries one."""

    sources = containers(payload)
    for source in sources:
        found, raw = find_field(source, COUNT_KEYS)
        if found:
            result = coerce_int(raw, number_format)
            if result.ok:
                return result.value
    for source in sources:
        found, items = find_field(source, LINE_ITEMS_KEYS[:1])
        if found and isinstance(items, Mapping):
            found_count, raw = find_field(items, WRAPPER_COUNT_KEYS)
            if found_count:
                result = coerce_int(raw, number_format)
                if result.ok:
                    return result.value
    return None


def flattened_line_items(sources: Sequence[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Collect ``LineItemN_Field`` keys into per-item property maps, ordered by ``N``."""

    slots: Dict[int, Dict[str, Any]] = {}
    for source in sources:
        for key, raw in source.items():
            match = _FLAT_ITEM_KEY.fullmatch(canonical_key(key))
            if match is None:
                continue
            slot = slots.setdefault(int(match.group("index")), {})
            slot.setdefault(match.group("field"), raw)
    return [slots[index] for index in sorted(slots)]


def is_placeholder(item: LineItem) -> bool:
    """Padding slot of a fixed-width flattened export."""

    return (
        not item.description
        and item.amount == 0
        and not item.quantity
        and not item.unit_price
        and item.tax_category is None
    )
