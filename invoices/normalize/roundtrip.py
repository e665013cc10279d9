"""Last-resort extraction through a canonical JSON round trip."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from invoices.normalize.errors import RoundTripError, ShapeMismatch
from invoices.normalize.extractors import Extraction
from invoices.normalize.fields import CONTAINER_KEYS
from invoices.normalize.nodes import RawNode, as_mapping, as_sequence, canonical_key, is_literal, literal_value
from invoices.normalize.schema import LineItem

LOGGER = logging.getLogger(__name__)


class _InvoiceEnvelope(BaseModel):
    """Header plus items as they appear in the canonical interchange form."""

    model_config = ConfigDict(extra="ignore")

    document_id: str = Field(default="", validation_alias=AliasChoices("id", "documentid"))
    twin_id: str = Field(default="", validation_alias="twinid")
    file_name: str = Field(default="", validation_alias="filename")
    file_path: str = Field(default="", validation_alias="filepath")
    created_at: Optional[datetime] = Field(default=None, validation_alias="createdat")
    vendor_name: str = Field(default="", validation_alias="vendorname")
    vendor_address: str = Field(default="", validation_alias="vendoraddress")
    customer_name: str = Field(default="", validation_alias="customername")
    customer_address: str = Field(default="", validation_alias="customeraddress")
    invoice_number: str = Field(default="", validation_alias="invoicenumber")
    currency: str = Field(default="", validation_alias=AliasChoices("currency", "currencycode"))
    invoice_date: Optional[date] = Field(default=None, validation_alias="invoicedate")
    due_date: Optional[date] = Field(default=None, validation_alias="duedate")
    sub_total: Decimal = Field(default=Decimal("0"), validation_alias="subtotal")
    total_tax: Decimal = Field(default=Decimal("0"), validation_alias="totaltax")
    invoice_total: Decimal = Field(default=Decimal("0"), validation_alias="invoicetotal")
    vendor_name_confidence: Optional[float] = Field(default=None, validation_alias="vendornameconfidence")
    customer_name_confidence: Optional[float] = Field(default=None, validation_alias="customernameconfidence")
    sub_total_confidence: Optional[float] = Field(default=None, validation_alias="subtotalconfidence")
    invoice_total_confidence: Optional[float] = Field(default=None, validation_alias="invoicetotalconfidence")
    line_items: List[LineItem] = Field(
        default_factory=list,
        validation_alias=AliasChoices("lineitems", "items", "lines"),
    )


def to_interchange(value: Any) -> Any:
    """Rewrite a payload into plain JSON data: arrays unwrapped, literals reduced, keys canonical."""

    if is_literal(value):
        return to_interchange(literal_value(value))
    items = as_sequence(value)
    if items is not None:
        return [to_interchange(item) for item in items]
    mapping = as_mapping(value)
    if mapping is not None:
        return {canonical_key(key): to_interchange(child) for key, child in mapping.items()}
    return value


def dumps_interchange(payload: Any) -> str:
    """Serialize ``payload`` to canonical JSON text, merging ``invoiceData`` over the root."""

    document = to_interchange(payload)
    if not isinstance(document, dict):
        raise TypeError(f"payload is {type(payload).__name__}, not an object")
    merged: Dict[str, Any] = {key: value for key, value in document.items() if key not in CONTAINER_KEYS}
    for key in CONTAINER_KEYS:
        nested = document.get(key)
        if isinstance(nested, dict):
            merged.update(nested)
    return json.dumps(merged, sort_keys=True, default=str, ensure_ascii=False)


class RoundTripExtractor:
    """Deserialize the canonical JSON text straight into the record models."""

    name = "round_trip"

    def extract(self, node: RawNode) -> Extraction:
        if as_mapping(node.payload) is None or not node.payload:
            raise ShapeMismatch(self.name, "payload is empty or not an object")

        text = dumps_interchange(node.payload)
        try:
            envelope = _InvoiceEnvelope.model_validate_json(text)
        except ValidationError as exc:
            raise RoundTripError(self.name, f"{exc.error_count()} validation errors: {exc.errors()[0]['msg']}") from exc
        if not envelope.model_fields_set:
            raise ShapeMismatch(self.name, "no recognizable invoice fields")

        LOGGER.debug("Round trip deserialized %d line items", len(envelope.line_items))
        header = envelope.model_dump(exclude={"line_items"})
        return Extraction(header=header, line_items=list(envelope.line_items))
