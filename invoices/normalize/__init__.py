"""Invoice normalization helpers and public API surface."""

from .coerce import Coerced, NumberFormat, coerce_date, coerce_datetime, coerce_decimal, coerce_string, detect_currency
from .errors import (
    CandidateRejected,
    ExhaustedFallbacks,
    ExtractionError,
    ItemCountMismatch,
    NormalizationError,
    RoundTripError,
    ShapeMismatch,
)
from .nodes import QueryPath, RawNode, Shape, detect_shape
from .schema import CoercionFailure, ExtractionAttempt, InvoiceRecord, InvoiceSummary, LineItem

__all__ = [
    "CandidateRejected",
    "Coerced",
    "CoercionFailure",
    "ExhaustedFallbacks",
    "ExtractionAttempt",
    "ExtractionError",
    "InvoiceRecord",
    "InvoiceSummary",
    "ItemCountMismatch",
    "LineItem",
    "NormalizationError",
    "NumberFormat",
    "QueryPath",
    "RawNode",
    "RoundTripError",
    "Shape",
    "ShapeMismatch",
    "coerce_date",
    "coerce_datetime",
    "coerce_decimal",
    "coerce_string",
    "detect_currency",
    "detect_shape",
]
