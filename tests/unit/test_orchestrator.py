from __future__ import annotations

import copy
from decimal import Decimal
import logging
from typing import Any, Callable, Dict, List

import pytest

from conftest import ATT_LINE_ITEMS, Item, document_payload, flattened_payload, literal, projected_payload
from invoices.normalize.errors import ExhaustedFallbacks, ItemCountMismatch
from invoices.normalize.nodes import QueryPath, RawNode
from invoices.orchestrator.orchestrator import NormalizationOrchestrator, OrchestratorConfig, normalize

Builder = Callable[..., Dict[str, Any]]


def _items(record) -> List[tuple]:
    return [(item.description, item.amount) for item in record.line_items]


def _expected(items: List[Item]) -> List[tuple]:
    return [(desc, Decimal(amount)) for desc, amount in items]


@pytest.mark.parametrize("size", [0, 1, 10, 11, 30])
@pytest.mark.parametrize(
    "builder, shape",
    [
        (document_payload, "document"),
        (projected_payload, "projected"),
        (flattened_payload, "generic_map"),
    ],
)
def test_every_shape_yields_the_same_record(builder: Builder, shape: str, size: int) -> None:
    items = ATT_LINE_ITEMS[:size]
    record = normalize(builder(items))

    assert record.shape == shape
    assert record.extractor == shape
    assert _items(record) == _expected(items)
    assert record.vendor_name == "AT&T"
    assert record.customer_name == "Jordan Lee"
    assert record.invoice_number == "ATT-2024-05"
    assert record.invoice_date.isoformat() == "2024-05-06"
    assert record.due_date.isoformat() == "2024-05-27"
    assert record.invoice_total == Decimal("197.78")
    assert record.currency == "USD"
    assert record.document_id == "doc-1"
    assert record.twin_id == "twin-7"
    assert record.file_name == "att-may.pdf"
    assert record.coercion_failures == []


def test_projected_results_are_not_truncated() -> None:
    record = normalize(projected_payload(ATT_LINE_ITEMS), QueryPath.PROJECTED)

    assert len(record.line_items) == 30
    assert record.reported_line_items_count == 30
    assert [item.description for item in record.line_items] == [desc for desc, _ in ATT_LINE_ITEMS]
    taxes = record.line_items_containing("tax")
    assert [item.amount for item in taxes] == [Decimal("4.12"), Decimal("1.07"), Decimal("2.10")]
    large = record.line_items_with_amount_greater_than(50)
    assert sorted(item.amount for item in large) == [Decimal("85.44"), Decimal("112.34")]


def test_header_total_is_kept_when_items_do_not_add_up() -> None:
    items = [("Service", "150.00"), ("Equipment", "40.00")]
    record = normalize(document_payload(items, total="197.78"))

    assert record.invoice_total == Decimal("197.78")
    assert record.line_item_amount_sum == Decimal("190.00")


def test_normalize_does_not_mutate_the_payload() -> None:
    payload = projected_payload(ATT_LINE_ITEMS)
    snapshot = copy.deepcopy(payload)

    normalize(payload)

    assert payload == snapshot


def test_fallback_trace_is_recorded(caplog: pytest.LogCaptureFixture) -> None:
    payload = document_payload(ATT_LINE_ITEMS[:3], items_key="Items")

    with caplog.at_level(logging.INFO, logger="invoices.orchestrator.orchestrator"):
        record = normalize(payload)

    assert record.shape == "document"
    assert record.extractor == "introspection"
    assert [(attempt.extractor, attempt.outcome) for attempt in record.attempts] == [
        ("document", "shape_mismatch"),
        ("introspection", "accepted"),
    ]
    assert len(record.line_items) == 3
    assert "via fallback introspection extractor" in caplog.text


def test_count_mismatch_exhausts_every_extractor() -> None:
    payload = document_payload(ATT_LINE_ITEMS[:5], count=6)

    with pytest.raises(ExhaustedFallbacks) as excinfo:
        normalize(payload)

    error = excinfo.value
    assert error.shape == "document"
    assert [(attempt.extractor, attempt.outcome) for attempt in error.attempts] == [
        ("document", "rejected"),
        ("introspection", "rejected"),
        ("round_trip", "rejected"),
    ]
    assert all(attempt.item_count == 5 for attempt in error.attempts)
    assert isinstance(error.__cause__, ItemCountMismatch)
    assert "store reports 6 line items but 5 were extracted" in error.report()


def test_count_hint_can_be_disabled() -> None:
    orchestrator = NormalizationOrchestrator(OrchestratorConfig(enforce_count_hint=False))

    record = orchestrator.normalize(document_payload(ATT_LINE_ITEMS[:5], count=6))

    assert record.extractor == "document"
    assert record.reported_line_items_count == 6
    assert len(record.line_items) == 5


@pytest.mark.parametrize("payload", [{}, [], None, "invoice"])
def test_unusable_payloads_exhaust_fallbacks(payload: Any) -> None:
    with pytest.raises(ExhaustedFallbacks) as excinfo:
        normalize(payload)

    assert excinfo.value.shape == "unknown"
    assert [(attempt.extractor, attempt.outcome) for attempt in excinfo.value.attempts] == [
        ("introspection", "shape_mismatch"),
        ("round_trip", "shape_mismatch"),
    ]


@pytest.mark.parametrize(
    "payload, hint, expected",
    [
        ({}, QueryPath.UNKNOWN, ["introspection", "round_trip"]),
        ({}, QueryPath.PROJECTED, ["projected", "introspection", "round_trip"]),
        (document_payload([]), QueryPath.UNKNOWN, ["document", "introspection", "round_trip"]),
        (document_payload([]), QueryPath.WHOLE_DOCUMENT, ["document", "introspection", "round_trip"]),
        (document_payload([]), QueryPath.PROJECTED, ["document", "projected", "introspection", "round_trip"]),
    ],
)
def test_plan_orders_extractors(payload: Any, hint: QueryPath, expected: List[str]) -> None:
    orchestrator = NormalizationOrchestrator()

    plan = orchestrator.plan(RawNode.of(payload), hint)

    assert [extractor.name for extractor in plan] == expected


def test_misleading_hint_does_not_override_detection() -> None:
    record = normalize(projected_payload(ATT_LINE_ITEMS[:4]), QueryPath.WHOLE_DOCUMENT)

    assert record.extractor == "projected"
    assert record.attempts[0].outcome == "accepted"


def test_unparseable_fields_are_reported_not_fatal() -> None:
    payload = document_payload(ATT_LINE_ITEMS[:2])
    payload["invoiceData"]["LineItems"][1]["Amount"] = "twelve dollars"
    payload["invoiceData"]["InvoiceDate"] = "05/06/2024"

    record = normalize(payload)

    assert record.line_items[1].amount == Decimal("0")
    assert record.invoice_date is None
    assert {failure.field for failure in record.coercion_failures} == {"line_items[1].amount", "invoice_date"}


def test_root_object_token_takes_the_projected_path() -> None:
    payload = {
        "childrenTokens": [
            {"name": "VendorName", "value": literal("AT&T")},
            {"name": "InvoiceTotal", "value": literal("$197.78")},
            {"name": "LineItems", "value": projected_payload(ATT_LINE_ITEMS)["LineItems"]},
        ]
    }

    record = normalize(payload)

    assert record.shape == "projected"
    assert record.extractor == "projected"
    assert [(attempt.extractor, attempt.outcome) for attempt in record.attempts] == [("projected", "accepted")]
    assert _items(record) == _expected(ATT_LINE_ITEMS)
    assert record.vendor_name == "AT&T"
    assert record.currency == "USD"


def test_line_items_object_without_children_wrapper_falls_back() -> None:
    items = ATT_LINE_ITEMS[:4]
    payload = document_payload(items)
    payload["invoiceData"]["LineItems"] = {"rows": payload["invoiceData"]["LineItems"]}

    record = normalize(payload)

    assert record.shape == "document"
    assert record.extractor == "introspection"
    assert [(attempt.extractor, attempt.outcome) for attempt in record.attempts] == [
        ("document", "shape_mismatch"),
        ("introspection", "accepted"),
    ]
    assert "not a native array" in record.attempts[0].reason
    assert _items(record) == _expected(items)


def test_flattened_export_with_list_header_keeps_every_item() -> None:
    items = ATT_LINE_ITEMS[:12]
    payload = flattened_payload(items)
    payload["Tags"] = ["telecom"]

    record = normalize(payload)

    assert record.shape == "document"
    assert record.extractor == "introspection"
    assert _items(record) == _expected(items)


def test_payload_without_invoice_fields_is_not_accepted() -> None:
    with pytest.raises(ExhaustedFallbacks) as excinfo:
        normalize({"foo": 1, "bar": {"baz": 2}})

    assert excinfo.value.shape == "generic_map"
    assert [(attempt.extractor, attempt.outcome) for attempt in excinfo.value.attempts] == [
        ("generic_map", "shape_mismatch"),
        ("introspection", "shape_mismatch"),
        ("round_trip", "shape_mismatch"),
    ]
    assert all(attempt.reason == "no recognizable invoice fields" for attempt in excinfo.value.attempts)


def test_oversized_count_hint_is_discarded() -> None:
    record = normalize({"VendorName": "AT&T", "lineItemsCount": "1e200000000"})

    assert record.reported_line_items_count is None
    assert record.extractor == "generic_map"
