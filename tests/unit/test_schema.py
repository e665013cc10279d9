"""Unit tests for the canonical invoice record models."""
from __future__ import annotations

from decimal import Decimal
import json

import pytest

from conftest import ATT_LINE_ITEMS
from invoices.normalize.schema import ExtractionAttempt, InvoiceRecord, LineItem


def _record() -> InvoiceRecord:
    return InvoiceRecord(
        document_id="doc-1",
        vendor_name="AT&T",
        invoice_total=Decimal("197.78"),
        line_items=[LineItem(description=desc, amount=Decimal(amount)) for desc, amount in ATT_LINE_ITEMS],
    )


def test_invoice_record_defaults() -> None:
    record = InvoiceRecord()
    assert record.line_items == []
    assert record.coercion_failures == []
    assert record.attempts == []
    assert record.invoice_total == Decimal("0")
    assert record.invoice_date is None
    assert record.shape == "unknown"
    assert record.summary().total_line_items == 0


def test_line_item_accepts_short_aliases() -> None:
    item = LineItem.model_validate({"desc": "Caller ID", "amount": "4.99", "qty": "1", "unitprice": "4.99"})

    assert item.description == "Caller ID"
    assert item.quantity == Decimal("1")
    assert item.unit_price == Decimal("4.99")


def test_attempt_outcome_is_closed() -> None:
    with pytest.raises(ValueError):
        ExtractionAttempt(extractor="document", outcome="skipped")


@pytest.mark.parametrize(
    "term, ignore_case, expected",
    [
        ("tax", True, ["State Sales Tax", "City Sales Tax", "Property Tax Allotment"]),
        ("tax", False, []),
        ("Unlimited", True, ["Unlimited Plan - Line 1", "Unlimited Plan - Line 2"]),
        ("satellite", True, []),
    ],
)
def test_line_items_containing(term: str, ignore_case: bool, expected: list) -> None:
    matches = _record().line_items_containing(term, ignore_case=ignore_case)
    assert [item.description for item in matches] == expected


def test_amount_queries() -> None:
    record = _record()

    assert [item.amount for item in record.line_items_with_amount_greater_than("50")] == [
        Decimal("85.44"),
        Decimal("112.34"),
    ]
    between = record.line_items_with_amount_between(-10, 0)
    assert sorted(item.description for item in between) == [
        "AutoPay Discount",
        "Late Payment Waived",
        "Paperless Billing Credit",
        "Streaming Credit",
    ]


def test_summary_reports_both_totals() -> None:
    summary = _record().summary()

    assert summary.total_line_items == 30
    assert summary.invoice_total == Decimal("197.78")
    assert summary.line_item_amount_sum == sum((Decimal(amount) for _, amount in ATT_LINE_ITEMS), Decimal("0"))
    assert summary.highest_line_item_amount == Decimal("112.34")
    assert summary.lowest_line_item_amount == Decimal("-10.00")
    assert summary.line_items_with_zero_amount == 1
    assert summary.negative_line_items == 3
    assert summary.positive_line_items == 26
    assert summary.line_items_with_description == 30


def test_llm_json_uses_camel_case_fields() -> None:
    payload = json.loads(_record().to_llm_json())

    assert payload["id"] == "doc-1"
    assert payload["vendorName"] == "AT&T"
    assert payload["invoiceTotal"] == "197.78"
    assert payload["lineItemsCount"] == 30
    assert payload["lineItems"][0] == {
        "description": "Unlimited Plan - Line 1",
        "quantity": None,
        "unitPrice": None,
        "amount": "85.44",
    }


def test_record_dumps_to_json() -> None:
    record = _record()
    payload = json.loads(record.model_dump_json())
    assert payload["line_items"][14] == {
        "description": "State Sales Tax",
        "amount": "4.12",
        "quantity": None,
        "unit_price": None,
        "tax_category": None,
        "description_confidence": None,
        "amount_confidence": None,
    }


def test_public_surface_exports_record_types() -> None:
    import invoices.normalize as api

    assert api.InvoiceRecord is InvoiceRecord
    assert set(api.__all__) >= {"InvoiceRecord", "LineItem", "ExhaustedFallbacks", "QueryPath", "detect_shape"}
