"""Pydantic schemas for canonical invoice records."""
from __future__ import annotations

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, Field

AttemptOutcome = Literal["accepted", "shape_mismatch", "rejected", "error"]


class LineItem(BaseModel):
    """Single billed entry on an invoice."""

    description: Optional[str] = Field(
        default="",
        validation_alias=AliasChoices("description", "desc"),
        description="Label of the billed entry. Never ``None`` on an accepted record.",
    )
    amount: Decimal = Field(default=Decimal("0"), description="Line amount, reported verbatim.")
    quantity: Optional[Decimal] = Field(default=None, validation_alias=AliasChoices("quantity", "qty"))
    unit_price: Optional[Decimal] = Field(
        default=None,
        validation_alias=AliasChoices("unit_price", "unitprice"),
    )
    tax_category: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("tax_category", "taxcategory"),
    )
    description_confidence: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("description_confidence", "descriptionconfidence"),
    )
    amount_confidence: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("amount_confidence", "amountconfidence"),
    )


class CoercionFailure(BaseModel):
    """A field that was present but could not be coerced and fell back to its default."""

    field: str = Field(..., description="Canonical field path, e.g. ``line_items[3].amount``.")
    target: str = Field(..., description="Target scalar kind (decimal, date, string, ...).")
    raw: str = Field(default="", description="Truncated representation of the offending value.")


class ExtractionAttempt(BaseModel):
    """One entry of the orchestrator's diagnostic trace."""

    extractor: str
    outcome: AttemptOutcome
    reason: str = ""
    item_count: Optional[int] = None


class InvoiceSummary(BaseModel):
    """Summary statistics over the line items of an invoice."""

    total_line_items: int = 0
    invoice_total: Decimal = Decimal("0")
    line_item_amount_sum: Decimal = Decimal("0")
    highest_line_item_amount: Decimal = Decimal("0")
    lowest_line_item_amount: Decimal = Decimal("0")
    average_line_item_amount: Decimal = Decimal("0")
    line_items_with_description: int = 0
    line_items_with_zero_amount: int = 0
    positive_line_items: int = 0
    negative_line_items: int = 0


class InvoiceRecord(BaseModel):
    """Canonical, shape-independent view of one invoice."""

    document_id: str = Field(default="", description="Store identifier of the source document.")
    twin_id: str = ""
    file_name: str = ""
    file_path: str = ""
    created_at: Optional[datetime] = None

    vendor_name: str = ""
    vendor_address: str = ""
    customer_name: str = ""
    customer_address: str = ""
    invoice_number: str = ""
    currency: str = Field(default="", description="ISO currency code when one could be determined.")
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    sub_total: Decimal = Decimal("0")
    total_tax: Decimal = Decimal("0")
    invoice_total: Decimal = Field(default=Decimal("0"), description="Header total, never reconciled with the items.")

    vendor_name_confidence: Optional[float] = None
    customer_name_confidence: Optional[float] = None
    sub_total_confidence: Optional[float] = None
    invoice_total_confidence: Optional[float] = None

    line_items: List[LineItem] = Field(default_factory=list, description="Line items in source order.")

    reported_line_items_count: Optional[int] = Field(
        default=None,
        description="Item count reported by the store, when present in the raw record.",
    )
    coercion_failures: List[CoercionFailure] = Field(default_factory=list)
    shape: str = Field(default="unknown", description="Physical shape detected for the raw record.")
    extractor: str = Field(default="", description="Extractor whose candidate was accepted.")
    attempts: List[ExtractionAttempt] = Field(default_factory=list)

    @property
    def line_item_amount_sum(self) -> Decimal:
        """Sum of the line item amounts; independent of ``invoice_total``."""

        return sum((item.amount for item in self.line_items), Decimal("0"))

    def line_items_containing(self, term: str, ignore_case: bool = True) -> List[LineItem]:
        needle = term.lower() if ignore_case else term
        matches: List[LineItem] = []
        for item in self.line_items:
            if not item.description:
                continue
            haystack = item.description.lower() if ignore_case else item.description
            if needle in haystack:
                matches.append(item)
        return matches

    def line_items_with_amount_greater_than(self, amount: Decimal | int | str) -> List[LineItem]:
        threshold = Decimal(str(amount))
        return [item for item in self.line_items if item.amount > threshold]

    def line_items_with_amount_between(
        self, low: Decimal | int | str, high: Decimal | int | str
    ) -> List[LineItem]:
        lower, upper = Decimal(str(low)), Decimal(str(high))
        return [item for item in self.line_items if lower <= item.amount <= upper]

    def summary(self) -> InvoiceSummary:
        """Compute summary statistics for the line items."""

        amounts = [item.amount for item in self.line_items]
        if not amounts:
            return InvoiceSummary(invoice_total=self.invoice_total)
        total = sum(amounts, Decimal("0"))
        return InvoiceSummary(
            total_line_items=len(amounts),
            invoice_total=self.invoice_total,
            line_item_amount_sum=total,
            highest_line_item_amount=max(amounts),
            lowest_line_item_amount=min(amounts),
            average_line_item_amount=total / len(amounts),
            line_items_with_description=sum(1 for item in self.line_items if item.description),
            line_items_with_zero_amount=sum(1 for amount in amounts if amount == 0),
            positive_line_items=sum(1 for amount in amounts if amount > 0),
            negative_line_items=sum(1 for amount in amounts if amount < 0),
        )

    def to_llm_json(self) -> str:
        """Render the business fields as indented camelCase JSON for analysis prompts."""

        payload: Dict[str, Any] = {
            "id": self.document_id,
            "fileName": self.file_name,
            "vendorName": self.vendor_name,
            "vendorAddress": self.vendor_address,
            "customerName": self.customer_name,
            "customerAddress": self.customer_address,
            "invoiceNumber": self.invoice_number,
            "currency": self.currency,
            "invoiceDate": self.invoice_date.isoformat() if self.invoice_date else "",
            "dueDate": self.due_date.isoformat() if self.due_date else "",
            "subTotal": str(self.sub_total),
            "totalTax": str(self.total_tax),
            "invoiceTotal": str(self.invoice_total),
            "lineItemsCount": len(self.line_items),
            "lineItems": [
                {
                    "description": item.description,
                    "quantity": str(item.quantity) if item.quantity is not None else None,
                    "unitPrice": str(item.unit_price) if item.unit_price is not None else None,
                    "amount": str(item.amount),
                }
                for item in self.line_items
            ],
        }
        return json.dumps(payload, indent=2, ensure_ascii=False)
