"""Shared payload builders for the normalization tests."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

Item = Tuple[str, str]

ATT_LINE_ITEMS: List[Item] = [
    ("Unlimited Plan - Line 1", "85.44"),
    ("Unlimited Plan - Line 2", "35.00"),
    ("Device Payment - Phone 1", "29.17"),
    ("Device Payment - Phone 2", "33.34"),
    ("Wireless Protection", "17.00"),
    ("International Day Pass", "10.00"),
    ("HBO Max Add-on", "15.99"),
    ("Hotspot 15GB", "20.00"),
    ("Fiber Internet 1000", "112.34"),
    ("Equipment Fee", "10.00"),
    ("Regulatory Cost Recovery", "1.50"),
    ("Administrative Fee", "3.49"),
    ("911 Fee", "0.75"),
    ("Universal Service Fund", "2.71"),
    ("State Sales Tax", "4.12"),
    ("City Sales Tax", "1.07"),
    ("Property Tax Allotment", "2.10"),
    ("AutoPay Discount", "-10.00"),
    ("Paperless Billing Credit", "-5.00"),
    ("Late Payment Waived", "0.00"),
    ("Activation Charge", "35.00"),
    ("Caller ID", "4.99"),
    ("Voicemail to Text", "4.99"),
    ("Smart Wi-Fi", "10.00"),
    ("Static IP", "15.00"),
    ("Installation", "49.99"),
    ("Streaming Credit", "-7.50"),
    ("Roaming Charges", "12.80"),
    ("Directory Assistance", "2.49"),
    ("Prorated Service Adjustment", "8.33"),
]

HEADER: Dict[str, str] = {
    "VendorName": "AT&T",
    "CustomerName": "Jordan Lee",
    "InvoiceNumber": "ATT-2024-05",
    "InvoiceDate": "2024-05-06",
    "DueDate": "2024-05-27",
    "Currency": "USD",
}


def literal(value: Any) -> Dict[str, Any]:
    kind = "string" if isinstance(value, str) else "number"
    return {"type": kind, "value": value}


def object_token(properties: Dict[str, Any]) -> Dict[str, Any]:
    return {"childrenTokens": [{"name": name, "value": literal(value)} for name, value in properties.items()]}


def document_payload(
    items: Sequence[Item],
    *,
    total: str = "197.78",
    count: Optional[int] = None,
    items_key: str = "LineItems",
) -> Dict[str, Any]:
    """Whole-document query result: native lists, native numbers."""

    invoice: Dict[str, Any] = dict(HEADER)
    invoice["InvoiceTotal"] = float(total)
    invoice[items_key] = [{"Description": desc, "Amount": float(amount)} for desc, amount in items]
    invoice["lineItemsCount"] = len(items) if count is None else count
    return {"id": "doc-1", "TwinID": "twin-7", "fileName": "att-may.pdf", "invoiceData": invoice}


def projected_payload(items: Sequence[Item], *, total: str = "197.78", count: Optional[int] = None) -> Dict[str, Any]:
    """JOIN/projection result: wrapped arrays, object tokens, literal nodes, ``$`` strings."""

    payload: Dict[str, Any] = {key: literal(value) for key, value in HEADER.items()}
    payload["id"] = literal("doc-1")
    payload["TwinID"] = literal("twin-7")
    payload["fileName"] = literal("att-may.pdf")
    payload["InvoiceTotal"] = literal(f"${total}")
    payload["LineItems"] = {
        "count": len(items) if count is None else count,
        "childrenTokens": [object_token({"Description": desc, "Amount": f"${amount}"}) for desc, amount in items],
    }
    return payload


def flattened_payload(items: Sequence[Item], *, total: str = "197.78", width: int = 10) -> Dict[str, Any]:
    """CSV-style export: ``LineItemN_Field`` keys padded with empty slots."""

    payload: Dict[str, Any] = dict(HEADER)
    payload.update({"id": "doc-1", "TwinID": "twin-7", "fileName": "att-may.pdf", "InvoiceTotal": total})
    for index in range(max(width, len(items))):
        desc, amount = items[index] if index < len(items) else ("", "")
        payload[f"LineItem{index + 1}_Description"] = desc
        payload[f"LineItem{index + 1}_Amount"] = amount
    return payload
