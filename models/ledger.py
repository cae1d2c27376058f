"""Ledger Models for OptiLedger"""

from pydantic import BaseModel
from typing import Optional, List, Any
from datetime import datetime
from enum import Enum
import math


def to_amount(value: Any) -> float:
    """Coerce a stored amount to float; missing or non-numeric is 0"""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    return amount if math.isfinite(amount) else 0.0


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class LedgerDirection(str, Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"


class TransactionType(str, Enum):
    RECEIVED = "received"  # money came in from the counterparty
    PAID = "paid"          # money went out to the counterparty
    OTHER = "other"


class InvoiceRecord(BaseModel):
    """Sale invoice or purchase bill, reduced to what the ledger needs"""
    id: Optional[str] = None
    invoice_number: Optional[str] = None
    total_amount: float = 0
    amount_paid: float = 0
    date: Optional[datetime] = None

    @property
    def balance_due(self) -> float:
        return self.total_amount - self.amount_paid

    @classmethod
    def from_document(cls, doc: dict, purchase: bool = False) -> "InvoiceRecord":
        total = doc.get("totalAmount")
        # Purchase bills written by older screens only carry "total"
        if purchase and not total:
            total = doc.get("total")
        return cls(
            id=str(doc["_id"]) if doc.get("_id") is not None else None,
            invoice_number=_text(doc.get("invoiceNumber")),
            total_amount=to_amount(total),
            amount_paid=to_amount(doc.get("amountPaid")),
            date=doc.get("invoiceDate") if isinstance(doc.get("invoiceDate"), datetime) else None,
        )


class TransactionRecord(BaseModel):
    id: Optional[str] = None
    type: TransactionType = TransactionType.OTHER
    amount: float = 0
    description: Optional[str] = None
    date: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: dict) -> "TransactionRecord":
        try:
            tx_type = TransactionType(doc.get("type"))
        except ValueError:
            tx_type = TransactionType.OTHER
        date = doc.get("date")
        if not isinstance(date, datetime):
            date = doc.get("createdAt") if isinstance(doc.get("createdAt"), datetime) else None
        return cls(
            id=str(doc["_id"]) if doc.get("_id") is not None else None,
            type=tx_type,
            amount=to_amount(doc.get("amount")),
            description=_text(doc.get("description")),
            date=date,
        )


class BalanceResult(BaseModel):
    """Outcome of a balance calculation.

    On a store failure ``balance`` falls back to ``opening_balance`` and
    ``fetch_error`` says why.
    """
    entity_id: str
    direction: LedgerDirection
    balance: float
    opening_balance: float = 0
    fetch_error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.fetch_error is not None


class BalanceResponse(BaseModel):
    entity_id: str
    direction: LedgerDirection
    balance: float
    formatted_balance: str
    status: str
    color_class: str
    degraded: bool = False
    warning: Optional[str] = None


class StatementEntry(BaseModel):
    kind: str  # invoice | transaction
    date: Optional[datetime] = None
    reference: Optional[str] = None
    debit: float = 0
    credit: float = 0
    running_balance: float = 0


class AccountStatement(BaseModel):
    entity_id: str
    start: datetime
    end: datetime
    entries: List[StatementEntry] = []
    closing_balance: float = 0


class IsVendorResponse(BaseModel):
    entity_id: str
    is_vendor: bool
