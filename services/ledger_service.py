"""
Ledger Service

Rebuilds a customer's or vendor's balance from the opening balance plus
every invoice/purchase and manual transaction on record. Nothing is
cached: each call reads the full history again.

Sign conventions:
- customer: unpaid invoices add, "received" subtracts, "paid" adds
- vendor:   unpaid purchases add, "paid" subtracts, "received" adds
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError

from database.mongodb import id_candidates

from models.ledger import (
    AccountStatement,
    BalanceResult,
    InvoiceRecord,
    LedgerDirection,
    StatementEntry,
    TransactionRecord,
    TransactionType,
    to_amount,
)
from models.user import UserContext

logger = logging.getLogger(__name__)


class LedgerFetchError(Exception):
    """A ledger collection could not be read"""


# Transaction type that reduces the balance in each direction
_REDUCING_TYPE = {
    LedgerDirection.CUSTOMER: TransactionType.RECEIVED,
    LedgerDirection.VENDOR: TransactionType.PAID,
}


# ============================================================
# STORE READS
# ============================================================

async def _find_all(db: AsyncIOMotorDatabase, collection: str, query: dict, sort_field: Optional[str] = None) -> List[dict]:
    try:
        cursor = db[collection].find(query)
        if sort_field:
            cursor = cursor.sort(sort_field, 1)
        return [doc async for doc in cursor]
    except Exception as e:
        raise LedgerFetchError(f"Failed to read {collection}: {e}") from e


async def fetch_invoices(db: AsyncIOMotorDatabase, user: UserContext, customer_id: str) -> List[InvoiceRecord]:
    docs = await _find_all(db, "sales", user.scoped({"customerId": customer_id}))
    return [InvoiceRecord.from_document(d) for d in docs]


async def fetch_purchases(db: AsyncIOMotorDatabase, user: UserContext, vendor_id: str) -> List[InvoiceRecord]:
    docs = await _find_all(db, "purchases", user.scoped({"vendorId": vendor_id}))
    return [InvoiceRecord.from_document(d, purchase=True) for d in docs]


async def fetch_transactions(db: AsyncIOMotorDatabase, user: UserContext, entity_id: str) -> List[TransactionRecord]:
    docs = await _find_all(db, "transactions", user.scoped({"entityId": entity_id}))
    return [TransactionRecord.from_document(d) for d in docs]


async def fetch_opening_balance(
    db: AsyncIOMotorDatabase,
    user: UserContext,
    entity_id: str,
    collections: Sequence[str],
) -> Optional[Any]:
    """Stored openingBalance from the first collection holding the entity"""
    query = user.scoped({"_id": {"$in": id_candidates(entity_id)}})
    for collection in collections:
        try:
            doc = await db[collection].find_one(query)
        except Exception as e:
            raise LedgerFetchError(f"Failed to read {collection}: {e}") from e
        if doc:
            return doc.get("openingBalance")
    return None


# ============================================================
# BALANCE
# ============================================================

def fold_balance(
    opening_balance: float,
    invoices: List[InvoiceRecord],
    transactions: List[TransactionRecord],
    direction: LedgerDirection,
) -> float:
    """Opening balance plus unpaid exposure, adjusted by manual transactions"""
    reducing_type = _REDUCING_TYPE[direction]

    balance = opening_balance
    for invoice in invoices:
        balance += invoice.balance_due

    for tx in transactions:
        if tx.type == TransactionType.OTHER:
            continue
        if tx.type == reducing_type:
            balance -= tx.amount
        else:
            balance += tx.amount
    return balance


async def _calculate_balance(
    db: AsyncIOMotorDatabase,
    user: UserContext,
    entity_id: str,
    opening_balance: Any,
    direction: LedgerDirection,
) -> BalanceResult:
    opening = to_amount(opening_balance)
    fetch_exposure = fetch_invoices if direction == LedgerDirection.CUSTOMER else fetch_purchases

    try:
        invoices, transactions = await asyncio.gather(
            fetch_exposure(db, user, entity_id),
            fetch_transactions(db, user, entity_id),
        )
    except (LedgerFetchError, ValidationError) as e:
        logger.error(f"Error calculating {direction.value} balance for {entity_id}: {e}")
        return BalanceResult(
            entity_id=entity_id,
            direction=direction,
            balance=opening,
            opening_balance=opening,
            fetch_error=str(e),
        )

    balance = fold_balance(opening, invoices, transactions, direction)

    return BalanceResult(
        entity_id=entity_id,
        direction=direction,
        balance=balance,
        opening_balance=opening,
    )


async def calculate_customer_balance(
    db: AsyncIOMotorDatabase,
    user: UserContext,
    customer_id: str,
    opening_balance: Any = 0,
) -> BalanceResult:
    """Amount the customer owes the shop; negative means the shop owes them"""
    return await _calculate_balance(db, user, customer_id, opening_balance, LedgerDirection.CUSTOMER)


async def calculate_vendor_balance(
    db: AsyncIOMotorDatabase,
    user: UserContext,
    vendor_id: str,
    opening_balance: Any = 0,
) -> BalanceResult:
    """Amount the shop owes the vendor; negative means the vendor owes the shop"""
    return await _calculate_balance(db, user, vendor_id, opening_balance, LedgerDirection.VENDOR)


# ============================================================
# ENTITY TYPE
# ============================================================

async def is_vendor(db: AsyncIOMotorDatabase, user: UserContext, entity_id: str) -> bool:
    """True if the entity is a vendor record, is flagged as one, or has purchases"""
    by_id = user.scoped({"_id": {"$in": id_candidates(entity_id)}})
    try:
        if await db.vendors.find_one(by_id):
            return True

        customer = await db.customers.find_one(by_id)
        if customer and (customer.get("isVendor") or customer.get("type") == "vendor"):
            return True

        purchase = await db.purchases.find_one(user.scoped({"vendorId": entity_id}))
        return purchase is not None
    except Exception as e:
        logger.error(f"Error checking if entity {entity_id} is vendor: {e}")
        return False


# ============================================================
# ACCOUNT STATEMENT
# ============================================================

def as_naive_utc(value: datetime) -> datetime:
    """Stored dates are naive UTC; bring aware datetimes onto the same clock"""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _in_range(date: Optional[datetime], start: datetime, end: datetime) -> bool:
    return date is not None and start <= date <= end


async def build_account_statement(
    db: AsyncIOMotorDatabase,
    user: UserContext,
    entity_id: str,
    start: datetime,
    end: datetime,
) -> AccountStatement:
    """
    Dated statement for a customer between ``start`` and ``end``.

    Invoices are debited at their full value and transactions credited;
    the running balance starts from zero at the beginning of the period.
    Raises LedgerFetchError if either collection cannot be read.
    """
    start, end = as_naive_utc(start), as_naive_utc(end)

    invoice_docs, tx_docs = await asyncio.gather(
        _find_all(db, "sales", user.scoped({
            "customerId": entity_id,
            "invoiceDate": {"$gte": start, "$lte": end},
        }), sort_field="invoiceDate"),
        _find_all(db, "transactions", user.scoped({"entityId": entity_id})),
    )

    entries = []
    for doc in invoice_docs:
        invoice = InvoiceRecord.from_document(doc)
        if invoice.date is not None:
            invoice.date = as_naive_utc(invoice.date)
        entries.append(StatementEntry(
            kind="invoice",
            date=invoice.date,
            reference=invoice.invoice_number,
            debit=invoice.total_amount,
        ))

    for doc in tx_docs:
        tx = TransactionRecord.from_document(doc)
        if tx.date is not None:
            tx.date = as_naive_utc(tx.date)
        if not _in_range(tx.date, start, end):
            continue
        entries.append(StatementEntry(
            kind="transaction",
            date=tx.date,
            reference=tx.description or tx.type.value,
            credit=tx.amount,
        ))

    # Undated entries lead; sort is stable so invoice order is kept on ties
    entries.sort(key=lambda e: (e.date is not None, e.date or start))

    balance = 0.0
    for entry in entries:
        balance += entry.debit - entry.credit
        entry.running_balance = balance

    return AccountStatement(
        entity_id=entity_id,
        start=start,
        end=end,
        entries=entries,
        closing_balance=balance,
    )
