"""
Ledger Routes for OptiLedger

Balances are recomputed from the full history on every request.
"""

from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import Any, List, Optional, Tuple
from datetime import datetime
from database.mongodb import get_database
from services.auth_deps import get_user_context
from services.ledger_service import (
    LedgerFetchError,
    as_naive_utc,
    build_account_statement,
    calculate_customer_balance,
    calculate_vendor_balance,
    fetch_opening_balance,
    is_vendor,
)
from services.ledger_format import (
    format_currency,
    get_balance_color_class,
    get_balance_status_text,
)
from models.ledger import (
    AccountStatement,
    BalanceResponse,
    BalanceResult,
    IsVendorResponse,
    LedgerDirection,
)
from models.user import UserContext
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["ledger"])


async def _opening_or_degraded(
    db, current_user: UserContext, entity_id: str, collections: List[str], direction: LedgerDirection
) -> Tuple[Any, Optional[BalanceResult]]:
    """Stored opening balance, or a degraded result when it cannot be read"""
    try:
        return await fetch_opening_balance(db, current_user, entity_id, collections), None
    except LedgerFetchError as e:
        logger.error(f"Opening balance for {entity_id} unavailable: {e}")
        return None, BalanceResult(
            entity_id=entity_id,
            direction=direction,
            balance=0,
            fetch_error=str(e),
        )


def _to_response(result: BalanceResult) -> BalanceResponse:
    return BalanceResponse(
        entity_id=result.entity_id,
        direction=result.direction,
        balance=result.balance,
        formatted_balance=format_currency(result.balance),
        status=get_balance_status_text(result.balance, result.direction),
        color_class=get_balance_color_class(result.balance),
        degraded=result.degraded,
        warning=(
            "Balance could not be recalculated; showing opening balance"
            if result.degraded else None
        ),
    )


@router.get("/customers/{entity_id}/balance", response_model=BalanceResponse)
async def get_customer_balance(
    entity_id: str,
    opening_balance: Optional[float] = None,
    current_user: UserContext = Depends(get_user_context),
    db=Depends(get_database)
):
    """Current balance a customer owes"""
    if opening_balance is None:
        opening_balance, degraded = await _opening_or_degraded(
            db, current_user, entity_id, ["customers"], LedgerDirection.CUSTOMER
        )
        if degraded:
            return _to_response(degraded)

    result = await calculate_customer_balance(db, current_user, entity_id, opening_balance)
    return _to_response(result)


@router.get("/vendors/{entity_id}/balance", response_model=BalanceResponse)
async def get_vendor_balance(
    entity_id: str,
    opening_balance: Optional[float] = None,
    current_user: UserContext = Depends(get_user_context),
    db=Depends(get_database)
):
    """Current balance owed to a vendor"""
    if opening_balance is None:
        opening_balance, degraded = await _opening_or_degraded(
            db, current_user, entity_id, ["vendors", "customers"], LedgerDirection.VENDOR
        )
        if degraded:
            return _to_response(degraded)

    result = await calculate_vendor_balance(db, current_user, entity_id, opening_balance)
    return _to_response(result)


@router.get("/customers/{entity_id}/statement", response_model=AccountStatement)
async def get_customer_statement(
    entity_id: str,
    start: datetime = Query(..., description="Period start"),
    end: datetime = Query(..., description="Period end"),
    current_user: UserContext = Depends(get_user_context),
    db=Depends(get_database)
):
    """Dated account statement with running balance"""
    # Query strings may carry an offset ("Z"); stored dates are naive UTC
    start, end = as_naive_utc(start), as_naive_utc(end)
    if end < start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Statement end must not be before start"
        )

    try:
        return await build_account_statement(db, current_user, entity_id, start, end)
    except LedgerFetchError as e:
        logger.error(f"Statement for {entity_id} failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to fetch ledger data"
        )


@router.get("/entities/{entity_id}/is-vendor", response_model=IsVendorResponse)
async def check_is_vendor(
    entity_id: str,
    current_user: UserContext = Depends(get_user_context),
    db=Depends(get_database)
):
    return IsVendorResponse(
        entity_id=entity_id,
        is_vendor=await is_vendor(db, current_user, entity_id),
    )
