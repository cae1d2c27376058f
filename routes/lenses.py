"""
Lens Power Routes for OptiLedger
"""

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List, Optional
from database.mongodb import get_database
from services.auth_deps import get_user_context
from services.power_inventory_service import (
    LensNotFoundError,
    LensNotSelectedError,
    PowerInventoryEmptyError,
    PowerInventoryError,
    build_power_keys,
    fetch_power_records,
)
from services.power_matcher import (
    PowerSelectionError,
    build_criteria,
    build_power_selections,
    filter_and_rank,
    focused_index,
)
from models.power import (
    PowerGridRequest,
    PowerGridResponse,
    PowerListResponse,
    PowerPick,
    PowerSelection,
)
from models.user import UserContext
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lenses", tags=["lenses"])


def _inventory_http_error(e: PowerInventoryError) -> HTTPException:
    if isinstance(e, LensNotSelectedError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(e, (LensNotFoundError, PowerInventoryEmptyError)):
        code = status.HTTP_404_NOT_FOUND
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(e))


@router.post("/power-grid", response_model=PowerGridResponse)
async def generate_power_grid(request: PowerGridRequest):
    """Power keys a lens stocked over the given SPH/CYL ranges can hold"""
    return PowerGridResponse(**build_power_keys(
        request.sph_min,
        request.sph_max,
        request.cyl_min,
        request.cyl_max,
        bifocal=request.bifocal,
    ))


@router.get("/{lens_id}/powers", response_model=PowerListResponse)
async def list_lens_powers(
    lens_id: str,
    sph: Optional[str] = None,
    cyl: Optional[str] = None,
    add: Optional[str] = None,
    current_user: UserContext = Depends(get_user_context),
    db=Depends(get_database)
):
    """In-stock powers of a lens, best match for the filters first"""
    try:
        _, records = await fetch_power_records(db, current_user, lens_id)
    except PowerInventoryError as e:
        raise _inventory_http_error(e)

    results = filter_and_rank(records, build_criteria(sph, cyl, add))
    focus = focused_index(results)

    return PowerListResponse(
        lens_id=lens_id,
        powers=results,
        focused_index=-1 if focus is None else focus,
    )


@router.post("/{lens_id}/powers/select", response_model=List[PowerSelection])
async def select_lens_powers(
    lens_id: str,
    picks: List[PowerPick],
    current_user: UserContext = Depends(get_user_context),
    db=Depends(get_database)
):
    """Validate picked powers against stock and return invoice-ready lines"""
    try:
        lens, records = await fetch_power_records(db, current_user, lens_id)
    except PowerInventoryError as e:
        raise _inventory_http_error(e)

    try:
        return build_power_selections(lens, records, picks)
    except PowerSelectionError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )
