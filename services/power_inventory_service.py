"""
Power Inventory Service

Reads a lens's power inventory from the lens_inventory collection and
generates the power grid used when stocking a new lens.
"""

import logging
import math
from typing import List, Tuple, Dict, Any
from motor.motor_asyncio import AsyncIOMotorDatabase

from config import get_settings
from database.mongodb import id_candidates
from models.power import PowerRecord
from models.user import UserContext
from services.power_matcher import records_from_inventory

logger = logging.getLogger(__name__)

POWER_STEP = 0.25
ADDITION_MIN = 1.0
ADDITION_MAX = 3.0


class PowerInventoryError(Exception):
    """Lens inventory cannot be offered for selection"""


class LensNotSelectedError(PowerInventoryError):
    pass


class LensNotFoundError(PowerInventoryError):
    pass


class PowerInventoryEmptyError(PowerInventoryError):
    pass


def _lens_axis(lens: Dict[str, Any]) -> int:
    """Stored axis, or the configured default when it is missing, 0 or unreadable"""
    default = get_settings().default_lens_axis
    try:
        axis = int(float(lens.get("axis") or default))
    except (TypeError, ValueError, OverflowError):
        logger.warning(f"Lens {lens.get('_id')}: unreadable axis {lens.get('axis')!r}, using {default}")
        return default
    return axis or default


async def fetch_lens(db: AsyncIOMotorDatabase, user: UserContext, lens_id: str) -> Dict[str, Any]:
    if not lens_id:
        raise LensNotSelectedError("No lens selected")

    lens = await db.lens_inventory.find_one(
        user.scoped({"_id": {"$in": id_candidates(lens_id)}})
    )
    if not lens:
        raise LensNotFoundError("Lens not found in inventory")
    return lens


async def fetch_power_records(
    db: AsyncIOMotorDatabase,
    user: UserContext,
    lens_id: str,
) -> Tuple[Dict[str, Any], List[PowerRecord]]:
    """
    Fetch a lens and its in-stock powers.

    Returns the lens document alongside the records so callers can build
    selections without a second read.
    """
    lens = await fetch_lens(db, user, lens_id)

    power_inventory = lens.get("powerInventory") or {}
    if not power_inventory:
        raise PowerInventoryEmptyError("No power inventory found for this lens")

    records = records_from_inventory(power_inventory, axis=_lens_axis(lens))
    if not records:
        raise PowerInventoryEmptyError("No power inventory found for this lens")

    logger.debug(f"Lens {lens_id}: {len(records)} powers in stock")
    return lens, records


# ============================================================
# POWER GRID
# ============================================================

def _steps(limit: float, step: float) -> int:
    return int(math.floor(abs(limit) / step + 1e-9))


def generate_power_array(min_power: float, max_power: float, step: float = POWER_STEP) -> List[float]:
    """
    Powers from min to max in ``step`` increments, always including 0,
    ordered by magnitude with the negative value first on ties.
    """
    powers = [0.0]
    if max_power > 0:
        powers.extend(round(i * step, 2) for i in range(1, _steps(max_power, step) + 1))
    if min_power < 0:
        powers.extend(round(-i * step, 2) for i in range(1, _steps(min_power, step) + 1))

    powers.sort(key=lambda p: (abs(p), p))
    return powers


def generate_addition_array() -> List[float]:
    count = _steps(ADDITION_MAX - ADDITION_MIN, POWER_STEP)
    return [round(ADDITION_MIN + i * POWER_STEP, 2) for i in range(count + 1)]


def _key_part(value: float) -> str:
    # Keys are written the way the store writes numbers: 0.5, -1.25, 2
    return f"{value:g}"


def build_power_keys(
    sph_min: float,
    sph_max: float,
    cyl_min: float,
    cyl_max: float,
    bifocal: bool = False,
) -> Dict[str, List]:
    """Every power key a lens stocked over the given ranges can hold"""
    sph_values = generate_power_array(sph_min, sph_max)
    cyl_values = generate_power_array(cyl_min, cyl_max)
    addition_values = generate_addition_array() if bifocal else []

    keys = []
    for sph in sph_values:
        for cyl in cyl_values:
            base = f"{_key_part(sph)}_{_key_part(cyl)}"
            if bifocal:
                keys.extend(f"{base}_{_key_part(add)}" for add in addition_values)
            else:
                keys.append(base)

    return {
        "sph_values": sph_values,
        "cyl_values": cyl_values,
        "addition_values": addition_values,
        "power_keys": keys,
    }
