"""
Power Matcher

Selects and ranks the powers of one lens against the SPH/CYL/ADD values a
user types into the selection dialog, and turns a confirmed pick into
invoice-ready PowerSelection lines.

Matching rules:
- every active axis must be within POWER_TOLERANCE of the filter value
- an ADD filter excludes powers without an addition
- closest total distance first, then SPH, CYL, ADD ascending
"""

import logging
import math
import re
from collections import Counter
from functools import cmp_to_key
from typing import Dict, List, Optional, Any, Sequence

from models.power import (
    BifocalPower,
    EyeSelection,
    FilterCriteria,
    PowerPick,
    PowerRecord,
    PowerSelection,
    SingleVisionPower,
)
from models.ledger import to_amount

logger = logging.getLogger(__name__)

# Half a quarter-diopter step: absorbs rounding without merging neighbours
POWER_TOLERANCE = 0.125

_FILTER_JUNK = re.compile(r"[^-+0-9.]")


class PowerSelectionError(Exception):
    """Raised when a confirmed pick cannot become a PowerSelection"""


class NoPowerSelectedError(PowerSelectionError):
    pass


class QuantityOverrunError(PowerSelectionError):
    def __init__(self, power_display: str, available: int):
        self.power_display = power_display
        self.available = available
        super().__init__(f"Invalid quantity for power {power_display}. Available: {available}")


# ============================================================
# PARSING
# ============================================================

def parse_filter_value(raw: Any) -> Optional[float]:
    """
    Parse one filter box. Anything that is not a finite number means
    "no filter on this axis"; this never raises.
    """
    if raw is None:
        return None
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return float(raw) if math.isfinite(raw) else None

    cleaned = _FILTER_JUNK.sub("", str(raw)).strip()
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def build_criteria(sph: Any = None, cyl: Any = None, add: Any = None) -> FilterCriteria:
    return FilterCriteria(
        sph=parse_filter_value(sph),
        cyl=parse_filter_value(cyl),
        add=parse_filter_value(add),
    )


def _to_quantity(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def parse_power_key(power_key: str, axis: int = 90, quantity: int = 0) -> PowerRecord:
    """
    Decide once whether a key is single vision ("sph_cyl") or bifocal
    ("sph_cyl_add"). Raises ValueError for keys that are not numeric.
    """
    parts = power_key.split("_")
    if len(parts) < 2:
        raise ValueError(f"Malformed power key: {power_key!r}")
    values = [float(p) for p in parts[:3]]

    if len(values) >= 3:
        return BifocalPower(
            power_key=power_key,
            sph=values[0],
            cyl=values[1],
            addition=values[2],
            axis=axis,
            quantity=quantity,
        )
    return SingleVisionPower(
        power_key=power_key,
        sph=values[0],
        cyl=values[1],
        axis=axis,
        quantity=quantity,
    )


def records_from_inventory(power_inventory: Dict[str, Any], axis: int = 90) -> List[PowerRecord]:
    """Build in-stock PowerRecords from a lens's powerInventory map"""
    records = []
    for power_key, power_data in (power_inventory or {}).items():
        raw_qty = power_data.get("quantity") if isinstance(power_data, dict) else None
        quantity = _to_quantity(raw_qty)
        if quantity <= 0:
            continue
        try:
            records.append(parse_power_key(power_key, axis=axis, quantity=quantity))
        except ValueError as e:
            logger.warning(f"Skipping power {power_key!r}: {e}")
    return records


# ============================================================
# MATCHING
# ============================================================

def _matches(record: PowerRecord, criteria: FilterCriteria) -> bool:
    if criteria.sph is not None and abs(record.sph - criteria.sph) > POWER_TOLERANCE:
        return False
    if criteria.cyl is not None and abs(record.cyl - criteria.cyl) > POWER_TOLERANCE:
        return False
    if criteria.add is not None:
        if record.addition is None:
            return False
        if abs(record.addition - criteria.add) > POWER_TOLERANCE:
            return False
    return True


def match_score(record: PowerRecord, criteria: FilterCriteria) -> float:
    """Total distance over the active axes; 0 is an exact match"""
    score = 0.0
    if criteria.sph is not None:
        score += abs(record.sph - criteria.sph)
    if criteria.cyl is not None:
        score += abs(record.cyl - criteria.cyl)
    if criteria.add is not None and record.addition is not None:
        score += abs(record.addition - criteria.add)
    return score


def _compare_powers(a: PowerRecord, b: PowerRecord) -> int:
    if a.sph != b.sph:
        return -1 if a.sph < b.sph else 1
    if a.cyl != b.cyl:
        return -1 if a.cyl < b.cyl else 1
    if a.addition is not None and b.addition is not None and a.addition != b.addition:
        return -1 if a.addition < b.addition else 1
    return 0


def filter_and_rank(records: Sequence[PowerRecord], criteria: Optional[FilterCriteria] = None) -> List[PowerRecord]:
    """
    Return the records that satisfy every active filter, best match first.

    With no active filter every record is returned, ordered by SPH, CYL
    and ADD. The input sequence is left untouched.
    """
    criteria = criteria or FilterCriteria()

    if criteria.is_empty:
        return sorted(records, key=cmp_to_key(_compare_powers))

    scored = [(match_score(r, criteria), r) for r in records if _matches(r, criteria)]

    def _compare_scored(a, b) -> int:
        if a[0] != b[0]:
            return -1 if a[0] < b[0] else 1
        return _compare_powers(a[1], b[1])

    scored.sort(key=cmp_to_key(_compare_scored))
    return [r for _, r in scored]


def focused_index(results: Sequence[PowerRecord]) -> Optional[int]:
    """Initial keyboard focus: the first result, or None when empty"""
    return 0 if results else None


# ============================================================
# SELECTION
# ============================================================

def build_power_selections(
    lens: Dict[str, Any],
    records: Sequence[PowerRecord],
    picks: Sequence[PowerPick],
) -> List[PowerSelection]:
    """
    Validate the picks against available stock and build one
    PowerSelection per pick. Nothing is built if any pick is invalid.
    """
    if not picks:
        raise NoPowerSelectedError("Please select at least one power")

    by_key = {r.power_key: r for r in records}

    # Same power picked twice draws on the same stock
    requested = Counter()
    for pick in picks:
        record = by_key.get(pick.power_key)
        if record is None:
            raise QuantityOverrunError(pick.power_key, 0)
        if pick.quantity <= 0:
            raise QuantityOverrunError(record.display_text, record.quantity)
        requested[pick.power_key] += pick.quantity

    for power_key, total in requested.items():
        record = by_key[power_key]
        if total > record.quantity:
            raise QuantityOverrunError(record.display_text, record.quantity)

    lens_id = str(lens.get("_id") or lens.get("id"))
    price = to_amount(lens.get("salePrice"))

    selections = []
    for pick in picks:
        record = by_key[pick.power_key]
        quantity: float = pick.quantity
        if pick.eye_selection in (EyeSelection.LEFT, EyeSelection.RIGHT):
            quantity = pick.quantity * 0.5

        selections.append(PowerSelection(
            lens_id=lens_id,
            lens_name=lens.get("brandName"),
            power_key=record.power_key,
            power_display=record.display_text,
            sph=record.sph,
            cyl=record.cyl,
            addition=record.addition,
            axis=record.axis,
            quantity=quantity,
            piece_quantity=pick.quantity,
            eye_selection=pick.eye_selection,
            available_stock=record.quantity,
            lens_type=record.type,
            price=price,
        ))

    logger.info(f"Built {len(selections)} power selection(s) for lens {lens_id}")
    return selections
