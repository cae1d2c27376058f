"""Lens power models for OptiLedger"""

from pydantic import BaseModel, Field
from typing import Optional, List, Union, Literal, Annotated
from enum import Enum


def format_power_value(value: Optional[float]) -> str:
    """Two decimals with an explicit sign, e.g. +0.50 / -1.25"""
    if value is None:
        return ""
    formatted = f"{abs(value):.2f}"
    return f"+{formatted}" if value >= 0 else f"-{formatted}"


class EyeSelection(str, Enum):
    BOTH = "both"
    LEFT = "left"
    RIGHT = "right"


class SingleVisionPower(BaseModel):
    """Single-vision power, stored under a "sph_cyl" key"""
    type: Literal["single"] = "single"
    power_key: str
    sph: float
    cyl: float
    axis: int = 90
    quantity: int

    @property
    def addition(self) -> Optional[float]:
        return None

    @property
    def display_text(self) -> str:
        return f"SPH: {format_power_value(self.sph)}, CYL: {format_power_value(self.cyl)}"


class BifocalPower(BaseModel):
    """Bifocal/progressive power, stored under a "sph_cyl_add" key"""
    type: Literal["bifocal"] = "bifocal"
    power_key: str
    sph: float
    cyl: float
    addition: float
    axis: int = 90
    quantity: int

    @property
    def display_text(self) -> str:
        return (
            f"SPH: {format_power_value(self.sph)}, CYL: {format_power_value(self.cyl)}, "
            f"ADD: {format_power_value(self.addition)}"
        )


PowerRecord = Annotated[Union[SingleVisionPower, BifocalPower], Field(discriminator="type")]


class FilterCriteria(BaseModel):
    """User-entered filter values; None means no filter on that axis"""
    sph: Optional[float] = None
    cyl: Optional[float] = None
    add: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.sph is None and self.cyl is None and self.add is None


class PowerPick(BaseModel):
    """One power the user ticked in the selection list"""
    power_key: str
    quantity: int = 1
    eye_selection: EyeSelection = EyeSelection.BOTH


class PowerSelection(BaseModel):
    """Confirmed pick, ready to become an invoice line"""
    lens_id: str
    lens_name: Optional[str] = None
    power_key: str
    power_display: str
    sph: float
    cyl: float
    addition: Optional[float] = None
    axis: int
    quantity: float  # pairs; half for a single eye
    piece_quantity: int  # pieces to deduct from stock
    eye_selection: EyeSelection
    available_stock: int
    lens_type: Literal["single", "bifocal"]
    price: float = 0


class PowerListResponse(BaseModel):
    lens_id: str
    powers: List[PowerRecord]
    focused_index: int = -1  # -1 when nothing to focus


class PowerGridRequest(BaseModel):
    sph_min: float = 0
    sph_max: float = 0
    cyl_min: float = 0
    cyl_max: float = 0
    bifocal: bool = False


class PowerGridResponse(BaseModel):
    sph_values: List[float]
    cyl_values: List[float]
    addition_values: List[float] = []
    power_keys: List[str]
