"""
Domain: Vehicle (the item of interest behind a lead).

Only category and sale price feed the matching engine; make/model/year are
carried for display. A Vehicle is immutable for the duration of a scoring run.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID


class VehicleCategory(str, Enum):
    SUV = "SUV"
    SEDAN = "SEDAN"
    COUPE = "COUPE"
    SPORTS = "SPORTS"


@dataclass(frozen=True, slots=True)
class Vehicle:
    vehicle_id: UUID
    category: VehicleCategory
    sale_price: Decimal
    make: Optional[str] = None
    model: Optional[str] = None
    model_year: Optional[int] = None

    def __post_init__(self) -> None:
        if self.sale_price <= 0:
            raise ValueError("sale_price must be positive")

    @property
    def label(self) -> str:
        parts = [p for p in (self.make, self.model) if p]
        if self.model_year:
            parts.append(str(self.model_year))
        return " ".join(parts) or str(self.vehicle_id)
