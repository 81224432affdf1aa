# fleet/pnl/schemas.py

from decimal import Decimal
from typing import Dict

from pydantic import BaseModel, Field


class VehiclePnLSummary(BaseModel):
    """Totals of a vehicle's P&L postings."""

    vehicle_id: int
    revenue: Dict[str, Decimal] = Field(default_factory=dict, description="Revenue by category")
    cost: Dict[str, Decimal] = Field(default_factory=dict, description="Cost by category")
    total_revenue: Decimal
    total_cost: Decimal
    net: Decimal
