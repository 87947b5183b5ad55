"""Capacity Pydantic v2 schemas."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class CapacityOut(BaseModel):
    """Working hours left in a week after approved leave."""

    user_email: str
    week_start: date
    week_end: date
    leave_days: float
    hours_reduction: float
    original_capacity: float
    adjusted_capacity: float
    capacity_percentage: float
