"""Tick Report — what one scheduler step did."""

from typing import List, Optional

from pydantic import BaseModel


class TickReport(BaseModel):
    tick: int
    time_sec: float
    planned_devices: List[str] = []
    failed_devices: List[str] = []
    approved_actions: int = 0
    conflicts: int = 0
    director_event: bool = False
    health: float = 1.0
    error: Optional[str] = None
