"""Application Result — outcome of one Action Applicator pass."""

from typing import List

from pydantic import BaseModel


class ApplicationResult(BaseModel):
    """Counts for one batch of approved actions."""

    applied: int = 0
    failed: int = 0
    deferred: int = 0
    power_draw_kw: float = 0.0
    failures: List[dict] = []               # {"device_id", "action", "error"}
