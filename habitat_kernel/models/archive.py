"""Archived Event — a WorldEvent sealed into the append-only archive."""

from typing import Optional

from pydantic import BaseModel

from habitat_kernel.models.world import WorldEvent


class ArchivedEvent(BaseModel):
    """
    One archive row. `signature` is SHA-256 over the event, its tick and the
    previous row's signature, so any edit breaks the chain from that row on.
    """

    seq: Optional[int] = None
    tick: Optional[int] = None
    event: WorldEvent
    signature: str = ""
    prior_record_hash: Optional[str] = None
