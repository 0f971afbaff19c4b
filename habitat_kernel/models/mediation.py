"""Mediation Result — output of the Conflict Mediator for one tick."""

from typing import Dict, List, Optional

from pydantic import BaseModel

from habitat_kernel.models.agent import AgentAction, AgentStep
from habitat_kernel.models.world import WorldEvent


class DeviceProposal(BaseModel):
    """A device's AgentStep, tagged with the device that proposed it."""

    device_id: str
    step: AgentStep


class ApprovedAction(BaseModel):
    device_id: str
    action: AgentAction


class ConflictResolution(BaseModel):
    """Outcome of one utility tournament."""

    winner: str
    loser: str                              # highest-scoring loser
    losers: List[str] = []                  # every dropped device
    rule_applied: str                       # e.g., "safety_priority"
    utility_scores: Dict[str, float] = {}
    explanation: str                        # human-readable "why"


class RuleFiring(BaseModel):
    rule_id: str
    pack_id: str
    hard: bool
    room: Optional[str] = None
    device_id: Optional[str] = None
    stripped_actions: int = 0


class MediationResult(BaseModel):
    actions: List[ApprovedAction] = []
    conflicts: List[ConflictResolution] = []
    logs: List[WorldEvent] = []
    rule_firings: List[RuleFiring] = []
