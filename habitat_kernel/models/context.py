"""Agent Context — the planner's view of the world for one device."""

from typing import Dict, List

from pydantic import BaseModel

from habitat_kernel.models.agent import InboundMessage, PeerSummary
from habitat_kernel.models.policy import Policies
from habitat_kernel.models.world import DeviceSpec, RoomState


class AgentContext(BaseModel):
    """Everything the planner is allowed to see about the world."""

    device_id: str
    spec: DeviceSpec
    room_snapshot: RoomState
    policies: Policies
    last_messages: List[InboundMessage] = []   # bounded to the last 4
    available_actions: List[str] = []
    world_time: float = 0.0
    other_devices: List[PeerSummary] = []
    resources: Dict[str, float] = {}
