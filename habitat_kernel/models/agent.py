"""Agent Step — a device's proposal, the wire contract with the reasoning service."""

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field

# Capability classes used by both mediation and application.
TEMPERATURE_ACTIONS = frozenset({"set_temperature", "cool", "heat"})
LIGHTING_ACTIONS = frozenset({"set_brightness", "set_lumens"})
HIGH_POWER_ACTIONS = frozenset({"cool", "heat", "set_brightness"})
LOUD_ACTIONS = frozenset({"set_brightness", "set_lumens", "fan"})
PASSIVE_ACTIONS = frozenset({"idle", "wait", "monitor"})

# Room variable each action moves.
ACTION_TARGETS: Dict[str, str] = {
    "cool": "temperature",
    "heat": "temperature",
    "set_temperature": "temperature",
    "fan": "temperature",
    "set_brightness": "lumens",
    "set_lumens": "lumens",
    "set_color": "mood_score",
    "set_firmness": "mood_score",
}


class AgentMessage(BaseModel):
    to: str                                 # device id or device name
    content: str


class AgentAction(BaseModel):
    name: str                               # actuator name, e.g. "cool"
    args: Dict[str, Any] = {}


class AgentStep(BaseModel):
    """Messages + actions + one-sentence explanation for one tick."""

    messages_to: List[AgentMessage] = []
    actions: List[AgentAction] = []
    explain: str = ""


class InboundMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field(alias="from")
    content: str
    at: float


class PeerSummary(BaseModel):
    id: str
    name: str
    room: str
    status: str
