"""World State — the household the device agents live in."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from habitat_kernel.models.agent import AgentStep
from habitat_kernel.models.policy import Policies

# Physical bounds per room variable.
ROOM_BOUNDS: Dict[str, tuple] = {
    "temperature": (15.0, 30.0),            # °C safety band
    "lumens": (0.0, 1.0),
    "noise": (0.0, 1.0),
    "humidity": (0.0, 1.0),
    "mood_score": (0.0, 1.0),
}

# Resource caps; every resource lives in [0, cap].
RESOURCE_CAPS: Dict[str, float] = {
    "power_kw": 5.0,
    "bandwidth": 1.0,
    "privacy_budget": 1.0,
}


class RoomState(BaseModel):
    """Continuous per-room variables."""

    temperature: float = 21.0               # °C
    lumens: float = 0.5                     # 0..1 light level
    noise: float = 0.2
    humidity: float = 0.5
    mood_score: float = 0.5
    tags: List[str] = []                    # matched by room_tag predicates
    sensors: Dict[str, float] = {}          # noisy readings, not ground truth


class DeviceGoal(BaseModel):
    name: str                               # e.g., "safety", "comfort"
    weight: float = Field(ge=0)


class DeviceSpec(BaseModel):
    """Immutable-per-session description of a device agent."""

    id: str                                 # e.g., "device.smart_ac.v1"
    name: str                               # e.g., "Smart AC"
    room: str
    goals: List[DeviceGoal] = []
    constraints: List[str] = []
    sensors: List[str] = []
    actuators: List[str] = []
    personality: str = ""
    communication_style: str = "neutral"
    planning_phase: int = Field(ge=0, default=0)
    instructions: str = ""                  # free text consumed by the planner
    defaults: Dict[str, Any] = {}
    risk_flags: List[str] = []
    climate_control: Optional[bool] = None  # None = infer from the name


class DeviceStatus(str, Enum):
    IDLE = "idle"
    ACTING = "acting"
    CONFLICT = "conflict"
    SAFE = "safe"


class DeviceMemory(BaseModel):
    summary: str = ""
    prefs: Dict[str, float] = {}


class DeviceRuntime(BaseModel):
    """A live device instance. `defaults` is the applicator's inertia scratch bag."""

    id: str
    spec: DeviceSpec
    room: str
    memory: DeviceMemory = Field(default_factory=DeviceMemory)
    last: Optional[AgentStep] = None
    status: DeviceStatus = DeviceStatus.IDLE
    defaults: Dict[str, Any] = {}
    x: float = 0.0
    y: float = 0.0


class Resources(BaseModel):
    """Shared household resources."""

    power_kw: float = 1.2                   # available power headroom
    bandwidth: float = 0.8
    privacy_budget: float = 1.0
    power_draw_kw: float = 0.0              # drawn by the last application pass


class WorldEvent(BaseModel):
    """Append-only log entry; the core's only externally consumed output."""

    at: float                               # simulated seconds
    room: str
    device_id: Optional[str] = None
    kind: str                               # e.g., "action", "conflict_resolution"
    data: Dict[str, Any] = {}
    description: Optional[str] = None


class WorldState(BaseModel):
    """The aggregate root threaded through one tick."""

    time_sec: float = 0.0
    rooms: Dict[str, RoomState] = {}
    devices: Dict[str, DeviceRuntime] = {}
    policies: Policies = Field(default_factory=Policies)
    resources: Resources = Field(default_factory=Resources)
    health: float = Field(ge=0, le=1, default=1.0)
    event_log: List[WorldEvent] = []
    running: bool = False
    speed: int = 1
    seed: int = 0
    tick: int = 0
