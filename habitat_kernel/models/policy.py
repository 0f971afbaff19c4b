"""Policies and rule packs — the governance declarations the mediator reads."""

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class RuleScope(str, Enum):
    WORLD = "world"
    ROOM = "room"
    DEVICE = "device"


class RuleTransform(BaseModel):
    """The `then` clause of a rule."""

    model_config = ConfigDict(populate_by_name=True)

    target: Optional[str] = None            # room variable, e.g. "temperature"
    delta: Optional[float] = None
    min_value: Optional[float] = Field(default=None, alias="min")
    max_value: Optional[float] = Field(default=None, alias="max")
    alarm: Optional[str] = None
    action_hint: Dict[str, float] = {}      # carried, never applied


class WorldRule(BaseModel):
    """A single governance rule."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    scope: RuleScope = RuleScope.WORLD
    priority: float = 0.5
    hard: bool = False
    when: Optional[Dict[str, Any]] = None   # context predicate
    unless: Optional[Dict[str, Any]] = None  # exception predicate
    if_: Optional[Dict[str, Any]] = Field(default=None, alias="if")  # state predicate
    then: RuleTransform = Field(default_factory=RuleTransform)
    explain: str = ""
    active: bool = True
    device_type: Optional[str] = None       # restricts device-scope rules to a spec id


class RulePack(BaseModel):
    """A group of rules for one environment. Toggled externally."""

    id: str
    name: str
    description: str = ""
    environment: str = "home"
    rules: List[WorldRule] = []
    active: bool = True


class QuietHours(BaseModel):
    start: str = "22:00"
    end: str = "07:00"


class Policies(BaseModel):
    """Household policy set."""

    priority_order: List[str] = ["safety", "comfort", "efficiency", "privacy"]
    quiet_hours: Optional[QuietHours] = Field(default_factory=QuietHours)
    limits: Dict[str, float] = {}           # e.g., {"max_power_kw": 2.0}
    comms_allow: List[Tuple[str, str]] = []  # empty = unrestricted
    rule_packs: List[RulePack] = []
    soft_weights: Dict[str, float] = {}
    harm_sensitivity: float = Field(ge=0, le=1, default=0.6)
    director_off: bool = False
