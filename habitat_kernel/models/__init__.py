"""Habitat Kernel data models."""

from habitat_kernel.models.agent import (
    AgentAction,
    AgentMessage,
    AgentStep,
    InboundMessage,
    PeerSummary,
)
from habitat_kernel.models.archive import ArchivedEvent
from habitat_kernel.models.config import (
    MediationConfig,
    PhysicsConfig,
    PlannerConfig,
    SchedulerConfig,
)
from habitat_kernel.models.context import AgentContext
from habitat_kernel.models.execution import ApplicationResult
from habitat_kernel.models.mediation import (
    ApprovedAction,
    ConflictResolution,
    DeviceProposal,
    MediationResult,
    RuleFiring,
)
from habitat_kernel.models.policy import (
    Policies,
    QuietHours,
    RulePack,
    RuleScope,
    RuleTransform,
    WorldRule,
)
from habitat_kernel.models.tick import TickReport
from habitat_kernel.models.world import (
    DeviceGoal,
    DeviceMemory,
    DeviceRuntime,
    DeviceSpec,
    DeviceStatus,
    Resources,
    RoomState,
    WorldEvent,
    WorldState,
)

__all__ = [
    "AgentAction",
    "AgentContext",
    "AgentMessage",
    "AgentStep",
    "ApplicationResult",
    "ApprovedAction",
    "ArchivedEvent",
    "ConflictResolution",
    "DeviceGoal",
    "DeviceMemory",
    "DeviceProposal",
    "DeviceRuntime",
    "DeviceSpec",
    "DeviceStatus",
    "InboundMessage",
    "MediationConfig",
    "MediationResult",
    "PeerSummary",
    "PhysicsConfig",
    "PlannerConfig",
    "Policies",
    "QuietHours",
    "Resources",
    "RoomState",
    "RuleFiring",
    "RulePack",
    "RuleScope",
    "RuleTransform",
    "SchedulerConfig",
    "TickReport",
    "WorldEvent",
    "WorldRule",
    "WorldState",
]
