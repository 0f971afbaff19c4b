"""
World Store — owns the household WorldState between ticks.

Updated by: TickScheduler (one writer per tick) + API control calls
Queried by: Planner context building, API snapshots
"""

from typing import Dict, List, Optional

from loguru import logger

from habitat_kernel.models.policy import RulePack
from habitat_kernel.models.world import (
    DeviceGoal,
    DeviceMemory,
    DeviceRuntime,
    DeviceSpec,
    WorldEvent,
    WorldState,
)
from habitat_kernel.rng.source import RandomSource
from habitat_kernel.world_model.catalog import (
    default_policies,
    default_rooms,
    get_preset,
)
from habitat_kernel.world_model.events import recent_events, record_event

GOAL_JITTER = 0.05
GOAL_WEIGHT_BOUNDS = (0.1, 1.0)
PLANNING_PHASES = 4


def jitter_goals(goals: List[DeviceGoal], rng: RandomSource) -> List[DeviceGoal]:
    """Personality jitter: ±0.05 per weight, clamp, renormalize to sum 1."""
    lo, hi = GOAL_WEIGHT_BOUNDS
    jittered = [
        DeviceGoal(
            name=g.name,
            weight=max(lo, min(hi, g.weight + rng.next() * 2 * GOAL_JITTER - GOAL_JITTER)),
        )
        for g in goals
    ]
    total = sum(g.weight for g in jittered)
    if total <= 0:
        return jittered
    return [DeviceGoal(name=g.name, weight=g.weight / total) for g in jittered]


def create_device_runtime(
    spec: DeviceSpec,
    rng: RandomSource,
    room: Optional[str] = None,
    existing_ids: Optional[set] = None,
) -> DeviceRuntime:
    """Mint a runtime from a spec: unique id, jittered goals, planning phase, position."""
    taken = existing_ids or set()
    device_id = f"{spec.id}_{rng.randint(1000, 10000)}"
    while device_id in taken:
        device_id = f"{spec.id}_{rng.randint(1000, 10000)}"

    runtime_spec = spec.model_copy(deep=True)
    if room:
        runtime_spec.room = room
    if runtime_spec.goals:
        runtime_spec.goals = jitter_goals(runtime_spec.goals, rng)
    runtime_spec.planning_phase = rng.randint(0, PLANNING_PHASES)

    return DeviceRuntime(
        id=device_id,
        spec=runtime_spec,
        room=runtime_spec.room,
        memory=DeviceMemory(summary=f"{spec.name} just started up and is ready to help."),
        x=rng.next() * 400 + 100,
        y=rng.next() * 300 + 100,
    )


def default_world(seed: int = 0) -> WorldState:
    """Three-room household with the default policies and no devices."""
    return WorldState(
        rooms=default_rooms(),
        policies=default_policies(),
        seed=seed,
    )


class WorldStore:
    """
    In-memory holder of the single WorldState.
    Components receive `store.world` and mutate it in place during a tick.
    """

    def __init__(self, world: Optional[WorldState] = None, rng: Optional[RandomSource] = None):
        self._world = world or default_world()
        self.rng = rng or RandomSource(self._world.seed)

    @property
    def world(self) -> WorldState:
        """Get the current world state."""
        return self._world

    def replace(self, world: WorldState) -> None:
        """Swap in a new world (scenario load, reset)."""
        self._world = world

    # --- Devices ---

    def add_device(self, device: DeviceRuntime) -> DeviceRuntime:
        """Insert a device and log `device_added`."""
        if device.room not in self._world.rooms:
            raise KeyError(f"Unknown room: {device.room}")
        self._world.devices[device.id] = device
        record_event(
            self._world,
            "device_added",
            room=device.room,
            device_id=device.id,
            data={"name": device.spec.name},
            description=f"{device.spec.name} joined the {device.room}",
        )
        logger.info(f"Device added: {device.id} in {device.room}")
        return device

    def add_device_from_catalog(self, key: str, room: Optional[str] = None) -> DeviceRuntime:
        """Create and insert a device from a built-in preset."""
        spec = get_preset(key)
        if spec is None:
            raise KeyError(f"Unknown device preset: {key}")
        runtime = create_device_runtime(
            spec, self.rng, room=room, existing_ids=set(self._world.devices)
        )
        return self.add_device(runtime)

    def remove_device(self, device_id: str) -> bool:
        """Remove a device from the world. Logs `device_removed`."""
        device = self._world.devices.pop(device_id, None)
        if device is None:
            return False
        record_event(
            self._world,
            "device_removed",
            room=device.room,
            device_id=device_id,
            data={"name": device.spec.name},
            description=f"{device.spec.name} left the {device.room}",
        )
        logger.info(f"Device removed: {device_id}")
        return True

    def get_device(self, device_id: str) -> Optional[DeviceRuntime]:
        return self._world.devices.get(device_id)

    def get_devices_in_room(self, room: str) -> List[DeviceRuntime]:
        return [d for d in self._world.devices.values() if d.room == room]

    # --- Rule packs ---

    def load_rule_pack(self, pack: RulePack) -> None:
        """Insert or replace a rule pack by id."""
        packs = self._world.policies.rule_packs
        for i, existing in enumerate(packs):
            if existing.id == pack.id:
                packs[i] = pack
                return
        packs.append(pack)

    def get_rule_pack(self, pack_id: str) -> Optional[RulePack]:
        return next((p for p in self._world.policies.rule_packs if p.id == pack_id), None)

    def set_rule_pack_active(self, pack_id: str, active: bool) -> bool:
        pack = self.get_rule_pack(pack_id)
        if pack is None:
            return False
        pack.active = active
        logger.info(f"Rule pack {pack_id} {'activated' if active else 'deactivated'}")
        return True

    def set_rule_active(self, pack_id: str, rule_id: str, active: bool) -> bool:
        pack = self.get_rule_pack(pack_id)
        if pack is None:
            return False
        rule = next((r for r in pack.rules if r.id == rule_id), None)
        if rule is None:
            return False
        rule.active = active
        return True

    # --- Inspection ---

    def get_recent_events(self, limit: int = 20, kind: Optional[str] = None) -> List[WorldEvent]:
        """Get the most recent events, optionally of one kind."""
        return recent_events(self._world, limit, kind)

    def get_state_snapshot(self) -> Dict:
        """Get a serializable snapshot of the current world state."""
        return self._world.model_dump(mode="json")
