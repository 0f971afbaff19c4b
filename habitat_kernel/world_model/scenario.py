"""
Scenario loading — seed a world from an initial snapshot document.

Document shape (every key optional):

    {
      "seed": 42,
      "time_sec": 0,
      "rooms": {"living_room": {"temperature": 27.0, ...}},
      "resources": {"power_kw": 0.8},
      "policies": {...},
      "rule_packs": [{...}],
      "devices": [
        {"preset": "smart_ac", "room": "bedroom", "x": 120, "y": 80,
         "status": "idle", "memory": {"summary": "..."}},
        {"spec": {...full DeviceSpec...}}
      ]
    }

Values are taken as given; no rebalancing is applied beyond personality
jitter, which every device receives at creation.
"""

from typing import Any, Dict, List

from loguru import logger

from habitat_kernel.models.policy import Policies, RulePack
from habitat_kernel.models.world import (
    DeviceMemory,
    DeviceRuntime,
    DeviceSpec,
    DeviceStatus,
    Resources,
    RoomState,
    WorldState,
)
from habitat_kernel.rng.source import RandomSource
from habitat_kernel.world_model.catalog import get_preset
from habitat_kernel.world_model.events import record_event
from habitat_kernel.world_model.store import create_device_runtime


class ScenarioError(ValueError):
    """Raised when a scenario document references something that does not exist."""
    pass


def _build_device(entry: Dict[str, Any], rng: RandomSource, taken: set) -> DeviceRuntime:
    if "preset" in entry:
        spec = get_preset(entry["preset"])
        if spec is None:
            raise ScenarioError(f"Unknown device preset: {entry['preset']}")
    elif "spec" in entry:
        spec = DeviceSpec.model_validate(entry["spec"])
    else:
        raise ScenarioError("Device entry needs a 'preset' or a 'spec'")

    runtime = create_device_runtime(spec, rng, room=entry.get("room"), existing_ids=taken)
    if "id" in entry:
        runtime.id = entry["id"]
    if "x" in entry:
        runtime.x = float(entry["x"])
    if "y" in entry:
        runtime.y = float(entry["y"])
    if "status" in entry:
        runtime.status = DeviceStatus(entry["status"])
    if "memory" in entry:
        runtime.memory = DeviceMemory.model_validate(entry["memory"])
    return runtime


def load_scenario(world: WorldState, document: Dict[str, Any], rng: RandomSource) -> List[str]:
    """
    Apply a scenario document to `world` in place.
    Returns the ids of the devices created.

    The whole document is validated before anything is written: on error
    the world and `rng` are left exactly as they were.
    """
    saved_rng = rng.getstate()
    try:
        seed = int(document["seed"]) if "seed" in document else world.seed
        time_sec = float(document.get("time_sec", world.time_sec))
        if "seed" in document:
            rng.reseed(seed)

        rooms = dict(world.rooms)
        for name, room in document.get("rooms", {}).items():
            base = rooms.get(name, RoomState())
            rooms[name] = RoomState.model_validate({**base.model_dump(), **room})

        resources = world.resources
        if "resources" in document:
            resources = Resources.model_validate(
                {**world.resources.model_dump(), **document["resources"]}
            )

        if "policies" in document:
            policies = Policies.model_validate(document["policies"])
        else:
            policies = world.policies.model_copy(deep=True)
        policies.rule_packs.extend(RulePack.model_validate(p) for p in document.get("rule_packs", []))

        devices: List[DeviceRuntime] = []
        taken = set(world.devices)
        for entry in document.get("devices", []):
            runtime = _build_device(entry, rng, taken)
            if runtime.room not in rooms:
                raise ScenarioError(f"Device {runtime.id} placed in unknown room {runtime.room}")
            taken.add(runtime.id)
            devices.append(runtime)
    except Exception:
        rng.setstate(saved_rng)
        raise

    world.seed = seed
    world.time_sec = time_sec
    world.rooms = rooms
    world.resources = resources
    world.policies = policies
    for runtime in devices:
        world.devices[runtime.id] = runtime
        record_event(
            world,
            "device_added",
            room=runtime.room,
            device_id=runtime.id,
            data={"name": runtime.spec.name, "scenario": True},
        )

    logger.info(f"Scenario loaded: {len(world.rooms)} rooms, {len(devices)} devices")
    return [runtime.id for runtime in devices]
