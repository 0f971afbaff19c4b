"""Per-tick environment drift and resource regeneration."""

from typing import List

from loguru import logger

from habitat_kernel.execution.actuation import clamp
from habitat_kernel.models.config import PhysicsConfig
from habitat_kernel.models.world import RESOURCE_CAPS, ROOM_BOUNDS, RoomState, WorldState
from habitat_kernel.rng.source import RandomSource

LOW_POWER_KW = 0.5
LOW_BANDWIDTH = 0.1
LOW_PRIVACY = 0.2


def clamp_room(room: RoomState) -> None:
    for variable, (low, high) in ROOM_BOUNDS.items():
        setattr(room, variable, clamp(getattr(room, variable), low, high))


def apply_environmental_physics(world: WorldState, rng: RandomSource, config: PhysicsConfig) -> None:
    """Relax every room toward its resting state, add small noise, clamp."""
    for room in world.rooms.values():
        room.temperature += (config.ambient_temp_c - room.temperature) * config.temp_drift_rate
        room.lumens *= config.lumens_decay
        room.noise *= config.noise_decay
        room.humidity += (config.humidity_baseline - room.humidity) * config.humidity_rate
        room.mood_score += (0.5 - room.mood_score) * config.mood_rate

        room.temperature += clamp(
            rng.normal(0, config.ambient_noise_std), -config.ambient_noise_limit, config.ambient_noise_limit
        )
        room.lumens += rng.normal(0, 0.01)
        room.mood_score += rng.normal(0, 0.02)
        clamp_room(room)


def clamp_resources(world: WorldState) -> None:
    res = world.resources
    res.power_kw = clamp(res.power_kw, 0.0, RESOURCE_CAPS["power_kw"])
    res.bandwidth = clamp(res.bandwidth, 0.0, RESOURCE_CAPS["bandwidth"])
    res.privacy_budget = clamp(res.privacy_budget, 0.0, RESOURCE_CAPS["privacy_budget"])


def regenerate_resources(world: WorldState, config: PhysicsConfig) -> List[str]:
    """Regenerate toward caps. Returns the names of resources running low."""
    res = world.resources
    res.power_kw += config.power_regen_kw
    res.bandwidth += config.bandwidth_regen
    res.privacy_budget += config.privacy_regen
    clamp_resources(world)

    low = []
    if res.power_kw < LOW_POWER_KW:
        low.append("power_kw")
    if res.bandwidth < LOW_BANDWIDTH:
        low.append("bandwidth")
    if res.privacy_budget < LOW_PRIVACY:
        low.append("privacy_budget")
    for name in low:
        logger.warning(f"Low resource: {name}={getattr(res, name):.2f}")
    return low


def sensor_readings(room: RoomState, rng: RandomSource) -> dict:
    """Noisy readings of a room's ground truth."""
    return {
        "temperature": room.temperature + rng.normal(0, 0.3),
        "lumens": max(0.0, room.lumens + rng.normal(0, 0.05)),
        "mood_score": clamp(room.mood_score + rng.normal(0, 0.1), 0.0, 1.0),
    }
