"""Event log helpers shared by every component that reports side effects."""

from typing import Any, Dict, List, Optional

from habitat_kernel.models.world import WorldEvent, WorldState

FALLBACK_ROOM = "living_room"


def make_event(
    world: WorldState,
    kind: str,
    room: Optional[str] = None,
    device_id: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
    description: Optional[str] = None,
) -> WorldEvent:
    """Build an event stamped with the current simulated time."""
    if room is None:
        device = world.devices.get(device_id) if device_id else None
        room = device.room if device else FALLBACK_ROOM
    return WorldEvent(
        at=world.time_sec,
        room=room,
        device_id=device_id,
        kind=kind,
        data=data or {},
        description=description,
    )


def record_event(
    world: WorldState,
    kind: str,
    room: Optional[str] = None,
    device_id: Optional[str] = None,
    data: Optional[Dict[str, Any]] = None,
    description: Optional[str] = None,
) -> WorldEvent:
    """Append an event to the world's log and return it."""
    event = make_event(world, kind, room, device_id, data, description)
    world.event_log.append(event)
    return event


def trim_event_log(world: WorldState, max_events: int) -> List[WorldEvent]:
    """Drop the oldest events beyond `max_events`. Returns what was dropped."""
    overflow = len(world.event_log) - max_events
    if overflow <= 0:
        return []
    dropped = world.event_log[:overflow]
    del world.event_log[:overflow]
    return dropped


def recent_events(world: WorldState, limit: int, kind: Optional[str] = None) -> List[WorldEvent]:
    window = world.event_log[-limit:] if limit > 0 else []
    if kind is None:
        return list(window)
    return [e for e in window if e.kind == kind]
