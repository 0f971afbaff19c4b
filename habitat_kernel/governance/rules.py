"""
Rule evaluation — predicates and hard-rule violation checks.

Predicates are dicts of condition keys; all present keys must hold.
Unknown keys are ignored so rule packs can carry annotations for other tools.
"""

from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from croniter import croniter

from habitat_kernel.execution.actuation import estimated_change
from habitat_kernel.models.agent import ACTION_TARGETS
from habitat_kernel.models.mediation import ApprovedAction
from habitat_kernel.models.policy import RulePack, RuleScope, WorldRule
from habitat_kernel.models.world import WorldState
from habitat_kernel.world_model.clock import in_window, sim_datetime

EMERGENCY_HEALTH = 0.3


def room_average(world: WorldState, variable: str) -> float:
    rooms = list(world.rooms.values())
    if not rooms:
        return 0.0
    return sum(getattr(r, variable) for r in rooms) / len(rooms)


def _time_between(value: Any, world: WorldState) -> bool:
    start, end = value
    return in_window(world.time_sec, start, end)


def _room_tag(value: Any, world: WorldState) -> bool:
    return bool(tagged_rooms(world, value))


def _schedule(value: Any, world: WorldState) -> bool:
    try:
        return croniter.match(value, sim_datetime(world.time_sec))
    except (ValueError, KeyError):
        # Invalid cron expression: treat as inactive (fail-safe)
        return False


def _emergency(value: Any, world: WorldState) -> bool:
    return (world.health < EMERGENCY_HEALTH) == bool(value)


PREDICATES: Dict[str, Callable[[Any, WorldState], bool]] = {
    "time_between": _time_between,
    "room_tag": _room_tag,
    "schedule": _schedule,
    "emergency": _emergency,
    "temperature_gt": lambda v, w: room_average(w, "temperature") > v,
    "temperature_lt": lambda v, w: room_average(w, "temperature") < v,
    "lumens_gt": lambda v, w: room_average(w, "lumens") > v,
    "lumens_lt": lambda v, w: room_average(w, "lumens") < v,
}


def evaluate_predicate(predicate: Dict[str, Any], world: WorldState) -> bool:
    for key, value in predicate.items():
        check = PREDICATES.get(key)
        if check is not None and not check(value, world):
            return False
    return True


def rule_applies(rule: WorldRule, world: WorldState) -> bool:
    """when must hold, unless must not, if must hold."""
    if rule.when and not evaluate_predicate(rule.when, world):
        return False
    if rule.unless and evaluate_predicate(rule.unless, world):
        return False
    if rule.if_ and not evaluate_predicate(rule.if_, world):
        return False
    return True


def active_rules(packs: Iterable[RulePack]) -> List[tuple]:
    """(pack, rule) pairs for every active rule of every active pack, in order."""
    return [
        (pack, rule)
        for pack in packs if pack.active
        for rule in pack.rules if rule.active
    ]


def tagged_rooms(world: WorldState, tag: Any) -> Set[str]:
    tags = set(tag) if isinstance(tag, (list, tuple, set)) else {tag}
    return {name for name, room in world.rooms.items() if tags & set(room.tags)}


def rule_rooms(rule: WorldRule, world: WorldState) -> Optional[Set[str]]:
    """Rooms a room-scoped rule is limited to by room_tag, or None for all rooms."""
    if rule.scope != RuleScope.ROOM:
        return None
    for predicate in (rule.when, rule.if_):
        if predicate and "room_tag" in predicate:
            return tagged_rooms(world, predicate["room_tag"])
    return None


def rule_room(rule: WorldRule, world: WorldState) -> Optional[str]:
    """A representative room for events about this rule."""
    rooms = rule_rooms(rule, world)
    if rooms:
        return sorted(rooms)[0]
    if rule.scope == RuleScope.ROOM and world.rooms:
        return next(iter(world.rooms))
    return None


def action_violates(rule: WorldRule, approved: ApprovedAction, world: WorldState) -> bool:
    """
    Would this approved action push the rule's target variable the wrong way?
    max bound -> increases violate; min bound -> decreases violate;
    delta or no bound -> any change violates.
    """
    target = rule.then.target
    if target is None or ACTION_TARGETS.get(approved.action.name) != target:
        return False

    device = world.devices.get(approved.device_id)
    if device is None:
        return False
    if rule.scope == RuleScope.DEVICE and rule.device_type and device.spec.id != rule.device_type:
        return False
    rooms = rule_rooms(rule, world)
    if rooms is not None and device.room not in rooms:
        return False

    room = world.rooms.get(device.room)
    if room is None:
        return False
    change = estimated_change(approved.action.name, approved.action.args, room)

    bounded = rule.then.max_value is not None or rule.then.min_value is not None
    if not bounded:
        return change != 0
    if rule.then.max_value is not None and change > 0:
        return True
    if rule.then.min_value is not None and change < 0:
        return True
    return False
