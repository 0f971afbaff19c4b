"""
Action Applicator — applies approved actions to the world with physical constraints.

Behavioral Contract:
- Accepts only actions that came out of mediation
- Mutates WorldState in place; never raises for a bad action
- Unknown actions, missing devices and handler errors are logged as
  `action_failed` events and skipped; the batch always completes
- Every state-changing action draws power/bandwidth; resources floor at zero
"""

import re
from typing import Callable, Dict, List, Optional

from loguru import logger

from habitat_kernel.execution.actuation import (
    clamp,
    color,
    color_mood_delta,
    fan_speed,
    firmness,
    number,
    requested_temperature_delta,
    target_brightness,
)
from habitat_kernel.execution.physics import apply_environmental_physics, regenerate_resources
from habitat_kernel.models.agent import AgentAction
from habitat_kernel.models.config import PhysicsConfig
from habitat_kernel.models.execution import ApplicationResult
from habitat_kernel.models.mediation import ApprovedAction
from habitat_kernel.models.world import ROOM_BOUNDS, DeviceRuntime, DeviceSpec, WorldState
from habitat_kernel.rng.source import RandomSource
from habitat_kernel.world_model.clock import is_night, occupant_room_at
from habitat_kernel.world_model.events import record_event

Handler = Callable[[WorldState, DeviceRuntime, AgentAction], float]

CLIMATE_TOKENS = {"ac", "thermostat", "hvac"}


class ActionDeferred(Exception):
    """The action is valid but a physical constraint says not yet."""
    pass


def is_climate_control(spec: DeviceSpec) -> bool:
    if spec.climate_control is not None:
        return spec.climate_control
    tokens = set(re.split(r"[^a-z0-9]+", spec.name.lower()))
    return bool(tokens & CLIMATE_TOKENS)


class ActionApplicator:
    """
    Dispatches approved actions through a handler table.
    Handlers return the power (kW) they drew.
    """

    def __init__(self, rng: RandomSource, config: Optional[PhysicsConfig] = None):
        self.rng = rng
        self.config = config or PhysicsConfig()
        self._handlers: Dict[str, Handler] = {}
        # room -> [actuated °C, noise °C] already spent in the current pass
        self._temp_spent: Dict[str, List[float]] = {}
        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        for name in ("cool", "heat", "set_temperature"):
            self._handlers[name] = self._apply_temperature
        for name in ("set_brightness", "set_lumens"):
            self._handlers[name] = self._apply_lighting
        self._handlers["set_firmness"] = self._apply_firmness
        self._handlers["resize"] = self._apply_resize
        self._handlers["set_color"] = self._apply_color
        self._handlers["fan"] = self._apply_fan
        self._handlers["send_message"] = self._apply_message
        self._handlers["idle"] = self._apply_passive
        self._handlers["wait"] = self._apply_passive
        self._handlers["monitor"] = self._apply_monitor

    def register_handler(self, name: str, handler: Handler) -> None:
        """Register a custom handler for an actuator name."""
        self._handlers[name] = handler

    @property
    def action_names(self) -> List[str]:
        return sorted(self._handlers)

    # --- Batch application ---

    def apply(self, world: WorldState, actions: List[ApprovedAction]) -> ApplicationResult:
        """Apply actions, then run the environment pass and resource regeneration."""
        result = self.apply_actions(world, actions)
        apply_environmental_physics(world, self.rng, self.config)
        regenerate_resources(world, self.config)
        return result

    def apply_actions(self, world: WorldState, actions: List[ApprovedAction]) -> ApplicationResult:
        """
        Dispatch each action; record the pass's total power draw on the world.
        The temperature ramp and noise limits hold per room across the whole pass.
        """
        result = ApplicationResult()
        self._temp_spent = {}
        for approved in actions:
            name = approved.action.name
            device = world.devices.get(approved.device_id)
            try:
                if device is None:
                    raise KeyError(f"Device {approved.device_id} not found")
                handler = self._handlers.get(name)
                if handler is None:
                    raise ValueError(f"No handler registered for action: {name}")
                drawn = handler(world, device, approved.action)
            except ActionDeferred as e:
                result.deferred += 1
                record_event(
                    world,
                    "action_deferred",
                    device_id=approved.device_id,
                    data={"action": name, "reason": str(e)},
                    description=str(e),
                )
                continue
            except Exception as e:
                error = e.args[0] if isinstance(e, KeyError) and e.args else str(e)
                result.failed += 1
                result.failures.append(
                    {"device_id": approved.device_id, "action": name, "error": str(error)}
                )
                record_event(
                    world,
                    "action_failed",
                    device_id=approved.device_id,
                    data={"action": name, "error": str(error)},
                    description=f"Action {name} failed",
                )
                logger.warning(f"Action {name} failed for {approved.device_id}: {error}")
                continue

            result.applied += 1
            result.power_draw_kw += drawn
            world.resources.power_kw = max(0.0, world.resources.power_kw - drawn)

        world.resources.power_draw_kw = result.power_draw_kw
        return result

    # --- Per-tick temperature budget ---

    def _spend_temperature(self, room: str, delta: float, noise: float = 0.0):
        """Clip `delta` and `noise` to what the room has left this pass; returns both clipped."""
        cfg = self.config
        spent = self._temp_spent.setdefault(room, [0.0, 0.0])
        delta = clamp(delta, -cfg.temp_ramp_c - spent[0], cfg.temp_ramp_c - spent[0])
        noise = clamp(noise, -cfg.temp_noise_limit - spent[1], cfg.temp_noise_limit - spent[1])
        spent[0] += delta
        spent[1] += noise
        return delta, noise

    # --- Human impact ---

    def _impact(self, world: WorldState, device: DeviceRuntime, metric: str,
                delta: float, helpful: bool, base_epsilon: float) -> None:
        """Log help/harm/neutral when the occupant shares the device's room."""
        if device.room != occupant_room_at(world.time_sec):
            return
        epsilon = base_epsilon * (1 - world.policies.harm_sensitivity)
        if abs(delta) <= epsilon:
            impact = "neutral"
        else:
            impact = "help" if helpful else "harm"
        record_event(
            world,
            "human_impact",
            room=device.room,
            device_id=device.id,
            data={"impact": impact, "metric": metric, "delta": delta},
        )

    # --- Handlers ---

    def _apply_temperature(self, world: WorldState, device: DeviceRuntime, action: AgentAction) -> float:
        args = action.args
        cfg = self.config
        room = world.rooms[device.room]
        state = device.defaults
        name = action.name

        if is_climate_control(device.spec) and state.get("is_on"):
            waited = world.tick - state.get("last_on_tick", world.tick)
            if waited < cfg.min_on_ticks:
                raise ActionDeferred(
                    f"{device.spec.name} must wait {cfg.min_on_ticks - waited} more "
                    f"tick(s) before changing state"
                )

        requested = requested_temperature_delta(
            name, args, room, cfg.default_temp_step_c, cfg.comfort_temp_c
        )
        clamped, noise = self._spend_temperature(
            device.room, requested, self.rng.normal(0, cfg.temp_noise_std)
        )
        low, high = ROOM_BOUNDS["temperature"]
        before = room.temperature
        room.temperature = clamp(before + clamped + noise, low, high)
        moved = room.temperature - before

        state["is_on"] = True
        state["last_on_tick"] = world.tick
        state["last_action"] = name

        record_event(
            world,
            "action",
            room=device.room,
            device_id=device.id,
            data={
                "action": name,
                "requested_delta": requested,
                "clamped_delta": clamped,
                "noise": noise,
                "temperature_before": before,
                "temperature_after": room.temperature,
            },
            description=f"{device.spec.name}: {before:.1f}°C -> {room.temperature:.1f}°C",
        )
        improvement = abs(before - cfg.comfort_temp_c) - abs(room.temperature - cfg.comfort_temp_c)
        self._impact(world, device, "temperature", improvement, improvement > 0, cfg.impact_epsilon)
        return abs(moved) * 0.5

    def _apply_lighting(self, world: WorldState, device: DeviceRuntime, action: AgentAction) -> float:
        args = action.args
        cfg = self.config
        room = world.rooms[device.room]
        name = action.name
        target = target_brightness(name, args)
        current = device.defaults.get("brightness", room.lumens)
        step = clamp(target - current, -cfg.brightness_step, cfg.brightness_step)
        new = clamp(current + step, 0.0, 1.0)

        before = room.lumens
        room.lumens = new
        device.defaults["brightness"] = new
        record_event(
            world,
            "action",
            room=device.room,
            device_id=device.id,
            data={"action": name, "target": target, "lumens_before": before, "lumens_after": new},
            description=f"{device.spec.name}: {before:.2f} -> {new:.2f} lumens",
        )

        if is_night(world.time_sec):
            helpful = new <= before
        else:
            goal = cfg.day_lumens_target
            helpful = abs(new - goal) < abs(before - goal)
        self._impact(world, device, "lumens", new - before, helpful, cfg.impact_epsilon)
        return new * 0.1

    def _apply_firmness(self, world: WorldState, device: DeviceRuntime, action: AgentAction) -> float:
        args = action.args
        room = world.rooms[device.room]
        level = firmness(args)
        device.defaults["firmness"] = level
        room.mood_score = clamp(room.mood_score + (level - 0.5) * 0.1, 0.0, 1.0)
        record_event(
            world,
            "action",
            room=device.room,
            device_id=device.id,
            data={"action": "set_firmness", "firmness": level},
            description=f"{device.spec.name}: firmness set to {level:.2f}",
        )
        return 0.05

    def _apply_resize(self, world: WorldState, device: DeviceRuntime, action: AgentAction) -> float:
        args = action.args
        cfg = self.config
        current = float(device.defaults.get("size_cm", device.spec.defaults.get("size_cm", 180)))
        target = number(args, ("size_cm", "size"), current)
        step = clamp(target - current, -cfg.resize_step_cm, cfg.resize_step_cm)
        low, high = cfg.size_bounds_cm
        new = clamp(current + step, low, high)
        device.defaults["size_cm"] = new
        record_event(
            world,
            "action",
            room=device.room,
            device_id=device.id,
            data={"action": "resize", "size_before": current, "size_after": new},
            description=f"{device.spec.name}: {current:.0f}cm -> {new:.0f}cm",
        )
        return 0.05

    def _apply_color(self, world: WorldState, device: DeviceRuntime, action: AgentAction) -> float:
        args = action.args
        room = world.rooms[device.room]
        value = color(args)
        device.defaults["color"] = value
        room.mood_score = clamp(room.mood_score + color_mood_delta(value), 0.0, 1.0)
        record_event(
            world,
            "action",
            room=device.room,
            device_id=device.id,
            data={"action": "set_color", "color": value},
            description=f"{device.spec.name}: color changed to {value}",
        )
        return 0.0

    def _apply_fan(self, world: WorldState, device: DeviceRuntime, action: AgentAction) -> float:
        args = action.args
        cfg = self.config
        room = world.rooms[device.room]
        speed = fan_speed(args)
        previous = float(device.defaults.get("fan_speed", 0.0))
        low, high = ROOM_BOUNDS["temperature"]
        nudge, _ = self._spend_temperature(device.room, (speed - 0.5) * 0.1)
        room.temperature = clamp(room.temperature + nudge, low, high)
        device.defaults["fan_speed"] = speed
        record_event(
            world,
            "action",
            room=device.room,
            device_id=device.id,
            data={"action": "fan", "speed": speed, "previous_speed": previous},
            description=f"{device.spec.name}: fan speed set to {speed:.2f}",
        )
        helpful = (room.temperature > 24 and speed > previous) or (
            room.temperature < 18 and speed < previous
        )
        self._impact(world, device, "airflow", speed - previous, helpful, cfg.airflow_epsilon)
        return speed * 0.15

    def _apply_message(self, world: WorldState, device: DeviceRuntime, action: AgentAction) -> float:
        args = action.args
        cfg = self.config
        target = args.get("to") or args.get("target")
        content = args.get("content") or args.get("message")
        if not target or not content:
            raise ValueError("send_message needs 'to' and 'content'")

        allow = world.policies.comms_allow
        sender = {device.spec.name, device.id}
        if allow and not any(
            (a in sender and b == target) or (b in sender and a == target) for a, b in allow
        ):
            record_event(
                world,
                "message_blocked",
                room=device.room,
                device_id=device.id,
                data={"from": device.spec.name, "to": target},
                description=f"Communication blocked: {device.spec.name} -> {target}",
            )
            return 0.0

        if self.rng.next() < cfg.message_drop_probability:
            record_event(
                world,
                "message_dropped",
                room=device.room,
                device_id=device.id,
                data={"from": device.spec.name, "to": target},
                description=f"Message dropped: {device.spec.name} -> {target}",
            )
            return 0.0

        low, high = cfg.message_latency_ms
        latency = self.rng.uniform(low, high)
        world.resources.bandwidth = max(0.0, world.resources.bandwidth - 0.01)
        record_event(
            world,
            "device_message",
            room=device.room,
            device_id=device.id,
            data={
                "from": device.spec.name,
                "from_id": device.id,
                "to": target,
                "content": content,
                "latency_ms": latency,
            },
            description=f"{device.spec.name} -> {target}: {content}",
        )
        return 0.0

    def _apply_passive(self, world: WorldState, device: DeviceRuntime, action: AgentAction) -> float:
        return 0.0

    def _apply_monitor(self, world: WorldState, device: DeviceRuntime, action: AgentAction) -> float:
        world.resources.privacy_budget = max(0.0, world.resources.privacy_budget - 0.01)
        return 0.0
