"""
Action argument readers.

Planners are free-form about argument names ("level_0_1", "brightness",
"speed"); these readers settle each actuator's accepted keys in one place
so mediation and application read the same numbers.
"""

from typing import Any, Dict, Optional

from habitat_kernel.models.world import RoomState

BRIGHTNESS_KEYS = ("level_0_1", "brightness", "level")
LUMENS_KEYS = ("lumens", "level_0_1", "level")
FAN_KEYS = ("speed_0_1", "speed", "level_0_1")
FIRMNESS_KEYS = ("level_0_1", "firmness")
TEMPERATURE_KEYS = ("target", "temperature", "target_c")
WARM_COLORS = ("red", "orange", "amber", "warm", "#ff")
COOL_COLORS = ("blue", "cyan", "cool", "#00")


def number(args: Dict[str, Any], keys, default: Optional[float] = None) -> Optional[float]:
    """First key in `keys` holding a number (bools excluded)."""
    for key in keys:
        value = args.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return default


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def requested_temperature_delta(
    name: str, args: Dict[str, Any], room: RoomState, default_step: float, comfort_c: float
) -> float:
    """Unclamped °C change the action asks for."""
    if name == "cool":
        return -abs(number(args, ("delta_c", "delta"), default_step))
    if name == "heat":
        return abs(number(args, ("delta_c", "delta"), default_step))
    target = number(args, TEMPERATURE_KEYS, comfort_c)
    return target - room.temperature


def target_brightness(name: str, args: Dict[str, Any]) -> float:
    keys = LUMENS_KEYS if name == "set_lumens" else BRIGHTNESS_KEYS
    return clamp(number(args, keys, 0.5), 0.0, 1.0)


def fan_speed(args: Dict[str, Any]) -> float:
    return clamp(number(args, FAN_KEYS, 0.5), 0.0, 1.0)


def firmness(args: Dict[str, Any]) -> float:
    return clamp(number(args, FIRMNESS_KEYS, 0.5), 0.0, 1.0)


def color(args: Dict[str, Any]) -> str:
    value = args.get("hex") or args.get("color") or "#FFFFFF"
    return str(value)


def color_mood_delta(value: str) -> float:
    lowered = value.lower()
    if any(tag in lowered for tag in WARM_COLORS):
        return 0.05
    if any(tag in lowered for tag in COOL_COLORS):
        return -0.02
    return 0.0


def loud_magnitude(name: str, args: Dict[str, Any]) -> float:
    """Magnitude used by quiet-hours screening; the same level the applicator will use."""
    if name == "fan":
        return fan_speed(args)
    return target_brightness(name, args)


def estimated_change(name: str, args: Dict[str, Any], room: RoomState, default_step: float = 0.5,
                     comfort_c: float = 22.0) -> float:
    """
    Signed change the action would make to its target room variable.
    Used to decide whether an action pushes a governed variable the wrong way.
    """
    if name in ("cool", "heat", "set_temperature"):
        return requested_temperature_delta(name, args, room, default_step, comfort_c)
    if name in ("set_brightness", "set_lumens"):
        return target_brightness(name, args) - room.lumens
    if name == "fan":
        return (fan_speed(args) - 0.5) * 0.1
    if name == "set_color":
        return color_mood_delta(color(args))
    if name == "set_firmness":
        return (firmness(args) - 0.5) * 0.1
    return 0.0
