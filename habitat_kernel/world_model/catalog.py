"""
Built-in device presets and the default rule pack.

Presets are keyed by short catalog names ("smart_ac") and hold the spec
fields only; runtimes are minted from them by WorldStore.create_device_runtime.
"""

from typing import Dict, List, Optional

from habitat_kernel.models.policy import (
    Policies,
    QuietHours,
    RulePack,
    RuleScope,
    RuleTransform,
    WorldRule,
)
from habitat_kernel.models.world import DeviceGoal, DeviceSpec, RoomState


DEVICE_PRESETS: Dict[str, DeviceSpec] = {
    "smart_ac": DeviceSpec(
        id="device.smart_ac.v1",
        name="Smart AC",
        room="living_room",
        goals=[
            DeviceGoal(name="safety", weight=0.5),
            DeviceGoal(name="comfort", weight=0.3),
            DeviceGoal(name="efficiency", weight=0.2),
        ],
        constraints=["stay_within_18_26_c"],
        sensors=["room_temperature", "outside_temperature", "energy_price", "time_of_day"],
        actuators=["cool", "heat", "fan"],
        personality="practical, assertive",
        communication_style="direct",
        defaults={"fan": 0.4},
        risk_flags=["energy_spike"],
        climate_control=True,
        instructions=(
            "Maintain safe temperature (18-26°C), then optimize comfort with "
            "minimal energy. Coordinate with sofa and blinds."
        ),
    ),
    "emotion_lamp": DeviceSpec(
        id="device.emotion_lamp.v1",
        name="Emotion Lamp",
        room="living_room",
        goals=[
            DeviceGoal(name="comfort", weight=0.5),
            DeviceGoal(name="sleep_support", weight=0.3),
            DeviceGoal(name="efficiency", weight=0.2),
        ],
        constraints=["no_bright_light_during_quiet_hours"],
        sensors=["user_mood", "room_lumens", "time_of_day"],
        actuators=["set_brightness", "set_color"],
        personality="gentle, reassuring",
        communication_style="soft",
        defaults={"color": "#FFE4B5", "brightness": 0.4},
        risk_flags=["privacy"],
        instructions=(
            "You adapt brightness/color to user mood while protecting sleep and "
            "saving energy. Avoid harsh light at night."
        ),
    ),
    "smart_sofa": DeviceSpec(
        id="device.smart_sofa.v1",
        name="Smart Sofa",
        room="living_room",
        goals=[
            DeviceGoal(name="comfort", weight=0.6),
            DeviceGoal(name="efficiency", weight=0.2),
            DeviceGoal(name="durability", weight=0.2),
        ],
        constraints=["never_harm_user", "avoid_excessive_resizing"],
        sensors=["user_posture", "room_temperature", "user_mood", "time_of_day"],
        actuators=["resize", "set_firmness"],
        personality="supportive, slightly stubborn",
        communication_style="friendly",
        defaults={"size_cm": 180, "firmness": 0.5},
        risk_flags=["privacy", "overfitting_routine"],
        instructions=(
            "You are a smart sofa. Maximize user comfort while saving energy and "
            "preserving durability. Prefer small, reversible adjustments. "
            "Coordinate with AC and Lights."
        ),
    ),
}


def get_preset(key: str) -> Optional[DeviceSpec]:
    """A fresh copy of a catalog preset, or None if the key is unknown."""
    spec = DEVICE_PRESETS.get(key)
    return spec.model_copy(deep=True) if spec else None


def default_rule_pack() -> RulePack:
    return RulePack(
        id="default_rules",
        name="Default Safety Rules",
        description="Basic safety and operational constraints",
        environment="home",
        rules=[
            WorldRule(
                id="basic_temp_safety",
                scope=RuleScope.ROOM,
                priority=1.0,
                hard=True,
                if_={"temperature_gt": 26},
                then=RuleTransform(
                    target="temperature",
                    max_value=26,
                    alarm="Temperature too high",
                ),
                explain="Enforce temperature safety limits",
            ),
        ],
    )


def default_rooms() -> Dict[str, RoomState]:
    return {
        "living_room": RoomState(
            temperature=22.0, lumens=0.6, noise=0.3, humidity=0.45, mood_score=0.7,
        ),
        "kitchen": RoomState(
            temperature=21.0, lumens=0.7, noise=0.4, humidity=0.5, mood_score=0.6,
        ),
        "bedroom": RoomState(
            temperature=20.0, lumens=0.2, noise=0.1, humidity=0.4, mood_score=0.8,
            tags=["sleep"],
        ),
    }


def default_policies(rule_packs: Optional[List[RulePack]] = None) -> Policies:
    return Policies(
        priority_order=["safety", "comfort", "efficiency", "privacy"],
        quiet_hours=QuietHours(start="22:00", end="07:00"),
        limits={"max_power_kw": 2.0},
        rule_packs=rule_packs if rule_packs is not None else [default_rule_pack()],
        soft_weights={"safety": 1.0, "comfort": 0.7, "efficiency": 0.5, "privacy": 0.6},
        harm_sensitivity=0.6,
    )
