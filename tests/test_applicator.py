"""Tests for the Action Applicator and the environment physics."""

import pytest

from habitat_kernel.execution.applicator import ActionApplicator, is_climate_control
from habitat_kernel.execution.physics import (
    apply_environmental_physics,
    regenerate_resources,
    sensor_readings,
)
from habitat_kernel.models.agent import AgentAction
from habitat_kernel.models.config import PhysicsConfig
from habitat_kernel.models.mediation import ApprovedAction
from habitat_kernel.models.world import RESOURCE_CAPS, DeviceSpec
from habitat_kernel.rng.source import RandomSource
from habitat_kernel.world_model.catalog import get_preset
from habitat_kernel.world_model.store import WorldStore, default_world

NOON = 12 * 60


def _make_store(seed: int = 12345, *presets, time_sec: float = NOON) -> WorldStore:
    """Seeded household with the given catalog presets in the living room."""
    store = WorldStore(default_world(seed), RandomSource(seed))
    store.world.time_sec = time_sec
    for preset in presets:
        store.add_device_from_catalog(preset)
    return store


def _device(store: WorldStore, name: str):
    return next(d for d in store.world.devices.values() if d.spec.name == name)


def _act(device_id: str, name: str, **args) -> ApprovedAction:
    return ApprovedAction(device_id=device_id, action=AgentAction(name=name, args=args))


def _events(store: WorldStore, kind: str) -> list:
    return [e for e in store.world.event_log if e.kind == kind]


class TestTemperature:
    def setup_method(self):
        self.store = _make_store(12345, "smart_ac")
        self.ac = _device(self.store, "Smart AC")
        self.applicator = ActionApplicator(self.store.rng)

    def test_cool_is_ramp_limited(self):
        world = self.store.world
        assert world.rooms["living_room"].temperature == 22.0
        assert world.resources.power_kw == 1.2

        result = self.applicator.apply_actions(world, [_act(self.ac.id, "cool", delta_c=2.0)])

        assert result.applied == 1
        after = world.rooms["living_room"].temperature
        assert after < 22.0
        assert 22.0 - after <= 0.7 + 1e-9
        event = _events(self.store, "action")[-1]
        assert event.device_id == self.ac.id
        assert event.data["requested_delta"] == -2.0
        assert event.data["clamped_delta"] == -0.5
        assert abs(event.data["noise"]) <= 0.2
        assert event.data["temperature_after"] == after

    def test_temperature_stays_in_safety_band(self):
        world = self.store.world
        room = world.rooms["living_room"]
        for tick in range(0, 200, 3):
            world.tick = tick
            self.applicator.apply_actions(world, [_act(self.ac.id, "cool", delta_c=5.0)])
            assert 15.0 <= room.temperature <= 30.0
        assert room.temperature == pytest.approx(15.0, abs=0.2)

    def test_step_never_exceeds_ramp_plus_noise(self):
        world = self.store.world
        room = world.rooms["living_room"]
        for tick in range(0, 60, 3):
            world.tick = tick
            before = room.temperature
            self.applicator.apply_actions(world, [_act(self.ac.id, "set_temperature", target=30)])
            assert room.temperature - before <= 0.7 + 1e-9

    def test_ramp_holds_across_a_batch(self):
        world = self.store.world
        self.ac.spec.climate_control = False
        self.ac.spec.name = "Space Heater"
        room = world.rooms["living_room"]
        before = room.temperature

        result = self.applicator.apply_actions(
            world, [_act(self.ac.id, "heat", delta_c=2.0) for _ in range(4)]
        )

        assert result.applied == 4
        assert abs(room.temperature - before) <= 0.7 + 1e-9
        clamped = [e.data["clamped_delta"] for e in _events(self.store, "action")]
        assert sum(clamped) == pytest.approx(0.5)
        assert clamped[1:] == [0.0, 0.0, 0.0]
        assert abs(sum(e.data["noise"] for e in _events(self.store, "action"))) <= 0.2 + 1e-9

    def test_fan_nudge_shares_the_ramp(self):
        world = self.store.world
        self.ac.spec.climate_control = False
        room = world.rooms["living_room"]
        before = room.temperature

        self.applicator.apply_actions(world, [
            _act(self.ac.id, "heat", delta_c=2.0),
            _act(self.ac.id, "fan", speed_0_1=1.0),
            _act(self.ac.id, "set_temperature", target=30),
        ])
        assert abs(room.temperature - before) <= 0.7 + 1e-9

    def test_budget_resets_each_pass(self):
        world = self.store.world
        self.ac.spec.climate_control = False
        room = world.rooms["living_room"]
        for tick in range(4):
            world.tick = tick
            before = room.temperature
            self.applicator.apply_actions(world, [_act(self.ac.id, "heat", delta_c=2.0)] * 3)
            assert room.temperature > before
            assert room.temperature - before <= 0.7 + 1e-9

    def test_min_on_time_defers(self):
        world = self.store.world
        self.applicator.apply_actions(world, [_act(self.ac.id, "cool")])
        before = world.rooms["living_room"].temperature

        world.tick += 1
        result = self.applicator.apply_actions(world, [_act(self.ac.id, "heat")])
        assert result.deferred == 1
        assert result.applied == 0
        assert world.rooms["living_room"].temperature == before
        assert _events(self.store, "action_deferred")[-1].data["action"] == "heat"

        world.tick += 2
        result = self.applicator.apply_actions(world, [_act(self.ac.id, "heat")])
        assert result.applied == 1

    def test_non_climate_devices_are_not_deferred(self):
        world = self.store.world
        self.ac.spec.climate_control = False
        self.ac.spec.name = "Space Heater"
        self.applicator.apply_actions(world, [_act(self.ac.id, "heat")])
        result = self.applicator.apply_actions(world, [_act(self.ac.id, "heat")])
        assert result.applied == 1

    def test_power_is_drawn(self):
        world = self.store.world
        result = self.applicator.apply_actions(world, [_act(self.ac.id, "cool", delta_c=2.0)])
        assert result.power_draw_kw > 0
        assert world.resources.power_kw == pytest.approx(1.2 - result.power_draw_kw)
        assert world.resources.power_draw_kw == result.power_draw_kw

    def test_same_seed_same_outcome(self):
        def run():
            store = _make_store(12345, "smart_ac")
            ac = _device(store, "Smart AC")
            ActionApplicator(store.rng).apply(store.world, [_act(ac.id, "cool", delta_c=2.0)])
            return store.world.model_dump()

        assert run() == run()


class TestClimateClassification:
    def test_explicit_flag_wins(self):
        spec = DeviceSpec(id="x", name="Lamp", room="r", climate_control=True)
        assert is_climate_control(spec)

    def test_inferred_from_name(self):
        assert is_climate_control(DeviceSpec(id="x", name="Hallway Thermostat", room="r"))
        assert is_climate_control(DeviceSpec(id="x", name="Bedroom AC", room="r"))
        assert not is_climate_control(DeviceSpec(id="x", name="Jacuzzi", room="r"))


class TestOtherActuators:
    def setup_method(self):
        self.store = _make_store(7, "emotion_lamp", "smart_sofa")
        self.lamp = _device(self.store, "Emotion Lamp")
        self.sofa = _device(self.store, "Smart Sofa")
        self.applicator = ActionApplicator(self.store.rng)

    def test_brightness_tweens(self):
        world = self.store.world
        assert world.rooms["living_room"].lumens == 0.6
        self.applicator.apply_actions(world, [_act(self.lamp.id, "set_brightness", level_0_1=1.0)])
        assert world.rooms["living_room"].lumens == pytest.approx(0.9)
        self.applicator.apply_actions(world, [_act(self.lamp.id, "set_brightness", level_0_1=1.0)])
        assert world.rooms["living_room"].lumens == pytest.approx(1.0)
        assert self.lamp.defaults["brightness"] == pytest.approx(1.0)

    def test_brightening_at_midday_harms_occupant(self):
        world = self.store.world
        self.applicator.apply_actions(world, [_act(self.lamp.id, "set_brightness", level_0_1=1.0)])
        impact = _events(self.store, "human_impact")[-1]
        assert impact.data["impact"] == "harm"
        assert impact.data["metric"] == "lumens"

    def test_dimming_at_night_helps_occupant(self):
        world = self.store.world
        world.time_sec = 23 * 60
        self.lamp.room = "bedroom"
        self.applicator.apply_actions(world, [_act(self.lamp.id, "set_brightness", level_0_1=0.0)])
        assert _events(self.store, "human_impact")[-1].data["impact"] == "help"

    def test_no_impact_when_occupant_elsewhere(self):
        world = self.store.world
        self.lamp.room = "kitchen"
        self.applicator.apply_actions(world, [_act(self.lamp.id, "set_brightness", level_0_1=1.0)])
        assert _events(self.store, "human_impact") == []

    def test_color_nudges_mood(self):
        world = self.store.world
        mood = world.rooms["living_room"].mood_score
        self.applicator.apply_actions(world, [_act(self.lamp.id, "set_color", hex="#FF8800")])
        assert world.rooms["living_room"].mood_score == pytest.approx(mood + 0.05)
        assert self.lamp.defaults["color"] == "#FF8800"

    def test_resize_is_stepped_and_bounded(self):
        world = self.store.world
        self.applicator.apply_actions(world, [_act(self.sofa.id, "resize", size_cm=250)])
        assert self.sofa.defaults["size_cm"] == 190
        for _ in range(10):
            self.applicator.apply_actions(world, [_act(self.sofa.id, "resize", size_cm=400)])
        assert self.sofa.defaults["size_cm"] == 250

    def test_firmness_moves_mood(self):
        world = self.store.world
        mood = world.rooms["living_room"].mood_score
        self.applicator.apply_actions(world, [_act(self.sofa.id, "set_firmness", level_0_1=1.0)])
        assert world.rooms["living_room"].mood_score == pytest.approx(mood + 0.05)

    def test_passive_actions_change_nothing(self):
        world = self.store.world
        before = world.model_dump()
        result = self.applicator.apply_actions(world, [_act(self.sofa.id, "idle"), _act(self.sofa.id, "wait")])
        assert result.applied == 2
        after = world.model_dump()
        assert after["rooms"] == before["rooms"]
        assert after["event_log"] == before["event_log"]

    def test_unknown_action_is_logged_and_skipped(self):
        world = self.store.world
        result = self.applicator.apply_actions(world, [
            _act(self.lamp.id, "dance"),
            _act(self.lamp.id, "set_brightness", level_0_1=0.5),
        ])
        assert result.failed == 1
        assert result.applied == 1
        failed = _events(self.store, "action_failed")[-1]
        assert failed.data["action"] == "dance"

    def test_missing_device_is_logged_and_skipped(self):
        result = self.applicator.apply_actions(self.store.world, [_act("ghost", "cool")])
        assert result.failed == 1
        assert "ghost" in result.failures[0]["error"]

    def test_custom_handler(self):
        calls = []
        self.applicator.register_handler("vibrate", lambda w, d, a: calls.append(a.args) or 0.2)
        result = self.applicator.apply_actions(self.store.world, [_act(self.sofa.id, "vibrate", level=1)])
        assert calls == [{"level": 1}]
        assert result.power_draw_kw == pytest.approx(0.2)
        assert "vibrate" in self.applicator.action_names


class TestMessaging:
    def setup_method(self):
        self.store = _make_store(3, "emotion_lamp", "smart_sofa")
        self.lamp = _device(self.store, "Emotion Lamp")

    def test_message_delivered(self):
        applicator = ActionApplicator(self.store.rng, PhysicsConfig(message_drop_probability=0.0))
        world = self.store.world
        applicator.apply_actions(world, [_act(self.lamp.id, "send_message", to="Smart Sofa", content="hi")])
        message = _events(self.store, "device_message")[-1]
        assert message.data["from"] == "Emotion Lamp"
        assert message.data["to"] == "Smart Sofa"
        assert 100 <= message.data["latency_ms"] < 800
        assert world.resources.bandwidth == pytest.approx(0.79)

    def test_allow_list_blocks_other_pairs(self):
        applicator = ActionApplicator(self.store.rng, PhysicsConfig(message_drop_probability=0.0))
        world = self.store.world
        world.policies.comms_allow = [("Emotion Lamp", "Smart AC")]
        applicator.apply_actions(world, [
            _act(self.lamp.id, "send_message", to="Smart Sofa", content="hi"),
            _act(self.lamp.id, "send_message", to="Smart AC", content="too warm?"),
        ])
        assert _events(self.store, "message_blocked")[-1].data["to"] == "Smart Sofa"
        assert [e.data["to"] for e in _events(self.store, "device_message")] == ["Smart AC"]

    def test_dropped_message(self):
        applicator = ActionApplicator(self.store.rng, PhysicsConfig(message_drop_probability=1.0))
        applicator.apply_actions(self.store.world, [
            _act(self.lamp.id, "send_message", to="Smart Sofa", content="hi"),
        ])
        assert len(_events(self.store, "message_dropped")) == 1
        assert _events(self.store, "device_message") == []

    def test_message_needs_recipient(self):
        applicator = ActionApplicator(self.store.rng)
        result = applicator.apply_actions(self.store.world, [_act(self.lamp.id, "send_message", content="hi")])
        assert result.failed == 1


class TestPhysics:
    def test_resources_stay_within_caps(self):
        store = _make_store(11, "smart_ac", "emotion_lamp")
        world = store.world
        ac = _device(store, "Smart AC")
        lamp = _device(store, "Emotion Lamp")
        applicator = ActionApplicator(store.rng)
        for tick in range(60):
            world.tick = tick
            applicator.apply(world, [
                _act(ac.id, "cool", delta_c=2.0),
                _act(lamp.id, "set_brightness", level_0_1=1.0),
                _act(lamp.id, "monitor"),
                _act(lamp.id, "send_message", to="Smart AC", content="ping"),
            ])
            res = world.resources
            assert 0.0 <= res.power_kw <= RESOURCE_CAPS["power_kw"]
            assert 0.0 <= res.bandwidth <= RESOURCE_CAPS["bandwidth"]
            assert 0.0 <= res.privacy_budget <= RESOURCE_CAPS["privacy_budget"]

    def test_regeneration_reports_low_resources(self):
        world = default_world()
        world.resources.power_kw = 0.0
        world.resources.bandwidth = 0.0
        low = regenerate_resources(world, PhysicsConfig())
        assert world.resources.power_kw == pytest.approx(0.1)
        assert low == ["power_kw", "bandwidth"]

    def test_rooms_relax_and_stay_bounded(self):
        world = default_world()
        world.rooms["kitchen"].temperature = 30.0
        world.rooms["kitchen"].noise = 1.0
        rng = RandomSource(5)
        for _ in range(50):
            apply_environmental_physics(world, rng, PhysicsConfig())
        kitchen = world.rooms["kitchen"]
        assert kitchen.temperature < 30.0
        assert kitchen.noise < 0.01
        for room in world.rooms.values():
            assert 15.0 <= room.temperature <= 30.0
            assert 0.0 <= room.lumens <= 1.0
            assert 0.0 <= room.mood_score <= 1.0

    def test_ambient_temperature_noise_is_clipped(self):
        config = PhysicsConfig(ambient_noise_std=5.0)
        world = default_world()
        rng = RandomSource(3)
        for _ in range(50):
            before = {name: room.temperature for name, room in world.rooms.items()}
            apply_environmental_physics(world, rng, config)
            for name, room in world.rooms.items():
                drift = (config.ambient_temp_c - before[name]) * config.temp_drift_rate
                assert abs(room.temperature - before[name] - drift) <= config.ambient_noise_limit + 1e-9

    def test_sensor_readings_are_noisy_but_bounded(self):
        room = default_world().rooms["living_room"]
        readings = sensor_readings(room, RandomSource(1))
        assert set(readings) == {"temperature", "lumens", "mood_score"}
        assert readings["lumens"] >= 0.0
        assert 0.0 <= readings["mood_score"] <= 1.0
        assert readings["temperature"] != room.temperature
