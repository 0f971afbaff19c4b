"""Tests for the Tick Scheduler: tick pipeline, determinism, isolation and pacing."""

import asyncio
import json

import httpx
import pytest

from habitat_kernel.archive.store import EventArchive
from habitat_kernel.governance.mediator import ConflictMediator
from habitat_kernel.models.config import PhysicsConfig, PlannerConfig, SchedulerConfig
from habitat_kernel.models.world import RESOURCE_CAPS, DeviceStatus
from habitat_kernel.planner.adapter import PlannerAdapter
from habitat_kernel.rng.source import RandomSource
from habitat_kernel.scheduler.tick import SimState, TickScheduler
from habitat_kernel.world_model.events import record_event
from habitat_kernel.world_model.store import WorldStore, default_world

SCRIPTED_STEP = {
    "messages_to": [{"to": "Smart Sofa", "content": "Adjusting the room, stay comfy."}],
    "actions": [{"name": "fan", "args": {"speed_0_1": 0.6}}],
    "explain": "Gentle airflow keeps everyone comfortable.",
}


def _make_store(seed: int = 12345, *presets) -> WorldStore:
    store = WorldStore(default_world(seed), RandomSource(seed))
    for preset in presets:
        store.add_device_from_catalog(preset)
    return store


def _scripted_planner(step: dict = SCRIPTED_STEP) -> PlannerAdapter:
    """Planner whose endpoint always answers with `step`."""
    def handler(request):
        return httpx.Response(200, json={"response": json.dumps(step)})

    return PlannerAdapter(
        PlannerConfig(endpoint="http://planner.test/api/generate", max_retries=0, backoff_seconds=0),
        transport=httpx.MockTransport(handler),
    )


def _offline_planner() -> PlannerAdapter:
    return PlannerAdapter(PlannerConfig(enabled=False))


def _device(store: WorldStore, name: str):
    return next(d for d in store.world.devices.values() if d.spec.name == name)


async def _run_ticks(scheduler: TickScheduler, n: int) -> list:
    return [await scheduler.step() for _ in range(n)]


class _CrashingPlanner(PlannerAdapter):
    """Raises for the Smart AC, falls back for everyone else."""

    async def plan(self, context):
        if context.spec.name == "Smart AC":
            raise RuntimeError("planner crashed")
        return await super().plan(context)


class _ExplodingMediator(ConflictMediator):
    def mediate(self, proposals, world):
        raise RuntimeError("mediator exploded")


class TestTickPipeline:
    def test_tick_advances_time(self):
        scheduler = TickScheduler(_make_store(), _offline_planner())
        report = asyncio.run(scheduler.step())
        assert report.tick == 1
        assert report.time_sec == 10.0
        assert scheduler.world.tick == 1
        assert scheduler.world.time_sec == 10.0
        assert report.error is None

    def test_scripted_planner_drives_actions(self):
        store = _make_store(12345, "smart_ac", "smart_sofa")
        store.world.time_sec = 12 * 60  # outside quiet hours, so the fan is not limited
        scheduler = TickScheduler(store, _scripted_planner(), config=SchedulerConfig(planning_modulus=1))
        report = asyncio.run(scheduler.step())

        assert len(report.planned_devices) == 2
        assert report.failed_devices == []
        assert report.approved_actions == 4  # two fan actions, two messages
        ac = _device(store, "Smart AC")
        assert ac.last.explain == SCRIPTED_STEP["explain"]
        assert ac.status == DeviceStatus.ACTING
        assert ac.defaults["fan_speed"] == 0.6
        messages = [e for e in store.world.event_log if e.kind == "device_message"]
        assert all(m.data["to"] == "Smart Sofa" for m in messages)

    def test_mediation_logs_precede_effects(self):
        store = _make_store(12345, "smart_ac", "smart_ac")
        scheduler = TickScheduler(store, _offline_planner(), config=SchedulerConfig(planning_modulus=1))
        report = asyncio.run(scheduler.step())

        assert report.conflicts == 1
        kinds = [e.kind for e in store.world.event_log]
        assert kinds.index("conflict_resolution") < kinds.index("action")

    def test_sensors_refreshed(self):
        store = _make_store()
        asyncio.run(TickScheduler(store, _offline_planner()).step())
        for room in store.world.rooms.values():
            assert set(room.sensors) == {"temperature", "lumens", "mood_score"}

    def test_safe_devices_do_not_plan(self):
        store = _make_store(12345, "smart_ac", "emotion_lamp")
        _device(store, "Smart AC").status = DeviceStatus.SAFE
        scheduler = TickScheduler(store, _offline_planner(), config=SchedulerConfig(planning_modulus=1))
        report = asyncio.run(scheduler.step())
        assert report.planned_devices == [_device(store, "Emotion Lamp").id]


class TestStaggering:
    def test_each_device_plans_once_per_cycle(self):
        store = _make_store(12345, "smart_ac", "emotion_lamp")
        ac, lamp = _device(store, "Smart AC"), _device(store, "Emotion Lamp")
        ac.spec.planning_phase = 1
        lamp.spec.planning_phase = 2
        scheduler = TickScheduler(store, _offline_planner())

        reports = asyncio.run(_run_ticks(scheduler, 4))
        assert reports[0].planned_devices == [ac.id]
        assert reports[1].planned_devices == [lamp.id]
        assert reports[2].planned_devices == []
        assert reports[3].planned_devices == []


class TestDeterminism:
    def _run(self, seed: int, ticks: int = 12):
        store = _make_store(seed, "smart_ac", "emotion_lamp", "smart_sofa")
        scheduler = TickScheduler(store, _scripted_planner(), config=SchedulerConfig(planning_modulus=2))
        asyncio.run(_run_ticks(scheduler, ticks))
        return store.world

    def test_same_seed_identical_runs(self):
        a, b = self._run(12345), self._run(12345)
        assert [e.model_dump_json() for e in a.event_log] == [e.model_dump_json() for e in b.event_log]
        assert a.model_dump_json() == b.model_dump_json()

    def test_different_seed_diverges(self):
        assert self._run(1).model_dump_json() != self._run(2).model_dump_json()

    def test_replay_reseeds(self):
        store = _make_store()
        scheduler = TickScheduler(store, _offline_planner())
        scheduler.replay(99)
        assert store.world.seed == 99
        assert scheduler.rng.seed == 99
        assert store.rng is scheduler.rng


class TestFailureIsolation:
    def test_planning_failure_is_isolated(self):
        store = _make_store(12345, "smart_ac", "emotion_lamp")
        planner = _CrashingPlanner(PlannerConfig(enabled=False))
        scheduler = TickScheduler(store, planner, config=SchedulerConfig(planning_modulus=1))
        report = asyncio.run(scheduler.step())

        ac, lamp = _device(store, "Smart AC"), _device(store, "Emotion Lamp")
        assert report.failed_devices == [ac.id]
        failed = [e for e in store.world.event_log if e.kind == "planning_failed"]
        assert failed[0].device_id == ac.id
        assert "planner crashed" in failed[0].data["error"]
        assert lamp.last is not None
        assert ac.last is None
        assert report.error is None

    def test_tick_errors_become_system_events(self):
        store = _make_store()
        scheduler = TickScheduler(store, _offline_planner(), mediator=_ExplodingMediator(store.rng))
        reports = asyncio.run(_run_ticks(scheduler, 2))

        assert reports[0].error == "mediator exploded"
        assert store.world.tick == 2
        errors = [e for e in store.world.event_log if e.kind == "system_error"]
        assert len(errors) == 2
        assert errors[0].data["tick"] == 1


class TestDerivedState:
    def test_director_respects_cooldown(self):
        scheduler = TickScheduler(_make_store(), _offline_planner())
        reports = asyncio.run(_run_ticks(scheduler, 6))
        fired = [r.tick for r in reports if r.director_event]
        assert fired == [1, 6]
        event = next(e for e in scheduler.world.event_log if e.kind == "director_event")
        assert event.room == "living_room"
        assert event.data["type"] == "cloud_cover"

    def test_director_off(self):
        store = _make_store()
        store.world.policies.director_off = True
        reports = asyncio.run(_run_ticks(TickScheduler(store, _offline_planner()), 3))
        assert not any(r.director_event for r in reports)

    def test_director_waits_after_conflicts(self):
        store = _make_store()
        record_event(store.world, "conflict_resolution")
        report = asyncio.run(TickScheduler(store, _offline_planner()).step())
        assert not report.director_event

    def test_health_and_resources_stay_bounded(self):
        store = _make_store(5, "smart_ac", "smart_ac", "emotion_lamp", "emotion_lamp")
        scheduler = TickScheduler(store, _offline_planner(), config=SchedulerConfig(planning_modulus=1))
        for report in asyncio.run(_run_ticks(scheduler, 30)):
            assert 0.0 <= report.health <= 1.0
        res = store.world.resources
        assert 0.0 <= res.power_kw <= RESOURCE_CAPS["power_kw"]
        assert 0.0 <= res.bandwidth <= RESOURCE_CAPS["bandwidth"]
        assert 0.0 <= res.privacy_budget <= RESOURCE_CAPS["privacy_budget"]

    def test_conflicts_lower_health(self):
        store = _make_store(5, "smart_ac", "smart_ac")
        store.world.policies.director_off = True
        scheduler = TickScheduler(store, _offline_planner(), config=SchedulerConfig(planning_modulus=1))
        asyncio.run(scheduler.step())
        assert store.world.health < 0.95


class TestPhysicsBounds:
    def test_stacked_heat_requests_respect_the_ramp(self):
        step = {
            "messages_to": [],
            "actions": [{"name": "heat", "args": {"delta_c": 2.0}}] * 4
            + [{"name": "fan", "args": {"speed_0_1": 1.0}}],
            "explain": "Warming up.",
        }
        store = _make_store(12345, "smart_sofa", "emotion_lamp")
        store.world.time_sec = 12 * 60
        scheduler = TickScheduler(store, _scripted_planner(step), config=SchedulerConfig(planning_modulus=1))
        physics = PhysicsConfig()
        limit = (
            physics.temp_ramp_c
            + physics.temp_noise_limit
            + physics.ambient_noise_limit
            + 10 * physics.temp_drift_rate  # drift toward ambient from the band's edge
        )

        room = store.world.rooms["living_room"]
        for _ in range(20):
            before = room.temperature
            report = asyncio.run(scheduler.step())
            assert report.error is None
            assert abs(room.temperature - before) <= limit + 1e-9
            assert 15.0 <= room.temperature <= 30.0
        assert room.temperature > 24.0


class TestContext:
    def setup_method(self):
        self.store = _make_store(12345, "smart_ac", "emotion_lamp")
        self.scheduler = TickScheduler(self.store, _offline_planner())
        self.lamp = _device(self.store, "Emotion Lamp")
        self.ac = _device(self.store, "Smart AC")

    def test_context_contents(self):
        context = self.scheduler.build_context(self.lamp, self.store.world)
        assert context.device_id == self.lamp.id
        assert context.available_actions == ["set_brightness", "set_color"]
        assert [d.id for d in context.other_devices] == [self.ac.id]
        assert context.resources["power_kw"] == 1.2
        assert context.room_snapshot.temperature == 22.0

    def test_inbound_messages_windowed_and_bounded(self):
        world = self.store.world
        record_event(world, "device_message", device_id=self.ac.id,
                     data={"from": "Smart AC", "to": "Emotion Lamp", "content": "stale"})
        world.time_sec = 100.0
        for i in range(6):
            record_event(world, "device_message", device_id=self.ac.id,
                         data={"from": "Smart AC", "to": "Emotion Lamp", "content": f"m{i}"})
        record_event(world, "device_message", device_id=self.ac.id,
                     data={"from": "Smart AC", "to": "Smart Sofa", "content": "not for you"})

        messages = self.scheduler.inbound_messages(self.lamp, world)
        assert [m.content for m in messages] == ["m2", "m3", "m4", "m5"]
        assert messages[0].sender == "Smart AC"


class TestLifecycle:
    def test_start_pause_and_speed(self):
        scheduler = TickScheduler(_make_store(), _offline_planner())
        assert scheduler.state == SimState.PAUSED
        scheduler.start()
        assert scheduler.state == SimState.RUNNING
        scheduler.pause()
        assert scheduler.state == SimState.PAUSED
        scheduler.set_speed(4)
        assert scheduler.world.speed == 4

    def test_invalid_speed(self):
        scheduler = TickScheduler(_make_store(), _offline_planner())
        with pytest.raises(ValueError):
            scheduler.set_speed(0)

    def test_run_until_stopped(self):
        scheduler = TickScheduler(
            _make_store(), _offline_planner(), config=SchedulerConfig(tick_interval_seconds=0.01)
        )

        async def main():
            stop = asyncio.Event()
            task = asyncio.create_task(scheduler.run(stop))
            await asyncio.sleep(0.1)
            stop.set()
            await asyncio.wait_for(task, timeout=1.0)

        asyncio.run(main())
        assert scheduler.world.tick >= 1
        assert scheduler.state == SimState.PAUSED

    def test_pause_ends_run(self):
        scheduler = TickScheduler(
            _make_store(), _offline_planner(), config=SchedulerConfig(tick_interval_seconds=0.01)
        )

        async def main():
            task = asyncio.create_task(scheduler.run())
            await asyncio.sleep(0.05)
            scheduler.pause()
            await asyncio.wait_for(task, timeout=1.0)

        asyncio.run(main())
        assert scheduler.state == SimState.PAUSED


class TestArchiving:
    def test_trimmed_events_are_archived(self):
        archive = EventArchive()
        store = _make_store(12345, "smart_ac", "emotion_lamp", "smart_sofa")
        first = store.world.event_log[0]
        scheduler = TickScheduler(
            store,
            _offline_planner(),
            config=SchedulerConfig(planning_modulus=1, max_events=5),
            archive=archive,
        )
        asyncio.run(_run_ticks(scheduler, 5))

        assert len(store.world.event_log) <= 5
        assert archive.count() > 0
        assert archive.query_recent(archive.count())[0].event == first
        assert archive.verify_chain_integrity()
