"""
Tick Scheduler — the heartbeat of the habitat.

Each tick: devices whose planning phase comes up think (concurrently),
the mediator decides, the applicator acts, and derived state is refreshed.

States:
  PAUSED ⇄ RUNNING    (start / pause)
  step() runs one tick in either state.
"""

import asyncio
from enum import Enum
from typing import Dict, List, Optional

from loguru import logger

from habitat_kernel.archive.store import EventArchive
from habitat_kernel.execution.actuation import clamp
from habitat_kernel.execution.applicator import ActionApplicator
from habitat_kernel.execution.physics import sensor_readings
from habitat_kernel.governance.mediator import ConflictMediator
from habitat_kernel.models.agent import AgentStep, InboundMessage, PeerSummary
from habitat_kernel.models.config import SchedulerConfig
from habitat_kernel.models.context import AgentContext
from habitat_kernel.models.mediation import DeviceProposal
from habitat_kernel.models.tick import TickReport
from habitat_kernel.models.world import DeviceRuntime, DeviceStatus, WorldState
from habitat_kernel.planner.adapter import PlannerAdapter
from habitat_kernel.rng.source import RandomSource
from habitat_kernel.world_model.events import record_event, trim_event_log
from habitat_kernel.world_model.store import WorldStore

COOPERATION_KINDS = frozenset({"device_cooperation", "device_message"})
DIRECTOR_ROOM = "living_room"


class SimState(str, Enum):
    RUNNING = "running"
    PAUSED = "paused"


class TickScheduler:
    """
    Owns the tick loop. The only writer of WorldState while a tick runs.
    RandomSource and PlannerAdapter are injected; nothing here is process-global.
    """

    def __init__(
        self,
        store: WorldStore,
        planner: PlannerAdapter,
        rng: Optional[RandomSource] = None,
        config: Optional[SchedulerConfig] = None,
        mediator: Optional[ConflictMediator] = None,
        applicator: Optional[ActionApplicator] = None,
        archive: Optional[EventArchive] = None,
    ):
        self.store = store
        self.planner = planner
        self.rng = rng or store.rng
        self.config = config or SchedulerConfig()
        self.mediator = mediator or ConflictMediator(self.rng)
        self.applicator = applicator or ActionApplicator(self.rng)
        self.archive = archive
        self._last_director_tick: Optional[int] = None

    @property
    def world(self) -> WorldState:
        return self.store.world

    @property
    def state(self) -> SimState:
        return SimState.RUNNING if self.world.running else SimState.PAUSED

    def start(self) -> None:
        if not self.world.running:
            self.world.running = True
            logger.info("Simulation started")

    def pause(self) -> None:
        """Stops scheduling further ticks; an in-flight tick completes."""
        if self.world.running:
            self.world.running = False
            logger.info("Simulation paused")

    def set_speed(self, speed: int) -> None:
        if speed < 1:
            raise ValueError("speed must be >= 1")
        self.world.speed = speed

    def replay(self, seed: int) -> None:
        """Reseed for a seeded replay from the current world."""
        self.rng.reseed(seed)
        self.world.seed = seed
        self._last_director_tick = None
        logger.info(f"Replay seeded with {seed}")

    # --- Loop ---

    async def run(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Tick at tick_interval_seconds / speed until paused or stop_event is set."""
        self.start()
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while self.world.running and not stop_event.is_set():
                await self.step()
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.config.tick_interval_seconds / max(1, self.world.speed),
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self.pause()

    async def step(self) -> TickReport:
        """Run exactly one tick, whatever the running state."""
        world = self.world
        report = TickReport(tick=world.tick, time_sec=world.time_sec)
        try:
            await self._tick(world, report)
        except Exception as e:
            logger.exception(f"Tick {world.tick} failed")
            report.error = str(e)
            record_event(
                world,
                "system_error",
                data={"error": str(e), "tick": world.tick},
                description="Simulation tick encountered an error",
            )

        dropped = trim_event_log(world, self.config.max_events)
        if dropped and self.archive is not None:
            self.archive.append_many(dropped, tick=world.tick)
        report.health = world.health
        return report

    async def _tick(self, world: WorldState, report: TickReport) -> None:
        world.time_sec += self.config.tick_seconds
        world.tick += 1
        report.tick = world.tick
        report.time_sec = world.time_sec

        contexts = {
            device_id: self.build_context(device, world)
            for device_id, device in world.devices.items()
            if device.status != DeviceStatus.SAFE
        }
        selected = [
            device_id for device_id in contexts
            if self.should_plan(world.devices[device_id], world.tick)
        ]
        report.planned_devices = selected

        proposals = await self._plan_all(selected, contexts, world, report)

        mediation = self.mediator.mediate(proposals, world)
        world.event_log.extend(mediation.logs)
        report.conflicts = len(mediation.conflicts)
        report.approved_actions = len(mediation.actions)

        self.applicator.apply(world, mediation.actions)
        self._update_devices(proposals, world)

        self._update_harmony(world)
        self._update_sensors(world)
        report.director_event = self._maybe_direct(world)

        logger.debug(
            f"Tick {world.tick}: planned={len(selected)} approved={report.approved_actions} "
            f"conflicts={report.conflicts} health={world.health:.2f}"
        )

    # --- Planning ---

    def should_plan(self, device: DeviceRuntime, tick: int) -> bool:
        modulus = self.config.planning_modulus
        return tick % modulus == device.spec.planning_phase % modulus

    def inbound_messages(self, device: DeviceRuntime, world: WorldState) -> List[InboundMessage]:
        names = {device.id, device.spec.name}
        window_start = world.time_sec - self.config.message_window_sec
        messages = [
            InboundMessage(
                sender=str(e.data.get("from", e.device_id or "unknown")),
                content=str(e.data.get("content", "")),
                at=e.at,
            )
            for e in world.event_log
            if e.kind == "device_message" and e.data.get("to") in names and e.at >= window_start
        ]
        return messages[-self.config.max_inbound_messages:]

    def build_context(self, device: DeviceRuntime, world: WorldState) -> AgentContext:
        res = world.resources
        return AgentContext(
            device_id=device.id,
            spec=device.spec,
            room_snapshot=world.rooms[device.room].model_copy(deep=True),
            policies=world.policies,
            last_messages=self.inbound_messages(device, world),
            available_actions=list(device.spec.actuators),
            world_time=world.time_sec,
            other_devices=[
                PeerSummary(id=d.id, name=d.spec.name, room=d.room, status=d.status.value)
                for d in world.devices.values() if d.id != device.id
            ],
            resources={
                "power_kw": res.power_kw,
                "bandwidth": res.bandwidth,
                "privacy_budget": res.privacy_budget,
            },
        )

    async def _plan_all(
        self,
        selected: List[str],
        contexts: Dict[str, AgentContext],
        world: WorldState,
        report: TickReport,
    ) -> List[DeviceProposal]:
        """Fan out planning, join, and keep only the devices that produced a step."""
        results = await asyncio.gather(
            *(self.planner.plan(contexts[device_id]) for device_id in selected),
            return_exceptions=True,
        )
        proposals = []
        for device_id, outcome in zip(selected, results):
            if isinstance(outcome, AgentStep):
                proposals.append(DeviceProposal(device_id=device_id, step=outcome))
                continue
            report.failed_devices.append(device_id)
            record_event(
                world,
                "planning_failed",
                device_id=device_id,
                data={"error": str(outcome)},
                description=f"Planning failed for {device_id}",
            )
            logger.warning(f"Planning failed for {device_id}: {outcome!r}")
        return proposals

    def _update_devices(self, proposals: List[DeviceProposal], world: WorldState) -> None:
        for proposal in proposals:
            device = world.devices.get(proposal.device_id)
            if device is None:
                continue
            device.last = proposal.step
            device.status = DeviceStatus.ACTING if proposal.step.actions else DeviceStatus.IDLE

    # --- Derived state ---

    def _update_harmony(self, world: WorldState) -> None:
        recent = world.event_log[-self.config.harmony_window:]
        conflicts = sum(1 for e in recent if e.kind == "conflict_resolution")
        cooperation = sum(1 for e in recent if e.kind in COOPERATION_KINDS)
        world.health = clamp(
            world.health
            - conflicts * self.config.conflict_penalty
            + cooperation * self.config.cooperation_bonus
            + self.rng.normal(0, 0.01),
            0.0,
            1.0,
        )

    def _update_sensors(self, world: WorldState) -> None:
        for room in world.rooms.values():
            room.sensors = sensor_readings(room, self.rng)

    def _maybe_direct(self, world: WorldState) -> bool:
        """Cloud cover in the living room when recent activity has been conflict-free."""
        if world.policies.director_off:
            return False
        if (
            self._last_director_tick is not None
            and world.tick - self._last_director_tick < self.config.director_cooldown_ticks
        ):
            return False
        recent = world.event_log[-self.config.director_window:]
        if any(e.kind == "conflict_resolution" for e in recent):
            return False

        room_name = DIRECTOR_ROOM if DIRECTOR_ROOM in world.rooms else next(iter(world.rooms), None)
        if room_name is None:
            return False
        room = world.rooms[room_name]
        delta = self.config.director_lumens_delta
        room.lumens = clamp(room.lumens + delta, 0.0, 1.0)
        record_event(
            world,
            "director_event",
            room=room_name,
            data={"type": "cloud_cover", "delta": delta},
            description="Director: cloud cover reduces ambient light",
        )
        self._last_director_tick = world.tick
        return True
