"""
Habitat Kernel API — FastAPI endpoints.

Exposes the simulation via a REST API for:
- World and event inspection
- Simulation control (start, pause, step, replay, speed)
- Device management
- Rule-pack toggles
- Planner stats and enable flag
- Event archive queries
"""

import asyncio
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from habitat_kernel.archive.store import EventArchive
from habitat_kernel.models.policy import RulePack
from habitat_kernel.planner.adapter import PlannerAdapter
from habitat_kernel.scheduler.tick import TickScheduler
from habitat_kernel.world_model.catalog import DEVICE_PRESETS
from habitat_kernel.world_model.scenario import ScenarioError, load_scenario
from habitat_kernel.world_model.store import WorldStore


# --- Request/Response Models ---

class DeviceCreateRequest(BaseModel):
    preset: str
    room: Optional[str] = None


class ReplayRequest(BaseModel):
    seed: int


class SpeedRequest(BaseModel):
    speed: int


class ToggleRequest(BaseModel):
    active: bool


class PlannerEnableRequest(BaseModel):
    enabled: bool


class ScenarioRequest(BaseModel):
    document: Dict[str, Any]


# --- Application Factory ---

def create_app(
    scheduler: Optional[TickScheduler] = None,
    archive: Optional[EventArchive] = None,
    run_loop: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.
    With run_loop=False, /sim/start only flips the state; ticks come from /sim/step.
    """

    app = FastAPI(
        title="Habitat Kernel API",
        description="Household device-agent simulation kernel",
        version="0.1.0",
    )

    ar = archive or (scheduler.archive if scheduler else None) or EventArchive()
    if scheduler is None:
        scheduler = TickScheduler(store=WorldStore(), planner=PlannerAdapter(), archive=ar)
    elif scheduler.archive is None:
        scheduler.archive = ar

    app.state.scheduler = scheduler
    app.state.archive = ar
    app.state.loop_task = None
    app.state.stop_event = None

    store = scheduler.store

    # === WORLD ===

    @app.get("/world")
    def get_world():
        return store.get_state_snapshot()

    @app.get("/world/rooms/{room}")
    def get_room(room: str):
        state = store.world.rooms.get(room)
        if state is None:
            raise HTTPException(404, "Room not found")
        return state.model_dump(mode="json")

    @app.get("/events")
    def get_events(limit: int = 20, kind: Optional[str] = None):
        return [e.model_dump(mode="json") for e in store.get_recent_events(limit, kind)]

    @app.post("/scenario")
    def post_scenario(req: ScenarioRequest):
        try:
            created = load_scenario(store.world, req.document, scheduler.rng)
        except (ScenarioError, ValueError) as e:
            raise HTTPException(422, str(e))
        return {"devices": created}

    # === SIMULATION CONTROL ===

    @app.get("/sim/state")
    def sim_state():
        world = store.world
        return {
            "state": scheduler.state.value,
            "tick": world.tick,
            "time_sec": world.time_sec,
            "speed": world.speed,
            "seed": world.seed,
            "health": world.health,
        }

    @app.post("/sim/start")
    async def sim_start():
        scheduler.start()
        task = app.state.loop_task
        if run_loop and (task is None or task.done()):
            app.state.stop_event = asyncio.Event()
            app.state.loop_task = asyncio.create_task(scheduler.run(app.state.stop_event))
        return {"state": scheduler.state.value}

    @app.post("/sim/pause")
    async def sim_pause():
        scheduler.pause()
        if app.state.stop_event is not None:
            app.state.stop_event.set()
        return {"state": scheduler.state.value}

    @app.post("/sim/step")
    async def sim_step():
        report = await scheduler.step()
        return report.model_dump(mode="json")

    @app.post("/sim/replay")
    def sim_replay(req: ReplayRequest):
        scheduler.replay(req.seed)
        return {"seed": store.world.seed}

    @app.post("/sim/speed")
    def sim_speed(req: SpeedRequest):
        try:
            scheduler.set_speed(req.speed)
        except ValueError as e:
            raise HTTPException(422, str(e))
        return {"speed": store.world.speed}

    # === DEVICES ===

    @app.get("/catalog")
    def get_catalog():
        return {key: spec.model_dump(mode="json") for key, spec in DEVICE_PRESETS.items()}

    @app.get("/devices")
    def list_devices():
        return [d.model_dump(mode="json") for d in store.world.devices.values()]

    @app.get("/devices/{device_id}")
    def get_device(device_id: str):
        device = store.get_device(device_id)
        if device is None:
            raise HTTPException(404, "Device not found")
        return device.model_dump(mode="json")

    @app.post("/devices")
    def add_device(req: DeviceCreateRequest):
        if req.preset not in DEVICE_PRESETS:
            raise HTTPException(404, "Preset not found")
        if req.room is not None and req.room not in store.world.rooms:
            raise HTTPException(422, f"Unknown room: {req.room}")
        device = store.add_device_from_catalog(req.preset, room=req.room)
        return device.model_dump(mode="json")

    @app.delete("/devices/{device_id}")
    def remove_device(device_id: str):
        if not store.remove_device(device_id):
            raise HTTPException(404, "Device not found")
        return {"removed": device_id}

    # === GOVERNANCE ===

    @app.get("/rule-packs")
    def list_rule_packs():
        return [p.model_dump(mode="json", by_alias=True) for p in store.world.policies.rule_packs]

    @app.post("/rule-packs")
    def load_rule_pack(pack: RulePack):
        store.load_rule_pack(pack)
        return {"id": pack.id, "rules": len(pack.rules)}

    @app.post("/rule-packs/{pack_id}/toggle")
    def toggle_rule_pack(pack_id: str, req: ToggleRequest):
        if not store.set_rule_pack_active(pack_id, req.active):
            raise HTTPException(404, "Rule pack not found")
        return {"id": pack_id, "active": req.active}

    @app.post("/rule-packs/{pack_id}/rules/{rule_id}/toggle")
    def toggle_rule(pack_id: str, rule_id: str, req: ToggleRequest):
        if not store.set_rule_active(pack_id, rule_id, req.active):
            raise HTTPException(404, "Rule not found")
        return {"id": rule_id, "active": req.active}

    # === PLANNER ===

    @app.get("/planner/stats")
    def planner_stats():
        stats = scheduler.planner.stats.model_dump()
        stats["enabled"] = scheduler.planner.enabled
        return stats

    @app.post("/planner/stats/reset")
    def reset_planner_stats():
        scheduler.planner.reset_stats()
        return {"reset": True}

    @app.post("/planner/enabled")
    def set_planner_enabled(req: PlannerEnableRequest):
        scheduler.planner.set_enabled(req.enabled)
        return {"enabled": scheduler.planner.enabled}

    # === ARCHIVE ===

    @app.get("/archive/events")
    def get_archived_events(
        kind: Optional[str] = None,
        device_id: Optional[str] = None,
        start: Optional[float] = None,
        end: Optional[float] = None,
        limit: int = 50,
    ):
        if kind is not None:
            records = ar.query_by_kind(kind)
        elif device_id is not None:
            records = ar.query_by_device(device_id)
        elif start is not None or end is not None:
            records = ar.query_time_range(
                start if start is not None else float("-inf"),
                end if end is not None else float("inf"),
            )
        else:
            records = ar.query_recent(limit)
        return [r.model_dump(mode="json") for r in records[-limit:]]

    @app.get("/archive/verify")
    def verify_archive():
        return {"valid": ar.verify_chain_integrity(), "total_records": ar.count()}

    return app
