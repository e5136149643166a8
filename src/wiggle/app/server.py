from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict, List, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pygame.math import Vector2

from ..sim.core.config import SimulationConfig
from ..sim.core.ecosystem import Ecosystem
from ..sim.core.organism import Organism
from ..sim.core.shelter import Shelter
from ..sim.types.metrics import StepMetrics
from ..sim.types.snapshot import EcosystemSnapshot

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "Idle"
    RUNNING = "Running"


@dataclass(frozen=True)
class QueuedSnapshot:
    tick: int
    payload: str


class EcosystemController:
    """Drives an :class:`Ecosystem` from an asyncio task.

    The loop steps back to back with no delay. Stopping is cooperative: the
    flag is read once per step, so ``stop_moving`` returns after the step in
    flight has finished.
    """

    def __init__(self, config: SimulationConfig, broadcast_interval: int = 1, max_queued_snapshots: int = 256):
        self.config = config
        self.ecosystem = Ecosystem(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.state = LoopState.IDLE
        self.tick = 0
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        # Unacknowledged snapshots beyond this are dropped oldest-first.
        self._snapshot_queue: deque[QueuedSnapshot] = deque(maxlen=max(1, max_queued_snapshots))
        self._queue_lock = asyncio.Lock()
        self._movement_task: asyncio.Task | None = None
        self._stop_requested = False

    @property
    def running(self) -> bool:
        return self.state == LoopState.RUNNING

    async def start_moving(
        self,
        iteration_count: int | None = None,
        energy_gain_rate: int | None = None,
        mps_interval: float | None = None,
    ) -> bool:
        await self.stop_moving()
        if not self.ecosystem.organisms:
            return False
        await asyncio.to_thread(self.ecosystem.remove_dead_organisms)
        if not self.ecosystem.organisms:
            return False
        if mps_interval is not None:
            await asyncio.to_thread(self.ecosystem.set_mps_interval, mps_interval)
        self._stop_requested = False
        self.state = LoopState.RUNNING
        self._movement_task = asyncio.create_task(self._loop(iteration_count, energy_gain_rate))
        logger.info(f"Movement started with {len(self.ecosystem.organisms)} organisms")
        return True

    async def stop_moving(self) -> None:
        task = self._movement_task
        self._stop_requested = True
        self._movement_task = None
        if task is not None:
            try:
                await task
            except Exception:
                logger.exception("Movement loop failed")
            else:
                logger.info(f"Movement stopped after {self.ecosystem.move_counter} moves")
        self.state = LoopState.IDLE

    async def step(self, iteration_count: int | None = None, energy_gain_rate: int | None = None) -> StepMetrics:
        await self.stop_moving()
        metrics = await asyncio.to_thread(self.ecosystem.step, iteration_count, energy_gain_rate)
        self.tick += 1
        await self._broadcast_snapshot()
        return metrics

    async def reset(self, config: SimulationConfig | None = None) -> None:
        await self.stop_moving()
        if config is not None:
            self.config = config
        await asyncio.to_thread(self.ecosystem.reset, config)
        self.tick = 0
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1
        await self._broadcast_snapshot()

    async def snapshot(self) -> EcosystemSnapshot:
        return await asyncio.to_thread(self.ecosystem.snapshot)

    async def add_organisms(
        self, count: int = 1, min_energy: int | None = None, max_energy: int | None = None
    ) -> List[Organism]:
        return await asyncio.to_thread(self.ecosystem.add_random_organisms, count, min_energy, max_energy)

    async def add_shelter(self, position: Vector2, size: Vector2) -> Shelter:
        return await asyncio.to_thread(self.ecosystem.add_shelter, position, size)

    async def grow_organism(self, organism_id: str) -> bool:
        return await asyncio.to_thread(self.ecosystem.grow_organism, organism_id)

    async def duplicate_organism(self, organism_id: str) -> Organism | None:
        return await asyncio.to_thread(self.ecosystem.duplicate_organism, organism_id)

    async def _loop(self, iteration_count: int | None, energy_gain_rate: int | None) -> None:
        try:
            while not self._stop_requested:
                await asyncio.to_thread(self.ecosystem.step, iteration_count, energy_gain_rate)
                self.tick += 1
                if self.tick % self.broadcast_interval == 0:
                    await self._broadcast_snapshot()
        finally:
            self.state = LoopState.IDLE

    async def acknowledge(self, tick: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].tick <= tick:
                self._snapshot_queue.popleft()

    def _serialize_snapshot(self, snapshot: EcosystemSnapshot) -> QueuedSnapshot:
        payload = {
            "type": "snapshot",
            "tick": self.tick,
            "state": self.state.value,
            "payload": snapshot.to_payload(),
        }
        return QueuedSnapshot(tick=self.tick, payload=json.dumps(payload))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.tick > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            last_sent = item.tick
        self._client_last_sent[client] = last_sent

    async def _broadcast_snapshot(self) -> None:
        queued = self._serialize_snapshot(await self.snapshot())
        async with self._queue_lock:
            self._snapshot_queue.append(queued)
        stale: Set[WebSocket] = set()
        for client in self.clients:
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)
            self._client_last_sent.pop(client, None)


app = FastAPI(title="Wiggle Ecosystem Simulation")
controller = EcosystemController(SimulationConfig())


@app.get("/api/status")
async def status() -> JSONResponse:
    snapshot = await controller.snapshot()
    metrics = snapshot.metrics
    return JSONResponse(
        {
            "state": controller.state.value,
            "tick": controller.tick,
            "population": snapshot.population,
            "shelters": len(snapshot.shelters),
            "move_counter": snapshot.move_counter,
            "moves_per_second": snapshot.moves_per_second,
            "metrics": asdict(metrics) if metrics is not None else None,
        }
    )


@app.post("/api/control/start")
async def start_moving(payload: dict | None = None) -> JSONResponse:
    payload = payload or {}
    started = await controller.start_moving(
        iteration_count=payload.get("iteration_count"),
        energy_gain_rate=payload.get("energy_gain_rate"),
        mps_interval=payload.get("mps_interval"),
    )
    return JSONResponse({"started": started, "state": controller.state.value})


@app.post("/api/control/stop")
async def stop_moving() -> JSONResponse:
    await controller.stop_moving()
    return JSONResponse({"state": controller.state.value})


@app.post("/api/control/step")
async def step_once(payload: dict | None = None) -> JSONResponse:
    payload = payload or {}
    metrics = await controller.step(payload.get("iteration_count"), payload.get("energy_gain_rate"))
    return JSONResponse({"tick": controller.tick, "metrics": asdict(metrics)})


@app.post("/api/control/reset")
async def reset_simulation() -> JSONResponse:
    await controller.reset()
    return JSONResponse({"state": controller.state.value, "tick": controller.tick})


@app.post("/api/organisms")
async def add_organisms(payload: dict | None = None) -> JSONResponse:
    payload = payload or {}
    added = await controller.add_organisms(
        count=int(payload.get("count", 1)),
        min_energy=payload.get("min_energy"),
        max_energy=payload.get("max_energy"),
    )
    return JSONResponse({"added": [organism.id.identifier for organism in added]})


@app.post("/api/shelters")
async def add_shelter(payload: dict) -> JSONResponse:
    shelter = await controller.add_shelter(
        Vector2(float(payload.get("x", 0.0)), float(payload.get("y", 0.0))),
        Vector2(float(payload.get("width", 10.0)), float(payload.get("height", 10.0))),
    )
    return JSONResponse({"shelter": asdict(shelter)})


@app.post("/api/organisms/{organism_id}/grow")
async def grow_organism(organism_id: str) -> JSONResponse:
    grown = await controller.grow_organism(organism_id)
    return JSONResponse({"grown": grown}, status_code=200 if grown else 404)


@app.post("/api/organisms/{organism_id}/duplicate")
async def duplicate_organism(organism_id: str) -> JSONResponse:
    child = await controller.duplicate_organism(organism_id)
    if child is None:
        return JSONResponse({"duplicate": None}, status_code=404)
    return JSONResponse({"duplicate": child.id.identifier, "energy": child.energy})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    controller._client_last_sent[websocket] = -1
    await controller._send_pending_snapshots(websocket)
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                continue
            if payload.get("type") == "ack":
                tick = payload.get("tick")
                if isinstance(tick, int):
                    await controller.acknowledge(tick)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        controller._client_last_sent.pop(websocket, None)


__all__ = ["app", "controller", "EcosystemController", "LoopState"]
