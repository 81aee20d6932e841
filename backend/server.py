import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from clock import SimulationClock
from config import CONFIG, SimulationConfig
from persistence import SqliteSaveStore
from session import GameSession

# Setup logging
logging.basicConfig(level=CONFIG.server.log_level)
logger = logging.getLogger(__name__)


class ClientCommand(BaseModel):
    command: str
    assetId: Optional[int] = None
    eventId: Optional[int] = None


class GameManager:
    """Holds the session and clock for the lifetime of the app."""

    def __init__(self, store=None, config: SimulationConfig = CONFIG, start_clock: bool = True):
        self.store = store
        self.config = config
        self.start_clock = start_clock
        self.session: Optional[GameSession] = None
        self.clock: Optional[SimulationClock] = None

    async def startup(self):
        if self.store is None:
            self.store = SqliteSaveStore(self.config.persistence.db_path)
        self.session = GameSession.load(self.store, config=self.config)
        self.clock = SimulationClock(self.session, self.config.clock)
        if self.start_clock:
            self.clock.start()

    async def shutdown(self):
        if self.clock:
            await self.clock.shutdown()
        logger.info("Game manager shut down")

    async def handle_command(self, cmd: ClientCommand) -> Optional[Dict[str, Any]]:
        """Apply one client command; returns a direct reply or None."""
        session = self.session
        name = cmd.command.upper()

        if name == "CLICK":
            session.click()
            return None
        if name == "BUY":
            if cmd.assetId is None:
                return {"type": "ERROR", "error": "BUY requires assetId"}
            ok = session.buy(cmd.assetId)
            return {"type": "BUY_RESULT", "assetId": cmd.assetId, "ok": ok}
        if name == "CLAIM":
            if cmd.eventId is None:
                return {"type": "ERROR", "error": "CLAIM requires eventId"}
            reward = session.claim_bonus(cmd.eventId)
            return {"type": "CLAIM_RESULT", "eventId": cmd.eventId, "reward": reward}
        if name == "GRANT_MULTIPLIER":
            session.grant_temporary_multiplier()
            return None
        if name == "RESET":
            session.reset(clear_slot=False)
            await asyncio.to_thread(session.clear_save)
            return {"type": "RESET"}
        if name == "SAVE":
            payload, generation = session.save_payload(), session.save_generation
            await asyncio.to_thread(session.write_save, payload, generation)
            return {"type": "SAVED"}

        return {"type": "ERROR", "error": f"Unknown command {cmd.command}"}


def create_app(store=None, config: SimulationConfig = CONFIG, start_clock: bool = True) -> FastAPI:
    manager = GameManager(store=store, config=config, start_clock=start_clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await manager.startup()
        try:
            yield
        finally:
            await manager.shutdown()

    app = FastAPI(title="Startup Tycoon Simulation", version="1.0.0", lifespan=lifespan)
    app.state.manager = manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health():
        running = bool(manager.clock and manager.clock.is_running)
        return {"status": "ok", "clockRunning": running}

    @app.get("/api/state")
    async def get_state():
        return manager.session.snapshot()

    @app.post("/api/multiplier")
    async def grant_multiplier():
        """Bonus-grant trigger for an external collaborator (e.g. after an ad)."""
        manager.session.grant_temporary_multiplier()
        return manager.session.bonus.multiplier_window.to_dict()

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        session = manager.session
        outbox: asyncio.Queue = asyncio.Queue(maxsize=256)
        logger.info("WebSocket connected")

        def enqueue(message: Dict[str, Any]):
            try:
                outbox.put_nowait(message)
            except asyncio.QueueFull:
                logger.debug("Client outbox full, dropping message")

        def push_state(state: Dict[str, Any]):
            enqueue({"type": "STATE", **state})

        def push_reward(notification: Dict[str, Any]):
            enqueue({"type": "REWARD", **notification})

        async def sender():
            while True:
                message = await outbox.get()
                await websocket.send_json(message)

        session.subscribe(push_state)
        session.subscribe_rewards(push_reward)
        push_state(session.snapshot())
        sender_task = asyncio.create_task(sender())

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    cmd = ClientCommand.model_validate_json(raw)
                except ValidationError as e:
                    enqueue({"type": "ERROR", "error": f"Invalid command: {e.error_count()} error(s)"})
                    continue
                reply = await manager.handle_command(cmd)
                if reply is not None:
                    enqueue(reply)
        except WebSocketDisconnect:
            logger.info("Client disconnected")
        finally:
            session.unsubscribe(push_state)
            session.unsubscribe_rewards(push_reward)
            sender_task.cancel()

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=CONFIG.server.host, port=CONFIG.server.port,
                log_level=CONFIG.server.log_level.lower())
