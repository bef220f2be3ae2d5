"""
Drag Force Simulation Web Server — Layer 3 (FastAPI + WebSocket)

Serves the browser page and pushes simulation frames to it over a
WebSocket; the page sends start/pause/reset and slider commands back.
Ticks are driven by an asyncio frame scheduler on the server's loop.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from controller import SimulationController, clamp_param
from scheduler import AsyncioFrameScheduler

STATIC_DIR = Path(__file__).parent / "static"

TARGET_FPS = 60
FRAME_DT = 1.0 / TARGET_FPS

# ── Controller ──────────────────────────────────────────────────────────────

scheduler = AsyncioFrameScheduler(frame_interval=FRAME_DT)
ctrl = SimulationController(scheduler=scheduler)

clients: list[WebSocket] = []
_dirty = True


def _mark_dirty(_ctrl: SimulationController) -> None:
    global _dirty
    _dirty = True


# ── Lifespan (startup/shutdown) ─────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    ctrl.subscribe(_mark_dirty)
    task = asyncio.create_task(broadcast_loop())
    yield
    task.cancel()
    ctrl.close()
    scheduler.cancel_all()


app = FastAPI(lifespan=lifespan)


# ── Frame broadcast ─────────────────────────────────────────────────────────

async def broadcast_loop():
    """Push a frame to every client at ~60 fps whenever the controller changed."""
    global _dirty
    while True:
        if clients and (_dirty or ctrl.pending_events):
            _dirty = False
            frame_msg = _build_frame_message()
            dead: list[WebSocket] = []
            for ws in clients:
                try:
                    await ws.send_text(frame_msg)
                except Exception:
                    dead.append(ws)
            for ws in dead:
                if ws in clients:
                    clients.remove(ws)
        await asyncio.sleep(FRAME_DT)


def _build_frame_message() -> str:
    """Serialize current state into a JSON frame message."""
    frame = ctrl.to_frame()
    frame["type"] = "frame"
    frame["events"] = list(ctrl.pending_events)
    ctrl.pending_events.clear()
    return json.dumps(frame, separators=(',', ':'))


# ── Command handling ────────────────────────────────────────────────────────

def _handle_command(msg: dict) -> dict | None:
    """Apply one client command. Returns a direct reply, if the command has one."""
    cmd = msg.get("cmd", "")
    if cmd == "start":
        ctrl.start()
    elif cmd == "pause":
        ctrl.pause()
    elif cmd == "toggle":
        ctrl.toggle()
    elif cmd == "reset":
        ctrl.reset()
    elif cmd == "set_speed":
        ctrl.set_animation_speed(clamp_param("animation_speed", msg.get("value", 1.0)))
    elif cmd == "set_height":
        ctrl.set_start_height(clamp_param("start_height", msg.get("value", ctrl.start_height)))
    elif cmd == "set_object":
        p = ctrl.params
        ctrl.set_object_parameters(
            clamp_param("mass", msg.get("mass", p.mass)),
            clamp_param("diameter", msg.get("diameter", p.diameter)),
            clamp_param("drag_coefficient", msg.get("drag_coefficient", p.drag_coefficient)),
        )
    elif cmd == "select_preset":
        ctrl.select_preset(str(msg.get("name", "")))
    elif cmd == "execute":
        ctrl.execute_command(msg.get("text", ""))
        _mark_dirty(ctrl)
    elif cmd == "get_presets":
        return {"type": "presets", "data": ctrl.describe()["presets"]}
    elif cmd == "get_state":
        return {"type": "state", "data": ctrl.to_frame()}
    else:
        return {"type": "error", "message": f"unknown cmd '{cmd}'"}
    return None


# ── WebSocket endpoint ──────────────────────────────────────────────────────

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()

    # Send init message with presets / slider ranges / constants
    init_msg = ctrl.describe()
    init_msg["type"] = "init"
    init_msg["target_fps"] = TARGET_FPS
    init_msg["frame"] = ctrl.to_frame()
    await ws.send_text(json.dumps(init_msg))
    clients.append(ws)
    print(f"[WS] client connected ({len(clients)} total)")

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                continue
            if not isinstance(msg, dict):
                continue

            try:
                reply = _handle_command(msg)
            except (TypeError, ValueError) as exc:
                print(f"[WS] bad command {msg.get('cmd')!r}: {exc}")
                reply = {"type": "error", "message": str(exc)}
            if reply is not None:
                await ws.send_text(json.dumps(reply))
    except WebSocketDisconnect:
        pass
    finally:
        if ws in clients:
            clients.remove(ws)
        print(f"[WS] client disconnected ({len(clients)} left)")


# ── Static files + root route ───────────────────────────────────────────────

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")


@app.get("/")
async def root():
    return FileResponse(STATIC_DIR / "index.html")


# ── Run with uvicorn ────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=False)
