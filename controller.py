"""
SimulationController — Layer 2 (Simulation Logic)

Owns the physical state, the run-state machine and the chart history.
Communicates with Layer 3 (server.py / browser page) via:
  - subscribe(callback)  : called with the controller after every change
  - pending_events       : render commands (reset, landed, params_changed)

Layer 3 calls:
  ctrl.start() / pause() / toggle() / reset()
  ctrl.set_animation_speed(x)                 : allowed any time
  ctrl.set_object_parameters(m, d, cd)        : ignored while running
  ctrl.set_start_height(h) / select_preset()  : ignored while running
  ctrl.to_frame()                             : JSON-ready snapshot

Ticks are driven by an injected scheduler (see scheduler.py); every
scheduled callback carries the epoch it was issued in and commits
nothing once pause/reset/parameter changes have moved the epoch on.
"""

import enum
import json
import math
from typing import Callable, List, Optional

from physics import (
    PhysicalState, ObjectParameters, step, terminal_velocity,
    GRAVITY, AIR_DENSITY,
)
from history import HistoryBuffer, HISTORY_THRESHOLD, HISTORY_FACTOR
from object_presets import INITIAL_OBJECT, INITIAL_HEIGHT, OBJECT_PRESETS, find_preset
from scheduler import ManualScheduler


class RunState(enum.Enum):
    IDLE = 0
    RUNNING = 1
    LANDED = 2


# ── Parameter ranges (mirrors the page's sliders) ────────────────────────────
#   (attr, label, min, max, step, unit)
PARAM_RANGES = [
    ("start_height",     "Height",           10.0,  1000.0, 1.0,  "m"),
    ("drag_coefficient", "Drag Coefficient",  0.0,     2.0, 0.01, ""),
    ("mass",             "Mass",              0.01,   10.0, 0.01, "kg"),
    ("diameter",         "Diameter",          0.01,    1.0, 0.01, "m"),
    ("animation_speed",  "Animation Speed",   0.1,     5.0, 0.1,  "x"),
]
_RANGE = {attr: (mn, mx) for attr, _label, mn, mx, _step, _unit in PARAM_RANGES}


def clamp_param(attr: str, value: float) -> float:
    """Clamp a slider value into its range (unknown attr → KeyError, NaN/inf → ValueError)."""
    mn, mx = _RANGE[attr]
    v = float(value)
    if not math.isfinite(v):
        raise ValueError(f"{attr}: value must be finite, got {v}")
    return max(mn, min(mx, v))


def _check(attr: str, value) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{attr}: expected a number, got {value!r}")
    if not math.isfinite(v):
        raise ValueError(f"{attr}: value must be finite, got {v}")
    mn, mx = _RANGE[attr]
    if not mn <= v <= mx:
        raise ValueError(f"{attr}={v} outside [{mn}, {mx}]")
    return v


# Shown as the object name once slider values replace a preset's
CUSTOM_OBJECT_NAME = "Custom"

# ── Default info-bar message ───────────────────────────────────────────────────
DEFAULT_INFO_MSG = "[Space] Start/Pause  [R] Reset  Pick an object, then drop it."

DETAILS_TEXT = (
    "Fg = m·g (g = 9.8 m/s²).  "
    "Fd = ½·ρ·v²·Cd·A with ρ = 1.225 kg/m³ and A = π·(d/2)².  "
    "a = (Fg − Fd)/m; when Fd reaches Fg the object falls at terminal velocity."
)


class SimulationController:
    """Layer 2: run-state machine + integration loop."""

    # ── Class-level constants ─────────────────────────────────────────────────
    HISTORY_THRESHOLD = HISTORY_THRESHOLD
    HISTORY_FACTOR    = HISTORY_FACTOR
    DEFAULT_SPEED     = 1.0

    # ── Constructor ───────────────────────────────────────────────────────────

    def __init__(self, scheduler=None, preset_name: str = INITIAL_OBJECT.name,
                 start_height: float = INITIAL_HEIGHT):
        self.scheduler = scheduler if scheduler is not None else ManualScheduler()

        # Configuration
        preset = find_preset(preset_name)
        self.selected_preset = preset.name
        self.params: ObjectParameters = preset.params
        self.start_height = _check("start_height", start_height)
        self.animation_speed = self.DEFAULT_SPEED

        # Simulation state
        self.run_state = RunState.IDLE
        self._state = PhysicalState.at_rest(self.start_height)
        self.history = HistoryBuffer(self.HISTORY_THRESHOLD, self.HISTORY_FACTOR)

        # Tick bookkeeping
        self._pending_handle: Optional[int] = None
        self._last_timestamp: Optional[float] = None
        self._epoch = 0
        self.tick_count = 0

        # Status / info messages (L3 reads these)
        self.status_msg = "Ready."
        self.info_msg   = DEFAULT_INFO_MSG

        # Observers + render-command queue
        self._observers: List[Callable[["SimulationController"], None]] = []
        self.pending_events: list[dict] = []

    # ──────────────────────────────────────────────────────────────────────────
    # Observers
    # ──────────────────────────────────────────────────────────────────────────

    def subscribe(self, callback: Callable[["SimulationController"], None]) -> None:
        if callback not in self._observers:
            self._observers.append(callback)

    def unsubscribe(self, callback) -> None:
        if callback in self._observers:
            self._observers.remove(callback)

    def _notify(self) -> None:
        for cb in list(self._observers):
            cb(self)

    # ──────────────────────────────────────────────────────────────────────────
    # Read-only views
    # ──────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> PhysicalState:
        """Copy of the current physical state."""
        return self._state.copy()

    @property
    def is_running(self) -> bool:
        return self.run_state is RunState.RUNNING

    @property
    def fall_fraction(self) -> float:
        """0.0 at the start height, 1.0 on the ground."""
        return (self.start_height - self._state.height) / self.start_height

    # ──────────────────────────────────────────────────────────────────────────
    # Run commands
    # ──────────────────────────────────────────────────────────────────────────

    def start(self) -> None:
        if self.run_state is RunState.RUNNING:
            return
        if self.run_state is RunState.LANDED or self._state.height <= 0.0:
            self.status_msg = "Landed. Reset to drop again."
            self._notify()
            return
        self.run_state = RunState.RUNNING
        self._last_timestamp = None   # first tick only sets the clock baseline
        self._schedule_tick()
        self.status_msg = "Running..."
        print(f"[SIM] start  t={self._state.time:.3f}  h={self._state.height:.3f}")
        self._notify()

    def pause(self) -> None:
        if self.run_state is not RunState.RUNNING:
            return
        self._cancel_tick()
        self.run_state = RunState.IDLE
        self.status_msg = "Paused."
        print(f"[SIM] pause  t={self._state.time:.3f}  h={self._state.height:.3f}")
        self._notify()

    def toggle(self) -> None:
        """Start/Pause button."""
        if self.run_state is RunState.RUNNING:
            self.pause()
        else:
            self.start()

    def reset(self) -> None:
        """Cancel any pending tick, then return to the top with a fresh chart."""
        self._cancel_tick()
        self.run_state = RunState.IDLE
        self._state = PhysicalState.at_rest(self.start_height)
        self.history.reset()
        self.tick_count = 0
        self.status_msg = "Ready."
        self.pending_events.append({"type": "reset"})
        print(f"[SIM] reset  object={self.selected_preset}  h0={self.start_height:.1f}")
        self._notify()

    def close(self) -> None:
        """Unmount: drop the pending tick and all observers."""
        self._cancel_tick()
        if self.run_state is RunState.RUNNING:
            self.run_state = RunState.IDLE
        self._observers.clear()

    # ──────────────────────────────────────────────────────────────────────────
    # Parameter setters
    # ──────────────────────────────────────────────────────────────────────────

    def set_animation_speed(self, factor: float) -> None:
        self.animation_speed = _check("animation_speed", factor)
        self._notify()

    def set_object_parameters(self, mass: float, diameter: float,
                              drag_coefficient: float) -> bool:
        """Apply custom object parameters and reset. Ignored while running."""
        if self._refuse_while_running("object"):
            return False
        self._cancel_tick()
        self.params = ObjectParameters(
            mass=_check("mass", mass),
            diameter=_check("diameter", diameter),
            drag_coefficient=_check("drag_coefficient", drag_coefficient),
        )
        self.selected_preset = CUSTOM_OBJECT_NAME
        self.pending_events.append({"type": "params_changed"})
        self.reset()
        return True

    def set_start_height(self, height: float) -> bool:
        if self._refuse_while_running("height"):
            return False
        self._cancel_tick()
        self.start_height = _check("start_height", height)
        self.pending_events.append({"type": "params_changed"})
        self.reset()
        return True

    def select_preset(self, name: str) -> bool:
        """Pick a preset; also restores its mass/diameter/Cd after slider edits."""
        if self._refuse_while_running("object"):
            return False
        self._cancel_tick()
        preset = find_preset(name)
        self.selected_preset = preset.name
        self.params = preset.params
        self.pending_events.append({"type": "params_changed"})
        self.reset()
        return True

    def _refuse_while_running(self, what: str) -> bool:
        if self.run_state is RunState.RUNNING:
            self.status_msg = f"Pause the simulation to change the {what}."
            self._notify()
            return True
        return False

    # ──────────────────────────────────────────────────────────────────────────
    # Tick loop
    # ──────────────────────────────────────────────────────────────────────────

    def _schedule_tick(self) -> None:
        epoch = self._epoch
        self._pending_handle = self.scheduler.schedule(
            lambda ts: self._on_frame(ts, epoch))

    def _cancel_tick(self) -> None:
        """Idempotent; also invalidates callbacks the host already queued."""
        self._epoch += 1
        if self._pending_handle is not None:
            self.scheduler.cancel(self._pending_handle)
            self._pending_handle = None
        self._last_timestamp = None

    def _on_frame(self, timestamp: float, epoch: int) -> None:
        if epoch != self._epoch or self.run_state is not RunState.RUNNING:
            return
        self._pending_handle = None

        if self._last_timestamp is None:
            self._last_timestamp = timestamp
            self._schedule_tick()
            return

        elapsed = max(0.0, timestamp - self._last_timestamp)
        self._last_timestamp = timestamp
        try:
            self.advance(elapsed * self.animation_speed)
        finally:
            # An observer may already have restarted (new epoch, new tick) or raised.
            if (epoch == self._epoch and self.run_state is RunState.RUNNING
                    and self._pending_handle is None):
                self._schedule_tick()

    def advance(self, dt: float) -> PhysicalState:
        """Integrate one step of simulated dt and commit it (tick body)."""
        if self._state.height <= 0.0:
            self._land()
            return self.state

        self._state = step(self._state, self.params, dt)
        self.history.append(self._state.time, self._state.velocity)
        self.tick_count += 1

        if self._state.height == 0.0:
            self._land()
        else:
            self._notify()
        return self.state

    def _land(self) -> None:
        self._cancel_tick()
        self._state.height = 0.0
        self.run_state = RunState.LANDED
        self.status_msg = (f"Landed after {self._state.time:.2f} s "
                           f"at {self._state.velocity:.2f} m/s.")
        self.pending_events.append({
            "type": "landed",
            "time": round(self._state.time, 4),
            "velocity": round(self._state.velocity, 4),
        })
        print(f"[SIM] landed  t={self._state.time:.3f}  v={self._state.velocity:.3f}")
        self._notify()

    # ──────────────────────────────────────────────────────────────────────────
    # Snapshots + command panel
    # ──────────────────────────────────────────────────────────────────────────

    def to_frame(self, include_history: bool = True) -> dict:
        frame = {
            "run_state":       self.run_state.name,
            "state":           self._state.to_dict(),
            "fall_fraction":   round(self.fall_fraction, 5),
            "object": {
                "name":             self.selected_preset,
                "mass":             self.params.mass,
                "diameter":         self.params.diameter,
                "drag_coefficient": self.params.drag_coefficient,
            },
            "start_height":    self.start_height,
            "animation_speed": self.animation_speed,
            "terminal_velocity": _finite_or_none(terminal_velocity(self.params)),
            "status": self.status_msg,
            "info":   self.info_msg,
        }
        if include_history:
            frame["history"] = self.history.to_list()
        return frame

    @staticmethod
    def describe() -> dict:
        """Static data the page needs once: presets, slider ranges, constants."""
        return {
            "presets": [p.to_dict() for p in OBJECT_PRESETS],
            "ranges": [
                {"attr": a, "label": lb, "min": mn, "max": mx, "step": st, "unit": u}
                for a, lb, mn, mx, st, u in PARAM_RANGES
            ],
            "gravity": GRAVITY,
            "air_density": AIR_DENSITY,
            "details": DETAILS_TEXT,
        }

    def get_state_json(self) -> str:
        return json.dumps(self.to_frame(include_history=False), separators=(',', ':'))

    def execute_command(self, text: str) -> None:
        """Parse a JSON command string and dispatch to handlers."""
        if not text:
            self.status_msg = "Empty command."
            return
        try:
            data = json.loads(text.replace('\r', ''))
        except json.JSONDecodeError as exc:
            print(f"[SIM] JSON parse error: {exc}")
            self.status_msg = f"JSON error: {exc}"
            return
        if not isinstance(data, dict):
            self.status_msg = "Command must be a JSON object."
            return

        cmd = str(data.get("cmd", "")).lower().strip()
        try:
            if cmd == "start":
                self.start()
            elif cmd == "pause":
                self.pause()
            elif cmd == "toggle":
                self.toggle()
            elif cmd == "reset":
                self.reset()
            elif cmd == "speed":
                self.set_animation_speed(data.get("value"))
            elif cmd == "height":
                self.set_start_height(data.get("value"))
            elif cmd == "preset":
                self.select_preset(str(data.get("name", "")))
            elif cmd == "object":
                self.set_object_parameters(
                    data.get("mass", self.params.mass),
                    data.get("diameter", self.params.diameter),
                    data.get("drag_coefficient", self.params.drag_coefficient),
                )
            else:
                self.status_msg = (f"Unknown cmd '{cmd}'. Use start/pause/toggle/"
                                   "reset/speed/height/preset/object.")
        except ValueError as exc:
            self.status_msg = f"{cmd}: {exc}"


def _finite_or_none(x: float):
    return round(x, 4) if math.isfinite(x) else None
