"""
Object Preset System
Named parameter bundles offered by the object picker, plus headless
drop scenarios that set up (and optionally run) a fall for each preset.
"""

from dataclasses import dataclass

from history import HistoryBuffer
from physics import ObjectParameters, PhysicalState, step

# Scenario timestep (fixed, smaller than a display frame for accuracy)
_DT = 0.005

INITIAL_HEIGHT: float = 169.0  # m


@dataclass(frozen=True)
class ObjectPreset:
    name: str
    mass: float              # kg
    diameter: float          # m
    drag_coefficient: float  # Cd

    @property
    def params(self) -> ObjectParameters:
        return ObjectParameters(self.mass, self.diameter, self.drag_coefficient)

    def to_dict(self) -> dict:
        return {"name": self.name, "mass": self.mass,
                "diameter": self.diameter, "drag_coefficient": self.drag_coefficient}


OBJECT_PRESETS = [
    ObjectPreset("Basketball",   mass=0.62,  diameter=0.24,  drag_coefficient=0.47),
    ObjectPreset("Tennis ball",  mass=0.057, diameter=0.067, drag_coefficient=0.55),
    ObjectPreset("Bowling ball", mass=7.2,   diameter=0.21,  drag_coefficient=0.4),
]

INITIAL_OBJECT = OBJECT_PRESETS[0]


def simulate_fall(params: ObjectParameters, start_height: float,
                  dt: float = 0.01, max_time: float = 600.0) -> dict:
    """
    Run a fixed-timestep drop until the object lands or max_time is reached.

    Returns:
        dict with ``elapsed``, ``state`` (final PhysicalState), ``landed``
        and ``history`` (HistoryBuffer of (time, velocity) samples).
    """
    state = PhysicalState.at_rest(start_height)
    history = HistoryBuffer()
    while state.height > 0.0 and state.time < max_time:
        state = step(state, params, dt)
        history.append(state.time, state.velocity)
    return {
        "elapsed": state.time,
        "state":   state,
        "landed":  state.height == 0.0,
        "history": history,
    }


def find_preset(name: str) -> ObjectPreset:
    """Look up a preset by name; unknown names fall back to INITIAL_OBJECT."""
    for p in OBJECT_PRESETS:
        if p.name == name:
            return p
    return INITIAL_OBJECT


def preset_names() -> list:
    return [p.name for p in OBJECT_PRESETS]


class DropPreset:
    """Each scenario: pick preset → place at start height → (run) → result dict."""

    @staticmethod
    def _drop(preset: ObjectPreset, start_height: float, run: bool) -> dict:
        if not run:
            return {"preset": preset, "params": preset.params,
                    "state": PhysicalState.at_rest(start_height),
                    "elapsed": 0.0, "landed": False, "history": None}
        result = simulate_fall(preset.params, start_height, dt=_DT)
        result["preset"] = preset
        result["params"] = preset.params
        return result

    @staticmethod
    def basketball(start_height: float = INITIAL_HEIGHT, run=True) -> dict:
        """Basketball: light for its size, noticeably slowed by drag."""
        return DropPreset._drop(find_preset("Basketball"), start_height, run)

    @staticmethod
    def tennis_ball(start_height: float = INITIAL_HEIGHT, run=True) -> dict:
        """Tennis ball: lowest terminal velocity of the three."""
        return DropPreset._drop(find_preset("Tennis ball"), start_height, run)

    @staticmethod
    def bowling_ball(start_height: float = INITIAL_HEIGHT, run=True) -> dict:
        """Bowling ball: dense enough to stay close to free fall."""
        return DropPreset._drop(find_preset("Bowling ball"), start_height, run)
