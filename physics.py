"""
Falling-Object Physics Engine
Explicit Euler integration of gravity + quadratic air drag
"""

import math
import numpy as np
from dataclasses import dataclass

# ──────────────────────────────────────────────
# Constants (SI units)
# ──────────────────────────────────────────────
GRAVITY: float = 9.8  # m/s^2
AIR_DENSITY: float = 1.225  # kg/m^3  (sea level, 15 °C)


@dataclass
class PhysicalState:
    """Falling object state. Velocity is positive downward."""
    time: float = 0.0
    height: float = 0.0
    velocity: float = 0.0
    acceleration: float = 0.0
    force_of_gravity: float = 0.0
    drag_force: float = 0.0

    @classmethod
    def at_rest(cls, height: float) -> "PhysicalState":
        return cls(time=0.0, height=float(height))

    def copy(self) -> "PhysicalState":
        return PhysicalState(self.time, self.height, self.velocity,
                             self.acceleration, self.force_of_gravity,
                             self.drag_force)

    def to_dict(self) -> dict:
        return {
            "time":             round(self.time, 5),
            "height":           round(self.height, 5),
            "velocity":         round(self.velocity, 5),
            "acceleration":     round(self.acceleration, 5),
            "force_of_gravity": round(self.force_of_gravity, 5),
            "drag_force":       round(self.drag_force, 5),
        }


@dataclass(frozen=True)
class ObjectParameters:
    """Mass (kg), diameter (m) and dimensionless drag coefficient."""
    mass: float
    diameter: float
    drag_coefficient: float

    @property
    def area(self) -> float:
        """Cross-sectional area A = π (d/2)²."""
        return cross_section_area(self.diameter)


def cross_section_area(diameter: float) -> float:
    return float(np.pi * (diameter / 2.0) ** 2)


# ──────────────────────────────────────────────
# Integrator
# ──────────────────────────────────────────────
def step(state: PhysicalState, params: ObjectParameters, dt: float) -> PhysicalState:
    """
    Advance the falling object by dt seconds (explicit Euler).

    Drag is evaluated with the velocity at the *start* of the step:
        Fg = m g
        Fd = ½ ρ v² Cd A
        a  = (Fg - Fd) / m
        v' = v + a dt
        h' = h - v' dt        (clamped to the ground)

    Args:
        state:  Current state. Caller must ensure state.height > 0.
        params: Object parameters (validated upstream).
        dt:     Simulated time delta in seconds, >= 0.

    Returns:
        A new PhysicalState; ``state`` is not modified.
    """
    area = cross_section_area(params.diameter)
    fg = params.mass * GRAVITY
    fd = 0.5 * AIR_DENSITY * state.velocity ** 2 * params.drag_coefficient * area
    acc = (fg - fd) / params.mass

    new_velocity = state.velocity + acc * dt
    new_height = state.height - new_velocity * dt

    return PhysicalState(
        time=state.time + dt,
        height=new_height if new_height > 0.0 else 0.0,
        velocity=new_velocity,
        acceleration=acc,
        force_of_gravity=fg,
        drag_force=fd,
    )


def terminal_velocity(params: ObjectParameters) -> float:
    """Speed at which drag balances gravity: sqrt(2 m g / (ρ Cd A))."""
    denom = AIR_DENSITY * params.drag_coefficient * params.area
    if denom <= 0.0:
        return math.inf
    return math.sqrt(2.0 * params.mass * GRAVITY / denom)


def free_fall_time(start_height: float) -> float:
    """Landing time without drag: sqrt(2 h / g)."""
    return math.sqrt(2.0 * start_height / GRAVITY)
