"""Transfer-function pipeline - advances the locomotive by one time step.

Each stage is a pure ``(state) -> state`` function.  The pipeline composes
them in a fixed order, so a run with fixed constants and a fixed number of
ticks always ends in the same state.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import partial

from locomotive_simulator.config import PhysicsConfig
from locomotive_simulator.models import LocomotiveState

__all__ = [
    "TransferFunction",
    "TransferPipeline",
    "acceleration",
    "fire_chamber",
    "fireman",
    "initial_state",
    "movement",
]

TransferFunction = Callable[[LocomotiveState], LocomotiveState]


def initial_state(physics: PhysicsConfig) -> LocomotiveState:
    """State at simulated time zero: standing still with a full tender."""
    return LocomotiveState(
        fuel_mass_in_tender=physics.initial_fuel_mass_in_tender,
        locomotive_own_mass=physics.locomotive_own_mass,
    )


# ----------------------------------------------------------------------
# Stages
# ----------------------------------------------------------------------


def fireman(state: LocomotiveState, physics: PhysicsConfig) -> LocomotiveState:
    """Shovel one fuel quantum from the tender into the fire chamber.

    Does nothing once the tender is negative or the fire chamber is over
    its maximum load.
    """
    if state.fuel_mass_in_tender < 0.0 or state.fuel_mass_in_fire_chamber > physics.max_fuel_mass_in_fire_chamber:
        return state
    return state.evolve(
        fuel_mass_in_tender=state.fuel_mass_in_tender - physics.fuel_add_amt,
        fuel_mass_in_fire_chamber=state.fuel_mass_in_fire_chamber + physics.fuel_add_amt,
    )


def fire_chamber(state: LocomotiveState, physics: PhysicsConfig) -> LocomotiveState:
    """Ignite fuel, derive boiler pressure, then burn fuel off.

    Pressure is taken from the burning mass before this tick's burn-off.
    """
    burning = state.fuel_mass_burning
    if burning < state.fuel_mass_in_fire_chamber:
        burning = min(state.fuel_mass_in_fire_chamber, physics.fuel_add_amt + burning)

    pressure = physics.pressure_multiplier * burning
    return state.evolve(
        pressure=pressure,
        fuel_mass_burning=max(0.0, burning - physics.fuel_burn_amt),
        fuel_mass_in_fire_chamber=max(0.0, state.fuel_mass_in_fire_chamber - physics.fuel_burn_amt),
    )


def acceleration(state: LocomotiveState, physics: PhysicsConfig) -> float:
    """Engine force minus losses, over the total moving mass."""
    a = (physics.x1 * state.pressure - physics.x2 * state.speed) / state.total_mass
    # a standing locomotive does not creep forward on small forces
    if state.speed == 0.0 and abs(a) < physics.x3:
        return 0.0
    return a


def movement(state: LocomotiveState, physics: PhysicsConfig, dt: float) -> LocomotiveState:
    """Explicit Euler step for speed, distance and simulated time."""
    a = acceleration(state, physics)
    return state.evolve(
        speed=state.speed + dt * a,
        distance=state.distance + dt * state.speed,
        time=state.time + dt,
    )


# ----------------------------------------------------------------------
# Pipeline
# ----------------------------------------------------------------------


class TransferPipeline:
    """Runs the fireman, fire chamber and movement stages in that order.

    Parameters:
        physics: Coefficients shared by all stages.
        dt: Step size in seconds.
    """

    def __init__(self, physics: PhysicsConfig, dt: float) -> None:
        self.physics = physics
        self.dt = dt
        self.stages: list[tuple[str, TransferFunction]] = [
            ("Fireman", partial(fireman, physics=physics)),
            ("Fire Chamber", partial(fire_chamber, physics=physics)),
            ("Movement", partial(movement, physics=physics, dt=dt)),
        ]

    def advance(self, state: LocomotiveState) -> LocomotiveState:
        """Return the state one step after *state*."""
        for _name, stage in self.stages:
            state = stage(state)
        return state

    def run(self, state: LocomotiveState, iterations: int) -> LocomotiveState:
        """Advance *iterations* times without any side effects."""
        for _ in range(iterations):
            state = self.advance(state)
        return state

    def initial_state(self) -> LocomotiveState:
        return initial_state(self.physics)
