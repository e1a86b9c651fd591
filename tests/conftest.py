"""Shared fixtures: a hand-driven physics engine and a tray built on it."""

from __future__ import annotations

import random
from dataclasses import dataclass, field, replace

import pytest

from dicetray.config import TrayConfig
from dicetray.engine import DiceBag
from dicetray.physics import Kinematics
from dicetray.types import DiceType

REST = Kinematics()
MOVING = Kinematics(velocity=(1.0, 0.0, 0.0), angular_velocity=(1.0, 1.0, 1.0))


@dataclass
class FakeBody:
    die_type: DiceType
    tens: bool
    face: int
    kinematics: Kinematics
    asleep: bool = False


@dataclass
class FakePhysics:
    """Physics whose dice only stop when a test tells them to.

    Faces are handed out from ``faces`` in spawn order (1 once it runs
    dry), and dice keep moving until settle() is called.
    """

    faces: list[int] = field(default_factory=list)
    bodies: dict[int, FakeBody] = field(default_factory=dict)
    removed: list[int] = field(default_factory=list)
    damped: dict[int, float] = field(default_factory=dict)
    steps: int = 0
    next_handle: int = 0

    def spawn(self, die_type: DiceType, kinematics: Kinematics | None, *, tens: bool = False) -> int:
        handle = self.next_handle
        self.next_handle += 1
        face = self.faces.pop(0) if self.faces else 1
        self.bodies[handle] = FakeBody(die_type, tens, face, kinematics or MOVING)
        return handle

    def remove(self, handle: int) -> None:
        self.removed.append(handle)
        del self.bodies[handle]

    def step(self, dt: float) -> None:
        self.steps += 1

    def is_settled(self, handle: int) -> bool:
        return self.bodies[handle].asleep

    def face_value(self, handle: int) -> int | None:
        return self.bodies[handle].face

    def kinematics(self, handle: int) -> Kinematics:
        body = self.bodies[handle]
        motion = REST if body.asleep else MOVING
        return replace(body.kinematics, velocity=motion.velocity, angular_velocity=motion.angular_velocity)

    def damp(self, handle: int, factor: float) -> None:
        self.damped[handle] = factor

    def sleep(self, handle: int) -> None:
        self.bodies[handle].asleep = True

    # Test controls.

    def settle(self, handle: int, face: int | None = None) -> None:
        if face is not None:
            self.bodies[handle].face = face
        self.bodies[handle].asleep = True

    def settle_all(self) -> None:
        for handle in self.bodies:
            self.settle(handle)

    def knock(self, handle: int, face: int) -> None:
        """Wake a resting die; it will land on ``face`` next time."""
        self.bodies[handle].asleep = False
        self.bodies[handle].face = face


@pytest.fixture
def physics() -> FakePhysics:
    return FakePhysics()


@pytest.fixture
def config() -> TrayConfig:
    """Fixed 10ms throw gaps, so every die of a small roll is thrown
    within the first tenth of a second."""
    return TrayConfig(spawn_delay_var=0.0)


@pytest.fixture
def bag(physics: FakePhysics, config: TrayConfig) -> DiceBag:
    return DiceBag(physics, config, rng=random.Random(0))
