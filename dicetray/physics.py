"""
The physics side of the tray.

The tray never simulates rigid bodies itself. It talks to a physics engine
through the small Physics protocol below: spawn a die and get a handle back,
remove a handle, advance the world, and ask each handle whether it has come
to rest and which face is up.

SimulatedPhysics is a lightweight stand-in used by the tests, the demo tool
and the Streamlit app. Its dice fly in a straight line, lose speed every
step and fall asleep once they are slow enough; the face that ends up on
top is drawn from a seeded random generator when a die is thrown or knocked
over.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

from dicetray.types import DiceType

Vector = tuple[float, float, float]
Quaternion = tuple[float, float, float, float]

WALL_LIMIT = 10.0
"""Distance from the tray's centre to its walls."""

GRAVITY = 9.81

SPAWN_DISTANCE = WALL_LIMIT * 1.4
SPAWN_HEIGHT_BASE = 8.0
SPAWN_HEIGHT_VAR = 4.0
SPAWN_JITTER = 4.0
THROW_SPEED_BASE = 25.0
THROW_SPEED_VAR = 10.0
FLIP_BASE_ANGVEL = 10.0
FLIP_MULT_ANGVEL = 20.0


@dataclass(frozen=True)
class Kinematics:
    """Where a die is and how it is moving."""

    position: Vector = (0.0, 0.0, 0.0)
    orientation: Quaternion = (0.0, 0.0, 0.0, 1.0)
    velocity: Vector = (0.0, 0.0, 0.0)
    angular_velocity: Vector = (0.0, 0.0, 0.0)

    @property
    def speed(self) -> float:
        return math.hypot(*self.velocity)

    @property
    def spin(self) -> float:
        return math.hypot(*self.angular_velocity)

    def to_dict(self) -> dict[str, list[float]]:
        return {
            "position": list(self.position),
            "orientation": list(self.orientation),
            "velocity": list(self.velocity),
            "angular_velocity": list(self.angular_velocity),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Kinematics:
        return cls(
            position=tuple(data["position"]),
            orientation=tuple(data["orientation"]),
            velocity=tuple(data["velocity"]),
            angular_velocity=tuple(data["angular_velocity"]),
        )


class Physics(Protocol):
    """What the tray needs from a physics engine."""

    def spawn(self, die_type: DiceType, kinematics: Kinematics | None, *, tens: bool = False) -> Any:
        """Add a die to the world and return an opaque handle for it."""
        ...

    def remove(self, handle: Any) -> None:
        ...

    def step(self, dt: float) -> None:
        ...

    def is_settled(self, handle: Any) -> bool:
        """True once the engine has put the die to sleep."""
        ...

    def face_value(self, handle: Any) -> int | None:
        """The face showing on top, or None if it can't be read yet."""
        ...

    def kinematics(self, handle: Any) -> Kinematics:
        ...

    def damp(self, handle: Any, factor: float) -> None:
        """Add extra damping to a die that won't stop moving."""
        ...

    def sleep(self, handle: Any) -> None:
        """Force a die to rest where it is."""
        ...


def random_face(die_type: DiceType, rng: random.Random, *, tens: bool = False) -> int:
    """Draw a face the way the physical die would report it.

    d10 faces and the units half of a d100 run 0-9; the tens half of a d100
    shows 00-90.
    """
    if die_type == "d100":
        return rng.randrange(10) * 10 if tens else rng.randrange(10)
    if die_type == "d10":
        return rng.randrange(10)
    return rng.randint(1, int(die_type[1:]))


def random_orientation(rng: random.Random) -> Quaternion:
    axis = (rng.random(), rng.random(), rng.random())
    norm = math.hypot(*axis) or 1.0
    angle = rng.random() * math.pi * 2
    s = math.sin(angle / 2) / norm
    return (axis[0] * s, axis[1] * s, axis[2] * s, math.cos(angle / 2))


def throw_kinematics(index: int, total: int, rng: random.Random, azimuth: float = 0.0) -> Kinematics:
    """Pick a starting position and velocity for die ``index`` of ``total``.

    Dice of one throw are spread around the tray edge (wider for bigger
    throws, a full circle at 20 dice) and aimed at a random point near the
    centre, tumbling fast enough to roll over several times.
    """
    angle = azimuth
    if total > 1:
        min_spread = 0.3
        spread = min_spread + max(0.0, min(1.0, (total - 2) / 18)) * (math.pi * 2 - min_spread)
        angle += (index / (total - 1) - 0.5) * spread

    x = math.sin(angle) * SPAWN_DISTANCE + (rng.random() - 0.5) * SPAWN_JITTER
    z = math.cos(angle) * SPAWN_DISTANCE + (rng.random() - 0.5) * SPAWN_JITTER
    y = SPAWN_HEIGHT_BASE + rng.random() * SPAWN_HEIGHT_VAR

    target_range = WALL_LIMIT * (1.0 if total > 1 else 0.5)
    tx = (rng.random() - 0.5) * target_range
    tz = (rng.random() - 0.5) * target_range
    heading = math.atan2(tx - x, tz - z) + (rng.random() - 0.5) * 0.2
    speed = THROW_SPEED_BASE + rng.random() * THROW_SPEED_VAR

    def tumble() -> float:
        v = (rng.random() - 0.5) * FLIP_MULT_ANGVEL
        return v + math.copysign(FLIP_BASE_ANGVEL, v)

    return Kinematics(
        position=(x, y, z),
        orientation=random_orientation(rng),
        velocity=(math.sin(heading) * speed, 0.0, math.cos(heading) * speed),
        angular_velocity=(tumble(), tumble(), tumble()),
    )


@dataclass
class SimulatedBody:
    die_type: DiceType
    tens: bool
    state: Kinematics
    face: int
    damping: float
    asleep: bool = False


@dataclass
class SimulatedPhysics:
    """A tiny deterministic physics engine for dice.

    Bodies move in straight lines across a floor at y=0, slow down by
    ``damping`` per second, and fall asleep once both their speed and spin
    are under ``sleep_threshold``.
    """

    seed: int | None = None
    damping: float = 3.0
    sleep_threshold: float = 0.01
    bodies: dict[int, SimulatedBody] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.rng = random.Random(self.seed)
        self._next_handle = 0

    def spawn(self, die_type: DiceType, kinematics: Kinematics | None, *, tens: bool = False) -> int:
        if kinematics is None:
            kinematics = throw_kinematics(0, 1, self.rng, azimuth=self.rng.random() * math.pi * 2)
        handle = self._next_handle
        self._next_handle += 1
        self.bodies[handle] = SimulatedBody(
            die_type=die_type,
            tens=tens,
            state=kinematics,
            face=random_face(die_type, self.rng, tens=tens),
            damping=self.damping,
        )
        return handle

    def remove(self, handle: int) -> None:
        self.bodies.pop(handle, None)

    def step(self, dt: float) -> None:
        for body in self.bodies.values():
            if body.asleep:
                continue
            k = body.state
            decay = max(0.0, 1.0 - body.damping * dt)
            x, y, z = (p + v * dt for p, v in zip(k.position, k.velocity))
            vx, vy, vz = (v * decay for v in k.velocity)
            vy -= GRAVITY * dt
            if y <= 0 and vy < 0:
                y, vy = 0.0, 0.0
            x, z = max(-WALL_LIMIT, min(WALL_LIMIT, x)), max(-WALL_LIMIT, min(WALL_LIMIT, z))
            body.state = replace(
                k,
                position=(x, y, z),
                velocity=(vx, vy, vz),
                angular_velocity=tuple(w * decay for w in k.angular_velocity),
            )
            if body.state.speed < self.sleep_threshold and body.state.spin < self.sleep_threshold:
                self._rest(body)

    def is_settled(self, handle: int) -> bool:
        return self.bodies[handle].asleep

    def face_value(self, handle: int) -> int | None:
        return self.bodies[handle].face

    def kinematics(self, handle: int) -> Kinematics:
        return self.bodies[handle].state

    def damp(self, handle: int, factor: float) -> None:
        self.bodies[handle].damping = self.damping + factor

    def sleep(self, handle: int) -> None:
        self._rest(self.bodies[handle])

    def _rest(self, body: SimulatedBody) -> None:
        body.asleep = True
        body.damping = self.damping
        body.state = replace(body.state, velocity=(0.0, 0.0, 0.0), angular_velocity=(0.0, 0.0, 0.0))

    def disturb(self, handle: int, velocity: Vector, angular_velocity: Vector = (5.0, 5.0, 5.0)) -> None:
        """Knock a die over. It wakes up and will show a new face."""
        body = self.bodies[handle]
        body.asleep = False
        body.face = random_face(body.die_type, self.rng, tens=body.tens)
        body.state = replace(body.state, velocity=velocity, angular_velocity=angular_velocity)
