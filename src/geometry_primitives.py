"""
Core geometry types for probe section computation.

Provides Vector3 (immutable 3-component vector), Plane (unit normal + signed
constant, plane equation n . p + c = 0) and the line where two planes meet.
All floating-point comparisons take an explicit tolerance that defaults to
DEFAULT_TOLERANCE.
"""
import math
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

import numpy as np

DEFAULT_TOLERANCE = 1e-10


class InvalidGeometry(ValueError):
    """Raised when a geometric primitive cannot be constructed."""


@dataclass(frozen=True)
class Vector3:
    """A 3D vector or point. Every operation returns a new instance."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __iter__(self) -> Iterator[float]:
        yield self.x
        yield self.y
        yield self.z

    def length(self) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + self.z * self.z)

    def normalize(self) -> "Vector3":
        """Unit vector in the same direction; the zero vector maps to itself."""
        length = self.length()
        if length == 0:
            return Vector3(0.0, 0.0, 0.0)
        return Vector3(self.x / length, self.y / length, self.z / length)

    def dot(self, other: "Vector3") -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: "Vector3") -> "Vector3":
        return Vector3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def add(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def subtract(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def multiply_scalar(self, scalar: float) -> "Vector3":
        return Vector3(self.x * scalar, self.y * scalar, self.z * scalar)

    def equals(self, other: "Vector3", tolerance: float = DEFAULT_TOLERANCE) -> bool:
        """Component-wise comparison within *tolerance* (strict)."""
        return (
            abs(self.x - other.x) < tolerance
            and abs(self.y - other.y) < tolerance
            and abs(self.z - other.z) < tolerance
        )

    def clone(self) -> "Vector3":
        return Vector3(self.x, self.y, self.z)

    def is_finite(self) -> bool:
        """True when no component is NaN or infinite."""
        return (
            math.isfinite(self.x)
            and math.isfinite(self.y)
            and math.isfinite(self.z)
        )

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    @classmethod
    def from_array(cls, values: Sequence[float]) -> "Vector3":
        """Build from any length-3 sequence (list, tuple, numpy array)."""
        if len(values) != 3:
            raise ValueError(f"Vector3 needs 3 components, got {len(values)}")
        return cls(float(values[0]), float(values[1]), float(values[2]))

    @classmethod
    def zero(cls) -> "Vector3":
        return cls(0.0, 0.0, 0.0)

    @classmethod
    def unit_x(cls) -> "Vector3":
        return cls(1.0, 0.0, 0.0)

    @classmethod
    def unit_y(cls) -> "Vector3":
        return cls(0.0, 1.0, 0.0)

    @classmethod
    def unit_z(cls) -> "Vector3":
        return cls(0.0, 0.0, 1.0)


@dataclass(frozen=True)
class PlaneLine:
    """Infinite line where two planes meet."""
    point: Vector3
    direction: Vector3  # unit length


class Plane:
    """A plane stored as a unit normal and a signed constant.

    The plane equation is ``normal . p + constant = 0``, so ``-constant`` is
    the signed distance of the plane from the origin along ``normal``.
    """

    __slots__ = ("_normal", "_constant")

    def __init__(self, normal: Vector3, constant: float = 0.0):
        self._normal = normal.normalize()
        # a normal whose length overflows also normalizes to zero
        if self._normal.length() == 0:
            raise InvalidGeometry(f"Plane normal cannot be normalized: {normal!r}")
        self._constant = float(constant)

    @property
    def normal(self) -> Vector3:
        return self._normal

    @property
    def constant(self) -> float:
        return self._constant

    def __repr__(self) -> str:
        return f"Plane(normal={self._normal!r}, constant={self._constant!r})"

    # ─── Construction ────────────────────────────────────────────────────────

    @classmethod
    def from_point_and_normal(cls, point: Vector3, normal: Vector3) -> "Plane":
        """Plane through *point* perpendicular to *normal*."""
        unit = normal.normalize()
        return cls(unit, -unit.dot(point))

    @classmethod
    def from_points(cls, p1: Vector3, p2: Vector3, p3: Vector3) -> "Plane":
        """Plane through three points, oriented by the right-hand rule.

        Collinear points give a zero normal and raise InvalidGeometry.
        """
        normal = p2.subtract(p1).cross(p3.subtract(p1)).normalize()
        return cls.from_point_and_normal(p1, normal)

    # ─── Queries ─────────────────────────────────────────────────────────────

    def distance_to_point(self, point: Vector3) -> float:
        """Signed distance; positive on the side the normal points to."""
        return self._normal.dot(point) + self._constant

    def project_point(self, point: Vector3) -> Vector3:
        return point.subtract(self._normal.multiply_scalar(self.distance_to_point(point)))

    def contains_point(self, point: Vector3, tolerance: float = DEFAULT_TOLERANCE) -> bool:
        return abs(self.distance_to_point(point)) < tolerance

    def any_point(self) -> Vector3:
        """Some point on the plane, taken on the first usable coordinate axis."""
        n = self._normal
        if abs(n.x) > DEFAULT_TOLERANCE:
            return Vector3(-self._constant / n.x, 0.0, 0.0)
        if abs(n.y) > DEFAULT_TOLERANCE:
            return Vector3(0.0, -self._constant / n.y, 0.0)
        return Vector3(0.0, 0.0, -self._constant / n.z)

    def intersect_plane(self, other: "Plane") -> Optional[PlaneLine]:
        """Line shared by this plane and *other*.

        Returns None when the normals are parallel (parallel or coincident
        planes) or when the linear system is singular.
        """
        direction = self._normal.cross(other.normal)
        if direction.length() < DEFAULT_TOLERANCE:
            return None

        # Third equation: auxiliary plane through the origin whose normal is
        # the line direction, so the solved point is the one nearest the origin.
        aux = direction.normalize()
        a = [
            [self._normal.x, self._normal.y, self._normal.z],
            [other.normal.x, other.normal.y, other.normal.z],
            [aux.x, aux.y, aux.z],
        ]
        b = [-self._constant, -other.constant, 0.0]

        det_a = _determinant_3x3(a)
        if abs(det_a) < DEFAULT_TOLERANCE:
            return None

        coords = []
        for col in range(3):
            m = [row[:] for row in a]
            for row in range(3):
                m[row][col] = b[row]
            coords.append(_determinant_3x3(m) / det_a)

        return PlaneLine(point=Vector3(*coords), direction=direction.normalize())

    def clone(self) -> "Plane":
        return Plane(self._normal, self._constant)

    def equals(self, other: "Plane", tolerance: float = DEFAULT_TOLERANCE) -> bool:
        return (
            self._normal.equals(other.normal, tolerance)
            and abs(self._constant - other.constant) < tolerance
        )


# ─── Internal helpers ────────────────────────────────────────────────────────

def _determinant_3x3(m) -> float:
    return (
        m[0][0] * (m[1][1] * m[2][2] - m[1][2] * m[2][1])
        - m[0][1] * (m[1][0] * m[2][2] - m[1][2] * m[2][0])
        + m[0][2] * (m[1][0] * m[2][1] - m[1][1] * m[2][0])
    )
