"""
4x4 homogeneous transforms for moving probe poses between coordinate spaces.

Matrices are stored row-major in a (4, 4) numpy array and act on column
vectors, so a point p maps to ``M @ [x, y, z, 1]`` and the translation lives
in the last column. Every operation returns a new Matrix4.
"""
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from geometry_primitives import DEFAULT_TOLERANCE, Vector3


class Matrix4:
    """Immutable 4x4 affine/projective transform."""

    __slots__ = ("_m",)

    def __init__(self, elements: Optional[np.ndarray] = None):
        if elements is None:
            m = np.eye(4, dtype=np.float64)
        else:
            m = np.array(elements, dtype=np.float64).reshape(4, 4)
        m.setflags(write=False)
        self._m = m

    @property
    def elements(self) -> np.ndarray:
        """Read-only (4, 4) view of the matrix entries."""
        return self._m

    def __getitem__(self, index):
        return self._m[index]

    def __repr__(self) -> str:
        return f"Matrix4({self._m.tolist()!r})"

    # ─── Factories ───────────────────────────────────────────────────────────

    @classmethod
    def identity(cls) -> "Matrix4":
        return cls()

    @classmethod
    def from_array(cls, values: Sequence[float]) -> "Matrix4":
        """Build from 16 row-major values or a nested 4x4 sequence."""
        arr = np.asarray(values, dtype=np.float64)
        if arr.size != 16:
            raise ValueError(f"Matrix4 needs 16 values, got {arr.size}")
        return cls(arr)

    @classmethod
    def make_translation(cls, x: float, y: float, z: float) -> "Matrix4":
        m = np.eye(4)
        m[:3, 3] = (x, y, z)
        return cls(m)

    @classmethod
    def make_rotation_x(cls, theta: float) -> "Matrix4":
        c, s = math.cos(theta), math.sin(theta)
        return cls([
            [1.0, 0.0, 0.0, 0.0],
            [0.0, c, -s, 0.0],
            [0.0, s, c, 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ])

    @classmethod
    def make_rotation_y(cls, theta: float) -> "Matrix4":
        c, s = math.cos(theta), math.sin(theta)
        return cls([
            [c, 0.0, s, 0.0],
            [0.0, 1.0, 0.0, 0.0],
            [-s, 0.0, c, 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ])

    @classmethod
    def make_rotation_z(cls, theta: float) -> "Matrix4":
        c, s = math.cos(theta), math.sin(theta)
        return cls([
            [c, -s, 0.0, 0.0],
            [s, c, 0.0, 0.0],
            [0.0, 0.0, 1.0, 0.0],
            [0.0, 0.0, 0.0, 1.0],
        ])

    @classmethod
    def make_scale(cls, x: float, y: float, z: float) -> "Matrix4":
        return cls(np.diag([x, y, z, 1.0]))

    @classmethod
    def make_look_at(cls, eye: Vector3, target: Vector3, up: Vector3) -> "Matrix4":
        """View matrix for a camera at *eye* looking towards *target*.

        The camera looks down its local -Z axis.
        """
        z = eye.subtract(target).normalize()
        x = up.cross(z).normalize()
        y = z.cross(x).normalize()
        return cls([
            [x.x, x.y, x.z, -x.dot(eye)],
            [y.x, y.y, y.z, -y.dot(eye)],
            [z.x, z.y, z.z, -z.dot(eye)],
            [0.0, 0.0, 0.0, 1.0],
        ])

    @classmethod
    def make_perspective(
        cls, fov: float, aspect: float, near: float, far: float,
    ) -> "Matrix4":
        """OpenGL-style projection; *fov* is the vertical field of view in radians."""
        f = 1.0 / math.tan(fov / 2.0)
        nf = 1.0 / (near - far)
        return cls([
            [f / aspect, 0.0, 0.0, 0.0],
            [0.0, f, 0.0, 0.0],
            [0.0, 0.0, (far + near) * nf, 2.0 * far * near * nf],
            [0.0, 0.0, -1.0, 0.0],
        ])

    # ─── Algebra ─────────────────────────────────────────────────────────────

    def multiply(self, other: "Matrix4") -> "Matrix4":
        """Standard product ``self @ other`` (other is applied first)."""
        return Matrix4(self._m @ other.elements)

    def transpose(self) -> "Matrix4":
        return Matrix4(self._m.T)

    def determinant(self) -> float:
        det, _ = _cofactor_expansion(self._m)
        return det

    def invert(self, tolerance: float = DEFAULT_TOLERANCE) -> Optional["Matrix4"]:
        """Inverse via the adjugate, or None when the matrix is singular.

        Singularity is judged relative to the matrix scale: |det| is compared
        with the product of the row norms (its Hadamard bound), so a uniform
        scale such as ``make_scale(1e-4, 1e-4, 1e-4)`` still inverts.
        """
        det, adjugate = _cofactor_expansion(self._m)
        bound = float(np.prod(np.linalg.norm(self._m, axis=1)))
        if bound == 0.0 or abs(det) < tolerance * bound:
            return None
        return Matrix4(adjugate / det)

    def transform_vector(self, v: Vector3) -> Vector3:
        """Apply to *v* as a homogeneous point (w=1).

        The perspective divide happens only when the resulting w is neither
        1 nor 0.
        """
        x, y, z, w = self._m @ np.array([v.x, v.y, v.z, 1.0])
        if w != 1.0 and w != 0.0:
            return Vector3(float(x / w), float(y / w), float(z / w))
        return Vector3(float(x), float(y), float(z))

    def transform_direction(self, v: Vector3) -> Vector3:
        """Apply the linear part only (w=0); translation is ignored."""
        x, y, z = self._m[:3, :3] @ np.array([v.x, v.y, v.z])
        return Vector3(float(x), float(y), float(z))

    def clone(self) -> "Matrix4":
        return Matrix4(self._m.copy())

    def equals(self, other: "Matrix4", tolerance: float = DEFAULT_TOLERANCE) -> bool:
        return bool(np.all(np.abs(self._m - other.elements) <= tolerance))

    def to_array(self) -> np.ndarray:
        """Writable copy of the 16 entries, row-major."""
        return self._m.reshape(16).copy()


def probe_pose_to_world(
    matrix: Matrix4,
    position: Vector3,
    direction: Vector3,
) -> Tuple[Vector3, Vector3]:
    """Map a probe pose from probe-local space into mesh/world space.

    The position is transformed as a point, the direction as a vector and
    re-normalized (a zero direction stays zero).
    """
    return (
        matrix.transform_vector(position),
        matrix.transform_direction(direction).normalize(),
    )


# ─── Internal helpers ────────────────────────────────────────────────────────

def _cofactor_expansion(m: np.ndarray) -> Tuple[float, np.ndarray]:
    """Determinant and adjugate of a 4x4 matrix from its 2x2 minors."""
    a = m
    s0 = a[0, 0] * a[1, 1] - a[1, 0] * a[0, 1]
    s1 = a[0, 0] * a[1, 2] - a[1, 0] * a[0, 2]
    s2 = a[0, 0] * a[1, 3] - a[1, 0] * a[0, 3]
    s3 = a[0, 1] * a[1, 2] - a[1, 1] * a[0, 2]
    s4 = a[0, 1] * a[1, 3] - a[1, 1] * a[0, 3]
    s5 = a[0, 2] * a[1, 3] - a[1, 2] * a[0, 3]

    c5 = a[2, 2] * a[3, 3] - a[3, 2] * a[2, 3]
    c4 = a[2, 1] * a[3, 3] - a[3, 1] * a[2, 3]
    c3 = a[2, 1] * a[3, 2] - a[3, 1] * a[2, 2]
    c2 = a[2, 0] * a[3, 3] - a[3, 0] * a[2, 3]
    c1 = a[2, 0] * a[3, 2] - a[3, 0] * a[2, 2]
    c0 = a[2, 0] * a[3, 1] - a[3, 0] * a[2, 1]

    det = s0 * c5 - s1 * c4 + s2 * c3 + s3 * c2 - s4 * c1 + s5 * c0

    adj = np.empty((4, 4), dtype=np.float64)
    adj[0, 0] = a[1, 1] * c5 - a[1, 2] * c4 + a[1, 3] * c3
    adj[0, 1] = -a[0, 1] * c5 + a[0, 2] * c4 - a[0, 3] * c3
    adj[0, 2] = a[3, 1] * s5 - a[3, 2] * s4 + a[3, 3] * s3
    adj[0, 3] = -a[2, 1] * s5 + a[2, 2] * s4 - a[2, 3] * s3

    adj[1, 0] = -a[1, 0] * c5 + a[1, 2] * c2 - a[1, 3] * c1
    adj[1, 1] = a[0, 0] * c5 - a[0, 2] * c2 + a[0, 3] * c1
    adj[1, 2] = -a[3, 0] * s5 + a[3, 2] * s2 - a[3, 3] * s1
    adj[1, 3] = a[2, 0] * s5 - a[2, 2] * s2 + a[2, 3] * s1

    adj[2, 0] = a[1, 0] * c4 - a[1, 1] * c2 + a[1, 3] * c0
    adj[2, 1] = -a[0, 0] * c4 + a[0, 1] * c2 - a[0, 3] * c0
    adj[2, 2] = a[3, 0] * s4 - a[3, 1] * s2 + a[3, 3] * s0
    adj[2, 3] = -a[2, 0] * s4 + a[2, 1] * s2 - a[2, 3] * s0

    adj[3, 0] = -a[1, 0] * c3 + a[1, 1] * c1 - a[1, 2] * c0
    adj[3, 1] = a[0, 0] * c3 - a[0, 1] * c1 + a[0, 2] * c0
    adj[3, 2] = -a[3, 0] * s3 + a[3, 1] * s1 - a[3, 2] * s0
    adj[3, 3] = a[2, 0] * s3 - a[2, 1] * s1 + a[2, 2] * s0

    return float(det), adj
