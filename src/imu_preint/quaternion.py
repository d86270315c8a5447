"""Hamilton quaternion used for orientation increments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence, Union

import numpy as np


@dataclass(frozen=True)
class Quaternion:
    """Quaternion q = w + xi + yj + zk (Hamilton convention).

    Products follow the Hamilton rule, so ``q1 * q2`` applies q2 in the frame
    of q1. Rotating a vector uses the rotation matrix of the quaternion, which
    is only a proper rotation for unit quaternions.

    Attributes:
        w: Scalar (real) part
        x: i component
        y: j component
        z: k component
    """

    w: float
    x: float
    y: float
    z: float

    def __post_init__(self) -> None:
        """Store components as plain floats."""
        object.__setattr__(self, "w", float(self.w))
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))
        object.__setattr__(self, "z", float(self.z))

    @classmethod
    def identity(cls) -> Quaternion:
        """Create the identity rotation."""
        return cls(1.0, 0.0, 0.0, 0.0)

    @classmethod
    def from_array(cls, q: np.ndarray | Sequence[float]) -> Quaternion:
        """Create from a (w, x, y, z) array.

        Args:
            q: Four components, scalar first

        Returns:
            Quaternion
        """
        q = np.asarray(q, dtype=np.float64).flatten()
        if q.shape != (4,):
            raise ValueError(f"Quaternion must have 4 components, got {q.shape}")
        return cls(q[0], q[1], q[2], q[3])

    @classmethod
    def from_rotation_vector(cls, theta: np.ndarray) -> Quaternion:
        """Exact exponential map from an axis-angle vector.

        Args:
            theta: Rotation vector (3,), axis * angle in radians

        Returns:
            Unit quaternion
        """
        theta = np.asarray(theta, dtype=np.float64).flatten()
        angle = np.linalg.norm(theta)
        if angle < 1e-10:
            # Small angle: sin(angle/2)/angle ≈ 1/2
            return cls(1.0, *(0.5 * theta)).normalized()

        vec = np.sin(0.5 * angle) / angle * theta
        return cls(np.cos(0.5 * angle), vec[0], vec[1], vec[2])

    @property
    def vec(self) -> np.ndarray:
        """Return the vector (imaginary) part (3,)."""
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def as_array(self) -> np.ndarray:
        """Return components as a (w, x, y, z) array."""
        return np.array([self.w, self.x, self.y, self.z], dtype=np.float64)

    def norm(self) -> float:
        """Return the Euclidean norm."""
        return float(np.sqrt(self.w**2 + self.x**2 + self.y**2 + self.z**2))

    def normalized(self) -> Quaternion:
        """Return the quaternion scaled to unit length."""
        n = self.norm()
        return Quaternion(self.w / n, self.x / n, self.y / n, self.z / n)

    def conjugate(self) -> Quaternion:
        """Return the conjugate (negated vector part)."""
        return Quaternion(self.w, -self.x, -self.y, -self.z)

    def inverse(self) -> Quaternion:
        """Return the multiplicative inverse conj(q) / ‖q‖².

        Equals the conjugate for unit quaternions.
        """
        n2 = self.w**2 + self.x**2 + self.y**2 + self.z**2
        return Quaternion(self.w / n2, -self.x / n2, -self.y / n2, -self.z / n2)

    def to_rotation_matrix(self) -> np.ndarray:
        """Convert to a 3x3 rotation matrix.

        Uses the unnormalized form, so the result is only orthonormal when
        the quaternion has unit norm.

        Returns:
            3x3 rotation matrix
        """
        w, x, y, z = self.w, self.x, self.y, self.z
        return np.array(
            [
                [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
                [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
                [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
            ],
            dtype=np.float64,
        )

    def rotate(self, v: np.ndarray) -> np.ndarray:
        """Rotate a 3-vector by this quaternion.

        Args:
            v: Vector (3,)

        Returns:
            Rotated vector (3,)
        """
        return self.to_rotation_matrix() @ np.asarray(v, dtype=np.float64).flatten()

    def __mul__(self, other: Quaternion) -> Quaternion:
        """Hamilton product self ⊗ other."""
        if not isinstance(other, Quaternion):
            return NotImplemented
        w0, x0, y0, z0 = self.w, self.x, self.y, self.z
        w1, x1, y1, z1 = other.w, other.x, other.y, other.z
        return Quaternion(
            w0 * w1 - x0 * x1 - y0 * y1 - z0 * z1,
            w0 * x1 + x0 * w1 + y0 * z1 - z0 * y1,
            w0 * y1 - x0 * z1 + y0 * w1 + z0 * x1,
            w0 * z1 + x0 * y1 - y0 * x1 + z0 * w1,
        )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"Quaternion(w={self.w:.6f}, x={self.x:.6f}, "
            f"y={self.y:.6f}, z={self.z:.6f})"
        )


QuaternionLike = Union[Quaternion, np.ndarray, Sequence[float]]


def as_quaternion(q: QuaternionLike) -> Quaternion:
    """Coerce a Quaternion or (w, x, y, z) sequence to a Quaternion."""
    if isinstance(q, Quaternion):
        return q
    return Quaternion.from_array(q)


def delta_q(theta: np.ndarray) -> Quaternion:
    """First-order quaternion for a small rotation vector.

    Returns [1, θ/2] without normalization. Callers needing a true unit
    quaternion must normalize the result.

    Args:
        theta: Small rotation vector (3,)

    Returns:
        Quaternion with real part 1 and vector part θ/2
    """
    half = 0.5 * np.asarray(theta, dtype=np.float64).flatten()
    return Quaternion(1.0, half[0], half[1], half[2])


def skew(v: np.ndarray) -> np.ndarray:
    """Create skew-symmetric matrix from vector.

    Args:
        v: 3D vector

    Returns:
        3x3 skew-symmetric matrix [v]×
    """
    return np.array([
        [0, -v[2], v[1]],
        [v[2], 0, -v[0]],
        [-v[1], v[0], 0]
    ], dtype=np.float64)
