"""Preintegrated motion, bias linearization point and navigation state."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

import numpy as np

from .quaternion import Quaternion, QuaternionLike, as_quaternion

ERROR_STATE_DIM = 15
NOISE_DIM = 18


class StateOrder(IntEnum):
    """Offsets of the 3-dim blocks in the 15-dim error state."""

    P = 0
    R = 3
    V = 6
    BA = 9
    BG = 12


def block(matrix: np.ndarray, row: StateOrder, col: StateOrder) -> np.ndarray:
    """Return a copy of the 3x3 block at (row, col) of a 15x15 matrix."""
    return matrix[row : row + 3, col : col + 3].copy()


@dataclass
class NominalState:
    """Preintegrated increments since the start of the window.

    Attributes:
        delta_p: Position increment in the start frame (3,)
        delta_q: Orientation increment, unit quaternion
        delta_v: Velocity increment in the start frame (3,)
        sum_dt: Elapsed time since the window began in seconds
    """

    delta_p: np.ndarray  # (3,)
    delta_q: Quaternion
    delta_v: np.ndarray  # (3,)
    sum_dt: float = 0.0

    def __post_init__(self) -> None:
        """Ensure arrays have correct shape and type."""
        self.delta_p = np.asarray(self.delta_p, dtype=np.float64).flatten()
        self.delta_v = np.asarray(self.delta_v, dtype=np.float64).flatten()
        self.sum_dt = float(self.sum_dt)

    @classmethod
    def identity(cls) -> NominalState:
        """Create the state at the start of a window (no motion, no time)."""
        return cls(
            delta_p=np.zeros(3),
            delta_q=Quaternion.identity(),
            delta_v=np.zeros(3),
            sum_dt=0.0,
        )

    def copy(self) -> NominalState:
        """Return an independent copy."""
        return NominalState(
            delta_p=self.delta_p.copy(),
            delta_q=self.delta_q,
            delta_v=self.delta_v.copy(),
            sum_dt=self.sum_dt,
        )


@dataclass
class BiasEstimate:
    """Accelerometer and gyroscope biases a window is linearized around.

    Attributes:
        ba: Accelerometer bias (3,) in m/s²
        bg: Gyroscope bias (3,) in rad/s
    """

    ba: np.ndarray  # (3,)
    bg: np.ndarray  # (3,)

    def __post_init__(self) -> None:
        """Ensure arrays have correct shape and type."""
        self.ba = np.asarray(self.ba, dtype=np.float64).flatten()
        self.bg = np.asarray(self.bg, dtype=np.float64).flatten()

    @classmethod
    def zero(cls) -> BiasEstimate:
        """Create a zero bias."""
        return cls(ba=np.zeros(3), bg=np.zeros(3))

    def copy(self) -> BiasEstimate:
        """Return an independent copy."""
        return BiasEstimate(ba=self.ba.copy(), bg=self.bg.copy())


@dataclass
class NavState:
    """Absolute navigation state at one end of a window.

    Attributes:
        position: Position in world frame (3,)
        orientation: Body-to-world rotation
        velocity: Velocity in world frame (3,)
        bias_accel: Accelerometer bias (3,)
        bias_gyro: Gyroscope bias (3,)
    """

    position: np.ndarray  # (3,) world frame
    orientation: Quaternion
    velocity: np.ndarray  # (3,) world frame
    bias_accel: np.ndarray  # (3,)
    bias_gyro: np.ndarray  # (3,)

    def __post_init__(self) -> None:
        """Ensure arrays have correct shape and type."""
        self.position = np.asarray(self.position, dtype=np.float64).flatten()
        self.orientation = as_quaternion(self.orientation)
        self.velocity = np.asarray(self.velocity, dtype=np.float64).flatten()
        self.bias_accel = np.asarray(self.bias_accel, dtype=np.float64).flatten()
        self.bias_gyro = np.asarray(self.bias_gyro, dtype=np.float64).flatten()

    @classmethod
    def identity(cls, orientation: QuaternionLike | None = None) -> NavState:
        """Create a state at the origin, at rest, with zero biases."""
        return cls(
            position=np.zeros(3),
            orientation=Quaternion.identity() if orientation is None else orientation,
            velocity=np.zeros(3),
            bias_accel=np.zeros(3),
            bias_gyro=np.zeros(3),
        )
