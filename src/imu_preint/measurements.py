"""IMU samples and the ordered history kept for repropagation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from .errors import (
    HistoryLimitExceeded,
    InvalidInterval,
    InvalidMeasurement,
    PreintegrationError,
)


def as_vector3(
    value: np.ndarray,
    name: str,
    error: type[PreintegrationError] = InvalidMeasurement,
) -> np.ndarray:
    """Coerce to a finite float64 3-vector.

    Args:
        value: Array-like holding three components
        name: Name used in the error message
        error: Exception class raised on failure

    Returns:
        New (3,) array

    Raises:
        error: If the value is not a 3-vector or has non-finite components
    """
    try:
        vec = np.array(value, dtype=np.float64).flatten()
    except (TypeError, ValueError) as e:
        raise error(f"{name} is not numeric: {value!r}") from e

    if vec.shape != (3,):
        raise error(f"{name} must be (3,), got {vec.shape}")
    if not np.all(np.isfinite(vec)):
        raise error(f"{name} must be finite, got {vec}")
    return vec


def as_interval(dt: float) -> float:
    """Validate a sample interval.

    Raises:
        InvalidInterval: If dt is not a finite number greater than zero
    """
    try:
        dt = float(dt)
    except (TypeError, ValueError) as e:
        raise InvalidInterval(f"dt is not numeric: {dt!r}") from e

    if not np.isfinite(dt) or dt <= 0.0:
        raise InvalidInterval(f"dt must be finite and > 0, got {dt}")
    return dt


@dataclass(frozen=True)
class ImuSample:
    """Single IMU reading and the time elapsed since the previous one.

    Attributes:
        dt: Interval since the previous reading in seconds
        accel: Linear acceleration (ax, ay, az) in m/s²
        gyro: Angular velocity (wx, wy, wz) in rad/s
    """

    dt: float
    accel: np.ndarray  # (3,) m/s²
    gyro: np.ndarray  # (3,) rad/s

    def __post_init__(self) -> None:
        """Validate and freeze the sample."""
        object.__setattr__(self, "dt", as_interval(self.dt))

        accel = as_vector3(self.accel, "accel")
        gyro = as_vector3(self.gyro, "gyro")
        accel.setflags(write=False)
        gyro.setflags(write=False)
        object.__setattr__(self, "accel", accel)
        object.__setattr__(self, "gyro", gyro)


class MeasurementHistory:
    """Ordered, append-only record of the samples in one window.

    Nothing is ever evicted. With max_history set, appending past the cap
    raises instead of dropping old samples, since every sample is needed to
    replay the window.
    """

    def __init__(self, max_history: int | None = None) -> None:
        """Initialize an empty history.

        Args:
            max_history: Maximum number of samples, None for unbounded
        """
        self._samples: list[ImuSample] = []
        self._max_history = max_history

    def check_capacity(self) -> None:
        """Raise if one more sample would exceed the cap.

        Raises:
            HistoryLimitExceeded: If the history is full
        """
        if self._max_history is not None and len(self._samples) >= self._max_history:
            raise HistoryLimitExceeded(
                f"History holds {len(self._samples)} samples (max_history="
                f"{self._max_history}); start a new preintegration window"
            )

    def append(self, sample: ImuSample) -> None:
        """Append a sample at the end of the history.

        Raises:
            HistoryLimitExceeded: If the history is full
        """
        self.check_capacity()
        self._samples.append(sample)

    @property
    def samples(self) -> tuple[ImuSample, ...]:
        """Return all samples in recording order."""
        return tuple(self._samples)

    def __iter__(self) -> Iterator[ImuSample]:
        """Iterate over samples in recording order."""
        return iter(self._samples)

    def __len__(self) -> int:
        """Number of recorded samples."""
        return len(self._samples)
