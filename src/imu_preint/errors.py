"""Exceptions raised by IMU preintegration.

All errors derive from PreintegrationError. Input validation errors also
derive from ValueError so they can be caught alongside other bad-argument
errors.
"""

from __future__ import annotations


class PreintegrationError(Exception):
    """Base class for preintegration errors."""


class InvalidInterval(PreintegrationError, ValueError):
    """Sample interval dt is not a finite positive number."""


class InvalidMeasurement(PreintegrationError, ValueError):
    """Accelerometer or gyroscope vector is non-finite or not a 3-vector."""


class InvalidSeed(InvalidMeasurement):
    """Construction inputs (seed reading or initial bias) are invalid."""


class InvalidBias(InvalidMeasurement):
    """Bias passed to replay is non-finite or not a 3-vector."""


class StaleLinearization(PreintegrationError):
    """Bias moved too far from the linearization point for first-order correction.

    Informational: raised only when the caller asks for a check. The caller
    should replay the window with the new bias instead of relying on the
    first-order residual correction.

    Attributes:
        accel_deviation: ‖ba - linearized ba‖
        gyro_deviation: ‖bg - linearized bg‖
    """

    def __init__(self, accel_deviation: float, gyro_deviation: float) -> None:
        self.accel_deviation = accel_deviation
        self.gyro_deviation = gyro_deviation
        super().__init__(
            f"Bias deviation too large for first-order correction "
            f"(|dba|={accel_deviation:.3e}, |dbg|={gyro_deviation:.3e}); "
            f"replay the window with the new bias"
        )


class HistoryLimitExceeded(PreintegrationError):
    """Recording another sample would exceed the configured history cap."""
