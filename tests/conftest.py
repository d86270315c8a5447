"""Shared fixtures: a synthetic IMU stream with gentle motion."""

import numpy as np
import pytest

DT = 0.005
NUM_SAMPLES = 100


def synthetic_reading(t: float) -> tuple[np.ndarray, np.ndarray]:
    """Smooth accelerometer/gyroscope reading at time t.

    Args:
        t: Time in seconds

    Returns:
        Tuple of (accel, gyro)
    """
    accel = np.array([
        0.5 * np.sin(2.0 * t),
        0.3 * np.cos(1.5 * t),
        9.81 + 0.2 * np.sin(3.0 * t),
    ])
    gyro = np.array([
        0.3 * np.sin(t),
        0.2 * np.cos(0.5 * t),
        0.1 + 0.05 * np.sin(2.0 * t),
    ])
    return accel, gyro


@pytest.fixture
def seed_reading() -> tuple[np.ndarray, np.ndarray]:
    """Reading at the start of the window."""
    return synthetic_reading(0.0)


@pytest.fixture
def imu_samples() -> list[tuple[float, np.ndarray, np.ndarray]]:
    """Samples (dt, accel, gyro) following the seed reading.

    Intervals jitter slightly around 5 ms so they are not all identical.
    """
    samples = []
    t = 0.0
    for i in range(NUM_SAMPLES):
        dt = DT * (1.0 + 0.1 * np.sin(0.7 * i))
        t += dt
        accel, gyro = synthetic_reading(t)
        samples.append((dt, accel, gyro))
    return samples
