"""Preintegration configuration: noise densities, gravity and retention policy."""

from __future__ import annotations

import operator
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

import numpy as np
import yaml

# Keys accepted by from_dict in addition to the field names. These are the
# names used in EuRoC imu0/sensor.yaml.
_SENSOR_YAML_ALIASES = {
    "accelerometer_noise_density": "accel_noise_density",
    "gyroscope_noise_density": "gyro_noise_density",
    "accelerometer_random_walk": "accel_bias_walk",
    "gyroscope_random_walk": "gyro_bias_walk",
}

# sensor.yaml metadata that carries no preintegration parameter
_IGNORED_KEYS = {"sensor_type", "comment", "T_BS", "rate_hz"}


@dataclass
class PreintegrationConfig:
    """IMU noise model and window policy for one preintegration instance.

    Attributes:
        accel_noise_density: Accelerometer white noise (m/s²/√Hz)
        gyro_noise_density: Gyroscope white noise (rad/s/√Hz)
        accel_bias_walk: Accelerometer bias random walk (m/s³/√Hz)
        gyro_bias_walk: Gyroscope bias random walk (rad/s²/√Hz)
        gravity: Gravity vector in world frame (3,)
        max_history: Maximum number of recorded samples, None for unbounded
        accel_bias_tolerance: Largest ‖dba‖ accepted by check_linearization
        gyro_bias_tolerance: Largest ‖dbg‖ accepted by check_linearization
    """

    accel_noise_density: float = 0.08
    gyro_noise_density: float = 0.004
    accel_bias_walk: float = 4.0e-5
    gyro_bias_walk: float = 2.0e-6
    gravity: np.ndarray = field(
        default_factory=lambda: np.array([0.0, 0.0, 9.81], dtype=np.float64)
    )
    max_history: int | None = None
    accel_bias_tolerance: float | None = None
    gyro_bias_tolerance: float | None = None

    def __post_init__(self) -> None:
        """Validate parameters and normalize gravity."""
        for name in (
            "accel_noise_density",
            "gyro_noise_density",
            "accel_bias_walk",
            "gyro_bias_walk",
        ):
            value = float(getattr(self, name))
            if not np.isfinite(value) or value < 0.0:
                raise ValueError(f"{name} must be finite and non-negative, got {value}")
            setattr(self, name, value)

        self.gravity = np.asarray(self.gravity, dtype=np.float64).flatten()
        if self.gravity.shape != (3,):
            raise ValueError(f"Gravity must be (3,), got {self.gravity.shape}")
        if not np.all(np.isfinite(self.gravity)):
            raise ValueError(f"Gravity must be finite, got {self.gravity}")

        if self.max_history is not None:
            # Integers only; 2.5 or "5" are rejected rather than truncated
            if isinstance(self.max_history, bool):
                raise ValueError(f"max_history must be an integer, got {self.max_history!r}")
            try:
                max_history = operator.index(self.max_history)
            except TypeError as e:
                raise ValueError(
                    f"max_history must be an integer, got {self.max_history!r}"
                ) from e
            if max_history <= 0:
                raise ValueError(f"max_history must be positive, got {max_history}")
            self.max_history = max_history

        for name in ("accel_bias_tolerance", "gyro_bias_tolerance"):
            value = getattr(self, name)
            if value is not None and not float(value) > 0.0:
                raise ValueError(f"{name} must be positive, got {value}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PreintegrationConfig:
        """Build a configuration from a mapping.

        Accepts the field names as well as the EuRoC sensor.yaml noise keys.
        Missing keys keep their defaults; unknown keys are skipped with a
        warning.

        Args:
            data: Parameter mapping

        Returns:
            PreintegrationConfig
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}

        for key, value in data.items():
            name = _SENSOR_YAML_ALIASES.get(key, key)
            if name in known:
                kwargs[name] = value
            elif key not in _IGNORED_KEYS:
                print(f"Warning: ignoring unknown preintegration parameter '{key}'")

        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> PreintegrationConfig:
        """Load configuration from a YAML file.

        Args:
            yaml_path: Path to a YAML mapping (or an EuRoC imu0/sensor.yaml)

        Returns:
            PreintegrationConfig

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If the document is not a mapping or holds invalid values
        """
        path = Path(yaml_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f)

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping in {yaml_path}")

        return cls.from_dict(data)

    def noise_matrix(self) -> np.ndarray:
        """Build the 18x18 diagonal continuous-time noise matrix.

        Block order: accel noise (k), gyro noise (k), accel noise (k+1),
        gyro noise (k+1), accel bias walk, gyro bias walk.

        Returns:
            18x18 diagonal matrix of squared densities
        """
        acc_n = self.accel_noise_density**2
        gyr_n = self.gyro_noise_density**2
        diag = np.repeat(
            [
                acc_n,
                gyr_n,
                acc_n,
                gyr_n,
                self.accel_bias_walk**2,
                self.gyro_bias_walk**2,
            ],
            3,
        )
        return np.diag(diag)
