"""IMU preintegration for visual-inertial estimation."""

__version__ = "0.1.0"

# Re-export main classes for convenient imports
from .config import PreintegrationConfig
from .errors import (
    HistoryLimitExceeded,
    InvalidBias,
    InvalidInterval,
    InvalidMeasurement,
    InvalidSeed,
    PreintegrationError,
    StaleLinearization,
)
from .measurements import ImuSample, MeasurementHistory
from .midpoint import (
    StepResult,
    error_state_transition,
    integrate_nominal,
    midpoint_step,
    orientation_step,
)
from .preintegration import ImuPreintegration
from .quaternion import Quaternion, delta_q, skew
from .residual import correct_increments, predict_state, preintegration_residual
from .state import BiasEstimate, NavState, NominalState, StateOrder

__all__ = [
    "__version__",
    # Preintegration
    "ImuPreintegration",
    "PreintegrationConfig",
    # Measurements
    "ImuSample",
    "MeasurementHistory",
    # State
    "NominalState",
    "BiasEstimate",
    "NavState",
    "StateOrder",
    # Integration step
    "StepResult",
    "midpoint_step",
    "integrate_nominal",
    "orientation_step",
    "error_state_transition",
    # Residual
    "preintegration_residual",
    "correct_increments",
    "predict_state",
    # Quaternion
    "Quaternion",
    "delta_q",
    "skew",
    # Errors
    "PreintegrationError",
    "InvalidInterval",
    "InvalidMeasurement",
    "InvalidSeed",
    "InvalidBias",
    "StaleLinearization",
    "HistoryLimitExceeded",
]
