"""IMU preintegration between two keyframes.

Accumulates raw IMU readings into relative position, orientation and velocity
increments with a 15x15 error-state Jacobian and covariance. The outer
estimator consumes the result as a motion constraint between the keyframes
through evaluate(), and either relies on the first-order bias correction or
calls replay() after a large bias update.
"""

from __future__ import annotations

import numpy as np
import scipy.linalg

from .config import PreintegrationConfig
from .errors import (
    InvalidBias,
    InvalidMeasurement,
    InvalidSeed,
    PreintegrationError,
    StaleLinearization,
)
from .measurements import ImuSample, MeasurementHistory, as_vector3
from .midpoint import StepResult, midpoint_step
from .quaternion import Quaternion, QuaternionLike
from .residual import correct_increments, predict_state, preintegration_residual
from .state import ERROR_STATE_DIM, BiasEstimate, NavState, NominalState


class ImuPreintegration:
    """Preintegrated IMU measurements for one inter-keyframe window.

    Each record() runs one mid-point step between the previous raw reading
    and the new one, updating the increments, Jacobian and covariance in
    lock-step. Every recorded sample is kept so that replay() can integrate
    the whole window again around a new bias.

    Not thread-safe. Callers reading the state while another thread records
    must synchronize externally, e.g. by snapshotting under a lock.

    Example usage:
        preint = ImuPreintegration(accel0, gyro0, ba, bg)
        for m in measurements:
            preint.record(m.dt, m.accel, m.gyro)
        residual = preint.evaluate(Pi, Qi, Vi, Bai, Bgi, Pj, Qj, Vj, Baj, Bgj)
    """

    def __init__(
        self,
        accel0: np.ndarray,
        gyro0: np.ndarray,
        ba0: np.ndarray | None = None,
        bg0: np.ndarray | None = None,
        config: PreintegrationConfig | None = None,
    ) -> None:
        """Start a window at the given raw reading.

        Args:
            accel0: Accelerometer reading at the start of the window (3,)
            gyro0: Gyroscope reading at the start of the window (3,)
            ba0: Accelerometer bias linearization point (default: zeros)
            bg0: Gyroscope bias linearization point (default: zeros)
            config: Noise model and window policy (default: PreintegrationConfig())

        Raises:
            InvalidSeed: If any reading or bias is non-finite or not a 3-vector
        """
        self._config = config if config is not None else PreintegrationConfig()
        self._noise = self._config.noise_matrix()
        self._gravity = self._config.gravity.copy()

        # Seed reading, restored on replay
        self._linearized_acc = as_vector3(accel0, "accel0", InvalidSeed)
        self._linearized_gyr = as_vector3(gyro0, "gyro0", InvalidSeed)

        self._bias = BiasEstimate(
            ba=np.zeros(3) if ba0 is None else as_vector3(ba0, "ba0", InvalidSeed),
            bg=np.zeros(3) if bg0 is None else as_vector3(bg0, "bg0", InvalidSeed),
        )
        self._history = MeasurementHistory(max_history=self._config.max_history)

        self._reset()

    def _reset(self) -> None:
        """Return to the start of the window, keeping bias and history."""
        self._acc_0 = self._linearized_acc.copy()
        self._gyr_0 = self._linearized_gyr.copy()
        self._state = NominalState.identity()
        self._jacobian = np.eye(ERROR_STATE_DIM)
        self._covariance = np.zeros((ERROR_STATE_DIM, ERROR_STATE_DIM))
        self._last_step: StepResult | None = None

    def _step(self, sample: ImuSample) -> StepResult:
        """Run one step from the current state without committing it.

        Raises:
            InvalidMeasurement: If the step overflows or leaves non-finite
                increments, Jacobian or covariance
        """
        try:
            with np.errstate(over="ignore", invalid="ignore"):
                step = midpoint_step(
                    sample.dt,
                    self._acc_0,
                    self._gyr_0,
                    sample.accel,
                    sample.gyro,
                    self._state,
                    self._bias,
                    self._jacobian,
                    self._covariance,
                    self._noise,
                )
        except OverflowError as e:
            raise InvalidMeasurement(
                f"Integrating sample (dt={sample.dt}, accel={sample.accel}, "
                f"gyro={sample.gyro}) overflows"
            ) from e

        finite = (
            np.all(np.isfinite(step.state.delta_p))
            and np.all(np.isfinite(step.state.delta_v))
            and np.all(np.isfinite(step.state.delta_q.as_array()))
            and np.all(np.isfinite(step.jacobian))
            and np.all(np.isfinite(step.covariance))
        )
        if not finite:
            raise InvalidMeasurement(
                f"Integrating sample (dt={sample.dt}, accel={sample.accel}, "
                f"gyro={sample.gyro}) gives non-finite values"
            )
        return step

    def _commit(self, sample: ImuSample, step: StepResult) -> None:
        """Make a computed step the current state."""
        self._state = step.state
        self._jacobian = step.jacobian
        self._covariance = step.covariance
        self._last_step = step

        self._acc_0 = sample.accel
        self._gyr_0 = sample.gyro

    def record(self, dt: float, accel: np.ndarray, gyro: np.ndarray) -> None:
        """Append a reading and integrate it.

        Validation happens before anything is modified, so a rejected sample
        leaves the window unchanged.

        Args:
            dt: Time since the previous reading in seconds (> 0)
            accel: Accelerometer reading (3,) in m/s²
            gyro: Gyroscope reading (3,) in rad/s

        Raises:
            InvalidInterval: If dt is not finite and positive
            InvalidMeasurement: If accel or gyro is non-finite, or so large
                that integrating it overflows
            HistoryLimitExceeded: If max_history samples are already recorded
        """
        sample = ImuSample(dt=dt, accel=accel, gyro=gyro)
        self._history.check_capacity()
        step = self._step(sample)

        self._history.append(sample)
        self._commit(sample, step)

    def replay(self, ba: np.ndarray, bg: np.ndarray) -> None:
        """Integrate the whole window again around a new bias.

        With an empty history this only moves the linearization point. On
        failure the window keeps its previous bias and state.

        Args:
            ba: New accelerometer bias linearization point (3,)
            bg: New gyroscope bias linearization point (3,)

        Raises:
            InvalidBias: If either bias is non-finite or not a 3-vector, or
                integrating the window with it overflows
        """
        bias = BiasEstimate(
            ba=as_vector3(ba, "ba", InvalidBias),
            bg=as_vector3(bg, "bg", InvalidBias),
        )

        previous = (
            self._bias,
            self._acc_0,
            self._gyr_0,
            self._state,
            self._jacobian,
            self._covariance,
            self._last_step,
        )
        self._bias = bias
        self._reset()
        try:
            for sample in self._history:
                self._commit(sample, self._step(sample))
        except InvalidMeasurement as e:
            (
                self._bias,
                self._acc_0,
                self._gyr_0,
                self._state,
                self._jacobian,
                self._covariance,
                self._last_step,
            ) = previous
            raise InvalidBias(
                f"Replaying with ba={bias.ba}, bg={bias.bg} failed: {e}"
            ) from e

    def evaluate(
        self,
        Pi: np.ndarray,
        Qi: QuaternionLike,
        Vi: np.ndarray,
        Bai: np.ndarray,
        Bgi: np.ndarray,
        Pj: np.ndarray,
        Qj: QuaternionLike,
        Vj: np.ndarray,
        Baj: np.ndarray,
        Bgj: np.ndarray,
    ) -> np.ndarray:
        """Residual between two navigation states and this window.

        Orientations are body-to-world quaternions, either Quaternion objects
        or (w, x, y, z) sequences.

        Returns:
            Residual (15,): position, orientation, velocity, accel bias,
            gyro bias
        """
        state_i = NavState(
            position=Pi, orientation=Qi, velocity=Vi, bias_accel=Bai, bias_gyro=Bgi
        )
        state_j = NavState(
            position=Pj, orientation=Qj, velocity=Vj, bias_accel=Baj, bias_gyro=Bgj
        )
        return self.evaluate_states(state_i, state_j)

    def evaluate_states(self, state_i: NavState, state_j: NavState) -> np.ndarray:
        """Residual between two NavStates, see evaluate()."""
        return preintegration_residual(
            self._state, self._jacobian, self._bias, self._gravity, state_i, state_j
        )

    def weighted_residual(self, state_i: NavState, state_j: NavState) -> np.ndarray:
        """Residual whitened by the square-root information matrix.

        Returns:
            sqrt_information() @ residual (15,)
        """
        return self.sqrt_information() @ self.evaluate_states(state_i, state_j)

    def sqrt_information(self) -> np.ndarray:
        """Upper Cholesky factor U of the information matrix, Uᵀ U = P⁻¹.

        Raises:
            PreintegrationError: If the covariance is not positive definite,
                e.g. before the first record()
        """
        try:
            information = scipy.linalg.inv(self._covariance)
            information = 0.5 * (information + information.T)
            return scipy.linalg.cholesky(information, lower=False)
        except np.linalg.LinAlgError as e:
            raise PreintegrationError(
                f"Covariance is not positive definite after {len(self)} samples"
            ) from e

    def corrected_state(self, ba: np.ndarray, bg: np.ndarray) -> NominalState:
        """Increments corrected to first order for a different bias.

        Args:
            ba: Accelerometer bias (3,)
            bg: Gyroscope bias (3,)

        Returns:
            Corrected increments; delta_q is not normalized
        """
        return correct_increments(self._state, self._jacobian, self._bias, ba, bg)

    def predict(self, state_i: NavState) -> NavState:
        """Predict the navigation state at the end of the window.

        Uses the biases of state_i for the first-order correction.

        Args:
            state_i: Navigation state at the start of the window

        Returns:
            Predicted end state; its residual against state_i is zero
        """
        return predict_state(
            self._state, self._jacobian, self._bias, self._gravity, state_i
        )

    def bias_deviation(self, ba: np.ndarray, bg: np.ndarray) -> tuple[float, float]:
        """Distance of a bias from the linearization point.

        Returns:
            Tuple of (‖ba - linearized ba‖, ‖bg - linearized bg‖)
        """
        dba = np.asarray(ba, dtype=np.float64).flatten() - self._bias.ba
        dbg = np.asarray(bg, dtype=np.float64).flatten() - self._bias.bg
        return float(np.linalg.norm(dba)), float(np.linalg.norm(dbg))

    def check_linearization(self, ba: np.ndarray, bg: np.ndarray) -> None:
        """Check a bias against the configured tolerances.

        Tolerances left as None are not checked.

        Raises:
            StaleLinearization: If the deviation exceeds a tolerance
        """
        accel_dev, gyro_dev = self.bias_deviation(ba, bg)
        accel_tol = self._config.accel_bias_tolerance
        gyro_tol = self._config.gyro_bias_tolerance

        if (accel_tol is not None and accel_dev > accel_tol) or (
            gyro_tol is not None and gyro_dev > gyro_tol
        ):
            raise StaleLinearization(accel_dev, gyro_dev)

    @property
    def config(self) -> PreintegrationConfig:
        """Return the configuration of this window."""
        return self._config

    @property
    def nominal_state(self) -> NominalState:
        """Return a copy of the preintegrated increments."""
        return self._state.copy()

    @property
    def delta_p(self) -> np.ndarray:
        """Position increment (3,)."""
        return self._state.delta_p.copy()

    @property
    def delta_q(self) -> Quaternion:
        """Orientation increment (unit quaternion)."""
        return self._state.delta_q

    @property
    def delta_v(self) -> np.ndarray:
        """Velocity increment (3,)."""
        return self._state.delta_v.copy()

    @property
    def sum_dt(self) -> float:
        """Total integrated time in seconds."""
        return self._state.sum_dt

    @property
    def jacobian(self) -> np.ndarray:
        """Accumulated 15x15 Jacobian w.r.t. the error state at window start."""
        return self._jacobian.copy()

    @property
    def covariance(self) -> np.ndarray:
        """15x15 covariance of the preintegrated error state."""
        return self._covariance.copy()

    @property
    def linearized_bias(self) -> BiasEstimate:
        """Bias the current increments are integrated with."""
        return self._bias.copy()

    @property
    def noise(self) -> np.ndarray:
        """18x18 continuous noise matrix."""
        return self._noise.copy()

    @property
    def gravity(self) -> np.ndarray:
        """Return gravity vector in world frame."""
        return self._gravity.copy()

    @property
    def last_step(self) -> StepResult | None:
        """Result of the most recent step, None before the first record()."""
        if self._last_step is None:
            return None
        step = self._last_step
        return StepResult(
            state=step.state.copy(),
            jacobian=step.jacobian.copy(),
            covariance=step.covariance.copy(),
            F=step.F.copy(),
            V=step.V.copy(),
        )

    @property
    def samples(self) -> tuple[ImuSample, ...]:
        """Recorded samples in order."""
        return self._history.samples

    @property
    def is_empty(self) -> bool:
        """True until the first sample is recorded."""
        return len(self._history) == 0

    def __len__(self) -> int:
        """Number of recorded samples."""
        return len(self._history)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"ImuPreintegration(samples={len(self)}, sum_dt={self.sum_dt:.4f}, "
            f"delta_p=[{self._state.delta_p[0]:.3f}, {self._state.delta_p[1]:.3f}, "
            f"{self._state.delta_p[2]:.3f}])"
        )
