"""Tests for the mid-point integration step."""

import numpy as np
import pytest

from imu_preint.config import PreintegrationConfig
from imu_preint.midpoint import (
    error_state_transition,
    integrate_nominal,
    midpoint_step,
    orientation_step,
)
from imu_preint.quaternion import Quaternion
from imu_preint.state import BiasEstimate, NominalState, StateOrder

GRAVITY_READING = np.array([0.0, 0.0, 9.81])


def blk(M: np.ndarray, row: int, col: int) -> np.ndarray:
    """3x3 block at error-state offsets (row, col)."""
    return M[row : row + 3, col : col + 3]


class TestIntegrateNominal:
    """Test suite for the mean-state step."""

    def test_zero_motion(self):
        """At rest, one 0.1 s step integrates the gravity reading only."""
        state = integrate_nominal(
            0.1,
            GRAVITY_READING,
            np.zeros(3),
            GRAVITY_READING,
            np.zeros(3),
            NominalState.identity(),
            BiasEstimate.zero(),
        )

        np.testing.assert_allclose(state.delta_q.as_array(), [1.0, 0.0, 0.0, 0.0])
        np.testing.assert_allclose(state.delta_v, [0.0, 0.0, 0.981], atol=1e-12)
        np.testing.assert_allclose(state.delta_p, [0.0, 0.0, 0.04905], atol=1e-12)
        assert state.sum_dt == 0.1

    def test_bias_compensation(self):
        """Readings equal to the bias produce no motion."""
        bias = BiasEstimate(ba=np.array([0.1, -0.2, 0.3]), bg=np.array([0.01, 0.02, -0.03]))
        state = integrate_nominal(
            0.01, bias.ba, bias.bg, bias.ba, bias.bg, NominalState.identity(), bias
        )

        np.testing.assert_allclose(state.delta_p, np.zeros(3), atol=1e-15)
        np.testing.assert_allclose(state.delta_v, np.zeros(3), atol=1e-15)
        np.testing.assert_allclose(state.delta_q.vec, np.zeros(3), atol=1e-15)

    def test_constant_rotation(self):
        """A constant rate about z turns the increment about z."""
        gyro = np.array([0.0, 0.0, 0.5])
        state = NominalState.identity()
        for _ in range(100):
            state = integrate_nominal(
                0.01, np.zeros(3), gyro, np.zeros(3), gyro, state, BiasEstimate.zero()
            )

        expected = Quaternion.from_rotation_vector(np.array([0.0, 0.0, 0.5]))
        np.testing.assert_allclose(state.delta_q.as_array(), expected.as_array(), atol=1e-4)
        assert state.delta_q.norm() == pytest.approx(1.0, abs=1e-12)

    def test_uses_midpoint_of_accelerations(self):
        """Velocity increment averages the readings at both ends."""
        state = integrate_nominal(
            0.1,
            np.array([1.0, 0.0, 0.0]),
            np.zeros(3),
            np.array([3.0, 0.0, 0.0]),
            np.zeros(3),
            NominalState.identity(),
            BiasEstimate.zero(),
        )

        np.testing.assert_allclose(state.delta_v, [0.2, 0.0, 0.0], atol=1e-12)

    def test_rotates_next_reading_before_normalizing(self):
        """The k+1 reading is rotated before normalization; the stored increment is unit."""
        gyro = np.array([0.0, 0.0, 10.0])
        accel = np.array([1.0, 0.0, 0.0])
        state = integrate_nominal(
            0.1, accel, gyro, accel, gyro, NominalState.identity(), BiasEstimate.zero()
        )

        # [1, 0, 0, 0.5] maps x to (0.5, 1.0, 0) before normalization
        np.testing.assert_allclose(state.delta_v, [0.075, 0.05, 0.0], atol=1e-12)
        np.testing.assert_allclose(state.delta_p, [0.00375, 0.0025, 0.0], atol=1e-12)
        np.testing.assert_allclose(
            state.delta_q.as_array(), np.array([1.0, 0.0, 0.0, 0.5]) / np.sqrt(1.25)
        )

    def test_input_not_modified(self):
        """The step does not write into its input state."""
        state = NominalState.identity()
        integrate_nominal(
            0.1, GRAVITY_READING, np.zeros(3), GRAVITY_READING, np.zeros(3),
            state, BiasEstimate.zero(),
        )

        np.testing.assert_array_equal(state.delta_p, np.zeros(3))
        np.testing.assert_array_equal(state.delta_v, np.zeros(3))
        assert state.sum_dt == 0.0


class TestErrorStateTransition:
    """Test suite for the F and V matrices."""

    @pytest.fixture
    def FV(self):
        """F and V for a generic step."""
        delta_q = Quaternion.from_rotation_vector(np.array([0.1, -0.2, 0.3]))
        result_delta_q = Quaternion.from_rotation_vector(np.array([0.11, -0.19, 0.31]))
        bias = BiasEstimate(ba=np.array([0.05, 0.0, -0.02]), bg=np.array([0.001, 0.002, 0.0]))
        return error_state_transition(
            0.005,
            np.array([0.3, -0.1, 9.7]),
            np.array([0.1, 0.2, -0.3]),
            np.array([0.35, -0.05, 9.75]),
            np.array([0.12, 0.18, -0.31]),
            delta_q,
            result_delta_q,
            bias,
        )

    def test_shapes(self, FV):
        """F is 15x15 and V is 15x18."""
        F, V = FV
        assert F.shape == (15, 15)
        assert V.shape == (15, 18)

    def test_bias_rows(self, FV):
        """Biases are random walks: identity transition, dt-scaled walk noise."""
        F, V = FV
        dt = 0.005
        np.testing.assert_array_equal(blk(F, StateOrder.BA, StateOrder.BA), np.eye(3))
        np.testing.assert_array_equal(blk(F, StateOrder.BG, StateOrder.BG), np.eye(3))
        np.testing.assert_array_equal(F[9:15, :9], np.zeros((6, 9)))
        np.testing.assert_allclose(V[9:12, 12:15], np.eye(3) * dt)
        np.testing.assert_allclose(V[12:15, 15:18], np.eye(3) * dt)
        np.testing.assert_array_equal(V[9:15, :12], np.zeros((6, 12)))

    def test_zero_blocks(self, FV):
        """Orientation does not depend on position, velocity or accel bias."""
        F, _ = FV
        np.testing.assert_array_equal(blk(F, StateOrder.R, StateOrder.P), np.zeros((3, 3)))
        np.testing.assert_array_equal(blk(F, StateOrder.R, StateOrder.V), np.zeros((3, 3)))
        np.testing.assert_array_equal(blk(F, StateOrder.R, StateOrder.BA), np.zeros((3, 3)))
        np.testing.assert_array_equal(blk(F, StateOrder.V, StateOrder.P), np.zeros((3, 3)))
        np.testing.assert_allclose(blk(F, StateOrder.P, StateOrder.V), np.eye(3) * 0.005)
        np.testing.assert_allclose(blk(F, StateOrder.R, StateOrder.BG), -np.eye(3) * 0.005)

    def test_gyro_noise_enters_orientation(self, FV):
        """Gyro noise at both ends enters orientation with weight dt/2."""
        _, V = FV
        np.testing.assert_allclose(V[3:6, 3:6], 0.5 * np.eye(3) * 0.005)
        np.testing.assert_allclose(V[3:6, 9:12], 0.5 * np.eye(3) * 0.005)
        np.testing.assert_array_equal(V[3:6, 0:3], np.zeros((3, 3)))


class TestOrientationStep:
    """Test suite for the unnormalized orientation update."""

    def test_product_is_not_normalized(self):
        """The step returns delta_q ⊗ [1, ½(ω0 + ω1)dt - ½bg dt] unnormalized."""
        bias = BiasEstimate(ba=np.zeros(3), bg=np.array([0.0, 0.0, 1.0]))
        q = orientation_step(
            0.1,
            np.array([0.0, 0.0, 9.0]),
            np.array([0.0, 0.0, 13.0]),
            Quaternion.identity(),
            bias,
        )

        np.testing.assert_allclose(q.as_array(), [1.0, 0.0, 0.0, 0.5])

    def test_composes_with_previous_increment(self):
        """The rate increment is applied on the right of delta_q."""
        delta_q = Quaternion.from_rotation_vector(np.array([0.3, 0.0, 0.0]))
        gyro = np.array([0.0, 0.2, 0.0])
        q = orientation_step(0.01, gyro, gyro, delta_q, BiasEstimate.zero())

        expected = delta_q * Quaternion(1.0, 0.0, 0.001, 0.0)
        np.testing.assert_allclose(q.as_array(), expected.as_array())


class TestMidpointStep:
    """Test suite for the combined step."""

    def test_step_composes_jacobian_and_covariance(self):
        """J' = F J and P' = F P Fᵀ + V Q Vᵀ."""
        rng = np.random.default_rng(7)
        A = rng.normal(size=(15, 15))
        P = A @ A.T * 1e-4
        J = np.eye(15) + 0.01 * rng.normal(size=(15, 15))
        Q = PreintegrationConfig().noise_matrix()

        step = midpoint_step(
            0.005,
            np.array([0.2, 0.1, 9.8]),
            np.array([0.05, -0.02, 0.1]),
            np.array([0.25, 0.12, 9.79]),
            np.array([0.06, -0.01, 0.11]),
            NominalState.identity(),
            BiasEstimate.zero(),
            J,
            P,
            Q,
        )

        np.testing.assert_allclose(step.jacobian, step.F @ J)
        np.testing.assert_allclose(
            step.covariance, step.F @ P @ step.F.T + step.V @ Q @ step.V.T
        )
        assert step.state.sum_dt == 0.005

    def test_transition_uses_unnormalized_orientation(self):
        """F and V are built from the k+1 orientation before normalization."""
        dt = 0.1
        gyro = np.array([0.0, 0.0, 10.0])
        accel = np.array([1.0, 0.0, 0.0])
        step = midpoint_step(
            dt,
            accel,
            gyro,
            accel,
            gyro,
            NominalState.identity(),
            BiasEstimate.zero(),
            np.eye(15),
            np.zeros((15, 15)),
            PreintegrationConfig().noise_matrix(),
        )

        R_1 = Quaternion(1.0, 0.0, 0.0, 0.5).to_rotation_matrix()
        np.testing.assert_allclose(
            blk(step.F, StateOrder.P, StateOrder.BA), -0.25 * (np.eye(3) + R_1) * dt * dt
        )
        np.testing.assert_allclose(step.V[0:3, 6:9], 0.25 * R_1 * dt * dt)
        assert step.state.delta_q.norm() == pytest.approx(1.0, abs=1e-12)
