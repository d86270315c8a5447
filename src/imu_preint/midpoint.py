"""Mid-point integration step for IMU preintegration.

One step consumes two consecutive raw readings (k, k+1) and advances the
preintegrated increments:

    alpha(k+1) = alpha(k) + beta(k)*dt + 0.5*a_hat*dt²     (position)
    beta(k+1)  = beta(k) + a_hat*dt                         (velocity)
    gamma(k+1) = gamma(k) ⊗ [1, 0.5*w_hat*dt]               (orientation)

where a_hat and w_hat are averages of the bias-compensated readings at both
ends of the interval. Alongside the mean, the step linearizes the error
dynamics to get the discrete transition F (15x15) and noise input V (15x18):

    J(k+1) = F J(k)
    P(k+1) = F P(k) Fᵀ + V Q Vᵀ

Everything here is a pure function of its inputs.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .quaternion import Quaternion, skew
from .state import ERROR_STATE_DIM, NOISE_DIM, BiasEstimate, NominalState, StateOrder

O_P, O_R, O_V, O_BA, O_BG = (
    StateOrder.P,
    StateOrder.R,
    StateOrder.V,
    StateOrder.BA,
    StateOrder.BG,
)

# Noise source offsets in the 18-dim noise vector
N_ACC_0, N_GYR_0, N_ACC_1, N_GYR_1, N_BA, N_BG = 0, 3, 6, 9, 12, 15


@dataclass
class StepResult:
    """Outcome of one integration step.

    Attributes:
        state: Increments after the step
        jacobian: Accumulated Jacobian F @ J (15x15)
        covariance: Propagated covariance (15x15)
        F: Discrete state transition of this step (15x15)
        V: Discrete noise input of this step (15x18)
    """

    state: NominalState
    jacobian: np.ndarray
    covariance: np.ndarray
    F: np.ndarray
    V: np.ndarray


def orientation_step(
    dt: float,
    gyr_0: np.ndarray,
    gyr_1: np.ndarray,
    delta_q: Quaternion,
    bias: BiasEstimate,
) -> Quaternion:
    """Rotate the orientation increment by the mid-point angular rate.

    Returns delta_q ⊗ [1, ½ω dt] without normalization. The step rotates the
    k+1 reading and builds F and V with this product; only the stored
    increment is normalized.
    """
    un_gyr = 0.5 * (gyr_0 + gyr_1) - bias.bg
    half_angle = 0.5 * un_gyr * dt
    return delta_q * Quaternion(1.0, half_angle[0], half_angle[1], half_angle[2])


def integrate_nominal(
    dt: float,
    acc_0: np.ndarray,
    gyr_0: np.ndarray,
    acc_1: np.ndarray,
    gyr_1: np.ndarray,
    state: NominalState,
    bias: BiasEstimate,
) -> NominalState:
    """Advance the preintegrated increments by one mid-point step.

    Args:
        dt: Interval between the two readings in seconds
        acc_0: Accelerometer reading at k (3,)
        gyr_0: Gyroscope reading at k (3,)
        acc_1: Accelerometer reading at k+1 (3,)
        gyr_1: Gyroscope reading at k+1 (3,)
        state: Increments at k
        bias: Bias linearization point

    Returns:
        Increments at k+1, delta_q normalized
    """
    # Reading k rotated with the orientation at k
    un_acc_0 = state.delta_q.rotate(acc_0 - bias.ba)

    result_delta_q = orientation_step(dt, gyr_0, gyr_1, state.delta_q, bias)

    # Reading k+1 rotated with the (unnormalized) orientation at k+1
    un_acc_1 = result_delta_q.rotate(acc_1 - bias.ba)
    un_acc = 0.5 * (un_acc_0 + un_acc_1)

    return NominalState(
        delta_p=state.delta_p + state.delta_v * dt + 0.5 * un_acc * dt * dt,
        delta_q=result_delta_q.normalized(),
        delta_v=state.delta_v + un_acc * dt,
        sum_dt=state.sum_dt + dt,
    )


def error_state_transition(
    dt: float,
    acc_0: np.ndarray,
    gyr_0: np.ndarray,
    acc_1: np.ndarray,
    gyr_1: np.ndarray,
    delta_q: Quaternion,
    result_delta_q: Quaternion,
    bias: BiasEstimate,
) -> tuple[np.ndarray, np.ndarray]:
    """Linearize one mid-point step around the nominal trajectory.

    Args:
        dt: Interval between the two readings in seconds
        acc_0: Accelerometer reading at k (3,)
        gyr_0: Gyroscope reading at k (3,)
        acc_1: Accelerometer reading at k+1 (3,)
        gyr_1: Gyroscope reading at k+1 (3,)
        delta_q: Orientation increment at k
        result_delta_q: Orientation increment at k+1, as returned by
            orientation_step (before normalization)
        bias: Bias linearization point

    Returns:
        Tuple of (F, V): 15x15 state transition and 15x18 noise input
    """
    w_x = skew(0.5 * (gyr_0 + gyr_1) - bias.bg)
    a_0_x = skew(acc_0 - bias.ba)
    a_1_x = skew(acc_1 - bias.ba)

    R_0 = delta_q.to_rotation_matrix()
    R_1 = result_delta_q.to_rotation_matrix()
    I3 = np.eye(3)
    dt2 = dt * dt

    # Rotation error transition: I - [w]x dt
    rot = I3 - w_x * dt

    F = np.zeros((ERROR_STATE_DIM, ERROR_STATE_DIM))
    F[O_P : O_P + 3, O_P : O_P + 3] = I3
    F[O_P : O_P + 3, O_R : O_R + 3] = (
        -0.25 * R_0 @ a_0_x * dt2 - 0.25 * R_1 @ a_1_x @ rot * dt2
    )
    F[O_P : O_P + 3, O_V : O_V + 3] = I3 * dt
    F[O_P : O_P + 3, O_BA : O_BA + 3] = -0.25 * (R_0 + R_1) * dt2
    F[O_P : O_P + 3, O_BG : O_BG + 3] = -0.25 * R_1 @ a_1_x * dt2 * -dt
    F[O_R : O_R + 3, O_R : O_R + 3] = rot
    F[O_R : O_R + 3, O_BG : O_BG + 3] = -I3 * dt
    F[O_V : O_V + 3, O_R : O_R + 3] = (
        -0.5 * R_0 @ a_0_x * dt - 0.5 * R_1 @ a_1_x @ rot * dt
    )
    F[O_V : O_V + 3, O_V : O_V + 3] = I3
    F[O_V : O_V + 3, O_BA : O_BA + 3] = -0.5 * (R_0 + R_1) * dt
    F[O_V : O_V + 3, O_BG : O_BG + 3] = -0.5 * R_1 @ a_1_x * dt * -dt
    F[O_BA : O_BA + 3, O_BA : O_BA + 3] = I3
    F[O_BG : O_BG + 3, O_BG : O_BG + 3] = I3

    V = np.zeros((ERROR_STATE_DIM, NOISE_DIM))
    V[O_P : O_P + 3, N_ACC_0 : N_ACC_0 + 3] = 0.25 * R_0 * dt2
    V[O_P : O_P + 3, N_GYR_0 : N_GYR_0 + 3] = -0.25 * R_1 @ a_1_x * dt2 * 0.5 * dt
    V[O_P : O_P + 3, N_ACC_1 : N_ACC_1 + 3] = 0.25 * R_1 * dt2
    V[O_P : O_P + 3, N_GYR_1 : N_GYR_1 + 3] = V[O_P : O_P + 3, N_GYR_0 : N_GYR_0 + 3]
    V[O_R : O_R + 3, N_GYR_0 : N_GYR_0 + 3] = 0.5 * I3 * dt
    V[O_R : O_R + 3, N_GYR_1 : N_GYR_1 + 3] = 0.5 * I3 * dt
    V[O_V : O_V + 3, N_ACC_0 : N_ACC_0 + 3] = 0.5 * R_0 * dt
    V[O_V : O_V + 3, N_GYR_0 : N_GYR_0 + 3] = -0.5 * R_1 @ a_1_x * dt * 0.5 * dt
    V[O_V : O_V + 3, N_ACC_1 : N_ACC_1 + 3] = 0.5 * R_1 * dt
    V[O_V : O_V + 3, N_GYR_1 : N_GYR_1 + 3] = V[O_V : O_V + 3, N_GYR_0 : N_GYR_0 + 3]
    V[O_BA : O_BA + 3, N_BA : N_BA + 3] = I3 * dt
    V[O_BG : O_BG + 3, N_BG : N_BG + 3] = I3 * dt

    return F, V


def midpoint_step(
    dt: float,
    acc_0: np.ndarray,
    gyr_0: np.ndarray,
    acc_1: np.ndarray,
    gyr_1: np.ndarray,
    state: NominalState,
    bias: BiasEstimate,
    jacobian: np.ndarray,
    covariance: np.ndarray,
    noise: np.ndarray,
) -> StepResult:
    """Run one integration step on the mean and the error state together.

    Args:
        dt: Interval between the two readings in seconds
        acc_0: Accelerometer reading at k (3,)
        gyr_0: Gyroscope reading at k (3,)
        acc_1: Accelerometer reading at k+1 (3,)
        gyr_1: Gyroscope reading at k+1 (3,)
        state: Increments at k
        bias: Bias linearization point
        jacobian: Accumulated Jacobian at k (15x15)
        covariance: Covariance at k (15x15)
        noise: Continuous noise matrix Q (18x18)

    Returns:
        StepResult at k+1; inputs are not modified
    """
    next_state = integrate_nominal(dt, acc_0, gyr_0, acc_1, gyr_1, state, bias)
    result_delta_q = orientation_step(dt, gyr_0, gyr_1, state.delta_q, bias)
    F, V = error_state_transition(
        dt, acc_0, gyr_0, acc_1, gyr_1, state.delta_q, result_delta_q, bias
    )

    return StepResult(
        state=next_state,
        jacobian=F @ jacobian,
        covariance=F @ covariance @ F.T + V @ noise @ V.T,
        F=F,
        V=V,
    )
