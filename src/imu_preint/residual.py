"""Residual between two navigation states and the preintegrated measurement.

The preintegrated increments are linearized around a bias estimate. When the
optimizer moves the bias by a small amount, the increments are corrected to
first order with the stored bias Jacobians instead of integrating again:

    q_corr = delta_q ⊗ deltaQ(dq/dbg · dbg)
    v_corr = delta_v + dv/dba · dba + dv/dbg · dbg
    p_corr = delta_p + dp/dba · dba + dp/dbg · dbg

Large bias changes degrade this correction; repropagate instead.
"""

from __future__ import annotations

import numpy as np

from .quaternion import Quaternion, delta_q
from .state import (
    ERROR_STATE_DIM,
    BiasEstimate,
    NavState,
    NominalState,
    StateOrder,
    block,
)

O_P, O_R, O_V, O_BA, O_BG = (
    StateOrder.P,
    StateOrder.R,
    StateOrder.V,
    StateOrder.BA,
    StateOrder.BG,
)


def correct_increments(
    state: NominalState,
    jacobian: np.ndarray,
    linearized_bias: BiasEstimate,
    ba: np.ndarray,
    bg: np.ndarray,
) -> NominalState:
    """First-order bias correction of the preintegrated increments.

    The corrected quaternion is left unnormalized.

    Args:
        state: Increments integrated with linearized_bias
        jacobian: Accumulated 15x15 Jacobian of the window
        linearized_bias: Bias the increments were integrated with
        ba: Accelerometer bias to correct to (3,)
        bg: Gyroscope bias to correct to (3,)

    Returns:
        Corrected increments (sum_dt unchanged)
    """
    dba = np.asarray(ba, dtype=np.float64).flatten() - linearized_bias.ba
    dbg = np.asarray(bg, dtype=np.float64).flatten() - linearized_bias.bg

    dp_dba = block(jacobian, O_P, O_BA)
    dp_dbg = block(jacobian, O_P, O_BG)
    dq_dbg = block(jacobian, O_R, O_BG)
    dv_dba = block(jacobian, O_V, O_BA)
    dv_dbg = block(jacobian, O_V, O_BG)

    return NominalState(
        delta_p=state.delta_p + dp_dba @ dba + dp_dbg @ dbg,
        delta_q=state.delta_q * delta_q(dq_dbg @ dbg),
        delta_v=state.delta_v + dv_dba @ dba + dv_dbg @ dbg,
        sum_dt=state.sum_dt,
    )


def preintegration_residual(
    state: NominalState,
    jacobian: np.ndarray,
    linearized_bias: BiasEstimate,
    gravity: np.ndarray,
    state_i: NavState,
    state_j: NavState,
) -> np.ndarray:
    """Compute the 15-dim residual between two navigation states.

    Blocks follow StateOrder: position, orientation, velocity, accel bias,
    gyro bias. The residual is zero when state_j is what the preintegrated
    motion predicts from state_i.

    Args:
        state: Increments of the window
        jacobian: Accumulated 15x15 Jacobian of the window
        linearized_bias: Bias the increments were integrated with
        gravity: Gravity vector in world frame (3,)
        state_i: Navigation state at the start of the window
        state_j: Navigation state at the end of the window

    Returns:
        Residual vector (15,)
    """
    corrected = correct_increments(
        state, jacobian, linearized_bias, state_i.bias_accel, state_i.bias_gyro
    )
    sum_dt = state.sum_dt
    qi_inv = state_i.orientation.inverse()

    residual = np.zeros(ERROR_STATE_DIM)
    residual[O_P : O_P + 3] = (
        qi_inv.rotate(
            0.5 * gravity * sum_dt * sum_dt
            + state_j.position
            - state_i.position
            - state_i.velocity * sum_dt
        )
        - corrected.delta_p
    )
    residual[O_R : O_R + 3] = (
        2.0 * (corrected.delta_q.inverse() * (qi_inv * state_j.orientation)).vec
    )
    residual[O_V : O_V + 3] = (
        qi_inv.rotate(gravity * sum_dt + state_j.velocity - state_i.velocity)
        - corrected.delta_v
    )
    residual[O_BA : O_BA + 3] = state_j.bias_accel - state_i.bias_accel
    residual[O_BG : O_BG + 3] = state_j.bias_gyro - state_i.bias_gyro
    return residual


def predict_state(
    state: NominalState,
    jacobian: np.ndarray,
    linearized_bias: BiasEstimate,
    gravity: np.ndarray,
    state_i: NavState,
) -> NavState:
    """Propagate a navigation state across the window.

    Uses the increments corrected to the biases of state_i. Biases are
    carried over unchanged.

    Args:
        state: Increments of the window
        jacobian: Accumulated 15x15 Jacobian of the window
        linearized_bias: Bias the increments were integrated with
        gravity: Gravity vector in world frame (3,)
        state_i: Navigation state at the start of the window

    Returns:
        Predicted navigation state at the end of the window
    """
    corrected = correct_increments(
        state, jacobian, linearized_bias, state_i.bias_accel, state_i.bias_gyro
    )
    sum_dt = state.sum_dt
    qi: Quaternion = state_i.orientation

    return NavState(
        position=(
            state_i.position
            + state_i.velocity * sum_dt
            - 0.5 * gravity * sum_dt * sum_dt
            + qi.rotate(corrected.delta_p)
        ),
        orientation=(qi * corrected.delta_q).normalized(),
        velocity=state_i.velocity - gravity * sum_dt + qi.rotate(corrected.delta_v),
        bias_accel=state_i.bias_accel.copy(),
        bias_gyro=state_i.bias_gyro.copy(),
    )
