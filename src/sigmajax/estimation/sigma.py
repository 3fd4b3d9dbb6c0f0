"""Augmented sigma-point generation and propagation.

Implements the variant-independent half of a sigma-point Kalman filter:

1. :func:`augment` stacks the state with zero-mean process-noise and
   observation-noise channels and assembles the block-diagonal lower
   Cholesky factor of the augmented covariance.
2. :func:`generate_sigma_points` draws the ``2L + 1`` symmetric sigma
   points from the augmented mean and factor.
3. :func:`propagate_process` and :func:`propagate_observation` push the
   relevant rows of every sigma point through the user models via
   ``jax.vmap`` and reduce them to a weighted mean.

Covariances are deliberately not computed here; that algebra differs
between filter variants and lives behind
:class:`~sigmajax.estimation.variant.SigmaVariant`.
"""

from __future__ import annotations

import math
from collections.abc import Callable

import jax
import jax.numpy as jnp
from jax import Array
from jax.scipy.linalg import block_diag
from jax.typing import ArrayLike

from sigmajax.config import get_dtype
from sigmajax.estimation._errors import InvalidSpreadFactor
from sigmajax.estimation._types import AugmentedState, SigmaLayout
from sigmajax.estimation.linalg import lower_cholesky

ProcessFn = Callable[[Array, Array, Array, float], Array]
ObservationFn = Callable[[Array, Array], Array]


def augment(
    layout: SigmaLayout,
    state: ArrayLike,
    covar: ArrayLike,
    chol_proc_covar: ArrayLike,
    chol_obs_covar: ArrayLike,
) -> AugmentedState:
    """Build the augmented mean and its block-diagonal Cholesky factor.

    The state covariance is factorized on every call; the two noise
    factors are expected to be precomputed, since the noise covariances
    are constant for the life of a filter.

    Args:
        layout: Filter dimensions.
        state: State vector of shape ``(nx,)``.
        covar: State covariance of shape ``(nx, nx)``. Only its lower
            triangle is read.
        chol_proc_covar: Lower factor of the process-noise covariance,
            shape ``(nx, nx)``.
        chol_obs_covar: Lower factor of the observation-noise covariance,
            shape ``(nz, nz)``.

    Returns:
        AugmentedState: ``vector = [x; 0; 0]`` of shape ``(L,)`` and
            ``factor = blockdiag(chol(P), chol(Q), chol(R))`` of shape
            ``(L, L)``.

    Raises:
        NonPositiveDefiniteCovariance: If *covar* cannot be factorized.
    """
    dtype = get_dtype()
    x = jnp.asarray(state, dtype=dtype)
    if x.shape != (layout.nx,):
        raise ValueError(f"state must have shape ({layout.nx},), got {x.shape}")

    chol_covar = lower_cholesky(covar, name="state covariance")

    vector = jnp.concatenate([x, jnp.zeros(layout.nx + layout.nz, dtype=dtype)])
    factor = block_diag(
        chol_covar,
        jnp.asarray(chol_proc_covar, dtype=dtype),
        jnp.asarray(chol_obs_covar, dtype=dtype),
    )
    return AugmentedState(vector=vector, factor=factor)


def generate_sigma_points(augmented: AugmentedState, gamma: float) -> Array:
    """Draw the symmetric sigma points of an augmented distribution.

    With ``a`` the augmented vector, ``S`` its factor and ``L`` its
    dimension, the sigma points are::

        X_0     = a
        X_i     = a + sqrt(gamma) * S[:, i-1]     i = 1..L
        X_{i+L} = a - sqrt(gamma) * S[:, i-1]     i = 1..L

    so ``X_i + X_{i+L} == 2a`` for every ``i``.

    Args:
        augmented: Augmented mean and factor from :func:`augment`.
        gamma: Spread factor, must be non-negative.

    Returns:
        Sigma points of shape ``(2L + 1, L)``, one per row.

    Raises:
        InvalidSpreadFactor: If *gamma* is negative or not finite.
    """
    gamma = float(gamma)
    if not math.isfinite(gamma) or gamma < 0.0:
        raise InvalidSpreadFactor(f"Sigma-point spread factor must be non-negative, got {gamma}")

    a = augmented.vector[None, :]
    spread = math.sqrt(gamma) * augmented.factor.T
    return jnp.concatenate([a, a + spread, a - spread], axis=0)


def weighted_mean(points: Array, wm0: float, wmi: float) -> Array:
    """Weighted mean of sigma points sharing one off-centre weight.

    Args:
        points: Sigma points of shape ``(2L + 1, n)``.
        wm0: Weight of the centre point.
        wmi: Weight shared by the ``2L`` symmetric points.

    Returns:
        Mean of shape ``(n,)``.
    """
    return wm0 * points[0] + wmi * jnp.sum(points[1:], axis=0)


def propagate_process(
    layout: SigmaLayout,
    points: Array,
    process_fn: ProcessFn,
    control: Array,
    dt: float,
    wm0: float,
    wmi: float,
) -> tuple[Array, Array]:
    """Propagate sigma points through the process model.

    Evaluates ``process_fn(x_i, control, w_i, dt)`` for every sigma point,
    where ``x_i`` and ``w_i`` are the state and process-noise rows of
    sigma point ``i``. The results replace the state rows of *points*:
    the prior state sigma points are not needed again in the same step.

    Args:
        layout: Filter dimensions.
        points: Augmented sigma points of shape ``(r, L)``.
        process_fn: Process model ``f(x, u, w, dt) -> x_next``. Applied to
            each sigma point via ``jax.vmap``.
        control: Control vector of shape ``(nu,)``.
        dt: Time increment.
        wm0: Centre mean weight.
        wmi: Off-centre mean weight.

    Returns:
        A tuple ``(points, x_pred)`` of the augmented sigma points with
        propagated state rows and the predicted state mean ``(nx,)``.
    """
    propagated = jax.vmap(process_fn, in_axes=(0, None, 0, None))(
        layout.state(points), control, layout.process_noise(points), dt
    )
    propagated = jnp.asarray(propagated, dtype=points.dtype)
    if propagated.shape != (layout.r, layout.nx):
        raise ValueError(
            f"process_fn must return shape ({layout.nx},) per sigma point, "
            f"got {propagated.shape[1:]}"
        )

    points = points.at[:, : layout.nx].set(propagated)
    return points, weighted_mean(propagated, wm0, wmi)


def propagate_observation(
    layout: SigmaLayout,
    points: Array,
    observation_fn: ObservationFn,
    wm0: float,
    wmi: float,
) -> tuple[Array, Array]:
    """Propagate sigma points through the observation model.

    Args:
        layout: Filter dimensions.
        points: Augmented sigma points of shape ``(r, L)``.
        observation_fn: Observation model ``h(x, v) -> z``, where ``v`` is
            the observation-noise row of the sigma point.
        wm0: Centre mean weight.
        wmi: Off-centre mean weight.

    Returns:
        A tuple ``(obs_points, z_pred)`` of the observation sigma points
        ``(r, nz)`` and the predicted observation mean ``(nz,)``.
    """
    obs_points = jax.vmap(observation_fn)(layout.state(points), layout.observation_noise(points))
    obs_points = jnp.asarray(obs_points, dtype=points.dtype)
    if obs_points.shape != (layout.r, layout.nz):
        raise ValueError(
            f"observation_fn must return shape ({layout.nz},) per sigma point, "
            f"got {obs_points.shape[1:]}"
        )

    return obs_points, weighted_mean(obs_points, wm0, wmi)
