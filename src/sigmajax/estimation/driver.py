"""Predict/update driver for sigma-point filters.

:class:`SigmaPointFilter` owns the current :class:`FilterState` and
sequences the :class:`~sigmajax.estimation.core.SigmaPointCore`
operations into the familiar ``predict`` / ``update`` pair. Failures
raised by the core (indefinite covariances, bad spread factor, errors
from the user models) propagate unchanged and leave the stored state at
the last completed phase.
"""

from __future__ import annotations

import logging

import jax.numpy as jnp
from jax.typing import ArrayLike

from sigmajax.config import get_dtype
from sigmajax.estimation._types import FilterResult, FilterState
from sigmajax.estimation.core import SigmaPointCore
from sigmajax.estimation.sigma import ObservationFn, ProcessFn
from sigmajax.estimation.variant import SigmaVariant

logger = logging.getLogger(__name__)


class SigmaPointFilter:
    """Sequential sigma-point Kalman filter.

    Args:
        variant: Filter variant, e.g.
            :class:`~sigmajax.estimation.ukf.UnscentedVariant`.
        process_fn: Process model ``f(x, u, w, dt) -> x_next``.
        observation_fn: Observation model ``h(x, v) -> z``.
        state: Initial state ``(nx,)``.
        covar: Initial state covariance ``(nx, nx)``.
        proc_covar: Process-noise covariance ``(nx, nx)``.
        obs_covar: Observation-noise covariance ``(nz, nz)``.

    Examples:
        ```python
        import jax.numpy as jnp
        from sigmajax.estimation import SigmaLayout, SigmaPointFilter, UnscentedVariant

        def f(x, u, w, dt):
            return x + w

        def h(x, v):
            return x + v

        variant = UnscentedVariant(SigmaLayout(nx=1, nu=0, nz=1))
        kf = SigmaPointFilter(
            variant, f, h,
            state=jnp.zeros(1),
            covar=jnp.eye(1),
            proc_covar=jnp.eye(1) * 0.01,
            obs_covar=jnp.eye(1) * 0.1,
        )
        result = kf.step(jnp.array([0.3]))
        ```
    """

    def __init__(
        self,
        variant: SigmaVariant,
        process_fn: ProcessFn,
        observation_fn: ObservationFn,
        state: ArrayLike,
        covar: ArrayLike,
        proc_covar: ArrayLike,
        obs_covar: ArrayLike,
    ):
        dtype = get_dtype()
        x = jnp.asarray(state, dtype=dtype)
        if x.shape != (variant.layout.nx,):
            raise ValueError(f"state must have shape ({variant.layout.nx},), got {x.shape}")

        self.core = SigmaPointCore(variant, process_fn, observation_fn, covar, proc_covar, obs_covar)
        self.state = FilterState(x=x, P=jnp.asarray(covar, dtype=dtype))

    def predict(self, control: ArrayLike | None = None, dt: float = 1.0) -> FilterState:
        """Propagate the filter state forward one timestep.

        Args:
            control: Control vector ``(nu,)``. ``None`` means zeros.
            dt: Time increment passed to the process model.

        Returns:
            FilterState: Predicted state and covariance.
        """
        x_pred = self.core.process(self.state.x, self.state.P, control, dt)
        self.state = FilterState(x=x_pred, P=self.core.process_covariance())
        return self.state

    def update(self, z: ArrayLike) -> FilterResult:
        """Incorporate a measurement into the predicted filter state.

        Args:
            z: Measurement vector ``(nz,)``.

        Returns:
            FilterResult: Updated state, innovation, innovation covariance,
                and Kalman gain.
        """
        z = jnp.asarray(z, dtype=get_dtype())
        nz = self.core.layout.nz
        if z.shape != (nz,):
            raise ValueError(f"measurement must have shape ({nz},), got {z.shape}")

        z_pred = self.core.observe(self.state.x, self.state.P)
        S = self.core.innovation_covariance()
        K = self.core.kalman_gain()

        innovation = z - z_pred
        x_upd = self.state.x + K @ innovation
        P_upd = self.core.update_covariance()
        self.state = FilterState(x=x_upd, P=P_upd)

        logger.debug("Update: |innovation|=%g", float(jnp.linalg.norm(innovation)))
        return FilterResult(
            state=self.state,
            innovation=innovation,
            innovation_covariance=S,
            kalman_gain=K,
        )

    def step(self, z: ArrayLike, control: ArrayLike | None = None, dt: float = 1.0) -> FilterResult:
        """Run :meth:`predict` followed by :meth:`update`."""
        self.predict(control, dt)
        return self.update(z)
