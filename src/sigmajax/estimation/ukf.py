"""Augmented Unscented Kalman Filter (UKF) covariance algebra.

Implements the :class:`~sigmajax.estimation.variant.SigmaVariant` hooks
of the standard augmented UKF. Process and observation noise are carried
by the augmented sigma points, so the predicted and innovation
covariances are plain weighted outer-product sums with no additive
``Q`` or ``R`` term.
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array

from sigmajax.estimation.variant import ScaledUnscentedVariant, weighted_covariance


class UnscentedVariant(ScaledUnscentedVariant):
    """Standard augmented unscented Kalman filter.

    Examples:
        ```python
        from sigmajax.estimation import SigmaLayout, UKFConfig, UnscentedVariant

        variant = UnscentedVariant(SigmaLayout(nx=2, nu=0, nz=1), UKFConfig(alpha=0.5))
        ```
    """

    def process_covariance(self, state_points: Array, state_mean: Array, chol_covar: Array) -> Array:
        """Weighted outer-product sum of propagated state deviations.

        ``chol_covar`` (the prior factor) is not needed by this variant.
        """
        dev = state_points - state_mean[None, :]
        return weighted_covariance(dev, dev, self.wc0, self.wci)

    def innovation_covariance(self, obs_points: Array, obs_mean: Array, chol_obs_covar: Array) -> Array:
        """Weighted outer-product sum of observation deviations."""
        dev = obs_points - obs_mean[None, :]
        return weighted_covariance(dev, dev, self.wc0, self.wci)

    def kalman_gain(
        self,
        innovation_covar: Array,
        state_points: Array,
        state_mean: Array,
        obs_points: Array,
        obs_mean: Array,
    ) -> tuple[Array, Array]:
        """Kalman gain ``K = Pxz S^{-1}`` and cross covariance ``Pxz``."""
        x_dev = state_points - state_mean[None, :]
        z_dev = obs_points - obs_mean[None, :]
        Pxz = weighted_covariance(x_dev, z_dev, self.wc0, self.wci)

        K = jnp.linalg.solve(innovation_covar, Pxz.T).T
        return K, Pxz

    def update_covariance(self, gain: Array, innovation_covar: Array, chol_covar: Array) -> Array:
        """Posterior covariance ``P - K S K^T`` with ``P`` rebuilt from its factor."""
        return chol_covar @ chol_covar.T - gain @ innovation_covar @ gain.T
