"""Square-root Unscented Kalman Filter (SR-UKF) covariance algebra.

Implements the :class:`~sigmajax.estimation.variant.SigmaVariant` hooks
with the square-root formulation: covariances are assembled as Cholesky
factors, by QR of the weighted off-centre deviations followed by a rank-1
update (or downdate, when the centre covariance weight is negative) with
the centre deviation. The posterior factor is obtained by successive
rank-1 downdates of the prior factor with the columns of ``K S_y``.

The hooks return full covariances, ``C @ C.T``, because the sigma-point
core re-factorizes the state covariance each time it draws sigma points.
A downdate that loses positive definiteness raises
:class:`~sigmajax.estimation.NonPositiveDefiniteCovariance`; it is never
clamped.
"""

from __future__ import annotations

import math

from jax import Array
from jax.scipy.linalg import cho_solve

from sigmajax.estimation.linalg import cholesky_update, lower_cholesky, qr_factor
from sigmajax.estimation.variant import ScaledUnscentedVariant, weighted_covariance


class SquareRootUnscentedVariant(ScaledUnscentedVariant):
    """Square-root augmented unscented Kalman filter."""

    def _factor(self, dev: Array) -> Array:
        C = qr_factor(math.sqrt(self.wci) * dev[1:])
        if self.wc0 == 0.0:
            return C
        sign = 1.0 if self.wc0 > 0.0 else -1.0
        return cholesky_update(C, math.sqrt(abs(self.wc0)) * dev[0], sign=sign)

    def process_covariance(self, state_points: Array, state_mean: Array, chol_covar: Array) -> Array:
        C = self._factor(state_points - state_mean[None, :])
        return C @ C.T

    def innovation_covariance(self, obs_points: Array, obs_mean: Array, chol_obs_covar: Array) -> Array:
        C = self._factor(obs_points - obs_mean[None, :])
        return C @ C.T

    def kalman_gain(
        self,
        innovation_covar: Array,
        state_points: Array,
        state_mean: Array,
        obs_points: Array,
        obs_mean: Array,
    ) -> tuple[Array, Array]:
        x_dev = state_points - state_mean[None, :]
        z_dev = obs_points - obs_mean[None, :]
        Pxz = weighted_covariance(x_dev, z_dev, self.wc0, self.wci)

        Sy = lower_cholesky(innovation_covar, name="innovation covariance")
        K = cho_solve((Sy, True), Pxz.T).T
        return K, Pxz

    def update_covariance(self, gain: Array, innovation_covar: Array, chol_covar: Array) -> Array:
        Sy = lower_cholesky(innovation_covar, name="innovation covariance")
        U = gain @ Sy

        C = chol_covar
        for j in range(U.shape[1]):
            C = cholesky_update(C, U[:, j], sign=-1.0)
        return C @ C.T
