"""Type definitions for sigma-point state estimation.

Provides the data types shared by the sigma-point core, the filter
variants and the filter-cycle driver:

- :class:`SigmaLayout`: Dimensions of one filter instance and the index
  arithmetic that maps the augmented sigma-point array onto its state,
  process-noise and observation-noise parts.
- :class:`AugmentedState`: Augmented mean vector and its block-diagonal
  lower Cholesky factor.
- :class:`FilterState`: Current filter state containing the state estimate
  and covariance matrix.
- :class:`UKFConfig`: Scaled unscented transform tuning parameters.
- :class:`FilterResult`: Output of a filter update step, containing the
  updated state plus diagnostic information for filter tuning.

All types are :class:`~typing.NamedTuple` instances, which JAX treats as
pytrees automatically.
"""

from __future__ import annotations

from typing import NamedTuple

from jax import Array


class SigmaLayout(NamedTuple):
    """Dimensions of a sigma-point filter and views into its sigma points.

    The augmented vector stacks the state, a zero-mean process-noise
    channel of the same size as the state, and a zero-mean observation-noise
    channel::

        [ x (nx) | w (nx) | v (nz) ]

    so the augmented dimension is ``L = 2 * nx + nz`` and ``r = 2L + 1``
    sigma points are drawn per regeneration. Sigma points are stored one
    per row, giving an augmented sigma-point array of shape ``(r, L)``.

    The accessor methods return slices of the array they are given. They
    are never stored on their own, so the state, process-noise and
    observation-noise sigma points can never drift out of sync with (or be
    resized apart from) the augmented array they come from.

    Attributes:
        nx: State dimension.
        nu: Control dimension (may be zero).
        nz: Observation dimension.
    """

    nx: int
    nu: int
    nz: int

    @property
    def L(self) -> int:
        """Augmented dimension ``2 * nx + nz``."""
        return 2 * self.nx + self.nz

    @property
    def r(self) -> int:
        """Number of sigma points ``2L + 1``."""
        return 2 * self.L + 1

    def state(self, points: Array) -> Array:
        """State sigma points, shape ``(r, nx)``."""
        return points[:, : self.nx]

    def process_noise(self, points: Array) -> Array:
        """Process-noise sigma points, shape ``(r, nx)``."""
        return points[:, self.nx : 2 * self.nx]

    def observation_noise(self, points: Array) -> Array:
        """Observation-noise sigma points, shape ``(r, nz)``."""
        return points[:, 2 * self.nx : self.L]

    def state_block(self, matrix: Array) -> Array:
        """State covariance factor block of an ``(L, L)`` matrix."""
        return matrix[: self.nx, : self.nx]

    def process_noise_block(self, matrix: Array) -> Array:
        """Process-noise covariance factor block of an ``(L, L)`` matrix."""
        return matrix[self.nx : 2 * self.nx, self.nx : 2 * self.nx]

    def observation_noise_block(self, matrix: Array) -> Array:
        """Observation-noise covariance factor block of an ``(L, L)`` matrix."""
        return matrix[2 * self.nx : self.L, 2 * self.nx : self.L]


class AugmentedState(NamedTuple):
    """Augmented mean and its lower Cholesky factor.

    Attributes:
        vector: Augmented vector ``[x; 0; 0]`` of shape ``(L,)``. The noise
            channels are zero-mean; their uncertainty lives entirely in
            ``factor``.
        factor: Block-diagonal lower-triangular matrix of shape ``(L, L)``
            holding the state, process-noise and observation-noise
            covariance factors on its diagonal blocks and zeros elsewhere.
    """

    vector: Array
    factor: Array


class FilterState(NamedTuple):
    """State of a Kalman filter.

    Holds the current state estimate and error covariance matrix. Returned
    by :meth:`SigmaPointFilter.predict` and available as the ``state``
    field of :class:`FilterResult`.

    Attributes:
        x: State estimate vector of shape ``(n,)``.
        P: Error covariance matrix of shape ``(n, n)``. Must be symmetric
            positive definite whenever sigma points are drawn from it.
    """

    x: Array
    P: Array


class UKFConfig(NamedTuple):
    """Tuning parameters of the scaled unscented transform.

    Controls the sigma point spread and weighting using the scaled unscented
    transform (Van der Merwe). Default values ``alpha=1.0``, ``beta=2.0``,
    ``kappa=0.0`` produce unit-spread sigma points with well-conditioned
    weights, robust for float32 across all state dimensions.

    Attributes:
        alpha: Spread of sigma points around the mean. Default: 1.0.
        beta: Prior knowledge of the state distribution. ``beta=2.0``
            is optimal for Gaussian distributions. Default: 2.0.
        kappa: Secondary scaling parameter. Default: 0.0.
    """

    alpha: float = 1.0
    beta: float = 2.0
    kappa: float = 0.0


class FilterResult(NamedTuple):
    """Result of a filter measurement update step.

    Attributes:
        state: Updated :class:`FilterState` after incorporating the
            measurement.
        innovation: Measurement residual ``z - z_pred`` of shape ``(m,)``.
        innovation_covariance: Innovation covariance ``S`` of shape
            ``(m, m)``. The normalized innovation squared
            ``innovation.T @ S^{-1} @ innovation`` should follow a
            chi-squared distribution with ``m`` degrees of freedom.
        kalman_gain: Kalman gain matrix ``K`` of shape ``(n, m)``.
    """

    state: FilterState
    innovation: Array
    innovation_covariance: Array
    kalman_gain: Array
