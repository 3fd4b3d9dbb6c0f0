"""Hook surface implemented by concrete sigma-point filter variants.

The sigma-point core only knows how to draw sigma points and reduce them
to weighted means. Everything that differs between variants, from the
spread factor and weights to the four covariance/gain formulas, is
supplied by an object satisfying :class:`SigmaVariant`. The protocol is
checked statically; the core never inspects the variant's type.

:class:`ScaledUnscentedVariant` provides the Van der Merwe scaled
weights shared by :class:`~sigmajax.estimation.ukf.UnscentedVariant` and
:class:`~sigmajax.estimation.srukf.SquareRootUnscentedVariant`.
"""

from __future__ import annotations

import logging
from typing import NamedTuple, Protocol

import jax.numpy as jnp
from jax import Array

from sigmajax.config import get_weight_tolerance
from sigmajax.estimation._errors import InvalidSigmaWeights, InvalidSpreadFactor
from sigmajax.estimation._types import SigmaLayout, UKFConfig

logger = logging.getLogger(__name__)

_DEFAULT_UKF_CONFIG = UKFConfig()


class SigmaVariant(Protocol):
    """Operations a filter variant supplies to the sigma-point core.

    Attributes:
        layout: Dimensions of the filter the variant was built for.
        wm0: Mean weight of the centre sigma point.
        wmi: Mean weight shared by the ``2L`` symmetric sigma points.
            Must satisfy ``wm0 + 2L * wmi == 1``.
        gamma: Non-negative spread factor. Sigma points sit
            ``sqrt(gamma)`` factor columns away from the mean.
    """

    @property
    def layout(self) -> SigmaLayout: ...

    @property
    def wm0(self) -> float: ...

    @property
    def wmi(self) -> float: ...

    @property
    def gamma(self) -> float: ...

    def process_covariance(self, state_points: Array, state_mean: Array, chol_covar: Array) -> Array:
        """Predicted state covariance from propagated state sigma points."""
        ...

    def innovation_covariance(self, obs_points: Array, obs_mean: Array, chol_obs_covar: Array) -> Array:
        """Innovation covariance from observation sigma points."""
        ...

    def kalman_gain(
        self,
        innovation_covar: Array,
        state_points: Array,
        state_mean: Array,
        obs_points: Array,
        obs_mean: Array,
    ) -> tuple[Array, Array]:
        """Kalman gain and the state/observation cross covariance."""
        ...

    def update_covariance(self, gain: Array, innovation_covar: Array, chol_covar: Array) -> Array:
        """Posterior state covariance from the gain and the prior factor."""
        ...


class ScaledWeights(NamedTuple):
    """Weights and spread factor of the scaled unscented transform.

    Attributes:
        wm0: Centre mean weight ``lam / (L + lam)``.
        wmi: Off-centre mean weight ``1 / (2 (L + lam))``.
        wc0: Centre covariance weight ``wm0 + 1 - alpha^2 + beta``.
        wci: Off-centre covariance weight, equal to ``wmi``.
        gamma: Spread factor ``L + lam``.
    """

    wm0: float
    wmi: float
    wc0: float
    wci: float
    gamma: float


def check_weights(wm0: float, wmi: float, L: int) -> None:
    """Check that mean weights sum to one over ``2L + 1`` sigma points.

    The tolerance from :func:`~sigmajax.config.get_weight_tolerance` is
    scaled by the total weight magnitude ``|wm0| + 2L |wmi|``, which grows
    large for small ``alpha``.

    Raises:
        InvalidSigmaWeights: If ``|wm0 + 2L * wmi - 1|`` exceeds the
            scaled tolerance.
    """
    total = wm0 + 2 * L * wmi
    scale = max(1.0, abs(wm0) + 2 * L * abs(wmi))
    if abs(total - 1.0) > get_weight_tolerance() * scale:
        raise InvalidSigmaWeights(
            f"Mean weights must sum to 1, got wm0 + 2L*wmi = {total} (wm0={wm0}, wmi={wmi}, L={L})"
        )


def scaled_weights(L: int, config: UKFConfig) -> ScaledWeights:
    """Compute Van der Merwe scaled unscented transform weights.

    ``lam = alpha^2 (L + kappa) - L`` and ``gamma = L + lam``.

    Args:
        L: Augmented dimension.
        config: Transform tuning parameters.

    Returns:
        ScaledWeights: Mean/covariance weights and spread factor.

    Raises:
        InvalidSpreadFactor: If ``gamma`` is not positive.
        InvalidSigmaWeights: If the mean weights do not sum to one.
    """
    alpha, beta, kappa = config.alpha, config.beta, config.kappa
    lam = alpha**2 * (L + kappa) - L
    gamma = L + lam
    if not gamma > 0.0:
        raise InvalidSpreadFactor(
            f"alpha^2 (L + kappa) must be positive, got {gamma} (alpha={alpha}, kappa={kappa}, L={L})"
        )

    wm0 = lam / gamma
    wmi = 1.0 / (2.0 * gamma)
    check_weights(wm0, wmi, L)
    return ScaledWeights(wm0=wm0, wmi=wmi, wc0=wm0 + (1.0 - alpha**2 + beta), wci=wmi, gamma=gamma)


def weighted_covariance(dev_a: Array, dev_b: Array, wc0: float, wci: float) -> Array:
    """Weighted outer-product sum ``sum_i wc_i a_i b_i^T`` over sigma deviations.

    Args:
        dev_a: Deviations of shape ``(2L + 1, n)``.
        dev_b: Deviations of shape ``(2L + 1, m)``.
        wc0: Covariance weight of the centre row.
        wci: Covariance weight shared by the other rows.

    Returns:
        Matrix of shape ``(n, m)``.
    """
    return wc0 * jnp.outer(dev_a[0], dev_b[0]) + wci * (dev_a[1:].T @ dev_b[1:])


class ScaledUnscentedVariant:
    """Common base for variants using the scaled unscented weights.

    Subclasses implement the four covariance hooks of :class:`SigmaVariant`.

    Args:
        layout: Dimensions of the filter this variant serves.
        config: Transform tuning parameters. Default: ``UKFConfig()``.
    """

    def __init__(self, layout: SigmaLayout, config: UKFConfig = _DEFAULT_UKF_CONFIG):
        self.layout = layout
        self.config = config
        self.weights = scaled_weights(layout.L, config)
        logger.debug(
            "%s: L=%d wm0=%g wmi=%g wc0=%g gamma=%g",
            type(self).__name__,
            layout.L,
            self.weights.wm0,
            self.weights.wmi,
            self.weights.wc0,
            self.weights.gamma,
        )

    @property
    def wm0(self) -> float:
        return self.weights.wm0

    @property
    def wmi(self) -> float:
        return self.weights.wmi

    @property
    def wc0(self) -> float:
        return self.weights.wc0

    @property
    def wci(self) -> float:
        return self.weights.wci

    @property
    def gamma(self) -> float:
        return self.weights.gamma

    def __repr__(self) -> str:
        return f"{type(self).__name__}(layout={self.layout!r}, config={self.config!r})"
