"""Sigma-point state estimation.

Provides the sigma-point core shared by augmented unscented Kalman filter
variants, two concrete variants, and a predict/update driver.

Available components:

- :class:`SigmaLayout` -- Filter dimensions and sigma-point row views
- :class:`AugmentedState` -- Augmented mean and Cholesky factor
- :class:`FilterState` -- Filter state (estimate and covariance)
- :class:`UKFConfig` -- Scaled unscented transform configuration
- :class:`FilterResult` -- Update result with diagnostics
- :func:`augment` -- Build the augmented mean and factor
- :func:`generate_sigma_points` -- Draw ``2L + 1`` symmetric sigma points
- :func:`propagate_process` -- Push sigma points through the process model
- :func:`propagate_observation` -- Push sigma points through the observation model
- :class:`SigmaVariant` -- Hook surface implemented by filter variants
- :class:`UnscentedVariant` -- Standard augmented UKF covariance algebra
- :class:`SquareRootUnscentedVariant` -- Square-root UKF covariance algebra
- :class:`SigmaPointCore` -- Per-instance sigma-point workspace and hook wiring
- :class:`SigmaPointFilter` -- Sequential predict/update driver
"""

from sigmajax.estimation._errors import (
    InvalidSigmaWeights,
    InvalidSpreadFactor,
    NonPositiveDefiniteCovariance,
    SigmaPointError,
)
from sigmajax.estimation._types import (
    AugmentedState,
    FilterResult,
    FilterState,
    SigmaLayout,
    UKFConfig,
)
from sigmajax.estimation.core import SigmaPointCore
from sigmajax.estimation.driver import SigmaPointFilter
from sigmajax.estimation.linalg import cholesky_update, lower_cholesky, qr_factor
from sigmajax.estimation.sigma import (
    augment,
    generate_sigma_points,
    propagate_observation,
    propagate_process,
    weighted_mean,
)
from sigmajax.estimation.srukf import SquareRootUnscentedVariant
from sigmajax.estimation.ukf import UnscentedVariant
from sigmajax.estimation.variant import (
    ScaledUnscentedVariant,
    ScaledWeights,
    SigmaVariant,
    check_weights,
    scaled_weights,
    weighted_covariance,
)

__all__ = [
    # Errors
    "SigmaPointError",
    "NonPositiveDefiniteCovariance",
    "InvalidSpreadFactor",
    "InvalidSigmaWeights",
    # Types
    "SigmaLayout",
    "AugmentedState",
    "FilterState",
    "UKFConfig",
    "FilterResult",
    # Linear algebra
    "lower_cholesky",
    "cholesky_update",
    "qr_factor",
    # Sigma points
    "augment",
    "generate_sigma_points",
    "weighted_mean",
    "propagate_process",
    "propagate_observation",
    # Variants
    "SigmaVariant",
    "ScaledWeights",
    "ScaledUnscentedVariant",
    "scaled_weights",
    "check_weights",
    "weighted_covariance",
    "UnscentedVariant",
    "SquareRootUnscentedVariant",
    # Core and driver
    "SigmaPointCore",
    "SigmaPointFilter",
]
