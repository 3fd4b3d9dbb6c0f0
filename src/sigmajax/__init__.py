"""
sigmajax is a small sigma-point (unscented) Kalman filter core implemented in JAX.
"""

from .config import set_dtype, get_dtype, get_weight_tolerance

from .estimation import (
    SigmaPointError,
    NonPositiveDefiniteCovariance,
    InvalidSpreadFactor,
    InvalidSigmaWeights,
    SigmaLayout,
    FilterState,
    FilterResult,
    UKFConfig,
    UnscentedVariant,
    SquareRootUnscentedVariant,
    SigmaPointCore,
    SigmaPointFilter,
)

__all__ = [
    # Config
    "set_dtype",
    "get_dtype",
    "get_weight_tolerance",
    # Errors
    "SigmaPointError",
    "NonPositiveDefiniteCovariance",
    "InvalidSpreadFactor",
    "InvalidSigmaWeights",
    # Estimation
    "SigmaLayout",
    "FilterState",
    "FilterResult",
    "UKFConfig",
    "UnscentedVariant",
    "SquareRootUnscentedVariant",
    "SigmaPointCore",
    "SigmaPointFilter",
]
