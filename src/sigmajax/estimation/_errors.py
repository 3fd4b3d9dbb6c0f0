"""Exceptions raised by the sigma-point filter core.

All errors derive from :class:`SigmaPointError`. The numerical and
configuration errors also derive from :class:`ValueError`, so callers that
only care about "bad input" can catch that instead.

Exceptions raised by user process or observation functions are never
wrapped: they propagate to the caller exactly as raised.
"""

from __future__ import annotations


class SigmaPointError(Exception):
    """Base class for sigma-point filter errors."""


class NonPositiveDefiniteCovariance(SigmaPointError, ValueError):
    """A covariance matrix is not symmetric positive-definite.

    Raised when a Cholesky factorization, or a rank-1 downdate of a
    Cholesky factor, produces non-finite entries. The step that raised it
    must be treated as failed: there is no fallback factorization.
    """


class InvalidSpreadFactor(SigmaPointError, ValueError):
    """The sigma-point spread factor ``gamma`` is negative or not finite."""


class InvalidSigmaWeights(SigmaPointError, ValueError):
    """The mean weights of a filter variant do not sum to one."""
