"""Cholesky factor helpers for sigma-point filters.

Every covariance that drives sigma points is handled through its lower
Cholesky factor ``C`` (``C @ C.T == P``). JAX's ``cholesky`` reports an
indefinite input by returning NaNs instead of raising, so the helpers
here inspect the factor and raise
:class:`~sigmajax.estimation.NonPositiveDefiniteCovariance` instead of
letting NaNs leak into the sigma points.

The finiteness check needs concrete values, so these helpers run eagerly
(user model functions are still traced through ``jax.vmap``).
"""

from __future__ import annotations

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from sigmajax.config import get_dtype
from sigmajax.estimation._errors import NonPositiveDefiniteCovariance


def _require_finite(factor: Array, name: str) -> None:
    if not bool(jnp.all(jnp.isfinite(factor))):
        raise NonPositiveDefiniteCovariance(
            f"{name} is not symmetric positive-definite (Cholesky factor has non-finite entries)"
        )


def lower_cholesky(matrix: ArrayLike, name: str = "covariance") -> Array:
    """Lower Cholesky factor of a symmetric positive-definite matrix.

    Only the lower triangle of *matrix* is read; the strict upper triangle
    is replaced by the transpose of the strict lower triangle before
    factorizing.

    Args:
        matrix: Square matrix of shape ``(n, n)``.
        name: Name used in error messages.

    Returns:
        Lower-triangular factor ``C`` of shape ``(n, n)``.

    Raises:
        ValueError: If *matrix* is not square.
        NonPositiveDefiniteCovariance: If the factorization fails.
    """
    A = jnp.asarray(matrix, dtype=get_dtype())
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise ValueError(f"{name} must be a square matrix, got shape {A.shape}")

    sym = jnp.tril(A) + jnp.tril(A, -1).T
    factor = jnp.linalg.cholesky(sym, symmetrize_input=False)
    _require_finite(factor, name)
    return factor


def cholesky_update(factor: ArrayLike, vector: ArrayLike, sign: float = 1.0) -> Array:
    """Rank-1 update or downdate of a lower Cholesky factor.

    Returns ``C'`` with ``C' @ C'.T == C @ C.T + sign * v v^T``.

    Args:
        factor: Lower-triangular factor ``C`` of shape ``(n, n)``.
        vector: Update vector ``v`` of shape ``(n,)``.
        sign: ``+1.0`` for an update, ``-1.0`` for a downdate.

    Returns:
        Updated lower-triangular factor of shape ``(n, n)``.

    Raises:
        ValueError: If *sign* is not ``+1`` or ``-1``.
        NonPositiveDefiniteCovariance: If a downdate makes the matrix
            indefinite.
    """
    if sign not in (1.0, -1.0):
        raise ValueError(f"sign must be +1 or -1, got {sign}")

    dtype = get_dtype()
    C = jnp.asarray(factor, dtype=dtype)
    x = jnp.asarray(vector, dtype=dtype)
    n = x.shape[0]

    for k in range(n):
        ckk = C[k, k]
        rkk = jnp.sqrt(ckk**2 + sign * x[k] ** 2)
        c = rkk / ckk
        s = x[k] / ckk
        C = C.at[k, k].set(rkk)
        if k + 1 < n:
            col = (C[k + 1 :, k] + sign * s * x[k + 1 :]) / c
            C = C.at[k + 1 :, k].set(col)
            x = x.at[k + 1 :].set(c * x[k + 1 :] - s * col)

    _require_finite(C, "downdated covariance" if sign < 0 else "updated covariance")
    return C


def qr_factor(stacked: ArrayLike) -> Array:
    """Lower Cholesky factor of ``A.T @ A`` computed by QR.

    Args:
        stacked: Matrix ``A`` of shape ``(k, n)`` with ``k >= n``, one
            weighted deviation per row.

    Returns:
        Lower-triangular ``C`` of shape ``(n, n)`` with non-negative
        diagonal and ``C @ C.T == A.T @ A``.
    """
    A = jnp.asarray(stacked, dtype=get_dtype())
    if A.shape[0] < A.shape[1]:
        raise ValueError(f"qr_factor needs at least as many rows as columns, got shape {A.shape}")

    R = jnp.linalg.qr(A, mode="r")
    signs = jnp.where(jnp.diag(R) < 0, -1.0, 1.0).astype(R.dtype)
    return (signs[:, None] * R).T
