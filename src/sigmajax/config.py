"""Numeric precision of sigma-point computations.

Sigma points, weights and covariance factors are built in the dtype
returned by ``get_dtype``. float32 is the default; selecting float64 with
``set_dtype`` also switches on ``jax_enable_x64`` so that the wider type
is actually honoured.

The dtype also decides how strictly variant weights are checked: see
``get_weight_tolerance``. Change it before building filters or tracing
any model function. A core keeps its noise factors in the dtype that was
active when it was constructed.
"""

from __future__ import annotations

import jax
import jax.numpy as jnp

_VALID_DTYPES = (jnp.float16, jnp.bfloat16, jnp.float32, jnp.float64)

_dtype = jnp.float32


def set_dtype(dtype) -> None:
    """Select the float dtype used for sigma points and factors.

    Choosing ``jnp.float64`` turns on ``jax_enable_x64``; the other
    choices leave the JAX flag untouched.

    Args:
        dtype: One of ``jnp.float16``, ``jnp.bfloat16``, ``jnp.float32``,
            or ``jnp.float64``.

    Raises:
        ValueError: If *dtype* is not a supported float type.
    """
    global _dtype
    if dtype not in _VALID_DTYPES:
        raise ValueError(
            f"Unsupported dtype {dtype}. Must be one of: "
            f"jnp.float16, jnp.bfloat16, jnp.float32, jnp.float64"
        )
    if dtype == jnp.float64:
        jax.config.update("jax_enable_x64", True)
    _dtype = dtype


def get_dtype():
    """Return the float dtype new arrays are cast to (``jnp.float32`` unless changed)."""
    return _dtype


def get_weight_tolerance() -> float:
    """Return the dtype-adaptive tolerance for sigma weight normalization.

    Used to check that the mean weights of a filter variant sum to one
    (``wm0 + 2L * wmi == 1``). The tolerance scales with the precision of
    the configured float dtype:

    - ``float64``:  1e-12
    - ``float32``:  1e-6
    - ``float16``:  1e-3
    - ``bfloat16``: 1e-3

    Returns:
        float: Absolute tolerance on the weight sum.
    """
    if _dtype == jnp.float64:
        return 1e-12
    if _dtype == jnp.float32:
        return 1e-6
    # float16 and bfloat16
    return 1e-3
