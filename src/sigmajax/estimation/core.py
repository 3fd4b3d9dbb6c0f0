"""Sigma-point core shared by the augmented unscented filter variants.

:class:`SigmaPointCore` owns the per-instance workspace (augmented mean
and factor, augmented sigma points, observation sigma points, cached
noise factors and cross covariance) and exposes one operation per phase
of a predict/update cycle::

    process -> process_covariance -> observe
            -> innovation_covariance -> kalman_gain -> update_covariance

Sigma points are regenerated twice per cycle, once in :meth:`process` and
once in :meth:`observe`, because the covariance they are drawn from
changes in between. The covariance and gain formulas are delegated to the
:class:`~sigmajax.estimation.variant.SigmaVariant` the core was built
with.

Arrays are immutable, so instead of mutating caller-owned vectors every
operation returns its result; the caller (usually
:class:`~sigmajax.estimation.driver.SigmaPointFilter`) replaces its copy.
A core instance must only run one cycle at a time. Independent estimates
need independent instances; nothing is shared between them.
"""

from __future__ import annotations

import logging

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from sigmajax.config import get_dtype
from sigmajax.estimation._types import AugmentedState, SigmaLayout
from sigmajax.estimation.linalg import lower_cholesky
from sigmajax.estimation.sigma import (
    ObservationFn,
    ProcessFn,
    augment,
    generate_sigma_points,
    propagate_observation,
    propagate_process,
)
from sigmajax.estimation.variant import SigmaVariant, check_weights

logger = logging.getLogger(__name__)

_IDLE = "__init__"


class SigmaPointCore:
    """Sigma-point generation, propagation and hook wiring for one filter.

    The process- and observation-noise covariances are factorized once
    here and cached for the life of the instance; the state covariance
    factor is recomputed every time sigma points are drawn.

    Args:
        variant: Filter variant supplying weights, spread factor and the
            covariance/gain formulas. Its ``layout`` fixes the dimensions.
        process_fn: Process model ``f(x, u, w, dt) -> x_next``.
        observation_fn: Observation model ``h(x, v) -> z``.
        covar: Initial state covariance ``(nx, nx)``.
        proc_covar: Process-noise covariance ``(nx, nx)``.
        obs_covar: Observation-noise covariance ``(nz, nz)``.

    Raises:
        ValueError: If a covariance does not match the variant's layout.
        InvalidSigmaWeights: If the variant's mean weights do not sum to one.
        NonPositiveDefiniteCovariance: If a covariance cannot be
            factorized.
    """

    def __init__(
        self,
        variant: SigmaVariant,
        process_fn: ProcessFn,
        observation_fn: ObservationFn,
        covar: ArrayLike,
        proc_covar: ArrayLike,
        obs_covar: ArrayLike,
    ):
        layout = variant.layout
        for name, matrix, n in (
            ("covar", covar, layout.nx),
            ("proc_covar", proc_covar, layout.nx),
            ("obs_covar", obs_covar, layout.nz),
        ):
            shape = jnp.shape(matrix)
            if shape != (n, n):
                raise ValueError(f"{name} must have shape ({n}, {n}), got {shape}")
        check_weights(variant.wm0, variant.wmi, layout.L)

        self._variant = variant
        self._layout = layout
        self._process_fn = process_fn
        self._observation_fn = observation_fn

        self._chol_covar = lower_cholesky(covar, name="state covariance")
        self._chol_proc_covar = lower_cholesky(proc_covar, name="process-noise covariance")
        self._chol_obs_covar = lower_cholesky(obs_covar, name="observation-noise covariance")

        self._augmented: AugmentedState | None = None
        self._points: Array | None = None
        self._obs_points: Array | None = None
        self._state_mean: Array | None = None
        self._obs_mean: Array | None = None
        self._innovation_covar: Array | None = None
        self._gain: Array | None = None
        self._cross_covar = jnp.zeros((layout.nx, layout.nz), dtype=get_dtype())
        self._stage = _IDLE

        logger.debug(
            "SigmaPointCore: nx=%d nu=%d nz=%d L=%d r=%d variant=%r",
            layout.nx,
            layout.nu,
            layout.nz,
            layout.L,
            layout.r,
            variant,
        )

    # ── Accessors ─────────────────────────────

    @property
    def layout(self) -> SigmaLayout:
        return self._layout

    @property
    def variant(self) -> SigmaVariant:
        return self._variant

    @property
    def augmented(self) -> AugmentedState | None:
        """Augmented mean and factor from the last regeneration."""
        return self._augmented

    @property
    def sigma_points(self) -> Array | None:
        """Augmented sigma points ``(r, L)``.

        After :meth:`process` the state rows hold the propagated points.
        """
        return self._points

    @property
    def state_sigmas(self) -> Array | None:
        return None if self._points is None else self._layout.state(self._points)

    @property
    def process_noise_sigmas(self) -> Array | None:
        return None if self._points is None else self._layout.process_noise(self._points)

    @property
    def observation_noise_sigmas(self) -> Array | None:
        return None if self._points is None else self._layout.observation_noise(self._points)

    @property
    def observation_sigmas(self) -> Array | None:
        """Observation sigma points ``(r, nz)`` from the last :meth:`observe`."""
        return self._obs_points

    @property
    def chol_covar(self) -> Array:
        """Lower factor of the state covariance the last sigma points came from."""
        return self._chol_covar

    @property
    def chol_proc_covar(self) -> Array:
        return self._chol_proc_covar

    @property
    def chol_obs_covar(self) -> Array:
        return self._chol_obs_covar

    @property
    def cross_covar(self) -> Array:
        """State/observation cross covariance from the last :meth:`kalman_gain`."""
        return self._cross_covar

    # ── Cycle operations ──────────────────────

    def process(
        self,
        state: ArrayLike,
        covar: ArrayLike,
        control: ArrayLike | None = None,
        dt: float = 1.0,
    ) -> Array:
        """Predict the state mean one step ahead.

        Draws sigma points around ``(state, covar)`` and propagates their
        state and process-noise rows through ``process_fn``. May be called
        at any point; it starts a new cycle, and if it fails no later
        operation of the cycle can run until it succeeds.

        Args:
            state: Current state ``(nx,)``.
            covar: Current state covariance ``(nx, nx)``.
            control: Control vector ``(nu,)``. ``None`` means zeros.
            dt: Time increment passed to ``process_fn``.

        Returns:
            Predicted state mean ``(nx,)``.
        """
        self._stage = _IDLE
        layout = self._layout
        dtype = get_dtype()
        if control is None:
            u = jnp.zeros(layout.nu, dtype=dtype)
        else:
            u = jnp.asarray(control, dtype=dtype)
        if u.shape != (layout.nu,):
            raise ValueError(f"control must have shape ({layout.nu},), got {u.shape}")

        augmented, points = self._regenerate(state, covar)
        points, state_mean = propagate_process(
            layout,
            points,
            self._process_fn,
            u,
            dt,
            self._variant.wm0,
            self._variant.wmi,
        )
        self._commit(augmented, points, state_mean)
        self._stage = "process"
        return state_mean

    def process_covariance(self) -> Array:
        """Predicted state covariance from the sigma points of :meth:`process`."""
        self._expect("process_covariance", "process")
        covar = self._variant.process_covariance(
            self._layout.state(self._points), self._state_mean, self._chol_covar
        )
        self._stage = "process_covariance"
        return covar

    def observe(self, state: ArrayLike, covar: ArrayLike) -> Array:
        """Predict the observation mean.

        Redraws sigma points around the predicted ``(state, covar)`` and
        propagates their state and observation-noise rows through
        ``observation_fn``.

        Returns:
            Predicted observation mean ``(nz,)``.
        """
        self._expect("observe", "process_covariance")
        augmented, points = self._regenerate(state, covar)
        obs_points, obs_mean = propagate_observation(
            self._layout,
            points,
            self._observation_fn,
            self._variant.wm0,
            self._variant.wmi,
        )
        self._commit(augmented, points, jnp.asarray(state, dtype=points.dtype))
        self._obs_points, self._obs_mean = obs_points, obs_mean
        self._stage = "observe"
        return obs_mean

    def innovation_covariance(self) -> Array:
        """Innovation covariance from the sigma points of :meth:`observe`."""
        self._expect("innovation_covariance", "observe")
        self._innovation_covar = self._variant.innovation_covariance(
            self._obs_points, self._obs_mean, self._chol_obs_covar
        )
        self._stage = "innovation_covariance"
        return self._innovation_covar

    def kalman_gain(self) -> Array:
        """Kalman gain; also refreshes :attr:`cross_covar`."""
        self._expect("kalman_gain", "innovation_covariance")
        self._gain, self._cross_covar = self._variant.kalman_gain(
            self._innovation_covar,
            self._layout.state(self._points),
            self._state_mean,
            self._obs_points,
            self._obs_mean,
        )
        self._stage = "kalman_gain"
        return self._gain

    def update_covariance(self) -> Array:
        """Posterior state covariance."""
        self._expect("update_covariance", "kalman_gain")
        covar = self._variant.update_covariance(self._gain, self._innovation_covar, self._chol_covar)
        self._stage = "update_covariance"
        return covar

    # ── Internals ─────────────────────────────

    def _regenerate(self, state: ArrayLike, covar: ArrayLike) -> tuple[AugmentedState, Array]:
        augmented = augment(self._layout, state, covar, self._chol_proc_covar, self._chol_obs_covar)
        points = generate_sigma_points(augmented, self._variant.gamma)
        logger.debug("Regenerated %d sigma points (gamma=%g)", self._layout.r, self._variant.gamma)
        return augmented, points

    def _commit(self, augmented: AugmentedState, points: Array, state_mean: Array) -> None:
        # Only reached once the model functions have succeeded.
        self._augmented = augmented
        self._chol_covar = self._layout.state_block(augmented.factor)
        self._points = points
        self._state_mean = state_mean

    def _expect(self, operation: str, previous: str) -> None:
        if self._stage != previous:
            raise RuntimeError(
                f"{operation}() must be called right after {previous}(), "
                f"but the last completed operation was {self._stage}()"
            )
