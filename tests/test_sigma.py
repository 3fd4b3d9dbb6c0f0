"""Tests for augmented sigma-point generation and propagation.

Tests cover:
- SigmaLayout dimensions and row views
- Augmented vector and block-diagonal factor construction
- Sigma point mean reproduction, symmetry and covariance reproduction
- Idempotent regeneration and spread factor validation
- Process and observation propagation through vmapped models
- JIT compilation with a static spread factor and static weights
"""

import math

import jax
import jax.numpy as jnp
import pytest

from sigmajax.estimation import (
    AugmentedState,
    InvalidSpreadFactor,
    NonPositiveDefiniteCovariance,
    SigmaLayout,
    UKFConfig,
    augment,
    generate_sigma_points,
    lower_cholesky,
    propagate_observation,
    propagate_process,
    scaled_weights,
    weighted_mean,
)

# ──────────────────────────────────────────────
# Helper functions
# ──────────────────────────────────────────────

_LAYOUT = SigmaLayout(nx=2, nu=1, nz=1)


def _augmented(layout=_LAYOUT):
    """Augmented state for a correlated 2-D state with 1-D observation."""
    x = jnp.array([1.0, -2.0])
    P = jnp.array([[0.5, 0.1], [0.1, 0.3]])
    chol_Q = lower_cholesky(jnp.diag(jnp.array([0.01, 0.04])))
    chol_R = lower_cholesky(jnp.array([[0.25]]))
    return augment(layout, x, P, chol_Q, chol_R)


def _augmented_covariance(aug):
    return aug.factor @ aug.factor.T


def _identity_process(x, u, w, dt):
    return x


def _additive_process(x, u, w, dt):
    """Constant-velocity step with additive process noise and acceleration input."""
    return jnp.array([x[0] + dt * x[1], x[1] + dt * u[0]]) + w


def _range_observation(x, v):
    return jnp.array([jnp.sqrt(x[0] ** 2 + x[1] ** 2)]) + v


# ──────────────────────────────────────────────
# Layout
# ──────────────────────────────────────────────


class TestSigmaLayout:
    def test_dimensions(self):
        """L stacks state, process noise and observation noise."""
        layout = SigmaLayout(nx=3, nu=2, nz=2)
        assert layout.L == 8
        assert layout.r == 17

    def test_row_views(self):
        """Views split the augmented rows without overlap."""
        points = jnp.arange(_LAYOUT.r * _LAYOUT.L, dtype=float).reshape(_LAYOUT.r, _LAYOUT.L)
        assert jnp.array_equal(_LAYOUT.state(points), points[:, 0:2])
        assert jnp.array_equal(_LAYOUT.process_noise(points), points[:, 2:4])
        assert jnp.array_equal(_LAYOUT.observation_noise(points), points[:, 4:5])

    def test_block_views(self):
        """Block views select the diagonal blocks of an (L, L) matrix."""
        M = jnp.arange(25, dtype=float).reshape(5, 5)
        assert jnp.array_equal(_LAYOUT.state_block(M), M[0:2, 0:2])
        assert jnp.array_equal(_LAYOUT.process_noise_block(M), M[2:4, 2:4])
        assert jnp.array_equal(_LAYOUT.observation_noise_block(M), M[4:5, 4:5])


# ──────────────────────────────────────────────
# Augmented-state builder
# ──────────────────────────────────────────────


class TestAugment:
    def test_vector(self):
        """Noise channels enter the augmented vector with zero mean."""
        aug = _augmented()
        assert isinstance(aug, AugmentedState)
        assert jnp.allclose(aug.vector, jnp.array([1.0, -2.0, 0.0, 0.0, 0.0]))

    def test_factor_blocks(self):
        """Diagonal blocks hold the three Cholesky factors."""
        aug = _augmented()
        P = jnp.array([[0.5, 0.1], [0.1, 0.3]])
        assert jnp.allclose(_LAYOUT.state_block(aug.factor), lower_cholesky(P))
        assert jnp.allclose(_LAYOUT.process_noise_block(aug.factor), jnp.diag(jnp.array([0.1, 0.2])))
        assert jnp.allclose(_LAYOUT.observation_noise_block(aug.factor), jnp.array([[0.5]]))

    def test_off_diagonal_blocks_zero(self):
        """State and noise sources are independent."""
        cov = _augmented_covariance(_augmented())
        assert jnp.allclose(cov[0:2, 2:5], 0.0)
        assert jnp.allclose(cov[2:4, 4:5], 0.0)

    def test_indefinite_covariance_raises(self):
        """An indefinite state covariance fails the whole step."""
        P = jnp.array([[1.0, 0.0], [0.0, -1.0]])
        with pytest.raises(NonPositiveDefiniteCovariance):
            augment(_LAYOUT, jnp.zeros(2), P, jnp.eye(2), jnp.eye(1))

    def test_state_shape_checked(self):
        with pytest.raises(ValueError, match="state"):
            augment(_LAYOUT, jnp.zeros(3), jnp.eye(2), jnp.eye(2), jnp.eye(1))


# ──────────────────────────────────────────────
# Sigma-point generator
# ──────────────────────────────────────────────


class TestGenerateSigmaPoints:
    def test_shape(self):
        points = generate_sigma_points(_augmented(), 5.0)
        assert points.shape == (11, 5)

    def test_centre_point(self):
        """Row 0 is the augmented vector itself."""
        aug = _augmented()
        points = generate_sigma_points(aug, 5.0)
        assert jnp.array_equal(points[0], aug.vector)

    def test_spread_along_factor_columns(self):
        """Row i sits sqrt(gamma) factor columns away from the mean."""
        aug = _augmented()
        points = generate_sigma_points(aug, 4.0)
        for i in range(1, 6):
            assert jnp.allclose(points[i], aug.vector + 2.0 * aug.factor[:, i - 1])

    def test_symmetry(self):
        """Rows i and i+L mirror about the augmented vector."""
        aug = _augmented()
        points = generate_sigma_points(aug, 2.7)
        L = aug.vector.shape[0]
        for i in range(1, L + 1):
            assert jnp.allclose(points[i] + points[i + L], 2.0 * aug.vector, atol=1e-12)

    @pytest.mark.parametrize(
        "config",
        [UKFConfig(), UKFConfig(alpha=0.5), UKFConfig(alpha=0.1, kappa=1.0), UKFConfig(kappa=2.0)],
    )
    def test_mean_reproduction(self, config):
        """Weighted mean of the sigma points recovers the augmented vector."""
        aug = _augmented()
        weights = scaled_weights(_LAYOUT.L, config)
        points = generate_sigma_points(aug, weights.gamma)
        mean = weighted_mean(points, weights.wm0, weights.wmi)
        assert jnp.allclose(mean, aug.vector, atol=1e-9)

    @pytest.mark.parametrize("config", [UKFConfig(), UKFConfig(alpha=0.5, beta=0.0), UKFConfig(kappa=2.0)])
    def test_covariance_reproduction(self, config):
        """Weighted outer products of the deviations recover the augmented covariance."""
        aug = _augmented()
        weights = scaled_weights(_LAYOUT.L, config)
        points = generate_sigma_points(aug, weights.gamma)

        dev = points - aug.vector[None, :]
        cov = weights.wc0 * jnp.outer(dev[0], dev[0]) + weights.wci * dev[1:].T @ dev[1:]

        assert jnp.allclose(cov, _augmented_covariance(aug), atol=1e-10)

    def test_idempotent(self):
        """Regenerating from unchanged inputs is bit-identical."""
        first = generate_sigma_points(_augmented(), 3.0)
        second = generate_sigma_points(_augmented(), 3.0)
        assert jnp.array_equal(first, second)

    def test_zero_gamma_collapses_to_mean(self):
        aug = _augmented()
        points = generate_sigma_points(aug, 0.0)
        assert jnp.allclose(points, aug.vector[None, :])

    @pytest.mark.parametrize("gamma", [-1.0, -1e-12, math.nan, math.inf])
    def test_invalid_gamma_raises(self, gamma):
        """Negative or non-finite spread factors are rejected before sqrt."""
        with pytest.raises(InvalidSpreadFactor):
            generate_sigma_points(_augmented(), gamma)

    def test_invalid_gamma_is_value_error(self):
        with pytest.raises(ValueError, match="non-negative"):
            generate_sigma_points(_augmented(), -3.0)


# ──────────────────────────────────────────────
# Propagators
# ──────────────────────────────────────────────


class TestPropagateProcess:
    def test_identity_mean(self):
        """Identity propagation reproduces the state mean."""
        weights = scaled_weights(_LAYOUT.L, UKFConfig())
        points = generate_sigma_points(_augmented(), weights.gamma)

        _, x_pred = propagate_process(
            _LAYOUT, points, _identity_process, jnp.zeros(1), 0.1, weights.wm0, weights.wmi
        )

        assert jnp.allclose(x_pred, jnp.array([1.0, -2.0]), atol=1e-12)

    def test_overwrites_state_rows_only(self):
        """Propagated states replace the state rows; noise rows are untouched."""
        weights = scaled_weights(_LAYOUT.L, UKFConfig())
        points = generate_sigma_points(_augmented(), weights.gamma)
        u = jnp.array([0.5])

        new_points, _ = propagate_process(
            _LAYOUT, points, _additive_process, u, 0.1, weights.wm0, weights.wmi
        )

        expected = _additive_process(points[3, 0:2], u, points[3, 2:4], 0.1)
        assert jnp.allclose(_LAYOUT.state(new_points)[3], expected)
        assert jnp.array_equal(new_points[:, 2:], points[:, 2:])

    def test_linear_mean(self):
        """A linear model maps the mean exactly, with zero-mean noise."""
        weights = scaled_weights(_LAYOUT.L, UKFConfig(alpha=0.5))
        points = generate_sigma_points(_augmented(), weights.gamma)
        u = jnp.array([2.0])

        _, x_pred = propagate_process(
            _LAYOUT, points, _additive_process, u, 0.1, weights.wm0, weights.wmi
        )

        expected = jnp.array([1.0 + 0.1 * -2.0, -2.0 + 0.1 * 2.0])
        assert jnp.allclose(x_pred, expected, atol=1e-10)

    def test_wrong_output_shape_raises(self):
        weights = scaled_weights(_LAYOUT.L, UKFConfig())
        points = generate_sigma_points(_augmented(), weights.gamma)

        with pytest.raises(ValueError, match="process_fn"):
            propagate_process(
                _LAYOUT, points, lambda x, u, w, dt: x[:1], jnp.zeros(1), 0.1, weights.wm0, weights.wmi
            )

    def test_model_errors_propagate_unchanged(self):
        """Exceptions from the process model are not wrapped."""

        class ModelDiverged(Exception):
            pass

        def exploding(x, u, w, dt):
            raise ModelDiverged("integrator blew up")

        points = generate_sigma_points(_augmented(), 3.0)
        with pytest.raises(ModelDiverged, match="integrator blew up"):
            propagate_process(_LAYOUT, points, exploding, jnp.zeros(1), 0.1, 0.0, 0.1)


class TestPropagateObservation:
    def test_shapes(self):
        weights = scaled_weights(_LAYOUT.L, UKFConfig())
        points = generate_sigma_points(_augmented(), weights.gamma)

        obs_points, z_pred = propagate_observation(
            _LAYOUT, points, _range_observation, weights.wm0, weights.wmi
        )

        assert obs_points.shape == (11, 1)
        assert z_pred.shape == (1,)

    def test_uses_observation_noise_rows(self):
        """Each observation sigma point sees its own observation-noise row."""
        weights = scaled_weights(_LAYOUT.L, UKFConfig())
        points = generate_sigma_points(_augmented(), weights.gamma)

        obs_points, _ = propagate_observation(
            _LAYOUT, points, lambda x, v: v, weights.wm0, weights.wmi
        )

        assert jnp.array_equal(obs_points, _LAYOUT.observation_noise(points))

    def test_linear_mean(self):
        weights = scaled_weights(_LAYOUT.L, UKFConfig())
        points = generate_sigma_points(_augmented(), weights.gamma)

        _, z_pred = propagate_observation(
            _LAYOUT, points, lambda x, v: x[:1] + 2.0 * x[1:] + v, weights.wm0, weights.wmi
        )

        assert jnp.allclose(z_pred, jnp.array([1.0 - 4.0]), atol=1e-10)

    def test_nonlinear_mean_is_weighted_average(self):
        """The predicted observation is the weighted mean of the sigma images."""
        weights = scaled_weights(_LAYOUT.L, UKFConfig())
        points = generate_sigma_points(_augmented(), weights.gamma)

        obs_points, z_pred = propagate_observation(
            _LAYOUT, points, _range_observation, weights.wm0, weights.wmi
        )

        expected = weights.wm0 * obs_points[0] + weights.wmi * jnp.sum(obs_points[1:], axis=0)
        assert jnp.allclose(z_pred, expected)

    def test_wrong_output_shape_raises(self):
        points = generate_sigma_points(_augmented(), 3.0)
        with pytest.raises(ValueError, match="observation_fn"):
            propagate_observation(_LAYOUT, points, lambda x, v: x, 0.0, 0.1)


# ──────────────────────────────────────────────
# JAX compatibility
# ──────────────────────────────────────────────


class TestJAXCompatibility:
    def test_jit_generate_and_mean(self):
        """generate_sigma_points and weighted_mean are JIT-compilable."""
        w = scaled_weights(_LAYOUT.L, UKFConfig(alpha=0.5))
        aug = _augmented()

        @jax.jit
        def mean(augmented):
            points = generate_sigma_points(augmented, w.gamma)
            return weighted_mean(points, w.wm0, w.wmi)

        assert jnp.allclose(mean(aug), aug.vector, atol=1e-10)

    def test_jit_propagate_process(self):
        """propagate_process is JIT-compilable and matches the eager result."""
        w = scaled_weights(_LAYOUT.L, UKFConfig(alpha=0.5))
        points = generate_sigma_points(_augmented(), w.gamma)
        u = jnp.array([0.3])

        @jax.jit
        def step(points, u):
            return propagate_process(_LAYOUT, points, _additive_process, u, 0.1, w.wm0, w.wmi)

        jit_points, jit_mean = step(points, u)
        eager_points, eager_mean = propagate_process(
            _LAYOUT, points, _additive_process, u, 0.1, w.wm0, w.wmi
        )
        assert jnp.allclose(jit_points, eager_points, atol=1e-12)
        assert jnp.allclose(jit_mean, eager_mean, atol=1e-12)

    def test_jit_propagate_observation(self):
        """propagate_observation is JIT-compilable and matches the eager result."""
        w = scaled_weights(_LAYOUT.L, UKFConfig(alpha=0.5))
        points = generate_sigma_points(_augmented(), w.gamma)

        @jax.jit
        def observe(points):
            return propagate_observation(_LAYOUT, points, _range_observation, w.wm0, w.wmi)

        jit_obs, jit_mean = observe(points)
        eager_obs, eager_mean = propagate_observation(
            _LAYOUT, points, _range_observation, w.wm0, w.wmi
        )
        assert jit_obs.shape == (_LAYOUT.r, 1)
        assert jnp.allclose(jit_obs, eager_obs, atol=1e-12)
        assert jnp.allclose(jit_mean, eager_mean, atol=1e-12)
