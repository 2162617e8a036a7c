"""Tests for FilterEngine validation, optimization and kernels."""

from __future__ import annotations

import numpy as np
import pytest

from renderkit.config import RenderConfig
from renderkit.errors import FilterValidationFailure, RenderErrorCode
from renderkit.filters import KERNELS, FilterEngine, gaussian_kernel
from renderkit.models import BlendMode, FilterKind, FilterOp


def op(kind: FilterKind, **params) -> FilterOp:
    return FilterOp(kind=kind, params=params)


@pytest.fixture
def engine() -> FilterEngine:
    return FilterEngine(RenderConfig())


@pytest.fixture
def midtone_pixels() -> np.ndarray:
    rng = np.random.default_rng(99)
    pixels = rng.integers(50, 150, size=(8, 10, 4), dtype=np.uint8)
    pixels[..., 3] = 200
    return pixels


@pytest.mark.unit
class TestValidation:
    def test_valid_op(self, engine):
        result = engine.validate(op(FilterKind.BRIGHTNESS, value=20))
        assert result.valid
        assert result.error is None
        assert result.warnings == []

    def test_out_of_range_is_rejected_not_clamped(self, engine):
        result = engine.validate(op(FilterKind.BRIGHTNESS, value=150))
        assert not result.valid
        assert "between -100 and 100" in result.error

    def test_missing_required_param(self, engine):
        result = engine.validate(op(FilterKind.BLUR))
        assert not result.valid
        assert "radius" in result.error

    def test_defaults_fill_optional_params(self, engine):
        assert engine.validate(op(FilterKind.SEPIA)).valid
        assert engine.validate(op(FilterKind.NOISE)).valid

    def test_unknown_param(self, engine):
        result = engine.validate(op(FilterKind.INVERT, amount=3))
        assert not result.valid
        assert "amount" in result.error

    def test_non_finite_value(self, engine):
        assert not engine.validate(op(FilterKind.CONTRAST, value=float("nan"))).valid

    def test_integer_param(self, engine):
        assert not engine.validate(op(FilterKind.PIXELATE, size=2.5)).valid
        assert engine.validate(op(FilterKind.PIXELATE, size=3)).valid

    def test_opacity_range(self, engine):
        result = engine.validate(FilterOp(kind=FilterKind.INVERT, opacity=1.5))
        assert not result.valid
        assert "opacity" in result.error

    @pytest.mark.parametrize("value", [60, -60])
    def test_extreme_brightness_warns(self, engine, value):
        result = engine.validate(op(FilterKind.BRIGHTNESS, value=value))
        assert result.valid
        assert result.warnings[0].startswith(RenderErrorCode.W_FILTER_EXTREME_VALUE.value)

    def test_desaturation_does_not_warn(self, engine):
        assert engine.validate(op(FilterKind.SATURATION, value=-100)).warnings == []

    def test_chain_errors_carry_index(self, engine):
        result = engine.validate_chain([op(FilterKind.GRAYSCALE), op(FilterKind.HUE, degrees=999)])
        assert not result.valid
        assert result.error.startswith("filter[1]")

    def test_invalid_chain_raises_on_apply(self, engine, rgba_pixels):
        with pytest.raises(FilterValidationFailure) as info:
            engine.apply_filter_chain(rgba_pixels, [op(FilterKind.BLUR, radius=50)])
        assert info.value.code == RenderErrorCode.E_FILTER_INVALID.value


@pytest.mark.unit
class TestOptimization:
    def test_adjacent_brightness_merges(self, engine):
        chain = [op(FilterKind.BRIGHTNESS, value=20), op(FilterKind.BRIGHTNESS, value=10)]
        assert engine.optimize_filter_chain(chain) == [op(FilterKind.BRIGHTNESS, value=30)]

    def test_three_contrast_ops_merge(self, engine):
        chain = [op(FilterKind.CONTRAST, value=v) for v in (10, 20, -5)]
        assert engine.optimize_filter_chain(chain) == [op(FilterKind.CONTRAST, value=25)]

    def test_merge_uses_default_value(self, engine):
        chain = [FilterOp(kind=FilterKind.BRIGHTNESS), op(FilterKind.BRIGHTNESS, value=5)]
        assert engine.optimize_filter_chain(chain) == [op(FilterKind.BRIGHTNESS, value=5)]

    def test_separated_ops_stay_distinct(self, engine):
        chain = [
            op(FilterKind.BRIGHTNESS, value=20),
            op(FilterKind.CONTRAST, value=10),
            op(FilterKind.BRIGHTNESS, value=5),
        ]
        assert engine.optimize_filter_chain(chain) == chain

    def test_non_additive_kinds_never_merge(self, engine):
        chain = [op(FilterKind.BLUR, radius=1), op(FilterKind.BLUR, radius=1)]
        assert len(engine.optimize_filter_chain(chain)) == 2

    def test_blended_op_is_not_merged(self, engine):
        chain = [
            FilterOp(kind=FilterKind.BRIGHTNESS, params={"value": 20}, opacity=0.5),
            op(FilterKind.BRIGHTNESS, value=10),
        ]
        assert engine.optimize_filter_chain(chain) == chain

    def test_disabled_ops_are_dropped(self, engine):
        chain = [
            op(FilterKind.BRIGHTNESS, value=20),
            FilterOp(kind=FilterKind.INVERT, enabled=False),
            op(FilterKind.BRIGHTNESS, value=10),
        ]
        assert engine.optimize_filter_chain(chain) == [op(FilterKind.BRIGHTNESS, value=30)]

    def test_optimized_chain_matches_unoptimized(self, midtone_pixels):
        chain = [op(FilterKind.BRIGHTNESS, value=10), op(FilterKind.BRIGHTNESS, value=15)]
        merged = FilterEngine(RenderConfig()).apply_filter_chain(midtone_pixels, chain)
        stepwise = FilterEngine(RenderConfig(optimize_filters=False)).apply_filter_chain(midtone_pixels, chain)
        assert np.abs(merged.astype(int) - stepwise.astype(int)).max() <= 1


@pytest.mark.unit
class TestKernels:
    def test_catalog_is_exhaustive(self):
        assert set(KERNELS) == set(FilterKind)

    def test_invert_twice_is_identity(self, engine, rgba_pixels):
        inverted = engine.apply_filter(rgba_pixels, op(FilterKind.INVERT))
        assert np.array_equal(inverted[..., 3], rgba_pixels[..., 3])
        assert np.array_equal(engine.apply_filter(inverted, op(FilterKind.INVERT)), rgba_pixels)

    def test_grayscale_equalizes_channels(self, engine, rgba_pixels):
        out = engine.apply_filter(rgba_pixels, op(FilterKind.GRAYSCALE))
        assert np.array_equal(out[..., 0], out[..., 1])
        assert np.array_equal(out[..., 1], out[..., 2])
        assert np.array_equal(out[..., 3], rgba_pixels[..., 3])

    def test_full_brightness_saturates(self, engine, rgba_pixels):
        out = engine.apply_filter(rgba_pixels, op(FilterKind.BRIGHTNESS, value=100))
        assert (out[..., :3] == 255).all()

    def test_hue_zero_is_near_identity(self, engine, rgba_pixels):
        out = engine.apply_filter(rgba_pixels, op(FilterKind.HUE, degrees=0))
        assert np.abs(out.astype(int) - rgba_pixels.astype(int)).max() <= 1

    def test_noise_is_deterministic_with_seed(self, engine, rgba_pixels):
        first = engine.apply_filter(rgba_pixels, op(FilterKind.NOISE, intensity=30, seed=7))
        second = engine.apply_filter(rgba_pixels, op(FilterKind.NOISE, intensity=30, seed=7))
        assert np.array_equal(first, second)

    def test_noise_uses_configured_seed(self, rgba_pixels):
        engine = FilterEngine(RenderConfig(noise_seed=3))
        first = engine.apply_filter(rgba_pixels, op(FilterKind.NOISE, intensity=30))
        second = engine.apply_filter(rgba_pixels, op(FilterKind.NOISE, intensity=30))
        assert np.array_equal(first, second)

    def test_blur_zero_radius_copies(self, engine, rgba_pixels):
        out = engine.apply_filter(rgba_pixels, op(FilterKind.BLUR, radius=0))
        assert out is not rgba_pixels
        assert np.array_equal(out, rgba_pixels)

    def test_blur_keeps_uniform_image(self, engine):
        pixels = np.full((9, 9, 4), 100, dtype=np.uint8)
        assert np.array_equal(engine.apply_filter(pixels, op(FilterKind.BLUR, radius=3)), pixels)

    def test_blur_does_not_darken_transparent_neighbours(self, engine):
        pixels = np.zeros((5, 5, 4), dtype=np.uint8)
        pixels[2, 2] = (255, 0, 0, 255)
        out = engine.apply_filter(pixels, op(FilterKind.BLUR, radius=2))
        assert tuple(out[2, 1, :3]) == (255, 0, 0)
        assert 0 < out[2, 1, 3] < 255

    def test_gaussian_kernel_normalized(self):
        kernel = gaussian_kernel(2.5)
        assert len(kernel) == 7
        assert kernel.sum() == pytest.approx(1.0, abs=1e-5)

    def test_pixelate_blocks_are_uniform(self, engine, rgba_pixels):
        out = engine.apply_filter(rgba_pixels, op(FilterKind.PIXELATE, size=4))
        block = out[0:4, 0:4, :3]
        assert (block == block[0, 0]).all()

    def test_posterize_two_levels(self, engine, rgba_pixels):
        out = engine.apply_filter(rgba_pixels, op(FilterKind.POSTERIZE, levels=2))
        assert set(np.unique(out[..., :3])) <= {0, 255}

    def test_vignette_keeps_center(self, engine):
        pixels = np.full((21, 21, 4), 200, dtype=np.uint8)
        out = engine.apply_filter(pixels, op(FilterKind.VIGNETTE, intensity=1, size=0.3, blur=0.2))
        assert out[10, 10, 0] == 200
        assert out[0, 0, 0] < 200

    def test_edge_detect_flat_image_is_black(self, engine):
        pixels = np.full((5, 5, 4), 120, dtype=np.uint8)
        out = engine.apply_filter(pixels, op(FilterKind.EDGE_DETECT))
        assert (out[..., :3] == 0).all()
        assert (out[..., 3] == 120).all()

    def test_rejects_rgb_buffer(self, engine):
        with pytest.raises(ValueError, match="HxWx4"):
            engine.apply_filter(np.zeros((2, 2, 3), dtype=np.uint8), op(FilterKind.INVERT))


@pytest.mark.unit
class TestBlending:
    def test_disabled_op_returns_input(self, engine, rgba_pixels):
        out = engine.apply_filter(rgba_pixels, FilterOp(kind=FilterKind.INVERT, enabled=False))
        assert out is rgba_pixels

    def test_zero_opacity_keeps_base(self, engine, rgba_pixels):
        out = engine.apply_filter(rgba_pixels, FilterOp(kind=FilterKind.INVERT, opacity=0.0))
        assert np.array_equal(out, rgba_pixels)

    def test_multiply_with_white_keeps_base(self, engine):
        pixels = np.full((2, 2, 4), 255, dtype=np.uint8)
        pixels[..., 0] = 80
        out = engine.apply_filter(
            pixels,
            FilterOp(kind=FilterKind.BRIGHTNESS, params={"value": 100}, blend=BlendMode.MULTIPLY),
        )
        assert np.array_equal(out, pixels)
