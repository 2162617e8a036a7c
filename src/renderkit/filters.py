"""Filter engine: parameter validation, chain optimization and pixel kernels.

Pixel buffers are ``HxWx4`` ``uint8`` numpy arrays (RGBA).  Every kernel
returns a new array and leaves alpha untouched unless it is a
neighborhood blur.  ``KERNELS`` maps each ``FilterKind`` to its kernel so
dispatch over the closed catalog is exhaustive.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping, Sequence

import numpy as np

from renderkit.config import RenderConfig
from renderkit.errors import FilterValidationFailure, RenderErrorCode
from renderkit.models import BlendMode, FilterKind, FilterOp, FilterValidationResult

logger = logging.getLogger("renderkit")

# ---------------------------------------------------------------------------
# Parameter tables
# ---------------------------------------------------------------------------

PARAM_RANGES: dict[FilterKind, dict[str, tuple[float, float]]] = {
    FilterKind.BRIGHTNESS: {"value": (-100.0, 100.0)},
    FilterKind.CONTRAST: {"value": (-100.0, 100.0)},
    FilterKind.SATURATION: {"value": (-100.0, 100.0)},
    FilterKind.HUE: {"degrees": (-360.0, 360.0)},
    FilterKind.GRAYSCALE: {},
    FilterKind.SEPIA: {"intensity": (0.0, 100.0)},
    FilterKind.INVERT: {},
    FilterKind.NOISE: {"intensity": (0.0, 100.0), "seed": (0.0, 2.0**32 - 1)},
    FilterKind.BLUR: {"radius": (0.0, 20.0)},
    FilterKind.SHARPEN: {"amount": (0.0, 100.0)},
    FilterKind.PIXELATE: {"size": (1.0, 100.0)},
    FilterKind.POSTERIZE: {"levels": (2.0, 256.0)},
    FilterKind.VIGNETTE: {
        "intensity": (0.0, 1.0),
        "size": (0.0, 1.0),
        "blur": (0.0, 1.0),
    },
    FilterKind.EMBOSS: {"strength": (0.0, 3.0)},
    FilterKind.EDGE_DETECT: {"sensitivity": (0.0, 2.0)},
}

# Parameters absent here are required.
PARAM_DEFAULTS: dict[FilterKind, dict[str, float]] = {
    FilterKind.BRIGHTNESS: {"value": 0.0},
    FilterKind.CONTRAST: {"value": 0.0},
    FilterKind.SEPIA: {"intensity": 100.0},
    FilterKind.NOISE: {"intensity": 10.0},
    FilterKind.SHARPEN: {"amount": 50.0},
    FilterKind.PIXELATE: {"size": 10.0},
    FilterKind.POSTERIZE: {"levels": 4.0},
    FilterKind.VIGNETTE: {"intensity": 0.5, "size": 0.5, "blur": 0.5},
    FilterKind.EMBOSS: {"strength": 1.0},
    FilterKind.EDGE_DETECT: {"sensitivity": 1.0},
}

_OPTIONAL_PARAMS: dict[FilterKind, set[str]] = {
    FilterKind.NOISE: {"seed"},
}

_INTEGER_PARAMS: dict[FilterKind, set[str]] = {
    FilterKind.NOISE: {"seed"},
    FilterKind.PIXELATE: {"size"},
    FilterKind.POSTERIZE: {"levels"},
}

# (param, threshold, use absolute value) -- legal but visually extreme.
_WARNING_THRESHOLDS: dict[FilterKind, tuple[str, float, bool]] = {
    FilterKind.BRIGHTNESS: ("value", 50.0, True),
    FilterKind.CONTRAST: ("value", 50.0, True),
    FilterKind.SATURATION: ("value", 50.0, False),
    FilterKind.BLUR: ("radius", 10.0, False),
    FilterKind.SHARPEN: ("amount", 80.0, False),
    FilterKind.NOISE: ("intensity", 50.0, False),
    FilterKind.PIXELATE: ("size", 50.0, False),
}

# Kinds whose consecutive plain applications compose by summing "value".
ADDITIVE_KINDS = frozenset({FilterKind.BRIGHTNESS, FilterKind.CONTRAST})

_LUMA = np.array([0.299, 0.587, 0.114], dtype=np.float32)

_SEPIA_MATRIX = np.array(
    [
        [0.393, 0.769, 0.189],
        [0.349, 0.686, 0.168],
        [0.272, 0.534, 0.131],
    ],
    dtype=np.float32,
)

_EMBOSS_KERNEL = np.array([[-2, -1, 0], [-1, 0, 1], [0, 1, 2]], dtype=np.float32)
_EDGE_KERNEL = np.array([[-1, -1, -1], [-1, 8, -1], [-1, -1, -1]], dtype=np.float32)


def resolved_params(op: FilterOp) -> dict[str, float]:
    """Return the op parameters merged over the kind defaults."""
    params = dict(PARAM_DEFAULTS.get(op.kind, {}))
    params.update(op.params)
    return params


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def _with_rgb(pixels: np.ndarray, rgb: np.ndarray) -> np.ndarray:
    out = pixels.copy()
    out[..., :3] = _to_uint8(rgb)
    return out


def _rgb(pixels: np.ndarray) -> np.ndarray:
    return pixels[..., :3].astype(np.float32)


def _convolve_axis(values: np.ndarray, kernel: np.ndarray, axis: int) -> np.ndarray:
    """1-D convolution along *axis* with edge clamping."""
    half = len(kernel) // 2
    pad = [(0, 0)] * values.ndim
    pad[axis] = (half, half)
    padded = np.pad(values, pad, mode="edge")
    length = values.shape[axis]
    out = np.zeros_like(values, dtype=np.float32)
    for i, weight in enumerate(kernel):
        out += weight * np.take(padded, np.arange(i, i + length), axis=axis)
    return out


def _convolve3x3(values: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    padded = np.pad(values, ((1, 1), (1, 1), (0, 0)), mode="edge")
    height, width = values.shape[:2]
    out = np.zeros_like(values, dtype=np.float32)
    for dy in range(3):
        for dx in range(3):
            weight = kernel[dy, dx]
            if weight:
                out += weight * padded[dy:dy + height, dx:dx + width]
    return out


def gaussian_kernel(radius: float) -> np.ndarray:
    """Normalized 1-D Gaussian with sigma = radius / 3."""
    size = 2 * math.ceil(radius) + 1
    sigma = max(radius / 3.0, 1e-6)
    offsets = np.arange(size, dtype=np.float32) - size // 2
    weights = np.exp(-(offsets**2) / (2.0 * sigma * sigma))
    return (weights / weights.sum()).astype(np.float32)


def _gaussian_blur(values: np.ndarray, radius: float) -> np.ndarray:
    kernel = gaussian_kernel(radius)
    return _convolve_axis(_convolve_axis(values, kernel, axis=0), kernel, axis=1)


# ---------------------------------------------------------------------------
# Kernels
# ---------------------------------------------------------------------------


def _brightness(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    return _with_rgb(pixels, _rgb(pixels) + params["value"] / 100.0 * 255.0)


def _contrast(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    # Exponential factor so that contrast(a) then contrast(b) == contrast(a + b).
    factor = 2.0 ** (params["value"] / 100.0)
    return _with_rgb(pixels, (_rgb(pixels) - 128.0) * factor + 128.0)


def _saturation(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    rgb = _rgb(pixels)
    luma = (rgb @ _LUMA)[..., None]
    factor = (params["value"] + 100.0) / 100.0
    return _with_rgb(pixels, luma + (rgb - luma) * factor)


def _hue(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    angle = math.radians(params["degrees"] % 360.0)
    cos, sin = math.cos(angle), math.sin(angle)
    matrix = np.array(
        [
            [0.213 + cos * 0.787 - sin * 0.213, 0.715 - cos * 0.715 - sin * 0.715, 0.072 - cos * 0.072 + sin * 0.928],
            [0.213 - cos * 0.213 + sin * 0.143, 0.715 + cos * 0.285 + sin * 0.140, 0.072 - cos * 0.072 - sin * 0.283],
            [0.213 - cos * 0.213 - sin * 0.787, 0.715 - cos * 0.715 + sin * 0.715, 0.072 + cos * 0.928 + sin * 0.072],
        ],
        dtype=np.float32,
    )
    return _with_rgb(pixels, _rgb(pixels) @ matrix.T)


def _grayscale(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    gray = _to_uint8(_rgb(pixels) @ _LUMA)
    out = pixels.copy()
    out[..., 0] = gray
    out[..., 1] = gray
    out[..., 2] = gray
    return out


def _sepia(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    rgb = _rgb(pixels)
    amount = params["intensity"] / 100.0
    toned = rgb @ _SEPIA_MATRIX.T
    return _with_rgb(pixels, rgb + (toned - rgb) * amount)


def _invert(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    out = pixels.copy()
    out[..., :3] = 255 - pixels[..., :3]
    return out


def _noise(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    seed = params.get("seed")
    rng = np.random.default_rng(None if seed is None else int(seed))
    height, width = pixels.shape[:2]
    spread = params["intensity"] / 100.0 * 255.0
    delta = (rng.random((height, width, 1), dtype=np.float32) - 0.5) * spread
    return _with_rgb(pixels, _rgb(pixels) + delta)


def _blur(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    radius = params["radius"]
    if radius <= 0:
        return pixels.copy()
    values = pixels.astype(np.float32)
    alpha = values[..., 3:4]
    # Blur premultiplied colour so transparent pixels do not bleed their RGB.
    premultiplied = np.concatenate([values[..., :3] * alpha / 255.0, alpha], axis=-1)
    blurred = _gaussian_blur(premultiplied, radius)
    blurred_alpha = blurred[..., 3:4]
    rgb = np.divide(
        blurred[..., :3] * 255.0,
        blurred_alpha,
        out=np.zeros_like(blurred[..., :3]),
        where=blurred_alpha > 0,
    )
    return _to_uint8(np.concatenate([rgb, blurred_alpha], axis=-1))


def _sharpen(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    rgb = _rgb(pixels)
    blurred = _gaussian_blur(rgb, 1.0)
    return _with_rgb(pixels, rgb + (rgb - blurred) * (params["amount"] / 100.0))


def _pixelate(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    size = max(1, int(params["size"]))
    if size == 1:
        return pixels.copy()
    height, width = pixels.shape[:2]
    rows = np.arange(0, height, size)
    cols = np.arange(0, width, size)
    rgb = _rgb(pixels)
    sums = np.add.reduceat(np.add.reduceat(rgb, rows, axis=0), cols, axis=1)
    row_counts = np.diff(np.append(rows, height))
    col_counts = np.diff(np.append(cols, width))
    means = sums / (row_counts[:, None, None] * col_counts[None, :, None])
    blocks = np.repeat(np.repeat(means, row_counts, axis=0), col_counts, axis=1)
    return _with_rgb(pixels, blocks)


def _posterize(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    step = 255.0 / (int(params["levels"]) - 1)
    return _with_rgb(pixels, np.rint(_rgb(pixels) / step) * step)


def _vignette(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    height, width = pixels.shape[:2]
    ys = (np.arange(height, dtype=np.float32) + 0.5) / height * 2.0 - 1.0
    xs = (np.arange(width, dtype=np.float32) + 0.5) / width * 2.0 - 1.0
    distance = np.sqrt(ys[:, None] ** 2 + xs[None, :] ** 2) / math.sqrt(2.0)
    inner = params["size"]
    feather = max(params["blur"], 1e-3)
    fade = np.clip((distance - inner) / feather, 0.0, 1.0)
    fade = fade * fade * (3.0 - 2.0 * fade)
    factor = 1.0 - params["intensity"] * fade
    return _with_rgb(pixels, _rgb(pixels) * factor[..., None])


def _emboss(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    kernel = _EMBOSS_KERNEL * params["strength"]
    kernel[1, 1] = 1.0
    return _with_rgb(pixels, _convolve3x3(_rgb(pixels), kernel))


def _edge_detect(pixels: np.ndarray, params: Mapping[str, float]) -> np.ndarray:
    return _with_rgb(pixels, _convolve3x3(_rgb(pixels), _EDGE_KERNEL * params["sensitivity"]))


Kernel = Callable[[np.ndarray, Mapping[str, float]], np.ndarray]

KERNELS: dict[FilterKind, Kernel] = {
    FilterKind.BRIGHTNESS: _brightness,
    FilterKind.CONTRAST: _contrast,
    FilterKind.SATURATION: _saturation,
    FilterKind.HUE: _hue,
    FilterKind.GRAYSCALE: _grayscale,
    FilterKind.SEPIA: _sepia,
    FilterKind.INVERT: _invert,
    FilterKind.NOISE: _noise,
    FilterKind.BLUR: _blur,
    FilterKind.SHARPEN: _sharpen,
    FilterKind.PIXELATE: _pixelate,
    FilterKind.POSTERIZE: _posterize,
    FilterKind.VIGNETTE: _vignette,
    FilterKind.EMBOSS: _emboss,
    FilterKind.EDGE_DETECT: _edge_detect,
}


def blend(base: np.ndarray, filtered: np.ndarray, mode: BlendMode, opacity: float) -> np.ndarray:
    """Combine *filtered* with *base* using *mode*, then mix by *opacity*."""
    a = base.astype(np.float32) / 255.0
    b = filtered.astype(np.float32) / 255.0
    if mode is BlendMode.MULTIPLY:
        mixed = a * b
    elif mode is BlendMode.SCREEN:
        mixed = 1.0 - (1.0 - a) * (1.0 - b)
    elif mode is BlendMode.OVERLAY:
        mixed = np.where(a < 0.5, 2.0 * a * b, 1.0 - 2.0 * (1.0 - a) * (1.0 - b))
    else:
        mixed = b
    # Alpha is never blended, only mixed by opacity.
    mixed[..., 3] = b[..., 3]
    result = a + (mixed - a) * opacity
    return _to_uint8(result * 255.0)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class FilterEngine:
    """Validate, optimize and apply filter chains over RGBA pixel buffers."""

    def __init__(self, config: RenderConfig | None = None) -> None:
        self.config = config or RenderConfig()

    # -- validation ------------------------------------------------------

    def validate(self, op: FilterOp) -> FilterValidationResult:
        """Check *op* against its parameter range table.

        Out-of-range values fail; they are never clamped here.
        """
        ranges = PARAM_RANGES[op.kind]
        params = resolved_params(op)
        warnings: list[str] = []

        unknown = sorted(set(op.params) - set(ranges))
        if unknown:
            return FilterValidationResult(
                valid=False,
                error=f"{op.kind.value}: unknown parameter(s) {', '.join(unknown)}",
            )

        for name, (low, high) in ranges.items():
            if name not in params:
                if name in _OPTIONAL_PARAMS.get(op.kind, set()):
                    continue
                return FilterValidationResult(
                    valid=False,
                    error=f"{op.kind.value}: missing required parameter '{name}'",
                )
            value = params[name]
            if not math.isfinite(value):
                return FilterValidationResult(
                    valid=False,
                    error=f"{op.kind.value}: parameter '{name}' must be finite, got {value}",
                )
            if value < low or value > high:
                return FilterValidationResult(
                    valid=False,
                    error=(
                        f"{op.kind.value}: parameter '{name}' must be between "
                        f"{low:g} and {high:g}, got {value:g}"
                    ),
                )
            if name in _INTEGER_PARAMS.get(op.kind, set()) and value != int(value):
                return FilterValidationResult(
                    valid=False,
                    error=f"{op.kind.value}: parameter '{name}' must be an integer, got {value:g}",
                )

        if not 0.0 <= op.opacity <= 1.0:
            return FilterValidationResult(
                valid=False,
                error=f"{op.kind.value}: opacity must be between 0 and 1, got {op.opacity:g}",
            )

        threshold = _WARNING_THRESHOLDS.get(op.kind)
        if threshold is not None:
            name, limit, absolute = threshold
            value = params[name]
            if (abs(value) if absolute else value) > limit:
                warnings.append(
                    f"{RenderErrorCode.W_FILTER_EXTREME_VALUE.value}: {op.kind.value} "
                    f"{name}={value:g} is beyond {limit:g} and may look extreme"
                )

        return FilterValidationResult(valid=True, warnings=warnings)

    def validate_chain(self, chain: Sequence[FilterOp]) -> FilterValidationResult:
        """Validate every op; messages are prefixed with the op's chain index."""
        errors: list[str] = []
        warnings: list[str] = []
        for index, op in enumerate(chain):
            result = self.validate(op)
            if result.error:
                errors.append(f"filter[{index}] {result.error}")
            warnings.extend(f"filter[{index}] {w}" for w in result.warnings)
        return FilterValidationResult(
            valid=not errors,
            error="; ".join(errors) if errors else None,
            warnings=warnings,
        )

    # -- optimization ----------------------------------------------------

    def optimize_filter_chain(self, chain: Sequence[FilterOp]) -> list[FilterOp]:
        """Drop disabled ops and merge adjacent plain additive ops of one kind.

        Ops of different kinds, or of one kind separated by another op, are
        left as they are.  Non-additive kinds are never merged.
        """
        optimized: list[FilterOp] = []
        for op in chain:
            if not op.enabled:
                continue
            previous = optimized[-1] if optimized else None
            if (
                previous is not None
                and op.kind in ADDITIVE_KINDS
                and previous.kind == op.kind
                and previous.is_plain
                and op.is_plain
            ):
                optimized[-1] = FilterOp(
                    kind=op.kind,
                    params={
                        "value": resolved_params(previous)["value"] + resolved_params(op)["value"]
                    },
                )
                continue
            optimized.append(op)
        if len(optimized) != len(chain):
            logger.debug(
                "renderkit | filter | optimized=%d->%d", len(chain), len(optimized)
            )
        return optimized

    # -- application -----------------------------------------------------

    def apply_filter(self, pixels: np.ndarray, op: FilterOp) -> np.ndarray:
        """Apply one op to an RGBA buffer and return the new buffer.

        Parameters are not re-validated so merged ops may exceed the
        per-op range.
        """
        _check_buffer(pixels)
        if not op.enabled:
            return pixels
        params = resolved_params(op)
        if op.kind is FilterKind.NOISE and "seed" not in params and self.config.noise_seed is not None:
            params["seed"] = float(self.config.noise_seed)
        filtered = KERNELS[op.kind](pixels, params)
        if op.is_plain:
            return filtered
        return blend(pixels, filtered, op.blend, op.opacity)

    def apply_filter_chain(self, pixels: np.ndarray, chain: Sequence[FilterOp]) -> np.ndarray:
        """Validate *chain*, optimize it if configured, then apply it in order.

        Raises:
            FilterValidationFailure: If any op fails validation.
        """
        result = self.validate_chain(chain)
        if not result.valid:
            raise FilterValidationFailure(result.error or "invalid filter chain")
        ops = self.optimize_filter_chain(chain) if self.config.optimize_filters else list(chain)
        for op in ops:
            pixels = self.apply_filter(pixels, op)
        return pixels


def _check_buffer(pixels: np.ndarray) -> None:
    if pixels.ndim != 3 or pixels.shape[2] != 4 or pixels.dtype != np.uint8:
        raise ValueError(
            f"Pixel buffer must be HxWx4 uint8, got shape {pixels.shape} dtype {pixels.dtype}"
        )
