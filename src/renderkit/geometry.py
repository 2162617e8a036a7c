"""Fit geometry: turn original dimensions and a fit request into a plan.

All functions here are pure.  ``resolve`` computes the canvas size and the
rectangle the source is drawn into; ``resolve_scale`` does the same for a
scale-factor request.  Fractional pixel boundaries are rounded with
``PIXEL_ROUNDING`` (nearest, ties away from zero).
"""

from __future__ import annotations

import decimal
import logging

from renderkit.config import RenderConfig
from renderkit.errors import InvalidDimension, InvalidFitSpec, RenderErrorCode
from renderkit.models import (
    Dimensions,
    FitMode,
    FitSpec,
    Padding,
    Position,
    Rect,
    RenderPlan,
    ScaleSpec,
)

logger = logging.getLogger("renderkit")

PIXEL_ROUNDING = decimal.ROUND_HALF_UP

_HORIZONTAL_ANCHOR: dict[Position, float] = {
    Position.CENTER: 0.5,
    Position.TOP: 0.5,
    Position.BOTTOM: 0.5,
    Position.LEFT: 0.0,
    Position.RIGHT: 1.0,
    Position.TOP_LEFT: 0.0,
    Position.TOP_RIGHT: 1.0,
    Position.BOTTOM_LEFT: 0.0,
    Position.BOTTOM_RIGHT: 1.0,
}

_VERTICAL_ANCHOR: dict[Position, float] = {
    Position.CENTER: 0.5,
    Position.TOP: 0.0,
    Position.BOTTOM: 1.0,
    Position.LEFT: 0.5,
    Position.RIGHT: 0.5,
    Position.TOP_LEFT: 0.0,
    Position.TOP_RIGHT: 0.0,
    Position.BOTTOM_LEFT: 1.0,
    Position.BOTTOM_RIGHT: 1.0,
}


def round_pixel(value: float) -> int:
    """Round *value* to an integer pixel using ``PIXEL_ROUNDING``."""
    return int(decimal.Decimal(repr(value)).quantize(decimal.Decimal(1), rounding=PIXEL_ROUNDING))


def validate_fit_spec(spec: FitSpec) -> None:
    """Reject a fit request that can never resolve, before any source size
    is known.

    Raises:
        InvalidFitSpec: If neither target dimension is given.
        InvalidDimension: If a target dimension or padding is not positive.
    """
    if spec.width is None and spec.height is None:
        raise InvalidFitSpec(
            f"Fit mode '{spec.mode.value}' needs a target width or height"
        )
    for label, value in (("width", spec.width), ("height", spec.height)):
        if value is not None and value <= 0:
            raise InvalidDimension(f"Target {label} must be positive, got {value}")
    if spec.padding is not None:
        for side in ("top", "right", "bottom", "left"):
            amount = getattr(spec.padding, side)
            if amount < 0:
                raise InvalidDimension(f"Padding {side} must not be negative, got {amount}")


def validate_scale(spec: ScaleSpec) -> None:
    for label, value in (("x", spec.scale_x), ("y", spec.scale_y)):
        if value <= 0:
            raise InvalidDimension(f"Scale {label} must be positive, got {value}")


def _check_original(original: Dimensions) -> None:
    if original.width <= 0 or original.height <= 0:
        raise InvalidDimension(
            f"Original size must be positive, got {original.width}x{original.height}"
        )


def _check_positive(width: int, height: int, what: str) -> None:
    if width <= 0 or height <= 0:
        raise InvalidDimension(f"Computed {what} {width}x{height} is not positive")


def _anchor(free: int, fraction: float) -> int:
    """Offset of the image inside *free* leftover pixels (negative when cropping)."""
    if fraction == 0.0:
        return 0
    if fraction == 1.0:
        return free
    return round_pixel(free * fraction)


def _targets(original: Dimensions, spec: FitSpec) -> tuple[float, float]:
    """Fill in a missing target side from the source aspect ratio."""
    width, height = spec.width, spec.height
    if width is not None and height is not None:
        return float(width), float(height)
    if width is not None:
        return float(width), original.height * (width / original.width)
    return original.width * (height / original.height), float(height)


def resolve(original: Dimensions, spec: FitSpec) -> RenderPlan:
    """Compute the render plan for drawing *original* under *spec*.

    Raises:
        InvalidFitSpec: If neither target dimension is given.
        InvalidDimension: If any input or computed dimension is not positive.
    """
    validate_fit_spec(spec)
    _check_original(original)

    ow, oh = original.width, original.height
    padding = spec.padding or Padding()

    if spec.mode in (FitMode.MAX_FIT, FitMode.MIN_FIT):
        scale = 1.0
        for target, size in ((spec.width, ow), (spec.height, oh)):
            if target is None:
                continue
            if spec.mode is FitMode.MAX_FIT:
                scale = min(scale, target / size)
            else:
                scale = max(scale, target / size)
        image_w, image_h = round_pixel(ow * scale), round_pixel(oh * scale)
        _check_positive(image_w, image_h, "image size")
        area_w, area_h = image_w, image_h
    else:
        target_w, target_h = _targets(original, spec)
        area_w, area_h = round_pixel(target_w), round_pixel(target_h)
        _check_positive(area_w, area_h, "canvas size")
        if spec.mode is FitMode.FILL:
            image_w, image_h = area_w, area_h
        else:
            scale_x, scale_y = target_w / ow, target_h / oh
            if spec.mode is FitMode.COVER:
                scale = max(scale_x, scale_y)
            else:
                scale = min(scale_x, scale_y)
                if spec.without_enlargement:
                    scale = min(scale, 1.0)
            image_w, image_h = round_pixel(ow * scale), round_pixel(oh * scale)
            _check_positive(image_w, image_h, "image size")

    x = padding.left + _anchor(area_w - image_w, _HORIZONTAL_ANCHOR[spec.position])
    y = padding.top + _anchor(area_h - image_h, _VERTICAL_ANCHOR[spec.position])

    plan = RenderPlan(
        canvas_width=area_w + padding.left + padding.right,
        canvas_height=area_h + padding.top + padding.bottom,
        draw_rect=Rect(x=x, y=y, width=image_w, height=image_h),
        fill_background=spec.background,
    )
    logger.debug(
        "renderkit | geometry | mode=%s | original=%dx%d | canvas=%dx%d | draw=%d,%d,%dx%d",
        spec.mode.value,
        ow,
        oh,
        plan.canvas_width,
        plan.canvas_height,
        x,
        y,
        image_w,
        image_h,
    )
    return plan


def resolve_scale(original: Dimensions, spec: ScaleSpec) -> RenderPlan:
    """Compute the plan for a scale-factor request: canvas = round(size x factor)."""
    validate_scale(spec)
    _check_original(original)
    width = round_pixel(original.width * spec.scale_x)
    height = round_pixel(original.height * spec.scale_y)
    _check_positive(width, height, "canvas size")
    return RenderPlan(
        canvas_width=width,
        canvas_height=height,
        draw_rect=Rect(x=0, y=0, width=width, height=height),
    )


def native_plan(original: Dimensions, background: str | None = None) -> RenderPlan:
    """Pass-through plan: canvas and draw rect equal the source size."""
    _check_original(original)
    return RenderPlan(
        canvas_width=original.width,
        canvas_height=original.height,
        draw_rect=Rect(x=0, y=0, width=original.width, height=original.height),
        fill_background=background,
    )


def check_canvas_limits(plan: RenderPlan, config: RenderConfig) -> None:
    """Raises InvalidDimension (``E_DIMENSION_TOO_LARGE``) for oversized canvases."""
    if (
        plan.canvas_width > config.max_canvas_width
        or plan.canvas_height > config.max_canvas_height
    ):
        raise InvalidDimension(
            f"Canvas {plan.canvas_width}x{plan.canvas_height} exceeds the limit "
            f"{config.max_canvas_width}x{config.max_canvas_height}",
            code=RenderErrorCode.E_DIMENSION_TOO_LARGE,
        )
