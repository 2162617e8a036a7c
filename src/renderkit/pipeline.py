"""Single-pass render pipeline for one processing request.

``RenderPipeline`` owns one classified source, at most one resize plan and
a filter chain.  Its lifecycle is a transition table over
``RequestState``; a second resize-type call has no transition and fails
with ``MultipleResizeNotAllowed``.  The terminal ``render`` call allocates
exactly one rendering surface, draws the source into it once, runs the
filter chain over its pixels and hands it to the ``OutputConverter``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Callable
from enum import Enum
from types import MappingProxyType
from typing import Any, NoReturn

from pydantic import ValidationError

from renderkit import geometry
from renderkit.classifier import SourceClassifier
from renderkit.config import RenderConfig
from renderkit.decoder import PillowDecoder
from renderkit.errors import (
    AlreadyConsumed,
    ClassificationFailure,
    FilterValidationFailure,
    InvalidFitSpec,
    MultipleResizeNotAllowed,
    RenderErrorCode,
    RenderFailure,
)
from renderkit.filters import FilterEngine
from renderkit.models import (
    DecodedRaster,
    Dimensions,
    EncodedBinary,
    FilterOp,
    FitSpec,
    ImageSource,
    OutputOptions,
    Reference,
    RenderPlan,
    RequestState,
    ScaleSpec,
    VectorMarkup,
)
from renderkit.output import OutputConverter
from renderkit.protocols import Drawable, RenderSurface, SourceDecoder, SurfaceFactory
from renderkit.surface import PillowSurfaceFactory

logger = logging.getLogger("renderkit")


class RequestEvent(str, Enum):
    """Calls that drive a request through its lifecycle."""

    BIND = "bind"
    RESIZE = "resize"
    FILTER = "filter"
    RENDER = "render"


# Filters queued before a resize keep the request in SOURCE_BOUND so the
# resize is still allowed; they always run after the draw.
TRANSITIONS = MappingProxyType(
    {
        (RequestState.EMPTY, RequestEvent.BIND): RequestState.SOURCE_BOUND,
        (RequestState.SOURCE_BOUND, RequestEvent.RESIZE): RequestState.GEOMETRY_PLANNED,
        (RequestState.SOURCE_BOUND, RequestEvent.FILTER): RequestState.SOURCE_BOUND,
        (RequestState.SOURCE_BOUND, RequestEvent.RENDER): RequestState.RENDERED,
        (RequestState.GEOMETRY_PLANNED, RequestEvent.FILTER): RequestState.FILTERS_QUEUED,
        (RequestState.GEOMETRY_PLANNED, RequestEvent.RENDER): RequestState.RENDERED,
        (RequestState.FILTERS_QUEUED, RequestEvent.FILTER): RequestState.FILTERS_QUEUED,
        (RequestState.FILTERS_QUEUED, RequestEvent.RENDER): RequestState.RENDERED,
    }
)

TERMINAL_STATES = frozenset({RequestState.RENDERED, RequestState.FAILED})

ResizeSpec = FitSpec | ScaleSpec


@contextlib.asynccontextmanager
async def acquire_surface(
    factory: SurfaceFactory, width: int, height: int
) -> AsyncIterator[RenderSurface]:
    """Allocate a surface and release it on every exit path."""
    surface = factory.create_surface(width, height)
    try:
        yield surface
    finally:
        surface.close()
        logger.debug("renderkit | surface | released=%dx%d", width, height)


class RenderPipeline:
    """State machine and executor for one processing request."""

    def __init__(
        self,
        value: Any,
        config: RenderConfig | None = None,
        *,
        surface_factory: SurfaceFactory | None = None,
        decoder: SourceDecoder | None = None,
    ) -> None:
        self.config = config or RenderConfig()
        self.classifier = SourceClassifier(self.config)
        self.engine = FilterEngine(self.config)
        self.converter = OutputConverter(self.config)
        self.surface_factory = surface_factory or PillowSurfaceFactory()
        self.decoder = decoder or PillowDecoder(self.config)

        self.state = RequestState.EMPTY
        self.source: ImageSource | None = None
        self.resize_spec: ResizeSpec | None = None
        self.filters: list[FilterOp] = []
        self.started_at = time.perf_counter()

        self._bind(value)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _transition(self, event: RequestEvent) -> None:
        if self.state in TERMINAL_STATES:
            raise AlreadyConsumed(
                f"Request is {self.state.value}; create a new request to process again"
            )
        target = TRANSITIONS.get((self.state, event))
        if target is None:
            if event is RequestEvent.RESIZE:
                self._fail(
                    MultipleResizeNotAllowed(
                        "Resize may be called only once per request; combine the "
                        "geometry into a single resize call"
                    )
                )
            self._fail(
                RenderFailure(
                    f"Event '{event.value}' is not valid in state '{self.state.value}'"
                )
            )
        self.state = target

    def _fail(self, failure: RenderFailure) -> NoReturn:
        self.state = RequestState.FAILED
        logger.error(
            "renderkit | %s | code=%s | detail=%s",
            failure.error.stage or "request",
            failure.code,
            failure.reason,
        )
        raise failure

    def _bind(self, value: Any) -> None:
        self._transition(RequestEvent.BIND)
        source, errors = self.classifier.classify(value)
        fatal = [e for e in errors if e.code.startswith("E_")]
        if source is None or fatal:
            error = fatal[0] if fatal else errors[0]
            self._fail(ClassificationFailure.from_error(error))
        self.source = source

    # ------------------------------------------------------------------
    # Chained calls
    # ------------------------------------------------------------------

    def plan_resize(self, make_spec: Callable[[], ResizeSpec]) -> None:
        """Record the single resize request.

        *make_spec* is called after the one-resize guard so a second resize
        always reports ``MultipleResizeNotAllowed`` first.
        """
        self._transition(RequestEvent.RESIZE)
        try:
            spec = make_spec()
        except ValidationError as exc:
            self._fail(InvalidFitSpec(f"Invalid resize options: {exc}"))
        try:
            if isinstance(spec, ScaleSpec):
                geometry.validate_scale(spec)
            else:
                geometry.validate_fit_spec(spec)
        except RenderFailure as exc:
            self._fail(exc)
        self.resize_spec = spec

    def queue_filter(self, make_op: Callable[[], FilterOp]) -> None:
        """Validate and append one filter op."""
        self._transition(RequestEvent.FILTER)
        try:
            op = make_op()
        except ValidationError as exc:
            self._fail(FilterValidationFailure(f"Invalid filter: {exc}"))
        result = self.engine.validate(op)
        if not result.valid:
            self._fail(FilterValidationFailure(result.error or "invalid filter"))
        for warning in result.warnings:
            logger.warning("renderkit | filter | %s", warning)
        self.filters.append(op)

    # ------------------------------------------------------------------
    # Terminal call
    # ------------------------------------------------------------------

    async def render(
        self,
        mode: str,
        options: OutputOptions,
        filename: str | None = None,
    ) -> Any:
        """Execute the plan and convert the result.

        *mode* is ``"binary"``, ``"string"`` or ``"file"``.  The request is
        consumed whether this succeeds or fails.
        """
        self._transition(RequestEvent.RENDER)
        try:
            return await self._render(mode, options, filename)
        except RenderFailure as exc:
            self._fail(exc)
        except BaseException:
            self.state = RequestState.FAILED
            raise

    async def _render(self, mode: str, options: OutputOptions, filename: str | None) -> Any:
        source = self.source
        assert source is not None

        if (
            isinstance(source, EncodedBinary)
            and self.resize_spec is None
            and not self.filters
            and self.converter.can_pass_through(source, options)
        ):
            size = await asyncio.to_thread(self.decoder.probe, source)
            return self.converter.pass_through(
                source, mode, options, size, filename=filename, started_at=self.started_at
            )

        drawable = await self._drawable(source)
        original = _native_size(drawable)
        plan = self._plan(original)
        geometry.check_canvas_limits(plan, self.config)

        async with acquire_surface(
            self.surface_factory, plan.canvas_width, plan.canvas_height
        ) as surface:
            surface.draw_source(drawable, plan.draw_rect, plan.fill_background)
            if self.filters:
                pixels = surface.get_pixel_buffer()
                surface.set_pixel_buffer(self.engine.apply_filter_chain(pixels, self.filters))

            if mode == "binary":
                result = await self.converter.to_encoded_binary(
                    surface, options, started_at=self.started_at, original=original
                )
            elif mode == "string":
                result = await self.converter.to_encoded_string(
                    surface, options, started_at=self.started_at, original=original
                )
            else:
                result = await self.converter.to_named_file(
                    surface,
                    filename or "image",
                    options,
                    started_at=self.started_at,
                    original=original,
                )

        logger.info(
            "renderkit | render | renderer=%s | source=%s | canvas=%dx%d | filters=%d | time=%.3fs",
            self.config.renderer_version,
            source.kind.value,
            plan.canvas_width,
            plan.canvas_height,
            len(self.filters),
            time.perf_counter() - self.started_at,
        )
        return result

    async def _drawable(self, source: ImageSource) -> Drawable:
        """Return vector markup as-is and decode everything else to pixels."""
        if isinstance(source, (VectorMarkup, DecodedRaster)):
            return source
        if isinstance(source, Reference) and source.is_vector:
            text = await asyncio.to_thread(self.decoder.load_markup, source)
            loaded, errors = self.classifier.classify(text)
            if not isinstance(loaded, VectorMarkup):
                if errors:
                    raise ClassificationFailure.from_error(errors[0])
                raise ClassificationFailure(
                    f"Reference {source.location} does not contain vector markup",
                    code=RenderErrorCode.E_SOURCE_MALFORMED,
                )
            return loaded
        return await asyncio.to_thread(self.decoder.decode, source)

    def _plan(self, original: Dimensions) -> RenderPlan:
        spec = self.resize_spec
        if spec is None:
            return geometry.native_plan(original, self.config.default_background)
        if isinstance(spec, ScaleSpec):
            plan = geometry.resolve_scale(original, spec)
        else:
            plan = geometry.resolve(original, spec)
        if plan.fill_background is None and self.config.default_background is not None:
            plan = plan.model_copy(update={"fill_background": self.config.default_background})
        return plan


def _native_size(drawable: Drawable) -> Dimensions:
    if isinstance(drawable, VectorMarkup):
        return Dimensions(
            width=max(1, geometry.round_pixel(drawable.width)),
            height=max(1, geometry.round_pixel(drawable.height)),
        )
    return Dimensions(width=drawable.width, height=drawable.height)
