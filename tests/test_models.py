"""Tests for renderkit models."""

from __future__ import annotations

import base64

import pytest
from pydantic import ValidationError

from renderkit.models import (
    BlendMode,
    DataURI,
    FilterKind,
    FilterOp,
    FitMode,
    FitSpec,
    NamedImageFile,
    OutputOptions,
    OutputResult,
    Padding,
    Position,
    SourceKind,
    VectorMarkup,
)


@pytest.mark.unit
class TestEnums:
    def test_fit_modes(self):
        assert {m.value for m in FitMode} == {"cover", "contain", "fill", "maxFit", "minFit"}

    def test_filter_kinds_are_strings(self):
        assert FilterKind("brightness") is FilterKind.BRIGHTNESS
        assert isinstance(FilterKind.EDGE_DETECT, str)


@pytest.mark.unit
class TestSourceVariants:
    def test_kind_tags(self):
        markup = VectorMarkup(text="<svg/>", width=10, height=10)
        assert markup.kind == SourceKind.VECTOR_MARKUP

    def test_data_uri_base64_payload(self):
        uri = DataURI(mime="image/png", payload=base64.b64encode(b"abc").decode(), is_base64=True)
        assert uri.decode_payload() == b"abc"

    def test_data_uri_percent_payload(self):
        uri = DataURI(mime="image/png", payload="a%20b")
        assert uri.decode_payload() == b"a b"


@pytest.mark.unit
class TestGeometryModels:
    def test_fit_spec_defaults(self):
        spec = FitSpec(width=10)
        assert spec.mode == FitMode.COVER
        assert spec.position == Position.CENTER
        assert spec.height is None

    def test_padding_from_number(self):
        assert Padding.coerce(5) == Padding(top=5, right=5, bottom=5, left=5)

    def test_padding_from_mapping(self):
        assert Padding.coerce({"left": 3}) == Padding(left=3)

    def test_padding_none(self):
        assert Padding.coerce(None) == Padding()


@pytest.mark.unit
class TestFilterOp:
    def test_plain_by_default(self):
        assert FilterOp(kind=FilterKind.BLUR, params={"radius": 1}).is_plain

    @pytest.mark.parametrize(
        "kwargs",
        [{"enabled": False}, {"opacity": 0.5}, {"blend": BlendMode.SCREEN}],
    )
    def test_modifiers_make_op_non_plain(self, kwargs):
        assert not FilterOp(kind=FilterKind.BRIGHTNESS, params={"value": 1}, **kwargs).is_plain

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            FilterOp(kind="swirl")


@pytest.mark.unit
class TestOutputModels:
    def test_quality_bounds(self):
        with pytest.raises(ValidationError):
            OutputOptions(quality=2.0)

    def test_named_file(self):
        data = b"12345"
        named = NamedImageFile(name="a.png", data=data, mime_type="image/png")
        assert named.read() is data
        assert named.size == 5
        assert named.as_stream().read() == data

    def test_output_result_is_frozen(self):
        result = OutputResult(
            payload=b"x", width=1, height=1, elapsed_seconds=0.0, format="png", mime_type="image/png"
        )
        with pytest.raises(ValidationError):
            result.width = 2
