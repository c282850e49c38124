import pytest

from src.domain.exceptions import InvalidRequestError
from src.domain.services.geometry import (
    GeometryResolver,
    clamp_cut,
    context_strip_height,
    round_half_away,
)


def test_round_half_away_is_symmetric():
    assert round_half_away(66.5) == 67
    assert round_half_away(-66.5) == -67
    assert round_half_away(66.49) == 66
    assert round_half_away(0.0) == 0


def test_display_to_source_scales_by_upper_width():
    # 800px wide image shown 600px wide in the editor
    geo = GeometryResolver(source_width=800, display_width=600)
    assert geo.scale_factor == pytest.approx(4 / 3)
    assert geo.display_to_source(50) == 67
    assert geo.display_to_source(-50) == -67


def test_source_to_display_inverse():
    geo = GeometryResolver(source_width=1200)
    assert geo.display_width == 600
    assert geo.source_to_display(200) == 100
    assert geo.display_to_source(100) == 200


def test_ratio_conversions():
    geo = GeometryResolver(source_width=800, display_width=600)
    assert GeometryResolver.ratio_to_source(0.25, 900) == 225
    assert geo.ratio_to_display(0.5) == 300
    assert GeometryResolver.source_to_ratio(450, 900) == pytest.approx(0.5)


def test_invalid_widths_rejected():
    with pytest.raises(InvalidRequestError):
        GeometryResolver(source_width=0)
    with pytest.raises(InvalidRequestError):
        GeometryResolver(source_width=800, display_width=0)


def test_clamp_cut_keeps_min_height():
    assert clamp_cut(67, 900) == 67
    assert clamp_cut(300, 150) == 50
    assert clamp_cut(10, 100) == 0
    # already shorter than the floor: nothing to cut
    assert clamp_cut(10, 80) == 0
    assert clamp_cut(-67, 900) == 67


def test_context_strip_height():
    # extension strips: min(150, 20%)
    assert context_strip_height(400, 150, 0.20) == 80
    assert context_strip_height(2000, 150, 0.20) == 150
    # neighbor strips: min(100, 15%)
    assert context_strip_height(400, 100, 0.15) == 60
    assert context_strip_height(3, 100, 0.15) == 1
