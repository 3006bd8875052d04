"""Run normalization, viewports, font statistics and percentage geometry."""

import math

import pytest
from pydantic import ValidationError

from conftest import make_run
from engine.config import HydrationThresholds
from models.geometry import Rect, Unit
from models.hydration_types import TextBlock
from models.layout_types import RawTextItem
from processors.font_statistics import FontStatisticsAnalyzer
from processors.run_normalizer import RunNormalizer
from utils.pdf_transforms import compute_viewport


def raw_item(text='Hi', transform=(12, 0, 0, 12, 72, 700), width=20.0, height=12.0):
    return RawTextItem(text=text, transform=transform, width=width, height=height, font_name='Helvetica')


class TestViewport:

    def test_upright_page_flips_y(self):
        viewport = compute_viewport((0, 0, 612, 792))

        assert viewport.to_page(72, 700) == pytest.approx((72, 92))

    def test_cropbox_offset_is_removed(self):
        viewport = compute_viewport((50, 100, 650, 900))

        assert (viewport.width, viewport.height) == (600, 800)
        assert viewport.to_page(50, 900) == pytest.approx((0, 0))

    def test_quarter_turn(self):
        viewport = compute_viewport((0, 0, 612, 792), 90)

        assert (viewport.width, viewport.height) == (792, 612)
        assert viewport.to_page(0, 0) == pytest.approx((0, 0))
        assert viewport.to_page(72, 700) == pytest.approx((700, 72))

    def test_half_turn(self):
        viewport = compute_viewport((0, 0, 612, 792), 180)

        assert viewport.to_page(0, 0) == pytest.approx((612, 0))

    def test_non_right_angle_rotation_is_ignored(self):
        assert compute_viewport((0, 0, 612, 792), 45).rotation == 0


class TestRunNormalizer:

    def test_font_size_from_transform(self):
        """The transform's vertical scale wins over a Tf size of 1"""
        run = RunNormalizer().normalize_item(raw_item(), compute_viewport((0, 0, 612, 792)))

        assert run.x == pytest.approx(72)
        assert run.y == pytest.approx(92)
        assert run.font_size == pytest.approx(12)
        assert run.width == pytest.approx(20)
        assert run.rotation == 0

    def test_rotated_text(self):
        run = RunNormalizer().normalize_item(raw_item(transform=(0, 12, -12, 0, 300, 300)), compute_viewport((0, 0, 612, 792)))

        assert run.rotation == 90
        assert run.font_size == pytest.approx(12)

    def test_rotated_page(self):
        run = RunNormalizer().normalize_item(raw_item(), compute_viewport((0, 0, 612, 792), 90))

        assert (run.x, run.y) == pytest.approx((700, 72))
        assert run.font_size == pytest.approx(12)
        assert run.width == pytest.approx(20)

    def test_missing_height_uses_font_size(self):
        run = RunNormalizer().normalize_item(raw_item(height=0), compute_viewport((0, 0, 612, 792)))

        assert run.height == pytest.approx(12)

    @pytest.mark.parametrize('item', [
        raw_item(text='   '),
        raw_item(text=''),
        raw_item(transform=(0, 0, 0, 0, 72, 700)),
        raw_item(transform=(12, 0, 0, 12, math.nan, 700)),
        raw_item(transform=(12, 0, 0, 12, math.inf, 700)),
    ])
    def test_unusable_items_are_counted(self, item):
        normalizer = RunNormalizer()
        runs = normalizer.normalize([item, raw_item()], compute_viewport((0, 0, 612, 792)))

        assert len(runs) == 1
        assert normalizer.skipped_count == 1


class TestFontStatistics:

    @pytest.fixture
    def body_runs(self):
        runs = [make_run('body text', x=72, y=100 + 12 * i, size=10) for i in range(6)]
        runs.append(make_run('Title', x=72, y=60, size=18))
        return runs

    def test_body_text_dominates(self, body_runs):
        stats = FontStatisticsAnalyzer().analyze([body_runs])

        assert stats.dominantFontSize == 10
        assert stats.dominantLineHeight == 12
        assert stats.masterGrid.columns == [72.0]
        assert stats.averageCharWidth > 0

    def test_sparse_sample_uses_defaults(self):
        stats = FontStatisticsAnalyzer().analyze([[make_run('one'), make_run('two', y=112)]])

        assert stats.dominantFontSize == 12
        assert stats.dominantLineHeight == 14

    def test_only_sampled_pages_count(self, body_runs):
        large = [make_run('large text', x=72, y=100 + 20 * i, size=16) for i in range(20)]
        analyzer = FontStatisticsAnalyzer(HydrationThresholds(stats_sample_pages=1))

        assert analyzer.analyze([body_runs, large]).dominantFontSize == 10

    def test_two_column_grid(self):
        runs = [make_run('left column', x=72, y=100 + 12 * i) for i in range(6)]
        runs += [make_run('right column', x=320, y=100 + 12 * i) for i in range(6)]
        stats = FontStatisticsAnalyzer().analyze([runs])

        assert stats.masterGrid.columns == [72.0, 320.0]

    def test_page_stats(self, body_runs):
        page = FontStatisticsAnalyzer().analyze_page(body_runs)

        assert page.line_height_estimate == 12
        assert page.avg_font_size == pytest.approx((6 * 10 + 18) / 7, abs=0.01)

    def test_empty_page_stats(self):
        page = FontStatisticsAnalyzer().analyze_page([])

        assert page.avg_font_size is None
        assert page.line_height_estimate is None


class TestRect:

    def test_percent_round_trip(self):
        rect = Rect(61.2, 79.2, 489.6, 79.2)
        percent = rect.to_percent(612, 792)

        assert percent.unit is Unit.PERCENT
        assert percent.as_box() == pytest.approx((10, 10, 80, 10))
        assert percent.to_pixels(612, 792).as_box() == pytest.approx(rect.as_box())

    def test_units_are_checked(self):
        with pytest.raises(ValueError):
            Rect(1, 1, 1, 1).to_pixels(612, 792)
        with pytest.raises(ValueError):
            Rect(1, 1, 1, 1, Unit.PERCENT).to_percent(612, 792)

    def test_clamp_keeps_box_on_page(self):
        clamped = Rect(-5, 95, 20, 10, Unit.PERCENT).clamp_percent()

        assert clamped.x == 0
        assert clamped.bottom == 100
        assert clamped.w > 0 and clamped.h > 0

    def test_blocks_reject_boxes_off_page(self):
        with pytest.raises(ValidationError):
            TextBlock(id='b', box=(10, 10, 0, 5), html='x')
        with pytest.raises(ValidationError):
            TextBlock(id='b', box=(-10, 10, 5, 5), html='x')
