"""
Font statistics.

Estimates the body-text font size, line pitch and column grid of a document
from a sample of pages, using frequency histograms so that body text (the
bulk of the runs) wins over headings and footnotes.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence

import numpy as np

from engine.config import HydrationThresholds
from models.hydration_types import GlobalStats, GridMargins, MasterGrid
from models.layout_types import PageStats, Run

logger = logging.getLogger(__name__)


def _round_half(value: float) -> float:
    return round(value * 2) / 2


class FontStatisticsAnalyzer:
    """Computes `GlobalStats` for a document and `PageStats` for single pages."""

    def __init__(self, thresholds: Optional[HydrationThresholds] = None):
        self.thresholds = thresholds or HydrationThresholds()

    def analyze(self, pages_runs: Sequence[Sequence[Run]]) -> GlobalStats:
        """
        Compute document statistics from per-page run lists.

        Only the first `stats_sample_pages` pages are considered. Fewer than
        `stats_min_runs` runs in the sample yields the default statistics.
        """
        t = self.thresholds
        sample = list(pages_runs)[:t.stats_sample_pages]
        all_runs = [run for page in sample for run in page]

        if len(all_runs) < t.stats_min_runs:
            logger.debug(f"Only {len(all_runs)} runs in sample, using default font statistics")
            return self.default_stats()

        dominant_size = self._dominant_font_size(all_runs)

        deltas: List[float] = []
        for page in sample:
            deltas.extend(self._line_deltas(page, dominant_size))
        dominant_line_height = self._mode(deltas) if deltas else round(dominant_size * 1.2, 1)

        total_chars = sum(len(run.text) for run in all_runs)
        total_width = sum(run.width for run in all_runs)
        avg_char_width = total_width / total_chars if total_chars else dominant_size * 0.5

        grid = MasterGrid(
            columns=self._column_grid(all_runs),
            margins=self._margins(all_runs),
        )

        stats = GlobalStats(
            dominantFontSize=dominant_size,
            dominantLineHeight=dominant_line_height,
            averageCharWidth=round(avg_char_width, 3),
            masterGrid=grid,
        )
        logger.info(
            f"Font statistics: size={stats.dominantFontSize}, line height={stats.dominantLineHeight}, "
            f"columns={len(grid.columns)}"
        )
        return stats

    def analyze_page(self, runs: Sequence[Run]) -> PageStats:
        """Per-page estimates for `HydratedPage.meta`; None when the page has no text."""
        if not runs:
            return PageStats()
        size = self._dominant_font_size(runs)
        deltas = self._line_deltas(runs, size)
        return PageStats(
            avg_font_size=round(sum(r.font_size for r in runs) / len(runs), 2),
            line_height_estimate=self._mode(deltas) if deltas else None,
        )

    def default_stats(self) -> GlobalStats:
        t = self.thresholds
        return GlobalStats(
            dominantFontSize=t.default_font_size,
            dominantLineHeight=t.default_line_height,
            averageCharWidth=round(t.default_font_size * 0.5, 3),
            masterGrid=MasterGrid(),
        )

    @staticmethod
    def _dominant_font_size(runs: Sequence[Run]) -> float:
        sizes: Counter = Counter()
        for run in runs:
            sizes[_round_half(run.font_size)] += max(len(run.text.strip()), 1)
        return sizes.most_common(1)[0][0]

    @staticmethod
    def _mode(values: Sequence[float]) -> float:
        counts = Counter(round(v) for v in values)
        # Ties resolve to the smaller pitch
        best = max(counts.items(), key=lambda item: (item[1], -item[0]))
        return float(best[0])

    @staticmethod
    def _line_deltas(runs: Sequence[Run], dominant_size: float) -> List[float]:
        """Gaps between consecutive distinct baselines that plausibly belong to one text flow."""
        baselines = sorted({round(run.y, 1) for run in runs})
        deltas = []
        for prev, cur in zip(baselines, baselines[1:]):
            delta = cur - prev
            if 0.5 < delta < dominant_size * 3:
                deltas.append(delta)
        return deltas

    def _column_grid(self, runs: Sequence[Run]) -> List[float]:
        """Stable start-x peaks of the run histogram, merged when closer than the column gap."""
        t = self.thresholds
        xs = np.asarray([run.x for run in runs], dtype=float)
        if xs.size == 0:
            return []

        bins = np.floor(xs / t.grid_bin_px).astype(int)
        counts: Dict[int, int] = Counter(bins.tolist())
        min_count = max(2, int(np.ceil(len(runs) * t.grid_peak_share)))

        peaks = []
        for b, count in sorted(counts.items()):
            if count < min_count:
                continue
            if count >= counts.get(b - 1, 0) and count >= counts.get(b + 1, 0):
                members = xs[bins == b]
                peaks.append((float(np.median(members)), count))

        merged: List[List[float]] = []
        for x, count in peaks:
            if merged and x - merged[-1][0] < t.column_gap_px:
                # Keep the stronger peak's position
                if count > merged[-1][1]:
                    merged[-1] = [x, count]
                continue
            merged.append([x, count])

        return [round(x, 2) for x, _ in merged]

    @staticmethod
    def _margins(runs: Sequence[Run]) -> GridMargins:
        lefts = np.asarray([run.x for run in runs], dtype=float)
        rights = np.asarray([run.right for run in runs], dtype=float)
        tops = np.asarray([run.top for run in runs], dtype=float)
        bottoms = np.asarray([run.y for run in runs], dtype=float)
        return GridMargins(
            left=round(float(np.percentile(lefts, 5)), 2),
            right=round(float(np.percentile(rights, 95)), 2),
            top=round(float(np.percentile(tops, 5)), 2),
            bottom=round(float(np.percentile(bottoms, 95)), 2),
        )
