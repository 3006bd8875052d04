"""
Run normalization.

Converts raw positioned text items into `Run`s in top-down page pixels.
Font size is taken from the transform's vertical scale rather than the
declared Tf size, which producers frequently set to 1 and scale via Tm.
"""

import logging
import math
from typing import Iterable, List

from models.layout_types import RawTextItem, Run
from utils.pdf_transforms import (
    MATRIX_EPSILON,
    Viewport,
    is_finite_matrix,
    multiply_matrices,
    rotation_degrees,
)

logger = logging.getLogger(__name__)


class RunNormalizer:
    """
    Normalizes one page's text items.

    `skipped_count` accumulates the number of items dropped because of empty
    text, zero scale or non-finite coordinates.
    """

    def __init__(self):
        self.skipped_count = 0

    def normalize(self, items: Iterable[RawTextItem], viewport: Viewport) -> List[Run]:
        runs: List[Run] = []
        for item in items:
            run = self.normalize_item(item, viewport)
            if run is None:
                self.skipped_count += 1
                continue
            runs.append(run)

        logger.debug(f"Normalized {len(runs)} runs ({self.skipped_count} skipped so far)")
        return runs

    def normalize_item(self, item: RawTextItem, viewport: Viewport):
        """Return the `Run` for one item, or None when the item is unusable."""
        if not item.text or not item.text.strip():
            return None
        if len(item.transform) != 6 or not is_finite_matrix(item.transform):
            return None

        tx = multiply_matrices(item.transform, viewport.transform)
        if not is_finite_matrix(tx):
            return None

        font_size = math.hypot(tx[2], tx[3])
        if font_size < MATRIX_EPSILON or math.hypot(tx[0], tx[1]) < MATRIX_EPSILON:
            return None

        # Width is measured in user space; map it with the viewport's scale along the text direction
        a, b = item.transform[0], item.transform[1]
        direction = math.hypot(a, b)
        ux, uy = a / direction, b / direction
        scale = math.hypot(
            viewport.transform[0] * ux + viewport.transform[2] * uy,
            viewport.transform[1] * ux + viewport.transform[3] * uy,
        )
        width = item.width * scale
        height = item.height * scale if item.height and item.height > 0 else font_size

        if not all(math.isfinite(v) for v in (tx[4], tx[5], width, height)):
            return None

        return Run(
            text=item.text,
            x=tx[4],
            y=tx[5],
            width=max(width, 0.0),
            height=height,
            font_size=font_size,
            font_name=item.font_name,
            rotation=rotation_degrees(item.transform),
            color=item.color,
        )
