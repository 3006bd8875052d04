"""
Annotation overlay objects drawn on top of a page.

These come from the interactive canvas (Fabric.js-style JSON) and are only
read at export time. Coordinates are top-down page pixels.
"""

import logging
import math
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

_TYPE_ALIASES = {
    'circle': 'ellipse',
    'i-text': 'text',
    'itext': 'text',
    'textbox': 'text',
    'triangle': 'polygon',
    'polyline': 'polygon',
    'rectangle': 'rect',
}


class Point(BaseModel):
    x: float
    y: float


class DrawingObject(BaseModel):
    """One annotation primitive; unknown keys from the canvas are ignored"""
    model_config = ConfigDict(extra='ignore')

    type: str
    left: float = 0.0
    top: float = 0.0
    width: Optional[float] = None
    height: Optional[float] = None
    stroke: Optional[str] = None
    strokeWidth: Optional[float] = None
    fill: Optional[str] = None
    opacity: Optional[float] = None
    angle: float = 0.0
    scaleX: float = 1.0
    scaleY: float = 1.0
    path: Optional[List[List[Any]]] = None
    x1: Optional[float] = None
    y1: Optional[float] = None
    x2: Optional[float] = None
    y2: Optional[float] = None
    text: Optional[str] = None
    fontSize: Optional[float] = None
    fontFamily: Optional[str] = None
    fontWeight: Optional[Union[int, str]] = None
    fontStyle: Optional[str] = None
    radius: Optional[float] = None
    points: Optional[List[Point]] = None
    src: Optional[str] = None

    @field_validator('type', mode='before')
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        name = str(value).strip().lower()
        return _TYPE_ALIASES.get(name, name)

    @property
    def effective_opacity(self) -> float:
        """Opacity in [0, 1]; a missing value means fully opaque."""
        if self.opacity is None or not math.isfinite(self.opacity):
            return 1.0
        return max(0.0, min(1.0, self.opacity))

    @property
    def effective_stroke_width(self) -> float:
        if self.strokeWidth is None or self.strokeWidth <= 0:
            return 1.0
        return self.strokeWidth

    @property
    def scaled_width(self) -> float:
        if self.width is None:
            return (self.radius or 0.0) * 2 * self.scaleX
        return self.width * self.scaleX

    @property
    def scaled_height(self) -> float:
        if self.height is None:
            return (self.radius or 0.0) * 2 * self.scaleY
        return self.height * self.scaleY

    def polygon_points(self) -> List[Point]:
        """
        Unscaled vertices relative to (left, top); renderers apply scaleX/scaleY.
        Triangles without points get the canvas default.
        """
        if self.points:
            return list(self.points)
        diameter = (self.radius or 0.0) * 2
        w = self.width if self.width is not None else diameter
        h = self.height if self.height is not None else diameter
        if w > 0 and h > 0:
            return [Point(x=w / 2, y=0), Point(x=w, y=h), Point(x=0, y=h)]
        return []


AnnotationSet = List[List[DrawingObject]]


def coerce_annotations(raw: Optional[List[List[Any]]]) -> AnnotationSet:
    """Validate loosely-typed per-page annotation lists, dropping invalid objects."""
    result: AnnotationSet = []
    for page_index, page_objects in enumerate(raw or []):
        page: List[DrawingObject] = []
        for obj in page_objects or []:
            if isinstance(obj, DrawingObject):
                page.append(obj)
                continue
            try:
                page.append(DrawingObject.model_validate(obj))
            except ValueError as e:
                logger.warning(f"Page {page_index + 1}: dropping invalid drawing object: {e}")
        result.append(page)
    return result


__all__ = ['DrawingObject', 'Point', 'AnnotationSet', 'coerce_annotations']
