"""
Pydantic models for the hydrated document model and pipeline events.

Field names follow the editor's JSON contract (camelCase). Every block box
is `[x%, y%, w%, h%]` relative to `HydratedPage.dims`, with a top-left origin
and Y growing downward.
"""

import base64
import binascii
import math
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from models.drawing_types import DrawingObject

BoxTuple = Tuple[float, float, float, float]
BOX_TOLERANCE = 1e-6

TextAlign = Literal['left', 'center', 'right', 'justify']


def validate_percent_box(box: BoxTuple) -> BoxTuple:
    """Reject boxes outside [0, 100] or with non-positive size."""
    x, y, w, h = box
    if not all(math.isfinite(v) for v in box):
        raise ValueError(f"box contains non-finite values: {box}")
    if w <= 0 or h <= 0:
        raise ValueError(f"box width and height must be positive: {box}")
    for value in box:
        if value < -BOX_TOLERANCE or value > 100 + BOX_TOLERANCE:
            raise ValueError(f"box values must lie within [0, 100]: {box}")
    return box


class TextBlockStyles(BaseModel):
    """Typography of a text block"""
    fontFamily: str = "Helvetica, Arial, sans-serif"
    fontSize: float = 12.0
    fontWeight: int = 400
    color: str = "#000000"
    align: TextAlign = 'left'
    letterSpacing: float = 0.0
    italic: bool = False
    underline: bool = False
    lineHeight: Optional[float] = None


class TextBlockMeta(BaseModel):
    isHeader: bool = False
    isListItem: bool = False
    isCaption: bool = False
    rotation: float = 0.0
    lineHeightRatio: float = 1.2
    columnIndex: int = 0
    sourceRuns: int = 0


class BlockBase(BaseModel):
    id: str
    box: BoxTuple

    @field_validator('box')
    @classmethod
    def _check_box(cls, value: BoxTuple) -> BoxTuple:
        return validate_percent_box(value)


class TextBlock(BlockBase):
    type: Literal['text'] = 'text'
    html: str
    styles: TextBlockStyles = Field(default_factory=TextBlockStyles)
    meta: TextBlockMeta = Field(default_factory=TextBlockMeta)


class ImageBlock(BlockBase):
    """
    Raster payload placed on the page.

    `blob` holds encoded image bytes (PNG or JPEG) and travels as base64 in
    JSON. It is None when pixel decoding was deferred.
    """
    type: Literal['image'] = 'image'
    blob: Optional[bytes] = None
    mimeType: str = 'image/png'
    rotation: float = 0.0

    @field_validator('blob', mode='before')
    @classmethod
    def _decode_blob(cls, value: Any) -> Any:
        if isinstance(value, str):
            payload = value.split(',', 1)[1] if value.startswith('data:') else value
            try:
                return base64.b64decode(payload, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"blob is not valid base64: {e}")
        return value

    @field_serializer('blob')
    def _encode_blob(self, value: Optional[bytes]) -> Optional[str]:
        if value is None:
            return None
        return base64.b64encode(value).decode('ascii')


class TableCellStyles(BaseModel):
    fontSize: Optional[float] = None
    fontFamily: Optional[str] = None
    fontWeight: Optional[int] = None
    color: Optional[str] = None
    italic: Optional[bool] = None


class TableCell(BaseModel):
    content: str = ''
    box: BoxTuple
    styles: TableCellStyles = Field(default_factory=TableCellStyles)
    colSpan: int = Field(default=1, ge=1)
    rowSpan: int = Field(default=1, ge=1)
    width: Optional[float] = None
    align: Literal['left', 'center', 'right'] = 'left'

    @field_validator('box')
    @classmethod
    def _check_box(cls, value: BoxTuple) -> BoxTuple:
        return validate_percent_box(value)


class TableRow(BaseModel):
    cells: List[TableCell] = Field(default_factory=list)
    height: Optional[float] = None


class TableBlock(BlockBase):
    type: Literal['table'] = 'table'
    rows: List[TableRow] = Field(default_factory=list)


Block = Annotated[Union[TextBlock, ImageBlock, TableBlock], Field(discriminator='type')]


class PageDims(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: float = Field(gt=0)
    height: float = Field(gt=0)


class GridMargins(BaseModel):
    model_config = ConfigDict(frozen=True)

    top: float = 0.0
    right: float = 0.0
    bottom: float = 0.0
    left: float = 0.0


class MasterGrid(BaseModel):
    """Column start positions (page pixels) and text margins"""
    model_config = ConfigDict(frozen=True)

    columns: List[float] = Field(default_factory=list)
    margins: GridMargins = Field(default_factory=GridMargins)


class GlobalStats(BaseModel):
    """Document-wide font statistics; computed once and shared read-only"""
    model_config = ConfigDict(frozen=True)

    dominantFontSize: float = 12.0
    dominantLineHeight: float = 14.0
    averageCharWidth: float = 6.0
    masterGrid: MasterGrid = Field(default_factory=MasterGrid)


class PageMeta(BaseModel):
    lineHeightEstimate: Optional[float] = None
    avgFontSize: Optional[float] = None
    grid: Optional[MasterGrid] = None


class HydratedPage(BaseModel):
    pageIndex: int = Field(ge=0)
    dims: PageDims = Field(frozen=True)
    blocks: List[Block] = Field(default_factory=list)
    meta: PageMeta = Field(default_factory=PageMeta)


# Pipeline events

class HydrationStage(str, Enum):
    OPENING = "opening"
    SCANNING = "scanning"
    CAPTION_INIT = "caption-init"
    CAPTION_READY = "caption-ready"
    CAPTION_SKIP = "caption-skip"
    EXTRACTING = "extracting"
    EXTRACTING_PAGE = "extracting-page"
    ANALYZING = "analyzing"
    BUILDING = "building"
    COMPLETE = "complete"


class StageEvent(BaseModel):
    type: Literal['STAGE'] = 'STAGE'
    stage: HydrationStage
    message: str
    pageNum: Optional[int] = None
    totalPages: Optional[int] = None


class ProgressEvent(BaseModel):
    type: Literal['PROGRESS'] = 'PROGRESS'
    percent: int = Field(ge=0, le=100)


class CompleteEvent(BaseModel):
    type: Literal['COMPLETE'] = 'COMPLETE'
    pages: List[HydratedPage]


class ErrorEvent(BaseModel):
    type: Literal['ERROR'] = 'ERROR'
    message: str


HydrationEvent = Annotated[
    Union[StageEvent, ProgressEvent, CompleteEvent, ErrorEvent],
    Field(discriminator='type'),
]


# API request / response models

class HydrateResponse(BaseModel):
    pages: List[HydratedPage]
    pageCount: int


class ReconstructRequest(BaseModel):
    pages: List[HydratedPage]
    annotations: List[List[DrawingObject]] = Field(default_factory=list)
    mode: Literal['vector', 'raster'] = 'vector'
