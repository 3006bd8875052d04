"""Operator List Builder

Flattens a page's content stream into a single list of operators using
pikepdf's content stream parser. Form XObjects are inlined as
`q <Matrix> cm ... Q` so consumers only need to track q/Q/cm, and every
image paint carries the resolved image object.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Set, Tuple

import pikepdf
from pikepdf import Name

from constants.pdf_operators import (
    OP_CTM,
    OP_INLINE_IMAGE,
    OP_PAINT_XOBJECT,
    OP_RESTORE_STATE,
    OP_SAVE_STATE,
    PIKEPDF_INLINE_IMAGE,
)
from processors.pdf_graphics import normalize_operator

logger = logging.getLogger(__name__)

IDENTITY_OPERANDS = [1.0, 0.0, 0.0, 1.0, 0.0, 0.0]


@dataclass
class ContentOp:
    """One content stream operator with its operands."""
    operator: bytes
    operands: List[Any] = field(default_factory=list)
    xobject: Optional[pikepdf.Object] = None  # Image XObject for `Do`
    inline_image: Optional[Any] = None  # pikepdf.PdfInlineImage for `BI`

    @property
    def is_image(self) -> bool:
        return self.xobject is not None or self.inline_image is not None


def inherited_page_attribute(page_obj: pikepdf.Object, key: str):
    """Look up an inheritable page attribute (/Resources, /Rotate, /MediaBox...)."""
    node = page_obj
    seen: Set[Tuple[int, int]] = set()
    while node is not None:
        value = node.get(key)
        if value is not None:
            return value
        objgen = node.objgen
        if objgen != (0, 0):
            if objgen in seen:
                break
            seen.add(objgen)
        node = node.get('/Parent')
    return None


class OperatorListBuilder:
    """
    Builds the flattened operator list for one page.

    Args:
        max_form_depth: Maximum Form XObject nesting to follow
    """

    def __init__(self, max_form_depth: int = 8):
        self.max_form_depth = max_form_depth
        self.skipped_forms = 0

    def build(self, page: pikepdf.Page) -> List[ContentOp]:
        resources = inherited_page_attribute(page.obj, '/Resources')
        ops: List[ContentOp] = []
        self._walk(page, resources, ops, depth=0, active=set())
        return ops

    def _walk(self, source, resources, ops: List[ContentOp], depth: int, active: Set[Tuple[int, int]]) -> None:
        xobjects = resources.get('/XObject') if resources is not None else None

        for inst in pikepdf.parse_content_stream(source):
            if str(inst.operator) == PIKEPDF_INLINE_IMAGE:
                ops.append(ContentOp(OP_INLINE_IMAGE, [], inline_image=getattr(inst, 'iimage', None)))
                continue

            op = normalize_operator(inst)
            operands = list(inst.operands)
            if op != OP_PAINT_XOBJECT:
                ops.append(ContentOp(op, operands))
                continue

            xobj = xobjects.get(operands[0]) if (xobjects is not None and operands) else None
            if xobj is None:
                logger.debug(f"Do references missing XObject {operands[:1]}")
                continue

            subtype = xobj.get('/Subtype')
            if subtype == Name.Image:
                ops.append(ContentOp(op, operands, xobject=xobj))
            elif subtype == Name.Form:
                self._inline_form(xobj, resources, ops, depth, active)

    def _inline_form(self, xobj, parent_resources, ops: List[ContentOp], depth: int, active: Set[Tuple[int, int]]) -> None:
        objgen = xobj.objgen
        if depth >= self.max_form_depth or (objgen != (0, 0) and objgen in active):
            logger.debug(f"Skipping Form XObject {objgen} at depth {depth}")
            self.skipped_forms += 1
            return

        matrix = xobj.get('/Matrix')
        matrix_operands = [float(v) for v in matrix] if matrix is not None and len(matrix) == 6 else IDENTITY_OPERANDS
        form_resources = xobj.get('/Resources')
        if form_resources is None:
            form_resources = parent_resources

        mark = len(ops)
        ops.append(ContentOp(OP_SAVE_STATE))
        ops.append(ContentOp(OP_CTM, matrix_operands))
        try:
            self._walk(xobj, form_resources, ops, depth + 1, active | {objgen})
        except pikepdf.PdfError as e:
            logger.warning(f"Could not parse Form XObject {objgen}: {e}")
            del ops[mark:]
            self.skipped_forms += 1
            return
        ops.append(ContentOp(OP_RESTORE_STATE))
