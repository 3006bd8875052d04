import logging
from typing import Tuple

import numpy as np
import pikepdf

from constants.pdf_operators import (
    OP_SAVE_STATE, OP_RESTORE_STATE, OP_CTM, OP_SET_LINE_WIDTH
)

logger = logging.getLogger(__name__)


def normalize_operator(operator) -> bytes:
    """Operator name of a content op or content stream instruction as bytes."""
    op_name = operator
    # pikepdf objects raise ValueError rather than AttributeError on unknown attributes
    if not isinstance(operator, (bytes, str, pikepdf.Object)):
        op_name = getattr(operator, 'operator', operator)
    if isinstance(op_name, bytes):
        return op_name
    if isinstance(op_name, str):
        return op_name.encode('latin-1', errors='replace')
    return str(op_name).encode('latin-1', errors='replace')


class GraphicsStateTracker:
    """
    Tracks the CTM and line width across q/Q/cm/w while an operator list is
    walked. Unbalanced Q operators are ignored.
    """

    def __init__(self):
        self.ctm = np.identity(3, dtype=float)
        self.line_width = 1.0
        self.state_stack = []

    def save_state(self):
        self.state_stack.append((self.ctm.copy(), self.line_width))

    def restore_state(self):
        if self.state_stack:
            self.ctm, self.line_width = self.state_stack.pop()
        else:
            logger.debug("Unbalanced restore operator ignored")

    def update_ctm(self, a: float, b: float, c: float, d: float, e: float, f: float):
        new_matrix = np.array([[a, c, e], [b, d, f], [0, 0, 1]], dtype=float)
        self.ctm = np.dot(self.ctm, new_matrix)

    @property
    def depth(self) -> int:
        return len(self.state_stack)

    def current_matrix(self) -> Tuple[float, float, float, float, float, float]:
        """CTM as a PDF [a b c d e f] tuple."""
        m = self.ctm
        return (
            float(m[0, 0]), float(m[1, 0]),
            float(m[0, 1]), float(m[1, 1]),
            float(m[0, 2]), float(m[1, 2]),
        )

    def update(self, op) -> bool:
        """
        Apply a graphics-state operator.

        Returns:
            True if the operator changed tracked state
        """
        op_name_bytes = normalize_operator(op)
        operands = op.operands

        try:
            if op_name_bytes == OP_SAVE_STATE:
                self.save_state()
            elif op_name_bytes == OP_RESTORE_STATE:
                self.restore_state()
            elif op_name_bytes == OP_CTM and len(operands) == 6:
                self.update_ctm(*[float(v) for v in operands])
            elif op_name_bytes == OP_SET_LINE_WIDTH and len(operands) >= 1:
                self.line_width = float(operands[0])
            else:
                return False
            return True
        except (ValueError, TypeError, IndexError) as e:
            logger.warning(f"Error updating graphics state for operator {op_name_bytes}: {e}")
            return False
