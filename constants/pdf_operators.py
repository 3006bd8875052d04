"""
PDF Operator Constants

Content stream operators interpreted while walking a page's operator list
and emitted when rebuilding pages, grouped by functional category.

Reference: PDF 32000-1:2008 specification, Appendix A
"""

# ==============================================================================
# Graphics State Operators (PDF spec 8.4.4)
# ==============================================================================
OP_SAVE_STATE = b'q'                 # Save graphics state
OP_RESTORE_STATE = b'Q'              # Restore graphics state
OP_CTM = b'cm'                       # Modify current transformation matrix
OP_SET_LINE_WIDTH = b'w'             # Set line width
OP_SET_LINE_CAP = b'J'               # Set line cap style
OP_SET_LINE_JOIN = b'j'              # Set line join style
OP_SET_GRAPHICS_STATE_PARAMS = b'gs' # Set parameters from graphics state parameter dict

# ==============================================================================
# Colour Operators (PDF spec 8.6.8)
# ==============================================================================
OP_SET_RGB_COLOR_STROKE = b'RG'      # Set RGB color for stroking
OP_SET_RGB_COLOR_FILL = b'rg'        # Set RGB color for filling

# ==============================================================================
# Path Construction Operators (PDF spec 8.5.2)
# ==============================================================================
OP_MOVE_TO = b'm'                    # Begin new subpath
OP_LINE_TO = b'l'                    # Append straight line segment
OP_CURVE_TO = b'c'                   # Append cubic Bezier curve
OP_CURVE_TO_V = b'v'                 # Append curve (initial point replicated)
OP_CURVE_TO_Y = b'y'                 # Append curve (final point replicated)
OP_CLOSE_PATH = b'h'                 # Close current subpath
OP_RECTANGLE = b're'                 # Append rectangle

CURVE_OPS = {OP_CURVE_TO, OP_CURVE_TO_V, OP_CURVE_TO_Y}
PATH_CONSTRUCTION_OPS = {OP_MOVE_TO, OP_LINE_TO, OP_RECTANGLE, OP_CLOSE_PATH} | CURVE_OPS

# ==============================================================================
# Path Painting Operators (PDF spec 8.5.3)
# ==============================================================================
OP_STROKE = b'S'                     # Stroke path
OP_CLOSE_STROKE = b's'               # Close and stroke path
OP_FILL = b'f'                       # Fill path (nonzero winding)
OP_FILL_OLD = b'F'                   # Fill path (obsolete synonym)
OP_FILL_EVEN_ODD = b'f*'             # Fill path (even-odd)
OP_FILL_STROKE = b'B'                # Fill and stroke
OP_FILL_STROKE_EVEN_ODD = b'B*'      # Fill and stroke (even-odd)
OP_CLOSE_FILL_STROKE = b'b'          # Close, fill and stroke
OP_CLOSE_FILL_STROKE_EVEN_ODD = b'b*' # Close, fill and stroke (even-odd)
OP_END_PATH = b'n'                   # End path without painting

STROKE_PAINT_OPS = {
    OP_STROKE, OP_CLOSE_STROKE, OP_FILL_STROKE, OP_FILL_STROKE_EVEN_ODD,
    OP_CLOSE_FILL_STROKE, OP_CLOSE_FILL_STROKE_EVEN_ODD,
}
FILL_PAINT_OPS = {
    OP_FILL, OP_FILL_OLD, OP_FILL_EVEN_ODD, OP_FILL_STROKE, OP_FILL_STROKE_EVEN_ODD,
    OP_CLOSE_FILL_STROKE, OP_CLOSE_FILL_STROKE_EVEN_ODD,
}
PATH_PAINTING_OPS = STROKE_PAINT_OPS | FILL_PAINT_OPS | {OP_END_PATH}

# ==============================================================================
# Text Operators (PDF spec 9.4)
# ==============================================================================
OP_BEGIN_TEXT = b'BT'                # Begin text object
OP_END_TEXT = b'ET'                  # End text object
OP_SET_FONT = b'Tf'                  # Set text font and size
OP_SET_CHAR_SPACING = b'Tc'          # Set character spacing
OP_SET_TEXT_MATRIX = b'Tm'           # Set text matrix and text line matrix
OP_SHOW_TEXT = b'Tj'                 # Show text string

# ==============================================================================
# XObject Operators (PDF spec 8.8, 8.9.7)
# ==============================================================================
OP_PAINT_XOBJECT = b'Do'             # Paint XObject (image or form)
OP_INLINE_IMAGE = b'BI'              # Inline image (parsed as one instruction)

# Operator name pikepdf reports for a parsed inline image
PIKEPDF_INLINE_IMAGE = 'INLINE IMAGE'
