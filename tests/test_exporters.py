"""Vector and raster reconstruction."""

import base64
import io
from decimal import Decimal

import pikepdf
import pytest
from pdfminer.high_level import extract_text
from PIL import Image

from engine.config import ExportOptions
from exporters import reconstruct
from exporters.content_builder import ContentBuilder
from exporters.pdf_reconstructor import PDFReconstructor
from exporters.raster_fallback import RasterFallbackExporter
from exporters.rasterizer import BlankRasterizer, PillowRasterizer, Rasterizer
from exporters.vector_shapes import linearize_path
from models.drawing_types import DrawingObject, coerce_annotations
from models.hydration_types import (
    HydratedPage,
    ImageBlock,
    PageDims,
    TableBlock,
    TableCell,
    TableRow,
    TextBlock,
    TextBlockStyles,
)
from utils.html_text import html_to_plain_text
from utils.validation import ExportError


def png_bytes(size=(4, 4), color=(0, 128, 255)) -> bytes:
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def page(blocks=(), width=612.0, height=792.0, index=0) -> HydratedPage:
    return HydratedPage(pageIndex=index, dims=PageDims(width=width, height=height), blocks=list(blocks))


def hello_block(**styles) -> TextBlock:
    return TextBlock(id='block-0-0', box=(10, 10, 80, 10), html='Hello', styles=TextBlockStyles(**styles))


def operations(pdf_bytes: bytes, page_index: int = 0):
    """(operator, float operands) pairs of one page's content stream."""
    with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
        result = []
        for inst in pikepdf.parse_content_stream(pdf.pages[page_index]):
            operands = [float(v) if isinstance(v, (int, Decimal)) else v for v in inst.operands]
            result.append((str(inst.operator), operands))
        return result


def find(ops, operator):
    return [operands for op, operands in ops if op == operator]


class TestReconstructDispatch:

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            reconstruct([page()], [], 'sepia')

    def test_no_pages(self):
        with pytest.raises(ExportError):
            reconstruct([], [], 'vector')

    def test_more_annotation_lists_than_pages(self):
        with pytest.raises(ExportError):
            reconstruct([page()], [[], []], 'vector')

    def test_invalid_options(self):
        with pytest.raises(ValueError):
            reconstruct([page()], [], 'vector', options=ExportOptions(line_height_ratio=0))


class TestVectorExport:

    def test_empty_page_keeps_dimensions(self):
        pdf_bytes = reconstruct([page(width=300, height=400)], [], 'vector')

        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            assert len(pdf.pages) == 1
            assert [float(v) for v in pdf.pages[0].MediaBox] == [0, 0, 300, 400]

    def test_text_block_position(self):
        """First baseline sits one font size below the box top"""
        pdf_bytes = reconstruct([page([hello_block(fontSize=12)])], [], 'vector')
        ops = operations(pdf_bytes)

        tm = find(ops, 'Tm')[0]
        assert tm[4] == pytest.approx(61.2, abs=0.01)
        assert tm[5] == pytest.approx(792 - (79.2 + 12), abs=0.01)
        assert find(ops, 'Tf')[0][1] == pytest.approx(12)
        assert 'Hello' in extract_text(io.BytesIO(pdf_bytes))

    def test_text_is_selectable(self):
        blocks = [
            TextBlock(id='b0', box=(10, 10, 80, 5), html='First block'),
            TextBlock(id='b1', box=(10, 30, 80, 5), html='Second &amp; last'),
        ]
        text = extract_text(io.BytesIO(reconstruct([page(blocks)], [], 'vector')))

        assert 'First block' in text
        assert 'Second & last' in text

    def test_long_text_wraps_inside_box(self):
        block = TextBlock(id='b', box=(10, 10, 20, 30), html='word ' * 30)
        ops = operations(reconstruct([page([block])], [], 'vector'))

        lines = find(ops, 'Tm')
        assert len(lines) > 1
        assert all(tm[4] == pytest.approx(61.2, abs=0.01) for tm in lines)
        baselines = [tm[5] for tm in lines]
        assert baselines == sorted(baselines, reverse=True)

    def test_centre_alignment(self):
        ops = operations(reconstruct([page([hello_block(align='center')])], [], 'vector'))

        x = find(ops, 'Tm')[0][4]
        assert 61.2 < x < 306

    def test_bold_uses_bold_face(self):
        pdf_bytes = reconstruct([page([hello_block(fontWeight=700)])], [], 'vector')

        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            fonts = pdf.pages[0].Resources.Font
            assert [str(fonts[key].BaseFont) for key in fonts.keys()] == ['/Helvetica-Bold']

    def test_fonts_are_shared_between_pages(self):
        pdf_bytes = reconstruct([page([hello_block()]), page([hello_block()], index=1)], [], 'vector')

        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            first = pdf.pages[0].Resources.Font.F1
            second = pdf.pages[1].Resources.Font.F1
            assert first.objgen == second.objgen

    def test_rect_annotation(self):
        rect = {'type': 'rect', 'left': 50, 'top': 50, 'width': 100, 'height': 40, 'stroke': '#ff0000'}
        ops = operations(reconstruct([page()], [[rect]], 'vector'))

        assert find(ops, 're') == [[50, 702, 100, 40]]
        assert find(ops, 'RG')[0] == [1, 0, 0]
        assert find(ops, 'S')

    def test_filled_ellipse(self):
        circle = {'type': 'circle', 'left': 100, 'top': 100, 'radius': 20, 'fill': '#00ff00'}
        ops = operations(reconstruct([page()], [[circle]], 'vector'))

        assert len(find(ops, 'c')) == 4
        assert find(ops, 'rg')[0] == [0, 1, 0]
        assert find(ops, 'f')

    def test_scaled_triangle(self):
        triangle = {'type': 'triangle', 'left': 100, 'top': 100, 'width': 10, 'height': 10,
                    'scaleX': 2, 'scaleY': 2, 'fill': '#ff0000'}
        ops = operations(reconstruct([page()], [[triangle]], 'vector'))

        assert find(ops, 'm') == [[110, 692]]
        assert find(ops, 'l') == [[120, 672], [100, 672]]
        assert find(ops, 'h')

    def test_line_annotation(self):
        line = {'type': 'line', 'x1': 10, 'y1': 20, 'x2': 110, 'y2': 20, 'stroke': '#0000ff', 'strokeWidth': 3}
        ops = operations(reconstruct([page()], [[line]], 'vector'))

        assert find(ops, 'm')[0] == [10, 772]
        assert find(ops, 'l')[0] == [110, 772]
        assert find(ops, 'w')[0] == [3]

    def test_freehand_path_is_offset_by_origin(self):
        path = {'type': 'path', 'left': 100, 'top': 100, 'path': [['M', 0, 0], ['L', 10, 0]], 'stroke': '#000'}
        ops = operations(reconstruct([page()], [[path]], 'vector'))

        assert find(ops, 'm')[0] == [100, 692]
        assert find(ops, 'l')[0] == [110, 692]
        assert find(ops, 'J')[0] == [1]

    def test_translucent_annotation_uses_graphics_state(self):
        rect = {'type': 'rect', 'left': 0, 'top': 0, 'width': 10, 'height': 10, 'fill': '#000', 'opacity': 0.5}
        pdf_bytes = reconstruct([page()], [[rect]], 'vector')

        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            states = pdf.pages[0].Resources.ExtGState
            assert float(states.GS1.ca) == pytest.approx(0.5)
        assert find(operations(pdf_bytes), 'gs')

    def test_rotated_annotation(self):
        rect = {'type': 'rect', 'left': 50, 'top': 50, 'width': 10, 'height': 10, 'angle': 90}
        ops = operations(reconstruct([page()], [[rect]], 'vector'))

        cm = find(ops, 'cm')[0]
        # Clockwise on screen is a negative rotation in PDF space
        assert cm[:4] == pytest.approx([0, -1, 1, 0], abs=1e-6)

    def test_text_annotation(self):
        note = {'type': 'i-text', 'left': 20, 'top': 30, 'text': 'Reviewed', 'fontSize': 20, 'fill': '#333333'}
        pdf_bytes = reconstruct([page()], [[note]], 'vector')

        assert find(operations(pdf_bytes), 'Tm')[0][5] == pytest.approx(792 - 50)
        assert 'Reviewed' in extract_text(io.BytesIO(pdf_bytes))

    def test_image_block_is_embedded(self):
        image = ImageBlock(id='img', box=(0, 0, 50, 25), blob=png_bytes())
        pdf_bytes = reconstruct([page([image])], [], 'vector')

        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            xobjects = pdf.pages[0].Resources.XObject
            stream = xobjects[list(xobjects.keys())[0]]
            assert (int(stream.Width), int(stream.Height)) == (4, 4)
        cm = find(operations(pdf_bytes), 'cm')[0]
        assert cm == pytest.approx([306, 0, 0, 198, 0, 594])

    def test_image_annotation_from_data_url(self):
        src = 'data:image/png;base64,' + base64.b64encode(png_bytes()).decode('ascii')
        obj = {'type': 'image', 'left': 10, 'top': 10, 'width': 40, 'height': 40, 'src': src}
        ops = operations(reconstruct([page()], [[obj]], 'vector'))

        assert find(ops, 'Do')

    def test_table_block(self):
        table = TableBlock(id='t', box=(10, 10, 40, 10), rows=[
            TableRow(cells=[
                TableCell(content='Item', box=(10, 10, 20, 5)),
                TableCell(content='Cost', box=(30, 10, 20, 5)),
            ]),
        ])
        pdf_bytes = reconstruct([page([table])], [], 'vector')

        assert len(find(operations(pdf_bytes), 're')) == 2
        text = extract_text(io.BytesIO(pdf_bytes))
        assert 'Item' in text and 'Cost' in text

    def test_bad_content_is_skipped(self):
        """A corrupt image and an unknown drawing type drop out; the rest renders"""
        blocks = [ImageBlock(id='broken', box=(0, 0, 10, 10), blob=b'not an image'), hello_block()]
        drawings = [{'type': 'sparkle', 'left': 1, 'top': 1}, {'type': 'rect', 'left': 0, 'top': 0, 'width': 5, 'height': 5}]

        reconstructor = PDFReconstructor()
        pdf_bytes = reconstructor.reconstruct([page(blocks)], [drawings])

        assert reconstructor.skipped_blocks == 1
        assert reconstructor.skipped_objects == 1
        assert 'Hello' in extract_text(io.BytesIO(pdf_bytes))
        assert len(find(operations(pdf_bytes), 're')) == 1

    def test_invalid_drawing_objects_are_dropped(self):
        overlays = coerce_annotations([[{'left': 5}, {'type': 'rect', 'width': 1, 'height': 1}]])

        assert [obj.type for obj in overlays[0]] == ['rect']

    def test_annotations_only_on_their_page(self):
        rect = DrawingObject(type='rect', left=1, top=1, width=10, height=10)
        pdf_bytes = reconstruct([page(), page(index=1)], [[], [rect]], 'vector')

        assert find(operations(pdf_bytes, 0), 're') == []
        assert len(find(operations(pdf_bytes, 1), 're')) == 1


class TestRasterExport:

    def test_one_image_per_page(self):
        pages = [page([hello_block()]), page(width=300, height=400, index=1)]
        pdf_bytes = reconstruct(pages, [], 'raster', rasterizer=BlankRasterizer())

        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            assert len(pdf.pages) == 2
            for pdf_page, (w, h) in zip(pdf.pages, [(612, 792), (300, 400)]):
                assert [float(v) for v in pdf_page.MediaBox] == [0, 0, w, h]
                assert len(pdf_page.Resources.XObject) == 1
                assert '/Font' not in pdf_page.Resources
        assert extract_text(io.BytesIO(pdf_bytes)).strip() == ''

    def test_surface_resolution_follows_scale(self):
        pdf_bytes = reconstruct([page(width=100, height=50)], [], 'raster',
                                options=ExportOptions(raster_scale=3), rasterizer=BlankRasterizer())

        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            xobjects = pdf.pages[0].Resources.XObject
            image = xobjects[list(xobjects.keys())[0]]
            assert (int(image.Width), int(image.Height)) == (300, 150)

    def test_caller_surfaces(self):
        surfaces = [Image.new('RGB', (20, 10), 'red'), png_bytes((8, 8))]
        pdf_bytes = RasterFallbackExporter().export([page(), page(index=1)], surfaces=surfaces)

        with pikepdf.open(io.BytesIO(pdf_bytes)) as pdf:
            sizes = []
            for pdf_page in pdf.pages:
                xobjects = pdf_page.Resources.XObject
                image = xobjects[list(xobjects.keys())[0]]
                sizes.append((int(image.Width), int(image.Height)))
        assert sizes == [(20, 10), (8, 8)]

    def test_surface_count_must_match(self):
        with pytest.raises(ExportError):
            RasterFallbackExporter().export([page(), page(index=1)], surfaces=[png_bytes()])

    def test_undecodable_surface(self):
        with pytest.raises(ExportError):
            RasterFallbackExporter().export([page()], surfaces=[b'garbage'])

    def test_pillow_rasterizer_draws_content(self):
        blocks = [hello_block(fontSize=24, color='#000000'), ImageBlock(id='img', box=(0, 50, 20, 20), blob=png_bytes())]
        drawings = [DrawingObject(type='rect', left=300, top=600, width=100, height=100, fill='#ff0000')]

        image = PillowRasterizer().render(page(blocks), drawings, 1.0)

        assert image.size == (612, 792)
        assert image.getpixel((350, 650)) == (255, 0, 0)
        assert image.getpixel((10, 400)) == (0, 128, 255)
        assert image.getpixel((600, 780)) == (255, 255, 255)

    def test_pillow_rasterizer_scales_triangle_once(self):
        triangle = DrawingObject(type='triangle', left=100, top=100, width=50, height=50,
                                 scaleX=2, scaleY=2, fill='#ff0000')

        image = PillowRasterizer().render(page(), [triangle], 1.0)

        assert image.getpixel((150, 190)) == (255, 0, 0)
        assert image.getpixel((150, 250)) == (255, 255, 255)

    def test_rasterizers_satisfy_interface(self):
        assert isinstance(PillowRasterizer(), Rasterizer)
        assert isinstance(BlankRasterizer(), Rasterizer)


class TestHelpers:

    def test_html_to_plain_text(self):
        assert html_to_plain_text('a<br>b &amp; <b>c</b>') == 'a\nb & c'
        assert html_to_plain_text('<p>one</p><p>two</p>') == 'one\ntwo'
        assert html_to_plain_text('') == ''

    def test_linearize_quadratic(self):
        polylines = linearize_path([['M', 0, 0], ['Q', 10, 10, 20, 0]], segments=4)

        assert len(polylines) == 1
        assert polylines[0][0] == (0, 0)
        assert polylines[0][-1] == pytest.approx((20, 0))
        assert len(polylines[0]) == 5

    def test_linearize_skips_commands_before_move(self):
        assert linearize_path([['L', 5, 5]]) == []

    def test_builder_rollback(self):
        builder = ContentBuilder()
        builder.save()
        mark = builder.mark()
        builder.move_to(0, 0).line_to(1, 1)
        builder.rollback(mark)

        assert len(builder) == 1
        assert builder.to_bytes().strip() == b'q'
