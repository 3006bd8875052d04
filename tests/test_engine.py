"""Tests for PDFEngine and its processor registry."""

import io
from unittest.mock import MagicMock

import pikepdf
import pytest

from conftest import make_pdf, text_op
from engine.base_processor import BaseProcessor, ProcessorRegistry
from engine.pdf_engine import PDFEngine
from processors.pdf_graphics import normalize_operator
from utils.validation import PdfValidationError


class Recording(BaseProcessor):
    def __init__(self, log, name, fail=False):
        super().__init__(MagicMock())
        self.log = log
        self.name = name
        self.fail = fail

    def initialize(self):
        if self.fail:
            raise RuntimeError('boom')
        super().initialize()
        self.log.append(('init', self.name))

    def cleanup(self):
        self.log.append(('cleanup', self.name))
        super().cleanup()


class TestProcessorRegistry:

    def test_initialize_in_order_cleanup_in_reverse(self):
        log = []
        registry = ProcessorRegistry()
        registry.register('a', Recording(log, 'a'))
        registry.register('b', Recording(log, 'b'))

        registry.initialize_all()
        assert registry.validate_all()
        registry.cleanup_all()

        assert log == [('init', 'a'), ('init', 'b'), ('cleanup', 'b'), ('cleanup', 'a')]
        assert not registry.validate_all()

    def test_failed_initialize_rolls_back(self):
        log = []
        registry = ProcessorRegistry()
        registry.register('a', Recording(log, 'a'))
        registry.register('b', Recording(log, 'b', fail=True))

        with pytest.raises(RuntimeError):
            registry.initialize_all()
        assert log == [('init', 'a'), ('cleanup', 'a')]

    def test_duplicate_name_rejected(self):
        registry = ProcessorRegistry()
        registry.register('a', Recording([], 'a'))
        with pytest.raises(ValueError):
            registry.register('a', Recording([], 'a'))
        assert registry.names == ['a']
        assert len(registry) == 1


class TestPageResultCache:

    def test_same_page_builds_once(self):
        processor = Recording([], 'p')
        build = MagicMock(return_value=['ops'])

        assert processor._page_result(0, build) == ['ops']
        assert processor._page_result(0, build) == ['ops']
        assert build.call_count == 1

    def test_new_page_replaces_result(self):
        processor = Recording([], 'p')
        processor._page_result(0, lambda: 'first')
        assert processor._page_result(1, lambda: 'second') == 'second'
        assert processor._page_result(0, lambda: 'again') == 'again'

    def test_cleanup_drops_result(self):
        processor = Recording([], 'p')
        processor.initialize()
        processor._page_result(0, lambda: 'first')
        processor.cleanup()
        assert processor._page_result(0, lambda: 'fresh') == 'fresh'
        assert not processor.ready


class TestPDFEngine:

    def test_open_and_close(self):
        data = make_pdf([text_op(72, 700, 'Hello')])
        with PDFEngine(data) as engine:
            assert engine.is_open
            assert engine.get_page_count() == 1
            assert engine.get_status()['processors'] == ['text', 'content']
            viewport = engine.get_viewport(0)
            assert viewport.width == pytest.approx(612)
            assert viewport.height == pytest.approx(792)
        assert not engine.is_open

    def test_operator_list_is_reused_for_a_page(self):
        data = make_pdf([text_op(72, 700, 'Hello')])
        with PDFEngine(data) as engine:
            assert engine.get_operator_list(0) is engine.get_operator_list(0)

    def test_page_index_out_of_range(self):
        data = make_pdf([text_op(72, 700, 'Hello')])
        with PDFEngine(data) as engine:
            with pytest.raises(IndexError):
                engine.get_viewport(3)

    def test_use_outside_context(self):
        engine = PDFEngine(make_pdf([text_op(72, 700, 'Hello')]))
        with pytest.raises(RuntimeError):
            engine.get_page_count()

    def test_garbage_bytes(self):
        with pytest.raises(PdfValidationError):
            with PDFEngine(b'not a pdf at all'):
                pass

    def test_operator_list_has_byte_operators(self):
        data = make_pdf(["q 1 0 0 1 10 10 cm Q\n" + text_op(72, 700, 'Hello')])
        with PDFEngine(data) as engine:
            operators = [op.operator for op in engine.get_operator_list(0)]

        assert operators[:3] == [b'q', b'cm', b'Q']
        assert b'Tj' in operators

    def test_normalize_instruction_operator(self):
        data = make_pdf([text_op(72, 700, 'Hello')])
        with pikepdf.open(io.BytesIO(data)) as pdf:
            instructions = list(pikepdf.parse_content_stream(pdf.pages[0]))

            assert [normalize_operator(inst) for inst in instructions] == [b'BT', b'Tf', b'Tm', b'Tj', b'ET']
            assert normalize_operator(instructions[0].operator) == b'BT'

    def test_failed_operator_list_falls_back_to_empty(self):
        data = make_pdf([text_op(72, 700, 'Hello')])
        with PDFEngine(data) as engine:
            engine.content_processor._builder = MagicMock()
            engine.content_processor._builder.build.side_effect = ValueError('bad stream')

            assert engine.get_operator_list(0) == []
            assert [item.text for item in engine.get_text_items(0)] == ['Hello']
