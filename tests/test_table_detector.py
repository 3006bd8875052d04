"""Table detection from vertical rules and aligned rows."""

import pytest

from conftest import make_run
from models.geometry import Rect
from models.layout_types import Line, Separator
from processors.table_detector import TableDetector

PAGE_W, PAGE_H = 612.0, 792.0


def vertical_rule(x: float, top: float = 100.0, bottom: float = 200.0) -> Separator:
    return Separator(kind='line', box=Rect(x, top, 1.0, bottom - top), orientation='vertical')


def table_row(y: float, left: str, right: str) -> Line:
    return Line(runs=[make_run(left, x=110, y=y, width=40), make_run(right, x=210, y=y, width=40)], y=y)


@pytest.fixture
def rules():
    return [vertical_rule(100), vertical_rule(200), vertical_rule(300)]


class TestTableDetector:

    def test_ruled_grid_becomes_table(self, rules):
        """Three aligned rows between three rules give a 3x2 table"""
        lines = [table_row(120, 'Name', 'Qty'), table_row(140, 'Apple', '4'), table_row(160, 'Pear', '7')]
        result = TableDetector().detect(lines, rules, PAGE_W, PAGE_H, page_index=2)

        assert len(result.tables) == 1
        table = result.tables[0]
        assert table.id == 'table-2-0'
        assert len(table.rows) == 3
        assert [len(row.cells) for row in table.rows] == [2, 2, 2]
        assert table.rows[0].cells[0].content == 'Name'
        assert table.rows[2].cells[1].content == '7'
        assert result.remaining_lines == []

    def test_table_box_covers_rules(self, rules):
        lines = [table_row(120, 'a', 'b'), table_row(140, 'c', 'd')]
        table = TableDetector().detect(lines, rules, PAGE_W, PAGE_H).tables[0]

        x, y, w, h = table.box
        # Boundaries sit on the rule centres
        assert x == pytest.approx(100.5 / PAGE_W * 100)
        assert x + w == pytest.approx(300.5 / PAGE_W * 100)
        assert y == pytest.approx(100 / PAGE_H * 100)

    def test_lines_outside_table_are_kept_in_order(self, rules):
        before = Line(runs=[make_run('Intro', x=72, y=60)], y=60)
        after = Line(runs=[make_run('Outro', x=72, y=400)], y=400)
        lines = [before, table_row(120, 'a', 'b'), table_row(140, 'c', 'd'), after]

        result = TableDetector().detect(lines, rules, PAGE_W, PAGE_H)

        assert len(result.tables) == 1
        assert result.remaining_lines == [before, after]

    def test_single_rule_is_not_a_table(self):
        lines = [table_row(120, 'a', 'b'), table_row(140, 'c', 'd')]
        result = TableDetector().detect(lines, [vertical_rule(200)], PAGE_W, PAGE_H)

        assert result.tables == []
        assert result.remaining_lines == lines

    def test_single_row_is_not_a_table(self, rules):
        lines = [table_row(120, 'a', 'b')]
        result = TableDetector().detect(lines, rules, PAGE_W, PAGE_H)

        assert result.tables == []
        assert result.remaining_lines == lines

    def test_horizontal_rules_alone_do_not_make_tables(self):
        horizontal = [
            Separator(kind='line', box=Rect(100, y, 200, 1.0), orientation='horizontal')
            for y in (110, 130, 150)
        ]
        lines = [table_row(120, 'a', 'b'), table_row(140, 'c', 'd')]

        assert TableDetector().detect(lines, horizontal, PAGE_W, PAGE_H).tables == []

    def test_note_row_ends_table(self, rules):
        """A 'Note:' row closes the table and stays as text"""
        note = Line(runs=[make_run('Note:', x=110, y=180, width=30), make_run('estimates', x=210, y=180, width=40)], y=180)
        lines = [table_row(120, 'a', 'b'), table_row(140, 'c', 'd'), note]

        result = TableDetector().detect(lines, rules, PAGE_W, PAGE_H)

        assert len(result.tables[0].rows) == 2
        assert result.remaining_lines == [note]
