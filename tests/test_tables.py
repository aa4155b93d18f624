"""Tests for table classification and the four table renderers."""

from __future__ import annotations

from bs4 import BeautifulSoup


def _table(html: str):
    return BeautifulSoup(html, "lxml").find("table")


def _convert(html: str, **options) -> str:
    from confluence2md.extractors.elements import ConversionState, ElementConverter
    from confluence2md.items import ConverterOptions

    soup = BeautifulSoup(html, "lxml")
    state = ConversionState.for_document(soup, ConverterOptions(**options))
    return ElementConverter(state).convert_children(soup.body)


_LIST_CELL = "<ul>" + "".join(f"<li>{i}</li>" for i in range(1, 6)) + "</ul>"

_HISTORY = (
    '<table class="tableview">'
    "<tr><th>Version</th><th>Published</th><th>Changed By</th><th>Comment</th></tr>"
    "<tr><td>v. 2</td><td>Mar 05, 2021</td><td>Jane</td><td>Fix</td></tr>"
    "<tr><td>v. 1</td><td>Mar 01, 2021</td></tr>"
    "</table>"
)


class TestClassification:
    def test_plain_grid_is_standard(self):
        from confluence2md.extractors.tables import TableKind, classify_table

        table = _table('<table border="1"><tr><td>a</td><td>b</td></tr><tr><td>c</td><td>d</td></tr></table>')
        assert classify_table(table) is TableKind.STANDARD

    def test_history_by_class(self):
        from confluence2md.extractors.tables import TableKind, classify_table

        assert classify_table(_table(_HISTORY)) is TableKind.HISTORY

    def test_history_by_headers(self):
        from confluence2md.extractors.tables import TableKind, classify_table

        table = _table("<table><tr><th>Version</th><th>Changed By</th></tr><tr><td>1</td><td>x</td></tr></table>")
        assert classify_table(table) is TableKind.HISTORY

    def test_history_by_ancestor(self):
        from confluence2md.extractors.tables import TableKind, classify_table

        table = _table('<div id="version-list"><table><tr><td>a</td><td>b</td></tr></table></div>')
        assert classify_table(table) is TableKind.HISTORY

    def test_layout_by_class(self):
        from confluence2md.extractors.tables import TableKind, classify_table

        table = _table('<table class="layout"><tr><td>a</td><td>b</td></tr></table>')
        assert classify_table(table) is TableKind.LAYOUT

    def test_single_cell_with_block_content_is_layout(self):
        from confluence2md.extractors.tables import TableKind, classify_table

        assert classify_table(_table("<table><tr><td><p>Only</p></td></tr></table>")) is TableKind.LAYOUT

    def test_borderless_in_layout_container_is_layout(self):
        from confluence2md.extractors.tables import TableKind, classify_table

        table = _table(
            '<div class="columnLayout"><table border="0">'
            "<tr><td><p>a</p></td><td>b</td></tr><tr><td>c</td><td>d</td></tr>"
            "</table></div>",
        )
        assert classify_table(table) is TableKind.LAYOUT

    def test_nested_list_is_complex(self):
        from confluence2md.extractors.tables import TableKind, classify_table

        table = _table(f'<table border="1"><tr><td>Name</td><td>{_LIST_CELL}</td></tr></table>')
        assert classify_table(table) is TableKind.COMPLEX_SECTIONS

    def test_long_cell_is_complex(self):
        from confluence2md.extractors.tables import TableKind, classify_table

        html = '<table border="1"><tr><td>a</td><td>{}</td></tr></table>'.format("x " * 200)
        assert classify_table(_table(html)) is TableKind.COMPLEX_SECTIONS
        assert classify_table(_table(html), complex_cell_length=1000) is TableKind.STANDARD

    def test_emoticon_image_is_not_complex(self):
        from confluence2md.extractors.tables import is_complex_cell

        cell = BeautifulSoup('<td>ok <img class="emoticon" alt=":)"></td>', "lxml").find("td")
        assert not is_complex_cell(cell)

    def test_history_checked_before_layout(self):
        from confluence2md.extractors.tables import TableKind, classify_table

        table = _table('<table class="layout tableview"><tr><td>a</td></tr></table>')
        assert classify_table(table) is TableKind.HISTORY


class TestStandardRenderer:
    def test_two_by_two(self):
        md = _convert('<table border="1"><tr><td>a</td><td>b</td></tr><tr><td>c</td><td>d</td></tr></table>')
        assert md == "| a | b |\n|---|---|\n| c | d |\n\n"

    def test_ragged_rows_are_padded(self):
        from confluence2md.extractors.cleanup import split_row

        md = _convert(
            '<table border="1"><tr><td>a</td><td>b</td><td>c</td></tr>'
            "<tr><td>d</td></tr><tr><td>e</td><td>f</td></tr></table>",
        )
        lines = md.strip().split("\n")
        widths = {len(split_row(line)) for line in lines}
        assert widths == {3}
        assert lines[1] == "|---|---|---|"

    def test_colspan_placeholder(self):
        md = _convert(
            '<table border="1"><tr><td colspan="2">wide</td></tr><tr><td>a</td><td>b</td></tr></table>',
        )
        assert md == "| wide | |\n|---|---|\n| a | b |\n\n"

    def test_rowspan_placeholder(self):
        md = _convert(
            '<table border="1"><tr><td rowspan="2">r</td><td>a</td></tr><tr><td>b</td></tr></table>',
        )
        assert md == "| r | a |\n|---|---|\n| | b |\n\n"

    def test_non_ascii_digit_span_ignored(self):
        md = _convert(
            '<table border="1"><tr><td colspan="²">a</td><td>b</td></tr><tr><td>c</td><td>d</td></tr></table>',
        )
        assert md == "| a | b |\n|---|---|\n| c | d |\n\n"

    def test_claimed_cell_keeps_its_column(self):
        from confluence2md.extractors.elements import ConversionState, ElementConverter
        from confluence2md.items import ConverterOptions

        soup = BeautifulSoup(
            '<table border="1"><tr><td>a</td><td>b</td><td>c</td></tr>'
            "<tr><td>d</td><td>e</td><td>f</td></tr></table>",
            "lxml",
        )
        converter = ElementConverter(ConversionState.for_document(soup, ConverterOptions()))
        converter.claim(soup.find_all("td")[4])
        md = converter.convert_children(soup.body)
        assert md == "| a | b | c |\n|---|---|---|\n| d | | f |\n\n"

    def test_pipes_escaped_and_newlines_collapsed(self):
        md = _convert('<table border="1"><tr><td>a|b</td><td>x<br>y</td></tr><tr><td>1</td><td>2</td></tr></table>')
        assert md.startswith("| a\\|b | x y |\n")

    def test_simplify_option_keeps_grid(self):
        md = _convert(
            '<table border="1"><tr><th>Item</th><th>Detail</th></tr>'
            f"<tr><td>Name</td><td>{_LIST_CELL}</td></tr></table>",
            complex_tables="simplify",
        )
        assert md == "| Item | Detail |\n|---|---|\n| Name | [List: 5 items] |\n\n"


class TestSimplifyCell:
    def _cell(self, inner: str):
        return BeautifulSoup(f"<table><tr><td>{inner}</td></tr></table>", "lxml").find("td")

    def test_heading(self):
        from confluence2md.extractors.tables import simplify_cell

        assert simplify_cell(self._cell("<h3>Setup</h3><p>x</p>")) == "**Setup**"

    def test_image(self):
        from confluence2md.extractors.tables import simplify_cell

        assert simplify_cell(self._cell('<img src="a.png" alt="Chart">')) == "[Chart]"

    def test_nested_table(self):
        from confluence2md.extractors.tables import simplify_cell

        inner = "<table><tr><td>x</td></tr></table>"
        cell = BeautifulSoup(f"<table><tr><td>{inner}</td></tr></table>", "lxml").find_all("td")[0]
        assert simplify_cell(cell) == "[Table]"

    def test_panel(self):
        from confluence2md.extractors.tables import simplify_cell

        assert simplify_cell(self._cell('<div class="panel">x</div>')) == "[Panel content]"

    def test_long_text_truncated(self):
        from confluence2md.extractors.tables import simplify_cell

        text = simplify_cell(self._cell("word " * 40))
        assert len(text) <= 50
        assert text.endswith("...")


class TestComplexSectionsRenderer:
    def test_rows_become_sections(self):
        md = _convert(
            '<table border="1"><tr><th>Item</th><th>Detail</th></tr>'
            f"<tr><td>Name</td><td>{_LIST_CELL}</td></tr></table>",
        )
        assert md == (
            "## Item\n\nDetail\n\n"
            "## Name\n\n- 1\n- 2\n- 3\n- 4\n- 5\n\n"
        )

    def test_existing_heading_normalised_to_level_two(self):
        md = _convert(
            '<table border="1"><tr><td><h4>Deep</h4></td><td><p>a</p><p>b</p></td></tr></table>',
        )
        assert md.startswith("## Deep {#deep}\n\na\n\nb\n\n")
        assert "####" not in md


class TestHistoryRenderer:
    def test_fixed_header_and_short_rows_skipped(self):
        md = _convert(_HISTORY)
        assert md == (
            "| Version | Published | Changed By | Comment |\n"
            "|---|---|---|---|\n"
            "| v. 2 | Mar 05, 2021 | Jane | Fix |\n\n"
        )

    def test_version_link_and_linked_author(self):
        md = _convert(
            '<table class="tableview"><tr>'
            '<td><a href="page_v3.html">v. 3</a></td><td>Today</td>'
            '<td><img class="userLogo" src="images/icons/profilepics/default.svg" alt="User icon: jane">'
            '<span class="page-history-contributor-name"><a href="/display/~jane">Jane</a></span></td>'
            "<td>Edited</td></tr></table>",
        )
        row = md.strip().split("\n")[-1]
        assert row == (
            "| [v. 3](page_v3.html) | Today | "
            "![User icon: jane](./images/icons/profilepics/default.svg) [Jane](/display/~jane) | Edited |"
        )


class TestLayoutRenderer:
    def test_cells_flow_in_row_major_order(self):
        md = _convert(
            '<table class="layout"><tr><td><p>A</p></td><td><p>B</p></td></tr>'
            "<tr><td><p>C</p></td></tr></table>",
        )
        assert md == "A\n\nB\n\nC\n\n"

    def test_single_cell_table_unwrapped(self):
        assert _convert("<table><tr><td><p>Only</p></td></tr></table>") == "Only\n\n"
