"""Tests for the whole-document Markdown cleanup passes."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

# Whole lines (or line groups) the converter and hand-edited exports produce
_FRAGMENTS = [
    "",
    "   ",
    "\t",
    "Plain text",
    "Trailing space  ",
    "# Title",
    "# # Title",
    "### ## Deep",
    "## - item",
    "#&nbsp;# Title",
    "#&#32;Title",
    "- a",
    "- b  ",
    "* star",
    "1. one",
    "-&nbsp;dash",
    "&#49;. x",
    "1. [Home](Home.html)",
    "2. [Docs](Docs_1.md)",
    "## Navigation",
    "- [Docs](index.md)",
    "- [Home](Home.html) ",
    "| a | b |",
    "| c |",
    "|---|",
    "| :--- | ---: |",
    "| x &#124; y |",
    "| &#58;--- |",
    "a &amp; b &lt;c&gt;",
    "&amp;&#108;t;",
    "&amp;lt;",
    "&nbsp;",
    "&#126;~~",
    "&#96;x&#96; `&lt;`",
    "```\n# # code\n\n\n\n\n- a\n\n- b\n```",
    "~~~\n&amp;\n~~~",
    "```py",
]
_JOINERS = ["\n", "\n\n", "\n \n", "\n\n\n\n\n"]

_documents = st.lists(
    st.tuples(st.sampled_from(_FRAGMENTS), st.sampled_from(_JOINERS)), max_size=12,
).map(lambda parts: "".join(fragment + joiner for fragment, joiner in parts))


_SAMPLE = (
    "1. [Docs](index.md)\n"
    "2. [Guides](Guides_1.md)\n"
    "\n"
    "# # Title\n"
    "Intro with &amp; and &lt;b&gt; and &#124; and&nbsp;space.   \n"
    "## Section\n"
    "- one\n"
    "\n"
    "- two\n"
    "\n"
    "| a | b |\n"
    "| c |\n"
    "\n"
    "```python\n"
    'x = "&amp;"  # # not a heading\n'
    "\n\n\n\n"
    "```\n"
    "\n\n\n\n\n"
    "Keep `&amp;` as typed.\n"
)


def _all_passes():
    from confluence2md.extractors.cleanup import cleanup_passes
    from confluence2md.items import Breadcrumb

    return cleanup_passes([Breadcrumb(title="Docs", href="index.html")])


class TestCollapseHeadingMarkers:
    def test_doubled_marker(self):
        from confluence2md.extractors.cleanup import collapse_heading_markers

        assert collapse_heading_markers("# # Title\n") == "## Title\n"

    def test_deeper_marker_kept(self):
        from confluence2md.extractors.cleanup import collapse_heading_markers

        assert collapse_heading_markers("### ## Title\n") == "### Title\n"

    def test_tripled_marker(self):
        from confluence2md.extractors.cleanup import collapse_heading_markers

        assert collapse_heading_markers("# # # Title\n") == "## Title\n"

    def test_code_untouched(self):
        from confluence2md.extractors.cleanup import collapse_heading_markers

        text = "```\n# # x\n```\n"
        assert collapse_heading_markers(text) == text


class TestFixListSpacing:
    def test_loose_items_tightened(self):
        from confluence2md.extractors.cleanup import fix_list_spacing

        assert fix_list_spacing("- a\n\n- b\n\n- c\n") == "- a\n- b\n- c\n"

    def test_headings_get_blank_lines(self):
        from confluence2md.extractors.cleanup import fix_list_spacing

        assert fix_list_spacing("text\n## H\nmore\n") == "text\n\n## H\n\nmore\n"

    def test_heading_wrapped_item(self):
        from confluence2md.extractors.cleanup import fix_list_spacing

        assert fix_list_spacing("## - item\n") == "- item\n"

    def test_navigation_block_keeps_closing_blank_line(self):
        from confluence2md.extractors.cleanup import fix_list_spacing

        text = "## Navigation\n\n- [Home](Home.html)\n\n- item\n"
        assert fix_list_spacing(text) == text

    def test_blank_inside_navigation_block_tightened(self):
        from confluence2md.extractors.cleanup import fix_list_spacing

        text = "## Navigation\n\n- [Home](Home.html)\n\n- [Docs](index.md)\n\n- item\n"
        assert fix_list_spacing(text) == (
            "## Navigation\n\n- [Home](Home.html)\n\n- [Docs](index.md)\n- item\n"
        )

    def test_list_after_other_heading_tightened(self):
        from confluence2md.extractors.cleanup import fix_list_spacing

        assert fix_list_spacing("## Links\n\n- [a](a.md)\n\n- b\n") == "## Links\n\n- [a](a.md)\n- b\n"


class TestRepairTables:
    def test_missing_delimiter_and_ragged_row(self):
        from confluence2md.extractors.cleanup import repair_tables

        assert repair_tables("| a | b |\n| c |\n") == "| a | b |\n|---|---|\n| c | |\n"

    def test_delimiter_alignment_kept(self):
        from confluence2md.extractors.cleanup import repair_tables

        text = "| a | b |\n| :--- | ---: |\n| 1 | 2 |\n"
        assert repair_tables(text) == "| a | b |\n|:---|---:|\n| 1 | 2 |\n"

    def test_blank_lines_around_table(self):
        from confluence2md.extractors.cleanup import repair_tables

        text = "before\n| a |\n|---|\nafter\n"
        assert repair_tables(text) == "before\n\n| a |\n|---|\n\nafter\n"

    def test_single_pipe_line_untouched(self):
        from confluence2md.extractors.cleanup import repair_tables

        assert repair_tables("| not a table |\n") == "| not a table |\n"

    def test_escaped_pipes_not_split(self):
        from confluence2md.extractors.cleanup import split_row

        assert split_row("| a\\|b | c |") == [" a\\|b ", " c "]


class TestDecodeEntities:
    def test_common_entities(self):
        from confluence2md.extractors.cleanup import decode_entities

        assert decode_entities("a &amp; b &lt;tag&gt;\n") == "a & b <tag>\n"

    def test_structural_characters_escaped(self):
        from confluence2md.extractors.cleanup import decode_entities

        assert decode_entities("&#35; x &#124; y\n") == "\\# x \\| y\n"

    def test_nbsp_becomes_space(self):
        from confluence2md.extractors.cleanup import decode_entities

        assert decode_entities("a&nbsp;b\n") == "a b\n"

    def test_double_encoded_kept(self):
        from confluence2md.extractors.cleanup import decode_entities

        assert decode_entities("&amp;lt;\n") == "&amp;lt;\n"

    def test_entity_kept_when_line_would_become_list_item(self):
        from confluence2md.extractors.cleanup import decode_entities

        assert decode_entities("&#49;. x\n-&nbsp;y\n") == "&#49;. x\n-&nbsp;y\n"

    def test_entity_kept_when_line_would_become_heading(self):
        from confluence2md.extractors.cleanup import decode_entities

        assert decode_entities("#&nbsp;# Title\n#&#32;Title\n") == "#&nbsp;# Title\n#&#32;Title\n"

    def test_entity_kept_when_line_would_open_fence(self):
        from confluence2md.extractors.cleanup import decode_entities

        assert decode_entities("&#126;~~\n") == "&#126;~~\n"

    def test_backtick_kept(self):
        from confluence2md.extractors.cleanup import decode_entities

        assert decode_entities("&#96;x&#96; &amp;\n") == "&#96;x&#96; &\n"

    def test_entity_that_decodes_to_another_kept(self):
        from confluence2md.extractors.cleanup import decode_entities

        assert decode_entities("&amp;&#108;t;\n") == "&amp;&#108;t;\n"

    def test_code_untouched(self):
        from confluence2md.extractors.cleanup import decode_entities

        text = "`&amp;` and\n```\n&lt;\n```\n"
        assert decode_entities(text) == text


class TestCollapseBlankLines:
    def test_collapse(self):
        from confluence2md.extractors.cleanup import collapse_blank_lines

        assert collapse_blank_lines("\n\na  \n\n\n\n\nb\n\n") == "a\n\n\nb\n"

    def test_empty(self):
        from confluence2md.extractors.cleanup import collapse_blank_lines

        assert collapse_blank_lines("\n \n") == ""

    def test_code_blank_lines_kept(self):
        from confluence2md.extractors.cleanup import collapse_blank_lines

        text = "```\na\n\n\n\n\nb\n```\n"
        assert collapse_blank_lines(text) == text


class TestBuildNavigation:
    def test_leading_page_links(self):
        from confluence2md.extractors.cleanup import build_navigation

        text = "1. [Home](index.md)\n2. [Guide](Guide_1.md)\n\n# Title\n"
        assert build_navigation(text) == (
            "## Navigation\n\n- [Home](index.md)\n- [Guide](Guide_1.md)\n\n# Title\n"
        )

    def test_breadcrumb_title_match(self):
        from confluence2md.extractors.cleanup import build_navigation
        from confluence2md.items import Breadcrumb

        text = "1. [Space](https://wiki.example.com/display/SP)\n# Title\n"
        crumbs = [Breadcrumb(title="Space")]
        assert build_navigation(text, crumbs) == (
            "## Navigation\n\n- [Space](https://wiki.example.com/display/SP)\n\n# Title\n"
        )

    def test_ordinary_list_untouched(self):
        from confluence2md.extractors.cleanup import build_navigation

        text = "1. [Site](https://example.com)\n2. Two\n"
        assert build_navigation(text) == text

    def test_only_leading_block(self):
        from confluence2md.extractors.cleanup import build_navigation

        text = "# Title\n\n1. [Home](index.md)\n"
        assert build_navigation(text) == text


class TestPipeline:
    def test_pass_order(self):
        names = [name for name, _ in _all_passes()]
        assert names == [
            "collapse_heading_markers",
            "fix_list_spacing",
            "repair_tables",
            "decode_entities",
            "collapse_blank_lines",
            "build_navigation",
        ]

    @pytest.mark.parametrize("index", range(6))
    def test_each_pass_idempotent(self, index):
        _, cleanup_pass = _all_passes()[index]
        once = cleanup_pass(_SAMPLE)
        assert cleanup_pass(once) == once

    def test_pipeline_idempotent(self):
        from confluence2md.extractors.cleanup import cleanup_markdown
        from confluence2md.items import Breadcrumb

        crumbs = [Breadcrumb(title="Docs", href="index.html")]
        once = cleanup_markdown(_SAMPLE, crumbs)
        assert cleanup_markdown(once, crumbs) == once

    def test_pipeline_result(self):
        from confluence2md.extractors.cleanup import cleanup_markdown

        out = cleanup_markdown(_SAMPLE)
        assert out.startswith("## Navigation\n\n- [Docs](index.md)\n- [Guides](Guides_1.md)\n\n## Title\n\n")
        assert "Intro with & and <b> and \\| and space." in out
        assert "- one\n- two\n" in out
        assert "| a | b |\n|---|---|\n| c | |\n" in out
        assert 'x = "&amp;"  # # not a heading\n\n\n\n\n```' in out
        assert "Keep `&amp;` as typed.\n" in out
        assert "```\n\n\nKeep" in out
        assert out.endswith("\n") and not out.endswith("\n\n")

    def test_navigation_before_list_is_stable(self):
        from confluence2md.extractors.cleanup import cleanup_markdown

        once = cleanup_markdown("1. [Home](Home.html)\n\n- item\n")
        assert once == "## Navigation\n\n- [Home](Home.html)\n\n- item\n"
        assert cleanup_markdown(once) == once

    def test_encoded_space_between_markers_is_stable(self):
        from confluence2md.extractors.cleanup import cleanup_markdown

        once = cleanup_markdown("#&nbsp;# Title\n")
        assert once == "#&nbsp;# Title\n"
        assert cleanup_markdown(once) == once


class TestIdempotenceProperties:
    @given(_documents)
    @settings(max_examples=300, deadline=None)
    def test_each_pass_idempotent(self, text):
        for name, cleanup_pass in _all_passes():
            once = cleanup_pass(text)
            assert cleanup_pass(once) == once, name

    @given(_documents)
    @settings(max_examples=300, deadline=None)
    def test_pipeline_idempotent(self, text):
        from confluence2md.extractors.cleanup import cleanup_markdown
        from confluence2md.items import Breadcrumb

        crumbs = [Breadcrumb(title="Docs", href="index.html")]
        once = cleanup_markdown(text, crumbs)
        assert cleanup_markdown(once, crumbs) == once

    @given(_documents)
    @settings(max_examples=200, deadline=None)
    def test_fenced_code_survives(self, text):
        from confluence2md.extractors.cleanup import cleanup_markdown, split_fenced

        code = [chunk.strip("\n") for is_code, chunk in split_fenced(text) if is_code]
        out = cleanup_markdown(text)
        for chunk in code:
            assert chunk in out
