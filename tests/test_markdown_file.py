"""Tests for the Markdown mirror of the annotations."""

import pytest

from annokeep.errors import MarkdownFormatError
from annokeep.markdown_file import BEGIN_MARKER, END_MARKER, HEADER, parse_markdown, render_markdown
from annokeep.types import Annotation


class TestRender:

    def test_layout(self):
        text = render_markdown({"p1": Annotation("Plugin One", "line 1\nline 2")})
        assert text.startswith(HEADER)
        assert (
            "# Plugin One\n\n"
            "<!-- id: p1 -->\n"
            f"{BEGIN_MARKER}\n"
            "line 1\nline 2\n"
            f"{END_MARKER}\n"
        ) in text

    def test_insertion_order(self):
        text = render_markdown({
            "z": Annotation("Zed", "last"),
            "a": Annotation("Ay", "first"),
        })
        assert text.index("# Zed") < text.index("# Ay")

    def test_empty(self):
        assert parse_markdown(render_markdown({})) == {}


class TestParse:

    def test_render_parse(self):
        annotations = {
            "p1": Annotation("Plugin One", "note"),
            "p2": Annotation("Plugin Two", "# a heading inside\n\n- item"),
        }
        assert parse_markdown(render_markdown(annotations)) == annotations

    def test_legacy_type_lines_ignored(self):
        text = (
            "# Plugin One\n"
            "<!-- id: p1 -->\n"
            "<!-- type: markdown -->\n"
            f"{BEGIN_MARKER}\nnote\n{END_MARKER}\n"
        )
        assert parse_markdown(text) == {"p1": Annotation("Plugin One", "note")}

    def test_blank_block_skipped(self):
        text = f"# One\n<!-- id: p1 -->\n{BEGIN_MARKER}\n   \n{END_MARKER}\n"
        assert parse_markdown(text) == {}

    def test_missing_heading_is_unknown(self):
        text = f"<!-- id: p1 -->\n{BEGIN_MARKER}\nnote\n{END_MARKER}\n"
        assert parse_markdown(text) == {"p1": Annotation("Unknown", "note")}

    def test_unterminated(self):
        text = f"# One\n<!-- id: p1 -->\n{BEGIN_MARKER}\nnote\n"
        with pytest.raises(MarkdownFormatError) as exc_info:
            parse_markdown(text)
        assert exc_info.value.line == 3

    def test_nested(self):
        text = f"<!-- id: p1 -->\n{BEGIN_MARKER}\n{BEGIN_MARKER}\n{END_MARKER}\n"
        with pytest.raises(MarkdownFormatError):
            parse_markdown(text)

    def test_block_without_id(self):
        with pytest.raises(MarkdownFormatError):
            parse_markdown(f"# One\n{BEGIN_MARKER}\nnote\n{END_MARKER}\n")

    def test_stray_end(self):
        with pytest.raises(MarkdownFormatError):
            parse_markdown(f"text\n{END_MARKER}\n")

    def test_id_not_reused_for_next_block(self):
        text = (
            f"<!-- id: p1 -->\n{BEGIN_MARKER}\none\n{END_MARKER}\n"
            f"# Two\n{BEGIN_MARKER}\ntwo\n{END_MARKER}\n"
        )
        with pytest.raises(MarkdownFormatError):
            parse_markdown(text)
