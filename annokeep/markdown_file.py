"""
Human-editable Markdown mirror of the annotations.

When ``markdown_file_path`` is set, every save also writes the annotations
to a Markdown file in this layout::

    <header line>

    # Plugin Name

    <!-- id: plugin-id -->
    <!-- BEGIN ANNOTATION -->
    free text
    <!-- END ANNOTATION -->

Only the text between the BEGIN/END markers is meant to be edited; the
heading and id comment are regenerated on every write.
"""

import re

from .errors import MarkdownFormatError
from .types import UNKNOWN_NAME, Annotation

HEADER = (
    "Make changes only within the annotation blocks marked by "
    "<!-- BEGIN ANNOTATION --> and <!-- END ANNOTATION -->. "
    "Changes made anywhere else will be overwritten.\n"
)

BEGIN_MARKER = "<!-- BEGIN ANNOTATION -->"
END_MARKER = "<!-- END ANNOTATION -->"

_HEADING_RE = re.compile(r"^#\s+(.+?)\s*$")
_ID_RE = re.compile(r"^<!--\s*id:\s*(.+?)\s*-->$")


def render_markdown(annotations: dict[str, Annotation]) -> str:
    """Render annotations in insertion order."""
    blocks = [HEADER]
    for plugin_id, anno in annotations.items():
        blocks.append(
            f"# {anno.name}\n\n"
            f"<!-- id: {plugin_id} -->\n"
            f"{BEGIN_MARKER}\n"
            f"{anno.desc}\n"
            f"{END_MARKER}\n"
        )
    return "\n".join(blocks)


def parse_markdown(text: str) -> dict[str, Annotation]:
    """
    Parse a Markdown mirror back into annotations.

    Lines outside annotation blocks other than headings and id comments
    are ignored (including ``<!-- type: ... -->`` lines from older files).
    Blocks whose content is blank are skipped.

    Raises:
        MarkdownFormatError: A block is unterminated, nested, or has no id
    """
    annotations: dict[str, Annotation] = {}
    name = None
    plugin_id = None
    body: list[str] | None = None
    block_start = 0

    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if body is not None:
            if stripped == END_MARKER:
                desc = "\n".join(body).strip()
                if desc:
                    annotations[plugin_id] = Annotation(name=name or UNKNOWN_NAME, desc=desc)
                body = None
                name = plugin_id = None
            elif stripped == BEGIN_MARKER:
                raise MarkdownFormatError("Nested annotation block", lineno)
            else:
                body.append(line)
            continue

        if stripped == BEGIN_MARKER:
            if plugin_id is None:
                raise MarkdownFormatError("Annotation block without an id comment", lineno)
            body = []
            block_start = lineno
            continue
        if stripped == END_MARKER:
            raise MarkdownFormatError("END marker without a BEGIN marker", lineno)

        heading = _HEADING_RE.match(stripped)
        if heading:
            name = heading.group(1)
            continue
        id_match = _ID_RE.match(stripped)
        if id_match:
            plugin_id = id_match.group(1)

    if body is not None:
        raise MarkdownFormatError("Unterminated annotation block", block_start)
    return annotations
