"""
Render the small Markdown dialect the workbench models produce into HTML fragments.

Recognized, per line: ``#``/``##``/``###`` headings, ``-``/``*`` bullet items,
``**bold**`` and ``*italic*`` spans, paragraphs, and blank-line breaks. Everything
else (ordered lists, links, code, tables...) comes through as paragraph text.

The output is NOT escaped. Only feed it model or operator text you already trust.
Rendering is one-way: running the HTML back through ``render`` does not give the
same fragment.
"""

import re
from enum import Enum
from typing import List

from bs4 import BeautifulSoup

H1_CLASS = "text-2xl font-bold mt-8 mb-4"
H2_CLASS = "text-xl font-bold mt-6 mb-3"
H3_CLASS = "text-lg font-semibold mt-4 mb-2"
LIST_OPEN = '<ul class="list-disc list-inside space-y-1 my-2 ml-4">'
LIST_CLOSE = "</ul>"
PARAGRAPH_CLASS = "mb-2"
LINE_BREAK = "<br>"

# Longest marker first: "## x" also starts with "#".
HEADINGS = (
    ("### ", "h3", H3_CLASS),
    ("## ", "h2", H2_CLASS),
    ("# ", "h1", H1_CLASS),
)

# Whitespace as browsers trim it (ECMAScript WhiteSpace and LineTerminator).
# str.strip() differs: it keeps U+FEFF and drops \x1c-\x1f and \x85.
TRIM_CHARS = (
    "\t\n\x0b\x0c\r \u00a0\u1680"
    + "".join(chr(c) for c in range(0x2000, 0x200B))
    + "\u2028\u2029\u202f\u205f\u3000\ufeff"
)

LIST_ITEM_RE = re.compile(rf"^[-*][{re.escape(TRIM_CHARS)}]+([^\n\r\u2028\u2029]+)$")
BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
ITALIC_RE = re.compile(r"\*([^*]+?)\*")


class BlockState(Enum):
    PARAGRAPH = "paragraph"
    LIST = "list"


def render_inline(text: str) -> str:
    """Apply bold then italic substitution. Bold goes first so ``**x**`` is never read as two italics."""
    text = BOLD_RE.sub(r"<strong>\1</strong>", text)
    return ITALIC_RE.sub(r"<em>\1</em>", text)


class _FragmentWriter:
    """Accumulates fragments for one ``render`` call and tracks whether a list is open."""

    def __init__(self) -> None:
        self.state = BlockState.PARAGRAPH
        self.parts: List[str] = []

    def emit(self, fragment: str) -> None:
        self.parts.append(fragment)

    def open_list(self) -> None:
        if self.state is BlockState.PARAGRAPH:
            self.parts.append(LIST_OPEN)
            self.state = BlockState.LIST

    def close_list(self) -> None:
        if self.state is BlockState.LIST:
            self.parts.append(LIST_CLOSE)
            self.state = BlockState.PARAGRAPH

    def finish(self) -> str:
        self.close_list()
        return "".join(self.parts)


def _heading(trimmed: str):
    for marker, tag, css in HEADINGS:
        if trimmed.startswith(marker):
            return f'<{tag} class="{css}">{trimmed[len(marker):]}</{tag}>'
    return None


def render(document: str) -> str:
    """Convert ``document`` to an HTML fragment. Never raises for string input."""
    writer = _FragmentWriter()
    lines = document.split("\n")
    last = len(lines) - 1

    for i, line in enumerate(lines):
        trimmed = line.strip(TRIM_CHARS)

        heading = _heading(trimmed)
        if heading is not None:
            writer.close_list()
            writer.emit(heading)
            continue

        item = LIST_ITEM_RE.match(trimmed)
        if item:
            writer.open_list()
            writer.emit(f"<li>{render_inline(item.group(1))}</li>")
            continue

        # Any non-item line ends the list, then is handled as paragraph/blank.
        writer.close_list()

        if trimmed:
            writer.emit(f'<p class="{PARAGRAPH_CLASS}">{render_inline(trimmed)}</p>')
        elif i < last:
            writer.emit(LINE_BREAK)

    return writer.finish()


def speech_text(document: str) -> str:
    """Visible text of the rendered document, whitespace collapsed, for text-to-speech."""
    soup = BeautifulSoup(render(document), "html.parser")
    text = soup.get_text(" ")
    return " ".join(text.split())
