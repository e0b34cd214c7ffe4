"""
Renderer behavior: headings, lists, inline emphasis, blank lines and list closing.
"""

import re

import pytest

from markdown_render import (
    H1_CLASS,
    H2_CLASS,
    H3_CLASS,
    LIST_OPEN,
    render,
    render_inline,
    speech_text,
)


def test_h1_heading_without_paragraph_wrapper():
    assert render("# Title") == f'<h1 class="{H1_CLASS}">Title</h1>'


@pytest.mark.parametrize("line,tag,css", [
    ("### Deep", "h3", H3_CLASS),
    ("## Mid", "h2", H2_CLASS),
    ("# Top", "h1", H1_CLASS),
])
def test_longest_heading_marker_wins(line, tag, css):
    text = line.split(" ", 1)[1]
    assert render(line) == f'<{tag} class="{css}">{text}</{tag}>'


def test_heading_text_keeps_asterisks():
    assert render("## **Not bold**") == f'<h2 class="{H2_CLASS}">**Not bold**</h2>'


def test_heading_marker_needs_space():
    assert render("#hashtag") == '<p class="mb-2">#hashtag</p>'


def test_indented_heading_is_trimmed_first():
    assert render("   # Title   ") == f'<h1 class="{H1_CLASS}">Title</h1>'


def test_two_item_list():
    assert render("- a\n- b") == f"{LIST_OPEN}<li>a</li><li>b</li></ul>"


def test_star_bullets_and_inline_in_items():
    out = render("* **Risk**: churn\n* *maybe* later")
    assert out == (
        f"{LIST_OPEN}<li><strong>Risk</strong>: churn</li>"
        "<li><em>maybe</em> later</li></ul>"
    )


def test_bold_and_italic_paragraph():
    out = render("**bold** and *italic*")
    assert out == '<p class="mb-2"><strong>bold</strong> and <em>italic</em></p>'
    assert "*" not in out


def test_blank_line_between_paragraphs_emits_break():
    assert render("line1\n\nline2") == '<p class="mb-2">line1</p><br><p class="mb-2">line2</p>'


def test_trailing_blank_line_emits_nothing():
    out = render("line1\n\n")
    # The middle blank line is not last, the final one is.
    assert out == '<p class="mb-2">line1</p><br>'
    assert out.count("<br>") == 1


def test_heading_closes_open_list_first():
    out = render("- item\n# Heading")
    assert out == f'{LIST_OPEN}<li>item</li></ul><h1 class="{H1_CLASS}">Heading</h1>'
    assert out.index("</ul>") < out.index("<h1")


def test_paragraph_after_list_closes_it():
    out = render("- one\nafter")
    assert out == f'{LIST_OPEN}<li>one</li></ul><p class="mb-2">after</p>'


def test_blank_line_closes_list_then_breaks():
    out = render("- one\n\n- two")
    assert out == f"{LIST_OPEN}<li>one</li></ul><br>{LIST_OPEN}<li>two</li></ul>"


def test_document_ending_inside_list_is_closed():
    assert render("intro\n- x").endswith("<li>x</li></ul>")


def test_empty_document():
    assert render("") == ""


def test_bare_dash_is_not_a_list_item():
    assert render("-") == '<p class="mb-2">-</p>'
    assert render("-no-space") == '<p class="mb-2">-no-space</p>'


@pytest.mark.parametrize("text", [
    "> quote",
    "1. first",
    "[link](http://x)",
    "`code`",
    "| a | b |",
    "---",
])
def test_unsupported_syntax_is_paragraph_text(text):
    assert render(text) == f'<p class="mb-2">{text}</p>'


def test_html_is_not_escaped():
    assert render("<b>raw</b> & more") == '<p class="mb-2"><b>raw</b> & more</p>'


def test_unicode_passes_through():
    assert render("- café **naïve**") == f"{LIST_OPEN}<li>café <strong>naïve</strong></li></ul>"


def test_byte_order_mark_is_trimmed():
    assert render("\ufeff# Title") == f'<h1 class="{H1_CLASS}">Title</h1>'
    assert render("- item\u3000") == f"{LIST_OPEN}<li>item</li></ul>"


def test_separator_controls_are_not_whitespace():
    assert render("\x1c") == '<p class="mb-2">\x1c</p>'
    assert render("-\x1fx") == '<p class="mb-2">-\x1fx</p>'


@pytest.mark.parametrize("doc", [
    "- a\n- b\n# h\n- c\n\ntext\n* d",
    "- a",
    "",
    "\n\n\n",
    "* x\n  * nested looking\n- y",
    "# a\n## b\n### c",
])
def test_list_tags_balance(doc):
    out = render(doc)
    assert out.count("<ul") == out.count("</ul>")
    # Lists never nest: opening and closing tags strictly alternate.
    tags = re.findall(r"</?ul", out)
    assert tags == ["<ul", "</ul"] * (len(tags) // 2)


def test_unclosed_bold_degrades_to_italic_pairing():
    assert render_inline("**open *x*") == "*<em>open </em>x*"


def test_rendering_is_not_idempotent():
    once = render("# Title")
    assert render(once) != once


def test_speech_text_drops_markup():
    doc = "# Summary\n\n- **North Star**: weekly active teams\n- *Churn* risk"
    assert speech_text(doc) == "Summary North Star : weekly active teams Churn risk"
