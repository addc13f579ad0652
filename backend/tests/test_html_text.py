"""Tests for HTML to plain text conversion."""
from scriptorium.utils.html_text import strip_html


def test_empty_input():
    assert strip_html("") == ""
    assert strip_html(None) == ""


def test_paragraphs_become_lines():
    assert strip_html("<p>One</p><p>Two</p>") == "One\nTwo"


def test_inline_markup_is_dropped():
    assert strip_html("<p>A <strong>bold</strong> <em>move</em></p>") == "A bold move"


def test_line_breaks():
    assert strip_html("first<br>second<br/>third") == "first\nsecond\nthird"


def test_entities_are_decoded():
    assert strip_html("<p>Tom &amp; Jerry&nbsp;&lt;3</p>") == "Tom & Jerry <3"


def test_script_and_style_contents_are_skipped():
    assert strip_html("<style>p{color:red}</style><p>Visible</p><script>alert(1)</script>") == "Visible"


def test_blank_runs_are_collapsed():
    assert strip_html("<div><p>A</p></div>\n\n\n<div><p>B</p></div>") == "A\n\nB"


def test_plain_text_passes_through():
    assert strip_html("just words") == "just words"
