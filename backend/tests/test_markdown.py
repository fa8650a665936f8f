"""
Markdown rendering for admin-authored course text.
"""
from __future__ import annotations

from backend.web.components import markdown_to_text, render_markdown_safe


def test_basic_formatting_survives():
    html = render_markdown_safe("## Modules\n\n- **HTML**\n- *CSS*\n\n[Syllabus](https://hope.edu.np/syllabus)")
    assert "<h2>Modules</h2>" in html
    assert "<strong>HTML</strong>" in html
    assert "<em>CSS</em>" in html
    assert '<a href="https://hope.edu.np/syllabus">Syllabus</a>' in html


def test_raw_html_is_escaped():
    html = render_markdown_safe('<script>alert("x")</script><img src=x onerror=alert(1)>')
    assert "<script" not in html
    assert "<img" not in html
    assert "&lt;script&gt;" in html


def test_javascript_links_are_dropped():
    html = render_markdown_safe("[click](javascript:alert(1))")
    assert "href=\"javascript" not in html
    assert "<a" not in html


def test_h1_is_not_allowed():
    html = render_markdown_safe("# Title")
    assert "<h1>" not in html
    assert "Title" in html


def test_tables_are_rendered():
    html = render_markdown_safe("| Level | Hours |\n| --- | --- |\n| 1 | 120 |")
    assert "<table>" in html
    assert "<td>120</td>" in html


def test_empty_input():
    assert render_markdown_safe(None) == ""
    assert markdown_to_text("") == ""


def test_markdown_to_text_truncates():
    text = markdown_to_text("**Bold** intro\n\nsecond paragraph", limit=12)
    assert text.startswith("Bold intro")
    assert text.endswith("…")
    assert len(text) <= 12
