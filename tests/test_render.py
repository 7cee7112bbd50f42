"""Tests for Markdown rendering helpers."""

from __future__ import annotations

from pathlib import Path

from folio.render import copy_static, fix_relative_img_src, markdown_to_html, write_pygments_css

from tests.conftest import write


class TestMarkdownToHtml:
    def test_fenced_code_is_highlighted(self) -> None:
        html_text, _ = markdown_to_html("```python\nx = 1\n```\n")
        assert 'class="highlight"' in html_text

    def test_toc_lists_headings(self) -> None:
        _, toc = markdown_to_html("## First\n\ntext\n\n## Second\n")
        assert 'href="#first"' in toc
        assert 'href="#second"' in toc

    def test_list_after_paragraph(self) -> None:
        html_text, _ = markdown_to_html("Items:\n- one\n- two\n")
        assert "<li>one</li>" in html_text


class TestFixRelativeImgSrc:
    def test_relative_sources_point_at_site_root(self) -> None:
        html_text = '<p><img alt="x" src="images/a.png"></p>'
        assert fix_relative_img_src(html_text) == '<p><img alt="x" src="/images/a.png"></p>'
        assert 'src="/blog/images/a.png"' in fix_relative_img_src(html_text, "/blog")

    def test_root_relative_sources_get_baseurl(self) -> None:
        assert 'src="/blog/a.png"' in fix_relative_img_src('<img src="/a.png">', "/blog")
        assert fix_relative_img_src('<img src="/blog/a.png">', "/blog") == '<img src="/blog/a.png">'

    def test_external_and_explicit_relative_sources_are_kept(self) -> None:
        for src in ("https://x.org/a.png", "data:image/png;base64,AA", "../a.png", "./a.png"):
            html_text = f'<img src="{src}">'
            assert fix_relative_img_src(html_text, "/blog") == html_text


class TestStaticOutput:
    def test_copy_static_keeps_layout(self, tmp_path: Path) -> None:
        source = tmp_path / "src"
        css = write(source, "assets/site.css", "body {}\n")
        copy_static([css], source, tmp_path / "out")
        assert (tmp_path / "out" / "assets" / "site.css").read_text() == "body {}\n"

    def test_pygments_stylesheet(self, tmp_path: Path) -> None:
        write_pygments_css(tmp_path)
        assert ".highlight" in (tmp_path / "assets" / "css" / "pygments.css").read_text()
