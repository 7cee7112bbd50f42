from __future__ import annotations

import re
import shutil
from pathlib import Path

import markdown
from pygments.formatters import HtmlFormatter

from .content import normalize_list_spacing

IMG_SRC_RE = re.compile(r'<img([^>]*?)src="([^"]+)"', re.IGNORECASE)
TAG_RE = re.compile(r"<[^>]+>")
HIGHLIGHT_CLASS = "highlight"


def markdown_to_html(text: str, toc_depth: str = "2-4") -> tuple[str, str]:
    md = markdown.Markdown(
        extensions=["fenced_code", "tables", "toc", "codehilite"],
        extension_configs={
            "toc": {"toc_depth": toc_depth},
            "codehilite": {"css_class": HIGHLIGHT_CLASS, "guess_lang": False},
        },
    )
    html_content = md.convert(normalize_list_spacing(text))
    toc_html = md.toc
    md.reset()
    return html_content, toc_html


def fix_relative_img_src(html_text: str, baseurl: str = "") -> str:
    """Point image sources at the site root so they survive deep post URLs."""

    def repl(match: re.Match) -> str:
        attrs, src = match.group(1), match.group(2)
        if src.startswith(("http://", "https://", "//", "data:", "#", "./", "../")):
            return match.group(0)
        if baseurl and (src == baseurl or src.startswith(baseurl + "/")):
            return match.group(0)
        return f'<img{attrs}src="{baseurl}/{src.lstrip("/")}"'

    return IMG_SRC_RE.sub(repl, html_text)


def strip_tags(html_text: str) -> str:
    return TAG_RE.sub("", html_text)


def write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def copy_static(files: list[Path], source_dir: Path, output_dir: Path) -> None:
    for item in files:
        dest = output_dir / item.relative_to(source_dir)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(item, dest)


def write_pygments_css(output_dir: Path, style: str = "default") -> None:
    css = HtmlFormatter(style=style).get_style_defs(f".{HIGHLIGHT_CLASS}")
    write_text(output_dir / "assets" / "css" / "pygments.css", css)
