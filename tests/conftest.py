"""Shared fixtures for building small sites on disk."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

import pytest

if TYPE_CHECKING:
    from pathlib import Path


def write(root: Path, rel_path: str, content: str) -> Path:
    path = root / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def post_text(title: str, body: str = "", **meta: str) -> str:
    lines = ["---", f"title: {title}"]
    lines.extend(f"{key}: {value}" for key, value in meta.items())
    lines.append("---")
    return "\n".join(lines) + "\n" + body


@pytest.fixture
def write_file() -> Callable[[Path, str, str], Path]:
    return write


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    """A Jekyll-style source tree with eight dated posts."""
    root = tmp_path / "site"
    write(
        root,
        "_config.yml",
        "title: Test Blog\nauthor: Jane\nurl: https://blog.example.com\npaginate: 5\n",
    )
    write(
        root,
        "_layouts/default.html",
        "<html><head><title>{{ page.title }} | {{ site.title }}</title></head>\n"
        '<body>{% include "header.html" %}<main>{{ content }}</main></body></html>\n',
    )
    write(
        root,
        "_layouts/post.html",
        "---\nlayout: default\n---\n"
        "<article><h1>{{ page.title }}</h1>"
        '<time>{{ page.date | date("%Y-%m-%d") }}</time>{{ content }}'
        '{% if page.previous %}<a class="prev" href="{{ page.previous.url }}">'
        "{{ page.previous.title }}</a>{% endif %}</article>\n",
    )
    write(root, "_includes/header.html", "<header>{{ site.title }}</header>")
    write(
        root,
        "index.html",
        "---\nlayout: default\ntitle: Home\n---\n"
        "<ul>{% for post in paginator.posts %}"
        '<li><a href="{{ post.url }}">{{ post.title }}</a></li>'
        "{% endfor %}</ul>\n",
    )
    write(root, "about.md", "---\nlayout: default\ntitle: About\n---\nHello **world**\n")
    write(root, "assets/style.css", "body { color: black; }\n")
    write(root, "README.md", "# Source notes\n\nNot a page.\n")
    for i in range(1, 9):
        meta = {"categories": "news"} if i % 2 else {}
        write(
            root,
            f"_posts/2025-01-0{i}-post-{i}.md",
            post_text(
                f"Post {i}",
                f"First paragraph of post {i}.\n\nSecond paragraph.\n",
                **meta,
            ),
        )
    return root
