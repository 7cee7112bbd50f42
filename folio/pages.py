from __future__ import annotations

import datetime as dt
import html
import math
import sys
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Iterator, Optional

from jinja2 import Environment

from .collection import group_by, is_markdown, neighbours, take
from .content import count_words, make_excerpt, parse_front_matter
from .platform import Platform
from .render import fix_relative_img_src, markdown_to_html, strip_tags, write_text
from .template import TemplateError, render_template
from .utils import iso_date, join_url, parse_bool, rfc822_date

NO_LAYOUT = {"", "none", "null"}
HIDDEN_FIELDS = {"body", "metadata", "source"}

DEFAULT_BASE = """<!doctype html>
<html lang="{{ site.lang or 'en' }}">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{% if page.title %}{{ page.title }} | {% endif %}{{ site.title }}</title>
<link rel="stylesheet" href="{{ '/assets/css/pygments.css' | relative_url }}">
</head>
<body>
<header><a href="{{ '/' | relative_url }}">{{ site.title }}</a></header>
<main>{{ content }}</main>
<footer>&copy; {{ site.time | date('%Y') }} {{ site.author }}</footer>
</body>
</html>
"""


class DocumentView(Mapping):
    """Read-only template view of a post or page record.

    Computed fields shadow front-matter keys; ``extra`` carries per-render
    values such as ``previous`` and ``next``.
    """

    def __init__(self, record: dict, extra: Optional[dict] = None) -> None:
        self._record = record
        self._extra = extra or {}

    def __getitem__(self, key: str) -> object:
        if key in self._extra:
            return self._extra[key]
        if key in self._record and key not in HIDDEN_FIELDS:
            return self._record[key]
        return self._record["metadata"][key]

    def __iter__(self) -> Iterator[str]:
        seen = set()
        for source in (self._extra, self._record, self._record["metadata"]):
            for key in source:
                if key in HIDDEN_FIELDS and source is self._record:
                    continue
                if key not in seen:
                    seen.add(key)
                    yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    @property
    def record(self) -> dict:
        return self._record

    def __repr__(self) -> str:
        return f"DocumentView({self._record.get('url') or self._record.get('slug')!r})"


def load_layouts(layouts_dir: Path) -> dict[str, tuple[dict, str]]:
    layouts = {}
    if not layouts_dir.is_dir():
        return layouts
    for path in sorted(layouts_dir.iterdir()):
        if path.is_file():
            meta, body = parse_front_matter(path.read_text(encoding="utf-8"), path)
            layouts[path.stem] = (meta, body)
    return layouts


def assign_urls(records: list[dict], platform: Platform) -> None:
    used_urls = set()
    for record in records:
        make_url = platform.post_url if record["kind"] == "post" else platform.page_url
        url = make_url(record)
        if url in used_urls:
            base_slug = record["slug"]
            counter = 2
            while url in used_urls:
                record["slug"] = f"{base_slug}-{counter}"
                url = make_url(record)
                counter += 1
            print(
                f"Warning: {record['source']} clashes with an earlier URL, using {url}",
                file=sys.stderr,
            )
        used_urls.add(url)
        record["url"] = url


def build_site_payload(config: Mapping, posts: list[dict], pages: list[dict]) -> Mapping:
    post_views = [DocumentView(post) for post in posts]
    views_by_id = {id(post): view for post, view in zip(posts, post_views)}

    def grouped(field: str) -> dict:
        return {
            name: [views_by_id[id(post)] for post in items]
            for name, items in group_by(posts, field).items()
        }

    site = dict(config)
    site.update(
        {
            "posts": post_views,
            "pages": [DocumentView(page) for page in pages],
            "categories": grouped("categories"),
            "tags": grouped("tags"),
            "time": dt.datetime.now().replace(microsecond=0),
        }
    )
    return MappingProxyType(site)


def expand_body(record: dict, context: Mapping, env: Environment) -> str:
    if not parse_bool(record["metadata"].get("render_with_liquid", True)):
        return record["body"]
    return render_template(record["body"], context, env, name=str(record["source"]))


def body_to_html(record: dict, text: str, config: Mapping) -> tuple[str, str]:
    if not is_markdown(record["source"]):
        return text, ""
    content, toc = markdown_to_html(text, str(config.get("toc_depth") or "2-4"))
    return fix_relative_img_src(content, str(config.get("baseurl") or "")), toc


def render_body(record: dict, site: Mapping, env: Environment, config: Mapping) -> None:
    """Render template constructs and Markdown in a record's body in place."""
    body = expand_body(record, {"site": site, "page": DocumentView(record)}, env)
    content, toc = body_to_html(record, body, config)
    record["content"] = content
    record["toc"] = toc
    record["words"] = count_words(strip_tags(content))
    if record["kind"] != "post":
        return
    meta = record["metadata"]
    if meta.get("excerpt"):
        record["excerpt"] = str(meta["excerpt"])
        return
    excerpt_src = make_excerpt(body, str(config.get("excerpt_separator") or ""))
    record["excerpt"], _ = body_to_html(record, excerpt_src, config)


def apply_layouts(
    content: str,
    layout_name: object,
    context: dict,
    env: Environment,
    layouts: dict,
    fallback: bool = False,
) -> str:
    chain: list[str] = []
    name = layout_name
    while name is not None and str(name).strip().lower() not in NO_LAYOUT:
        name = str(name).strip()
        if name in chain:
            raise TemplateError(f"layout cycle {' -> '.join(chain + [name])}", f"_layouts/{name}")
        chain.append(name)
        layout = layouts.get(name)
        if layout is None:
            if fallback and len(chain) == 1:
                layout_context = dict(context)
                layout_context["content"] = content
                return render_template(DEFAULT_BASE, layout_context, env, name="default")
            print(f"Warning: layout '{name}' does not exist.", file=sys.stderr)
            break
        meta, body = layout
        layout_context = dict(context)
        layout_context.update({"content": content, "layout": meta})
        content = render_template(body, layout_context, env, name=f"_layouts/{name}")
        name = meta.get("layout")
    return content


def document_context(site: Mapping, view: Mapping, paginator: Optional[dict] = None) -> dict:
    return {"site": site, "page": view, "paginator": paginator}


def build_posts(
    posts: list[dict],
    site: Mapping,
    env: Environment,
    layouts: dict,
    platform: Platform,
    output_dir: Path,
) -> None:
    views = {id(view.record): view for view in site["posts"]}
    for post in posts:
        older, newer = neighbours(posts, post)
        extra = {
            "previous": views.get(id(older)) if older else None,
            "next": views.get(id(newer)) if newer else None,
        }
        view = DocumentView(post, extra)
        html_doc = apply_layouts(
            post["content"], post["layout"], document_context(site, view), env, layouts
        )
        write_text(platform.output_path(output_dir, post["url"]), html_doc)


def is_index_page(page: dict) -> bool:
    return page["url"] == "/"


def build_pages(
    pages: list[dict],
    site: Mapping,
    env: Environment,
    layouts: dict,
    platform: Platform,
    output_dir: Path,
) -> None:
    for page in pages:
        if is_index_page(page):
            continue
        view = DocumentView(page)
        html_doc = apply_layouts(
            page["content"], page["layout"], document_context(site, view), env, layouts
        )
        write_text(platform.output_path(output_dir, page["url"]), html_doc)


def build_post_cards(posts: list[Mapping], relative_url) -> str:
    cards = []
    for post in posts:
        title = html.escape(post["title"])
        url = relative_url(post["url"])
        category_links = " ".join(
            f'<span class="chip">{html.escape(cat)}</span>' for cat in post["categories"]
        )
        cards.append(
            '<article class="post-card">'
            '<div class="post-meta">'
            f'<span class="post-date">{post["date"].strftime("%Y-%m-%d")}</span>'
            f'<span class="post-words">{post.get("words", 0)} words</span>'
            f'<div class="post-tags">{category_links}</div></div>'
            f'<h2 class="post-title"><a href="{url}">{title}</a></h2>'
            f'<div class="post-summary">{post["excerpt"]}</div>'
            f'<a class="post-more" href="{url}">Read more</a>'
            "</article>"
        )
    return "\n".join(cards)


def build_pagination(paginator: dict, relative_url) -> str:
    total_pages = paginator["total_pages"]
    if total_pages <= 1:
        return ""
    items = []
    if paginator["previous_page_path"]:
        items.append(
            f'<a class="page-link" href="{relative_url(paginator["previous_page_path"])}">Previous</a>'
        )
    else:
        items.append('<span class="page-link is-disabled">Previous</span>')
    items.append(f'<span class="page-number is-active">{paginator["page"]} / {total_pages}</span>')
    if paginator["next_page_path"]:
        items.append(f'<a class="page-link" href="{relative_url(paginator["next_page_path"])}">Next</a>')
    else:
        items.append('<span class="page-link is-disabled">Next</span>')
    return f'<nav class="pagination">{"".join(items)}</nav>'


def make_paginator(site: Mapping, page_num: int, per_page: int, platform: Platform) -> dict:
    posts = site["posts"]
    total_pages = max(1, math.ceil(len(posts) / per_page))
    offset = (page_num - 1) * per_page
    return {
        "page": page_num,
        "per_page": per_page,
        "posts": list(take(posts, per_page, offset)),
        "total_posts": len(posts),
        "total_pages": total_pages,
        "previous_page": page_num - 1 if page_num > 1 else None,
        "previous_page_path": platform.listing_url(page_num - 1) if page_num > 1 else None,
        "next_page": page_num + 1 if page_num < total_pages else None,
        "next_page_path": platform.listing_url(page_num + 1) if page_num < total_pages else None,
    }


def build_index(
    pages: list[dict],
    site: Mapping,
    env: Environment,
    layouts: dict,
    platform: Platform,
    output_dir: Path,
    per_page: int,
) -> int:
    """Write the paginated home listing and return the number of pages.

    An index page in the source is rendered once per listing page with a
    ``paginator`` in its context. Without one, a card listing is generated.
    """
    index_page = next((page for page in pages if is_index_page(page)), None)
    per_page = max(1, per_page)
    total_pages = max(1, math.ceil(len(site["posts"]) / per_page))
    relative_url = env.filters["relative_url"]
    for page_num in range(1, total_pages + 1):
        paginator = make_paginator(site, page_num, per_page, platform)
        if index_page is not None:
            view = DocumentView(index_page)
            context = document_context(site, view, paginator)
            content, _ = body_to_html(index_page, expand_body(index_page, context, env), site)
            html_doc = apply_layouts(content, index_page["layout"], context, env, layouts)
        else:
            content = (
                '<div class="section-head"><h2>Latest posts</h2></div>'
                f'<div class="post-grid">{build_post_cards(paginator["posts"], relative_url)}</div>'
                f"{build_pagination(paginator, relative_url)}"
            )
            view = {"title": "Home" if page_num == 1 else f"Page {page_num}", "url": platform.listing_url(page_num)}
            context = document_context(site, view, paginator)
            html_doc = apply_layouts(content, "default", context, env, layouts, fallback=True)
        write_text(platform.output_path(output_dir, platform.listing_url(page_num)), html_doc)
    return total_pages


def taxonomy_urls(site: Mapping, platform: Platform) -> dict[tuple[str, str], str]:
    """Map ``(kind, name)`` to a listing URL, suffixing names that slug alike."""
    urls = {}
    used_urls = set()
    for kind in ("categories", "tags"):
        for name in sorted(site[kind], key=str.lower):
            url = platform.taxonomy_url(kind, name)
            counter = 2
            while url in used_urls:
                url = platform.taxonomy_url(kind, f"{name}-{counter}")
                counter += 1
            if counter > 2:
                print(
                    f"Warning: {kind} '{name}' clashes with an earlier name, using {url}",
                    file=sys.stderr,
                )
            used_urls.add(url)
            urls[(kind, name)] = url
    return urls


def build_taxonomies(
    site: Mapping,
    env: Environment,
    layouts: dict,
    platform: Platform,
    output_dir: Path,
    taxonomy_map: dict[tuple[str, str], str],
) -> None:
    relative_url = env.filters["relative_url"]
    for (kind, name), url in taxonomy_map.items():
        layout_name = "category" if kind == "categories" else "tag"
        posts = site[kind][name]
        view = {"title": name, "url": url, "posts": posts, "taxonomy": kind}
        context = document_context(site, view)
        if layout_name in layouts:
            html_doc = apply_layouts("", layout_name, context, env, layouts)
        else:
            content = (
                f'<div class="section-head"><h2>{html.escape(name)}</h2></div>'
                f'<div class="post-grid">{build_post_cards(posts, relative_url)}</div>'
            )
            html_doc = apply_layouts(content, "default", context, env, layouts, fallback=True)
        write_text(platform.output_path(output_dir, url), html_doc)


def build_rss(output_dir: Path, site: Mapping, feed_limit: int) -> None:
    site_url = str(site.get("url") or "")
    if not site_url:
        return
    posts = site["posts"]
    items = []
    for post in take(posts, feed_limit):
        link = join_url(site_url, post["url"])
        items.append(
            "\n".join(
                [
                    "<item>",
                    f"<title>{html.escape(post['title'])}</title>",
                    f"<link>{link}</link>",
                    f"<guid>{link}</guid>",
                    f"<pubDate>{rfc822_date(post['date'])}</pubDate>",
                    f"<description>{html.escape(post['excerpt'])}</description>",
                    "</item>",
                ]
            )
        )
    last_build = rfc822_date(posts[0]["date"]) if posts else rfc822_date(site["time"])
    rss = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0">',
            "<channel>",
            f"<title>{html.escape(str(site.get('title') or ''))}</title>",
            f"<link>{site_url}/</link>",
            f"<description>{html.escape(str(site.get('description') or ''))}</description>",
            f"<lastBuildDate>{last_build}</lastBuildDate>",
            "\n".join(items),
            "</channel>",
            "</rss>",
        ]
    )
    write_text(output_dir / "rss.xml", rss)


def build_atom(output_dir: Path, site: Mapping, feed_limit: int) -> None:
    site_url = str(site.get("url") or "")
    if not site_url:
        return
    posts = site["posts"]
    updated = iso_date(posts[0]["date"]) if posts else iso_date(site["time"])
    entries = []
    for post in take(posts, feed_limit):
        link = join_url(site_url, post["url"])
        entries.append(
            "\n".join(
                [
                    "<entry>",
                    f"<title>{html.escape(post['title'])}</title>",
                    f'<link href="{link}" />',
                    f"<id>{link}</id>",
                    f"<updated>{iso_date(post['date'])}</updated>",
                    f"<summary>{html.escape(post['excerpt'])}</summary>",
                    "</entry>",
                ]
            )
        )
    author = str(site.get("author") or "")
    atom = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<feed xmlns="http://www.w3.org/2005/Atom">',
            f"<title>{html.escape(str(site.get('title') or ''))}</title>",
            f"<id>{site_url}/</id>",
            f"<updated>{updated}</updated>",
            f"<author><name>{html.escape(author)}</name></author>" if author else "",
            f'<link href="{site_url}/feed.xml" rel="self" />',
            f'<link href="{site_url}/" />',
            "\n".join(entries),
            "</feed>",
        ]
    )
    write_text(output_dir / "feed.xml", atom)


def build_sitemap(
    output_dir: Path,
    site: Mapping,
    platform: Platform,
    total_pages: int,
    taxonomy_map: dict[tuple[str, str], str],
) -> None:
    site_url = str(site.get("url") or "")
    if not site_url:
        return
    urls = [(join_url(site_url, "/") + "/", None)]
    for page_num in range(2, total_pages + 1):
        urls.append((join_url(site_url, platform.listing_url(page_num)), None))
    for post in site["posts"]:
        urls.append((join_url(site_url, post["url"]), post["date"]))
    for page in site["pages"]:
        if page["url"] != "/":
            urls.append((join_url(site_url, page["url"]), page["date"]))
    for url in taxonomy_map.values():
        urls.append((join_url(site_url, url), None))
    items = []
    for url, lastmod in urls:
        if lastmod:
            items.append(
                "\n".join(
                    [
                        "<url>",
                        f"<loc>{html.escape(url)}</loc>",
                        f"<lastmod>{lastmod.date().isoformat()}</lastmod>",
                        "</url>",
                    ]
                )
            )
        else:
            items.append("\n".join(["<url>", f"<loc>{html.escape(url)}</loc>", "</url>"]))
    sitemap = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            "\n".join(items),
            "</urlset>",
        ]
    )
    write_text(output_dir / "sitemap.xml", sitemap)
