from __future__ import annotations

import sys
from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator, Mapping, Optional

from .content import (
    ParseError,
    coerce_datetime,
    extract_title,
    get_taxonomy,
    parse_front_matter,
    parse_post_filename,
    resolve_post_date,
    slugify,
    title_from_slug,
)
from .utils import parse_bool

CONTENT_SUFFIXES = {".md", ".markdown", ".html", ".htm"}
MARKDOWN_SUFFIXES = {".md", ".markdown"}


def is_markdown(path: Path) -> bool:
    return path.suffix.lower() in MARKDOWN_SUFFIXES


def has_front_matter(path: Path) -> bool:
    with path.open("r", encoding="utf-8", errors="replace") as handle:
        first = handle.readline()
    return first.lstrip("\ufeff").strip() == "---"


def is_published(meta: dict) -> bool:
    if "published" in meta and not parse_bool(meta.get("published")):
        return False
    return not parse_bool(meta.get("draft"))


def read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"not valid UTF-8 ({exc.reason} at byte {exc.start})", path) from exc


def load_post(path: Path) -> dict:
    raw_text = read_source(path)
    meta, body = parse_front_matter(raw_text, path)
    date_value = resolve_post_date(meta, path)
    _, file_slug = parse_post_filename(path.name)
    explicit_slug = str(meta.get("slug") or "").strip()
    slug = slugify(explicit_slug) if explicit_slug else slugify(file_slug)
    title, body = extract_title(meta, body, title_from_slug(file_slug))
    return {
        "kind": "post",
        "title": title,
        "date": date_value,
        "slug": slug,
        "categories": get_taxonomy(meta, "categories"),
        "tags": get_taxonomy(meta, "tags"),
        "layout": meta.get("layout", "post"),
        "published": is_published(meta),
        "metadata": meta,
        "body": body,
        "source": path,
        "url": "",
        "excerpt": "",
        "content": "",
    }


def load_page(path: Path, source_dir: Path) -> dict:
    raw_text = read_source(path)
    meta, body = parse_front_matter(raw_text, path)
    rel = path.relative_to(source_dir)
    title, body = extract_title(meta, body, title_from_slug(path.stem))
    return {
        "kind": "page",
        "title": title,
        "date": coerce_datetime(meta.get("date")),
        "slug": slugify(path.stem),
        "layout": meta.get("layout", "page"),
        "published": is_published(meta),
        "metadata": meta,
        "body": body,
        "source": path,
        "path": rel.as_posix(),
        "url": "",
        "content": "",
    }


def list_post_files(posts_dir: Path) -> list[Path]:
    if not posts_dir.exists():
        return []
    files = [
        path
        for path in posts_dir.rglob("*")
        if path.is_file() and path.suffix.lower() in CONTENT_SUFFIXES
    ]
    return sorted(files, key=lambda p: p.as_posix())


def report_skip(exc: ParseError) -> None:
    print(f"Skipping {exc}", file=sys.stderr)


def load_posts(posts_dir: Path, config: Mapping) -> list[dict]:
    """Parse every post file and return the collection, newest first.

    Under ``on_error: abort`` the first :class:`ParseError` propagates. Under
    ``on_error: skip`` the offending file is reported and left out.
    """
    skip_errors = config.get("on_error") == "skip"
    show_drafts = parse_bool(config.get("show_drafts"))
    strict_dates = parse_bool(config.get("strict_dates"))
    posts = []
    for path in list_post_files(posts_dir):
        try:
            post = load_post(path)
            if post["date"] is None and strict_dates:
                raise ParseError("post has no date in front-matter or filename", path)
        except ParseError as exc:
            if not skip_errors:
                raise
            report_skip(exc)
            continue
        if not post["published"] and not show_drafts:
            continue
        if post["date"] is None:
            print(f"Warning: {path} has no date and is left out of posts.", file=sys.stderr)
            continue
        posts.append(post)
    return sort_posts(posts)


def sort_posts(posts: Iterable[dict]) -> list[dict]:
    # sorted() keeps equal dates in encounter order, reverse=True included.
    return sorted(posts, key=lambda p: p["date"], reverse=True)


def take(items: Iterable, limit: Optional[int] = None, offset: int = 0) -> Iterator:
    if limit is not None and limit < 0:
        raise ValueError(f"limit must not be negative, got {limit}")
    if offset < 0:
        raise ValueError(f"offset must not be negative, got {offset}")
    stop = None if limit is None else offset + limit
    return islice(items, offset, stop)


def find_post(posts: Iterable[dict], key: str) -> Optional[dict]:
    wanted = key.strip()
    for post in posts:
        if post["slug"] == wanted:
            return post
        url = post.get("url") or ""
        if url and url.rstrip("/") == wanted.rstrip("/"):
            return post
    return None


def group_by(posts: Iterable[dict], field: str) -> dict[str, list[dict]]:
    groups: dict[str, list[dict]] = {}
    for post in posts:
        for name in post.get(field) or []:
            groups.setdefault(name, []).append(post)
    return groups


def neighbours(posts: list[dict], post: dict) -> tuple[Optional[dict], Optional[dict]]:
    """Return ``(previous, next)`` where previous is older and next is newer."""
    for idx, item in enumerate(posts):
        if item is post:
            older = posts[idx + 1] if idx + 1 < len(posts) else None
            newer = posts[idx - 1] if idx > 0 else None
            return older, newer
    return None, None


def is_ignored(rel: Path, config: Mapping) -> bool:
    excluded = {str(item).strip("/") for item in config.get("exclude") or []}
    for part in rel.parts:
        if part.startswith(("_", ".")):
            return True
    rel_posix = rel.as_posix()
    for item in excluded:
        if rel_posix == item or rel_posix.startswith(item + "/"):
            return True
    return False


def discover_pages(source_dir: Path, config: Mapping) -> tuple[list[dict], list[Path]]:
    """Split the source tree into front-matter pages and plain static files."""
    skip_errors = config.get("on_error") == "skip"
    show_drafts = parse_bool(config.get("show_drafts"))
    config_file = str(config.get("config_file") or "")
    output_dir = (source_dir / str(config.get("destination") or "_site")).resolve()
    pages = []
    static_files = []
    candidates = sorted(
        (path for path in source_dir.rglob("*") if path.is_file()), key=lambda p: p.as_posix()
    )
    for path in candidates:
        rel = path.relative_to(source_dir)
        if is_ignored(rel, config) or (config_file and path == Path(config_file)):
            continue
        if path.resolve().is_relative_to(output_dir):
            continue
        if path.suffix.lower() not in CONTENT_SUFFIXES or not has_front_matter(path):
            static_files.append(path)
            continue
        try:
            page = load_page(path, source_dir)
        except ParseError as exc:
            if not skip_errors:
                raise
            report_skip(exc)
            continue
        if not page["published"] and not show_drafts:
            continue
        pages.append(page)
    return pages, static_files
