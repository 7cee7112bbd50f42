from __future__ import annotations

import datetime as dt
import re
import xml.etree.ElementTree as etree
from pathlib import Path, PurePosixPath
from typing import Mapping

from .content import slugify
from .render import write_text
from .utils import join_url, rfc822_date

PLACEHOLDER_RE = re.compile(r":(?P<name>[a-z_]+)")

WXR_NAMESPACES = {
    "excerpt": "http://wordpress.org/export/1.2/excerpt/",
    "content": "http://purl.org/rss/1.0/modules/content/",
    "wfw": "http://wellformedweb.org/CommentAPI/",
    "dc": "http://purl.org/dc/elements/1.1/",
    "wp": "http://wordpress.org/export/1.2/",
}


def expand_permalink(pattern: str, record: Mapping) -> str:
    date_value = record.get("date") or dt.datetime(1970, 1, 1)
    values = {
        "year": date_value.strftime("%Y"),
        "month": date_value.strftime("%m"),
        "day": date_value.strftime("%d"),
        "i_month": str(date_value.month),
        "i_day": str(date_value.day),
        "title": record["slug"],
        "slug": record["slug"],
        "categories": "/".join(slugify(name) for name in record.get("categories") or []),
    }

    def repl(match: re.Match) -> str:
        return values.get(match.group("name"), match.group(0))

    url = PLACEHOLDER_RE.sub(repl, pattern)
    url = re.sub(r"/{2,}", "/", url)
    if not url.startswith("/"):
        url = f"/{url}"
    return url


class Platform:
    name = ""
    post_pattern = "/:year/:month/:day/:slug.html"
    pretty_pages = False
    paginate_pattern = "/page{num}/"

    def __init__(self, config: Mapping) -> None:
        self.config = config

    def post_url(self, post: Mapping) -> str:
        pattern = str(post["metadata"].get("permalink") or self.post_pattern)
        return expand_permalink(pattern, post)

    def page_url(self, page: Mapping) -> str:
        permalink = page["metadata"].get("permalink")
        if permalink:
            return expand_permalink(str(permalink), page)
        rel = PurePosixPath(page["path"])
        parent = "" if str(rel.parent) == "." else f"{rel.parent}/"
        if rel.stem == "index":
            return f"/{parent}"
        if self.pretty_pages:
            return f"/{parent}{rel.stem}/"
        return f"/{parent}{rel.stem}.html"

    def listing_url(self, num: int) -> str:
        if num <= 1:
            return "/"
        return self.paginate_pattern.format(num=num)

    def taxonomy_url(self, kind: str, name: str) -> str:
        return f"/{kind}/{slugify(name)}/"

    def output_path(self, output_dir: Path, url: str) -> Path:
        rel = url.lstrip("/")
        if not rel or rel.endswith("/"):
            return output_dir / rel / "index.html"
        if not PurePosixPath(rel).suffix:
            return output_dir / f"{rel}.html"
        return output_dir / rel

    def finalize(self, site: Mapping, output_dir: Path) -> None:
        custom_domain = str(self.config.get("custom_domain") or "").strip()
        if custom_domain:
            write_text(output_dir / "CNAME", f"{custom_domain}\n")


class JekyllPlatform(Platform):
    name = "jekyll"
    post_pattern = "/:categories/:year/:month/:day/:title.html"

    def finalize(self, site: Mapping, output_dir: Path) -> None:
        super().finalize(site, output_dir)
        if self.config.get("write_nojekyll"):
            write_text(output_dir / ".nojekyll", "")


class WordPressPlatform(Platform):
    name = "wordpress"
    post_pattern = "/:year/:month/:slug/"
    pretty_pages = True
    paginate_pattern = "/page/{num}/"
    export_name = "wordpress-export.xml"

    def taxonomy_url(self, kind: str, name: str) -> str:
        prefix = "category" if kind == "categories" else "tag"
        return f"/{prefix}/{slugify(name)}/"

    def finalize(self, site: Mapping, output_dir: Path) -> None:
        super().finalize(site, output_dir)
        write_wxr(site, output_dir / self.export_name)


def wp(tag: str) -> str:
    return f"{{{WXR_NAMESPACES['wp']}}}{tag}"


def add_text(parent: etree.Element, tag: str, text: str, **attrs: str) -> etree.Element:
    el = etree.SubElement(parent, tag, attrs)
    el.text = text
    return el


def wxr_item(channel: etree.Element, record: Mapping, post_id: int, site: Mapping) -> None:
    site_url = str(site.get("url") or "")
    link = join_url(site_url, record["url"]) if site_url else record["url"]
    date_value = record.get("date") or site["time"]
    item = etree.SubElement(channel, "item")
    add_text(item, "title", record["title"])
    add_text(item, "link", link)
    add_text(item, "pubDate", rfc822_date(date_value))
    add_text(item, f"{{{WXR_NAMESPACES['dc']}}}creator", str(site.get("author") or ""))
    add_text(item, "guid", link, isPermaLink="false")
    add_text(item, "description", "")
    add_text(item, f"{{{WXR_NAMESPACES['content']}}}encoded", record.get("content") or "")
    add_text(item, f"{{{WXR_NAMESPACES['excerpt']}}}encoded", record.get("excerpt") or "")
    add_text(item, wp("post_id"), str(post_id))
    add_text(item, wp("post_date"), date_value.strftime("%Y-%m-%d %H:%M:%S"))
    add_text(item, wp("post_name"), record["slug"])
    add_text(item, wp("status"), "publish")
    add_text(item, wp("post_type"), record["kind"])
    for name in record.get("categories") or []:
        add_text(item, "category", name, domain="category", nicename=slugify(name))
    for name in record.get("tags") or []:
        add_text(item, "category", name, domain="post_tag", nicename=slugify(name))


def write_wxr(site: Mapping, path: Path) -> None:
    for prefix, uri in WXR_NAMESPACES.items():
        etree.register_namespace(prefix, uri)
    rss = etree.Element("rss", {"version": "2.0"})
    channel = etree.SubElement(rss, "channel")
    site_url = str(site.get("url") or "")
    add_text(channel, "title", str(site.get("title") or ""))
    add_text(channel, "link", site_url)
    add_text(channel, "description", str(site.get("description") or ""))
    add_text(channel, "language", str(site.get("lang") or "en-US"))
    add_text(channel, wp("wxr_version"), "1.2")
    add_text(channel, wp("base_site_url"), site_url)
    add_text(channel, wp("base_blog_url"), site_url)
    post_id = 1
    for record in list(site["posts"]) + list(site["pages"]):
        wxr_item(channel, record, post_id, site)
        post_id += 1
    path.parent.mkdir(parents=True, exist_ok=True)
    etree.ElementTree(rss).write(path, encoding="utf-8", xml_declaration=True)


PLATFORMS = {
    JekyllPlatform.name: JekyllPlatform,
    WordPressPlatform.name: WordPressPlatform,
}


def get_platform(config: Mapping) -> Platform:
    name = str(config.get("platform") or "jekyll").lower()
    try:
        platform_cls = PLATFORMS[name]
    except KeyError:
        raise ValueError(
            f"Unknown platform {name!r}; expected one of {', '.join(sorted(PLATFORMS))}"
        ) from None
    return platform_cls(config)
