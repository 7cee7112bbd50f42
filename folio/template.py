"""Template rendering for layouts, includes and content bodies.

Templates use Jinja2 syntax, which shares Liquid's ``{{ var | filter }}``,
``{% for %}`` and ``{% if %}`` constructs. Mapping lookups take precedence
over attribute lookups so that front-matter keys such as ``items`` resolve
to the data, and Liquid's ``size``, ``first`` and ``last`` work on lists.
"""

from __future__ import annotations

import datetime as dt
import html
import json
from collections.abc import Mapping, Sequence
from functools import partial
from pathlib import Path
from typing import Iterable, Optional

from jinja2 import (
    ChainableUndefined,
    Environment,
    FileSystemLoader,
    TemplateNotFound,
    TemplateSyntaxError,
    UndefinedError,
)
from jinja2 import TemplateError as JinjaTemplateError
from pygments import highlight as pygments_highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import TextLexer, get_lexer_by_name
from pygments.util import ClassNotFound

from .collection import find_post, take
from .content import coerce_datetime, count_words, slugify
from .render import HIGHLIGHT_CLASS, markdown_to_html, strip_tags
from .utils import iso_date, rfc822_date


class TemplateError(Exception):
    def __init__(self, message: str, name: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.name = name

    def __str__(self) -> str:
        if not self.name:
            return self.message
        return f"{self.name}: {self.message}"


class SiteEnvironment(Environment):
    def getattr(self, obj, attribute):
        if isinstance(obj, Mapping) and attribute in obj:
            return obj[attribute]
        if isinstance(obj, Sequence) and not isinstance(obj, str):
            if attribute == "size":
                return len(obj)
            if attribute == "first":
                return obj[0] if obj else None
            if attribute == "last":
                return obj[-1] if obj else None
        if attribute == "size" and isinstance(obj, (str, Mapping)):
            return len(obj)
        return super().getattr(obj, attribute)


def field_value(item: object, key: str) -> object:
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def limit_filter(items: Iterable, count: Optional[int] = None, offset: int = 0):
    return take(items, count, offset)


def where_filter(items: Iterable, key: str, value: object) -> list:
    result = []
    for item in items:
        field = field_value(item, key)
        if isinstance(field, (list, tuple)):
            if value in field:
                result.append(item)
        elif field == value:
            result.append(item)
    return result


def sort_by_filter(items: Iterable, key: str, reverse: bool = False) -> list:
    items = list(items)
    present = [item for item in items if field_value(item, key) is not None]
    missing = [item for item in items if field_value(item, key) is None]
    present.sort(key=lambda item: field_value(item, key), reverse=reverse)
    return present + missing


def date_filter(value: object, fmt: str = "%Y-%m-%d") -> str:
    if value == "now":
        value = dt.datetime.now()
    parsed = coerce_datetime(value)
    if parsed is None:
        return "" if value is None else str(value)
    return parsed.strftime(fmt)


def date_to_xmlschema(value: object) -> str:
    parsed = coerce_datetime(value)
    return iso_date(parsed) if parsed else ""


def date_to_rfc822(value: object) -> str:
    parsed = coerce_datetime(value)
    return rfc822_date(parsed) if parsed else ""


def date_to_string(value: object) -> str:
    return date_filter(value, "%d %b %Y")


def xml_escape(value: object) -> str:
    if value is None:
        return ""
    return html.escape(str(value), quote=True)


def truncatewords(value: object, count: int = 15, end: str = "...") -> str:
    words = str(value or "").split()
    if len(words) <= count:
        return " ".join(words)
    return " ".join(words[:count]) + end


def json_default(value: object) -> object:
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, (dt.date, dt.datetime)):
        return value.isoformat()
    return str(value)


def jsonify(value: object) -> str:
    return json.dumps(value, default=json_default, ensure_ascii=False)


def highlight_filter(code: object, lang: str = "text", linenos: bool = False) -> str:
    try:
        lexer = get_lexer_by_name(lang, stripall=True)
    except ClassNotFound:
        lexer = TextLexer()
    formatter = HtmlFormatter(linenos=linenos, cssclass=HIGHLIGHT_CLASS)
    return pygments_highlight(str(code), lexer, formatter)


def markdownify(value: object, toc_depth: str = "2-4") -> str:
    html_content, _ = markdown_to_html(str(value or ""), toc_depth)
    return html_content


def relative_url(value: object, baseurl: str = "") -> str:
    path = str(value or "")
    if path.startswith(("http://", "https://", "//")):
        return path
    if not path.startswith("/"):
        path = f"/{path}"
    if baseurl and (path == baseurl or path.startswith(baseurl + "/")):
        return path
    return f"{baseurl}{path}"


def absolute_url(value: object, url: str = "", baseurl: str = "") -> str:
    path = str(value or "")
    if path.startswith(("http://", "https://", "//")):
        return path
    return f"{url}{relative_url(path, baseurl)}"


def blank_none(value: object) -> object:
    return "" if value is None else value


def make_environment(config: Mapping, includes_dir: Optional[Path] = None) -> Environment:
    searchpath = [str(includes_dir)] if includes_dir is not None else []
    loader = FileSystemLoader(searchpath)
    env = SiteEnvironment(
        loader=loader,
        autoescape=False,
        undefined=ChainableUndefined,
        finalize=blank_none,
        keep_trailing_newline=True,
    )
    baseurl = str(config.get("baseurl") or "")
    url = str(config.get("url") or "")
    toc_depth = str(config.get("toc_depth") or "2-4")
    env.filters.update(
        {
            "limit": limit_filter,
            "where": where_filter,
            "find_post": lambda posts, key: find_post(posts, str(key)),
            "sort_by": sort_by_filter,
            "date": date_filter,
            "date_to_xmlschema": date_to_xmlschema,
            "date_to_rfc822": date_to_rfc822,
            "date_to_string": date_to_string,
            "slugify": slugify,
            "markdownify": partial(markdownify, toc_depth=toc_depth),
            "strip_html": lambda value: strip_tags(str(value or "")),
            "xml_escape": xml_escape,
            "number_of_words": lambda value: count_words(strip_tags(str(value or ""))),
            "truncatewords": truncatewords,
            "relative_url": partial(relative_url, baseurl=baseurl),
            "absolute_url": partial(absolute_url, url=url, baseurl=baseurl),
            "jsonify": jsonify,
            "highlight": highlight_filter,
        }
    )
    return env


def render_template(
    template: str,
    context: Mapping,
    env: Optional[Environment] = None,
    name: Optional[str] = None,
) -> str:
    """Render ``template`` against ``context`` and return the output text."""
    if env is None:
        env = make_environment({})
    try:
        compiled = env.from_string(template)
        return compiled.render(dict(context))
    except TemplateSyntaxError as exc:
        raise TemplateError(f"line {exc.lineno}: {exc.message}", name) from exc
    except TemplateNotFound as exc:
        raise TemplateError(f"include not found: {exc.name}", name) from exc
    except UndefinedError as exc:
        raise TemplateError(str(exc), name) from exc
    except JinjaTemplateError as exc:
        raise TemplateError(exc.message or type(exc).__name__, name) from exc
    except (TypeError, ValueError, KeyError) as exc:
        raise TemplateError(f"{type(exc).__name__}: {exc}", name) from exc
