from __future__ import annotations

import datetime as dt
import html as html_lib
import re
from pathlib import Path
from typing import Optional

import yaml

LIST_MARKER_RE = re.compile(r"^(?P<indent>[ \t]*)(?:[-+*]|\d+[.)])\s+")
FENCE_RE = re.compile(r"^(?P<indent>[ \t]*)(`{3,}|~{3,})")
DOUBLE_QUOTE_RE = re.compile(r"^(?P<indent>[ \t]*)>>(?!>)(?P<rest>.*)$")
CJK_RE = re.compile(r"[\u3040-\u30ff\u3400-\u4dbf\u4e00-\u9fff\uac00-\ud7af]")
WORD_RE = re.compile(r"[A-Za-z0-9]+(?:'[A-Za-z0-9]+)?")
POST_NAME_RE = re.compile(r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})-(?P<slug>.+)$")

OPEN_DELIMITER = "---"
CLOSE_DELIMITERS = {"---", "..."}
DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M %z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
)


class ParseError(ValueError):
    """Raised when a content file's front-matter cannot be parsed."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.path}: {self.message}"


def slugify(text: str) -> str:
    text = text.lower()
    text = re.sub(r"[^\w]+", "-", text, flags=re.UNICODE)
    text = text.strip("-_").replace("_", "-")
    return text or "post"


def parse_list(value: object) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value if item is not None]
        return [item for item in items if item]
    value = str(value).strip()
    if value.startswith("[") and value.endswith("]"):
        inner = value[1:-1]
        items = [item.strip().strip("'\"") for item in inner.split(",")]
    elif "," in value:
        items = [item.strip() for item in value.split(",")]
    else:
        # Jekyll accepts space separated categories.
        items = value.split()
    return [item for item in items if item]


def parse_front_matter(text: str, path: Optional[Path] = None) -> tuple[dict, str]:
    """Split ``text`` into its YAML front-matter mapping and the body.

    Text that does not open with a ``---`` line has no front-matter and is
    returned whole as the body. An opened block that is never closed, is not
    valid YAML, or does not hold a mapping raises :class:`ParseError`.
    """
    clean_text = text.lstrip("\ufeff")
    lines = clean_text.splitlines(keepends=True)
    if not lines or lines[0].strip() != OPEN_DELIMITER:
        return {}, clean_text

    end = None
    for i in range(1, len(lines)):
        if lines[i].strip() in CLOSE_DELIMITERS:
            end = i
            break
    if end is None:
        raise ParseError("front-matter block is not terminated", path)

    block = "".join(lines[1:end])
    try:
        meta = yaml.safe_load(block)
    except yaml.YAMLError as exc:
        raise ParseError(f"invalid front-matter: {exc}", path) from exc
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        raise ParseError(
            f"front-matter must be a mapping, got {type(meta).__name__}", path
        )
    body = "".join(lines[end + 1 :])
    return meta, body


def dump_front_matter(meta: dict, body: str) -> str:
    block = yaml.safe_dump(
        dict(meta), sort_keys=False, allow_unicode=True, default_flow_style=False
    )
    return f"{OPEN_DELIMITER}\n{block}{OPEN_DELIMITER}\n{body}"


def parse_post_filename(name: str) -> tuple[Optional[dt.date], str]:
    stem = Path(name).stem
    match = POST_NAME_RE.match(stem)
    if not match:
        return None, stem
    try:
        date_value = dt.date(
            int(match.group("year")), int(match.group("month")), int(match.group("day"))
        )
    except ValueError:
        return None, stem
    return date_value, match.group("slug")


def coerce_datetime(value: object) -> Optional[dt.datetime]:
    if isinstance(value, dt.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(dt.timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, dt.date):
        return dt.datetime.combine(value, dt.time.min)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return coerce_datetime(dt.datetime.fromisoformat(text))
    except ValueError:
        pass
    for fmt in DATETIME_FORMATS:
        try:
            return coerce_datetime(dt.datetime.strptime(text, fmt))
        except ValueError:
            continue
    return None


def resolve_post_date(meta: dict, path: Path) -> Optional[dt.datetime]:
    """Front-matter ``date`` wins; the filename prefix is the fallback."""
    raw = meta.get("date")
    if raw is not None and raw != "":
        parsed = coerce_datetime(raw)
        if parsed is None:
            raise ParseError(f"unparseable date {raw!r}", path)
        return parsed
    file_date, _ = parse_post_filename(path.name)
    if file_date is None:
        return None
    return dt.datetime.combine(file_date, dt.time.min)


def get_taxonomy(meta: dict, key: str) -> list[str]:
    singular = key[:-3] + "y" if key.endswith("ies") else key[:-1]
    values = parse_list(meta.get(key))
    for item in parse_list(meta.get(singular)):
        if item not in values:
            values.append(item)
    return values


def extract_title(meta: dict, body: str, fallback: str = "Untitled") -> tuple[str, str]:
    if meta.get("title"):
        return str(meta["title"]), body
    lines = body.splitlines()
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("# "):
            title = stripped[2:].strip() or fallback
            new_body = "\n".join(lines[i + 1 :]).lstrip()
            return title, new_body
        if stripped:
            break
    return fallback, body


def title_from_slug(slug: str) -> str:
    words = [word for word in re.split(r"[-_]+", slug) if word]
    return " ".join(word[:1].upper() + word[1:] for word in words) or "Untitled"


def make_excerpt(body: str, separator: str) -> str:
    body = body.lstrip()
    if separator and separator in body:
        return body.split(separator, 1)[0]
    return body


def normalize_list_spacing(text: str) -> str:
    lines = text.splitlines()
    out: list[str] = []
    in_fence = False
    fence_marker = ""
    for line in lines:
        fence_match = FENCE_RE.match(line)
        if fence_match:
            marker = fence_match.group(2)
            if not in_fence:
                in_fence = True
                fence_marker = marker
            elif marker == fence_marker:
                in_fence = False
                fence_marker = ""
            out.append(line)
            continue
        if in_fence:
            out.append(line)
            continue
        quote_match = DOUBLE_QUOTE_RE.match(line)
        if quote_match:
            rest = quote_match.group("rest").lstrip()
            if rest:
                line = f'{quote_match.group("indent")}> {rest}'
            else:
                line = f'{quote_match.group("indent")}>'
        list_match = LIST_MARKER_RE.match(line)
        if list_match:
            if not list_match.group("indent"):
                if out and out[-1].strip() and not LIST_MARKER_RE.match(out[-1]):
                    out.append("")
        out.append(line)
    return "\n".join(out)


def count_words(text: str) -> int:
    text = html_lib.unescape(text)
    cjk_count = len(CJK_RE.findall(text))
    text = CJK_RE.sub(" ", text)
    word_count = len(WORD_RE.findall(text))
    return cjk_count + word_count
