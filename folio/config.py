from __future__ import annotations

import json
import sys
import tomllib
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

import yaml

from .utils import parse_bool, parse_int

CONFIG_NAMES = ("_config.yml", "_config.yaml", "_config.toml", "_config.json")
ON_ERROR_CHOICES = ("abort", "skip")

DEFAULTS: dict = {
    "title": "My Blog",
    "author": "",
    "description": "",
    "url": "",
    "baseurl": "",
    "theme": "",
    "platform": "jekyll",
    "posts_dir": "_posts",
    "layouts_dir": "_layouts",
    "includes_dir": "_includes",
    "destination": "_site",
    "paginate": 5,
    "feed_limit": 20,
    "excerpt_separator": "\n\n",
    "on_error": "abort",
    "show_drafts": False,
    "strict_dates": False,
    "toc_depth": "2-4",
    "write_nojekyll": True,
    "custom_domain": "",
    "exclude": [],
}

BOOL_KEYS = {"show_drafts", "strict_dates", "write_nojekyll"}
INT_KEYS = {"paginate", "feed_limit"}


def load_config(path: Path) -> dict:
    if not path.exists():
        return {}
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    if suffix == ".toml":
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            print(f"Invalid TOML in config file {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        return data
    if suffix in {".yml", ".yaml"}:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            print(f"Invalid YAML in config file {path}: {exc}", file=sys.stderr)
            sys.exit(1)
        if data is None:
            return {}
        if not isinstance(data, dict):
            print(f"YAML config must be a mapping: {path}", file=sys.stderr)
            sys.exit(1)
        return data
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        print(f"Invalid JSON in config file {path}: {exc}", file=sys.stderr)
        sys.exit(1)
    if not isinstance(data, dict):
        print(f"JSON config must be an object: {path}", file=sys.stderr)
        sys.exit(1)
    return data


def find_config(source_dir: Path) -> Optional[Path]:
    for name in CONFIG_NAMES:
        candidate = source_dir / name
        if candidate.exists():
            return candidate
    return None


def resolve_config(
    source_dir: Path,
    config_path: Optional[Path] = None,
    overrides: Optional[Mapping] = None,
) -> Mapping:
    """Merge defaults, the config file and CLI overrides into a read-only mapping.

    Later sources win; ``None`` values in ``overrides`` are ignored so that
    unset CLI flags fall through to the file.
    """
    if config_path is None:
        config_path = find_config(source_dir)
    elif not config_path.is_absolute():
        config_path = source_dir / config_path
    file_values = load_config(config_path) if config_path is not None else {}

    merged = dict(DEFAULTS)
    merged.update(file_values)
    for key, value in (overrides or {}).items():
        if value is not None:
            merged[key] = value

    for key in BOOL_KEYS:
        merged[key] = parse_bool(merged.get(key))
    for key in INT_KEYS:
        merged[key] = parse_int(merged.get(key), DEFAULTS[key])
    merged["platform"] = str(merged.get("platform") or DEFAULTS["platform"]).strip().lower()
    baseurl = str(merged.get("baseurl") or "").strip("/")
    merged["baseurl"] = f"/{baseurl}" if baseurl else ""
    merged["url"] = str(merged.get("url") or "").rstrip("/")
    if not merged["url"] and merged.get("custom_domain"):
        merged["url"] = f"https://{str(merged['custom_domain']).strip()}"
    if merged.get("on_error") not in ON_ERROR_CHOICES:
        print(
            f"on_error must be one of {', '.join(ON_ERROR_CHOICES)}, got {merged.get('on_error')!r}",
            file=sys.stderr,
        )
        sys.exit(1)

    merged["source"] = str(source_dir)
    merged["config_file"] = str(config_path) if config_path is not None else ""
    return MappingProxyType(merged)
