from __future__ import annotations

import datetime as dt
import shutil
import sys
import tempfile
from email.utils import format_datetime
from pathlib import Path

TRUE_STRINGS = {"1", "true", "yes", "y", "on"}


def parse_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS
    if isinstance(value, (bool, int, float)):
        return bool(value)
    return False


def parse_int(value: object, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def join_url(base: str, path: str) -> str:
    path = path.lstrip("/")
    return f"{base.rstrip('/')}/{path}" if path else base.rstrip("/")


def as_utc(value: dt.date) -> dt.datetime:
    """Naive datetimes are taken to be UTC already; aware ones are converted."""
    if not isinstance(value, dt.datetime):
        value = dt.datetime.combine(value, dt.time.min)
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def rfc822_date(value: dt.date) -> str:
    return format_datetime(as_utc(value))


def iso_date(value: dt.date) -> str:
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def check_destination(output_dir: Path, source_dir: Path) -> None:
    output_resolved = output_dir.resolve()
    source_resolved = source_dir.resolve()
    if output_resolved == source_resolved or source_resolved.is_relative_to(output_resolved):
        print("Refusing to clean the source directory.", file=sys.stderr)
        sys.exit(1)
    if not output_resolved.is_relative_to(source_resolved):
        print("Refusing to clean destination outside the source directory.", file=sys.stderr)
        sys.exit(1)


def clean_output_dir(output_dir: Path, source_dir: Path) -> None:
    if not output_dir.exists():
        return
    check_destination(output_dir, source_dir)
    shutil.rmtree(output_dir)


def make_staging_dir(output_dir: Path) -> Path:
    """Create an empty directory next to ``output_dir`` to build into."""
    output_dir.parent.mkdir(parents=True, exist_ok=True)
    return Path(tempfile.mkdtemp(prefix=f".{output_dir.name}-", dir=output_dir.parent))


def publish_output(staging_dir: Path, output_dir: Path, source_dir: Path, clean: bool) -> None:
    """Move a finished build into place.

    With ``clean`` the old tree is replaced; otherwise new files are laid
    over it and stale files are left alone.
    """
    if clean:
        clean_output_dir(output_dir, source_dir)
    if not output_dir.exists():
        staging_dir.rename(output_dir)
        return
    shutil.copytree(staging_dir, output_dir, dirs_exist_ok=True)
    shutil.rmtree(staging_dir)
