"""Tests for the posts collection: loading, ordering and queries."""

from __future__ import annotations

import datetime as dt
import itertools
from pathlib import Path

import pytest

from folio.collection import (
    discover_pages,
    find_post,
    group_by,
    load_post,
    load_posts,
    neighbours,
    sort_posts,
    take,
)
from folio.config import DEFAULTS
from folio.content import ParseError

from tests.conftest import post_text, write


def config(**overrides: object) -> dict:
    values = dict(DEFAULTS)
    values.update(overrides)
    return values


def record(slug: str, day: int, month: int = 1) -> dict:
    return {"slug": slug, "date": dt.datetime(2025, month, day), "url": f"/{slug}.html"}


class TestLoadPost:
    def test_record_fields(self, tmp_path: Path) -> None:
        path = write(
            tmp_path,
            "2025-11-19-building-etl-pipelines-with-dbt-postgresql.md",
            "---\nlayout: post\ntitle: Building ETL Pipelines\ndate: 2025-11-19\n"
            "categories: [data]\ntags: [dbt, postgresql]\n---\nBody\n",
        )
        post = load_post(path)
        assert post["title"] == "Building ETL Pipelines"
        assert post["date"] == dt.datetime(2025, 11, 19)
        assert post["slug"] == "building-etl-pipelines-with-dbt-postgresql"
        assert post["categories"] == ["data"]
        assert post["tags"] == ["dbt", "postgresql"]
        assert post["layout"] == "post"
        assert post["body"] == "Body\n"

    def test_defaults_from_filename(self, tmp_path: Path) -> None:
        path = write(tmp_path, "2024-05-06-hello-world.md", "Just text.\n")
        post = load_post(path)
        assert post["title"] == "Hello World"
        assert post["date"] == dt.datetime(2024, 5, 6)
        assert post["layout"] == "post"

    def test_explicit_slug(self, tmp_path: Path) -> None:
        path = write(tmp_path, "2024-05-06-hello.md", "---\nslug: Custom Slug\n---\n")
        assert load_post(path)["slug"] == "custom-slug"


class TestLoadPosts:
    def test_sorted_newest_first(self, tmp_path: Path) -> None:
        for day in (3, 1, 5, 2, 4):
            write(tmp_path, f"2025-01-0{day}-post-{day}.md", post_text(f"Post {day}"))
        posts = load_posts(tmp_path, config())
        dates = [post["date"] for post in posts]
        assert dates == sorted(dates, reverse=True)
        assert all(a > b for a, b in zip(dates, dates[1:]))

    def test_equal_dates_keep_encounter_order(self, tmp_path: Path) -> None:
        write(tmp_path, "2025-01-01-alpha.md", post_text("Alpha"))
        write(tmp_path, "2025-01-01-beta.md", post_text("Beta"))
        write(tmp_path, "2025-01-01-gamma.md", post_text("Gamma"))
        write(tmp_path, "2025-01-02-newest.md", post_text("Newest"))
        posts = load_posts(tmp_path, config())
        assert [post["slug"] for post in posts] == ["newest", "alpha", "beta", "gamma"]

    def test_malformed_post_aborts_by_default(self, tmp_path: Path) -> None:
        write(tmp_path, "2025-01-01-good.md", post_text("Good"))
        write(tmp_path, "2025-01-02-bad.md", "---\ntitle: Bad\nno closing delimiter\n")
        with pytest.raises(ParseError) as exc_info:
            load_posts(tmp_path, config())
        assert exc_info.value.path.name == "2025-01-02-bad.md"

    def test_malformed_post_skipped_when_configured(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        write(tmp_path, "2025-01-01-good.md", post_text("Good"))
        write(tmp_path, "2025-01-02-bad.md", "---\ntitle: [broken\n---\n")
        posts = load_posts(tmp_path, config(on_error="skip"))
        assert [post["slug"] for post in posts] == ["good"]
        assert "Skipping" in capsys.readouterr().err

    def test_drafts_are_hidden_unless_requested(self, tmp_path: Path) -> None:
        write(tmp_path, "2025-01-01-live.md", post_text("Live"))
        write(tmp_path, "2025-01-02-draft.md", post_text("Draft", draft="true"))
        write(tmp_path, "2025-01-03-hidden.md", post_text("Hidden", published="false"))
        assert [p["slug"] for p in load_posts(tmp_path, config())] == ["live"]
        shown = load_posts(tmp_path, config(show_drafts=True))
        assert [p["slug"] for p in shown] == ["hidden", "draft", "live"]

    def test_undated_post_is_left_out(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        write(tmp_path, "2025-01-01-dated.md", post_text("Dated"))
        write(tmp_path, "undated.md", post_text("Undated"))
        posts = load_posts(tmp_path, config())
        assert [post["slug"] for post in posts] == ["dated"]
        assert "no date" in capsys.readouterr().err

    def test_undated_post_fails_with_strict_dates(self, tmp_path: Path) -> None:
        write(tmp_path, "undated.md", post_text("Undated"))
        with pytest.raises(ParseError, match="no date"):
            load_posts(tmp_path, config(strict_dates=True))

    def test_undecodable_post_aborts_by_default(self, tmp_path: Path) -> None:
        write(tmp_path, "2025-01-01-good.md", post_text("Good"))
        (tmp_path / "2025-01-02-binary.md").write_bytes(b"---\ntitle: Bin\n---\n\xff\xfe body\n")
        with pytest.raises(ParseError, match="not valid UTF-8") as exc_info:
            load_posts(tmp_path, config())
        assert exc_info.value.path.name == "2025-01-02-binary.md"

    def test_undecodable_post_skipped_when_configured(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        write(tmp_path, "2025-01-01-good.md", post_text("Good"))
        (tmp_path / "2025-01-02-binary.md").write_bytes(b"---\ntitle: Bin\n---\n\xff\xfe body\n")
        posts = load_posts(tmp_path, config(on_error="skip"))
        assert [post["slug"] for post in posts] == ["good"]
        assert "2025-01-02-binary.md" in capsys.readouterr().err

    def test_missing_directory_is_empty(self, tmp_path: Path) -> None:
        assert load_posts(tmp_path / "missing", config()) == []


class TestQueries:
    def test_sort_posts_is_stable(self) -> None:
        posts = [record("a", 1), record("b", 2), record("c", 1), record("d", 2)]
        assert [p["slug"] for p in sort_posts(posts)] == ["b", "d", "a", "c"]

    def test_limit_five_of_eight_gives_most_recent(self) -> None:
        posts = sort_posts(record(f"p{day}", day) for day in range(1, 9))
        limited = list(take(posts, 5))
        assert len(limited) == 5
        assert [p["slug"] for p in limited] == ["p8", "p7", "p6", "p5", "p4"]

    def test_take_is_lazy(self) -> None:
        assert list(take(itertools.count(), 3)) == [0, 1, 2]
        assert list(take(itertools.count(), 2, offset=5)) == [5, 6]

    def test_take_without_limit_returns_everything(self) -> None:
        assert list(take([1, 2, 3])) == [1, 2, 3]

    def test_take_rejects_negative_limit(self) -> None:
        with pytest.raises(ValueError):
            take([1], -1)

    def test_find_post_by_slug_or_url(self) -> None:
        posts = [record("first", 1), record("second", 2)]
        assert find_post(posts, "second") is posts[1]
        assert find_post(posts, "/first.html") is posts[0]
        assert find_post(posts, "missing") is None

    def test_group_by_keeps_collection_order(self) -> None:
        posts = [
            {"slug": "a", "categories": ["x", "y"]},
            {"slug": "b", "categories": ["y"]},
            {"slug": "c", "categories": []},
        ]
        groups = group_by(posts, "categories")
        assert list(groups) == ["x", "y"]
        assert [p["slug"] for p in groups["y"]] == ["a", "b"]

    def test_neighbours(self) -> None:
        posts = sort_posts([record("old", 1), record("mid", 2), record("new", 3)])
        older, newer = neighbours(posts, posts[1])
        assert older["slug"] == "old"
        assert newer["slug"] == "new"
        assert neighbours(posts, posts[0]) == (posts[1], None)


class TestDiscoverPages:
    def test_splits_pages_from_static_files(self, tmp_path: Path) -> None:
        write(tmp_path, "about.md", "---\ntitle: About\n---\nHi\n")
        write(tmp_path, "docs/guide.html", "---\nlayout: page\n---\n<p>Guide</p>\n")
        write(tmp_path, "notes.md", "No front-matter here.\n")
        write(tmp_path, "css/site.css", "body {}\n")
        write(tmp_path, "_drafts/idea.md", "---\ntitle: Idea\n---\n")
        write(tmp_path, "_site/old.html", "---\ntitle: Old\n---\n")
        write(tmp_path, "vendor/lib.js", "//\n")
        pages, static_files = discover_pages(tmp_path, config(exclude=["vendor"]))
        assert [page["path"] for page in pages] == ["about.md", "docs/guide.html"]
        assert pages[1]["title"] == "Guide"
        rel_static = [path.relative_to(tmp_path).as_posix() for path in static_files]
        assert rel_static == ["css/site.css", "notes.md"]

    def test_page_keeps_front_matter_date(self, tmp_path: Path) -> None:
        write(tmp_path, "dated.md", "---\ndate: 2024-06-01\n---\nx\n")
        write(tmp_path, "plain.md", "---\ntitle: Plain\n---\nx\n")
        pages, _ = discover_pages(tmp_path, config())
        assert [page["date"] for page in pages] == [dt.datetime(2024, 6, 1), None]

    def test_undecodable_page_skipped_when_configured(self, tmp_path: Path) -> None:
        (tmp_path / "bad.md").write_bytes(b"---\ntitle: Bad\n---\n\xff\n")
        write(tmp_path, "good.md", "---\ntitle: Good\n---\nx\n")
        pages, _ = discover_pages(tmp_path, config(on_error="skip"))
        assert [page["path"] for page in pages] == ["good.md"]

    def test_malformed_page_aborts(self, tmp_path: Path) -> None:
        write(tmp_path, "about.md", "---\ntitle: About\n")
        with pytest.raises(ParseError):
            discover_pages(tmp_path, config())
