from __future__ import annotations

import argparse
import functools
import shutil
import sys
import time
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Mapping, Optional

from .collection import discover_pages, load_posts
from .config import ON_ERROR_CHOICES, resolve_config
from .content import ParseError
from .pages import (
    assign_urls,
    build_atom,
    build_index,
    build_pages,
    build_posts,
    build_rss,
    build_site_payload,
    build_sitemap,
    build_taxonomies,
    load_layouts,
    render_body,
    taxonomy_urls,
)
from .platform import PLATFORMS, get_platform
from .render import copy_static, write_pygments_css
from .template import TemplateError, make_environment
from .utils import make_staging_dir, publish_output


def resolve_destination(config: Mapping) -> Path:
    source_dir = Path(config["source"])
    destination = Path(str(config["destination"]))
    if not destination.is_absolute():
        destination = source_dir / destination
    return destination


def build_site(config: Mapping, clean: bool = True) -> dict:
    """Run one build of the site described by ``config``.

    Returns counts of what was written. ``ParseError`` and ``TemplateError``
    propagate to the caller.
    """
    source_dir = Path(config["source"])
    output_dir = resolve_destination(config)
    if not source_dir.is_dir():
        print(f"Source directory not found: {source_dir}", file=sys.stderr)
        sys.exit(1)

    platform = get_platform(config)
    posts = load_posts(source_dir / str(config["posts_dir"]), config)
    pages, static_files = discover_pages(source_dir, config)
    assign_urls(posts + pages, platform)

    env = make_environment(config, source_dir / str(config["includes_dir"]))
    layouts = load_layouts(source_dir / str(config["layouts_dir"]))
    site = build_site_payload(config, posts, pages)

    for record in posts + pages:
        render_body(record, site, env, config)
    taxonomy_map = taxonomy_urls(site, platform)

    # Everything is written to a staging directory first so that a failed
    # build leaves the previous output untouched.
    staging_dir = make_staging_dir(output_dir)
    try:
        copy_static(static_files, source_dir, staging_dir)
        write_pygments_css(staging_dir)
        build_posts(posts, site, env, layouts, platform, staging_dir)
        build_pages(pages, site, env, layouts, platform, staging_dir)
        total_pages = build_index(
            pages, site, env, layouts, platform, staging_dir, int(config["paginate"])
        )
        build_taxonomies(site, env, layouts, platform, staging_dir, taxonomy_map)
        build_rss(staging_dir, site, int(config["feed_limit"]))
        build_atom(staging_dir, site, int(config["feed_limit"]))
        build_sitemap(staging_dir, site, platform, total_pages, taxonomy_map)
        platform.finalize(site, staging_dir)
        publish_output(staging_dir, output_dir, source_dir, clean)
    finally:
        if staging_dir.exists():
            shutil.rmtree(staging_dir)

    return {
        "posts": len(posts),
        "pages": len(pages),
        "static": len(static_files),
        "listing_pages": total_pages,
    }


def run_build(config: Mapping, clean: bool) -> bool:
    start = time.perf_counter()
    try:
        stats = build_site(config, clean=clean)
    except (ParseError, TemplateError, ValueError) as exc:
        print(f"Build failed: {exc}", file=sys.stderr)
        return False
    elapsed = time.perf_counter() - start
    print(
        f"Built {stats['posts']} posts and {stats['pages']} pages "
        f"({config['platform']}) in {elapsed:.2f}s."
    )
    print(f"Site generated in: {resolve_destination(config)}")
    return True


def serve(directory: Path, host: str, port: int) -> None:
    handler = functools.partial(SimpleHTTPRequestHandler, directory=str(directory))
    with ThreadingHTTPServer((host, port), handler) as httpd:
        print(f"Serving {directory} at http://{host}:{port}/ (Ctrl+C to stop)")
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            print("Server stopped.")


def add_build_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--source", "-s", default=".", help="Site source directory.")
    parser.add_argument("--destination", "-d", default=None, help="Output directory.")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to site config file (YAML/TOML/JSON). Defaults to _config.yml in the source.",
    )
    parser.add_argument(
        "--platform",
        choices=sorted(PLATFORMS),
        default=None,
        help="Deployment variant to render for.",
    )
    parser.add_argument(
        "--drafts",
        action="store_true",
        default=None,
        help="Include posts marked draft or unpublished.",
    )
    parser.add_argument(
        "--on-error",
        choices=ON_ERROR_CHOICES,
        default=None,
        help="Abort the build on the first bad file, or skip it.",
    )
    parser.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Clean the output directory before the build.",
    )


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Static site generator for Markdown blogs.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Build the site.")
    add_build_arguments(build_parser)

    serve_parser = subparsers.add_parser("serve", help="Build the site and serve it locally.")
    add_build_arguments(serve_parser)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Address to bind.")
    serve_parser.add_argument("--port", "-P", type=int, default=4000, help="Port to listen on.")

    args = parser.parse_args(argv)
    source_dir = Path(args.source).resolve()
    config = resolve_config(
        source_dir,
        Path(args.config).resolve() if args.config else None,
        {
            "destination": args.destination,
            "platform": args.platform,
            "show_drafts": args.drafts,
            "on_error": args.on_error,
        },
    )

    if not run_build(config, args.clean):
        sys.exit(1)
    if args.command == "serve":
        serve(resolve_destination(config), args.host, args.port)
