from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .build import BuildOptions, BuildReport, build_site
from .config import DEFAULT_CONFIG_NAME
from .errors import BuildFailed, PostpressError
from .server import make_server, serve


def report_errors(errors: Sequence[PostpressError]) -> None:
    for error in errors:
        print(f"error: {error}", file=sys.stderr)
    count = len(errors)
    noun = "error" if count == 1 else "errors"
    print(f"Build failed: {count} {noun}.", file=sys.stderr)


def run_build(args: argparse.Namespace) -> Optional[BuildReport]:
    options = BuildOptions(
        site_root=Path(args.source),
        config_path=Path(args.config),
        destination=Path(args.destination) if args.destination else None,
        drafts=args.drafts,
        workers=args.workers,
        use_cache=args.cache,
        strict_assets=args.strict_assets,
    )
    try:
        report = build_site(options)
    except BuildFailed as exc:
        report_errors(exc.errors)
        return None
    except PostpressError as exc:
        report_errors([exc])
        return None
    for warning in report.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    print(
        f"Built {report.posts} posts, {report.pages} pages and {report.static_files} static files "
        f"in {report.elapsed:.2f}s ({report.cache_hits} cached)."
    )
    print(f"Site generated in: {report.output_dir}")
    return report


def cmd_build(args: argparse.Namespace) -> int:
    return 0 if run_build(args) is not None else 1


def cmd_serve(args: argparse.Namespace) -> int:
    report = run_build(args)
    if report is None:
        return 1
    try:
        server = make_server(report.output_dir, args.host, args.port)
    except OSError as exc:
        print(f"error: cannot bind {args.host}:{args.port}: {exc}", file=sys.stderr)
        return 1
    serve(server, report.output_dir)
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-s", "--source", default=".", help="Site source directory.")
    common.add_argument(
        "-c",
        "--config",
        default=DEFAULT_CONFIG_NAME,
        help="Site config file (YAML/TOML/JSON), relative to the source directory.",
    )
    common.add_argument("-d", "--destination", default="", help="Output directory (default from config or _site).")
    common.add_argument("--drafts", action="store_true", help="Render posts from _drafts too.")
    common.add_argument(
        "--workers",
        default=0,
        type=int,
        help="Number of worker threads for parsing/rendering (0 = auto).",
    )
    common.add_argument(
        "--cache",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Reuse rendered fragments of unchanged posts.",
    )
    common.add_argument(
        "--strict-assets",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Treat missing images as fatal errors.",
    )
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")

    parser = argparse.ArgumentParser(prog="postpress", description="Static blog generator.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_cmd = subparsers.add_parser("build", parents=[common], help="Build the site.")
    build_cmd.set_defaults(func=cmd_build)

    serve_cmd = subparsers.add_parser("serve", parents=[common], help="Build, then preview over HTTP.")
    serve_cmd.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_cmd.add_argument("-P", "--port", default=4000, type=int, help="Port to bind.")
    serve_cmd.set_defaults(func=cmd_serve)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)
