"""Kiln CLI — kiln build / kiln watch / kiln serve.

Entry point for the ``kiln`` command-line interface.
"""

from __future__ import annotations

import argparse
import sys


def _add_site_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("root", nargs="?", default=".", help="Site root directory")
    parser.add_argument("--output", default=None, help="Output directory")
    parser.add_argument("--base-url", default=None, help="Base URL for sitemap generation")
    parser.add_argument(
        "--fingerprint", action="store_true", default=None,
        help="Fingerprint stylesheet and script URLs",
    )
    parser.add_argument(
        "--no-minify", dest="minify", action="store_false", default=None,
        help="Keep whitespace in generated HTML",
    )
    parser.add_argument(
        "--workers", type=int, default=None, help="Worker threads (0=auto)",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print errors")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the kiln CLI."""
    parser = argparse.ArgumentParser(
        prog="kiln",
        description="Incremental content build engine.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    build_parser = subparsers.add_parser("build", help="Build the site once")
    _add_site_arguments(build_parser)

    watch_parser = subparsers.add_parser(
        "watch", help="Build, then rebuild incrementally on every change",
    )
    _add_site_arguments(watch_parser)

    serve_parser = subparsers.add_parser(
        "serve", help="Watch and serve the output with live reload",
    )
    _add_site_arguments(serve_parser)
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")

    return parser


def _get_version() -> str:
    from kiln import __version__

    return __version__


def _overrides(args: argparse.Namespace) -> dict[str, object]:
    names = ("output", "base_url", "fingerprint", "minify", "workers", "host", "port")
    return {name: getattr(args, name, None) for name in names}


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from kiln._errors import KilnError
    from kiln.app import build, serve, watch

    overrides = _overrides(args)
    try:
        if args.command == "build":
            result = build(root=args.root, quiet=args.quiet, **overrides)
            sys.exit(result.exit_code)
        elif args.command == "watch":
            watch(root=args.root, quiet=args.quiet, **overrides)
        elif args.command == "serve":
            serve(root=args.root, quiet=args.quiet, **overrides)
    except KilnError as exc:
        print(f"  kiln: {exc}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
