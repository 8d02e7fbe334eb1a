"""Terminal output — startup banner and per-generation summaries.

Everything goes to stderr.  Detects ``NO_COLOR`` / ``TERM`` for safe
fallback.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from pathlib import Path

    from kiln._types import KilnMode
    from kiln.build.scheduler import GenerationResult
    from kiln.config import KilnConfig


# ---------------------------------------------------------------------------
# ANSI helpers: respect NO_COLOR (https://no-color.org)
# ---------------------------------------------------------------------------

def _supports_color() -> bool:
    """Return True if the terminal supports ANSI colors."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


_COLOR = _supports_color()

_RESET = "\033[0m" if _COLOR else ""
_BOLD = "\033[1m" if _COLOR else ""
_DIM = "\033[2m" if _COLOR else ""
_CYAN = "\033[36m" if _COLOR else ""
_GREEN = "\033[32m" if _COLOR else ""
_YELLOW = "\033[33m" if _COLOR else ""
_RED = "\033[31m" if _COLOR else ""

_MODE_STYLES: dict[str, tuple[str, str]] = {
    "build": (_YELLOW, "build"),
    "watch": (_GREEN, "watch"),
    "serve": (_CYAN, "serve"),
}


def _mode_badge(mode: str) -> str:
    color, label = _MODE_STYLES.get(mode, (_DIM, mode))
    return f"{color}[{label}]{_RESET}"


def _clickable_url(url: str) -> str:
    """Wrap *url* in an OSC 8 hyperlink escape if the terminal supports it."""
    if not _COLOR:
        return url
    return f"\033]8;;{url}\033\\{_BOLD}{_CYAN}{url}{_RESET}\033]8;;\033\\"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def print_banner(
    root: Path,
    config: KilnConfig | None,
    mode: KilnMode,
    *,
    stream: TextIO | None = None,
) -> None:
    """Print the kiln startup banner.

    Args:
        root: Site root as given on the command line.
        config: Loaded config, or None if it failed to load (the first
            generation reports why).
        mode: One of ``"build"``, ``"watch"``, ``"serve"``.
        stream: Output stream; stderr by default.

    """
    from kiln import __version__

    lines: list[str] = [
        "",
        f"  {_BOLD}kiln{_RESET} {_DIM}v{__version__}{_RESET}  {_mode_badge(mode)}",
        f"  {_DIM}{'─' * 43}{_RESET}",
        f"  {_DIM}├─{_RESET} root: {_DIM}{root}{_RESET}",
    ]
    if config is not None:
        if config.config_file is not None:
            lines.append(f"  {_DIM}├─{_RESET} config: {_DIM}{config.config_file.name}{_RESET}")
        lines.append(f"  {_DIM}└─{_RESET} output: {_DIM}{config.output_path}{_RESET}")
        if mode == "serve":
            lines.append("")
            lines.append(f"  {_clickable_url(f'http://{config.host}:{config.port}')}")
    if mode in ("watch", "serve"):
        lines.append("")
        lines.append(f"  {_DIM}Watching for changes...{_RESET}")
    lines.append("")

    print("\n".join(lines), file=stream or sys.stderr)


def format_generation(result: GenerationResult) -> str:
    """One summary line plus one line per diagnostic."""
    if result.fatal is not None:
        lines = [
            f"  {_RED}✗{_RESET} generation {result.generation} failed: {result.fatal}",
        ]
        return "\n".join(lines)

    mark = f"{_GREEN}✓{_RESET}" if result.ok else f"{_YELLOW}!{_RESET}"
    kind = "full" if result.full else "incremental"
    parts = [
        _plural(len(result.processed), "node") + " built",
        _plural(len(result.cache_hits), "cache hit"),
        _plural(len(result.written), "file") + " written",
    ]
    if result.removed:
        parts.append(f"{len(result.removed)} removed")
    lines = [
        f"  {mark} generation {result.generation} {_DIM}({kind}){_RESET}: "
        f"{', '.join(parts)} {_DIM}in {result.duration_ms:.0f}ms{_RESET}",
    ]
    lines.extend(
        f"    {_YELLOW}{d.stage}{_RESET} {d}" for d in result.diagnostics
    )
    return "\n".join(lines)


def print_generation(result: GenerationResult, *, stream: TextIO | None = None) -> None:
    """Print the summary of one generation."""
    print(format_generation(result), file=stream or sys.stderr)
