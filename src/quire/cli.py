from __future__ import annotations

import argparse
import math
import os
import socket
import sys
import tomllib
from importlib import metadata
from pathlib import Path

import uvicorn
from rich.console import Console
from rich.table import Table

from .layout import TextMeasurer, Viewport
from .logging_utils import build_uvicorn_log_config, set_debug_logging
from .normalize import ReaderSettings
from .session import ReadingSession
from .web import WebConfig, create_app


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover - defensive
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("quire")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"quire {__version__}",
    )


def _add_common_flags(parser: argparse.ArgumentParser) -> None:
    _add_version_flag(parser)
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Print debug logging to stderr.",
    )


def _metric(value: str) -> float:
    number = float(value)
    if not math.isfinite(number) or number < 0:
        raise argparse.ArgumentTypeError(f"expected a finite, non-negative number, got {value!r}")
    return number


def _add_layout_flags(parser: argparse.ArgumentParser) -> None:
    defaults = Viewport()
    parser.add_argument("--width", type=_metric, default=defaults.width, help="Viewport width in px.")
    parser.add_argument("--height", type=_metric, default=defaults.height, help="Viewport height in px.")
    parser.add_argument("--font-size", type=_metric, default=defaults.font_size, help="Font size in px.")
    parser.add_argument(
        "--line-height",
        type=_metric,
        default=defaults.line_height,
        help="Line height as a multiple of the font size.",
    )
    parser.add_argument("--columns", type=int, default=defaults.columns, help="Number of text columns.")
    parser.add_argument(
        "--no-dialogue",
        action="store_true",
        help="Do not split long dialogue paragraphs.",
    )
    parser.add_argument(
        "--no-quotes",
        action="store_true",
        help="Keep single-quoted dialogue as is instead of switching it to double quotes.",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Paginated reader for EPUB, TXT and Markdown books. Use `quire web` to serve a library.",
    )
    _add_common_flags(ap)
    ap.add_argument("book", help="Path to an .epub, .txt or .md file")
    ap.add_argument("-p", "--page", type=int, default=1, help="Page to print (default: 1).")
    _add_layout_flags(ap)
    return ap


def build_pages_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="List the pages of a book with their opening words.")
    _add_common_flags(ap)
    ap.add_argument("book", help="Path to an .epub, .txt or .md file")
    _add_layout_flags(ap)
    return ap


def build_find_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Print the first page containing a passage.")
    _add_common_flags(ap)
    ap.add_argument("book", help="Path to an .epub, .txt or .md file")
    ap.add_argument("text", help="Passage to look for (case and whitespace insensitive)")
    _add_layout_flags(ap)
    return ap


def build_web_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Serve a book library through the reader API.")
    _add_common_flags(ap)
    ap.add_argument(
        "root",
        nargs="?",
        default=os.environ.get("QUIRE_ROOT"),
        help="Library directory (one subdirectory per author). Defaults to $QUIRE_ROOT.",
    )
    ap.add_argument(
        "--host",
        default="0.0.0.0",
        help="Host interface for the web server (default: 0.0.0.0).",
    )
    ap.add_argument(
        "--port",
        type=int,
        default=2047,
        help="Port for the web server (default: 2047).",
    )
    ap.add_argument("--width", type=_metric, default=Viewport().width, help="Default viewport width in px.")
    ap.add_argument("--height", type=_metric, default=Viewport().height, help="Default viewport height in px.")
    return ap


def _viewport_from_args(args: argparse.Namespace) -> Viewport:
    return Viewport().with_changes(
        width=args.width,
        height=args.height,
        font_size=args.font_size,
        line_height=args.line_height,
        columns=args.columns,
    )


def _open_session(args: argparse.Namespace, console: Console) -> ReadingSession | None:
    path = Path(args.book).expanduser()
    if not path.exists():
        raise FileNotFoundError(f"Book not found: {path}")
    session = ReadingSession(
        viewport=_viewport_from_args(args),
        measurer=TextMeasurer(),
        settings=ReaderSettings(
            dialogue_mode=not args.no_dialogue,
            quote_normalize=not args.no_quotes,
        ),
    )
    if not session.load_path(path.resolve()):
        console.print(f"[red]{session.status}[/red]")
        return None
    return session


def _run_read(args: argparse.Namespace, console: Console) -> int:
    session = _open_session(args, console)
    if session is None:
        return 1
    session.go_to_page(args.page)
    page = session.result.page()
    for block in page.blocks:
        console.print(block.text, markup=False, highlight=False)
        console.print()
    console.print(f"[dim]{page.index}/{session.total_pages}[/dim]")
    return 0


def _opening_words(text: str, limit: int = 8) -> str:
    words = text.split()
    head = " ".join(words[:limit])
    return head + (" …" if len(words) > limit else "")


def _run_pages(args: argparse.Namespace, console: Console) -> int:
    session = _open_session(args, console)
    if session is None:
        return 1
    table = Table(title=session.title or None)
    table.add_column("Page", justify="right")
    table.add_column("Blocks", justify="right")
    table.add_column("Opens with")
    for page in session.result.pages:
        table.add_row(str(page.index), str(len(page.blocks)), _opening_words(page.text))
    console.print(table)
    return 0


def _run_find(args: argparse.Namespace, console: Console) -> int:
    session = _open_session(args, console)
    if session is None:
        return 1
    page = session.find_page(args.text)
    if page is None:
        console.print("[yellow]Text not found.[/yellow]")
        return 1
    console.print(f"Page {page}/{session.total_pages}")
    return 0


def _resolve_local_ip(host: str) -> str:
    if host not in {"", "0.0.0.0"}:
        return host
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "127.0.0.1"


def _run_web(args: argparse.Namespace) -> int:
    if not args.root:
        raise SystemExit("Library root is required (pass ROOT or set QUIRE_ROOT).")
    root = Path(args.root).expanduser().resolve()
    config = WebConfig(
        root=root,
        viewport=Viewport(width=args.width, height=args.height),
    )
    app = create_app(config)
    url = f"http://{_resolve_local_ip(args.host)}:{args.port}/"
    print(f"Serving quire library from {root}")
    print(f"Web URL: {url}")
    print("Press Ctrl+C to stop.\n")
    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        log_level="debug" if args.debug else "info",
        log_config=build_uvicorn_log_config(),
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    console = Console()
    if argv and argv[0] == "web":
        args = build_web_parser().parse_args(argv[1:])
        set_debug_logging(args.debug)
        return _run_web(args)
    if argv and argv[0] == "pages":
        args = build_pages_parser().parse_args(argv[1:])
        set_debug_logging(args.debug)
        return _run_pages(args, console)
    if argv and argv[0] == "find":
        args = build_find_parser().parse_args(argv[1:])
        set_debug_logging(args.debug)
        return _run_find(args, console)

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    set_debug_logging(args.debug)
    return _run_read(args, console)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
