"""Command-line front door for contextui.

Parses CLI options, resolves the target path, and renders one preview
through the same asynchronous pipeline the interactive pane uses.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from dataclasses import replace
from pathlib import Path

from .ansi import SGR_RESET, clip_ansi_line, strip_ansi
from .git import GitChange, load_changes, resolve_repo_root
from .runtime.config import load_preview_settings
from .runtime.controller import PreviewController
from .runtime.log import configure_logging, resolve_level
from .runtime.loop import run_event_loop
from .runtime.state import PreviewState, ViewMode
from .runtime.tasks import Task, TaskScheduler
from .runtime.watch import FilesystemWatcher
from .terminal import TerminalController, detect_capabilities

logger = logging.getLogger(__name__)

CLEAR_SCREEN = "\x1b[2J\x1b[H"
OVERLAY_EXIT_KEYS = {b"\x1b", b"q"}


def _positive_int(value: str) -> int:
    """argparse type for positive integer values."""
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer value: {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("value must be >= 1")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contextui",
        description="Preview a file, its git diff, or an image in the terminal.",
    )
    parser.add_argument("path", nargs="?", default=None, help="File or directory. Defaults to current directory.")
    parser.add_argument("--staged", action="store_true", help="Prefer the staged diff when the file has one.")
    parser.add_argument("--overlay", action="store_true", help="Show an image full-screen (kitty graphics terminals).")
    parser.add_argument("--watch", action="store_true", help="Re-render after filesystem changes until interrupted.")
    parser.add_argument("--max-cols", type=_positive_int, default=None, help="Preview width (default: terminal width).")
    parser.add_argument("--max-rows", type=_positive_int, default=None, help="Preview height (default: terminal height).")
    parser.add_argument("--no-color", action="store_true", help="Strip ANSI styling from output.")
    parser.add_argument("--style", default=None, help="Pygments style name.")
    return parser


def preview_settled(state: PreviewState) -> bool:
    return not state.pane.loading and state.pending_full_diff is None


def find_change(changes: list[GitChange], rel_path: str, staged: bool) -> GitChange | None:
    """Return the change for ``rel_path``, preferring the requested staged side."""
    matches = [change for change in changes if change.path == rel_path]
    for change in matches:
        if change.staged == staged:
            return change
    return matches[0] if matches else None


def initial_selection(controller: PreviewController, path: Path, prefer_staged: bool) -> list[Task]:
    """Select the git change for ``path`` when it has one, else the path itself."""
    state = controller.state
    if state.repo_root is not None and path.is_file():
        try:
            rel_path = path.relative_to(state.repo_root).as_posix()
        except ValueError:
            rel_path = None
        if rel_path is not None:
            changes = load_changes(state.repo_root, state.settings.git_timeout_seconds)
            change = find_change(changes, rel_path, prefer_staged)
            if change is not None:
                return controller.select_git_change(change)
    return controller.select_path(path)


def render_pane(state: PreviewState, max_cols: int, no_color: bool) -> str:
    """Format the pane content as terminal rows clipped to ``max_cols``."""
    out: list[str] = []
    for line in state.pane.lines:
        row = strip_ansi(line) if no_color else line
        row = clip_ansi_line(row, max_cols)
        out.append(row)
        if "\x1b" in row:
            out.append(SGR_RESET)
        out.append("\n")
    return "".join(out)


def show_overlay(controller: PreviewController, scheduler: TaskScheduler) -> None:
    state = controller.state
    tasks = controller.open_image_overlay()
    if not tasks:
        raise SystemExit(state.status_message or "Overlay needs an image path.")
    run_event_loop(
        controller,
        scheduler,
        initial_tasks=tasks,
        until=lambda s: bool(s.overlay_payload) or s.mode is not ViewMode.IMAGE_OVERLAY,
    )
    if state.mode is not ViewMode.IMAGE_OVERLAY:
        raise SystemExit(state.status_message or "Overlay failed.")

    terminal = TerminalController(sys.stdin.fileno(), sys.stdout.fileno())
    with terminal.raw_mode():
        terminal.write(state.overlay_payload)
        while terminal.read_key() not in OVERLAY_EXIT_KEYS:
            pass
        terminal.clear_images(controller.close_image_overlay())


def watch_and_render(
    controller: PreviewController,
    scheduler: TaskScheduler,
    max_cols: int,
    no_color: bool,
) -> None:
    state = controller.state
    pending = controller.start_watching()
    try:
        while True:
            seen = state.reload_count
            run_event_loop(
                controller,
                scheduler,
                initial_tasks=pending,
                until=lambda s: s.reload_count > seen and s.pending_loads == 0,
            )
            run_event_loop(controller, scheduler, initial_tasks=controller.reselect(), until=preview_settled)
            sys.stdout.write(controller.take_terminal_output() + CLEAR_SCREEN + render_pane(state, max_cols, no_color))
            sys.stdout.flush()
            pending = []
    except KeyboardInterrupt:
        pass
    finally:
        controller.stop_watching()


def main(default_path: Path | None = None, argv: list[str] | None = None) -> None:
    """Parse CLI arguments and render a preview for a file or directory.

    ``default_path`` is primarily for tests; when omitted the current working
    directory is used.
    """
    args = build_parser().parse_args(argv)

    # Config warnings belong in the log file, never on the terminal.
    app_logger = configure_logging()
    settings = load_preview_settings()
    if args.style:
        settings = replace(settings, style=args.style)
    app_logger.setLevel(resolve_level(settings.log_level))

    path = Path(args.path) if args.path is not None else (default_path or Path.cwd())
    if not path.exists():
        raise SystemExit(f"Path not found: {path}")
    path = path.resolve()

    term = shutil.get_terminal_size((80, 24))
    max_cols = args.max_cols or max(1, term.columns)
    max_rows = args.max_rows or max(1, term.lines)
    root = path if path.is_dir() else path.parent

    controller = PreviewController(
        root,
        settings=settings,
        capabilities=detect_capabilities(),
        repo_root=resolve_repo_root(root),
        watcher=FilesystemWatcher(root) if args.watch else None,
        viewport=(max_cols, max_rows),
        screen=(max(1, term.columns), max(1, term.lines)),
    )
    scheduler = TaskScheduler(settings.max_workers)
    try:
        run_event_loop(
            controller,
            scheduler,
            initial_tasks=initial_selection(controller, path, args.staged),
            until=preview_settled,
        )
        if args.overlay:
            show_overlay(controller, scheduler)
            return
        sys.stdout.write(render_pane(controller.state, max_cols, args.no_color))
        sys.stdout.flush()
        if args.watch:
            watch_and_render(controller, scheduler, max_cols, args.no_color)
    finally:
        scheduler.shutdown()


__all__ = ["build_parser", "find_change", "main", "render_pane"]
