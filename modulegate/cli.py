"""
modulegate - Inspect training content and learner progress.

Usage:
  modulegate modules
  modulegate status --learner alice --module food-safety
  modulegate paths --learner alice
  modulegate --content-dir content --db data/progress.db status --learner alice --module food-safety

Read-only: nothing is opened, started or saved.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from modulegate.classroom import (
    ContentLoader,
    PageAvailability,
    SQLiteProgressStore,
    attempts_remaining,
    incomplete_modules,
    module_availability,
    page_overview,
)
from modulegate.config import Settings, load_settings
from modulegate.errors import ModuleGateError


logger = logging.getLogger(__name__)

STATUS_MARKS = {
    PageAvailability.COMPLETED: "✓",
    PageAvailability.CURRENT: "→",
    PageAvailability.AVAILABLE: "○",
    PageAvailability.LOCKED: "◌",
}


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

def cmd_modules(loader: ContentLoader, args) -> int:
    """List modules with their page and quiz counts."""
    modules = loader.get_modules()
    if not modules:
        print("No modules found.")
        return 0
    for module in modules:
        quiz_pages = len(module.quiz_page_indices)
        print(f"{module.id}  {module.title}  ({module.page_count} pages, {quiz_pages} with quiz)")
    return 0


def cmd_status(loader: ContentLoader, store: SQLiteProgressStore, args) -> int:
    """Show per-page state of one learner in one module."""
    module = loader.get_module(args.module)
    if module is None:
        print(f"Unknown module: {args.module}", file=sys.stderr)
        return 1

    state = asyncio.run(store.load(args.learner, module.id))
    completed = state.completed_pages if state else set()
    scores = state.page_scores if state else {}

    print(f"{module.title} [{module.id}]")
    print(f"Status: {state.status.value if state else 'not_started'}")
    for nav in page_overview(module.pages, completed, current_page_index=-1):
        line = f"  {STATUS_MARKS[nav.availability]} {nav.index + 1}. {nav.page.title}"
        if nav.page.has_quiz:
            score = scores.get(nav.index)
            line += f"  [quiz: {score}%]" if score is not None else "  [quiz]"
        print(line)
    print(f"Completed: {len(completed)}/{module.page_count} pages")
    if state and state.overall_score is not None:
        print(f"Score: {state.overall_score}%")
    return 0


def cmd_paths(loader: ContentLoader, store: SQLiteProgressStore, args) -> int:
    """Show every training path with module lock state."""
    paths = loader.get_paths()
    if not paths:
        print("No training paths found.")
        return 0

    statuses = store.get_learner_statuses(args.learner)
    for path in paths:
        print(f"{path.name} [{path.id}]")
        for access in module_availability(path, statuses):
            module = loader.get_module(access.module_id)
            mark = "◌" if access.is_locked else "○"
            line = f"  {mark} {module.title if module else access.module_id} ({access.status.value})"
            if access.reason:
                line += f" - {access.reason}"
            print(line)
        if path.final_quiz:
            print(f"  {_final_quiz_line(path, statuses, store.load_path_sync(args.learner, path.id))}")
    return 0


def _final_quiz_line(path, statuses, progress) -> str:
    quiz = path.final_quiz
    if progress and progress.is_completed:
        return f"✓ Final quiz: passed ({progress.quiz_score}%)"
    if incomplete_modules(path, statuses):
        return f"◌ Final quiz: locked (pass at {quiz.passing_score}%)"
    remaining = attempts_remaining(path, progress)
    if remaining == 0:
        return f"✗ Final quiz: no attempts left (last score {progress.quiz_score}%)"
    return f"○ Final quiz: {remaining}/{quiz.max_attempts} attempts left (pass at {quiz.passing_score}%)"


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="modulegate",
        description="Inspect training content and learner progress",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--content-dir", type=Path, help="Content directory (overrides MODULEGATE_CONTENT_DIR)")
    parser.add_argument("--db", type=Path, help="Progress database (overrides MODULEGATE_PROGRESS_DB)")
    parser.add_argument("--log-level", help="Logging level (overrides MODULEGATE_LOG_LEVEL)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("modules", help="List modules")

    status = sub.add_parser("status", help="Show a learner's progress in one module")
    status.add_argument("--learner", required=True)
    status.add_argument("--module", required=True)

    paths = sub.add_parser("paths", help="Show training paths and module locks for a learner")
    paths.add_argument("--learner", required=True)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
        if args.log_level:
            settings = Settings(**{**settings.model_dump(), "log_level": args.log_level})
    except ValueError as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(levelname)s - %(message)s"
    )

    content_dir = args.content_dir or settings.content_dir
    try:
        loader = ContentLoader(content_dir)
        if args.command == "modules":
            return cmd_modules(loader, args)

        store = SQLiteProgressStore(args.db or settings.progress_db)
        if args.command == "status":
            return cmd_status(loader, store, args)
        return cmd_paths(loader, store, args)
    except (FileNotFoundError, ValueError, ModuleGateError) as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
