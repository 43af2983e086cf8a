"""
Page access - Decide which pages of a module a learner may open.

Provides:
- can_access(): the gating predicate consulted before every navigation
- page_overview(): per-page availability for navigation display
- accessible_pages(): set of currently reachable ordinals

All functions are pure: same inputs, same answer, no state touched.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Sequence

from modulegate.schemas import Page


class PageAvailability(str, Enum):
    """Page availability status for navigation display."""
    LOCKED = "locked"           # An earlier quiz is not passed yet
    AVAILABLE = "available"     # Can be opened
    CURRENT = "current"         # Learner is on this page
    COMPLETED = "completed"     # Marked done


@dataclass
class NavigationPage:
    """Page with navigation metadata."""
    index: int
    page: Page
    availability: PageAvailability
    missing_quizzes: list[int] = field(default_factory=list)  # earlier quiz pages not passed


def can_access(
    page_index: int,
    pages: Sequence[Page],
    completed_pages: AbstractSet[int],
    current_page_index: int,
) -> bool:
    """
    Check whether `page_index` is reachable from `current_page_index`.

    Rules, first match wins:
    1. The first page is always reachable.
    2. The page right after the current one is reachable unless the
       current page carries a quiz that is not completed. A plain page
       does not have to be marked complete to unlock the next one.
    3. Any other page is reachable only if every quiz page before it
       is completed.
    """
    if page_index < 0 or page_index >= len(pages):
        return False

    if page_index == 0:
        return True

    if page_index == current_page_index + 1 and 0 <= current_page_index < len(pages):
        current = pages[current_page_index]
        return not current.has_quiz or current_page_index in completed_pages

    return not missing_quizzes(page_index, pages, completed_pages)


def missing_quizzes(
    page_index: int,
    pages: Sequence[Page],
    completed_pages: AbstractSet[int],
) -> list[int]:
    """Ordinals of quiz pages before `page_index` that are not completed."""
    return [
        idx for idx in range(min(page_index, len(pages)))
        if pages[idx].has_quiz and idx not in completed_pages
    ]


def accessible_pages(
    pages: Sequence[Page],
    completed_pages: AbstractSet[int],
    current_page_index: int,
) -> set[int]:
    """Set of page ordinals currently reachable."""
    return {
        idx for idx in range(len(pages))
        if can_access(idx, pages, completed_pages, current_page_index)
    }


def page_overview(
    pages: Sequence[Page],
    completed_pages: AbstractSet[int],
    current_page_index: int,
) -> list[NavigationPage]:
    """
    Annotate every page with its availability.

    Returns:
        One NavigationPage per page, in module order. Locked pages list
        the quiz pages that still need passing.
    """
    overview = []
    for idx, page in enumerate(pages):
        missing: list[int] = []
        if idx == current_page_index:
            availability = PageAvailability.CURRENT
        elif idx in completed_pages:
            availability = PageAvailability.COMPLETED
        elif can_access(idx, pages, completed_pages, current_page_index):
            availability = PageAvailability.AVAILABLE
        else:
            availability = PageAvailability.LOCKED
            missing = missing_quizzes(idx, pages, completed_pages)

        overview.append(NavigationPage(
            index=idx,
            page=page,
            availability=availability,
            missing_quizzes=missing,
        ))
    return overview
