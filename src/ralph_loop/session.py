"""Session tracking: carry the worker's session id between iterations.

The id is scraped from free-form worker output, so the match is a
heuristic: first ``session_id``-looking assignment wins, and finding none
simply means every later iteration starts fresh.
"""

from __future__ import annotations

import re

from .models import SessionMode

SESSION_ID_RE = re.compile(
    r"""session[_-]?id["\s]*[:=]["\s]*([A-Za-z0-9_-]+)""",
    re.IGNORECASE,
)


def extract_session_id(text: str) -> str | None:
    """Return the first session id found in ``text``, or None."""
    match = SESSION_ID_RE.search(text)
    return match.group(1) if match else None


def should_capture(mode: SessionMode, iteration: int, current: str | None) -> bool:
    """Only the first iteration of a ``continue`` run is scanned, and only once."""
    return mode is SessionMode.CONTINUE and iteration == 1 and current is None


def augment_args(args: list[str], session_id: str | None) -> list[str]:
    """Return a copy of ``args`` with resume arguments added when an id is held."""
    if not session_id:
        return list(args)
    return [*args, "--resume", session_id]
