"""Restricted glob matching for rule path patterns.

Grammar:
    ``*``   any run of characters except ``/``
    ``**``  any run of characters including ``/``; a following ``/`` is absorbed
    ``?``   exactly one character other than ``/``

Patterns starting with ``/`` are anchored at the repository root. All other
patterns may match starting at any path-segment boundary, like ignore files.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache


@lru_cache(maxsize=512)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a glob pattern into an anchored regular expression."""

    text = str(pattern or "").strip()
    if text == "":
        return re.compile(r"\A\Z")

    anchored = text.startswith("/")
    if anchored:
        text = text[1:]

    parts: list[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "*":
            if i + 1 < len(text) and text[i + 1] == "*":
                i += 1
                if i + 1 < len(text) and text[i + 1] == "/":
                    i += 1
                parts.append(".*")
            else:
                parts.append("[^/]*")
        elif ch == "?":
            parts.append("[^/]")
        else:
            parts.append(re.escape(ch))
        i += 1

    body = "".join(parts)
    if anchored:
        return re.compile(rf"\A{body}\Z")
    return re.compile(rf"(?:\A|.*/){body}\Z")


def any_match(patterns: Iterable[str] | None, path: str) -> bool:
    """Return True if any pattern matches the repository-relative path."""

    for pattern in patterns or ():
        if glob_to_regex(str(pattern)).search(path):
            return True
    return False
