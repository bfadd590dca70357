"""Character-level diff between original and corrected text.

Uses diff-match-patch with ``checklines=False`` and no semantic cleanup, so
a single changed character stays its own operation. The diff timeout is
disabled: with a deadline the result could depend on machine speed.
"""

from __future__ import annotations

import html
from enum import IntEnum
from typing import List, Tuple

from diff_match_patch import diff_match_patch

from .config import HIGHLIGHT_TAG


class DiffOp(IntEnum):
    DELETE = diff_match_patch.DIFF_DELETE
    EQUAL = diff_match_patch.DIFF_EQUAL
    INSERT = diff_match_patch.DIFF_INSERT


def compute_diff(original: str, corrected: str) -> List[Tuple[DiffOp, str]]:
    dmp = diff_match_patch()
    dmp.Diff_Timeout = 0
    return [(DiffOp(op), text) for op, text in dmp.diff_main(original, corrected, False)]


def highlight(original: str, corrected: str, escape: bool = False) -> str:
    """Render ``corrected`` with inserted spans wrapped in ``<mark>``.

    Deleted text is dropped. With ``escape=True`` the text itself is
    HTML-escaped so only the markers are markup.
    """
    render = html.escape if escape else str
    parts: List[str] = []
    for op, text in compute_diff(original, corrected):
        if op == DiffOp.INSERT:
            parts.append(f"<{HIGHLIGHT_TAG}>{render(text)}</{HIGHLIGHT_TAG}>")
        elif op == DiffOp.EQUAL:
            parts.append(render(text))
    return "".join(parts)
