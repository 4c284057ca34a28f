"""
History module for transcript content.

This module handles:
- Structured unified diffs (create, parse, reverse, apply)
- The append-only content diff log
- Point-in-time reconstruction of content

Invariants:
    - Only the current text is stored in full
    - Reconstruction never returns partially patched text
"""

from .content_history import ContentHistory
from .patch import Hunk, HunkLine, Patch, create_patch, parse_patch, split_lines

__all__ = [
    "ContentHistory",
    "Hunk",
    "HunkLine",
    "Patch",
    "create_patch",
    "parse_patch",
    "split_lines",
]
