"""
Structured unified diffs.

A Patch is the parsed form of a unified diff: file names plus a sequence of
Hunks, each a header range pair and its context/removed/added lines. Diffs
are created from two texts with difflib, stored as unified diff text, parsed
back into Patch values, reversed as values, and applied strictly.

Format details:
    - Lines split on "\\n" only; a last line without a newline is marked with
      "\\ No newline at end of file", as GNU diff does
    - A zero-length range uses the number of the line before it (so an
      insertion into empty text is "@@ -0,0 +1 @@")
    - A range of length 1 omits the count
    - Preamble lines before "---" (e.g. "Index:" and "====" lines) and tab
      suffixes on file names are accepted when parsing

Invariants:
    - parse_patch(patch.format()) == patch
    - patch.reversed().reversed() == patch
    - apply() either returns the exact target text or raises; there is no
      fuzzy matching
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from difflib import SequenceMatcher

from ..errors import PatchParseError, PatchReconstructionError

NO_NEWLINE_MARKER = "\\ No newline at end of file"

_HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

_SWAP_OP = {" ": " ", "-": "+", "+": "-"}


def split_lines(text: str) -> list[str]:
    """Split text into lines that keep their "\\n" terminator."""
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def _format_range(start: int, count: int) -> str:
    return str(start) if count == 1 else f"{start},{count}"


@dataclass(frozen=True)
class HunkLine:
    """One line of a hunk.

    Attributes:
        op: " " for context, "-" for removed, "+" for added
        text: Line text including its "\\n", unless it is a final line
            without one
    """

    op: str
    text: str


@dataclass(frozen=True)
class Hunk:
    """A contiguous changed region with its context."""

    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: tuple[HunkLine, ...]

    @property
    def old_lines(self) -> list[str]:
        return [line.text for line in self.lines if line.op != "+"]

    @property
    def new_lines(self) -> list[str]:
        return [line.text for line in self.lines if line.op != "-"]

    def reversed(self) -> Hunk:
        """The hunk that undoes this one."""
        return Hunk(
            old_start=self.new_start,
            old_count=self.new_count,
            new_start=self.old_start,
            new_count=self.old_count,
            lines=tuple(HunkLine(_SWAP_OP[line.op], line.text) for line in self.lines),
        )

    def header(self) -> str:
        return (
            f"@@ -{_format_range(self.old_start, self.old_count)} "
            f"+{_format_range(self.new_start, self.new_count)} @@"
        )


@dataclass(frozen=True)
class Patch:
    """A parsed unified diff."""

    old_name: str
    new_name: str
    hunks: tuple[Hunk, ...]

    @property
    def is_empty(self) -> bool:
        return not self.hunks

    def reversed(self) -> Patch:
        """The patch that turns this patch's target back into its source."""
        return Patch(
            old_name=self.new_name,
            new_name=self.old_name,
            hunks=tuple(hunk.reversed() for hunk in self.hunks),
        )

    def format(self) -> str:
        """Render as unified diff text."""
        out = [f"--- {self.old_name}\n", f"+++ {self.new_name}\n"]
        for hunk in self.hunks:
            out.append(hunk.header() + "\n")
            for line in hunk.lines:
                out.append(line.op + line.text)
                if not line.text.endswith("\n"):
                    out.append("\n" + NO_NEWLINE_MARKER + "\n")
        return "".join(out)

    def apply(self, text: str) -> str:
        """Apply the patch to text.

        Args:
            text: The exact source text the patch was made against

        Returns:
            The target text

        Raises:
            PatchReconstructionError: If any hunk's context or removed lines do
                not match the text at the hunk's position
        """
        source = split_lines(text)
        result: list[str] = []
        cursor = 0

        for index, hunk in enumerate(self.hunks):
            position = hunk.old_start - 1 if hunk.old_count > 0 else hunk.old_start
            expected = hunk.old_lines
            if position < cursor or position + len(expected) > len(source):
                raise PatchReconstructionError(
                    f"Hunk {index} ({hunk.header()}) is out of range for a "
                    f"{len(source)}-line text",
                    hunk_index=index,
                )
            if source[position : position + len(expected)] != expected:
                raise PatchReconstructionError(
                    f"Hunk {index} ({hunk.header()}) does not match the text at line {position + 1}",
                    hunk_index=index,
                )

            result.extend(source[cursor:position])
            result.extend(hunk.new_lines)
            cursor = position + len(expected)

        result.extend(source[cursor:])
        return "".join(result)


def create_patch(
    old_text: str,
    new_text: str,
    name: str = "content",
    context: int = 3,
) -> Patch:
    """Build the patch that turns old_text into new_text.

    Args:
        old_text: Source text
        new_text: Target text
        name: File name used in both headers
        context: Context lines around each change

    Returns:
        A Patch; empty if the texts are equal
    """
    a = split_lines(old_text)
    b = split_lines(new_text)
    hunks = []

    for group in SequenceMatcher(None, a, b, autojunk=False).get_grouped_opcodes(context):
        i1, i2 = group[0][1], group[-1][2]
        j1, j2 = group[0][3], group[-1][4]
        lines: list[HunkLine] = []
        for tag, a1, a2, b1, b2 in group:
            if tag == "equal":
                lines.extend(HunkLine(" ", text) for text in a[a1:a2])
                continue
            if tag in ("replace", "delete"):
                lines.extend(HunkLine("-", text) for text in a[a1:a2])
            if tag in ("replace", "insert"):
                lines.extend(HunkLine("+", text) for text in b[b1:b2])

        old_count = i2 - i1
        new_count = j2 - j1
        hunks.append(
            Hunk(
                old_start=i1 + 1 if old_count else i1,
                old_count=old_count,
                new_start=j1 + 1 if new_count else j1,
                new_count=new_count,
                lines=tuple(lines),
            )
        )

    return Patch(old_name=name, new_name=name, hunks=tuple(hunks))


def _file_name(line: str) -> str:
    return line[4:].split("\t", 1)[0].strip()


def parse_patch(text: str) -> Patch:
    """Parse unified diff text into a Patch.

    Raises:
        PatchParseError: If the text is not a single-file unified diff
    """
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    old_name = new_name = ""
    hunks: list[Hunk] = []
    pos = 0

    # Preamble and file headers
    while pos < len(lines) and not lines[pos].startswith("@@"):
        line = lines[pos]
        if line.startswith("--- "):
            old_name = _file_name(line)
        elif line.startswith("+++ "):
            new_name = _file_name(line)
        pos += 1

    while pos < len(lines):
        header = lines[pos]
        match = _HUNK_HEADER.match(header)
        if not match:
            raise PatchParseError(f"Expected hunk header, got {header!r}", line_number=pos + 1)
        old_start, old_count, new_start, new_count = (
            int(match.group(1)),
            int(match.group(2)) if match.group(2) is not None else 1,
            int(match.group(3)),
            int(match.group(4)) if match.group(4) is not None else 1,
        )
        pos += 1

        hunk_lines: list[HunkLine] = []
        old_left, new_left = old_count, new_count
        while old_left > 0 or new_left > 0 or (
            pos < len(lines) and lines[pos].startswith("\\")
        ):
            if pos >= len(lines):
                raise PatchParseError(f"Truncated hunk {header!r}", line_number=pos + 1)
            line = lines[pos]
            pos += 1

            if line.startswith("\\"):
                if not hunk_lines:
                    raise PatchParseError("Marker before any hunk line", line_number=pos)
                last = hunk_lines[-1]
                hunk_lines[-1] = HunkLine(last.op, last.text[:-1])
                continue

            op, body = (line[:1] or " "), line[1:]
            if op not in _SWAP_OP:
                raise PatchParseError(f"Unexpected line in hunk: {line!r}", line_number=pos)
            if op != "+":
                old_left -= 1
            if op != "-":
                new_left -= 1
            if old_left < 0 or new_left < 0:
                raise PatchParseError(f"Hunk {header!r} longer than its header", line_number=pos)
            hunk_lines.append(HunkLine(op, body + "\n"))

        hunks.append(Hunk(old_start, old_count, new_start, new_count, tuple(hunk_lines)))

    return Patch(old_name=old_name, new_name=new_name, hunks=tuple(hunks))

