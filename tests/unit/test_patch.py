"""
Unit tests for structured unified diffs.

Tests cover:
- Patch creation and unified diff formatting
- Parsing, including foreign preambles and the no-newline marker
- Reversal and strict application
- Parse and apply failures
"""

import pytest

from transcript_format.errors import PatchParseError, PatchReconstructionError
from transcript_format.history import create_patch, parse_patch, split_lines
from transcript_format.history.patch import NO_NEWLINE_MARKER


class TestSplitLines:
    """Tests for split_lines."""

    def test_keeps_terminators(self):
        """Lines keep their newline."""
        assert split_lines("a\nb\n") == ["a\n", "b\n"]

    def test_last_line_without_newline(self):
        """A final unterminated line is kept as-is."""
        assert split_lines("a\nb") == ["a\n", "b"]

    def test_empty_text(self):
        """Empty text has no lines."""
        assert split_lines("") == []

    def test_carriage_returns_are_content(self):
        """Only \\n separates lines."""
        assert split_lines("a\r\nb") == ["a\r\n", "b"]


class TestCreatePatch:
    """Tests for create_patch."""

    def test_identical_texts_give_empty_patch(self):
        """Equal texts produce no hunks."""
        assert create_patch("same\n", "same\n").is_empty

    def test_single_line_replacement_format(self):
        """A one-line change renders as a GNU-style unified diff."""
        patch = create_patch("First version", "Second version")
        assert patch.format() == (
            "--- content\n"
            "+++ content\n"
            "@@ -1 +1 @@\n"
            "-First version\n"
            f"{NO_NEWLINE_MARKER}\n"
            "+Second version\n"
            f"{NO_NEWLINE_MARKER}\n"
        )

    def test_insert_into_empty_text(self):
        """Inserting into empty text uses a zero-length old range at 0."""
        patch = create_patch("", "hello\n")
        assert patch.hunks[0].header() == "@@ -0,0 +1 @@"

    def test_context_lines(self):
        """Context is limited to the configured number of lines."""
        old = "".join(f"line {i}\n" for i in range(20))
        new = old.replace("line 10\n", "line ten\n")

        patch = create_patch(old, new, context=2)

        assert len(patch.hunks) == 1
        hunk = patch.hunks[0]
        assert hunk.old_start == 9
        assert hunk.old_count == 5
        assert [line.op for line in hunk.lines] == [" ", " ", "-", "+", " ", " "]

    def test_distant_changes_make_separate_hunks(self):
        """Changes far apart are separate hunks."""
        old = "".join(f"line {i}\n" for i in range(30))
        new = old.replace("line 2\n", "two\n").replace("line 25\n", "twenty-five\n")

        patch = create_patch(old, new)

        assert len(patch.hunks) == 2


class TestParsePatch:
    """Tests for parse_patch."""

    def test_parse_format_roundtrip(self):
        """A formatted patch parses back to an equal value."""
        patch = create_patch("a\nb\nc\n", "a\nB\nc\nd")
        assert parse_patch(patch.format()) == patch

    def test_accepts_preamble_and_tab_suffixes(self):
        """Index and separator lines, and header timestamps, are tolerated."""
        text = (
            "Index: content\n"
            "===================================================================\n"
            "--- content\t(before)\n"
            "+++ content\t(after)\n"
            "@@ -1 +1 @@\n"
            "-old\n"
            "+new\n"
        )
        patch = parse_patch(text)

        assert patch.old_name == "content"
        assert patch.new_name == "content"
        assert patch.apply("old\n") == "new\n"

    def test_no_newline_marker_strips_newline(self):
        """The marker applies to the line before it."""
        patch = parse_patch(
            "--- content\n+++ content\n@@ -1 +1 @@\n-old\n"
            f"{NO_NEWLINE_MARKER}\n+new\n{NO_NEWLINE_MARKER}\n"
        )
        lines = patch.hunks[0].lines
        assert lines[0].text == "old"
        assert lines[1].text == "new"

    def test_bad_hunk_header_raises(self):
        """A malformed hunk header is a parse error."""
        with pytest.raises(PatchParseError) as exc_info:
            parse_patch("--- content\n+++ content\n@@ bogus @@\n-a\n")
        assert exc_info.value.line_number == 3

    def test_truncated_hunk_raises(self):
        """A hunk shorter than its header is a parse error."""
        with pytest.raises(PatchParseError):
            parse_patch("--- content\n+++ content\n@@ -1,2 +1,2 @@\n-a\n")

    def test_unexpected_line_raises(self):
        """Lines without a diff prefix are rejected."""
        with pytest.raises(PatchParseError):
            parse_patch("--- content\n+++ content\n@@ -1 +1 @@\n*a\n+b\n")


class TestApply:
    """Tests for applying and reversing patches."""

    @pytest.mark.parametrize(
        "old,new",
        [
            ("First version", "Second version"),
            ("", "Some text\n"),
            ("Some text\n", ""),
            ("a\nb\nc\n", "a\nc\n"),
            ("a\nb\n", "a\nX\nb\n"),
            ("no newline", "no newline\n"),
            ("line\n" * 10, "line\n" * 5 + "changed\n" + "line\n" * 5),
        ],
    )
    def test_apply_and_reverse(self, old, new):
        """A patch turns old into new, and its reversal turns new back into old."""
        patch = parse_patch(create_patch(old, new).format())
        assert patch.apply(old) == new
        assert patch.reversed().apply(new) == old

    def test_zero_context_insertion(self):
        """Zero-length ranges apply after the line they name."""
        patch = create_patch("a\nb\n", "a\nX\nb\n", context=0)
        assert patch.hunks[0].header() == "@@ -1,0 +2 @@"
        assert patch.apply("a\nb\n") == "a\nX\nb\n"
        assert patch.reversed().apply("a\nX\nb\n") == "a\nb\n"

    def test_double_reverse_is_identity(self):
        """Reversing twice gives the original patch."""
        patch = create_patch("one\ntwo\n", "one\nthree\n")
        assert patch.reversed().reversed() == patch

    def test_mismatch_raises(self):
        """Applying to the wrong text fails instead of guessing."""
        patch = create_patch("alpha\n", "beta\n")
        with pytest.raises(PatchReconstructionError) as exc_info:
            patch.apply("gamma\n")
        assert exc_info.value.hunk_index == 0

    def test_out_of_range_raises(self):
        """A hunk past the end of the text fails."""
        patch = create_patch("a\nb\nc\nd\n", "a\nb\nc\nD\n", context=0)
        with pytest.raises(PatchReconstructionError):
            patch.apply("a\n")
