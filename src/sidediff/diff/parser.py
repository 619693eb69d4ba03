"""Unified diff parsing.

Turns raw ``git diff`` style text into a list of :class:`FileDiff`. The parser does not
care where the text came from (local git or the GitHub API).

Failures are contained per file: a section with a malformed hunk header becomes a
degraded ``FileDiff`` (no hunks, ``error`` set) and the remaining sections still parse.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from sidediff.errors import ParseError
from sidediff.utils.error_handling import log_parse_error

from .models import ChangeKind, DiffLine, FileDiff, Hunk, LineKind

_HUNK_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@ ?(.*)$")
_GIT_HEADER = "diff --git "
_DEV_NULL = "/dev/null"

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    '"': '"',
    "\\": "\\",
}


@dataclass
class _Header:
    """Mutable scratch state while reading one file section's extended header."""

    old_path: Optional[str] = None
    new_path: Optional[str] = None
    git_old: Optional[str] = None
    git_new: Optional[str] = None
    is_new: bool = False
    is_deleted: bool = False
    renamed_from: Optional[str] = None
    renamed_to: Optional[str] = None
    copied_from: Optional[str] = None
    copied_to: Optional[str] = None
    binary: bool = False

    @property
    def path(self) -> Optional[str]:
        if self.is_deleted:
            return self.old_path or self.git_old or self.new_path
        return self.renamed_to or self.copied_to or self.new_path or self.git_new or self.old_path

    @property
    def change_kind(self) -> ChangeKind:
        if self.binary:
            return ChangeKind.BINARY
        if self.is_new:
            return ChangeKind.ADDED
        if self.is_deleted:
            return ChangeKind.REMOVED
        if self.renamed_from:
            return ChangeKind.RENAMED
        if self.copied_from:
            return ChangeKind.COPIED
        return ChangeKind.MODIFIED

    @property
    def source_path(self) -> Optional[str]:
        return self.renamed_from or self.copied_from


def parse_unified_diff(text: str) -> list[FileDiff]:
    """Parse unified diff text into one FileDiff per changed file.

    Never raises for per-file problems; see module docstring.
    """
    if not text:
        return []
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    files: list[FileDiff] = []
    for section in split_file_sections(lines):
        try:
            files.append(parse_file_section(section))
        except ParseError as e:
            path = e.path or _guess_path(section) or "<unknown>"
            log_parse_error(path, e)
            files.append(FileDiff(path=path, error=str(e)))
    return files


def split_file_sections(lines: list[str]) -> list[list[str]]:
    """Split diff lines into per-file sections, dropping any preamble."""
    if any(line.startswith(_GIT_HEADER) for line in lines):
        return _split_git_sections(lines)
    return _split_plain_sections(lines)


def _split_git_sections(lines: list[str]) -> list[list[str]]:
    sections: list[list[str]] = []
    for line in lines:
        if line.startswith(_GIT_HEADER):
            sections.append([line])
        elif sections:
            sections[-1].append(line)
    return sections


def _split_plain_sections(lines: list[str]) -> list[list[str]]:
    # Without "diff --git" markers a "--- " line can also be a removed "-- " line, so
    # hunk bodies are skipped by their declared lengths.
    sections: list[list[str]] = []
    old_left = new_left = 0
    for i, line in enumerate(lines):
        if old_left > 0 or new_left > 0:
            sections[-1].append(line)
            if line.startswith("\\"):
                continue
            tag = line[:1]
            if tag == "+":
                new_left -= 1
            elif tag == "-":
                old_left -= 1
            else:
                old_left -= 1
                new_left -= 1
            continue
        if line.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            sections.append([line])
            continue
        if not sections:
            continue
        sections[-1].append(line)
        match = _HUNK_RE.match(line)
        if match:
            old_left = _length(match.group(2))
            new_left = _length(match.group(4))
    return sections


def parse_file_section(lines: list[str]) -> FileDiff:
    """Parse one file section (extended header plus hunks).

    Raises:
        ParseError: on a malformed hunk header or a hunk body that does not match
            its declared ranges.
    """
    header = _Header()
    i = 0
    if lines and lines[0].startswith(_GIT_HEADER):
        header.git_old, header.git_new = _parse_git_header(lines[0][len(_GIT_HEADER):])
        i = 1
    n = len(lines)
    while i < n and not lines[i].startswith("@@"):
        _read_header_line(lines[i], header)
        i += 1

    path = header.path
    if not path:
        raise ParseError("file section has no path")

    hunks: list[Hunk] = []
    if not header.binary:
        while i < n:
            line = lines[i]
            if not line.startswith("@@"):
                # Stray text between hunks (trailing blank lines, patch signatures)
                i += 1
                continue
            hunk, i = _parse_hunk(lines, i, path)
            hunks.append(hunk)

    return FileDiff(
        path=path,
        change_kind=header.change_kind,
        hunks=tuple(hunks),
        old_path=header.source_path,
    )


def parse_hunk_header(line: str) -> tuple[int, int, int, int, str]:
    """Return ``(old_start, old_length, new_start, new_length, heading)``."""
    match = _HUNK_RE.match(line)
    if not match:
        raise ParseError(f"malformed hunk header: {line!r}")
    return (
        int(match.group(1)),
        _length(match.group(2)),
        int(match.group(3)),
        _length(match.group(4)),
        match.group(5) or "",
    )


def _parse_hunk(lines: list[str], start: int, path: str) -> tuple[Hunk, int]:
    try:
        old_start, old_len, new_start, new_len, heading = parse_hunk_header(lines[start])
    except ParseError as e:
        raise ParseError(str(e), path=path) from e

    body: list[DiffLine] = []
    old_left, new_left = old_len, new_len
    old_no, new_no = old_start, new_start
    i = start + 1
    n = len(lines)
    while (old_left > 0 or new_left > 0) and i < n:
        line = lines[i]
        if line.startswith("\\"):
            i += 1
            continue
        tag, text = line[:1], _strip_cr(line[1:])
        if tag == "+":
            body.append(DiffLine(LineKind.ADDED, text, None, new_no))
            new_no += 1
            new_left -= 1
        elif tag == "-":
            body.append(DiffLine(LineKind.REMOVED, text, old_no, None))
            old_no += 1
            old_left -= 1
        elif tag == " " or line == "":
            body.append(DiffLine(LineKind.CONTEXT, text, old_no, new_no))
            old_no += 1
            new_no += 1
            old_left -= 1
            new_left -= 1
        else:
            break
        if old_left < 0 or new_left < 0:
            raise ParseError(f"hunk {lines[start]!r} has more lines than its header declares", path=path)
        i += 1

    while i < n and lines[i].startswith("\\"):
        i += 1

    if old_left or new_left:
        raise ParseError(f"hunk {lines[start]!r} ended before its declared length", path=path)
    if not body:
        raise ParseError(f"hunk {lines[start]!r} has no lines", path=path)

    hunk = Hunk(
        old_start=old_start,
        old_length=old_len,
        new_start=new_start,
        new_length=new_len,
        lines=tuple(body),
        heading=heading.strip(),
    )
    return hunk, i


def _read_header_line(line: str, header: _Header) -> None:
    if line.startswith("new file mode"):
        header.is_new = True
    elif line.startswith("deleted file mode"):
        header.is_deleted = True
    elif line.startswith("rename from "):
        header.renamed_from = unquote_path(line[len("rename from "):])
    elif line.startswith("rename to "):
        header.renamed_to = unquote_path(line[len("rename to "):])
    elif line.startswith("copy from "):
        header.copied_from = unquote_path(line[len("copy from "):])
    elif line.startswith("copy to "):
        header.copied_to = unquote_path(line[len("copy to "):])
    elif line.startswith("Binary files ") or line.startswith("GIT binary patch"):
        header.binary = True
    elif line.startswith("--- "):
        old = _marker_path(line[4:], "a/")
        if old is None:
            header.is_new = True
        header.old_path = old
    elif line.startswith("+++ "):
        new = _marker_path(line[4:], "b/")
        if new is None:
            header.is_deleted = True
        header.new_path = new


def _marker_path(raw: str, prefix: str) -> Optional[str]:
    # Plain diffs append a tab and a timestamp after the name
    raw = raw.split("\t", 1)[0].rstrip("\r")
    path = unquote_path(raw)
    if path == _DEV_NULL:
        return None
    if path.startswith(prefix):
        path = path[len(prefix):]
    return path


def _parse_git_header(rest: str) -> tuple[Optional[str], Optional[str]]:
    """Extract both paths from the text after ``diff --git ``."""
    rest = rest.rstrip("\r")
    if rest.startswith('"'):
        end = _closing_quote(rest)
        first = rest[: end + 1]
        second = rest[end + 1:].strip()
        return _drop_prefix(unquote_path(first), "a/"), _drop_prefix(unquote_path(second), "b/")

    # Same name on both sides is the common case: "a/<p> b/<p>"
    if len(rest) % 2 == 1:
        half = (len(rest) - 1) // 2
        left, right = rest[:half], rest[half + 1:]
        if left[2:] == right[2:] and rest[half] == " ":
            return _drop_prefix(left, "a/"), _drop_prefix(right, "b/")

    idx = rest.find(" b/")
    if idx == -1:
        idx = rest.find(' "b/')
    if idx == -1:
        return None, None
    return _drop_prefix(unquote_path(rest[:idx]), "a/"), _drop_prefix(unquote_path(rest[idx + 1:]), "b/")


_OCTAL_RUN = re.compile(r"[0-7]{1,3}")


def _closing_quote(text: str) -> int:
    i = 1
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] == '"':
            return i
        i += 1
    return len(text) - 1


def unquote_path(path: str) -> str:
    """Undo git's C-style quoting of unusual path names."""
    if len(path) < 2 or path[0] != '"' or path[-1] != '"':
        return path
    raw = path[1:-1]
    out = bytearray()
    i = 0
    while i < len(raw):
        c = raw[i]
        if c == "\\" and i + 1 < len(raw):
            nxt = raw[i + 1]
            if nxt in "01234567":
                digits = _OCTAL_RUN.match(raw, i + 1).group()
                out.append(int(digits, 8) & 0xFF)
                i += 1 + len(digits)
                continue
            out.extend(_ESCAPES.get(nxt, nxt).encode("utf-8"))
            i += 2
            continue
        out.extend(c.encode("utf-8"))
        i += 1
    return out.decode("utf-8", errors="replace")


def _drop_prefix(path: Optional[str], prefix: str) -> Optional[str]:
    if path and path.startswith(prefix):
        return path[len(prefix):]
    return path


def _guess_path(section: list[str]) -> Optional[str]:
    for line in section:
        if line.startswith("+++ "):
            path = _marker_path(line[4:], "b/")
            if path:
                return path
    if section and section[0].startswith(_GIT_HEADER):
        old, new = _parse_git_header(section[0][len(_GIT_HEADER):])
        return new or old
    return None


def _length(group: Optional[str]) -> int:
    return int(group) if group is not None else 1


def _strip_cr(text: str) -> str:
    return text[:-1] if text.endswith("\r") else text
