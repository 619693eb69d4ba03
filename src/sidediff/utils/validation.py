"""Input validation for command line and environment values.

Ref expressions and path filters end up as git arguments, so anything that git could
read as an option or that contains control characters is rejected here before a
subprocess is ever started.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from .config import SourceConfig


class ValidationError(Exception):
    """Raised when input validation fails."""

    pass


_REF_FORBIDDEN = re.compile(r"[\s~^:?*\[\\]|\.\.\.\.|@\{")
_MAX_REF_LENGTH = 512


def _check_text(value: str, name: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{name} cannot be empty")
    value = str(value).strip()
    if '\x00' in value or any(ord(c) < 32 for c in value):
        raise ValidationError(f"{name} contains invalid characters")
    return value


def validate_repo_path(path: str, name: str = "Repository path") -> str:
    """Validate that ``path`` is an existing, readable directory.

    Returns:
        Normalized absolute path

    Raises:
        ValidationError: If validation fails
    """
    path = _check_text(path, name)
    try:
        resolved = Path(path).expanduser().resolve()
    except (OSError, ValueError) as e:
        raise ValidationError(f"{name} is not a valid path: {e}") from e

    if not resolved.exists():
        raise ValidationError(f"{name} does not exist: {resolved}")
    if not resolved.is_dir():
        raise ValidationError(f"{name} is not a directory: {resolved}")
    if not os.access(resolved, os.R_OK):
        raise ValidationError(f"{name} is not readable: {resolved}")
    return str(resolved)


def validate_ref_expression(ref: str, name: str = "Revision") -> str:
    """Validate a revision or range such as ``HEAD~1``, ``main..dev`` or ``main...dev``.

    ``~`` and ``^`` suffixes are allowed; whitespace, git pathspec magic and leading
    dashes are not.
    """
    ref = _check_text(ref, name)
    if len(ref) > _MAX_REF_LENGTH:
        raise ValidationError(f"{name} is too long (max {_MAX_REF_LENGTH} characters)")
    if ref.startswith("-"):
        raise ValidationError(f"{name} cannot start with '-': {ref}")
    for part in re.split(r"\.\.\.?", ref):
        # Strip ancestry suffixes before checking the name itself
        base = re.sub(r"([~^]\d*)+$", "", part)
        if _REF_FORBIDDEN.search(base):
            raise ValidationError(f"{name} contains characters git does not allow: {ref}")
    return ref


def validate_path_filters(paths: list[str]) -> list[str]:
    """Validate path filters passed after ``--``."""
    cleaned: list[str] = []
    for p in paths or []:
        p = _check_text(p, "Path filter")
        if p.startswith("-"):
            raise ValidationError(f"Path filter cannot start with '-': {p}")
        cleaned.append(p)
    return cleaned


def validate_poll_interval(value: float | str | None, name: str = "Poll interval") -> float | None:
    if value is None:
        return None
    try:
        interval = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be a number, got: {value}") from e
    if not (0.5 <= interval <= 300):
        raise ValidationError(f"{name} must be between 0.5 and 300 seconds, got: {interval}")
    return interval


def validate_source_config(source: SourceConfig) -> SourceConfig:
    """Validate a merged SourceConfig in place and return it.

    Raises:
        ValidationError: If validation fails or the selected sources conflict
    """
    selected = [bool(source.ref), bool(source.base or source.head), bool(source.pr)]
    if sum(selected) > 1:
        raise ValidationError("Choose only one of REF, --base/--head, or --pr")

    if source.repo:
        source.repo = validate_repo_path(source.repo)
    if source.ref:
        source.ref = validate_ref_expression(source.ref)
    if source.base:
        source.base = validate_ref_expression(source.base, "Base branch")
    if source.head:
        source.head = validate_ref_expression(source.head, "Head branch")
    if source.pr:
        source.pr = _check_text(source.pr, "Pull request")
    source.paths = validate_path_filters(source.paths)
    source.poll_interval = validate_poll_interval(source.poll_interval)
    return source
