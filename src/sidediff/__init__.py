"""sidediff: a terminal side-by-side git diff viewer.

The engine parses unified diffs from local git or GitHub pull requests, aligns each
file into side-by-side rows, and keeps a navigable viewer state live under file
system changes and remote viewed-state updates.
"""

from __future__ import annotations

__version__ = "0.1.0"
