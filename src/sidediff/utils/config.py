from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from typing import Final

from .logger import log


class ConfigError(Exception):
    """Configuration validation error."""

    pass


_TRUTHY = {'1', 'true', 'yes', 'on'}


@dataclass
class SourceConfig:
    """Which diff to show and how to keep it live.

    Exactly one of ``ref``, ``base``/``head`` or ``pr`` selects the source; with none
    set the working tree is shown.
    """

    ref: str | None = None
    base: str | None = None
    head: str | None = None
    three_dot: bool = True
    pr: str | None = None
    repo: str | None = None
    paths: list[str] = field(default_factory=list)
    watch: bool = True
    poll_interval: float | None = None
    token: str | None = None
    remember_positions: bool = False

    @classmethod
    def from_args(cls, args) -> SourceConfig:
        """Create SourceConfig from parsed command line arguments."""
        return cls(
            ref=args.ref,
            base=args.base,
            head=args.head,
            three_dot=not getattr(args, 'two_dot', False),
            pr=args.pr,
            repo=args.repo,
            paths=list(args.path or []),
            watch=not args.no_watch,
            poll_interval=args.poll_interval,
            token=args.token,
            remember_positions=args.remember_positions,
        )

    def merge_with_env(self) -> SourceConfig:
        """Fill unset values from the environment; explicit values win."""
        token = (
            self.token
            or os.environ.get('SIDEDIFF_GITHUB_TOKEN')
            or os.environ.get('GITHUB_TOKEN')
            or os.environ.get('GH_TOKEN')
        )
        remember = self.remember_positions or (
            os.environ.get('SIDEDIFF_REMEMBER_POSITIONS', '').lower() in _TRUTHY
        )
        watch = self.watch and os.environ.get('SIDEDIFF_NO_WATCH', '').lower() not in _TRUTHY
        return replace(
            self,
            repo=self.repo or os.environ.get('SIDEDIFF_REPO'),
            token=token,
            remember_positions=remember,
            watch=watch,
        )

    def describe(self) -> str:
        if self.pr:
            return f"pull request {self.pr}"
        if self.base or self.head:
            sep = "..." if self.three_dot else ".."
            return f"{self.base or 'main'}{sep}{self.head or 'HEAD'}"
        return self.ref or "working tree"


class Config:
    """Engine tunables with environment variable overrides and validation."""

    _DEFAULT_DEBOUNCE_MS: Final[int] = 300
    _DEFAULT_POLL_INTERVAL: Final[float] = 2.0
    _DEFAULT_NETWORK_TIMEOUT: Final[int] = 30
    _DEFAULT_SYNC_COALESCE_MS: Final[int] = 150
    _DEFAULT_SCROLL_MARGIN: Final[int] = 3
    _DEFAULT_TAB_WIDTH: Final[int] = 4
    _DEFAULT_MAX_PREVIEW_CHARS: Final[int] = 500
    _DEFAULT_MAX_UNTRACKED_FILES: Final[int] = 200

    _MIN_DEBOUNCE_MS: Final[int] = 50
    _MAX_DEBOUNCE_MS: Final[int] = 2000
    _MIN_POLL_INTERVAL: Final[float] = 0.5
    _MAX_POLL_INTERVAL: Final[float] = 300.0
    _MIN_NETWORK_TIMEOUT: Final[int] = 5
    _MAX_NETWORK_TIMEOUT: Final[int] = 300
    _MIN_SYNC_COALESCE_MS: Final[int] = 0
    _MAX_SYNC_COALESCE_MS: Final[int] = 2000
    _MIN_SCROLL_MARGIN: Final[int] = 0
    _MAX_SCROLL_MARGIN: Final[int] = 20
    _MIN_TAB_WIDTH: Final[int] = 1
    _MAX_TAB_WIDTH: Final[int] = 16
    _MIN_PREVIEW_CHARS: Final[int] = 50
    _MAX_PREVIEW_CHARS: Final[int] = 10000
    _MIN_UNTRACKED_FILES: Final[int] = 0
    _MAX_UNTRACKED_FILES: Final[int] = 10000

    def __init__(self):
        """Initialize configuration with environment variable overrides."""
        self.debounce_ms = self._get_int_env("SIDEDIFF_DEBOUNCE_MS", self._DEFAULT_DEBOUNCE_MS)
        self.poll_interval = self._get_float_env("SIDEDIFF_POLL_INTERVAL", self._DEFAULT_POLL_INTERVAL)
        self.network_timeout = self._get_int_env("SIDEDIFF_NETWORK_TIMEOUT", self._DEFAULT_NETWORK_TIMEOUT)
        self.sync_coalesce_ms = self._get_int_env("SIDEDIFF_SYNC_COALESCE_MS", self._DEFAULT_SYNC_COALESCE_MS)
        self.scroll_margin = self._get_int_env("SIDEDIFF_SCROLL_MARGIN", self._DEFAULT_SCROLL_MARGIN)
        self.tab_width = self._get_int_env("SIDEDIFF_TAB_WIDTH", self._DEFAULT_TAB_WIDTH)
        self.max_preview_chars = self._get_int_env("SIDEDIFF_MAX_PREVIEW_CHARS", self._DEFAULT_MAX_PREVIEW_CHARS)
        self.max_untracked_files = self._get_int_env(
            "SIDEDIFF_MAX_UNTRACKED_FILES", self._DEFAULT_MAX_UNTRACKED_FILES
        )

        self._validate_all()

    def _get_int_env(self, key: str, default: int) -> int:
        """Get integer environment variable with fallback to default."""
        value = os.environ.get(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError as e:
            log.warning(f"Invalid integer value for {key}='{value}', using default {default}: {e}")
            return default

    def _get_float_env(self, key: str, default: float) -> float:
        """Get float environment variable with fallback to default."""
        value = os.environ.get(key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError as e:
            log.warning(f"Invalid float value for {key}='{value}', using default {default}: {e}")
            return default

    def _validate_all(self) -> None:
        """Validate all configuration values."""
        self._validate_int("debounce_ms", self.debounce_ms, self._MIN_DEBOUNCE_MS, self._MAX_DEBOUNCE_MS)
        self._validate_float("poll_interval", self.poll_interval, self._MIN_POLL_INTERVAL, self._MAX_POLL_INTERVAL)
        self._validate_int(
            "network_timeout", self.network_timeout, self._MIN_NETWORK_TIMEOUT, self._MAX_NETWORK_TIMEOUT
        )
        self._validate_int(
            "sync_coalesce_ms", self.sync_coalesce_ms, self._MIN_SYNC_COALESCE_MS, self._MAX_SYNC_COALESCE_MS
        )
        self._validate_int("scroll_margin", self.scroll_margin, self._MIN_SCROLL_MARGIN, self._MAX_SCROLL_MARGIN)
        self._validate_int("tab_width", self.tab_width, self._MIN_TAB_WIDTH, self._MAX_TAB_WIDTH)
        self._validate_int(
            "max_preview_chars", self.max_preview_chars, self._MIN_PREVIEW_CHARS, self._MAX_PREVIEW_CHARS
        )
        self._validate_int(
            "max_untracked_files", self.max_untracked_files, self._MIN_UNTRACKED_FILES, self._MAX_UNTRACKED_FILES
        )

    def _validate_int(self, name: str, value: int, min_val: int, max_val: int) -> None:
        """Validate integer configuration value."""
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConfigError(f"{name} must be an integer, got {type(value).__name__}")
        if not (min_val <= value <= max_val):
            raise ConfigError(f"{name} must be between {min_val} and {max_val}, got {value}")

    def _validate_float(self, name: str, value: float, min_val: float, max_val: float) -> None:
        """Validate float configuration value."""
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ConfigError(f"{name} must be a number, got {type(value).__name__}")
        if not (min_val <= value <= max_val):
            raise ConfigError(f"{name} must be between {min_val} and {max_val}, got {value}")

    def __repr__(self) -> str:
        return (
            f"Config(debounce_ms={self.debounce_ms}, "
            f"poll_interval={self.poll_interval}, "
            f"network_timeout={self.network_timeout}, "
            f"sync_coalesce_ms={self.sync_coalesce_ms}, "
            f"scroll_margin={self.scroll_margin}, "
            f"tab_width={self.tab_width}, "
            f"max_preview_chars={self.max_preview_chars}, "
            f"max_untracked_files={self.max_untracked_files})"
        )


# Global configuration instance
config = Config()
