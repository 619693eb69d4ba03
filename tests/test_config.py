"""Tests for engine configuration and source selection settings."""

import argparse

import pytest

from sidediff.utils.config import Config, ConfigError, SourceConfig


def _args(**overrides):
    values = dict(
        ref=None,
        base=None,
        head=None,
        two_dot=False,
        pr=None,
        repo=None,
        path=None,
        no_watch=False,
        poll_interval=None,
        token=None,
        remember_positions=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "SIDEDIFF_DEBOUNCE_MS",
        "SIDEDIFF_POLL_INTERVAL",
        "SIDEDIFF_NETWORK_TIMEOUT",
        "SIDEDIFF_SYNC_COALESCE_MS",
        "SIDEDIFF_SCROLL_MARGIN",
        "SIDEDIFF_TAB_WIDTH",
        "SIDEDIFF_MAX_PREVIEW_CHARS",
        "SIDEDIFF_MAX_UNTRACKED_FILES",
        "SIDEDIFF_GITHUB_TOKEN",
        "GITHUB_TOKEN",
        "GH_TOKEN",
        "SIDEDIFF_REPO",
        "SIDEDIFF_NO_WATCH",
        "SIDEDIFF_REMEMBER_POSITIONS",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestConfig:
    def test_defaults(self, clean_env):
        config = Config()
        assert config.debounce_ms == 300
        assert config.poll_interval == 2.0
        assert config.network_timeout == 30
        assert config.sync_coalesce_ms == 150
        assert config.scroll_margin == 3
        assert config.tab_width == 4
        assert config.max_preview_chars == 500
        assert config.max_untracked_files == 200

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("SIDEDIFF_DEBOUNCE_MS", "120")
        clean_env.setenv("SIDEDIFF_POLL_INTERVAL", "7.5")
        clean_env.setenv("SIDEDIFF_TAB_WIDTH", "8")
        config = Config()
        assert config.debounce_ms == 120
        assert config.poll_interval == 7.5
        assert config.tab_width == 8

    def test_unparseable_value_falls_back_to_default(self, clean_env):
        clean_env.setenv("SIDEDIFF_SCROLL_MARGIN", "lots")
        clean_env.setenv("SIDEDIFF_POLL_INTERVAL", "soon")
        config = Config()
        assert config.scroll_margin == 3
        assert config.poll_interval == 2.0

    @pytest.mark.parametrize(
        "key,value",
        [
            ("SIDEDIFF_DEBOUNCE_MS", "10"),
            ("SIDEDIFF_POLL_INTERVAL", "0.1"),
            ("SIDEDIFF_NETWORK_TIMEOUT", "1000"),
            ("SIDEDIFF_TAB_WIDTH", "0"),
            ("SIDEDIFF_MAX_PREVIEW_CHARS", "10"),
            ("SIDEDIFF_MAX_UNTRACKED_FILES", "-1"),
        ],
    )
    def test_out_of_range_values_are_rejected(self, clean_env, key, value):
        clean_env.setenv(key, value)
        with pytest.raises(ConfigError):
            Config()

    def test_repr(self, clean_env):
        assert "debounce_ms=300" in repr(Config())


class TestSourceConfig:
    def test_from_args(self):
        config = SourceConfig.from_args(_args(base="main", two_dot=True, path=["src"], no_watch=True))
        assert config.base == "main"
        assert not config.three_dot
        assert config.paths == ["src"]
        assert not config.watch

    def test_token_from_environment(self, clean_env):
        clean_env.setenv("GH_TOKEN", "from-gh")
        assert SourceConfig().merge_with_env().token == "from-gh"
        clean_env.setenv("GITHUB_TOKEN", "from-github")
        assert SourceConfig().merge_with_env().token == "from-github"
        assert SourceConfig(token="explicit").merge_with_env().token == "explicit"

    def test_boolean_flags_from_environment(self, clean_env):
        clean_env.setenv("SIDEDIFF_NO_WATCH", "yes")
        clean_env.setenv("SIDEDIFF_REMEMBER_POSITIONS", "1")
        clean_env.setenv("SIDEDIFF_REPO", "/srv/repo")
        merged = SourceConfig().merge_with_env()
        assert not merged.watch
        assert merged.remember_positions
        assert merged.repo == "/srv/repo"

    def test_merge_does_not_mutate(self, clean_env):
        clean_env.setenv("GH_TOKEN", "t")
        original = SourceConfig()
        original.merge_with_env()
        assert original.token is None

    @pytest.mark.parametrize(
        "config,expected",
        [
            (SourceConfig(), "working tree"),
            (SourceConfig(ref="HEAD~1"), "HEAD~1"),
            (SourceConfig(head="dev"), "main...dev"),
            (SourceConfig(base="release", three_dot=False), "release..HEAD"),
            (SourceConfig(pr="12"), "pull request 12"),
        ],
    )
    def test_describe(self, config, expected):
        assert config.describe() == expected
