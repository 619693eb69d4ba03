"""Tests for command line input validation."""

import pytest

from sidediff.utils.config import SourceConfig
from sidediff.utils.validation import (
    ValidationError,
    validate_path_filters,
    validate_poll_interval,
    validate_ref_expression,
    validate_repo_path,
    validate_source_config,
)


class TestRefExpressions:
    @pytest.mark.parametrize(
        "ref",
        ["HEAD", "HEAD~1", "HEAD^^", "main..dev", "main...feature/x", "v1.2.3", "abc123~2^"],
    )
    def test_valid(self, ref):
        assert validate_ref_expression(ref) == ref

    @pytest.mark.parametrize(
        "ref",
        ["", "   ", "--output=/tmp/x", "main dev", "HEAD@{1}", "a:b", "feat*", "bad\x01ref", "x" * 600],
    )
    def test_invalid(self, ref):
        with pytest.raises(ValidationError):
            validate_ref_expression(ref)

    def test_whitespace_is_trimmed(self):
        assert validate_ref_expression("  HEAD~2 ") == "HEAD~2"


class TestPathsAndIntervals:
    def test_repo_path(self, tmp_path):
        assert validate_repo_path(str(tmp_path)) == str(tmp_path.resolve())

    def test_missing_repo_path(self, tmp_path):
        with pytest.raises(ValidationError, match="does not exist"):
            validate_repo_path(str(tmp_path / "missing"))

    def test_repo_path_must_be_directory(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x", encoding="utf-8")
        with pytest.raises(ValidationError, match="not a directory"):
            validate_repo_path(str(target))

    def test_path_filters(self):
        assert validate_path_filters(["src", " docs/ "]) == ["src", "docs/"]
        assert validate_path_filters(None) == []
        with pytest.raises(ValidationError):
            validate_path_filters(["--cached"])

    @pytest.mark.parametrize("value,expected", [(None, None), ("2", 2.0), (0.5, 0.5), (300, 300.0)])
    def test_poll_interval(self, value, expected):
        assert validate_poll_interval(value) == expected

    @pytest.mark.parametrize("value", ["fast", 0.1, 1000])
    def test_poll_interval_rejected(self, value):
        with pytest.raises(ValidationError):
            validate_poll_interval(value)


class TestSourceConfigValidation:
    @pytest.mark.parametrize(
        "config",
        [
            SourceConfig(ref="HEAD", pr="12"),
            SourceConfig(ref="HEAD", base="main"),
            SourceConfig(head="dev", pr="12"),
        ],
    )
    def test_conflicting_sources(self, config):
        with pytest.raises(ValidationError, match="Choose only one"):
            validate_source_config(config)

    def test_valid_config_is_normalized(self, tmp_path):
        config = validate_source_config(
            SourceConfig(ref=" main..dev ", repo=str(tmp_path), paths=["src"], poll_interval="3")
        )
        assert config.ref == "main..dev"
        assert config.repo == str(tmp_path.resolve())
        assert config.poll_interval == 3.0

    def test_empty_pull_request(self):
        with pytest.raises(ValidationError):
            validate_source_config(SourceConfig(pr="\t"))
