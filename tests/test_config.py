"""Tests for ExtractorConfig."""

from pathlib import Path

import pytest

from story_extractor.config import ExtractorConfig


def test_defaults(monkeypatch):
    monkeypatch.delenv("STORY_EXTRACTOR_CACHE_DIR", raising=False)
    config = ExtractorConfig()

    assert config.cache_dir == (Path.home() / ".storyforge" / "storyforge-images").resolve()
    assert config.cache_max_size_bytes == 500 * 1024 * 1024
    assert config.cache_cleanup_threshold_bytes == 400 * 1024 * 1024
    assert config.retry_attempts == 3
    assert config.hydration_concurrency == 5
    assert config.http_timeout == (10.0, 30.0)
    assert config.compute_workers >= 1


def test_env_overrides_default_cache_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("STORY_EXTRACTOR_CACHE_DIR", str(tmp_path / "env-cache"))
    assert ExtractorConfig().cache_dir == (tmp_path / "env-cache").resolve()


def test_explicit_cache_dir_wins_over_env(monkeypatch, tmp_path):
    monkeypatch.setenv("STORY_EXTRACTOR_CACHE_DIR", str(tmp_path / "env-cache"))
    config = ExtractorConfig(cache_dir=str(tmp_path / "explicit"))
    assert config.cache_dir == (tmp_path / "explicit").resolve()


def test_extension_gets_leading_dot(tmp_path):
    assert ExtractorConfig(cache_dir=tmp_path, cache_file_extension="jpg").cache_file_extension == ".jpg"


@pytest.mark.parametrize("overrides", [
    {"cache_max_size_mb": 100, "cache_cleanup_threshold_mb": 100},
    {"cache_max_size_mb": 100, "cache_cleanup_threshold_mb": 200},
    {"cache_cleanup_threshold_mb": -1},
    {"retry_attempts": -1},
    {"hydration_concurrency": 0},
    {"extraction_timeout_sec": 0},
])
def test_invalid_values_rejected(tmp_path, overrides):
    with pytest.raises(ValueError):
        ExtractorConfig(cache_dir=tmp_path, **overrides)


def test_dict_round_trip(config):
    data = config.to_dict()
    assert isinstance(data["cache_dir"], str)

    data["unknown_option"] = True
    assert ExtractorConfig.from_dict(data) == config
