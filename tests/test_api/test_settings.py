"""Tests for configuration validation and environment defaults."""

import pytest

from cookbook.api.app import _resolve_cors_origins
from cookbook.config.settings import (
    CompletionConfig,
    CookbookConfig,
    ExtractionConfig,
    LearningConfig,
    PipelineConfig,
    SegmentationConfig,
)


def test_extraction_defaults():
    cfg = ExtractionConfig()
    assert cfg.generative_threshold == 0.6
    assert cfg.review_floor == 0.5
    assert cfg.heuristic_version == "v2"


def test_extraction_rejects_out_of_range_threshold():
    with pytest.raises(ValueError):
        ExtractionConfig(generative_threshold=1.5)


def test_completion_rejects_non_positive_timeout():
    with pytest.raises(ValueError):
        CompletionConfig(timeout_s=0)


def test_completion_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        CompletionConfig(max_concurrent_calls=0)


def test_segmentation_score_bounds():
    with pytest.raises(ValueError):
        SegmentationConfig(min_indicator_score=4)


def test_learning_rejects_zero_alpha():
    with pytest.raises(ValueError):
        LearningConfig(ema_alpha=0)


def test_data_dir_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("COOKBOOK_DATA_DIR", str(tmp_path))
    assert PipelineConfig().data_dir == tmp_path


def test_locale_from_environment(monkeypatch):
    monkeypatch.setenv("COOKBOOK_LOCALE", "en")
    assert CookbookConfig().extraction.locale == "en"


def test_cors_origins_from_environment(monkeypatch):
    monkeypatch.setenv("COOKBOOK_ALLOWED_ORIGINS", "https://a.example, https://b.example")
    assert _resolve_cors_origins() == ["https://a.example", "https://b.example"]


def test_cors_required_outside_development(monkeypatch):
    monkeypatch.setenv("COOKBOOK_ENV", "production")
    monkeypatch.delenv("COOKBOOK_ALLOWED_ORIGINS", raising=False)
    with pytest.raises(RuntimeError):
        _resolve_cors_origins()
