"""Cookbook ingest configuration settings."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class CompletionConfig(BaseModel):
    """Generative completion provider (Vertex AI) configuration."""

    project_id: str = Field(default_factory=lambda: os.getenv("VERTEX_PROJECT_ID", ""))
    location: str = Field(default_factory=lambda: os.getenv("VERTEX_LOCATION", "us-central1"))
    model: str = "gemini-2.5-flash"
    timeout_s: float = Field(
        default_factory=lambda: float(os.getenv("COOKBOOK_COMPLETION_TIMEOUT_S", "30"))
    )
    max_attempts: int = 2
    max_concurrent_calls: int = Field(
        default_factory=lambda: int(os.getenv("COOKBOOK_MAX_CONCURRENT_COMPLETIONS", "4"))
    )
    max_prompt_chars: int = 20000

    @field_validator("max_attempts", "max_concurrent_calls")
    @classmethod
    def _validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be >= 1")
        return value

    @field_validator("timeout_s")
    @classmethod
    def _validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout_s must be > 0")
        return value


class ExtractionConfig(BaseModel):
    """Strategy chain and merge policy."""

    generative_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    review_floor: float = Field(default=0.5, ge=0.0, le=1.0)
    generative_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    heuristic_version: Literal["v1", "v2"] = "v2"
    locale: Literal["de", "en"] = Field(
        default_factory=lambda: os.getenv("COOKBOOK_LOCALE", "de")
    )


class SegmentationConfig(BaseModel):
    """Recipe boundary detection."""

    min_indicator_score: int = 2
    max_title_length: int = 100

    @field_validator("min_indicator_score")
    @classmethod
    def _validate_score(cls, value: int) -> int:
        if not 1 <= value <= 3:
            raise ValueError("min_indicator_score must be between 1 and 3")
        return value


class LearningConfig(BaseModel):
    """Learning store and pattern miner policy."""

    ema_alpha: float = Field(default=0.3, gt=0.0, le=1.0)
    prune_floor: float = Field(default=0.2, ge=0.0, le=1.0)
    initial_success_rate: float = Field(default=0.5, ge=0.0, le=1.0)
    reproduction_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    failure_streak_limit: int = Field(default=3, ge=1)
    persistence_retries: int = Field(default=3, ge=1)
    backoff_base_ms: int = 100
    backoff_max_ms: int = 2000
    jitter: bool = True
    hybrid_milestone: int = 50
    autonomous_milestone: int = 500

    @model_validator(mode="after")
    def _validate_milestones(self) -> "LearningConfig":
        if self.hybrid_milestone < 1 or self.autonomous_milestone <= self.hybrid_milestone:
            raise ValueError("milestones must satisfy 1 <= hybrid < autonomous")
        return self


class PipelineConfig(BaseModel):
    """Data pipeline configuration."""

    data_dir: Path = Field(default_factory=lambda: Path(os.getenv("COOKBOOK_DATA_DIR", "./data")))


class CookbookConfig(BaseModel):
    """Root configuration for the ingest pipeline."""

    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    segmentation: SegmentationConfig = Field(default_factory=SegmentationConfig)
    learning: LearningConfig = Field(default_factory=LearningConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    log_level: str = Field(default_factory=lambda: os.getenv("COOKBOOK_LOG_LEVEL", "INFO"))
