"""
Configuration for PharmaTwin.
Centralizes tunable parameters for confidence banding, PK sampling,
explanation generation and uploads.
"""

import json
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_GUIDELINE_PATH = Path(__file__).resolve().parent.parent / "data" / "pgx_guidelines.json"


class ConfidenceBandConfig(BaseModel):
    """Coarse banding applied to the GCI-derived confidence fraction."""

    ceiling: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Value reported when the raw fraction reaches 1.0",
    )
    band_lower: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Exclusive lower bound of the snapping band",
    )
    band_upper: float = Field(
        default=0.95,
        ge=0.0,
        le=1.0,
        description="Exclusive upper bound of the snapping band",
    )
    band_value: float = Field(
        default=0.90,
        ge=0.0,
        le=1.0,
        description="Value reported for raw fractions strictly inside (band_lower, band_upper)",
    )


class PKConfig(BaseModel):
    """One-compartment simulation settings."""

    sample_intervals: int = Field(
        default=48,
        gt=0,
        description="Number of equal intervals the time window is divided into",
    )
    singular_tolerance: float = Field(
        default=0.001,
        gt=0.0,
        description="|ka - ke| at or below this value is treated as singular",
    )
    half_lives_shown: float = Field(
        default=5.0,
        gt=0.0,
        description="Window covers this many literature half-lives before snapping",
    )
    window_choices: List[float] = Field(
        default_factory=lambda: [12.0, 24.0, 72.0, 120.0],
        description="Readable window sizes in hours, ascending",
    )


class ExplanationConfig(BaseModel):
    """Free-text explanation side task."""

    enabled: bool = Field(default=True, description="Call the LLM for per-drug explanations")
    timeout_seconds: float = Field(
        default=12.0,
        gt=0.0,
        description="Per-drug budget before the fallback explanation is used",
    )
    max_tokens: int = Field(default=600, gt=0)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)


class UploadConfig(BaseModel):
    max_upload_bytes: int = Field(default=50 * 1024 * 1024, gt=0)
    allowed_suffixes: List[str] = Field(default_factory=lambda: [".vcf"])


class PharmaTwinConfig(BaseModel):
    """Main configuration."""

    guideline_path: Optional[str] = Field(
        default=None,
        description="Alternative guideline dataset; the bundled dataset is used when unset",
    )
    confidence_bands: ConfidenceBandConfig = Field(default_factory=ConfidenceBandConfig)
    pk: PKConfig = Field(default_factory=PKConfig)
    explanation: ExplanationConfig = Field(default_factory=ExplanationConfig)
    upload: UploadConfig = Field(default_factory=UploadConfig)
    guideline_source: str = Field(default="CPIC", description="Guideline tag attached to recommendations")

    def resolved_guideline_path(self) -> Path:
        return Path(self.guideline_path) if self.guideline_path else DEFAULT_GUIDELINE_PATH


# Global configuration instance
_config: PharmaTwinConfig = PharmaTwinConfig()


def get_config() -> PharmaTwinConfig:
    """Get the global configuration instance."""
    return _config


def update_config(**kwargs) -> PharmaTwinConfig:
    """
    Update configuration parameters.

    Nested keys use dots, e.g. ``update_config(**{"pk.sample_intervals": 96})``.
    """
    global _config
    current_dict = _config.model_dump()

    for key, value in kwargs.items():
        if "." in key:
            parts = key.split(".")
            current = current_dict
            for part in parts[:-1]:
                current = current[part]
            current[parts[-1]] = value
        else:
            current_dict[key] = value

    _config = PharmaTwinConfig(**current_dict)
    return _config


def reset_config() -> PharmaTwinConfig:
    global _config
    _config = PharmaTwinConfig()
    return _config


def load_config_from_file(filepath: str) -> PharmaTwinConfig:
    """Load configuration from a JSON file."""
    global _config

    with open(filepath, "r") as f:
        config_dict = json.load(f)

    _config = PharmaTwinConfig(**config_dict)
    return _config


def save_config_to_file(filepath: str) -> None:
    """Save current configuration to a JSON file."""
    with open(filepath, "w") as f:
        json.dump(_config.model_dump(), f, indent=2)


def get_confidence_bands() -> ConfidenceBandConfig:
    return _config.confidence_bands


def get_pk_config() -> PKConfig:
    return _config.pk


def get_explanation_config() -> ExplanationConfig:
    return _config.explanation
