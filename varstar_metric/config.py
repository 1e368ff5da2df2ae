"""Configuration helpers for the metric learning pipeline."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml  # type: ignore[import-untyped]
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DistanceSource = Literal["seed", "current"]
Wraparound = Literal["skip_first", "full"]


class ITMLConfig(BaseModel):
    """Immutable settings for one ITML run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Constraint generation
    const_factor: int = Field(default=20, description="Target constraints per ordered pattern pair")
    max_attempts: int = Field(default=20, description="Draws per target constraint before giving up")
    lower_percentile: float = Field(default=5.0, description="Percentile used for the similarity bound")
    upper_percentile: float = Field(default=95.0, description="Percentile used for the dissimilarity bound")
    num_distances: int = Field(default=2000, description="Pairs sampled when estimating bounds")
    exclude_self_pairs: bool = Field(default=True, description="Redraw identical ids during bound estimation")

    # Projection
    slack: float = Field(default=1e-4, description="Slack parameter gamma")
    rel_error: float = Field(default=1e-10, description="Relative change in lambda that signals convergence")
    max_iter: Optional[int] = Field(default=None, description="Iteration cap; None runs until convergence")
    timeout_seconds: Optional[float] = Field(default=None, description="Wall-clock budget for the projection")
    distance_against: DistanceSource = Field(default="seed", description="Matrix used for the constraint distance")
    wraparound: Wraparound = Field(default="skip_first", description="Cursor rule after a full cycle")
    psd_clip: bool = Field(default=False, description="Clip negative eigenvalues of the final metric")

    seed: Optional[int] = Field(default=None, description="Random seed for bounds and sampling")

    @field_validator("const_factor", "max_attempts", "num_distances")
    @classmethod
    def validate_positive_int(cls, v):
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator("slack")
    @classmethod
    def validate_slack(cls, v):
        if v <= 0:
            raise ValueError("slack must be positive")
        return v

    @field_validator("rel_error")
    @classmethod
    def validate_rel_error(cls, v):
        if v < 0:
            raise ValueError("rel_error must be non-negative")
        return v

    @field_validator("lower_percentile", "upper_percentile")
    @classmethod
    def validate_percentile(cls, v):
        if not 0.0 <= v <= 100.0:
            raise ValueError("percentiles must be between 0 and 100")
        return v

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        if v is not None and v <= 0:
            raise ValueError("timeout_seconds must be positive")
        return v

    @model_validator(mode="after")
    def validate_consistency(self):
        if self.lower_percentile > self.upper_percentile:
            raise ValueError(
                f"lower_percentile ({self.lower_percentile}) must not exceed "
                f"upper_percentile ({self.upper_percentile})"
            )
        if self.max_iter is not None and self.max_iter <= 10:
            raise ValueError("max_iter must exceed 10 when set")
        return self


def load_config(path: str | Path) -> Dict[str, Any]:
    """Load a YAML configuration file and expand environment variables."""
    with Path(path).expanduser().resolve().open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return _expand_env_vars(data)


def dump_config(config: Dict[str, Any], path: str | Path) -> None:
    """Persist configuration to disk."""
    with Path(path).expanduser().resolve().open("w", encoding="utf-8") as handle:
        yaml.safe_dump(config, handle, sort_keys=False)


def itml_config_from_dict(config: Optional[Dict[str, Any]]) -> ITMLConfig:
    """Validate the ``itml`` section of a loaded configuration mapping."""
    section = (config or {}).get("itml") or {}
    if not isinstance(section, dict):
        raise ValueError("The 'itml' config section must be a mapping")
    return ITMLConfig.model_validate(section)


def load_itml_config(path: str | Path) -> ITMLConfig:
    """Load and validate ITML settings from a YAML file."""
    return itml_config_from_dict(load_config(path))


def _expand_env_vars(node: Any) -> Any:
    """Recursively expand environment variables in config values."""

    if isinstance(node, dict):
        return {key: _expand_env_vars(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_expand_env_vars(value) for value in node]
    if isinstance(node, str):
        return os.path.expandvars(node)
    return node
