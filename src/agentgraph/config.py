"""Engine configuration loaded from YAML."""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


@dataclass
class EngineConfig:
    max_steps: int = 8
    decision_retries: int = 1
    decision_timeout: float | None = None
    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    system: str | None = None

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "EngineConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        config = cls(**data)
        config.validate()
        return config

    def validate(self) -> None:
        if self.max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        if self.decision_retries < 0:
            raise ValueError("decision_retries must be >= 0")
        if self.decision_timeout is not None and self.decision_timeout <= 0:
            raise ValueError("decision_timeout must be positive")

    def override(self, **values: Any) -> "EngineConfig":
        """Copy with every non-None value applied (CLI flags over file values)."""
        config = replace(self, **{k: v for k, v in values.items() if v is not None})
        config.validate()
        return config


def load_config(path: str | None) -> EngineConfig:
    """Read an ``EngineConfig`` from a YAML file.

    A missing path or an empty file gives the defaults.
    """
    if path is None:
        return EngineConfig()
    text = Path(path).read_text()
    data = yaml.safe_load(text)
    if data is None:
        return EngineConfig()
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return EngineConfig.from_mapping(data)
