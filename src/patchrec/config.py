"""YAML configuration for the patchrec CLI."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError
from .recorder import DEFAULT_CONTEXT
from .series import DEFAULT_SERIES_NAME
from .snapshot import DEFAULT_EXCLUDES

__all__ = ["DEFAULT_CONFIG_NAME", "PatchrecConfig", "load_config"]

DEFAULT_CONFIG_NAME = "patchrec.yaml"


class PatchrecConfig(BaseModel):
    """Settings shared by the ``record``, ``apply`` and ``series`` commands."""

    model_config = ConfigDict(extra="forbid")

    patches_dir: str = "patches"
    series_file: str = DEFAULT_SERIES_NAME
    context_lines: int = Field(default=DEFAULT_CONTEXT, ge=0)
    author: Optional[str] = None
    exclude: List[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDES))

    def patches_path(self, base: Path) -> Path:
        """Resolve ``patches_dir`` relative to ``base`` (the config file's folder)."""
        candidate = Path(self.patches_dir)
        if not candidate.is_absolute():
            candidate = base / candidate
        return candidate


def load_config(config_path: Path | str | None, *, required: bool = False) -> PatchrecConfig:
    """Load configuration from ``config_path``; a missing optional file yields defaults."""
    if config_path is None:
        return PatchrecConfig()
    path = Path(config_path)
    if not path.exists():
        if required:
            raise ConfigError(f"Config file not found: {path}", details={"path": str(path)})
        return PatchrecConfig()

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigError(f"Failed to parse config {path}: {error}", details={"path": str(path)}) from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.", details={"path": str(path)})

    try:
        return PatchrecConfig.model_validate(data)
    except ValidationError as error:
        raise ConfigError(f"Invalid configuration in {path}: {error}", details={"path": str(path)}) from error
