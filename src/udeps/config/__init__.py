"""Configuration models and loaders for udeps.

This package provides:
- **Models** (`models.py`): Pydantic models for run options, tool paths, and the
  `[package.metadata.cargo-udeps]` ignore table
- **Manifest** (`manifest.py`): helpers that turn package metadata into an
  `IgnoreConfig`
"""

from udeps.config.manifest import load_ignore_config, parse_package_metadata
from udeps.config.models import (
    AnalysisOptions,
    IgnoreConfig,
    OutputKind,
    PackageMetadata,
    ToolsConfig,
)

__all__ = [
    "AnalysisOptions",
    "IgnoreConfig",
    "OutputKind",
    "PackageMetadata",
    "ToolsConfig",
    "load_ignore_config",
    "parse_package_metadata",
]
