"""Pytest configuration for the udeps test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from tests._helpers.builders import MetadataBuilder


@pytest.fixture
def metadata_builder(tmp_path: Path) -> MetadataBuilder:
    """Provide an empty metadata builder rooted in a temporary workspace.

    Returns
    -------
    MetadataBuilder
        Builder with no packages registered.
    """
    return MetadataBuilder(root=tmp_path / "ws")


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    """Provide the compiler output directory used by recorded units.

    Returns
    -------
    Path
        Existing directory under the temporary workspace.
    """
    path = tmp_path / "target" / "debug" / "deps"
    path.mkdir(parents=True)
    return path
