"""Load per-unit usage artifacts (rustc save-analysis documents)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from udeps.errors import UsageArtifactError, problem
from udeps.ingestion.invocation import InvocationRecord

log = logging.getLogger(__name__)


class CrateId(BaseModel):
    """Identity of a crate inside a save-analysis document."""

    model_config = ConfigDict(extra="ignore")

    name: str
    disambiguator: tuple[int, int] | None = None


class ExternalCrate(BaseModel):
    """External crate referenced by the analysed unit."""

    model_config = ConfigDict(extra="ignore")

    id: CrateId
    file_name: str | None = None
    num: int | None = None


class Prelude(BaseModel):
    """Crate-level summary of a save-analysis document."""

    model_config = ConfigDict(extra="ignore")

    external_crates: list[ExternalCrate] = Field(default_factory=list)


class SaveAnalysis(BaseModel):
    """Subset of the save-analysis document udeps reads."""

    model_config = ConfigDict(extra="ignore")

    prelude: Prelude | None = None

    @property
    def library_names(self) -> frozenset[str]:
        """Crate names referenced from inside the unit."""
        if self.prelude is None:
            return frozenset()
        return frozenset(crate.id.name for crate in self.prelude.external_crates)


@dataclass(frozen=True)
class UsageArtifact:
    """Library names a compiled unit was observed to reference."""

    record: InvocationRecord
    library_names: frozenset[str]


def load_usage_artifact(record: InvocationRecord) -> UsageArtifact:
    """
    Read the save-analysis document for a unit.

    Parameters
    ----------
    record
        Invocation whose artifact to load.

    Returns
    -------
    UsageArtifact
        Referenced library names.

    Raises
    ------
    UsageArtifactError
        When the document is missing, unreadable, or malformed.
    """
    path = record.usage_artifact_path
    log.info("Loading save analysis from %s", path)
    try:
        text = path.read_text(encoding="utf8")
        analysis = SaveAnalysis.model_validate_json(text)
    except (OSError, ValidationError) as exc:
        raise UsageArtifactError(
            problem(
                code="artifact.unreadable",
                title="Usage artifact unavailable",
                detail=f"could not load save analysis for `{record.crate_name}` from {path}: {exc}",
                extras={"path": str(path), "package": str(record.package_id)},
            )
        ) from exc
    return UsageArtifact(record=record, library_names=analysis.library_names)
