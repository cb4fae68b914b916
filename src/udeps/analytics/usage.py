"""Match recorded invocations against NameTables to find used dependencies."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

from udeps.graphs.dependency_names import DependencyNames
from udeps.ingestion.invocation import InvocationRecord
from udeps.ingestion.save_analysis import UsageArtifact, load_usage_artifact
from udeps.models.package import ALL_KINDS, DependencyKind, PackageId

log = logging.getLogger(__name__)

ArtifactLoader = Callable[[InvocationRecord], UsageArtifact]
UsageKey = tuple[PackageId, str]


@dataclass
class UsedDependencies:
    """
    Accumulated usage evidence.

    Normal and development dependencies share one set, since a unit cannot
    tell which of the two sections made a library available; build
    dependencies are tracked separately.
    """

    normal_dev: set[UsageKey] = field(default_factory=set)
    build: set[UsageKey] = field(default_factory=set)

    def for_kind(self, kind: DependencyKind) -> set[UsageKey]:
        """Return the accumulator that holds evidence for `kind`."""
        return self.build if kind is DependencyKind.BUILD else self.normal_dev

    def mark(self, kind: DependencyKind, package_id: PackageId, name_in_toml: str) -> None:
        """Record that `name_in_toml` of `package_id` was used."""
        self.for_kind(kind).add((package_id, name_in_toml))

    def is_used(self, kind: DependencyKind, package_id: PackageId, name_in_toml: str) -> bool:
        """Return True when usage of the dependency was observed."""
        return (package_id, name_in_toml) in self.for_kind(kind)


class UsageMatcher:
    """Attribute library references from usage artifacts to declared dependencies."""

    def __init__(
        self,
        names_by_package: Mapping[PackageId, DependencyNames],
        *,
        loader: ArtifactLoader = load_usage_artifact,
    ) -> None:
        self.names_by_package = names_by_package
        self.loader = loader

    def match(self, records: Iterable[InvocationRecord]) -> UsedDependencies:
        """
        Process every record and return the used-dependency sets.

        Parameters
        ----------
        records
            Invocation records of local units.

        Returns
        -------
        UsedDependencies
            Fresh accumulator; repeated calls over the same inputs agree.

        Raises
        ------
        UsageArtifactError
            When the artifact of any record cannot be loaded.
        """
        used = UsedDependencies()
        for record in records:
            artifact = self.loader(record)
            names = self.names_by_package.get(record.package_id)
            if names is None:
                log.debug("Skipping %s: not a workspace member", record.package_id)
                continue
            self._collect(record, artifact, names, used)
        return used

    @staticmethod
    def _collect(
        record: InvocationRecord,
        artifact: UsageArtifact,
        names: DependencyNames,
        used: UsedDependencies,
    ) -> None:
        package_id = record.package_id
        for kind in ALL_KINDS:
            table = names[kind]
            for library_name in artifact.library_names:
                for name_in_toml in table.by_library_name.get(library_name, ()):
                    used.mark(kind, package_id, name_in_toml)
            # Some references only show up as explicit --extern arguments.
            for alias, _path in record.externs:
                name_in_toml = table.by_alias.get(alias)
                if name_in_toml is not None:
                    used.mark(kind, package_id, name_in_toml)
