"""Record compilation units as the build orchestrator runs them."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from udeps.ingestion.invocation import InvocationRecord, parse_invocation
from udeps.models.package import PackageId

log = logging.getLogger(__name__)

SAVE_ANALYSIS_ARGS: tuple[str, ...] = ("-Z", "save-analysis")
SAVE_ANALYSIS_CONFIG_ENV = "RUST_SAVE_ANALYSIS_CONFIG"
SAVE_ANALYSIS_CONFIG = {
    "reachable_only": True,
    "full_docs": False,
    "pub_only": False,
    "distro_crate": False,
    "signatures": False,
    "borrow_data": False,
}


@dataclass(frozen=True)
class UnitInvocation:
    """
    One compiler invocation announced by the orchestrator.

    Attributes
    ----------
    package_id : PackageId
        Package the unit belongs to.
    args : tuple[str, ...]
        Compiler arguments, without the executable.
    custom_build : bool
        True for build-script units.
    is_local : bool
        True when the package source is the project's own filesystem tree.
    """

    package_id: PackageId
    args: tuple[str, ...]
    custom_build: bool = False
    is_local: bool = False

    @classmethod
    def for_package(
        cls,
        package_id: PackageId,
        args: Sequence[str],
        *,
        custom_build: bool = False,
    ) -> UnitInvocation:
        """Build an invocation classified as local by its package source."""
        return cls(
            package_id=package_id,
            args=tuple(args),
            custom_build=custom_build,
            is_local=package_id.is_path,
        )


@dataclass(frozen=True)
class UnitDecision:
    """Changes the orchestrator applies to an invocation before running it."""

    extra_args: tuple[str, ...] = ()
    env: dict[str, str] = field(default_factory=dict)

    def apply(self, args: Sequence[str]) -> list[str]:
        """Return `args` with the extra arguments appended."""
        return [*args, *self.extra_args]


class UnitObserver(Protocol):
    """Callback interface the build orchestrator drives once per unit."""

    def on_unit_observed(self, unit: UnitInvocation) -> UnitDecision:
        """Record a unit and return the changes to apply to its invocation."""
        ...

    def should_force_rebuild(self, package_id: PackageId) -> bool:
        """Return True when units of the package must be recompiled this run."""
        ...


class InvocationRecorder:
    """
    Lock-guarded accumulator of invocation records for local units.

    Orchestrators may call :meth:`on_unit_observed` from several worker
    threads; the accumulator only supports append and drain.
    """

    def __init__(self, *, cargo_exe: str | None = None) -> None:
        self._lock = threading.Lock()
        self._records: list[InvocationRecord] = []
        self._cargo_exe = cargo_exe

    @property
    def cargo_exe(self) -> str | None:
        """Cargo executable exported to every unit as `$CARGO`."""
        with self._lock:
            return self._cargo_exe

    def on_unit_observed(self, unit: UnitInvocation) -> UnitDecision:
        """
        Parse a unit, keep it when local, and decide how to run it.

        Parameters
        ----------
        unit
            Invocation announced by the orchestrator.

        Returns
        -------
        UnitDecision
            Extra compiler arguments and environment for the unit.
        """
        record = parse_invocation(unit.package_id, unit.args, custom_build=unit.custom_build)
        if (not record.cap_lints_allow) != unit.is_local:
            log.warning(
                "(!cap_lints_allow)=%s differs from is_path=%s for id=%s",
                not record.cap_lints_allow,
                unit.is_local,
                unit.package_id,
            )
        if unit.is_local:
            self.append(record)
        env: dict[str, str] = {}
        cargo_exe = self.cargo_exe
        if cargo_exe is not None:
            env["CARGO"] = cargo_exe
        if not unit.is_local:
            return UnitDecision(env=env)
        env[SAVE_ANALYSIS_CONFIG_ENV] = json.dumps(SAVE_ANALYSIS_CONFIG)
        return UnitDecision(extra_args=SAVE_ANALYSIS_ARGS, env=env)

    def should_force_rebuild(self, package_id: PackageId) -> bool:
        """
        Return True for local packages, whose artifacts must be regenerated.

        Returns
        -------
        bool
            Whether the package must be rebuilt.
        """
        return package_id.is_path

    def append(self, record: InvocationRecord) -> None:
        """Add a record to the accumulator."""
        with self._lock:
            self._records.append(record)

    def drain(self) -> list[InvocationRecord]:
        """
        Remove and return every accumulated record.

        Returns
        -------
        list[InvocationRecord]
            Records in arrival order.
        """
        with self._lock:
            records, self._records = self._records, []
        return records
