"""Parse compiler argument lists into per-unit invocation records."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from udeps.errors import InvalidArgumentError, MissingRequiredArgumentError, problem
from udeps.models.package import PackageId

DEFAULT_CRATE_TYPE = "bin"
SAVE_ANALYSIS_DIR = "save-analysis"


@dataclass(frozen=True)
class InvocationRecord:
    """
    Metadata of one compiled unit, enough to find its usage artifact.

    Attributes
    ----------
    package_id : PackageId
        Package the unit belongs to.
    custom_build : bool
        True for build-script units.
    crate_name : str
        Value of `--crate-name`.
    crate_type : str
        Value of `--crate-type`, `bin` when absent.
    extra_filename : str
        Value of `-C extra-filename`.
    cap_lints_allow : bool
        True when `--cap-lints allow` was passed.
    out_dir : Path
        Value of `--out-dir`.
    externs : tuple[tuple[str, str], ...]
        `(alias, path)` pairs from every `--extern`; the path is empty when
        the argument names no file.
    """

    package_id: PackageId
    custom_build: bool
    crate_name: str
    crate_type: str
    extra_filename: str
    cap_lints_allow: bool
    out_dir: Path
    externs: tuple[tuple[str, str], ...] = ()

    @property
    def usage_artifact_path(self) -> Path:
        """Location rustc writes the save-analysis document for this unit to."""
        is_lib = self.crate_type.endswith("lib") or self.crate_type == "proc-macro"
        prefix = "lib" if is_lib else ""
        filename = f"{prefix}{self.crate_name}{self.extra_filename}.json"
        return self.out_dir / SAVE_ANALYSIS_DIR / filename

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize to a JSON-friendly dict.

        Returns
        -------
        dict[str, Any]
            Record payload.
        """
        return {
            "package_id": {
                "name": self.package_id.name,
                "version": self.package_id.version,
                "source": self.package_id.source,
            },
            "custom_build": self.custom_build,
            "crate_name": self.crate_name,
            "crate_type": self.crate_type,
            "extra_filename": self.extra_filename,
            "cap_lints_allow": self.cap_lints_allow,
            "out_dir": str(self.out_dir),
            "externs": [list(pair) for pair in self.externs],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> InvocationRecord:
        """
        Rebuild a record from :meth:`to_dict` output.

        Returns
        -------
        InvocationRecord
            Decoded record.

        Raises
        ------
        InvalidArgumentError
            When the payload is missing fields.
        """
        try:
            pid = payload["package_id"]
            return cls(
                package_id=PackageId(name=pid["name"], version=pid["version"], source=pid["source"]),
                custom_build=bool(payload["custom_build"]),
                crate_name=str(payload["crate_name"]),
                crate_type=str(payload["crate_type"]),
                extra_filename=str(payload["extra_filename"]),
                cap_lints_allow=bool(payload["cap_lints_allow"]),
                out_dir=Path(payload["out_dir"]),
                externs=tuple((str(alias), str(path)) for alias, path in payload["externs"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidArgumentError(
                problem(
                    code="invocation.invalid_record",
                    title="Malformed invocation record",
                    detail=f"could not decode invocation record: {exc!r}",
                )
            ) from exc


def _parse_extern(arg: str, flag: str) -> tuple[str, str]:
    # `--extern name` without a path names a sysroot crate such as proc_macro.
    name, _, value = arg.partition("=")
    if not name:
        raise InvalidArgumentError(
            problem(
                code="invocation.invalid_argument",
                title="Malformed compiler argument",
                detail=f"invalid format for {flag} arg: {arg}",
                extras={"flag": flag, "value": arg},
            )
        )
    return name, value


def _values(args: Sequence[str]) -> Iterator[tuple[str, str | None]]:
    """Yield `(flag, value)` pairs, where value is the following argument."""
    it = iter(args)
    for arg in it:
        if arg in {"--extern", "--crate-name", "--crate-type", "--cap-lints", "--out-dir", "-C"}:
            yield arg, next(it, None)
        elif arg.startswith("-C") and len(arg) > 2:
            yield "-C", arg[2:]


def parse_invocation(
    package_id: PackageId,
    args: Sequence[str],
    *,
    custom_build: bool = False,
) -> InvocationRecord:
    """
    Parse a compiler argument list into an InvocationRecord.

    Parameters
    ----------
    package_id
        Package owning the unit.
    args
        Compiler arguments, without the executable.
    custom_build
        True when the unit is a build script.

    Returns
    -------
    InvocationRecord
        Parsed record.

    Raises
    ------
    MissingRequiredArgumentError
        When the crate name, extra filename, or output directory is absent.
    InvalidArgumentError
        When an `--extern` argument has an empty alias.
    """
    crate_name: str | None = None
    crate_type: str | None = None
    extra_filename: str | None = None
    out_dir: str | None = None
    cap_lints_allow = False
    externs: list[tuple[str, str]] = []
    for flag, value in _values(args):
        if value is None:
            continue
        if flag == "--extern":
            externs.append(_parse_extern(value, flag))
        elif flag == "--crate-name":
            crate_name = value
        elif flag == "--crate-type":
            crate_type = value
        elif flag == "--cap-lints":
            cap_lints_allow = cap_lints_allow or value == "allow"
        elif flag == "--out-dir":
            out_dir = value
        elif flag == "-C":
            name, _, codegen_value = value.partition("=")
            if name == "extra-filename":
                extra_filename = codegen_value
    if crate_name is None:
        raise MissingRequiredArgumentError("crate name", package=str(package_id))
    if extra_filename is None:
        raise MissingRequiredArgumentError("extra-filename", package=str(package_id))
    if out_dir is None:
        raise MissingRequiredArgumentError("outdir", package=str(package_id))
    return InvocationRecord(
        package_id=package_id,
        custom_build=custom_build,
        crate_name=crate_name,
        crate_type=crate_type or DEFAULT_CRATE_TYPE,
        extra_filename=extra_filename,
        cap_lints_allow=cap_lints_allow,
        out_dir=Path(out_dir),
        externs=tuple(externs),
    )
