"""Shared error taxonomy and Problem Details helpers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4


def generate_correlation_id() -> str:
    """
    Return a new correlation identifier for tracing errors.

    Returns
    -------
    str
        UUID4 correlation identifier.
    """
    return str(uuid4())


@dataclass(frozen=True)
class ProblemDetail:
    """
    RFC 9457 Problem Details payload.

    Fields mirror the standard shape with optional extras for diagnostics.
    """

    type: str
    title: str
    detail: str
    instance: str = field(default_factory=generate_correlation_id)
    code: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize to a JSON-friendly dict.

        Returns
        -------
        dict[str, Any]
            Problem detail payload as a plain dictionary.
        """
        payload: dict[str, Any] = {
            "type": self.type,
            "title": self.title,
            "detail": self.detail,
            "instance": self.instance,
        }
        if self.code is not None:
            payload["code"] = self.code
        if self.extras:
            payload["extras"] = self.extras
        return payload


def problem(
    code: str,
    title: str,
    detail: str,
    *,
    instance: str | None = None,
    type_uri: str | None = None,
    extras: dict[str, Any] | None = None,
) -> ProblemDetail:
    """
    Create a ProblemDetail with defaults for type/instance.

    Parameters
    ----------
    code
        Stable problem code (e.g., 'invocation.missing_argument').
    title
        Human-readable error summary.
    detail
        Detailed description of the error.
    instance
        Correlation/trace identifier; defaults to a UUID4.
    type_uri
        URI identifying the problem type; defaults to a udeps namespace.
    extras
        Optional structured context for diagnostics.

    Returns
    -------
    ProblemDetail
        Structured problem payload.
    """
    resolved_instance = instance or generate_correlation_id()
    resolved_type = type_uri or f"https://problems.udeps.dev/{code}"
    return ProblemDetail(
        type=resolved_type,
        title=title,
        detail=detail,
        instance=resolved_instance,
        code=code,
        extras=extras or {},
    )


def log_problem(logger: logging.Logger | logging.LoggerAdapter, detail: ProblemDetail) -> None:
    """Emit a Problem Detail as a structured error log."""
    logger.error(json.dumps(detail.to_dict()))


class ProblemError(Exception):
    """Base exception carrying a ProblemDetail payload."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail.detail)
        self.problem_detail = detail


class MissingRequiredArgumentError(ProblemError):
    """A compiler invocation lacks an argument needed to locate its usage artifact."""

    def __init__(self, argument: str, *, package: str | None = None) -> None:
        detail = f"{argument} needed"
        if package is not None:
            detail = f"{detail} (package {package})"
        super().__init__(
            problem(
                code="invocation.missing_argument",
                title="Missing required compiler argument",
                detail=detail,
                extras={"argument": argument},
            )
        )
        self.argument = argument


class InvalidArgumentError(ProblemError):
    """A compiler or command-line argument has an unexpected shape."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail)


class ManifestMetadataError(ProblemError):
    """Package metadata (the ignore configuration) could not be parsed."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail)


class GraphError(ProblemError):
    """The resolved dependency graph payload is malformed or incomplete."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail)


class UsageArtifactError(ProblemError):
    """A usage artifact for a local compilation unit is missing or unreadable."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail)


class BuildError(ProblemError):
    """The build orchestrator or resolver exited unsuccessfully."""

    def __init__(self, detail: ProblemDetail) -> None:
        super().__init__(detail)
