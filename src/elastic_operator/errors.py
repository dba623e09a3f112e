"""Reconciliation error taxonomy and diagnostics.

Fatal problems are raised as ReconcileError subclasses and abort the
remaining steps of a phase. Best-effort failures are recorded as warning
diagnostics so the rest of the pass can still be applied and reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class ReconcileError(Exception):
    """Base class for fatal reconciliation errors."""

    def __init__(self, message: str, *, summary: str | None = None) -> None:
        super().__init__(message)
        self.summary = summary or message


class PreconditionError(ReconcileError):
    """Desired state is invalid for the observed cluster. Nothing was mutated."""

    pass


class RemoteCallError(ReconcileError):
    """A control plane call failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        summary: str | None = None,
    ) -> None:
        super().__init__(message, summary=summary)
        self.status_code = status_code


class NotFoundError(RemoteCallError):
    """The requested entity does not exist on the control plane."""

    pass


class WaitTimeoutError(ReconcileError):
    """An awaited action stayed outside its target states past the deadline."""

    def __init__(self, message: str, *, last_state: str | None = None) -> None:
        super().__init__(message)
        self.last_state = last_state


class AbnormalStateError(ReconcileError):
    """The remote system reported the entity unhealthy after an operation.

    The remote-supplied reason is kept verbatim in ``reason``.
    """

    def __init__(self, reason: str, *, summary: str | None = None) -> None:
        super().__init__(reason, summary=summary)
        self.reason = reason


class Severity(str, Enum):
    """Diagnostic severity."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class Diagnostic:
    """A single reportable problem."""

    severity: Severity
    summary: str
    detail: str = ""

    def __str__(self) -> str:
        if self.detail:
            return f"{self.severity.value}: {self.summary}: {self.detail}"
        return f"{self.severity.value}: {self.summary}"


@dataclass
class Diagnostics:
    """Ordered collection of diagnostics for one reconciliation phase."""

    items: list[Diagnostic] = field(default_factory=list)

    def warn(self, summary: str, detail: str = "") -> None:
        """Record a non-fatal problem and log it."""
        self.items.append(Diagnostic(Severity.WARNING, summary, detail))
        logger.warning(summary, extra={"detail": detail})

    def error(self, summary: str, detail: str = "") -> None:
        """Record a fatal problem."""
        self.items.append(Diagnostic(Severity.ERROR, summary, detail))

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.items if d.severity == Severity.WARNING]

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.items if d.severity == Severity.ERROR]

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self.items)
