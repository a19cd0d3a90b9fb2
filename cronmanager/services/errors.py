from __future__ import annotations

import re
from enum import Enum
from typing import Optional


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    ACCESS_DENIED = "access_denied"
    BINARY_MISSING = "binary_missing"
    NO_EXISTING_CRONTAB = "no_existing_crontab"
    PARTIAL_FAILURE = "partial_failure"
    GENERIC = "generic"
    BUSY = "busy"
    STALE = "stale"


class CronManagerError(Exception):
    """Base exception for crontab manager errors."""

    pass


class ScheduleValidationError(CronManagerError, ValueError):
    """Raised when a schedule/command pair is rejected before touching the host."""

    pass


class EntryIndexError(CronManagerError, IndexError):
    """Raised when a deletion targets a line outside the document."""

    pass


class BinaryMissingError(CronManagerError):
    """Raised when a required executable is not available on the host."""

    def __init__(self, binary: str) -> None:
        super().__init__(f"required executable not found: {binary}")
        self.binary = binary


class CommandFailed(CronManagerError):
    """
    Fehlgeschlagener Aufruf des Command-Executors.

    Trägt stdout/stderr/exit_status wie ein erfolgreiches Ergebnis,
    dazu optional einen `problem`-Code (z.B. "access-denied", "not-found").
    """

    def __init__(
        self,
        message: str,
        *,
        stdout: str = "",
        stderr: str = "",
        exit_status: Optional[int] = None,
        problem: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stdout = stdout
        self.stderr = stderr
        self.exit_status = exit_status
        self.problem = problem


# Muster aus den Meldungen von crontab/sudo; bewusst string-basiert,
# die Tools liefern dafür keine strukturierten Exit-Codes.
_ACCESS_DENIED_RE = re.compile(
    r"permission denied|access denied|authorization|not authorized|a password is required",
    re.IGNORECASE,
)
_NO_CRONTAB_MARKER = "no crontab for"


def failure_text(failure: BaseException, *, include_stdout: bool = True) -> str:
    """
    Fasst die Diagnose eines Fehlschlags zusammen.

    include_stdout=False für Install-Stufen: stdout kann dort Inhalt der
    Crontab selbst enthalten und darf weder klassifiziert noch angezeigt werden.
    """
    attrs = ("stderr", "stdout", "message", "problem") if include_stdout else ("stderr", "message", "problem")
    parts = []
    for attr in attrs:
        value = getattr(failure, attr, None)
        if value:
            parts.append(str(value))
    if not parts:
        parts.append(str(failure))
    return "\n".join(parts)


def is_access_denied(failure: BaseException, *, include_stdout: bool = True) -> bool:
    if getattr(failure, "problem", None) == "access-denied":
        return True
    return bool(_ACCESS_DENIED_RE.search(failure_text(failure, include_stdout=include_stdout)))


def is_no_crontab(failure: BaseException, *, include_stdout: bool = True) -> bool:
    return _NO_CRONTAB_MARKER in failure_text(failure, include_stdout=include_stdout).lower()


def classify(failure: BaseException, *, probing: bool = False, include_stdout: bool = True) -> OutcomeKind:
    """
    Ordnet einen Fehlschlag genau einer Kategorie zu.

    Reihenfolge: access denied > "no crontab for" > binary missing (nur beim
    Capability-Probe) > generic.
    """
    if is_access_denied(failure, include_stdout=include_stdout):
        return OutcomeKind.ACCESS_DENIED
    if is_no_crontab(failure, include_stdout=include_stdout):
        return OutcomeKind.NO_EXISTING_CRONTAB
    if probing:
        return OutcomeKind.BINARY_MISSING
    return OutcomeKind.GENERIC
