from __future__ import annotations

from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    OK = 0
    FAILURE = 1


class ReservationToolError(Exception):
    """Base error for the reservation tool."""


class ConfigError(ReservationToolError, ValueError):
    """Raised for configuration or argument issues."""


class ExportError(ReservationToolError):
    """Raised when writing CSV artifacts fails."""


class AzCliError(ReservationToolError):
    """
    Raised when an az CLI invocation exits non-zero, cannot be started,
    or returns output that is not valid JSON.
    """

    def __init__(
        self,
        message: str,
        *,
        returncode: Optional[int] = None,
        stderr: str = "",
        kind: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr or ""
        self.kind = kind or classify_az_error(self.stderr or message)


NOT_FOUND = "not_found"
PERMISSION_DENIED = "permission_denied"
NOT_LOGGED_IN = "not_logged_in"
NOT_INSTALLED = "not_installed"
OTHER = "other"

# Expected failure classes during order listing: reported as guidance, never fatal.
EXPECTED_DISCOVERY_KINDS = {NOT_FOUND, PERMISSION_DENIED}


def classify_az_error(text: str) -> str:
    low = (text or "").strip().lower()
    if not low:
        return OTHER
    if any(
        token in low
        for token in (
            "az login",
            "please run 'az login'",
            "not logged in",
            "no subscription found",
            "aadsts",
        )
    ):
        return NOT_LOGGED_IN
    if any(
        token in low
        for token in (
            "is not in the 'az' command group",
            "misspelled or not recognized",
            "requires the extension",
            "no such file or directory",
            "command not found",
        )
    ):
        return NOT_INSTALLED
    if any(
        token in low
        for token in (
            "authorizationfailed",
            "does not have authorization",
            "forbidden",
            "insufficient privileges",
            "status: 403",
            "(403)",
        )
    ):
        return PERMISSION_DENIED
    if any(
        token in low
        for token in (
            "resourcenotfound",
            "notfound",
            "not found",
            "does not exist",
            "(404)",
        )
    ):
        return NOT_FOUND
    return OTHER


_GUIDANCE = {
    NOT_FOUND: (
        "No reservation orders were found for the signed-in account. "
        "Reservations are billing-scope objects: check that you are signed in to the tenant "
        "that purchased them (az account show)."
    ),
    PERMISSION_DENIED: (
        "The signed-in account is not allowed to read reservations. "
        "Ask a Reservation Administrator or an existing reservation Owner to grant access."
    ),
    NOT_LOGGED_IN: "The Azure CLI has no active session. Run 'az login' and retry.",
    NOT_INSTALLED: (
        "The Azure CLI or its 'reservation' extension is not available. "
        "Install az and run 'az extension add --name reservation'."
    ),
    OTHER: "The Azure CLI returned an unexpected error; rerun with --log-level DEBUG for details.",
}


def guidance_for(kind: str) -> str:
    return _GUIDANCE.get(kind, _GUIDANCE[OTHER])


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, SystemExit) and isinstance(exc.code, int):
        return exc.code
    return int(ExitCode.FAILURE)
