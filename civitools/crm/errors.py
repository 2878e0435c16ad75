"""Exceptions raised by the CiviCRM access layer.

Not-found conditions are never exceptions: the client returns ``None`` or an
empty list for those.
"""

from __future__ import annotations


class CiviCRMError(Exception):
    """Base class for failures talking to the CiviCRM query engine."""


class ProcessError(CiviCRMError):
    """The ``cv`` process could not be spawned, timed out, or exited non-zero."""

    def __init__(
        self,
        message: str,
        *,
        command: str = "",
        exit_status: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(message)
        self.command = command
        self.exit_status = exit_status
        self.stderr = stderr


class DecodeError(CiviCRMError):
    """stdout of a successful run was not the JSON the caller expected."""

    def __init__(self, message: str, *, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text
