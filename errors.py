"""
errors.py
─────────
Exceptions shared by the cloner.

Precondition failures (bad request, unreadable snapshot, missing backup) are
raised synchronously before a job starts.  AdapterError is the only thing the
engine expects from a remote call.  It and DuplicateIdError are absorbed per
item; anything else aborts the job.
"""

from __future__ import annotations


class ClonerError(Exception):
    """Base class for every error raised by this package."""


# ── remote directory ──────────────────────────────────────────────────────────


class AdapterError(ClonerError):
    def __init__(self, message: str, status: int | None = None, code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.status}: {self.message}"
        return self.message


class AuthError(AdapterError):
    """The credential was rejected (HTTP 401)."""


class DuplicateIdError(ClonerError):
    """Two snapshot entities share an identifier; the second one is not created."""


# ── preconditions ─────────────────────────────────────────────────────────────


class RequestValidationError(ClonerError):
    """A job request is missing required fields; no job is created."""


class SnapshotFormatError(ClonerError):
    """A document matches none of the recognised snapshot shapes."""


class SnapshotNotFound(ClonerError):
    pass


class InvalidSnapshotName(ClonerError):
    pass


# ── progress channel ──────────────────────────────────────────────────────────


class EmitterClosed(ClonerError):
    """An event was emitted after the terminal event."""
