"""Error kinds raised by the in-memory Firestore engine.

Each error carries a machine-readable ``error_code`` and an HTTP-ish
``status_code`` so callers can map them onto an error envelope.
Exceptions raised by application trigger handlers or transaction bodies are
never wrapped; they propagate unchanged.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(eq=False)
class FirestoreStubError(Exception):
    """Base class for engine errors."""

    error_code: str = "firestore.error"
    status_code: int = 500
    message: str = ""
    path: Optional[str] = None

    def __str__(self):
        return self.message


@dataclass(eq=False)
class DocumentNotFound(FirestoreStubError):
    """Raised by update() when the target document does not exist."""

    error_code: str = "firestore.not_found"
    status_code: int = 404


@dataclass(eq=False)
class DocumentAlreadyExists(FirestoreStubError):
    """Raised by create() when the target document already exists."""

    error_code: str = "firestore.already_exists"
    status_code: int = 409


@dataclass(eq=False)
class TransactionConflict(FirestoreStubError):
    """Raised at commit when a document read by the transaction has changed."""

    error_code: str = "firestore.aborted"
    status_code: int = 409


@dataclass(eq=False)
class InvalidTriggerPattern(FirestoreStubError):
    error_code: str = "firestore.invalid_pattern"
    status_code: int = 400


@dataclass(eq=False)
class UnsupportedOperator(FirestoreStubError):
    error_code: str = "firestore.unsupported_operator"
    status_code: int = 400


@dataclass(eq=False)
class InvalidPath(FirestoreStubError, ValueError):
    error_code: str = "firestore.invalid_path"
    status_code: int = 400


@dataclass(eq=False)
class FrameInterleavingError(FirestoreStubError, RuntimeError):
    """Raised when two tasks try to stack atomic frames on one store."""

    error_code: str = "firestore.frame_interleaving"
    status_code: int = 500
