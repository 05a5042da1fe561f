"""Exceptions raised by the dialogue core."""

from typing import Any, Dict, Optional


class AttuneError(Exception):
    """Base exception for dialogue core operations."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "ATTUNE_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(AttuneError):
    """Turn input rejected at the boundary."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, code="VALIDATION_ERROR", **kwargs)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class SessionNotFoundError(AttuneError):
    """No live session with the given id."""

    def __init__(self, session_id: str, **kwargs):
        super().__init__(
            f"Session not found: {session_id}",
            code="SESSION_NOT_FOUND",
            **kwargs,
        )
        self.session_id = session_id


class TranscriptionError(AttuneError):
    """Speech-to-text collaborator failed."""

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        super().__init__(message, code="TRANSCRIPTION_ERROR", **kwargs)
        self.provider = provider
