"""Failure taxonomy shared by the pipeline, the backup coordinator and the API.

Every error carries a ``kind`` and an HTTP-style ``status_code`` so the HTTP
layer can turn it into a structured payload without inspecting the type.
"""

from __future__ import annotations


class StoryError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class InputError(StoryError):
    kind = "input"
    status_code = 400


class AuthError(StoryError):
    kind = "auth"
    status_code = 401


class NotFoundError(StoryError):
    kind = "not_found"
    status_code = 404


class ValidationError(StoryError):
    """The model answered, but not in the shape it was asked for."""

    kind = "validation"
    status_code = 500


class StageTimeoutError(StoryError):
    kind = "timeout"
    status_code = 504


class GenerationError(StoryError):
    kind = "generation"
    status_code = 500


class StorageError(StoryError):
    kind = "storage"
    status_code = 500
