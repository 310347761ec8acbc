"""
Error taxonomy for the admin backend.

Every error carries the HTTP status it maps to; the handlers registered in
``siteadmin.app`` turn them into the ``{status: 'error', message, error?}``
envelope.
"""

from __future__ import annotations

from typing import Optional


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, *, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error


class ValidationError(AppError):
    status_code = 400


class UnsupportedMedia(ValidationError):
    """Upload rejected by the media policy before reaching blob storage."""


class AuthError(AppError):
    status_code = 401


class MissingToken(AuthError):
    pass


class InvalidToken(AuthError):
    pass


class InvalidCredentials(AuthError):
    pass


class NotFoundError(AppError):
    status_code = 404


class StorageError(AppError):
    """Relational or blob I/O fault."""


class BlobError(StorageError):
    pass


class MissingCredential(BlobError):
    pass


class EmptyPayload(BlobError):
    pass


class UploadFailed(BlobError):
    pass


class UnexpectedError(AppError):
    pass
