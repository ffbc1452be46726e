# src/qrcoded/errors.py

"""
Error taxonomy for qrcoded.

Request-scoped errors (ValidationError, NotFoundError, AlreadyActivatedError)
are raised by services and translated to HTTP responses by the routes.
Job-scoped errors (RenderError, UploadError, PersistenceError) happen inside
the generation pipeline, outside any request, and are logged by the queue.
"""


class QRCodedError(Exception):
    """Base class for all qrcoded errors."""


class ValidationError(QRCodedError, ValueError):
    """Missing or malformed request fields."""


class NotFoundError(QRCodedError, LookupError):
    """No QR code record with the requested id."""


class AlreadyActivatedError(QRCodedError):
    """The QR code was already bound to an identity."""


class GenerationError(QRCodedError):
    """
    Failure of one stage of the generation pipeline.

    `stage` names the pipeline step, `retryable` tells the worker whether
    another attempt can reasonably succeed.
    """

    stage = "unknown"
    retryable = False

    def __init__(self, message: str, *, code_id: str | None = None):
        super().__init__(message)
        self.code_id = code_id


class RenderError(GenerationError):
    stage = "render"
    retryable = False


class UploadError(GenerationError):
    stage = "upload"
    retryable = True


class PersistenceError(GenerationError):
    stage = "persist"
    retryable = True


class DuplicateCodeError(PersistenceError):
    """A record with this id already exists; retrying cannot help."""

    retryable = False
