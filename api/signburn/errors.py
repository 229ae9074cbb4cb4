"""Errors surfaced by the document lifecycle.

Each error carries the HTTP status the API answers with; ``main`` turns
them into ``{"detail": message}`` responses.  Per-field render problems are
not errors: the compositor skips the field and logs a warning.
"""


class SigningError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(SigningError):
    status_code = 400


class DocumentNotFound(SigningError):
    status_code = 404

    def __init__(self, message: str = "Document not found"):
        super().__init__(message)


class DocumentAlreadySigned(SigningError):
    status_code = 409

    def __init__(self, message: str = "Document is already signed"):
        super().__init__(message)


class IntegrityCheckFailed(SigningError):
    status_code = 422

    def __init__(self, message: str = "Document integrity check failed"):
        super().__init__(message)


class CompositionFailed(SigningError):
    status_code = 422
