"""
Error kinds raised by the domain operations.

Each carries the HTTP status the JSON layer answers with.
"""


class InkwellError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class NotFound(InkwellError):
    """A referenced id or slug does not exist."""

    status_code = 404


class Conflict(InkwellError):
    """Unique constraint violated (slug, email, username) or row still in use."""

    status_code = 409


class InvalidOperation(InkwellError):
    """Request is well-formed but not allowed (self-parenting, cycles, …)."""

    status_code = 400
