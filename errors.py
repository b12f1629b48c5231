"""
Error taxonomy shared by the logic modules.

Each error carries the HTTP status it maps to; ``main`` turns them into the
``{"success": false, "message": ...}`` envelope.
"""


class ReWearError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(ReWearError):
    status_code = 400


class InvalidState(ReWearError):
    """The document is not in a state that allows the operation."""
    status_code = 400


class InsufficientPoints(InvalidState):
    def __init__(self, message: str = "Insufficient points"):
        super().__init__(message)


class ItemUnavailable(InvalidState):
    pass


class AuthenticationRequired(ReWearError):
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class Forbidden(ReWearError):
    status_code = 403


class NotFound(ReWearError):
    status_code = 404


class UserNotFound(NotFound):
    def __init__(self, message: str = "User not found"):
        super().__init__(message)
