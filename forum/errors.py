"""Error taxonomy shared by the services and mapped to HTTP at the app boundary."""


class ForumError(Exception):
    """Base class for expected failures; carries the HTTP status and a safe message."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ForumError):
    status_code = 400
    default_message = "Invalid request"


class Unauthenticated(ForumError):
    status_code = 401
    default_message = "Authentication required"


class InvalidCredential(Unauthenticated):
    default_message = "Invalid or expired token"


class PrincipalNotFound(Unauthenticated):
    default_message = "User not found"


class Forbidden(ForumError):
    status_code = 403
    default_message = "Permission denied"


class NotFound(ForumError):
    status_code = 404
    default_message = "Not found"


class DuplicateReport(ValidationError):
    default_message = "You have already reported this post"


class Unexpected(ForumError):
    status_code = 500
    default_message = "Server error"
