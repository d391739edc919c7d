"""Application exceptions mapped to HTTP status codes by the error handler."""


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource missing, deleted or outside the caller's tenant scope."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Missing or invalid bearer token."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Authenticated, but the role may not perform the action."""

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status_code=403)


class BadRequestException(AppException):
    """Request is well-formed but cannot be applied."""

    def __init__(self, message: str = "Bad request"):
        super().__init__(message, status_code=400)


class InvalidTransitionException(BadRequestException):
    """Appointment is not in the status the operation requires."""


class ApprovalLinkException(BadRequestException):
    """Approval link was already used or has expired."""


class ConflictException(AppException):
    """Employee already has an approved appointment in the slot."""

    def __init__(self, message: str = "Conflict"):
        super().__init__(message, status_code=409)


class RateLimitException(AppException):
    """Too many requests from one client."""

    def __init__(self, message: str = "Too many requests, please try again later"):
        super().__init__(message, status_code=429)
