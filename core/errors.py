"""
API Error Types.

Services and routes raise ApiError; a single FastAPI exception handler in
main.py renders it as {"error": code, "message": message}.
"""

from typing import Optional


class ApiError(Exception):
    """An error that maps directly onto an HTTP response."""

    def __init__(self, status_code: int, code: str, message: Optional[str] = None):
        super().__init__(message or code)
        self.status_code = status_code
        self.code = code
        self.message = message

    def to_dict(self) -> dict:
        body = {"error": self.code}
        if self.message:
            body["message"] = self.message
        return body


class InvalidRequestError(ApiError):
    """Missing or malformed request fields (HTTP 400)."""

    def __init__(self, message: str, code: str = "invalid_request"):
        super().__init__(400, code, message)


class NotFoundError(ApiError):
    """Unknown product, order item, insight or action item (HTTP 404)."""

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(404, code, message)


class ForbiddenError(ApiError):
    """Authenticated user lacks the required role (HTTP 403)."""

    def __init__(self, message: str, code: str = "forbidden"):
        super().__init__(403, code, message)


class UnauthorizedError(ApiError):
    """Missing, invalid or expired credentials (HTTP 401)."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(401, "unauthorized", message)
