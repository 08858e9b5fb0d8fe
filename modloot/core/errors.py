"""
API error taxonomy.

Every error a handler raises on purpose is an APIError; main.py renders it as
{"success": false, "message": ...} with the carried status code.
"""

from typing import Optional


class APIError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(APIError):
    status_code = 400
    default_message = "Validation failed"


class UnsupportedNetwork(ValidationFailed):
    def __init__(self, network: str):
        super().__init__(f"Unsupported network: {network}")
        self.network = network


class AuthenticationFailed(APIError):
    status_code = 401
    default_message = "Unauthorized"


class PermissionDenied(APIError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(APIError):
    status_code = 404
    default_message = "Not found"


class Conflict(APIError):
    status_code = 409
    default_message = "Resource already exists"
