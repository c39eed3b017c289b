# errors.py — API error taxonomy
# Every error a handler raises on purpose is an APIError: an HTTPException
# with a stable machine-readable code. main.py renders them all the same way.
from typing import Iterable, Optional

from fastapi import HTTPException, status


class APIError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"
    message = "Request failed"

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None,
                 headers: Optional[dict] = None):
        super().__init__(
            status_code=status_code or self.status_code,
            detail=message or self.message,
            headers=headers,
        )

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code}


class MissingField(APIError):
    code = "missing_field"
    message = "Missing required fields"

    def __init__(self, fields: Iterable[str]):
        self.fields = list(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["fields"] = self.fields
        return data


class DuplicateEmail(APIError):
    code = "duplicate_email"
    message = "Email already exists"


class InvalidCredentials(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_credentials"
    message = "Invalid credentials"


class Unauthorized(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "token_invalid"
    message = "Invalid token"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        if code:
            self.code = code
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(APIError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    message = "Insufficient role privileges"


class NotFound(APIError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    message = "Not found"


class InternalError(APIError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"
    message = "Internal server error"


def token_missing() -> Unauthorized:
    return Unauthorized("No token provided", code="token_missing")


def token_expired() -> Unauthorized:
    return Unauthorized("Token expired", code="token_expired")


def token_invalid() -> Unauthorized:
    return Unauthorized("Invalid token", code="token_invalid")
