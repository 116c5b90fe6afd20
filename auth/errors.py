from __future__ import annotations

from enum import Enum

from pydantic import ValidationError


class AuthErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_FAILED = "AUTH_FAILED"
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


def create_error_response(
    error: AuthErrorCode,
    message: str,
    details: dict | None = None,
) -> dict:
    payload: dict = {"error": error.value, "message": message}
    if details:
        payload["details"] = details
    return payload


def format_validation_errors(error: ValidationError) -> dict:
    return create_error_response(
        AuthErrorCode.VALIDATION_ERROR,
        "Invalid request parameters",
        {
            "validationErrors": [
                {
                    "field": ".".join(str(part) for part in item["loc"]),
                    "message": item["msg"],
                }
                for item in error.errors()
            ]
        },
    )
