"""
Application error taxonomy.

Every failure the API reports is an ``AppError`` subclass. Each external
dependency gets its own error type carrying a reason enum, and each reason
maps to exactly one HTTP status + machine-readable code through a table, so
the exception handler in ``main`` never inspects messages or attributes
ad hoc.

    AppError
      ├── ValidationError     400
      ├── AuthError           401   (AuthFailure)
      ├── ForbiddenError      403
      ├── NotFoundError       404
      ├── StorageError        502
      ├── OCRError            502 / 422   (OCRFailure)
      └── GenerativeAIError   400 / 429 / 500 / 502   (GenAIFailure)
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    VALIDATION_ERROR         = "VALIDATION_ERROR"
    MISSING_FILE             = "MISSING_FILE"
    FILE_TOO_LARGE           = "FILE_TOO_LARGE"
    UNSUPPORTED_FILE_TYPE    = "UNSUPPORTED_FILE_TYPE"
    MISSING_TOKEN            = "MISSING_TOKEN"
    INVALID_FORMAT           = "INVALID_FORMAT"
    TOKEN_EXPIRED            = "TOKEN_EXPIRED"
    INVALID_TOKEN            = "INVALID_TOKEN"
    AUTH_FAILED              = "AUTH_FAILED"
    ACCESS_DENIED            = "ACCESS_DENIED"
    DOCUMENT_NOT_FOUND       = "DOCUMENT_NOT_FOUND"
    ANALYSIS_NOT_FOUND       = "ANALYSIS_NOT_FOUND"
    USER_NOT_FOUND           = "USER_NOT_FOUND"
    ROUTE_NOT_FOUND          = "ROUTE_NOT_FOUND"
    STORAGE_ERROR            = "STORAGE_ERROR"
    DOCUMENT_PROCESSING_ERROR = "DOCUMENT_PROCESSING_ERROR"
    NO_TEXT_EXTRACTED        = "NO_TEXT_EXTRACTED"
    CONTENT_SAFETY_VIOLATION = "CONTENT_SAFETY_VIOLATION"
    QUOTA_EXCEEDED           = "QUOTA_EXCEEDED"
    INVALID_API_KEY          = "INVALID_API_KEY"
    EMPTY_AI_RESPONSE        = "EMPTY_AI_RESPONSE"
    AI_SERVICE_ERROR         = "AI_SERVICE_ERROR"
    INTERNAL_SERVER_ERROR    = "INTERNAL_SERVER_ERROR"


class AppError(Exception):
    """Base class — carries everything the error envelope needs."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        status_code: int | None = None,
        details: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or []


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.VALIDATION_ERROR


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.ACCESS_DENIED

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(message)


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.DOCUMENT_NOT_FOUND


class StorageError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = ErrorCode.STORAGE_ERROR


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class AuthFailure(str, Enum):
    MISSING_TOKEN  = "missing_token"
    INVALID_FORMAT = "invalid_format"
    TOKEN_EXPIRED  = "token_expired"
    INVALID_TOKEN  = "invalid_token"
    AUTH_FAILED    = "auth_failed"     # key set unreachable, etc.


_AUTH_CODES: dict[AuthFailure, ErrorCode] = {
    AuthFailure.MISSING_TOKEN:  ErrorCode.MISSING_TOKEN,
    AuthFailure.INVALID_FORMAT: ErrorCode.INVALID_FORMAT,
    AuthFailure.TOKEN_EXPIRED:  ErrorCode.TOKEN_EXPIRED,
    AuthFailure.INVALID_TOKEN:  ErrorCode.INVALID_TOKEN,
    AuthFailure.AUTH_FAILED:    ErrorCode.AUTH_FAILED,
}


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, reason: AuthFailure, message: str) -> None:
        super().__init__(message, code=_AUTH_CODES[reason])
        self.reason = reason


# ---------------------------------------------------------------------------
# OCR
# ---------------------------------------------------------------------------

class OCRFailure(str, Enum):
    PROCESSOR_FAILURE = "processor_failure"
    NO_TEXT           = "no_text"


_OCR_TABLE: dict[OCRFailure, tuple[int, ErrorCode]] = {
    OCRFailure.PROCESSOR_FAILURE: (status.HTTP_502_BAD_GATEWAY, ErrorCode.DOCUMENT_PROCESSING_ERROR),
    # the file was readable but held no text; nothing upstream is broken
    OCRFailure.NO_TEXT:           (422, ErrorCode.NO_TEXT_EXTRACTED),
}


class OCRError(AppError):

    def __init__(self, reason: OCRFailure, message: str) -> None:
        status_code, code = _OCR_TABLE[reason]
        super().__init__(message, code=code, status_code=status_code)
        self.reason = reason


# ---------------------------------------------------------------------------
# Generative AI
# ---------------------------------------------------------------------------

class GenAIFailure(str, Enum):
    SAFETY         = "safety"
    QUOTA          = "quota"
    CREDENTIALS    = "credentials"
    EMPTY_RESPONSE = "empty_response"
    UPSTREAM       = "upstream"


# reason → (status, code, user-facing message)
_GENAI_TABLE: dict[GenAIFailure, tuple[int, ErrorCode, str]] = {
    GenAIFailure.SAFETY: (
        status.HTTP_400_BAD_REQUEST,
        ErrorCode.CONTENT_SAFETY_VIOLATION,
        "Content was flagged by safety filters. Please try rephrasing your request.",
    ),
    GenAIFailure.QUOTA: (
        status.HTTP_429_TOO_MANY_REQUESTS,
        ErrorCode.QUOTA_EXCEEDED,
        "API quota exceeded. Please try again later.",
    ),
    GenAIFailure.CREDENTIALS: (
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INVALID_API_KEY,
        "Invalid API key. Please check your Gemini API configuration.",
    ),
    GenAIFailure.EMPTY_RESPONSE: (
        status.HTTP_502_BAD_GATEWAY,
        ErrorCode.EMPTY_AI_RESPONSE,
        "The AI service returned an empty response.",
    ),
    GenAIFailure.UPSTREAM: (
        status.HTTP_502_BAD_GATEWAY,
        ErrorCode.AI_SERVICE_ERROR,
        "Failed to generate a response from the AI service.",
    ),
}


class GenerativeAIError(AppError):

    def __init__(self, reason: GenAIFailure, detail: str | None = None) -> None:
        status_code, code, message = _GENAI_TABLE[reason]
        super().__init__(
            message,
            code=code,
            status_code=status_code,
            details=[{"message": detail}] if detail else None,
        )
        self.reason = reason
