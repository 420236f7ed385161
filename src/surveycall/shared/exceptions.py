"""
Custom exceptions for the application.
"""

from uuid import UUID


class AppError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, code: str = "APP_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(AppError):
    """Requested record does not exist."""

    def __init__(self, message: str, code: str = "NOT_FOUND") -> None:
        super().__init__(message, code)


class ValidationError(AppError):
    """Validation error."""

    def __init__(self, message: str) -> None:
        super().__init__(message, "VALIDATION_ERROR")


class AttemptNotFoundError(NotFoundError):
    """Call attempt not found."""

    def __init__(self, attempt_id: UUID | str) -> None:
        super().__init__(f"Call attempt not found: {attempt_id}", "ATTEMPT_NOT_FOUND")
        self.attempt_id = attempt_id


class SurveyNotFoundError(NotFoundError):
    """Survey not found."""

    def __init__(self, survey_id: UUID | str) -> None:
        super().__init__(f"Survey not found: {survey_id}", "SURVEY_NOT_FOUND")
        self.survey_id = survey_id


class RecipientNotFoundError(NotFoundError):
    """Recipient not found."""

    def __init__(self, recipient_id: UUID | str) -> None:
        super().__init__(f"Recipient not found: {recipient_id}", "RECIPIENT_NOT_FOUND")
        self.recipient_id = recipient_id


class AttemptAlreadyCompletedError(ValidationError):
    """A completed attempt cannot be retried."""

    def __init__(self, attempt_id: UUID | str) -> None:
        super().__init__(f"Call attempt {attempt_id} is already completed")
        self.code = "ATTEMPT_ALREADY_COMPLETED"
        self.attempt_id = attempt_id

