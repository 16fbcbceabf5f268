from typing import List, Optional


class QuizEngineError(Exception):
    """Base class for request-scoped engine failures.

    `code` is the stable identifier handed back to callers, `message` is
    for humans and may change.
    """
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "", code: Optional[str] = None):
        if code:
            self.code = code
        self.message = message or self.code
        super().__init__(self.message)


class ValidationError(QuizEngineError):
    """Config-time error. Carries every violated rule, not just the first."""
    code = "INVALID_CONFIG"

    def __init__(self, errors: List[str], message: str = "Quiz configuration is invalid"):
        self.errors = list(errors)
        super().__init__(message)


class AuthorizationError(QuizEngineError):
    code = "UNAUTHORIZED"


class NotFoundError(QuizEngineError):
    code = "NOT_FOUND"


class ConflictError(QuizEngineError):
    """Duplicate attempt, answer or claim. Never retried."""
    code = "CONFLICT"


class QuizClosedError(QuizEngineError):
    code = "QUIZ_CLOSED"
