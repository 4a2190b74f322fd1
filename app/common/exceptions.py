from fastapi import HTTPException, status


class AuthException(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class InvalidTokenException(AuthException):
    def __init__(self):
        super().__init__(detail="Invalid or expired token")


class NotFoundException(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class UserNotFoundException(NotFoundException):
    def __init__(self):
        super().__init__(detail="User not found")


class QuizNotFoundException(NotFoundException):
    def __init__(self, slug: str):
        super().__init__(detail=f"Quiz '{slug}' not found")


class ConditionConfigError(ValueError):
    """Achievement carries a condition configuration that cannot be parsed.

    Raised while loading the catalogue; the orchestrator logs it and skips
    the achievement instead of failing the evaluation.
    """
