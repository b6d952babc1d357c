from fastapi import HTTPException, status

from .security import AuthorizationError


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


# Authorization denials share one type so callers cannot tell them apart
ForbiddenError = AuthorizationError


class ConflictError(HTTPException):
    def __init__(self, detail: str = "Conflict with current state"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class BadRequestError(HTTPException):
    def __init__(self, detail: str = "Invalid request"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )
