from typing import Optional, Dict
from fastapi import HTTPException, status


class BaseAPIException(HTTPException):
    """Base exception for API errors"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        headers: Optional[Dict[str, str]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def __str__(self) -> str:
        return str(self.detail)


class BadRequestError(BaseAPIException):
    """Raised when a request is malformed or a scope identifier is missing"""

    def __init__(self, detail: str = "Bad request"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )


class AuthenticationError(BaseAPIException):
    """Raised when authentication fails"""

    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(BaseAPIException):
    """Raised when user lacks necessary permissions"""

    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail
        )


class NotFoundError(BaseAPIException):
    """Raised when a resource is not found"""

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail
        )


class ConflictError(BaseAPIException):
    """Raised when there's a conflict with existing data"""

    def __init__(self, detail: str = "Conflict with existing resource"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail
        )


class RateLimitError(BaseAPIException):
    """Raised when rate limit is exceeded"""

    def __init__(self, detail: str = "Rate limit exceeded. Please try again later.", retry_after: int = 60):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            headers={"Retry-After": str(retry_after)}
        )


class InvitationExpiredError(BadRequestError):
    """Raised when an expired invitation is accepted; recording the expiry is left to the caller"""

    def __init__(self, invitation_id: str, detail: str = "Invitation has expired"):
        super().__init__(detail)
        self.invitation_id = invitation_id
