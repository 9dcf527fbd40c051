from fastapi import HTTPException, status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationError(ServiceError):
    """Missing, invalid or expired credentials. Message stays generic."""

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class AuthorizationError(ServiceError):
    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class ValidationError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class NotFoundError(ServiceError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(ServiceError):
    """The resource changed under the caller (already processed, already taken)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


def to_http_exception(e: ServiceError) -> HTTPException:
    """Map a service error to an HTTP response, hiding internals of server errors."""
    if e.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        return HTTPException(status_code=e.status_code, detail="Internal server error")
    if e.status_code == status.HTTP_401_UNAUTHORIZED:
        return HTTPException(
            status_code=e.status_code,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return HTTPException(status_code=e.status_code, detail=e.message)
