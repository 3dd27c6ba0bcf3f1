import logging

from fastapi import HTTPException, status

from mentorchat.services.exceptions import (
    AuthError,
    BackendError,
    NotFoundError as ServiceNotFoundError,
    PermissionDeniedError,
    ServiceError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class APIException(HTTPException):
    """Base class for API specific exceptions."""

    def __init__(
        self, status_code: int, detail: object = None, headers: dict | None = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFoundError(APIException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestError(APIException):
    def __init__(self, detail: str = "Bad request"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class UnauthorizedError(APIException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class ForbiddenError(APIException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InternalServerError(APIException):
    def __init__(self, detail: str = "Internal server error"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail
        )


def handle_service_error(e: ServiceError):
    """
    Maps ServiceError subclasses to the matching HTTP error.
    Called by the @handle_route_errors decorator; always raises.
    """
    logger.warning(f"Handling service error: {e.__class__.__name__} - {e.message}")

    if isinstance(e, ServiceNotFoundError):
        raise NotFoundError(detail=e.message)
    elif isinstance(e, ValidationError):
        raise BadRequestError(detail=e.message)
    elif isinstance(e, AuthError):
        raise UnauthorizedError(detail=e.message)
    elif isinstance(e, PermissionDeniedError):
        raise ForbiddenError(detail=e.message)
    elif isinstance(e, BackendError):
        logger.error(f"Backend error: {e}", exc_info=True)
        raise InternalServerError(detail=e.message)
    raise APIException(status_code=e.status_code, detail=e.message)
