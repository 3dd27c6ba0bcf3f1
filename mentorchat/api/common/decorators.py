import logging
from functools import wraps

from fastapi import HTTPException, status

from mentorchat.api.common.exceptions import handle_service_error
from mentorchat.services.exceptions import ServiceError

logger = logging.getLogger(__name__)


def log_route_call(func):
    """
    Logs entry to and exit from a route function, including whether it raised.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        route_logger = logging.getLogger(func.__module__)
        route_logger.info(f"Entering route: {func.__name__}")
        try:
            result = await func(*args, **kwargs)
            route_logger.info(f"Successfully exited route: {func.__name__}")
            return result
        except Exception as e:
            route_logger.error(
                f"Error during route: {func.__name__}. Exception: {type(e).__name__} - {e}",
                exc_info=False,
            )
            raise

    return wrapper


def handle_route_errors(func):
    """
    Standardizes error handling in API routes: service errors become the
    matching HTTP error, anything unexpected becomes a 500.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except ServiceError as e:
            logger.info(f"Service error in {func.__name__} route: {e}")
            handle_service_error(e)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(
                f"Unexpected error in {func.__name__} route: {e}", exc_info=True
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="An unexpected server error occurred.",
            )

    return wrapper
