import logging
from typing import Awaitable, Generic, TypeVar

from pydantic import BaseModel

from .exceptions import ServiceError

T = TypeVar("T")
logger = logging.getLogger(__name__)


class ServiceResponse(BaseModel, Generic[T]):
    """Tagged result: either ``data`` or an ``error`` message, never both."""

    data: T | None = None
    error: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def call_service(awaitable: Awaitable[T]) -> ServiceResponse[T]:
    """Awaits a service call and folds a raised ServiceError into a tagged result."""
    try:
        return ServiceResponse(data=await awaitable)
    except ServiceError as e:
        logger.info(f"Service call failed: {e.__class__.__name__} - {e.message}")
        return ServiceResponse(error=e.message, error_type=e.__class__.__name__)
