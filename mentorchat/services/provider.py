import logging
from typing import Any, Dict, Type, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


class ServiceProvider:
    """
    Holds process-wide singletons (the realtime hub and similar objects that
    outlive a single request). Instances are created on first use and reused.
    """

    _instances: Dict[Type[T], T] = {}

    @classmethod
    def get_service(cls, service_class: Type[T], **dependencies: Any) -> T:
        """
        Retrieves or creates the singleton instance of the given class.
        Constructor arguments are passed as keyword arguments on first use.
        """
        if service_class not in cls._instances:
            try:
                logger.debug(
                    f"Creating new instance of service: {service_class.__name__}"
                )
                cls._instances[service_class] = service_class(**dependencies)
            except Exception as e:
                logger.error(
                    f"Failed to initialize service {service_class.__name__}: {e}",
                    exc_info=True,
                )
                raise
        return cls._instances[service_class]

    @classmethod
    def clear(cls) -> None:
        """
        Clears all cached instances.
        Primarily useful for testing to ensure fresh singletons for each test case.
        """
        logger.debug("Clearing all cached service instances.")
        cls._instances.clear()
