"""Type-keyed registry of application service singletons.

Application services are classes decorated with ``@ledger_service``. The
registry holds at most one instance per service type, keyed by the type's
stable identifier (``module.qualname``). Registering a second instance for a
type replaces the first and logs a warning.

Lookups return a tagged result so callers can branch without exception
handling; ``get`` unwraps the result and raises for callers that prefer it.
"""

import logging
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .errors import InvalidServiceType, ServiceNotFound

logger = logging.getLogger(__name__)

T = TypeVar("T")

SERVICE_MARKER = "__ledger_service__"


def ledger_service(cls: type[T]) -> type[T]:
    """Mark a class as an application service that may be registered."""
    setattr(cls, SERVICE_MARKER, True)
    return cls


def is_ledger_service(cls: type) -> bool:
    # Only the class itself counts; a subclass of a service is not a service.
    return bool(cls.__dict__.get(SERVICE_MARKER, False))


def type_id(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


@dataclass(frozen=True)
class Found(Generic[T]):
    """Lookup succeeded."""

    instance: T


@dataclass(frozen=True)
class NotFound:
    """The type is a valid service type but nothing was registered for it."""

    type_id: str


@dataclass(frozen=True)
class WrongKind:
    """The type is not marked as an application service."""

    type_id: str


LookupResult = Found[Any] | NotFound | WrongKind


class ServiceRegistry:
    """Singleton locator for application services."""

    def __init__(self) -> None:
        self._services: dict[str, Any] = {}

    def register(self, service_type: type[T], instance: T) -> None:
        """Register ``instance`` as the singleton for ``service_type``.

        Raises:
            InvalidServiceType: If ``service_type`` is not marked.
            TypeError: If ``instance`` is not exactly of ``service_type``.
        """
        key = type_id(service_type)
        if not is_ledger_service(service_type):
            raise InvalidServiceType(f"{key} is not a ledger service", key)
        if type(instance) is not service_type:
            raise TypeError(
                f"Instance of {type_id(type(instance))} cannot be registered as {key}"
            )
        if key in self._services:
            logger.warning(
                f"Replacing registered instance of service {key}",
                extra={"service_type": key},
            )
        self._services[key] = instance

    def lookup(self, service_type: type[T]) -> LookupResult:
        key = type_id(service_type)
        if not is_ledger_service(service_type):
            return WrongKind(key)
        if key not in self._services:
            return NotFound(key)
        return Found(self._services[key])

    def get(self, service_type: type[T]) -> T:
        """Return the registered instance.

        Raises:
            InvalidServiceType: If ``service_type`` is not marked.
            ServiceNotFound: If nothing was registered for it.
        """
        result = self.lookup(service_type)
        if isinstance(result, Found):
            return result.instance
        if isinstance(result, WrongKind):
            raise InvalidServiceType(f"{result.type_id} is not a ledger service", result.type_id)
        raise ServiceNotFound(f"Ledger service {result.type_id} does not exist", result.type_id)

    def __contains__(self, service_type: object) -> bool:
        return isinstance(service_type, type) and type_id(service_type) in self._services

    def __len__(self) -> int:
        return len(self._services)
