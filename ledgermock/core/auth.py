"""Authorization context handed to application code invoked over RPC."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class InvocationContext:
    """Who invoked an operation and why."""

    origin: str  # e.g. "rpc", "service", "scheduled"
    actor: str | None = None
    trace_id: str | None = None
    attributes: tuple[tuple[str, Any], ...] = field(default=())


class AuthorizingSubject(ABC):
    """Answers whether an action is permitted for a session."""

    @abstractmethod
    def is_permitted(self, action: str, *arguments: str) -> bool:
        """True if ``action`` (with optional arguments) is allowed."""


@dataclass(frozen=True)
class RpcAuthContext(AuthorizingSubject):
    """Pairs an invocation context with an authorizer.

    Permission checks are forwarded to the authorizer unchanged.
    """

    invocation: InvocationContext
    authorizer: AuthorizingSubject

    def is_permitted(self, action: str, *arguments: str) -> bool:
        return self.authorizer.is_permitted(action, *arguments)
