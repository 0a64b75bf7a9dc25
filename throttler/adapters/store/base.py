"""Shared counter store interface.

The limiter core talks to the shared store only through this interface. Every
call returns a typed outcome instead of raising: ``StoreOk`` carries the
store's reply, ``StoreUnavailable`` says the store could not be consulted.
That keeps "the store said deny" and "the store was unreachable" as two
distinct, visible branches in the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class StoreOk(Generic[T]):
    """Successful store reply."""

    value: T


@dataclass(frozen=True)
class StoreUnavailable:
    """The store could not answer.

    Attributes:
        reason: Short machine-readable cause (``timeout``, ``connection_error``,
            ``script_error``, ``redis_error``, ``malformed_reply``).
        error: The underlying exception, if any, kept for logging.
    """

    reason: str
    error: BaseException | None = None


StoreOutcome = StoreOk[T] | StoreUnavailable


class AbstractCounterStore(ABC):
    """Atomic key-value store with sorted sets and server-side scripts."""

    @abstractmethod
    async def eval_script(self, script: str, num_keys: int, *keys_and_args: Any) -> StoreOutcome[Any]:
        """Run ``script`` atomically with ``num_keys`` keys followed by arguments."""
        raise NotImplementedError

    @abstractmethod
    async def get(self, key: str) -> StoreOutcome[str | None]:
        """Return the string value of ``key``, or None when it does not exist."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> StoreOutcome[int]:
        """Delete ``key``; deleting a missing key is not an error."""
        raise NotImplementedError

    @abstractmethod
    async def list_keys(self, pattern: str) -> StoreOutcome[list[str]]:
        """Return keys matching a glob-style ``pattern``."""
        raise NotImplementedError

    async def ping(self) -> bool:
        """Return True when the store answers; used by readiness checks."""
        return False

    async def close(self) -> None:
        """Release connections held by the store client."""
