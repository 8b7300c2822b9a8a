"""Typed success/failure results for operations that must not raise.

Services that talk to the ledger return a ``Result`` instead of logging and
swallowing failures, so each caller decides explicitly whether a failure
blocks the user-visible operation or is logged and ignored.
"""

from dataclasses import dataclass
from typing import Generic, NoReturn, TypeVar

from avatar_chat.core.exceptions import AppException

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Return the carried value."""
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying the typed application error."""

    error: AppException

    @property
    def is_ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        """Raise the carried error."""
        raise self.error


Result = Ok[T] | Err
