"""Outcome values for input that is expected to be wrong now and then.

Wizard validators return a Result instead of raising, so a bad answer is an
ordinary value that the handler turns into a re-prompt.
"""

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")
U = TypeVar("U")

DEFAULT_ERROR_CODE = "invalid"


@dataclass(frozen=True)
class Result(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str, code: str = DEFAULT_ERROR_CODE) -> "Result[T]":
        return cls(ok=False, error=error, error_code=code)

    def then(self, check: Callable[[T], "Result[U]"]) -> "Result[U]":
        """Run the next check on the value. A failure skips it and is passed on unchanged."""
        if not self.ok:
            return Result(ok=False, error=self.error, error_code=self.error_code)
        return check(self.value)

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok else default
