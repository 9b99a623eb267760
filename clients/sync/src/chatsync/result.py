from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a network-facing operation.

    Failures are returned, never raised, so callers decide how to present
    them. ``data`` is only meaningful when ``ok`` is true.
    """

    ok: bool
    data: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, data: T) -> "Result[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: BaseException) -> "Result[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> T:
        if not self.ok:
            if self.error is None:
                raise RuntimeError("failed result carries no error")
            raise self.error
        return self.data  # type: ignore[return-value]
