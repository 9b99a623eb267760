from __future__ import annotations

from typing import Callable, Generic, List, TypeVar

T = TypeVar("T")


class Watchers(Generic[T]):
    """Callback registry returning an explicit unsubscribe handle.

    Callbacks run after the mutation they report has fully completed.
    """

    def __init__(self) -> None:
        self._callbacks: List[Callable[[T], None]] = []

    def watch(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _unwatch() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                return

        return _unwatch

    def notify(self, value: T) -> None:
        for callback in list(self._callbacks):
            callback(value)

    def __len__(self) -> int:
        return len(self._callbacks)
