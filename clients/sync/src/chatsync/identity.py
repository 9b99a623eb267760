from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, Protocol

from .models import User
from .observers import Watchers
from .result import Result

logger = logging.getLogger(__name__)


class UserLoader(Protocol):
    def load_user(self) -> Awaitable[Result[User]]:
        ...


class SessionProvider:
    """Holds the signed-in user and announces login/logout transitions."""

    def __init__(self, user: Optional[User] = None) -> None:
        self._user = user
        self._watchers: Watchers[Optional[User]] = Watchers()

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    @property
    def current_user_id(self) -> Optional[str]:
        return self._user.id if self._user is not None else None

    def login(self, user: User) -> None:
        previous_id = self.current_user_id
        self._user = user
        if previous_id != user.id:
            self._watchers.notify(user)

    def logout(self) -> None:
        if self._user is None:
            return
        self._user = None
        self._watchers.notify(None)

    def watch(self, callback: Callable[[Optional[User]], None]) -> Callable[[], None]:
        return self._watchers.watch(callback)


async def restore_session(api: UserLoader, session: SessionProvider) -> Result[User]:
    """Sign in as whoever the API token belongs to.

    A failed lookup signs the session out, so a stale token never leaves a
    previous user's topics bound.
    """

    result = await api.load_user()
    if result.ok:
        session.login(result.unwrap())
    else:
        logger.warning("could not load the signed-in user: %s", result.error)
        session.logout()
    return result
