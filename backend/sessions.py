"""Per-user hydration sessions held by the running service.

Each signed-in user gets one HydrationSync with its own EventBus. The
registry stands in for the client-side lifecycle: the HTTP sign-in, focus
and sign-out endpoints forward to it.
"""

import logging
from datetime import timedelta

from progress_engine.engine import ProgressEngine
from progress_engine.sync import HydrationSync, LocalCache

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(
        self,
        engine: ProgressEngine,
        throttle: timedelta,
        default_pets: list[str] | None = None,
    ) -> None:
        self.engine = engine
        self.throttle = throttle
        self.default_pets = default_pets
        self._sessions: dict[str, HydrationSync] = {}

    def get(self, user_id: str) -> HydrationSync | None:
        return self._sessions.get(user_id)

    async def sign_in(self, user_id: str, owned_pets: list[str] | None = None) -> LocalCache:
        session = self._sessions.get(user_id)
        if session is None:
            session = HydrationSync(self.engine, throttle=self.throttle)
            self._sessions[user_id] = session
        return await session.on_sign_in(user_id, owned_pets, initial_pets=self.default_pets)

    async def focus(self, user_id: str) -> bool | None:
        """None when the user has no session."""
        session = self._sessions.get(user_id)
        if session is None:
            return None
        return await session.on_focus_regained()

    async def sign_out(self, user_id: str) -> bool:
        session = self._sessions.pop(user_id, None)
        if session is None:
            return False
        await session.on_sign_out()
        return True

    async def close_all(self) -> None:
        for user_id in list(self._sessions):
            await self.sign_out(user_id)
        logger.debug("all sessions closed")
