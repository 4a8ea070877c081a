"""
Experienced-user latch.

A process-wide, one-way flag: once the user has any completed lesson or any
recording it flips to True and is never reset or re-checked remotely. The
flag is read from the store once in ``init()``; every component receives the
same instance instead of reading the store on its own.
"""
from __future__ import annotations

from nora_today.core.errors import StoreError
from nora_today.core.logging import DOMAIN_STORE, get_domain_logger
from nora_today.memory.store import KeyValueStore

logger = get_domain_logger(__name__, DOMAIN_STORE)

EXPERIENCED_USER_KEY = "isExperiencedUser"


class ExperiencedUserLatch:
    def __init__(self, store: KeyValueStore):
        self._store = store
        self._value = False
        self._initialized = False

    @property
    def is_experienced(self) -> bool:
        return self._value

    async def init(self) -> bool:
        if self._initialized:
            return self._value
        try:
            raw = await self._store.get_item(EXPERIENCED_USER_KEY)
        except StoreError as exc:
            logger.warning("Could not read experienced-user flag, assuming new user: %s", exc)
            raw = None
        self._value = self._value or raw == "true"
        self._initialized = True
        return self._value

    async def promote_to_experienced(self) -> bool:
        """Latch the flag. Returns True only on the call that flipped it."""
        if self._value:
            return False
        self._value = True
        try:
            await self._store.set_item(EXPERIENCED_USER_KEY, "true")
        except StoreError as exc:
            # In-memory value stays latched for this process.
            logger.warning("Could not persist experienced-user flag: %s", exc)
        logger.info("User promoted to experienced")
        return True

    async def ensure(self, check) -> bool:
        """Run the async remote existence ``check`` only while the latch is still open."""
        if not self._initialized:
            await self.init()
        if self._value:
            return True
        if await check():
            await self.promote_to_experienced()
        return self._value
