from __future__ import annotations

import httpx

from nora_today.core.errors import StoreError
from nora_today.core.logging import DOMAIN_REMOTE, get_domain_logger
from nora_today.memory.store import KeyValueStore
from nora_today.schemas.remote import CurrentUser
from nora_today.services.base import RemoteService

logger = get_domain_logger(__name__, DOMAIN_REMOTE)

ACCESS_TOKEN_KEY = "@nora_access_token"


class AuthService(RemoteService):
    service_name = "auth"

    def __init__(self, client: httpx.AsyncClient, store: KeyValueStore, **kwargs):
        super().__init__(client, None, **kwargs)
        self._store = store
        self._access_token: str | None = None

    async def init(self) -> None:
        try:
            self._access_token = await self._store.get_item(ACCESS_TOKEN_KEY)
        except StoreError as exc:
            logger.warning("Could not load access token: %s", exc)
            self._access_token = None

    async def set_access_token(self, token: str | None) -> None:
        self._access_token = token
        try:
            if token:
                await self._store.set_item(ACCESS_TOKEN_KEY, token)
            else:
                await self._store.remove_item(ACCESS_TOKEN_KEY)
        except StoreError as exc:
            logger.warning("Could not persist access token: %s", exc)

    def is_authenticated(self) -> bool:
        return bool(self._access_token)

    def authorization_headers(self) -> dict[str, str]:
        if not self._access_token:
            return {}
        return {"Authorization": f"Bearer {self._access_token}"}

    def _headers(self) -> dict[str, str]:
        return self.authorization_headers()

    async def get_current_user(self) -> CurrentUser:
        return await self._get_model("/api/auth/me", CurrentUser, "Failed to fetch user", key="user")
