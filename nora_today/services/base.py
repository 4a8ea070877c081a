from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel

from nora_today.core.errors import ApiError, RemoteTimeoutError, RemoteUnavailableError
from nora_today.core.logging import DOMAIN_REMOTE, get_domain_logger
from nora_today.core.resilience import get_breaker, retry_with_backoff
from nora_today.core.settings import Settings, settings

logger = get_domain_logger(__name__, DOMAIN_REMOTE)


def build_http_client(config: Settings = settings, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.api_base_url,
        timeout=config.http_timeout_seconds,
        transport=transport,
    )


def error_body(response: httpx.Response) -> dict:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class RemoteService:
    """Shared request path: bearer auth, transport retries, and a per-service circuit breaker."""

    service_name = "remote"

    def __init__(
        self,
        client: httpx.AsyncClient,
        auth=None,
        *,
        max_retries: int = settings.remote_max_retries,
        base_delay_seconds: float = settings.remote_retry_base_delay_seconds,
    ):
        self._client = client
        self._auth = auth
        self._max_retries = max_retries
        self._base_delay_seconds = base_delay_seconds

    def _headers(self) -> dict[str, str]:
        if self._auth is None:
            return {}
        return self._auth.authorization_headers()

    def _breaker(self):
        return get_breaker(f"remote:{self.service_name}")

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict | None = None,
        parse_body: bool = False,
    ) -> httpx.Response:
        """Send with retries. With ``parse_body`` a 2xx only counts as a success once ``_parse`` accepts it."""
        breaker = self._breaker()
        if not breaker.can_execute():
            raise RemoteUnavailableError(f"{self.service_name} circuit open")

        async def _call():
            return await self._client.request(method, path, json=json, params=params, headers=self._headers())

        try:
            response = await retry_with_backoff(
                _call,
                max_retries=self._max_retries,
                base_delay_seconds=self._base_delay_seconds,
                retryable_errors=(httpx.TransportError,),
                label=f"{method} {path}",
            )
        except httpx.TimeoutException as exc:
            breaker.record_failure()
            logger.warning("%s %s timed out: %s", method, path, exc)
            raise RemoteTimeoutError(f"{self.service_name} timed out: {exc}") from exc
        except httpx.TransportError as exc:
            breaker.record_failure()
            logger.warning("%s %s unreachable: %s", method, path, exc)
            raise RemoteUnavailableError(f"{self.service_name} unreachable: {exc}") from exc

        if response.status_code >= 500:
            breaker.record_failure()
        elif not (parse_body and response.is_success):
            breaker.record_success()
        return response

    @staticmethod
    def _raise_for_error(response: httpx.Response, fallback_message: str) -> None:
        if response.status_code < 400:
            return
        body = error_body(response)
        raise ApiError(
            str(body.get("error") or body.get("message") or fallback_message),
            response.status_code,
            body.get("code"),
        )

    def _parse(self, response: httpx.Response, model: type[BaseModel], fallback_message: str, key: str | None = None):
        """Validate a 2xx body; an unreadable one (proxy page, missing fields) becomes an ApiError."""
        try:
            body = response.json()
            if key is not None and isinstance(body, dict):
                body = body.get(key, body)
            parsed = model.model_validate(body)
        except ValueError as exc:
            self._breaker().record_failure()
            logger.warning("Unreadable %s response (%d): %s", self.service_name, response.status_code, exc)
            raise ApiError(f"{fallback_message}: unreadable response", response.status_code, "INVALID_RESPONSE") from exc
        self._breaker().record_success()
        return parsed

    async def _get_model(
        self,
        path: str,
        model: type[BaseModel],
        fallback_message: str,
        params: dict | None = None,
        key: str | None = None,
    ):
        response = await self._send("GET", path, params=params, parse_body=True)
        self._raise_for_error(response, fallback_message)
        return self._parse(response, model, fallback_message, key)
