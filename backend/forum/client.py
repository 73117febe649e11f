"""Async HTTP client for the forum API, with bounded retries on 429."""
import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
BASE_DELAY = 0.4
MAX_JITTER = 0.15


class ForumAPIError(Exception):
    """Non-success response from the API, carrying the `{error}` message."""

    def __init__(self, status_code: int, message: str, payload: Any = None):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.payload = payload


def retry_delay(attempt: int, retry_after: str | None, jitter: float = 0.0) -> float:
    """Seconds to wait before retry number `attempt` (1-based).

    A numeric Retry-After header wins; otherwise back off exponentially.
    """
    if retry_after:
        try:
            return max(0.0, float(retry_after))
        except ValueError:
            pass
    return BASE_DELAY * 2 ** (attempt - 1) + jitter


class ForumClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        max_retries: int = MAX_RETRIES,
    ):
        self.token = token
        self.max_retries = max_retries
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), transport=transport, timeout=30.0
        )

    async def __aenter__(self) -> "ForumClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        if not self.token:
            return {}
        return {"Authorization": f"Bearer {self.token}"}

    async def request(self, method: str, path: str, **kwargs: Any) -> Any:
        attempt = 0
        while True:
            response = await self._client.request(
                method, path, headers=self._headers(), **kwargs
            )
            if response.status_code != 429 or attempt >= self.max_retries:
                break
            attempt += 1
            delay = retry_delay(
                attempt,
                response.headers.get("Retry-After"),
                jitter=random.uniform(0, MAX_JITTER),
            )
            logger.info(
                "429 on %s %s, retry %d/%d in %.2fs",
                method,
                path,
                attempt,
                self.max_retries,
                delay,
            )
            await self._sleep(delay)

        try:
            payload = response.json()
        except ValueError:
            payload = None
        if response.is_error:
            message = payload.get("error") if isinstance(payload, dict) else None
            raise ForumAPIError(response.status_code, message or response.reason_phrase, payload)
        return payload

    # Auth

    async def register(self, **fields: Any) -> dict[str, Any]:
        data = await self.request("POST", "/api/auth/register", json=fields)
        self.token = data["token"]
        return data

    async def login(self, email: str, password: str) -> dict[str, Any]:
        data = await self.request(
            "POST", "/api/auth/login", json={"email": email, "password": password}
        )
        self.token = data["token"]
        return data

    async def me(self) -> dict[str, Any]:
        return await self.request("GET", "/api/auth/me")

    # Prompts

    async def list_prompts(self, **params: Any) -> dict[str, Any]:
        return await self.request("GET", "/api/prompts", params=params)

    async def get_prompt(self, prompt_id: int) -> dict[str, Any]:
        return await self.request("GET", f"/api/prompts/{prompt_id}")

    async def create_prompt(self, **fields: Any) -> dict[str, Any]:
        return await self.request("POST", "/api/prompts", json=fields)

    async def like_prompt(self, prompt_id: int) -> dict[str, Any]:
        return await self.request("POST", f"/api/prompts/{prompt_id}/like")

    # Comments and discussions

    async def list_comments(self, prompt_id: int, **params: Any) -> dict[str, Any]:
        return await self.request(
            "GET", f"/api/prompts/{prompt_id}/comments", params=params
        )

    async def add_comment(
        self, prompt_id: int, content: str, parent_id: int | None = None
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"content": content}
        if parent_id is not None:
            body["parent_id"] = parent_id
        return await self.request("POST", f"/api/prompts/{prompt_id}/comments", json=body)

    async def list_discussions(self, **params: Any) -> dict[str, Any]:
        return await self.request("GET", "/api/discussions", params=params)

    async def add_post(self, discussion_id: int, content: str) -> dict[str, Any]:
        return await self.request(
            "POST", f"/api/discussions/{discussion_id}/posts", json={"content": content}
        )
