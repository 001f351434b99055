from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Protocol

import httpx

from modcore.core.config import get_settings
from modcore.core.errors import StorageFailureError


logger = logging.getLogger(__name__)


class ContentDirectory(Protocol):
    """Read-only view of the content hierarchy owned by the content service.

    Every lookup returns ``None`` when the referenced item does not exist.
    """

    async def community_exists(self, community_id: str) -> bool: ...

    async def get_hub_community_id(self, hub_id: str) -> str | None: ...

    async def get_space_hub_id(self, space_id: str) -> str | None: ...

    async def get_discussion_space_id(self, discussion_id: str) -> str | None: ...

    async def get_post_discussion_id(self, post_id: str) -> str | None: ...


class ContentGateway(Protocol):
    """Write sink for moderator takedowns; the content service applies them."""

    async def delete_post(self, post_id: str) -> None: ...

    async def delete_discussion(self, discussion_id: str) -> None: ...

    async def set_discussion_locked(self, discussion_id: str, locked: bool) -> None: ...


class ContentService(ContentDirectory, ContentGateway, Protocol):
    """Both halves of the content collaborator, as the HTTP layer injects them."""


class HttpContentService:
    """ContentDirectory and ContentGateway backed by the content service HTTP API."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_ms: int | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._base_url = (base_url or settings.content_api_url).rstrip("/")
        self._timeout = (timeout_ms if timeout_ms is not None else settings.content_api_timeout_ms) / 1000.0
        self._token = token if token is not None else settings.content_api_token
        # Injected transports let tests drive the adapter with httpx.MockTransport.
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def _request(self, method: str, path: str, *, json: dict[str, Any] | None = None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.error("content_service_unreachable method=%s path=%s", method, path, exc_info=exc)
            raise StorageFailureError("Content service unavailable") from exc
        if response.status_code >= 500:
            logger.error(
                "content_service_error method=%s path=%s status=%s",
                method,
                path,
                response.status_code,
            )
            raise StorageFailureError(f"Content service responded with status {response.status_code}")
        return response

    async def _get_json(self, path: str) -> dict[str, Any] | None:
        response = await self._request("GET", path)
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise StorageFailureError(f"Content service rejected lookup with status {response.status_code}")
        payload = response.json()
        return payload if isinstance(payload, dict) else {}

    async def community_exists(self, community_id: str) -> bool:
        return await self._get_json(f"/communities/{community_id}") is not None

    async def get_hub_community_id(self, hub_id: str) -> str | None:
        payload = await self._get_json(f"/hubs/{hub_id}")
        return None if payload is None else payload.get("community_id")

    async def get_space_hub_id(self, space_id: str) -> str | None:
        payload = await self._get_json(f"/spaces/{space_id}")
        return None if payload is None else payload.get("hub_id")

    async def get_discussion_space_id(self, discussion_id: str) -> str | None:
        payload = await self._get_json(f"/discussions/{discussion_id}")
        return None if payload is None else payload.get("space_id")

    async def get_post_discussion_id(self, post_id: str) -> str | None:
        payload = await self._get_json(f"/posts/{post_id}")
        return None if payload is None else payload.get("discussion_id")

    async def _mutate(self, method: str, path: str, *, json: dict[str, Any] | None = None) -> None:
        response = await self._request(method, path, json=json)
        if response.status_code >= 400:
            raise StorageFailureError(f"Content service rejected {method} {path} with status {response.status_code}")

    async def delete_post(self, post_id: str) -> None:
        await self._mutate("DELETE", f"/posts/{post_id}")

    async def delete_discussion(self, discussion_id: str) -> None:
        await self._mutate("DELETE", f"/discussions/{discussion_id}")

    async def set_discussion_locked(self, discussion_id: str, locked: bool) -> None:
        await self._mutate("PUT", f"/discussions/{discussion_id}/lock", json={"locked": locked})


@dataclass
class StaticContentDirectory:
    """In-memory hierarchy for tests and local development.

    Gateway calls are recorded in ``calls`` and applied to the maps so later
    lookups observe deleted content as missing.
    """

    communities: set[str] = field(default_factory=set)
    hubs: dict[str, str] = field(default_factory=dict)
    spaces: dict[str, str] = field(default_factory=dict)
    discussions: dict[str, str] = field(default_factory=dict)
    posts: dict[str, str] = field(default_factory=dict)
    locked_discussions: set[str] = field(default_factory=set)
    calls: list[tuple[str, str]] = field(default_factory=list)

    def add_community(self, community_id: str) -> "StaticContentDirectory":
        self.communities.add(community_id)
        return self

    def add_hub(self, hub_id: str, community_id: str) -> "StaticContentDirectory":
        self.communities.add(community_id)
        self.hubs[hub_id] = community_id
        return self

    def add_space(self, space_id: str, hub_id: str) -> "StaticContentDirectory":
        self.spaces[space_id] = hub_id
        return self

    def add_discussion(self, discussion_id: str, space_id: str) -> "StaticContentDirectory":
        self.discussions[discussion_id] = space_id
        return self

    def add_post(self, post_id: str, discussion_id: str) -> "StaticContentDirectory":
        self.posts[post_id] = discussion_id
        return self

    async def community_exists(self, community_id: str) -> bool:
        return community_id in self.communities

    async def get_hub_community_id(self, hub_id: str) -> str | None:
        return self.hubs.get(hub_id)

    async def get_space_hub_id(self, space_id: str) -> str | None:
        return self.spaces.get(space_id)

    async def get_discussion_space_id(self, discussion_id: str) -> str | None:
        return self.discussions.get(discussion_id)

    async def get_post_discussion_id(self, post_id: str) -> str | None:
        return self.posts.get(post_id)

    async def delete_post(self, post_id: str) -> None:
        self.calls.append(("delete_post", post_id))
        self.posts.pop(post_id, None)

    async def delete_discussion(self, discussion_id: str) -> None:
        self.calls.append(("delete_discussion", discussion_id))
        self.discussions.pop(discussion_id, None)

    async def set_discussion_locked(self, discussion_id: str, locked: bool) -> None:
        self.calls.append(("lock_discussion" if locked else "unlock_discussion", discussion_id))
        if locked:
            self.locked_discussions.add(discussion_id)
        else:
            self.locked_discussions.discard(discussion_id)
