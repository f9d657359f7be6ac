"""HTTP client for the inbox REST surface."""

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class InboxApiError(Exception):
    """A non-2xx response from the inbox API."""

    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {detail}")

    @property
    def reason(self) -> str:
        """Human-readable reason, including the platform's for a rejected send."""
        if isinstance(self.detail, dict):
            return str(self.detail.get("reason") or self.detail)
        return str(self.detail)

    @property
    def is_policy(self) -> bool:
        """True when the platform refused a send because of the messaging window."""
        return isinstance(self.detail, dict) and bool(self.detail.get("is_policy"))


class InboxApiClient:
    """HTTP client used by agent front-ends."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/api/v1",
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Inbox API connection error: {e}")
            raise InboxApiError(0, f"Connection error: {e}")

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except (ValueError, AttributeError):
                detail = response.text
            logger.warning(f"Inbox API error on {method} {path}: {response.status_code}")
            raise InboxApiError(response.status_code, detail)

        return response.json()

    async def list_recent_conversations(self, page_id: str, limit: int | None = None) -> list[dict]:
        params: dict[str, Any] = {"page_id": page_id}
        if limit:
            params["limit"] = limit
        data = await self._request("GET", "/conversations", params=params)
        return data["items"]

    async def list_conversation_history(self, page_id: str, limit: int | None = None) -> list[dict]:
        params: dict[str, Any] = {"page_id": page_id}
        if limit:
            params["limit"] = limit
        data = await self._request("GET", "/conversations/history", params=params)
        return data["items"]

    async def get_conversation(self, conversation_id: str) -> dict:
        return await self._request("GET", f"/conversations/{conversation_id}")

    async def list_messages(self, conversation_id: str) -> list[dict]:
        data = await self._request("GET", f"/conversations/{conversation_id}/messages")
        return data["items"]

    async def update_conversation(self, conversation_id: str, **fields) -> dict:
        return await self._request("PATCH", f"/conversations/{conversation_id}", json=fields)

    async def mark_read(self, conversation_id: str) -> dict:
        return await self._request("POST", f"/conversations/{conversation_id}/read")

    async def send_message(
        self,
        conversation_id: str,
        text: str,
        sender_id: str = "agent",
        sender_name: str = "Agent",
    ) -> dict:
        """Send a reply. Returns ``{"message": ..., "window": ...}``."""
        return await self._request(
            "POST",
            "/messages",
            json={
                "conversation_id": conversation_id,
                "text": text,
                "sender_id": sender_id,
                "sender_name": sender_name,
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "InboxApiClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
