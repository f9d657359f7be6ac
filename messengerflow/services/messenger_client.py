"""HTTP client for the Messenger Send API."""

import logging
from typing import Any

import httpx

from messengerflow.config import settings
from messengerflow.core.exceptions import PlatformRejection

logger = logging.getLogger(__name__)

# Graph API errors that mean "outside the messaging window"
WINDOW_ERROR_CODES = {10900}
WINDOW_ERROR_SUBCODES = {(551, 2018278), (10, 2018278)}


def _is_window_error(code: int | None, subcode: int | None, message: str) -> bool:
    if code in WINDOW_ERROR_CODES or (code, subcode) in WINDOW_ERROR_SUBCODES:
        return True
    return "24 hour" in message.lower() or "outside of allowed window" in message.lower()


class MessengerClient:
    """HTTP client for sending messages as a page."""

    def __init__(
        self,
        access_token: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.base_url = f"{settings.FB_GRAPH_API_URL}/{settings.FB_GRAPH_API_VERSION}"
        self.timeout = settings.FB_REQUEST_TIMEOUT
        self.transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        **kwargs,
    ) -> dict[str, Any]:
        """Make an HTTP request to the Graph API."""
        url = f"{self.base_url}{path}"
        logger.info(f"Graph API request: {method} {path}")

        params = kwargs.pop("params", {})
        params["access_token"] = self.access_token

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.request(method, url, params=params, **kwargs)
            except httpx.RequestError as e:
                logger.error(f"Graph API connection error: {e}")
                raise PlatformRejection(f"Connection error: {e}")

        logger.info(f"Graph API response: {response.status_code}")

        if response.status_code >= 400:
            logger.error(f"Graph API error: {response.status_code} - {response.text}")
            raise self._rejection(response)

        try:
            return response.json()
        except ValueError:
            raise PlatformRejection(f"Invalid response body: {response.text[:200]}")

    @staticmethod
    def _rejection(response: httpx.Response) -> PlatformRejection:
        """Turn a Graph API error response into a PlatformRejection."""
        try:
            error = response.json().get("error") or {}
        except (ValueError, AttributeError):
            error = {}

        message = error.get("message") or response.text or f"HTTP {response.status_code}"
        code = error.get("code")
        subcode = error.get("error_subcode")
        return PlatformRejection(
            reason=message,
            code=code,
            subcode=subcode,
            is_policy=_is_window_error(code, subcode, message),
        )

    async def send_text(
        self,
        recipient_id: str,
        text: str,
        tag: str | None = None,
    ) -> dict[str, Any]:
        """Send a text message to a customer.

        Args:
            recipient_id: Page-scoped id of the customer
            text: Message body
            tag: Message tag required outside the messaging window

        Returns:
            The Send API response, including ``message_id`` when accepted
        """
        body: dict[str, Any] = {
            "recipient": {"id": recipient_id},
            "message": {"text": text},
        }
        if tag:
            body["messaging_type"] = "MESSAGE_TAG"
            body["tag"] = tag
        else:
            body["messaging_type"] = "RESPONSE"

        return await self._request("POST", "/me/messages", json=body)
