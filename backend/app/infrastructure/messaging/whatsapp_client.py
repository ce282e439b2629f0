"""
WhatsApp Cloud API Client

Async Graph API client for sending messages and fetching inbound media.
One instance per process, built by the DI provider and closed on shutdown.
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional

import httpx

from app.infrastructure.exceptions import WhatsAppAPIError


logger = logging.getLogger(__name__)


def verify_webhook_signature(app_secret: str, payload: bytes, signature: Optional[str]) -> bool:
    """Check the ``X-Hub-Signature-256`` header of a webhook delivery."""
    if not signature or not signature.startswith("sha256="):
        return False
    expected = hmac.new(app_secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.removeprefix("sha256="))


class WhatsAppClient:
    """
    WhatsApp Cloud API client.

    Args:
        access_token: System user token for the business account
        phone_number_id: Sending phone number id
        graph_url: Versioned Graph API base, e.g. ``https://graph.facebook.com/v24.0``
        http_client: Shared ``httpx.AsyncClient``
    """

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        graph_url: str,
        http_client: httpx.AsyncClient,
    ):
        self._access_token = access_token
        self._phone_number_id = phone_number_id
        self._graph_url = graph_url.rstrip("/")
        self._http = http_client

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}"}

    @property
    def messages_url(self) -> str:
        return f"{self._graph_url}/{self._phone_number_id}/messages"

    # =========================================================================
    # Outbound Messages
    # =========================================================================

    async def send_message(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST a message payload as-is.

        Returns:
            The Cloud API response body

        Raises:
            WhatsAppAPIError: with the vendor status and error body
        """
        body = {"messaging_product": "whatsapp", **payload}
        response = await self._http.post(self.messages_url, json=body, headers=self._headers)
        result = self._json_or_empty(response)

        if response.is_error:
            error = result.get("error") or {}
            logger.error(f"WhatsApp send failed ({response.status_code}): {result}")
            raise WhatsAppAPIError(
                error.get("message") or "WhatsApp API request failed",
                status_code=response.status_code,
                details=error or None,
            )
        return result

    async def send_text(self, to: str, body: str) -> Dict[str, Any]:
        return await self.send_message({
            "recipient_type": "individual",
            "to": to,
            "type": "text",
            "text": {"preview_url": False, "body": body},
        })

    async def send_template(
        self,
        to: str,
        name: str,
        language: str,
        body_parameters: Optional[List[str]] = None,
        button_payloads: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Send an approved template with body text and quick-reply payloads."""
        components: List[Dict[str, Any]] = []
        if body_parameters:
            components.append({
                "type": "body",
                "parameters": [{"type": "text", "text": value} for value in body_parameters],
            })
        for index, payload in enumerate(button_payloads or []):
            components.append({
                "type": "button",
                "sub_type": "quick_reply",
                "index": str(index),
                "parameters": [{"type": "payload", "payload": payload}],
            })

        return await self.send_message({
            "recipient_type": "individual",
            "to": to,
            "type": "template",
            "template": {
                "name": name,
                "language": {"code": language},
                "components": components,
            },
        })

    # =========================================================================
    # Inbound Media
    # =========================================================================

    async def get_media_url(self, media_id: str) -> str:
        """Resolve a media id to its short-lived download URL."""
        response = await self._http.get(f"{self._graph_url}/{media_id}", headers=self._headers)
        result = self._json_or_empty(response)
        if response.is_error or not result.get("url"):
            logger.error(f"WhatsApp media lookup failed for {media_id}: {result}")
            raise WhatsAppAPIError(
                "Failed to resolve media URL",
                status_code=response.status_code,
                details=result.get("error"),
            )
        return result["url"]

    async def download_media(self, url: str) -> bytes:
        response = await self._http.get(url, headers=self._headers)
        if response.is_error:
            logger.error(f"WhatsApp media download failed ({response.status_code})")
            raise WhatsAppAPIError(
                "Failed to download media",
                status_code=response.status_code,
            )
        return response.content

    @staticmethod
    def _json_or_empty(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}
