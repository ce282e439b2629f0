"""
Brevo Transactional Email Client

Sends template emails through the Brevo SMTP API.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.infrastructure.exceptions import EmailDeliveryError


logger = logging.getLogger(__name__)


class BrevoClient:

    def __init__(self, api_key: str, api_url: str, http_client: httpx.AsyncClient):
        self._api_key = api_key
        self._api_url = api_url
        self._http = http_client

    async def send_template_email(
        self,
        template_id: int,
        to_email: str,
        to_name: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        attachment: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Send a transactional template.

        Returns:
            Brevo response body (contains ``messageId``)
        """
        recipient = {"email": to_email}
        if to_name:
            recipient["name"] = to_name

        payload: Dict[str, Any] = {
            "templateId": template_id,
            "to": [recipient],
            "params": params or {},
        }
        if attachment:
            payload["attachment"] = attachment

        response = await self._http.post(
            self._api_url,
            json=payload,
            headers={"api-key": self._api_key, "accept": "application/json"},
        )

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {"raw": response.text}

        if response.is_error:
            logger.error(f"Brevo send failed ({response.status_code}): {body}")
            raise EmailDeliveryError(
                body.get("message") or "Failed to send email",
                status_code=response.status_code,
                details=body,
            )

        logger.info(f"Sent Brevo template {template_id} to {to_email}")
        return body
