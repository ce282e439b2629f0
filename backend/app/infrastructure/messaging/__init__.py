"""
Messaging Infrastructure Module

WhatsApp Cloud API client and webhook signature verification.
"""

from app.infrastructure.messaging.whatsapp_client import (
    WhatsAppClient,
    verify_webhook_signature,
)

__all__ = ["WhatsAppClient", "verify_webhook_signature"]
