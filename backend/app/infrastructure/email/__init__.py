"""
Email Infrastructure Module

Brevo transactional email client.
"""

from app.infrastructure.email.brevo_client import BrevoClient

__all__ = ["BrevoClient"]
