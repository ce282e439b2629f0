# API Routes Module
from app.api.routes import (
    email,
    subscriptions,
    templates,
    transcripts,
    webhooks,
    whatsapp,
)

__all__ = [
    "email",
    "subscriptions",
    "templates",
    "transcripts",
    "webhooks",
    "whatsapp",
]
