"""
Test configuration and fixtures for Crudo.

Provides shared fixtures for unit and integration tests.
"""

import os

# Settings are read once at import time, so the environment must be in place
# before anything under ``app`` is imported.
os.environ.setdefault("SUPABASE_URL", "https://testproject.supabase.co")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-with-at-least-32-characters")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("WHATSAPP_ACCESS_TOKEN", "test-whatsapp-token")
os.environ.setdefault("WHATSAPP_PHONE_NUMBER_ID", "1234567890")
os.environ.setdefault("WHATSAPP_VERIFY_TOKEN", "test-verify-token")
os.environ.setdefault("WHATSAPP_APP_SECRET", "test-app-secret")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("STRIPE_PRICE_MONTHLY", "price_monthly")
os.environ.setdefault("STRIPE_PRICE_ANNUAL", "price_annual")
os.environ.setdefault("STRIPE_PRICE_METERED", "price_metered")
os.environ.setdefault("BREVO_API_KEY", "xkeysib-test")

import time
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import jwt
import pytest
from fastapi.testclient import TestClient

from fakes import FakeRepositories, scope_for


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application."""
    from app.main import app
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """Get synchronous test client."""
    return TestClient(app)


# =============================================================================
# Auth Fixtures
# =============================================================================

@pytest.fixture
def mock_user_id() -> UUID:
    return uuid4()


@pytest.fixture
def auth_headers(mock_user_id):
    """Bearer header with an HS256 token signed like Supabase does."""
    from app.config.settings import get_settings

    settings = get_settings()
    payload = {
        "sub": str(mock_user_id),
        "email": "manager@example.com",
        "aud": "authenticated",
        "iss": f"{settings.supabase_url}/auth/v1",
        "exp": int(time.time()) + 3600,
    }
    token = jwt.encode(payload, settings.supabase_jwt_secret, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# Mock Fixtures
# =============================================================================

@pytest.fixture
def fake_repos() -> FakeRepositories:
    return FakeRepositories.create()


@pytest.fixture
def mock_whatsapp():
    """Mock for WhatsAppClient."""
    mock = MagicMock()
    mock.send_message = AsyncMock(return_value={"messages": [{"id": "wamid.out"}]})
    mock.send_text = AsyncMock(return_value={"messages": [{"id": "wamid.text"}]})
    mock.send_template = AsyncMock(return_value={"messages": [{"id": "wamid.tpl"}]})
    mock.get_media_url = AsyncMock(return_value="https://lookaside.example/media")
    mock.download_media = AsyncMock(return_value=b"OggS-audio")
    return mock


@pytest.fixture
def mock_transcriber():
    """Mock for TranscriptionService."""
    mock = MagicMock()
    mock.transcribe = AsyncMock(return_value="Visited ACME, they want 20 units")
    return mock


@pytest.fixture
def mock_extractor():
    """Mock for TemplateExtractionService."""
    mock = MagicMock()
    mock.extract = AsyncMock(return_value={"customer": "ACME", "units": 20})
    return mock


@pytest.fixture
def mock_stripe():
    """Mock for StripeService with every async call stubbed."""
    mock = MagicMock()
    for name in (
        "create_checkout_session",
        "create_portal_session",
        "find_customer_by_email",
        "get_subscription",
        "list_customer_subscriptions",
        "cancel_subscription",
        "get_subscription_item",
        "tag_credits_item",
        "report_meter_event",
        "create_invoice_item",
    ):
        setattr(mock, name, AsyncMock())
    mock.find_customer_by_email.return_value = None
    mock.get_subscription.return_value = None
    mock.list_customer_subscriptions.return_value = []
    return mock


@pytest.fixture
def mock_brevo():
    """Mock for BrevoClient."""
    mock = MagicMock()
    mock.send_template_email = AsyncMock(return_value={"messageId": "<brevo-1@smtp>"})
    return mock


@pytest.fixture
def notifier():
    from app.infrastructure.services.activation_notifier import SubscriptionActivationNotifier
    return SubscriptionActivationNotifier()


@pytest.fixture
def api_overrides(
    app,
    fake_repos,
    mock_whatsapp,
    mock_transcriber,
    mock_extractor,
    mock_stripe,
    mock_brevo,
    notifier,
):
    """Route every database and vendor dependency to the fakes above."""
    from app.api import dependencies

    app.dependency_overrides.update({
        dependencies.get_repositories: lambda: fake_repos,
        dependencies.get_repositories_scope: lambda: scope_for(fake_repos),
        dependencies.get_whatsapp_client: lambda: mock_whatsapp,
        dependencies.get_transcription_service: lambda: mock_transcriber,
        dependencies.get_extraction_service: lambda: mock_extractor,
        dependencies.get_stripe_service: lambda: mock_stripe,
        dependencies.get_brevo_client: lambda: mock_brevo,
        dependencies.get_activation_notifier: lambda: notifier,
    })
    return app.dependency_overrides
