"""
Unit tests for Dependency Injection providers.

Validates that:
- DI factory functions return singleton instances via @lru_cache
- Providers raise ConfigurationError when a credential is missing
- Repositories and services can be independently instantiated for testing
"""

import inspect
from unittest.mock import patch

import pytest

from app.api import dependencies
from app.config.settings import get_settings
from app.infrastructure.exceptions import ConfigurationError


PROVIDERS = [
    dependencies.get_http_client,
    dependencies.get_whatsapp_client,
    dependencies.get_openai_client,
    dependencies.get_transcription_service,
    dependencies.get_extraction_service,
    dependencies.get_stripe_service,
    dependencies.get_brevo_client,
    dependencies.get_activation_notifier,
]


@pytest.fixture(autouse=True)
def clear_provider_caches():
    for provider in PROVIDERS:
        provider.cache_clear()
    yield
    for provider in PROVIDERS:
        provider.cache_clear()


class TestDIProviders:
    """Tests for @lru_cache DI provider functions."""

    @pytest.mark.parametrize("provider", PROVIDERS, ids=lambda p: p.__name__)
    def test_provider_is_cached(self, provider):
        assert provider() is provider()

    def test_clients_share_one_http_client(self):
        http = dependencies.get_http_client()
        assert dependencies.get_whatsapp_client()._http is http
        assert dependencies.get_brevo_client()._http is http

    def test_extraction_and_transcription_share_openai_client(self):
        transcriber = dependencies.get_transcription_service()
        extractor = dependencies.get_extraction_service()
        assert transcriber._client is extractor._client

    def test_whatsapp_client_uses_versioned_graph_url(self):
        client = dependencies.get_whatsapp_client()
        settings = get_settings()
        assert client.messages_url == (
            f"https://graph.facebook.com/{settings.whatsapp_api_version}"
            f"/{settings.whatsapp_phone_number_id}/messages"
        )


class TestMissingConfiguration:

    def _without(self, **update):
        return patch(
            "app.api.dependencies.get_settings",
            return_value=get_settings().model_copy(update=update),
        )

    def test_whatsapp_requires_token_and_phone_id(self):
        with self._without(whatsapp_access_token=None, whatsapp_phone_number_id=None):
            with pytest.raises(ConfigurationError) as exc:
                dependencies.get_whatsapp_client()
        assert exc.value.details["missing_keys"] == [
            "WHATSAPP_ACCESS_TOKEN",
            "WHATSAPP_PHONE_NUMBER_ID",
        ]

    @pytest.mark.parametrize("provider,field,key", [
        (dependencies.get_openai_client, "openai_api_key", "OPENAI_API_KEY"),
        (dependencies.get_stripe_service, "stripe_secret_key", "STRIPE_SECRET_KEY"),
        (dependencies.get_brevo_client, "brevo_api_key", "BREVO_API_KEY"),
    ])
    def test_missing_credential(self, provider, field, key):
        with self._without(**{field: None}):
            with pytest.raises(ConfigurationError) as exc:
                provider()
        assert exc.value.details["missing_keys"] == [key]
        assert exc.value.status_code == 500


class TestDIOverrides:
    """Tests validating DI override pattern for testing."""

    @pytest.mark.parametrize("name", [
        "ProfileRepository",
        "UserTemplateRepository",
        "VoiceTranscriptRepository",
        "SubscriptionRepository",
        "CreditsRepository",
        "WebhookEventRepository",
    ])
    def test_repositories_accept_session(self, name):
        from app.infrastructure.db import repositories

        sig = inspect.signature(getattr(repositories, name).__init__)
        params = [p for p in sig.parameters if p != "self"]
        assert params == ["session"]

    def test_repository_scope_provider_returns_factory(self):
        from app.infrastructure.db.unit_of_work import repositories_scope

        assert dependencies.get_repositories_scope() is repositories_scope
