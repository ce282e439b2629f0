"""
Unit tests for Pydantic Settings configuration.

Tests settings loading and validation.
"""

import pytest
from pydantic import ValidationError

from app.config.settings import Settings


class TestSettings:
    """Tests for Settings configuration."""

    def test_settings_loads_from_env(self):
        """Settings should load from environment variables."""
        from app.config.settings import settings

        assert settings.supabase_url == "https://testproject.supabase.co"
        assert settings.whatsapp_verify_token is not None
        assert settings.stripe_price_metered is not None

    def test_settings_has_defaults(self):
        """Settings should have sensible defaults."""
        from app.config.settings import settings

        assert settings.whatsapp_api_version.startswith("v")
        assert settings.openai_chat_model == "gpt-4o-mini"
        assert settings.openai_transcription_model == "whisper-1"
        assert settings.extraction_temperature == 0.3
        assert settings.environment in ("development", "production", "testing")
        assert settings.activation_poll_attempts >= 1

    def test_is_production_property(self):
        """Neither production nor development while testing."""
        from app.config.settings import settings

        assert settings.is_production is False
        assert settings.is_development is False

    def test_allowed_origins_includes_localhost(self):
        """allowed_origins should include localhost for development."""
        from app.config.settings import settings

        assert "http://localhost:5173" in settings.allowed_origins
        assert "http://localhost:3000" in settings.allowed_origins

    def test_trailing_slashes_are_stripped(self):
        settings = Settings(
            supabase_url="https://abc.supabase.co/",
            frontend_url="https://app.crudo.example/",
        )
        assert settings.supabase_url == "https://abc.supabase.co"
        assert settings.frontend_url == "https://app.crudo.example"

    def test_graph_url_follows_api_version(self):
        settings = Settings(supabase_url="https://abc.supabase.co", whatsapp_api_version="v21.0")
        assert settings.whatsapp_graph_url == "https://graph.facebook.com/v21.0"

    def test_echo_limit_too_small(self):
        with pytest.raises(ValidationError):
            Settings(supabase_url="https://abc.supabase.co", transcript_echo_max_chars=2)
