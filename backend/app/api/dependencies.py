"""
API Dependencies

FastAPI dependency injection for authentication and vendor clients.

Security: JWT tokens are verified cryptographically, either with the
Supabase JWKS (ES256) or with the legacy HS256 JWT secret. Never decode
without verification.

Vendor clients live for the whole process: each provider is cached with
``lru_cache`` and tests replace them through ``app.dependency_overrides``.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Optional
from uuid import UUID

import httpx
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt import PyJWKClient
from openai import AsyncOpenAI

from app.config.settings import get_settings
from app.infrastructure.ai.openai_service import (
    TemplateExtractionService,
    TranscriptionService,
)
from app.infrastructure.email import BrevoClient
from app.infrastructure.exceptions import ConfigurationError
from app.infrastructure.messaging import WhatsAppClient
from app.infrastructure.payments import StripeService
from app.infrastructure.services.activation_notifier import SubscriptionActivationNotifier


logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


# =============================================================================
# Authentication
# =============================================================================

@dataclass(frozen=True)
class AuthenticatedUser:
    """Caller identity taken from a verified Supabase access token."""
    id: UUID
    email: Optional[str] = None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


@lru_cache
def get_jwks_client() -> PyJWKClient:
    """PyJWKClient for the Supabase JWKS endpoint; caches keys internally."""
    settings = get_settings()
    jwks_url = f"{settings.supabase_url}/auth/v1/.well-known/jwks.json"
    return PyJWKClient(jwks_url, cache_keys=True)


def _decode_with_jwks(token: str, issuer: str) -> dict:
    """Verify JWT using Supabase JWKS endpoint (ES256 asymmetric keys)."""
    signing_key = get_jwks_client().get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def _decode_with_secret(token: str, secret: str, issuer: str) -> dict:
    """Verify JWT using HS256 symmetric secret (legacy Supabase signing)."""
    return jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=issuer,
        audience="authenticated",
        options={"require": ["exp", "sub", "iss"]},
    )


def decode_access_token(token: str) -> dict:
    """
    Verify a Supabase access token and return its claims.

    HS256 tokens are checked against ``SUPABASE_JWT_SECRET``; everything else
    goes through the JWKS endpoint.

    Raises:
        HTTPException 401: token expired, malformed or unverifiable.
    """
    settings = get_settings()
    issuer = f"{settings.supabase_url}/auth/v1"

    try:
        header = jwt.get_unverified_header(token)
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid or unverifiable token")

    try:
        if header.get("alg") == "HS256":
            if not settings.supabase_jwt_secret:
                raise _unauthorized("Invalid or unverifiable token")
            return _decode_with_secret(token, settings.supabase_jwt_secret, issuer)
        return _decode_with_jwks(token, issuer)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except (jwt.exceptions.PyJWKClientError, jwt.InvalidTokenError) as e:
        logger.warning(f"JWT verification failed: {e}")
        raise _unauthorized("Invalid or unverifiable token")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthenticatedUser:
    """
    Resolve the authenticated caller.

    Returns:
        AuthenticatedUser with the ``sub`` claim as id and the ``email`` claim.

    Raises:
        HTTPException 401: token missing, expired, or invalid.
    """
    if not credentials:
        raise _unauthorized("Missing authorization token")

    payload = decode_access_token(credentials.credentials)

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise _unauthorized("Invalid token: missing user ID")

    return AuthenticatedUser(id=user_id, email=payload.get("email") or None)


CurrentUserDep = Annotated[AuthenticatedUser, Depends(get_current_user)]


# =============================================================================
# Vendor Client Providers
# =============================================================================

@lru_cache
def get_http_client() -> httpx.AsyncClient:
    """Shared outbound HTTP client, closed on application shutdown."""
    return httpx.AsyncClient(timeout=get_settings().http_timeout_seconds)


@lru_cache
def get_whatsapp_client() -> WhatsAppClient:
    settings = get_settings()
    missing = [
        key
        for key, value in (
            ("WHATSAPP_ACCESS_TOKEN", settings.whatsapp_access_token),
            ("WHATSAPP_PHONE_NUMBER_ID", settings.whatsapp_phone_number_id),
        )
        if not value
    ]
    if missing:
        raise ConfigurationError("WhatsApp credentials are not configured", missing_keys=missing)
    return WhatsAppClient(
        access_token=settings.whatsapp_access_token,
        phone_number_id=settings.whatsapp_phone_number_id,
        graph_url=settings.whatsapp_graph_url,
        http_client=get_http_client(),
    )


@lru_cache
def get_openai_client() -> AsyncOpenAI:
    settings = get_settings()
    if not settings.openai_api_key:
        raise ConfigurationError("OpenAI API key is not configured", missing_keys=["OPENAI_API_KEY"])
    return AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.http_timeout_seconds)


@lru_cache
def get_transcription_service() -> TranscriptionService:
    return TranscriptionService(
        client=get_openai_client(),
        model=get_settings().openai_transcription_model,
    )


@lru_cache
def get_extraction_service() -> TemplateExtractionService:
    settings = get_settings()
    return TemplateExtractionService(
        client=get_openai_client(),
        model=settings.openai_chat_model,
        temperature=settings.extraction_temperature,
    )


@lru_cache
def get_stripe_service() -> StripeService:
    settings = get_settings()
    if not settings.stripe_secret_key:
        raise ConfigurationError("Stripe is not configured", missing_keys=["STRIPE_SECRET_KEY"])
    return StripeService(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
    )


@lru_cache
def get_brevo_client() -> BrevoClient:
    settings = get_settings()
    if not settings.brevo_api_key:
        raise ConfigurationError("Brevo is not configured", missing_keys=["BREVO_API_KEY"])
    return BrevoClient(
        api_key=settings.brevo_api_key,
        api_url=settings.brevo_api_url,
        http_client=get_http_client(),
    )


@lru_cache
def get_activation_notifier() -> SubscriptionActivationNotifier:
    return SubscriptionActivationNotifier()


WhatsAppClientDep = Annotated[WhatsAppClient, Depends(get_whatsapp_client)]
TranscriptionServiceDep = Annotated[TranscriptionService, Depends(get_transcription_service)]
ExtractionServiceDep = Annotated[TemplateExtractionService, Depends(get_extraction_service)]
StripeServiceDep = Annotated[StripeService, Depends(get_stripe_service)]
BrevoClientDep = Annotated[BrevoClient, Depends(get_brevo_client)]
ActivationNotifierDep = Annotated[
    SubscriptionActivationNotifier, Depends(get_activation_notifier)
]


# =============================================================================
# Re-export DB dependencies for a single import source
# Routers should import from api.dependencies, not db.dependencies directly.
# =============================================================================
from app.infrastructure.db.dependencies import (  # noqa: E402, F401
    SessionDep,
    RepositoriesDep,
    RepositoriesScopeDep,
    get_repositories,
    get_repositories_scope,
)
