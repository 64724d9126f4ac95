"""
FastAPI Dependency Injection Providers.

Dependency hierarchy:
    1. get_settings() - loads and caches application configuration
    2. get_job_service() - singleton JobService built from settings
    3. get_credential_verifier() - cached CredentialVerifier
    4. get_principal() - owner id behind the request's bearer token

Tests replace any of these through `app.dependency_overrides`.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from snipr.core.config import Settings, load_settings
from snipr.services import get_service
from snipr.services.auth import CredentialVerifier, get_verifier, parse_bearer
from snipr.services.job_service import JobService


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache application settings.

    Reads $SNIPR_SETTINGS or config/settings.yaml; all defaults when the
    file is absent.
    """
    return load_settings(missing_ok=True)


def get_job_service() -> JobService:
    return get_service(get_settings())


@lru_cache(maxsize=1)
def get_credential_verifier() -> CredentialVerifier:
    return get_verifier(get_settings().get_pipeline_config().auth)


def get_principal(
    authorization: Optional[str] = Header(default=None),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> str:
    """
    Owner id the request speaks for.

    Raises:
        AuthError: Missing, malformed, invalid or expired bearer token.
    """
    return verifier.verify(parse_bearer(authorization))
