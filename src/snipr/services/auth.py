"""
Credential Verification.

Maps a bearer token to the owner id it speaks for. The rest of the
service only sees `CredentialVerifier.verify(token) -> owner_id`.

Verifiers:
    SignedTokenVerifier: itsdangerous TimestampSigner over the owner id,
                         with a maximum token age
    StaticTokenVerifier: fixed token -> owner map (settings.yaml auth.tokens)

Usage:
    verifier = get_verifier(config.auth)
    owner_id = verifier.verify(token)        # AuthError on failure
    require_owner(owner_id, requested_owner) # ForbiddenError on mismatch
"""
from __future__ import annotations

import hmac
from abc import ABC, abstractmethod
from typing import Dict, Optional

import itsdangerous

from snipr.core.config import AuthConfig
from snipr.core.errors import AuthError, ForbiddenError
from snipr.core.logging import debug, get_logger, info, warn

_LOG = get_logger("snipr.auth")


class CredentialVerifier(ABC):
    """Token -> owner_id."""

    name: str = "base"

    @abstractmethod
    def verify(self, token: Optional[str]) -> str:
        """
        Raises:
            AuthError: Missing, malformed, invalid or expired token.
        """
        raise NotImplementedError


class SignedTokenVerifier(CredentialVerifier):
    """
    Tokens are `owner_id.timestamp.signature` produced by issue().

    Tokens older than max_age_s are rejected.
    """

    name = "signed"

    def __init__(self, secret: str, max_age_s: int = 3600):
        if not secret:
            raise ValueError("SNIPR_AUTH_SECRET is required for signed tokens")
        self._signer = itsdangerous.TimestampSigner(secret, salt="snipr-auth")
        self.max_age_s = max_age_s

    def issue(self, owner_id: str) -> str:
        return self._signer.sign(owner_id).decode("utf-8")

    def verify(self, token: Optional[str]) -> str:
        if not token:
            raise AuthError("Missing authorization token")
        try:
            owner_id = self._signer.unsign(token, max_age=self.max_age_s).decode("utf-8")
        except itsdangerous.SignatureExpired:
            raise AuthError("Authorization token expired")
        except itsdangerous.BadSignature:
            raise AuthError("Invalid authorization token")
        if not owner_id:
            raise AuthError("Invalid authorization token")
        return owner_id


class StaticTokenVerifier(CredentialVerifier):
    """Fixed token table; every candidate is compared in constant time."""

    name = "static"

    def __init__(self, tokens: Dict[str, str]):
        self._tokens = dict(tokens)

    def verify(self, token: Optional[str]) -> str:
        if not token:
            raise AuthError("Missing authorization token")
        found: Optional[str] = None
        for candidate, owner_id in self._tokens.items():
            if hmac.compare_digest(candidate.encode("utf-8"), token.encode("utf-8")):
                found = owner_id
        if found is None:
            raise AuthError("Invalid authorization token")
        return found


def parse_bearer(header: Optional[str]) -> str:
    """
    Extract the token from an Authorization header.

    Raises:
        AuthError: Header missing or not a Bearer credential.
    """
    if not header or not header.startswith("Bearer "):
        raise AuthError("Missing authorization token")
    token = header[len("Bearer "):].strip()
    if not token:
        raise AuthError("Missing authorization token")
    return token


def require_owner(principal: str, owner_id: str) -> None:
    """
    Raises:
        ForbiddenError: The principal does not match the requested owner.
    """
    if principal != owner_id:
        warn(_LOG, "owner_mismatch", principal=principal)
        raise ForbiddenError("Unauthorized")
    debug(_LOG, "owner_ok", owner_id=owner_id)


def get_verifier(config: Optional[AuthConfig] = None) -> CredentialVerifier:
    """Create the configured credential verifier."""
    config = config or AuthConfig()
    if config.mode == "static":
        verifier: CredentialVerifier = StaticTokenVerifier(config.tokens)
    else:
        verifier = SignedTokenVerifier(config.secret or "", config.token_max_age_s)
    info(_LOG, "auth_ready", mode=verifier.name)
    return verifier
