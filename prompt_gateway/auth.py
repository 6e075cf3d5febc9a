"""Bearer token verification for gateway callers."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional, Protocol

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from keycloak import KeycloakOpenID

from .config import Settings, get_settings
from .errors import ErrorKind, GenerationError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(message: str = "Invalid or expired token") -> GenerationError:
    return GenerationError(ErrorKind.UNAUTHORIZED, message)


def _subject(payload: Dict[str, Any]) -> str:
    subject = payload.get("sub")
    if not subject:
        raise _unauthorized()
    return str(subject)


class IdentityResolver(Protocol):
    def resolve(self, token: str) -> str:
        """Return the caller's user id or raise ``UNAUTHORIZED``."""
        ...


class JWTIdentityResolver:
    """Verify tokens signed with a shared secret."""

    def __init__(
        self,
        secret: Optional[str],
        *,
        algorithm: str = "HS256",
        audience: Optional[str] = None,
    ) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._audience = audience

    def resolve(self, token: str) -> str:
        if not self._secret:
            logger.error("Token verification secret is not configured")
            raise _unauthorized()
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"verify_aud": bool(self._audience)},
            )
        except JWTError as exc:
            logger.info("Rejected bearer token", extra={"reason": str(exc)})
            raise _unauthorized() from exc
        return _subject(payload)


class KeycloakIdentityResolver:
    """Verify tokens against the public key published by a Keycloak realm.

    The realm key is fetched once per resolver and reused for every request.
    """

    def __init__(
        self,
        server_url: str,
        realm: str,
        client_id: str,
        *,
        audience: Optional[str] = None,
    ) -> None:
        self._audience = audience
        self._openid = KeycloakOpenID(
            server_url=server_url,
            realm_name=realm,
            client_id=client_id,
        )
        self._cached_public_key: Optional[str] = None

    def _get_public_key(self) -> str:
        if self._cached_public_key:
            return self._cached_public_key
        raw_key = self._openid.public_key()
        self._cached_public_key = (
            f"-----BEGIN PUBLIC KEY-----\n{raw_key}\n-----END PUBLIC KEY-----"
        )
        return self._cached_public_key

    def resolve(self, token: str) -> str:
        try:
            key = self._get_public_key()
        except Exception as exc:
            logger.error("Could not fetch the realm public key", extra={"reason": str(exc)})
            raise _unauthorized() from exc

        try:
            payload: Dict[str, Any] = jwt.decode(
                token,
                key,
                algorithms=["RS256"],
                audience=self._audience,
                options={"verify_aud": bool(self._audience)},
            )
        except JWTError as exc:
            logger.info("Rejected Keycloak token", extra={"reason": str(exc)})
            raise _unauthorized() from exc
        return _subject(payload)


@lru_cache()
def _keycloak_resolver(
    server_url: str, realm: str, client_id: str, audience: Optional[str]
) -> KeycloakIdentityResolver:
    return KeycloakIdentityResolver(server_url, realm, client_id, audience=audience)


def get_identity_resolver(settings: Settings = Depends(get_settings)) -> IdentityResolver:
    """Prefer Keycloak when a realm server is configured, else the shared secret."""

    if settings.keycloak_server_url:
        return _keycloak_resolver(
            settings.keycloak_server_url,
            settings.keycloak_realm,
            settings.keycloak_client_id,
            settings.auth_audience,
        )
    return JWTIdentityResolver(
        settings.auth_secret_key,
        algorithm=settings.auth_algorithm,
        audience=settings.auth_audience,
    )


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    resolver: IdentityResolver = Depends(get_identity_resolver),
) -> str:
    """FastAPI dependency returning the authenticated user id."""

    if credentials is None or not credentials.credentials:
        raise _unauthorized("Missing authorization header")
    return resolver.resolve(credentials.credentials)


__all__ = [
    "IdentityResolver",
    "JWTIdentityResolver",
    "KeycloakIdentityResolver",
    "bearer_scheme",
    "get_current_user_id",
    "get_identity_resolver",
]
