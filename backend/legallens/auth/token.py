"""
Firebase ID Token Verification

Firebase Authentication issues RS256-signed JWTs:

    Issuer:   https://securetoken.google.com/<project_id>
    Audience: <project_id>
    JWKS URI: https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com
    Claims:   sub (= uid), email, email_verified, name, picture

Google rotates the signing keys. We fetch the public JWKS once and cache it
(TTL: 1 hour). If a kid is missing we force-refresh once — handles key
rotation transparently.

Failure reasons (all 401):
    MISSING_TOKEN   no Authorization header
    INVALID_FORMAT  header present but not "Bearer <token>"
    TOKEN_EXPIRED   exp in the past
    INVALID_TOKEN   bad signature / issuer / audience / header / unknown kid
    AUTH_FAILED     signing keys could not be fetched
"""

from __future__ import annotations

import logging
import time
from typing import Annotated

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwk, jwt
from pydantic import BaseModel

from legallens.core.config import Settings
from legallens.core.errors import AuthError, AuthFailure

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# HTTP Bearer extractor: auto_error=False so we can word the 401 ourselves
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Verified user context
# ---------------------------------------------------------------------------

class AuthenticatedUser(BaseModel):
    """Parsed, validated ID-token claims — passed to route handlers."""
    uid:            str
    email:          str = ""
    display_name:   str | None = None
    email_verified: bool = False
    picture:        str | None = None
    exp:            int
    iss:            str


# ---------------------------------------------------------------------------
# JWKS cache (in-memory, TTL-based)
# ---------------------------------------------------------------------------

class _JWKSCache:
    """
    In-memory JWKS cache, keyed by JWKS URL.

      • Fetches the key set once and caches it for TTL.
      • On cache miss for a specific kid: force-refreshes once (rotation).
      • On second miss: INVALID_TOKEN.
      • Transport errors from the JWKS endpoint: AUTH_FAILED.
    """

    _TTL: int = 3600   # 1 hour

    def __init__(self) -> None:
        self._store: dict[str, tuple[dict, float]] = {}   # url → (jwks, fetched_at)

    async def get_signing_key(self, token: str, jwks_url: str) -> object:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise AuthError(AuthFailure.INVALID_TOKEN, "Malformed token header") from exc

        kid = header.get("kid")

        for attempt in range(2):   # 0 = cached, 1 = force refresh
            if attempt == 1:
                self._store.pop(jwks_url, None)

            jwks = await self._fetch(jwks_url)
            for key_data in jwks.get("keys", []):
                if key_data.get("kid") == kid:
                    return jwk.construct(key_data, algorithm="RS256")

        raise AuthError(AuthFailure.INVALID_TOKEN, f"No signing key found for kid={kid!r}")

    async def _fetch(self, jwks_url: str) -> dict:
        now = time.monotonic()
        cached = self._store.get(jwks_url)
        if cached and (now - cached[1]) < self._TTL:
            return cached[0]

        try:
            async with httpx.AsyncClient(timeout=10.0) as http:
                resp = await http.get(jwks_url)
                resp.raise_for_status()
                jwks = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error("JWKS fetch failed | url=%s status=%d", jwks_url, exc.response.status_code)
            raise AuthError(AuthFailure.AUTH_FAILED, "Unable to retrieve token signing keys") from exc
        except httpx.RequestError as exc:
            logger.error("JWKS fetch network error | url=%s error=%s", jwks_url, exc)
            raise AuthError(AuthFailure.AUTH_FAILED, "Unable to retrieve token signing keys") from exc

        self._store[jwks_url] = (jwks, now)
        logger.debug("JWKS refreshed | url=%s keys=%d", jwks_url, len(jwks.get("keys", [])))
        return jwks

    def clear(self) -> None:
        self._store.clear()


# ---------------------------------------------------------------------------
# Verifier
# ---------------------------------------------------------------------------

class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens for one project."""

    def __init__(
        self,
        project_id: str,
        jwks_url: str,
        cache: _JWKSCache | None = None,
    ) -> None:
        self.project_id = project_id
        self.issuer = f"https://securetoken.google.com/{project_id}"
        self.jwks_url = jwks_url
        self.cache = cache or _JWKSCache()

    @classmethod
    def from_settings(cls, settings: Settings) -> "FirebaseTokenVerifier":
        return cls(settings.firebase_project_id, settings.firebase_jwks_url)

    async def verify(self, token: str) -> AuthenticatedUser:
        """
        1. Resolve the signing key for the token's kid (cached JWKS).
        2. Verify signature, expiry, issuer, audience.
        3. Return the typed user context.
        """
        signing_key = await self.cache.get_signing_key(token, self.jwks_url)

        try:
            claims = jwt.decode(
                token,
                signing_key,
                algorithms=["RS256"],
                audience=self.project_id,
                issuer=self.issuer,
                options={"verify_exp": True},
            )
        except ExpiredSignatureError as exc:
            raise AuthError(AuthFailure.TOKEN_EXPIRED, "Token has expired") from exc
        except JWTError as exc:
            logger.info("Token rejected | reason=%s", exc)
            raise AuthError(AuthFailure.INVALID_TOKEN, "Invalid token") from exc

        uid = claims.get("sub")
        if not uid:
            raise AuthError(AuthFailure.INVALID_TOKEN, "Token has no subject")

        return AuthenticatedUser(
            uid=uid,
            email=claims.get("email", ""),
            display_name=claims.get("name"),
            email_verified=bool(claims.get("email_verified", False)),
            picture=claims.get("picture"),
            exp=claims["exp"],
            iss=claims["iss"],
        )


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> AuthenticatedUser:
    """
    Inject into any route that requires authentication:

        @router.get("/documents")
        async def list_docs(user: CurrentUser): ...
    """
    if credentials is None:
        if not request.headers.get("Authorization"):
            raise AuthError(AuthFailure.MISSING_TOKEN, "Authorization header is required")
        raise AuthError(
            AuthFailure.INVALID_FORMAT,
            "Invalid authorization format. Use Bearer <token>",
        )

    verifier: FirebaseTokenVerifier = request.app.state.services.verifier
    return await verifier.verify(credentials.credentials)
