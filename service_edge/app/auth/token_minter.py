"""
Service-account access token minting for the document store.

Implements the OAuth 2.0 JWT bearer grant: a signed RS256 assertion is
exchanged at the token endpoint for a short-lived access token, which is then
shared by every caller in the process until it nears expiry.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional

import httpx
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from jose import jwt
from jose.exceptions import JOSEError

from service_edge.app.domain.models import AccessToken, ServiceCredential
from shared.errors import CredentialError, UpstreamError, truncate_body
from shared.logging import get_logger
from shared.metrics import MetricsCollector


JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3500
SAFETY_MARGIN_SECONDS = 60


def normalize_pem(pem: str) -> str:
    """Undo the literal ``\\n`` escaping secrets stores apply to multi-line keys."""
    return pem.replace("\\n", "\n").strip() + "\n"


class CredentialMinter:
    """Produces and caches access tokens for a single service identity.

    No lock guards the refresh: concurrent callers that all observe an expired
    token each perform their own exchange and the last one to finish wins.
    Every issued token is valid, so the outcome is the same either way.
    """

    def __init__(
        self,
        credential: ServiceCredential,
        http_client: httpx.AsyncClient,
        *,
        metrics: Optional[MetricsCollector] = None,
        safety_margin: int = SAFETY_MARGIN_SECONDS,
        assertion_lifetime: int = ASSERTION_LIFETIME_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.credential = credential
        self.safety_margin = safety_margin
        self.assertion_lifetime = assertion_lifetime
        self.metrics = metrics
        self.logger = get_logger("edge.auth.token_minter")

        self._client = http_client
        self._clock = clock
        self._token: Optional[AccessToken] = None

    @property
    def cached_token(self) -> Optional[AccessToken]:
        return self._token

    async def get_token(self) -> AccessToken:
        """Return a usable access token, exchanging a new assertion if needed."""
        token = self._token
        if token is not None and token.is_usable(self._clock(), self.safety_margin):
            return token

        try:
            token = await self._refresh()
        except (CredentialError, UpstreamError):
            self._record_refresh("error")
            raise

        self._token = token
        self._record_refresh("ok")
        return token

    def build_assertion(self) -> str:
        """Sign the grant assertion for the configured service identity."""
        issuer = self.credential.issuer_identity
        signing_key = self.credential.signing_key
        if not issuer or not signing_key:
            raise CredentialError("Service account credentials are not configured")

        pem = normalize_pem(signing_key)
        self._check_private_key(pem)

        issued_at = int(self._clock())
        claims = {
            "iss": issuer,
            "sub": issuer,
            "aud": self.credential.audience_url,
            "iat": issued_at,
            "exp": issued_at + self.assertion_lifetime,
            "scope": self.credential.scope,
        }
        try:
            return jwt.encode(claims, pem, algorithm="RS256", headers={"typ": "JWT"})
        except JOSEError as exc:
            raise CredentialError("Service account private key could not sign the assertion") from exc

    def _check_private_key(self, pem: str) -> None:
        try:
            serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm):
            # Never chain the parser error: it may quote key bytes.
            raise CredentialError("Service account private key is malformed or invalid") from None

    async def _refresh(self) -> AccessToken:
        assertion = self.build_assertion()

        try:
            response = await self._client.post(
                self.credential.audience_url,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as exc:
            self.logger.error("Token endpoint unreachable", error=str(exc))
            raise UpstreamError("token endpoint", "Token endpoint unreachable") from exc

        if response.status_code >= 400:
            self.logger.warning(
                "Token exchange rejected",
                status_code=response.status_code,
                issuer=self.credential.issuer_identity,
            )
            raise CredentialError(
                f"Failed to fetch access token ({response.status_code}): {truncate_body(response.text)}",
                details={"status_code": response.status_code},
            )

        payload = self._decode(response)
        value = payload.get("access_token")
        if not isinstance(value, str) or not value:
            raise CredentialError("Token endpoint response did not include an access token")

        try:
            expires_in = int(payload.get("expires_in", 3600))
        except (TypeError, ValueError):
            raise CredentialError("Token endpoint returned an invalid expires_in") from None

        token = AccessToken(value=value, expires_at=self._clock() + expires_in)
        self.logger.info("Access token refreshed", expires_in=expires_in)
        return token

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            raise CredentialError("Token endpoint returned a non-JSON response") from None
        if not isinstance(payload, dict):
            raise CredentialError("Token endpoint returned an unexpected payload")
        return payload

    def _record_refresh(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("token_refresh_total", status=status)
