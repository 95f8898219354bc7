"""OAuth2 client-credentials token sources and the bearer-token httpx auth flow."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from urllib.parse import urljoin

import httpx

from .client import ReSimError
from .credentials import CredentialCache, TokenRecord

logger = logging.getLogger(__name__)

AUDIENCE = "https://api.resim.ai"


@dataclass(frozen=True)
class AuthConfig:
    api_url: str
    auth_url: str
    client_id: str
    client_secret: str
    audience: str = AUDIENCE

    def __post_init__(self):
        if not self.client_id:
            raise ReSimError("CONFIG", "client-id must be specified", 0)
        if not self.client_secret:
            raise ReSimError("CONFIG", "client-secret must be specified", 0)

    @property
    def token_url(self) -> str:
        base = self.auth_url if self.auth_url.endswith("/") else self.auth_url + "/"
        return urljoin(base, "oauth/token")


class ClientCredentialsTokenSource:
    """Exchanges a client ID and secret for a fresh token on every call."""

    def __init__(self, config: AuthConfig, http_client: httpx.Client):
        self.config = config
        self._http = http_client

    def token(self) -> TokenRecord:
        logger.debug("Requesting a new access token from %s", self.config.token_url)
        form = {
            "grant_type": "client_credentials",
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "audience": self.config.audience,
        }
        try:
            resp = self._http.post(self.config.token_url, data=form, headers={"Accept": "application/json"})
        except httpx.TimeoutException as exc:
            raise ReSimError("TIMEOUT", f"token request timed out: {exc}", 0) from exc
        except httpx.RequestError as exc:
            raise ReSimError("NETWORK", f"token request failed: {exc}", 0) from exc

        if not 200 <= resp.status_code < 300:
            raise ReSimError(
                "AUTH",
                f"failed to obtain access token: status: {resp.status_code} {resp.reason_phrase} message: {resp.text}",
                resp.status_code,
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ReSimError("AUTH", f"invalid token response: {resp.text[:200]}", resp.status_code) from exc
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise ReSimError("AUTH", "server response missing access_token", resp.status_code)
        try:
            return TokenRecord.from_token_response(payload)
        except (TypeError, ValueError) as exc:
            raise ReSimError("AUTH", f"invalid token response: {exc}", resp.status_code) from exc


class ReuseTokenSource:
    """Hands out the current token until it stops being usable, then refreshes.

    Only one command runs per process, so the memoized token needs no lock.
    """

    def __init__(self, initial: TokenRecord | None, base: ClientCredentialsTokenSource):
        self._current = initial
        self._base = base
        self.last_token: TokenRecord | None = None

    def token(self) -> TokenRecord:
        if self._current is None or not self._current.is_usable():
            self._current = self._base.token()
        self.last_token = self._current
        return self._current


class BearerAuth(httpx.Auth):
    """Adds ``Authorization: Bearer <token>`` to every outgoing request."""

    def __init__(self, source: ReuseTokenSource):
        self.source = source

    def auth_flow(self, request):
        token = self.source.token()
        request.headers["Authorization"] = f"Bearer {token.access_token}"
        yield request


def build_token_source(
    config: AuthConfig,
    cache: CredentialCache,
    http_client: httpx.Client,
) -> ReuseTokenSource:
    cached = cache.token_for(config.client_id)
    if cached is not None and cached.is_usable():
        logger.debug("Using cached token for client %s", config.client_id)
    return ReuseTokenSource(cached, ClientCredentialsTokenSource(config, http_client))
