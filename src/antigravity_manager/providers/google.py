"""Google OAuth and Cloud Code quota client.

Four remote operations back the rotation core:

- ``exchange_code``: authorization code for a token set
- ``get_user_info``: email, name and avatar for an access token
- ``refresh_access_token``: new access token from a refresh token
- ``fetch_quota``: remaining quota per model

Transport errors are retried with exponential backoff. HTTP errors are mapped
to ``UnauthorizedError`` (401), ``ForbiddenError`` (403/429) or
``ProviderError`` and are never retried here.
"""

from dataclasses import dataclass
from typing import Any

import httpx
import orjson
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from antigravity_manager.config.settings import OAuthSettings
from antigravity_manager.exceptions import (
    ConfigValidationError,
    ForbiddenError,
    ProviderError,
    UnauthorizedError,
)
from antigravity_manager.models import (
    CloudQuotaData,
    CloudTokenData,
    ModelQuota,
    now_seconds,
)


logger = structlog.get_logger(__name__)

MAX_TRANSPORT_RETRIES = 3
USER_AGENT = "antigravity-manager/0.1"


@dataclass
class UserInfo:
    """Profile of the account owning an access token."""

    email: str
    name: str | None = None
    avatar_url: str | None = None


@dataclass
class TokenResponse:
    """Fields returned by the token endpoint."""

    access_token: str
    expires_in: int
    refresh_token: str | None = None
    token_type: str = "Bearer"


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    """Map a non-2xx response to the matching provider error."""
    if response.is_success:
        return
    error_text = response.text[:500]
    logger.warning(
        "provider_request_failed",
        operation=operation,
        status=response.status_code,
        error=error_text,
    )
    if response.status_code == 401:
        raise UnauthorizedError(f"{operation}: access token rejected", error_text)
    if response.status_code in (403, 429):
        raise ForbiddenError(
            f"{operation}: request forbidden",
            status_code=response.status_code,
            response_text=error_text,
        )
    raise ProviderError(
        f"{operation} failed with HTTP {response.status_code}",
        status_code=response.status_code,
        response_text=error_text,
    )


def parse_quota(data: dict[str, Any]) -> CloudQuotaData:
    """Convert a ``fetchAvailableModels`` response into a quota snapshot.

    Models without ``quotaInfo`` are skipped. A null ``remainingFraction``
    means the model is exhausted.
    """
    models: dict[str, ModelQuota] = {}
    raw_models = data.get("models") or {}
    for name, info in raw_models.items():
        quota_info = (info or {}).get("quotaInfo")
        if quota_info is None:
            continue
        fraction = quota_info.get("remainingFraction")
        percentage = round(float(fraction or 0) * 100, 2)
        models[name] = ModelQuota(
            percentage=max(0.0, min(100.0, percentage)),
            reset_time=quota_info.get("resetTime"),
        )
    return CloudQuotaData(models=models, updated_at=now_seconds())


class GoogleCloudClient:
    """Async client for Google OAuth and the Cloud Code quota endpoint."""

    def __init__(
        self,
        settings: OAuthSettings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.timeout,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self, method: str, url: str, operation: str, **kwargs: Any
    ) -> httpx.Response:
        client = await self._get_client()

        def before_sleep_log(retry_state: Any) -> None:
            logger.warning(
                "provider_transport_retry",
                operation=operation,
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception())
                if retry_state.outcome
                else None,
            )

        response: httpx.Response | None = None
        async for attempt in AsyncRetrying(
            wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
            stop=stop_after_attempt(MAX_TRANSPORT_RETRIES),
            retry=retry_if_exception_type(httpx.TransportError),
            before_sleep=before_sleep_log,
            reraise=True,
        ):
            with attempt:
                response = await client.request(method, url, **kwargs)
        assert response is not None
        _raise_for_status(response, operation)
        return response

    def _client_credentials(self) -> dict[str, str]:
        if not self._settings.client_id:
            raise ConfigValidationError(
                "OAuth client id is not configured (set AGM_OAUTH__CLIENT_ID)"
            )
        creds = {"client_id": self._settings.client_id}
        if self._settings.client_secret:
            creds["client_secret"] = self._settings.client_secret
        return creds

    @staticmethod
    def _parse_token(response: httpx.Response) -> TokenResponse:
        try:
            data = orjson.loads(response.content)
            return TokenResponse(
                access_token=data["access_token"],
                expires_in=int(data.get("expires_in", 3600)),
                refresh_token=data.get("refresh_token"),
                token_type=data.get("token_type") or "Bearer",
            )
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ProviderError(
                f"Malformed token response: {e}", response_text=response.text
            ) from e

    async def exchange_code(self, code: str) -> CloudTokenData:
        """Exchange an authorization code for a token set.

        Args:
            code: Authorization code from the consent redirect

        Returns:
            Token set; ``refresh_token`` is empty when Google omits it
        """
        response = await self._request(
            "POST",
            self._settings.token_url,
            "exchange_code",
            data={
                **self._client_credentials(),
                "code": code,
                "redirect_uri": self._settings.redirect_uri,
                "grant_type": "authorization_code",
            },
        )
        token = self._parse_token(response)
        logger.info("oauth_code_exchanged", expires_in=token.expires_in)
        return CloudTokenData.issued(
            access_token=token.access_token,
            refresh_token=token.refresh_token or "",
            expires_in=token.expires_in,
            token_type=token.token_type,
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """Get a fresh access token.

        Returns:
            Token endpoint fields; ``refresh_token`` is set only when rotated
        """
        response = await self._request(
            "POST",
            self._settings.token_url,
            "refresh_token",
            data={
                **self._client_credentials(),
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )
        return self._parse_token(response)

    async def get_user_info(self, access_token: str) -> UserInfo:
        response = await self._request(
            "GET",
            self._settings.userinfo_url,
            "get_user_info",
            headers={"Authorization": f"Bearer {access_token}"},
        )
        data = orjson.loads(response.content)
        email = data.get("email")
        if not email:
            raise ProviderError(
                "User info response has no email", response_text=response.text
            )
        return UserInfo(email=email, name=data.get("name"), avatar_url=data.get("picture"))

    async def fetch_quota(self, access_token: str) -> CloudQuotaData:
        """Fetch remaining quota for every model available to the account.

        Raises:
            UnauthorizedError: Access token rejected
            ForbiddenError: Account is rate limited or blocked
        """
        response = await self._request(
            "POST",
            self._settings.quota_url,
            "fetch_quota",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            content=b"{}",
        )
        try:
            return parse_quota(orjson.loads(response.content))
        except (orjson.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            raise ProviderError(
                f"Malformed quota response: {e}", response_text=response.text
            ) from e
