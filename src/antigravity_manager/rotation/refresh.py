"""Token and quota refresh with per-account single-flight.

Concurrent requests to refresh the same account's token (or quota) share one
network call. Results are persisted through the account store before any
waiter resumes.
"""

import httpx
import structlog

from antigravity_manager.core.singleflight import SingleFlight
from antigravity_manager.db.repositories import AccountStore
from antigravity_manager.exceptions import (
    AccountNotFoundError,
    ForbiddenError,
    OAuthTokenRefreshError,
    ProviderError,
    QuotaCheckFailedError,
    UnauthorizedError,
)
from antigravity_manager.models import (
    AccountStatus,
    CloudAccount,
    CloudQuotaData,
    CloudTokenData,
    now_seconds,
)
from antigravity_manager.providers.google import GoogleCloudClient


logger = structlog.get_logger(__name__)

# Refresh tokens expiring within 5 minutes
REFRESH_BUFFER_SECONDS = 300


def _is_invalid_grant(error: ProviderError) -> bool:
    return error.upstream_status == 400 and "invalid_grant" in error.response_text


class TokenRefreshCoordinator:
    """Refreshes access tokens and quotas without duplicate concurrent calls."""

    def __init__(
        self,
        store: AccountStore,
        client: GoogleCloudClient,
        refresh_buffer_seconds: int = REFRESH_BUFFER_SECONDS,
    ) -> None:
        self._store = store
        self._client = client
        self.refresh_buffer_seconds = refresh_buffer_seconds
        self._flights: SingleFlight[str, object] = SingleFlight("account_refresh")

    def is_stale(self, account: CloudAccount) -> bool:
        return account.token.needs_refresh(self.refresh_buffer_seconds)

    def is_refreshing(self, account_id: str) -> bool:
        return f"token-{account_id}" in self._flights

    async def refresh_and_save_token(self, account: CloudAccount) -> CloudAccount:
        """Refresh ``account``'s access token and persist it.

        Concurrent calls for the same account share one refresh.

        Returns:
            The account with its token replaced

        Raises:
            OAuthTokenRefreshError: No refresh token, or the grant was rejected
        """
        token = await self._flights.run(
            f"token-{account.id}", lambda: self._refresh_token(account)
        )
        assert isinstance(token, CloudTokenData)
        account.token = token
        return account

    async def _refresh_token(self, account: CloudAccount) -> CloudTokenData:
        if not account.token.refresh_token:
            raise OAuthTokenRefreshError(
                f"No refresh token for {account.email}", account_id=account.id
            )

        logger.info("token_refresh_start", account_id=account.id, email=account.email)
        try:
            response = await self._client.refresh_access_token(
                account.token.refresh_token
            )
        except ProviderError as e:
            if _is_invalid_grant(e):
                await self._store.update_status(account.id, AccountStatus.EXPIRED)
                raise OAuthTokenRefreshError(
                    f"Refresh token for {account.email} was revoked or expired",
                    account_id=account.id,
                ) from e
            raise

        token = CloudTokenData(
            access_token=response.access_token,
            refresh_token=response.refresh_token or account.token.refresh_token,
            expires_in=response.expires_in,
            expiry_timestamp=now_seconds() + response.expires_in,
            token_type=response.token_type or account.token.token_type,
            email=account.token.email,
        )
        await self._store.update_token(account.id, token)
        if account.status == AccountStatus.EXPIRED:
            await self._store.update_status(account.id, AccountStatus.ACTIVE)
            account.status = AccountStatus.ACTIVE
        logger.info(
            "token_refresh_success",
            account_id=account.id,
            expires_in=response.expires_in,
        )
        return token

    async def fetch_quota_for(self, account: CloudAccount) -> CloudQuotaData:
        """Fetch quota, forcing one token refresh and retry on ``Unauthorized``.

        Persists the quota and clears a ``rate_limited`` status on success.

        Raises:
            QuotaCheckFailedError: The quota could not be fetched
        """
        try:
            try:
                quota = await self._client.fetch_quota(account.token.access_token)
            except UnauthorizedError:
                logger.info("quota_unauthorized_refreshing", account_id=account.id)
                await self.refresh_and_save_token(account)
                quota = await self._client.fetch_quota(account.token.access_token)
        except ForbiddenError as e:
            await self._store.update_status(account.id, AccountStatus.RATE_LIMITED)
            account.status = AccountStatus.RATE_LIMITED
            raise QuotaCheckFailedError(account.id, "rate limited") from e
        except (ProviderError, OAuthTokenRefreshError) as e:
            raise QuotaCheckFailedError(account.id, e.message) from e
        except httpx.HTTPError as e:
            raise QuotaCheckFailedError(account.id, f"network error: {e}") from e

        await self._store.update_quota(account.id, quota)
        account.quota = quota
        if account.status == AccountStatus.RATE_LIMITED:
            await self._store.update_status(account.id, AccountStatus.ACTIVE)
            account.status = AccountStatus.ACTIVE
        return quota

    async def refresh_quota(self, account_id: str) -> CloudAccount:
        """Refresh one account's token if stale, then its quota.

        Concurrent calls for the same account share one refresh.

        Raises:
            AccountNotFoundError: Unknown account id
            QuotaCheckFailedError: The quota could not be fetched
        """
        result = await self._flights.run(
            f"quota-{account_id}", lambda: self._refresh_quota(account_id)
        )
        assert isinstance(result, CloudAccount)
        return result

    async def _refresh_quota(self, account_id: str) -> CloudAccount:
        account = await self._store.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)

        if self.is_stale(account):
            try:
                await self.refresh_and_save_token(account)
            except (ProviderError, OAuthTokenRefreshError) as e:
                raise QuotaCheckFailedError(account_id, e.message) from e
            except httpx.HTTPError as e:
                raise QuotaCheckFailedError(account_id, f"network error: {e}") from e

        await self.fetch_quota_for(account)
        await self._store.update_last_used(account_id)
        account.last_used = now_seconds()
        logger.info("quota_refreshed", account_id=account_id, email=account.email)
        return account
