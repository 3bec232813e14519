"""Pure quota arithmetic used by the poller and the rotation policy."""

from collections.abc import Iterable

from antigravity_manager.models import AccountStatus, CloudAccount, CloudQuotaData


def average_quota(quota: CloudQuotaData | None) -> float:
    """Mean remaining percentage across models, or 0 when unknown."""
    if quota is None or quota.is_empty:
        return 0.0
    values = quota.percentages
    return sum(values) / len(values)


def is_depleted(account: CloudAccount, switch_threshold: float) -> bool:
    """An account is depleted when its quota is unknown or any model is below
    ``switch_threshold`` percent."""
    quota = account.quota
    if quota is None or quota.is_empty:
        return True
    return min(quota.percentages) < switch_threshold


def should_warn(quota: CloudQuotaData | None, warning: float, switch: float) -> bool:
    """True when the average sits in ``[switch, warning)``.

    Below the switch threshold rotation takes over, so no warning is sent.
    """
    if quota is None or quota.is_empty:
        return False
    avg = average_quota(quota)
    return switch <= avg < warning


def select_best_candidate(
    accounts: Iterable[CloudAccount],
    current_id: str | None,
    switch_threshold: float,
) -> CloudAccount | None:
    """Pick the healthy account with the highest average quota.

    Ties keep store order.
    """
    candidates = [
        account
        for account in accounts
        if account.id != current_id
        and account.status == AccountStatus.ACTIVE
        and account.quota is not None
        and not account.quota.is_empty
        and not is_depleted(account, switch_threshold)
    ]
    if not candidates:
        return None
    candidates.sort(key=lambda a: average_quota(a.quota), reverse=True)
    return candidates[0]


def format_quota_lines(quota: CloudQuotaData | None) -> list[str]:
    """Human readable ``model: 42.0%`` lines, lowest first."""
    if quota is None or quota.is_empty:
        return ["quota unknown"]
    return [
        f"{name}: {q.percentage:.1f}%"
        for name, q in sorted(quota.models.items(), key=lambda item: item[1].percentage)
    ]
