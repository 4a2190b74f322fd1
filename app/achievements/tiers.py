"""Access tier resolution.

Tier is time dependent (free trials expire), so it is resolved fresh for every
evaluation and never cached on the account.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

from app.achievements.windows import as_utc


class UserTier(str, Enum):
    VISITOR = "visitor"
    FREE = "free"
    PREMIUM = "premium"


PREMIUM_SUBSCRIPTION_STATUSES = frozenset({"ACTIVE", "TRIALING"})


class TierFields(Protocol):
    tier: str | None
    subscription_status: str | None
    free_trial_until: datetime | None


def resolve_tier(account: TierFields | None, now: datetime | None = None) -> UserTier:
    """Derive the access tier from account and subscription fields.

    No account means an anonymous visitor. Premium is granted by the explicit
    tier flag, an active or trialing subscription, or a free trial that has
    not yet expired at `now`.
    """
    if account is None:
        return UserTier.VISITOR

    if now is None:
        now = datetime.now(timezone.utc)

    if (account.tier or "").lower() == UserTier.PREMIUM.value:
        return UserTier.PREMIUM

    if (account.subscription_status or "").upper() in PREMIUM_SUBSCRIPTION_STATUSES:
        return UserTier.PREMIUM

    if account.free_trial_until is not None and as_utc(account.free_trial_until) > as_utc(now):
        return UserTier.PREMIUM

    return UserTier.FREE


def can_earn_achievement(tier: UserTier, is_premium_only: bool) -> bool:
    """Visitors earn nothing, free users earn free achievements, premium earns all."""
    if not is_premium_only:
        return tier in (UserTier.FREE, UserTier.PREMIUM)
    return tier == UserTier.PREMIUM
