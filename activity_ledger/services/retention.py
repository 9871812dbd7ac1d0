"""Tier-based lookback clamping for history browsing and reverts."""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.hashchain import as_utc
from .collaborators import Clock, SubscriptionLookup, SystemClock

logger = logging.getLogger("activity_ledger.retention")

UNLIMITED = -1


class RetentionPolicy:
    def __init__(
        self,
        subscriptions: SubscriptionLookup,
        clock: Optional[Clock] = None,
        days_by_tier: Optional[Dict[str, int]] = None,
        default_tier: Optional[str] = None,
    ):
        self.subscriptions = subscriptions
        self.clock = clock or SystemClock()
        self.days_by_tier = dict(days_by_tier or settings.retention_days_by_tier)
        self.default_tier = default_tier or settings.default_tier

    def days_for_tier(self, tier: Optional[str]) -> int:
        if tier in self.days_by_tier:
            return self.days_by_tier[tier]
        return self.days_by_tier.get(self.default_tier, 7)

    def get_user_retention_days(self, db: Session, user_id: str) -> int:
        """Days of history the user's tier can see, or -1 for unlimited."""
        tier = self.subscriptions.tier(db, user_id)
        days = self.days_for_tier(tier)
        logger.debug("Retention for user %s: tier=%s days=%s", user_id, tier, days)
        return days

    def window_start(self, retention_days: int) -> Optional[datetime]:
        if retention_days is None or retention_days <= 0:
            return None
        return as_utc(self.clock.now()) - timedelta(days=retention_days)

    def apply_retention(self, requested_start: Optional[datetime], retention_days: int) -> Optional[datetime]:
        """Narrow a requested start date to the retention window. Never widens it."""
        floor = self.window_start(retention_days)
        if floor is None:
            return requested_start
        if requested_start is None:
            return floor
        return max(as_utc(requested_start), floor)

    def is_within_retention(self, timestamp: datetime, retention_days: int) -> bool:
        floor = self.window_start(retention_days)
        return floor is None or as_utc(timestamp) >= floor
