"""Two-tier cooldown that absorbs jitter between overlapping timers.

Close to the true occurrence (distance <= threshold) several timers tend
to fire within a minute or two of each other, so a short window is
enough. Further away, a delayed timer may fire long after an on-time one,
so the window must reach further back.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable

from loguru import logger

from weeklybot.utils.helpers import minutes_between, utc_now

if TYPE_CHECKING:
    from weeklybot.schedule.ledger import DeliveryLedger


@dataclass(frozen=True)
class CooldownDecision:
    """Result of one cooldown check."""

    suppress: bool
    window_minutes: int
    ledger_available: bool = True
    last_sent_at: datetime | None = None


class CooldownPolicy:
    """Suppress a candidate if it was delivered inside its cooldown window."""

    def __init__(
        self,
        short_cooldown_minutes: int = 5,
        long_cooldown_minutes: int = 15,
        close_distance_threshold: int = 2,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.short_cooldown_minutes = short_cooldown_minutes
        self.long_cooldown_minutes = long_cooldown_minutes
        self.close_distance_threshold = close_distance_threshold
        self._clock = clock

    def window_minutes(self, minute_distance: int) -> int:
        if minute_distance <= self.close_distance_threshold:
            return self.short_cooldown_minutes
        return self.long_cooldown_minutes

    async def decide(
        self,
        rule_id: str,
        minute_distance: int,
        ledger: "DeliveryLedger",
        now: datetime | None = None,
    ) -> CooldownDecision:
        now = now or self._clock()
        window = self.window_minutes(minute_distance)
        lookup = await ledger.lookup(rule_id, now - timedelta(minutes=window))

        if lookup.delivered and lookup.last_sent_at is not None:
            logger.info(
                f"[Cooldown] {rule_id} sent {minutes_between(lookup.last_sent_at, now)} "
                f"min ago (cooldown: {window} min)"
            )

        return CooldownDecision(
            suppress=lookup.delivered,
            window_minutes=window,
            ledger_available=lookup.available,
            last_sent_at=lookup.last_sent_at,
        )

    async def should_suppress(
        self,
        rule_id: str,
        minute_distance: int,
        ledger: "DeliveryLedger",
        now: datetime | None = None,
    ) -> bool:
        return (await self.decide(rule_id, minute_distance, ledger, now)).suppress
