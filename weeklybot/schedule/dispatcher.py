"""Send a due rule's message and record the delivery."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable, Protocol

from loguru import logger

from weeklybot.errors import LedgerWriteError
from weeklybot.schedule.models import NotificationRule
from weeklybot.utils.helpers import utc_now

if TYPE_CHECKING:
    from weeklybot.schedule.ledger import DeliveryLedger

# Placeholder token -> NotificationRule attribute
PLACEHOLDERS = {
    "[branch_version]": "branch_version",
    "[emoji_this_week]": "emoji_this_week",
}

TEST_MARKERS = ("Test notification", "Debug notification")


class Notifier(Protocol):
    """Outbound transport. Must raise on anything but confirmed success."""

    async def send(self, text: str, *, test: bool = False) -> None: ...


class DispatchOutcome(str, Enum):
    DELIVERED = "delivered"
    DELIVERED_UNRECORDED = "delivered_unrecorded"  # sent, ledger write failed
    FAILED = "failed"

    @property
    def sent(self) -> bool:
        return self is not DispatchOutcome.FAILED


def render_message(rule: NotificationRule) -> str:
    """Substitute placeholder tokens; missing values become empty strings."""
    message = rule.message
    for token, attr in PLACEHOLDERS.items():
        if token in message:
            message = message.replace(token, getattr(rule, attr) or "")
    return message


def is_test_message(rule: NotificationRule) -> bool:
    return any(marker in rule.message for marker in TEST_MARKERS)


class Dispatcher:
    """Send first, then record.

    Flow:
      1. Render the message
      2. Send via the notifier; on failure → FAILED, no ledger write
         (the next overlapping pass will try again)
      3. Record one delivery; on failure → DELIVERED_UNRECORDED
         (a later pass may send a duplicate; accepted over a lost message)
    """

    def __init__(
        self,
        notifier: Notifier,
        ledger: "DeliveryLedger",
        clock: Callable[[], datetime] = utc_now,
    ):
        self.notifier = notifier
        self.ledger = ledger
        self._clock = clock

    async def dispatch(self, rule: NotificationRule) -> DispatchOutcome:
        message = render_message(rule)
        test = is_test_message(rule)

        try:
            await self.notifier.send(message, test=test)
        except Exception as e:
            logger.error(f"[Dispatcher] Send failed for {rule.id}: {e}")
            return DispatchOutcome.FAILED

        sent_at = self._clock()
        logger.info(f"[Dispatcher] Sent {rule.id}: {message[:80]}")

        try:
            await self.ledger.record(rule.id, sent_at)
        except LedgerWriteError as e:
            logger.error(f"[Dispatcher] {rule.id} sent but not recorded ({e}); may repeat next pass")
            return DispatchOutcome.DELIVERED_UNRECORDED

        return DispatchOutcome.DELIVERED
