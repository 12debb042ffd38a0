"""Delivery ledger: the shared source of truth for "already sent".

Reads fail open (a store outage must not silence notifications); writes
fail loudly (a lost write must never go unnoticed).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from loguru import logger

from weeklybot.errors import LedgerWriteError
from weeklybot.schedule.models import DeliveryRecord

if TYPE_CHECKING:
    from weeklybot.schedule.storage import RecordStore


@dataclass(frozen=True)
class LedgerLookup:
    """Answer to "was rule R delivered since T"."""

    delivered: bool
    last_sent_at: datetime | None = None
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.error is None


class DeliveryLedger:
    """Async facade over the store's delivery table.

    Store calls are sync; each one runs in a worker thread and is bounded
    by ``timeout_s``. The ledger does not deduplicate appends.
    """

    def __init__(self, store: "RecordStore", timeout_s: float = 10.0):
        self.store = store
        self.timeout_s = timeout_s

    async def lookup(self, rule_id: str, since: datetime) -> LedgerLookup:
        """Query deliveries for ``rule_id`` at or after ``since``."""
        try:
            records = await asyncio.wait_for(
                asyncio.to_thread(self.store.query_deliveries, rule_id, since),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"[Ledger] Lookup timed out for {rule_id}; failing open")
            return LedgerLookup(delivered=False, error="timeout")
        except Exception as e:
            logger.warning(f"[Ledger] Lookup failed for {rule_id}: {e}; failing open")
            return LedgerLookup(delivered=False, error=str(e) or type(e).__name__)

        if not records:
            return LedgerLookup(delivered=False)
        latest = max(r.sent_at for r in records)
        return LedgerLookup(delivered=True, last_sent_at=latest)

    async def was_delivered_within(self, rule_id: str, since: datetime) -> bool:
        """True iff a delivery for ``rule_id`` has ``sent_at >= since``.

        Returns False when the store cannot be reached.
        """
        return (await self.lookup(rule_id, since)).delivered

    async def record(self, rule_id: str, sent_at: datetime) -> DeliveryRecord:
        """Append a delivery record. Raises LedgerWriteError on any failure."""
        try:
            record = await asyncio.wait_for(
                asyncio.to_thread(self.store.insert_delivery, rule_id, sent_at),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError as e:
            raise LedgerWriteError(rule_id, f"timed out after {self.timeout_s:.0f}s") from e
        except Exception as e:
            raise LedgerWriteError(rule_id, str(e) or type(e).__name__) from e

        logger.debug(f"[Ledger] Recorded {rule_id} at {record.sent_at.isoformat()}")
        return record
