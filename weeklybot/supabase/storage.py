"""Supabase-backed record store.

Tables (see sql/schema.sql):
- weekly_notifications: the operator-managed weekly rules
- sent_notifications: append-only delivery ledger

No caching: every call goes to Supabase, which gives the ledger
read-after-write consistency across overlapping passes.
"""

from __future__ import annotations

from datetime import datetime

from weeklybot.errors import StoreError
from weeklybot.schedule.models import DeliveryRecord, NotificationRule
from weeklybot.schedule.storage import RecordStore, parse_rule_rows
from weeklybot.supabase.client import SupabaseClient
from weeklybot.utils.helpers import parse_timestamp


class SupabaseRecordStore(RecordStore):
    """RecordStore over the Supabase REST API."""

    def __init__(
        self,
        client: SupabaseClient,
        rules_table: str = "weekly_notifications",
        deliveries_table: str = "sent_notifications",
    ):
        self._client = client
        self.rules_table = rules_table
        self.deliveries_table = deliveries_table

    def list_active_rules(self) -> list[NotificationRule]:
        rows = self._client.select(self.rules_table, filters={"is_active": ("eq", True)})
        return [r for r in parse_rule_rows(rows, "Supabase") if r.active]

    def list_rules(self) -> list[NotificationRule]:
        rows = self._client.select(self.rules_table)
        return parse_rule_rows(rows, "Supabase")

    def query_deliveries(self, rule_id: str, since: datetime) -> list[DeliveryRecord]:
        rows = self._client.select(
            self.deliveries_table,
            filters={
                "notification_id": ("eq", rule_id),
                "sent_at": ("gte", parse_timestamp(since).isoformat()),
            },
            columns="notification_id,sent_at",
            order="sent_at.desc",
        )
        return [DeliveryRecord.model_validate(row) for row in rows]

    def insert_delivery(self, rule_id: str, sent_at: datetime) -> DeliveryRecord:
        record = DeliveryRecord(rule_id=rule_id, sent_at=sent_at)
        rows = self._client.insert(self.deliveries_table, record.to_row())
        if not rows:
            raise StoreError(f"Insert into {self.deliveries_table} returned no row")
        return record

    def purge_deliveries(self, before: datetime) -> int:
        rows = self._client.delete(
            self.deliveries_table,
            filters={"sent_at": ("lt", parse_timestamp(before).isoformat())},
        )
        return len(rows)

    def close(self) -> None:
        self._client.close()
