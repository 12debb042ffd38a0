"""Run one evaluation pass, retrying once on unexpected failure.

``RetryShell.run_once()`` is the single entry point shared by the timer
service, the ``weeklybot run`` command and any manual trigger. Each call
is independent: passes may overlap and share nothing but the store.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from loguru import logger

from weeklybot.schedule.cooldown import CooldownPolicy
from weeklybot.schedule.dispatcher import DispatchOutcome, Dispatcher, Notifier
from weeklybot.schedule.evaluator import OccurrenceEvaluator
from weeklybot.schedule.ledger import DeliveryLedger
from weeklybot.schedule.matcher import TimeWindowMatcher
from weeklybot.utils.helpers import utc_now

if TYPE_CHECKING:
    from weeklybot.config.schema import Config
    from weeklybot.schedule.storage import RecordStore

DEFAULT_RETRY_DELAY_S = 2.0


@dataclass
class PassSummary:
    """What one run_once() call did."""

    ok: bool = False
    attempts: int = 0
    evaluated: int = 0
    matched: int = 0
    suppressed: int = 0
    dispatched: int = 0
    failed: int = 0
    unrecorded: int = 0
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    def describe(self) -> str:
        if not self.ok:
            return f"pass failed after {self.attempts} attempt(s): {self.error}"
        text = (
            f"evaluated {self.evaluated}, matched {self.matched}, "
            f"suppressed {self.suppressed}, dispatched {self.dispatched}"
        )
        if self.failed:
            text += f", failed {self.failed}"
        if self.unrecorded:
            text += f", unrecorded {self.unrecorded}"
        if self.warnings:
            text += f" ({len(self.warnings)} warning(s))"
        return text


class RetryShell:
    """Evaluate + dispatch, with one delayed retry of the whole pass."""

    def __init__(
        self,
        evaluator: OccurrenceEvaluator,
        dispatcher: Dispatcher,
        retry_delay_s: float = DEFAULT_RETRY_DELAY_S,
    ):
        self.evaluator = evaluator
        self.dispatcher = dispatcher
        self.retry_delay_s = retry_delay_s

    async def run_once(self) -> PassSummary:
        """Run one pass now. Never raises (except on cancellation)."""
        summary = PassSummary()
        for attempt in (1, 2):
            summary = PassSummary(attempts=attempt)
            try:
                await self._run_pass(summary)
                summary.ok = True
                if attempt > 1:
                    logger.info("[Runner] Retry successful")
                break
            except asyncio.CancelledError:
                raise
            except Exception as e:
                summary.error = str(e) or type(e).__name__
                if attempt == 1:
                    logger.warning(
                        f"[Runner] Pass failed: {summary.error}; "
                        f"retrying in {self.retry_delay_s:.0f}s"
                    )
                    await asyncio.sleep(self.retry_delay_s)
                else:
                    logger.opt(exception=e).error(f"[Runner] Retry also failed: {summary.error}")

        logger.info(f"[Runner] {summary.describe()}")
        return summary

    async def _run_pass(self, summary: PassSummary) -> None:
        evaluation = await self.evaluator.evaluate()
        summary.evaluated = evaluation.evaluated
        summary.matched = len(evaluation.candidates)
        summary.suppressed = len(evaluation.suppressed)
        summary.warnings.extend(evaluation.warnings)

        for rule in evaluation.due:
            outcome = await self.dispatcher.dispatch(rule)
            if outcome.sent:
                summary.dispatched += 1
            else:
                summary.failed += 1
            if outcome is DispatchOutcome.DELIVERED_UNRECORDED:
                summary.unrecorded += 1
                summary.warnings.append(f"delivery of {rule.id} not recorded")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        config: "Config",
        store: "RecordStore",
        notifier: Notifier,
        clock: Callable[[], datetime] = utc_now,
    ) -> "RetryShell":
        """Wire matcher, cooldown, ledger, evaluator and dispatcher from config."""
        sched = config.schedule
        ledger = DeliveryLedger(store, timeout_s=config.ledger.timeout_s)
        evaluator = OccurrenceEvaluator(
            store=store,
            ledger=ledger,
            matcher=TimeWindowMatcher(sched.tolerance_minutes, sched.wrap_midnight),
            cooldown=CooldownPolicy(
                short_cooldown_minutes=sched.short_cooldown_minutes,
                long_cooldown_minutes=sched.long_cooldown_minutes,
                close_distance_threshold=sched.close_distance_threshold,
                clock=clock,
            ),
            utc_offset_hours=sched.utc_offset_hours,
            store_timeout_s=config.ledger.timeout_s,
            clock=clock,
        )
        dispatcher = Dispatcher(notifier, ledger, clock=clock)
        return cls(evaluator, dispatcher, retry_delay_s=sched.retry_delay_s)


def create_store(config: "Config") -> "RecordStore":
    """Build the configured record store backend."""
    from weeklybot.errors import ConfigError

    if config.store.backend == "json":
        from weeklybot.schedule.storage import JsonRecordStore

        return JsonRecordStore(Path(config.store.json_path))

    from weeklybot.supabase import SupabaseClient, SupabaseRecordStore

    if not config.supabase.url or not config.supabase.service_role_key:
        raise ConfigError("supabase.url and supabase.serviceRoleKey are required")
    client = SupabaseClient(
        config.supabase.url,
        config.supabase.service_role_key,
        timeout=config.supabase.timeout_s,
    )
    return SupabaseRecordStore(
        client,
        rules_table=config.supabase.rules_table,
        deliveries_table=config.supabase.deliveries_table,
    )


def create_notifier(config: "Config") -> Notifier:
    from weeklybot.slack import SlackWebhookNotifier

    return SlackWebhookNotifier(
        webhook_url=config.slack.webhook_url,
        test_webhook_url=config.slack.test_webhook_url,
        username=config.slack.username,
        icon_emoji=config.slack.icon_emoji,
        timeout=config.slack.timeout_s,
    )
