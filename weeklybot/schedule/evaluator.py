"""One evaluation pass: which weekly rules are due right now.

Nothing here is persisted between passes; every pass reloads the rules
and asks the ledger afresh.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from loguru import logger

from weeklybot.errors import StoreUnavailableError
from weeklybot.schedule.cooldown import CooldownPolicy
from weeklybot.schedule.matcher import LocalMoment, TimeWindowMatcher
from weeklybot.schedule.models import NotificationRule
from weeklybot.utils.helpers import utc_now

if TYPE_CHECKING:
    from weeklybot.schedule.ledger import DeliveryLedger
    from weeklybot.schedule.storage import RecordStore


@dataclass
class Evaluation:
    """Outcome of evaluate()."""

    now: datetime
    moment: LocalMoment
    evaluated: int = 0
    candidates: list[NotificationRule] = field(default_factory=list)
    suppressed: list[NotificationRule] = field(default_factory=list)
    due: list[NotificationRule] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RuleDiagnostic:
    """Read-only view of how one rule compares to the current moment."""

    rule: NotificationRule
    day_match: bool
    minute_distance: int
    candidate: bool
    window_minutes: int | None = None
    suppressed: bool | None = None

    @property
    def would_send(self) -> bool:
        return self.rule.active and self.candidate and self.suppressed is False


class OccurrenceEvaluator:
    """Loads active rules, matches them, and filters out likely duplicates."""

    def __init__(
        self,
        store: "RecordStore",
        ledger: "DeliveryLedger",
        matcher: TimeWindowMatcher | None = None,
        cooldown: CooldownPolicy | None = None,
        utc_offset_hours: int = 9,
        store_timeout_s: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.ledger = ledger
        self.matcher = matcher or TimeWindowMatcher()
        self.cooldown = cooldown or CooldownPolicy(clock=clock)
        self.utc_offset_hours = utc_offset_hours
        self.store_timeout_s = store_timeout_s
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def evaluate(self, now: datetime | None = None) -> Evaluation:
        """Return the rules that should fire now.

        Raises StoreUnavailableError if the rules cannot be loaded; no rule
        is returned in that case. Cooldown lookups that fail let the rule
        through and add a warning.
        """
        now = now or self._clock()
        moment = LocalMoment.from_datetime(now, self.utc_offset_hours)
        result = Evaluation(now=now, moment=moment)

        logger.info(
            f"[Evaluator] Checking {moment.day_name} ({int(moment.day)}) {moment.time} "
            f"UTC{self.utc_offset_hours:+d}"
        )

        rules = await self._load_rules(self.store.list_active_rules)
        result.evaluated = len(rules)
        logger.info(f"[Evaluator] Found {len(rules)} active rule(s)")

        for rule in rules:
            match = self.matcher.match(rule, moment)
            if not self.matcher.is_candidate(match):
                if match.day_match:
                    logger.debug(
                        f"[Evaluator] Skip {rule.id}: outside "
                        f"{self.matcher.tolerance_minutes}-minute window "
                        f"({match.minute_distance} min diff)"
                    )
                continue
            result.candidates.append(rule)

            decision = await self.cooldown.decide(rule.id, match.minute_distance, self.ledger, now)
            if not decision.ledger_available:
                result.warnings.append(f"cooldown check unavailable for {rule.id}")
            if decision.suppress:
                result.suppressed.append(rule)
                logger.info(f"[Evaluator] Suppress {rule.id}: already sent within cooldown")
                continue
            result.due.append(rule)

        logger.info(
            f"[Evaluator] {len(result.candidates)} candidate(s), "
            f"{len(result.suppressed)} suppressed, {len(result.due)} due"
        )
        return result

    async def analyze(self, now: datetime | None = None) -> list[RuleDiagnostic]:
        """Per-rule diagnostics for every stored rule, without sending.

        Cooldown is only consulted for active candidates.
        """
        now = now or self._clock()
        moment = LocalMoment.from_datetime(now, self.utc_offset_hours)
        rules = await self._load_rules(self.store.list_rules)

        diagnostics: list[RuleDiagnostic] = []
        for rule in rules:
            match = self.matcher.match(rule, moment)
            candidate = self.matcher.is_candidate(match)
            window = suppressed = None
            if rule.active and candidate:
                decision = await self.cooldown.decide(
                    rule.id, match.minute_distance, self.ledger, now
                )
                window, suppressed = decision.window_minutes, decision.suppress
            diagnostics.append(
                RuleDiagnostic(
                    rule=rule,
                    day_match=match.day_match,
                    minute_distance=match.minute_distance,
                    candidate=candidate,
                    window_minutes=window,
                    suppressed=suppressed,
                )
            )
        return diagnostics

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _load_rules(self, loader: Callable[[], list[NotificationRule]]) -> list[NotificationRule]:
        try:
            return await asyncio.wait_for(asyncio.to_thread(loader), timeout=self.store_timeout_s)
        except asyncio.TimeoutError as e:
            raise StoreUnavailableError(
                f"Loading rules timed out after {self.store_timeout_s:.0f}s"
            ) from e
        except Exception as e:
            raise StoreUnavailableError(f"Loading rules failed: {e}") from e
