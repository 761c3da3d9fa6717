"""
Cost ledger and budget alerting.

Records every metered operation, derives windowed cost summaries from the
append-only log, and gates further calls once a budget is exhausted.
"""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from ai_gateway.config.loader import CostLimitsConfig
from ai_gateway.storage.models import CostEntry
from ai_gateway.storage.repository import CostEntryStore, InMemoryCostEntryStore

from .pricing import DEFAULT_PRICING_TABLE, PricingTable, calculate_cost
from .usage import OperationKind, UsageCounts

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(days=90)


class AlertKind(Enum):
    """Budget alert kinds; each fires independently."""
    DAILY_WARNING = "daily_warning"
    DAILY_LIMIT = "daily_limit"
    MONTHLY_WARNING = "monthly_warning"
    MONTHLY_LIMIT = "monthly_limit"


@dataclass(frozen=True)
class CostAlert:
    """Emitted to observers; never persisted."""
    kind: AlertKind
    threshold: float
    current_amount: float
    percentage: float
    timestamp: datetime


@dataclass(frozen=True)
class CostSummary:
    """Aggregate over the entries of one window, plus rolling totals."""
    total_cost: float
    daily_cost: float
    monthly_cost: float
    cost_by_model: Dict[str, float]
    cost_by_operation: Dict[str, float]
    request_count: int
    average_cost_per_request: float
    window_start: datetime
    window_end: datetime


@dataclass(frozen=True)
class BudgetStatus:
    daily: bool
    monthly: bool

    @property
    def ok(self) -> bool:
        return self.daily and self.monthly


@dataclass(frozen=True)
class RemainingBudget:
    daily: float
    monthly: float


@dataclass(frozen=True)
class TrendPoint:
    date: date
    cost: float
    request_count: int


AlertCallback = Callable[[CostAlert], None]


class CostLedger:
    """Append-only ledger of metered operations.

    ``record`` appends and evaluates alerts under one re-entrant lock, so
    concurrent writers never lose entries and observers always see a
    consistent log. Observers may read the ledger from inside a callback.
    """

    def __init__(
        self,
        limits: CostLimitsConfig,
        pricing: PricingTable = DEFAULT_PRICING_TABLE,
        store: Optional[CostEntryStore] = None,
        clock: Callable[[], datetime] = datetime.now,
        retention: timedelta = DEFAULT_RETENTION,
    ):
        """Initialize the ledger.

        Args:
            limits: Daily/monthly limits and warning threshold
            pricing: Pricing table used when a cost is not supplied
            store: Backing store, in-memory by default
            clock: Source of the current time
            retention: Age beyond which entries are purged
        """
        self.limits = limits
        self.pricing = pricing
        self.store = store if store is not None else InMemoryCostEntryStore()
        self.retention = retention
        self._clock = clock
        self._lock = threading.RLock()
        self._observers: List[AlertCallback] = []

    def record(
        self,
        model_id: str,
        operation: OperationKind,
        input_units: int = 0,
        output_units: int = 0,
        image_count: int = 0,
        request_id: Optional[str] = None,
        user_id: Optional[str] = None,
        estimated_cost: Optional[float] = None,
    ) -> CostEntry:
        """Record a cost entry and evaluate budget alerts.

        Args:
            model_id: Model that served the operation
            operation: Kind of operation
            input_units: Input tokens
            output_units: Output tokens
            image_count: Generated images
            request_id: Correlation id, generated when omitted
            user_id: Optional user the operation is billed to
            estimated_cost: Pre-computed cost; priced from the table when None

        Returns:
            The appended CostEntry
        """
        if estimated_cost is None:
            estimated_cost = calculate_cost(
                self.pricing,
                model_id,
                operation,
                UsageCounts(input_units, output_units, image_count),
            )

        with self._lock:
            entry = CostEntry(
                timestamp=self._clock(),
                model_id=model_id,
                operation=operation,
                input_units=input_units,
                output_units=output_units,
                image_count=image_count,
                estimated_cost=estimated_cost,
                request_id=request_id or str(uuid.uuid4()),
                user_id=user_id,
            )
            self.store.append(entry)

            logger.debug(
                "Recorded cost entry model=%s operation=%s cost=%.6f request=%s",
                entry.model_id, entry.operation.value, entry.estimated_cost, entry.request_id,
            )

            self._check_alerts()
        return entry

    def on_alert(self, callback: AlertCallback) -> None:
        """Register an observer for cost alerts."""
        with self._lock:
            self._observers.append(callback)

    def summary(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> CostSummary:
        """Get a cost summary for a window.

        Defaults to the start of the current calendar month through now. The
        rolling ``daily_cost`` (last 24 hours) and ``monthly_cost`` (calendar
        month) are always computed regardless of the requested window.
        """
        now = self._clock()
        month_start = _month_start(now)
        window_start = start or month_start
        window_end = end or now

        with self._lock:
            daily_cost, monthly_cost = self._rolling_costs(now)
            entries = self.store.entries_between(window_start, window_end)

        total_cost = 0.0
        cost_by_model: Dict[str, float] = {}
        cost_by_operation: Dict[str, float] = {}
        for entry in entries:
            total_cost += entry.estimated_cost
            cost_by_model[entry.model_id] = cost_by_model.get(entry.model_id, 0.0) + entry.estimated_cost
            op = entry.operation.value
            cost_by_operation[op] = cost_by_operation.get(op, 0.0) + entry.estimated_cost

        return CostSummary(
            total_cost=total_cost,
            daily_cost=daily_cost,
            monthly_cost=monthly_cost,
            cost_by_model=cost_by_model,
            cost_by_operation=cost_by_operation,
            request_count=len(entries),
            average_cost_per_request=total_cost / len(entries) if entries else 0.0,
            window_start=window_start,
            window_end=window_end,
        )

    def is_within_limits(self) -> BudgetStatus:
        """Strictly below both limits means further calls are admitted."""
        with self._lock:
            daily_cost, monthly_cost = self._rolling_costs(self._clock())
        return BudgetStatus(
            daily=daily_cost < self.limits.daily,
            monthly=monthly_cost < self.limits.monthly,
        )

    def remaining_budget(self) -> RemainingBudget:
        with self._lock:
            daily_cost, monthly_cost = self._rolling_costs(self._clock())
        return RemainingBudget(
            daily=max(0.0, self.limits.daily - daily_cost),
            monthly=max(0.0, self.limits.monthly - monthly_cost),
        )

    def export_entries(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[CostEntry]:
        """Export raw entries, optionally bounded by ``start``/``end`` inclusive."""
        with self._lock:
            return list(self.store.entries_between(start, end))

    def trend(self, days: int = 30) -> List[TrendPoint]:
        """Daily totals for ``days`` consecutive calendar days ending today.

        Each day covers ``[midnight, midnight + 24h)``.
        """
        if days <= 0:
            return []

        today_start = _day_start(self._clock())
        first_day = today_start - timedelta(days=days - 1)
        last_day_end = today_start + timedelta(days=1)

        with self._lock:
            entries = self.store.entries_between(first_day, last_day_end)

        points = []
        for i in range(days):
            day_start = first_day + timedelta(days=i)
            day_end = day_start + timedelta(days=1)
            day_entries = [e for e in entries if day_start <= e.timestamp < day_end]
            points.append(TrendPoint(
                date=day_start.date(),
                cost=sum(e.estimated_cost for e in day_entries),
                request_count=len(day_entries),
            ))
        return points

    def purge_expired(self) -> int:
        """Remove entries older than the retention horizon."""
        cutoff = self._clock() - self.retention
        with self._lock:
            removed = self.store.purge_before(cutoff)
        if removed > 0:
            logger.info("Cleaned up %d cost entries older than %s", removed, cutoff.isoformat())
        return removed

    def _rolling_costs(self, now: datetime):
        day_ago = now - timedelta(hours=24)
        month_start = _month_start(now)
        entries = self.store.entries_between(min(day_ago, month_start), None)
        daily_cost = sum(e.estimated_cost for e in entries if e.timestamp >= day_ago)
        monthly_cost = sum(e.estimated_cost for e in entries if e.timestamp >= month_start)
        return daily_cost, monthly_cost

    def _check_alerts(self) -> None:
        """Evaluate the four alert kinds; level-triggered on every record."""
        now = self._clock()
        daily_cost, monthly_cost = self._rolling_costs(now)
        warning_ratio = self.limits.warning_threshold / 100

        alerts = []
        for used, limit, warning_kind, limit_kind in (
            (daily_cost, self.limits.daily, AlertKind.DAILY_WARNING, AlertKind.DAILY_LIMIT),
            (monthly_cost, self.limits.monthly, AlertKind.MONTHLY_WARNING, AlertKind.MONTHLY_LIMIT),
        ):
            warning_threshold = limit * warning_ratio
            percentage = used / limit * 100
            if warning_threshold <= used < limit:
                alerts.append(CostAlert(warning_kind, warning_threshold, used, percentage, now))
            if used >= limit:
                alerts.append(CostAlert(limit_kind, limit, used, percentage, now))

        for alert in alerts:
            logger.warning(
                "Cost alert triggered: %s (%.4f of %.4f, %.1f%%)",
                alert.kind.value, alert.current_amount, alert.threshold, alert.percentage,
            )
            for callback in self._observers:
                try:
                    callback(alert)
                except Exception:
                    logger.exception("Error in cost alert callback")


async def retention_loop(ledger: CostLedger, interval_seconds: float = 3600.0) -> None:
    """Run the retention sweep forever; cancel the task to stop it."""
    while True:
        await asyncio.sleep(interval_seconds)
        ledger.purge_expired()


def _day_start(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _month_start(moment: datetime) -> datetime:
    return _day_start(moment).replace(day=1)
