"""Recurring transaction templates and the daily background timer.

`RecurringTransactionService` manages persisted templates and turns the
due ones into real transactions. `RecurringScheduler` runs that work in
a daemon thread: the first run happens at the next local midnight and
then every 24 hours. A failed run is retried after 5 s, 30 s and 2 min;
when the last retry fails too the error is logged and the timer waits
for the next day.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Sequence

from sqlmodel import Session

from . import models, repositories, schemas
from .errors import InvalidOperationError, NotFoundError
from .services import CategoryService, TransactionService, _DomainService, snapshot, utcnow
from .utils.paging import advance

RETRY_DELAYS = (5.0, 30.0, 120.0)
RUN_INTERVAL_SECONDS = 24 * 3600

logger = logging.getLogger("nonprofit_manager.recurring")


class RecurringTransactionService(_DomainService):
    """CRUD for templates plus processing of due occurrences."""

    def __init__(self, session: Session, user_name: str = "System", ip_address: Optional[str] = None):
        super().__init__(session, user_name, ip_address)
        self.repo = repositories.RecurringRepository(session)
        self.categories = CategoryService(session, user_name, ip_address)

    def list(self, include_inactive: bool = True) -> List[models.RecurringTransaction]:
        return self.repo.list(include_inactive)

    def get(self, template_id: int) -> models.RecurringTransaction:
        template = self.repo.get(template_id)
        if not template:
            raise NotFoundError("RecurringTransaction", template_id)
        return template

    def create(self, data: schemas.RecurringCreate) -> models.RecurringTransaction:
        if data.type == models.TransactionType.TRANSFER:
            raise InvalidOperationError("Recurring templates cannot be transfers")
        if data.end_date and data.end_date < data.start_date:
            raise InvalidOperationError("End date must be on or after the start date")
        self.categories.get(data.category_id)
        template = models.RecurringTransaction(**data.model_dump(), next_occurrence=data.start_date)
        template = self.repo.save(template)
        self.audit.log(models.AuditAction.CREATE, "RecurringTransaction", template.id,
                       f"Created recurring transaction {template.name}", new_values=snapshot(template))
        return template

    def update(self, template_id: int, data: schemas.RecurringUpdate) -> models.RecurringTransaction:
        template = self.get(template_id)
        old = snapshot(template)
        changes = data.model_dump(exclude_unset=True)
        if changes.get("category_id") is not None:
            self.categories.get(changes["category_id"])
        for key, value in changes.items():
            setattr(template, key, value)
        if template.end_date and template.end_date < template.start_date:
            raise InvalidOperationError("End date must be on or after the start date")
        template.updated_at = utcnow()
        template = self.repo.save(template)
        self.audit.log(models.AuditAction.UPDATE, "RecurringTransaction", template.id,
                       f"Updated recurring transaction {template.name}", old_values=old, new_values=snapshot(template))
        return template

    def delete(self, template_id: int) -> None:
        template = self.get(template_id)
        old = snapshot(template)
        self.repo.delete(template)
        self.audit.log(models.AuditAction.DELETE, "RecurringTransaction", template_id,
                       f"Deleted recurring transaction {old['name']}", old_values=old)

    def upcoming(self, days: int = 30, today: Optional[date] = None) -> List[dict]:
        """Active templates due within `days`, soonest first."""
        today = today or date.today()
        horizon = today + timedelta(days=days)
        out = []
        for t in self.repo.list(include_inactive=False):
            if t.next_occurrence > horizon:
                continue
            if t.end_date and t.next_occurrence > t.end_date:
                continue
            out.append({
                **schemas.RecurringRead.model_validate(t).model_dump(mode="json"),
                "days_until": (t.next_occurrence - today).days,
            })
        return out

    def skip_next(self, template_id: int) -> models.RecurringTransaction:
        template = self.get(template_id)
        template.next_occurrence = advance(template.next_occurrence, template.pattern, template.interval)
        if template.end_date and template.next_occurrence > template.end_date:
            template.is_active = False
        template.updated_at = utcnow()
        return self.repo.save(template)

    def process_due(self, today: Optional[date] = None) -> dict:
        """Create one transaction for every due template.

        Rule violations for a single template (an exhausted grant, an
        archived category...) are collected in `errors`; database
        failures propagate so the caller can retry the whole run.
        """
        today = today or date.today()
        result = schemas.ProcessingResult()
        transactions = TransactionService(self.session, self.user_name)
        for template in self.repo.due(today):
            result.processed += 1
            name, template_id = template.name, template.id
            try:
                created = transactions.create(schemas.TransactionCreate(
                    transaction_date=template.next_occurrence,
                    amount=template.amount,
                    description=template.description or template.name,
                    type=template.type,
                    category_id=template.category_id,
                    fund_id=template.fund_id,
                    donor_id=template.donor_id,
                    grant_id=template.grant_id,
                    payee=template.payee,
                    tags="recurring",
                ))
            except (ValueError, LookupError) as exc:
                self.session.rollback()
                result.failed += 1
                result.errors.append(f"{name} ({template_id}): {exc}")
                logger.warning("recurring template %s failed: %s", template_id, exc)
                continue
            template.last_processed = template.next_occurrence
            template.next_occurrence = advance(template.next_occurrence, template.pattern, template.interval)
            template.total_occurrences += 1
            if template.end_date and template.next_occurrence > template.end_date:
                template.is_active = False
            self.repo.save(template)
            result.succeeded += 1
            result.created_transaction_ids.append(created.id)
        return result.model_dump()


class RecurringScheduler:
    """Daily timer thread that processes recurring transactions.

    `run_once` is the unit of work; `run_with_retry` wraps it in the
    retry policy. Both can be called directly (tests, manual trigger).
    """

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None,
                 retry_delays: Sequence[float] = RETRY_DELAYS,
                 interval_seconds: float = RUN_INTERVAL_SECONDS):
        if session_factory is None:
            from .database import engine

            def session_factory():
                return Session(engine)
        self._session_factory = session_factory
        self.retry_delays = tuple(retry_delays)
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self.last_run_at: Optional[datetime] = None
        self.last_result: Optional[dict] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="recurring-scheduler", daemon=True)
        self._thread.start()
        logger.info("recurring scheduler started; first run in %.0fs", self.seconds_until_next_run())

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        logger.info("recurring scheduler stopped")

    @staticmethod
    def seconds_until_next_run(now: Optional[datetime] = None) -> float:
        """Seconds from `now` (local time) until the next midnight."""
        now = now or datetime.now()
        next_midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
        return (next_midnight - now).total_seconds()

    def run_once(self) -> dict:
        with self._lock, self._session_factory() as session:
            templates = RecurringTransactionService(session).process_due()
            generated = TransactionService(session).process_recurring()
        result = {"templates": templates, "recurring_transactions_created": generated}
        self.last_run_at = datetime.now()
        self.last_result = result
        logger.info(
            "recurring processing done: %d created from templates, %d failed, %d from recurring transactions",
            templates["succeeded"], templates["failed"], generated,
        )
        return result

    def run_with_retry(self) -> Optional[dict]:
        """Run once, retrying after each configured delay on failure.

        Returns the result, or None when every attempt failed or the
        scheduler was stopped while waiting.
        """
        attempts = len(self.retry_delays)
        for attempt in range(attempts + 1):
            try:
                return self.run_once()
            except Exception:
                if attempt < attempts:
                    delay = self.retry_delays[attempt]
                    logger.warning(
                        "recurring processing failed (attempt %d/%d); retrying in %ss",
                        attempt + 1, attempts, delay, exc_info=True,
                    )
                    if self._stop.wait(delay):
                        return None
                else:
                    logger.exception(
                        "recurring processing failed after %d retries; manual intervention required", attempts
                    )
        return None

    def _loop(self) -> None:
        delay = self.seconds_until_next_run()
        while not self._stop.wait(delay):
            self.run_with_retry()
            delay = self.interval_seconds
