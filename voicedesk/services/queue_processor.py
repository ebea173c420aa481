"""
Queue processor - delivers due messages and applies the retry/dead-letter rules.

One pass (process_due_batch):
    1. Load up to batch_size pending, due messages (oldest scheduled_for first)
    2. Dispatch them in parallel, at most `concurrency` in flight
    3. Per message: pending -> processing -> sent, or -> failed and then
       back to pending (+ fixed retry delay) or dead_letter once attempts
       reach max_attempts

Passes never overlap: a pass requested while one is running is folded into a
single follow-up pass that starts as soon as the current one ends.
Each dispatch uses its own database session.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import asdict, dataclass
from datetime import timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from voicedesk.core.cache import Clock, utc_now
from voicedesk.core.config import settings
from voicedesk.core.constants import SMS_SEGMENT_LENGTH
from voicedesk.core.structured_logging import build_log_context
from voicedesk.db.enums import AlertSeverity, MessageChannel
from voicedesk.db.models import QueuedMessage
from voicedesk.services import message_queue_service
from voicedesk.services.alert_service import AlertingService
from voicedesk.services.delivery.base import DeliveryOutcome, DeliveryProvider, FailoverChain
from voicedesk.utils.pii_mask import mask_recipient, mask_text

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


class DispatchResult(str, Enum):
    SENT = "sent"
    RETRY_SCHEDULED = "retry_scheduled"
    DEAD_LETTERED = "dead_lettered"
    SKIPPED = "skipped"  # No longer pending/processing (cancelled or claimed elsewhere)


@dataclass(frozen=True)
class BatchResult:
    processed: int
    succeeded: int
    failed: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)

    def merged(self, other: "BatchResult") -> "BatchResult":
        return BatchResult(
            processed=self.processed + other.processed,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
        )


EMPTY_BATCH = BatchResult(processed=0, succeeded=0, failed=0)


def estimate_cost(
    channel: str,
    body: str,
    *,
    sms_segment_cost: Decimal,
    email_cost: Decimal,
) -> Decimal:
    """Reporting-grade cost: SMS per 160-char segment, email flat."""
    if channel == MessageChannel.SMS.value:
        segments = max(1, math.ceil(len(body) / SMS_SEGMENT_LENGTH))
        return sms_segment_cost * segments
    return email_cost


class QueueProcessor:
    def __init__(
        self,
        session_factory: SessionFactory,
        providers: Mapping[str, DeliveryProvider],
        alerts: AlertingService | None = None,
        *,
        batch_size: int = 50,
        concurrency: int = 10,
        poll_interval: float = 5.0,
        retry_delay_seconds: int = 60,
        delivery_timeout: float = 5.0,
        stale_processing_minutes: int = 15,
        sms_segment_cost: Decimal = Decimal("0.0079"),
        email_cost: Decimal = Decimal("0.0001"),
        clock: Clock = utc_now,
    ):
        self.session_factory = session_factory
        self.providers = dict(providers)
        self.alerts = alerts
        self.batch_size = batch_size
        self.concurrency = max(1, concurrency)
        self.poll_interval = poll_interval
        self.retry_delay = timedelta(seconds=retry_delay_seconds)
        self.delivery_timeout = delivery_timeout
        self.stale_processing = timedelta(minutes=stale_processing_minutes)
        self.sms_segment_cost = sms_segment_cost
        self.email_cost = email_cost
        self._clock = clock

        self._processing = False
        self._rerun_requested = False
        self._stop_event: asyncio.Event | None = None
        self._task: asyncio.Task | None = None
        self._triggered: set[asyncio.Task] = set()

    @property
    def is_processing(self) -> bool:
        return self._processing

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # -------------------------------------------------------------------------
    # Single pass
    # -------------------------------------------------------------------------

    async def process_due_batch(self) -> BatchResult:
        """Run one pass over due messages (plus any rerun requested meanwhile)."""
        if self._processing:
            logger.debug("Queue pass already in progress, rerun requested")
            self._rerun_requested = True
            return EMPTY_BATCH

        self._processing = True
        try:
            batch = await self._run_pass()
            while self._rerun_requested:
                self._rerun_requested = False
                logger.debug("Running queue pass requested during the previous one")
                batch = batch.merged(await self._run_pass())
        finally:
            self._processing = False
        return batch

    async def _run_pass(self) -> BatchResult:
        with self.session_factory() as db:
            due = message_queue_service.get_due_messages(
                db, now=self._clock(), limit=self.batch_size
            )
            message_ids = [message.id for message in due]

        if not message_ids:
            return EMPTY_BATCH

        logger.info("Processing %s due messages", len(message_ids))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(message_id: UUID) -> DispatchResult:
            async with semaphore:
                return await self.process_message(message_id)

        results = await asyncio.gather(
            *(_bounded(message_id) for message_id in message_ids),
            return_exceptions=True,
        )

        succeeded = failed = skipped = retried = 0
        for message_id, result in zip(message_ids, results):
            if isinstance(result, BaseException):
                # Left in 'processing'; release_stale_processing() recovers it
                failed += 1
                logger.error(
                    "Dispatch crashed for message %s",
                    message_id,
                    exc_info=result,
                    extra=build_log_context(message_id=message_id),
                )
            elif result == DispatchResult.SENT:
                succeeded += 1
            elif result == DispatchResult.SKIPPED:
                skipped += 1
            else:
                failed += 1
                if result == DispatchResult.RETRY_SCHEDULED:
                    retried += 1

        batch = BatchResult(
            processed=len(message_ids) - skipped, succeeded=succeeded, failed=failed
        )
        logger.info(
            "Queue pass done: processed=%s succeeded=%s failed=%s",
            batch.processed,
            batch.succeeded,
            batch.failed,
        )
        if retried:
            await self._alert(
                AlertSeverity.WARNING,
                "Message delivery failures",
                f"{retried} of {batch.processed} deliveries failed in the last pass "
                "and were scheduled for retry",
                {"retried": retried, "processed": batch.processed},
            )
        return batch

    async def process_message(self, message_id: UUID) -> DispatchResult:
        """Claim and deliver one message, then record the outcome."""
        with self.session_factory() as db:
            if not message_queue_service.mark_processing(db, message_id, self._clock()):
                return DispatchResult.SKIPPED

            message = message_queue_service.get_message(db, message_id)
            log_context = build_log_context(
                tenant_id=message.tenant_id,
                message_id=message.id,
                channel=message.channel,
            )
            outcome = await self._deliver(message)

            if outcome.success:
                cost = estimate_cost(
                    message.channel,
                    message.body,
                    sms_segment_cost=self.sms_segment_cost,
                    email_cost=self.email_cost,
                )
                recorded = message_queue_service.mark_sent(
                    db,
                    message_id,
                    provider_name=outcome.provider,
                    provider_message_id=outcome.provider_message_id,
                    cost=cost,
                    now=self._clock(),
                )
                if not recorded:
                    logger.warning(
                        "Message %s was cancelled while in flight; provider accepted it",
                        message_id,
                        extra=log_context,
                    )
                    return DispatchResult.SKIPPED
                logger.info(
                    "Message %s sent via %s to %s",
                    message_id,
                    outcome.provider,
                    mask_recipient(message.recipient),
                    extra=log_context,
                )
                return DispatchResult.SENT

            return await self._handle_failure(
                db, message_id, outcome.error or "Unknown delivery error", log_context
            )

    async def _deliver(self, message: QueuedMessage) -> DeliveryOutcome:
        provider = self.providers.get(message.channel)
        if provider is None:
            return DeliveryOutcome(
                success=False, error=f"No delivery provider for channel {message.channel}"
            )
        budget = self._delivery_budget(provider)
        try:
            return await asyncio.wait_for(
                provider.send(message.recipient, message.body, message.subject),
                timeout=budget,
            )
        except asyncio.TimeoutError:
            return DeliveryOutcome(
                success=False,
                error=f"Delivery timed out after {budget:g}s",
            )
        except Exception as exc:
            return DeliveryOutcome(success=False, error=f"{type(exc).__name__}: {exc}")

    def _delivery_budget(self, provider: DeliveryProvider) -> float:
        """One delivery timeout per provider a failover chain may try."""
        if isinstance(provider, FailoverChain):
            return self.delivery_timeout * max(1, len(provider.configured_providers()))
        return self.delivery_timeout

    async def _handle_failure(
        self, db: Session, message_id: UUID, error: str, log_context: dict
    ) -> DispatchResult:
        now = self._clock()
        message = message_queue_service.mark_failed(db, message_id, error, now)
        if message is None:
            return DispatchResult.SKIPPED

        if message.attempts >= message.max_attempts:
            reason = f"{error} (after {message.attempts} attempts)"
            message_queue_service.move_to_dead_letter(db, message, reason, now)
            logger.error(
                "Message %s dead-lettered after %s attempts",
                message_id,
                message.attempts,
                extra=log_context,
            )
            await self._alert(
                AlertSeverity.CRITICAL,
                "Message delivery failed permanently",
                f"{message.channel} to {mask_recipient(message.recipient)} "
                f"dead-lettered: {reason}",
                {
                    "tenant_id": message.tenant_id,
                    "message_id": str(message.id),
                    "channel": message.channel,
                    "recipient": mask_recipient(message.recipient),
                    "attempts": message.attempts,
                    "error": mask_text(error[:500]),
                },
            )
            return DispatchResult.DEAD_LETTERED

        retry_at = now + self.retry_delay
        message_queue_service.schedule_retry(db, message, retry_at)
        logger.warning(
            "Message %s failed (attempt %s/%s), retry at %s",
            message_id,
            message.attempts,
            message.max_attempts,
            retry_at.isoformat(),
            extra=log_context,
        )
        return DispatchResult.RETRY_SCHEDULED

    async def _alert(self, severity: AlertSeverity, title: str, message: str, context: dict) -> None:
        if self.alerts is not None:
            await self.alerts.notify(severity, title, message, context)

    # -------------------------------------------------------------------------
    # Operator actions
    # -------------------------------------------------------------------------

    def trigger(self) -> asyncio.Task | None:
        """
        Schedule an out-of-band pass now instead of waiting for the next tick.

        If a pass is already running it picks up one more pass when it
        finishes, and no new task is created.
        """
        if self._processing:
            self._rerun_requested = True
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop; immediate pass not scheduled")
            return None
        task = loop.create_task(self.process_due_batch())
        self._triggered.add(task)
        task.add_done_callback(self._triggered.discard)
        return task

    def retry_message(self, db: Session, message_id: UUID, **edits) -> QueuedMessage:
        """Manual retry (resets attempts) followed by an immediate pass."""
        message = message_queue_service.retry_message(db, message_id, now=self._clock(), **edits)
        self.trigger()
        return message

    # -------------------------------------------------------------------------
    # Polling loop
    # -------------------------------------------------------------------------

    def release_stale(self) -> int:
        with self.session_factory() as db:
            return message_queue_service.release_stale_processing(
                db, older_than=self._clock() - self.stale_processing
            )

    async def run_forever(self) -> None:
        self._stop_event = self._stop_event or asyncio.Event()
        logger.info(
            "Queue processor starting (poll interval: %ss, batch size: %s, concurrency: %s)",
            self.poll_interval,
            self.batch_size,
            self.concurrency,
        )
        while not self._stop_event.is_set():
            try:
                await self.process_due_batch()
            except Exception:
                logger.exception("Error in queue processor loop")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Queue processor stopped")

    def start(self) -> asyncio.Task:
        """Start polling in the background on the running loop."""
        if self.is_running:
            return self._task
        self.release_stale()
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None
        if self._triggered:
            await asyncio.gather(*self._triggered, return_exceptions=True)


def build_queue_processor(
    session_factory: SessionFactory,
    providers: Mapping[str, DeliveryProvider],
    alerts: AlertingService | None = None,
) -> QueueProcessor:
    """Queue processor wired from settings."""
    return QueueProcessor(
        session_factory,
        providers,
        alerts,
        batch_size=settings.QUEUE_BATCH_SIZE,
        concurrency=settings.QUEUE_CONCURRENCY,
        poll_interval=settings.QUEUE_POLL_INTERVAL_SECONDS,
        retry_delay_seconds=settings.QUEUE_RETRY_DELAY_SECONDS,
        delivery_timeout=settings.DELIVERY_TIMEOUT_SECONDS,
        stale_processing_minutes=settings.QUEUE_STALE_PROCESSING_MINUTES,
        sms_segment_cost=Decimal(settings.SMS_SEGMENT_COST),
        email_cost=Decimal(settings.EMAIL_COST),
    )
