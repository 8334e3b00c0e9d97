"""Upload orchestrator: approval gate and execution lifecycle.

This module provides:
- UploadOrchestrator: Owns the pending queue and the execution-state map

The orchestrator is the only writer of queue state. It runs on a single
asyncio loop and awaits every network-bound call (submission, balances,
prices), so state mutations never race.

Flow:
    LocalChange --add()--> priced + classified PendingUpload (awaiting approval)
        --approve()--> BalanceGate picks rail --> ExecutionService.submit()
        --ProgressChannel--> handle_event() --> completed / failed
        completed --settle delay--> removed, queue refresh signalled

Balance ledger:
    Each paid submission reserves its amount on its rail. The reservation is
    released when the upload fails or is cancelled, and dropped once a
    balance refresh after completion reflects the charge. BalanceGate always
    sees last known balance minus what is still reserved.

Operations and the states they require:
    | Operation | From               | To                 |
    |-----------|--------------------|--------------------|
    | approve   | AWAITING, APPROVED | APPROVED/UPLOADING |
    | reject    | AWAITING           | REJECTED           |
    | retry     | FAILED             | UPLOADING          |
    | cancel    | UPLOADING          | APPROVED           |
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING

from permagate.core.config import GateConfig
from permagate.core.types import (
    ApprovalStatus,
    ExecutionStatus,
    PaymentPreference,
    Rail,
    Resolution,
)
from permagate.queue.domain import (
    PUBLISHING_RESOLUTIONS,
    BalanceGate,
    ConflictClassifier,
    CostEstimator,
    InvalidTransitionError,
    QueueState,
    build_cost_breakdown,
    check_transition,
    default_resolution,
    is_too_large,
    keep_both_name,
    queue_state,
    valid_resolutions,
)
from permagate.queue.pricing import PriceCache
from permagate.queue.retry import retry_with_backoff
from permagate.queue.types import (
    ApprovalOutcome,
    BatchSummary,
    ConflictResolution,
    FileTooLargeError,
    OrchestratorStats,
    PendingUpload,
    QueueError,
    RailSelection,
    ResolutionError,
    SubmissionPayload,
    UnknownUploadError,
    UnresolvedConflictError,
    UploadExecutionState,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from permagate.queue.events import ProgressChannel
    from permagate.queue.interfaces import (
        BalanceOracle,
        ExecutionService,
        PriceOracle,
        RemoteStateLookup,
    )
    from permagate.queue.types import (
        CostBreakdown,
        LocalChange,
        PriceSnapshot,
        ProgressEvent,
    )

logger = logging.getLogger(__name__)


class UploadOrchestrator:
    """State machine and scheduler for the upload approval queue.

    Usage:
        orchestrator = UploadOrchestrator(execution, balances, prices, lookup)
        channel = ProgressChannel()
        runner = asyncio.create_task(orchestrator.run(channel))

        item = await orchestrator.add(LocalChange("docs/a.pdf", 5_000_000, content_hash="..."))
        await orchestrator.approve(item.id)

        # ... the execution service publishes ProgressEvents to the channel ...

        channel.close()
        await runner
        await orchestrator.aclose()
    """

    def __init__(
        self,
        execution: ExecutionService,
        balances: BalanceOracle | None = None,
        prices: PriceOracle | None = None,
        remote_lookup: RemoteStateLookup | None = None,
        config: GateConfig | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            execution: Service that publishes approved items
            balances: Wallet balance source (None = zero balances)
            prices: Price source (None = configured fallback prices)
            remote_lookup: Remote metadata lookup (None = no remote conflicts)
            config: Gate configuration
        """
        self._config = config or GateConfig()
        self._execution = execution
        self._balances = balances
        self._remote_lookup = remote_lookup

        self._price_cache = PriceCache(prices, self._config)
        self._estimator = CostEstimator()
        self._classifier = ConflictClassifier()
        self._gate = BalanceGate(self._config.free_threshold_bytes)

        # Queue order is insertion order
        self._items: dict[str, PendingUpload] = {}
        self._resolutions: dict[str, ConflictResolution] = {}

        # Live execution tracking: upload_id -> state
        self._executions: dict[str, UploadExecutionState] = {}
        self._settle_handles: dict[str, asyncio.TimerHandle] = {}

        # Balances
        self._credit_balance = 0.0
        self._token_balance = 0.0
        self._balances_loaded = False
        self._balance_warning: str | None = None

        # Amounts reserved by submitted paid uploads: upload_id -> selection
        self._committed: dict[str, RailSelection] = {}
        self._refresh_tasks: set[asyncio.Task[None]] = set()

        # Stats
        self._stats = OrchestratorStats()

        # Callbacks
        self._on_balance_refresh: Callable[[], None] | None = None
        self._on_queue_refresh: Callable[[], None] | None = None
        self._on_reconcile_remote: Callable[[PendingUpload], None] | None = None

    # =========================================================================
    # Properties and callbacks
    # =========================================================================

    @property
    def config(self) -> GateConfig:
        """Get the gate configuration."""
        return self._config

    @property
    def stats(self) -> OrchestratorStats:
        """Get orchestrator statistics."""
        return self._stats

    @property
    def credit_balance(self) -> float:
        """Last known credit balance."""
        return self._credit_balance

    @property
    def token_balance(self) -> float:
        """Last known token balance."""
        return self._token_balance

    @property
    def available_credit(self) -> float:
        """Credit balance not yet reserved by submitted uploads."""
        return max(0.0, self._credit_balance - self._committed_on(Rail.CREDIT))

    @property
    def available_token(self) -> float:
        """Token balance not yet reserved by submitted uploads."""
        return max(0.0, self._token_balance - self._committed_on(Rail.TOKEN))

    @property
    def price_warning(self) -> str | None:
        """Set when prices come from a fallback instead of the oracle."""
        return self._price_cache.warning

    @property
    def balance_warning(self) -> str | None:
        """Set when balances could not be refreshed."""
        return self._balance_warning

    def set_payment_preference(self, preference: PaymentPreference) -> None:
        """Change the global payment preference."""
        self._config.payment_preference = PaymentPreference(preference)
        logger.info("Payment preference set to %s", self._config.payment_preference.value)

    def set_on_balance_refresh(self, callback: Callable[[], None]) -> None:
        """Set callback fired when a completed upload changed balances."""
        self._on_balance_refresh = callback

    def set_on_queue_refresh(self, callback: Callable[[], None]) -> None:
        """Set callback fired when a completed upload left the queue."""
        self._on_queue_refresh = callback

    def set_on_reconcile_remote(self, callback: Callable[[PendingUpload], None]) -> None:
        """Set callback fired when an item is resolved with USE_REMOTE.

        Args:
            callback: Function(item) that reconciles the local file to remote
        """
        self._on_reconcile_remote = callback

    # =========================================================================
    # Queue contents
    # =========================================================================

    def get(self, upload_id: str) -> PendingUpload:
        """Get a tracked item.

        Raises:
            UnknownUploadError: If the id is not in the queue
        """
        item = self._items.get(upload_id)
        if item is None:
            raise UnknownUploadError(upload_id)
        return item

    def items(self) -> list[PendingUpload]:
        """All tracked items in queue order."""
        return list(self._items.values())

    def pending(self) -> list[PendingUpload]:
        """Items awaiting approval, in queue order."""
        return [
            item
            for item in self._items.values()
            if self.state(item.id) is QueueState.AWAITING_APPROVAL
        ]

    def state(self, upload_id: str) -> QueueState:
        """Current lifecycle state of an item."""
        return queue_state(self.get(upload_id), self._executions.get(upload_id))

    def execution_state(self, upload_id: str) -> UploadExecutionState | None:
        """Live execution state, if the item is being (or was just) published."""
        return self._executions.get(upload_id)

    def active_uploads(self) -> list[UploadExecutionState]:
        """Execution states currently uploading."""
        return [
            s for s in self._executions.values() if s.status is ExecutionStatus.UPLOADING
        ]

    def resolution(self, upload_id: str) -> ConflictResolution | None:
        """Recorded resolution for an item."""
        return self._resolutions.get(upload_id)

    def _open_items(self) -> list[PendingUpload]:
        """Items not yet handed to execution and not closed."""
        return [
            item
            for item in self._items.values()
            if self.state(item.id) in (QueueState.AWAITING_APPROVAL, QueueState.APPROVED)
        ]

    async def add(self, change: LocalChange) -> PendingUpload:
        """Price, classify and enqueue a detected local change.

        Args:
            change: Change descriptor from the file watcher

        Returns:
            The new item, awaiting approval

        Raises:
            FileTooLargeError: If a content upload exceeds max_file_size_bytes
        """
        item = PendingUpload.from_change(change)
        limit = self._config.max_file_size_bytes
        if is_too_large(item, limit):
            logger.warning(
                "Refusing %s: %d bytes exceeds limit of %d", item.local_path, item.file_size, limit
            )
            raise FileTooLargeError(item.local_path, item.file_size, limit)

        remote = None
        if self._remote_lookup is not None and not change.operation_type.is_metadata_only:
            remote = await self._remote_lookup.find(change.local_path, change.content_hash)

        conflict_type, details = self._classifier.classify(
            change, remote, self._open_items()
        )

        item.conflict_type = conflict_type
        item.conflict_details = details
        self._apply_estimate(item, await self._price_cache.snapshot())

        self._items[item.id] = item
        if item.has_conflict:
            logger.info(
                "Queued %s with %s: %s", item.local_path, conflict_type.value, details
            )
        else:
            logger.info("Queued %s (%s)", item.local_path, item.operation_type.value)
        return item

    def insert(self, item: PendingUpload) -> None:
        """Re-insert a previously removed item as awaiting approval.

        Removal plus insertion is how a recorded resolution is revoked.

        Raises:
            QueueError: If an item with this id is already queued
        """
        if item.id in self._items:
            raise QueueError(f"Upload {item.id} is already queued")
        item.status = ApprovalStatus.AWAITING_APPROVAL
        item.warning = None
        self._items[item.id] = item
        logger.debug("Re-inserted %s", item.local_path)

    def remove(self, upload_id: str) -> PendingUpload:
        """Drop an item, its resolution and any finished execution state.

        Raises:
            UnknownUploadError: If the id is not in the queue
            QueueError: If the item is currently uploading
        """
        if self.state(upload_id) is QueueState.UPLOADING:
            raise QueueError(f"Upload {upload_id} is uploading; cancel it first")

        item = self._items.pop(upload_id)
        self._resolutions.pop(upload_id, None)
        self._executions.pop(upload_id, None)
        handle = self._settle_handles.pop(upload_id, None)
        if handle is not None:
            handle.cancel()
        logger.debug("Removed %s from queue", item.local_path)
        return item

    def clear_closed(self) -> int:
        """Drop rejected items from the queue.

        Returns:
            Number of items removed
        """
        closed = [
            item.id for item in self._items.values() if item.status is ApprovalStatus.REJECTED
        ]
        for upload_id in closed:
            self.remove(upload_id)
        if closed:
            logger.info("Cleared %d closed items from queue", len(closed))
        return len(closed)

    # =========================================================================
    # Costs and balances
    # =========================================================================

    def _apply_estimate(self, item: PendingUpload, snapshot: PriceSnapshot) -> None:
        estimate = self._estimator.estimate(
            item,
            self._config.free_threshold_bytes,
            snapshot.credit_rate,
            snapshot.token_price_for_bytes,
        )
        item.estimated_cost = estimate.estimated_cost
        item.estimated_turbo_cost = estimate.estimated_turbo_cost
        if self._balances_loaded:
            item.has_sufficient_credit_balance = self._gate.credit_sufficient(
                item, self.available_credit
            )

    def select_rail(self, item: PendingUpload) -> RailSelection:
        """Rail the item would be charged on against unreserved balances."""
        return self._gate.select_rail(
            item,
            self.available_credit,
            self.available_token,
            self._config.payment_preference,
        )

    def _committed_on(self, rail: Rail) -> float:
        return sum(s.amount for s in self._committed.values() if s.rail is rail)

    def _reserve(self, upload_id: str, selection: RailSelection) -> None:
        if selection.rail is not Rail.FREE and selection.amount > 0:
            self._committed[upload_id] = selection

    def _release(self, upload_id: str) -> None:
        if self._committed.pop(upload_id, None) is not None:
            logger.debug("Released reservation for %s", upload_id)

    def _charged_reservations(self) -> list[str]:
        """Reservations whose upload completed (or already settled)."""
        return [
            upload_id
            for upload_id in self._committed
            if upload_id not in self._executions
            or self._executions[upload_id].status is ExecutionStatus.COMPLETED
        ]

    def cost_breakdown(self) -> CostBreakdown:
        """Aggregate cost of conflict-free items awaiting approval."""
        return build_cost_breakdown(self.pending(), self.select_rail)

    async def refresh_prices(self) -> PriceSnapshot:
        """Refetch prices and re-estimate every open item."""
        self._price_cache.invalidate()
        snapshot = await self._price_cache.snapshot()
        for item in self._open_items():
            self._apply_estimate(item, snapshot)
        return snapshot

    async def refresh_balances(self) -> None:
        """Refetch balances; on failure keep the last known values and warn.

        A successful refresh drops the reservations of uploads that had
        completed when it started, since the fetched balances include
        those charges.
        """
        charged = self._charged_reservations()
        refreshed = True
        if self._balances is not None:
            oracle = self._balances
            try:
                token = await retry_with_backoff(
                    oracle.get_token_balance,
                    max_retries=self._config.oracle_max_retries,
                    initial_backoff=self._config.oracle_retry_backoff,
                )
                credit = await retry_with_backoff(
                    oracle.get_credit_balance,
                    max_retries=self._config.oracle_max_retries,
                    initial_backoff=self._config.oracle_retry_backoff,
                )
            except Exception as e:
                refreshed = False
                self._balance_warning = (
                    f"Balance oracle unavailable ({e}); using last known balances"
                )
                logger.warning("%s", self._balance_warning)
            else:
                self._token_balance = max(0.0, float(token))
                self._credit_balance = max(0.0, float(credit))
                self._balance_warning = None
                logger.debug(
                    "Balances: %.6f tokens, %.6f credits",
                    self._token_balance,
                    self._credit_balance,
                )

        if refreshed:
            for upload_id in charged:
                self._committed.pop(upload_id, None)

        self._balances_loaded = True
        for item in self._open_items():
            item.has_sufficient_credit_balance = self._gate.credit_sufficient(
                item, self.available_credit
            )

    async def _await_refreshes(self) -> None:
        if self._refresh_tasks:
            await asyncio.gather(*self._refresh_tasks, return_exceptions=True)

    async def _ensure_balances(self) -> None:
        """Wait for in-flight refreshes; load balances on first use."""
        await self._await_refreshes()
        if not self._balances_loaded:
            await self.refresh_balances()

    def _schedule_balance_refresh(self) -> None:
        task = asyncio.get_running_loop().create_task(self.refresh_balances())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._on_refresh_done)

    def _on_refresh_done(self, task: asyncio.Task[None]) -> None:
        self._refresh_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Balance refresh after completion failed: %s", error)

    # =========================================================================
    # Conflict resolution
    # =========================================================================

    def resolve(
        self,
        upload_id: str,
        resolution: Resolution,
        reasoning: str | None = None,
    ) -> ConflictResolution:
        """Record the decision for a conflicted item (write-once).

        SKIP and USE_REMOTE close the item; nothing is published.

        Raises:
            UnknownUploadError: If the id is not in the queue
            ResolutionError: If the item has no conflict, is no longer
                awaiting approval, already has a resolution, or the
                resolution is not valid for its conflict class
        """
        item = self.get(upload_id)
        resolution = Resolution(resolution)

        if not item.has_conflict:
            raise ResolutionError(f"Upload {upload_id} has no conflict to resolve")
        if upload_id in self._resolutions:
            raise ResolutionError(
                f"Upload {upload_id} is already resolved as "
                f"{self._resolutions[upload_id].resolution.value}"
            )
        if self.state(upload_id) is not QueueState.AWAITING_APPROVAL:
            raise ResolutionError(f"Upload {upload_id} is not awaiting approval")
        if resolution not in valid_resolutions(item.conflict_type):
            raise ResolutionError(
                f"{resolution.value} is not valid for a {item.conflict_type.value} conflict"
            )

        record = ConflictResolution(
            upload_id=upload_id, resolution=resolution, reasoning=reasoning
        )
        self._resolutions[upload_id] = record
        logger.info("Resolved %s as %s", item.local_path, resolution.value)

        if resolution not in PUBLISHING_RESOLUTIONS:
            item.status = ApprovalStatus.REJECTED
            if resolution is Resolution.USE_REMOTE and self._on_reconcile_remote:
                self._on_reconcile_remote(item)
        return record

    def apply_default_resolutions(self) -> list[str]:
        """Resolve every unresolved item whose conflict class has a default.

        Returns:
            Ids that were resolved
        """
        resolved = []
        for item in self.pending():
            if not item.has_conflict or item.id in self._resolutions:
                continue
            default = default_resolution(item.conflict_type)
            if default is None:
                continue
            self.resolve(item.id, default, reasoning="default resolution")
            resolved.append(item.id)
        return resolved

    def _require_resolution(self, item: PendingUpload) -> None:
        if item.has_conflict and item.id not in self._resolutions:
            raise UnresolvedConflictError(item.id, item.conflict_type)

    # =========================================================================
    # Approval gate
    # =========================================================================

    async def approve(self, upload_id: str) -> ApprovalOutcome:
        """Approve an item and submit it on the rail BalanceGate selects.

        An APPROVED item that was blocked on balance may be approved again
        to retry submission.

        Returns:
            ApprovalOutcome; submitted is False when balance is insufficient
            (item stays APPROVED with a warning) or submission failed
            (item is FAILED and retryable)

        Raises:
            UnknownUploadError: If the id is not in the queue
            UnresolvedConflictError: If the item is conflicted and unresolved
            InvalidTransitionError: If the item is not awaiting approval or approved
        """
        item = self.get(upload_id)
        current = self.state(upload_id)
        if current is QueueState.AWAITING_APPROVAL:
            self._require_resolution(item)
            self._mark_approved(item)
        elif current is not QueueState.APPROVED:
            raise InvalidTransitionError(upload_id, current, QueueState.APPROVED)

        await self._ensure_balances()
        return await self._submit(item)

    async def approve_all(self) -> BatchSummary:
        """Approve every item awaiting approval, in queue order.

        Unresolved conflicts are skipped. Submissions are paced by
        batch_pacing_delay. Each submission reserves its cost, so later items
        in the batch are gated on what is left. One item failing never stops
        the batch.

        Returns:
            BatchSummary of what happened to each item
        """
        summary = BatchSummary()
        await self._await_refreshes()
        await self.refresh_balances()

        submitted_any = False
        for item in self.pending():
            # The queue may change while we sleep between submissions
            if item.id not in self._items:
                continue
            if self.state(item.id) is not QueueState.AWAITING_APPROVAL:
                continue
            if item.has_conflict and item.id not in self._resolutions:
                summary.skipped_conflicts.append(item.id)
                logger.debug("Skipping unresolved conflict %s", item.local_path)
                continue

            if submitted_any and self._config.batch_pacing_delay > 0:
                await asyncio.sleep(self._config.batch_pacing_delay)
            submitted_any = True

            try:
                self._mark_approved(item)
                summary.approved.append(item.id)
                outcome = await self._submit(item)
            except Exception as e:
                summary.errors[item.id] = str(e)
                logger.error("Failed to approve %s: %s", item.local_path, e)
                continue

            if outcome.submitted:
                summary.submitted.append(item.id)
            elif outcome.selection.sufficient:
                summary.errors[item.id] = outcome.error or "Submission failed"
            else:
                summary.blocked.append(item.id)

        logger.info(
            "Approve all: %d submitted, %d blocked, %d conflicts skipped, %d errors",
            len(summary.submitted),
            len(summary.blocked),
            len(summary.skipped_conflicts),
            len(summary.errors),
        )
        return summary

    def reject(self, upload_id: str) -> None:
        """Reject an item awaiting approval. Rejection is terminal.

        Raises:
            UnknownUploadError: If the id is not in the queue
            InvalidTransitionError: If the item is not awaiting approval
        """
        item = self.get(upload_id)
        check_transition(upload_id, self.state(upload_id), QueueState.REJECTED)
        item.status = ApprovalStatus.REJECTED
        self._stats.rejected += 1
        logger.info("Rejected %s", item.local_path)

    def reject_all(self) -> int:
        """Reject every item awaiting approval.

        Returns:
            Number of items rejected
        """
        pending = self.pending()
        for item in pending:
            self.reject(item.id)
        return len(pending)

    def _mark_approved(self, item: PendingUpload) -> None:
        check_transition(item.id, self.state(item.id), QueueState.APPROVED)
        item.status = ApprovalStatus.APPROVED
        self._stats.approved += 1
        logger.info("Approved %s", item.local_path)

    # =========================================================================
    # Execution
    # =========================================================================

    def _payload(self, item: PendingUpload) -> SubmissionPayload:
        record = self._resolutions.get(item.id)
        resolution = record.resolution if record else None
        target_name = item.file_name
        if resolution is Resolution.KEEP_BOTH:
            target_name = keep_both_name(
                item.file_name, datetime.fromtimestamp(record.resolved_at)
            )
        return SubmissionPayload(
            local_path=item.local_path,
            target_name=target_name,
            file_size=item.file_size,
            operation_type=item.operation_type,
            previous_path=item.previous_path,
            resolution=resolution,
        )

    def _block(self, item: PendingUpload, selection: RailSelection) -> ApprovalOutcome:
        item.warning = selection.reason
        self._stats.blocked += 1
        logger.warning("Not submitting %s: %s", item.local_path, selection.reason)
        return ApprovalOutcome(
            upload_id=item.id,
            selection=selection,
            submitted=False,
            error=selection.reason,
        )

    async def _submit(self, item: PendingUpload) -> ApprovalOutcome:
        """Gate an approved item on unreserved balance, then hand it to execution."""
        selection = self.select_rail(item)
        if not selection.sufficient:
            return self._block(item, selection)

        item.warning = None
        check_transition(item.id, self.state(item.id), QueueState.UPLOADING)
        state = UploadExecutionState(upload_id=item.id, rail=selection.rail)
        return await self._send(item, state, selection)

    async def _send(
        self,
        item: PendingUpload,
        state: UploadExecutionState,
        selection: RailSelection,
    ) -> ApprovalOutcome:
        # Track and reserve before awaiting so progress events and other
        # approvals arriving mid-submit see this upload
        self._executions[item.id] = state
        self._reserve(item.id, selection)
        try:
            await self._execution.submit(item.id, self._payload(item), selection.rail)
        except Exception as e:
            error = str(e) or type(e).__name__
            if self._executions.get(item.id) is state and state.status is ExecutionStatus.UPLOADING:
                state.status = ExecutionStatus.FAILED
                state.error = error
            self._release(item.id)
            self._stats.failed += 1
            logger.error("Submission of %s failed: %s", item.local_path, error)
            return ApprovalOutcome(
                upload_id=item.id, selection=selection, submitted=False, error=error
            )

        self._stats.submitted += 1
        logger.info(
            "Submitted %s on %s rail", item.local_path, selection.rail.value
        )
        return ApprovalOutcome(upload_id=item.id, selection=selection, submitted=True)

    async def retry(self, upload_id: str) -> ApprovalOutcome:
        """Resubmit a failed item, re-gated on current balances.

        The rail is selected again, so a retry may move to another rail or be
        blocked. A blocked retry leaves the item FAILED with a warning.

        Raises:
            UnknownUploadError: If the id is not in the queue
            InvalidTransitionError: If the item is not FAILED
        """
        item = self.get(upload_id)
        current = self.state(upload_id)
        if current is not QueueState.FAILED:
            raise InvalidTransitionError(upload_id, current, QueueState.UPLOADING)

        await self._ensure_balances()
        # Removal or another retry may have happened while balances loaded
        current = self.state(upload_id)
        if current is not QueueState.FAILED:
            raise InvalidTransitionError(upload_id, current, QueueState.UPLOADING)

        selection = self.select_rail(item)
        if not selection.sufficient:
            return self._block(item, selection)

        item.warning = None
        state = self._executions[upload_id]
        state.status = ExecutionStatus.UPLOADING
        state.rail = selection.rail
        state.progress = 0
        state.error = None
        logger.info("Retrying %s on %s rail", item.local_path, selection.rail.value)
        return await self._send(item, state, selection)

    async def cancel(self, upload_id: str) -> None:
        """Cancel an uploading item; it returns to APPROVED.

        Local state is cleared before the execution service is notified, so
        late events for this id are ignored. Notification is best-effort.

        Raises:
            UnknownUploadError: If the id is not in the queue
            InvalidTransitionError: If the item is not UPLOADING
        """
        item = self.get(upload_id)
        current = self.state(upload_id)
        if current is not QueueState.UPLOADING:
            raise InvalidTransitionError(upload_id, current, QueueState.APPROVED)

        del self._executions[upload_id]
        self._release(upload_id)
        self._stats.cancelled += 1
        logger.info("Cancelled %s", item.local_path)

        try:
            await self._execution.cancel(upload_id)
        except Exception as e:
            logger.warning("Execution service did not acknowledge cancel of %s: %s", upload_id, e)

    # =========================================================================
    # Progress ingestion
    # =========================================================================

    async def run(self, channel: ProgressChannel) -> None:
        """Consume progress events until the channel is closed."""
        logger.debug("Orchestrator event loop started")
        async for event in channel:
            try:
                self.handle_event(event)
            except Exception:
                logger.exception("Error handling progress event for %s", event.upload_id)
        logger.debug("Orchestrator event loop ended")

    def handle_event(self, event: ProgressEvent) -> None:
        """Apply one progress event.

        Events for ids with no live upload (cancelled, settled, never
        submitted) are ignored.
        """
        state = self._executions.get(event.upload_id)
        if state is None or state.status is not ExecutionStatus.UPLOADING:
            self._stats.ignored_events += 1
            logger.debug(
                "Ignoring %s event for untracked upload %s",
                event.status.value,
                event.upload_id,
            )
            return

        if event.status is ExecutionStatus.UPLOADING:
            progress = min(100, max(0, int(event.progress)))
            state.progress = max(state.progress, progress)

        elif event.status is ExecutionStatus.COMPLETED:
            state.status = ExecutionStatus.COMPLETED
            state.progress = 100
            self._stats.completed += 1
            logger.info("Upload completed: %s", event.upload_id)
            self._schedule_settle(event.upload_id)
            self._schedule_balance_refresh()
            if self._on_balance_refresh:
                self._on_balance_refresh()

        elif event.status is ExecutionStatus.FAILED:
            state.status = ExecutionStatus.FAILED
            state.error = event.error or "Upload failed"
            self._release(event.upload_id)
            self._stats.failed += 1
            logger.error("Upload failed: %s: %s", event.upload_id, state.error)

    def _schedule_settle(self, upload_id: str) -> None:
        loop = asyncio.get_running_loop()
        self._settle_handles[upload_id] = loop.call_later(
            self._config.settle_delay, self._settle, upload_id
        )

    def _settle(self, upload_id: str) -> None:
        """Drop a completed item once the settle delay has passed."""
        self._settle_handles.pop(upload_id, None)
        state = self._executions.get(upload_id)
        if state is None or state.status is not ExecutionStatus.COMPLETED:
            return

        del self._executions[upload_id]
        self._items.pop(upload_id, None)
        self._resolutions.pop(upload_id, None)
        logger.debug("Settled completed upload %s", upload_id)
        if self._on_queue_refresh:
            self._on_queue_refresh()

    async def aclose(self) -> None:
        """Cancel pending settle timers and balance refreshes."""
        for handle in self._settle_handles.values():
            handle.cancel()
        self._settle_handles.clear()

        tasks = list(self._refresh_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
