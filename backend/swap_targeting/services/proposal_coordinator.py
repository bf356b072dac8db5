"""Proposal Lifecycle Coordinator — the only writer of targeting edges, proposals and history.

Invariants:
    - Every mutating operation runs in exactly one transaction: commit on success,
      rollback on ANY exception (including asyncio.CancelledError from a client abort)
    - Eligibility is evaluated on a snapshot read after the locks are held, in the
      same transaction as the insert (no TOCTOU between cycle check and write)
    - A source swap never has two active outgoing edges (retarget replaces, never appends)
    - Accepting an edge rejects every other active edge into the same target atomically
    - Failures raise a tagged SwapTargetingError; never a generic exception
    - Notification hooks run after commit; their failures never roll back

Design Decisions:
    - Logger, clock, lifecycle hook and notifiers injected: no process-wide singletons
    - Unique-index violations (race losers) translated to PROPOSAL_PENDING /
      ALREADY_TARGETING, never surfaced as DATABASE_ERROR
    - Retarget creates the new edge with a fresh created_at; the previous edge id and
      created_at are kept in the history metadata
"""

import logging
from collections.abc import Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from swap_targeting.core.acceptance_strategy import is_auction
from swap_targeting.core.domain_types import (
    EdgeStatus, HistoryAction, SwapLifecycleEvent,
)
from swap_targeting.core.enforce_eligibility import (
    EligibilityDecision, TargetingSnapshot, evaluate_targeting,
)
from swap_targeting.core.errors import (
    EdgeNotActiveError, ErrorContext, ForbiddenError, RequestValidationFailed,
    ResourceNotFoundError, TargetingErrorCode, TargetingRuleViolation,
)
from swap_targeting.core.repository_protocols import NotificationHook, SwapLifecycleHook
from swap_targeting.core.targeting_graph import build_adjacency, find_path
from swap_targeting.infrastructure.notifications import dispatch_notifications
from swap_targeting.models.swap import Swap
from swap_targeting.models.targeting_edge import TargetingEdge
from swap_targeting.models.targeting_history import TargetingHistoryEntry
from swap_targeting.services.history_log import HistoryLog
from swap_targeting.services.targeting_store import TargetingStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TargetingOutcome:
    """Result of target/retarget."""
    edge: TargetingEdge
    warnings: list[str] = field(default_factory=list)
    replaced_edge: TargetingEdge | None = None


@dataclass
class ResolutionOutcome:
    """Result of accept/reject."""
    edge: TargetingEdge
    rejected_edge_ids: list[UUID] = field(default_factory=list)
    cancelled_edge_ids: list[UUID] = field(default_factory=list)


@dataclass
class CanTargetResult:
    """Read-only eligibility answer for the can-target endpoint."""
    source_swap_id: UUID | None
    decision: EligibilityDecision


class ProposalLifecycleCoordinator:
    """Sequences eligibility, edge writes and history inside one transaction."""

    def __init__(
        self,
        db: AsyncSession,
        lifecycle: SwapLifecycleHook,
        notifiers: Sequence[NotificationHook] = (),
        log: logging.Logger | None = None,
        clock: Callable[[], datetime] = _utcnow,
        crowded_threshold: int = 5,
    ):
        self._db = db
        self._store = TargetingStore(db)
        self._history = HistoryLog(db)
        self._lifecycle = lifecycle
        self._notifiers = list(notifiers)
        self._log = log or logger
        self._clock = clock
        self._crowded_threshold = crowded_threshold
        self._pending: list[TargetingHistoryEntry] = []

    # --- Mutating operations --------------------------------------------------

    async def target(
        self,
        source_swap_id: UUID,
        target_swap_id: UUID,
        user_id: str,
        message: str | None = None,
        conditions: list[str] | None = None,
    ) -> TargetingOutcome:
        """Create an active edge source -> target with its proposal."""
        ctx = ErrorContext(user_id=user_id, swap_id=str(target_swap_id))
        async with self._transaction():
            if source_swap_id == target_swap_id:
                raise TargetingRuleViolation(TargetingErrorCode.CANNOT_TARGET_OWN_SWAP, ctx)

            await self._store.lock_graph()
            source, target = await self._lock_pair(source_swap_id, target_swap_id, ctx)
            self._require_owner(source, user_id, ctx)

            if await self._store.get_active_outgoing(source.id, for_update=True):
                raise TargetingRuleViolation(TargetingErrorCode.ALREADY_TARGETING, ctx)

            decision = await self._evaluate(source, target, user_id, ctx)
            edge = await self._insert_edge(source, target, user_id, message, conditions, ctx)
            self._record(edge, HistoryAction.TARGETED, user_id, {
                "strategy": target.acceptance_strategy,
            })

        self._log.info(
            f"Swap {source.id} targeted {target.id}",
            extra={"edge_id": edge.id, "user_id": user_id, "action": "targeted"},
        )
        return TargetingOutcome(edge=edge, warnings=decision.warnings)

    async def retarget(
        self,
        source_swap_id: UUID,
        new_target_swap_id: UUID,
        user_id: str,
        message: str | None = None,
        conditions: list[str] | None = None,
    ) -> TargetingOutcome:
        """Atomically replace the source's active edge with one to new_target."""
        ctx = ErrorContext(user_id=user_id, swap_id=str(new_target_swap_id))
        async with self._transaction():
            if source_swap_id == new_target_swap_id:
                raise TargetingRuleViolation(TargetingErrorCode.CANNOT_TARGET_OWN_SWAP, ctx)

            await self._store.lock_graph()
            source, target = await self._lock_pair(source_swap_id, new_target_swap_id, ctx)
            self._require_owner(source, user_id, ctx)

            old_edge = await self._store.get_active_outgoing(source.id, for_update=True)
            if old_edge is None:
                raise ResourceNotFoundError("Active target", str(source_swap_id), ctx)
            if old_edge.target_swap_id == target.id:
                raise RequestValidationFailed(
                    "Your swap already targets this swap.", "sourceSwapId", ctx,
                )

            decision = await self._evaluate(source, target, user_id, ctx)

            old_proposal = old_edge.proposal
            await self._store.set_edge_status(old_edge, EdgeStatus.REPLACED)
            edge = await self._insert_edge(
                source, target, user_id,
                message if message is not None else old_proposal.message,
                conditions if conditions is not None else old_proposal.conditions,
                ctx,
            )
            self._record(edge, HistoryAction.RETARGETED, user_id, {
                "previous_edge_id": str(old_edge.id),
                "previous_target_swap_id": str(old_edge.target_swap_id),
                "previous_created_at": old_edge.created_at.isoformat(),
                "strategy": target.acceptance_strategy,
            })

        self._log.info(
            f"Swap {source.id} retargeted {old_edge.target_swap_id} -> {target.id}",
            extra={"edge_id": edge.id, "user_id": user_id, "action": "retargeted"},
        )
        return TargetingOutcome(edge=edge, warnings=decision.warnings, replaced_edge=old_edge)

    async def remove_target(
        self, source_swap_id: UUID, user_id: str,
    ) -> TargetingEdge | None:
        """Cancel the source's active edge. No active edge is a no-op success."""
        ctx = ErrorContext(user_id=user_id, swap_id=str(source_swap_id))
        async with self._transaction():
            swaps = await self._store.lock_swaps([source_swap_id])
            source = swaps.get(source_swap_id)
            if source is None:
                raise ResourceNotFoundError("Swap", str(source_swap_id), ctx)
            self._require_owner(source, user_id, ctx)

            edge = await self._store.get_active_outgoing(source.id, for_update=True)
            if edge is None:
                self._log.debug(
                    f"remove_target: swap {source_swap_id} has no active target",
                    extra={"swap_id": source_swap_id, "user_id": user_id},
                )
                return None

            await self._store.set_edge_status(edge, EdgeStatus.CANCELLED)
            self._record(edge, HistoryAction.REMOVED, user_id)

        self._log.info(
            f"Swap {source_swap_id} removed its target {edge.target_swap_id}",
            extra={"edge_id": edge.id, "user_id": user_id, "action": "removed"},
        )
        return edge

    async def accept(self, edge_id: UUID, user_id: str) -> ResolutionOutcome:
        """Target owner accepts an edge; competing edges are rejected."""
        ctx = ErrorContext(user_id=user_id, edge_id=str(edge_id))
        async with self._transaction():
            edge, source, target = await self._lock_for_resolution(edge_id, user_id, ctx)

            await self._store.set_edge_status(edge, EdgeStatus.ACCEPTED)
            target.winner_edge_id = edge.id
            self._record(edge, HistoryAction.ACCEPTED, user_id, {
                "strategy": target.acceptance_strategy,
            })

            rejected = []
            for loser in await self._store.list_active_incoming(
                target.id, exclude_edge_id=edge.id, for_update=True,
            ):
                await self._store.set_edge_status(loser, EdgeStatus.REJECTED)
                self._record(loser, HistoryAction.REJECTED, user_id, {
                    "reason": "competing_proposal_accepted",
                    "winning_edge_id": str(edge.id),
                })
                rejected.append(loser.id)

            await self._lifecycle.advance_swap_state(
                target.id, SwapLifecycleEvent.PROPOSAL_ACCEPTED.value,
            )
            await self._lifecycle.advance_swap_state(
                source.id, SwapLifecycleEvent.PROPOSAL_ACCEPTED.value,
            )
            cancelled = await self._cancel_stale_edges(source, target, edge, user_id)

        self._log.info(
            f"Edge {edge.id} accepted; {len(rejected)} competitor(s) rejected",
            extra={"edge_id": edge.id, "user_id": user_id, "action": "accepted"},
        )
        return ResolutionOutcome(
            edge=edge, rejected_edge_ids=rejected, cancelled_edge_ids=cancelled,
        )

    async def reject(self, edge_id: UUID, user_id: str) -> ResolutionOutcome:
        """Target owner rejects an edge; the target becomes open again."""
        ctx = ErrorContext(user_id=user_id, edge_id=str(edge_id))
        async with self._transaction():
            edge, _source, _target = await self._lock_for_resolution(edge_id, user_id, ctx)
            await self._store.set_edge_status(edge, EdgeStatus.REJECTED)
            self._record(edge, HistoryAction.REJECTED, user_id, {
                "reason": "rejected_by_owner",
            })

        self._log.info(
            f"Edge {edge.id} rejected",
            extra={"edge_id": edge.id, "user_id": user_id, "action": "rejected"},
        )
        return ResolutionOutcome(edge=edge)

    # --- Read-only ------------------------------------------------------------

    async def check_eligibility(
        self,
        target_swap_id: UUID,
        user_id: str,
        source_swap_id: UUID | None = None,
    ) -> CanTargetResult:
        """Would target()/retarget() be allowed right now? Never writes."""
        ctx = ErrorContext(user_id=user_id, swap_id=str(target_swap_id))
        target = await self._store.get_swap(target_swap_id)
        if target is None:
            raise ResourceNotFoundError("Swap", str(target_swap_id), ctx)

        if source_swap_id is None:
            source = await self._store.find_candidate_source(user_id, target.id)
            if source is None:
                return CanTargetResult(
                    None, EligibilityDecision.deny(TargetingErrorCode.SWAP_UNAVAILABLE),
                )
        else:
            source = await self._store.get_swap(source_swap_id)
            if source is None:
                raise ResourceNotFoundError("Swap", str(source_swap_id), ctx)
            if source.owner_id != user_id:
                return CanTargetResult(
                    source.id, EligibilityDecision.deny(TargetingErrorCode.FORBIDDEN),
                )

        current = await self._store.get_active_outgoing(source.id)
        if current is not None and current.target_swap_id == target.id:
            return CanTargetResult(
                source.id, EligibilityDecision.deny(TargetingErrorCode.ALREADY_TARGETING),
            )

        decision = evaluate_targeting(
            await self._snapshot(source, target), user_id, self._crowded_threshold,
        )
        if decision.allowed and current is not None:
            decision.warnings.append(
                "Your swap already targets another swap; proposing here will retarget it",
            )
        return CanTargetResult(source.id, decision)

    # --- Internals ------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self):
        """One transaction per operation; notifications only after commit."""
        self._pending = []
        try:
            yield
            await self._db.commit()
        except BaseException:
            await self._db.rollback()
            self._pending = []
            raise
        entries, self._pending = self._pending, []
        await dispatch_notifications(self._notifiers, entries)

    async def _lock_pair(
        self, source_id: UUID, target_id: UUID, ctx: ErrorContext,
    ) -> tuple[Swap, Swap]:
        swaps = await self._store.lock_swaps([source_id, target_id])
        if source_id not in swaps:
            raise ResourceNotFoundError("Source swap", str(source_id), ctx)
        if target_id not in swaps:
            raise ResourceNotFoundError("Target swap", str(target_id), ctx)
        return swaps[source_id], swaps[target_id]

    async def _lock_for_resolution(
        self, edge_id: UUID, user_id: str, ctx: ErrorContext,
    ) -> tuple[TargetingEdge, Swap, Swap]:
        """Lock both swaps then the edge; verify ownership and that it is still active."""
        edge = await self._store.get_edge(edge_id)
        if edge is None:
            raise ResourceNotFoundError("Targeting edge", str(edge_id), ctx)

        source, target = await self._lock_pair(edge.source_swap_id, edge.target_swap_id, ctx)
        if target.owner_id != user_id:
            raise ForbiddenError(ctx)

        edge = await self._store.get_edge(edge_id, for_update=True)
        if edge.status != EdgeStatus.ACTIVE.value:
            raise EdgeNotActiveError(edge.status, ctx)
        return edge, source, target

    def _require_owner(self, swap: Swap, user_id: str, ctx: ErrorContext) -> None:
        if swap.owner_id != user_id:
            raise ForbiddenError(ctx)

    async def _snapshot(self, source: Swap, target: Swap) -> TargetingSnapshot:
        pairs = await self._store.load_active_pairs()
        return TargetingSnapshot(
            source=source,
            target=target,
            adjacency=build_adjacency(pairs, exclude_source=source.id),
            incoming_active_count=await self._store.count_active_incoming(
                target.id, exclude_source_id=source.id,
            ),
            now=self._clock(),
        )

    async def _evaluate(
        self, source: Swap, target: Swap, user_id: str, ctx: ErrorContext,
    ) -> EligibilityDecision:
        snapshot = await self._snapshot(source, target)
        decision = evaluate_targeting(snapshot, user_id, self._crowded_threshold)
        if not decision.allowed:
            extra = {
                "error_code": decision.reason.value,
                "source_swap_id": source.id,
                "target_swap_id": target.id,
                "user_id": user_id,
            }
            if decision.reason is TargetingErrorCode.CIRCULAR_TARGETING:
                chain = find_path(snapshot.adjacency, target.id, source.id) or []
                ctx.debug_info = {"chain": [str(s) for s in chain]}
            self._log.warning(f"Targeting denied: {decision.reason.value}", extra=extra)
            raise TargetingRuleViolation(decision.reason, ctx)
        return decision

    async def _insert_edge(
        self,
        source: Swap,
        target: Swap,
        user_id: str,
        message: str | None,
        conditions: list[str] | None,
        ctx: ErrorContext,
    ) -> TargetingEdge:
        # A failed flush expires every loaded row; keep plain ids for the log
        source_id, target_id = source.id, target.id
        exclusive = not is_auction(target)
        try:
            return await self._store.insert_edge(
                source, target, user_id, message, conditions, exclusive=exclusive,
            )
        except IntegrityError as e:
            # Lost a race the locks did not cover (e.g. SQLite, or a writer bypassing them)
            detail = str(e.orig)
            code = (
                TargetingErrorCode.ALREADY_TARGETING
                if "active_source" in detail or "targeting_edges.source_swap_id" in detail
                else TargetingErrorCode.PROPOSAL_PENDING
            )
            self._log.warning(
                f"Edge insert lost a race: {code.value}",
                extra={"error_code": code.value, "source_swap_id": source_id,
                       "target_swap_id": target_id},
            )
            raise TargetingRuleViolation(code, ctx) from e

    async def _cancel_stale_edges(
        self, source: Swap, target: Swap, accepted: TargetingEdge, user_id: str,
    ) -> list[UUID]:
        """Both swaps are exchanged: drop edges that can no longer be honoured."""
        stale: list[TargetingEdge] = []
        outgoing = await self._store.get_active_outgoing(target.id, for_update=True)
        if outgoing is not None:
            stale.append(outgoing)
        stale.extend(await self._store.list_active_incoming(source.id, for_update=True))

        for edge in stale:
            await self._store.set_edge_status(edge, EdgeStatus.CANCELLED)
            self._record(edge, HistoryAction.CANCELLED, user_id, {
                "reason": "swap_no_longer_available",
                "accepted_edge_id": str(accepted.id),
            })
        return [edge.id for edge in stale]

    def _record(
        self,
        edge: TargetingEdge,
        action: HistoryAction,
        actor_id: str | None,
        details: dict | None = None,
    ) -> None:
        self._pending.append(self._history.append(edge, action, actor_id, details))
