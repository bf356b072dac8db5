"""Notification Adapters — deliver targeting transitions to interested parties.

Invariants:
    - notify() is called after the transaction commits, once per history entry
    - Adapters never raise into the coordinator (the dispatcher guards each call)

Design Decisions:
    - LoggingNotifier is the default adapter: email/push delivery lives in another
      subsystem that tails these log events; swap in a real adapter via DI
    - dispatch_notifications isolates each hook call so one failing channel does
      not starve the others
"""

import logging
from collections.abc import Iterable, Sequence

from swap_targeting.core.repository_protocols import HistoryEntryLike, NotificationHook

logger = logging.getLogger(__name__)


class LoggingNotifier:
    """Emit one structured log line per lifecycle transition."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    async def notify(self, entry: HistoryEntryLike) -> None:
        self._log.info(
            f"Targeting {entry.action}: {entry.source_swap_id} -> {entry.target_swap_id}",
            extra={
                "action": entry.action,
                "edge_id": entry.edge_id,
                "source_swap_id": entry.source_swap_id,
                "target_swap_id": entry.target_swap_id,
                "user_id": entry.actor_id,
            },
        )


async def dispatch_notifications(
    hooks: Sequence[NotificationHook], entries: Iterable[HistoryEntryLike],
) -> int:
    """Fire every hook for every entry. Returns the number of failed deliveries."""
    failures = 0
    for entry in entries:
        for hook in hooks:
            try:
                await hook.notify(entry)
            except Exception as e:
                failures += 1
                logger.warning(
                    f"Notification delivery failed: {e}",
                    extra={"action": entry.action, "edge_id": entry.edge_id},
                )
    return failures
