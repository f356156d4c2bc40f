"""Durable queue of mutations awaiting confirmation by the remote store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from ..errors import NotFoundError, RemoteUnavailableError
from ..models import PendingAction
from ..storage.blobs import JsonBlobStorage

logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    """Outcome of one pass over the queue."""

    applied: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.applied + self.failed


class PendingActionLog:
    """Order-preserving queue persisted as one JSON blob.

    Same-target actions are never collapsed: an update followed by a delete
    stays two actions and both are replayed.
    """

    def __init__(self, storage: JsonBlobStorage, key: str = "stacktracker_pending_actions") -> None:
        self.storage = storage
        self.key = key
        self._replaying = False

    def list(self) -> list[PendingAction]:
        data = self.storage.read(self.key, default=[])
        actions = []
        for item in data or []:
            try:
                actions.append(PendingAction.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Dropping unreadable pending action %r: %s", item, e)
        return actions

    def _save(self, actions: list[PendingAction]) -> None:
        self.storage.write(self.key, [a.to_dict() for a in actions])

    def __len__(self) -> int:
        return len(self.list())

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def append(self, action: PendingAction) -> None:
        actions = self.list()
        actions.append(action)
        self._save(actions)
        logger.info("Queued %s for holding %s", action.type, action.holding_id)

    def replay_all(self, apply_fn: Callable[[PendingAction], object]) -> ReplayResult:
        """
        Apply every queued action in enqueue order.

        Actions whose ``apply_fn`` raises RemoteUnavailableError or
        NotFoundError stay queued in their original relative order.
        ``apply_fn`` may rewrite an action's ``holding_id``; failed actions
        are persisted as rewritten. Any other exception stops the pass and
        propagates, but the actions applied before it are still dropped.

        Returns:
            Counts of applied and failed actions
        """
        result = ReplayResult()
        if self._replaying:
            return result

        snapshot = self.list()
        self._replaying = True
        applied: set[str] = set()
        try:
            for action in snapshot:
                try:
                    apply_fn(action)
                except (RemoteUnavailableError, NotFoundError) as e:
                    logger.warning("Replay of %s %s failed: %s", action.type, action.id, e)
                    result.failed += 1
                else:
                    applied.add(action.id)
                    result.applied += 1
        finally:
            self._replaying = False
            remaining = [a for a in snapshot if a.id not in applied]
            # Keep anything appended while the replay was running
            seen = {a.id for a in snapshot}
            remaining += [a for a in self.list() if a.id not in seen]
            self._save(remaining)

        if result.attempted:
            logger.info("Replayed %d action(s), %d still pending", result.applied, len(remaining))
        return result

    def clear(self) -> None:
        self._save([])
