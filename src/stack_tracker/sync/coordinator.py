"""Coordinator that chooses the source of truth for each holdings operation."""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..errors import NotFoundError, RemoteUnavailableError, ValidationError
from ..models import METALS, Holding, HoldingFormData, MetalTotals, PendingAction
from ..remote.store import RemoteHoldingsStore
from ..storage.exports import holdings_to_csv, parse_holdings_csv
from ..storage.local_store import LocalHoldingsStore, generate_local_id
from .pending import PendingActionLog, ReplayResult
from .providers import Connectivity, Identity

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Keeps the local cache and the remote store consistent.

    Signed out, everything goes to the local store. Signed in and online,
    the remote store is truth; a remote failure mirrors the write locally
    and queues it. Signed in and offline, writes are mirrored and queued
    without trying the remote store. Remote failures never reach the
    caller. Validation, not-found and local persistence errors do.
    """

    def __init__(
        self,
        local: LocalHoldingsStore,
        remote: RemoteHoldingsStore,
        pending: PendingActionLog,
        identity: Identity,
        connectivity: Connectivity,
    ) -> None:
        self.local = local
        self.remote = remote
        self.pending = pending
        self.identity = identity
        self.connectivity = connectivity

        self.loading = False
        self.syncing = False
        self._holdings: list[Holding] = []
        # User whose first remote read this session has already been checked for migration
        self._migration_checked_for: str | None = None
        self._unsubscribe = connectivity.subscribe(self._on_connectivity_change)

    # Status

    @property
    def is_online(self) -> bool:
        return self.connectivity.online

    @property
    def signed_in(self) -> bool:
        return self.identity.signed_in and self.identity.user_id is not None

    @property
    def has_pending_changes(self) -> bool:
        return not self.pending.is_empty

    @property
    def holdings(self) -> list[Holding]:
        """The collection the UI currently observes."""
        return list(self._holdings)

    def _use_remote(self) -> bool:
        return self.signed_in and self.is_online

    def status_label(self) -> str:
        if not self.signed_in:
            return "local"
        if self.syncing:
            return "syncing"
        if not self.is_online:
            return "offline"
        if self.has_pending_changes:
            return "pending changes"
        return "synced"

    # Reads

    def list(self) -> list[Holding]:
        return self.refresh()

    def refresh(self) -> list[Holding]:
        """Re-read the current source of truth into the view."""
        self.loading = True
        try:
            self._holdings = self._read(replay=True)
        finally:
            self.loading = False
        return self.holdings

    def _read(self, replay: bool) -> list[Holding]:
        if not self._use_remote():
            return self.local.list()

        user_id = self.identity.user_id
        if replay and not self.pending.is_empty:
            self._replay(user_id)

        try:
            remote_holdings = self.remote.fetch(user_id)
        except RemoteUnavailableError as e:
            logger.warning("Remote fetch failed, showing local holdings: %s", e)
            return self.local.list()

        if self._migration_checked_for != user_id:
            self._migration_checked_for = user_id
            remote_holdings = self._migrate_if_needed(user_id, remote_holdings)
        return remote_holdings

    def _migrate_if_needed(self, user_id: str, remote_holdings: list[Holding]) -> list[Holding]:
        """Move local-only holdings into an empty remote account, once."""
        if remote_holdings:
            return remote_holdings

        # Mirror copies of queued adds reach the remote store through replay
        queued_adds = {a.holding_id for a in self.pending.list() if a.type == "add"}
        local_holdings = self.local.list()
        candidates = [h for h in local_holdings if h.id not in queued_adds]
        if not candidates:
            return remote_holdings

        try:
            migrated = self.remote.migrate_batch(candidates, user_id)
        except RemoteUnavailableError as e:
            logger.warning("Migration of local holdings failed, will retry: %s", e)
            self._migration_checked_for = None
            return local_holdings

        if len(candidates) == len(local_holdings):
            self.local.clear_all()
        else:
            for h in candidates:
                self.local.discard(h.id)

        try:
            return self.remote.fetch(user_id)
        except RemoteUnavailableError as e:
            logger.warning("Re-fetch after migration failed: %s", e)
            return migrated

    # Writes

    def _write(
        self,
        remote_op: Callable[[str], Holding | None],
        local_op: Callable[[], Holding | None],
        make_action: Callable[[Holding | None], PendingAction],
    ) -> Holding | None:
        """
        Two-phase write: remote first, compensating local write on failure.

        Args:
            remote_op: Performs the write remotely, given the user id
            local_op: Performs the same write against the local store
            make_action: Builds the queue entry from the local result
        """
        if not self.signed_in:
            return local_op()

        if self.is_online:
            try:
                return remote_op(self.identity.user_id)
            except RemoteUnavailableError as e:
                logger.warning("Remote write failed, keeping change locally: %s", e)

        result = local_op()
        self.pending.append(make_action(result))
        return result

    def add(self, form: HoldingFormData) -> Holding:
        form.validate()
        holding = self._write(
            lambda user_id: self.remote.add(form, user_id),
            lambda: self.local.add(form),
            lambda mirrored: PendingAction("add", mirrored.id, form.to_dict()),
        )
        self._holdings.insert(0, holding)
        return holding

    def update(self, holding_id: str, form: HoldingFormData) -> Holding:
        form.validate()
        holding = self._write(
            lambda user_id: self.remote.update(holding_id, form, user_id),
            lambda: self._mirror_update(holding_id, form),
            lambda _: PendingAction("update", holding_id, form.to_dict()),
        )
        self._holdings = [holding if h.id == holding_id else h for h in self._holdings]
        return holding

    def delete(self, holding_id: str) -> None:
        self._write(
            lambda user_id: self.remote.delete(holding_id, user_id),
            lambda: self._mirror_delete(holding_id),
            lambda _: PendingAction("delete", holding_id),
        )
        self._holdings = [h for h in self._holdings if h.id != holding_id]

    def _view_copy(self, holding_id: str) -> Holding | None:
        for h in self._holdings:
            if h.id == holding_id:
                return h
        return None

    def _mirror_update(self, holding_id: str, form: HoldingFormData) -> Holding:
        if self.signed_in and not self.local.contains(holding_id):
            seed = self._view_copy(holding_id)
            if seed is None:
                raise NotFoundError(holding_id, "local")
            self.local.put(seed)
        return self.local.update(holding_id, form)

    def _mirror_delete(self, holding_id: str) -> None:
        if not self.signed_in:
            self.local.delete(holding_id)
            return
        removed = self.local.discard(holding_id)
        if not removed and self._view_copy(holding_id) is None:
            raise NotFoundError(holding_id, "local")

    # Replay

    def _on_connectivity_change(self, online: bool) -> None:
        if online and self.signed_in and not self.pending.is_empty:
            self.sync()

    def sync(self) -> ReplayResult:
        """Replay queued mutations, then re-read the authoritative view."""
        if not self._use_remote():
            return ReplayResult()

        result = self._replay(self.identity.user_id)
        self.loading = True
        try:
            self._holdings = self._read(replay=False)
        finally:
            self.loading = False
        return result

    def _replay(self, user_id: str) -> ReplayResult:
        # Local mirror id of a replayed add -> its new remote id
        remap: dict[str, str] = {}
        confirmed: set[str] = set()
        # Local mirror ids whose add has not reached the remote store yet
        unsent_adds = {a.holding_id for a in self.pending.list() if a.type == "add"}

        def apply(action: PendingAction) -> None:
            if action.holding_id in remap:
                action.holding_id = remap[action.holding_id]
            if action.type == "add":
                holding = self.remote.add(action.form, user_id)
                remap[action.holding_id] = holding.id
            elif action.type == "update":
                self.remote.update(action.holding_id, action.form, user_id)
            else:
                try:
                    self.remote.delete(action.holding_id, user_id)
                except NotFoundError:
                    if action.holding_id in unsent_adds:
                        raise
                    logger.info("Holding %s is already deleted remotely", action.holding_id)
            confirmed.add(action.holding_id)

        self.syncing = True
        try:
            return self.pending.replay_all(apply)
        finally:
            self.syncing = False
            # Mirror copies are no longer needed once nothing queued refers to them
            still_queued = {a.holding_id for a in self.pending.list()}
            still_queued |= {local_id for local_id, remote_id in remap.items() if remote_id in still_queued}
            for holding_id in confirmed - still_queued:
                self.local.discard(holding_id)

    # CSV and aggregation

    def export_csv(self) -> str:
        return holdings_to_csv(self._holdings)

    def import_csv(self, text: str) -> list[Holding]:
        """Import CSV rows. Signed in, each row goes through ``add``."""
        if not self.signed_in:
            imported = self.local.import_csv(text)
            self._holdings = self.local.list()
            return imported

        imported = []
        for parsed in parse_holdings_csv(text, id_factory=generate_local_id):
            form = HoldingFormData.from_holding(parsed)
            try:
                imported.append(self.add(form))
            except ValidationError as e:
                logger.warning("Skipping invalid CSV row for %s: %s", parsed.type, e)
        return imported

    def get_totals_by_metal(self) -> dict[str, MetalTotals]:
        """
        Fold the current view per metal.

        Ounces are weight times quantity. Cost sums the per-item purchase
        price without multiplying by quantity.
        """
        totals = {metal: MetalTotals() for metal in METALS}
        for holding in self._holdings:
            entry = totals.setdefault(holding.metal, MetalTotals())
            entry.total_oz += holding.total_oz
            entry.total_cost += holding.purchase_price
        return totals

    def close(self) -> None:
        self._unsubscribe()
