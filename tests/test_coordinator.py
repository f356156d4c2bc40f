"""Tests for the sync coordinator."""

import pytest

from stack_tracker.errors import NotFoundError, RemoteUnavailableError, ValidationError
from stack_tracker.models import METALS, Holding
from stack_tracker.sync.coordinator import SyncCoordinator


def _remote_rows(backend, user_id="user-1"):
    return backend.select_active(user_id)


class TestSignedOut:
    @pytest.fixture(autouse=True)
    def signed_out(self, identity):
        identity.sign_out()

    def test_writes_go_to_local_only(self, coordinator, local_store, backend, pending_log, gold_eagle):
        holding = coordinator.add(gold_eagle)
        assert local_store.list() == [holding]
        assert backend.rows == {}
        assert pending_log.is_empty
        assert coordinator.list() == [holding]
        assert coordinator.status_label() == "local"

    def test_update_and_delete(self, coordinator, local_store, gold_eagle):
        holding = coordinator.add(gold_eagle)
        gold_eagle.quantity = 4
        assert coordinator.update(holding.id, gold_eagle).quantity == 4
        coordinator.delete(holding.id)
        assert local_store.list() == []
        assert coordinator.holdings == []

    def test_not_found_propagates(self, coordinator, gold_eagle):
        with pytest.raises(NotFoundError):
            coordinator.update("missing", gold_eagle)
        with pytest.raises(NotFoundError):
            coordinator.delete("missing")

    def test_offline_makes_no_difference(self, coordinator, connectivity, pending_log, gold_eagle):
        connectivity.set_online(False)
        coordinator.add(gold_eagle)
        assert pending_log.is_empty


class TestSignedInOnline:
    def test_add_goes_to_remote(self, coordinator, backend, local_store, gold_eagle):
        holding = coordinator.add(gold_eagle)
        assert [r["id"] for r in _remote_rows(backend)] == [holding.id]
        assert local_store.list() == []
        assert coordinator.holdings == [holding]
        assert not coordinator.has_pending_changes
        assert coordinator.status_label() == "synced"

    def test_list_reads_remote(self, coordinator, remote_store, gold_eagle):
        remote_store.add(gold_eagle, "user-1")
        remote_store.add(gold_eagle, "someone-else")
        assert len(coordinator.list()) == 1

    def test_update_and_delete_remote(self, coordinator, backend, gold_eagle):
        holding = coordinator.add(gold_eagle)
        gold_eagle.purchase_price = 2100
        updated = coordinator.update(holding.id, gold_eagle)
        assert updated.purchase_price == 2100
        assert coordinator.holdings == [updated]

        coordinator.delete(holding.id)
        assert _remote_rows(backend) == []
        assert backend.rows[holding.id]["deleted_at"] is not None
        assert coordinator.holdings == []

    def test_remote_not_found_propagates(self, coordinator, pending_log, gold_eagle):
        with pytest.raises(NotFoundError):
            coordinator.update("missing", gold_eagle)
        assert pending_log.is_empty

    def test_validation_rejected_before_any_store(self, coordinator, backend, local_store, gold_eagle):
        gold_eagle.metal = "copper"
        with pytest.raises(ValidationError):
            coordinator.add(gold_eagle)
        assert backend.rows == {}
        assert local_store.list() == []

    def test_remote_failure_mirrors_and_queues(self, coordinator, backend, local_store, pending_log, gold_eagle):
        backend.fail = True
        holding = coordinator.add(gold_eagle)

        assert local_store.list() == [holding]
        [action] = pending_log.list()
        assert action.type == "add"
        assert action.holding_id == holding.id
        assert action.form == gold_eagle
        assert coordinator.holdings == [holding]
        assert coordinator.has_pending_changes

    def test_remote_read_failure_falls_back_to_local(self, coordinator, backend, local_store, gold_eagle):
        local_store.add(gold_eagle)
        backend.fail = True
        assert len(coordinator.list()) == 1

    def test_mirrored_update_of_remote_holding(self, coordinator, backend, local_store, pending_log, gold_eagle):
        holding = coordinator.add(gold_eagle)
        backend.fail = True
        gold_eagle.quantity = 3

        updated = coordinator.update(holding.id, gold_eagle)

        assert updated.id == holding.id
        assert updated.quantity == 3
        assert local_store.get(holding.id).quantity == 3
        assert [a.type for a in pending_log.list()] == ["update"]

        backend.fail = False
        coordinator.sync()
        assert pending_log.is_empty
        assert local_store.list() == []
        assert _remote_rows(backend)[0]["quantity"] == 3

    def test_mirrored_delete_of_remote_holding(self, coordinator, backend, pending_log, gold_eagle):
        holding = coordinator.add(gold_eagle)
        backend.fail = True

        coordinator.delete(holding.id)
        assert coordinator.holdings == []
        assert [(a.type, a.holding_id) for a in pending_log.list()] == [("delete", holding.id)]

        backend.fail = False
        coordinator.sync()
        assert _remote_rows(backend) == []
        assert holding.id in backend.rows

    def test_mirrored_write_of_unknown_id(self, coordinator, backend, gold_eagle):
        backend.fail = True
        with pytest.raises(NotFoundError):
            coordinator.update("missing", gold_eagle)
        with pytest.raises(NotFoundError):
            coordinator.delete("missing")


class TestOfflineReconnect:
    def test_offline_add_then_reconnect(self, coordinator, connectivity, backend, local_store, pending_log, gold_eagle):
        connectivity.set_online(False)

        holding = coordinator.add(gold_eagle)
        assert local_store.list() == [holding]
        assert len(pending_log) == 1
        assert backend.rows == {}
        assert coordinator.list() == [holding]
        assert coordinator.has_pending_changes
        assert coordinator.status_label() == "offline"

        connectivity.set_online(True)

        assert pending_log.is_empty
        assert not coordinator.has_pending_changes
        [row] = _remote_rows(backend)
        assert row["id"] != holding.id
        assert row["metal"] == "gold"
        assert row["type"] == "American Eagle"
        assert row["weight"] == pytest.approx(1.0)
        assert row["quantity"] == 1
        assert row["purchase_price"] == 2000
        assert row["purchase_date"] == "2024-01-01"

        [shown] = coordinator.list()
        assert shown.id == row["id"]
        assert local_store.list() == []
        assert coordinator.status_label() == "synced"

    def test_failed_replay_keeps_queue(self, coordinator, connectivity, backend, pending_log, gold_eagle):
        connectivity.set_online(False)
        coordinator.add(gold_eagle)

        backend.fail = True
        connectivity.set_online(True)
        assert len(pending_log) == 1

        backend.fail = False
        coordinator.refresh()
        assert pending_log.is_empty
        assert len(coordinator.holdings) == 1

    def test_offline_add_then_update_is_retargeted(self, coordinator, connectivity, backend, pending_log, gold_eagle):
        connectivity.set_online(False)
        holding = coordinator.add(gold_eagle)
        gold_eagle.quantity = 7
        coordinator.update(holding.id, gold_eagle)
        assert [a.type for a in pending_log.list()] == ["add", "update"]

        connectivity.set_online(True)

        assert pending_log.is_empty
        [row] = _remote_rows(backend)
        assert row["quantity"] == 7

    def test_offline_update_then_delete_both_replay(self, coordinator, connectivity, backend, pending_log, gold_eagle):
        holding = coordinator.add(gold_eagle)
        connectivity.set_online(False)

        gold_eagle.quantity = 2
        coordinator.update(holding.id, gold_eagle)
        coordinator.delete(holding.id)
        assert [a.type for a in pending_log.list()] == ["update", "delete"]

        connectivity.set_online(True)

        assert pending_log.is_empty
        assert _remote_rows(backend) == []
        assert backend.rows[holding.id]["quantity"] == 2
        assert backend.rows[holding.id]["deleted_at"] is not None

    def test_unexpected_replay_error_does_not_resend_add(
        self, coordinator, connectivity, backend, remote_store, pending_log, gold_eagle, monkeypatch
    ):
        connectivity.set_online(False)
        holding = coordinator.add(gold_eagle)
        gold_eagle.quantity = 7
        coordinator.update(holding.id, gold_eagle)

        def broken_update(holding_id, form, user_id):
            raise RuntimeError("malformed row")

        monkeypatch.setattr(remote_store, "update", broken_update)
        with pytest.raises(RuntimeError):
            connectivity.set_online(True)

        assert backend.insert_calls == 1
        [row] = _remote_rows(backend)
        [queued] = pending_log.list()
        assert queued.type == "update"
        assert queued.holding_id == row["id"]

        monkeypatch.undo()
        coordinator.sync()

        assert backend.insert_calls == 1
        assert pending_log.is_empty
        [row] = _remote_rows(backend)
        assert row["quantity"] == 7

    def test_delete_of_remotely_deleted_holding_is_dropped(
        self, coordinator, connectivity, remote_store, pending_log, gold_eagle
    ):
        holding = coordinator.add(gold_eagle)
        connectivity.set_online(False)
        coordinator.delete(holding.id)
        remote_store.delete(holding.id, "user-1")

        connectivity.set_online(True)

        assert pending_log.is_empty
        assert not coordinator.has_pending_changes
        assert coordinator.status_label() == "synced"

    def test_delete_of_unsent_add_stays_queued(
        self, coordinator, connectivity, remote_store, pending_log, gold_eagle, monkeypatch
    ):
        connectivity.set_online(False)
        holding = coordinator.add(gold_eagle)
        coordinator.delete(holding.id)

        def unavailable_add(form, user_id):
            raise RemoteUnavailableError("down")

        monkeypatch.setattr(remote_store, "add", unavailable_add)
        connectivity.set_online(True)

        assert [a.type for a in pending_log.list()] == ["add", "delete"]

    def test_reconnect_when_signed_out_does_not_replay(self, coordinator, connectivity, identity, pending_log, gold_eagle):
        connectivity.set_online(False)
        coordinator.add(gold_eagle)
        identity.sign_out()
        connectivity.set_online(True)
        assert len(pending_log) == 1


class TestMigration:
    def test_local_holdings_migrate_once(self, coordinator, identity, local_store, backend, gold_eagle, silver_bar):
        identity.sign_out()
        local_store.add(gold_eagle)
        local_store.add(silver_bar)
        identity.sign_in("user-1")

        holdings = coordinator.list()
        assert len(holdings) == 2
        assert local_store.list() == []
        assert backend.insert_calls == 1
        assert {h.metal for h in holdings} == {"gold", "silver"}

        coordinator.list()
        assert backend.insert_calls == 1

    def test_guard_holds_even_if_remote_stays_empty(self, coordinator, remote_store, local_store, gold_eagle, monkeypatch):
        local_store.add(gold_eagle)
        calls = []
        monkeypatch.setattr(remote_store, "migrate_batch", lambda holdings, user_id: calls.append(user_id) or [])

        coordinator.list()
        coordinator.list()
        assert calls == ["user-1"]

    def test_guard_is_per_instance(self, local_store, remote_store, pending_log, identity, connectivity, gold_eagle, monkeypatch):
        calls = []
        monkeypatch.setattr(remote_store, "migrate_batch", lambda holdings, user_id: calls.append(user_id) or [])
        for _ in range(2):
            local_store.add(gold_eagle)
            coord = SyncCoordinator(local_store, remote_store, pending_log, identity, connectivity)
            coord.list()
            coord.list()
            coord.close()
        assert len(calls) == 2

    def test_no_migration_when_remote_has_data(self, coordinator, local_store, remote_store, backend, gold_eagle):
        remote_store.add(gold_eagle, "user-1")
        local_store.add(gold_eagle)
        coordinator.list()
        assert backend.insert_calls == 1
        assert len(local_store.list()) == 1

    def test_failed_migration_retries_later(self, coordinator, local_store, remote_store, backend, gold_eagle, monkeypatch):
        local_store.add(gold_eagle)
        original = remote_store.migrate_batch

        def failing(holdings, user_id):
            backend.fail = True
            try:
                return original(holdings, user_id)
            finally:
                backend.fail = False

        monkeypatch.setattr(remote_store, "migrate_batch", failing)
        assert len(coordinator.list()) == 1
        assert len(local_store.list()) == 1

        monkeypatch.setattr(remote_store, "migrate_batch", original)
        coordinator.list()
        assert local_store.list() == []
        assert len(_remote_rows(backend)) == 1

    def test_queued_add_mirrors_are_not_migrated(self, coordinator, connectivity, backend, gold_eagle):
        connectivity.set_online(False)
        coordinator.add(gold_eagle)
        connectivity.set_online(True)
        # Replayed once, never migrated on top
        assert len(_remote_rows(backend)) == 1


class TestTotalsAndCsv:
    def test_totals_include_all_metals(self, coordinator):
        coordinator.list()
        totals = coordinator.get_totals_by_metal()
        assert list(totals) == list(METALS)
        assert all(t.total_oz == 0 and t.total_cost == 0 for t in totals.values())

    def test_totals_fold_view(self, coordinator, gold_eagle, silver_bar):
        coordinator.add(gold_eagle)
        coordinator.add(gold_eagle)
        coordinator.add(silver_bar)
        totals = coordinator.get_totals_by_metal()
        assert totals["gold"].total_oz == pytest.approx(2.0)
        assert totals["gold"].total_cost == pytest.approx(4000)
        assert totals["silver"].total_oz == pytest.approx(2 * 32.1507)
        # Cost is the per-item price, not multiplied by quantity
        assert totals["silver"].total_cost == pytest.approx(950.5)
        assert totals["platinum"].total_oz == 0

    def test_export_current_view(self, coordinator, gold_eagle):
        coordinator.add(gold_eagle)
        csv_text = coordinator.export_csv()
        assert csv_text.startswith("Metal,Type")
        assert '"American Eagle"' in csv_text

    def test_signed_in_import_reaches_remote(self, coordinator, backend, gold_eagle, silver_bar):
        coordinator.add(gold_eagle)
        coordinator.add(silver_bar)
        csv_text = coordinator.export_csv()

        imported = coordinator.import_csv(csv_text)

        assert len(imported) == 2
        assert len(_remote_rows(backend)) == 4
        weights = sorted(h.weight for h in imported)
        assert weights == pytest.approx([1.0, 32.1507], abs=1e-4)

    def test_signed_in_import_skips_invalid_rows(self, coordinator, backend):
        csv_text = (
            "Metal,Type,Weight (oz),Quantity,Total Oz,Purchase Price,Purchase Date,Notes,Created At\n"
            '"copper","Round","1","1","1","5","2024-01-01","",""\n'
            '"gold","Bar","1","1","1","2000","2024-01-01","",""'
        )
        imported = coordinator.import_csv(csv_text)
        assert [h.metal for h in imported] == ["gold"]

    def test_signed_out_import_merges_locally(self, coordinator, identity, local_store, gold_eagle):
        identity.sign_out()
        coordinator.add(gold_eagle)
        coordinator.import_csv(coordinator.export_csv())
        assert len(local_store.list()) == 2
        assert len(coordinator.holdings) == 2


class TestStatusFlags:
    def test_flags_reset_after_operations(self, coordinator, connectivity, gold_eagle):
        connectivity.set_online(False)
        coordinator.add(gold_eagle)
        connectivity.set_online(True)
        assert coordinator.loading is False
        assert coordinator.syncing is False
        assert coordinator.is_online is True

    def test_close_unsubscribes(self, coordinator, connectivity, pending_log, gold_eagle):
        connectivity.set_online(False)
        coordinator.add(gold_eagle)
        coordinator.close()
        connectivity.set_online(True)
        assert len(pending_log) == 1

    def test_holdings_is_a_copy(self, coordinator, gold_eagle):
        coordinator.add(gold_eagle)
        coordinator.holdings.clear()
        assert len(coordinator.holdings) == 1
        assert isinstance(coordinator.holdings[0], Holding)
