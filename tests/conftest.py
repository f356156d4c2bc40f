"""Shared fixtures."""

import pytest

from stack_tracker.config import Config
from stack_tracker.errors import RemoteUnavailableError
from stack_tracker.models import HoldingFormData
from stack_tracker.remote.store import RemoteHoldingsStore
from stack_tracker.storage.blobs import JsonBlobStorage
from stack_tracker.storage.local_store import LocalHoldingsStore
from stack_tracker.sync.coordinator import SyncCoordinator
from stack_tracker.sync.pending import PendingActionLog
from stack_tracker.sync.providers import Connectivity, StaticIdentity


class FakeBackend:
    """In-memory remote backend. Set ``fail = True`` to simulate an outage."""

    def __init__(self) -> None:
        self.rows: dict[str, dict] = {}
        self.fail = False
        self.insert_calls = 0

    def _check(self) -> None:
        if self.fail:
            raise RemoteUnavailableError("service unreachable")

    def select_active(self, user_id):
        self._check()
        rows = [
            dict(r) for r in self.rows.values()
            if r["user_id"] == user_id and r.get("deleted_at") is None
        ]
        return sorted(rows, key=lambda r: r["created_at"], reverse=True)

    def insert_rows(self, rows):
        self._check()
        self.insert_calls += 1
        for row in rows:
            self.rows[row["id"]] = dict(row, deleted_at=None)

    def update_row(self, holding_id, user_id, changes):
        self._check()
        row = self.rows.get(holding_id)
        if row is None or row["user_id"] != user_id or row.get("deleted_at") is not None:
            return None
        row.update(changes)
        return dict(row)

    def close(self):
        pass


@pytest.fixture
def config(tmp_path):
    return Config(base_dir=tmp_path, remote_url="")


@pytest.fixture
def storage(tmp_path):
    return JsonBlobStorage(tmp_path / "blobs")


@pytest.fixture
def local_store(storage):
    return LocalHoldingsStore(storage)


@pytest.fixture
def pending_log(storage):
    return PendingActionLog(storage)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def remote_store(backend):
    return RemoteHoldingsStore(backend)


@pytest.fixture
def identity():
    return StaticIdentity("user-1")


@pytest.fixture
def connectivity():
    return Connectivity(online=True)


@pytest.fixture
def coordinator(local_store, remote_store, pending_log, identity, connectivity):
    coord = SyncCoordinator(local_store, remote_store, pending_log, identity, connectivity)
    yield coord
    coord.close()


@pytest.fixture
def gold_eagle():
    return HoldingFormData(
        metal="gold",
        type="American Eagle",
        weight=1,
        weight_unit="oz",
        quantity=1,
        purchase_price=2000,
        purchase_date="2024-01-01",
    )


@pytest.fixture
def silver_bar():
    return HoldingFormData(
        metal="silver",
        type="Bar",
        weight=1,
        weight_unit="kg",
        quantity=2,
        purchase_price=950.5,
        purchase_date="2023-06-15",
        notes="From the coin show",
    )
