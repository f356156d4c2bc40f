"""Authoritative holdings store scoped by user identity."""

import logging
import uuid
from typing import Protocol

from ..config import Config
from ..errors import NotFoundError
from ..models import Holding, HoldingFormData, utc_now
from .client import HoldingsApiClient
from .database import HoldingsDatabase
from .decoding import decode_row, encode_row

logger = logging.getLogger(__name__)


class RemoteBackend(Protocol):
    """Row-level access to the remote ``holdings`` table."""

    def select_active(self, user_id: str) -> list[dict]: ...

    def insert_rows(self, rows: list[dict]) -> None: ...

    def update_row(self, holding_id: str, user_id: str, changes: dict) -> dict | None: ...

    def close(self) -> None: ...


def generate_remote_id() -> str:
    return str(uuid.uuid4())


def build_remote_backend(config: Config) -> RemoteBackend:
    """HTTP service when a URL is configured, otherwise the SQLite file."""
    if config.uses_http_remote:
        return HoldingsApiClient.from_config(config)

    return HoldingsDatabase.from_config(config)


class RemoteHoldingsStore:
    """CRUD against the multi-device store.

    Deletes are tombstones: ``deleted_at`` is set and the row stays. Rows
    are decoded on the way in, so callers only ever see clean holdings.
    Backend failures propagate as RemoteUnavailableError.
    """

    def __init__(self, backend: RemoteBackend) -> None:
        self.backend = backend

    def fetch(self, user_id: str) -> list[Holding]:
        holdings = []
        for row in self.backend.select_active(user_id):
            try:
                holdings.append(decode_row(row))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping undecodable remote row %s: %s", row.get("id"), e)
        return holdings

    def add(self, form: HoldingFormData, user_id: str) -> Holding:
        form.validate()
        now = utc_now()
        holding = Holding(
            id=generate_remote_id(),
            metal=form.metal,
            type=form.type.strip(),
            weight=form.canonical_weight(),
            weight_unit=form.weight_unit,
            quantity=form.quantity,
            purchase_price=float(form.purchase_price),
            purchase_date=form.purchase_date,
            notes=form.notes or None,
            created_at=now,
            updated_at=now,
        )
        self.backend.insert_rows([encode_row(holding, user_id)])
        return holding

    def update(self, holding_id: str, form: HoldingFormData, user_id: str) -> Holding:
        form.validate()
        changes = {
            "metal": form.metal,
            "type": form.type.strip(),
            "weight": form.canonical_weight(),
            "weight_unit": form.weight_unit,
            "quantity": form.quantity,
            "purchase_price": float(form.purchase_price),
            "purchase_date": form.purchase_date,
            "notes": form.notes or None,
            "updated_at": utc_now(),
        }
        row = self.backend.update_row(holding_id, user_id, changes)
        if row is None:
            raise NotFoundError(holding_id, "remote")
        return decode_row(row)

    def delete(self, holding_id: str, user_id: str) -> None:
        now = utc_now()
        row = self.backend.update_row(holding_id, user_id, {"deleted_at": now, "updated_at": now})
        if row is None:
            raise NotFoundError(holding_id, "remote")

    def migrate_batch(self, local_holdings: list[Holding], user_id: str) -> list[Holding]:
        """
        Bulk-insert local-only holdings under fresh remote ids.

        Local ids are never reused remotely. Original timestamps are kept.

        Returns:
            The holdings as stored remotely
        """
        if not local_holdings:
            return []

        migrated = [
            Holding(
                id=generate_remote_id(),
                metal=h.metal,
                type=h.type,
                weight=h.weight,
                weight_unit=h.weight_unit,
                quantity=h.quantity,
                purchase_price=h.purchase_price,
                purchase_date=h.purchase_date,
                notes=h.notes,
                created_at=h.created_at,
                updated_at=h.updated_at,
            )
            for h in local_holdings
        ]
        self.backend.insert_rows([encode_row(h, user_id) for h in migrated])
        logger.info("Migrated %d local holding(s) for user %s", len(migrated), user_id)
        return migrated

    def close(self) -> None:
        self.backend.close()
