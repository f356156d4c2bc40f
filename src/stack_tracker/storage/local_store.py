"""Single-device holdings store backed by a JSON blob."""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import replace

from ..errors import NotFoundError
from ..models import Holding, HoldingFormData, utc_now
from .blobs import JsonBlobStorage
from .exports import holdings_to_csv, parse_holdings_csv

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def generate_local_id() -> str:
    """Timestamp plus random suffix. Unique per device, not a remote key."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(7))
    return f"{int(time.time() * 1000)}-{suffix}"


class LocalHoldingsStore:
    """CRUD over the locally persisted holdings collection.

    Every mutation rewrites the entire collection.
    """

    def __init__(self, storage: JsonBlobStorage, key: str = "stacktracker_holdings") -> None:
        self.storage = storage
        self.key = key

    def list(self) -> list[Holding]:
        data = self.storage.read(self.key, default=[])
        holdings = []
        for item in data or []:
            try:
                holdings.append(Holding.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Dropping unreadable local holding %r: %s", item, e)
        return holdings

    def _save(self, holdings: list[Holding]) -> None:
        self.storage.write(self.key, [h.to_dict() for h in holdings])

    def get(self, holding_id: str) -> Holding:
        for h in self.list():
            if h.id == holding_id:
                return h
        raise NotFoundError(holding_id, "local")

    def contains(self, holding_id: str) -> bool:
        return any(h.id == holding_id for h in self.list())

    def add(self, form: HoldingFormData) -> Holding:
        form.validate()
        holdings = self.list()
        now = utc_now()
        holding = Holding(
            id=generate_local_id(),
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
        holdings.append(holding)
        self._save(holdings)
        return holding

    def update(self, holding_id: str, form: HoldingFormData) -> Holding:
        form.validate()
        holdings = self.list()
        for index, existing in enumerate(holdings):
            if existing.id == holding_id:
                break
        else:
            raise NotFoundError(holding_id, "local")

        updated = replace(
            existing,
            metal=form.metal,
            type=form.type.strip(),
            weight=form.canonical_weight(),
            weight_unit=form.weight_unit,
            quantity=form.quantity,
            purchase_price=float(form.purchase_price),
            purchase_date=form.purchase_date,
            notes=form.notes or None,
            updated_at=utc_now(),
        )
        holdings[index] = updated
        self._save(holdings)
        return updated

    def put(self, holding: Holding) -> Holding:
        """Insert a fully formed holding, replacing any copy with the same id."""
        holdings = [h for h in self.list() if h.id != holding.id]
        holdings.append(holding)
        self._save(holdings)
        return holding

    def delete(self, holding_id: str) -> None:
        if not self.discard(holding_id):
            raise NotFoundError(holding_id, "local")

    def discard(self, holding_id: str) -> bool:
        """Delete if present. Returns whether anything was removed."""
        holdings = self.list()
        filtered = [h for h in holdings if h.id != holding_id]
        if len(filtered) == len(holdings):
            return False
        self._save(filtered)
        return True

    def export_csv(self) -> str:
        return holdings_to_csv(self.list())

    def import_csv(self, text: str) -> list[Holding]:
        """Parse CSV rows and merge them into the existing collection."""
        imported = parse_holdings_csv(text, id_factory=generate_local_id)
        self._save(self.list() + imported)
        logger.info("Imported %d holding(s) from CSV", len(imported))
        return imported

    def clear_all(self) -> None:
        self._save([])
