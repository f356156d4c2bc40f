"""Data models for holdings and queued mutations."""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone

from .errors import ValidationError

METALS = ("gold", "silver", "platinum", "palladium")

METAL_LABELS = {
    "gold": "Gold",
    "silver": "Silver",
    "platinum": "Platinum",
    "palladium": "Palladium",
}

METAL_SYMBOLS = {
    "gold": "Au",
    "silver": "Ag",
    "platinum": "Pt",
    "palladium": "Pd",
}

# Factors to troy ounces
WEIGHT_CONVERSIONS = {
    "oz": 1.0,
    "g": 0.0321507,
    "kg": 32.1507,
}

# Common product types by metal, offered as suggestions by front ends
PRODUCT_TYPES = {
    "gold": [
        "American Eagle",
        "American Buffalo",
        "Canadian Maple Leaf",
        "South African Krugerrand",
        "Austrian Philharmonic",
        "Australian Kangaroo",
        "Chinese Panda",
        "British Britannia",
        "Bar",
        "Round",
        "Other",
    ],
    "silver": [
        "American Eagle",
        "Canadian Maple Leaf",
        "Austrian Philharmonic",
        "Australian Kangaroo",
        "British Britannia",
        "Morgan Dollar",
        "Peace Dollar",
        "Constitutional/Junk Silver",
        "Bar",
        "Round",
        "Other",
    ],
    "platinum": ["American Eagle", "Canadian Maple Leaf", "Australian Platypus", "Bar", "Other"],
    "palladium": ["Canadian Maple Leaf", "Bar", "Other"],
}

ACTION_TYPES = ("add", "update", "delete")


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def convert_to_troy_oz(weight: float, unit: str) -> float:
    """Convert an entered weight to the canonical troy-ounce value."""
    try:
        return weight * WEIGHT_CONVERSIONS[unit]
    except KeyError:
        raise ValidationError("weight_unit", f"unknown unit {unit!r}") from None


@dataclass
class Holding:
    """A single line item of a physical metal position.

    ``weight`` is always troy ounces per item. ``weight_unit`` only records
    what the user typed, for display and edit round-trips.
    """

    id: str
    metal: str
    type: str
    weight: float
    weight_unit: str
    quantity: int
    purchase_price: float  # per item
    purchase_date: str
    notes: str | None = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def total_oz(self) -> float:
        return self.weight * self.quantity

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Holding":
        return cls(
            id=str(data["id"]),
            metal=data["metal"],
            type=data.get("type") or "Other",
            weight=float(data["weight"]),
            weight_unit=data.get("weight_unit") or "oz",
            quantity=int(data["quantity"]),
            purchase_price=float(data["purchase_price"]),
            purchase_date=data["purchase_date"],
            notes=data.get("notes") or None,
            created_at=data.get("created_at") or utc_now(),
            updated_at=data.get("updated_at") or utc_now(),
        )


@dataclass
class HoldingFormData:
    """User-entered holding fields, with weight in ``weight_unit``."""

    metal: str
    type: str
    weight: float
    weight_unit: str = "oz"
    quantity: int = 1
    purchase_price: float = 0.0
    purchase_date: str = field(default_factory=lambda: date.today().isoformat())
    notes: str | None = None

    def validate(self) -> "HoldingFormData":
        """Reject malformed input. Returns self so calls can be chained."""
        if self.metal not in METALS:
            raise ValidationError("metal", f"must be one of {', '.join(METALS)}")
        if self.weight_unit not in WEIGHT_CONVERSIONS:
            raise ValidationError("weight_unit", f"must be one of {', '.join(WEIGHT_CONVERSIONS)}")
        if not self.type or not self.type.strip():
            raise ValidationError("type", "is required")
        if isinstance(self.weight, bool) or not isinstance(self.weight, (int, float)):
            raise ValidationError("weight", "must be a number")
        if self.weight <= 0:
            raise ValidationError("weight", "must be greater than zero")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValidationError("quantity", "must be a whole number")
        if self.quantity < 1:
            raise ValidationError("quantity", "must be at least 1")
        if isinstance(self.purchase_price, bool) or not isinstance(self.purchase_price, (int, float)):
            raise ValidationError("purchase_price", "must be a number")
        if self.purchase_price < 0:
            raise ValidationError("purchase_price", "cannot be negative")
        try:
            purchased = date.fromisoformat(self.purchase_date)
        except (TypeError, ValueError):
            raise ValidationError("purchase_date", "must be an ISO date (YYYY-MM-DD)") from None
        if purchased > date.today():
            raise ValidationError("purchase_date", "cannot be in the future")
        return self

    def canonical_weight(self) -> float:
        return convert_to_troy_oz(self.weight, self.weight_unit)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "HoldingFormData":
        return cls(
            metal=data["metal"],
            type=data["type"],
            weight=data["weight"],
            weight_unit=data.get("weight_unit", "oz"),
            quantity=data.get("quantity", 1),
            purchase_price=data.get("purchase_price", 0.0),
            purchase_date=data.get("purchase_date") or date.today().isoformat(),
            notes=data.get("notes"),
        )

    @classmethod
    def from_holding(cls, holding: Holding) -> "HoldingFormData":
        """Rebuild the form a holding was entered with, weight in its original unit."""
        factor = WEIGHT_CONVERSIONS.get(holding.weight_unit, 1.0)
        return cls(
            metal=holding.metal,
            type=holding.type,
            weight=holding.weight / factor,
            weight_unit=holding.weight_unit if holding.weight_unit in WEIGHT_CONVERSIONS else "oz",
            quantity=holding.quantity,
            purchase_price=holding.purchase_price,
            purchase_date=holding.purchase_date,
            notes=holding.notes,
        )


@dataclass
class PendingAction:
    """A mutation that has not been confirmed against the remote store.

    For ``add`` actions ``holding_id`` is the id of the local mirror copy,
    so that later actions on that copy can be re-targeted once the add is
    replayed and the remote id is known.
    """

    type: str  # "add", "update", "delete"
    holding_id: str | None = None
    payload: dict | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    enqueued_at: str = field(default_factory=utc_now)

    def __post_init__(self) -> None:
        if self.type not in ACTION_TYPES:
            raise ValueError(f"Unknown pending action type: {self.type}")

    @property
    def form(self) -> HoldingFormData | None:
        return HoldingFormData.from_dict(self.payload) if self.payload else None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "PendingAction":
        return cls(
            type=data["type"],
            holding_id=data.get("holding_id"),
            payload=data.get("payload"),
            id=data["id"],
            enqueued_at=data["enqueued_at"],
        )


@dataclass
class MetalTotals:
    """Aggregated ounces and cost for one metal."""

    total_oz: float = 0.0
    total_cost: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)
