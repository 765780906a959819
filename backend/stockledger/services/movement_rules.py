# Overview: Lookup tables mapping transaction types to movement direction and reversibility.

from __future__ import annotations

import enum
from dataclasses import dataclass


class TransactionType(str, enum.Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    RETURN = "return"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"
    DAMAGE = "damage"


class TransactionStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class MovementType(str, enum.Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"


class Direction(str, enum.Enum):
    IN = "in"
    OUT = "out"

    @property
    def inverse(self) -> "Direction":
        return Direction.OUT if self is Direction.IN else Direction.IN


@dataclass(frozen=True)
class MovementRule:
    """
    How one transaction type touches stock.

    direction=None means the caller supplies it per line (adjustments).
    Transfers always emit an out/in pair, so their direction is also None.
    """
    movement_type: MovementType
    direction: Direction | None
    reversible: bool
    reference_prefix: str
    costed: bool = False


MOVEMENT_RULES: dict[TransactionType, MovementRule] = {
    TransactionType.SALE: MovementRule(MovementType.OUT, Direction.OUT, reversible=True, reference_prefix="SALE"),
    TransactionType.PURCHASE: MovementRule(MovementType.IN, Direction.IN, reversible=True, reference_prefix="PUR", costed=True),
    TransactionType.RETURN: MovementRule(MovementType.IN, Direction.IN, reversible=True, reference_prefix="RET"),
    TransactionType.ADJUSTMENT: MovementRule(MovementType.ADJUSTMENT, None, reversible=True, reference_prefix="ADJ"),
    TransactionType.TRANSFER: MovementRule(MovementType.TRANSFER, None, reversible=False, reference_prefix="TRF"),
    TransactionType.DAMAGE: MovementRule(MovementType.OUT, Direction.OUT, reversible=False, reference_prefix="DMG"),
}

_missing = set(TransactionType) - set(MOVEMENT_RULES)
if _missing:
    raise RuntimeError(f"MOVEMENT_RULES missing transaction types: {sorted(t.value for t in _missing)}")


def rule_for(transaction_type: TransactionType | str) -> MovementRule:
    return MOVEMENT_RULES[TransactionType(transaction_type)]


def parse_transaction_type(value) -> TransactionType:
    """Raise ValueError for anything that is not a known transaction type."""
    if isinstance(value, TransactionType):
        return value
    return TransactionType(str(value).strip().lower())


def parse_direction(value) -> Direction:
    if isinstance(value, Direction):
        return value
    return Direction(str(value).strip().lower())
