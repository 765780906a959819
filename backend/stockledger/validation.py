from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from .errors import ValidationError
from .time_utils import coerce_as_of
from .services.movement_rules import (
    Direction,
    TransactionStatus,
    TransactionType,
    parse_direction,
    parse_transaction_type,
)


# Maximum unit price: 9,999,999.99
# This prevents database overflow issues and nonsensical prices
MAX_UNIT_PRICE = Decimal("9999999.99")

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")

# Statuses a transaction may be created with; "cancelled" is reached only via reversal
CREATABLE_STATUSES = {
    TransactionStatus.PENDING,
    TransactionStatus.COMPLETED,
    TransactionStatus.REFUNDED,
    TransactionStatus.PARTIALLY_REFUNDED,
}

COUNTERPART_TYPES = {"customer", "supplier"}


@dataclass(frozen=True)
class LineItemRequest:
    """
    One validated line of a transaction request.

    Derived money fields follow:
        gross = quantity * unit_price
        discount_amount = gross * discount_percent / 100 (half-up to cents)
        net = gross - discount_amount
    """
    product_id: int
    quantity: int
    unit_price: Decimal
    discount_percent: Decimal = Decimal("0")
    direction: Direction | None = None
    notes: str | None = None

    @property
    def gross_total(self) -> Decimal:
        return quantize_money(self.unit_price * self.quantity)

    @property
    def discount_amount(self) -> Decimal:
        return quantize_money(self.gross_total * self.discount_percent / HUNDRED)

    @property
    def net_total(self) -> Decimal:
        return self.gross_total - self.discount_amount

    @property
    def net_unit_price(self) -> Decimal:
        return (self.net_total / self.quantity).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def coerce_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def coerce_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        # floats go through str() so 0.1 stays 0.1
        result = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def _optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return coerce_int(value, field)


def normalize_line_item(raw: Any, index: int, transaction_type: TransactionType) -> LineItemRequest:
    if isinstance(raw, LineItemRequest):
        raw = {
            "product_id": raw.product_id,
            "quantity": raw.quantity,
            "unit_price": raw.unit_price,
            "discount_percent": raw.discount_percent,
            "direction": raw.direction,
            "notes": raw.notes,
        }
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    prefix = f"items[{index}]"

    if raw.get("product_id") is None:
        raise ValidationError(f"{prefix}.product_id is required")
    product_id = coerce_int(raw["product_id"], f"{prefix}.product_id")
    if product_id <= 0:
        raise ValidationError(f"{prefix}.product_id must be positive")

    if raw.get("quantity") is None:
        raise ValidationError(f"{prefix}.quantity is required")
    quantity = coerce_int(raw["quantity"], f"{prefix}.quantity")
    if quantity <= 0:
        raise ValidationError(f"{prefix}.quantity must be greater than zero")

    price_value = raw.get("unit_price", raw.get("price"))
    if price_value is None:
        raise ValidationError(f"{prefix}.unit_price is required")
    unit_price = coerce_decimal(price_value, f"{prefix}.unit_price")
    if unit_price <= 0:
        raise ValidationError(f"{prefix}.unit_price must be greater than zero")
    if unit_price > MAX_UNIT_PRICE:
        raise ValidationError(f"{prefix}.unit_price exceeds maximum of {MAX_UNIT_PRICE}")

    discount_value = raw.get("discount_percent", raw.get("discount"))
    discount = Decimal("0") if discount_value in (None, "") else coerce_decimal(
        discount_value, f"{prefix}.discount_percent"
    )
    if discount < 0 or discount > HUNDRED:
        raise ValidationError(f"{prefix}.discount_percent must be between 0 and 100")

    direction = None
    if transaction_type is TransactionType.ADJUSTMENT:
        if raw.get("direction") in (None, ""):
            raise ValidationError(f"{prefix}.direction is required for adjustments ('in' or 'out')")
        try:
            direction = parse_direction(raw["direction"])
        except ValueError:
            raise ValidationError(f"{prefix}.direction must be 'in' or 'out'")

    notes = raw.get("notes")
    if notes is not None and len(str(notes)) > 500:
        raise ValidationError(f"{prefix}.notes must be at most 500 characters")

    return LineItemRequest(
        product_id=product_id,
        quantity=quantity,
        unit_price=unit_price,
        discount_percent=discount,
        direction=direction,
        notes=str(notes) if notes is not None else None,
    )


def normalize_line_items(items: Iterable[Any] | None, transaction_type: TransactionType) -> tuple[LineItemRequest, ...]:
    if items is None or isinstance(items, (str, bytes, dict)):
        raise ValidationError("items must be a non-empty list")
    normalized = tuple(
        normalize_line_item(raw, index, transaction_type) for index, raw in enumerate(items)
    )
    if not normalized:
        raise ValidationError("transaction must contain at least one item")
    return normalized


@dataclass(frozen=True)
class TransactionRequest:
    type: TransactionType
    items: tuple[LineItemRequest, ...]
    created_by: int | None
    reference: str | None = None
    counterpart_type: str | None = None
    counterpart_id: int | None = None
    payment_method: str | None = None
    payment_status: str = "pending"
    status: TransactionStatus = TransactionStatus.PENDING
    notes: str | None = None
    location_id: int | None = None
    from_location_id: int | None = None
    to_location_id: int | None = None
    metadata: dict | None = None

    @property
    def total_amount(self) -> Decimal:
        return sum((item.net_total for item in self.items), Decimal("0.00"))

    @property
    def total_discount(self) -> Decimal:
        return sum((item.discount_amount for item in self.items), Decimal("0.00"))

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def product_ids(self) -> list[int]:
        return sorted({item.product_id for item in self.items})


def build_transaction_request(
    transaction_type: Any,
    items: Any,
    *,
    created_by: Any = None,
    reference: str | None = None,
    counterpart_type: str | None = None,
    counterpart_id: Any = None,
    payment_method: str | None = None,
    payment_status: str | None = None,
    status: Any = None,
    notes: str | None = None,
    location_id: Any = None,
    from_location_id: Any = None,
    to_location_id: Any = None,
    metadata: dict | None = None,
) -> TransactionRequest:
    """Validate and normalise a transaction request. Performs no I/O."""
    try:
        txn_type = parse_transaction_type(transaction_type)
    except ValueError:
        raise ValidationError(f"Invalid transaction type: {transaction_type!r}")

    line_items = normalize_line_items(items, txn_type)

    try:
        txn_status = TransactionStatus(status) if status else TransactionStatus.PENDING
    except ValueError:
        raise ValidationError(f"Invalid status: {status!r}")
    if txn_status not in CREATABLE_STATUSES:
        raise ValidationError(f"Transactions cannot be created with status {txn_status.value!r}")

    if reference is not None:
        reference = str(reference).strip() or None
        if reference and len(reference) > 50:
            raise ValidationError("reference must be at most 50 characters")

    if counterpart_type is not None and counterpart_type not in COUNTERPART_TYPES:
        raise ValidationError("counterpart_type must be 'customer' or 'supplier'")
    counterpart = _optional_int(counterpart_id, "counterpart_id")
    if counterpart is not None and counterpart_type is None:
        raise ValidationError("counterpart_type is required when counterpart_id is given")

    if notes is not None:
        notes = str(notes)
        if len(notes) > 1000:
            raise ValidationError("notes must be at most 1000 characters")

    for field, value in (("payment_method", payment_method), ("payment_status", payment_status)):
        if value is not None and (not isinstance(value, str) or len(value) > 16):
            raise ValidationError(f"{field} must be a string of at most 16 characters")

    if metadata is not None and not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")

    location = _optional_int(location_id, "location_id")
    source = _optional_int(from_location_id, "from_location_id")
    destination = _optional_int(to_location_id, "to_location_id")
    if txn_type is TransactionType.TRANSFER:
        if source is None or destination is None:
            raise ValidationError("transfers require from_location_id and to_location_id")
        if source == destination:
            raise ValidationError("source and destination locations must be different")
    elif source is not None or destination is not None:
        raise ValidationError("from_location_id/to_location_id are only valid for transfers")

    return TransactionRequest(
        type=txn_type,
        items=line_items,
        created_by=_optional_int(created_by, "created_by"),
        reference=reference,
        counterpart_type=counterpart_type,
        counterpart_id=counterpart,
        payment_method=payment_method,
        payment_status=(payment_status or "pending"),
        status=txn_status,
        notes=notes,
        location_id=location,
        from_location_id=source,
        to_location_id=destination,
        metadata=metadata,
    )


def parse_as_of(value: Any) -> datetime | None:
    """Inclusive as-of cutoff; None means no cutoff."""
    try:
        return coerce_as_of(value)
    except ValueError:
        raise ValidationError(f"invalid as_of: {value!r}")
