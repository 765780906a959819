# Overview: Generates unique human-readable transaction references (<PREFIX>-<timestamp><random>).

from __future__ import annotations

import logging
import secrets
import time
from typing import Callable

from flask import current_app, has_app_context

from ..errors import StorageError, ValidationError
from ..extensions import db
from ..models import Transaction
from .movement_rules import TransactionType, rule_for

logger = logging.getLogger(__name__)

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
RANDOM_SUFFIX_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 5


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("base36 encoding requires a non-negative integer")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(ALPHABET[remainder])
    return "".join(reversed(digits))


def format_reference(prefix: str, *, timestamp_ns: int | None = None, suffix: str | None = None) -> str:
    """
    Build one candidate reference.

    Format: <PREFIX>-<base36 nanosecond timestamp><6 random base36 chars>
    e.g. SALE-18C3F0A1B2C3D4K9Q2ZX
    """
    if timestamp_ns is None:
        timestamp_ns = time.time_ns()
    if suffix is None:
        suffix = "".join(secrets.choice(ALPHABET) for _ in range(RANDOM_SUFFIX_LENGTH))
    return f"{prefix}-{to_base36(timestamp_ns)}{suffix}"


def generate_reference(
    prefix: str,
    exists: Callable[[str], bool],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    """
    Return a candidate for which exists(candidate) is False.

    Collisions are regenerated up to max_attempts times; after that the
    failure is reported as a retryable StorageError.
    """
    for attempt in range(1, max_attempts + 1):
        candidate = format_reference(prefix)
        if not exists(candidate):
            return candidate
        logger.warning("Reference collision on %s (attempt %d/%d)", candidate, attempt, max_attempts)
    raise StorageError(
        f"Could not generate a unique {prefix} reference after {max_attempts} attempts",
        details={"prefix": prefix, "attempts": max_attempts},
    )


def reference_exists(reference: str) -> bool:
    return db.session.query(Transaction.id).filter_by(reference=reference).first() is not None


def assign_reference(transaction_type: TransactionType, requested: str | None = None) -> str:
    """
    Reference for a new transaction: the caller's (if still free) or a generated one.

    Runs inside the creating unit of work, so the uniqueness check and the
    insert see the same snapshot. The unique index on transactions.reference
    is the final guard.
    """
    if requested:
        if reference_exists(requested):
            raise ValidationError(
                f"reference {requested!r} is already in use",
                details={"reference": requested},
            )
        return requested

    max_attempts = DEFAULT_MAX_ATTEMPTS
    if has_app_context():
        max_attempts = int(current_app.config.get("REFERENCE_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS))
    return generate_reference(
        rule_for(transaction_type).reference_prefix,
        reference_exists,
        max_attempts=max_attempts,
    )
