# Overview: InventoryEngine facade; wires services to the cache and audit components.

from __future__ import annotations

import logging
from decimal import Decimal

from ..validation import coerce_int, parse_as_of
from stockledger.time_utils import to_utc_z
from . import ledger_service, movement_store, reconciliation_service, reversal_service, stock_service, valuation_service
from .audit_service import AuditRecorder
from .cache_service import LedgerCache
from .concurrency import UnitOfWork

logger = logging.getLogger(__name__)


class InventoryEngine:
    """
    Entry point for callers (HTTP routes, CLI, other services).

    Mutating operations commit through the services, then the engine runs
    the advisory follow-ups: cache invalidation for every touched product and
    one audit entry. Reads go through the cache.
    """

    def __init__(self, cache: LedgerCache | None = None, audit: AuditRecorder | None = None):
        self.cache = cache if cache is not None else LedgerCache()
        self.audit = audit if audit is not None else AuditRecorder()

    # ---- post-commit hooks -------------------------------------------------

    def _invalidate(self, uow: UnitOfWork, transaction_id: int | None = None) -> None:
        for product_id in sorted(uow.touched_product_ids):
            self.cache.invalidate(product_id)
        if transaction_id is not None:
            self.cache.invalidate_transaction(transaction_id)

    def _after_create(self, uow: UnitOfWork) -> None:
        txn = uow.result
        self._invalidate(uow, txn.id)
        self.audit.record(
            "transaction.created",
            uow.actor_id,
            {
                "type": txn.type,
                "reference": txn.reference,
                "total_amount": str(txn.total_amount),
                "product_ids": sorted(uow.touched_product_ids),
                "movement_ids": [m.id for m in uow.movements],
            },
            entity_type="transaction",
            entity_id=txn.id,
        )

    def _after_cancel(self, uow: UnitOfWork) -> None:
        txn = uow.result
        self._invalidate(uow, txn.id)
        self.audit.record(
            "transaction.cancelled",
            uow.actor_id,
            {
                "reference": txn.reference,
                "reversal_movement_ids": [m.id for m in uow.movements],
            },
            entity_type="transaction",
            entity_id=txn.id,
        )

    def _after_count(self, uow: UnitOfWork) -> None:
        result = uow.result
        self._invalidate(uow)
        self.audit.record(
            "inventory.counted",
            uow.actor_id,
            {
                "product_id": result.product_id,
                "system_stock": result.system_stock,
                "counted_quantity": result.counted_quantity,
                "difference": result.difference,
                "within_tolerance": result.within_tolerance,
                "auto_adjusted": result.auto_adjusted,
            },
            entity_type="physical_count_result",
            entity_id=result.id,
        )

    # ---- mutating operations -----------------------------------------------

    def create_transaction(self, transaction_type, items, **fields):
        return ledger_service.create_transaction(
            transaction_type, items, after_commit=self._after_create, **fields
        )

    def cancel_transaction(self, transaction_id: int, *, actor_id: int | None = None, reason: str | None = None):
        return reversal_service.cancel_transaction(
            transaction_id, actor_id=actor_id, reason=reason, after_commit=self._after_cancel
        )

    def reconcile(self, product_id: int, **kwargs):
        return reconciliation_service.reconcile(product_id, after_commit=self._after_count, **kwargs)

    # ---- reads -------------------------------------------------------------

    def current_stock(self, product_id: int, location_id: int | None = None, as_of=None) -> int:
        product_id = coerce_int(product_id, "product_id")
        if location_id is not None:
            location_id = coerce_int(location_id, "location_id")
        cutoff = parse_as_of(as_of)
        return self.cache.get_or_compute(
            "stock",
            product_id,
            (location_id, to_utc_z(cutoff)),
            lambda: stock_service.current_stock(product_id, location_id=location_id, as_of=cutoff),
        )

    def stock_by_location(self, product_id: int, as_of=None) -> dict:
        product_id = coerce_int(product_id, "product_id")
        cutoff = parse_as_of(as_of)
        return self.cache.get_or_compute(
            "stock_by_location",
            product_id,
            (to_utc_z(cutoff),),
            lambda: stock_service.stock_by_location(product_id, as_of=cutoff),
        )

    def value_as_of(self, product_id: int, method, cutoff=None) -> Decimal:
        product_id = coerce_int(product_id, "product_id")
        method = valuation_service.parse_method(method)
        cutoff = parse_as_of(cutoff)
        # cutoff=None means "now"; the generation token changes with every
        # movement, so a cached "now" value stays correct until invalidated
        return self.cache.get_or_compute(
            "value",
            product_id,
            (method.value, to_utc_z(cutoff)),
            lambda: valuation_service.value_as_of(product_id, method, cutoff),
        )

    def value_catalog(self, method, cutoff=None, category_id: int | None = None, include_inactive: bool = False) -> dict:
        return valuation_service.value_catalog(method, cutoff, category_id, include_inactive=include_inactive)

    def get_transaction(self, transaction_id: int) -> dict:
        return self.cache.get_or_compute_transaction(
            transaction_id,
            lambda: ledger_service.get_transaction(transaction_id).to_dict(),
        )

    def get_transaction_by_reference(self, reference: str):
        return ledger_service.get_transaction_by_reference(reference)

    def list_transactions(self, **filters):
        return ledger_service.list_transactions(**filters)

    def movement_history(self, product_id: int, *, limit: int = 50, location_id: int | None = None, as_of=None):
        return movement_store.recent_for_product(
            product_id, limit=limit, location_id=location_id, as_of=as_of
        )
