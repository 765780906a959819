# Overview: Read-through cache for stock, valuations and transactions with per-product invalidation.

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from flask import current_app, has_app_context

from ..extensions import cache as default_backend

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 180

_GENERATION_KEY = "ledger:gen:v1:{product_id}"
_PRODUCT_KEY = "ledger:{kind}:v1:{product_id}:{generation}:{suffix}"
_TRANSACTION_KEY = "ledger:txn:v1:{transaction_id}"


class LedgerCache:
    """
    Cache component owned by the engine.

    Every product-scoped key embeds the product's current generation token.
    invalidate(product_id) replaces the token, which orphans every entry for
    that product at once; orphans age out through the TTL. Generation tokens
    themselves never expire.

    Cache failures are advisory: they are logged and the value is computed
    from storage instead.
    """

    def __init__(self, backend=None, ttl: int | None = None):
        self.backend = backend if backend is not None else default_backend
        self._ttl = ttl

    @property
    def ttl(self) -> int:
        if self._ttl is not None:
            return self._ttl
        if has_app_context():
            return int(current_app.config.get("LEDGER_CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS))
        return DEFAULT_TTL_SECONDS

    def _generation(self, product_id: int) -> str:
        key = _GENERATION_KEY.format(product_id=product_id)
        generation = self.backend.get(key)
        if generation is None:
            generation = uuid.uuid4().hex
            self.backend.set(key, generation, timeout=0)
        return generation

    def product_key(self, kind: str, product_id: int, *parts) -> str:
        suffix = ":".join("-" if part is None else str(part) for part in parts)
        return _PRODUCT_KEY.format(
            kind=kind,
            product_id=product_id,
            generation=self._generation(product_id),
            suffix=suffix,
        )

    @staticmethod
    def transaction_key(transaction_id: int) -> str:
        return _TRANSACTION_KEY.format(transaction_id=transaction_id)

    def _read_through(self, key_factory: Callable[[], str], compute: Callable[[], Any]) -> Any:
        try:
            key = key_factory()
            cached = self.backend.get(key)
        except Exception:
            logger.warning("Ledger cache read failed; computing from storage", exc_info=True)
            return compute()

        if cached is not None:
            return cached

        value = compute()
        try:
            self.backend.set(key, value, timeout=self.ttl)
        except Exception:
            logger.warning("Ledger cache write failed for %s", key, exc_info=True)
        return value

    def get_or_compute(self, kind: str, product_id: int, parts: tuple, compute: Callable[[], Any]) -> Any:
        return self._read_through(lambda: self.product_key(kind, product_id, *parts), compute)

    def get_or_compute_transaction(self, transaction_id: int, compute: Callable[[], Any]) -> Any:
        return self._read_through(lambda: self.transaction_key(transaction_id), compute)

    def invalidate(self, product_id: int) -> None:
        try:
            self.backend.set(
                _GENERATION_KEY.format(product_id=product_id), uuid.uuid4().hex, timeout=0
            )
        except Exception:
            logger.warning("Ledger cache invalidation failed for product %s", product_id, exc_info=True)

    def invalidate_transaction(self, transaction_id: int) -> None:
        try:
            self.backend.delete(self.transaction_key(transaction_id))
        except Exception:
            logger.warning("Ledger cache invalidation failed for transaction %s", transaction_id, exc_info=True)
