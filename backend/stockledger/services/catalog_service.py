# Overview: Product and location lookups consumed by the ledger; the ledger never edits catalog rows.

from __future__ import annotations

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Location, Product
from .concurrency import lock_for_update


def get_product(product_id: int, *, require_active: bool = False, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError("product", product_id)
    if require_active and not product.is_active:
        raise ValidationError(f"product {product_id} is inactive", details={"product_id": product_id})
    return product


def lock_products(product_ids) -> dict[int, Product]:
    """
    Load and lock every product a unit of work will touch.

    Ids are locked in ascending order so two units touching the same
    products cannot deadlock each other.
    """
    products = {}
    for product_id in sorted(set(product_ids)):
        products[product_id] = get_product(product_id, require_active=True, lock=True)
    return products


def get_location(location_id: int) -> Location:
    location = db.session.get(Location, location_id)
    if location is None:
        raise NotFoundError("location", location_id)
    return location


def ensure_locations(*location_ids) -> None:
    for location_id in location_ids:
        if location_id is not None:
            get_location(location_id)
