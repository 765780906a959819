# Overview: Flask API routes for ledger operations; parses input and returns JSON responses.

import uuid

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError, ValidationError
from ..validation import coerce_int
from stockledger.time_utils import to_utc_z, utcnow

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- as_of filtering is inclusive: created_at <= as_of.

Errors:
- LedgerError subclasses map to their http_status with {"error", "code", "retryable", "details"}.
- Anything else is an opaque 500 carrying a support_ref that is logged with the traceback.
"""

ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


def _engine():
    return current_app.extensions["inventory_engine"]


def _actor_id() -> int | None:
    raw = request.headers.get("X-Actor-Id")
    if raw is None or raw.strip() == "":
        return None
    return coerce_int(raw, "X-Actor-Id")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("request body must be a JSON object")
    return data


def _ledger_error(e: LedgerError):
    return jsonify(e.to_dict()), e.http_status


def _internal_error(message: str):
    support_ref = uuid.uuid4().hex[:12]
    current_app.logger.exception("%s (support_ref=%s)", message, support_ref)
    return jsonify({"error": "Internal server error", "support_ref": support_ref}), 500


@ledger_bp.post("/transactions")
def create_transaction_route():
    """
    Record a transaction and its movements.

    Request body:
    {
        "type": "sale" | "purchase" | "return" | "adjustment" | "transfer" | "damage",
        "items": [{"product_id": int, "quantity": int, "unit_price": "9.99",
                   "discount_percent": "0", "direction": "in"|"out" (adjustments)}],
        "reference": str (optional),
        "location_id" | "from_location_id" + "to_location_id": int (optional),
        ...
    }

    Returns:
        201: Transaction recorded
        400: Invalid request
        404: Unknown product/location
        409: Insufficient stock
        503: Storage unavailable (retry)
    """
    try:
        data = _json_body()
        fields = {
            key: data.get(key)
            for key in (
                "reference", "counterpart_type", "counterpart_id", "payment_method",
                "payment_status", "status", "notes", "location_id",
                "from_location_id", "to_location_id", "metadata",
            )
        }
        txn = _engine().create_transaction(
            data.get("type"),
            data.get("items"),
            created_by=_actor_id(),
            **fields,
        )
        return jsonify({"transaction": txn.to_dict()}), 201

    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _internal_error("Failed to create transaction")


@ledger_bp.get("/transactions")
def list_transactions_route():
    try:
        page = request.args.get("page", default=1)
        limit = request.args.get("limit", default=50)
        rows, total = _engine().list_transactions(
            transaction_type=request.args.get("type"),
            status=request.args.get("status"),
            product_id=request.args.get("product_id"),
            start=request.args.get("start"),
            end=request.args.get("end"),
            page=page,
            limit=limit,
        )
        return jsonify({
            "items": [txn.to_dict(include_items=False) for txn in rows],
            "total": total,
            "page": int(page),
            "count": len(rows),
        }), 200

    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _internal_error("Failed to list transactions")


@ledger_bp.get("/transactions/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        return jsonify({"transaction": _engine().get_transaction(transaction_id)}), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _internal_error("Failed to load transaction")


@ledger_bp.get("/transactions/by-reference/<string:reference>")
def get_transaction_by_reference_route(reference: str):
    try:
        txn = _engine().get_transaction_by_reference(reference)
        return jsonify({"transaction": txn.to_dict()}), 200
    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _internal_error("Failed to load transaction")


@ledger_bp.post("/transactions/<int:transaction_id>/cancel")
def cancel_transaction_route(transaction_id: int):
    """
    Cancel a transaction by appending reversal movements.

    Returns:
        200: Cancelled
        404: Not found
        409: Already cancelled / completed and paid
    """
    try:
        data = _json_body()
        txn = _engine().cancel_transaction(
            transaction_id,
            actor_id=_actor_id(),
            reason=data.get("reason"),
        )
        return jsonify({"transaction": txn.to_dict()}), 200

    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _internal_error("Failed to cancel transaction")


@ledger_bp.get("/stock/<int:product_id>")
def get_stock_route(product_id: int):
    try:
        engine = _engine()
        location_id = request.args.get("location_id")
        location_id = coerce_int(location_id, "location_id") if location_id else None
        as_of = request.args.get("as_of")

        payload = {
            "product_id": product_id,
            "location_id": location_id,
            "as_of": as_of,
            "quantity": engine.current_stock(product_id, location_id=location_id, as_of=as_of),
        }
        if request.args.get("breakdown") in ("1", "true", "yes"):
            payload["by_location"] = [
                {"location_id": loc, "quantity": qty}
                for loc, qty in engine.stock_by_location(product_id, as_of=as_of).items()
            ]
        return jsonify(payload), 200

    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _internal_error("Failed to compute stock")


@ledger_bp.get("/products/<int:product_id>/movements")
def movement_history_route(product_id: int):
    try:
        location_id = request.args.get("location_id")
        movements = _engine().movement_history(
            product_id,
            limit=coerce_int(request.args.get("limit", "50"), "limit"),
            location_id=coerce_int(location_id, "location_id") if location_id else None,
            as_of=request.args.get("as_of"),
        )
        return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)}), 200

    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _internal_error("Failed to load movement history")


@ledger_bp.get("/valuation/<int:product_id>")
def get_valuation_route(product_id: int):
    try:
        method = request.args.get("method", "FIFO")
        as_of = request.args.get("as_of")
        value = _engine().value_as_of(product_id, method, as_of)
        return jsonify({
            "product_id": product_id,
            "method": method.upper(),
            "as_of": as_of or to_utc_z(utcnow()),
            "value": str(value),
        }), 200

    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _internal_error("Failed to compute valuation")


@ledger_bp.get("/valuation")
def get_catalog_valuation_route():
    try:
        category_id = request.args.get("category_id")
        report = _engine().value_catalog(
            request.args.get("method", "FIFO"),
            request.args.get("as_of"),
            coerce_int(category_id, "category_id") if category_id else None,
            include_inactive=request.args.get("include_inactive") in ("1", "true", "yes"),
        )
        return jsonify(report), 200

    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _internal_error("Failed to compute inventory valuation")


@ledger_bp.post("/reconciliations")
def reconcile_route():
    """
    Reconcile a physical count against ledger stock.

    Request body:
    {
        "product_id": int,
        "counted_quantity": int,
        "location_id": int (optional),
        "tolerance": "0.05" (optional),
        "auto_adjust": bool (optional, default true),
        "notes": str (optional)
    }
    """
    try:
        data = _json_body()
        if data.get("product_id") is None:
            raise ValidationError("product_id is required")
        if data.get("counted_quantity") is None:
            raise ValidationError("counted_quantity is required")
        auto_adjust = data.get("auto_adjust", True)
        if not isinstance(auto_adjust, bool):
            raise ValidationError("auto_adjust must be a boolean")
        location_id = data.get("location_id")

        result = _engine().reconcile(
            coerce_int(data["product_id"], "product_id"),
            counted_quantity=data["counted_quantity"],
            location_id=coerce_int(location_id, "location_id") if location_id is not None else None,
            tolerance=data.get("tolerance"),
            auto_adjust=auto_adjust,
            actor_id=_actor_id(),
            notes=data.get("notes"),
        )
        return jsonify({"count_result": result.to_dict()}), 201

    except LedgerError as e:
        return _ledger_error(e)
    except Exception:
        return _internal_error("Failed to reconcile count")
