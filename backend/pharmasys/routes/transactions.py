# Overview: Flask API routes for sale transactions; creating one deducts stock.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import INVENTORY_ROLES, require_access
from ..errors import PharmaSysError, error_response
from ..extensions import db, get_notifier
from ..services import transaction_service


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
@require_access(*INVENTORY_ROLES)
def list_transactions():
    """Query params: patient_id (optional), limit (optional)."""
    transactions = transaction_service.list_transactions(
        patient_id=request.args.get("patient_id", type=int),
        limit=request.args.get("limit", type=int),
    )
    return jsonify({"items": [t.to_dict() for t in transactions], "count": len(transactions)}), 200


@transactions_bp.get("/<int:transaction_id>")
@require_access(*INVENTORY_ROLES)
def get_transaction(transaction_id: int):
    try:
        txn = transaction_service.get_transaction(transaction_id)
        return jsonify(transaction_service.transaction_to_dict(txn)), 200
    except PharmaSysError as e:
        return error_response(e)


@transactions_bp.post("")
@require_access(*INVENTORY_ROLES)
def create_transaction():
    """
    Record a sale and deduct its items from stock.

    Under the default "clamp" policy an oversold line floors stock at zero
    and is listed in stock_warnings. Under "reject" the sale fails with 409
    and nothing changes.
    """
    try:
        txn, warnings = transaction_service.create_transaction(
            request.get_json(silent=True),
            actor=g.current_user,
            policy=current_app.config["STOCK_OVERSELL_POLICY"],
            notifier=get_notifier(),
        )
        return jsonify({
            "transaction": txn.to_dict(),
            "items": [item.to_dict() for item in txn.items],
            "stock_warnings": [w.to_dict() for w in warnings],
        }), 201
    except PharmaSysError as e:
        return error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500
