# Overview: Flask API routes for counter sales; parses input and returns JSON responses.

# backend/watchshop/routes/sales.py
"""
Sales API Routes

Writes dated on or before the latest closed business date are refused
with 409 DATE_CLOSED.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Sale
from ..services import sales_service
from ..services.ledger_errors import DateClosed
from ..services.sales_service import SaleError
from ..validation import ConflictError
from ..decorators import require_auth, require_permission


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
@sales_bp.post("")
@require_auth
@require_permission("RECORD_SALE")
def record_sale_route():
    """
    Record a completed sale.

    Request body:
    {
        "amount": "1000.00",
        "payment_method": "Cash",
        "invoice_number": "INV-1001",       (optional, generated if absent)
        "customer_name": "A. Customer",     (optional)
        "item_description": "Seiko 5",      (optional)
        "occurred_at": "2024-03-01T10:00:00Z" (optional, defaults to now)
    }
    """
    try:
        sale = sales_service.record_sale(request.get_json(silent=True), g.current_user.id)
        return jsonify({"sale": sale.to_dict()}), 201

    except DateClosed as e:
        return jsonify({"error": str(e), "code": "DATE_CLOSED"}), 409
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@sales_bp.get("")
@require_auth
@require_permission("VIEW_LEDGER")
def list_sales_route():
    """List sales, optionally for one business date (?date=) and status (?status=)."""
    try:
        sales = sales_service.list_sales(
            request.args.get("date") or None,
            request.args.get("status") or None,
        )
        return jsonify({"sales": [s.to_dict() for s in sales], "count": len(sales)}), 200

    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


def _status_change(sale_id: int, change):
    if not db.session.get(Sale, sale_id):
        return jsonify({"error": "Sale not found"}), 404

    data = request.get_json(silent=True) or {}
    try:
        sale = change(sale_id, g.current_user.id, data.get("reason"))
        return jsonify({"sale": sale.to_dict()}), 200

    except DateClosed as e:
        return jsonify({"error": str(e), "code": "DATE_CLOSED"}), 409
    except SaleError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to change sale status")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_permission("CANCEL_SALE")
def cancel_sale_route(sale_id: int):
    """Cancel a completed sale (body: {"reason": "..."} optional)."""
    return _status_change(sale_id, sales_service.cancel_sale)


@sales_bp.post("/<int:sale_id>/refund")
@require_auth
@require_permission("CANCEL_SALE")
def refund_sale_route(sale_id: int):
    """Refund a completed sale (body: {"reason": "..."} optional)."""
    return _status_change(sale_id, sales_service.refund_sale)
