# Overview: Flask API routes for shop expenses; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..services import expense_service
from ..services.ledger_errors import DateClosed
from ..decorators import require_auth, require_permission


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.post("/")
@expenses_bp.post("")
@require_auth
@require_permission("RECORD_EXPENSE")
def record_expense_route():
    """
    Record an expense.

    Request body:
    {
        "description": "Shop rent",
        "amount": "200.00",
        "payment_method": "Cash",
        "category": "rent",                   (optional, default miscellaneous)
        "occurred_at": "2024-03-01T09:00:00Z" (optional, defaults to now)
    }
    """
    try:
        expense = expense_service.record_expense(request.get_json(silent=True), g.current_user.id)
        return jsonify({"expense": expense.to_dict()}), 201

    except DateClosed as e:
        return jsonify({"error": str(e), "code": "DATE_CLOSED"}), 409
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.get("/")
@expenses_bp.get("")
@require_auth
@require_permission("VIEW_LEDGER")
def list_expenses_route():
    try:
        expenses = expense_service.list_expenses(
            request.args.get("date") or None,
            request.args.get("category") or None,
        )
        return jsonify({"expenses": [e.to_dict() for e in expenses], "count": len(expenses)}), 200

    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    except Exception:
        current_app.logger.exception("Failed to list expenses")
        return jsonify({"error": "Internal server error"}), 500
