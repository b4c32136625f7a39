# Overview: Flask API routes for watch service jobs; parses input and returns JSON responses.

# backend/watchshop/routes/services.py
"""
Service Job API Routes

A job enters the ledger when its payment is recorded
(POST /<id>/payment), on the payment's business date.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import ServiceJob
from ..services import service_job_service
from ..services.ledger_errors import DateClosed
from ..services.service_job_service import ServiceJobError
from ..validation import ConflictError
from ..decorators import require_auth, require_permission


services_bp = Blueprint("services", __name__, url_prefix="/api/services")


@services_bp.post("/")
@services_bp.post("")
@require_auth
@require_permission("MANAGE_SERVICES")
def open_service_job_route():
    """
    Book a watch in for service.

    Request body:
    {
        "service_type": "battery",          (optional, default repair)
        "customer_name": "A. Customer",     (optional)
        "description": "Battery swap",      (optional)
        "amount": "500.00",                 (optional quote)
        "ticket_number": "SRV-1001"         (optional, generated if absent)
    }
    """
    try:
        job = service_job_service.open_service_job(request.get_json(silent=True), g.current_user.id)
        return jsonify({"service": job.to_dict()}), 201

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to open service job")
        return jsonify({"error": "Internal server error"}), 500


@services_bp.get("/")
@services_bp.get("")
@require_auth
@require_permission("VIEW_LEDGER")
def list_service_jobs_route():
    """List jobs; ?date= restricts to jobs paid on that business date."""
    try:
        jobs = service_job_service.list_service_jobs(
            request.args.get("date") or None,
            request.args.get("status") or None,
        )
        return jsonify({"services": [j.to_dict() for j in jobs], "count": len(jobs)}), 200

    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    except Exception:
        current_app.logger.exception("Failed to list service jobs")
        return jsonify({"error": "Internal server error"}), 500


def _job_action(job_id: int, action):
    if not db.session.get(ServiceJob, job_id):
        return jsonify({"error": "Service job not found"}), 404

    try:
        job = action()
        return jsonify({"service": job.to_dict()}), 200

    except DateClosed as e:
        return jsonify({"error": str(e), "code": "DATE_CLOSED"}), 409
    except (ServiceJobError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update service job")
        return jsonify({"error": "Internal server error"}), 500


@services_bp.post("/<int:job_id>/status")
@require_auth
@require_permission("MANAGE_SERVICES")
def update_service_status_route(job_id: int):
    """Body: {"status": "in-progress", "reason": "..."}"""
    data = request.get_json(silent=True) or {}
    return _job_action(job_id, lambda: service_job_service.update_service_status(
        job_id, data.get("status"), g.current_user.id, data.get("reason")
    ))


@services_bp.post("/<int:job_id>/payment")
@require_auth
@require_permission("MANAGE_SERVICES")
def record_service_payment_route(job_id: int):
    """
    Record payment.

    Request body:
    {
        "payment_method": "UPI",
        "amount": "500.00",                   (optional, overrides the quote)
        "occurred_at": "2024-03-01T12:00:00Z" (optional, defaults to now)
    }
    """
    payload = request.get_json(silent=True)
    return _job_action(job_id, lambda: service_job_service.record_service_payment(
        job_id, payload, g.current_user.id
    ))


@services_bp.post("/<int:job_id>/cancel")
@require_auth
@require_permission("MANAGE_SERVICES")
def cancel_service_job_route(job_id: int):
    data = request.get_json(silent=True) or {}
    return _job_action(job_id, lambda: service_job_service.cancel_service_job(
        job_id, g.current_user.id, data.get("reason")
    ))
