# Overview: Flask API routes for the daily ledger and close-of-business; parses input and returns JSON responses.

# backend/watchshop/routes/ledger.py
"""
Ledger & Close-of-Business API Routes

- Summaries are always computed server-side; a closure never trusts totals
  sent by the client.
- CLOSED is terminal: there is no reopen endpoint.

ERRORS:
- InvalidDate / malformed date -> 400
- AlreadyClosed -> 409
- DataUnavailable -> 503 (retry later)
"""

from flask import Blueprint, Response, request, jsonify, g, current_app

from ..services import cob_service, ledger_service, reporting_service
from ..services.ledger_errors import AlreadyClosed, DataUnavailable, InvalidDate
from ..services.reporting_service import ReportError
from ..decorators import require_auth, require_permission
from watchshop.time_utils import parse_business_date


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


def _truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes"}


def _parse_date_arg(value: str | None):
    try:
        return parse_business_date(value), None
    except ValueError:
        return None, (jsonify({"error": "date must be YYYY-MM-DD"}), 400)


# =============================================================================
# CLOSE-OF-BUSINESS
# =============================================================================

@ledger_bp.post("/cob")
@require_auth
@require_permission("CLOSE_BUSINESS_DAY")
def close_business_day_route():
    """
    Close a business date.

    Request body:
    {
        "date": "2024-03-01",
        "notes": "Counted drawer, all good"   (optional)
    }

    The closing user is taken from the session token.
    """
    data = request.get_json(silent=True) or {}
    day, error = _parse_date_arg(data.get("date"))
    if error:
        return error

    notes = data.get("notes")
    if notes is not None and not isinstance(notes, str):
        return jsonify({"error": "notes must be a string"}), 400

    try:
        record = cob_service.close_business_day(day, notes, g.current_user.id)
        return jsonify({"cob": record.to_dict()}), 201

    except AlreadyClosed as e:
        current_app.logger.warning("Rejected closure of %s: %s", day, e)
        return jsonify({"error": str(e), "code": "ALREADY_CLOSED"}), 409
    except InvalidDate as e:
        current_app.logger.warning("Rejected closure of %s: %s", day, e)
        return jsonify({"error": str(e), "code": "INVALID_DATE"}), 400
    except DataUnavailable as e:
        return jsonify({"error": str(e), "code": "DATA_UNAVAILABLE"}), 503
    except Exception:
        current_app.logger.exception("Failed to close business day")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/cob")
@require_auth
@require_permission("VIEW_LEDGER")
def list_cob_records_route():
    """Closure history, optionally bounded by ?start=&end= (inclusive)."""
    try:
        start = request.args.get("start") or None
        end = request.args.get("end") or None
        records = cob_service.list_cob_records(start, end)
        return jsonify({"records": [r.to_dict() for r in records], "count": len(records)}), 200

    except ValueError:
        return jsonify({"error": "start/end must be YYYY-MM-DD"}), 400
    except Exception:
        current_app.logger.exception("Failed to list COB records")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/cob/<string:date_str>")
@require_auth
@require_permission("VIEW_LEDGER")
def get_cob_record_route(date_str: str):
    day, error = _parse_date_arg(date_str)
    if error:
        return error

    record = cob_service.get_cob_record(day)
    if not record:
        return jsonify({"error": f"Business date {day.isoformat()} is not closed"}), 404
    return jsonify({"cob": record.to_dict()}), 200


# =============================================================================
# REPORTS
# =============================================================================

@ledger_bp.get("/monthly")
@require_auth
@require_permission("VIEW_LEDGER")
def monthly_report_route():
    """Per-category totals for ?year=&month=."""
    year = request.args.get("year", type=int)
    month = request.args.get("month", type=int)
    if year is None or month is None:
        return jsonify({"error": "year and month are required integers"}), 400

    try:
        return jsonify({"report": reporting_service.monthly_report(year, month)}), 200

    except ReportError as e:
        return jsonify({"error": str(e)}), 400
    except DataUnavailable as e:
        return jsonify({"error": str(e), "code": "DATA_UNAVAILABLE"}), 503
    except Exception:
        current_app.logger.exception("Failed to build monthly report")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# DAILY LEDGER
# =============================================================================

@ledger_bp.get("/<string:date_str>")
@require_auth
@require_permission("VIEW_LEDGER")
def get_ledger_route(date_str: str):
    """
    LedgerSummary for one business date.

    Query params:
    - include_entries=true: add the contributing entries
    """
    day, error = _parse_date_arg(date_str)
    if error:
        return error

    try:
        summary = ledger_service.compute_ledger(day)
        return jsonify({
            "ledger": summary.to_dict(include_entries=_truthy(request.args.get("include_entries"))),
            "state": cob_service.get_business_day_state(day),
        }), 200

    except DataUnavailable as e:
        return jsonify({"error": str(e), "code": "DATA_UNAVAILABLE"}), 503
    except Exception:
        current_app.logger.exception("Failed to compute ledger")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/<string:date_str>/status")
@require_auth
@require_permission("VIEW_LEDGER")
def get_ledger_status_route(date_str: str):
    day, error = _parse_date_arg(date_str)
    if error:
        return error

    record = cob_service.get_cob_record(day)
    return jsonify({
        "date": day.isoformat(),
        "state": cob_service.STATE_CLOSED if record else cob_service.STATE_OPEN,
        "cob": record.to_dict() if record else None,
    }), 200


@ledger_bp.get("/<string:date_str>/export")
@require_auth
@require_permission("VIEW_LEDGER")
def export_ledger_route(date_str: str):
    """
    CSV export.

    Query params:
    - section: summary (default) | sales | services | expenses

    A closed date's summary is exported from its frozen COB record.
    """
    day, error = _parse_date_arg(date_str)
    if error:
        return error

    section = (request.args.get("section") or "summary").strip().lower()
    if section not in reporting_service.EXPORT_SECTIONS:
        return jsonify({"error": f"section must be one of: {', '.join(reporting_service.EXPORT_SECTIONS)}"}), 400

    try:
        if section == "summary":
            record = cob_service.get_cob_record(day)
            summary = record.summary if record else ledger_service.compute_ledger(day).to_dict()
            body = reporting_service.summary_csv(summary)
        else:
            body = reporting_service.section_csv(ledger_service.compute_ledger(day), section)

        filename = f"ledger-{day.isoformat()}-{section}.csv"
        return Response(
            body,
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    except DataUnavailable as e:
        return jsonify({"error": str(e), "code": "DATA_UNAVAILABLE"}), 503
    except Exception:
        current_app.logger.exception("Failed to export ledger")
        return jsonify({"error": "Internal server error"}), 500
