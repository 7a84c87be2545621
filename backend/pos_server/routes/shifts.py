# Overview: Flask API routes for cashier shifts.

# backend/pos_server/routes/shifts.py
from flask import Blueprint, request, g, current_app

from ..services import shift_service
from ..services.shift_service import ShiftError
from ..validation import ValidationError, coerce_int, optional_int, parse_bool
from ..decorators import require_auth, require_role

shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.post("/clock-in")
@require_auth
def clock_in_route():
    """Body: {"starting_cash_cents": int?, "notes": str?}"""
    data = request.get_json(silent=True) or {}
    try:
        starting_cash = optional_int(data.get("starting_cash_cents"), "starting_cash_cents", minimum=0) or 0
        shift = shift_service.clock_in(g.current_user, starting_cash, notes=data.get("notes"))
        return {"shift": shift.to_dict()}, 201

    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    except ShiftError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to clock in")
        return {"error": "Internal server error"}, 500


@shifts_bp.post("/clock-out")
@require_auth
def clock_out_route():
    """Body: {"ending_cash_cents": int, "notes": str?}"""
    data = request.get_json(silent=True) or {}
    try:
        ending_cash = coerce_int(data.get("ending_cash_cents"), "ending_cash_cents", minimum=0)
        shift = shift_service.clock_out(g.current_user, ending_cash, notes=data.get("notes"))
        return {"shift": shift.to_dict()}, 200

    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    except ShiftError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to clock out")
        return {"error": "Internal server error"}, 500


@shifts_bp.get("/current")
@require_auth
def current_shift_route():
    shift = shift_service.get_current_shift(g.current_user.id)
    return {"shift": shift.to_dict() if shift else None}


@shifts_bp.get("")
@require_auth
@require_role("ADMIN", "MANAGER")
def list_shifts_route():
    try:
        shifts = shift_service.list_shifts(
            user_id=optional_int(request.args.get("user_id"), "user_id"),
            is_closed=parse_bool(request.args.get("is_closed"), "is_closed"),
        )
    except ValidationError as e:
        return {"error": str(e), "details": e.details}, 400
    return {"items": [s.to_dict() for s in shifts], "count": len(shifts)}


@shifts_bp.post("/<int:shift_id>/close")
@require_auth
@require_role("ADMIN", "MANAGER")
def close_shift_route(shift_id: int):
    data = request.get_json(silent=True) or {}
    try:
        shift = shift_service.close_shift(shift_id, notes=data.get("notes"))
        return {"shift": shift.to_dict()}, 200
    except ShiftError as e:
        return {"error": str(e), "details": e.details}, e.status_code
    except Exception:
        current_app.logger.exception("Failed to close shift")
        return {"error": "Internal server error"}, 500
