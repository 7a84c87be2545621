# Overview: Service-layer operations for cashier shifts (clock in/out and cash reconciliation).

from __future__ import annotations

from ..extensions import db
from ..models import Shift, User
from pos_server.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry


class ShiftError(Exception):
    """Raised for shift operation errors."""
    def __init__(self, message: str, details: dict | None = None, status_code: int = 400):
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code


def get_current_shift(user_id: int) -> Shift | None:
    """Most recent open shift for the user, if any."""
    return (
        db.session.query(Shift)
        .filter_by(user_id=user_id, is_closed=False)
        .order_by(Shift.clock_in_at.desc(), Shift.id.desc())
        .first()
    )


def clock_in(user: User, starting_cash_cents: int = 0, notes: str | None = None) -> Shift:
    """Open a shift. A user may hold at most one open shift."""
    if starting_cash_cents < 0:
        raise ShiftError("starting_cash_cents must be >= 0")

    def _op():
        existing = get_current_shift(user.id)
        if existing is not None:
            raise ShiftError(
                "User already has an open shift",
                details={"shift_id": existing.id},
                status_code=409,
            )

        shift = Shift(
            user_id=user.id,
            location_id=user.location_id,
            clock_in_at=utcnow(),
            starting_cash_cents=starting_cash_cents,
            notes=notes,
        )
        db.session.add(shift)
        db.session.commit()
        return shift

    return run_with_retry(_op)


def _close(shift: Shift, *, ending_cash_cents: int | None, notes: str | None) -> None:
    shift.clock_out_at = utcnow()
    shift.is_closed = True
    if ending_cash_cents is not None:
        expected = shift.starting_cash_cents + shift.total_sales_cents
        shift.ending_cash_cents = ending_cash_cents
        shift.expected_cash_cents = expected
        shift.cash_difference_cents = ending_cash_cents - expected
    if notes:
        shift.notes = notes


def clock_out(user: User, ending_cash_cents: int, notes: str | None = None) -> Shift:
    """
    Close the user's open shift and reconcile the drawer.

    expected cash = starting cash + total sales rung up during the shift
    difference    = counted ending cash - expected (negative means short)
    """
    if ending_cash_cents < 0:
        raise ShiftError("ending_cash_cents must be >= 0")

    def _op():
        shift = lock_for_update(
            db.session.query(Shift)
            .filter_by(user_id=user.id, is_closed=False)
            .order_by(Shift.clock_in_at.desc(), Shift.id.desc())
        ).first()
        if shift is None:
            raise ShiftError("No open shift", status_code=404)

        _close(shift, ending_cash_cents=ending_cash_cents, notes=notes)
        db.session.commit()
        return shift

    return run_with_retry(_op)


def close_shift(shift_id: int, notes: str | None = None) -> Shift:
    """Manager close of any open shift without a cash count."""
    def _op():
        shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
        if shift is None:
            raise ShiftError("Shift not found", status_code=404)
        if shift.is_closed:
            raise ShiftError("Shift already closed")

        _close(shift, ending_cash_cents=None, notes=notes)
        db.session.commit()
        return shift

    return run_with_retry(_op)


def list_shifts(*, user_id: int | None = None, is_closed: bool | None = None, limit: int = 50) -> list[Shift]:
    q = db.session.query(Shift)
    if user_id is not None:
        q = q.filter(Shift.user_id == user_id)
    if is_closed is not None:
        q = q.filter(Shift.is_closed.is_(is_closed))
    return q.order_by(Shift.clock_in_at.desc(), Shift.id.desc()).limit(limit).all()
