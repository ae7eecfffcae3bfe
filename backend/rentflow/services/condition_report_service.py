from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from rentflow.events import DomainEvent
from rentflow.extensions.db import db
from rentflow.models.condition_report import DAMAGE_SEVERITIES, REPORT_TYPES, ConditionReport
from rentflow.models.dispute import Dispute
from rentflow.models.rental_request import RentalRequest
from rentflow.utils.errors import (
    DuplicateReport,
    IncompleteReport,
    InvalidTransition,
    PrematureReturn,
)

REPORTS_PER_PHASE = 2

# Phase reached as reports accumulate; either party may file first.
PHASES = (
    "no_reports",
    "pickup_1",
    "pickup_complete",
    "return_1",
    "return_complete",
)


def report_counts(rental_id: int) -> dict:
    rows = (
        db.session.query(ConditionReport.report_type, func.count(ConditionReport.id))
        .filter(ConditionReport.rental_request_id == rental_id)
        .group_by(ConditionReport.report_type)
        .all()
    )
    counts = {t: 0 for t in REPORT_TYPES}
    for report_type, n in rows:
        counts[report_type] = int(n)
    return counts


def phase_of(counts: dict) -> str:
    pickups = counts.get("pickup", 0)
    returns = counts.get("return", 0)
    if returns >= REPORTS_PER_PHASE:
        return "return_complete"
    if returns == 1:
        return "return_1"
    if pickups >= REPORTS_PER_PHASE:
        return "pickup_complete"
    if pickups == 1:
        return "pickup_1"
    return "no_reports"


def release_blockers(rental_id: int) -> list[str]:
    """Reasons the escrow cannot be released yet; empty means it can."""

    reasons: list[str] = []
    returns = report_counts(rental_id)["return"]
    if returns != REPORTS_PER_PHASE:
        reasons.append(f"both return condition reports required ({returns}/{REPORTS_PER_PHASE} filed)")

    active = Dispute.active_for_rental(rental_id).count()
    if active:
        reasons.append("an open dispute must be resolved or closed first")
    return reasons


def can_release_payment(rental_id: int) -> bool:
    return not release_blockers(rental_id)


def _clean_photos(photos) -> list[str]:
    if not isinstance(photos, (list, tuple)):
        return []
    return [str(p).strip() for p in photos if str(p or "").strip()]


def _clean_damages(damages) -> list[dict]:
    out: list[dict] = []
    for i, d in enumerate(damages or []):
        if not isinstance(d, dict):
            raise IncompleteReport(f"Damage #{i + 1} must be an object.")
        description = str(d.get("description") or "").strip()
        if not description:
            # The form lets users add empty rows; they carry no information.
            continue
        severity = str(d.get("severity") or "").strip().lower()
        if severity not in DAMAGE_SEVERITIES:
            raise IncompleteReport(
                f"Damage #{i + 1} needs a severity of minor, moderate or severe.",
                errors={"damages": {i: ["invalid severity"]}},
            )
        photo = str(d.get("photo") or "").strip() or None
        out.append({"severity": severity, "description": description, "photo": photo})
    return out


def file_report(
    rental: RentalRequest,
    report_type: str,
    user_id: int,
    photos,
    signature: str | None,
    damages=None,
    notes: str | None = None,
) -> tuple[ConditionReport, list[DomainEvent]]:
    """
    Record one party's inspection. Caller holds the rental transaction.

    Order of checks: who/when, completeness, duplicate, pickup gate.
    """

    if report_type not in REPORT_TYPES:
        raise IncompleteReport("Report type must be pickup or return.")

    if not rental.is_party(user_id):
        raise InvalidTransition("Only the renter or the owner can file condition reports.", status_code=403)

    if rental.status != "paid":
        raise InvalidTransition(
            f"Condition reports can only be filed while the rental is paid (current: {rental.status}).",
        )

    clean_photos = _clean_photos(photos)
    sig = (signature or "").strip()
    missing = []
    if not clean_photos:
        missing.append("photos")
    if not sig:
        missing.append("signature")
    if missing:
        raise IncompleteReport(
            "At least one photo and a signature are required.",
            errors={m: ["required"] for m in missing},
        )
    clean_damages = _clean_damages(damages)

    existing = ConditionReport.query.filter_by(
        rental_request_id=rental.id,
        report_type=report_type,
        reported_by_user_id=user_id,
    ).first()
    if existing is not None:
        raise DuplicateReport(f"You already filed a {report_type} report for this rental.")

    counts = report_counts(rental.id)
    if report_type == "return" and counts["pickup"] < REPORTS_PER_PHASE:
        raise PrematureReturn(
            "Both pickup reports required before return "
            f"({counts['pickup']}/{REPORTS_PER_PHASE} filed)."
        )

    report = ConditionReport(
        rental_request_id=rental.id,
        report_type=report_type,
        reported_by_user_id=user_id,
        photos=clean_photos,
        damages=clean_damages,
        notes=(notes or "").strip() or None,
        signature=sig,
    )
    db.session.add(report)
    try:
        db.session.flush()
    except IntegrityError:
        # Same party filing twice from two devices.
        raise DuplicateReport(f"You already filed a {report_type} report for this rental.")

    counts[report_type] += 1
    phase = phase_of(counts)
    other = rental.counterparty_of(user_id)

    events = [
        DomainEvent(
            type="condition_report_filed",
            rental_id=rental.id,
            recipients=[other],
            title=f"{report_type.capitalize()} report filed",
            message=f"The other party filed their {report_type} condition report.",
            related_id=report.id,
            meta={"report_type": report_type, "phase": phase, "damages": len(clean_damages)},
        )
    ]

    if report_type == "pickup" and counts["pickup"] == REPORTS_PER_PHASE:
        events.append(
            DomainEvent(
                type="return_reporting_unlocked",
                rental_id=rental.id,
                recipients=[rental.renter_id, rental.owner_id],
                title="Handover documented",
                message="Both pickup reports are in. Return reports can be filed when the item comes back.",
            )
        )
    if report_type == "return" and counts["return"] == REPORTS_PER_PHASE:
        rental.return_confirmed = True
        events.append(
            DomainEvent(
                type="release_unlocked",
                rental_id=rental.id,
                recipients=[rental.owner_id],
                title="Return documented",
                message="Both return reports are in. You can complete the rental to release the payment.",
            )
        )

    current_app.logger.info(
        "[reports] rental=%s %s report by user=%s -> %s",
        rental.id,
        report_type,
        user_id,
        phase,
    )
    return report, events


def report_to_dict(r: ConditionReport) -> dict:
    return {
        "id": r.id,
        "rental_request_id": r.rental_request_id,
        "report_type": r.report_type,
        "reported_by_user_id": r.reported_by_user_id,
        "photos": list(r.photos or []),
        "damages": list(r.damages or []),
        "notes": r.notes,
        "signature": r.signature,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }


def list_reports(rental_id: int) -> dict:
    reports = (
        ConditionReport.query.filter_by(rental_request_id=rental_id)
        .order_by(ConditionReport.created_at.asc(), ConditionReport.id.asc())
        .all()
    )
    counts = report_counts(rental_id)
    return {
        "phase": phase_of(counts),
        "counts": counts,
        "items": [report_to_dict(r) for r in reports],
    }
