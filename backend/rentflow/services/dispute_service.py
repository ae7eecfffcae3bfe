"""Dispute resolver.

Parties file disputes on paid or completed rentals; administrators move
them between ``open``, ``under_review`` and ``closed`` and settle them with
:func:`resolve`, which is the only way to reach ``resolved``.
"""

from flask import current_app

from rentflow.events import ADMINS, DomainEvent, publish
from rentflow.extensions.db import db
from rentflow.models.dispute import (
    ACTIVE_DISPUTE_STATUSES,
    DISPUTE_DECISIONS,
    DISPUTE_REASONS,
    DISPUTE_STATUSES,
    Dispute,
)
from rentflow.services import escrow_service
from rentflow.utils.clock import utcnow
from rentflow.utils.errors import (
    AlreadyResolved,
    ApiError,
    InvalidTransition,
    NotFound,
    SettlementExceedsEscrow,
)
from rentflow.utils.locks import rental_transaction
from rentflow.utils.money import ZERO, to_money
from rentflow.utils.responses import page_payload, parse_pagination

DISPUTABLE_RENTAL_STATUSES = ("paid", "completed")

# Statuses an administrator may set by hand; "resolved" only comes from resolve().
MANUAL_STATUSES = ("open", "under_review", "closed")


def _load(dispute_id: int) -> Dispute:
    dispute = db.session.get(Dispute, dispute_id)
    if dispute is None:
        raise NotFound("Dispute not found.")
    return dispute


def file_dispute(rental_id: int, user_id: int, reason: str, description: str, evidence=None) -> Dispute:
    reason = (reason or "").strip().lower()
    if reason not in DISPUTE_REASONS:
        raise ApiError("Unknown dispute reason.", 400, errors={"reason": [f"must be one of {', '.join(DISPUTE_REASONS)}"]})
    text = (description or "").strip()
    if not text:
        raise ApiError("Describe what happened.", 400, errors={"description": ["required"]})

    events: list[DomainEvent] = []
    with rental_transaction(rental_id) as rental:
        if not rental.is_party(user_id):
            raise InvalidTransition("Only the renter or the owner can open a dispute.", status_code=403)
        if rental.status not in DISPUTABLE_RENTAL_STATUSES:
            raise InvalidTransition(
                f"Disputes can only be opened on paid or completed rentals (current: {rental.status})."
            )

        dispute = Dispute(
            rental_request_id=rental.id,
            filed_by_user_id=user_id,
            against_user_id=rental.counterparty_of(user_id),
            reason=reason,
            description=text[:5000],
            evidence_refs=[str(e).strip() for e in (evidence or []) if str(e or "").strip()],
            status="open",
        )
        db.session.add(dispute)
        db.session.flush()

        events.append(
            DomainEvent(
                type="dispute_filed",
                rental_id=rental.id,
                recipients=[dispute.against_user_id, ADMINS],
                title="Dispute opened",
                message=f"A dispute was opened on rental #{rental.id} ({reason.replace('_', ' ')}).",
                related_id=dispute.id,
                meta={"reason": reason, "filed_by": user_id},
            )
        )
        current_app.logger.info("[disputes] rental=%s dispute=%s filed by user=%s", rental.id, dispute.id, user_id)
    publish(events)
    return dispute


def set_status(dispute_id: int, admin_id: int, status: str) -> Dispute:
    status = (status or "").strip().lower()
    if status not in DISPUTE_STATUSES:
        raise ApiError("Unknown dispute status.", 400)
    if status not in MANUAL_STATUSES:
        raise InvalidTransition("Use the resolve action to settle a dispute.")

    dispute = _load(dispute_id)
    events: list[DomainEvent] = []
    with rental_transaction(dispute.rental_request_id) as rental:
        db.session.refresh(dispute)
        if dispute.status == "resolved":
            raise AlreadyResolved("This dispute was already resolved.")
        if dispute.status == status:
            return dispute

        previous = dispute.status
        dispute.status = status
        events.append(
            DomainEvent(
                type="dispute_status_changed",
                rental_id=rental.id,
                recipients=[dispute.filed_by_user_id, dispute.against_user_id],
                title="Dispute updated",
                message=f"Dispute #{dispute.id} is now {status.replace('_', ' ')}.",
                related_id=dispute.id,
                meta={"from": previous, "to": status, "admin_id": admin_id},
                discriminator=status,
            )
        )
        current_app.logger.info("[disputes] dispute=%s %s -> %s by admin=%s", dispute.id, previous, status, admin_id)
    publish(events)
    return dispute


def resolution_preset(dispute_id: int, decision: str) -> dict:
    """Quick-decision defaults for resolve(); the administrator may still edit them."""

    decision = (decision or "").strip().lower()
    if decision not in DISPUTE_DECISIONS:
        raise ApiError("Unknown decision.", 400, errors={"decision": [f"must be one of {', '.join(DISPUTE_DECISIONS)}"]})

    dispute = _load(dispute_id)
    account = escrow_service.get_account(dispute.rental_request_id)
    held = to_money(account.rental_amount) if account else to_money(dispute.rental.total_amount)

    if decision == "favor_renter":
        refund, charge = held, ZERO
    elif decision == "favor_owner":
        refund, charge = ZERO, held
    else:
        refund = to_money(held / 2)
        charge = held - refund

    return {
        "dispute_id": dispute.id,
        "decision": decision,
        "refund_to_renter": str(refund),
        "charge_to_owner": str(charge),
        "escrowed": str(held),
    }


def _clean_suggestion(suggestion) -> dict | None:
    if not suggestion:
        return None
    if not isinstance(suggestion, dict):
        return {"raw": str(suggestion)[:2000]}
    # Stored verbatim for the audit trail, never applied on its own.
    return {str(k): v for k, v in suggestion.items()}


def resolve(
    dispute_id: int,
    admin_id: int,
    decision: str,
    refund_to_renter,
    charge_to_owner,
    message: str | None = None,
    suggestion: dict | None = None,
) -> Dispute:
    decision = (decision or "").strip().lower()
    if decision not in DISPUTE_DECISIONS:
        raise ApiError("Unknown decision.", 400, errors={"decision": [f"must be one of {', '.join(DISPUTE_DECISIONS)}"]})
    try:
        refund = to_money(refund_to_renter)
        charge = to_money(charge_to_owner)
    except ValueError:
        raise ApiError("Amounts must be numbers.", 400)
    if refund < ZERO or charge < ZERO:
        raise SettlementExceedsEscrow("Settlement amounts cannot be negative.")

    dispute = _load(dispute_id)
    events: list[DomainEvent] = []
    with rental_transaction(dispute.rental_request_id) as rental:
        db.session.refresh(dispute)
        if dispute.status == "resolved":
            raise AlreadyResolved("This dispute was already resolved.")
        if dispute.status not in ACTIVE_DISPUTE_STATUSES:
            raise InvalidTransition(f"A {dispute.status} dispute cannot be resolved.")

        account = escrow_service.get_account(rental.id)
        held = to_money(account.rental_amount) if account else ZERO
        if refund + charge > held:
            raise SettlementExceedsEscrow(
                f"Refund plus charge ({refund + charge}) exceeds the escrowed rental amount ({held}).",
                payload={"escrowed": str(held)},
            )

        dispute.status = "resolved"
        dispute.decision = decision
        dispute.refund_to_renter = refund
        dispute.charge_to_owner = charge
        dispute.resolution_message = (message or "").strip() or None
        dispute.advisory_suggestion = _clean_suggestion(suggestion)
        dispute.resolved_by_user_id = admin_id
        dispute.resolved_at = utcnow()
        db.session.flush()

        escrow_service.apply_dispute_settlement(dispute.id, refund, charge)

        events.append(
            DomainEvent(
                type="dispute_resolved",
                rental_id=rental.id,
                recipients=[rental.renter_id, rental.owner_id],
                title="Dispute resolved",
                message=dispute.resolution_message
                or f"Dispute #{dispute.id} was resolved: {refund} refunded to the renter, {charge} paid to the owner.",
                related_id=dispute.id,
                meta={"decision": decision, "refund_to_renter": str(refund), "charge_to_owner": str(charge)},
            )
        )
        current_app.logger.info(
            "[disputes] dispute=%s resolved by admin=%s decision=%s refund=%s charge=%s",
            dispute.id,
            admin_id,
            decision,
            refund,
            charge,
        )
    publish(events)
    return dispute


def dispute_to_dict(d: Dispute) -> dict:
    return {
        "id": d.id,
        "rental_request_id": d.rental_request_id,
        "filed_by_user_id": d.filed_by_user_id,
        "against_user_id": d.against_user_id,
        "reason": d.reason,
        "description": d.description,
        "evidence_refs": list(d.evidence_refs or []),
        "status": d.status,
        "decision": d.decision,
        "refund_to_renter": str(to_money(d.refund_to_renter)),
        "charge_to_owner": str(to_money(d.charge_to_owner)),
        "resolution_message": d.resolution_message,
        "advisory_suggestion": d.advisory_suggestion,
        "resolved_by_user_id": d.resolved_by_user_id,
        "resolved_at": d.resolved_at.isoformat() if d.resolved_at else None,
        "created_at": d.created_at.isoformat() if d.created_at else None,
    }


def list_for_rental(rental_id: int) -> list[dict]:
    rows = Dispute.query.filter_by(rental_request_id=rental_id).order_by(Dispute.created_at.asc(), Dispute.id.asc()).all()
    return [dispute_to_dict(d) for d in rows]


def get_dispute(dispute_id: int, user_id: int, admin: bool = False) -> Dispute:
    dispute = _load(dispute_id)
    if not admin and user_id not in (dispute.filed_by_user_id, dispute.against_user_id):
        raise NotFound("Dispute not found.")
    return dispute


def list_active(page=1, per_page=20) -> dict:
    """Administrator queue: open and under-review disputes, oldest first."""

    page, per_page = parse_pagination(page, per_page)
    q = Dispute.query.filter(Dispute.status.in_(ACTIVE_DISPUTE_STATUSES))
    total = q.count()
    rows = q.order_by(Dispute.created_at.asc(), Dispute.id.asc()).offset((page - 1) * per_page).limit(per_page).all()
    return page_payload([dispute_to_dict(d) for d in rows], total, page, per_page)


def history(reason: str | None = None, limit: int = 20) -> list[dict]:
    """Recently resolved disputes, optionally of one reason; input for advisory tooling."""

    q = Dispute.query.filter(Dispute.status == "resolved")
    if reason:
        if reason not in DISPUTE_REASONS:
            raise ApiError("Unknown dispute reason.", 400)
        q = q.filter(Dispute.reason == reason)
    rows = q.order_by(Dispute.resolved_at.desc(), Dispute.id.desc()).limit(max(1, min(int(limit), 100))).all()
    return [dispute_to_dict(d) for d in rows]
