"""Escrow ledger: the single source of truth for money held per rental.

Every function here runs inside the caller's ``rental_transaction``; the
ledger flushes but never commits, so a rejected transition leaves no
journal lines behind.

Distribution rules (amounts on the rental price only, deposit untouched by
percentages):

* release: owner gets ``rental_amount * (1 - fee_rate)``, the platform keeps
  the commission plus the renter-side fee, the deposit goes back to the renter.
* dispute settlement: owner gets ``charge_to_owner``, renter gets
  ``refund_to_renter``, the platform keeps the renter-side fee plus whatever
  part of the rental amount neither party received, the deposit goes back to
  the renter. If money was already distributed, only the differences are
  posted as adjustment lines.
"""

from flask import current_app

from rentflow.extensions.db import db
from rentflow.models.dispute import Dispute
from rentflow.models.escrow import EscrowAccount, LedgerEntry
from rentflow.services import condition_report_service
from rentflow.utils.clock import utcnow
from rentflow.utils.errors import (
    AlreadyHeld,
    InvalidTransition,
    NotFound,
    ReleaseBlocked,
    SettlementExceedsEscrow,
)
from rentflow.utils.money import ZERO, fee_on, owner_share, to_money


def get_account(rental_id: int) -> EscrowAccount | None:
    return EscrowAccount.query.filter_by(rental_request_id=rental_id).first()


def _entry(account: EscrowAccount, kind: str, amount, dispute_id: int | None = None, note: str | None = None) -> None:
    amt = to_money(amount)
    if amt == ZERO and kind not in ("hold",):
        return
    db.session.add(
        LedgerEntry(
            escrow_account_id=account.id,
            kind=kind,
            amount=amt,
            dispute_id=dispute_id,
            note=note,
        )
    )


def hold(rental_id: int, rental_amount, deposit) -> EscrowAccount:
    """Record captured funds: rental amount + platform fee + deposit."""

    if get_account(rental_id) is not None:
        raise AlreadyHeld("Funds are already held for this rental.")

    amount = to_money(rental_amount)
    if amount <= ZERO:
        raise InvalidTransition("The rental amount must be greater than zero.")
    fee = fee_on(amount)
    dep = to_money(deposit)

    account = EscrowAccount(
        rental_request_id=rental_id,
        rental_amount=amount,
        platform_fee=fee,
        deposit=dep,
        status="held",
        owner_paid=ZERO,
        renter_refunded=ZERO,
        platform_retained=ZERO,
        deposit_returned=ZERO,
    )
    db.session.add(account)
    db.session.flush()
    _entry(account, "hold", amount + fee + dep, note="processor capture")
    db.session.flush()

    current_app.logger.info(
        "[escrow] hold rental=%s amount=%s fee=%s deposit=%s", rental_id, amount, fee, dep
    )
    return account


def add_extension_funds(rental_id: int, amount, extension_id: int) -> EscrowAccount:
    account = get_account(rental_id)
    if account is None:
        raise NotFound("No escrow account for this rental.")
    if account.status != "held":
        raise InvalidTransition("Escrow for this rental is already distributed.")

    amt = to_money(amount)
    account.rental_amount = to_money(account.rental_amount) + amt
    _entry(account, "extension_hold", amt, note=f"extension {extension_id}")
    db.session.flush()
    current_app.logger.info("[escrow] extension hold rental=%s extension=%s amount=%s", rental_id, extension_id, amt)
    return account


def release(rental_id: int) -> EscrowAccount:
    """Default 85/15 payout. Blocked until both return reports exist and no dispute is active."""

    blockers = condition_report_service.release_blockers(rental_id)
    if blockers:
        raise ReleaseBlocked(
            "Payment cannot be released: " + "; ".join(blockers) + ".",
            payload={"reasons": blockers},
        )

    account = get_account(rental_id)
    if account is None:
        raise ReleaseBlocked("Payment cannot be released: no funds are held for this rental.")
    if account.status == "released":
        raise ReleaseBlocked("Payment was already released.")
    if account.status == "settled":
        # A dispute already distributed the funds; nothing more to pay out.
        current_app.logger.info("[escrow] release skipped rental=%s (settled by dispute)", rental_id)
        return account

    rental_amount = to_money(account.rental_amount)
    to_owner = owner_share(rental_amount)
    to_platform = to_money(account.platform_fee) + (rental_amount - to_owner)
    to_renter_deposit = to_money(account.deposit)

    _entry(account, "owner_payout", to_owner)
    _entry(account, "platform_fee", to_platform)
    _entry(account, "deposit_return", to_renter_deposit)

    account.owner_paid = to_owner
    account.platform_retained = to_platform
    account.deposit_returned = to_renter_deposit
    account.status = "released"
    account.released_at = utcnow()
    db.session.flush()

    current_app.logger.info(
        "[escrow] released rental=%s owner=%s platform=%s deposit=%s",
        rental_id,
        to_owner,
        to_platform,
        to_renter_deposit,
    )
    return account


def apply_dispute_settlement(dispute_id: int, refund_to_renter, charge_to_owner) -> EscrowAccount:
    """Override the default split with an adjudicated one."""

    dispute: Dispute | None = db.session.get(Dispute, dispute_id)
    if dispute is None:
        raise NotFound("Dispute not found.")
    if dispute.status != "resolved":
        raise InvalidTransition("Settlements can only be applied for resolved disputes.")

    account = get_account(dispute.rental_request_id)
    if account is None:
        raise SettlementExceedsEscrow("No funds are held for this rental.")

    refund = to_money(refund_to_renter)
    charge = to_money(charge_to_owner)
    rental_amount = to_money(account.rental_amount)
    if refund < ZERO or charge < ZERO:
        raise SettlementExceedsEscrow("Settlement amounts cannot be negative.")
    if refund + charge > rental_amount:
        raise SettlementExceedsEscrow(
            f"Refund plus charge ({refund + charge}) exceeds the escrowed rental amount ({rental_amount}).",
            payload={"escrowed": str(rental_amount)},
        )

    platform_target = to_money(account.platform_fee) + (rental_amount - refund - charge)

    if account.status == "held":
        _entry(account, "owner_payout", charge, dispute_id=dispute.id)
        _entry(account, "renter_refund", refund, dispute_id=dispute.id)
        _entry(account, "platform_fee", platform_target, dispute_id=dispute.id)
        _entry(account, "deposit_return", account.deposit, dispute_id=dispute.id)
        account.deposit_returned = to_money(account.deposit)
    else:
        # Compensate against what was already paid out; never a second payout.
        _entry(account, "owner_adjustment", charge - to_money(account.owner_paid), dispute_id=dispute.id)
        _entry(account, "renter_adjustment", refund - to_money(account.renter_refunded), dispute_id=dispute.id)
        _entry(account, "platform_adjustment", platform_target - to_money(account.platform_retained), dispute_id=dispute.id)

    account.owner_paid = charge
    account.renter_refunded = refund
    account.platform_retained = platform_target
    account.status = "settled"
    account.settled_at = utcnow()
    db.session.flush()

    current_app.logger.info(
        "[escrow] dispute settlement rental=%s dispute=%s refund=%s charge=%s platform=%s",
        dispute.rental_request_id,
        dispute.id,
        refund,
        charge,
        platform_target,
    )
    return account


def account_to_dict(account: EscrowAccount | None) -> dict | None:
    if account is None:
        return None
    return {
        "rental_request_id": account.rental_request_id,
        "status": account.status,
        "rental_amount": str(to_money(account.rental_amount)),
        "platform_fee": str(to_money(account.platform_fee)),
        "deposit": str(to_money(account.deposit)),
        "total_held": str(to_money(account.total_held)),
        "owner_paid": str(to_money(account.owner_paid)),
        "renter_refunded": str(to_money(account.renter_refunded)),
        "platform_retained": str(to_money(account.platform_retained)),
        "deposit_returned": str(to_money(account.deposit_returned)),
        "held_at": account.held_at.isoformat() if account.held_at else None,
        "released_at": account.released_at.isoformat() if account.released_at else None,
        "settled_at": account.settled_at.isoformat() if account.settled_at else None,
        "entries": [
            {
                "id": e.id,
                "kind": e.kind,
                "amount": str(to_money(e.amount)),
                "dispute_id": e.dispute_id,
                "note": e.note,
                "created_at": e.created_at.isoformat() if e.created_at else None,
            }
            for e in account.entries
        ],
    }
