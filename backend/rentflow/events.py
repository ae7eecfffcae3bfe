"""Domain events emitted after a rental mutation commits.

Services collect :class:`DomainEvent` objects while they hold the rental
lock and call :func:`publish` once the transaction is committed. Subscribers
(the notification inbox, and whatever chat/push bridge is wired in) connect
to :data:`domain_event`. A failing subscriber is logged and skipped; it never
undoes the state change that produced the event.
"""

from dataclasses import dataclass, field

from blinker import Namespace
from flask import current_app

_signals = Namespace()

domain_event = _signals.signal("rentflow.domain-event")

# Pseudo-recipient resolved by subscribers to the configured administrators.
ADMINS = "admins"


@dataclass
class DomainEvent:
    type: str
    rental_id: int
    recipients: list = field(default_factory=list)
    title: str = ""
    message: str = ""
    related_id: int | None = None
    meta: dict = field(default_factory=dict)
    # Distinguishes repeated events of one type on the same object (e.g. status values).
    discriminator: str = ""

    def key_for(self, user_id) -> str:
        base = f"{self.type}:{self.related_id or self.rental_id}"
        if self.discriminator:
            base = f"{base}:{self.discriminator}"
        return f"{base}:{user_id}"


def publish(events: list[DomainEvent]) -> None:
    app = current_app._get_current_object()
    for event in events or []:
        try:
            domain_event.send(app, event=event)
        except Exception:
            app.logger.exception("[events] subscriber failed for %s rental=%s", event.type, event.rental_id)
