import json

from flask import current_app
from sqlalchemy.exc import OperationalError, ProgrammingError

from rentflow.events import ADMINS, DomainEvent, domain_event
from rentflow.extensions.db import db
from rentflow.models.notification import Notification
from rentflow.utils.errors import ApiError, NotFound


def _debug() -> bool:
	return bool(current_app.config.get("NOTIFICATIONS_DEBUG", False))


def _meta_like_event_key(event_key: str) -> str:
	# meta_json is TEXT; a LIKE match keeps dedupe portable across SQLite/MySQL.
	return f'%"event_key": "{event_key}"%'


def create_notification(
	user_id: int,
	type_: str,
	title: str,
	message: str,
	related_id: int | None = None,
	meta: dict | None = None,
	*,
	event_key: str | None = None,
) -> Notification | None:
	t = (type_ or "").strip()
	m = (message or "").strip()
	if not t or not m:
		if _debug():
			current_app.logger.info("[notifications] skip create: empty type/message")
		return None
	if len(m) > 300:
		m = m[:300]
	title_s = (title or t).strip()[:120]

	meta = dict(meta or {})
	meta.setdefault("event_type", t)
	if related_id is not None:
		meta.setdefault("related_id", related_id)
	if event_key:
		meta.setdefault("event_key", event_key)
	meta_json = json.dumps(meta, ensure_ascii=False, default=str)

	try:
		if event_key:
			# Retries and double clicks must not notify twice.
			exists = (
				Notification.query.filter_by(user_id=user_id, type=t)
				.filter(Notification.meta_json.isnot(None))
				.filter(Notification.meta_json.like(_meta_like_event_key(event_key)))
				.first()
			)
			if exists is not None:
				if _debug():
					current_app.logger.info("[notifications] dedupe skip user=%s type=%s event_key=%s", user_id, t, event_key)
				return exists

		n = Notification(
			user_id=user_id,
			type=t,
			title=title_s,
			message=m,
			related_id=related_id,
			read=False,
			meta_json=meta_json,
		)
		db.session.add(n)
		db.session.commit()
		if _debug():
			current_app.logger.info("[notifications] created id=%s user=%s type=%s", n.id, user_id, t)
		return n
	except (OperationalError, ProgrammingError):
		db.session.rollback()
		current_app.logger.warning("[notifications] create failed (missing tables?)")
		return None


def _resolve_recipients(recipients) -> list[int]:
	out: list[int] = []
	for r in recipients or []:
		if r == ADMINS:
			ids = current_app.config.get("ADMIN_USER_IDS") or []
		else:
			ids = [r]
		for uid in ids:
			try:
				uid = int(uid)
			except (TypeError, ValueError):
				continue
			if uid not in out:
				out.append(uid)
	return out


@domain_event.connect
def on_domain_event(sender, event: DomainEvent, **extra) -> None:
	"""Fan a domain event out to the inbox of each recipient."""
	meta = dict(event.meta or {})
	meta.setdefault("rental_id", event.rental_id)
	for user_id in _resolve_recipients(event.recipients):
		create_notification(
			user_id,
			event.type,
			event.title,
			event.message,
			related_id=event.related_id or event.rental_id,
			meta=meta,
			event_key=event.key_for(user_id),
		)


def list_notifications(user_id: int, limit: int = 50) -> dict:
	try:
		q = (
			Notification.query.filter_by(user_id=user_id)
			.order_by(Notification.created_at.desc(), Notification.id.desc())
			.limit(max(1, min(int(limit), 100)))
		)
		items = q.all()
		unread = Notification.query.filter_by(user_id=user_id, read=False).count()
	except (OperationalError, ProgrammingError):
		current_app.logger.warning("[notifications] list failed (missing tables?)")
		return {"items": [], "unread_count": 0}

	return {
		"items": [
			{
				"id": n.id,
				"type": n.type,
				"title": n.title,
				"message": n.message,
				"related_id": n.related_id,
				"read": bool(n.read),
				"created_at": n.created_at.isoformat() if n.created_at else None,
				"meta": json.loads(n.meta_json) if n.meta_json else None,
			}
			for n in items
		],
		"unread_count": int(unread),
	}


def mark_read(notification_id: int, user_id: int) -> None:
	try:
		n = db.session.get(Notification, notification_id)
	except (OperationalError, ProgrammingError):
		raise ApiError("Notifications unavailable.", status_code=501)

	if not n or n.user_id != user_id:
		raise NotFound("Notification not found.")

	if not n.read:
		n.read = True
		db.session.commit()
		if _debug():
			current_app.logger.info("[notifications] marked read id=%s user=%s", notification_id, user_id)
