from rentflow.extensions import db
from rentflow.utils.clock import utcnow


class Notification(db.Model):
	__tablename__ = "notifications"

	id = db.Column(db.Integer, primary_key=True, autoincrement=True)
	user_id = db.Column(db.Integer, nullable=False, index=True)

	type = db.Column(db.String(60), nullable=False)
	title = db.Column(db.String(120), nullable=False)
	message = db.Column(db.String(300), nullable=False)
	related_id = db.Column(db.Integer, nullable=True)
	read = db.Column(db.Boolean, default=False, nullable=False, index=True)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
	meta_json = db.Column(db.Text, nullable=True)

	def __repr__(self) -> str:
		return f"<Notification id={self.id} user={self.user_id} type={self.type} read={self.read}>"
