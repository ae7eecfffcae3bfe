from rentflow.extensions import db
from rentflow.utils.clock import utcnow

REPORT_TYPES = ("pickup", "return")
DAMAGE_SEVERITIES = ("minor", "moderate", "severe")


class ConditionReport(db.Model):
    __tablename__ = "condition_reports"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)

    rental_request_id = db.Column(
        db.Integer,
        db.ForeignKey("rental_requests.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    report_type = db.Column(db.Enum(*REPORT_TYPES, name="condition_report_type_enum"), nullable=False)
    reported_by_user_id = db.Column(db.Integer, nullable=False)

    # Opaque references handed over by the upload service, in order.
    photos = db.Column(db.JSON, nullable=False)
    # [{"severity": "minor|moderate|severe", "description": str, "photo": str|None}]
    damages = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    signature = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint(
            "rental_request_id",
            "report_type",
            "reported_by_user_id",
            name="uq_condition_reports_one_per_party",
        ),
    )

    def __repr__(self) -> str:
        return f"<ConditionReport id={self.id} rental={self.rental_request_id} type={self.report_type}>"
