from __future__ import annotations

from sqlalchemy.orm import validates

from ..app import db
from ..constants import (
    CERT_STATUS_READY,
    CERT_STATUS_REVOKED,
    PAYMENT_NOT_REQUIRED,
    REGISTRATION_REGISTERED,
    ROLE_STUDENT,
    ROLE_SUPER_ADMIN,
)


class User(db.Model):
    __tablename__ = "users"

    user_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(
        db.String(20), nullable=False, default=ROLE_STUDENT, server_default=ROLE_STUDENT
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.Index("ix_users_email_lower", db.func.lower(email), unique=True),
    )

    @validates("email")
    def lower_email(self, key, value):  # pragma: no cover - simple normalizer
        return value.lower()

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN


class Society(db.Model):
    __tablename__ = "societies"

    society_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now())


class SocietyMembership(db.Model):
    __tablename__ = "society_memberships"

    membership_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    society_id = db.Column(
        db.Integer,
        db.ForeignKey("societies.society_id", ondelete="CASCADE"),
        nullable=False,
    )
    is_core = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "society_id", name="uix_society_membership_user_society"
        ),
    )


class Event(db.Model):
    __tablename__ = "events"

    event_id = db.Column(db.Integer, primary_key=True)
    society_id = db.Column(
        db.Integer,
        db.ForeignKey("societies.society_id", ondelete="CASCADE"),
        nullable=False,
    )
    title = db.Column(db.String(255), nullable=False)
    event_date = db.Column(db.Date)
    venue = db.Column(db.String(255))
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    base_fee_amount = db.Column(db.Numeric(10, 2))
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    society = db.relationship("Society")


class Registration(db.Model):
    __tablename__ = "registrations"

    registration_id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    status = db.Column(
        db.String(20),
        nullable=False,
        default=REGISTRATION_REGISTERED,
        server_default=REGISTRATION_REGISTERED,
    )
    payment_required = db.Column(db.Boolean, nullable=False, default=False)
    fee_amount = db.Column(db.Numeric(10, 2))
    payment_status = db.Column(
        db.String(20),
        nullable=False,
        default=PAYMENT_NOT_REQUIRED,
        server_default=PAYMENT_NOT_REQUIRED,
    )
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    event = db.relationship("Event")
    user = db.relationship("User")


class Attendance(db.Model):
    __tablename__ = "attendance"

    attendance_id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.Integer, db.ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    attendance_status = db.Column(db.String(20), nullable=False)
    marked_by = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    marked_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("event_id", "user_id", name="uix_attendance_event_user"),
    )


class CertificateTemplate(db.Model):
    __tablename__ = "certificate_templates"

    template_id = db.Column(db.Integer, primary_key=True)
    society_id = db.Column(
        db.Integer,
        db.ForeignKey("societies.society_id", ondelete="CASCADE"),
        nullable=False,
    )
    name = db.Column(db.String(255), nullable=False)
    template_file_path = db.Column(db.String(255), nullable=False)
    created_by = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    society = db.relationship("Society")

    def to_dict(self) -> dict:
        return {
            "template_id": self.template_id,
            "society_id": self.society_id,
            "society_name": self.society.name if self.society else None,
            "name": self.name,
            "template_file_path": self.template_file_path,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Certificate(db.Model):
    __tablename__ = "certificates"

    certificate_id = db.Column(db.Integer, primary_key=True)
    registration_id = db.Column(
        db.Integer,
        db.ForeignKey("registrations.registration_id", ondelete="CASCADE"),
        nullable=False,
    )
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("certificate_templates.template_id", ondelete="SET NULL"),
    )
    verification_token = db.Column(db.String(64), nullable=False)
    status = db.Column(
        db.String(20),
        nullable=False,
        default=CERT_STATUS_READY,
        server_default=CERT_STATUS_READY,
    )
    file_path = db.Column(db.String(255))
    issued_by = db.Column(db.Integer, db.ForeignKey("users.user_id"))
    issued_at = db.Column(db.DateTime, server_default=db.func.now())
    __table_args__ = (
        db.UniqueConstraint("registration_id", name="uix_certificate_registration"),
        db.UniqueConstraint("verification_token", name="uix_certificate_token"),
    )

    registration = db.relationship("Registration")

    @property
    def is_revoked(self) -> bool:
        return self.status == CERT_STATUS_REVOKED

    def to_dict(self) -> dict:
        return {
            "certificate_id": self.certificate_id,
            "registration_id": self.registration_id,
            "template_id": self.template_id,
            "verification_token": self.verification_token,
            "status": self.status,
            "file_path": self.file_path,
            "issued_by": self.issued_by,
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
        }
