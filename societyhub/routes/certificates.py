from __future__ import annotations

import csv
import io
from typing import Any, NamedTuple

from flask import Blueprint, Response, current_app, jsonify, request

from ..app import db
from ..models import Event, Registration
from ..services.certificates import (
    VERIFY_REVOKED,
    VERIFY_VALID,
    CertificateError,
    CertificateIssuer,
    CertificateNotFoundError,
    CertificateValidationError,
    ensure_can_manage,
    list_certificates_for_event,
    list_certificates_for_user,
    verify_certificate,
)
from ..shared.rbac import login_required
from ..shared.tokens import build_verification_url

bp = Blueprint("certificates", __name__, url_prefix="/api")


class IssueCertificatesRequest(NamedTuple):
    template_id: int

    @classmethod
    def from_json(cls, body: Any) -> "IssueCertificatesRequest":
        if not isinstance(body, dict):
            raise CertificateValidationError("Request body must be a JSON object")
        raw = body.get("template_id")
        if isinstance(raw, bool):
            raw = None
        try:
            template_id = int(raw)
        except (TypeError, ValueError):
            raise CertificateValidationError("template_id is required") from None
        if template_id <= 0:
            raise CertificateValidationError("template_id must be a positive integer")
        return cls(template_id=template_id)


@bp.app_errorhandler(CertificateError)
def handle_certificate_error(exc: CertificateError):
    return jsonify({"success": False, "message": str(exc)}), exc.status_code


def _base_url() -> str:
    configured = current_app.config.get("PUBLIC_BASE_URL")
    return (configured or request.host_url).rstrip("/")


def _event_or_404(event_id: int) -> Event:
    event = db.session.get(Event, event_id)
    if event is None:
        raise CertificateNotFoundError("Event not found")
    return event


@bp.post("/events/<int:event_id>/certificates/issue")
@login_required
def issue_for_event(event_id: int, current_user):
    payload = IssueCertificatesRequest.from_json(request.get_json(silent=True))
    event = _event_or_404(event_id)
    ensure_can_manage(current_user, event.society_id)

    issuer = CertificateIssuer.from_config(db.session)
    result = issuer.issue_for_event(
        event_id, payload.template_id, current_user.user_id, _base_url()
    )
    return jsonify(
        {
            "success": True,
            "message": (
                f"Certificates issued for {len(result.created)} registration(s), "
                f"{len(result.skipped)} skipped"
            ),
            "data": result.to_dict(),
        }
    )


@bp.post("/registrations/<int:registration_id>/certificate")
@login_required
def issue_for_registration(registration_id: int, current_user):
    payload = IssueCertificatesRequest.from_json(request.get_json(silent=True))
    registration = db.session.get(Registration, registration_id)
    if registration is None:
        raise CertificateNotFoundError("Registration not found")
    ensure_can_manage(current_user, _event_or_404(registration.event_id).society_id)

    issuer = CertificateIssuer.from_config(db.session)
    outcome = issuer.issue_registration(
        registration_id, payload.template_id, current_user.user_id, _base_url()
    )
    return (
        jsonify(
            {
                "success": True,
                "message": "Certificate issued"
                if outcome.created
                else "Certificate already issued",
                "data": outcome.certificate.to_dict(),
            }
        ),
        201 if outcome.created else 200,
    )


@bp.get("/events/<int:event_id>/certificates")
@login_required
def list_for_event(event_id: int, current_user):
    event = _event_or_404(event_id)
    ensure_can_manage(current_user, event.society_id)
    return jsonify(
        {"success": True, "data": list_certificates_for_event(db.session, event_id)}
    )


@bp.get("/events/<int:event_id>/certificates/export.csv")
@login_required
def export_csv(event_id: int, current_user):
    event = _event_or_404(event_id)
    ensure_can_manage(current_user, event.society_id)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(
        [
            "CertificateId",
            "RegistrationId",
            "EventId",
            "EventTitle",
            "StudentName",
            "StudentEmail",
            "Status",
            "IssuedAt",
            "VerificationUrl",
            "PdfUrl",
        ]
    )
    base_url = _base_url()
    for row in list_certificates_for_event(db.session, event_id):
        writer.writerow(
            [
                row["certificate_id"],
                row["registration_id"],
                event.event_id,
                event.title,
                row["student_name"],
                row["student_email"] or "",
                row["status"],
                row["issued_at"] or "",
                build_verification_url(base_url, row["verification_token"]),
                row["file_path"] or "",
            ]
        )

    resp = Response(output.getvalue(), mimetype="text/csv")
    resp.headers["Content-Disposition"] = (
        f"attachment; filename=event_{event_id}_certificates.csv"
    )
    return resp


@bp.get("/my/certificates")
@login_required
def my_certificates(current_user):
    return jsonify(
        {
            "success": True,
            "data": list_certificates_for_user(db.session, current_user.user_id),
        }
    )


@bp.get("/certificates/verify/<token>")
def verify(token: str):
    result = verify_certificate(db.session, token)
    if result.status == VERIFY_VALID:
        return jsonify(
            {
                "success": True,
                "status": result.status,
                "message": "Certificate is valid",
                "data": result.payload,
            }
        )
    if result.status == VERIFY_REVOKED:
        return (
            jsonify(
                {
                    "success": False,
                    "status": result.status,
                    "message": "This certificate has been revoked",
                    "data": result.payload,
                }
            ),
            410,
        )
    return (
        jsonify(
            {
                "success": False,
                "status": result.status,
                "message": "Certificate not found or invalid token",
            }
        ),
        404,
    )
