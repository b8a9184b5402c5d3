from __future__ import annotations

import os
from datetime import date
from typing import Any, Callable, NamedTuple

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DbSession

from ..constants import (
    CERT_ROLE_PARTICIPANT,
    CERT_STATUS_READY,
    REGISTRATION_REGISTERED,
)
from ..models import Certificate, Event, Registration, Society, User
from ..shared.acl import can_manage_certificates_for
from ..shared.html import render_placeholders
from ..shared.pdf import DocumentRenderError, PdfRenderer, check_pdf, render_pdf
from ..shared.storage import (
    certificate_filename,
    certificate_public_path,
    certificates_dir,
    ensure_dir,
)
from ..shared.tokens import (
    build_verification_url,
    generate_verification_token,
    is_well_formed_token,
)
from .eligibility import (
    RegistrationContext,
    eligibility_failure,
    load_registration_context,
)
from .templates import (
    TemplateFileMissingError,
    TemplateUnreadableError,
    get_template,
    read_template_html,
)


class CertificateError(Exception):
    """Base class for failures the certificate pipeline reports to callers."""

    status_code = 400


class CertificateValidationError(CertificateError):
    status_code = 400


class CertificatePermissionError(CertificateError):
    status_code = 403


class CertificateNotFoundError(CertificateError):
    status_code = 404


class CertificateNotEligibleError(CertificateError):
    status_code = 422


class CertificateRenderError(CertificateError):
    status_code = 502


class SkippedRegistration(NamedTuple):
    registration_id: int
    reason: str

    def to_dict(self) -> dict:
        return {"registration_id": self.registration_id, "reason": self.reason}


class IssueOutcome(NamedTuple):
    """A certificate and whether this call inserted it."""

    certificate: Certificate
    created: bool


class BulkIssueResult(NamedTuple):
    created: list[Certificate]
    skipped: list[SkippedRegistration]

    def to_dict(self) -> dict:
        return {
            "created": [cert.to_dict() for cert in self.created],
            "skipped": [item.to_dict() for item in self.skipped],
        }


VERIFY_VALID = "valid"
VERIFY_REVOKED = "revoked"
VERIFY_NOT_FOUND = "not_found"


class VerificationResult(NamedTuple):
    status: str
    payload: dict[str, Any]


def ensure_can_manage(user: Any, society_id: int | None) -> None:
    if not can_manage_certificates_for(user, society_id):
        raise CertificatePermissionError(
            "You are not allowed to manage certificates for this society"
        )


def find_certificate_for_registration(
    session: DbSession, registration_id: int
) -> Certificate | None:
    return (
        session.query(Certificate)
        .filter(Certificate.registration_id == registration_id)
        .order_by(Certificate.certificate_id)
        .first()
    )


def write_certificate(
    session: DbSession,
    *,
    registration_id: int,
    template_id: int | None,
    token: str,
    status: str,
    file_path: str,
    issued_by: int | None,
) -> tuple[Certificate, bool]:
    """Insert one certificate row and commit it.

    Returns ``(certificate, created)``. When the unique constraint on the
    registration rejects the insert, the row that won is returned with
    ``created=False``.
    """
    cert = Certificate(
        registration_id=registration_id,
        template_id=template_id,
        verification_token=token,
        status=status,
        file_path=file_path,
        issued_by=issued_by,
    )
    session.add(cert)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = find_certificate_for_registration(session, registration_id)
        if existing is None:
            raise
        current_app.logger.warning(
            "[CERT-RACE] registration=%s already certified certificate_id=%s",
            registration_id,
            existing.certificate_id,
        )
        return existing, False
    return cert, True


class CertificateIssuer:
    """Issues participant certificates for registrations.

    The database session, the PDF renderer and the storage root are passed in
    so the pipeline never reaches for process-wide state on its own.
    """

    def __init__(
        self,
        session: DbSession,
        *,
        upload_root: str,
        renderer: PdfRenderer | None = None,
        require_past_event: bool = False,
        render_timeout: float = 30,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.session = session
        self.upload_root = upload_root
        self.certificates_dir = certificates_dir(upload_root)
        self.renderer = renderer or render_pdf
        self.require_past_event = require_past_event
        self.render_timeout = render_timeout
        self.today = today

    @classmethod
    def from_config(cls, session: DbSession) -> "CertificateIssuer":
        cfg = current_app.config
        return cls(
            session,
            upload_root=cfg["UPLOAD_ROOT"],
            renderer=cfg.get("CERT_PDF_RENDERER"),
            require_past_event=bool(cfg.get("CERT_REQUIRE_PAST_EVENT")),
            render_timeout=float(cfg.get("CERT_RENDER_TIMEOUT_SECONDS", 30)),
        )

    def issue_for_registration(
        self,
        registration_id: int,
        template_id: int,
        issued_by: int | None,
        base_url: str,
    ) -> Certificate:
        return self.issue_registration(
            registration_id, template_id, issued_by, base_url
        ).certificate

    def issue_registration(
        self,
        registration_id: int,
        template_id: int,
        issued_by: int | None,
        base_url: str,
    ) -> IssueOutcome:
        """Like ``issue_for_registration`` but also reports whether a row was inserted."""
        ctx = load_registration_context(self.session, registration_id)
        if ctx is None:
            raise CertificateNotFoundError("Registration not found")
        template = get_template(self.session, template_id)
        if template is None:
            raise CertificateNotFoundError("Template not found")
        return self._issue(ctx, template, issued_by, base_url)

    def issue_for_event(
        self,
        event_id: int,
        template_id: int,
        issued_by: int | None,
        base_url: str,
    ) -> BulkIssueResult:
        event = self.session.get(Event, event_id)
        if event is None:
            raise CertificateNotFoundError("Event not found")
        template = get_template(self.session, template_id)
        if template is None:
            raise CertificateNotFoundError("Template not found")
        if template.society_id != event.society_id:
            raise CertificateValidationError(
                "Template does not belong to this event's society"
            )

        registration_ids = [
            registration_id
            for (registration_id,) in self.session.query(Registration.registration_id)
            .filter(
                Registration.event_id == event_id,
                Registration.status == REGISTRATION_REGISTERED,
            )
            .order_by(Registration.registration_id)
            .all()
        ]

        created: list[Certificate] = []
        skipped: list[SkippedRegistration] = []
        for registration_id in registration_ids:
            try:
                ctx = load_registration_context(self.session, registration_id)
                if ctx is None:
                    raise CertificateNotFoundError("Registration not found")
                outcome = self._issue(ctx, template, issued_by, base_url)
                created.append(outcome.certificate)
            except CertificateError as exc:
                skipped.append(SkippedRegistration(registration_id, str(exc)))
                current_app.logger.info(
                    "[CERT-SKIP] event=%s registration=%s reason=%s",
                    event_id,
                    registration_id,
                    exc,
                )
            except Exception as exc:
                self.session.rollback()
                current_app.logger.exception(
                    "[CERT-FAIL] event=%s registration=%s", event_id, registration_id
                )
                skipped.append(
                    SkippedRegistration(registration_id, f"unexpected error: {exc}")
                )

        current_app.logger.info(
            "[CERT-BULK] event=%s template=%s candidates=%s created=%s skipped=%s",
            event_id,
            template_id,
            len(registration_ids),
            len(created),
            len(skipped),
        )
        return BulkIssueResult(created=created, skipped=skipped)

    def _issue(
        self,
        ctx: RegistrationContext,
        template,
        issued_by: int | None,
        base_url: str,
    ) -> IssueOutcome:
        if template.society_id != ctx.society_id:
            raise CertificateValidationError(
                "Template does not belong to this registration's society"
            )

        reason = eligibility_failure(
            ctx,
            require_past_event=self.require_past_event,
            today=self.today(),
        )
        if reason:
            current_app.logger.info(
                "[cert-gate] blocked generation: registration=%s reason=%s",
                ctx.registration_id,
                reason,
            )
            raise CertificateNotEligibleError(reason)

        existing = find_certificate_for_registration(self.session, ctx.registration_id)
        if existing is not None:
            return IssueOutcome(existing, False)

        try:
            html_raw = read_template_html(template, self.upload_root)
        except TemplateFileMissingError as exc:
            raise CertificateNotFoundError(str(exc)) from exc
        except TemplateUnreadableError as exc:
            raise CertificateRenderError(str(exc)) from exc

        token = generate_verification_token()
        verification_url = build_verification_url(base_url, token)
        html = render_placeholders(
            html_raw, self._placeholder_values(ctx, token, verification_url)
        )

        filename = certificate_filename(ctx.event_id, ctx.registration_id)
        final_path = os.path.join(self.certificates_dir, filename)
        # Render beside the final file; it is only moved into place once the
        # row that owns it has been committed.
        partial_path = os.path.join(self.certificates_dir, f".{token}.{filename}.part")
        ensure_dir(self.certificates_dir)
        try:
            try:
                self.renderer(html, partial_path, self.render_timeout)
                check_pdf(partial_path)
            except DocumentRenderError as exc:
                raise CertificateRenderError(str(exc)) from exc
            except OSError as exc:
                raise CertificateRenderError(f"PDF could not be written: {exc}") from exc

            cert, created = write_certificate(
                self.session,
                registration_id=ctx.registration_id,
                template_id=template.template_id,
                token=token,
                status=CERT_STATUS_READY,
                file_path=certificate_public_path(filename),
                issued_by=issued_by,
            )
            if created:
                self._publish(cert, partial_path, final_path)
        finally:
            if os.path.exists(partial_path):
                os.remove(partial_path)

        if created:
            current_app.logger.info(
                "[CERT] registration=%s event=%s email=%s path=%s",
                ctx.registration_id,
                ctx.event_id,
                ctx.student_email,
                cert.file_path,
            )
        return IssueOutcome(cert, created)

    def _publish(self, cert: Certificate, partial_path: str, final_path: str) -> None:
        """Move a rendered PDF into place; drop its row when the move fails."""
        try:
            os.replace(partial_path, final_path)
        except OSError as exc:
            current_app.logger.exception(
                "[CERT-FAIL] registration=%s could not move %s into place",
                cert.registration_id,
                final_path,
            )
            self.session.delete(cert)
            self.session.commit()
            raise CertificateRenderError(f"PDF could not be stored: {exc}") from exc

    def _placeholder_values(
        self, ctx: RegistrationContext, token: str, verification_url: str
    ) -> dict[str, Any]:
        return {
            "name": ctx.student_name,
            "email": ctx.student_email,
            "role": CERT_ROLE_PARTICIPANT,
            "event_title": ctx.event_title,
            "event_date": ctx.event_date.isoformat() if ctx.event_date else None,
            "venue": ctx.venue,
            "society_name": ctx.society_name,
            "verification_url": verification_url,
            "token": token,
            "issued_date": self.today().isoformat(),
        }


def verify_certificate(session: DbSession, token: str | None) -> VerificationResult:
    normalized = (token or "").strip().lower()
    if not is_well_formed_token(normalized):
        current_app.logger.info("[CERT-VERIFY] malformed token")
        return VerificationResult(VERIFY_NOT_FOUND, {})

    row = (
        session.query(Certificate, User, Event, Society)
        .join(Registration, Registration.registration_id == Certificate.registration_id)
        .join(User, User.user_id == Registration.user_id)
        .join(Event, Event.event_id == Registration.event_id)
        .join(Society, Society.society_id == Event.society_id)
        .filter(Certificate.verification_token == normalized)
        .one_or_none()
    )
    if row is None:
        current_app.logger.info("[CERT-VERIFY] unknown token")
        return VerificationResult(VERIFY_NOT_FOUND, {})
    cert, user, event, society = row

    if cert.is_revoked:
        current_app.logger.info(
            "[CERT-VERIFY] revoked certificate_id=%s", cert.certificate_id
        )
        return VerificationResult(
            VERIFY_REVOKED,
            {
                "certificate_id": cert.certificate_id,
                "event_title": event.title,
                "student_name": user.name,
            },
        )

    return VerificationResult(
        VERIFY_VALID,
        {
            "student_name": user.name,
            "student_email": user.email,
            "event_title": event.title,
            "event_date": event.event_date.isoformat() if event.event_date else None,
            "society_name": society.name,
            "status": cert.status,
            "file_path": cert.file_path,
        },
    )


def list_certificates_for_event(session: DbSession, event_id: int) -> list[dict]:
    rows = (
        session.query(Certificate, User)
        .join(Registration, Registration.registration_id == Certificate.registration_id)
        .join(User, User.user_id == Registration.user_id)
        .filter(Registration.event_id == event_id)
        .order_by(Certificate.issued_at.desc(), Certificate.certificate_id.desc())
        .all()
    )
    results = []
    for cert, user in rows:
        data = cert.to_dict()
        data.update(
            {
                "user_id": user.user_id,
                "student_name": user.name,
                "student_email": user.email,
            }
        )
        results.append(data)
    return results


def list_certificates_for_user(session: DbSession, user_id: int) -> list[dict]:
    rows = (
        session.query(Certificate, Event)
        .join(Registration, Registration.registration_id == Certificate.registration_id)
        .join(Event, Event.event_id == Registration.event_id)
        .filter(Registration.user_id == user_id)
        .order_by(Certificate.issued_at.desc(), Certificate.certificate_id.desc())
        .all()
    )
    results = []
    for cert, event in rows:
        data = cert.to_dict()
        data.pop("issued_by", None)
        data.update(
            {
                "event_id": event.event_id,
                "event_title": event.title,
                "event_date": event.event_date.isoformat() if event.event_date else None,
            }
        )
        results.append(data)
    return results


def orphan_certificate_files(session: DbSession, upload_root: str) -> list[str]:
    """PDFs in the certificates directory that no certificate row references."""
    cert_dir = certificates_dir(upload_root)
    if not os.path.isdir(cert_dir):
        return []
    referenced = {
        file_path
        for (file_path,) in session.query(Certificate.file_path)
        .filter(Certificate.file_path.isnot(None))
        .all()
    }
    orphans = []
    with os.scandir(cert_dir) as entries:
        for entry in entries:
            if not entry.is_file() or not entry.name.lower().endswith(".pdf"):
                continue
            if certificate_public_path(entry.name) not in referenced:
                orphans.append(entry.path)
    return sorted(orphans)
