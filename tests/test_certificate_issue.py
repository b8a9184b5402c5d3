import os
import re
from datetime import date

import pytest

from societyhub.app import db
from societyhub.models import Certificate
from societyhub.services.certificates import (
    CertificateIssuer,
    CertificateNotEligibleError,
    CertificateNotFoundError,
    CertificateRenderError,
    CertificateValidationError,
    find_certificate_for_registration,
    write_certificate,
)

BASE_URL = "https://events.uni.example/"


def _issuer():
    return CertificateIssuer.from_config(db.session)


def _setup(seed, **registration_kwargs):
    society = seed.society("Computing Society")
    event = seed.event(society, title="Hackathon 2026")
    student = seed.user(name="Sara Malik", email="sara@uni.example")
    registration = seed.attended(event, user=student, **registration_kwargs)
    template = seed.template(society)
    issuer_user = seed.manager(society)
    return society, event, registration, template, issuer_user


def test_issue_creates_record_and_pdf(app, seed, renderer, upload_root):
    _, event, registration, template, manager = _setup(seed)

    cert = _issuer().issue_for_registration(
        registration.registration_id, template.template_id, manager.user_id, BASE_URL
    )

    filename = f"event_{event.event_id}_reg_{registration.registration_id}.pdf"
    assert cert.file_path == f"/uploads/certificates/{filename}"
    assert os.path.isfile(upload_root / "certificates" / filename)
    assert cert.status == "ready"
    assert cert.template_id == template.template_id
    assert cert.issued_by == manager.user_id
    assert re.fullmatch(r"[0-9a-f]{32}", cert.verification_token)
    leftovers = [
        name
        for name in os.listdir(upload_root / "certificates")
        if name.endswith(".part")
    ]
    assert leftovers == []


def test_rendered_html_carries_verification_url(app, seed, renderer):
    _, _, registration, template, manager = _setup(seed)

    cert = _issuer().issue_for_registration(
        registration.registration_id, template.template_id, manager.user_id, BASE_URL
    )

    html = renderer.calls[-1]["html"]
    token = cert.verification_token
    assert "<h1>Sara Malik</h1>" in html
    assert "Participant of Hackathon 2026 on 2026-03-14 by Computing Society" in html
    assert f"https://events.uni.example/api/certificates/verify/{token}" in html
    assert f"({token})" in html
    assert "{{ signature_block }}" in html
    assert renderer.calls[-1]["timeout"] == app.config["CERT_RENDER_TIMEOUT_SECONDS"]


def test_second_issue_returns_existing_without_rendering(app, seed, renderer):
    _, _, registration, template, manager = _setup(seed)
    issuer = _issuer()
    first = issuer.issue_for_registration(
        registration.registration_id, template.template_id, manager.user_id, BASE_URL
    )
    second = issuer.issue_for_registration(
        registration.registration_id, template.template_id, manager.user_id, BASE_URL
    )
    assert second.certificate_id == first.certificate_id
    assert second.verification_token == first.verification_token
    assert len(renderer.calls) == 1
    assert db.session.query(Certificate).count() == 1


def test_not_eligible_raises_and_writes_nothing(app, seed, renderer):
    _, _, registration, template, manager = _setup(seed)
    seed.attendance(registration, "absent")

    with pytest.raises(CertificateNotEligibleError) as exc:
        _issuer().issue_for_registration(
            registration.registration_id, template.template_id, manager.user_id, BASE_URL
        )
    assert "not eligible" in str(exc.value)
    assert renderer.calls == []
    assert db.session.query(Certificate).count() == 0


def test_missing_registration_or_template(app, seed):
    _, _, registration, template, manager = _setup(seed)
    with pytest.raises(CertificateNotFoundError):
        _issuer().issue_for_registration(
            9999, template.template_id, manager.user_id, BASE_URL
        )
    with pytest.raises(CertificateNotFoundError):
        _issuer().issue_for_registration(
            registration.registration_id, 9999, manager.user_id, BASE_URL
        )


def test_template_from_other_society_is_rejected(app, seed, renderer):
    _, _, registration, _, manager = _setup(seed)
    other_template = seed.template(seed.society("Drama Club"))
    with pytest.raises(CertificateValidationError):
        _issuer().issue_for_registration(
            registration.registration_id,
            other_template.template_id,
            manager.user_id,
            BASE_URL,
        )
    assert renderer.calls == []


def test_render_failure_leaves_no_row_or_file(app, seed, renderer, upload_root):
    _, event, registration, template, manager = _setup(seed)
    renderer.fail_for("Sara Malik")

    with pytest.raises(CertificateRenderError):
        _issuer().issue_for_registration(
            registration.registration_id, template.template_id, manager.user_id, BASE_URL
        )
    assert db.session.query(Certificate).count() == 0
    assert os.listdir(upload_root / "certificates") == []


def test_renderer_output_must_be_a_pdf(app, seed, upload_root):
    _, _, registration, template, manager = _setup(seed)

    def broken_renderer(html, path, timeout):
        with open(path, "wb") as handle:
            handle.write(b"<html>not a pdf</html>")

    app.config["CERT_PDF_RENDERER"] = broken_renderer
    with pytest.raises(CertificateRenderError):
        _issuer().issue_for_registration(
            registration.registration_id, template.template_id, manager.user_id, BASE_URL
        )
    assert db.session.query(Certificate).count() == 0


def test_missing_template_file_is_not_found(app, seed, upload_root):
    _, _, registration, template, manager = _setup(seed)
    os.remove(upload_root / template.template_file_path.replace("/uploads/", "", 1))

    with pytest.raises(CertificateNotFoundError) as exc:
        _issuer().issue_for_registration(
            registration.registration_id, template.template_id, manager.user_id, BASE_URL
        )
    assert "Template file not found" in str(exc.value)


def test_past_event_policy_blocks_future_events(app, seed):
    society = seed.society()
    event = seed.event(society, event_date=date(2099, 1, 1))
    registration = seed.attended(event)
    template = seed.template(society)

    app.config["CERT_REQUIRE_PAST_EVENT"] = True
    with pytest.raises(CertificateNotEligibleError) as exc:
        _issuer().issue_for_registration(
            registration.registration_id, template.template_id, None, BASE_URL
        )
    assert "has not taken place" in str(exc.value)

    app.config["CERT_REQUIRE_PAST_EVENT"] = False
    cert = _issuer().issue_for_registration(
        registration.registration_id, template.template_id, None, BASE_URL
    )
    assert cert.certificate_id is not None


def test_write_certificate_returns_existing_on_duplicate(app, seed):
    _, _, registration, template, manager = _setup(seed)
    first, created = write_certificate(
        db.session,
        registration_id=registration.registration_id,
        template_id=template.template_id,
        token="a" * 32,
        status="ready",
        file_path="/uploads/certificates/first.pdf",
        issued_by=manager.user_id,
    )
    assert created is True

    again, created = write_certificate(
        db.session,
        registration_id=registration.registration_id,
        template_id=template.template_id,
        token="b" * 32,
        status="ready",
        file_path="/uploads/certificates/second.pdf",
        issued_by=manager.user_id,
    )
    assert created is False
    assert again.certificate_id == first.certificate_id
    assert again.verification_token == "a" * 32
    assert db.session.query(Certificate).count() == 1
    assert (
        find_certificate_for_registration(db.session, registration.registration_id)
        .file_path
        == "/uploads/certificates/first.pdf"
    )


def _template_file(upload_root, template):
    return upload_root / template.template_file_path.replace("/uploads/", "", 1)


def test_non_utf8_template_is_a_render_error(app, seed, renderer, upload_root):
    _, _, registration, template, manager = _setup(seed)
    _template_file(upload_root, template).write_bytes(b"<html>\xff\xfe {{ name }}</html>")

    with pytest.raises(CertificateRenderError) as exc:
        _issuer().issue_for_registration(
            registration.registration_id, template.template_id, manager.user_id, BASE_URL
        )
    assert "not valid UTF-8" in str(exc.value)
    assert renderer.calls == []
    assert db.session.query(Certificate).count() == 0


def test_non_utf8_template_is_skipped_in_bulk(app, seed, upload_root):
    _, event, registration, template, manager = _setup(seed)
    _template_file(upload_root, template).write_bytes(b"\xff{{ name }}")

    result = _issuer().issue_for_event(
        event.event_id, template.template_id, manager.user_id, BASE_URL
    )

    assert result.created == []
    assert result.skipped[0].registration_id == registration.registration_id
    assert "not valid UTF-8" in result.skipped[0].reason
    assert not result.skipped[0].reason.startswith("unexpected error")


def test_losing_insert_race_returns_winner(app, seed, renderer, upload_root):
    _, event, registration, template, manager = _setup(seed)

    def racing_renderer(html, path, timeout):
        renderer(html, path, timeout)
        db.session.add(
            Certificate(
                registration_id=registration.registration_id,
                template_id=template.template_id,
                verification_token="d" * 32,
                status="ready",
                file_path="/uploads/certificates/winner.pdf",
            )
        )
        db.session.commit()

    app.config["CERT_PDF_RENDERER"] = racing_renderer
    outcome = _issuer().issue_registration(
        registration.registration_id, template.template_id, manager.user_id, BASE_URL
    )

    assert outcome.created is False
    assert outcome.certificate.verification_token == "d" * 32
    assert db.session.query(Certificate).count() == 1
    assert os.listdir(upload_root / "certificates") == []


def test_new_certificate_reports_created(app, seed):
    _, _, registration, template, manager = _setup(seed)
    issuer = _issuer()
    first = issuer.issue_registration(
        registration.registration_id, template.template_id, manager.user_id, BASE_URL
    )
    again = issuer.issue_registration(
        registration.registration_id, template.template_id, manager.user_id, BASE_URL
    )
    assert first.created is True
    assert again.created is False
    assert again.certificate.certificate_id == first.certificate.certificate_id


def test_failed_move_drops_row(app, seed, upload_root, monkeypatch, caplog):
    _, _, registration, template, manager = _setup(seed)
    real_replace = os.replace

    def failing_replace(src, dst):
        if str(dst).endswith(".pdf"):
            raise OSError("disk full")
        return real_replace(src, dst)

    monkeypatch.setattr(os, "replace", failing_replace)
    caplog.set_level("INFO")

    with pytest.raises(CertificateRenderError) as exc:
        _issuer().issue_for_registration(
            registration.registration_id, template.template_id, manager.user_id, BASE_URL
        )

    assert "could not be stored" in str(exc.value)
    assert "[CERT-FAIL]" in caplog.text
    assert db.session.query(Certificate).count() == 0
    assert os.listdir(upload_root / "certificates") == []
