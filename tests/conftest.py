import io
import pathlib
import sys
from datetime import date

import pytest
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from societyhub.app import create_app, db
from societyhub.constants import (
    PAYMENT_NOT_REQUIRED,
    REGISTRATION_REGISTERED,
    ROLE_STUDENT,
)
from societyhub.models import (
    Attendance,
    Event,
    Registration,
    Society,
    SocietyMembership,
    User,
)
from societyhub.services.templates import create_template
from societyhub.shared.pdf import DocumentRenderError

DEFAULT_TEMPLATE_HTML = (
    "<html><body>"
    "<h1>{{ name }}</h1>"
    "<p>{{role}} of {{ event_title }} on {{ event_date }} by {{ society_name }}</p>"
    "<p>Verify at {{ verification_url }} ({{ token }})</p>"
    "<p>{{ signature_block }}</p>"
    "</body></html>"
)


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


def make_pdf_bytes(text: str = "certificate") -> bytes:
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.drawString(72, 760, text[:80])
    c.save()
    return buffer.getvalue()


class RecordingRenderer:
    """Stands in for the browser: writes a one-page PDF and remembers the HTML."""

    def __init__(self):
        self.calls = []
        self.fail_when = {}

    def __call__(self, html, output_path, timeout_seconds):
        self.calls.append(
            {"html": html, "path": output_path, "timeout": timeout_seconds}
        )
        for marker, error in self.fail_when.items():
            if marker in html:
                raise error
        with open(output_path, "wb") as handle:
            handle.write(make_pdf_bytes())

    def fail_for(self, marker, error=None):
        self.fail_when[marker] = error or DocumentRenderError(
            "PDF rendering failed: page crashed"
        )


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def upload_root(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def app(monkeypatch, upload_root, renderer):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("UPLOAD_ROOT", str(upload_root))
    monkeypatch.delenv("PUBLIC_BASE_URL", raising=False)
    monkeypatch.delenv("CERT_REQUIRE_PAST_EVENT", raising=False)
    application = create_app()
    application.config["CERT_PDF_RENDERER"] = renderer
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


class Seeder:
    def __init__(self):
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def _save(self, obj):
        db.session.add(obj)
        db.session.commit()
        return obj

    def society(self, name=None):
        return self._save(Society(name=name or f"Society {self._next()}"))

    def user(self, name=None, email=None, role=ROLE_STUDENT, is_active=True):
        n = self._next()
        return self._save(
            User(
                name=name or f"Student {n}",
                email=email or f"student{n}@uni.example",
                role=role,
                is_active=is_active,
            )
        )

    def manager(self, society, name=None):
        user = self.user(name=name or "Core Member")
        self._save(
            SocietyMembership(
                user_id=user.user_id, society_id=society.society_id, is_core=True
            )
        )
        return user

    def event(self, society, title=None, is_paid=False, event_date=None, venue="Hall A"):
        return self._save(
            Event(
                society_id=society.society_id,
                title=title or f"Event {self._next()}",
                event_date=event_date or date(2026, 3, 14),
                venue=venue,
                is_paid=is_paid,
                base_fee_amount=500 if is_paid else None,
            )
        )

    def registration(
        self,
        event,
        user=None,
        status=REGISTRATION_REGISTERED,
        payment_required=None,
        payment_status=PAYMENT_NOT_REQUIRED,
    ):
        user = user or self.user()
        if payment_required is None:
            payment_required = bool(event.is_paid)
        return self._save(
            Registration(
                event_id=event.event_id,
                user_id=user.user_id,
                status=status,
                payment_required=payment_required,
                fee_amount=event.base_fee_amount if payment_required else None,
                payment_status=payment_status,
            )
        )

    def attendance(self, registration, status):
        record = (
            db.session.query(Attendance)
            .filter_by(event_id=registration.event_id, user_id=registration.user_id)
            .one_or_none()
        )
        if record is None:
            record = Attendance(
                event_id=registration.event_id,
                user_id=registration.user_id,
                attendance_status=status,
            )
            db.session.add(record)
        else:
            record.attendance_status = status
        db.session.commit()
        return record

    def clear_attendance(self, registration):
        db.session.query(Attendance).filter_by(
            event_id=registration.event_id, user_id=registration.user_id
        ).delete()
        db.session.commit()

    def template(self, society, html=DEFAULT_TEMPLATE_HTML, name="Participation"):
        return create_template(
            db.session,
            society_id=society.society_id,
            name=name,
            html=html,
            created_by=None,
        )

    def attended(self, event, user=None, **kwargs):
        registration = self.registration(event, user=user, **kwargs)
        self.attendance(registration, "present")
        return registration


@pytest.fixture
def seed(app):
    return Seeder()
