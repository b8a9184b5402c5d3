from __future__ import annotations

import os
import secrets

from flask import current_app
from sqlalchemy.orm import Session as DbSession

from ..models import CertificateTemplate, Society
from ..shared.storage import (
    resolve_public_path,
    template_public_path,
    templates_dir,
    write_atomic,
)


class TemplateFileMissingError(FileNotFoundError):
    """Raised when a template row points at HTML that is not on disk."""


class TemplateUnreadableError(ValueError):
    """Raised when a template file exists but is not UTF-8 text."""


def get_template(session: DbSession, template_id: int) -> CertificateTemplate | None:
    return session.get(CertificateTemplate, template_id)


def get_template_for_society(
    session: DbSession, template_id: int, society_id: int
) -> CertificateTemplate | None:
    return (
        session.query(CertificateTemplate)
        .filter(
            CertificateTemplate.template_id == template_id,
            CertificateTemplate.society_id == society_id,
        )
        .one_or_none()
    )


def list_templates_for_society(
    session: DbSession, society_id: int
) -> list[CertificateTemplate]:
    return (
        session.query(CertificateTemplate)
        .filter(CertificateTemplate.society_id == society_id)
        .order_by(
            CertificateTemplate.created_at.desc(),
            CertificateTemplate.template_id.desc(),
        )
        .all()
    )


def template_path_on_disk(template: CertificateTemplate, root: str | None = None) -> str:
    path = resolve_public_path(template.template_file_path, root)
    if not path:
        raise TemplateFileMissingError(
            f"Template file path is invalid: {template.template_file_path!r}"
        )
    return path


def read_template_html(template: CertificateTemplate, root: str | None = None) -> str:
    path = template_path_on_disk(template, root)
    if not os.path.isfile(path):
        raise TemplateFileMissingError(f"Template file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as handle:
            html = handle.read()
    except UnicodeDecodeError as exc:
        raise TemplateUnreadableError(
            f"Template file is not valid UTF-8: {path} ({exc.reason} at byte {exc.start})"
        ) from exc
    current_app.logger.info(
        "[cert-template] using template_id=%s path=%s", template.template_id, path
    )
    return html


def create_template(
    session: DbSession,
    *,
    society_id: int,
    name: str,
    html: str,
    created_by: int | None,
) -> CertificateTemplate:
    if session.get(Society, society_id) is None:
        raise LookupError(f"Society {society_id} not found")
    cleaned_name = (name or "").strip()
    if not cleaned_name:
        raise ValueError("Template name is required")
    filename = f"template_{society_id}_{secrets.token_hex(8)}.html"
    write_atomic(
        os.path.join(templates_dir(), filename), html.encode("utf-8")
    )
    template = CertificateTemplate(
        society_id=society_id,
        name=cleaned_name,
        template_file_path=template_public_path(filename),
        created_by=created_by,
    )
    session.add(template)
    session.commit()
    current_app.logger.info(
        "[cert-template] created template_id=%s society=%s file=%s",
        template.template_id,
        society_id,
        filename,
    )
    return template


def delete_template(session: DbSession, template_id: int, society_id: int) -> bool:
    """Hard-delete a society's template row. Returns False when it is not theirs."""
    template = get_template_for_society(session, template_id, society_id)
    if template is None:
        return False
    session.delete(template)
    session.commit()
    current_app.logger.info(
        "[cert-template] deleted template_id=%s society=%s", template_id, society_id
    )
    return True
