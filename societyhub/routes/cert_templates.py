from flask import Blueprint, jsonify

from ..app import db
from ..models import Society
from ..services.certificates import CertificateNotFoundError, ensure_can_manage
from ..services.templates import delete_template, list_templates_for_society
from ..shared.rbac import login_required

bp = Blueprint("cert_templates", __name__, url_prefix="/api/societies")


def _society_or_404(society_id: int) -> Society:
    society = db.session.get(Society, society_id)
    if society is None:
        raise CertificateNotFoundError("Society not found")
    return society


@bp.get("/<int:society_id>/cert-templates")
@login_required
def list_templates(society_id: int, current_user):
    _society_or_404(society_id)
    ensure_can_manage(current_user, society_id)
    templates = list_templates_for_society(db.session, society_id)
    return jsonify({"success": True, "data": [t.to_dict() for t in templates]})


@bp.delete("/<int:society_id>/cert-templates/<int:template_id>")
@login_required
def remove_template(society_id: int, template_id: int, current_user):
    _society_or_404(society_id)
    ensure_can_manage(current_user, society_id)
    if not delete_template(db.session, template_id, society_id):
        raise CertificateNotFoundError("Template not found for this society")
    return jsonify(
        {"success": True, "message": "Certificate template deleted successfully"}
    )
