from functools import wraps

from flask import jsonify, session

from ..app import db
from ..models import User


def login_required(fn):
    """Resolve the signed-in user from the Flask session and pass it along."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        user_id = session.get("user_id")
        if not user_id:
            return jsonify({"success": False, "message": "Authentication required"}), 401
        user = db.session.get(User, user_id)
        if not user or not user.is_active:
            return jsonify({"success": False, "message": "User not found or inactive"}), 401
        return fn(*args, **kwargs, current_user=user)

    return wrapper
