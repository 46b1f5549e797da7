# backend/stageready_admin/routes/guards.py
from functools import wraps

from flask import Response, current_app, jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ..errors import StoreError
from ..query import user_label
from ..repository import AdminRepository


def admin_required(fn):
    """JWT must be valid and its identity must be an admin user."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        uid = get_jwt_identity()
        try:
            allowed = AdminRepository().is_admin(uid)
        except StoreError as e:
            current_app.logger.exception(f"[auth] admin check failed for {uid}: {e}")
            return jsonify({"message": "Failed to verify admin access"}), 500

        if not allowed:
            current_app.logger.info(f"[auth] non-admin uid={uid} rejected")
            return jsonify({"message": "admin privileges required"}), 403
        return fn(*args, **kwargs)

    return wrapper


def user_to_dict(user):
    data = user.model_dump(mode="json")
    data["display_name"] = user_label(user)
    return data


def csv_response(text: str, filename: str) -> Response:
    return Response(
        text,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
