# backend/stageready_admin/routes/auth_routes.py

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import create_access_token, get_jwt_identity

from ..errors import StoreError
from ..repository import AdminRepository, path_segment
from .guards import admin_required, user_to_dict

auth_bp = Blueprint("auth", __name__)


def _text(data, key) -> str:
    value = data.get(key)
    return value.strip() if isinstance(value, str) else ""


# -----------------------------
# Routes
# -----------------------------
@auth_bp.route("/setup", methods=["GET"])
def setup_status():
    try:
        needs_setup = not AdminRepository().has_any_admin()
    except StoreError as e:
        current_app.logger.exception(f"[auth/setup] admin lookup failed: {e}")
        return jsonify({"message": "Failed to load setup state"}), 500
    return jsonify({"needs_setup": needs_setup}), 200


@auth_bp.route("/setup", methods=["POST"])
def setup_admin():
    """
    Bootstraps the first admin profile. Accepts:
      { "uid": "...", "email": "...", "first_name": "...", "last_name": "..." }
    The uid is the account id issued by the identity provider.
    """
    data = request.get_json(silent=True) or {}

    uid = _text(data, "uid")
    email = _text(data, "email").lower()
    first_name = _text(data, "first_name")
    last_name = _text(data, "last_name")

    if not uid or not email or not first_name or not last_name:
        return jsonify({"message": "uid, email, first_name and last_name are required"}), 400

    try:
        path_segment(uid)
    except ValueError as e:
        return jsonify({"message": str(e)}), 400

    repo = AdminRepository()
    try:
        if repo.has_any_admin():
            return jsonify({"message": "an admin account already exists"}), 409
        user = repo.create_admin_profile(uid, email, first_name, last_name)
    except StoreError as e:
        current_app.logger.exception(f"[auth/setup] failed: {e}")
        return jsonify({"message": "Setup failed. Please try again."}), 500

    access_token = create_access_token(identity=uid)
    return jsonify({"token": access_token, "user": user_to_dict(user)}), 201


@auth_bp.route("/me", methods=["GET"])
@admin_required
def me():
    uid = get_jwt_identity()
    try:
        user = AdminRepository().get_user(uid)
    except StoreError as e:
        current_app.logger.exception(f"[auth/me] failed: {e}")
        return jsonify({"message": "Failed to load user"}), 500
    if not user:
        return jsonify({"message": "user not found"}), 404
    return jsonify({"user": user_to_dict(user)}), 200
