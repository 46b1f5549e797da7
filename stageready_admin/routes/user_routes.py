# backend/stageready_admin/routes/user_routes.py
import math
from typing import Any, Optional

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from ..cascade import CascadeDeleter
from ..errors import CascadeDeleteError, DocumentNotFoundError, StoreError
from ..export import export_filename, speeches_csv, users_csv
from ..query import UserQuery, run_user_query, user_label
from ..records import SCORE_FACETS
from ..repository import (
    GAMIFICATION_FIELDS,
    SPEECH_EDITABLE_FIELDS,
    USER_EDITABLE_FIELDS,
    AdminRepository,
)
from .guards import admin_required, csv_response, user_to_dict

users_bp = Blueprint("users", __name__)


# ------------------------------
# Helpers
# ------------------------------
def _safe_int_or_none(v: Any) -> Optional[int]:
    if v is None or v == "":
        return None
    try:
        return int(v)
    except (TypeError, ValueError, OverflowError):
        raise ValueError(f"not an integer: {v!r}")


def _safe_float(v: Any) -> float:
    try:
        value = float(v)
    except (TypeError, ValueError):
        raise ValueError(f"not a number: {v!r}")
    if not math.isfinite(value):
        raise ValueError(f"not a finite number: {v!r}")
    return value


def _user_query_from_args() -> UserQuery:
    args = request.args
    return UserQuery(
        search=args.get("search", ""),
        role=args.get("role", "all"),
        gender=args.get("gender", "all"),
        sort_by=args.get("sort", "name"),
    )


def _load_filtered_users(repo: AdminRepository):
    return run_user_query(repo.get_all_users(), _user_query_from_args())


# ------------------------------
# GET /api/users?search=&role=&gender=&sort=
# ------------------------------
@users_bp.route("", methods=["GET"])
@admin_required
def list_users():
    try:
        users = _load_filtered_users(AdminRepository())
    except (ValidationError, ValueError) as e:
        return jsonify({"message": str(e)}), 400
    except StoreError as e:
        current_app.logger.exception(f"[users] list failed: {e}")
        return jsonify({"message": "Failed to load users."}), 500

    return jsonify({"users": [user_to_dict(u) for u in users]}), 200


@users_bp.route("/export", methods=["GET"])
@admin_required
def export_users():
    try:
        users = _load_filtered_users(AdminRepository())
    except (ValidationError, ValueError) as e:
        return jsonify({"message": str(e)}), 400
    except StoreError as e:
        current_app.logger.exception(f"[users] export failed: {e}")
        return jsonify({"message": "Failed to load users."}), 500

    return csv_response(users_csv(users), export_filename("users"))


# ------------------------------
# User detail
# ------------------------------
@users_bp.route("/<uid>", methods=["GET"])
@admin_required
def get_user_detail(uid):
    """
    Returns:
    {
      "user": {...},
      "speeches": [...newest first...],
      "gamification": {...} | null,
      "badges": {"total_badges": 10, "unlocked_badges": 3, "badges": [...]} | null
    }
    """
    repo = AdminRepository()
    try:
        user = repo.get_user(uid)
        if not user:
            return jsonify({"message": "user not found"}), 404
        speeches = repo.get_user_speeches(uid)
        gamification = repo.get_user_gamification(uid)
        badges = repo.get_user_badges(uid)
    except StoreError as e:
        current_app.logger.exception(f"[users] detail {uid} failed: {e}")
        return jsonify({"message": "Failed to load user data."}), 500

    return (
        jsonify(
            {
                "user": user_to_dict(user),
                "speeches": [s.model_dump(mode="json") for s in speeches],
                "gamification": gamification.model_dump(mode="json") if gamification else None,
                "badges": badges.model_dump(mode="json") if badges else None,
            }
        ),
        200,
    )


@users_bp.route("/<uid>", methods=["PATCH"])
@admin_required
def update_user(uid):
    data = request.get_json(silent=True) or {}
    partial = {k: data[k] for k in USER_EDITABLE_FIELDS if k in data}

    try:
        if "age" in partial:
            partial["age"] = _safe_int_or_none(partial["age"])
        if "interests" in partial and partial["interests"] is not None:
            if not isinstance(partial["interests"], list):
                raise ValueError("interests must be a list")
            partial["interests"] = [str(i) for i in partial["interests"]]
    except ValueError as e:
        return jsonify({"message": str(e)}), 400

    repo = AdminRepository()
    try:
        repo.update_user(uid, partial)
        user = repo.get_user(uid)
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except DocumentNotFoundError:
        return jsonify({"message": "user not found"}), 404
    except StoreError as e:
        current_app.logger.exception(f"[users] update {uid} failed: {e}")
        return jsonify({"message": "Failed to save changes."}), 500

    return jsonify({"user": user_to_dict(user)}), 200


@users_bp.route("/<uid>/role", methods=["PUT"])
@admin_required
def set_role(uid):
    data = request.get_json(silent=True) or {}
    role = data.get("role")
    role = role.strip() if isinstance(role, str) else ""

    try:
        AdminRepository().set_user_role(uid, role)
    except ValueError as e:
        return jsonify({"message": str(e)}), 400
    except DocumentNotFoundError:
        return jsonify({"message": "user not found"}), 404
    except StoreError as e:
        current_app.logger.exception(f"[users] role update {uid} failed: {e}")
        return jsonify({"message": "Failed to update role."}), 500

    current_app.logger.info(f"[users] role of {uid} set to {role}")
    return jsonify({"uid": uid, "role": role}), 200


@users_bp.route("/<uid>", methods=["DELETE"])
@admin_required
def delete_user(uid):
    try:
        result = CascadeDeleter(AdminRepository()).delete_user(uid)
    except CascadeDeleteError as e:
        current_app.logger.exception(f"[users] delete {uid} failed: {e}")
        return jsonify({"message": "Failed to delete user.", "step": e.step}), 500

    return jsonify({"deleted": True, "result": result.to_dict()}), 200


# ------------------------------
# Gamification / badges
# ------------------------------
@users_bp.route("/<uid>/gamification", methods=["PUT"])
@admin_required
def update_gamification(uid):
    data = request.get_json(silent=True) or {}

    partial = {}
    for field in GAMIFICATION_FIELDS:
        if field not in data:
            continue
        try:
            value = int(data[field])
        except (TypeError, ValueError, OverflowError):
            return jsonify({"message": f"{field} must be an integer"}), 400
        if value < 0 or (field == "level" and value < 1):
            return jsonify({"message": f"{field} is out of range"}), 400
        partial[field] = value

    repo = AdminRepository()
    try:
        repo.update_user_gamification(uid, partial)
        gamification = repo.get_user_gamification(uid)
    except StoreError as e:
        current_app.logger.exception(f"[users] gamification {uid} failed: {e}")
        return jsonify({"message": "Failed to save gamification changes."}), 500

    return jsonify({"gamification": gamification.model_dump(mode="json")}), 200


@users_bp.route("/<uid>/badges", methods=["PUT"])
@admin_required
def update_badges(uid):
    data = request.get_json(silent=True) or {}
    badges = data.get("badges")
    if not isinstance(badges, list) or not all(isinstance(b, dict) for b in badges):
        return jsonify({"message": "badges must be a list of objects"}), 400

    try:
        progress = AdminRepository().update_user_badges(uid, badges)
    except StoreError as e:
        current_app.logger.exception(f"[users] badges {uid} failed: {e}")
        return jsonify({"message": "Failed to save badges."}), 500

    return jsonify({"badges": progress.model_dump(mode="json")}), 200


@users_bp.route("/<uid>/badges/<badge_id>/toggle", methods=["POST"])
@admin_required
def toggle_badge(uid, badge_id):
    data = request.get_json(silent=True) or {}
    unlocked = data.get("unlocked")
    if unlocked is not None and not isinstance(unlocked, bool):
        return jsonify({"message": "unlocked must be a boolean"}), 400

    try:
        progress = AdminRepository().set_badge_unlocked(uid, badge_id, unlocked)
    except DocumentNotFoundError:
        return jsonify({"message": "user has no badge progress"}), 404
    except KeyError:
        return jsonify({"message": "badge not found"}), 404
    except StoreError as e:
        current_app.logger.exception(f"[users] badge toggle {uid}/{badge_id} failed: {e}")
        return jsonify({"message": "Failed to save badges."}), 500

    return jsonify({"badges": progress.model_dump(mode="json")}), 200


# ------------------------------
# Speeches of one user
# ------------------------------
@users_bp.route("/<uid>/speeches/export", methods=["GET"])
@admin_required
def export_user_speeches(uid):
    repo = AdminRepository()
    try:
        user = repo.get_user(uid)
        if not user:
            return jsonify({"message": "user not found"}), 404
        speeches = repo.get_user_speeches(uid)
    except StoreError as e:
        current_app.logger.exception(f"[users] speech export {uid} failed: {e}")
        return jsonify({"message": "Failed to load speech data."}), 500

    filename = export_filename("speeches", owner=user_label(user))
    return csv_response(speeches_csv(speeches, include_user=False), filename)


@users_bp.route("/<uid>/speeches/<speech_id>", methods=["PATCH"])
@admin_required
def update_speech(uid, speech_id):
    data = request.get_json(silent=True) or {}
    partial = {k: data[k] for k in SPEECH_EDITABLE_FIELDS if k in data}

    try:
        for field in ("duration", "average_pace"):
            if field in partial:
                partial[field] = _safe_float(partial[field])
        if "word_count" in partial:
            partial["word_count"] = _safe_int_or_none(partial["word_count"]) or 0
        for field in ("transcript", "speech_type"):
            if field in partial:
                partial[field] = str(partial[field] or "")

        scores = data.get("scores") or {}
        if not isinstance(scores, dict):
            raise ValueError("scores must be an object")
        partial["scores"] = {
            facet: _safe_float(scores[facet]) for facet in SCORE_FACETS if facet in scores
        }
    except ValueError as e:
        return jsonify({"message": str(e)}), 400

    repo = AdminRepository()
    try:
        repo.update_speech(uid, speech_id, partial)
        speech = repo.get_speech(uid, speech_id)
    except DocumentNotFoundError:
        return jsonify({"message": "speech not found"}), 404
    except StoreError as e:
        current_app.logger.exception(f"[users] speech update {uid}/{speech_id} failed: {e}")
        return jsonify({"message": "Failed to save changes."}), 500

    if speech is None:
        return jsonify({"message": "speech not found"}), 404
    return jsonify({"speech": speech.model_dump(mode="json")}), 200


@users_bp.route("/<uid>/speeches/<speech_id>", methods=["DELETE"])
@admin_required
def delete_speech(uid, speech_id):
    try:
        AdminRepository().delete_speech(uid, speech_id)
    except StoreError as e:
        current_app.logger.exception(f"[users] speech delete {uid}/{speech_id} failed: {e}")
        return jsonify({"message": "Failed to delete speech."}), 500

    return jsonify({"deleted": True}), 200
