# backend/stageready_admin/routes/speech_routes.py
from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from ..errors import StoreError
from ..export import export_filename, speeches_csv
from ..query import SpeechQuery, has_active_filters, run_speech_query, speech_types
from ..repository import AdminRepository
from .guards import admin_required, csv_response

speeches_bp = Blueprint("speeches", __name__)


def _speech_query_from_args() -> SpeechQuery:
    args = request.args
    return SpeechQuery(
        search=args.get("search", ""),
        speech_type=args.get("type", "all"),
        user_id=args.get("user", "all"),
        date_from=args.get("from") or None,
        date_to=args.get("to") or None,
        min_score=args.get("min_score"),
        max_score=args.get("max_score"),
        sort_by=args.get("sort", "date"),
    )


def _load():
    repo = AdminRepository()
    users = repo.get_all_users()
    return users, repo.get_all_speeches(users)


# ------------------------------
# GET /api/speeches?search=&type=&user=&from=&to=&min_score=&max_score=&sort=
# ------------------------------
@speeches_bp.route("", methods=["GET"])
@admin_required
def list_speeches():
    """
    Returns:
    {
      "speeches": [...filtered and sorted...],
      "aggregates": {"total_speeches": 3, "avg_overall": 3.0, ...},
      "speech_types": ["general", "interview", ...],
      "has_active_filters": true
    }
    """
    try:
        query = _speech_query_from_args()
        users, speeches = _load()
        result = run_speech_query(speeches, query, users)
    except (ValidationError, ValueError) as e:
        return jsonify({"message": str(e)}), 400
    except StoreError as e:
        current_app.logger.exception(f"[speeches] list failed: {e}")
        return jsonify({"message": "Failed to load speech data."}), 500

    return (
        jsonify(
            {
                "speeches": [s.model_dump(mode="json") for s in result.speeches],
                "aggregates": result.aggregates.model_dump(),
                "speech_types": speech_types(speeches),
                "has_active_filters": has_active_filters(query),
            }
        ),
        200,
    )


@speeches_bp.route("/export", methods=["GET"])
@admin_required
def export_speeches():
    try:
        query = _speech_query_from_args()
        users, speeches = _load()
        result = run_speech_query(speeches, query, users)
    except (ValidationError, ValueError) as e:
        return jsonify({"message": str(e)}), 400
    except StoreError as e:
        current_app.logger.exception(f"[speeches] export failed: {e}")
        return jsonify({"message": "Failed to load speech data."}), 500

    return csv_response(speeches_csv(result.speeches), export_filename("speeches"))
