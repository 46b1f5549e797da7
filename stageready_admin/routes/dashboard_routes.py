#backend/stageready_admin/routes/dashboard_routes.py
from flask import Blueprint, current_app, jsonify

from ..errors import StoreError
from ..repository import AdminRepository
from ..stats import compute_dashboard_stats
from .guards import admin_required

dashboard_bp = Blueprint("dashboard", __name__)


# -------------------------
# DASHBOARD STATS
# -------------------------
@dashboard_bp.route("/stats", methods=["GET"])
@admin_required
def dashboard_stats():
    """
    Returns:
    {
      "stats": {
        "total_users": 12,
        "total_speeches": 140,
        "active_users_last_7_days": 5,
        "average_overall_score": 3.1,
        "total_practice_minutes": 420,
        "speeches_this_week": 18,
        "total_admins": 1
      }
    }
    """
    try:
        stats = compute_dashboard_stats(AdminRepository())
    except StoreError as e:
        current_app.logger.exception(f"[dashboard] stats failed: {e}")
        return jsonify({"message": "Failed to load dashboard data"}), 500

    return jsonify({"stats": stats.model_dump()}), 200
