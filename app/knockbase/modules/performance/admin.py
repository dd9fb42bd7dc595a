from flask import Blueprint, current_app, jsonify, request

from app.knockbase.constants import ActorRole
from app.knockbase.db import db_session
from app.knockbase.errors import FieldError, ValidationFailed
from app.knockbase.modules.performance.service import Window, dashboard_summary, team_stats
from app.knockbase.modules.visibility.service import resolve_visible_leads
from app.knockbase.rbac import current_context, require_login, require_role
from app.knockbase.utils import parse_org_unit_filter

bp = Blueprint("performance", __name__)


def _window() -> Window:
    window = Window.parse(request.args.get("window"))
    if window is None:
        raise ValidationFailed([FieldError("window", "Window must be one of: today, thisWeek, allTime.")])
    return window


@bp.get("/admin/team-stats")
@require_role(ActorRole.OWNER, ActorRole.MANAGER)
def team_stats_view():
    s = db_session()
    window = _window()
    entries, totals = team_stats(
        s,
        current_context(),
        window,
        org_unit_id=parse_org_unit_filter(request.args),
        week_hours=current_app.config["STATS_WEEK_HOURS"],
    )
    return jsonify(
        {
            "window": window.value,
            "stats": [e.to_dict() for e in entries],
            "totals": totals.to_dict(),
        }
    )


@bp.get("/dashboard")
@require_login
def dashboard():
    s = db_session()
    window = Window.parse(request.args.get("window") or Window.TODAY.value)
    if window is None:
        raise ValidationFailed([FieldError("window", "Window must be one of: today, thisWeek, allTime.")])
    leads = resolve_visible_leads(s, current_context())
    summary = dashboard_summary(leads, window, week_hours=current_app.config["STATS_WEEK_HOURS"])
    return jsonify(summary.to_dict())
