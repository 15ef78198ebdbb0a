import logging
from functools import wraps

from flask import abort, jsonify, request
from flask_login import current_user, login_required
from flask_wtf.csrf import generate_csrf

from app import limiter
from app.models import Game, HistoricalStats
from app.routes.admin import bp
from app.services.reconciliation_service import reconciliation_service
from app.services.scoring_service import scoring_service

logger = logging.getLogger(__name__)


def admin_required(f):
    """Require a logged in admin user"""

    @wraps(f)
    @login_required
    def decorated_function(*args, **kwargs):
        if not current_user.is_admin:
            logger.warning(f"Non-admin user {current_user.id} tried {request.path}")
            abort(403)
        return f(*args, **kwargs)

    return decorated_function


def _body():
    return request.get_json(silent=True) or {}


def _flag(data, name):
    value = data.get(name, False)
    if isinstance(value, str):
        return value.lower() in ("1", "true", "yes")
    return bool(value)


def _optional_int(value, name):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        abort(400, description=f"{name} must be an integer")


@bp.route("/csrf-token")
@admin_required
def csrf_token():
    """Token for the X-CSRFToken header on admin POSTs"""
    return jsonify({"csrf_token": generate_csrf()})


@bp.route("/scoring/status")
@admin_required
def scoring_status():
    return jsonify(scoring_service.scoring_status())


@bp.route("/scoring/settle", methods=["POST"])
@admin_required
@limiter.limit("30 per hour")
def settle_picks():
    """Score every unscored pick whose game is final"""
    dry_run = _flag(_body(), "dry_run")
    summary = scoring_service.settle_unscored_picks(dry_run=dry_run)
    logger.info(
        f"Admin {current_user.id} ran settlement (dry_run={dry_run}): "
        f"{summary['updated']} updated"
    )
    return jsonify(summary)


@bp.route("/scoring/reset", methods=["POST"])
@admin_required
@limiter.limit("10 per hour")
def reset_picks():
    """Reset scored picks in scope and score them again

    Body: {"game_types": [...], "season": 2024, "week": 3, "dry_run": true}
    """
    data = _body()
    game_types = data.get("game_types")
    if isinstance(game_types, str):
        game_types = [game_types]

    report = scoring_service.reset_and_resettle(
        game_types=game_types or None,
        season=_optional_int(data.get("season"), "season"),
        week=_optional_int(data.get("week"), "week"),
        dry_run=_flag(data, "dry_run"),
    )
    logger.info(
        f"Admin {current_user.id} reset {report['picks_reset']} picks "
        f"(dry_run={report['dry_run']}, scope={report['scope']})"
    )
    return jsonify(report)


@bp.route("/scoring/diagnose")
@admin_required
def diagnose_scoring():
    game_types = request.args.getlist("game_type") or None
    season = _optional_int(request.args.get("season"), "season")
    return jsonify(scoring_service.diagnose(game_types=game_types, season=season))


@bp.route("/scoring/double-downs", methods=["POST"])
@admin_required
def enforce_double_downs():
    """Set the double down flag on picks of games that require it"""
    dry_run = _flag(_body(), "dry_run")
    return jsonify(scoring_service.enforce_mandatory_double_downs(dry_run=dry_run))


@bp.route("/scores/audit")
@admin_required
def audit_scores():
    return jsonify(reconciliation_service.audit())


@bp.route("/scores/resync", methods=["POST"])
@admin_required
@limiter.limit("10 per hour")
def resync_scores():
    """Rebuild every user's total from their scored picks"""
    dry_run = _flag(_body(), "dry_run")
    result = reconciliation_service.resync(dry_run=dry_run)
    logger.info(
        f"Admin {current_user.id} resynced totals (dry_run={dry_run}): "
        f"{result['corrected_users']} corrected"
    )
    return jsonify(result)


@bp.route("/games/missing-scores")
@admin_required
def games_missing_scores():
    games = Game.get_completed_missing_scores()
    return jsonify({"count": len(games), "games": [game.to_dict() for game in games]})


@bp.route("/seasons/archive", methods=["GET", "POST"])
@admin_required
def archive_season():
    if request.method == "GET":
        return jsonify(
            {
                "archivable_seasons": HistoricalStats.get_archivable_seasons(),
                "archived_seasons": HistoricalStats.get_season_summaries(),
            }
        )

    season = _optional_int(_body().get("season"), "season")
    if season is None:
        return jsonify({"error": "season is required"}), 400

    rows = HistoricalStats.archive_season(season)
    logger.info(f"Admin {current_user.id} archived season {season}")
    return jsonify(
        {
            "message": f"Season {season} archived",
            "season": season,
            "standings": [row.to_dict() for row in rows],
        }
    )


@bp.route("/scheduler", methods=["GET", "POST"])
@admin_required
def scheduler():
    """Scheduler status (GET) and actions (POST)"""
    from app.services.scheduler_service import scheduler_service

    if request.method == "GET":
        return jsonify(scheduler_service.get_status())

    data = _body()
    action = data.get("action")

    if action == "start":
        scheduler_service.start()
        return jsonify({"message": "Scheduler started successfully"})

    elif action == "stop":
        scheduler_service.stop()
        return jsonify({"message": "Scheduler stopped successfully"})

    elif action == "force_run":
        success, message = scheduler_service.force_run(data.get("job", "settle"))

    elif action in ("pause_job", "resume_job"):
        job_id = data.get("job_id")
        if not job_id:
            return jsonify({"error": "Job ID required"}), 400
        if action == "pause_job":
            success, message = scheduler_service.pause_job(job_id)
        else:
            success, message = scheduler_service.resume_job(job_id)

    else:
        return jsonify({"error": "Unknown action"}), 400

    if success:
        return jsonify({"message": message})
    return jsonify({"error": message}), 400
